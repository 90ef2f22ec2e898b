"""Tests for configuration validation and payment-scoped logging."""

import logging
from unittest.mock import patch

import pytest

from onramp_sdk.config import Config, validate_config_for
from onramp_sdk.logging_utils import PaymentIdFilter, PaymentLogContext, payment_id_var


@pytest.mark.unit
class TestConfig:
    def test_defaults(self):
        cfg = Config(halliday_api_key="")
        assert cfg.is_configured() is False
        assert cfg.halliday_base_url == "https://v2.prod.halliday.xyz"
        assert cfg.poll_interval_seconds == 3.0
        assert cfg.client_redirect_url == "https://google.com"

    def test_validate_api_requires_key(self):
        with patch("onramp_sdk.config.config.halliday_api_key", ""):
            with pytest.raises(ValueError, match="HALLIDAY_API_KEY must be set"):
                validate_config_for("api")

    def test_validate_wallet_requires_key(self):
        with patch("onramp_sdk.config.config.wallet_private_key", ""):
            with pytest.raises(ValueError, match="WALLET_PRIVATE_KEY"):
                validate_config_for("wallet")


@pytest.mark.unit
class TestPaymentLogging:
    def test_filter_stamps_payment_id(self):
        record = logging.LogRecord("onramp", logging.INFO, __file__, 1, "tick", None, None)
        log_filter = PaymentIdFilter()

        log_filter.filter(record)
        assert record.payment_id == "no-payment"

        with PaymentLogContext("p1") as payment_id:
            assert payment_id == "p1"
            log_filter.filter(record)
            assert record.payment_id == "p1"

        assert payment_id_var.get() is None
