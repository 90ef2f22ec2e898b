import os

import pytest

# Must run before onramp_sdk.config is imported by any test
os.environ.setdefault("HALLIDAY_API_KEY", "test-api-key")
os.environ.setdefault("HALLIDAY_BASE_URL", "https://v2.prod.halliday.xyz")
os.environ.setdefault("ENFORCE_QUOTE_EXPIRY", "true")

# Well-known throwaway key (hardhat account #0), never funded on mainnet
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

QUOTE_BATCH = {
    "quotes": [
        {
            "payment_id": "p1",
            "onramp": "moonpay",
            "onramp_method": "credit_card",
            "output_amount": {"asset": "stable:0x779ded0c9e1022225f8e0630b35a9b54be713736", "amount": "96.41"},
            "fees": {
                "total_fees": "3.59",
                "conversion_fees": "2.00",
                "network_fees": "0.09",
                "business_fees": "1.50",
                "currency_symbol": "usd",
            },
        },
        {
            "payment_id": "p2",
            "onramp": "stripe",
            "onramp_method": "bank_transfer",
            "output_amount": {"asset": "stable:0x779ded0c9e1022225f8e0630b35a9b54be713736", "amount": "98.10"},
            "fees": {
                "total_fees": "1.90",
                "conversion_fees": "0.50",
                "network_fees": "0.09",
                "business_fees": "1.31",
                "currency_symbol": "usd",
            },
        },
        {
            "payment_id": "p3",
            "onramp": "MoonPay",
            "onramp_method": "apple_pay",
            "output_amount": {"asset": "stable:0x779ded0c9e1022225f8e0630b35a9b54be713736", "amount": "95.80"},
            "fees": {
                "total_fees": "4.20",
                "conversion_fees": "2.50",
                "network_fees": "0.09",
                "business_fees": "1.61",
                "currency_symbol": "usd",
            },
        },
    ],
    "current_prices": {"USD": "1.00"},
    "price_currency": "USD",
    "state_token": "t1",
    "quoted_at": "2026-10-19T12:00:00Z",
    "accept_by": "2099-01-01T00:00:00Z",
}


class FakeBrowser:
    """External browser double recording opens and dismissals."""

    def __init__(self, supports_dismiss: bool = True):
        self.supports_dismiss = supports_dismiss
        self.opened = []
        self.dismissed = 0

    async def open(self, url: str) -> None:
        self.opened.append(url)

    def dismiss(self) -> None:
        self.dismissed += 1


@pytest.fixture
def quote_batch_data():
    return {**QUOTE_BATCH, "quotes": [dict(q) for q in QUOTE_BATCH["quotes"]]}


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def wallet_key():
    return TEST_PRIVATE_KEY, TEST_ADDRESS


@pytest.fixture
def browser_factory():
    return FakeBrowser
