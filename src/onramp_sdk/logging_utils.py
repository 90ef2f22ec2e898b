"""Payment-scoped logging utilities.

Stamps every log record with the payment id currently being worked on so a
single payment can be followed from confirmation through funding or recovery.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Optional

# Context variable holding the payment id for the current task
payment_id_var: ContextVar[Optional[str]] = ContextVar("payment_id", default=None)


class PaymentIdFilter(logging.Filter):
    """Stamps ``record.payment_id``, or "no-payment" outside a payment."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.payment_id = payment_id_var.get() or "no-payment"
        return True


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Route root logging to stdout as one-line JSON or text, tagged with the payment id."""
    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(PaymentIdFilter())

    if log_format == "json":
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"payment_id": "%(payment_id)s", "name": "%(name)s", '
            '"message": "%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] [%(payment_id)s] %(name)s: %(message)s"
        )

    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class PaymentLogContext:
    """Context manager that tags log records in a block with a payment id."""

    def __init__(self, payment_id: Optional[str]):
        self.payment_id = payment_id
        self._token = None

    def __enter__(self) -> Optional[str]:
        self._token = payment_id_var.set(self.payment_id)
        return self.payment_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        payment_id_var.reset(self._token)
