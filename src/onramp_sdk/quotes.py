"""Quote acquisition with busy/error/retry semantics."""

from enum import Enum
from typing import Dict, List, Optional

from .client import OnrampClient
from .config import config
from .errors import NotConfiguredError, OnrampError
from .logging_utils import get_logger
from .types import Quote, QuoteBatch

logger = get_logger(__name__)


class QuoteState(str, Enum):
    NOT_CONFIGURED = "not_configured"
    IDLE = "idle"
    PENDING = "pending"
    ERROR = "error"
    READY = "ready"


def group_quotes_by_onramp(batch: Optional[QuoteBatch]) -> Dict[str, List[Quote]]:
    """Group quotes by upper-cased on-ramp name, keeping batch order.

    Every quote lands in exactly one group.
    """
    groups: Dict[str, List[Quote]] = {}
    if batch is None:
        return groups
    for quote in batch.quotes:
        groups.setdefault(quote.provider_key, []).append(quote)
    return groups


class QuoteAcquisition:
    """Fetches fixed-input quotes and holds the latest result.

    Without an API key the component stays in ``NOT_CONFIGURED`` and never
    issues a request. The newest fetch always wins: a response arriving after
    a later fetch was started is discarded.
    """

    def __init__(
        self,
        client: OnrampClient,
        input_asset: Optional[str] = None,
        input_amount: Optional[str] = None,
        output_asset: Optional[str] = None,
        price_currency: Optional[str] = None,
    ):
        self.client = client
        self.input_asset = input_asset or config.default_input_asset
        self.input_amount = input_amount or config.default_input_amount
        self.output_asset = output_asset or config.default_output_asset
        self.price_currency = price_currency or config.price_currency

        self.batch: Optional[QuoteBatch] = None
        self.error: Optional[OnrampError] = None
        self._pending = 0
        self._generation = 0

    @property
    def enabled(self) -> bool:
        return self.client.is_configured

    @property
    def is_busy(self) -> bool:
        return self._pending > 0

    @property
    def state(self) -> QuoteState:
        if not self.enabled:
            return QuoteState.NOT_CONFIGURED
        if self.is_busy:
            return QuoteState.PENDING
        if self.error is not None:
            return QuoteState.ERROR
        if self.batch is not None:
            return QuoteState.READY
        return QuoteState.IDLE

    @property
    def grouped(self) -> Dict[str, List[Quote]]:
        return group_quotes_by_onramp(self.batch)

    async def fetch(self) -> Optional[QuoteBatch]:
        """Request a fresh quote batch.

        Returns:
            The new batch, or None when disabled, failed, or superseded.
        """
        if not self.enabled:
            logger.debug("Quote fetch skipped: no API key configured")
            return None

        self._generation += 1
        generation = self._generation
        self._pending += 1
        self.error = None

        try:
            batch = await self.client.get_quotes(
                self.input_asset,
                self.input_amount,
                self.output_asset,
                self.price_currency,
            )
        except NotConfiguredError:
            return None
        except OnrampError as e:
            if generation == self._generation:
                logger.warning(f"Quote fetch failed: {e}")
                self.error = e
            return None
        finally:
            self._pending -= 1

        if generation != self._generation:
            logger.debug("Discarding quote batch superseded by a newer fetch")
            return None

        self.batch = batch
        logger.info(f"Received {len(batch.quotes)} quotes (accept_by={batch.accept_by})")
        return batch

    async def refetch(self) -> Optional[QuoteBatch]:
        return await self.fetch()
