"""Payment confirmation and funding monitor.

A :class:`FundingMonitor` owns one :class:`PaymentSession` at a time. Confirming
a quote opens the funding page and starts a status poll loop; the loop is an
owned ``asyncio.Task`` that is cancelled before any replacement is scheduled,
so a session never has two loops writing into it. Returning to the foreground
triggers an immediate out-of-band status check.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Set

from .client import OnrampClient
from .collaborators import AppState, AppStateNotifier, ExternalBrowser, Subscription
from .config import config
from .errors import OnrampError
from .logging_utils import PaymentLogContext, get_logger
from .types import ConfirmResult, PaymentStatus, Quote, QuoteBatch

logger = get_logger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    CONFIRMING = "confirming"
    CONFIRM_FAILED = "confirm_failed"
    AWAITING_FUNDING = "awaiting_funding"
    FUNDED = "funded"


@dataclass
class PaymentSession:
    """Client-held state for one confirmation attempt."""

    quote: Optional[Quote] = None
    state: SessionState = SessionState.IDLE
    payment_id: Optional[str] = None
    confirm_result: Optional[ConfirmResult] = None
    confirm_error: Optional[str] = None
    status: Optional[str] = None
    funded: bool = False

    def fail(self, message: str) -> None:
        self.confirm_error = message
        self.state = SessionState.CONFIRM_FAILED


class FundingMonitor:
    """Drives Idle -> Confirming -> AwaitingFunding -> Funded for one session."""

    def __init__(
        self,
        client: OnrampClient,
        browser: ExternalBrowser,
        app_state: Optional[AppStateNotifier] = None,
        poll_interval: Optional[float] = None,
        client_redirect_url: Optional[str] = None,
        enforce_quote_expiry: Optional[bool] = None,
        on_funded: Optional[Callable[[PaymentSession], None]] = None,
    ):
        """Initialize the monitor.

        Args:
            client: Payment API client.
            browser: Surface used to show the funding page.
            app_state: Lifecycle notifier; subscribed for the monitor's lifetime.
            poll_interval: Seconds between status checks.
            client_redirect_url: Where the funding page sends the user back.
            enforce_quote_expiry: Refuse batches whose accept_by has passed.
            on_funded: Called once when the session becomes funded.
        """
        self.client = client
        self.browser = browser
        self.poll_interval = poll_interval if poll_interval is not None else config.poll_interval_seconds
        self.client_redirect_url = client_redirect_url or config.client_redirect_url
        self.enforce_quote_expiry = (
            config.enforce_quote_expiry if enforce_quote_expiry is None else enforce_quote_expiry
        )
        self.on_funded = on_funded

        self.session = PaymentSession()
        self.selected_quote: Optional[Quote] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._checks: Set[asyncio.Task] = set()
        self._closed = False
        self._subscription: Optional[Subscription] = None
        if app_state is not None:
            self._subscription = app_state.subscribe(self._on_app_state)

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def tracked_payment_id(self) -> Optional[str]:
        return self.session.payment_id

    def select_quote(self, quote: Optional[Quote]) -> None:
        """Choose the quote the next :meth:`confirm` will use (None clears it).

        A failed session goes back to idle. A session that is confirming or
        awaiting funding keeps the quote it was confirmed with.
        """
        self.selected_quote = quote
        if self.session.state == SessionState.CONFIRM_FAILED:
            self.session = PaymentSession(quote=quote)
        elif self.session.state == SessionState.IDLE:
            self.session.quote = quote

    async def confirm(self, batch: Optional[QuoteBatch], owner_address: Optional[str]) -> Optional[PaymentSession]:
        """Confirm the selected quote and start monitoring its funding.

        Without a selected quote, a batch or an owner address this is a no-op
        and returns None. Failures are recorded on the session, not raised.
        """
        quote = self.selected_quote
        if self._closed or quote is None or batch is None or not owner_address:
            logger.debug("Confirm skipped: missing quote, batch or owner address")
            return None

        self.stop_polling()
        session = PaymentSession(quote=quote, state=SessionState.CONFIRMING)
        self.session = session

        if self.enforce_quote_expiry and batch.is_expired():
            session.fail(f"Quote batch expired at {batch.accept_by.isoformat()}; fetch new quotes")
            logger.warning(session.confirm_error)
            return session

        logger.info(f"Confirming payment {quote.payment_id} via {quote.provider_key}")
        try:
            result = await self.client.confirm_payment(
                payment_id=quote.payment_id,
                state_token=batch.state_token,
                owner_address=owner_address,
                destination_address=owner_address,
                client_redirect_url=self.client_redirect_url,
            )
        except OnrampError as e:
            session.fail(str(e))
            logger.warning(f"Confirm failed for {quote.payment_id}: {e}")
            return session

        if session is not self.session or self._closed:
            logger.debug(f"Confirm result for {quote.payment_id} arrived after session was replaced")
            return session

        session.confirm_result = result
        if not result.payment_id or not result.funding_page_url:
            session.fail("Confirm response is missing payment_id or next_instruction.funding_page_url")
            logger.warning(session.confirm_error)
            return session

        self._begin_tracking(session, result.payment_id)
        await self._open_funding_page(session, result.funding_page_url)
        return session

    async def track(self, payment_id: str, funding_page_url: Optional[str] = None) -> Optional[PaymentSession]:
        """Monitor a payment confirmed elsewhere, e.g. a recovery retry.

        Replaces the current session with a new one. Returns None once closed.
        """
        if self._closed:
            logger.debug(f"Monitor closed; not tracking {payment_id}")
            return None
        self.stop_polling()
        session = PaymentSession()
        self.session = session
        self._begin_tracking(session, payment_id)
        if funding_page_url:
            await self._open_funding_page(session, funding_page_url)
        return session

    async def check_status(self) -> Optional[PaymentStatus]:
        """Issue one status check for the tracked payment right now."""
        session = self.session
        if self._closed or not session.payment_id:
            return None
        return await self._check(session, session.payment_id)

    def stop_polling(self) -> None:
        """Cancel the poll loop; no tick runs after this returns."""
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def close(self) -> None:
        """Release the lifecycle subscription and every pending check."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.remove()
        self.stop_polling()
        for task in list(self._checks):
            task.cancel()
        self._checks.clear()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _begin_tracking(self, session: PaymentSession, payment_id: str) -> None:
        self.stop_polling()
        if self._closed:
            return
        session.payment_id = payment_id
        session.state = SessionState.AWAITING_FUNDING
        self._poll_task = asyncio.create_task(self._poll_loop(session, payment_id))

    async def _poll_loop(self, session: PaymentSession, payment_id: str) -> None:
        with PaymentLogContext(payment_id):
            logger.info(f"Polling funding status every {self.poll_interval}s")
            while self._is_live(session):
                await self._check(session, payment_id)
                if not self._is_live(session):
                    break
                await asyncio.sleep(self.poll_interval)

    def _is_live(self, session: PaymentSession) -> bool:
        return not self._closed and session is self.session and not session.funded

    async def _check(self, session: PaymentSession, payment_id: str) -> Optional[PaymentStatus]:
        if not self._is_live(session):
            return None
        try:
            result = await self.client.get_payment_status(payment_id)
        except OnrampError as e:
            logger.warning(f"Status check for {payment_id} failed; will retry: {e}")
            return None

        # Drop responses for a session that was replaced, funded or torn down meanwhile
        if not self._is_live(session):
            return None

        if result.status is not None:
            session.status = result.status
        if result.funded:
            self._mark_funded(session)
        return result

    def _mark_funded(self, session: PaymentSession) -> None:
        session.funded = True
        session.state = SessionState.FUNDED
        logger.info(f"Payment {session.payment_id} funded (status={session.status})")
        self.stop_polling()
        if self.browser.supports_dismiss:
            self.browser.dismiss()
        if self.on_funded is not None:
            try:
                self.on_funded(session)
            except Exception:
                logger.exception(f"on_funded callback failed for {session.payment_id}")

    async def _open_funding_page(self, session: PaymentSession, url: str) -> None:
        try:
            await self.browser.open(url)
        except Exception as e:
            logger.warning(f"Could not open funding page {url}: {e}")
            return
        # The browser call returns once the page is dismissed; re-check right away
        if self._is_live(session):
            await self._check(session, session.payment_id)

    def _on_app_state(self, state: AppState) -> None:
        if state != AppState.ACTIVE:
            return
        session = self.session
        if not session.payment_id or not self._is_live(session):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Foreground event outside an event loop; status check skipped")
            return
        task = loop.create_task(self._check(session, session.payment_id))
        self._checks.add(task)
        task.add_done_callback(self._checks.discard)
