"""Recovery of payments whose funds got stranded.

A payment abandoned mid-flow (app closed, browser closed) can hold a balance
that the live monitor never saw arrive. The engine works from payment history
rather than from an in-memory session: it lists every non-complete payment
with a non-zero balance and offers two ways out, withdrawing the balance to
the owner or spending it on a new payment.
"""

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, List, Optional

from .client import OnrampClient
from .collaborators import TypedDataSigner
from .config import config
from .errors import OnrampError, PreconditionError
from .logging_utils import PaymentLogContext, get_logger
from .types import (
    ConfirmResult,
    HistoryEntry,
    PaymentStatus,
    QuoteBatch,
    RecoverablePayment,
    ScanSkip,
)

if TYPE_CHECKING:
    from .monitor import FundingMonitor

logger = get_logger(__name__)


def is_zero_amount(amount: str) -> bool:
    """Whether a decimal-string balance is zero.

    An empty amount counts as zero. Any other unparsable amount does not.
    """
    if not amount or not amount.strip():
        return True
    try:
        return Decimal(amount) == 0
    except (InvalidOperation, TypeError):
        logger.warning(f"Unparsable balance amount {amount!r}; treating as non-zero")
        return False


class RecoveryEngine:
    """Scans payment history and resolves stranded balances."""

    def __init__(self, client: OnrampClient):
        self.client = client
        self.payments: List[RecoverablePayment] = []
        self.skipped: List[ScanSkip] = []
        self.loading = False
        self.error: Optional[str] = None

    async def load_payments(self, owner_address: str) -> List[RecoverablePayment]:
        """Rebuild the recoverable payment list for an owner.

        A history failure aborts the scan and is kept in ``error``. A balance
        lookup failure for one payment is tallied in ``skipped`` and the scan
        carries on.
        """
        self.loading = True
        self.error = None
        try:
            history = await self.client.get_payment_history(owner_address, category="ALL")
            recoverable: List[RecoverablePayment] = []
            skipped: List[ScanSkip] = []

            for entry in history.payment_statuses:
                if entry.is_complete:
                    continue
                try:
                    recoverable.extend(await self._recoverable_balances(entry))
                except OnrampError as e:
                    logger.warning(f"Skipping payment {entry.payment_id}: balance lookup failed: {e}")
                    skipped.append(ScanSkip(payment_id=entry.payment_id, error=str(e)))

            self.payments = recoverable
            self.skipped = skipped
            logger.info(
                f"Recovery scan for {owner_address}: {len(recoverable)} recoverable, "
                f"{len(skipped)} skipped of {len(history.payment_statuses)} payments"
            )
        except OnrampError as e:
            logger.error(f"Recovery scan failed for {owner_address}: {e}")
            self.error = str(e)
        finally:
            self.loading = False

        return self.payments

    async def _recoverable_balances(self, entry: HistoryEntry) -> List[RecoverablePayment]:
        if entry.quoted is None:
            raise PreconditionError(f"Payment {entry.payment_id} has no quoted output")

        balances = await self.client.get_balances(entry.payment_id)
        return [
            RecoverablePayment(
                payment_id=entry.payment_id,
                created_at=entry.created_at,
                status=entry.status,
                token=balance.token,
                amount=balance.value.amount,
                output_asset=entry.quoted.output_amount.asset,
            )
            for balance in balances.balance_results
            if not is_zero_amount(balance.value.amount)
        ]

    async def get_withdraw_typed_data(
        self, payment_id: str, token: str, amount: str, recipient_address: str
    ) -> Any:
        return await self.client.get_withdraw_typed_data(payment_id, token, amount, recipient_address)

    async def submit_withdraw(
        self,
        payment_id: str,
        token: str,
        amount: str,
        recipient_address: str,
        signature: str,
    ) -> str:
        """Submit a signed withdrawal and return its transaction hash."""
        confirmation = await self.client.confirm_withdraw(
            payment_id, token, amount, recipient_address, signature
        )
        logger.info(f"Withdrawal for {payment_id} submitted: {confirmation.transaction_hash}")
        return confirmation.transaction_hash

    async def withdraw(
        self, payment: RecoverablePayment, recipient_address: str, signer: TypedDataSigner
    ) -> str:
        """Withdraw a stranded balance: fetch typed data, sign it, submit."""
        with PaymentLogContext(payment.payment_id):
            typed_data = await self.get_withdraw_typed_data(
                payment.payment_id, payment.token, payment.amount, recipient_address
            )
            signature = await signer.sign_typed_data(typed_data)
            tx_hash = await self.submit_withdraw(
                payment.payment_id, payment.token, payment.amount, recipient_address, signature
            )
        self.payments = [p for p in self.payments if p != payment]
        return tx_hash

    async def fetch_retry_quotes(
        self, parent_payment_id: str, token: str, amount: str, output_asset: str
    ) -> QuoteBatch:
        """Quote a new payment funded by a stranded balance."""
        return await self.client.get_quotes(
            input_asset=token,
            input_amount=amount,
            output_asset=output_asset,
            price_currency=config.price_currency,
            parent_payment_id=parent_payment_id,
        )

    async def confirm_retry_payment(
        self, payment_id: str, state_token: str, owner_address: str
    ) -> ConfirmResult:
        return await self.client.confirm_payment(
            payment_id=payment_id,
            state_token=state_token,
            owner_address=owner_address,
            destination_address=owner_address,
        )

    async def fetch_payment_status(self, payment_id: str) -> PaymentStatus:
        return await self.client.get_payment_status(payment_id)

    async def retry(
        self,
        payment: RecoverablePayment,
        owner_address: str,
        monitor: Optional["FundingMonitor"] = None,
    ) -> ConfirmResult:
        """Spend a stranded balance on a new payment using the first quote.

        When a monitor is given, the new payment replaces its current session
        and is monitored until funded.
        """
        with PaymentLogContext(payment.payment_id):
            batch = await self.fetch_retry_quotes(
                payment.payment_id, payment.token, payment.amount, payment.output_asset
            )
            if not batch.quotes:
                raise PreconditionError(f"No retry quotes available for {payment.payment_id}")

            result = await self.confirm_retry_payment(
                batch.quotes[0].payment_id, batch.state_token, owner_address
            )
            logger.info(f"Retry of {payment.payment_id} confirmed as {result.payment_id}")

        if monitor is not None and result.payment_id:
            await monitor.track(result.payment_id, result.funding_page_url)
        return result
