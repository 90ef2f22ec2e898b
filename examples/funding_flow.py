"""On-ramp funding walk-through.

Demonstrates the complete client-side payment lifecycle:
1. Fetch USD -> stable token quotes
2. Confirm the cheapest quote and open the funding page
3. Poll until the payment is funded
4. Scan history for stranded balances

Requires HALLIDAY_API_KEY and WALLET_PRIVATE_KEY in the environment or .env.
"""

import asyncio
import webbrowser
from decimal import Decimal

from onramp_sdk.client import OnrampClient
from onramp_sdk.collaborators import AppStateNotifier, LocalAccountSigner, WalletProvider, primary_address
from onramp_sdk.config import config, validate_config_for
from onramp_sdk.logging_utils import get_logger, setup_logging
from onramp_sdk.monitor import FundingMonitor, SessionState
from onramp_sdk.quotes import QuoteAcquisition
from onramp_sdk.recovery import RecoveryEngine

validate_config_for("api")
validate_config_for("wallet")

setup_logging(config.log_level, "text")  # Text format reads better in a terminal
logger = get_logger(__name__)


class SystemBrowser:
    """Opens the funding page in the desktop browser. Cannot be dismissed."""

    supports_dismiss = False

    async def open(self, url: str) -> None:
        print(f"Opening funding page: {url}")
        webbrowser.open(url)

    def dismiss(self) -> None:
        pass


def print_header(title: str):
    print(f"\n{'=' * 70}")
    print(f"  {title}")
    print(f"{'=' * 70}\n")


def print_step(step: int, title: str):
    print(f"\n{'─' * 70}")
    print(f"  Step {step}: {title}")
    print(f"{'─' * 70}\n")


async def main():
    wallet: WalletProvider = LocalAccountSigner(config.wallet_private_key)
    address = primary_address(wallet)
    funded = asyncio.Event()

    print_header("On-ramp funding demo")
    print(f"Wallet: {address}")

    async with OnrampClient() as client:
        print_step(1, f"Quote {config.default_input_amount} {config.default_input_asset}")
        quotes = QuoteAcquisition(client)
        batch = await quotes.fetch()
        if batch is None:
            print(f"Quote request failed: {quotes.error}")
            return

        for onramp, group in quotes.grouped.items():
            print(onramp)
            for q in group:
                print(
                    f"   {q.method_label:<20} {Decimal(q.output_amount.amount):.2f} out, "
                    f"fees {Decimal(q.fees.total_fees):.2f} {q.fees.currency_symbol.upper()}"
                )

        if not batch.quotes:
            print("No quotes available")
            return

        print_step(2, "Confirm cheapest quote")
        best = min(batch.quotes, key=lambda q: Decimal(q.fees.total_fees))
        app_state = AppStateNotifier()
        monitor = FundingMonitor(
            client, SystemBrowser(), app_state, on_funded=lambda session: funded.set()
        )
        monitor.select_quote(best)
        session = await monitor.confirm(batch, address)

        if session is None or session.state == SessionState.CONFIRM_FAILED:
            print("Confirmation failed:")
            print(session.confirm_error if session else "nothing selected")
        else:
            print_step(3, f"Waiting for funding of {session.payment_id}")
            try:
                await asyncio.wait_for(funded.wait(), timeout=15 * 60)
                print(f"Funded! Final status: {monitor.session.status}")
            except asyncio.TimeoutError:
                print(f"Still waiting after 15 minutes (status: {monitor.session.status})")
        monitor.close()

        print_step(4, "Scan for stranded balances")
        recovery = RecoveryEngine(client)
        payments = await recovery.load_payments(address)
        if recovery.error:
            print(f"Scan failed: {recovery.error}")
        for p in payments:
            print(f"   {p.payment_id} [{p.status}] {p.amount} {p.token} (created {p.created_at})")
        if recovery.skipped:
            print(f"   ({len(recovery.skipped)} payments could not be checked)")


if __name__ == "__main__":
    asyncio.run(main())
