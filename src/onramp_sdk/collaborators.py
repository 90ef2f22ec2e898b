"""Interfaces to the pieces outside the payment core.

The wallet, the external browser and the host application's lifecycle are
owned by the embedding app. The SDK only needs the narrow slices declared
here, plus an in-process lifecycle notifier and a reference signer.
"""

import json
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data

from .logging_utils import get_logger

logger = get_logger(__name__)


@runtime_checkable
class TypedDataSigner(Protocol):
    """Produces an owner signature over server-provided typed data."""

    async def sign_typed_data(self, typed_data: Any) -> str: ...


@runtime_checkable
class WalletProvider(Protocol):
    """The authenticated user's wallets."""

    @property
    def addresses(self) -> List[str]: ...

    async def sign_typed_data(self, typed_data: Any) -> str: ...


@runtime_checkable
class ExternalBrowser(Protocol):
    """Surface that shows the on-ramp funding page."""

    supports_dismiss: bool

    async def open(self, url: str) -> None:
        """Open the page. May return only once the user leaves it."""
        ...

    def dismiss(self) -> None: ...


class AppState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"


AppStateListener = Callable[[AppState], None]


class Subscription:
    """Handle returned by :meth:`AppStateNotifier.subscribe`."""

    def __init__(self, notifier: "AppStateNotifier", listener: AppStateListener):
        self._notifier = notifier
        self._listener = listener
        self.active = True

    def remove(self) -> None:
        if self.active:
            self._notifier._remove(self._listener)
            self.active = False


class AppStateNotifier:
    """Foreground/background transition event source.

    The host app calls :meth:`emit` from its own lifecycle hooks; listeners
    are invoked synchronously in subscription order.
    """

    def __init__(self, initial: AppState = AppState.ACTIVE):
        self.current = initial
        self._listeners: List[AppStateListener] = []

    def subscribe(self, listener: AppStateListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: AppStateListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, state: AppState) -> None:
        state = AppState(state)
        previous, self.current = self.current, state
        logger.debug(f"App state {previous.value} -> {state.value}")
        for listener in list(self._listeners):
            listener(state)


class LocalAccountSigner:
    """Signs with a locally held EVM key via eth_account.

    Meant for scripts and tests; production apps sign inside the wallet.
    """

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def addresses(self) -> List[str]:
        return [self._account.address]

    async def sign_typed_data(self, typed_data: Any) -> str:
        """Sign an EIP-712 payload given as a dict or a JSON string."""
        message = encode_typed_data(full_message=_extract_typed_data(typed_data))
        signed = self._account.sign_message(message)
        return "0x" + bytes(signed.signature).hex()

    async def sign_message(self, message: str) -> str:
        signed = self._account.sign_message(encode_defunct(text=message))
        return "0x" + bytes(signed.signature).hex()


def _extract_typed_data(payload: Any) -> Dict[str, Any]:
    """Find the EIP-712 document inside a withdraw payload."""
    if isinstance(payload, str):
        payload = json.loads(payload)
    if not isinstance(payload, dict):
        raise ValueError("Typed data must be a JSON object")
    if "domain" in payload and "types" in payload:
        return payload
    for key in ("typed_data", "withdraw_authorization"):
        if key in payload:
            return _extract_typed_data(payload[key])
    raise ValueError("No EIP-712 typed data found in payload")


def primary_address(wallet: Optional[WalletProvider]) -> Optional[str]:
    """First wallet address, which is used as owner and destination."""
    if wallet is None or not wallet.addresses:
        return None
    return wallet.addresses[0]
