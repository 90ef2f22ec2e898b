"""Authenticated HTTP gateway to the Halliday payment service."""

from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .config import config
from .errors import ApiError, NotConfiguredError, ResponseFormatError, TransportError
from .logging_utils import get_logger
from .types import (
    BalanceResponse,
    ConfirmResult,
    PaymentHistory,
    PaymentStatus,
    QuoteBatch,
    TokenAmount,
    WithdrawConfirmation,
    to_payload,
)

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class OnrampClient:
    """Main entry point for talking to the payment service.

    Every request carries the bearer credential and JSON content negotiation.
    Non-success responses raise :class:`ApiError`, network failures raise
    :class:`TransportError`.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_key: Bearer credential. Defaults to ``HALLIDAY_API_KEY``.
            base_url: Service root. Defaults to ``HALLIDAY_BASE_URL``.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.api_key = api_key if api_key is not None else config.halliday_api_key
        self.base_url = (base_url or config.halliday_base_url).rstrip("/")

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout if timeout is not None else config.request_timeout_seconds,
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def close(self):
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        if not self.is_configured:
            raise NotConfiguredError("HALLIDAY_API_KEY is not configured")

        try:
            response = await self._http.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            logger.debug(f"{method} {path} failed in transport: {e}")
            raise TransportError(f"Could not reach payment service: {e}", cause=e) from e

        data = _parse_body(response)
        if response.is_error:
            logger.debug(f"{method} {path} returned {response.status_code}")
            raise ApiError(response.status_code, data)
        return data

    async def get_quotes(
        self,
        input_asset: str,
        input_amount: str,
        output_asset: str,
        price_currency: str = "USD",
        parent_payment_id: Optional[str] = None,
    ) -> QuoteBatch:
        """Request fixed-input quotes.

        Args:
            input_asset: Asset being paid in (``USD`` or a token for retries).
            input_amount: Decimal-string amount of the input asset.
            output_asset: Asset the user receives.
            price_currency: Currency used for prices and fees.
            parent_payment_id: Original payment when retrying stranded funds.

        Returns:
            The quote batch, including its state token.
        """
        body: Dict[str, Any] = {
            "request": {
                "kind": "FIXED_INPUT",
                "fixed_input_amount": {"asset": input_asset, "amount": input_amount},
                "output_asset": output_asset,
            },
            "price_currency": price_currency,
        }
        if parent_payment_id:
            body["parent_payment_id"] = parent_payment_id

        data = await self._request("POST", "/payments/quotes", json=body)
        return _validate(QuoteBatch, data)

    async def confirm_payment(
        self,
        payment_id: str,
        state_token: str,
        owner_address: str,
        destination_address: Optional[str] = None,
        client_redirect_url: Optional[str] = None,
    ) -> ConfirmResult:
        """Confirm a quoted payment.

        The destination defaults to the owner. The redirect URL is omitted
        from the body when not given.
        """
        body = {
            "payment_id": payment_id,
            "state_token": state_token,
            "owner_address": owner_address,
            "destination_address": destination_address or owner_address,
        }
        if client_redirect_url:
            body["client_redirect_url"] = client_redirect_url

        data = await self._request("POST", "/payments/confirm", json=body)
        return _validate(ConfirmResult, data)

    async def get_payment_status(self, payment_id: str) -> PaymentStatus:
        data = await self._request("GET", f"/payments/{payment_id}")
        return _validate(PaymentStatus, data)

    async def get_payment_history(self, owner_address: str, category: str = "ALL") -> PaymentHistory:
        data = await self._request(
            "GET",
            "/payments/history",
            params={"category": category, "owner_address": owner_address},
        )
        return _validate(PaymentHistory, data)

    async def get_balances(self, payment_id: str) -> BalanceResponse:
        data = await self._request("POST", "/payments/balances", json={"payment_id": payment_id})
        return _validate(BalanceResponse, data)

    async def get_withdraw_typed_data(
        self, payment_id: str, token: str, amount: str, recipient_address: str
    ) -> Any:
        """Fetch the withdrawal payload the owner must sign.

        The payload is returned as sent by the server; its shape belongs to
        the wallet that signs it.
        """
        return await self._request(
            "POST",
            "/payments/withdraw",
            json={
                "payment_id": payment_id,
                "token_amounts": [to_payload(TokenAmount(token=token, amount=amount))],
                "recipient_address": recipient_address,
            },
        )

    async def confirm_withdraw(
        self,
        payment_id: str,
        token: str,
        amount: str,
        recipient_address: str,
        signature: str,
    ) -> WithdrawConfirmation:
        data = await self._request(
            "POST",
            "/payments/withdraw/confirm",
            json={
                "payment_id": payment_id,
                "token_amounts": [to_payload(TokenAmount(token=token, amount=amount))],
                "recipient_address": recipient_address,
                "owner_signature": signature,
            },
        )
        return _validate(WithdrawConfirmation, data)


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text or None


def _validate(model: Type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ResponseFormatError(f"Unexpected {model.__name__} response: {e}", payload=data) from e
