"""Tests for the lifecycle notifier and the eth_account reference signer."""

import json

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct, encode_typed_data

from onramp_sdk.collaborators import AppState, AppStateNotifier, LocalAccountSigner, primary_address

TYPED_DATA = {
    "types": {
        "EIP712Domain": [
            {"name": "name", "type": "string"},
            {"name": "version", "type": "string"},
            {"name": "chainId", "type": "uint256"},
        ],
        "Withdraw": [
            {"name": "paymentId", "type": "string"},
            {"name": "token", "type": "string"},
            {"name": "amount", "type": "string"},
            {"name": "recipient", "type": "address"},
        ],
    },
    "primaryType": "Withdraw",
    "domain": {"name": "Halliday", "version": "1", "chainId": 8453},
    "message": {
        "paymentId": "p1",
        "token": "USDC",
        "amount": "50",
        "recipient": "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    },
}


@pytest.mark.unit
class TestLocalAccountSigner:
    def test_address_from_key(self, wallet_key):
        key, address = wallet_key
        signer = LocalAccountSigner(key)
        assert signer.address == address
        assert primary_address(signer) == address

    @pytest.mark.asyncio
    async def test_typed_data_signature_recovers_owner(self, wallet_key):
        key, address = wallet_key
        signer = LocalAccountSigner(key)

        signature = await signer.sign_typed_data(TYPED_DATA)

        assert signature.startswith("0x")
        recovered = Account.recover_message(encode_typed_data(full_message=TYPED_DATA), signature=signature)
        assert recovered == address

    @pytest.mark.asyncio
    async def test_accepts_wrapped_json_payload(self, wallet_key):
        key, _ = wallet_key
        signer = LocalAccountSigner(key)

        direct = await signer.sign_typed_data(TYPED_DATA)
        wrapped = await signer.sign_typed_data({"withdraw_authorization": json.dumps(TYPED_DATA)})

        assert wrapped == direct

    @pytest.mark.asyncio
    async def test_rejects_payload_without_typed_data(self, wallet_key):
        key, _ = wallet_key
        signer = LocalAccountSigner(key)

        with pytest.raises(ValueError):
            await signer.sign_typed_data({"something": "else"})

    @pytest.mark.asyncio
    async def test_message_signature(self, wallet_key):
        key, address = wallet_key
        signer = LocalAccountSigner(key)

        signature = await signer.sign_message("gm!")

        assert Account.recover_message(encode_defunct(text="gm!"), signature=signature) == address


@pytest.mark.unit
class TestAppStateNotifier:
    def test_subscribe_emit_remove(self):
        notifier = AppStateNotifier()
        seen = []

        subscription = notifier.subscribe(seen.append)
        notifier.emit(AppState.BACKGROUND)
        notifier.emit("active")
        subscription.remove()
        subscription.remove()
        notifier.emit(AppState.BACKGROUND)

        assert seen == [AppState.BACKGROUND, AppState.ACTIVE]
        assert notifier.current == AppState.BACKGROUND
        assert notifier.listener_count == 0
