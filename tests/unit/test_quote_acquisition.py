"""Unit tests for quote acquisition state and grouping."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from onramp_sdk.errors import ApiError
from onramp_sdk.quotes import QuoteAcquisition, QuoteState, group_quotes_by_onramp
from onramp_sdk.types import QuoteBatch


def make_client(configured=True):
    client = MagicMock()
    client.is_configured = configured
    client.get_quotes = AsyncMock()
    return client


@pytest.mark.unit
class TestGrouping:
    def test_groups_partition_the_batch(self, quote_batch_data):
        """Every quote lands in exactly one group keyed by upper-cased onramp."""
        batch = QuoteBatch.model_validate(quote_batch_data)
        groups = group_quotes_by_onramp(batch)

        assert set(groups) == {"MOONPAY", "STRIPE"}
        assert [q.payment_id for q in groups["MOONPAY"]] == ["p1", "p3"]
        assert [q.payment_id for q in groups["STRIPE"]] == ["p2"]

        flattened = [q.payment_id for group in groups.values() for q in group]
        assert sorted(flattened) == sorted(q.payment_id for q in batch.quotes)
        for key, group in groups.items():
            assert all(q.onramp.upper() == key for q in group)

    def test_empty_or_missing_batch(self):
        assert group_quotes_by_onramp(None) == {}
        assert group_quotes_by_onramp(QuoteBatch(quotes=[], state_token="t")) == {}


@pytest.mark.unit
class TestQuoteAcquisition:
    @pytest.mark.asyncio
    async def test_not_configured_never_requests(self):
        client = make_client(configured=False)
        quotes = QuoteAcquisition(client)

        assert quotes.state == QuoteState.NOT_CONFIGURED
        assert await quotes.fetch() is None
        client.get_quotes.assert_not_called()
        assert quotes.error is None

    @pytest.mark.asyncio
    async def test_fetch_resolves_batch(self, quote_batch_data):
        client = make_client()
        client.get_quotes.return_value = QuoteBatch.model_validate(quote_batch_data)
        quotes = QuoteAcquisition(client, input_asset="USD", input_amount="100", output_asset="stable:0x1")

        assert quotes.state == QuoteState.IDLE
        batch = await quotes.fetch()

        assert batch is quotes.batch
        assert quotes.state == QuoteState.READY
        assert set(quotes.grouped) == {"MOONPAY", "STRIPE"}
        client.get_quotes.assert_awaited_once_with("USD", "100", "stable:0x1", "USD")

    @pytest.mark.asyncio
    async def test_error_retained_until_next_fetch(self, quote_batch_data):
        client = make_client()
        client.get_quotes.side_effect = [
            ApiError(500, {"message": "upstream down"}),
            QuoteBatch.model_validate(quote_batch_data),
        ]
        quotes = QuoteAcquisition(client)

        await quotes.fetch()
        assert quotes.state == QuoteState.ERROR
        assert "upstream down" in str(quotes.error)

        await quotes.refetch()
        assert quotes.error is None
        assert quotes.state == QuoteState.READY

    @pytest.mark.asyncio
    async def test_busy_while_pending(self, quote_batch_data):
        release = asyncio.Event()
        client = make_client()

        async def slow_quotes(*args):
            await release.wait()
            return QuoteBatch.model_validate(quote_batch_data)

        client.get_quotes.side_effect = slow_quotes
        quotes = QuoteAcquisition(client)

        task = asyncio.create_task(quotes.fetch())
        await asyncio.sleep(0)
        assert quotes.is_busy
        assert quotes.state == QuoteState.PENDING

        release.set()
        await task
        assert not quotes.is_busy

    @pytest.mark.asyncio
    async def test_newest_fetch_wins(self, quote_batch_data):
        """A slow earlier response never overwrites a newer batch."""
        first_release = asyncio.Event()
        old = QuoteBatch.model_validate({**quote_batch_data, "state_token": "old"})
        new = QuoteBatch.model_validate({**quote_batch_data, "state_token": "new"})
        client = make_client()
        calls = 0

        async def respond(*args):
            nonlocal calls
            calls += 1
            if calls == 1:
                await first_release.wait()
                return old
            return new

        client.get_quotes.side_effect = respond
        quotes = QuoteAcquisition(client)

        first = asyncio.create_task(quotes.fetch())
        await asyncio.sleep(0)
        assert await quotes.refetch() is new

        first_release.set()
        assert await first is None
        assert quotes.batch.state_token == "new"
