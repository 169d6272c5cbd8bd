"""
Tests for update sources.

Covers:
- parse_batch drops malformed items
- PollingUpdateSource.fetch: list and {"subjects": [...]} bodies, HTTP errors
- QueueUpdateSource: ordered delivery, handler errors, teardown
"""

import httpx
import pytest

from riskwatch.pipeline.source import PollingUpdateSource, QueueUpdateSource, parse_batch

FEED_URL = "http://feed.test/subjects"


def _transport(body, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == FEED_URL
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


class TestParseBatch:
    def test_drops_invalid_items(self):
        updates = parse_batch([
            {"subject_id": "T1", "latitude": 28.6, "longitude": 77.2},
            {"subject_id": ""},
            {"latitude": 28.6},
            "not-an-object",
            {"subject_id": "T2", "speed": 12.5, "update_marker": "m-1"},
        ])
        assert [u.subject_id for u in updates] == ["T1", "T2"]
        assert updates[1].update_marker == "m-1"


class TestPollingUpdateSource:
    @pytest.mark.asyncio
    async def test_fetch_list_body(self):
        source = PollingUpdateSource(FEED_URL, transport=_transport([{"subject_id": "T1"}]))
        updates = await source.fetch()
        assert [u.subject_id for u in updates] == ["T1"]

    @pytest.mark.asyncio
    async def test_fetch_wrapped_body(self):
        body = {"subjects": [{"subject_id": "T1"}, {"subject_id": "T2", "family_id": "F1"}]}
        source = PollingUpdateSource(FEED_URL, transport=_transport(body))
        updates = await source.fetch()
        assert [u.group_key for u in updates] == [None, "F1"]

    @pytest.mark.asyncio
    async def test_fetch_http_error(self):
        source = PollingUpdateSource(FEED_URL, transport=_transport({"error": "down"}, 503))
        with pytest.raises(httpx.HTTPStatusError):
            await source.fetch()

    @pytest.mark.asyncio
    async def test_subscribe_and_teardown(self):
        source = PollingUpdateSource(FEED_URL, interval_seconds=3600, transport=_transport([]))

        async def handler(batch):
            return None

        teardown = await source.subscribe(handler)
        await teardown()


class TestQueueUpdateSource:
    @pytest.mark.asyncio
    async def test_delivers_in_order(self, make_update):
        source = QueueUpdateSource()
        received = []

        async def handler(batch):
            received.append([u.subject_id for u in batch])

        teardown = await source.subscribe(handler)
        await source.push([make_update("A")])
        await source.push([make_update("B"), make_update("C")])
        await source.join()
        await teardown()
        assert received == [["A"], ["B", "C"]]

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_consumer(self, make_update):
        source = QueueUpdateSource()
        received = []

        async def handler(batch):
            if batch[0].subject_id == "boom":
                raise RuntimeError("handler failed")
            received.append(batch[0].subject_id)

        teardown = await source.subscribe(handler)
        await source.push([make_update("boom")])
        await source.push([make_update("ok")])
        await source.join()
        await teardown()
        assert received == ["ok"]

    @pytest.mark.asyncio
    async def test_single_subscriber(self):
        source = QueueUpdateSource()

        async def handler(batch):
            return None

        teardown = await source.subscribe(handler)
        with pytest.raises(RuntimeError):
            await source.subscribe(handler)
        await teardown()
        await teardown()
