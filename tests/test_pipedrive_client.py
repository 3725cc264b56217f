"""Tests for PipedriveClient record mapping and HTTP failure classification.

Uses httpx.MockTransport so no request leaves the process.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio

from src.subject_sync.core.errors import NonRetriableUpstreamError, TransientUpstreamError
from src.subject_sync.crm.pipedrive import PipedriveClient
from src.subject_sync.crm.retrying import RetryingClient
from src.subject_sync.crm.schemas import ActivityFilter

CREW_KEY = "abc123crew"


class Router:
    """Maps (method, path) to a canned response and records requests."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, body=None) -> None:
        self.routes[(method, path)] = httpx.Response(status, json=body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"success": False, "error": "not found"})
        return response


@pytest.fixture
def router():
    return Router()


@pytest_asyncio.fixture
async def client(router):
    client = PipedriveClient(
        api_token="tok",
        crew_field_key=CREW_KEY,
        base_url="https://example.pipedrive.com/v1",
        transport=httpx.MockTransport(router),
    )
    yield client
    await client.close()


class TestReads:
    @pytest.mark.asyncio
    async def test_get_deal_maps_record(self, client, router):
        router.add("GET", "/v1/deals/5", body={
            "success": True,
            "data": {
                "id": 5,
                "title": "Smith Job",
                "org_id": {"name": "Smith Roofing", "value": 9},
                "person_name": "Jo Smith",
                "update_time": "2026-03-02 11:59:00",
                CREW_KEY: "50,47",
            },
        })

        deal = await client.get_deal(5)

        assert deal.title == "Smith Job"
        assert deal.org_name == "Smith Roofing"
        assert deal.person_name == "Jo Smith"
        assert deal.crew_value == "50,47"
        assert deal.update_time == datetime(2026, 3, 2, 11, 59, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_api_token_is_sent_as_query_parameter(self, client, router):
        router.add("GET", "/v1/deals/5", body={"success": True, "data": {"id": 5}})

        await client.get_deal(5)

        assert router.requests[0].url.params["api_token"] == "tok"

    @pytest.mark.asyncio
    async def test_missing_records_are_none(self, client):
        assert await client.get_deal(404) is None
        assert await client.get_activity(404) is None

    @pytest.mark.asyncio
    async def test_get_activity_normalizes_nulls(self, client, router):
        router.add("GET", "/v1/activities/10", body={
            "success": True,
            "data": {"id": 10, "deal_id": 5, "type": "demo", "subject": None, "done": 0, "due_date": ""},
        })

        activity = await client.get_activity(10)

        assert activity.subject == ""
        assert activity.done is False
        assert activity.due_date is None

    @pytest.mark.asyncio
    async def test_list_activities_for_deal(self, client, router):
        router.add("GET", "/v1/deals/5/activities", body={
            "success": True,
            "data": [{"id": 10, "deal_id": 5, "type": "demo", "subject": "x", "done": False}],
            "additional_data": {"pagination": {"more_items_in_collection": True, "next_start": 100}},
        })

        page = await client.list_activities(ActivityFilter(deal_id=5, done=False))

        assert [a.id for a in page.items] == [10]
        assert page.more_items is True
        assert page.next_start == 100
        assert router.requests[0].url.params["done"] == "0"

    @pytest.mark.asyncio
    async def test_list_deals_sorted_by_update_time(self, client, router):
        router.add("GET", "/v1/deals", body={"success": True, "data": None})

        page = await client.list_deals(0, 100)

        assert page.items == []
        assert page.more_items is False
        assert router.requests[0].url.params["sort"] == "update_time DESC"

    @pytest.mark.asyncio
    async def test_list_activity_types(self, client, router):
        router.add("GET", "/v1/activityTypes", body={
            "success": True,
            "data": [
                {"name": "Demo", "key_string": "demo"},
                {"name": "Moisture Check/Pickup", "key_string": "moisture_check_pickup"},
                {"name": "", "key_string": "broken"},
            ],
        })

        types = await client.list_activity_types()

        assert [(t.label, t.key) for t in types] == [
            ("Demo", "demo"),
            ("Moisture Check/Pickup", "moisture_check_pickup"),
        ]


class TestWrites:
    @pytest.mark.asyncio
    async def test_update_sends_only_given_fields(self, client, router):
        router.add("PUT", "/v1/activities/10", body={"success": True, "data": {"id": 10, "subject": "new"}})

        result = await client.update_activity(10, {"subject": "new"})

        assert result.success is True
        assert json.loads(router.requests[0].content) == {"subject": "new"}

    @pytest.mark.asyncio
    async def test_update_rejection_is_reported_not_raised(self, client, router):
        router.add("PUT", "/v1/activities/10", body={"success": False, "error": "nope"})

        result = await client.update_activity(10, {"subject": "new"})

        assert result.success is False

    @pytest.mark.asyncio
    async def test_create_activity(self, client, router):
        router.add("POST", "/v1/activities", body={"success": True, "data": {"id": 77}})

        result = await client.create_activity({"subject": "s", "deal_id": 5})

        assert result.success is True
        assert result.record == {"id": 77}


class TestFailureClassification:
    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    @pytest.mark.asyncio
    async def test_rate_limit_and_server_errors_are_transient(self, client, router, status):
        router.add("PUT", "/v1/activities/10", status=status, body={"success": False})

        with pytest.raises(TransientUpstreamError) as exc_info:
            await client.update_activity(10, {"subject": "new"})

        assert exc_info.value.status_code == status

    @pytest.mark.parametrize("status", [400, 401, 403, 422])
    @pytest.mark.asyncio
    async def test_client_errors_are_not_retriable(self, client, router, status):
        router.add("PUT", "/v1/activities/10", status=status, body={"success": False})

        with pytest.raises(NonRetriableUpstreamError):
            await client.update_activity(10, {"subject": "new"})

    @pytest.mark.asyncio
    async def test_404_on_write_is_not_retriable(self, client):
        with pytest.raises(NonRetriableUpstreamError):
            await client.update_activity(999, {"subject": "new"})

    @pytest.mark.asyncio
    async def test_connection_errors_are_transient(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = PipedriveClient("tok", CREW_KEY, transport=httpx.MockTransport(refuse))
        try:
            with pytest.raises(TransientUpstreamError):
                await client.get_deal(5)
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_read_with_success_false_is_not_retriable(self, client, router):
        router.add("GET", "/v1/deals/5", body={"success": False, "error": "bad"})

        with pytest.raises(NonRetriableUpstreamError):
            await client.get_deal(5)

    @pytest.mark.parametrize("error_type", [httpx.ReadError, httpx.WriteError, httpx.ReadTimeout])
    @pytest.mark.asyncio
    async def test_dropped_connections_are_transient(self, error_type):
        def drop(request: httpx.Request) -> httpx.Response:
            raise error_type("connection reset by peer", request=request)

        client = PipedriveClient("tok", CREW_KEY, transport=httpx.MockTransport(drop))
        try:
            with pytest.raises(TransientUpstreamError):
                await client.update_activity(10, {"subject": "new"})
        finally:
            await client.close()


class FlakyTransport:
    """Raises the scripted transport errors first, then answers 200 with body."""

    def __init__(self, errors: list[type[httpx.TransportError]], body: dict) -> None:
        self._errors = list(errors)
        self._body = body
        self.sent: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.sent.append((request.method, request.url.path))
        if self._errors:
            raise self._errors.pop(0)("connection reset by peer", request=request)
        return httpx.Response(200, json=self._body)


async def _no_sleep(delay: float) -> None:
    return None


class TestOverRetryingClient:
    @pytest.mark.asyncio
    async def test_read_error_is_retried(self):
        transport = FlakyTransport(
            [httpx.ReadError],
            {"success": True, "data": {"id": 10, "subject": "new"}},
        )
        inner = PipedriveClient("tok", CREW_KEY, transport=httpx.MockTransport(transport))
        client = RetryingClient(inner, max_attempts=3, base_delay=1.0, sleep=_no_sleep)
        try:
            result = await client.update_activity(10, {"subject": "new"})
        finally:
            await inner.close()

        assert result.success is True
        assert transport.sent == [("PUT", "/v1/activities/10"), ("PUT", "/v1/activities/10")]

    @pytest.mark.asyncio
    async def test_lost_create_response_is_not_resent(self):
        transport = FlakyTransport([httpx.ReadTimeout], {"success": True, "data": {"id": 77}})
        inner = PipedriveClient("tok", CREW_KEY, transport=httpx.MockTransport(transport))
        client = RetryingClient(inner, max_attempts=3, base_delay=1.0, sleep=_no_sleep)
        try:
            with pytest.raises(TransientUpstreamError):
                await client.create_activity({"subject": "s", "deal_id": 5})
        finally:
            await inner.close()

        assert transport.sent == [("POST", "/v1/activities")]
