"""Tests for get_accounts pagination."""

import asyncio

import httpx
import pytest

from sage_api.src.client import page_count
from sage_api.src.config import ACCOUNTING_API_URL
from sage_api.src.errors import ApiRequestError, ApiResponseError, AuthorizationError
from sage_api.src.models import Account


def make_item(n: int) -> dict:
    """Create a minimal ledger_account item for testing."""
    return {
        "id": f"la_{n}",
        "displayed_as": f"Account {n} ({4000 + n})",
        "name": f"Account {n}",
        "nominal_code": 4000 + n,
        "visible_in_journals": True,
    }


def ledger_handler(total: int, per_page: int = 200, fail_page: int | None = None):
    """Serve ``total`` ledger accounts split into pages."""

    def _handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        if page == fail_page:
            return httpx.Response(500, text="boom")
        start = (page - 1) * per_page
        items = [make_item(n) for n in range(start, min(start + per_page, total))]
        return httpx.Response(200, json={"$total": total, "$page": page, "$items": items})

    return _handler


class TestPageCount:
    """Tests for page_count."""

    @pytest.mark.parametrize(
        ("total", "pages"),
        [(0, 1), (1, 1), (200, 1), (201, 2), (400, 2), (450, 3)],
    )
    def test_rounds_up(self, total, pages) -> None:
        """Partial last pages count as a page."""
        assert page_count(total) == pages


class TestGetAccounts:
    """Tests for get_accounts."""

    @pytest.mark.anyio
    async def test_fetches_every_page(self, make_client, requests_seen, saved_token) -> None:
        """$total=450 needs exactly pages 1, 2 and 3."""
        async with make_client(ledger_handler(450)) as client:
            accounts = await client.get_accounts()

        assert sorted(int(r.url.params["page"]) for r in requests_seen) == [1, 2, 3]
        assert len(accounts) == 450
        assert accounts[0] == Account(id="la_0", name="Account 0", code="4000")
        assert accounts[-1].id == "la_449"

    @pytest.mark.anyio
    async def test_request_shape(self, make_client, requests_seen, saved_token) -> None:
        """Requests are authenticated and ask for 200 items with all attributes."""
        async with make_client(ledger_handler(10)) as client:
            accounts = await client.get_accounts()

        assert len(accounts) == 10
        assert len(requests_seen) == 1
        request = requests_seen[0]
        assert str(request.url).startswith(f"{ACCOUNTING_API_URL}/ledger_accounts?")
        assert request.url.params["items_per_page"] == "200"
        assert request.url.params["attributes"] == "all"
        assert request.url.params["page"] == "1"
        assert request.headers["Authorization"] == f"Bearer {saved_token['access_token']}"

    @pytest.mark.anyio
    async def test_exact_multiple_has_no_empty_page(self, make_client, requests_seen, saved_token) -> None:
        """$total=400 is two full pages, no trailing request."""
        async with make_client(ledger_handler(400)) as client:
            accounts = await client.get_accounts()
        assert len(requests_seen) == 2
        assert len(accounts) == 400

    @pytest.mark.anyio
    async def test_keeps_page_order(self, make_client, saved_token) -> None:
        """Results come back in page order even when later pages finish first."""
        sync_handler = ledger_handler(650)

        async def slow_early_pages(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            await asyncio.sleep(0.01 * (5 - page))
            return sync_handler(request)

        async with make_client(slow_early_pages) as client:
            accounts = await client.get_accounts()

        assert [a.id for a in accounts] == [f"la_{n}" for n in range(650)]

    @pytest.mark.anyio
    async def test_page_failure_fails_everything(self, make_client, saved_token) -> None:
        """One failed page aborts the whole listing."""
        async with make_client(ledger_handler(450, fail_page=2)) as client:
            with pytest.raises(ApiRequestError) as exc_info:
                await client.get_accounts()
        assert exc_info.value.status_code == 500

    @pytest.mark.anyio
    async def test_non_json_page(self, make_client, saved_token) -> None:
        """A non-JSON body is a malformed response."""
        async with make_client(lambda r: httpx.Response(200, text="<html/>")) as client:
            with pytest.raises(ApiResponseError):
                await client.get_accounts()

    @pytest.mark.anyio
    async def test_without_token(self, make_client, requests_seen) -> None:
        """No token on disk means no API call."""
        async with make_client() as client:
            with pytest.raises(AuthorizationError):
                await client.get_accounts()
        assert requests_seen == []

    @pytest.mark.anyio
    async def test_transport_error(self, make_client, saved_token) -> None:
        """Connection failures are reported as request errors."""

        def _handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(_handler) as client:
            with pytest.raises(ApiRequestError) as exc_info:
                await client.get_accounts()
        assert exc_info.value.status_code is None


class TestMalformedPages:
    """Tests for provider data that does not match the ledger_accounts shape."""

    @pytest.mark.anyio
    async def test_item_without_id(self, make_client, saved_token) -> None:
        """An account with no id is a malformed response, not a pydantic error."""
        body = {"$total": 1, "$items": [{"name": "Sales", "nominal_code": "4000"}]}
        async with make_client(lambda r: httpx.Response(200, json=body)) as client:
            with pytest.raises(ApiResponseError, match="invalid account"):
                await client.get_accounts()

    @pytest.mark.anyio
    async def test_page_without_items(self, make_client, requests_seen, saved_token) -> None:
        """A page lacking $items fails instead of returning nothing."""
        async with make_client(lambda r: httpx.Response(200, json={"$total": 450})) as client:
            with pytest.raises(ApiResponseError):
                await client.get_accounts()
        assert len(requests_seen) == 1

    @pytest.mark.anyio
    @pytest.mark.parametrize("total", [None, "450", True])
    async def test_invalid_total(self, make_client, saved_token, total) -> None:
        """$total must be an integer."""
        body = {"$total": total, "$items": []}
        async with make_client(lambda r: httpx.Response(200, json=body)) as client:
            with pytest.raises(ApiResponseError):
                await client.get_accounts()

    @pytest.mark.anyio
    async def test_later_page_without_items(self, make_client, saved_token) -> None:
        """A bad page after the first one fails the whole listing."""
        good = ledger_handler(450)

        def _handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["page"] == "3":
                return httpx.Response(200, json={"$total": 450})
            return good(request)

        async with make_client(_handler) as client:
            with pytest.raises(ApiResponseError, match="page 3"):
                await client.get_accounts()


class TestPageCancellation:
    """Tests for abandoning in-flight pages when one page fails."""

    @pytest.mark.anyio
    async def test_failed_page_cancels_slow_sibling(self, make_client, saved_token) -> None:
        """Page 3 is cancelled, not left running, once page 2 fails."""
        good = ledger_handler(450)
        page3 = {"cancelled": False, "completed": False}

        async def _handler(request: httpx.Request) -> httpx.Response:
            page = request.url.params["page"]
            if page == "2":
                return httpx.Response(500, text="boom")
            if page == "3":
                try:
                    await asyncio.sleep(5)
                except asyncio.CancelledError:
                    page3["cancelled"] = True
                    raise
                page3["completed"] = True
            return good(request)

        async with make_client(_handler) as client:
            with pytest.raises(ApiRequestError) as exc_info:
                await client.get_accounts()

        assert exc_info.value.status_code == 500
        assert page3 == {"cancelled": True, "completed": False}
