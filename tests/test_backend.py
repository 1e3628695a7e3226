import json
from decimal import Decimal
from uuid import UUID

import httpx
import pytest

from app.core.backend import BackendError, BackendPayloadError, SupabaseBackend


BASE_URL = "https://erp-test.supabase.co"


def make_backend(handler, access_token=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    backend = SupabaseBackend(base_url=BASE_URL + "/", api_key="anon-key", client=client)
    if access_token:
        return backend.for_token(access_token)
    return backend


async def test_rpc_posts_encoded_params():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["headers"] = request.headers
        return httpx.Response(200, json="77777777-7777-7777-7777-777777777777")

    backend = make_backend(handler, access_token="user-token")
    result = await backend.rpc("erp_invoice_upsert", {
        "p_invoice_id": UUID("33333333-3333-3333-3333-333333333333"),
        "p_amount": Decimal("12.50"),
    })

    assert result == "77777777-7777-7777-7777-777777777777"
    assert seen["path"] == "/rest/v1/rpc/erp_invoice_upsert"
    assert seen["body"] == {"p_invoice_id": "33333333-3333-3333-3333-333333333333", "p_amount": 12.5}
    assert seen["headers"]["apikey"] == "anon-key"
    assert seen["headers"]["authorization"] == "Bearer user-token"


async def test_anonymous_calls_use_api_key():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer anon-key"
        return httpx.Response(204)

    assert await make_backend(handler).rpc("erp_invoice_recompute_totals") is None


async def test_select_builds_postgrest_query():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = request.url.params
        return httpx.Response(200, json=[{"id": 1}, {"id": 2}])

    rows = await make_backend(handler).select(
        "erp_invoices",
        columns="id, status",
        filters={
            "status": "draft",
            "is_active": True,
            "cancelled_at": None,
            "invoice_date": [("gte", "2024-04-01"), ("lte", "2024-04-30")],
        },
        order=["invoice_date.desc", "created_at.desc", "erp_invoice_lines:line_no.asc"],
        limit=50,
    )

    params = seen["params"]
    assert rows == [{"id": 1}, {"id": 2}]
    assert seen["path"] == "/rest/v1/erp_invoices"
    assert params["select"] == "id, status"
    assert params["status"] == "eq.draft"
    assert params["is_active"] == "eq.true"
    assert params["cancelled_at"] == "is.null"
    assert params.get_list("invoice_date") == ["gte.2024-04-01", "lte.2024-04-30"]
    assert params["order"] == "invoice_date.desc,created_at.desc"
    assert params["erp_invoice_lines.order"] == "line_no.asc"
    assert params["limit"] == "50"


async def test_select_single():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["limit"] == "1"
        return httpx.Response(200, json=[])

    assert await make_backend(handler).select("erp_invoices", single=True) is None


async def test_select_rejects_non_list():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": 1})

    with pytest.raises(BackendPayloadError):
        await make_backend(handler).select("erp_invoices")


async def test_http_error_carries_backend_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={
            "message": "Invoice is not in draft status",
            "code": "P0001",
            "hint": "Reload the invoice",
        })

    with pytest.raises(BackendError) as exc_info:
        await make_backend(handler).rpc("erp_invoice_issue", {"p_invoice_id": "x"})

    error = exc_info.value
    assert error.message == "Invoice is not in draft status"
    assert error.error_code == "P0001"
    assert error.status_code == 400
    assert error.details == {"hint": "Reload the invoice"}


async def test_http_error_without_json_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream unavailable")

    with pytest.raises(BackendError) as exc_info:
        await make_backend(handler).rpc("erp_invoice_issue")
    assert exc_info.value.message == "Backend HTTP error: 503"


async def test_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BackendError) as exc_info:
        await make_backend(handler).rpc("erp_invoice_issue")
    assert "connection refused" in exc_info.value.message


async def test_non_json_success_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    with pytest.raises(BackendPayloadError):
        await make_backend(handler).rpc("erp_invoice_issue")


async def test_shared_client_is_not_closed_by_token_clients():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(204)))
    backend = SupabaseBackend(base_url=BASE_URL, api_key="anon-key", client=client)

    await backend.for_token("user-token").aclose()
    await backend.aclose()

    assert not client.is_closed
    await client.aclose()
