"""Shared fixtures: settings, an in-memory backend and an API client."""
import os
import time
from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional

# Settings are read once at import time
os.environ.setdefault("SUPABASE_URL", "https://erp-test.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "anon-test-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-invoicing")

import httpx
import pytest
from jose import jwt

from app.config import settings


USER_ID = "11111111-1111-1111-1111-111111111111"
COMPANY_ID = "22222222-2222-2222-2222-222222222222"
INVOICE_ID = "33333333-3333-3333-3333-333333333333"
SETTLEMENT_ID = "44444444-4444-4444-4444-444444444444"
EXIT_ID = "55555555-5555-5555-5555-555555555555"


def make_token(user_id: str = USER_ID, email: str = "finance@example.com", **claims) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "aud": settings.SUPABASE_JWT_AUDIENCE,
        "exp": int(time.time()) + 3600,
    }
    payload.update(claims)
    return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm=settings.ALGORITHM)


def auth_headers(token: Optional[str] = None) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token or make_token()}"}


class FakeBackend:
    """
    Stand-in for SupabaseBackend.

    ``tables`` holds rows per table; ``rpc_handlers`` maps a function name
    to a callable taking the params dict (it may raise). Every call is
    recorded in order.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.rpc_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.rpc_calls: List[tuple] = []
        self.select_calls: List[Dict[str, Any]] = []
        self.tokens: List[str] = []

    def for_token(self, access_token: str) -> "FakeBackend":
        self.tokens.append(access_token)
        return self

    async def aclose(self) -> None:
        pass

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        params = params or {}
        self.rpc_calls.append((function, params))
        handler = self.rpc_handlers.get(function)
        if handler is None:
            return None
        return handler(params)

    async def select(self, table, columns="*", filters=None, order=None, limit=None, single=False):
        self.select_calls.append({"table": table, "filters": filters or {}, "order": order, "limit": limit})
        rows = [
            deepcopy(row) for row in self.tables.get(table, [])
            if _matches(row, filters or {})
        ]
        if single:
            return rows[0] if rows else None
        return rows[:limit] if limit else rows

    @property
    def rpc_names(self) -> List[str]:
        return [name for name, _ in self.rpc_calls]


def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for column, value in filters.items():
        if isinstance(value, (list, tuple)):
            # Range conditions are not evaluated by the fake
            continue
        if column in row and str(row[column]) != str(value):
            return False
    return True


def make_line_row(line_no: int = 1, **overrides) -> Dict[str, Any]:
    row = {
        "id": f"66666666-6666-6666-6666-00000000000{line_no}",
        "line_no": line_no,
        "item_type": "manual",
        "variant_id": None,
        "sku": f"SKU-{line_no}",
        "title": "Water purifier service kit",
        "hsn": "8421",
        "qty": 3,
        "unit_rate": "100.00",
        "discount_percent": 10,
        "tax_percent": 18,
    }
    row.update(overrides)
    return row


def make_invoice_row(status: str = "draft", lines: Optional[List[Dict[str, Any]]] = None, **overrides) -> Dict[str, Any]:
    row = {
        "id": INVOICE_ID,
        "doc_no": "INV/2024/0001",
        "status": status,
        "invoice_date": "2024-04-15",
        "customer_name": "Acme Traders",
        "customer_gstin": "27AAPFU0939F1ZV",
        "place_of_supply": "Maharashtra",
        "place_of_supply_state_code": "27",
        "billing_address_line1": "12 MG Road",
        "billing_city": "Pune",
        "billing_state": "Maharashtra",
        "billing_pincode": "411001",
        "currency": "INR",
        "is_inter_state": None,
        "erp_invoice_lines": lines if lines is not None else [make_line_row(1)],
    }
    row.update(overrides)
    return row


def finance_membership(role_key: str = "finance") -> Dict[str, Any]:
    return {"user_id": USER_ID, "company_id": COMPANY_ID, "role_key": role_key, "is_active": True}


@pytest.fixture
def backend() -> FakeBackend:
    fake = FakeBackend()
    fake.tables["erp_company_users"] = [finance_membership()]
    fake.rpc_handlers["erp_company_gst_profile"] = lambda params: {"gst_state_code": "27"}
    return fake


@pytest.fixture
async def client(backend):
    from app.api.deps import get_backend
    from app.main import app

    app.dependency_overrides[get_backend] = lambda: backend
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()
