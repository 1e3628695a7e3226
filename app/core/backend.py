"""
Managed backend client (Supabase PostgREST).

Row access goes through ``/rest/v1/<table>`` and stored procedures through
``/rest/v1/rpc/<function>``. Row-level security is applied by the backend
using the caller's access token, so every request-scoped client is bound
to the signed-in user's token via ``for_token``.

One ``SupabaseBackend`` is created per application (see ``app.main``) and
handed to request handlers through ``app.api.deps.get_backend``; tests
replace it with an in-memory fake.
"""
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from uuid import UUID

import httpx

from app.config import Settings

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """A remote call to the managed backend failed."""
    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict = None,
        status_code: int = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)


class BackendPayloadError(BackendError):
    """The backend answered, but the payload did not match the expected shape."""
    pass


class CustomJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, datetime, UUID and other types."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)


def custom_json_dumps(obj) -> str:
    return json.dumps(obj, cls=CustomJSONEncoder)


FilterValue = Union[Any, Tuple[str, Any]]


def _format_filter(value: FilterValue) -> str:
    """``x`` -> ``eq.x``; ``("gte", x)`` -> ``gte.x``; booleans and None as PostgREST spells them."""
    if isinstance(value, tuple):
        op, operand = value
    else:
        op, operand = "eq", value

    if operand is None:
        return "is.null"
    if isinstance(operand, bool):
        operand = "true" if operand else "false"
    return f"{op}.{operand}"


class SupabaseBackend:
    """Async client for the managed backend's REST and RPC surface."""

    REST_PATH = "/rest/v1"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseBackend":
        return cls(
            base_url=settings.SUPABASE_URL,
            api_key=settings.SUPABASE_ANON_KEY or settings.SUPABASE_SERVICE_KEY,
            timeout=settings.BACKEND_TIMEOUT_SECONDS,
        )

    def for_token(self, access_token: str) -> "SupabaseBackend":
        """Client sharing this connection pool that acts as the given user."""
        return SupabaseBackend(
            base_url=self.base_url,
            api_key=self.api_key,
            access_token=access_token,
            client=self._client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Sequence[Tuple[str, str]]] = None,
        body: Any = None,
    ) -> Any:
        url = f"{self.base_url}{self.REST_PATH}{path}"
        content = custom_json_dumps(body) if body is not None else None
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                content=content,
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._error_from_response(e.response)
        except httpx.RequestError as e:
            logger.error(f"Backend request {method} {path} failed: {e}")
            raise BackendError(message=f"Backend request failed: {str(e)}")

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise BackendPayloadError(
                message="Backend returned a non-JSON response",
                details={"response": response.text[:500]},
                status_code=response.status_code,
            )

    @staticmethod
    def _error_from_response(response: httpx.Response) -> BackendError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = body.get("message") or f"Backend HTTP error: {response.status_code}"
        logger.error(
            f"Backend error {response.status_code} on {response.request.url.path}: "
            f"{message} (code={body.get('code')})"
        )
        return BackendError(
            message=message,
            error_code=body.get("code"),
            details={k: body[k] for k in ("details", "hint") if body.get(k)},
            status_code=response.status_code,
        )

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Invoke a stored procedure and return its decoded result (None for void)."""
        logger.debug(f"RPC {function}")
        return await self._request("POST", f"/rpc/{function}", body=params or {})

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Mapping[str, FilterValue]] = None,
        order: Optional[Iterable[str]] = None,
        limit: Optional[int] = None,
        single: bool = False,
    ) -> Any:
        """
        Read rows from a table.

        ``order`` entries use PostgREST syntax (``"invoice_date.desc"``); an
        entry of the form ``"erp_invoice_lines:line_no.asc"`` orders an
        embedded resource. With ``single=True`` the first row or None is
        returned instead of a list.
        """
        params: List[Tuple[str, str]] = [("select", columns)]
        for column, value in (filters or {}).items():
            # A list applies several conditions to one column (date ranges)
            conditions = value if isinstance(value, list) else [value]
            for condition in conditions:
                params.append((column, _format_filter(condition)))

        top_level_order = []
        for entry in order or []:
            if ":" in entry:
                resource, clause = entry.split(":", 1)
                params.append((f"{resource}.order", clause))
            else:
                top_level_order.append(entry)
        if top_level_order:
            params.append(("order", ",".join(top_level_order)))

        if single:
            limit = 1
        if limit is not None:
            params.append(("limit", str(limit)))

        rows = await self._request("GET", f"/{table}", params=params)
        if rows is None:
            rows = []
        if not isinstance(rows, list):
            raise BackendPayloadError(
                message=f"Expected a row list from '{table}'",
                details={"response": rows},
            )
        if single:
            return rows[0] if rows else None
        return rows
