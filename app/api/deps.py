from typing import Annotated, Callable
import logging

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.backend import BackendError, BackendPayloadError, SupabaseBackend
from app.core.company_context import CompanyContext, resolve_company_context
from app.services.invoice_service import InvoiceService
from app.services.settlement_service import SettlementService


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


PASS_THROUGH_STATUS_CODES = {400, 403, 404, 409, 422}


def backend_http_exception(error: BackendError, action: str) -> HTTPException:
    """Translate a failed remote call into the HTTP error returned to the client."""
    status_code = status.HTTP_502_BAD_GATEWAY
    if not isinstance(error, BackendPayloadError) and error.status_code in PASS_THROUGH_STATUS_CODES:
        status_code = error.status_code
    return HTTPException(
        status_code=status_code,
        detail=f"{action} failed: {error.message}",
        headers={"X-Error-Code": error.error_code or "BACKEND_ERROR"},
    )


def get_backend(request: Request) -> SupabaseBackend:
    """The application-wide backend client created in the lifespan handler."""
    return request.app.state.backend


async def get_current_context(
    backend: Annotated[SupabaseBackend, Depends(get_backend)],
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> CompanyContext:
    """
    Dependency to get the signed-in user's company context.
    Validates the access token and loads the active company membership.
    """
    context = await resolve_company_context(backend, credentials.credentials)
    if context is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return context


async def get_company_context(
    context: Annotated[CompanyContext, Depends(get_current_context)],
) -> CompanyContext:
    """Like ``get_current_context`` but the user must belong to a company."""
    if not context.has_company:
        logger.warning(f"User {context.user_id} has no company: {context.membership_error}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=context.membership_error or "No active company membership found for this user.",
        )
    return context


def require_access(check: Callable[[CompanyContext], bool], description: str):
    """
    Dependency factory to require a role-based capability.

    Usage:
        @router.post("/", dependencies=[Depends(require_access(CompanyContext.can_write_finance, "finance write"))])
        async def create_invoice():
            ...
    """
    async def access_dependency(
        context: Annotated[CompanyContext, Depends(get_company_context)],
    ) -> CompanyContext:
        if not check(context):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied. Required: {description}",
            )
        return context

    return access_dependency


require_finance_read = require_access(CompanyContext.can_read_finance, "finance read")
require_finance_write = require_access(CompanyContext.can_write_finance, "finance write")
require_hr = require_access(CompanyContext.is_hr, "hr")


def get_invoice_service(
    backend: Annotated[SupabaseBackend, Depends(get_backend)],
    context: Annotated[CompanyContext, Depends(require_finance_read)],
) -> InvoiceService:
    return InvoiceService(backend.for_token(context.session), context)


def get_settlement_service(
    backend: Annotated[SupabaseBackend, Depends(get_backend)],
    context: Annotated[CompanyContext, Depends(require_hr)],
) -> SettlementService:
    return SettlementService(backend.for_token(context.session), context)


# Type aliases for cleaner endpoint signatures
CurrentContext = Annotated[CompanyContext, Depends(get_current_context)]
Invoices = Annotated[InvoiceService, Depends(get_invoice_service)]
Settlements = Annotated[SettlementService, Depends(get_settlement_service)]
