"""
Signed-in user's company and role.

Access tokens are issued by the managed auth provider; this module only
verifies them and then asks the backend for the user's active company
membership. Nothing here creates sessions.
"""
from dataclasses import dataclass
from typing import Any, Optional
import logging

from jose import JWTError, jwt

from app.config import settings
from app.core.backend import BackendError, SupabaseBackend

logger = logging.getLogger(__name__)


FINANCE_READER_ROLES = {"owner", "admin", "finance"}
FINANCE_WRITER_ROLES = {"owner", "admin", "finance"}
HR_ROLES = {"owner", "admin", "hr"}


@dataclass(frozen=True)
class CompanyContext:
    """Who is calling, and on behalf of which company."""
    session: str  # Raw access token, forwarded to the backend for row-level security
    email: Optional[str]
    user_id: str
    company_id: Optional[str]
    role_key: Optional[str]
    membership_error: Optional[str] = None

    @property
    def has_company(self) -> bool:
        return self.company_id is not None

    def can_read_finance(self) -> bool:
        return self.role_key in FINANCE_READER_ROLES

    def can_write_finance(self) -> bool:
        return self.role_key in FINANCE_WRITER_ROLES

    def is_hr(self) -> bool:
        return self.role_key in HR_ROLES


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate an auth provider access token.

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.ALGORITHM],
            audience=settings.SUPABASE_JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.warning(f"Access token rejected: {e}")
        return None


async def resolve_company_context(
    backend: SupabaseBackend,
    token: str,
) -> Optional[CompanyContext]:
    """
    Build the caller's context from an access token.

    Returns None when the token is invalid. A valid token without an active
    membership yields a context with ``company_id=None`` and
    ``membership_error`` set.
    """
    payload = decode_access_token(token)
    if payload is None or not payload.get("sub"):
        return None

    user_id = payload["sub"]
    email = payload.get("email")
    user_backend = backend.for_token(token)

    try:
        membership = await user_backend.select(
            "erp_company_users",
            columns="company_id, role_key, is_active",
            filters={"user_id": user_id, "is_active": True},
            single=True,
        )
    except BackendError as e:
        logger.error(f"Failed to load ERP membership for {user_id}: {e.message}")
        return CompanyContext(
            session=token,
            email=email,
            user_id=user_id,
            company_id=None,
            role_key=None,
            membership_error=e.message,
        )

    if not membership:
        return CompanyContext(
            session=token,
            email=email,
            user_id=user_id,
            company_id=None,
            role_key=None,
            membership_error="No active company membership found for this user.",
        )

    return CompanyContext(
        session=token,
        email=email,
        user_id=user_id,
        company_id=membership.get("company_id"),
        role_key=membership.get("role_key"),
    )
