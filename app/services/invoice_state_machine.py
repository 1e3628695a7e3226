"""
Invoice Status State Machine

All invoice status changes are checked here before the matching backend
RPC is called. The backend remains the enforcing party; this module keeps
the API from issuing calls that can only fail.

Lifecycle:
    draft -> issued        (issue; locks further line edits)
    draft -> cancelled     (cancel, reason required)
    issued -> cancelled    (cancel, reason required)
    cancelled              (terminal)
"""

from typing import Dict, List, Optional

from fastapi import HTTPException


# =============================================================================
# STATUS DEFINITIONS
# =============================================================================

class InvoiceStatus:
    """Invoice status constants as stored by the backend."""
    DRAFT = "draft"
    ISSUED = "issued"
    CANCELLED = "cancelled"


# =============================================================================
# TRANSITION RULES
# =============================================================================

INVOICE_TRANSITIONS: Dict[str, List[str]] = {
    InvoiceStatus.DRAFT: [
        InvoiceStatus.ISSUED,
        InvoiceStatus.CANCELLED,
    ],
    InvoiceStatus.ISSUED: [
        InvoiceStatus.CANCELLED,
    ],
    InvoiceStatus.CANCELLED: [],  # Terminal
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (InvoiceStatus.DRAFT, InvoiceStatus.ISSUED): "Issue",
    (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED): "Cancel Draft",
    (InvoiceStatus.ISSUED, InvoiceStatus.CANCELLED): "Cancel Invoice",
}

# Transitions that need a cancellation reason
REASON_REQUIRED = {InvoiceStatus.CANCELLED}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def normalize_status(status: Optional[str]) -> str:
    """Backend rows occasionally come back upper-cased or empty."""
    if not status:
        return InvoiceStatus.DRAFT
    return status.strip().lower()


def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    allowed = INVOICE_TRANSITIONS.get(normalize_status(current_status), [])
    return normalize_status(new_status) in allowed


def get_allowed_transitions(current_status: str) -> List[str]:
    """Get list of statuses reachable from the current status."""
    return INVOICE_TRANSITIONS.get(normalize_status(current_status), [])


def get_transition_action(current_status: str, new_status: str) -> str:
    """Get human-readable action name for a transition."""
    key = (normalize_status(current_status), normalize_status(new_status))
    return TRANSITION_ACTIONS.get(key, f"{key[0]} -> {key[1]}")


def validate_transition(
    current_status: str,
    new_status: str,
    reason: Optional[str] = None,
) -> None:
    """
    Validate a status transition. Raises HTTPException if invalid.

    Unlike draft edits, a repeated transition (issued -> issued) is
    rejected: the backend RPCs are not idempotent.
    """
    current = normalize_status(current_status)
    target = normalize_status(new_status)

    if not can_transition(current, target):
        if is_terminal(current):
            raise HTTPException(
                status_code=400,
                detail=f"Invoice in '{current}' status cannot be modified. This is a terminal state."
            )
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change invoice from '{current}' to '{target}'. "
                   f"Allowed transitions: {', '.join(get_allowed_transitions(current))}"
        )

    if target in REASON_REQUIRED and not (reason or "").strip():
        raise HTTPException(
            status_code=400,
            detail="A reason is required to cancel an invoice."
        )


# =============================================================================
# STATUS CHECK HELPERS
# =============================================================================

def is_editable(status: Optional[str]) -> bool:
    """Lines and header fields can only change while the invoice is a draft."""
    return normalize_status(status) == InvoiceStatus.DRAFT


def is_terminal(status: Optional[str]) -> bool:
    """Is this a terminal (final) state?"""
    return not get_allowed_transitions(normalize_status(status))
