"""API endpoints for HR final settlements."""
from fastapi import APIRouter, status

from app.api.deps import Settlements, backend_http_exception
from app.core.backend import BackendError
from app.schemas.settlement import SettlementResponse, SettlementSaveRequest


router = APIRouter()


@router.post("", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_settlement(request: SettlementSaveRequest, service: Settlements):
    """Start a settlement for an employee exit."""
    try:
        payload = await service.save(None, request)
    except BackendError as e:
        raise backend_http_exception(e, "Saving settlement")
    return service.build_response(payload)


@router.get("/{settlement_id}", response_model=SettlementResponse)
async def get_settlement(settlement_id: str, service: Settlements):
    try:
        return await service.get_response(settlement_id)
    except BackendError as e:
        raise backend_http_exception(e, "Loading settlement")


@router.put("/{settlement_id}", response_model=SettlementResponse)
async def save_settlement(
    settlement_id: str,
    request: SettlementSaveRequest,
    service: Settlements,
):
    """Save header notes, lines and removed lines of a draft settlement."""
    try:
        payload = await service.save(settlement_id, request)
    except BackendError as e:
        raise backend_http_exception(e, "Saving settlement")
    return service.build_response(payload)


@router.post("/{settlement_id}/finalize", response_model=SettlementResponse)
async def finalize_settlement(settlement_id: str, service: Settlements):
    try:
        payload = await service.finalize(settlement_id)
    except BackendError as e:
        raise backend_http_exception(e, "Finalizing settlement")
    return service.build_response(payload)
