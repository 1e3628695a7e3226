from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Finance
    invoices,
    # HR
    final_settlements,
    # Calculators
    calculator,
)

api_router = APIRouter(prefix="/api/v1")


# ==================== Finance ====================
api_router.include_router(
    invoices.router,
    prefix="/invoices",
    tags=["Invoices"]
)

# ==================== HR ====================
api_router.include_router(
    final_settlements.router,
    prefix="/final-settlements",
    tags=["Final Settlements"]
)

# ==================== Calculators ====================
api_router.include_router(
    calculator.router,
    prefix="/calculator",
    tags=["Calculators"]
)
