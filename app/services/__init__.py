# Services module
from app.services.invoice_service import InvoiceService
from app.services.settlement_service import SettlementService

__all__ = [
    "InvoiceService",
    "SettlementService",
]
