"""API V1 Router"""

from fastapi import APIRouter

# Import endpoint routers
from rental_ledger.api.v1.endpoints import invoices, payments, reports

# Create API v1 router
api_router = APIRouter()

# Include endpoint routers with prefixes and tags
api_router.include_router(invoices.router, prefix="/invoices", tags=["Invoices"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
api_router.include_router(reports.router, prefix="/reports", tags=["Reports"])
