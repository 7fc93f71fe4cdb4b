from typing import Any, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from rental_ledger.api import deps
from rental_ledger.api.deps import CurrentUser
from rental_ledger.services.invoice_service import InvoiceService
from rental_ledger.schemas.report import ReceivablesReport
from rental_ledger.schemas.responses import SuccessResponse

router = APIRouter()


@router.get("/receivables", response_model=SuccessResponse[ReceivablesReport])
async def receivables_report(
    contrato_id: Optional[UUID] = None,
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Outstanding balance per contract, largest first, with the overdue invoice count.
    """
    rows = await InvoiceService.receivables_summary(db, contract_id=contrato_id)
    return SuccessResponse(data=ReceivablesReport.from_rows(rows))
