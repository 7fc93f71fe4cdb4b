from datetime import date
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from rental_ledger.api import deps
from rental_ledger.api.deps import CurrentUser
from rental_ledger.config import settings
from rental_ledger.models.enums import InvoiceState
from rental_ledger.services.invoice_service import InvoiceService
from rental_ledger.schemas.invoice import (
    InvoiceFilters,
    InvoiceGenerateRequest,
    InvoiceGenerateResult,
    InvoiceResponse,
    InvoiceStateOption,
    InvoiceVoidResult,
    MarkOverdueRequest,
    MarkOverdueResult,
)
from rental_ledger.schemas.responses import SuccessResponse, PaginatedResponse

router = APIRouter()


@router.post(
    "/generate",
    response_model=SuccessResponse[InvoiceGenerateResult],
    status_code=status.HTTP_201_CREATED,
)
async def generate_invoices(
    body: InvoiceGenerateRequest,
    current_user: CurrentUser = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Generate the monthly invoices for every active contract not yet billed.
    """
    generated = await InvoiceService.generate_monthly_invoices(
        db,
        year=body.year,
        month=body.month,
        issue_date=body.issue_date,
        due_date=body.due_date,
        actor_id=current_user.id,
    )
    return SuccessResponse(
        data=InvoiceGenerateResult(generated=generated),
        message=f"{generated} invoices generated",
    )


@router.post("/mark-overdue", response_model=SuccessResponse[MarkOverdueResult])
async def mark_overdue(
    body: Optional[MarkOverdueRequest] = None,
    current_user: CurrentUser = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Mark OPEN and PARTIAL invoices past their due date as OVERDUE.
    """
    as_of = (body.as_of if body else None) or date.today()
    updated = await InvoiceService.mark_overdue_invoices(db, as_of=as_of, actor_id=current_user.id)
    return SuccessResponse(data=MarkOverdueResult(updated=updated, as_of=as_of))


@router.get("/catalog/states", response_model=SuccessResponse[List[InvoiceStateOption]])
async def list_invoice_states(
    current_user: CurrentUser = Depends(deps.require_operator),
) -> Any:
    """
    Invoice state catalog.
    """
    return SuccessResponse(data=[InvoiceStateOption(code=state) for state in InvoiceService.list_states()])


@router.get("", response_model=PaginatedResponse[InvoiceResponse])
async def list_invoices(
    estado: Optional[InvoiceState] = None,
    contrato_id: Optional[UUID] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    List invoices, newest due date first.
    """
    filters = InvoiceFilters(
        state=estado,
        contract_id=contrato_id,
        due_from=fecha_desde,
        due_to=fecha_hasta,
    )
    views, total = await InvoiceService.list_invoices(db, filters, page=page, limit=limit)
    return PaginatedResponse.build(
        [InvoiceResponse.from_view(view) for view in views],
        page=page,
        limit=limit,
        total=total,
    )


@router.get("/{invoice_id}", response_model=SuccessResponse[InvoiceResponse])
async def get_invoice(
    invoice_id: UUID,
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Invoice detail with contract, property and tenant display fields.
    """
    view = await InvoiceService.get_invoice(db, invoice_id)
    return SuccessResponse(data=InvoiceResponse.from_view(view))


@router.patch("/{invoice_id}/void", response_model=SuccessResponse[InvoiceVoidResult])
async def void_invoice(
    invoice_id: UUID,
    current_user: CurrentUser = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Void an invoice. Existing allocations are not reversed.
    """
    invoice = await InvoiceService.void_invoice(db, invoice_id, actor_id=current_user.id)
    return SuccessResponse(data=InvoiceVoidResult.model_validate(invoice), message="Invoice voided")
