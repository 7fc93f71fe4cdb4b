from datetime import date
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from rental_ledger.api import deps
from rental_ledger.api.deps import CurrentUser
from rental_ledger.config import settings
from rental_ledger.services.allocation_service import AllocationService
from rental_ledger.services.payment_service import PaymentService
from rental_ledger.schemas.payment import (
    AllocationResponse,
    AllocationResult,
    ApplyPaymentRequest,
    PaymentCreate,
    PaymentFilters,
    PaymentMethodResponse,
    PaymentResponse,
    PaymentUpdate,
)
from rental_ledger.schemas.responses import SuccessResponse, PaginatedResponse

router = APIRouter()


@router.get("/catalog/methods", response_model=SuccessResponse[List[PaymentMethodResponse]])
async def list_payment_methods(
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Payment method catalog, ordered by name.
    """
    methods = await PaymentService.list_payment_methods(db)
    return SuccessResponse(data=[PaymentMethodResponse.model_validate(m) for m in methods])


@router.post("", response_model=SuccessResponse[PaymentResponse], status_code=status.HTTP_201_CREATED)
async def create_payment(
    payment_in: PaymentCreate,
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Register a payment. The full amount starts unapplied.
    """
    payment = await PaymentService.create_payment(db, payment_in, actor_id=current_user.id)
    return SuccessResponse(data=PaymentResponse.model_validate(payment), message="Payment registered")


@router.get("", response_model=PaginatedResponse[PaymentResponse])
async def list_payments(
    contrato_id: Optional[UUID] = None,
    forma_pago_id: Optional[int] = None,
    fecha_desde: Optional[date] = None,
    fecha_hasta: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    List payments, newest payment date first.
    """
    filters = PaymentFilters(
        contract_id=contrato_id,
        payment_method_id=forma_pago_id,
        date_from=fecha_desde,
        date_to=fecha_hasta,
    )
    payments, total = await PaymentService.list_payments(db, filters, page=page, limit=limit)
    return PaginatedResponse.build(
        [PaymentResponse.model_validate(p) for p in payments],
        page=page,
        limit=limit,
        total=total,
    )


@router.get("/{payment_id}", response_model=SuccessResponse[PaymentResponse])
async def get_payment(
    payment_id: UUID,
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    payment = await PaymentService.get_payment(db, payment_id)
    return SuccessResponse(data=PaymentResponse.model_validate(payment))


@router.put("/{payment_id}", response_model=SuccessResponse[PaymentResponse])
async def update_payment(
    payment_id: UUID,
    payment_update: PaymentUpdate,
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Update method, date, reference or notes. The amount can only change
    while the payment has no active allocations.
    """
    payment = await PaymentService.update_payment(db, payment_id, payment_update, actor_id=current_user.id)
    return SuccessResponse(data=PaymentResponse.model_validate(payment), message="Payment updated")


@router.delete("/{payment_id}", response_model=SuccessResponse)
async def delete_payment(
    payment_id: UUID,
    current_user: CurrentUser = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Delete a payment that has never been allocated.
    """
    await PaymentService.delete_payment(db, payment_id, actor_id=current_user.id)
    return SuccessResponse(data={"id": str(payment_id)}, message="Payment deleted")


@router.post(
    "/{payment_id}/apply",
    response_model=SuccessResponse[AllocationResult],
    status_code=status.HTTP_201_CREATED,
)
async def apply_payment(
    payment_id: UUID,
    body: ApplyPaymentRequest,
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Apply part or all of the payment's unapplied balance to an invoice.
    """
    outcome = await AllocationService.apply_payment(
        db,
        payment_id=payment_id,
        invoice_id=body.invoice_id,
        applied_amount=body.applied_amount,
        actor_id=current_user.id,
    )
    return SuccessResponse(data=AllocationResult.from_outcome(outcome), message="Payment applied")


@router.post(
    "/{payment_id}/allocations/{allocation_id}/reverse",
    response_model=SuccessResponse[AllocationResult],
)
async def reverse_allocation(
    payment_id: UUID,
    allocation_id: UUID,
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Reverse one allocation, restoring the payment and invoice balances.
    """
    outcome = await AllocationService.reverse_allocation(
        db,
        payment_id=payment_id,
        allocation_id=allocation_id,
        actor_id=current_user.id,
    )
    return SuccessResponse(data=AllocationResult.from_outcome(outcome), message="Allocation reversed")


@router.get("/{payment_id}/allocations", response_model=SuccessResponse[List[AllocationResponse]])
async def list_allocations(
    payment_id: UUID,
    current_user: CurrentUser = Depends(deps.require_operator),
    db: AsyncSession = Depends(deps.get_db)
) -> Any:
    """
    Allocation history of a payment, reversed ones included.
    """
    rows = await AllocationService.list_allocations(db, payment_id)
    allocations = []
    for allocation, invoice_state in rows:
        item = AllocationResponse.model_validate(allocation)
        item.invoice_state = invoice_state
        allocations.append(item)
    return SuccessResponse(data=allocations)
