"""Allocation Engine

The only code path allowed to move invoice and payment balances. Every
apply/reverse runs its read-validate-write sequence in one transaction with
the affected rows locked, payment before invoice.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, NamedTuple, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_ledger.config import settings
from rental_ledger.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    ALREADY_REVERSED,
    CONTRACT_MISMATCH,
    EXCEEDS_INVOICE_BALANCE,
    INSUFFICIENT_BALANCE,
    INVALID_INVOICE_STATE,
)
from rental_ledger.core.logging import get_logger
from rental_ledger.database import atomic
from rental_ledger.models.enums import APPLICABLE_INVOICE_STATES, InvoiceState
from rental_ledger.models.invoice import Invoice
from rental_ledger.models.payment import Payment, PaymentAllocation
from rental_ledger.services.invoice_service import derive_invoice_state

logger = get_logger(__name__)


class AllocationOutcome(NamedTuple):
    """Allocation together with the rows whose balances it moved"""
    allocation: PaymentAllocation
    payment: Payment
    invoice: Invoice


def check_allocation_contracts(payment: Payment, invoice: Invoice, enforce: bool) -> bool:
    """
    Decide whether ``payment`` may be allocated to ``invoice`` across contracts.

    Returns True when both belong to the same contract. A mismatch is logged
    and allowed unless ``enforce`` is set, in which case it is rejected.

    Raises:
        ConflictError: On mismatch with ``enforce`` set
    """
    if payment.contract_id == invoice.contract_id:
        return True

    extra = {
        "payment_id": str(payment.id),
        "invoice_id": str(invoice.id),
        "payment_contract_id": str(payment.contract_id),
        "invoice_contract_id": str(invoice.contract_id),
    }
    if enforce:
        logger.warning("Cross-contract allocation rejected", extra=extra)
        raise ConflictError(
            "Payment and invoice belong to different contracts",
            code=CONTRACT_MISMATCH,
        )

    logger.warning("Cross-contract allocation", extra=extra)
    return False


async def _lock(db: AsyncSession, model, row_id: UUID):
    result = await db.execute(
        select(model)
        .where(model.id == row_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


class AllocationService:
    """Service layer for applying payments to invoices and reversing them"""

    @staticmethod
    async def apply_payment(
        db: AsyncSession,
        payment_id: UUID,
        invoice_id: UUID,
        applied_amount: Decimal,
        actor_id: Optional[UUID] = None,
        enforce_same_contract: Optional[bool] = None,
    ) -> AllocationOutcome:
        """
        Allocate ``applied_amount`` of a payment to an invoice.

        Checks, in order: the payment has enough unapplied balance, the
        invoice accepts payments (not PAID or VOID), the amount does not
        exceed the invoice's outstanding balance. Any failure rolls the
        transaction back with nothing changed.

        Raises:
            ValidationError: Non-positive amount
            NotFoundError: Unknown payment or invoice
            ConflictError: A balance or state rule was violated
        """
        if applied_amount is None or applied_amount <= 0:
            raise ValidationError("applied_amount must be greater than 0")
        if enforce_same_contract is None:
            enforce_same_contract = settings.ENFORCE_SAME_CONTRACT_ALLOCATION

        log_extra = {
            "payment_id": str(payment_id),
            "invoice_id": str(invoice_id),
            "applied_amount": str(applied_amount),
            "actor_id": str(actor_id) if actor_id else None,
        }

        async with atomic(db):
            payment = await _lock(db, Payment, payment_id)
            if not payment:
                raise NotFoundError("Payment not found")
            if applied_amount > payment.unapplied_balance:
                logger.warning("Allocation rejected: insufficient unapplied balance", extra=log_extra)
                raise ConflictError(
                    f"Applied amount {applied_amount} exceeds the payment's unapplied balance "
                    f"{payment.unapplied_balance}",
                    code=INSUFFICIENT_BALANCE,
                )

            invoice = await _lock(db, Invoice, invoice_id)
            if not invoice:
                raise NotFoundError("Invoice not found")
            if invoice.state not in APPLICABLE_INVOICE_STATES:
                logger.warning("Allocation rejected: invoice state", extra=log_extra)
                raise ConflictError(
                    f"Invoice in state {invoice.state.value} does not accept payments",
                    code=INVALID_INVOICE_STATE,
                )
            if applied_amount > invoice.outstanding_balance:
                logger.warning("Allocation rejected: exceeds invoice balance", extra=log_extra)
                raise ConflictError(
                    f"Applied amount {applied_amount} exceeds the invoice's outstanding balance "
                    f"{invoice.outstanding_balance}",
                    code=EXCEEDS_INVOICE_BALANCE,
                )

            check_allocation_contracts(payment, invoice, enforce_same_contract)

            allocation = PaymentAllocation(
                payment_id=payment.id,
                invoice_id=invoice.id,
                applied_amount=applied_amount,
                created_by=actor_id,
            )
            db.add(allocation)

            payment.unapplied_balance = payment.unapplied_balance - applied_amount
            invoice.outstanding_balance = invoice.outstanding_balance - applied_amount
            invoice.state = InvoiceState.PAID if invoice.outstanding_balance <= 0 else InvoiceState.PARTIAL
            await db.flush()

        logger.info(
            "Payment applied",
            extra={
                **log_extra,
                "allocation_id": str(allocation.id),
                "invoice_state": invoice.state.value,
            },
        )
        return AllocationOutcome(allocation, payment, invoice)

    @staticmethod
    async def reverse_allocation(
        db: AsyncSession,
        payment_id: UUID,
        allocation_id: UUID,
        actor_id: Optional[UUID] = None,
    ) -> AllocationOutcome:
        """
        Reverse one allocation, restoring both balances.

        The allocation row is kept and stamped with ``reversed_at``. Reversing
        it a second time is a ConflictError. An OVERDUE invoice stays OVERDUE
        and a VOID invoice keeps its zero balance; the payment side is always
        restored.

        Any other invoice state is derived from the restored balance alone, so
        a PAID invoice already past its due date drops to OPEN or PARTIAL, not
        OVERDUE, until the next ``mark_overdue_invoices`` run picks it up.
        """
        log_extra = {
            "payment_id": str(payment_id),
            "allocation_id": str(allocation_id),
            "actor_id": str(actor_id) if actor_id else None,
        }

        async with atomic(db):
            result = await db.execute(
                select(PaymentAllocation)
                .where(
                    PaymentAllocation.id == allocation_id,
                    PaymentAllocation.payment_id == payment_id,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            allocation = result.scalar_one_or_none()
            if not allocation:
                raise NotFoundError("Allocation not found for this payment")
            if allocation.reversed_at is not None:
                logger.warning("Reversal rejected: already reversed", extra=log_extra)
                raise ConflictError("Allocation is already reversed", code=ALREADY_REVERSED)

            payment = await _lock(db, Payment, allocation.payment_id)
            invoice = await _lock(db, Invoice, allocation.invoice_id)

            amount = allocation.applied_amount
            allocation.reversed_at = datetime.utcnow()
            allocation.reversed_by = actor_id
            payment.unapplied_balance = payment.unapplied_balance + amount

            if invoice.state != InvoiceState.VOID:
                invoice.outstanding_balance = invoice.outstanding_balance + amount
                if invoice.state != InvoiceState.OVERDUE:
                    invoice.state = derive_invoice_state(invoice.total_amount, invoice.outstanding_balance)
            await db.flush()

        logger.info(
            "Allocation reversed",
            extra={
                **log_extra,
                "invoice_id": str(invoice.id),
                "amount": str(amount),
                "invoice_state": invoice.state.value,
            },
        )
        return AllocationOutcome(allocation, payment, invoice)

    @staticmethod
    async def list_allocations(
        db: AsyncSession,
        payment_id: UUID,
    ) -> List[Tuple[PaymentAllocation, InvoiceState]]:
        """All allocations of a payment, reversed included, newest first"""
        payment = await db.get(Payment, payment_id)
        if not payment:
            raise NotFoundError("Payment not found")

        result = await db.execute(
            select(PaymentAllocation, Invoice.state)
            .join(Invoice, PaymentAllocation.invoice_id == Invoice.id)
            .where(PaymentAllocation.payment_id == payment_id)
            .order_by(PaymentAllocation.created_at.desc(), PaymentAllocation.id.desc())
        )
        return [(allocation, state) for allocation, state in result.all()]
