from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_ledger.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    CONTRACT_CANCELLED,
    PAYMENT_HAS_ALLOCATIONS,
)
from rental_ledger.core.logging import get_logger
from rental_ledger.database import atomic
from rental_ledger.models.contract import Contract, PaymentMethod
from rental_ledger.models.enums import ContractState
from rental_ledger.models.payment import Payment, PaymentAllocation
from rental_ledger.schemas.payment import PaymentCreate, PaymentFilters, PaymentUpdate
from rental_ledger.services.query import date_range_conditions, fetch_page, validate_page

logger = get_logger(__name__)

# Columns that cannot be cleared through an update
_REQUIRED_FIELDS = ("payment_method_id", "payment_date", "amount")


class PaymentService:
    """Service layer for payment registration and maintenance"""

    @staticmethod
    async def _get_payment_method(db: AsyncSession, method_id: int) -> PaymentMethod:
        method = await db.get(PaymentMethod, method_id)
        if not method:
            raise NotFoundError("Payment method not found")
        return method

    @staticmethod
    async def _lock_payment(db: AsyncSession, payment_id: UUID) -> Payment:
        result = await db.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    @staticmethod
    async def get_payment(db: AsyncSession, payment_id: UUID) -> Payment:
        result = await db.execute(select(Payment).where(Payment.id == payment_id))
        payment = result.scalar_one_or_none()
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    @staticmethod
    async def list_payments(
        db: AsyncSession,
        filters: PaymentFilters,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Payment], int]:
        """List payments newest payment date first, id as tie-break."""
        validate_page(page, limit)
        conditions = date_range_conditions(Payment.payment_date, filters.date_from, filters.date_to)
        if filters.contract_id:
            conditions.append(Payment.contract_id == filters.contract_id)
        if filters.payment_method_id:
            conditions.append(Payment.payment_method_id == filters.payment_method_id)

        stmt = (
            select(Payment)
            .where(*conditions)
            .order_by(Payment.payment_date.desc(), Payment.id.desc())
        )
        rows, total = await fetch_page(db, stmt, page, limit)
        return [row[0] for row in rows], total

    @staticmethod
    async def list_payment_methods(db: AsyncSession) -> List[PaymentMethod]:
        result = await db.execute(select(PaymentMethod).order_by(PaymentMethod.name))
        return list(result.scalars().all())

    @staticmethod
    async def create_payment(
        db: AsyncSession,
        payment_in: PaymentCreate,
        actor_id: Optional[UUID] = None,
    ) -> Payment:
        """
        Register a payment against a contract.

        The whole amount starts unapplied; allocation is a separate step.

        Raises:
            NotFoundError: Unknown contract or payment method
            ConflictError: Contract is CANCELLED
        """
        async with atomic(db):
            contract = await db.get(Contract, payment_in.contract_id)
            if not contract:
                raise NotFoundError("Contract not found")
            if contract.state == ContractState.CANCELLED:
                logger.warning(
                    "Payment rejected for cancelled contract",
                    extra={"contract_id": str(contract.id)},
                )
                raise ConflictError(
                    "Payments cannot be registered for a cancelled contract",
                    code=CONTRACT_CANCELLED,
                )
            await PaymentService._get_payment_method(db, payment_in.payment_method_id)

            payment = Payment(
                contract_id=payment_in.contract_id,
                payment_method_id=payment_in.payment_method_id,
                payment_date=payment_in.payment_date,
                reference=payment_in.reference,
                amount=payment_in.amount,
                unapplied_balance=payment_in.amount,
                notes=payment_in.notes,
                created_by=actor_id,
            )
            db.add(payment)
            await db.flush()

        logger.info(
            "Payment registered",
            extra={
                "payment_id": str(payment.id),
                "contract_id": str(payment.contract_id),
                "amount": str(payment.amount),
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
        return payment

    @staticmethod
    async def update_payment(
        db: AsyncSession,
        payment_id: UUID,
        payment_update: PaymentUpdate,
        actor_id: Optional[UUID] = None,
    ) -> Payment:
        """
        Update payment fields.

        Method, date, reference and notes may change freely. The amount may
        only change while no active allocation draws on the payment; the
        unapplied balance is then reset to the new amount.
        """
        update_data = payment_update.model_dump(exclude_unset=True)

        for field in _REQUIRED_FIELDS:
            if field in update_data and update_data[field] is None:
                raise ValidationError(f"{field} cannot be null")

        async with atomic(db):
            payment = await PaymentService._lock_payment(db, payment_id)
            if not update_data:
                return payment

            if "payment_method_id" in update_data:
                await PaymentService._get_payment_method(db, update_data["payment_method_id"])

            new_amount = update_data.pop("amount", None)
            if new_amount is not None and new_amount != payment.amount:
                has_active = await db.scalar(
                    select(
                        exists().where(
                            PaymentAllocation.payment_id == payment.id,
                            PaymentAllocation.reversed_at.is_(None),
                        )
                    )
                )
                if has_active:
                    logger.warning(
                        "Amount change rejected for allocated payment",
                        extra={"payment_id": str(payment.id)},
                    )
                    raise ConflictError(
                        "The amount of a payment with active allocations cannot be changed",
                        code=PAYMENT_HAS_ALLOCATIONS,
                    )
                payment.amount = new_amount
                payment.unapplied_balance = new_amount

            for field, value in update_data.items():
                setattr(payment, field, value)
            await db.flush()

        logger.info(
            "Payment updated",
            extra={
                "payment_id": str(payment.id),
                "fields": sorted(payment_update.model_dump(exclude_unset=True)),
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
        return payment

    @staticmethod
    async def delete_payment(
        db: AsyncSession,
        payment_id: UUID,
        actor_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a payment that was never allocated.

        Any allocation row, reversed or not, blocks deletion so the
        allocation history keeps its payment.
        """
        async with atomic(db):
            payment = await PaymentService._lock_payment(db, payment_id)

            has_allocations = await db.scalar(
                select(exists().where(PaymentAllocation.payment_id == payment.id))
            )
            if has_allocations:
                logger.warning(
                    "Delete rejected for allocated payment",
                    extra={"payment_id": str(payment.id)},
                )
                raise ConflictError(
                    "A payment with allocations cannot be deleted",
                    code=PAYMENT_HAS_ALLOCATIONS,
                )

            await db.delete(payment)

        logger.info(
            "Payment deleted",
            extra={
                "payment_id": str(payment_id),
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
