from datetime import date, datetime
from decimal import Decimal
from typing import List, NamedTuple, Optional, Tuple
from uuid import UUID

from sqlalchemy import case, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rental_ledger.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    INVALID_INVOICE_STATE,
)
from rental_ledger.core.logging import get_logger
from rental_ledger.database import atomic
from rental_ledger.models.contract import Contract, Property, Tenant
from rental_ledger.models.enums import (
    ContractState,
    InvoiceState,
    OVERDUE_CANDIDATE_STATES,
    RECEIVABLE_INVOICE_STATES,
    VOIDABLE_INVOICE_STATES,
)
from rental_ledger.models.invoice import Invoice
from rental_ledger.schemas.invoice import InvoiceFilters
from rental_ledger.services.query import date_range_conditions, fetch_page, validate_page

logger = get_logger(__name__)


class InvoiceView(NamedTuple):
    """Invoice row with the display fields joined from the contract registry"""
    invoice: Invoice
    property_code: Optional[str]
    property_title: Optional[str]
    tenant_name: Optional[str]


class ReceivableRow(NamedTuple):
    """Money still owed on one contract"""
    contract_id: UUID
    property_code: Optional[str]
    property_title: Optional[str]
    tenant_name: Optional[str]
    open_invoices: int
    overdue_invoices: int
    outstanding_balance: Decimal


def derive_invoice_state(total_amount: Decimal, outstanding_balance: Decimal) -> InvoiceState:
    """
    Invoice state implied by its balance.

    Nothing applied gives OPEN, a settled balance gives PAID, anything in
    between gives PARTIAL.
    """
    if outstanding_balance <= 0:
        return InvoiceState.PAID
    if outstanding_balance >= total_amount:
        return InvoiceState.OPEN
    return InvoiceState.PARTIAL


def _with_display_joins(stmt):
    """Join invoice rows to their contract, property and tenant"""
    return (
        stmt.join(Contract, Invoice.contract_id == Contract.id)
        .outerjoin(Property, Contract.property_id == Property.id)
        .outerjoin(Tenant, Contract.tenant_id == Tenant.id)
    )


def _view_statement():
    return _with_display_joins(
        select(
            Invoice,
            Property.code.label("property_code"),
            Property.title.label("property_title"),
            Tenant.full_name.label("tenant_name"),
        )
    )


class InvoiceService:
    """Service layer for invoice generation, queries and lifecycle"""

    @staticmethod
    async def count_for_period(db: AsyncSession, year: int, month: int) -> int:
        result = await db.scalar(
            select(func.count(Invoice.id)).where(
                Invoice.period_year == year,
                Invoice.period_month == month,
            )
        )
        return result or 0

    @staticmethod
    async def generate_monthly_invoices(
        db: AsyncSession,
        year: int,
        month: int,
        issue_date: date,
        due_date: date,
        actor_id: Optional[UUID] = None,
    ) -> int:
        """
        Create one OPEN invoice per ACTIVE contract not yet billed for the period.

        Re-running for the same period creates nothing for contracts already
        billed. The unique (contract, year, month) constraint is the final
        guard: a concurrent run that loses the race surfaces as a
        ConflictError instead of a duplicate invoice.

        Returns:
            Number of invoices created
        """
        if not 2000 <= year <= 2100:
            raise ValidationError("year must be between 2000 and 2100")
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")
        if issue_date > due_date:
            raise ValidationError("issue_date must not be after due_date")

        async with atomic(db):
            before = await InvoiceService.count_for_period(db, year, month)

            already_billed = exists().where(
                Invoice.contract_id == Contract.id,
                Invoice.period_year == year,
                Invoice.period_month == month,
            )
            result = await db.execute(
                select(Contract, Tenant.tax_id)
                .outerjoin(Tenant, Contract.tenant_id == Tenant.id)
                .where(Contract.state == ContractState.ACTIVE, ~already_billed)
                .order_by(Contract.id)
            )

            for contract, tenant_tax_id in result.all():
                db.add(
                    Invoice(
                        contract_id=contract.id,
                        period_year=year,
                        period_month=month,
                        issue_date=issue_date,
                        due_date=due_date,
                        tax_id=tenant_tax_id or None,
                        description=f"Renta {month:02d}/{year}",
                        total_amount=contract.monthly_rent,
                        outstanding_balance=contract.monthly_rent,
                        state=InvoiceState.OPEN,
                        created_by=actor_id,
                    )
                )
            await db.flush()

            after = await InvoiceService.count_for_period(db, year, month)

        generated = after - before
        logger.info(
            "Monthly invoices generated",
            extra={
                "period_year": year,
                "period_month": month,
                "generated": generated,
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
        return generated

    @staticmethod
    async def list_invoices(
        db: AsyncSession,
        filters: InvoiceFilters,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[InvoiceView], int]:
        """
        List invoices newest due date first, id as tie-break.

        Returns:
            (invoices with display fields, total matching)
        """
        validate_page(page, limit)
        conditions = date_range_conditions(Invoice.due_date, filters.due_from, filters.due_to)
        if filters.state:
            conditions.append(Invoice.state == filters.state)
        if filters.contract_id:
            conditions.append(Invoice.contract_id == filters.contract_id)

        stmt = (
            _view_statement()
            .where(*conditions)
            .order_by(Invoice.due_date.desc(), Invoice.id.desc())
        )
        rows, total = await fetch_page(db, stmt, page, limit)
        return [InvoiceView(*row) for row in rows], total

    @staticmethod
    async def get_invoice(db: AsyncSession, invoice_id: UUID) -> InvoiceView:
        result = await db.execute(_view_statement().where(Invoice.id == invoice_id))
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Invoice not found")
        return InvoiceView(*row)

    @staticmethod
    async def void_invoice(
        db: AsyncSession,
        invoice_id: UUID,
        actor_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Void an OPEN, PARTIAL or OVERDUE invoice and zero its balance.

        Existing allocations are left in place: their amounts stay applied
        even though the invoice no longer owes anything.
        """
        async with atomic(db):
            result = await db.execute(
                select(Invoice)
                .where(Invoice.id == invoice_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            invoice = result.scalar_one_or_none()
            if not invoice:
                raise NotFoundError("Invoice not found")

            if invoice.state not in VOIDABLE_INVOICE_STATES:
                logger.warning(
                    "Void rejected",
                    extra={"invoice_id": str(invoice_id), "state": invoice.state.value},
                )
                raise ConflictError(
                    f"Invoice in state {invoice.state.value} cannot be voided",
                    code=INVALID_INVOICE_STATE,
                )

            invoice.state = InvoiceState.VOID
            invoice.outstanding_balance = Decimal("0")

        logger.info(
            "Invoice voided",
            extra={
                "invoice_id": str(invoice.id),
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
        return invoice

    @staticmethod
    async def mark_overdue_invoices(
        db: AsyncSession,
        as_of: Optional[date] = None,
        actor_id: Optional[UUID] = None,
    ) -> int:
        """
        Move OPEN and PARTIAL invoices due before ``as_of`` to OVERDUE.

        Balances are not touched.

        Returns:
            Number of invoices marked
        """
        as_of = as_of or date.today()

        async with atomic(db):
            result = await db.execute(
                update(Invoice)
                .where(
                    Invoice.state.in_(list(OVERDUE_CANDIDATE_STATES)),
                    Invoice.due_date < as_of,
                )
                .values(state=InvoiceState.OVERDUE, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            marked = result.rowcount or 0

        logger.info(
            "Overdue invoices marked",
            extra={
                "as_of": as_of.isoformat(),
                "marked": marked,
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
        return marked

    @staticmethod
    async def receivables_summary(
        db: AsyncSession,
        contract_id: Optional[UUID] = None,
    ) -> List[ReceivableRow]:
        """
        Accounts receivable per contract, largest outstanding balance first.

        Only OPEN, PARTIAL and OVERDUE invoices count; PAID invoices owe
        nothing and VOID ones are written off. Contracts with nothing owed
        are left out.
        """
        outstanding = func.sum(Invoice.outstanding_balance).label("outstanding_balance")
        stmt = (
            _with_display_joins(
                select(
                    Invoice.contract_id,
                    Property.code,
                    Property.title,
                    Tenant.full_name,
                    func.count(Invoice.id),
                    func.count(case((Invoice.state == InvoiceState.OVERDUE, 1))),
                    outstanding,
                )
            )
            .where(Invoice.state.in_(list(RECEIVABLE_INVOICE_STATES)))
            .group_by(Invoice.contract_id, Property.code, Property.title, Tenant.full_name)
            .order_by(outstanding.desc(), Invoice.contract_id)
        )
        if contract_id:
            stmt = stmt.where(Invoice.contract_id == contract_id)

        result = await db.execute(stmt)
        rows = [ReceivableRow(*row) for row in result.all()]
        logger.info(
            "Receivables report generated",
            extra={"contracts": len(rows), "contract_id": str(contract_id) if contract_id else None},
        )
        return rows

    @staticmethod
    def list_states() -> List[InvoiceState]:
        return list(InvoiceState)
