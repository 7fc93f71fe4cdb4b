"""Integration tests: applying payments to invoices and reversing allocations."""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4
from sqlalchemy import func, select

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
from rental_ledger.models import Invoice, Payment, PaymentAllocation
from rental_ledger.models.enums import InvoiceState
from rental_ledger.schemas.payment import PaymentCreate
from rental_ledger.services.allocation_service import AllocationService
from rental_ledger.services.invoice_service import InvoiceService
from rental_ledger.services.payment_service import PaymentService


async def _invoice(db, contract, month=3) -> Invoice:
    await InvoiceService.generate_monthly_invoices(
        db, 2025, month, date(2025, month, 1), date(2025, month, 10)
    )
    return await db.scalar(
        select(Invoice).where(Invoice.contract_id == contract.id, Invoice.period_month == month)
    )


async def _payment(db, contract, method, amount="1500.00") -> Payment:
    return await PaymentService.create_payment(
        db,
        PaymentCreate(
            contract_id=contract.id,
            payment_method_id=method.id,
            payment_date=date(2025, 3, 5),
            amount=Decimal(amount),
        ),
    )


async def _balances(db, payment_id, invoice_id):
    """Fresh (payment unapplied, invoice outstanding, invoice state) from the database."""
    payment = await db.get(Payment, payment_id, populate_existing=True)
    invoice = await db.get(Invoice, invoice_id, populate_existing=True)
    return payment.unapplied_balance, invoice.outstanding_balance, invoice.state


async def _assert_ledger_consistent(db):
    """Both balances equal their amount minus the active allocations against them."""
    active = PaymentAllocation.reversed_at.is_(None)

    invoices = (await db.execute(select(Invoice).execution_options(populate_existing=True))).scalars().all()
    for invoice in invoices:
        if invoice.state == InvoiceState.VOID:
            continue
        applied = await db.scalar(
            select(func.coalesce(func.sum(PaymentAllocation.applied_amount), 0)).where(
                PaymentAllocation.invoice_id == invoice.id, active
            )
        )
        assert invoice.outstanding_balance == invoice.total_amount - Decimal(applied)
        assert 0 <= invoice.outstanding_balance <= invoice.total_amount

    payments = (await db.execute(select(Payment).execution_options(populate_existing=True))).scalars().all()
    for payment in payments:
        applied = await db.scalar(
            select(func.coalesce(func.sum(PaymentAllocation.applied_amount), 0)).where(
                PaymentAllocation.payment_id == payment.id, active
            )
        )
        assert payment.unapplied_balance == payment.amount - Decimal(applied)
        assert 0 <= payment.unapplied_balance <= payment.amount


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------

async def test_partial_then_full_application(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)

    first = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("900.00"))
    assert first.invoice.state == InvoiceState.PARTIAL
    assert first.invoice.outstanding_balance == Decimal("600.00")
    assert first.payment.unapplied_balance == Decimal("600.00")
    assert first.allocation.applied_amount == Decimal("900.00")
    assert first.allocation.reversed_at is None

    second = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("600.00"))
    assert second.invoice.state == InvoiceState.PAID
    assert second.invoice.outstanding_balance == Decimal("0.00")
    assert second.payment.unapplied_balance == Decimal("0.00")

    await _assert_ledger_consistent(db_session)


async def test_exact_match_pays_invoice_and_exhausts_payment(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)

    outcome = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("1500.00"))

    assert outcome.invoice.state == InvoiceState.PAID
    assert await _balances(db_session, payment.id, invoice.id) == (
        Decimal("0.00"), Decimal("0.00"), InvoiceState.PAID
    )


async def test_apply_more_than_payment_balance_mutates_nothing(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method, amount="500.00")
    payment_id, invoice_id = payment.id, invoice.id

    with pytest.raises(ConflictError) as exc_info:
        await AllocationService.apply_payment(db_session, payment_id, invoice_id, Decimal("500.01"))
    assert exc_info.value.code == INSUFFICIENT_BALANCE

    assert await _balances(db_session, payment_id, invoice_id) == (
        Decimal("500.00"), Decimal("1500.00"), InvoiceState.OPEN
    )
    assert await db_session.scalar(select(func.count(PaymentAllocation.id))) == 0


async def test_apply_more_than_invoice_balance_mutates_nothing(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method, amount="2000.00")
    payment_id, invoice_id = payment.id, invoice.id

    with pytest.raises(ConflictError) as exc_info:
        await AllocationService.apply_payment(db_session, payment_id, invoice_id, Decimal("1500.01"))
    assert exc_info.value.code == EXCEEDS_INVOICE_BALANCE

    assert await _balances(db_session, payment_id, invoice_id) == (
        Decimal("2000.00"), Decimal("1500.00"), InvoiceState.OPEN
    )
    assert await db_session.scalar(select(func.count(PaymentAllocation.id))) == 0


async def test_insufficient_payment_balance_is_reported_before_invoice_state(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    invoice_id = invoice.id
    await InvoiceService.void_invoice(db_session, invoice_id)
    payment = await _payment(db_session, contract, payment_method, amount="100.00")

    with pytest.raises(ConflictError) as exc_info:
        await AllocationService.apply_payment(db_session, payment.id, invoice_id, Decimal("200.00"))
    assert exc_info.value.code == INSUFFICIENT_BALANCE


async def test_apply_to_paid_invoice_is_rejected(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method, amount="2000.00")
    payment_id, invoice_id = payment.id, invoice.id
    await AllocationService.apply_payment(db_session, payment_id, invoice_id, Decimal("1500.00"))

    with pytest.raises(ConflictError) as exc_info:
        await AllocationService.apply_payment(db_session, payment_id, invoice_id, Decimal("1.00"))
    assert exc_info.value.code == INVALID_INVOICE_STATE
    assert await _balances(db_session, payment_id, invoice_id) == (
        Decimal("500.00"), Decimal("0.00"), InvoiceState.PAID
    )


async def test_apply_to_void_invoice_is_rejected(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    invoice_id = invoice.id
    await InvoiceService.void_invoice(db_session, invoice_id)
    payment = await _payment(db_session, contract, payment_method)
    payment_id = payment.id

    with pytest.raises(ConflictError) as exc_info:
        await AllocationService.apply_payment(db_session, payment_id, invoice_id, Decimal("100.00"))
    assert exc_info.value.code == INVALID_INVOICE_STATE
    unapplied, _, _ = await _balances(db_session, payment_id, invoice_id)
    assert unapplied == Decimal("1500.00")


async def test_apply_to_overdue_invoice(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    await InvoiceService.mark_overdue_invoices(db_session, as_of=date(2025, 4, 1))
    payment = await _payment(db_session, contract, payment_method)

    outcome = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("500.00"))
    assert outcome.invoice.state == InvoiceState.PARTIAL
    assert outcome.invoice.outstanding_balance == Decimal("1000.00")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5.00")])
async def test_apply_non_positive_amount(db_session, amount):
    with pytest.raises(ValidationError):
        await AllocationService.apply_payment(db_session, uuid4(), uuid4(), amount)


async def test_apply_missing_payment_or_invoice(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    invoice_id = invoice.id
    payment = await _payment(db_session, contract, payment_method)
    payment_id = payment.id

    with pytest.raises(NotFoundError):
        await AllocationService.apply_payment(db_session, uuid4(), invoice_id, Decimal("1.00"))
    with pytest.raises(NotFoundError):
        await AllocationService.apply_payment(db_session, payment_id, uuid4(), Decimal("1.00"))


async def test_one_payment_across_several_invoices(db_session, contract, payment_method):
    march = await _invoice(db_session, contract, month=3)
    april = await _invoice(db_session, contract, month=4)
    payment = await _payment(db_session, contract, payment_method, amount="2000.00")

    await AllocationService.apply_payment(db_session, payment.id, march.id, Decimal("1500.00"))
    outcome = await AllocationService.apply_payment(db_session, payment.id, april.id, Decimal("500.00"))

    assert outcome.payment.unapplied_balance == Decimal("0.00")
    assert outcome.invoice.state == InvoiceState.PARTIAL
    await _assert_ledger_consistent(db_session)


async def test_cross_contract_allocation_allowed_by_default(db_session, contract, make_contract, payment_method):
    other = await make_contract()
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, other, payment_method)

    outcome = await AllocationService.apply_payment(
        db_session, payment.id, invoice.id, Decimal("100.00"), enforce_same_contract=False
    )
    assert outcome.invoice.state == InvoiceState.PARTIAL


async def test_cross_contract_allocation_rejected_when_enforced(db_session, contract, make_contract, payment_method):
    other = await make_contract()
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, other, payment_method)
    payment_id, invoice_id = payment.id, invoice.id

    with pytest.raises(ConflictError) as exc_info:
        await AllocationService.apply_payment(
            db_session, payment_id, invoice_id, Decimal("100.00"), enforce_same_contract=True
        )
    assert exc_info.value.code == CONTRACT_MISMATCH
    assert await _balances(db_session, payment_id, invoice_id) == (
        Decimal("1500.00"), Decimal("1500.00"), InvoiceState.OPEN
    )


# ---------------------------------------------------------------------------
# Reverse
# ---------------------------------------------------------------------------

async def test_apply_then_reverse_restores_balances(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    before = await _balances(db_session, payment.id, invoice.id)

    outcome = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("900.00"))
    reversed_outcome = await AllocationService.reverse_allocation(
        db_session, payment.id, outcome.allocation.id, actor_id=uuid4()
    )

    assert await _balances(db_session, payment.id, invoice.id) == before
    assert reversed_outcome.invoice.state == InvoiceState.OPEN
    assert reversed_outcome.allocation.reversed_at is not None
    assert reversed_outcome.allocation.reversed_by is not None
    # The allocation row is kept as history
    assert await db_session.scalar(select(func.count(PaymentAllocation.id))) == 1
    await _assert_ledger_consistent(db_session)


async def test_reverse_paid_invoice_goes_back_to_partial(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("900.00"))
    second = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("600.00"))

    await AllocationService.reverse_allocation(db_session, payment.id, second.allocation.id)

    assert await _balances(db_session, payment.id, invoice.id) == (
        Decimal("600.00"), Decimal("600.00"), InvoiceState.PARTIAL
    )


async def test_reverse_twice_is_rejected(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    payment_id, invoice_id = payment.id, invoice.id
    outcome = await AllocationService.apply_payment(db_session, payment_id, invoice_id, Decimal("900.00"))
    allocation_id = outcome.allocation.id
    await AllocationService.reverse_allocation(db_session, payment_id, allocation_id)

    with pytest.raises(ConflictError) as exc_info:
        await AllocationService.reverse_allocation(db_session, payment_id, allocation_id)
    assert exc_info.value.code == ALREADY_REVERSED
    assert await _balances(db_session, payment_id, invoice_id) == (
        Decimal("1500.00"), Decimal("1500.00"), InvoiceState.OPEN
    )


async def test_reverse_with_wrong_payment_is_not_found(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    other_payment = await _payment(db_session, contract, payment_method)
    outcome = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("900.00"))

    with pytest.raises(NotFoundError):
        await AllocationService.reverse_allocation(db_session, other_payment.id, outcome.allocation.id)


async def test_reverse_keeps_overdue_state(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    outcome = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("900.00"))
    await InvoiceService.mark_overdue_invoices(db_session, as_of=date(2025, 4, 1))

    await AllocationService.reverse_allocation(db_session, payment.id, outcome.allocation.id)

    assert await _balances(db_session, payment.id, invoice.id) == (
        Decimal("1500.00"), Decimal("1500.00"), InvoiceState.OVERDUE
    )


# ---------------------------------------------------------------------------
# Voiding with allocations in place
# ---------------------------------------------------------------------------

async def test_void_paid_invoice_is_rejected(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    invoice_id = invoice.id
    await AllocationService.apply_payment(db_session, payment.id, invoice_id, Decimal("1500.00"))

    with pytest.raises(ConflictError) as exc_info:
        await InvoiceService.void_invoice(db_session, invoice_id)
    assert exc_info.value.code == INVALID_INVOICE_STATE


async def test_void_leaves_existing_allocations_applied(db_session, contract, payment_method):
    """
    Voiding forces the invoice balance to zero but does not reverse what was
    already applied: the allocation stays active and the payment keeps only
    its remaining unapplied balance.
    """
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    outcome = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("900.00"))

    await InvoiceService.void_invoice(db_session, invoice.id)

    assert await _balances(db_session, payment.id, invoice.id) == (
        Decimal("600.00"), Decimal("0.00"), InvoiceState.VOID
    )
    allocation = await db_session.get(PaymentAllocation, outcome.allocation.id, populate_existing=True)
    assert allocation.reversed_at is None


async def test_reversal_against_void_invoice_restores_payment_only(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    outcome = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("900.00"))
    await InvoiceService.void_invoice(db_session, invoice.id)

    await AllocationService.reverse_allocation(db_session, payment.id, outcome.allocation.id)

    assert await _balances(db_session, payment.id, invoice.id) == (
        Decimal("1500.00"), Decimal("0.00"), InvoiceState.VOID
    )


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

async def test_list_allocations_includes_reversed(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    first = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("900.00"))
    second = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("600.00"))
    await AllocationService.reverse_allocation(db_session, payment.id, first.allocation.id)

    rows = await AllocationService.list_allocations(db_session, payment.id)

    assert [allocation.id for allocation, _ in rows] == [second.allocation.id, first.allocation.id]
    assert rows[0][0].reversed_at is None
    assert rows[1][0].reversed_at is not None
    assert {state for _, state in rows} == {InvoiceState.PARTIAL}


async def test_list_allocations_for_missing_payment(db_session):
    with pytest.raises(NotFoundError):
        await AllocationService.list_allocations(db_session, uuid4())


# ---------------------------------------------------------------------------
# End-to-end ledger scenario
# ---------------------------------------------------------------------------

async def test_march_rent_scenario(db_session, contract, payment_method):
    generated = await InvoiceService.generate_monthly_invoices(
        db_session, 2025, 3, date(2025, 3, 1), date(2025, 3, 10)
    )
    assert generated == 1
    invoice = await db_session.scalar(select(Invoice))
    assert invoice.total_amount == Decimal("1500.00")
    assert invoice.state == InvoiceState.OPEN

    payment = await _payment(db_session, contract, payment_method, amount="1500.00")

    await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("900.00"))
    assert await _balances(db_session, payment.id, invoice.id) == (
        Decimal("600.00"), Decimal("600.00"), InvoiceState.PARTIAL
    )

    second = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("600.00"))
    assert await _balances(db_session, payment.id, invoice.id) == (
        Decimal("0.00"), Decimal("0.00"), InvoiceState.PAID
    )

    await AllocationService.reverse_allocation(db_session, payment.id, second.allocation.id)
    assert await _balances(db_session, payment.id, invoice.id) == (
        Decimal("600.00"), Decimal("600.00"), InvoiceState.PARTIAL
    )
    await _assert_ledger_consistent(db_session)


async def test_reverse_on_past_due_paid_invoice_waits_for_overdue_marking(db_session, contract, payment_method):
    invoice = await _invoice(db_session, contract)
    payment = await _payment(db_session, contract, payment_method)
    outcome = await AllocationService.apply_payment(db_session, payment.id, invoice.id, Decimal("1500.00"))
    # PAID invoices are not candidates for overdue marking
    assert await InvoiceService.mark_overdue_invoices(db_session, as_of=date(2025, 4, 1)) == 0

    await AllocationService.reverse_allocation(db_session, payment.id, outcome.allocation.id)
    assert await _balances(db_session, payment.id, invoice.id) == (
        Decimal("1500.00"), Decimal("1500.00"), InvoiceState.OPEN
    )

    assert await InvoiceService.mark_overdue_invoices(db_session, as_of=date(2025, 4, 1)) == 1
    _, _, state = await _balances(db_session, payment.id, invoice.id)
    assert state == InvoiceState.OVERDUE
