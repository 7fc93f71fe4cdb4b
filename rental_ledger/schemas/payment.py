from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal

from rental_ledger.models.enums import InvoiceState


class PaymentMethodResponse(BaseModel):
    id: int
    code: str = Field(alias="codigo")
    name: str = Field(alias="nombre")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class PaymentCreate(BaseModel):
    contract_id: UUID = Field(alias="contrato_id")
    payment_method_id: int = Field(alias="forma_pago_id", gt=0)
    payment_date: date = Field(alias="fecha_pago")
    amount: Decimal = Field(alias="monto", gt=0, max_digits=12, decimal_places=2)
    reference: Optional[str] = Field(default=None, alias="referencia", max_length=80)
    notes: Optional[str] = Field(default=None, alias="notas", max_length=255)

    model_config = ConfigDict(populate_by_name=True)


class PaymentUpdate(BaseModel):
    """Partial update; only the fields present in the request are applied"""
    payment_method_id: Optional[int] = Field(default=None, alias="forma_pago_id", gt=0)
    payment_date: Optional[date] = Field(default=None, alias="fecha_pago")
    amount: Optional[Decimal] = Field(default=None, alias="monto", gt=0, max_digits=12, decimal_places=2)
    reference: Optional[str] = Field(default=None, alias="referencia", max_length=80)
    notes: Optional[str] = Field(default=None, alias="notas", max_length=255)

    model_config = ConfigDict(populate_by_name=True)


class PaymentFilters(BaseModel):
    """Filters for the payment listing; date bounds apply to the payment date"""
    contract_id: Optional[UUID] = None
    payment_method_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class PaymentResponse(BaseModel):
    id: UUID
    contract_id: UUID = Field(alias="contrato_id")
    payment_method_id: int = Field(alias="forma_pago_id")
    payment_date: date = Field(alias="fecha_pago")
    reference: Optional[str] = Field(default=None, alias="referencia")
    amount: Decimal = Field(alias="monto")
    unapplied_balance: Decimal = Field(alias="saldo_no_aplicado")
    notes: Optional[str] = Field(default=None, alias="notas")
    created_by: Optional[UUID] = Field(default=None, alias="creado_por")
    created_at: datetime = Field(alias="creado_el")
    updated_at: datetime = Field(alias="actualizado_el")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ApplyPaymentRequest(BaseModel):
    invoice_id: UUID = Field(alias="factura_id")
    applied_amount: Decimal = Field(alias="monto_aplicado", gt=0, max_digits=12, decimal_places=2)

    model_config = ConfigDict(populate_by_name=True)


class AllocationResponse(BaseModel):
    id: UUID
    payment_id: UUID = Field(alias="pago_id")
    invoice_id: UUID = Field(alias="factura_id")
    applied_amount: Decimal = Field(alias="monto_aplicado")
    created_by: Optional[UUID] = Field(default=None, alias="creado_por")
    created_at: datetime = Field(alias="creado_el")
    reversed_at: Optional[datetime] = Field(default=None, alias="revertido_el")
    reversed_by: Optional[UUID] = Field(default=None, alias="revertido_por")
    invoice_state: Optional[InvoiceState] = Field(default=None, alias="factura_estado")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class AllocationResult(BaseModel):
    """Allocation plus the balances it left behind on both sides"""
    allocation: AllocationResponse = Field(alias="aplicacion")
    payment_unapplied_balance: Decimal = Field(alias="saldo_no_aplicado")
    invoice_outstanding_balance: Decimal = Field(alias="saldo_pendiente")
    invoice_state: InvoiceState = Field(alias="estado_factura")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_outcome(cls, outcome) -> "AllocationResult":
        allocation = AllocationResponse.model_validate(outcome.allocation)
        allocation.invoice_state = outcome.invoice.state
        return cls(
            allocation=allocation,
            payment_unapplied_balance=outcome.payment.unapplied_balance,
            invoice_outstanding_balance=outcome.invoice.outstanding_balance,
            invoice_state=outcome.invoice.state,
        )
