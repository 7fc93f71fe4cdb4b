from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal

from rental_ledger.models.enums import InvoiceState


class InvoiceGenerateRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    issue_date: date
    due_date: date


class InvoiceGenerateResult(BaseModel):
    generated: int


class InvoiceFilters(BaseModel):
    """Filters for the invoice listing; date bounds apply to the due date"""
    state: Optional[InvoiceState] = None
    contract_id: Optional[UUID] = None
    due_from: Optional[date] = None
    due_to: Optional[date] = None


class InvoiceResponse(BaseModel):
    id: UUID
    contract_id: UUID = Field(alias="contrato_id")
    period_year: int = Field(alias="anio_periodo")
    period_month: int = Field(alias="mes_periodo")
    issue_date: date = Field(alias="fecha_emision")
    due_date: date = Field(alias="fecha_vencimiento")
    invoice_number: Optional[str] = Field(default=None, alias="numero_factura")
    tax_id: Optional[str] = Field(default=None, alias="nit")
    description: str = Field(alias="detalle")
    total_amount: Decimal = Field(alias="monto_total")
    outstanding_balance: Decimal = Field(alias="saldo_pendiente")
    state: InvoiceState = Field(alias="estado")
    created_by: Optional[UUID] = Field(default=None, alias="creado_por")
    created_at: datetime = Field(alias="creado_el")
    updated_at: datetime = Field(alias="actualizado_el")

    # Display fields joined from the contract registry
    property_code: Optional[str] = Field(default=None, alias="propiedad_codigo")
    property_title: Optional[str] = Field(default=None, alias="propiedad_titulo")
    tenant_name: Optional[str] = Field(default=None, alias="inquilino_nombre")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    @classmethod
    def from_view(cls, view) -> "InvoiceResponse":
        """Build from an ``InvoiceView`` row (invoice plus display columns)"""
        response = cls.model_validate(view.invoice)
        response.property_code = view.property_code
        response.property_title = view.property_title
        response.tenant_name = view.tenant_name
        return response


class InvoiceVoidResult(BaseModel):
    id: UUID
    state: InvoiceState = Field(alias="estado")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class MarkOverdueRequest(BaseModel):
    as_of: Optional[date] = None


class MarkOverdueResult(BaseModel):
    updated: int
    as_of: date


class InvoiceStateOption(BaseModel):
    code: InvoiceState = Field(alias="codigo")

    model_config = ConfigDict(populate_by_name=True)
