from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from decimal import Decimal


class ReceivableResponse(BaseModel):
    contract_id: UUID = Field(alias="contrato_id")
    property_code: Optional[str] = Field(default=None, alias="propiedad_codigo")
    property_title: Optional[str] = Field(default=None, alias="propiedad_titulo")
    tenant_name: Optional[str] = Field(default=None, alias="inquilino_nombre")
    open_invoices: int = Field(alias="facturas_pendientes")
    overdue_invoices: int = Field(alias="facturas_vencidas")
    outstanding_balance: Decimal = Field(alias="saldo_pendiente")

    model_config = ConfigDict(populate_by_name=True)


class ReceivablesReport(BaseModel):
    """Receivables per contract plus the totals across them"""
    contracts: List[ReceivableResponse] = Field(alias="contratos")
    total_outstanding: Decimal = Field(alias="saldo_pendiente_total")
    overdue_invoices: int = Field(alias="facturas_vencidas")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_rows(cls, rows) -> "ReceivablesReport":
        """Build from ``ReceivableRow`` tuples"""
        contracts = [ReceivableResponse(**row._asdict()) for row in rows]
        return cls(
            contracts=contracts,
            total_outstanding=sum((c.outstanding_balance for c in contracts), Decimal("0")),
            overdue_invoices=sum(c.overdue_invoices for c in contracts),
        )
