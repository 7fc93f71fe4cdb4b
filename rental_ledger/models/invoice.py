"""Invoice Model"""

from sqlalchemy import Column, Date, Enum, ForeignKey, Integer, Numeric, String, UUID, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from rental_ledger.models.base import BaseModel, ActorMixin
from rental_ledger.models.enums import InvoiceState


class Invoice(BaseModel, ActorMixin):
    """
    Billing obligation for one contract and one calendar month.

    ``total_amount`` is fixed at creation. ``outstanding_balance`` starts equal
    to it and only moves through allocations, reversals and voiding.
    """
    __tablename__ = "facturas"
    __table_args__ = (
        UniqueConstraint("contrato_id", "anio_periodo", "mes_periodo", name="uq_facturas_contrato_periodo"),
        CheckConstraint("saldo_pendiente >= 0", name="ck_facturas_saldo_no_negativo"),
        CheckConstraint("saldo_pendiente <= monto_total", name="ck_facturas_saldo_max_total"),
    )

    contract_id = Column(
        "contrato_id",
        UUID(as_uuid=True),
        ForeignKey("contratos.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    period_year = Column("anio_periodo", Integer, nullable=False)
    period_month = Column("mes_periodo", Integer, nullable=False)
    issue_date = Column("fecha_emision", Date, nullable=False)
    due_date = Column("fecha_vencimiento", Date, nullable=False, index=True)
    invoice_number = Column("numero_factura", String(40), nullable=True)
    tax_id = Column("nit", String(20), nullable=True)
    description = Column("detalle", String(255), nullable=False)
    total_amount = Column("monto_total", Numeric(12, 2), nullable=False)
    outstanding_balance = Column("saldo_pendiente", Numeric(12, 2), nullable=False)
    state = Column(
        "estado",
        Enum(InvoiceState, name="invoice_state"),
        default=InvoiceState.OPEN,
        nullable=False,
        index=True,
    )

    # Relationships
    contract = relationship("Contract", back_populates="invoices")
    allocations = relationship("PaymentAllocation", back_populates="invoice")

    def __repr__(self) -> str:
        return f"<Invoice {self.period_year}-{self.period_month:02d} {self.outstanding_balance}/{self.total_amount} {self.state}>"
