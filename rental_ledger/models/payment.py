"""Payment and Payment Allocation Models"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, UUID, CheckConstraint
from sqlalchemy.orm import relationship

from rental_ledger.models.base import BaseModel, ActorMixin


class Payment(BaseModel, ActorMixin):
    """
    Money received for a contract.

    ``unapplied_balance`` starts equal to ``amount`` and decreases as the
    payment is allocated to invoices.
    """
    __tablename__ = "pagos"
    __table_args__ = (
        CheckConstraint("monto > 0", name="ck_pagos_monto_positivo"),
        CheckConstraint("saldo_no_aplicado >= 0", name="ck_pagos_saldo_no_negativo"),
        CheckConstraint("saldo_no_aplicado <= monto", name="ck_pagos_saldo_max_monto"),
    )

    contract_id = Column(
        "contrato_id",
        UUID(as_uuid=True),
        ForeignKey("contratos.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    payment_method_id = Column(
        "forma_pago_id",
        Integer,
        ForeignKey("formas_pago.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    payment_date = Column("fecha_pago", Date, nullable=False, index=True)
    reference = Column("referencia", String(80), nullable=True)
    amount = Column("monto", Numeric(12, 2), nullable=False)
    unapplied_balance = Column("saldo_no_aplicado", Numeric(12, 2), nullable=False)
    notes = Column("notas", String(255), nullable=True)

    # Relationships
    contract = relationship("Contract", back_populates="payments")
    payment_method = relationship("PaymentMethod")
    allocations = relationship("PaymentAllocation", back_populates="payment")

    def __repr__(self) -> str:
        return f"<Payment {self.amount} ({self.unapplied_balance} unapplied)>"


class PaymentAllocation(BaseModel):
    """
    Append/mark-only record committing part of a payment to one invoice.

    Reversal stamps ``reversed_at``; rows are never deleted.
    """
    __tablename__ = "aplicaciones_pago"
    __table_args__ = (
        CheckConstraint("monto_aplicado > 0", name="ck_aplicaciones_monto_positivo"),
    )

    payment_id = Column(
        "pago_id",
        UUID(as_uuid=True),
        ForeignKey("pagos.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    invoice_id = Column(
        "factura_id",
        UUID(as_uuid=True),
        ForeignKey("facturas.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    applied_amount = Column("monto_aplicado", Numeric(12, 2), nullable=False)
    created_by = Column("creado_por", UUID(as_uuid=True), nullable=True)
    reversed_at = Column("revertido_el", DateTime, nullable=True, index=True)
    reversed_by = Column("revertido_por", UUID(as_uuid=True), nullable=True)

    # Relationships
    payment = relationship("Payment", back_populates="allocations")
    invoice = relationship("Invoice", back_populates="allocations")

    def __repr__(self) -> str:
        return f"<PaymentAllocation {self.applied_amount}{' reversed' if self.reversed_at else ''}>"
