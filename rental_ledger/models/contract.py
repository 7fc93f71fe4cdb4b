"""Contract Registry Models

These tables belong to the property/tenant/contract administration side of
the system. The billing ledger only reads them.
"""

from datetime import datetime
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String, UUID
from sqlalchemy.orm import relationship

from rental_ledger.database import Base
from rental_ledger.models.base import BaseModel
from rental_ledger.models.enums import ContractState


class Property(BaseModel):
    """Rentable property"""
    __tablename__ = "propiedades"

    code = Column("codigo", String(32), unique=True, nullable=False)
    title = Column("titulo", String(160), nullable=False)

    contracts = relationship("Contract", back_populates="property")

    def __repr__(self) -> str:
        return f"<Property {self.code}>"


class Tenant(BaseModel):
    """Person or company renting a property"""
    __tablename__ = "inquilinos"

    full_name = Column("nombre_completo", String(120), nullable=False)
    tax_id = Column("nit", String(20), nullable=True)

    contracts = relationship("Contract", back_populates="tenant")

    def __repr__(self) -> str:
        return f"<Tenant {self.full_name}>"


class Contract(BaseModel):
    """Rental contract; the billing unit for invoices and payments"""
    __tablename__ = "contratos"

    property_id = Column(
        "propiedad_id",
        UUID(as_uuid=True),
        ForeignKey("propiedades.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    tenant_id = Column(
        "inquilino_id",
        UUID(as_uuid=True),
        ForeignKey("inquilinos.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    monthly_rent = Column("renta_mensual", Numeric(12, 2), nullable=False)
    state = Column(
        "estado",
        Enum(ContractState, name="contract_state"),
        default=ContractState.ACTIVE,
        nullable=False,
        index=True,
    )

    property = relationship("Property", back_populates="contracts")
    tenant = relationship("Tenant", back_populates="contracts")
    invoices = relationship("Invoice", back_populates="contract")
    payments = relationship("Payment", back_populates="contract")

    def __repr__(self) -> str:
        return f"<Contract {self.id} - {self.state}>"


class PaymentMethod(Base):
    """Catalog of accepted payment methods (cash, transfer, cheque...)"""
    __tablename__ = "formas_pago"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column("codigo", String(32), unique=True, nullable=False)
    name = Column("nombre", String(80), nullable=False)
    created_at = Column("creado_el", DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column("actualizado_el", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentMethod {self.code}>"
