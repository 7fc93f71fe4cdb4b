"""Models Package - Export all models for easy imports"""

from rental_ledger.models.base import BaseModel, ActorMixin
from rental_ledger.models.enums import *
from rental_ledger.models.contract import Property, Tenant, Contract, PaymentMethod
from rental_ledger.models.invoice import Invoice
from rental_ledger.models.payment import Payment, PaymentAllocation


__all__ = [
    # Base classes
    "BaseModel",
    "ActorMixin",

    # Contract registry (read-only)
    "Property",
    "Tenant",
    "Contract",
    "PaymentMethod",

    # Billing ledger
    "Invoice",
    "Payment",
    "PaymentAllocation",
]
