"""Centralized Enum Definitions"""

import enum


# Contract registry
class ContractState(str, enum.Enum):
    """Lifecycle of a rental contract (owned by the contract registry)"""
    ACTIVE = "ACTIVE"
    FINALIZED = "FINALIZED"
    RESCINDED = "RESCINDED"
    CANCELLED = "CANCELLED"


# Billing
class InvoiceState(str, enum.Enum):
    """Invoice states"""
    OPEN = "OPEN"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"


# Allocation may target these; PAID and VOID invoices are closed
APPLICABLE_INVOICE_STATES = frozenset({InvoiceState.OPEN, InvoiceState.PARTIAL, InvoiceState.OVERDUE})

VOIDABLE_INVOICE_STATES = frozenset({InvoiceState.OPEN, InvoiceState.PARTIAL, InvoiceState.OVERDUE})

# Candidates for overdue marking
OVERDUE_CANDIDATE_STATES = frozenset({InvoiceState.OPEN, InvoiceState.PARTIAL})

# Invoices that still owe money (PAID has nothing left, VOID is forced to zero)
RECEIVABLE_INVOICE_STATES = frozenset({InvoiceState.OPEN, InvoiceState.PARTIAL, InvoiceState.OVERDUE})


class UserRole(str, enum.Enum):
    """Roles carried in access tokens"""
    ADMIN = "ADMIN"
    OPER = "OPER"
