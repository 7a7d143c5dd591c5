"""ORM models for the contracts kernel."""

from contracts_kernel.models.audit_entry import ContractAuditEntryModel
from contracts_kernel.models.contract import ContractModel

__all__ = ["ContractModel", "ContractAuditEntryModel"]
