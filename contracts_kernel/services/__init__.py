"""Kernel services: contract persistence and the audit writer."""

from contracts_kernel.services.audit_recorder import AuditRecorder, AuditSink, QueuedAuditSink
from contracts_kernel.services.contract_repository import ContractRepository

__all__ = ["AuditRecorder", "AuditSink", "QueuedAuditSink", "ContractRepository"]
