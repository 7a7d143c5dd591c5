"""
Module: contracts_kernel.models.audit_entry
Responsibility: ORM persistence for the contract audit trail.
Architecture position: Kernel > Models.  May import from db/ and domain
    records only.

Invariants enforced:
    - Audit rows are append-only; nothing in the codebase updates or deletes
      them.
    - Ordered by (performed_at, id) via idx_contract_audit_trail.

Audit relevance:
    This IS the audit trail.  Every semantic action on a contract (creation,
    status change, signature, milestone completion, payment, variation,
    document, termination) produces one row, written best-effort after the
    contract write commits.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from contracts_kernel.db.base import Base, UUIDString
from contracts_kernel.domain.records import AuditAction, AuditEntry


class ContractAuditEntryModel(Base):
    """
    One audit line for one contract.

    Non-goals:
        - No foreign key to contracts: an audit row may be written by a
          queued sink after (or independently of) the contract row.
    """

    __tablename__ = "contract_audit_entries"

    __table_args__ = (
        Index("idx_contract_audit_trail", "contract_id", "performed_at", "id"),
        Index("idx_contract_audit_action", "action"),
    )

    contract_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    performed_by: Mapped[str] = mapped_column(String(255), nullable=False)

    performed_at: Mapped[datetime] = mapped_column(nullable=False)

    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="system")
    user_agent: Mapped[str] = mapped_column(String(512), nullable=False, default="system")

    previous_value: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_value: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def to_entry(self) -> AuditEntry:
        return AuditEntry(
            id=self.id,
            contract_id=self.contract_id,
            action=AuditAction(self.action),
            performed_by=self.performed_by,
            performed_at=self.performed_at,
            details=dict(self.details or {}),
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            previous_value=self.previous_value,
            new_value=self.new_value,
        )

    def __repr__(self) -> str:
        return f"<ContractAuditEntry {self.action} on {self.contract_id}>"
