"""
Module: contracts_kernel.selectors.contract_selector
Responsibility: Read-side queries over contracts and their audit trail:
    per-party statistics and audit trail reads.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - ``total_value`` is the sum of every matching contract's terms value.
    - ``average_value`` is ``total_value / total`` when ``total > 0``, else 0.
    - ``by_status`` always carries every status, zero-filled.
    - Audit trail entries are returned newest first by (performed_at, id).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from contracts_kernel.domain.records import AuditEntry, ContractStatus, PartyRole
from contracts_kernel.exceptions import InvalidPartyRoleError
from contracts_kernel.models.audit_entry import ContractAuditEntryModel
from contracts_kernel.models.contract import ContractModel
from contracts_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ContractStatistics:
    """Aggregate view of one party's contracts."""

    total: int
    by_status: dict[str, int] = field(default_factory=dict)
    total_value: Decimal = Decimal("0")
    average_value: Decimal = Decimal("0")

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "total_value": str(self.total_value),
            "average_value": str(self.average_value),
        }


class ContractSelector(BaseSelector):
    """Read-only queries for contracts and audit entries."""

    def get_statistics(self, party_id: str, role: PartyRole | str) -> ContractStatistics:
        try:
            role = PartyRole(role)
        except ValueError as exc:
            raise InvalidPartyRoleError(str(role)) from exc

        party_col = (
            ContractModel.purchaser_id
            if role == PartyRole.PURCHASER
            else ContractModel.provider_id
        )
        rows = self.session.execute(
            select(ContractModel.status, ContractModel.terms).where(party_col == party_id)
        ).all()

        by_status = {status.value: 0 for status in ContractStatus}
        total_value = Decimal("0")
        for status, terms in rows:
            by_status[status] = by_status.get(status, 0) + 1
            total_value += Decimal(str(terms["total_value"]))

        total = len(rows)
        average = total_value / total if total > 0 else Decimal("0")
        return ContractStatistics(
            total=total,
            by_status=by_status,
            total_value=total_value,
            average_value=average,
        )

    def get_audit_trail(self, contract_id: UUID) -> list[AuditEntry]:
        rows = self.session.scalars(
            select(ContractAuditEntryModel)
            .where(ContractAuditEntryModel.contract_id == contract_id)
            .order_by(
                ContractAuditEntryModel.performed_at.desc(),
                ContractAuditEntryModel.id.desc(),
            )
        )
        return [row.to_entry() for row in rows]

    def count_audit_entries(self, contract_id: UUID, action: str | None = None) -> int:
        stmt = select(ContractAuditEntryModel.id).where(
            ContractAuditEntryModel.contract_id == contract_id
        )
        if action is not None:
            stmt = stmt.where(ContractAuditEntryModel.action == action)
        return len(self.session.scalars(stmt).all())
