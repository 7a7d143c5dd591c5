"""
Module: contracts_kernel.models.contract
Responsibility: ORM persistence for contracts.  Scalar identity, status and
    party-index columns are real columns; the terms snapshot and the ordered
    element collections (signatures, milestones, variations, payments,
    documents) live in JSON columns.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain records (for the boundary converters).  MUST NOT import from
    services/ or selectors/.

Invariants enforced:
    - version is incremented by exactly one on every write; writers match on
      the version they read (see ContractRepository).
    - purchaser_sort_key / provider_sort_key are ``status#timestamp`` and are
      recomputed whenever status changes.
    - Rows are never deleted; cancellation is a status.

Failure modes:
    - IntegrityError on duplicate primary key, surfaced by the repository as
      ContractAlreadyExistsError.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from contracts_kernel.db.base import Base
from contracts_kernel.domain.records import (
    ContractRecord,
    ContractStatus,
    ContractTerms,
    Document,
    Milestone,
    Payment,
    Signature,
    Variation,
)


class ContractModel(Base):
    """
    A contract between a purchaser and a provider.

    Guarantees:
        - ``to_record()`` returns a frozen ContractRecord; callers never hold
          ORM instances outside a session.
        - total_value mirrors ``terms.total_value`` for aggregate queries.
    """

    __tablename__ = "contracts"

    __table_args__ = (
        Index("idx_contract_purchaser", "purchaser_id", "purchaser_sort_key"),
        Index("idx_contract_provider", "provider_id", "provider_sort_key"),
        Index("idx_contract_project", "project_id"),
    )

    contract_number: Mapped[str] = mapped_column(String(64), nullable=False)

    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    work_breakdown_id: Mapped[str] = mapped_column(String(64), nullable=False)
    proposal_id: Mapped[str] = mapped_column(String(64), nullable=False)
    purchaser_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    purchaser_sort_key: Mapped[str] = mapped_column(String(96), nullable=False)
    provider_sort_key: Mapped[str] = mapped_column(String(96), nullable=False)

    total_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")

    terms: Mapped[dict] = mapped_column(JSON, nullable=False)
    signatures: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    milestones: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    variations: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    payments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    documents: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    legal_compliance: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    consumer_protection: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    dispute_resolution: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Durable VAR-NNN counter; never decreases.
    variation_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    terminated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    termination_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def to_record(self) -> ContractRecord:
        return ContractRecord(
            id=self.id,
            contract_number=self.contract_number,
            project_id=self.project_id,
            work_breakdown_id=self.work_breakdown_id,
            proposal_id=self.proposal_id,
            purchaser_id=self.purchaser_id,
            provider_id=self.provider_id,
            status=ContractStatus(self.status),
            version=self.version,
            terms=ContractTerms.from_dict(self.terms),
            created_at=self.created_at,
            updated_at=self.updated_at,
            signatures=tuple(Signature.from_dict(s) for s in self.signatures or []),
            milestones=tuple(Milestone.from_dict(m) for m in self.milestones or []),
            variations=tuple(Variation.from_dict(v) for v in self.variations or []),
            payments=tuple(Payment.from_dict(p) for p in self.payments or []),
            documents=tuple(Document.from_dict(d) for d in self.documents or []),
            legal_compliance=dict(self.legal_compliance or {}),
            consumer_protection=dict(self.consumer_protection or {}),
            dispute_resolution=dict(self.dispute_resolution or {}),
            variation_sequence=self.variation_sequence,
            signed_at=self.signed_at,
            completed_at=self.completed_at,
            terminated_at=self.terminated_at,
            termination_reason=self.termination_reason,
        )

    @staticmethod
    def row_values(record: ContractRecord) -> dict[str, Any]:
        """Column values for ``record`` (used for INSERT and conditional UPDATE)."""
        return {
            "contract_number": record.contract_number,
            "project_id": record.project_id,
            "work_breakdown_id": record.work_breakdown_id,
            "proposal_id": record.proposal_id,
            "purchaser_id": record.purchaser_id,
            "provider_id": record.provider_id,
            "status": record.status.value,
            "total_value": Decimal(record.terms.total_value),
            "currency": record.terms.currency,
            "terms": record.terms.to_dict(),
            "signatures": [s.to_dict() for s in record.signatures],
            "milestones": [m.to_dict() for m in record.milestones],
            "variations": [v.to_dict() for v in record.variations],
            "payments": [p.to_dict() for p in record.payments],
            "documents": [d.to_dict() for d in record.documents],
            "legal_compliance": record.legal_compliance,
            "consumer_protection": record.consumer_protection,
            "dispute_resolution": record.dispute_resolution,
            "variation_sequence": record.variation_sequence,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
            "signed_at": record.signed_at,
            "completed_at": record.completed_at,
            "terminated_at": record.terminated_at,
            "termination_reason": record.termination_reason,
        }

    def __repr__(self) -> str:
        return f"<Contract {self.contract_number} {self.status} v{self.version}>"

