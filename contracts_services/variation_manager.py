"""
contracts_services.variation_manager -- change orders on a contract.

Responsibility:
    Raises variations numbered ``VAR-NNN`` from the contract's durable
    counter and records approval or rejection decisions.

Architecture position:
    Services -- thin orchestration over ContractRepository.

Invariants enforced:
    - Variation numbers are unique per contract and strictly increasing;
      the number is allocated inside the same versioned write that appends
      the variation.
    - Only ``requested`` or ``under-review`` variations can be decided.
    - Approved cost impact raises the payable value used by the payment cap.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from contracts_kernel.db.types import to_decimal
from contracts_kernel.domain.records import (
    ContractRecord,
    Variation,
    VariationStatus,
)
from contracts_kernel.exceptions import InvalidVariationStateError
from contracts_kernel.logging_config import get_logger
from contracts_kernel.services.contract_repository import ContractRepository

logger = get_logger("services.variation_manager")

_OPEN_VARIATION_STATUSES = (VariationStatus.REQUESTED, VariationStatus.UNDER_REVIEW)


@dataclass(frozen=True)
class VariationInput:
    description: str
    reason: str
    cost_impact: Decimal = Decimal("0")
    time_impact: int = 0
    specification: str = ""
    approval_required: bool = True
    documents: tuple[str, ...] = ()
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VariationInput:
        return cls(
            description=data["description"],
            reason=data.get("reason", ""),
            cost_impact=to_decimal(data.get("cost_impact", "0")),
            time_impact=int(data.get("time_impact", 0)),
            specification=data.get("specification", ""),
            approval_required=bool(data.get("approval_required", True)),
            documents=tuple(data.get("documents", ())),
            notes=data.get("notes"),
        )


class VariationManager:
    def __init__(self, repository: ContractRepository):
        self._repository = repository

    def add_variation(
        self,
        contract_id: UUID,
        variation_data: VariationInput | Mapping[str, Any],
        requested_by: str,
    ) -> tuple[ContractRecord, Variation]:
        """Append a ``requested`` variation with the next ``VAR-NNN`` number."""
        if not isinstance(variation_data, VariationInput):
            variation_data = VariationInput.from_dict(variation_data)
        variation_id = str(self._repository.new_id())
        requested_at = self._repository.clock.now()

        def build(number: str) -> Variation:
            return Variation(
                id=variation_id,
                variation_number=number,
                description=variation_data.description,
                reason=variation_data.reason,
                requested_by=requested_by,
                requested_at=requested_at,
                cost_impact=variation_data.cost_impact,
                time_impact=variation_data.time_impact,
                specification=variation_data.specification,
                approval_required=variation_data.approval_required,
                documents=variation_data.documents,
                notes=variation_data.notes,
            )

        record, variation = self._repository.add_variation(contract_id, build, requested_by)
        logger.info(
            "variation_added",
            extra={
                "contract_id": str(contract_id),
                "variation_id": variation.id,
                "variation_number": variation.variation_number,
                "cost_impact": str(variation.cost_impact),
            },
        )
        return record, variation

    def approve_variation(
        self,
        contract_id: UUID,
        variation_id: str,
        approved_by: str,
        notes: str | None = None,
    ) -> ContractRecord:
        return self._decide(
            contract_id, variation_id, VariationStatus.APPROVED, approved_by, notes
        )

    def reject_variation(
        self,
        contract_id: UUID,
        variation_id: str,
        rejected_by: str,
        notes: str | None = None,
    ) -> ContractRecord:
        return self._decide(
            contract_id, variation_id, VariationStatus.REJECTED, rejected_by, notes
        )

    def _decide(
        self,
        contract_id: UUID,
        variation_id: str,
        decision: VariationStatus,
        actor: str,
        notes: str | None,
    ) -> ContractRecord:
        now = self._repository.clock.now()

        def decide(variation: Variation) -> Variation:
            if variation.status not in _OPEN_VARIATION_STATUSES:
                raise InvalidVariationStateError(variation.id, variation.status.value)
            return replace(
                variation,
                status=decision,
                approved_by=actor,
                approved_at=now,
                notes=notes if notes is not None else variation.notes,
            )

        record = self._repository.update_variation(contract_id, variation_id, decide, actor)
        logger.info(
            "variation_decided",
            extra={
                "contract_id": str(contract_id),
                "variation_id": variation_id,
                "decision": decision.value,
            },
        )
        return record
