"""
contracts_services.lifecycle_service -- post-signing lifecycle of a contract.

Responsibility:
    Activation, suspension, resumption, dispute and resolution, completion,
    termination and cancellation, plus the linked-project status side
    effects of activation, completion and termination.

Architecture position:
    Services -- orchestration over ContractRepository and the
    ProjectGateway port.

Invariants enforced:
    - Every change follows ``CONTRACT_LIFECYCLE``; the repository rejects
      anything else with InvalidStatusTransitionError.
    - The project side effect runs after the contract write has committed,
      and only when the status actually changed.
    - A failed project side effect is logged and re-raised as
      StorageFailureError; the contract write stands.

Project status mapping:
    active     -> project ``active``
    completed  -> project ``completed``
    terminated -> project ``cancelled``
"""

from __future__ import annotations

from uuid import UUID

from contracts_kernel.domain.records import (
    AuditAction,
    ContractChanges,
    ContractRecord,
    ContractStatus,
)
from contracts_kernel.exceptions import InvalidContractStateError, StorageFailureError
from contracts_kernel.logging_config import get_logger
from contracts_kernel.services.contract_repository import ContractRepository
from contracts_services.collaborators import ProjectGateway

logger = get_logger("services.lifecycle")

_PROJECT_STATUS = {
    ContractStatus.ACTIVE: "active",
    ContractStatus.COMPLETED: "completed",
    ContractStatus.TERMINATED: "cancelled",
}


class ContractLifecycleService:
    def __init__(self, repository: ContractRepository, projects: ProjectGateway):
        self._repository = repository
        self._projects = projects

    def update_status(
        self,
        contract_id: UUID,
        status: ContractStatus | str,
        actor: str,
        reason: str | None = None,
    ) -> ContractRecord:
        """
        Move a contract to ``status`` and apply the project side effect.

        Raises:
            InvalidStatusTransitionError: ``status`` is not reachable.
            StorageFailureError: Store or project update failed.
        """
        status = ContractStatus(status)
        if status == ContractStatus.TERMINATED:
            return self.terminate(contract_id, reason or "No reason provided", actor)
        if status == ContractStatus.CANCELLED:
            return self.cancel(contract_id, actor)

        now = self._repository.clock.now()
        previous: dict[str, ContractStatus] = {}

        def apply(current: ContractRecord) -> ContractChanges:
            previous["status"] = current.status
            return ContractChanges(
                status=status,
                completed_at=now if status == ContractStatus.COMPLETED else None,
            )

        record = self._repository.mutate(
            contract_id,
            apply,
            actor,
            action=AuditAction.DISPUTED if status == ContractStatus.DISPUTED else None,
            details={"reason": reason} if reason else None,
        )
        self._after_change(record, previous.get("status"))
        return record

    def activate(self, contract_id: UUID, actor: str) -> ContractRecord:
        return self.update_status(contract_id, ContractStatus.ACTIVE, actor)

    def suspend(self, contract_id: UUID, actor: str, reason: str | None = None) -> ContractRecord:
        return self.update_status(contract_id, ContractStatus.SUSPENDED, actor, reason)

    def resume(self, contract_id: UUID, actor: str) -> ContractRecord:
        return self.update_status(contract_id, ContractStatus.ACTIVE, actor)

    def dispute(self, contract_id: UUID, actor: str, reason: str | None = None) -> ContractRecord:
        return self.update_status(contract_id, ContractStatus.DISPUTED, actor, reason)

    def resolve_dispute(
        self, contract_id: UUID, actor: str, resolution: str | None = None
    ) -> ContractRecord:
        """Return a disputed contract to ``active``, audited as ``resolved``."""

        def apply(current: ContractRecord) -> ContractChanges:
            if current.status != ContractStatus.DISPUTED:
                raise InvalidContractStateError(
                    str(current.id), current.status.value, "resolve dispute"
                )
            return ContractChanges(status=ContractStatus.ACTIVE)

        return self._repository.mutate(
            contract_id,
            apply,
            actor,
            action=AuditAction.RESOLVED,
            details={"resolution": resolution} if resolution else None,
        )

    def complete(self, contract_id: UUID, actor: str) -> ContractRecord:
        return self.update_status(contract_id, ContractStatus.COMPLETED, actor)

    def terminate(self, contract_id: UUID, reason: str, actor: str) -> ContractRecord:
        before = self._repository.get(contract_id)
        record = self._repository.terminate(contract_id, reason, actor)
        logger.info(
            "contract_terminated",
            extra={"contract_id": str(contract_id), "reason": reason},
        )
        self._after_change(record, before.status)
        return record

    def cancel(self, contract_id: UUID, actor: str) -> ContractRecord:
        return self._repository.cancel(contract_id, actor)

    def _after_change(self, record: ContractRecord, previous: ContractStatus | None) -> None:
        if previous == record.status:
            return
        project_status = _PROJECT_STATUS.get(record.status)
        if project_status is None:
            return
        try:
            self._projects.set_project_status(record.project_id, project_status)
        except Exception as exc:
            logger.error(
                "project_status_update_failed",
                extra={
                    "contract_id": str(record.id),
                    "project_id": record.project_id,
                    "project_status": project_status,
                },
                exc_info=True,
            )
            raise StorageFailureError("update project status", str(exc)) from exc
        logger.info(
            "project_status_updated",
            extra={
                "contract_id": str(record.id),
                "project_id": record.project_id,
                "project_status": project_status,
            },
        )
