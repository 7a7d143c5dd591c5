"""
ContractRepository -- version-checked contract persistence and lifecycle.

Responsibility:
    The only writer of the ``contracts`` table.  Creates contracts, reads
    them back as frozen ``ContractRecord`` objects, and applies every
    mutation through one retrying read-modify-write primitive
    (``mutate``) that validates status changes against the lifecycle and
    writes conditionally on the version it read.  Each successful mutating
    call hands exactly one ``AuditEntry`` to the injected audit sink.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the workflow services
    in ``contracts_services``.  Owns its transactions: every read and every
    write runs in its own short session from the injected factory.

Invariants enforced:
    - Optimistic concurrency:
          UPDATE contracts SET ..., version = v + 1
          WHERE id = :id AND version = :v
      A zero row count means another writer got there first; the whole
      read-apply-write cycle is retried, up to ``max_write_attempts``.
    - Status changes follow ``CONTRACT_LIFECYCLE`` and every guard on the
      walked edges holds for the signatures being written; setting the
      current status again is a no-op.
    - Party-index sort keys are ``status#timestamp`` and are recomputed
      only when status changes.
    - ``updated_at`` is bumped on every write.
    - One audit entry per mutating call, written after the commit,
      best-effort.
    - Contracts are never physically deleted.

Failure modes:
    - ContractNotFoundError: no row for the id.
    - ContractAlreadyExistsError: create() collided on the primary key.
    - InvalidStatusTransitionError: illegal status change.
    - TransitionGuardError: legal edge whose signature guard fails.
    - OptimisticLockError: version conflict persisted through every attempt.
    - StorageFailureError: any SQLAlchemyError, wrapped with an
      operation-scoped message.

Audit relevance:
    ``created``, ``status-changed`` and every domain action (signed,
    milestone-completed, variation-added, payment-made, document-added,
    terminated, cancelled) originate here.
"""

from __future__ import annotations

import random
from dataclasses import replace
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from contracts_kernel.domain.clock import Clock, SystemClock
from contracts_kernel.domain.lifecycle import (
    SIGNING_CHAIN,
    check_guards,
    derive_signing_status,
    party_sort_key,
    transition_path,
)
from contracts_kernel.domain.records import (
    AuditAction,
    AuditEntry,
    ContractChanges,
    ContractDraft,
    ContractRecord,
    ContractStatus,
    Document,
    Milestone,
    PartyRole,
    Payment,
    Signature,
    Variation,
)
from contracts_kernel.exceptions import (
    ContractAlreadyExistsError,
    ContractNotFoundError,
    InvalidContractStateError,
    InvalidPartyRoleError,
    InvalidVerificationCodeError,
    MilestoneNotFoundError,
    OptimisticLockError,
    PaymentExceedsContractValueError,
    StorageFailureError,
    VariationNotFoundError,
)
from contracts_kernel.logging_config import get_logger
from contracts_kernel.models.contract import ContractModel
from contracts_kernel.services.audit_recorder import AuditSink

logger = get_logger("services.contract_repository")

ContractMutation = Callable[[ContractRecord], ContractChanges]
AuditDetails = dict[str, Any] | Callable[[ContractRecord, ContractRecord], dict[str, Any]]


class _NullAuditSink:
    def record(self, entry: AuditEntry) -> None:
        return None


class ContractRepository:
    """
    Service object for contract storage.

    Contract:
        Callers pass contract ids and pure change functions; they never see
        sessions or ORM rows.

    Guarantees:
        - No lost updates: concurrent mutations of the same contract are
          serialised by the version check and retried.
        - A change function may be invoked more than once (once per
          attempt); it must be free of side effects other than raising.
        - Audit failures never surface to callers.

    Non-goals:
        - Does NOT decide business rules beyond the lifecycle and payment
          cap; the workflow services do.
    """

    DEFAULT_MAX_WRITE_ATTEMPTS = 5

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        id_factory: Callable[[], UUID] = uuid4,
        audit_sink: AuditSink | None = None,
        max_write_attempts: int = DEFAULT_MAX_WRITE_ATTEMPTS,
        rng: random.Random | None = None,
    ):
        if max_write_attempts < 1:
            raise ValueError("max_write_attempts must be at least 1")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._id_factory = id_factory
        self._audit = audit_sink or _NullAuditSink()
        self._max_write_attempts = max_write_attempts
        self._rng = rng or random.Random()

    @property
    def clock(self) -> Clock:
        return self._clock

    def new_id(self) -> UUID:
        return self._id_factory()

    # =========================================================================
    # Create / read
    # =========================================================================

    def create(self, draft: ContractDraft, actor: str) -> ContractRecord:
        """
        Persist a new contract in ``draft`` at version 1.

        Raises:
            ContractAlreadyExistsError: Identity collision.
            StorageFailureError: Store failure.
        """
        now = self._clock.now()
        record = ContractRecord(
            id=self._id_factory(),
            contract_number=draft.contract_number,
            project_id=draft.project_id,
            work_breakdown_id=draft.work_breakdown_id,
            proposal_id=draft.proposal_id,
            purchaser_id=draft.purchaser_id,
            provider_id=draft.provider_id,
            status=ContractStatus.DRAFT,
            version=1,
            terms=draft.terms,
            created_at=now,
            updated_at=now,
            signatures=draft.signatures,
            milestones=draft.milestones,
            variations=draft.variations,
            payments=draft.payments,
            documents=draft.documents,
            legal_compliance=draft.legal_compliance,
            consumer_protection=draft.consumer_protection,
            dispute_resolution=draft.dispute_resolution,
            variation_sequence=len(draft.variations),
        )
        sort_key = party_sort_key(record.status, now)

        session = self._session_factory()
        try:
            session.add(
                ContractModel(
                    id=record.id,
                    version=record.version,
                    purchaser_sort_key=sort_key,
                    provider_sort_key=sort_key,
                    **ContractModel.row_values(record),
                )
            )
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ContractAlreadyExistsError(str(record.id)) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "contract_create_failed",
                extra={"contract_number": record.contract_number},
                exc_info=True,
            )
            raise StorageFailureError("create contract", str(exc)) from exc
        finally:
            session.close()

        logger.info(
            "contract_created",
            extra={
                "contract_id": str(record.id),
                "contract_number": record.contract_number,
                "project_id": record.project_id,
                "total_value": str(record.terms.total_value),
            },
        )
        self._record_audit(
            record.id,
            AuditAction.CREATED,
            actor,
            details={
                "contract_number": record.contract_number,
                "project_id": record.project_id,
                "total_value": str(record.terms.total_value),
            },
            new_value={"status": record.status.value},
        )
        return record

    def get_by_id(self, contract_id: UUID) -> ContractRecord | None:
        session = self._session_factory()
        try:
            model = session.get(ContractModel, contract_id)
            return model.to_record() if model is not None else None
        except SQLAlchemyError as exc:
            raise StorageFailureError("get contract", str(exc)) from exc
        finally:
            session.close()

    def get(self, contract_id: UUID) -> ContractRecord:
        """Like get_by_id but raises ContractNotFoundError when absent."""
        record = self.get_by_id(contract_id)
        if record is None:
            raise ContractNotFoundError(str(contract_id))
        return record

    def get_by_party(
        self,
        party_id: str,
        role: PartyRole | str,
        status_filter: ContractStatus | None = None,
    ) -> list[ContractRecord]:
        """
        Contracts where ``party_id`` plays ``role``, by party sort key descending.

        The key is ``status#timestamp``, so results group by status and run
        newest first within a status.  ``status_filter`` restricts to sort
        keys with that status prefix.
        """
        try:
            role = PartyRole(role)
        except ValueError as exc:
            raise InvalidPartyRoleError(str(role)) from exc

        if role == PartyRole.PURCHASER:
            party_col, key_col = ContractModel.purchaser_id, ContractModel.purchaser_sort_key
        else:
            party_col, key_col = ContractModel.provider_id, ContractModel.provider_sort_key

        stmt = select(ContractModel).where(party_col == party_id)
        if status_filter is not None:
            stmt = stmt.where(key_col.startswith(f"{ContractStatus(status_filter).value}#"))
        stmt = stmt.order_by(key_col.desc(), ContractModel.id.desc())

        session = self._session_factory()
        try:
            return [m.to_record() for m in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            raise StorageFailureError("get contracts by party", str(exc)) from exc
        finally:
            session.close()

    def find_by_status(self, *statuses: ContractStatus) -> list[ContractRecord]:
        """Contracts currently in any of ``statuses``, oldest first."""
        stmt = (
            select(ContractModel)
            .where(ContractModel.status.in_([ContractStatus(s).value for s in statuses]))
            .order_by(ContractModel.created_at, ContractModel.id)
        )
        session = self._session_factory()
        try:
            return [m.to_record() for m in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            raise StorageFailureError("find contracts by status", str(exc)) from exc
        finally:
            session.close()

    def generate_contract_number(self, project_id: str) -> str:
        """``CON-YYYYMM-<first 8 of project id, upper>-<3 random digits>``."""
        now = self._clock.now()
        suffix = self._rng.randrange(1000)
        return f"CON-{now:%Y%m}-{project_id[:8].upper()}-{suffix:03d}"

    # =========================================================================
    # Generic mutation
    # =========================================================================

    def update(
        self,
        contract_id: UUID,
        changes: ContractChanges,
        actor: str,
    ) -> ContractRecord:
        """
        Merge a partial change into the current record.

        Writes a ``status-changed`` audit entry only when status changed.
        """
        return self.mutate(contract_id, lambda _current: changes, actor)

    def mutate(
        self,
        contract_id: UUID,
        fn: ContractMutation,
        actor: str,
        *,
        action: AuditAction | None = None,
        details: AuditDetails | None = None,
        ip_address: str = "system",
        user_agent: str = "system",
    ) -> ContractRecord:
        """
        Retrying read-modify-write.

        ``fn`` receives the current record and returns the changes to
        apply.  It is re-invoked on every attempt.  When ``action`` is None
        a ``status-changed`` entry is written if (and only if) status
        changed; otherwise one ``action`` entry is written.

        Returns:
            The record as written (or the unchanged record if ``fn``
            returned no changes).

        Raises:
            ContractNotFoundError, InvalidStatusTransitionError,
            OptimisticLockError, StorageFailureError, and anything ``fn``
            raises.
        """
        expected_version: int | None = None
        for attempt in range(1, self._max_write_attempts + 1):
            current = self.get(contract_id)
            expected_version = current.version
            changes = fn(current)
            if changes.status == current.status:
                changes = replace(changes, status=None)
            if changes.is_empty():
                return current

            updated = self._apply(current, changes)
            if self._write_conditional(current, updated):
                self._after_write(
                    current, updated, actor, action, details, ip_address, user_agent
                )
                return updated

            logger.warning(
                "write_conflict_retry",
                extra={
                    "contract_id": str(contract_id),
                    "attempt": attempt,
                    "max_attempts": self._max_write_attempts,
                    "expected_version": current.version,
                },
            )

        logger.error(
            "write_conflict_exhausted",
            extra={
                "contract_id": str(contract_id),
                "max_attempts": self._max_write_attempts,
            },
        )
        raise OptimisticLockError("Contract", str(contract_id), expected_version)

    def _apply(self, current: ContractRecord, changes: ContractChanges) -> ContractRecord:
        updated = changes.apply_to(current)
        if changes.status is not None:
            path = transition_path(str(current.id), current.status, changes.status)
            check_guards(str(current.id), path, updated.signatures)
        return replace(
            updated,
            version=current.version + 1,
            updated_at=self._clock.now(),
        )

    def _write_conditional(self, current: ContractRecord, updated: ContractRecord) -> bool:
        values = ContractModel.row_values(updated)
        values["version"] = updated.version
        if updated.status != current.status:
            sort_key = party_sort_key(updated.status, updated.updated_at)
            values["purchaser_sort_key"] = sort_key
            values["provider_sort_key"] = sort_key

        stmt = (
            update(ContractModel)
            .where(
                ContractModel.id == current.id,
                ContractModel.version == current.version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        session = self._session_factory()
        try:
            result = session.execute(stmt)
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "contract_write_failed",
                extra={"contract_id": str(current.id), "version": current.version},
                exc_info=True,
            )
            raise StorageFailureError("update contract", str(exc)) from exc
        finally:
            session.close()

    def _after_write(
        self,
        before: ContractRecord,
        after: ContractRecord,
        actor: str,
        action: AuditAction | None,
        details: AuditDetails | None,
        ip_address: str,
        user_agent: str,
    ) -> None:
        status_changed = before.status != after.status
        if status_changed:
            logger.info(
                "contract_status_changed",
                extra={
                    "contract_id": str(after.id),
                    "from_status": before.status.value,
                    "to_status": after.status.value,
                    "version": after.version,
                },
            )
        else:
            logger.debug(
                "contract_updated",
                extra={"contract_id": str(after.id), "version": after.version},
            )

        if action is None and not status_changed:
            return

        resolved = details(before, after) if callable(details) else dict(details or {})
        previous_value = new_value = None
        if status_changed:
            previous_value = {"status": before.status.value}
            new_value = {"status": after.status.value}
        self._record_audit(
            after.id,
            action or AuditAction.STATUS_CHANGED,
            actor,
            details=resolved,
            previous_value=previous_value,
            new_value=new_value,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def _record_audit(
        self,
        contract_id: UUID,
        action: AuditAction,
        actor: str,
        *,
        details: dict[str, Any] | None = None,
        previous_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
        ip_address: str = "system",
        user_agent: str = "system",
    ) -> None:
        self._audit.record(
            AuditEntry(
                id=self._id_factory(),
                contract_id=contract_id,
                action=action,
                performed_by=actor,
                performed_at=self._clock.now(),
                details=details or {},
                ip_address=ip_address,
                user_agent=user_agent,
                previous_value=previous_value,
                new_value=new_value,
            )
        )

    # =========================================================================
    # Domain paths
    # =========================================================================

    def add_signature(
        self,
        contract_id: UUID,
        signature: Signature,
        actor: str,
        *,
        expected_code_hash: str | None = None,
        ip_address: str = "system",
        user_agent: str = "system",
    ) -> ContractRecord:
        """
        Store a processed signature and recompute the contract status.

        The record with ``signature.id`` is replaced.  ``signed_at`` is set
        the first time every signature is signed.  When
        ``expected_code_hash`` is given, the stored record must still carry
        that verification code hash at write time, so a code consumed or
        re-issued since the caller read the contract is refused.

        Raises:
            InvalidVerificationCodeError: The stored code hash no longer
                matches ``expected_code_hash``.
            InvalidContractStateError: Contract is not collecting signatures,
                or the signature was already signed by a concurrent call.
        """

        def apply(current: ContractRecord) -> ContractChanges:
            if current.status not in SIGNING_CHAIN[:2]:
                raise InvalidContractStateError(
                    str(current.id), current.status.value, "sign"
                )
            existing = current.signature(signature.id)
            if expected_code_hash is not None and (
                existing is None
                or existing.verification_code_hash is None
                or existing.verification_code_hash != expected_code_hash
            ):
                raise InvalidVerificationCodeError(str(current.id), signature.id)
            if existing is not None and existing.is_signed:
                raise InvalidContractStateError(
                    str(current.id), current.status.value, "re-sign signature"
                )
            signatures = _replace_by_id(current.signatures, signature)
            status = derive_signing_status(current.status, signatures)
            signed_at = None
            if (
                status == ContractStatus.FULLY_SIGNED
                and current.signed_at is None
            ):
                signed_at = self._clock.now()
            return ContractChanges(
                signatures=signatures,
                status=status,
                signed_at=signed_at,
            )

        def audit_details(before: ContractRecord, after: ContractRecord) -> dict[str, Any]:
            return {
                "signature_id": signature.id,
                "signer_name": signature.signer_name,
                "signer_role": signature.party.value,
                "signature_status": signature.status.value,
                "all_signed": after.all_signed,
            }

        return self.mutate(
            contract_id,
            apply,
            actor,
            action=AuditAction.SIGNED,
            details=audit_details,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    def update_milestone(
        self,
        contract_id: UUID,
        milestone_id: str,
        fn: Callable[[Milestone], Milestone],
        actor: str,
        action: AuditAction = AuditAction.MILESTONE_COMPLETED,
    ) -> ContractRecord:
        """Replace one milestone with ``fn(milestone)``."""

        def apply(current: ContractRecord) -> ContractChanges:
            milestone = current.milestone(milestone_id)
            if milestone is None:
                raise MilestoneNotFoundError(str(current.id), milestone_id)
            return ContractChanges(
                milestones=_replace_by_id(current.milestones, fn(milestone)),
            )

        def audit_details(before: ContractRecord, after: ContractRecord) -> dict[str, Any]:
            milestone = after.milestone(milestone_id)
            return {
                "milestone_id": milestone_id,
                "milestone_name": milestone.name,
                "status": milestone.status.value,
            }

        return self.mutate(
            contract_id, apply, actor, action=action, details=audit_details
        )

    def add_variation(
        self,
        contract_id: UUID,
        build: Callable[[str], Variation],
        actor: str,
    ) -> tuple[ContractRecord, Variation]:
        """
        Append a variation numbered from the durable per-contract counter.

        ``build`` receives the allocated ``VAR-NNN`` number.  The counter
        and the collection are written in the same conditional update, so
        numbers are unique and strictly increasing.
        """
        built: dict[str, Variation] = {}

        def apply(current: ContractRecord) -> ContractChanges:
            sequence = current.variation_sequence + 1
            variation = build(f"VAR-{sequence:03d}")
            built["variation"] = variation
            return ContractChanges(
                variations=current.variations + (variation,),
                variation_sequence=sequence,
            )

        def audit_details(before: ContractRecord, after: ContractRecord) -> dict[str, Any]:
            variation = built["variation"]
            return {
                "variation_id": variation.id,
                "variation_number": variation.variation_number,
                "cost_impact": str(variation.cost_impact),
                "time_impact": variation.time_impact,
            }

        record = self.mutate(
            contract_id,
            apply,
            actor,
            action=AuditAction.VARIATION_ADDED,
            details=audit_details,
        )
        return record, built["variation"]

    def update_variation(
        self,
        contract_id: UUID,
        variation_id: str,
        fn: Callable[[Variation], Variation],
        actor: str,
    ) -> ContractRecord:
        """Replace one variation with ``fn(variation)``."""

        def apply(current: ContractRecord) -> ContractChanges:
            variation = current.variation(variation_id)
            if variation is None:
                raise VariationNotFoundError(str(current.id), variation_id)
            return ContractChanges(
                variations=_replace_by_id(current.variations, fn(variation)),
            )

        def audit_details(before: ContractRecord, after: ContractRecord) -> dict[str, Any]:
            variation = after.variation(variation_id)
            return {
                "variation_id": variation_id,
                "variation_number": variation.variation_number,
                "status": variation.status.value,
                "cost_impact": str(variation.cost_impact),
            }

        return self.mutate(
            contract_id,
            apply,
            actor,
            action=AuditAction.VARIATION_DECIDED,
            details=audit_details,
        )

    def record_payment(
        self,
        contract_id: UUID,
        payment: Payment,
        actor: str,
    ) -> ContractRecord:
        """
        Append a payment.

        Raises:
            MilestoneNotFoundError: Payment references an unknown milestone.
            PaymentExceedsContractValueError: Cumulative payments would
                exceed total value plus approved variation cost.
        """

        def apply(current: ContractRecord) -> ContractChanges:
            if current.milestone(payment.milestone_id) is None:
                raise MilestoneNotFoundError(str(current.id), payment.milestone_id)
            payable = current.terms.total_value + current.approved_variation_cost
            attempted = current.total_paid + payment.amount
            if attempted > payable:
                raise PaymentExceedsContractValueError(
                    str(current.id), str(attempted), str(payable)
                )
            return ContractChanges(payments=current.payments + (payment,))

        return self.mutate(
            contract_id,
            apply,
            actor,
            action=AuditAction.PAYMENT_MADE,
            details={
                "payment_id": payment.id,
                "amount": str(payment.amount),
                "milestone_id": payment.milestone_id,
            },
        )

    def add_document(
        self,
        contract_id: UUID,
        document: Document,
        actor: str,
    ) -> ContractRecord:
        return self.mutate(
            contract_id,
            lambda current: ContractChanges(documents=current.documents + (document,)),
            actor,
            action=AuditAction.DOCUMENT_ADDED,
            details={
                "document_id": document.id,
                "name": document.name,
                "type": document.type,
            },
        )

    def terminate(self, contract_id: UUID, reason: str, actor: str) -> ContractRecord:
        """Move an active contract to ``terminated`` and stamp reason and time."""
        terminated_at = self._clock.now()

        def apply(current: ContractRecord) -> ContractChanges:
            if current.status == ContractStatus.TERMINATED:
                return ContractChanges()
            return ContractChanges(
                status=ContractStatus.TERMINATED,
                terminated_at=terminated_at,
                termination_reason=reason,
            )

        return self.mutate(
            contract_id,
            apply,
            actor,
            action=AuditAction.TERMINATED,
            details={"reason": reason, "terminated_at": terminated_at.isoformat()},
        )

    def cancel(self, contract_id: UUID, actor: str) -> ContractRecord:
        """Soft delete: move a non-terminal contract to ``cancelled``."""
        return self.mutate(
            contract_id,
            lambda _current: ContractChanges(status=ContractStatus.CANCELLED),
            actor,
            action=AuditAction.CANCELLED,
        )


def _replace_by_id(items: tuple, item: Any) -> tuple:
    """Replace the element with ``item.id`` in place, or append it."""
    replaced = False
    result = []
    for existing in items:
        if existing.id == item.id:
            result.append(item)
            replaced = True
        else:
            result.append(existing)
    if not replaced:
        result.append(item)
    return tuple(result)
