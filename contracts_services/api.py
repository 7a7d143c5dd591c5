"""
contracts_services.api -- command facade with a uniform response envelope.

Responsibility:
    One method per externally exposed command (generate, request-signature,
    process-signature, add-variation, complete-milestone, record-payment,
    update-status, get-statistics).  Each runs one workflow call under a
    fresh request id and wraps the outcome in

        {"success": bool, "data" | "error": ..., "timestamp": ..., "requestId": ...}

    together with an HTTP-like status code.

Architecture position:
    Services -- outermost layer of this package.  A web framework (not
    part of this package) maps ``CommandResponse`` onto its own response
    type.

Invariants enforced:
    - Status codes come from ``ErrorKind.http_status`` of the raised
      exception type, never from message text.
    - Every command returns an envelope.  An exception outside the typed
      hierarchy is logged with its traceback and reported as a 500
      ``STORAGE_FAILURE``.
    - Raw secrets never appear in responses except the verification code,
      which request-signature returns for out-of-band delivery.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Mapping
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from contracts_kernel.db.engine import session_scope
from contracts_kernel.domain.clock import Clock
from contracts_kernel.domain.records import ContractRecord, iso
from contracts_kernel.exceptions import ContractsKernelError, ErrorKind
from contracts_kernel.logging_config import LogContext, get_logger
from contracts_kernel.selectors.contract_selector import ContractSelector
from contracts_services.contract_generation import ContractGenerator, GenerationRequest
from contracts_services.lifecycle_service import ContractLifecycleService
from contracts_services.milestone_tracker import MilestoneTracker
from contracts_services.signature_workflow import SignatureWorkflow
from contracts_services.variation_manager import VariationManager

logger = get_logger("services.api")


@dataclass(frozen=True)
class CommandResponse:
    status_code: int
    body: dict[str, Any]

    @property
    def success(self) -> bool:
        return bool(self.body.get("success"))


def contract_summary(record: ContractRecord) -> dict[str, Any]:
    """Public view of a contract: no secret hashes, no raw signature payloads."""
    return {
        "id": str(record.id),
        "contract_number": record.contract_number,
        "project_id": record.project_id,
        "purchaser_id": record.purchaser_id,
        "provider_id": record.provider_id,
        "status": record.status.value,
        "version": record.version,
        "total_value": str(record.terms.total_value),
        "currency": record.terms.currency,
        "signatures": [
            {
                "id": s.id,
                "party": s.party.value,
                "signer_name": s.signer_name,
                "status": s.status.value,
                "signed_at": iso(s.signed_at),
                "expires_at": iso(s.expires_at),
            }
            for s in record.signatures
        ],
        "milestones": [m.to_dict() for m in record.milestones],
        "variations": [v.to_dict() for v in record.variations],
        "payments": [p.to_dict() for p in record.payments],
        "created_at": iso(record.created_at),
        "updated_at": iso(record.updated_at),
        "signed_at": iso(record.signed_at),
    }


class ContractCommands:
    """Uniform-envelope entry points over the workflow services."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock,
        generator: ContractGenerator,
        signatures: SignatureWorkflow,
        milestones: MilestoneTracker,
        variations: VariationManager,
        lifecycle: ContractLifecycleService,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._generator = generator
        self._signatures = signatures
        self._milestones = milestones
        self._variations = variations
        self._lifecycle = lifecycle

    # =========================================================================
    # Commands
    # =========================================================================

    def generate(self, payload: Mapping[str, Any]) -> CommandResponse:
        def run() -> CommandResponse | dict[str, Any]:
            result = self._generator.generate_contract(GenerationRequest.from_dict(payload))
            if not result.success:
                kind = result.error_kind or ErrorKind.STORAGE_FAILURE
                return self._failure(
                    kind,
                    kind.value.upper(),
                    "; ".join(result.errors),
                    details={"errors": list(result.errors)},
                )
            return result.to_dict()

        return self._execute("generate", run, created=True)

    def request_signature(self, contract_id: str, payload: Mapping[str, Any]) -> CommandResponse:
        def run() -> dict[str, Any]:
            result = self._signatures.request_signature(
                UUID(contract_id),
                signer_email=payload["signer_email"],
                signer_name=payload["signer_name"],
                role=payload["signer_role"],
                signature_type=payload.get("signature_type", "electronic"),
                witness_required=bool(payload.get("witness_required", False)),
                expiry_days=payload.get("expiry_days"),
                reminder_days=payload.get("reminder_days"),
                actor=payload.get("requested_by", "system"),
            )
            return result.to_dict()

        return self._execute("request_signature", run, contract_id=contract_id)

    def process_signature(
        self,
        contract_id: str,
        signature_id: str,
        payload: Mapping[str, Any],
    ) -> CommandResponse:
        def run() -> dict[str, Any]:
            result = self._signatures.process_signature(
                UUID(contract_id),
                signature_id,
                signature_data=payload["signature_data"],
                verification_code=payload["verification_code"],
                ip_address=payload.get("ip_address", "unknown"),
                user_agent=payload.get("user_agent", "unknown"),
                signing_token=payload.get("signing_token"),
            )
            return result.to_dict()

        return self._execute("process_signature", run, contract_id=contract_id)

    def add_variation(self, contract_id: str, payload: Mapping[str, Any]) -> CommandResponse:
        def run() -> dict[str, Any]:
            record, variation = self._variations.add_variation(
                UUID(contract_id), payload, payload.get("requested_by", "system")
            )
            return {"contract": contract_summary(record), "variation": variation.to_dict()}

        return self._execute("add_variation", run, created=True, contract_id=contract_id)

    def complete_milestone(
        self,
        contract_id: str,
        milestone_id: str,
        payload: Mapping[str, Any],
    ) -> CommandResponse:
        def run() -> dict[str, Any]:
            record = self._milestones.complete_milestone(
                UUID(contract_id),
                milestone_id,
                completed_by=payload["completed_by"],
                notes=payload.get("notes"),
            )
            return contract_summary(record)

        return self._execute("complete_milestone", run, contract_id=contract_id)

    def record_payment(self, contract_id: str, payload: Mapping[str, Any]) -> CommandResponse:
        def run() -> dict[str, Any]:
            record, payment = self._milestones.record_payment(
                UUID(contract_id), payload, payload.get("recorded_by", "system")
            )
            return {"contract": contract_summary(record), "payment": payment.to_dict()}

        return self._execute("record_payment", run, created=True, contract_id=contract_id)

    def update_status(self, contract_id: str, payload: Mapping[str, Any]) -> CommandResponse:
        def run() -> dict[str, Any]:
            record = self._lifecycle.update_status(
                UUID(contract_id),
                payload["status"],
                payload.get("updated_by", "system"),
                payload.get("reason"),
            )
            return contract_summary(record)

        return self._execute("update_status", run, contract_id=contract_id)

    def get_statistics(self, party_id: str, role: str) -> CommandResponse:
        def run() -> dict[str, Any]:
            with session_scope(self._session_factory) as session:
                return ContractSelector(session).get_statistics(party_id, role).to_dict()

        return self._execute("get_statistics", run)

    # =========================================================================
    # Envelope
    # =========================================================================

    def _execute(
        self,
        command: str,
        fn: Callable[[], CommandResponse | dict[str, Any]],
        created: bool = False,
        contract_id: str | None = None,
    ) -> CommandResponse:
        request_id = str(uuid4())
        with LogContext.bind(request_id=request_id, contract_id=contract_id):
            try:
                outcome = fn()
            except ContractsKernelError as exc:
                logger.warning(
                    "command_failed",
                    extra={"command": command, "error_code": exc.code, "kind": exc.kind.value},
                )
                return self._failure(exc.kind, exc.code, str(exc), request_id=request_id)
            except (KeyError, ValueError) as exc:
                logger.warning(
                    "command_rejected",
                    extra={"command": command, "reason": str(exc)},
                )
                return self._failure(
                    ErrorKind.VALIDATION_FAILED,
                    "INVALID_REQUEST",
                    f"Invalid request: {exc}",
                    request_id=request_id,
                )
            except Exception:  # noqa: BLE001
                logger.error(
                    "command_crashed",
                    extra={"command": command},
                    exc_info=True,
                )
                return self._failure(
                    ErrorKind.STORAGE_FAILURE,
                    ErrorKind.STORAGE_FAILURE.value.upper(),
                    f"Failed to {command.replace('_', ' ')}",
                    request_id=request_id,
                )

            if isinstance(outcome, CommandResponse):
                outcome.body["requestId"] = request_id
                return outcome
            logger.debug("command_succeeded", extra={"command": command})
            return CommandResponse(
                status_code=201 if created else 200,
                body={
                    "success": True,
                    "data": outcome,
                    "timestamp": iso(self._clock.now()),
                    "requestId": request_id,
                },
            )

    def _failure(
        self,
        kind: ErrorKind,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> CommandResponse:
        error: dict[str, Any] = {"code": code, "kind": kind.value, "message": message}
        if details:
            error["details"] = details
        return CommandResponse(
            status_code=kind.http_status,
            body={
                "success": False,
                "error": error,
                "timestamp": iso(self._clock.now()),
                "requestId": request_id,
            },
        )
