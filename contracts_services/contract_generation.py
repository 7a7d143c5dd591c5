"""
contracts_services.contract_generation -- draft contracts from accepted proposals.

Responsibility:
    Validates a generation request, fetches the proposal, work breakdown,
    project and both party profiles concurrently, derives the terms snapshot
    and every generated block through ``contracts_engines.terms``, and
    persists the new ``draft`` contract in one repository call.

Architecture position:
    Services -- orchestration over the collaborator ports, the pure terms
    engine and ContractRepository.

Invariants enforced:
    - All-or-nothing: nothing is persisted (and no audit entry is written)
      unless every step up to ``ContractRepository.create`` succeeded.
    - A proposal that is not ``selected`` is rejected with exactly
      ``Quote must be selected before generating contract``.
    - Any missing collaborator record yields ``Required data not found``.
    - Any other failure, including a collaborator raising or returning a
      malformed payload, yields ``Failed to generate contract``.

Failure modes:
    Failures are returned as ``GenerationResult(success=False, ...)`` with
    an ``error_kind``; nothing is raised to the caller.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from contracts_config import ContractsConfig
from contracts_engines.terms import (
    GenerationPreferences,
    TermsPolicy,
    build_contract_terms,
    consumer_protection_terms,
    dispute_resolution_terms,
    legal_compliance,
    legal_review_required,
    milestones_from_work_breakdown,
    recommendations,
    signature_placeholders,
)
from contracts_kernel.domain.records import ContractDraft, ContractRecord
from contracts_kernel.exceptions import ErrorKind
from contracts_kernel.logging_config import LogContext, get_logger
from contracts_kernel.services.contract_repository import ContractRepository
from contracts_services.collaborators import (
    PartyDirectory,
    ProjectGateway,
    ProposalLookup,
    WorkBreakdownLookup,
)

logger = get_logger("services.contract_generation")

PROPOSAL_NOT_SELECTED = "Quote must be selected before generating contract"
REQUIRED_DATA_NOT_FOUND = "Required data not found"
GENERATION_FAILED = "Failed to generate contract"
LEGAL_REVIEW_WARNING = "Legal review required due to compliance issues"

_SELECTED = "selected"


@dataclass(frozen=True)
class GenerationRequest:
    project_id: str
    work_breakdown_id: str
    proposal_id: str
    purchaser_id: str
    provider_id: str
    preferences: GenerationPreferences = field(default_factory=GenerationPreferences)
    additional_clauses: tuple[str, ...] = ()
    requested_by: str = "system"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GenerationRequest:
        custom = data.get("custom_terms") or {}
        return cls(
            project_id=data.get("project_id") or "",
            work_breakdown_id=data.get("work_breakdown_id") or "",
            proposal_id=data.get("proposal_id") or "",
            purchaser_id=data.get("purchaser_id") or "",
            provider_id=data.get("provider_id") or "",
            preferences=GenerationPreferences.from_dict(data.get("preferences")),
            additional_clauses=tuple(custom.get("additional_clauses", ())),
            requested_by=data.get("requested_by") or "system",
        )


@dataclass(frozen=True)
class GenerationResult:
    success: bool
    contract: ContractRecord | None = None
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    legal_review_required: bool = False
    compliance_issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()
    generation_time_ms: int = 0
    error_kind: ErrorKind | None = None

    @property
    def contract_id(self):
        return self.contract.id if self.contract is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "contract_id": str(self.contract_id) if self.contract_id else None,
            "contract_number": self.contract.contract_number if self.contract else None,
            "status": self.contract.status.value if self.contract else None,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "legal_review_required": self.legal_review_required,
            "compliance_issues": list(self.compliance_issues),
            "recommendations": list(self.recommendations),
            "generation_time_ms": self.generation_time_ms,
        }


def terms_policy(config: ContractsConfig) -> TermsPolicy:
    """Project the generation settings of ``config`` onto the engine policy."""
    names = {f.name for f in fields(TermsPolicy)}
    return TermsPolicy(
        **{name: getattr(config, name) for name in names if hasattr(config, name)}
    )


class ContractGenerator:
    """
    Contract generation orchestrator.

    Contract:
        ``generate_contract(request)`` returns a GenerationResult.  On
        success the contract exists in ``draft`` with two pending signature
        placeholders; on failure nothing was written.
    """

    FETCH_WORKERS = 5

    def __init__(
        self,
        repository: ContractRepository,
        proposals: ProposalLookup,
        work_breakdowns: WorkBreakdownLookup,
        projects: ProjectGateway,
        parties: PartyDirectory,
        config: ContractsConfig | None = None,
    ):
        self._repository = repository
        self._proposals = proposals
        self._work_breakdowns = work_breakdowns
        self._projects = projects
        self._parties = parties
        self._config = config or ContractsConfig()
        self._policy = terms_policy(self._config)

    def generate_contract(self, request: GenerationRequest) -> GenerationResult:
        started = time.monotonic()

        def elapsed() -> int:
            return int((time.monotonic() - started) * 1000)

        with LogContext.bind(actor_id=request.requested_by):
            try:
                errors = self.validate_request(request)
                if errors:
                    logger.info(
                        "contract_generation_rejected",
                        extra={"proposal_id": request.proposal_id, "errors": errors},
                    )
                    return GenerationResult(
                        success=False,
                        errors=tuple(errors),
                        generation_time_ms=elapsed(),
                        error_kind=ErrorKind.VALIDATION_FAILED,
                    )

                proposal, work_breakdown, project, purchaser, provider = self._fetch_all(request)
                if None in (proposal, work_breakdown, project, purchaser, provider):
                    logger.warning(
                        "contract_generation_data_missing",
                        extra={
                            "proposal_found": proposal is not None,
                            "work_breakdown_found": work_breakdown is not None,
                            "project_found": project is not None,
                            "purchaser_found": purchaser is not None,
                            "provider_found": provider is not None,
                        },
                    )
                    return GenerationResult(
                        success=False,
                        errors=(REQUIRED_DATA_NOT_FOUND,),
                        generation_time_ms=elapsed(),
                        error_kind=ErrorKind.REQUIRED_DATA_MISSING,
                    )

                return self._generate(
                    request, proposal, work_breakdown, project, purchaser, provider, elapsed
                )
            except Exception:  # noqa: BLE001
                logger.error(
                    "contract_generation_failed",
                    extra={"proposal_id": request.proposal_id},
                    exc_info=True,
                )
                return GenerationResult(
                    success=False,
                    errors=(GENERATION_FAILED,),
                    generation_time_ms=elapsed(),
                    error_kind=ErrorKind.STORAGE_FAILURE,
                )

    def validate_request(self, request: GenerationRequest) -> list[str]:
        """Identifier presence plus the proposal-selected rule."""
        errors: list[str] = []
        if not request.project_id:
            errors.append("Project ID is required")
        if not request.work_breakdown_id:
            errors.append("SoW ID is required")
        if not request.proposal_id:
            errors.append("Quote ID is required")
        if not request.purchaser_id:
            errors.append("Homeowner ID is required")
        if not request.provider_id:
            errors.append("Builder ID is required")

        if request.proposal_id:
            lookup = self._proposals.get_proposal(request.proposal_id)
            proposal = lookup.data if lookup.success else None
            if not proposal or proposal.get("status") != _SELECTED:
                errors.append(PROPOSAL_NOT_SELECTED)
        return errors

    def _fetch_all(self, request: GenerationRequest) -> tuple[dict | None, ...]:
        with ThreadPoolExecutor(
            max_workers=self.FETCH_WORKERS, thread_name_prefix="contract-generation"
        ) as pool:
            proposal = pool.submit(self._proposals.get_proposal, request.proposal_id)
            work_breakdown = pool.submit(
                self._work_breakdowns.get_work_breakdown, request.work_breakdown_id
            )
            project = pool.submit(self._projects.get_project, request.project_id)
            purchaser = pool.submit(self._parties.get_user, request.purchaser_id)
            provider = pool.submit(self._parties.get_user, request.provider_id)

            lookup = proposal.result()
            return (
                lookup.data if lookup.success else None,
                work_breakdown.result(),
                project.result(),
                purchaser.result(),
                provider.result(),
            )

    def _generate(
        self,
        request: GenerationRequest,
        proposal: dict,
        work_breakdown: dict,
        project: dict,
        purchaser: dict,
        provider: dict,
        elapsed,
    ) -> GenerationResult:
        now = self._repository.clock.now()

        def new_id() -> str:
            return str(self._repository.new_id())

        terms = build_contract_terms(
            proposal,
            work_breakdown,
            request.preferences,
            self._policy,
            now,
            new_id,
            additional_terms=request.additional_clauses,
        )
        compliance = legal_compliance(terms, project, now)
        warnings: list[str] = []
        review = legal_review_required(compliance)
        if review:
            warnings.append(LEGAL_REVIEW_WARNING)

        draft = ContractDraft(
            project_id=request.project_id,
            work_breakdown_id=request.work_breakdown_id,
            proposal_id=request.proposal_id,
            purchaser_id=request.purchaser_id,
            provider_id=request.provider_id,
            contract_number=self._repository.generate_contract_number(request.project_id),
            terms=terms,
            signatures=signature_placeholders(purchaser, provider, now, new_id),
            milestones=milestones_from_work_breakdown(work_breakdown, self._policy, now, new_id),
            legal_compliance=compliance,
            consumer_protection=consumer_protection_terms(self._policy),
            dispute_resolution=dispute_resolution_terms(request.preferences.dispute_resolution),
        )
        contract = self._repository.create(draft, request.requested_by)

        logger.info(
            "contract_generated",
            extra={
                "contract_id": str(contract.id),
                "contract_number": contract.contract_number,
                "legal_review_required": review,
                "milestones": len(contract.milestones),
            },
        )
        return GenerationResult(
            success=True,
            contract=contract,
            warnings=tuple(warnings),
            legal_review_required=review,
            compliance_issues=tuple(compliance.get("compliance_notes", ())),
            recommendations=tuple(recommendations(terms, self._policy)),
            generation_time_ms=elapsed(),
        )
