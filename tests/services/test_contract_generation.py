"""
Tests for ContractGenerator (``contracts_services.contract_generation``).

Generation is all-or-nothing: a rejected or failed request leaves neither
a contract nor an audit entry behind.
"""

import re
from decimal import Decimal

import pytest

from contracts_engines.terms import GenerationPreferences, PaymentScheduleType
from contracts_kernel.db.engine import drop_tables
from contracts_kernel.domain.records import (
    AuditAction,
    ContractStatus,
    SignatureParty,
    SignatureStatus,
)
from contracts_kernel.exceptions import ErrorKind
from contracts_services.collaborators import InMemoryProjects, InMemoryProposals
from contracts_services.contract_generation import (
    GENERATION_FAILED,
    PROPOSAL_NOT_SELECTED,
    REQUIRED_DATA_NOT_FOUND,
    ContractGenerator,
    GenerationRequest,
)
from tests.conftest import (
    PROJECT_ID,
    PROPOSAL_ID,
    PROVIDER_EMAIL,
    PURCHASER_EMAIL,
    PURCHASER_ID,
    TEST_ACTOR,
    make_project,
    make_proposal,
    make_request,
)


def _contracts_for(repository):
    return repository.get_by_party(PURCHASER_ID, "purchaser")


# =========================================================================
# Validation
# =========================================================================


class TestRequestValidation:
    def test_unselected_proposal_rejected(self, repository, work_breakdowns, projects, parties, config):
        generator = ContractGenerator(
            repository,
            InMemoryProposals({PROPOSAL_ID: make_proposal(status="submitted")}),
            work_breakdowns,
            projects,
            parties,
            config=config,
        )
        result = generator.generate_contract(make_request())

        assert not result.success
        assert result.errors == (PROPOSAL_NOT_SELECTED,)
        assert PROPOSAL_NOT_SELECTED == "Quote must be selected before generating contract"
        assert result.error_kind == ErrorKind.VALIDATION_FAILED
        assert result.contract is None
        assert _contracts_for(repository) == []

    def test_unknown_proposal_is_not_selected(self, generator, repository):
        result = generator.generate_contract(make_request(proposal_id="quote-404"))
        assert result.errors == (PROPOSAL_NOT_SELECTED,)

    @pytest.mark.parametrize(
        "field, message",
        [
            ("project_id", "Project ID is required"),
            ("work_breakdown_id", "SoW ID is required"),
            ("purchaser_id", "Homeowner ID is required"),
            ("provider_id", "Builder ID is required"),
        ],
    )
    def test_missing_identifier(self, generator, field, message):
        result = generator.generate_contract(make_request(**{field: ""}))
        assert not result.success
        assert result.errors == (message,)

    def test_missing_proposal_id_reports_only_the_id(self, generator):
        result = generator.generate_contract(make_request(proposal_id=""))
        assert result.errors == ("Quote ID is required",)

    def test_errors_accumulate(self, generator):
        errors = generator.validate_request(
            GenerationRequest(
                project_id="",
                work_breakdown_id="",
                proposal_id="",
                purchaser_id="",
                provider_id="",
            )
        )
        assert len(errors) == 5

    def test_missing_collaborator_record(self, generator, repository):
        result = generator.generate_contract(make_request(work_breakdown_id="sow-404"))
        assert not result.success
        assert result.errors == (REQUIRED_DATA_NOT_FOUND,)
        assert result.error_kind == ErrorKind.REQUIRED_DATA_MISSING
        assert _contracts_for(repository) == []

    def test_missing_party(self, generator):
        result = generator.generate_contract(make_request(provider_id="user-404"))
        assert result.error_kind == ErrorKind.REQUIRED_DATA_MISSING

    def test_storage_failure_is_reported(self, generator, engine, captured_logs):
        drop_tables(engine)
        result = generator.generate_contract(make_request())

        assert not result.success
        assert result.errors == (GENERATION_FAILED,)
        assert result.error_kind == ErrorKind.STORAGE_FAILURE
        assert any(r["message"] == "contract_generation_failed" for r in captured_logs())


class TestCollaboratorFailure:
    """A collaborator that raises or answers nonsense fails the request cleanly."""

    def test_raising_collaborator(
        self, generator, work_breakdowns, repository, monkeypatch, captured_logs
    ):
        def unreachable(work_breakdown_id):
            raise ConnectionError("work breakdown service unreachable")

        monkeypatch.setattr(work_breakdowns, "get_work_breakdown", unreachable)
        result = generator.generate_contract(make_request())

        assert not result.success
        assert result.errors == (GENERATION_FAILED,)
        assert result.error_kind == ErrorKind.STORAGE_FAILURE
        assert _contracts_for(repository) == []
        failed = [r for r in captured_logs() if r["message"] == "contract_generation_failed"]
        assert failed[-1]["exc_type"] == "ConnectionError"
        assert failed[-1]["actor_id"] == TEST_ACTOR

    def test_malformed_collaborator_payload(self, generator, projects, repository, monkeypatch):
        monkeypatch.setattr(projects, "get_project", lambda project_id: ["planning"])
        result = generator.generate_contract(make_request())

        assert not result.success
        assert result.errors == (GENERATION_FAILED,)
        assert result.error_kind == ErrorKind.STORAGE_FAILURE
        assert _contracts_for(repository) == []

    def test_raising_proposal_lookup(self, generator, proposals, repository, monkeypatch):
        def unreachable(proposal_id):
            raise TimeoutError("proposal service timed out")

        monkeypatch.setattr(proposals, "get_proposal", unreachable)
        result = generator.generate_contract(make_request())

        assert result.errors == (GENERATION_FAILED,)
        assert _contracts_for(repository) == []


# =========================================================================
# Successful generation
# =========================================================================


class TestGenerateContract:
    def test_draft_with_two_pending_signatures(self, generator, clock):
        result = generator.generate_contract(make_request())
        contract = result.contract

        assert result.success
        assert result.errors == ()
        assert contract.status == ContractStatus.DRAFT
        assert contract.version == 1
        assert contract.created_at == clock.now()
        assert [s.party for s in contract.signatures] == [
            SignatureParty.PURCHASER,
            SignatureParty.PROVIDER,
        ]
        assert all(s.status == SignatureStatus.PENDING for s in contract.signatures)
        assert [s.signer_email for s in contract.signatures] == [PURCHASER_EMAIL, PROVIDER_EMAIL]
        assert [s.signer_name for s in contract.signatures] == ["Alice Owner", "BuildRight Ltd"]

    def test_contract_number_format(self, generator):
        contract = generator.generate_contract(make_request()).contract
        assert re.fullmatch(r"CON-202403-PROJ-7F3-\d{3}", contract.contract_number)

    def test_terms_snapshot(self, generator):
        contract = generator.generate_contract(make_request()).contract
        assert contract.terms.total_value == Decimal("85000.00")
        assert contract.terms.currency == "GBP"
        assert contract.terms.timeline["total_duration"] == 120

    def test_milestones_follow_work_breakdown(self, generator):
        contract = generator.generate_contract(make_request()).contract
        assert [m.name for m in contract.milestones] == [
            "RIBA Stage 4: Technical Design",
            "RIBA Stage 5: Manufacturing and Construction",
        ]
        assert contract.milestones[0].target_date < contract.milestones[1].target_date

    def test_generated_blocks_present(self, generator):
        contract = generator.generate_contract(make_request()).contract
        assert contract.legal_compliance["uk_construction_law"] is True
        assert contract.consumer_protection["cooling_off_period"]["applicable"] is True
        assert contract.dispute_resolution

    def test_creation_is_audited(self, generator, audit_trail):
        contract = generator.generate_contract(make_request()).contract
        trail = audit_trail(contract.id)
        assert len(trail) == 1
        assert trail[0].action == AuditAction.CREATED
        assert trail[0].performed_by == TEST_ACTOR

    def test_preferences_shape_schedule(self, generator):
        request = make_request(
            preferences=GenerationPreferences(payment_schedule_type=PaymentScheduleType.MONTHLY)
        )
        contract = generator.generate_contract(request).contract
        assert contract.terms.payment_schedule["type"] == "monthly"

    def test_recommendations_always_include_guidance(self, generator):
        result = generator.generate_contract(make_request())
        assert (
            "Ensure all parties understand their obligations before signing"
            in result.recommendations
        )

    def test_planning_restrictions_reported(self, repository, proposals, work_breakdowns, parties, config):
        generator = ContractGenerator(
            repository,
            proposals,
            work_breakdowns,
            InMemoryProjects({PROJECT_ID: make_project(["Conservation area"])}),
            parties,
            config=config,
        )
        result = generator.generate_contract(make_request())

        assert result.success
        assert result.compliance_issues == ("Planning restriction: Conservation area",)
        assert result.contract.legal_compliance["planning_permission"] is False

    def test_result_dict(self, generator):
        result = generator.generate_contract(make_request())
        data = result.to_dict()
        assert data["success"] is True
        assert data["contract_id"] == str(result.contract.id)
        assert data["status"] == "draft"


class TestGenerationRequestFromDict:
    def test_custom_clauses_and_blank_ids(self):
        request = GenerationRequest.from_dict(
            {
                "project_id": PROJECT_ID,
                "proposal_id": None,
                "custom_terms": {"additional_clauses": ["No work on Sundays"]},
            }
        )
        assert request.proposal_id == ""
        assert request.work_breakdown_id == ""
        assert request.additional_clauses == ("No work on Sundays",)
        assert request.requested_by == "system"
