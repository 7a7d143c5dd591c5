"""
Pytest fixtures for the contract lifecycle test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- A deterministic clock and seeded collaborators
- Fully wired workflow services and a generated draft contract

Environment Variables:
- CONTRACTS_TEST_DATABASE_URL: run against another database (for example
  PostgreSQL).  Tables are dropped and recreated around every test.
"""

import json
import logging
import os
import random
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from contracts_config import ContractsConfig
from contracts_kernel.db.engine import build_engine, create_tables, drop_tables
from contracts_kernel.domain.clock import DeterministicClock
from contracts_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from contracts_kernel.selectors.contract_selector import ContractSelector
from contracts_kernel.services.audit_recorder import AuditRecorder
from contracts_kernel.services.contract_repository import ContractRepository
from contracts_services import (
    ContractCommands,
    ContractGenerator,
    ContractLifecycleService,
    GenerationRequest,
    InMemoryParties,
    InMemoryProjects,
    InMemoryProposals,
    InMemoryWorkBreakdowns,
    MilestoneTracker,
    SignatureWorkflow,
    VariationManager,
)

TEST_ACTOR = "test-actor"
START_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)

PROJECT_ID = "proj-7f3a9c21"
WORK_BREAKDOWN_ID = "sow-001"
PROPOSAL_ID = "quote-001"
PURCHASER_ID = "user-homeowner"
PROVIDER_ID = "user-builder"
PURCHASER_EMAIL = "alice.owner@example.com"
PROVIDER_EMAIL = "bob@buildright.example.com"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture contracts_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, signatures):
            signatures.process_signature(...)
            logs = captured_logs()
            assert any(r["message"] == "signature_processed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("contracts_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    url = os.environ.get(
        "CONTRACTS_TEST_DATABASE_URL", f"sqlite:///{tmp_path / 'contracts.db'}"
    )
    engine = build_engine(url)
    drop_tables(engine)
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return DeterministicClock(START_TIME)


@pytest.fixture
def config():
    return ContractsConfig(signing_base_url="https://sign.test")


@pytest.fixture
def audit_recorder(session_factory):
    return AuditRecorder(session_factory)


@pytest.fixture
def repository(session_factory, clock, audit_recorder):
    return ContractRepository(
        session_factory,
        clock=clock,
        audit_sink=audit_recorder,
        rng=random.Random(7),
    )


@pytest.fixture
def audit_trail(session_factory):
    """Return a callable giving a contract's audit entries, newest first."""

    def _trail(contract_id):
        session = session_factory()
        try:
            return ContractSelector(session).get_audit_trail(contract_id)
        finally:
            session.close()

    return _trail


# =============================================================================
# Collaborators
# =============================================================================


def make_proposal(status="selected", total_price="85000.00", total_duration=120):
    return {
        "id": PROPOSAL_ID,
        "status": status,
        "total_price": total_price,
        "timeline": {
            "total_duration": total_duration,
            "phases": [
                {
                    "name": "Groundworks",
                    "description": "Excavation and foundations",
                    "start_day": 0,
                    "duration": 30,
                    "dependencies": [],
                    "deliverables": ["Foundations poured"],
                },
                {
                    "name": "Superstructure",
                    "description": "Walls, roof and windows",
                    "start_day": 30,
                    "duration": 60,
                    "dependencies": ["Groundworks"],
                    "deliverables": ["Weatherproof shell"],
                },
                {
                    "name": "Fit out",
                    "description": "First and second fix",
                    "start_day": 90,
                    "duration": 30,
                    "dependencies": ["Superstructure"],
                    "deliverables": ["Completion certificate"],
                },
            ],
        },
    }


def make_work_breakdown():
    return {
        "id": WORK_BREAKDOWN_ID,
        "specifications": [
            {"description": "Single-storey rear extension, 25 square metres."},
            {"description": "Bi-fold doors to the garden elevation."},
        ],
        "stages": [
            {
                "stage": 4,
                "title": "Technical Design",
                "description": "Building regulations drawings",
                "dependencies": [],
                "deliverables": ["Construction drawings"],
            },
            {
                "stage": 5,
                "title": "Manufacturing and Construction",
                "description": "Build the extension",
                "dependencies": ["4"],
                "deliverables": ["Completed extension"],
            },
        ],
    }


def make_project(restrictions=None):
    return {
        "id": PROJECT_ID,
        "status": "planning",
        "council_data": {"planning_restrictions": list(restrictions or [])},
    }


@pytest.fixture
def proposals():
    return InMemoryProposals({PROPOSAL_ID: make_proposal()})


@pytest.fixture
def work_breakdowns():
    return InMemoryWorkBreakdowns({WORK_BREAKDOWN_ID: make_work_breakdown()})


@pytest.fixture
def projects():
    return InMemoryProjects({PROJECT_ID: make_project()})


@pytest.fixture
def parties():
    return InMemoryParties(
        {
            PURCHASER_ID: {
                "id": PURCHASER_ID,
                "email": PURCHASER_EMAIL,
                "first_name": "Alice",
                "last_name": "Owner",
            },
            PROVIDER_ID: {
                "id": PROVIDER_ID,
                "email": PROVIDER_EMAIL,
                "first_name": "Bob",
                "last_name": "Builder",
                "company_name": "BuildRight Ltd",
            },
        }
    )


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def generator(repository, proposals, work_breakdowns, projects, parties, config):
    return ContractGenerator(
        repository, proposals, work_breakdowns, projects, parties, config=config
    )


@pytest.fixture
def signatures(repository, config):
    return SignatureWorkflow(repository, config=config)


@pytest.fixture
def milestones(repository):
    return MilestoneTracker(repository)


@pytest.fixture
def variations(repository):
    return VariationManager(repository)


@pytest.fixture
def lifecycle(repository, projects):
    return ContractLifecycleService(repository, projects)


@pytest.fixture
def commands(session_factory, clock, generator, signatures, milestones, variations, lifecycle):
    return ContractCommands(
        session_factory,
        clock,
        generator=generator,
        signatures=signatures,
        milestones=milestones,
        variations=variations,
        lifecycle=lifecycle,
    )


def make_request(**overrides):
    values = {
        "project_id": PROJECT_ID,
        "work_breakdown_id": WORK_BREAKDOWN_ID,
        "proposal_id": PROPOSAL_ID,
        "purchaser_id": PURCHASER_ID,
        "provider_id": PROVIDER_ID,
        "requested_by": TEST_ACTOR,
    }
    values.update(overrides)
    return GenerationRequest(**values)


@pytest.fixture
def generated_contract(generator, clock):
    """A freshly generated draft contract (85,000.00 GBP, two signers)."""
    result = generator.generate_contract(make_request())
    assert result.success, result.errors
    clock.advance(60)
    return result.contract


@pytest.fixture
def signing_contract(generated_contract, signatures, clock):
    """
    A contract with both parties invited to sign.

    Returns (contract_id, {"purchaser": request, "provider": request}).
    """
    requests = {
        "purchaser": signatures.request_signature(
            generated_contract.id, PURCHASER_EMAIL, "Alice Owner", "purchaser"
        ),
        "provider": signatures.request_signature(
            generated_contract.id, PROVIDER_EMAIL, "BuildRight Ltd", "provider"
        ),
    }
    clock.advance(60)
    return generated_contract.id, requests


@pytest.fixture
def active_contract(signing_contract, signatures, lifecycle, clock):
    """A contract both parties signed and that has been activated."""
    contract_id, requests = signing_contract
    for request in requests.values():
        clock.advance(10)
        signatures.process_signature(
            contract_id,
            request.signature_id,
            signature_data="data:image/png;base64,iVBORw0KGgo=",
            verification_code=request.verification_code,
            ip_address="203.0.113.7",
            user_agent="pytest",
        )
    clock.advance(10)
    record = lifecycle.activate(contract_id, TEST_ACTOR)
    clock.advance(60)
    return record


PAYABLE_TOTAL = Decimal("85000.00")
