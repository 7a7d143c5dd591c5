"""
contracts_services.container -- wiring for one running engine.

``build_services`` assembles the repository, the audit sink chosen by
``config.audit_mode`` and every workflow service around one session
factory and one clock. ``open_services`` does the same against the
process-wide engine built from ``config.database_url``.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from contracts_config import ContractsConfig
from contracts_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from contracts_kernel.domain.clock import Clock, SystemClock
from contracts_kernel.logging_config import get_logger
from contracts_kernel.services.audit_recorder import AuditRecorder, AuditSink, QueuedAuditSink
from contracts_kernel.services.contract_repository import ContractRepository
from contracts_services.api import ContractCommands
from contracts_services.collaborators import (
    PartyDirectory,
    ProjectGateway,
    ProposalLookup,
    WorkBreakdownLookup,
)
from contracts_services.contract_generation import ContractGenerator
from contracts_services.lifecycle_service import ContractLifecycleService
from contracts_services.milestone_tracker import MilestoneTracker
from contracts_services.signature_workflow import SignatureWorkflow
from contracts_services.variation_manager import VariationManager

logger = get_logger("services.container")


@dataclass(frozen=True)
class ContractServices:
    repository: ContractRepository
    audit_sink: AuditSink
    generator: ContractGenerator
    signatures: SignatureWorkflow
    milestones: MilestoneTracker
    variations: VariationManager
    lifecycle: ContractLifecycleService
    commands: ContractCommands

    def close(self) -> None:
        """Flush and stop a queued audit sink; a no-op for the synchronous one."""
        if isinstance(self.audit_sink, QueuedAuditSink):
            self.audit_sink.close()


def build_services(
    session_factory: sessionmaker[Session],
    proposals: ProposalLookup,
    work_breakdowns: WorkBreakdownLookup,
    projects: ProjectGateway,
    parties: PartyDirectory,
    config: ContractsConfig | None = None,
    clock: Clock | None = None,
) -> ContractServices:
    config = config or ContractsConfig()
    clock = clock or SystemClock()

    recorder = AuditRecorder(session_factory)
    audit_sink: AuditSink = (
        QueuedAuditSink(recorder) if config.audit_mode == "queued" else recorder
    )
    repository = ContractRepository(
        session_factory,
        clock=clock,
        audit_sink=audit_sink,
        max_write_attempts=config.max_write_attempts,
    )
    generator = ContractGenerator(
        repository, proposals, work_breakdowns, projects, parties, config=config
    )
    signatures = SignatureWorkflow(repository, config=config)
    milestones = MilestoneTracker(repository)
    variations = VariationManager(repository)
    lifecycle = ContractLifecycleService(repository, projects)
    commands = ContractCommands(
        session_factory,
        clock,
        generator=generator,
        signatures=signatures,
        milestones=milestones,
        variations=variations,
        lifecycle=lifecycle,
    )
    logger.info(
        "contract_services_built",
        extra={"audit_mode": config.audit_mode, "max_write_attempts": config.max_write_attempts},
    )
    return ContractServices(
        repository=repository,
        audit_sink=audit_sink,
        generator=generator,
        signatures=signatures,
        milestones=milestones,
        variations=variations,
        lifecycle=lifecycle,
        commands=commands,
    )


def open_services(
    config: ContractsConfig,
    proposals: ProposalLookup,
    work_breakdowns: WorkBreakdownLookup,
    projects: ProjectGateway,
    parties: PartyDirectory,
    clock: Clock | None = None,
) -> ContractServices:
    """
    Initialize the process-wide engine from ``config.database_url``, create
    any missing tables and build the services on its session factory.

    Calling it again replaces the engine; ``reset_engine`` disposes it.
    """
    init_engine_from_url(config.database_url)
    create_tables()
    return build_services(
        get_session_factory(),
        proposals,
        work_breakdowns,
        projects,
        parties,
        config=config,
        clock=clock,
    )
