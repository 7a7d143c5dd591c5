"""
Workflow services for the contract lifecycle engine.

Generation, signing, milestones and payments, variations and the
post-signing lifecycle, each orchestrating ``ContractRepository`` writes.
"""

from contracts_services.api import CommandResponse, ContractCommands
from contracts_services.collaborators import (
    InMemoryParties,
    InMemoryProjects,
    InMemoryProposals,
    InMemoryWorkBreakdowns,
    LookupResult,
    PartyDirectory,
    ProjectGateway,
    ProposalLookup,
    WorkBreakdownLookup,
)
from contracts_services.container import ContractServices, build_services
from contracts_services.contract_generation import (
    ContractGenerator,
    GenerationRequest,
    GenerationResult,
)
from contracts_services.lifecycle_service import ContractLifecycleService
from contracts_services.milestone_tracker import MilestoneTracker, PaymentInput
from contracts_services.signature_workflow import (
    SignatureRequestResult,
    SignatureVerificationResult,
    SignatureWorkflow,
)
from contracts_services.variation_manager import VariationInput, VariationManager

__all__ = [
    "CommandResponse",
    "ContractCommands",
    "ContractGenerator",
    "ContractLifecycleService",
    "ContractServices",
    "GenerationRequest",
    "GenerationResult",
    "InMemoryParties",
    "InMemoryProjects",
    "InMemoryProposals",
    "InMemoryWorkBreakdowns",
    "LookupResult",
    "MilestoneTracker",
    "PartyDirectory",
    "PaymentInput",
    "ProjectGateway",
    "ProposalLookup",
    "SignatureRequestResult",
    "SignatureVerificationResult",
    "SignatureWorkflow",
    "VariationInput",
    "VariationManager",
    "WorkBreakdownLookup",
    "build_services",
]
