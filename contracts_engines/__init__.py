"""
Pure derivation engines for contract generation and signature verification.

Nothing in this package touches the database, the clock or the network;
callers pass ``now`` and identifier factories in explicitly.
"""

from contracts_engines.signature_checks import (
    DEFAULT_CHECKS,
    IdentityCheck,
    IntegrityCheck,
    SignatureCheck,
    TimestampCheck,
    run_checks,
    signature_digest,
)
from contracts_engines.terms import (
    DisputePreference,
    GenerationPreferences,
    PaymentScheduleType,
    TermsPolicy,
    build_contract_terms,
    consumer_protection_terms,
    dispute_resolution_terms,
    legal_compliance,
    legal_review_required,
    milestones_from_work_breakdown,
    payment_schedule,
    recommendations,
    signature_placeholders,
    timeline_terms,
    warranty_terms,
)

__all__ = [
    "DEFAULT_CHECKS",
    "DisputePreference",
    "GenerationPreferences",
    "IdentityCheck",
    "IntegrityCheck",
    "PaymentScheduleType",
    "SignatureCheck",
    "TermsPolicy",
    "TimestampCheck",
    "build_contract_terms",
    "consumer_protection_terms",
    "dispute_resolution_terms",
    "legal_compliance",
    "legal_review_required",
    "milestones_from_work_breakdown",
    "payment_schedule",
    "recommendations",
    "run_checks",
    "signature_digest",
    "signature_placeholders",
    "timeline_terms",
    "warranty_terms",
]
