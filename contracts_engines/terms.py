"""
Contract terms engine (``contracts_engines.terms``).

Responsibility
--------------
Pure derivation of everything a new contract carries from the accepted
proposal, the work breakdown, the linked project and the two party
profiles:

* payment schedule (``milestone``, ``stage`` or ``monthly``) with retention
* timeline shifted by the lead time, key dates, delay penalties and
  weather allowance
* warranty, insurance, variation and termination policy
* the fixed clause blocks (health & safety, quality standards, materials,
  subcontracting, intellectual property, confidentiality, force majeure)
* legal-compliance flags, consumer-protection and dispute-resolution terms
* one milestone per work-breakdown stage and the two signature placeholders
* advisory recommendations

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O, ZERO database,
ZERO clock reads.  ``now`` and the identifier factory are always passed in.
May import kernel domain records and money helpers only.

Invariants enforced
-------------------
* Money is Decimal in memory and a string inside clause blocks.
* Scheduled amounts are rounded to pence; the rounding remainder is
  assigned to the last schedule item, so the items always sum exactly to
  the payable total (total value, less retention for ``milestone``).
* Same inputs (including ``now`` and ids) produce the same terms.

Failure modes
-------------
* ``ValueError`` for unusable inputs: unknown schedule type or dispute
  preference, retention outside 0..15 percent, a ``stage`` schedule with
  no proposal phases, a negative price.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from contracts_kernel.db.types import round_money, to_decimal
from contracts_kernel.domain.records import (
    ContractTerms,
    LegalValidity,
    Milestone,
    Signature,
    SignatureParty,
    iso,
)
from contracts_kernel.logging_config import get_logger

logger = get_logger("engines.terms")

IdFactory = Callable[[], str]

_HUNDRED = Decimal("100")


class PaymentScheduleType(str, Enum):
    MILESTONE = "milestone"
    STAGE = "stage"
    MONTHLY = "monthly"


class DisputePreference(str, Enum):
    NEGOTIATION = "negotiation"
    MEDIATION = "mediation"
    ARBITRATION = "arbitration"
    ALL = "all"


class ContractTemplate(str, Enum):
    STANDARD = "standard"
    DETAILED = "detailed"
    SIMPLE = "simple"
    CUSTOM = "custom"


@dataclass(frozen=True)
class GenerationPreferences:
    """Purchaser-chosen knobs for term generation."""

    payment_schedule_type: PaymentScheduleType = PaymentScheduleType.MILESTONE
    retention_percentage: Decimal = Decimal("5")
    warranty_period: int = 12  # months
    variation_allowance: Decimal = Decimal("10")  # percent of price
    dispute_resolution: DisputePreference = DisputePreference.MEDIATION
    template: ContractTemplate = ContractTemplate.STANDARD
    delay_penalties: bool = True
    additional_protections: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.retention_percentage <= Decimal("15"):
            raise ValueError("Retention percentage must be between 0 and 15")
        if self.warranty_period < 0:
            raise ValueError("Warranty period cannot be negative")
        if self.variation_allowance < 0:
            raise ValueError("Variation allowance cannot be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> GenerationPreferences:
        data = data or {}
        defaults = cls()
        return cls(
            payment_schedule_type=PaymentScheduleType(
                data.get("payment_schedule_type", defaults.payment_schedule_type.value)
            ),
            retention_percentage=to_decimal(
                data.get("retention_percentage", defaults.retention_percentage)
            ),
            warranty_period=int(data.get("warranty_period", defaults.warranty_period)),
            variation_allowance=to_decimal(
                data.get("variation_allowance", defaults.variation_allowance)
            ),
            dispute_resolution=DisputePreference(
                data.get("dispute_resolution", defaults.dispute_resolution.value)
            ),
            template=ContractTemplate(data.get("template", defaults.template.value)),
            delay_penalties=bool(data.get("delay_penalties", defaults.delay_penalties)),
            additional_protections=tuple(data.get("additional_protections", ())),
        )


@dataclass(frozen=True)
class TermsPolicy:
    """
    Numeric policy the engine applies.

    Built by the generation service from ``ContractsConfig``; the defaults
    match the shipped configuration.
    """

    currency: str = "GBP"
    lead_time_days: int = 14
    milestone_spacing_days: int = 30
    payment_terms_days: int = 14
    late_fee_rate: Decimal = Decimal("8")
    late_fee_grace_days: int = 7
    delay_penalty_rate: Decimal = Decimal("0.001")
    delay_penalty_threshold_days: int = 7
    delay_penalty_cap: Decimal = Decimal("0.1")
    weather_allowance_ratio: Decimal = Decimal("0.1")
    public_liability_cover: Decimal = Decimal("2000000")
    employers_liability_cover: Decimal = Decimal("10000000")
    contract_works_threshold: Decimal = Decimal("50000")
    structural_warranty_threshold: Decimal = Decimal("100000")
    legal_review_threshold: Decimal = Decimal("100000")
    long_project_days: int = 180
    cooling_off_days: int = 14
    variation_types: tuple[str, ...] = field(
        default=("additional-work", "material-change", "design-change")
    )


# =============================================================================
# Input accessors
# =============================================================================


def proposal_price(proposal: Mapping[str, Any]) -> Decimal:
    price = to_decimal(proposal.get("total_price", "0"))
    if price < 0:
        raise ValueError("Proposal price cannot be negative")
    return price


def _proposal_timeline(proposal: Mapping[str, Any]) -> tuple[int, list[Mapping[str, Any]]]:
    timeline = proposal.get("timeline") or {}
    return int(timeline.get("total_duration", 0)), list(timeline.get("phases") or [])


def _display_name(user: Mapping[str, Any], prefer_company: bool = False) -> str:
    if prefer_company and user.get("company_name"):
        return user["company_name"]
    return f"{user.get('first_name', '')} {user.get('last_name', '')}".strip()


def _split(total: Decimal, shares: Sequence[Decimal]) -> list[Decimal]:
    """Round ``total * share`` per item; the remainder goes to the last item."""
    amounts = [round_money(total * share) for share in shares[:-1]]
    amounts.append(round_money(total * sum(shares, Decimal("0"))) - sum(amounts, Decimal("0")))
    return amounts


# =============================================================================
# Payment schedule
# =============================================================================

_MILESTONE_PLAN = (
    ("Contract signing", Decimal("10"), "Contract execution", ("signed-contract",), False),
    ("Commencement", Decimal("15"), "Work commencement on site", ("commencement-notice",), False),
    (
        "Foundation completion",
        Decimal("20"),
        "Foundation work completed and approved",
        ("foundation-certificate",),
        True,
    ),
    ("Weatherproof stage", Decimal("25"), "Building weatherproof", ("weatherproof-certificate",), True),
    ("First fix completion", Decimal("15"), "First fix work completed", ("first-fix-certificate",), True),
)


def payment_schedule(
    proposal: Mapping[str, Any],
    preferences: GenerationPreferences,
    policy: TermsPolicy,
    new_id: IdFactory,
) -> dict[str, Any]:
    """
    Build the payment schedule block.

    ``milestone`` withholds retention from the practical-completion share;
    ``stage`` splits evenly per proposal phase; ``monthly`` splits evenly
    over ``ceil(duration / 30)`` months.
    """
    total = proposal_price(proposal)
    retention = preferences.retention_percentage
    retention_amount = round_money(total * retention / _HUNDRED)
    duration, phases = _proposal_timeline(proposal)

    plan: list[tuple[str, Decimal, str, tuple[str, ...], bool]]
    kind = preferences.payment_schedule_type
    if kind == PaymentScheduleType.MILESTONE:
        plan = list(_MILESTONE_PLAN)
        plan.append(
            (
                "Practical completion",
                Decimal("15") - retention,
                "Practical completion achieved",
                ("completion-certificate", "warranties"),
                True,
            )
        )
    elif kind == PaymentScheduleType.STAGE:
        if not phases:
            raise ValueError("Stage payment schedule requires proposal timeline phases")
        share = _HUNDRED / len(phases)
        plan = [
            (
                phase["name"],
                share,
                f"Completion of {phase['name']}",
                (f"{phase['name'].lower()}-certificate",),
                True,
            )
            for phase in phases
        ]
    else:
        months = max(1, math.ceil(duration / 30))
        share = _HUNDRED / months
        plan = [
            (f"Month {n}", share, f"End of month {n}", ("progress-report",), False)
            for n in range(1, months + 1)
        ]

    amounts = _split(total, [pct / _HUNDRED for _, pct, _, _, _ in plan])
    schedule = [
        {
            "id": new_id(),
            "milestone": name,
            "percentage": str(round_money(pct)),
            "amount": str(amount),
            "trigger": trigger,
            "required_documents": list(documents),
            "inspection_required": inspection,
            "status": "pending",
        }
        for (name, pct, trigger, documents, inspection), amount in zip(plan, amounts)
    ]

    return {
        "type": kind.value,
        "total_amount": str(total),
        "currency": policy.currency,
        "schedule": schedule,
        "retention_percentage": str(retention),
        "retention_amount": str(retention_amount),
        "retention_release_terms": (
            "Released 12 months after practical completion or upon "
            "rectification of defects"
        ),
        "payment_terms": policy.payment_terms_days,
        "late_fees": {
            "enabled": True,
            "type": "percentage",
            "rate": str(policy.late_fee_rate),
            "grace_period": policy.late_fee_grace_days,
            "compounding": False,
        },
    }


# =============================================================================
# Timeline
# =============================================================================


def timeline_terms(
    proposal: Mapping[str, Any],
    policy: TermsPolicy,
    now: datetime,
    new_id: IdFactory,
    delay_penalties: bool = True,
) -> dict[str, Any]:
    """Proposal timeline shifted to start ``lead_time_days`` after ``now``."""
    total = proposal_price(proposal)
    duration, phases = _proposal_timeline(proposal)
    start = now + timedelta(days=policy.lead_time_days)
    completion = start + timedelta(days=duration)

    return {
        "start_date": iso(start),
        "completion_date": iso(completion),
        "total_duration": duration,
        "phases": [
            {
                "id": new_id(),
                "name": phase["name"],
                "description": phase.get("description", ""),
                "start_date": iso(start + timedelta(days=int(phase.get("start_day", 0)))),
                "end_date": iso(
                    start
                    + timedelta(
                        days=int(phase.get("start_day", 0)) + int(phase.get("duration", 0))
                    )
                ),
                "duration": int(phase.get("duration", 0)),
                "dependencies": list(phase.get("dependencies", [])),
                "deliverables": list(phase.get("deliverables", [])),
                "payment_trigger": True,
                "critical_path": True,
            }
            for phase in phases
        ],
        "key_dates": [
            {
                "id": new_id(),
                "description": "Contract commencement",
                "date": iso(start),
                "type": "start",
                "critical": True,
                "consequences": "Delay penalties may apply",
            },
            {
                "id": new_id(),
                "description": "Practical completion",
                "date": iso(completion),
                "type": "completion",
                "critical": True,
                "consequences": "Final payment due",
            },
        ],
        "delay_penalties": {
            "enabled": delay_penalties,
            "type": "daily",
            "rate": str(round_money(total * policy.delay_penalty_rate)),
            "threshold": policy.delay_penalty_threshold_days,
            "maximum": str(round_money(total * policy.delay_penalty_cap)),
            "exclusions": ["force-majeure", "client-variations", "weather-delays"],
            "liquidated_damages": True,
        },
        "extension_terms": {
            "allowed_reasons": ["variations", "unforeseen-conditions", "weather", "force-majeure"],
            "notification_period": 7,
            "documentation_required": ["extension-request", "supporting-evidence"],
            "approval_process": "Written approval required within 14 days",
            "cost_implications": "Additional costs to be agreed separately",
        },
        "weather_allowances": {
            "enabled": True,
            "allowed_days": math.ceil(Decimal(duration) * policy.weather_allowance_ratio),
            "conditions": ["rain-preventing-external-work", "frost", "high-winds"],
            "measurement_method": "Local weather station data",
            "dispute_resolution": "Expert determination by weather consultant",
        },
    }


# =============================================================================
# Warranty, insurance, variations, termination
# =============================================================================


def warranty_terms(
    proposal: Mapping[str, Any],
    preferences: GenerationPreferences,
    policy: TermsPolicy,
) -> dict[str, Any]:
    """Workmanship follows the preference; materials get at least 12 months."""
    price = proposal_price(proposal)
    structural = None
    if price > policy.structural_warranty_threshold:
        structural = {
            "duration": 120,
            "unit": "months",
            "coverage": "Structural defects affecting stability",
            "start_date": "completion",
            "limitations": ["design-defects", "ground-conditions"],
            "claims_process": "Written notice with structural engineer report",
            "remedy_options": ["repair", "compensation"],
        }
    return {
        "workmanship": {
            "duration": preferences.warranty_period,
            "unit": "months",
            "coverage": "All workmanship defects",
            "start_date": "completion",
            "limitations": ["fair-wear-and-tear", "misuse", "lack-of-maintenance"],
            "claims_process": "Written notice to provider with reasonable access for inspection",
            "remedy_options": ["repair", "replacement", "compensation"],
        },
        "materials": {
            "duration": max(preferences.warranty_period, 12),
            "unit": "months",
            "coverage": "Material defects not covered by manufacturer warranty",
            "start_date": "completion",
            "limitations": ["manufacturer-warranty-exclusions", "misuse"],
            "claims_process": "Written notice with evidence of defect",
            "remedy_options": ["repair", "replacement"],
        },
        "structural": structural,
        "defects_liability": {
            "period": 12,
            "coverage": "All defects notified during defects liability period",
            "response_time": 7,
            "remedy_timeframe": 30,
            "cost_responsibility": "Provider at no cost to purchaser",
            "emergency_procedures": "24-hour response for emergency defects",
        },
        "maintenance_requirements": [
            {
                "item": "Gutters and downpipes",
                "frequency": "Annually",
                "responsibility": "purchaser",
                "instructions": "Clear debris and check for blockages",
                "warranty_impact": "Failure to maintain may void warranty",
            }
        ],
        "exclusions": [
            "Normal wear and tear",
            "Damage due to misuse or neglect",
            "Damage due to alterations by others",
            "Damage due to failure to maintain",
        ],
        "transferability": True,
    }


def _insurance_terms(price: Decimal, policy: TermsPolicy) -> dict[str, Any]:
    return {
        "public_liability": {
            "required": True,
            "minimum_cover": str(policy.public_liability_cover),
            "currency": policy.currency,
            "validity_period": "Duration of works plus 6 months",
            "specific_coverage": ["third-party-injury", "property-damage"],
            "exclusions": ["professional-negligence"],
        },
        "employers_liability": {
            "required": True,
            "minimum_cover": str(policy.employers_liability_cover),
            "currency": policy.currency,
            "validity_period": "Duration of works",
            "specific_coverage": ["employee-injury", "employee-illness"],
            "exclusions": [],
        },
        "contract_works": {
            "required": price > policy.contract_works_threshold,
            "minimum_cover": str(price),
            "currency": policy.currency,
            "validity_period": "Duration of works",
            "specific_coverage": ["works-damage", "materials-damage"],
            "exclusions": ["design-defects"],
        },
        "evidence_required": ["insurance-certificates", "policy-schedules"],
        "renewal_notification": True,
        "additional_insured": True,
    }


def _variation_policy(
    price: Decimal, preferences: GenerationPreferences, policy: TermsPolicy
) -> dict[str, Any]:
    return {
        "allowed_types": list(policy.variation_types),
        "approval_process": "Written approval required from both parties",
        "pricing_method": "quotation",
        "time_extensions": True,
        "documentation_required": ["variation-order", "cost-breakdown", "time-impact-assessment"],
        "dispute_resolution": "Mediation followed by arbitration",
        "maximum_value": str(round_money(price * preferences.variation_allowance / _HUNDRED)),
    }


_TERMINATION = {
    "termination_rights": [
        {
            "party": "either",
            "reason": "Material breach with 14 days notice",
            "notice_period": 14,
            "consequences": "Payment for work completed to date",
        },
        {
            "party": "purchaser",
            "reason": "Convenience",
            "notice_period": 7,
            "consequences": "Payment for work completed plus reasonable costs",
        },
    ],
    "notice_periods": [
        {
            "reason": "Material breach",
            "period": 14,
            "method": ["written-notice", "email"],
            "consequences": "Contract termination if not remedied",
        }
    ],
    "payment_on_termination": "Payment for work completed to date",
    "material_ownership": "Materials on site become property of purchaser upon payment",
    "work_in_progress": "To be completed to a safe stopping point",
    "subcontractor_termination": "Provider responsible for terminating subcontracts",
    "dispute_resolution": "As per main dispute resolution clause",
}


# =============================================================================
# Fixed clause blocks
# =============================================================================

_HEALTH_SAFETY = {
    "cdm_compliance": True,
    "risk_assessments": ["site-specific-risk-assessment", "method-statements"],
    "method_statements": ["excavation", "working-at-height", "electrical-work"],
    "competent_persons": ["site-supervisor", "safety-officer"],
    "training_requirements": ["health-safety-awareness", "first-aid"],
    "reporting_procedures": "All accidents and near-misses to be reported within 24 hours",
    "emergency_procedures": "Emergency contact details and procedures to be displayed on site",
    "inspection_schedule": "Weekly safety inspections by competent person",
    "documentation_required": ["risk-assessments", "method-statements", "training-records"],
}

_MATERIALS = {
    "specification_compliance": True,
    "approval_process": "Samples to be approved before ordering",
    "substitution_policy": "No substitutions without written approval",
    "quality_standards": ["CE-marking", "British-Standards", "manufacturer-warranties"],
    "delivery_responsibility": "Provider responsible for delivery and storage",
    "storage_requirements": "Materials to be stored in accordance with manufacturer instructions",
    "waste_disposal": "Provider responsible for waste disposal in accordance with regulations",
    "sustainability_requirements": ["FSC-certified-timber", "low-VOC-materials"],
    "certification_required": ["material-certificates", "test-certificates"],
}

_SUBCONTRACTING = {
    "allowed": True,
    "approval_required": True,
    "approval_process": "Written approval required for all subcontractors",
    "liability_terms": "Provider remains fully liable for subcontractor work",
    "payment_responsibility": "Provider responsible for subcontractor payments",
    "qualification_requirements": ["relevant-qualifications", "insurance", "references"],
    "insurance_requirements": ["public-liability", "employers-liability"],
    "direct_payment_rights": False,
}

_INTELLECTUAL_PROPERTY = {
    "design_ownership": "Designs remain property of originator",
    "license_grants": "License granted for construction purposes only",
    "modifications": "No modifications without written consent",
    "third_party_rights": "Respect for third-party intellectual property",
    "confidential_information": "Confidential information to be protected",
    "use_restrictions": ["no-commercial-use", "no-reproduction"],
}

_CONFIDENTIALITY = {
    "scope": "All project information and personal data",
    "duration": "5 years from contract completion",
    "exceptions": ["publicly-available-information", "legal-requirements"],
    "return_requirements": "Return or destroy confidential information on request",
    "breach_consequences": "Damages and injunctive relief",
    "survivability": True,
}

_FORCE_MAJEURE = {
    "definition": "Events beyond reasonable control of either party",
    "events": ["natural-disasters", "government-restrictions", "pandemic", "war", "terrorism"],
    "notification_requirements": "Written notice within 7 days of event",
    "mitigation_obligations": "Reasonable efforts to mitigate impact",
    "suspension_rights": "Right to suspend performance during event",
    "termination_rights": "Right to terminate if event continues for more than 3 months",
    "cost_allocation": "Each party bears own costs during force majeure",
}


def _quality_standards(preferences: GenerationPreferences) -> dict[str, Any]:
    inspector = "third-party" if preferences.template == ContractTemplate.DETAILED else "client"
    return {
        "applicable_standards": ["BS-8000", "NHBC-Standards", "Building-Regulations"],
        "inspection_schedule": {
            "stages": ["foundation", "frame", "weatherproof", "first-fix", "second-fix", "completion"],
            "inspector": inspector,
            "notice_period": 48,
            "failure_consequences": "Work to be rectified before proceeding",
            "reinspection_process": "Re-inspection required after rectification",
            "costs": "Provider responsible for rectification costs",
        },
        "testing_requirements": [
            {
                "test": "Electrical Installation Certificate",
                "standard": "BS-7671",
                "frequency": "On completion",
                "responsibility": "provider",
                "costs": "Included in contract price",
                "failure_process": "Rectification required before handover",
                "certification": True,
            }
        ],
        "non_conformance_process": "Written notice with 7 days to rectify",
        "remedial_work_process": "At provider expense unless due to client variation",
        "quality_assurance": "Provider to maintain quality control procedures",
        "certification_required": [
            "electrical-certificates",
            "gas-certificates",
            "building-control-certificates",
        ],
    }


# =============================================================================
# Terms snapshot
# =============================================================================


def build_contract_terms(
    proposal: Mapping[str, Any],
    work_breakdown: Mapping[str, Any],
    preferences: GenerationPreferences,
    policy: TermsPolicy,
    now: datetime,
    new_id: IdFactory,
    additional_terms: Sequence[str] = (),
) -> ContractTerms:
    """Derive the full terms snapshot fixed at generation."""
    price = proposal_price(proposal)
    terms = ContractTerms(
        work_description="\n\n".join(
            spec.get("description", "") for spec in work_breakdown.get("specifications", [])
        ),
        total_value=price,
        currency=policy.currency,
        payment_schedule=payment_schedule(proposal, preferences, policy, new_id),
        timeline=timeline_terms(
            proposal, policy, now, new_id, delay_penalties=preferences.delay_penalties
        ),
        warranty=warranty_terms(proposal, preferences, policy),
        variations=_variation_policy(price, preferences, policy),
        termination=_copy(_TERMINATION),
        insurance=_insurance_terms(price, policy),
        health_safety=_copy(_HEALTH_SAFETY),
        quality_standards=_quality_standards(preferences),
        materials=_copy(_MATERIALS),
        subcontracting=_copy(_SUBCONTRACTING),
        intellectual_property=_copy(_INTELLECTUAL_PROPERTY),
        confidentiality=_copy(_CONFIDENTIALITY),
        force_majeure=_copy(_FORCE_MAJEURE),
        additional_terms=tuple(additional_terms),
    )
    logger.debug(
        "contract_terms_derived",
        extra={
            "total_value": str(price),
            "payment_schedule_type": preferences.payment_schedule_type.value,
            "schedule_items": len(terms.payment_schedule["schedule"]),
        },
    )
    return terms


def _copy(block: dict[str, Any]) -> dict[str, Any]:
    return {
        key: (
            [dict(v) if isinstance(v, dict) else v for v in value]
            if isinstance(value, list)
            else value
        )
        for key, value in block.items()
    }


# =============================================================================
# Legal, consumer protection, dispute resolution
# =============================================================================

_CORE_COMPLIANCE_FLAGS = ("uk_construction_law", "consumer_rights")


def legal_compliance(
    terms: ContractTerms,
    project: Mapping[str, Any],
    now: datetime,
) -> dict[str, Any]:
    """Compliance flags for the generated terms against the linked project."""
    restrictions = list(
        (project.get("council_data") or {}).get("planning_restrictions") or []
    )
    cdm = bool(terms.health_safety.get("cdm_compliance", False))
    return {
        "uk_construction_law": True,
        "consumer_rights": True,
        "unfair_terms_regulations": True,
        "construction_act_1996": True,
        "cdm_regulations": cdm,
        "building_regulations": True,
        "planning_permission": not restrictions,
        "data_protection": True,
        "health_safety": cdm,
        "environmental_regulations": True,
        "compliance_checked_at": iso(now),
        "compliance_notes": [f"Planning restriction: {r}" for r in restrictions],
    }


def legal_review_required(compliance: Mapping[str, Any]) -> bool:
    return not all(compliance.get(flag, False) for flag in _CORE_COMPLIANCE_FLAGS)


def consumer_protection_terms(policy: TermsPolicy) -> dict[str, Any]:
    return {
        "cooling_off_period": {
            "applicable": True,
            "duration": policy.cooling_off_days,
            "start_date": "contract-signing",
            "exclusions": ["emergency-works"],
            "cancellation_process": "Written notice within cooling-off period",
            "refund_terms": "Full refund minus reasonable costs incurred",
        },
        "right_to_cancel": {
            "grounds": ["material-breach", "unsatisfactory-work", "safety-concerns"],
            "notice_period": 14,
            "process": "Written notice with reasons",
            "consequences": "Contract termination and refund of payments less work completed",
            "refund_rights": "Refund of payments for uncompleted work",
            "work_stoppage_rights": "Right to stop work immediately for safety reasons",
        },
        "unfair_terms_protection": True,
        "dispute_resolution": {
            "internal_process": "Direct negotiation between parties",
            "mediation_rights": True,
            "arbitration_rights": True,
            "court_rights": True,
            "ombudsman_rights": True,
            "legal_aid_rights": True,
            "costs_protection": "Reasonable costs protection for consumers",
        },
        "information_requirements": [
            {
                "requirement": "Written contract with all terms",
                "provided": True,
                "method": "Physical and electronic copy",
                "timing": "Before work commencement",
                "consequences": "Right to cancel if not provided",
            }
        ],
        "guarantee_rights": {
            "statutory_rights": [
                "Consumer Rights Act 2015",
                "Supply of Goods and Services Act 1982",
            ],
            "contractual_rights": ["Workmanship warranty", "Materials warranty"],
            "insurance_rights": ["Public liability coverage", "Professional indemnity"],
            "transfer_rights": True,
            "enforcement_rights": "Court enforcement available",
        },
        "remedy_rights": {
            "defective_work": ["repair", "replacement", "price-reduction", "rejection"],
            "delayed_completion": ["price-reduction", "damages", "termination"],
            "breach_of_contract": ["damages", "specific-performance", "termination"],
            "unsatisfactory_work": ["rectification", "price-reduction", "rejection"],
            "cost_overruns": ["explanation", "approval", "dispute-resolution"],
            "safety_issues": ["immediate-rectification", "work-stoppage", "termination"],
        },
    }


def dispute_resolution_terms(preference: DisputePreference) -> dict[str, Any]:
    """Mediation and arbitration become mandatory per the purchaser's preference."""
    everything = preference == DisputePreference.ALL
    return {
        "negotiation": {
            "mandatory": True,
            "timeframe": 30,
            "process": "Direct negotiation between authorized representatives",
            "representatives": "Senior management or designated representatives",
            "confidentiality": True,
            "good_faith": True,
        },
        "mediation": {
            "mandatory": everything or preference == DisputePreference.MEDIATION,
            "provider": "Centre for Effective Dispute Resolution (CEDR)",
            "timeframe": 60,
            "costs": "Shared equally between parties",
            "binding": False,
            "confidentiality": True,
        },
        "arbitration": {
            "mandatory": everything or preference == DisputePreference.ARBITRATION,
            "rules": "ICC Arbitration Rules",
            "seat": "London, England",
            "language": "English",
            "arbitrators": 1,
            "costs": "As determined by arbitrator",
            "appeals": False,
            "enforcement": "New York Convention",
        },
        "litigation": {
            "jurisdiction": "England and Wales",
            "courts": "High Court of Justice",
            "governing_law": "English Law",
            "service_of_process": "As per Civil Procedure Rules",
            "costs": "As determined by court",
            "appeals": True,
        },
        "expert_determination": {
            "applicable": True,
            "scope": ["technical-disputes", "valuation-disputes"],
            "expert": "Chartered surveyor or relevant professional",
            "timeframe": 30,
            "costs": "Shared equally",
            "binding": True,
            "appeals": False,
        },
        "adjudication": {
            "applicable": True,
            "scheme": "Construction Act 1996 Scheme",
            "timeframe": 28,
            "costs": "As determined by adjudicator",
            "binding": True,
            "enforcement": "Court enforcement available",
        },
        "escalation_process": [
            "Direct negotiation (30 days)",
            "Mediation (60 days)",
            "Arbitration or litigation",
        ],
        "costs_allocation": "Loser pays principle with court discretion",
        "interim_measures": "Available through arbitration or court",
    }


# =============================================================================
# Milestones, signatures, recommendations
# =============================================================================


def milestones_from_work_breakdown(
    work_breakdown: Mapping[str, Any],
    policy: TermsPolicy,
    now: datetime,
    new_id: IdFactory,
) -> tuple[Milestone, ...]:
    """One pending milestone per work-breakdown stage, spaced evenly from ``now``."""
    return tuple(
        Milestone(
            id=new_id(),
            name=f"RIBA Stage {stage['stage']}: {stage['title']}",
            description=stage.get("description", ""),
            target_date=now + timedelta(days=(index + 1) * policy.milestone_spacing_days),
            dependencies=tuple(stage.get("dependencies", ())),
            deliverables=tuple(stage.get("deliverables", ())),
        )
        for index, stage in enumerate(work_breakdown.get("stages", []))
    )


def signature_placeholders(
    purchaser: Mapping[str, Any],
    provider: Mapping[str, Any],
    now: datetime,
    new_id: IdFactory,
) -> tuple[Signature, Signature]:
    """Pending electronic signature records for the two contracting parties."""
    return (
        Signature(
            id=new_id(),
            party=SignatureParty.PURCHASER,
            signer_name=_display_name(purchaser),
            signer_email=purchaser.get("email", ""),
            legal_validity=LegalValidity(timestamp=now),
        ),
        Signature(
            id=new_id(),
            party=SignatureParty.PROVIDER,
            signer_name=_display_name(provider, prefer_company=True),
            signer_email=provider.get("email", ""),
            legal_validity=LegalValidity(timestamp=now),
        ),
    )


def recommendations(terms: ContractTerms, policy: TermsPolicy) -> list[str]:
    advice: list[str] = []
    if terms.total_value > policy.legal_review_threshold:
        advice.append("Consider professional legal review due to high contract value")
    if int(terms.timeline.get("total_duration", 0)) > policy.long_project_days:
        advice.append("Consider milestone-based payments for long-duration projects")
    if not (terms.insurance.get("contract_works") or {}).get("required", False):
        advice.append("Consider contract works insurance for additional protection")
    advice.append("Ensure all parties understand their obligations before signing")
    advice.append("Keep all contract documents and correspondence for your records")
    return advice
