"""
Contract records -- immutable domain objects and their JSON forms.

Responsibility:
    Defines the closed enumerations (statuses, parties, audit actions) and
    the frozen dataclasses that flow between the repository and the
    workflow services: ContractDraft (input to create), ContractRecord
    (persisted state), ContractChanges (partial update), and the element
    records held in the contract's ordered collections.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Free of ORM
    dependencies.  ``to_dict``/``from_dict`` are the boundary converters the
    ORM model uses for its JSON columns.

Invariants enforced:
    - Money is Decimal in memory and a canonical string in JSON.
    - Timestamps are timezone-aware and serialised as ISO 8601.
    - Collections are tuples; a record never changes after construction.
    - Signature records hold only hashes of the verification code and the
      signing token, never the raw secrets.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Enumerations
# =============================================================================


class ContractStatus(str, Enum):
    """
    Closed status set of a contract.

    Lifecycle: see ``contracts_kernel.domain.lifecycle.CONTRACT_LIFECYCLE``.
    """

    DRAFT = "draft"
    PENDING_SIGNATURES = "pending-signatures"
    PARTIALLY_SIGNED = "partially-signed"
    FULLY_SIGNED = "fully-signed"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    TERMINATED = "terminated"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class PartyRole(str, Enum):
    """The two contracting parties; used for party-index queries."""

    PURCHASER = "purchaser"
    PROVIDER = "provider"


class SignatureParty(str, Enum):
    PURCHASER = "purchaser"
    PROVIDER = "provider"
    WITNESS = "witness"
    GUARANTOR = "guarantor"


class SignatureType(str, Enum):
    ELECTRONIC = "electronic"
    DIGITAL = "digital"
    WET = "wet"


class SignatureStatus(str, Enum):
    PENDING = "pending"
    INVITED = "invited"
    VIEWED = "viewed"
    SIGNED = "signed"
    DECLINED = "declined"
    EXPIRED = "expired"
    INVALID = "invalid"


# Signatures still waiting on the signer; these can expire.
AWAITING_SIGNATURE_STATUSES: frozenset[SignatureStatus] = frozenset({
    SignatureStatus.PENDING,
    SignatureStatus.INVITED,
    SignatureStatus.VIEWED,
})


class MilestoneStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    DELAYED = "delayed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class VariationStatus(str, Enum):
    REQUESTED = "requested"
    UNDER_REVIEW = "under-review"
    APPROVED = "approved"
    REJECTED = "rejected"
    IMPLEMENTED = "implemented"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    DUE = "due"
    PAID = "paid"
    OVERDUE = "overdue"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank-transfer"
    CHEQUE = "cheque"
    CARD = "card"
    CASH = "cash"
    ESCROW = "escrow"
    OTHER = "other"


class DocumentStatus(str, Enum):
    ACTIVE = "active"
    SUPERSEDED = "superseded"
    ARCHIVED = "archived"


class AccessLevel(str, Enum):
    PUBLIC = "public"
    PARTIES_ONLY = "parties-only"
    CONFIDENTIAL = "confidential"


class AuditAction(str, Enum):
    """Semantic action recorded in the contract audit trail."""

    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status-changed"
    SIGNATURE_REQUESTED = "signature-requested"
    SIGNED = "signed"
    SIGNATURES_EXPIRED = "signatures-expired"
    MILESTONE_COMPLETED = "milestone-completed"
    PAYMENT_MADE = "payment-made"
    VARIATION_ADDED = "variation-added"
    VARIATION_DECIDED = "variation-decided"
    DOCUMENT_ADDED = "document-added"
    TERMINATED = "terminated"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    RESOLVED = "resolved"


# =============================================================================
# Serialisation helpers
# =============================================================================


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _money(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _parse_money(value: Any) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


# =============================================================================
# Signatures
# =============================================================================


@dataclass(frozen=True)
class ValidityCheck:
    """One named verification check run against a submitted signature."""

    check: str
    passed: bool
    details: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "check": self.check,
            "passed": self.passed,
            "details": self.details,
            "timestamp": iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidityCheck:
        return cls(
            check=data["check"],
            passed=bool(data["passed"]),
            details=data.get("details", ""),
            timestamp=parse_iso(data["timestamp"]),
        )


@dataclass(frozen=True)
class LegalValidity:
    """Outcome of the verification checks plus human-readable audit lines."""

    valid: bool = False
    checks: tuple[ValidityCheck, ...] = ()
    timestamp: datetime | None = None
    audit_trail: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "checks": [c.to_dict() for c in self.checks],
            "timestamp": iso(self.timestamp),
            "audit_trail": list(self.audit_trail),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> LegalValidity:
        if not data:
            return cls()
        return cls(
            valid=bool(data.get("valid", False)),
            checks=tuple(ValidityCheck.from_dict(c) for c in data.get("checks", [])),
            timestamp=parse_iso(data.get("timestamp")),
            audit_trail=tuple(data.get("audit_trail", [])),
        )


@dataclass(frozen=True)
class Signature:
    """
    One required signer on a contract.

    ``verification_code_hash`` and ``signing_token_hash`` are SHA-256 hex
    digests; the raw values are handed to the signer and never stored.
    """

    id: str
    party: SignatureParty
    signer_name: str
    signer_email: str
    signature_type: SignatureType = SignatureType.ELECTRONIC
    status: SignatureStatus = SignatureStatus.PENDING
    witness_required: bool = False
    signer_title: str | None = None
    requested_at: datetime | None = None
    expires_at: datetime | None = None
    reminder_days: tuple[int, ...] = ()
    verification_code_hash: str | None = None
    signing_token_hash: str | None = None
    signature_data: str | None = None
    signature_digest: str | None = None
    signed_at: datetime | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    legal_validity: LegalValidity = field(default_factory=LegalValidity)

    @property
    def is_signed(self) -> bool:
        return self.status == SignatureStatus.SIGNED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "party": self.party.value,
            "signer_name": self.signer_name,
            "signer_email": self.signer_email,
            "signature_type": self.signature_type.value,
            "status": self.status.value,
            "witness_required": self.witness_required,
            "signer_title": self.signer_title,
            "requested_at": iso(self.requested_at),
            "expires_at": iso(self.expires_at),
            "reminder_days": list(self.reminder_days),
            "verification_code_hash": self.verification_code_hash,
            "signing_token_hash": self.signing_token_hash,
            "signature_data": self.signature_data,
            "signature_digest": self.signature_digest,
            "signed_at": iso(self.signed_at),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "legal_validity": self.legal_validity.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Signature:
        return cls(
            id=data["id"],
            party=SignatureParty(data["party"]),
            signer_name=data.get("signer_name", ""),
            signer_email=data.get("signer_email", ""),
            signature_type=SignatureType(data.get("signature_type", "electronic")),
            status=SignatureStatus(data.get("status", "pending")),
            witness_required=bool(data.get("witness_required", False)),
            signer_title=data.get("signer_title"),
            requested_at=parse_iso(data.get("requested_at")),
            expires_at=parse_iso(data.get("expires_at")),
            reminder_days=tuple(data.get("reminder_days", [])),
            verification_code_hash=data.get("verification_code_hash"),
            signing_token_hash=data.get("signing_token_hash"),
            signature_data=data.get("signature_data"),
            signature_digest=data.get("signature_digest"),
            signed_at=parse_iso(data.get("signed_at")),
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            legal_validity=LegalValidity.from_dict(data.get("legal_validity")),
        )


# =============================================================================
# Milestones
# =============================================================================


@dataclass(frozen=True)
class Milestone:
    id: str
    name: str
    description: str
    target_date: datetime
    status: MilestoneStatus = MilestoneStatus.PENDING
    dependencies: tuple[str, ...] = ()
    deliverables: tuple[str, ...] = ()
    payment_trigger: bool = True
    inspection_required: bool = True
    approval_required: bool = True
    actual_date: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "target_date": iso(self.target_date),
            "status": self.status.value,
            "dependencies": list(self.dependencies),
            "deliverables": list(self.deliverables),
            "payment_trigger": self.payment_trigger,
            "inspection_required": self.inspection_required,
            "approval_required": self.approval_required,
            "actual_date": iso(self.actual_date),
            "approved_by": self.approved_by,
            "approved_at": iso(self.approved_at),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Milestone:
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            target_date=parse_iso(data["target_date"]),
            status=MilestoneStatus(data.get("status", "pending")),
            dependencies=tuple(data.get("dependencies", [])),
            deliverables=tuple(data.get("deliverables", [])),
            payment_trigger=bool(data.get("payment_trigger", True)),
            inspection_required=bool(data.get("inspection_required", True)),
            approval_required=bool(data.get("approval_required", True)),
            actual_date=parse_iso(data.get("actual_date")),
            approved_by=data.get("approved_by"),
            approved_at=parse_iso(data.get("approved_at")),
            notes=data.get("notes"),
        )


# =============================================================================
# Variations
# =============================================================================


@dataclass(frozen=True)
class Variation:
    """A change order. ``variation_number`` is ``VAR-NNN``, unique per contract."""

    id: str
    variation_number: str
    description: str
    reason: str
    requested_by: str
    requested_at: datetime
    status: VariationStatus = VariationStatus.REQUESTED
    cost_impact: Decimal = Decimal("0")
    time_impact: int = 0
    specification: str = ""
    approval_required: bool = True
    approved_by: str | None = None
    approved_at: datetime | None = None
    implemented_at: datetime | None = None
    documents: tuple[str, ...] = ()
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "variation_number": self.variation_number,
            "description": self.description,
            "reason": self.reason,
            "requested_by": self.requested_by,
            "requested_at": iso(self.requested_at),
            "status": self.status.value,
            "cost_impact": _money(self.cost_impact),
            "time_impact": self.time_impact,
            "specification": self.specification,
            "approval_required": self.approval_required,
            "approved_by": self.approved_by,
            "approved_at": iso(self.approved_at),
            "implemented_at": iso(self.implemented_at),
            "documents": list(self.documents),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Variation:
        return cls(
            id=data["id"],
            variation_number=data["variation_number"],
            description=data.get("description", ""),
            reason=data.get("reason", ""),
            requested_by=data.get("requested_by", ""),
            requested_at=parse_iso(data["requested_at"]),
            status=VariationStatus(data.get("status", "requested")),
            cost_impact=_parse_money(data.get("cost_impact")) or Decimal("0"),
            time_impact=int(data.get("time_impact", 0)),
            specification=data.get("specification", ""),
            approval_required=bool(data.get("approval_required", True)),
            approved_by=data.get("approved_by"),
            approved_at=parse_iso(data.get("approved_at")),
            implemented_at=parse_iso(data.get("implemented_at")),
            documents=tuple(data.get("documents", [])),
            notes=data.get("notes"),
        )


# =============================================================================
# Payments
# =============================================================================


@dataclass(frozen=True)
class Payment:
    """A recorded payment against a milestone. ``net_amount = amount - retention_held``."""

    id: str
    milestone_id: str
    amount: Decimal
    currency: str
    due_date: datetime
    status: PaymentStatus
    retention_held: Decimal
    net_amount: Decimal
    paid_date: datetime | None = None
    method: PaymentMethod | None = None
    reference: str | None = None
    invoice_number: str | None = None
    vat_amount: Decimal | None = None
    documents: tuple[str, ...] = ()
    notes: str | None = None
    recorded_by: str | None = None
    recorded_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "milestone_id": self.milestone_id,
            "amount": _money(self.amount),
            "currency": self.currency,
            "due_date": iso(self.due_date),
            "status": self.status.value,
            "retention_held": _money(self.retention_held),
            "net_amount": _money(self.net_amount),
            "paid_date": iso(self.paid_date),
            "method": self.method.value if self.method else None,
            "reference": self.reference,
            "invoice_number": self.invoice_number,
            "vat_amount": _money(self.vat_amount),
            "documents": list(self.documents),
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "recorded_at": iso(self.recorded_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Payment:
        method = data.get("method")
        return cls(
            id=data["id"],
            milestone_id=data["milestone_id"],
            amount=_parse_money(data["amount"]),
            currency=data.get("currency", "GBP"),
            due_date=parse_iso(data["due_date"]),
            status=PaymentStatus(data.get("status", "pending")),
            retention_held=_parse_money(data.get("retention_held")) or Decimal("0"),
            net_amount=_parse_money(data["net_amount"]),
            paid_date=parse_iso(data.get("paid_date")),
            method=PaymentMethod(method) if method else None,
            reference=data.get("reference"),
            invoice_number=data.get("invoice_number"),
            vat_amount=_parse_money(data.get("vat_amount")),
            documents=tuple(data.get("documents", [])),
            notes=data.get("notes"),
            recorded_by=data.get("recorded_by"),
            recorded_at=parse_iso(data.get("recorded_at")),
        )


# =============================================================================
# Documents
# =============================================================================


@dataclass(frozen=True)
class Document:
    """Metadata for a document attached to a contract; content lives elsewhere."""

    id: str
    type: str
    name: str
    description: str
    storage_key: str
    uploaded_by: str
    uploaded_at: datetime
    version: int = 1
    status: DocumentStatus = DocumentStatus.ACTIVE
    signatures: tuple[str, ...] = ()
    access_level: AccessLevel = AccessLevel.PARTIES_ONLY

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "storage_key": self.storage_key,
            "uploaded_by": self.uploaded_by,
            "uploaded_at": iso(self.uploaded_at),
            "version": self.version,
            "status": self.status.value,
            "signatures": list(self.signatures),
            "access_level": self.access_level.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Document:
        return cls(
            id=data["id"],
            type=data.get("type", "other"),
            name=data["name"],
            description=data.get("description", ""),
            storage_key=data.get("storage_key", ""),
            uploaded_by=data.get("uploaded_by", ""),
            uploaded_at=parse_iso(data["uploaded_at"]),
            version=int(data.get("version", 1)),
            status=DocumentStatus(data.get("status", "active")),
            signatures=tuple(data.get("signatures", [])),
            access_level=AccessLevel(data.get("access_level", "parties-only")),
        )


# =============================================================================
# Terms
# =============================================================================

_TERM_BLOCKS = (
    "payment_schedule",
    "timeline",
    "warranty",
    "variations",
    "termination",
    "insurance",
    "health_safety",
    "quality_standards",
    "materials",
    "subcontracting",
    "intellectual_property",
    "confidentiality",
    "force_majeure",
)


@dataclass(frozen=True)
class ContractTerms:
    """
    Terms snapshot fixed at generation.

    The clause blocks are JSON-ready dicts produced by
    ``contracts_engines.terms``; monetary figures inside them are strings.
    """

    work_description: str
    total_value: Decimal
    currency: str
    payment_schedule: dict[str, Any]
    timeline: dict[str, Any]
    warranty: dict[str, Any]
    variations: dict[str, Any]
    termination: dict[str, Any]
    insurance: dict[str, Any]
    health_safety: dict[str, Any] = field(default_factory=dict)
    quality_standards: dict[str, Any] = field(default_factory=dict)
    materials: dict[str, Any] = field(default_factory=dict)
    subcontracting: dict[str, Any] = field(default_factory=dict)
    intellectual_property: dict[str, Any] = field(default_factory=dict)
    confidentiality: dict[str, Any] = field(default_factory=dict)
    force_majeure: dict[str, Any] = field(default_factory=dict)
    additional_terms: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "work_description": self.work_description,
            "total_value": _money(self.total_value),
            "currency": self.currency,
            "additional_terms": list(self.additional_terms),
        }
        for name in _TERM_BLOCKS:
            data[name] = getattr(self, name)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContractTerms:
        return cls(
            work_description=data.get("work_description", ""),
            total_value=_parse_money(data["total_value"]),
            currency=data.get("currency", "GBP"),
            additional_terms=tuple(data.get("additional_terms", [])),
            **{name: dict(data.get(name) or {}) for name in _TERM_BLOCKS},
        )


# =============================================================================
# Contract
# =============================================================================


@dataclass(frozen=True)
class ContractDraft:
    """Everything the generator derives; the repository adds identity and timestamps."""

    project_id: str
    work_breakdown_id: str
    proposal_id: str
    purchaser_id: str
    provider_id: str
    contract_number: str
    terms: ContractTerms
    signatures: tuple[Signature, ...] = ()
    milestones: tuple[Milestone, ...] = ()
    variations: tuple[Variation, ...] = ()
    payments: tuple[Payment, ...] = ()
    documents: tuple[Document, ...] = ()
    legal_compliance: dict[str, Any] = field(default_factory=dict)
    consumer_protection: dict[str, Any] = field(default_factory=dict)
    dispute_resolution: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ContractRecord:
    """Persisted contract state as read from the store."""

    id: UUID
    contract_number: str
    project_id: str
    work_breakdown_id: str
    proposal_id: str
    purchaser_id: str
    provider_id: str
    status: ContractStatus
    version: int
    terms: ContractTerms
    created_at: datetime
    updated_at: datetime
    signatures: tuple[Signature, ...] = ()
    milestones: tuple[Milestone, ...] = ()
    variations: tuple[Variation, ...] = ()
    payments: tuple[Payment, ...] = ()
    documents: tuple[Document, ...] = ()
    legal_compliance: dict[str, Any] = field(default_factory=dict)
    consumer_protection: dict[str, Any] = field(default_factory=dict)
    dispute_resolution: dict[str, Any] = field(default_factory=dict)
    variation_sequence: int = 0
    signed_at: datetime | None = None
    completed_at: datetime | None = None
    terminated_at: datetime | None = None
    termination_reason: str | None = None

    def signature(self, signature_id: str) -> Signature | None:
        return next((s for s in self.signatures if s.id == signature_id), None)

    def milestone(self, milestone_id: str) -> Milestone | None:
        return next((m for m in self.milestones if m.id == milestone_id), None)

    def variation(self, variation_id: str) -> Variation | None:
        return next((v for v in self.variations if v.id == variation_id), None)

    def payment(self, payment_id: str) -> Payment | None:
        return next((p for p in self.payments if p.id == payment_id), None)

    @property
    def all_signed(self) -> bool:
        return bool(self.signatures) and all(s.is_signed for s in self.signatures)

    @property
    def approved_variation_cost(self) -> Decimal:
        return sum(
            (
                v.cost_impact
                for v in self.variations
                if v.status in (VariationStatus.APPROVED, VariationStatus.IMPLEMENTED)
            ),
            Decimal("0"),
        )

    @property
    def total_paid(self) -> Decimal:
        return sum(
            (
                p.amount
                for p in self.payments
                if p.status not in (PaymentStatus.CANCELLED, PaymentStatus.REFUNDED)
            ),
            Decimal("0"),
        )


@dataclass(frozen=True)
class ContractChanges:
    """
    Partial update to a contract.  ``None`` means "leave unchanged".

    The repository merges these over the record it read, validates any
    status change, and writes conditionally on that record's version.
    """

    status: ContractStatus | None = None
    signatures: tuple[Signature, ...] | None = None
    milestones: tuple[Milestone, ...] | None = None
    variations: tuple[Variation, ...] | None = None
    payments: tuple[Payment, ...] | None = None
    documents: tuple[Document, ...] | None = None
    variation_sequence: int | None = None
    signed_at: datetime | None = None
    completed_at: datetime | None = None
    terminated_at: datetime | None = None
    termination_reason: str | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in self.__dataclass_fields__)

    def apply_to(self, record: ContractRecord) -> ContractRecord:
        """Return ``record`` with every non-None field of this change set applied."""
        updates = {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
            if getattr(self, name) is not None
        }
        return replace(record, **updates)


# =============================================================================
# Audit
# =============================================================================


@dataclass(frozen=True)
class AuditEntry:
    """One immutable line of a contract's audit trail."""

    id: UUID
    contract_id: UUID
    action: AuditAction
    performed_by: str
    performed_at: datetime
    details: dict[str, Any] = field(default_factory=dict)
    ip_address: str = "system"
    user_agent: str = "system"
    previous_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
