"""
contracts_services.milestone_tracker -- milestone completion and payments.

Responsibility:
    Completes milestones and records payments against them.  Both go
    through the repository's version-checked write path, so financial state
    is never lost to a concurrent write.

Architecture position:
    Services -- thin orchestration over ContractRepository.

Invariants enforced:
    - A completed or cancelled milestone cannot be completed again.
    - ``net_amount == amount - retention_held``.  It is derived when
      omitted and must match when supplied.
    - Payments are in the contract currency and reference an existing
      milestone.
    - Cumulative payments never exceed total value plus approved variation
      cost (enforced inside the repository write).

Failure modes:
    - MilestoneNotFoundError, InvalidMilestoneStateError.
    - PaymentValidationError, PaymentExceedsContractValueError.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from contracts_kernel.db.types import to_decimal
from contracts_kernel.domain.records import (
    ContractRecord,
    Milestone,
    MilestoneStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    parse_iso,
)
from contracts_kernel.exceptions import (
    InvalidMilestoneStateError,
    PaymentValidationError,
)
from contracts_kernel.logging_config import get_logger
from contracts_kernel.services.contract_repository import ContractRepository

logger = get_logger("services.milestone_tracker")

_CLOSED_MILESTONE_STATUSES = (MilestoneStatus.COMPLETED, MilestoneStatus.CANCELLED)


@dataclass(frozen=True)
class PaymentInput:
    """Caller-supplied payment fields; identity and bookkeeping are assigned here."""

    milestone_id: str
    amount: Decimal
    due_date: datetime
    status: PaymentStatus = PaymentStatus.PENDING
    retention_held: Decimal = Decimal("0")
    net_amount: Decimal | None = None
    currency: str | None = None
    paid_date: datetime | None = None
    method: PaymentMethod | None = None
    reference: str | None = None
    invoice_number: str | None = None
    vat_amount: Decimal | None = None
    documents: tuple[str, ...] = ()
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PaymentInput:
        net = data.get("net_amount")
        vat = data.get("vat_amount")
        method = data.get("method")
        due = data["due_date"]
        paid = data.get("paid_date")
        return cls(
            milestone_id=data["milestone_id"],
            amount=to_decimal(data["amount"]),
            due_date=parse_iso(due) if isinstance(due, str) else due,
            status=PaymentStatus(data.get("status", "pending")),
            retention_held=to_decimal(data.get("retention_held", "0")),
            net_amount=to_decimal(net) if net is not None else None,
            currency=data.get("currency"),
            paid_date=parse_iso(paid) if isinstance(paid, str) else paid,
            method=PaymentMethod(method) if method else None,
            reference=data.get("reference"),
            invoice_number=data.get("invoice_number"),
            vat_amount=to_decimal(vat) if vat is not None else None,
            documents=tuple(data.get("documents", ())),
            notes=data.get("notes"),
        )


class MilestoneTracker:
    """Milestone completion and payment recording for one repository."""

    def __init__(self, repository: ContractRepository):
        self._repository = repository

    def complete_milestone(
        self,
        contract_id: UUID,
        milestone_id: str,
        completed_by: str,
        notes: str | None = None,
    ) -> ContractRecord:
        """
        Mark a milestone completed, stamping actual date and approval.

        Raises:
            MilestoneNotFoundError: No such milestone on the contract.
            InvalidMilestoneStateError: Already completed or cancelled.
        """
        now = self._repository.clock.now()

        def complete(milestone: Milestone) -> Milestone:
            if milestone.status in _CLOSED_MILESTONE_STATUSES:
                raise InvalidMilestoneStateError(milestone.id, milestone.status.value)
            return replace(
                milestone,
                status=MilestoneStatus.COMPLETED,
                actual_date=now,
                approved_by=completed_by,
                approved_at=now,
                notes=notes if notes is not None else milestone.notes,
            )

        record = self._repository.update_milestone(
            contract_id, milestone_id, complete, completed_by
        )
        logger.info(
            "milestone_completed",
            extra={
                "contract_id": str(contract_id),
                "milestone_id": milestone_id,
                "completed_by": completed_by,
            },
        )
        return record

    def record_payment(
        self,
        contract_id: UUID,
        payment: PaymentInput | Mapping[str, Any],
        recorded_by: str,
    ) -> tuple[ContractRecord, Payment]:
        """
        Validate and append one payment.

        Returns:
            The updated contract and the payment as stored.
        """
        if not isinstance(payment, PaymentInput):
            try:
                payment = PaymentInput.from_dict(payment)
            except (KeyError, ValueError) as exc:
                raise PaymentValidationError(str(contract_id), f"malformed payment: {exc}") from exc

        contract = self._repository.get(contract_id)
        currency = payment.currency or contract.terms.currency
        self._validate(contract, payment, currency)

        net_amount = (
            payment.net_amount
            if payment.net_amount is not None
            else payment.amount - payment.retention_held
        )
        stored = Payment(
            id=str(self._repository.new_id()),
            milestone_id=payment.milestone_id,
            amount=payment.amount,
            currency=currency,
            due_date=payment.due_date,
            status=payment.status,
            retention_held=payment.retention_held,
            net_amount=net_amount,
            paid_date=payment.paid_date,
            method=payment.method,
            reference=payment.reference,
            invoice_number=payment.invoice_number,
            vat_amount=payment.vat_amount,
            documents=payment.documents,
            notes=payment.notes,
            recorded_by=recorded_by,
            recorded_at=self._repository.clock.now(),
        )
        record = self._repository.record_payment(contract_id, stored, recorded_by)
        logger.info(
            "payment_recorded",
            extra={
                "contract_id": str(contract_id),
                "payment_id": stored.id,
                "milestone_id": stored.milestone_id,
                "amount": str(stored.amount),
                "total_paid": str(record.total_paid),
            },
        )
        return record, stored

    @staticmethod
    def _validate(contract: ContractRecord, payment: PaymentInput, currency: str) -> None:
        contract_id = str(contract.id)
        if payment.amount <= 0:
            raise PaymentValidationError(contract_id, "amount must be positive")
        if payment.retention_held < 0:
            raise PaymentValidationError(contract_id, "retention cannot be negative")
        if payment.retention_held > payment.amount:
            raise PaymentValidationError(contract_id, "retention exceeds amount")
        if (
            payment.net_amount is not None
            and payment.net_amount != payment.amount - payment.retention_held
        ):
            raise PaymentValidationError(
                contract_id, "net amount must equal amount less retention held"
            )
        if currency != contract.terms.currency:
            raise PaymentValidationError(
                contract_id,
                f"currency {currency} does not match contract currency {contract.terms.currency}",
            )
