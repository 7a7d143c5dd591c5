"""
contracts_services.signature_workflow -- multi-party digital execution.

Responsibility:
    Issues signature requests (verification code plus single-use signing
    link), verifies and records submitted signatures, and sweeps overdue
    requests to ``expired``.

Architecture position:
    Services -- orchestration over ContractRepository and the pure
    signature checks in ``contracts_engines.signature_checks``.

Invariants enforced:
    - Only SHA-256 hashes of the verification code and signing token are
      persisted.  The raw values leave through the return value only.
    - The signing link carries the opaque token, never the code.
    - A wrong code, wrong token or expired request fails BEFORE any write:
      contract version and audit trail are unchanged.
    - Processing a signature consumes both secrets, whether the checks
      passed or not; a rejected signer needs a fresh request.
    - Status derivation (pending -> partially -> fully signed) and
      ``signed_at`` stamping happen inside the repository's versioned write,
      so concurrent signers never lose each other's signature.

Failure modes:
    - ContractNotFoundError, SignatureNotFoundError.
    - InvalidContractStateError: request or sign outside the signing window.
    - InvalidVerificationCodeError, InvalidSigningTokenError,
      SignatureExpiredError.

Audit relevance:
    ``signature-requested``, ``signed`` and ``signatures-expired`` entries,
    each carrying the signature ids involved.
"""

from __future__ import annotations

import secrets
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from contracts_config import ContractsConfig
from contracts_engines.signature_checks import (
    DEFAULT_CHECKS,
    SignatureCheck,
    run_checks,
    signature_digest,
)
from contracts_kernel.domain.records import (
    AWAITING_SIGNATURE_STATUSES,
    AuditAction,
    ContractChanges,
    ContractRecord,
    ContractStatus,
    LegalValidity,
    Signature,
    SignatureParty,
    SignatureStatus,
    SignatureType,
    ValidityCheck,
    iso,
)
from contracts_kernel.exceptions import (
    InvalidContractStateError,
    InvalidSigningTokenError,
    InvalidVerificationCodeError,
    SignatureExpiredError,
    SignatureNotFoundError,
)
from contracts_kernel.logging_config import get_logger
from contracts_kernel.services.contract_repository import ContractRepository
from contracts_kernel.utils.hashing import hash_secret, secrets_match

logger = get_logger("services.signature_workflow")

_REQUESTABLE = (
    ContractStatus.DRAFT,
    ContractStatus.PENDING_SIGNATURES,
    ContractStatus.PARTIALLY_SIGNED,
)
_ADDITIONAL_SIGNERS = (SignatureParty.WITNESS, SignatureParty.GUARANTOR)


@dataclass(frozen=True)
class SignatureRequestResult:
    """What the caller hands to the signer out-of-band."""

    signature_id: str
    signing_url: str
    expires_at: datetime
    verification_code: str
    signing_token: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature_id": self.signature_id,
            "signing_url": self.signing_url,
            "expiry_date": iso(self.expires_at),
            "verification_code": self.verification_code,
        }


@dataclass(frozen=True)
class SignatureVerificationResult:
    valid: bool
    signature_id: str
    checks: tuple[ValidityCheck, ...]
    audit_trail: tuple[str, ...]
    contract_status: ContractStatus
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "signature_id": self.signature_id,
            "verification_checks": [c.to_dict() for c in self.checks],
            "audit_trail": list(self.audit_trail),
            "legal_validity": self.valid,
            "contract_status": self.contract_status.value,
            "timestamp": iso(self.timestamp),
        }


class SignatureWorkflow:
    """
    Request, verify and record signatures on a contract.

    Contract:
        ``request_signature`` then ``process_signature`` once per signer.
        ``verify_signing_token`` serves the signing link.

    Non-goals:
        - Does NOT deliver the code or link; notification is external.
    """

    def __init__(
        self,
        repository: ContractRepository,
        config: ContractsConfig | None = None,
        checks: Sequence[SignatureCheck] = DEFAULT_CHECKS,
    ):
        self._repository = repository
        self._config = config or ContractsConfig()
        self._checks = tuple(checks)

    @property
    def _clock(self):
        return self._repository.clock

    # =========================================================================
    # Request
    # =========================================================================

    def request_signature(
        self,
        contract_id: UUID,
        signer_email: str,
        signer_name: str,
        role: SignatureParty | str,
        signature_type: SignatureType | str = SignatureType.ELECTRONIC,
        witness_required: bool = False,
        expiry_days: int | None = None,
        reminder_days: Sequence[int] | None = None,
        actor: str = "system",
    ) -> SignatureRequestResult:
        """
        Issue (or re-issue) a signature request for ``signer_email``.

        The matching signature record is updated in place; an unlisted
        witness or guarantor is appended.  A ``draft`` contract moves to
        ``pending-signatures``.
        """
        role = SignatureParty(role)
        signature_type = SignatureType(signature_type)
        expiry_days = (
            self._config.default_signature_expiry_days if expiry_days is None else expiry_days
        )
        reminders = tuple(
            self._config.default_reminder_days if reminder_days is None else reminder_days
        )
        verification_code = secrets.token_bytes(self._config.verification_code_bytes).hex().upper()
        signing_token = secrets.token_urlsafe(32)
        now = self._clock.now()
        expires_at = now + timedelta(days=expiry_days)
        issued: dict[str, Signature] = {}

        def apply(current: ContractRecord) -> ContractChanges:
            if current.status not in _REQUESTABLE:
                raise InvalidContractStateError(
                    str(current.id), current.status.value, "request signature"
                )
            existing = _find_by_email(current.signatures, signer_email)
            if existing is None and role not in _ADDITIONAL_SIGNERS:
                raise SignatureNotFoundError(str(current.id), signer_email)
            if existing is not None and existing.is_signed:
                raise InvalidContractStateError(
                    str(current.id), current.status.value, "re-request a completed signature"
                )

            signature = Signature(
                id=existing.id if existing is not None else str(self._repository.new_id()),
                party=existing.party if existing is not None else role,
                signer_name=signer_name,
                signer_email=signer_email,
                signature_type=signature_type,
                status=SignatureStatus.INVITED,
                witness_required=witness_required,
                signer_title=existing.signer_title if existing is not None else None,
                requested_at=now,
                expires_at=expires_at,
                reminder_days=reminders,
                verification_code_hash=hash_secret(verification_code),
                signing_token_hash=hash_secret(signing_token),
                legal_validity=LegalValidity(timestamp=now),
            )
            issued["signature"] = signature

            if existing is not None:
                signatures = tuple(
                    signature if s.id == existing.id else s for s in current.signatures
                )
            else:
                signatures = current.signatures + (signature,)
            status = (
                ContractStatus.PENDING_SIGNATURES
                if current.status == ContractStatus.DRAFT
                else None
            )
            return ContractChanges(signatures=signatures, status=status)

        self._repository.mutate(
            contract_id,
            apply,
            actor,
            action=AuditAction.SIGNATURE_REQUESTED,
            details=lambda before, after: {
                "signature_id": issued["signature"].id,
                "signer_email": signer_email,
                "signer_role": issued["signature"].party.value,
                "expires_at": iso(expires_at),
            },
        )
        signature = issued["signature"]
        logger.info(
            "signature_requested",
            extra={
                "contract_id": str(contract_id),
                "signature_id": signature.id,
                "signer_role": signature.party.value,
                "expires_at": iso(expires_at),
            },
        )
        return SignatureRequestResult(
            signature_id=signature.id,
            signing_url=self._signing_url(contract_id, signature.id, signing_token),
            expires_at=expires_at,
            verification_code=verification_code,
            signing_token=signing_token,
        )

    def _signing_url(self, contract_id: UUID, signature_id: str, token: str) -> str:
        base = self._config.signing_base_url.rstrip("/")
        return f"{base}/contracts/{contract_id}/sign/{signature_id}?token={token}"

    # =========================================================================
    # Signing link
    # =========================================================================

    def verify_signing_token(
        self,
        contract_id: UUID,
        signature_id: str,
        signing_token: str,
    ) -> Signature:
        """
        Authenticate a signing-link visit and mark the request ``viewed``.

        Raises:
            InvalidSigningTokenError: Token does not match (or was consumed).
            SignatureExpiredError: The request is past its expiry.
        """
        record = self._repository.get(contract_id)
        signature = _require_signature(record, signature_id)
        if not secrets_match(signing_token, signature.signing_token_hash):
            logger.warning(
                "signing_token_rejected",
                extra={"contract_id": str(contract_id), "signature_id": signature_id},
            )
            raise InvalidSigningTokenError(str(contract_id), signature_id)
        self._check_not_expired(contract_id, signature)

        if signature.status != SignatureStatus.INVITED:
            return signature

        def apply(current: ContractRecord) -> ContractChanges:
            latest = current.signature(signature_id)
            if latest is None or latest.status != SignatureStatus.INVITED:
                return ContractChanges()
            viewed = replace(latest, status=SignatureStatus.VIEWED)
            return ContractChanges(
                signatures=tuple(viewed if s.id == signature_id else s for s in current.signatures)
            )

        updated = self._repository.mutate(contract_id, apply, signature.signer_email)
        return updated.signature(signature_id) or signature

    # =========================================================================
    # Process
    # =========================================================================

    def process_signature(
        self,
        contract_id: UUID,
        signature_id: str,
        signature_data: str,
        verification_code: str,
        ip_address: str,
        user_agent: str,
        signing_token: str | None = None,
    ) -> SignatureVerificationResult:
        """
        Verify a submitted signature and record the outcome.

        The signature becomes ``signed`` only if every verification check
        passes, otherwise ``invalid``.
        """
        record = self._repository.get(contract_id)
        signature = _require_signature(record, signature_id)

        if not secrets_match(verification_code, signature.verification_code_hash):
            logger.warning(
                "verification_code_rejected",
                extra={"contract_id": str(contract_id), "signature_id": signature_id},
            )
            raise InvalidVerificationCodeError(str(contract_id), signature_id)
        if signing_token is not None and not secrets_match(
            signing_token, signature.signing_token_hash
        ):
            raise InvalidSigningTokenError(str(contract_id), signature_id)
        self._check_not_expired(contract_id, signature)

        now = self._clock.now()
        checks = run_checks(self._checks, signature, signature_data, now)
        valid = all(c.passed for c in checks)
        audit_lines = (
            f"Signature processed at {iso(now)}",
            f"Signer: {signature.signer_name} <{signature.signer_email}>",
            f"IP Address: {ip_address}",
            f"User Agent: {user_agent}",
        )
        processed = replace(
            signature,
            status=SignatureStatus.SIGNED if valid else SignatureStatus.INVALID,
            signature_data=signature_data,
            signature_digest=signature_digest(signature_data) if signature_data else None,
            signed_at=now if valid else None,
            ip_address=ip_address,
            user_agent=user_agent,
            verification_code_hash=None,
            signing_token_hash=None,
            legal_validity=LegalValidity(
                valid=valid,
                checks=checks,
                timestamp=now,
                audit_trail=signature.legal_validity.audit_trail + audit_lines,
            ),
        )

        updated = self._repository.add_signature(
            contract_id,
            processed,
            signature.signer_email,
            expected_code_hash=signature.verification_code_hash,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(
            "signature_processed",
            extra={
                "contract_id": str(contract_id),
                "signature_id": signature_id,
                "valid": valid,
                "failed_checks": [c.check for c in checks if not c.passed],
                "contract_status": updated.status.value,
            },
        )
        return SignatureVerificationResult(
            valid=valid,
            signature_id=signature_id,
            checks=checks,
            audit_trail=processed.legal_validity.audit_trail,
            contract_status=updated.status,
            timestamp=now,
        )

    def _check_not_expired(self, contract_id: UUID, signature: Signature) -> None:
        now = self._clock.now()
        expired = signature.status == SignatureStatus.EXPIRED or (
            signature.expires_at is not None and now > signature.expires_at
        )
        if expired:
            raise SignatureExpiredError(
                str(contract_id), signature.id, iso(signature.expires_at) or "unknown"
            )

    # =========================================================================
    # Expiry sweep
    # =========================================================================

    def expire_overdue_signatures(self, actor: str = "system") -> int:
        """
        Move every overdue awaiting signature to ``expired``.

        Returns:
            Number of signatures expired across all contracts.
        """
        now = self._clock.now()
        expired_total = 0
        candidates = self._repository.find_by_status(
            ContractStatus.PENDING_SIGNATURES, ContractStatus.PARTIALLY_SIGNED
        )
        for record in candidates:
            expired_ids: list[str] = []

            def apply(current: ContractRecord) -> ContractChanges:
                expired_ids.clear()
                signatures = []
                for s in current.signatures:
                    if (
                        s.status in AWAITING_SIGNATURE_STATUSES
                        and s.expires_at is not None
                        and s.expires_at < now
                    ):
                        s = replace(
                            s,
                            status=SignatureStatus.EXPIRED,
                            verification_code_hash=None,
                            signing_token_hash=None,
                        )
                        expired_ids.append(s.id)
                    signatures.append(s)
                if not expired_ids:
                    return ContractChanges()
                return ContractChanges(signatures=tuple(signatures))

            self._repository.mutate(
                record.id,
                apply,
                actor,
                action=AuditAction.SIGNATURES_EXPIRED,
                details=lambda before, after: {"signature_ids": list(expired_ids)},
            )
            if expired_ids:
                expired_total += len(expired_ids)
                logger.info(
                    "signatures_expired",
                    extra={"contract_id": str(record.id), "count": len(expired_ids)},
                )
        return expired_total


def _find_by_email(signatures: Sequence[Signature], email: str) -> Signature | None:
    wanted = email.strip().lower()
    return next((s for s in signatures if s.signer_email.strip().lower() == wanted), None)


def _require_signature(record: ContractRecord, signature_id: str) -> Signature:
    signature = record.signature(signature_id)
    if signature is None:
        raise SignatureNotFoundError(str(record.id), signature_id)
    return signature
