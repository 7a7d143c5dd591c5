"""
Tests for SignatureWorkflow (``contracts_services.signature_workflow``).

Covers request issuance (secrets never stored raw), signing-link
verification, signature processing through the versioned write, every
rejection path leaving the contract untouched, and the expiry sweep.
"""

import re
from datetime import timedelta

import pytest

from contracts_kernel.domain.records import (
    AuditAction,
    ContractStatus,
    SignatureParty,
    SignatureStatus,
)
from contracts_kernel.exceptions import (
    ContractNotFoundError,
    InvalidContractStateError,
    InvalidSigningTokenError,
    InvalidVerificationCodeError,
    SignatureExpiredError,
    SignatureNotFoundError,
)
from contracts_kernel.utils.hashing import hash_secret
from tests.conftest import PROVIDER_EMAIL, PURCHASER_EMAIL, TEST_ACTOR

SIGNATURE_DATA = "data:image/png;base64,iVBORw0KGgo="


def _serve_snapshot_once(monkeypatch, repository, snapshot):
    """The next ``repository.get`` returns ``snapshot``; later reads hit the store."""
    real_get = repository.get
    served = []

    def get(contract_id):
        if not served:
            served.append(contract_id)
            return snapshot
        return real_get(contract_id)

    monkeypatch.setattr(repository, "get", get)


def _process(signatures, contract_id, request, **overrides):
    values = dict(
        signature_data=SIGNATURE_DATA,
        verification_code=request.verification_code,
        ip_address="203.0.113.7",
        user_agent="Mozilla/5.0",
    )
    values.update(overrides)
    return signatures.process_signature(contract_id, request.signature_id, **values)


# =========================================================================
# Request
# =========================================================================


class TestRequestSignature:
    def test_first_request_moves_draft_to_pending(self, generated_contract, signatures, repository):
        result = signatures.request_signature(
            generated_contract.id, PURCHASER_EMAIL, "Alice Owner", "purchaser"
        )
        record = repository.get(generated_contract.id)
        assert record.status == ContractStatus.PENDING_SIGNATURES
        assert result.signature_id == generated_contract.signatures[0].id

    def test_only_hashes_are_stored(self, generated_contract, signatures, repository):
        result = signatures.request_signature(
            generated_contract.id, PURCHASER_EMAIL, "Alice Owner", "purchaser"
        )
        stored = repository.get(generated_contract.id).signature(result.signature_id)
        assert stored.status == SignatureStatus.INVITED
        assert stored.verification_code_hash == hash_secret(result.verification_code)
        assert stored.signing_token_hash == hash_secret(result.signing_token)
        assert result.verification_code not in str(stored.to_dict())
        assert result.signing_token not in str(stored.to_dict())

    def test_code_is_uppercase_hex(self, generated_contract, signatures, config):
        result = signatures.request_signature(
            generated_contract.id, PURCHASER_EMAIL, "Alice Owner", "purchaser"
        )
        assert re.fullmatch(r"[0-9A-F]+", result.verification_code)
        assert len(result.verification_code) == config.verification_code_bytes * 2

    def test_link_carries_token_not_code(self, generated_contract, signatures):
        result = signatures.request_signature(
            generated_contract.id, PURCHASER_EMAIL, "Alice Owner", "purchaser"
        )
        assert result.signing_url == (
            f"https://sign.test/contracts/{generated_contract.id}/sign/"
            f"{result.signature_id}?token={result.signing_token}"
        )
        assert result.verification_code not in result.signing_url
        assert "verification_code" in result.to_dict()
        assert "signing_token" not in result.to_dict()

    def test_expiry_and_reminders(self, generated_contract, signatures, repository, clock):
        result = signatures.request_signature(
            generated_contract.id,
            PURCHASER_EMAIL,
            "Alice Owner",
            "purchaser",
            expiry_days=10,
            reminder_days=[2, 5, 9],
        )
        assert result.expires_at == clock.now() + timedelta(days=10)
        stored = repository.get(generated_contract.id).signature(result.signature_id)
        assert stored.reminder_days == (2, 5, 9)

    def test_email_match_is_case_insensitive(self, generated_contract, signatures):
        result = signatures.request_signature(
            generated_contract.id, PURCHASER_EMAIL.upper(), "Alice Owner", "purchaser"
        )
        assert result.signature_id == generated_contract.signatures[0].id

    def test_unknown_signer_rejected(self, generated_contract, signatures, repository):
        with pytest.raises(SignatureNotFoundError):
            signatures.request_signature(
                generated_contract.id, "stranger@example.com", "Stranger", "purchaser"
            )
        assert repository.get(generated_contract.id).version == generated_contract.version

    def test_witness_is_appended(self, generated_contract, signatures, repository):
        result = signatures.request_signature(
            generated_contract.id, "wendy@example.com", "Wendy Witness", "witness"
        )
        record = repository.get(generated_contract.id)
        assert len(record.signatures) == 3
        assert record.signature(result.signature_id).party == SignatureParty.WITNESS

    def test_request_is_audited(self, generated_contract, signatures, clock, audit_trail):
        result = signatures.request_signature(
            generated_contract.id, PURCHASER_EMAIL, "Alice Owner", "purchaser", actor=TEST_ACTOR
        )
        latest = audit_trail(generated_contract.id)[0]
        assert latest.action == AuditAction.SIGNATURE_REQUESTED
        assert latest.details["signature_id"] == result.signature_id
        assert latest.new_value == {"status": "pending-signatures"}

    def test_not_allowed_once_active(self, active_contract, signatures):
        with pytest.raises(InvalidContractStateError):
            signatures.request_signature(
                active_contract.id, PURCHASER_EMAIL, "Alice Owner", "purchaser"
            )

    def test_unknown_contract(self, signatures, repository):
        with pytest.raises(ContractNotFoundError):
            signatures.request_signature(
                repository.new_id(), PURCHASER_EMAIL, "Alice Owner", "purchaser"
            )


# =========================================================================
# Signing link
# =========================================================================


class TestVerifySigningToken:
    def test_valid_token_marks_viewed(self, signing_contract, signatures, repository):
        contract_id, requests = signing_contract
        request = requests["purchaser"]
        before = repository.get(contract_id)

        viewed = signatures.verify_signing_token(
            contract_id, request.signature_id, request.signing_token
        )

        assert viewed.status == SignatureStatus.VIEWED
        after = repository.get(contract_id)
        assert after.version == before.version + 1
        assert after.status == ContractStatus.PENDING_SIGNATURES

    def test_second_visit_does_not_write(self, signing_contract, signatures, repository):
        contract_id, requests = signing_contract
        request = requests["purchaser"]
        signatures.verify_signing_token(contract_id, request.signature_id, request.signing_token)
        version = repository.get(contract_id).version

        signatures.verify_signing_token(contract_id, request.signature_id, request.signing_token)
        assert repository.get(contract_id).version == version

    def test_wrong_token(self, signing_contract, signatures, captured_logs):
        contract_id, requests = signing_contract
        with pytest.raises(InvalidSigningTokenError):
            signatures.verify_signing_token(
                contract_id, requests["purchaser"].signature_id, "forged"
            )
        assert any(r["message"] == "signing_token_rejected" for r in captured_logs())

    def test_token_of_another_signer(self, signing_contract, signatures):
        contract_id, requests = signing_contract
        with pytest.raises(InvalidSigningTokenError):
            signatures.verify_signing_token(
                contract_id,
                requests["purchaser"].signature_id,
                requests["provider"].signing_token,
            )

    def test_expired_link(self, signing_contract, signatures, clock):
        contract_id, requests = signing_contract
        request = requests["purchaser"]
        clock.advance_days(31)
        with pytest.raises(SignatureExpiredError):
            signatures.verify_signing_token(
                contract_id, request.signature_id, request.signing_token
            )


# =========================================================================
# Process
# =========================================================================


class TestProcessSignature:
    def test_first_signer_partially_signs(self, signing_contract, signatures, repository):
        contract_id, requests = signing_contract
        result = _process(signatures, contract_id, requests["purchaser"])

        assert result.valid
        assert result.contract_status == ContractStatus.PARTIALLY_SIGNED
        assert [c.check for c in result.checks] == ["identity", "integrity", "timestamp"]

        stored = repository.get(contract_id).signature(requests["purchaser"].signature_id)
        assert stored.status == SignatureStatus.SIGNED
        assert stored.ip_address == "203.0.113.7"
        assert stored.verification_code_hash is None
        assert stored.signing_token_hash is None
        assert stored.legal_validity.valid

    def test_both_signers_fully_sign(self, signing_contract, signatures, repository, clock):
        contract_id, requests = signing_contract
        _process(signatures, contract_id, requests["purchaser"])
        clock.advance(120)
        result = _process(signatures, contract_id, requests["provider"])

        record = repository.get(contract_id)
        assert result.contract_status == ContractStatus.FULLY_SIGNED
        assert record.status == ContractStatus.FULLY_SIGNED
        assert record.signed_at == clock.now()
        assert record.all_signed

    def test_audit_trail_lines(self, signing_contract, signatures, clock):
        contract_id, requests = signing_contract
        result = _process(signatures, contract_id, requests["provider"])
        assert result.audit_trail == (
            f"Signature processed at {clock.now().isoformat()}",
            f"Signer: BuildRight Ltd <{PROVIDER_EMAIL}>",
            "IP Address: 203.0.113.7",
            "User Agent: Mozilla/5.0",
        )

    def test_signing_is_audited_with_signer_context(self, signing_contract, signatures, clock, audit_trail):
        contract_id, requests = signing_contract
        clock.advance(5)
        _process(signatures, contract_id, requests["purchaser"])
        latest = audit_trail(contract_id)[0]
        assert latest.action == AuditAction.SIGNED
        assert latest.performed_by == PURCHASER_EMAIL
        assert latest.ip_address == "203.0.113.7"
        assert latest.user_agent == "Mozilla/5.0"
        assert latest.previous_value == {"status": "pending-signatures"}
        assert latest.new_value == {"status": "partially-signed"}

    def test_wrong_code_changes_nothing(self, signing_contract, signatures, repository, audit_trail, captured_logs):
        contract_id, requests = signing_contract
        before = repository.get(contract_id)
        trail_before = len(audit_trail(contract_id))

        with pytest.raises(InvalidVerificationCodeError) as exc_info:
            _process(signatures, contract_id, requests["purchaser"], verification_code="WRONG")

        assert str(exc_info.value) == "Invalid verification code"
        assert repository.get(contract_id) == before
        assert len(audit_trail(contract_id)) == trail_before
        assert any(r["message"] == "verification_code_rejected" for r in captured_logs())

    def test_code_of_another_signer_rejected(self, signing_contract, signatures):
        contract_id, requests = signing_contract
        with pytest.raises(InvalidVerificationCodeError):
            _process(
                signatures,
                contract_id,
                requests["purchaser"],
                verification_code=requests["provider"].verification_code,
            )

    def test_mismatched_token_rejected(self, signing_contract, signatures, repository):
        contract_id, requests = signing_contract
        before = repository.get(contract_id)
        with pytest.raises(InvalidSigningTokenError):
            _process(signatures, contract_id, requests["purchaser"], signing_token="forged")
        assert repository.get(contract_id) == before

    def test_matching_token_accepted(self, signing_contract, signatures):
        contract_id, requests = signing_contract
        request = requests["purchaser"]
        result = _process(signatures, contract_id, request, signing_token=request.signing_token)
        assert result.valid

    def test_expired_request_changes_nothing(self, signing_contract, signatures, repository, clock):
        contract_id, requests = signing_contract
        before = repository.get(contract_id)
        clock.advance_days(31)
        with pytest.raises(SignatureExpiredError):
            _process(signatures, contract_id, requests["purchaser"])
        assert repository.get(contract_id) == before

    def test_code_is_single_use(self, signing_contract, signatures):
        contract_id, requests = signing_contract
        _process(signatures, contract_id, requests["purchaser"])
        with pytest.raises(InvalidVerificationCodeError):
            _process(signatures, contract_id, requests["purchaser"])

    def test_code_consumed_after_read_is_rejected(
        self, signing_contract, signatures, repository, audit_trail, monkeypatch
    ):
        contract_id, requests = signing_contract
        request = requests["purchaser"]
        snapshot = repository.get(contract_id)
        _process(signatures, contract_id, request, signature_data="")
        entries_before = len(audit_trail(contract_id))

        _serve_snapshot_once(monkeypatch, repository, snapshot)
        with pytest.raises(InvalidVerificationCodeError):
            _process(signatures, contract_id, request)

        stored = repository.get(contract_id)
        assert stored.signature(request.signature_id).status == SignatureStatus.INVALID
        assert stored.status == ContractStatus.PENDING_SIGNATURES
        assert len(audit_trail(contract_id)) == entries_before

    def test_code_replaced_after_read_is_rejected(
        self, signing_contract, signatures, repository, monkeypatch
    ):
        contract_id, requests = signing_contract
        snapshot = repository.get(contract_id)
        retry = signatures.request_signature(
            contract_id, PURCHASER_EMAIL, "Alice Owner", "purchaser"
        )

        _serve_snapshot_once(monkeypatch, repository, snapshot)
        with pytest.raises(InvalidVerificationCodeError):
            _process(signatures, contract_id, requests["purchaser"])

        assert repository.get(contract_id).signature(retry.signature_id).status == (
            SignatureStatus.INVITED
        )
        assert _process(signatures, contract_id, retry).valid

    def test_failed_checks_mark_signature_invalid(self, signing_contract, signatures, repository):
        contract_id, requests = signing_contract
        result = _process(signatures, contract_id, requests["purchaser"], signature_data="")

        assert not result.valid
        assert result.contract_status == ContractStatus.PENDING_SIGNATURES
        stored = repository.get(contract_id).signature(requests["purchaser"].signature_id)
        assert stored.status == SignatureStatus.INVALID
        assert stored.signed_at is None

    def test_invalid_signer_can_be_re_requested(self, signing_contract, signatures):
        contract_id, requests = signing_contract
        _process(signatures, contract_id, requests["purchaser"], signature_data="")
        retry = signatures.request_signature(
            contract_id, PURCHASER_EMAIL, "Alice Owner", "purchaser"
        )
        assert _process(signatures, contract_id, retry).valid

    def test_signed_signer_cannot_be_re_requested(self, signing_contract, signatures):
        contract_id, requests = signing_contract
        _process(signatures, contract_id, requests["purchaser"])
        with pytest.raises(InvalidContractStateError):
            signatures.request_signature(contract_id, PURCHASER_EMAIL, "Alice Owner", "purchaser")

    def test_unknown_signature(self, signing_contract, signatures):
        contract_id, _ = signing_contract
        with pytest.raises(SignatureNotFoundError):
            signatures.process_signature(
                contract_id, "sig-404", SIGNATURE_DATA, "CODE", "127.0.0.1", "ua"
            )


# =========================================================================
# Expiry sweep
# =========================================================================


class TestExpireOverdueSignatures:
    def test_nothing_overdue(self, signing_contract, signatures):
        assert signatures.expire_overdue_signatures() == 0

    def test_overdue_requests_expire(self, signing_contract, signatures, repository, clock, audit_trail):
        contract_id, requests = signing_contract
        _process(signatures, contract_id, requests["purchaser"])
        clock.advance_days(31)

        assert signatures.expire_overdue_signatures() == 1

        record = repository.get(contract_id)
        provider = record.signature(requests["provider"].signature_id)
        assert provider.status == SignatureStatus.EXPIRED
        assert provider.verification_code_hash is None
        assert record.signature(requests["purchaser"].signature_id).status == SignatureStatus.SIGNED
        assert record.status == ContractStatus.PARTIALLY_SIGNED

        latest = audit_trail(contract_id)[0]
        assert latest.action == AuditAction.SIGNATURES_EXPIRED
        assert latest.details == {"signature_ids": [requests["provider"].signature_id]}

    def test_sweep_is_idempotent(self, signing_contract, signatures, clock):
        clock.advance_days(31)
        assert signatures.expire_overdue_signatures() == 2
        assert signatures.expire_overdue_signatures() == 0

    def test_expired_signer_can_be_re_requested(self, signing_contract, signatures, clock):
        contract_id, requests = signing_contract
        clock.advance_days(31)
        signatures.expire_overdue_signatures()

        with pytest.raises(InvalidSigningTokenError):
            signatures.verify_signing_token(
                contract_id,
                requests["provider"].signature_id,
                requests["provider"].signing_token,
            )
        retry = signatures.request_signature(
            contract_id, PROVIDER_EMAIL, "BuildRight Ltd", "provider"
        )
        assert _process(signatures, contract_id, retry).valid
