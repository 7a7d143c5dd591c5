"""
Tests for the typed exception hierarchy (``contracts_kernel.exceptions``).

Every exception carries a machine-readable ``code`` and an ``ErrorKind``
whose transport status callers use instead of parsing messages.
"""

import pytest

from contracts_kernel.exceptions import (
    ContractAlreadyExistsError,
    ContractNotFoundError,
    ContractsKernelError,
    ErrorKind,
    InvalidContractStateError,
    InvalidSigningTokenError,
    InvalidStatusTransitionError,
    InvalidVerificationCodeError,
    OptimisticLockError,
    PaymentExceedsContractValueError,
    PaymentValidationError,
    RequiredDataMissingError,
    SignatureExpiredError,
    SignatureNotFoundError,
    StorageFailureError,
    TransitionGuardError,
)


class TestErrorKind:
    @pytest.mark.parametrize(
        "kind,status",
        [
            (ErrorKind.VALIDATION_FAILED, 400),
            (ErrorKind.REQUIRED_DATA_MISSING, 422),
            (ErrorKind.NOT_FOUND, 404),
            (ErrorKind.INVALID_VERIFICATION_CODE, 401),
            (ErrorKind.INVALID_STATE, 409),
            (ErrorKind.CONFLICT, 409),
            (ErrorKind.STORAGE_FAILURE, 500),
        ],
    )
    def test_http_status(self, kind, status):
        assert kind.http_status == status

    def test_every_kind_has_a_status(self):
        for kind in ErrorKind:
            assert isinstance(kind.http_status, int)


class TestExceptionKinds:
    """Each concrete exception maps to the expected kind."""

    @pytest.mark.parametrize(
        "exc,kind",
        [
            (PaymentValidationError("c", "bad"), ErrorKind.VALIDATION_FAILED),
            (PaymentExceedsContractValueError("c", "2", "1"), ErrorKind.VALIDATION_FAILED),
            (RequiredDataMissingError(["proposal"]), ErrorKind.REQUIRED_DATA_MISSING),
            (ContractNotFoundError("c"), ErrorKind.NOT_FOUND),
            (SignatureNotFoundError("c", "s"), ErrorKind.NOT_FOUND),
            (InvalidVerificationCodeError("c", "s"), ErrorKind.INVALID_VERIFICATION_CODE),
            (SignatureExpiredError("c", "s", "t"), ErrorKind.INVALID_VERIFICATION_CODE),
            (InvalidSigningTokenError("c", "s"), ErrorKind.INVALID_VERIFICATION_CODE),
            (InvalidStatusTransitionError("c", "a", "b"), ErrorKind.INVALID_STATE),
            (TransitionGuardError("c", "a", "b", "all_signed"), ErrorKind.INVALID_STATE),
            (InvalidContractStateError("c", "a", "sign"), ErrorKind.INVALID_STATE),
            (OptimisticLockError("Contract", "c", 3), ErrorKind.CONFLICT),
            (ContractAlreadyExistsError("c"), ErrorKind.CONFLICT),
            (StorageFailureError("update contract"), ErrorKind.STORAGE_FAILURE),
        ],
    )
    def test_kind(self, exc, kind):
        assert isinstance(exc, ContractsKernelError)
        assert exc.kind == kind
        assert exc.code

    def test_codes_are_unique(self):
        classes = [
            PaymentValidationError,
            PaymentExceedsContractValueError,
            RequiredDataMissingError,
            ContractNotFoundError,
            SignatureNotFoundError,
            InvalidVerificationCodeError,
            SignatureExpiredError,
            InvalidSigningTokenError,
            InvalidStatusTransitionError,
            TransitionGuardError,
            InvalidContractStateError,
            OptimisticLockError,
            ContractAlreadyExistsError,
            StorageFailureError,
        ]
        codes = [cls.code for cls in classes]
        assert len(codes) == len(set(codes))


class TestMessages:
    def test_verification_code_message_is_generic(self):
        assert str(InvalidVerificationCodeError("c", "s")) == "Invalid verification code"

    def test_storage_failure_names_the_operation(self):
        exc = StorageFailureError("update contract", "disk full")
        assert str(exc) == "Failed to update contract"
        assert exc.cause == "disk full"

    def test_transition_message_names_both_statuses(self):
        exc = InvalidStatusTransitionError("c-1", "draft", "active")
        assert "draft" in str(exc) and "active" in str(exc)

    def test_guard_message_names_the_guard(self):
        exc = TransitionGuardError("c-1", "pending-signatures", "fully-signed", "some_signed")
        assert "some_signed" in str(exc)
        assert isinstance(exc, InvalidStatusTransitionError)
        assert exc.to_status == "fully-signed"
