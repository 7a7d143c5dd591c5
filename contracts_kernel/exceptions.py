"""
Typed Exception Hierarchy for the Contracts Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the command facade, background jobs, tests) must react to failures
by TYPE, never by parsing message text.  Every exception here carries:
  1. A class-level ``code`` (machine-readable, API-safe)
  2. A class-level ``kind`` (an ``ErrorKind`` used to pick a transport code)
  3. Structured attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        workflow.process_signature(...)
    except Exception as e:
        if "verification" in str(e):   # FRAGILE
            return 401

Example - RIGHT way:
    try:
        workflow.process_signature(...)
    except InvalidVerificationCodeError as e:
        return envelope_for(e)          # e.kind -> 401

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ContractsKernelError (base)
    |
    +-- ValidationError
    |   +-- GenerationValidationError
    |   +-- RequiredDataMissingError
    |   +-- PaymentValidationError
    |   +-- PaymentExceedsContractValueError
    |   +-- InvalidPartyRoleError
    |
    +-- NotFoundError
    |   +-- ContractNotFoundError
    |   +-- SignatureNotFoundError
    |   +-- MilestoneNotFoundError
    |   +-- VariationNotFoundError
    |
    +-- SignatureVerificationError
    |   +-- InvalidVerificationCodeError
    |   +-- SignatureExpiredError
    |   +-- InvalidSigningTokenError
    |
    +-- StateError
    |   +-- InvalidStatusTransitionError
    |   |   +-- TransitionGuardError
    |   +-- InvalidContractStateError
    |   +-- InvalidMilestoneStateError
    |   +-- InvalidVariationStateError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- ContractAlreadyExistsError
    |
    +-- StorageFailureError

===============================================================================
ERROR KINDS -> TRANSPORT STATUS
===============================================================================

Kind                       | Status | When
---------------------------|--------|------------------------------------------
VALIDATION_FAILED          | 400    | Bad generation inputs, bad payment
REQUIRED_DATA_MISSING      | 422    | A collaborator returned nothing
NOT_FOUND                  | 404    | Contract / signature / milestone absent
INVALID_VERIFICATION_CODE  | 401    | Wrong code, expired request, bad token
INVALID_STATE              | 409    | Illegal lifecycle transition
CONFLICT                   | 409    | Version conflict survived all retries
STORAGE_FAILURE            | 500    | Underlying store failed

===============================================================================
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Coarse failure classification used by transports."""

    VALIDATION_FAILED = "validation_failed"
    REQUIRED_DATA_MISSING = "required_data_missing"
    NOT_FOUND = "not_found"
    INVALID_VERIFICATION_CODE = "invalid_verification_code"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    STORAGE_FAILURE = "storage_failure"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.REQUIRED_DATA_MISSING: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_VERIFICATION_CODE: 401,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORAGE_FAILURE: 500,
}


class ContractsKernelError(Exception):
    """
    Base exception for all contracts kernel errors.

    All subclasses must have ``code`` and ``kind`` class attributes.
    """

    code: str = "CONTRACTS_KERNEL_ERROR"
    kind: ErrorKind = ErrorKind.STORAGE_FAILURE


# Validation-related exceptions


class ValidationError(ContractsKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"
    kind: ErrorKind = ErrorKind.VALIDATION_FAILED


class GenerationValidationError(ValidationError):
    """Contract generation request failed validation; nothing was persisted."""

    code: str = "GENERATION_VALIDATION_FAILED"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Generation request invalid")


class RequiredDataMissingError(ValidationError):
    """A collaborator lookup returned nothing for a required input."""

    code: str = "REQUIRED_DATA_MISSING"
    kind: ErrorKind = ErrorKind.REQUIRED_DATA_MISSING

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"Required data not found: {', '.join(self.missing)}")


class PaymentValidationError(ValidationError):
    """Payment figures are internally inconsistent."""

    code: str = "PAYMENT_INVALID"

    def __init__(self, contract_id: str, reason: str):
        self.contract_id = contract_id
        self.reason = reason
        super().__init__(f"Invalid payment for contract {contract_id}: {reason}")


class PaymentExceedsContractValueError(ValidationError):
    """Cumulative payments would exceed the contract's payable value."""

    code: str = "PAYMENT_EXCEEDS_CONTRACT_VALUE"

    def __init__(self, contract_id: str, attempted_total: str, payable_value: str):
        self.contract_id = contract_id
        self.attempted_total = attempted_total
        self.payable_value = payable_value
        super().__init__(
            f"Payments on contract {contract_id} would total {attempted_total}, "
            f"exceeding payable value {payable_value}"
        )


class InvalidPartyRoleError(ValidationError):
    """Party role is not one the operation understands."""

    code: str = "INVALID_PARTY_ROLE"

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Invalid party role: {role}")


# Not-found exceptions


class NotFoundError(ContractsKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND


class ContractNotFoundError(NotFoundError):
    """Contract with given ID was not found."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract not found: {contract_id}")


class SignatureNotFoundError(NotFoundError):
    """No signature record matches the request."""

    code: str = "SIGNATURE_NOT_FOUND"

    def __init__(self, contract_id: str, signature_ref: str):
        self.contract_id = contract_id
        self.signature_ref = signature_ref
        super().__init__(
            f"Signature {signature_ref} not found on contract {contract_id}"
        )


class MilestoneNotFoundError(NotFoundError):
    """Milestone with given ID is not on the contract."""

    code: str = "MILESTONE_NOT_FOUND"

    def __init__(self, contract_id: str, milestone_id: str):
        self.contract_id = contract_id
        self.milestone_id = milestone_id
        super().__init__(
            f"Milestone {milestone_id} not found on contract {contract_id}"
        )


class VariationNotFoundError(NotFoundError):
    """Variation with given ID is not on the contract."""

    code: str = "VARIATION_NOT_FOUND"

    def __init__(self, contract_id: str, variation_id: str):
        self.contract_id = contract_id
        self.variation_id = variation_id
        super().__init__(
            f"Variation {variation_id} not found on contract {contract_id}"
        )


# Signature verification exceptions


class SignatureVerificationError(ContractsKernelError):
    """Base exception for rejected signer submissions."""

    code: str = "SIGNATURE_VERIFICATION_ERROR"
    kind: ErrorKind = ErrorKind.INVALID_VERIFICATION_CODE


class InvalidVerificationCodeError(SignatureVerificationError):
    """Submitted verification code does not match. Nothing was mutated."""

    code: str = "INVALID_VERIFICATION_CODE"

    def __init__(self, contract_id: str, signature_id: str):
        self.contract_id = contract_id
        self.signature_id = signature_id
        super().__init__("Invalid verification code")


class SignatureExpiredError(SignatureVerificationError):
    """Signature request expired before the signer submitted."""

    code: str = "SIGNATURE_EXPIRED"

    def __init__(self, contract_id: str, signature_id: str, expired_at: str):
        self.contract_id = contract_id
        self.signature_id = signature_id
        self.expired_at = expired_at
        super().__init__(
            f"Signature request {signature_id} expired at {expired_at}"
        )


class InvalidSigningTokenError(SignatureVerificationError):
    """Signing-link token is unknown, already used, or mismatched."""

    code: str = "INVALID_SIGNING_TOKEN"

    def __init__(self, contract_id: str, signature_id: str):
        self.contract_id = contract_id
        self.signature_id = signature_id
        super().__init__("Invalid or already used signing link")


# State-related exceptions


class StateError(ContractsKernelError):
    """Base exception for operations not allowed in the current state."""

    code: str = "STATE_ERROR"
    kind: ErrorKind = ErrorKind.INVALID_STATE


class InvalidStatusTransitionError(StateError):
    """Requested status change is not an edge of the contract lifecycle."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, contract_id: str, from_status: str, to_status: str):
        self.contract_id = contract_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Contract {contract_id} cannot move from {from_status} to {to_status}"
        )


class TransitionGuardError(InvalidStatusTransitionError):
    """The lifecycle edge exists but its guard does not hold for the contract."""

    code: str = "TRANSITION_GUARD_FAILED"

    def __init__(self, contract_id: str, from_status: str, to_status: str, guard: str):
        self.contract_id = contract_id
        self.from_status = from_status
        self.to_status = to_status
        self.guard = guard
        StateError.__init__(
            self,
            f"Contract {contract_id} cannot move from {from_status} to {to_status}: "
            f"guard {guard} not satisfied",
        )


class InvalidContractStateError(StateError):
    """Operation is not available while the contract is in this status."""

    code: str = "INVALID_CONTRACT_STATE"

    def __init__(self, contract_id: str, status: str, operation: str):
        self.contract_id = contract_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} contract {contract_id} in status {status}"
        )


class InvalidMilestoneStateError(StateError):
    """Milestone is not in a state that allows the operation."""

    code: str = "INVALID_MILESTONE_STATE"

    def __init__(self, milestone_id: str, status: str):
        self.milestone_id = milestone_id
        self.status = status
        super().__init__(f"Milestone {milestone_id} is already {status}")


class InvalidVariationStateError(StateError):
    """Variation has already been decided."""

    code: str = "INVALID_VARIATION_STATE"

    def __init__(self, variation_id: str, status: str):
        self.variation_id = variation_id
        self.status = status
        super().__init__(f"Variation {variation_id} is already {status}")


# Concurrency-related exceptions


class ConcurrencyError(ContractsKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    kind: ErrorKind = ErrorKind.CONFLICT


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another writer"
        )


class ContractAlreadyExistsError(ConcurrencyError):
    """Insert collided with an existing contract identity."""

    code: str = "CONTRACT_ALREADY_EXISTS"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract already exists: {contract_id}")


# Storage


class StorageFailureError(ContractsKernelError):
    """The underlying store failed; message names the operation."""

    code: str = "STORAGE_FAILURE"
    kind: ErrorKind = ErrorKind.STORAGE_FAILURE

    def __init__(self, operation: str, cause: str | None = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation}")
