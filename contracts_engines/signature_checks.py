"""
Signature verification checks (``contracts_engines.signature_checks``).

Responsibility
--------------
The ordered, pluggable checks run against a submitted signature once its
verification code has matched.  Each check returns a ``ValidityCheck``; a
signature is valid only if every check passed.

Architecture position
---------------------
**Engines layer** -- pure.  ``now`` is passed in; no clock reads.

Invariants enforced
-------------------
* Checks run in the order given and all of them run, so the stored
  legal-validity block always lists every outcome.
* Check names are stable (``identity``, ``integrity``, ``timestamp``).
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from contracts_kernel.domain.records import Signature, ValidityCheck
from contracts_kernel.utils.hashing import hash_secret


class SignatureCheck(Protocol):
    name: str

    def run(self, signature: Signature, signature_data: str, now: datetime) -> ValidityCheck:
        ...


def signature_digest(signature_data: str) -> str:
    """SHA-256 hex digest of the submitted signature payload."""
    return hash_secret(signature_data)


class IdentityCheck:
    """The signature record names a signer we can hold to it."""

    name = "identity"

    def run(self, signature: Signature, signature_data: str, now: datetime) -> ValidityCheck:
        passed = bool(signature.signer_name.strip()) and "@" in signature.signer_email
        return ValidityCheck(
            check=self.name,
            passed=passed,
            details="Signer identity verified" if passed else "Signer identity incomplete",
            timestamp=now,
        )


class IntegrityCheck:
    """The submitted payload is non-empty and within the size limit."""

    name = "integrity"

    def __init__(self, max_bytes: int = 1_000_000):
        self.max_bytes = max_bytes

    def run(self, signature: Signature, signature_data: str, now: datetime) -> ValidityCheck:
        size = len(signature_data.encode("utf-8")) if signature_data else 0
        if size == 0:
            details, passed = "Signature data is empty", False
        elif size > self.max_bytes:
            details, passed = f"Signature data exceeds {self.max_bytes} bytes", False
        else:
            details = f"Signature integrity verified ({signature_digest(signature_data)[:16]})"
            passed = True
        return ValidityCheck(check=self.name, passed=passed, details=details, timestamp=now)


class TimestampCheck:
    """The signature was submitted inside its request window."""

    name = "timestamp"

    def run(self, signature: Signature, signature_data: str, now: datetime) -> ValidityCheck:
        if signature.requested_at is not None and now < signature.requested_at:
            details, passed = "Signed before the signature was requested", False
        elif signature.expires_at is not None and now > signature.expires_at:
            details, passed = "Signed after the signature request expired", False
        else:
            details, passed = "Timestamp verified", True
        return ValidityCheck(check=self.name, passed=passed, details=details, timestamp=now)


DEFAULT_CHECKS: tuple[SignatureCheck, ...] = (
    IdentityCheck(),
    IntegrityCheck(),
    TimestampCheck(),
)


def run_checks(
    checks: Sequence[SignatureCheck],
    signature: Signature,
    signature_data: str,
    now: datetime,
) -> tuple[ValidityCheck, ...]:
    return tuple(check.run(signature, signature_data, now) for check in checks)
