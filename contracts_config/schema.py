"""
Configuration schema (``contracts_config.schema``).

Responsibility
--------------
The frozen ``ContractsConfig`` dataclass: every tunable constant of
contract generation, signing and storage, with production defaults.

Invariants enforced
-------------------
* Frozen: a config instance never changes once built.
* Monetary thresholds and rates are Decimal, never float.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class ContractsConfig:
    """Runtime configuration for the contract lifecycle engine."""

    currency: str = "GBP"
    database_url: str = "sqlite:///contracts.db"

    # Generation
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

    # Signing
    signing_base_url: str = "https://app.example.com"
    verification_code_bytes: int = 16
    default_signature_expiry_days: int = 30
    default_reminder_days: tuple[int, ...] = field(default=(3, 7))

    # Storage
    max_write_attempts: int = 5
    audit_mode: str = "sync"

    def __post_init__(self) -> None:
        if self.verification_code_bytes < 8:
            raise ValueError("verification_code_bytes must be at least 8")
        if self.max_write_attempts < 1:
            raise ValueError("max_write_attempts must be at least 1")
        if self.audit_mode not in ("sync", "queued"):
            raise ValueError(f"Unknown audit_mode: {self.audit_mode}")
