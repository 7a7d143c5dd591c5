"""
Tests for engine configuration (``contracts_config``).

Covers YAML loading over defaults, environment overrides, value coercion,
rejection of unknown keys, and checksum stability.
"""

from decimal import Decimal
from pathlib import Path

import pytest

import contracts_config
from contracts_config import (
    ContractsConfig,
    compute_checksum,
    config_from_env,
    load_config,
    parse_config,
)

DEFAULTS_YAML = Path(contracts_config.__file__).parent / "defaults.yaml"


class TestContractsConfigDefaults:
    def test_shipped_yaml_matches_defaults(self):
        assert load_config(DEFAULTS_YAML, environ={}) == ContractsConfig()

    def test_money_settings_are_decimal(self):
        config = ContractsConfig()
        assert isinstance(config.contract_works_threshold, Decimal)
        assert isinstance(config.late_fee_rate, Decimal)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"verification_code_bytes": 4},
            {"max_write_attempts": 0},
            {"audit_mode": "eventually"},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            ContractsConfig(**kwargs)


class TestParseConfig:
    def test_nested_and_flat_forms(self):
        nested = parse_config({"contracts": {"cooling_off_days": 21}})
        flat = parse_config({"cooling_off_days": 21})
        assert nested == flat
        assert nested.cooling_off_days == 21

    def test_values_are_coerced(self):
        config = parse_config(
            {
                "late_fee_rate": 4.5,
                "lead_time_days": "7",
                "default_reminder_days": [1, 2, 5],
            }
        )
        assert config.late_fee_rate == Decimal("4.5")
        assert config.lead_time_days == 7
        assert config.default_reminder_days == (1, 2, 5)

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError, match="Unknown configuration keys: colour"):
            parse_config({"colour": "blue"})

    def test_bad_decimal_rejected(self):
        with pytest.raises(ValueError, match="late_fee_rate"):
            parse_config({"late_fee_rate": "lots"})

    def test_bool_is_not_an_integer(self):
        with pytest.raises(ValueError, match="cooling_off_days"):
            parse_config({"cooling_off_days": True})


class TestLoadConfig:
    def test_yaml_file_over_defaults(self, tmp_path):
        path = tmp_path / "contracts.yaml"
        path.write_text("contracts:\n  audit_mode: queued\n  lead_time_days: 21\n")
        config = load_config(path, environ={})
        assert config.audit_mode == "queued"
        assert config.lead_time_days == 21
        assert config.currency == "GBP"

    def test_path_from_environment(self, tmp_path):
        path = tmp_path / "contracts.yaml"
        path.write_text("currency: EUR\n")
        config = load_config(environ={"CONTRACTS_CONFIG": str(path)})
        assert config.currency == "EUR"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml", environ={})

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "contracts.yaml"
        path.write_text("database_url: sqlite:///from-file.db\n")
        config = load_config(
            path, environ={"CONTRACTS_DATABASE_URL": "sqlite:///from-env.db"}
        )
        assert config.database_url == "sqlite:///from-env.db"

    def test_load_is_logged_with_checksum(self, captured_logs):
        config = load_config(environ={})
        records = [r for r in captured_logs() if r["message"] == "contracts_config_loaded"]
        assert records[-1]["checksum"] == compute_checksum(config)
        assert records[-1]["source"] == "defaults"


class TestConfigFromEnv:
    def test_no_overrides_returns_same_instance(self):
        base = ContractsConfig()
        assert config_from_env(base, environ={}) is base

    def test_signing_base_url(self):
        config = config_from_env(environ={"CONTRACTS_SIGNING_BASE_URL": "https://sign.example"})
        assert config.signing_base_url == "https://sign.example"


class TestChecksum:
    def test_stable_for_equal_configs(self):
        assert compute_checksum(ContractsConfig()) == compute_checksum(ContractsConfig())

    def test_changes_with_settings(self):
        assert compute_checksum(ContractsConfig()) != compute_checksum(
            ContractsConfig(cooling_off_days=7)
        )
