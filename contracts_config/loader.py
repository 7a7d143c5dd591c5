"""
Configuration Loader (``contracts_config.loader``).

Responsibility
--------------
Loads a YAML file and parses it into a ``ContractsConfig``.  Unknown keys
are rejected; absent keys take the schema defaults.

Invariants enforced
-------------------
* Every parsed object is the frozen ``ContractsConfig``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or bad value  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import asdict, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from contracts_config.schema import ContractsConfig
from contracts_kernel.utils.hashing import hash_payload

_FIELD_TYPES = {f.name: f.type for f in fields(ContractsConfig)}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _coerce(name: str, value: Any) -> Any:
    declared = _FIELD_TYPES[name]
    if declared == "Decimal":
        try:
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"{name}: not a decimal: {value!r}") from exc
    if declared == "int":
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ValueError(f"{name}: not an integer: {value!r}")
        return int(value)
    if declared.startswith("tuple"):
        return tuple(int(v) for v in value)
    return str(value)


def parse_config(data: dict[str, Any], base: ContractsConfig | None = None) -> ContractsConfig:
    """
    Build a config from a mapping, layered over ``base`` (or the defaults).

    The mapping may be flat or nested under a top-level ``contracts`` key.
    """
    if "contracts" in data and isinstance(data["contracts"], dict):
        data = data["contracts"]

    unknown = sorted(set(data) - set(_FIELD_TYPES))
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    values = asdict(base or ContractsConfig())
    for key, raw in data.items():
        values[key] = _coerce(key, raw)
    values["default_reminder_days"] = tuple(values["default_reminder_days"])
    return ContractsConfig(**values)


def compute_checksum(config: ContractsConfig | dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical configuration always produces identical checksums.
    """
    data = asdict(config) if isinstance(config, ContractsConfig) else config
    return hash_payload(data)
