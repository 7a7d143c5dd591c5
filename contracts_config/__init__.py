"""
contracts_config -- single public entrypoint for engine configuration.

Responsibility:
    ``load_config()`` reads an optional YAML file over the built-in
    defaults and then applies environment overrides.  Services receive the
    resulting frozen ``ContractsConfig``; none of them read files or
    environment variables themselves.

Environment overrides:
    CONTRACTS_DATABASE_URL      -> database_url
    CONTRACTS_SIGNING_BASE_URL  -> signing_base_url
    CONTRACTS_CONFIG            -> YAML path used when load_config() gets none

Audit relevance:
    Every ``load_config()`` call logs ``contracts_config_loaded`` with the
    config checksum, tying behaviour back to the exact settings in force.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import Mapping

from contracts_config.loader import compute_checksum, load_yaml_file, parse_config
from contracts_config.schema import ContractsConfig
from contracts_kernel.logging_config import get_logger

logger = get_logger("config")

_ENV_OVERRIDES = {
    "CONTRACTS_DATABASE_URL": "database_url",
    "CONTRACTS_SIGNING_BASE_URL": "signing_base_url",
}


def config_from_env(
    base: ContractsConfig | None = None,
    environ: Mapping[str, str] | None = None,
) -> ContractsConfig:
    """Apply the supported environment overrides to ``base``."""
    env = os.environ if environ is None else environ
    config = base or ContractsConfig()
    overrides = {
        field_name: env[var]
        for var, field_name in _ENV_OVERRIDES.items()
        if env.get(var)
    }
    return replace(config, **overrides) if overrides else config


def load_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ContractsConfig:
    """
    The public configuration entrypoint.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: On unknown keys or malformed values.
    """
    env = os.environ if environ is None else environ
    if path is None and env.get("CONTRACTS_CONFIG"):
        path = env["CONTRACTS_CONFIG"]

    config = ContractsConfig()
    if path is not None:
        config = parse_config(load_yaml_file(Path(path)), base=config)
    config = config_from_env(config, env)

    logger.info(
        "contracts_config_loaded",
        extra={
            "source": str(path) if path is not None else "defaults",
            "checksum": compute_checksum(config),
        },
    )
    return config


__all__ = [
    "ContractsConfig",
    "compute_checksum",
    "config_from_env",
    "load_config",
    "parse_config",
]
