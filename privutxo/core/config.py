"""
Engine configuration for privutxo.

Defines proof parameters, the attestation signing domain and operational
paths. Values resolve in this order: explicit keyword overrides, a JSON
config file, PRIVUTXO_* environment variables (a .env file is honoured),
then the defaults below.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from privutxo.crypto import is_valid_address


ENV_PREFIX = "PRIVUTXO_"


class EngineConfig(BaseModel):
    """Engine-wide configuration parameters"""

    model_config = {"frozen": True}

    # Proof parameters
    range_proof_bits: int = Field(default=32, ge=1, le=128)  # committed values live in [0, 2^bits)

    # Attestation domain (typed-data signing)
    chain_id: int = Field(default=31337, ge=0)
    vault_address: str = "0x" + "00" * 20
    domain_name: str = "PrivateUTXOVault"
    domain_version: str = "1"

    # Nullifier domain separation tag
    nullifier_domain: str = "privutxo.nullifier.v1"

    # Paths / logging
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")
    log_level: str = "INFO"

    @field_validator("vault_address")
    @classmethod
    def _check_vault_address(cls, value: str) -> str:
        if not is_valid_address(value):
            raise ValueError(f"vault_address must be a 0x-prefixed 20-byte hex address, got {value!r}")
        return value.lower()

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level {value!r}")
        return level

    @property
    def max_amount(self) -> int:
        """Largest value a range proof can cover."""
        return (1 << self.range_proof_bits) - 1

    def signing_domain(self) -> Dict[str, Any]:
        """Typed-data domain for attestations."""
        return {
            "name": self.domain_name,
            "version": self.domain_version,
            "chainId": self.chain_id,
            "verifyingContract": self.vault_address,
        }

    def ensure_dirs(self) -> None:
        """Create data and log directories."""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.log_dir.mkdir(exist_ok=True, parents=True)


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for name in EngineConfig.model_fields:
        raw = os.environ.get(ENV_PREFIX + name.upper())
        if raw is not None:
            overrides[name] = raw
    return overrides


def load_config(config_path: Optional[str] = None, **overrides: Any) -> EngineConfig:
    """
    Load configuration from file and environment, falling back to defaults.

    Args:
        config_path: Optional path to a JSON config file
        **overrides: Explicit values, highest priority

    Returns:
        EngineConfig instance
    """
    load_dotenv(override=False)

    values: Dict[str, Any] = {}
    values.update(_env_overrides())

    if config_path:
        with open(config_path, "r", encoding="utf-8") as f:
            file_values = json.load(f)
        if not isinstance(file_values, dict):
            raise ValueError(f"Config file {config_path} must contain a JSON object")
        values.update(file_values)

    values.update(overrides)
    return EngineConfig(**values)


# Default config instance (can be overridden)
config = EngineConfig()
