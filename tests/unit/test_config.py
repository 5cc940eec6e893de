"""
Unit tests for configuration loading, validation helpers and errors.
"""

import json

import pytest
from pydantic import ValidationError

from privutxo.core.config import EngineConfig, load_config
from privutxo.core.errors import (
    ErrorKind,
    InvalidAmount,
    NullifierAlreadyUsed,
    OperationResult,
    UTXOBusy,
)
from privutxo.utils.validation import (
    MAX_SPLIT_OUTPUTS,
    validate_address,
    validate_amount,
    validate_output_values,
    validate_owners,
    validate_signature,
)

ADDRESS = "0x" + "ab" * 20


class TestEngineConfig:
    """Tests for the pydantic config model."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.range_proof_bits == 32
        assert config.max_amount == 2**32 - 1

    def test_signing_domain(self):
        domain = EngineConfig(chain_id=5, vault_address="0x" + "AA" * 20).signing_domain()
        assert domain == {
            "name": "PrivateUTXOVault",
            "version": "1",
            "chainId": 5,
            "verifyingContract": "0x" + "aa" * 20,
        }

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            EngineConfig(range_proof_bits=0)
        with pytest.raises(ValidationError):
            EngineConfig(vault_address="0x1234")
        with pytest.raises(ValidationError):
            EngineConfig(log_level="LOUD")

    def test_frozen(self):
        with pytest.raises(ValidationError):
            EngineConfig().range_proof_bits = 8


class TestLoadConfig:
    """Tests for layered config resolution."""

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("PRIVUTXO_RANGE_PROOF_BITS", "16")
        monkeypatch.setenv("PRIVUTXO_CHAIN_ID", "10")
        config = load_config()
        assert config.range_proof_bits == 16
        assert config.chain_id == 10

    def test_file_overrides_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PRIVUTXO_RANGE_PROOF_BITS", "16")
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"range_proof_bits": 12}))
        assert load_config(str(path)).range_proof_bits == 12

    def test_explicit_overrides_win(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"range_proof_bits": 12}))
        assert load_config(str(path), range_proof_bits=20).range_proof_bits == 20

    def test_non_object_file_rejected(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            load_config(str(path))


class TestValidation:
    """Tests for (bool, str) validators."""

    def test_amount(self):
        assert validate_amount(1, 255)[0]
        assert not validate_amount(0, 255)[0]
        assert not validate_amount(256, 255)[0]
        assert not validate_amount(True, 255)[0]
        assert not validate_amount(1.5, 255)[0]

    def test_address(self):
        assert validate_address(ADDRESS) == (True, "")
        valid, err = validate_address("0x12", "owner")
        assert not valid and "owner" in err
        assert not validate_address(None)[0]

    def test_output_values(self):
        assert validate_output_values([60, 40], 255)[0]
        assert not validate_output_values([], 255)[0]
        assert not validate_output_values([60, 0], 255)[0]
        assert not validate_output_values([1] * (MAX_SPLIT_OUTPUTS + 1), 255)[0]
        assert not validate_output_values("60,40", 255)[0]

    def test_owners(self):
        assert validate_owners([ADDRESS, ADDRESS], 2)[0]
        assert not validate_owners([ADDRESS], 2)[0]
        assert not validate_owners([ADDRESS, "bob"], 2)[0]

    def test_signature(self):
        assert validate_signature(bytes(65))[0]
        assert not validate_signature(bytes(64))[0]
        assert not validate_signature("0x" + "00" * 65)[0]


class TestErrors:
    """Tests for the error taxonomy and results."""

    def test_exception_carries_kind(self):
        error = InvalidAmount("too small")
        assert error.kind is ErrorKind.INVALID_AMOUNT
        assert error.message == "too small"

    def test_recoverable(self):
        assert ErrorKind.INVALID_AMOUNT.recoverable
        assert ErrorKind.UTXO_BUSY.recoverable
        assert not ErrorKind.AUTHORIZATION_FAILURE.recoverable
        assert not ErrorKind.NULLIFIER_ALREADY_USED.recoverable
        assert not ErrorKind.VERIFIER_UNAVAILABLE.recoverable

    def test_result_from_error(self):
        result = OperationResult.from_error(NullifierAlreadyUsed("seen"))
        assert not result
        assert result.error is ErrorKind.NULLIFIER_ALREADY_USED
        assert result.message == "seen"

    def test_ok_result(self):
        result = OperationResult.ok("done", revealed_value=5)
        assert result
        assert result.error is None
        assert result.revealed_value == 5

    def test_default_message(self):
        assert UTXOBusy().message == "UTXOBusy"
