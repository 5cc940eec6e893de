"""
Tests for the click command line interface.
"""

import json

import pytest
from click.testing import CliRunner

from privutxo.cli.main import cli, decrypt_wallet_key
from privutxo.utils.logger import PrivUTXOLogger


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI binds log handlers to the runner's captured stdout."""
    yield
    PrivUTXOLogger.reset()
    PrivUTXOLogger.setup()


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, data_dir, *args, **kwargs):
    return runner.invoke(cli, ["--data-dir", str(data_dir), *args], catch_exceptions=False, **kwargs)


class TestCommands:
    """Tests for the individual commands."""

    def test_generators(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "generators")
        assert result.exit_code == 0
        assert "G.x = 0x1" in result.output
        assert "on curve: True" in result.output
        assert "privutxo.pedersen.H" in result.output

    def test_wallet_create_and_list(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "wallet", "create", "--name", "w1", "--password", "secret")
        assert result.exit_code == 0
        data = json.loads((tmp_path / "wallets" / "w1.json").read_text())
        assert data["address"] in result.output
        assert "private_key" not in data

        listing = invoke(runner, tmp_path, "wallet", "list")
        assert f"w1: {data['address']}" in listing.output

    def test_wallet_create_twice_fails(self, runner, tmp_path):
        invoke(runner, tmp_path, "wallet", "create", "--name", "w1", "--password", "secret")
        result = invoke(runner, tmp_path, "wallet", "create", "--name", "w1", "--password", "secret")
        assert result.exit_code != 0
        assert "already exists" in result.output

    def test_wallet_key_decrypts(self, runner, tmp_path):
        invoke(runner, tmp_path, "wallet", "create", "--name", "w1", "--password", "secret")
        data = json.loads((tmp_path / "wallets" / "w1.json").read_text())
        assert len(decrypt_wallet_key(data, "w1", "secret")) == 32
        assert decrypt_wallet_key(data, "w1", "wrong") is None
        assert decrypt_wallet_key({}, "w1", "secret") is None

    def test_empty_wallet_list(self, runner, tmp_path):
        assert "No wallets found." in invoke(runner, tmp_path, "wallet", "list").output

    def test_utxos_list_needs_owner(self, runner, tmp_path):
        result = runner.invoke(cli, ["--data-dir", str(tmp_path), "utxos", "list"])
        assert result.exit_code != 0

    def test_utxos_list_empty(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "utxos", "list", "--owner", "0x" + "ab" * 20)
        assert "No UTXOs found." in result.output

    def test_config_file_and_log_file(self, runner, tmp_path):
        log_dir = tmp_path / "logs"
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"log_dir": str(log_dir), "log_level": "debug"}))
        result = invoke(runner, tmp_path, "--config", str(config_path), "--log-file", "generators")
        assert result.exit_code == 0
        assert (log_dir / "privutxo.log").exists()


class TestDemo:
    """Tests for the walkthrough command."""

    def test_demo_persisted(self, runner, tmp_path):
        result = invoke(runner, tmp_path, "demo", "--bits", "8", "--persist")
        assert result.exit_code == 0, result.output
        assert "✗ Alice splits 100 into 70/40: ValueConservationViolation" in result.output
        assert "✗ Alice re-splits the spent input: UTXOAlreadySpent" in result.output
        assert "Revealed value: 40" in result.output
        assert "Audit consistent: True" in result.output
        assert (tmp_path / "privutxo.db").exists()

    def test_demo_with_wallet(self, runner, tmp_path):
        invoke(runner, tmp_path, "wallet", "create", "--name", "alice", "--password", "pw")
        address = json.loads((tmp_path / "wallets" / "alice.json").read_text())["address"]
        result = invoke(runner, tmp_path, "demo", "--bits", "8", "--persist", "--wallet", "alice", input="pw\n")
        assert result.exit_code == 0, result.output
        assert f"Alice: {address}" in result.output

        listing = invoke(runner, tmp_path, "utxos", "list", "--wallet", "alice", "--all")
        assert "SPENT" in listing.output

    def test_demo_wrong_password(self, runner, tmp_path):
        invoke(runner, tmp_path, "wallet", "create", "--name", "alice", "--password", "pw")
        result = runner.invoke(
            cli, ["--data-dir", str(tmp_path), "demo", "--bits", "8", "--wallet", "alice"], input="nope\n"
        )
        assert result.exit_code != 0
        assert "Wrong password" in result.output

    def test_demo_split_failure(self, runner, tmp_path, monkeypatch):
        from privutxo.core.errors import OperationResult, VerifierUnavailable
        from privutxo.core.service import PrivateUTXOService

        monkeypatch.setattr(
            PrivateUTXOService,
            "split",
            lambda self, *args, **kwargs: OperationResult.from_error(VerifierUnavailable("Verifier offline")),
        )
        result = invoke(runner, tmp_path, "demo", "--bits", "8")
        assert result.exit_code == 1
        assert "Error: Split failed" in result.output
        assert "Transfer" not in result.output
