"""
privutxo CLI - Command Line Interface for the private UTXO engine

Main entry point for all CLI commands.
"""

import json
import click
from pathlib import Path
from typing import Optional

from privutxo.utils.logger import setup_logging

PBKDF2_ITERATIONS = 100000


def _wallet_fernet(wallet_name: str, password: str):
    import base64
    import hashlib
    from cryptography.fernet import Fernet

    # Wallet name is the salt (deterministic per wallet)
    key = base64.urlsafe_b64encode(
        hashlib.pbkdf2_hmac("sha256", password.encode(), wallet_name.encode(), PBKDF2_ITERATIONS)
    )
    return Fernet(key)


def decrypt_wallet_key(wallet_data: dict, wallet_name: str, password: str) -> Optional[bytes]:
    """
    Decrypt a wallet's private key.

    Args:
        wallet_data: Loaded wallet JSON data
        wallet_name: Wallet name (used as salt)
        password: User's password

    Returns:
        Decrypted private key bytes, or None on failure
    """
    from cryptography.fernet import InvalidToken

    if "encrypted_private_key" not in wallet_data:
        return None
    try:
        return _wallet_fernet(wallet_name, password).decrypt(wallet_data["encrypted_private_key"].encode())
    except InvalidToken:
        return None


def _load_wallet(data_dir: Path, name: str) -> dict:
    wallet_path = data_dir / "wallets" / f"{name}.json"
    if not wallet_path.exists():
        raise click.ClickException(f"Wallet '{name}' not found (create with: privutxo wallet create --name {name})")
    return json.loads(wallet_path.read_text())


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default="~/.privutxo", help="Data directory")
@click.option("--config", "config_path", default=None, help="JSON config file")
@click.option("--log-file", is_flag=True, help="Also write logs to <log_dir>/privutxo.log")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, config_path, log_file):
    """privutxo - Private UTXOs over Pedersen commitments on BN254"""
    from privutxo.core.config import load_config

    config = load_config(config_path, data_dir=Path(data_dir).expanduser())
    if log_file:
        config.ensure_dirs()
    setup_logging(
        level="DEBUG" if debug else config.log_level,
        log_dir=config.log_dir,
        log_to_file=log_file,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["data_dir"] = config.data_dir
    ctx.obj["data_dir"].mkdir(parents=True, exist_ok=True)


# =============================================================================
# Wallet Commands
# =============================================================================

@cli.group()
def wallet():
    """Wallet management commands"""
    pass


@wallet.command("create")
@click.option("--name", default="default", help="Wallet name")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Encryption password")
@click.pass_context
def wallet_create(ctx, name, password):
    """Create a new encrypted wallet"""
    from privutxo.crypto import generate_keypair, bytes_to_hex

    wallet_path = ctx.obj["data_dir"] / "wallets" / f"{name}.json"
    if wallet_path.exists():
        raise click.ClickException(f"Wallet '{name}' already exists at {wallet_path}")

    kp = generate_keypair()
    encrypted_private_key = _wallet_fernet(name, password).encrypt(kp.private_key).decode("utf-8")

    wallet_path.parent.mkdir(parents=True, exist_ok=True)
    wallet_data = {
        "name": name,
        "address": kp.address,
        "encrypted_private_key": encrypted_private_key,
        "public_key": bytes_to_hex(kp.public_key),
    }
    wallet_path.write_text(json.dumps(wallet_data, indent=2))

    click.echo(f"✓ Wallet created: {name}")
    click.echo(f"  Address: {kp.address}")
    click.echo(f"  Saved to: {wallet_path}")
    click.echo("  ⚠️  Remember your password - it cannot be recovered!")


@wallet.command("list")
@click.pass_context
def wallet_list(ctx):
    """List all wallets"""
    wallet_dir = ctx.obj["data_dir"] / "wallets"
    wallet_files = sorted(wallet_dir.glob("*.json")) if wallet_dir.exists() else []
    if not wallet_files:
        click.echo("No wallets found.")
        return

    for wallet_file in wallet_files:
        data = json.loads(wallet_file.read_text())
        click.echo(f"  {data['name']}: {data['address']}")


# =============================================================================
# UTXO Commands
# =============================================================================


@cli.group()
def utxos():
    """Private UTXO inspection commands"""
    pass


@utxos.command("list")
@click.option("--wallet", "wallet_name", default=None, help="Wallet whose UTXOs to list")
@click.option("--owner", default=None, help="Owner address (instead of --wallet)")
@click.option("--all", "show_all", is_flag=True, help="Include spent UTXOs")
@click.pass_context
def utxos_list(ctx, wallet_name, owner, show_all):
    """List UTXO records stored in the data directory"""
    from privutxo.core.storage import SQLiteUTXORepository
    from privutxo.utils.validation import validate_address

    if owner is None:
        if wallet_name is None:
            raise click.UsageError("Pass --wallet or --owner")
        owner = _load_wallet(ctx.obj["data_dir"], wallet_name)["address"]
    valid, err = validate_address(owner, "owner")
    if not valid:
        raise click.BadParameter(err)

    repository = SQLiteUTXORepository(ctx.obj["data_dir"])
    try:
        records = [u for u in repository.get(owner) if show_all or not u.is_spent]
    finally:
        repository.close()

    if not records:
        click.echo("No UTXOs found.")
        return

    click.echo(f"UTXOs for {owner}")
    click.echo("-" * 60)
    for utxo in records:
        click.echo(
            f"  {utxo.id[:14]}...  {utxo.value:>12}  {utxo.utxo_type.value:<8}  "
            f"{utxo.state.value:<9}  token={utxo.token_address[:10]}..."
        )
    click.echo(f"  Total unspent: {sum(u.value for u in records if u.is_spendable)}")


# =============================================================================
# Generators Command
# =============================================================================


@cli.command("generators")
def generators():
    """Show the Pedersen generators G and H"""
    from privutxo.core.commitment import G, H, H_GENERATOR_TAG
    from privutxo.crypto.curve import is_on_curve

    click.echo("Pedersen generators (BN254 G1)")
    click.echo("-" * 40)
    for name, point in (("G", G), ("H", H)):
        click.echo(f"  {name}.x = {hex(point.x)}")
        click.echo(f"  {name}.y = {hex(point.y)}")
        click.echo(f"  on curve: {is_on_curve(point)}")
    click.echo(f"  H tag: {H_GENERATOR_TAG.decode()}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--persist", is_flag=True, help="Store verifier and UTXO state in the data directory")
@click.option("--bits", default=16, type=int, help="Range proof width (smaller is faster)")
@click.option("--wallet", "wallet_name", default=None, help="Play Alice with this wallet")
@click.pass_context
def demo(ctx, persist, bits, wallet_name):
    """Run a deposit / split / transfer / withdraw walkthrough"""
    from privutxo.core.config import EngineConfig
    from privutxo.core.engine import CryptoEngine
    from privutxo.core.service import PrivateUTXOService
    from privutxo.core.signer import LocalSigner
    from privutxo.core.storage import InMemoryUTXORepository, SQLiteUTXORepository, StorageManager
    from privutxo.core.verifier import LocalVerifier
    from privutxo.core.state.history import describe_lineage

    base = ctx.obj["config"]
    config = EngineConfig(**{**base.model_dump(), "range_proof_bits": bits})
    engine = CryptoEngine(config=config)

    if persist:
        storage = StorageManager(config.data_dir)
        verifier = LocalVerifier(engine=engine, storage_manager=storage)
        repository = SQLiteUTXORepository(storage)
    else:
        verifier = LocalVerifier(engine=engine)
        repository = InMemoryUTXORepository()

    click.echo("=" * 60)
    click.echo("  PRIVATE UTXO ENGINE - DEMO")
    click.echo("=" * 60)
    click.echo()

    if wallet_name:
        wallet_data = _load_wallet(ctx.obj["data_dir"], wallet_name)
        password = click.prompt("Password", hide_input=True)
        private_key = decrypt_wallet_key(wallet_data, wallet_name, password)
        if private_key is None:
            raise click.ClickException("Wrong password or unreadable wallet")
        alice = LocalSigner.from_private_key(private_key)
    else:
        alice = LocalSigner()
    bob = LocalSigner()
    carol = LocalSigner()
    token = "0x" + "11" * 20

    alice_svc = PrivateUTXOService(alice, verifier, repository, engine=engine)
    bob_svc = PrivateUTXOService(bob, verifier, repository, engine=engine)

    click.echo("📦 Participants")
    click.echo(f"  Alice: {alice.get_address()}")
    click.echo(f"  Bob:   {bob.get_address()}")
    click.echo(f"  Carol: {carol.get_address()}")
    click.echo()

    def report(label, result):
        mark = "✓" if result.success else "✗"
        detail = result.message if result.success else f"{result.error.value}: {result.message}"
        click.echo(f"  {mark} {label}: {detail}")
        return result

    click.echo("💰 Deposit")
    deposit = report("Alice deposits 100", alice_svc.deposit(token, 100))
    if not deposit.success:
        raise click.ClickException("Deposit failed")
    root = deposit.utxos[0]
    click.echo()

    click.echo("✂️  Split")
    report("Alice splits 100 into 70/40", alice_svc.split(root.id, [70, 40]))
    split = report(
        "Alice splits 100 into 60 (Alice) / 40 (Bob)",
        alice_svc.split(root.id, [60, 40], [alice.get_address(), bob.get_address()]),
    )
    if not split.success:
        raise click.ClickException("Split failed")
    report("Alice re-splits the spent input", alice_svc.split(root.id, [50, 50]))
    click.echo()

    alice_part, bob_part = split.utxos
    click.echo("🔁 Transfer")
    transfer = report("Alice transfers 60 to Carol", alice_svc.transfer(alice_part.id, carol.get_address()))
    click.echo()

    click.echo("🏧 Withdraw")
    bob_svc.sync()
    withdraw = report("Bob withdraws his 40", bob_svc.withdraw(bob_part.id))
    if withdraw.success:
        click.echo(f"  ✓ Revealed value: {withdraw.revealed_value}")
    click.echo()

    click.echo("📊 Final State")
    click.echo(f"  Alice balance: {alice_svc.get_balance(token)}")
    click.echo(f"  Bob balance:   {bob_svc.get_balance(token)}")
    if transfer.success:
        click.echo(f"  Carol's lineage: {describe_lineage(alice_svc.history, transfer.utxos[0].id)}")
    click.echo(f"  Verifier: {verifier.stats()}")
    click.echo(f"  Audit consistent: {alice_svc.audit().consistent}")
    click.echo()

    if persist:
        repository.close()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
