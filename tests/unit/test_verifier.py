"""
Unit tests for the reference verifier.

Bundles are assembled by hand here so each check can be violated in
isolation; service-level behaviour is covered in test_service.py.
"""

import dataclasses

import pytest

from privutxo.core.attestation import (
    create_attestation,
    deposit_data_hash,
    split_data_hash,
    transfer_data_hash,
    withdraw_data_hash,
)
from privutxo.core.errors import (
    AuthorizationFailure,
    InvalidAmount,
    InvalidProof,
    NullifierAlreadyUsed,
    VerifierUnavailable,
)
from privutxo.core.interfaces import DepositBundle, SplitBundle, TransferBundle, WithdrawBundle
from privutxo.core.verifier import LocalVerifier

TOKEN = "0x" + "11" * 20


class Opening:
    """A registered commitment plus the secrets behind it."""

    def __init__(self, value, blinding, commitment, nullifier, owner):
        self.value = value
        self.blinding = blinding
        self.commitment = commitment
        self.nullifier = nullifier
        self.owner = owner


def attest(engine, signer, operation, data_hash):
    return create_attestation(
        signer, operation, data_hash, engine.next_nonce(), engine.config.signing_domain()
    )


def new_output(engine, value, owner):
    blinding = engine.generate_blinding_factor()
    commitment = engine.create_commitment(value, blinding)
    nullifier = engine.generate_nullifier(commitment, owner, engine.next_nonce())
    return Opening(value, blinding, commitment, nullifier, owner)


def deposit_bundle(engine, signer, value, owner=None):
    owner = (owner or signer.get_address()).lower()
    out = new_output(engine, value, owner)
    range_proof = engine.prover.generate_range_proof(value, out.blinding, 1, engine.max_amount)
    amount_proof = engine.prover.generate_equality_proof(
        out.commitment, engine.commitments.value_point(value), value, out.blinding, 0
    )
    data_hash = deposit_data_hash(TOKEN, out.commitment, out.nullifier, value, owner)
    bundle = DepositBundle(
        owner=owner,
        token_address=TOKEN,
        amount=value,
        commitment=out.commitment,
        nullifier=out.nullifier,
        range_proof=range_proof,
        attestation=attest(engine, signer, "DEPOSIT", data_hash),
        amount_proof=amount_proof,
    )
    return bundle, out


def split_bundle(engine, signer, source, values, owners):
    blindings = [engine.generate_blinding_factor() for _ in values]
    proof = engine.prover.generate_split_proof(source.value, values, source.blinding, blindings)
    nullifiers = [
        engine.generate_nullifier(c, o, engine.next_nonce()) for c, o in zip(proof.output_commitments, owners)
    ]
    data_hash = split_data_hash(source.nullifier, proof.output_commitments, nullifiers, owners)
    return SplitBundle(
        input_commitment=source.commitment,
        input_nullifier=source.nullifier,
        output_commitments=list(proof.output_commitments),
        output_nullifiers=nullifiers,
        output_owners=owners,
        proof=proof,
        attestation=attest(engine, signer, "SPLIT", data_hash),
    )


def withdraw_bundle(engine, signer, source, recipient, amount=None, blinding=None):
    amount = source.value if amount is None else amount
    data_hash = withdraw_data_hash(source.nullifier, amount, TOKEN, recipient)
    return WithdrawBundle(
        commitment=source.commitment,
        nullifier=source.nullifier,
        amount=amount,
        blinding_factor=source.blinding if blinding is None else blinding,
        token_address=TOKEN,
        recipient=recipient,
        attestation=attest(engine, signer, "WITHDRAW", data_hash),
    )


@pytest.fixture
def deposited(engine, verifier, alice):
    """One accepted 100-unit deposit owned by alice."""
    bundle, out = deposit_bundle(engine, alice, 100)
    verifier.submit_deposit(bundle)
    return out


# =============================================================================
# Deposit Tests
# =============================================================================


class TestDeposit:
    """Tests for deposit validation."""

    def test_accepted(self, engine, verifier, alice):
        bundle, out = deposit_bundle(engine, alice, 100)
        receipt = verifier.submit_deposit(bundle)
        assert receipt.operation == "DEPOSIT"
        assert receipt.created_commitments == [out.commitment]
        assert verifier.get_commitment_exists(out.commitment)
        assert verifier.get_receipt(receipt.receipt_id) is receipt
        assert not verifier.is_nullifier_used(out.nullifier)

    def test_third_party_funding(self, engine, verifier, alice, bob):
        """Bob may fund a deposit owned by alice."""
        bundle, out = deposit_bundle(engine, bob, 50, owner=alice.get_address())
        verifier.submit_deposit(bundle)
        assert verifier.commitments[out.commitment].owner == alice.get_address().lower()

    def test_replay_rejected(self, engine, verifier, alice):
        bundle, _ = deposit_bundle(engine, alice, 100)
        verifier.submit_deposit(bundle)
        with pytest.raises(NullifierAlreadyUsed):
            verifier.submit_deposit(bundle)

    def test_amount_bounds(self, engine, verifier, alice):
        bundle, _ = deposit_bundle(engine, alice, 100)
        with pytest.raises(InvalidProof):
            verifier.submit_deposit(dataclasses.replace(bundle, amount=0))
        with pytest.raises(InvalidProof):
            verifier.submit_deposit(dataclasses.replace(bundle, amount=engine.max_amount + 1))

    def test_understated_amount_rejected(self, engine, verifier, alice):
        """Paying in 1 while committing to 100 fails the amount proof."""
        bundle, out = deposit_bundle(engine, alice, 100)
        data_hash = deposit_data_hash(TOKEN, out.commitment, out.nullifier, 1, out.owner)
        cheap = dataclasses.replace(bundle, amount=1, attestation=attest(engine, alice, "DEPOSIT", data_hash))
        with pytest.raises(InvalidProof):
            verifier.submit_deposit(cheap)
        assert not verifier.get_commitment_exists(out.commitment)

    def test_owner_swap_rejected(self, engine, verifier, alice):
        """The owner is covered by the signed data hash."""
        bundle, _ = deposit_bundle(engine, alice, 100)
        with pytest.raises(AuthorizationFailure):
            verifier.submit_deposit(dataclasses.replace(bundle, owner="0x" + "99" * 20))

    def test_wrong_range_bounds_rejected(self, engine, verifier, alice):
        bundle, out = deposit_bundle(engine, alice, 100)
        loose = engine.prover.generate_range_proof(100, out.blinding, 0, engine.max_amount)
        with pytest.raises(InvalidProof):
            verifier.submit_deposit(dataclasses.replace(bundle, range_proof=loose))

    def test_rejections_counted(self, engine, verifier, alice):
        bundle, _ = deposit_bundle(engine, alice, 100)
        with pytest.raises(InvalidProof):
            verifier.submit_deposit(dataclasses.replace(bundle, amount=0))
        assert verifier.stats()["rejected"] == 1
        assert verifier.stats()["accepted"] == 0


# =============================================================================
# Split / Transfer / Withdraw Tests
# =============================================================================


class TestSpends:
    """Tests for operations that consume a nullifier."""

    def test_split_accepted(self, engine, verifier, alice, bob, deposited):
        owners = [alice.get_address().lower(), bob.get_address().lower()]
        bundle = split_bundle(engine, alice, deposited, [60, 40], owners)
        receipt = verifier.submit_split(bundle)
        assert receipt.spent_nullifiers == [deposited.nullifier]
        assert verifier.is_nullifier_used(deposited.nullifier)
        assert all(verifier.get_commitment_exists(c) for c in bundle.output_commitments)
        assert verifier.commitments[bundle.output_commitments[1]].owner == owners[1]

    def test_double_spend_rejected(self, engine, verifier, alice, deposited):
        owner = [alice.get_address().lower()]
        verifier.submit_split(split_bundle(engine, alice, deposited, [100], owner))
        with pytest.raises(NullifierAlreadyUsed):
            verifier.submit_split(split_bundle(engine, alice, deposited, [100], owner))

    def test_non_owner_rejected(self, engine, verifier, bob, deposited):
        bundle = split_bundle(engine, bob, deposited, [100], [bob.get_address().lower()])
        with pytest.raises(AuthorizationFailure):
            verifier.submit_split(bundle)
        assert not verifier.is_nullifier_used(deposited.nullifier)

    def test_foreign_nullifier_rejected(self, engine, verifier, alice, deposited):
        bundle = split_bundle(engine, alice, deposited, [100], [alice.get_address().lower()])
        with pytest.raises(InvalidProof):
            verifier.submit_split(dataclasses.replace(bundle, input_nullifier=b"\x00" * 32))

    def test_unregistered_input_rejected(self, engine, verifier, alice):
        ghost = new_output(engine, 100, alice.get_address().lower())
        bundle = split_bundle(engine, alice, ghost, [100], [alice.get_address().lower()])
        with pytest.raises(InvalidProof):
            verifier.submit_split(bundle)

    def test_redirected_output_rejected(self, engine, verifier, alice, bob, deposited):
        """Changing an output owner after signing breaks the attestation."""
        bundle = split_bundle(engine, alice, deposited, [100], [alice.get_address().lower()])
        with pytest.raises(AuthorizationFailure):
            verifier.submit_split(dataclasses.replace(bundle, output_owners=[bob.get_address().lower()]))

    def test_attestation_nonce_replay_rejected(self, engine, verifier, alice, deposited):
        first = split_bundle(engine, alice, deposited, [100], [alice.get_address().lower()])
        verifier.submit_split(first)
        bundle, _ = deposit_bundle(engine, alice, 5)
        reused = dataclasses.replace(bundle, attestation=dataclasses.replace(
            bundle.attestation, nonce=first.attestation.nonce
        ))
        with pytest.raises(AuthorizationFailure):
            verifier.submit_deposit(reused)

    def test_transfer_accepted(self, engine, verifier, alice, bob, deposited):
        new_owner = bob.get_address().lower()
        out = new_output(engine, 100, new_owner)
        proof = engine.prover.generate_equality_proof(
            deposited.commitment, out.commitment, 100, deposited.blinding, out.blinding
        )
        data_hash = transfer_data_hash(deposited.nullifier, out.commitment, out.nullifier, new_owner)
        bundle = TransferBundle(
            input_commitment=deposited.commitment,
            input_nullifier=deposited.nullifier,
            output_commitment=out.commitment,
            output_nullifier=out.nullifier,
            new_owner=new_owner,
            proof=proof,
            attestation=attest(engine, alice, "TRANSFER", data_hash),
        )
        verifier.submit_transfer(bundle)
        assert verifier.commitments[out.commitment].owner == new_owner

    def test_withdraw_reveals_value(self, engine, verifier, alice, deposited):
        receipt = verifier.submit_withdraw(withdraw_bundle(engine, alice, deposited, alice.get_address()))
        assert receipt.revealed_value == 100
        assert verifier.is_nullifier_used(deposited.nullifier)

    def test_withdraw_wrong_opening_rejected(self, engine, verifier, alice, deposited):
        with pytest.raises(InvalidProof):
            verifier.submit_withdraw(withdraw_bundle(engine, alice, deposited, alice.get_address(), amount=101))
        assert not verifier.is_nullifier_used(deposited.nullifier)


# =============================================================================
# Availability / Persistence Tests
# =============================================================================


class TestAvailability:
    """Tests for failure injection."""

    def test_offline(self, verifier, deposited):
        verifier.available = False
        with pytest.raises(VerifierUnavailable):
            verifier.is_nullifier_used(deposited.nullifier)
        with pytest.raises(VerifierUnavailable):
            verifier.get_commitment_exists(deposited.commitment)

    def test_dropped_submission_not_applied(self, engine, verifier, alice):
        bundle, out = deposit_bundle(engine, alice, 10)
        verifier.fail_next()
        with pytest.raises(VerifierUnavailable):
            verifier.submit_deposit(bundle)
        assert not verifier.get_commitment_exists(out.commitment)

    def test_lost_response_applied(self, engine, verifier, alice):
        bundle, out = deposit_bundle(engine, alice, 10)
        verifier.fail_next(apply=True)
        with pytest.raises(VerifierUnavailable):
            verifier.submit_deposit(bundle)
        assert verifier.get_commitment_exists(out.commitment)

    def test_custom_error(self, engine, verifier, alice):
        bundle, _ = deposit_bundle(engine, alice, 10)
        verifier.fail_next(InvalidAmount("nope"))
        with pytest.raises(InvalidAmount):
            verifier.submit_deposit(bundle)
        verifier.submit_deposit(bundle)


class TestPersistence:
    """Tests for verifier state reload."""

    def test_reload(self, engine, alice, tmp_path):
        from privutxo.core.storage import StorageManager

        storage = StorageManager(tmp_path)
        first = LocalVerifier(engine=engine, storage_manager=storage)
        deposit, out = deposit_bundle(engine, alice, 100)
        first.submit_deposit(deposit)
        first.submit_withdraw(withdraw_bundle(engine, alice, out, alice.get_address()))

        second = LocalVerifier(engine=engine, storage_manager=StorageManager(tmp_path))
        assert second.get_commitment_exists(out.commitment)
        assert second.is_nullifier_used(out.nullifier)
        assert len(second.receipts) == 2
        assert second.commitments[out.commitment].owner == alice.get_address().lower()
        assert second.commitments[out.commitment].token_address == TOKEN
