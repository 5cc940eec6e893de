"""
Unit tests for PrivateUTXOService.
"""

import threading

from privutxo.core.errors import ErrorKind, VerifierUnavailable
from privutxo.core.service import PrivateUTXOService
from privutxo.core.signer import LocalSigner
from privutxo.core.state.utxo import UTXOState, UTXOType

TOKEN = "0x" + "11" * 20


class DisconnectingSigner(LocalSigner):
    """Wallet whose transport fails with plain Python errors."""

    def __init__(self):
        super().__init__()
        self.address_available = True

    def get_address(self):
        if not self.address_available:
            raise ConnectionError("wallet disconnected")
        return super().get_address()

    def sign_typed_data(self, domain, types, value):
        raise ConnectionError("wallet disconnected")


# =============================================================================
# Deposit Tests
# =============================================================================


class TestDeposit:
    """Tests for deposit."""

    def test_deposit_creates_confirmed_utxo(self, alice_service, verifier, alice):
        result = alice_service.deposit(TOKEN, 100)
        assert result.success
        utxo = result.utxos[0]
        assert utxo.value == 100
        assert utxo.owner == alice.get_address().lower()
        assert utxo.utxo_type == UTXOType.DEPOSIT
        assert utxo.state == UTXOState.CONFIRMED
        assert utxo.receipt_id == result.receipt.receipt_id
        assert verifier.get_commitment_exists(utxo.commitment)
        assert alice_service.get_balance(TOKEN) == 100

    def test_deposit_keeps_range_proof(self, alice_service):
        utxo = alice_service.deposit(TOKEN, 42).utxos[0]
        assert utxo.range_proof["min_value"] == 1

    def test_deposit_for_another_owner(self, alice_service, bob_service, bob):
        result = alice_service.deposit(TOKEN, 30, owner=bob.get_address())
        assert result.success
        assert alice_service.get_balance(TOKEN) == 0
        bob_service.sync()
        assert bob_service.get_balance(TOKEN) == 30

    def test_invalid_amounts(self, alice_service, config):
        for amount in (0, -5, config.max_amount + 1, True, "10"):
            result = alice_service.deposit(TOKEN, amount)
            assert not result.success
            assert result.error == ErrorKind.INVALID_AMOUNT

    def test_invalid_token_address(self, alice_service):
        result = alice_service.deposit("0x1234", 10)
        assert result.error == ErrorKind.INVALID_ADDRESS

    def test_invalid_owner(self, alice_service):
        result = alice_service.deposit(TOKEN, 10, owner="bob")
        assert result.error == ErrorKind.INVALID_ADDRESS

    def test_amount_checked_before_signer(self, verifier, engine):
        """A service without a signer still reports a bad amount first."""
        service = PrivateUTXOService(None, verifier, engine=engine)
        assert service.deposit(TOKEN, 0).error == ErrorKind.INVALID_AMOUNT
        assert service.deposit(TOKEN, 10).error == ErrorKind.AUTHORIZATION_FAILURE

    def test_refusing_signer(self, verifier, engine):
        signer = LocalSigner.from_private_key((0xDEAD).to_bytes(32, "big"), approve=False)
        service = PrivateUTXOService(signer, verifier, engine=engine)
        result = service.deposit(TOKEN, 10)
        assert result.error == ErrorKind.AUTHORIZATION_FAILURE
        assert verifier.stats()["commitments"] == 0


# =============================================================================
# Split Tests
# =============================================================================


class TestSplit:
    """Tests for split."""

    def test_split_to_two_owners(self, funded, verifier, alice, bob):
        service, utxo = funded
        result = service.split(utxo.id, [60, 40], [alice.get_address(), bob.get_address()])
        assert result.success, result.message
        first, second = result.utxos
        assert (first.value, second.value) == (60, 40)
        assert first.owner == alice.get_address().lower()
        assert second.owner == bob.get_address().lower()
        assert all(o.parent_utxo == utxo.id for o in result.utxos)
        assert all(o.utxo_type == UTXOType.SPLIT for o in result.utxos)
        assert all(o.confirmed for o in result.utxos)
        assert service.get_utxo(utxo.id).is_spent
        assert verifier.is_nullifier_used(utxo.nullifier)
        assert service.get_balance(TOKEN) == 60

    def test_owners_default_to_principal(self, funded):
        service, utxo = funded
        result = service.split(utxo.id, [25, 25, 50])
        assert result.success
        assert service.get_balance(TOKEN) == 100
        assert len(service.get_utxos_by_owner()) == 4

    def test_sum_mismatch(self, funded, verifier):
        service, utxo = funded
        result = service.split(utxo.id, [70, 40])
        assert result.error == ErrorKind.VALUE_CONSERVATION_VIOLATION
        assert not service.get_utxo(utxo.id).is_spent
        assert not verifier.is_nullifier_used(utxo.nullifier)
        assert service.get_balance(TOKEN) == 100

    def test_empty_outputs(self, funded):
        service, utxo = funded
        assert service.split(utxo.id, []).error == ErrorKind.VALUE_CONSERVATION_VIOLATION

    def test_owner_count_mismatch(self, funded, alice):
        service, utxo = funded
        result = service.split(utxo.id, [50, 50], [alice.get_address()])
        assert result.error == ErrorKind.VALUE_CONSERVATION_VIOLATION

    def test_zero_output(self, funded):
        service, utxo = funded
        assert service.split(utxo.id, [100, 0]).error == ErrorKind.INVALID_AMOUNT

    def test_bad_owner(self, funded, alice):
        service, utxo = funded
        result = service.split(utxo.id, [50, 50], [alice.get_address(), "0xnothex"])
        assert result.error == ErrorKind.INVALID_ADDRESS

    def test_unknown_input(self, alice_service):
        result = alice_service.split("0x" + "ab" * 32, [10])
        assert result.error == ErrorKind.UTXO_NOT_FOUND

    def test_spent_input(self, funded):
        service, utxo = funded
        assert service.split(utxo.id, [50, 50]).success
        result = service.split(utxo.id, [50, 50])
        assert result.error == ErrorKind.UTXO_ALREADY_SPENT

    def test_foreign_input(self, funded, bob):
        """Alice knows Bob's output but cannot spend it."""
        service, utxo = funded
        bobs = service.split(utxo.id, [60, 40], [service.principal, bob.get_address()]).utxos[1]
        result = service.split(bobs.id, [40])
        assert result.error == ErrorKind.AUTHORIZATION_FAILURE

    def test_corrupted_opening(self, funded, verifier):
        service, utxo = funded
        service.get_utxo(utxo.id).blinding_factor += 1
        result = service.split(utxo.id, [60, 40])
        assert result.error == ErrorKind.CORRUPTED_COMMITMENT
        assert verifier.stats()["accepted"] == 1

    def test_busy_input(self, funded):
        service, utxo = funded
        with service._claim(utxo.id):
            result = service.split(utxo.id, [60, 40])
        assert result.error == ErrorKind.UTXO_BUSY
        assert service.split(utxo.id, [60, 40]).success

    def test_offline_verifier(self, funded, verifier):
        """An offline verifier leaves the input spendable."""
        service, utxo = funded
        verifier.available = False
        result = service.split(utxo.id, [60, 40])
        assert result.error == ErrorKind.VERIFIER_UNAVAILABLE
        verifier.available = True
        assert service.split(utxo.id, [60, 40]).success


# =============================================================================
# Transfer / Withdraw Tests
# =============================================================================


class TestTransferWithdraw:
    """Tests for transfer and withdraw."""

    def test_transfer(self, funded, bob_service, bob):
        service, utxo = funded
        result = service.transfer(utxo.id, bob.get_address())
        assert result.success
        output = result.utxos[0]
        assert output.value == 100
        assert output.owner == bob.get_address().lower()
        assert output.utxo_type == UTXOType.TRANSFER
        assert output.commitment != utxo.commitment
        assert service.get_balance(TOKEN) == 0
        bob_service.sync()
        assert bob_service.get_balance(TOKEN) == 100

    def test_transfer_bad_address(self, funded):
        service, utxo = funded
        assert service.transfer(utxo.id, "carol").error == ErrorKind.INVALID_ADDRESS

    def test_withdraw(self, funded, verifier):
        service, utxo = funded
        result = service.withdraw(utxo.id)
        assert result.success
        assert result.revealed_value == 100
        assert result.receipt.revealed_value == 100
        assert result.utxos == []
        assert service.get_balance(TOKEN) == 0
        assert verifier.is_nullifier_used(utxo.nullifier)

    def test_withdraw_twice(self, funded):
        service, utxo = funded
        assert service.withdraw(utxo.id).success
        assert service.withdraw(utxo.id).error == ErrorKind.UTXO_ALREADY_SPENT

    def test_withdraw_bad_recipient(self, funded):
        service, utxo = funded
        assert service.withdraw(utxo.id, recipient="0x00").error == ErrorKind.INVALID_ADDRESS


# =============================================================================
# Ambiguous Failure Tests
# =============================================================================


class TestAmbiguity:
    """Tests for lost verifier responses."""

    def test_lost_response_detected_on_retry(self, funded, verifier):
        service, utxo = funded
        verifier.fail_next(apply=True)
        result = service.split(utxo.id, [60, 40])
        assert result.error == ErrorKind.VERIFIER_UNAVAILABLE
        assert service.is_ambiguous(utxo.id)
        assert service.get_stats()["pending_utxos"] == 2

        retry = service.split(utxo.id, [50, 50])
        assert retry.error == ErrorKind.NULLIFIER_ALREADY_USED
        assert "sync" in retry.message

        assert service.sync()
        assert not service.is_ambiguous(utxo.id)
        assert service.get_utxo(utxo.id).is_spent
        assert service.get_balance(TOKEN) == 100
        assert service.get_stats()["pending_utxos"] == 0
        assert service.audit().consistent

    def test_dropped_submission_retry_succeeds(self, funded, verifier):
        service, utxo = funded
        verifier.fail_next()
        assert service.split(utxo.id, [60, 40]).error == ErrorKind.VERIFIER_UNAVAILABLE

        retry = service.split(utxo.id, [50, 50])
        assert retry.success
        assert not service.is_ambiguous(utxo.id)
        service.sync()
        assert service.get_balance(TOKEN) == 100
        # Leftovers of the dropped attempt never confirm
        assert service.get_stats()["pending_utxos"] == 2
        assert service.audit().consistent

    def test_ambiguous_deposit_confirmed_by_sync(self, alice_service, verifier):
        verifier.fail_next(apply=True)
        assert alice_service.deposit(TOKEN, 80).error == ErrorKind.VERIFIER_UNAVAILABLE
        assert alice_service.get_balance(TOKEN) == 0
        alice_service.sync()
        assert alice_service.get_balance(TOKEN) == 80

    def test_verifier_down_during_retry(self, funded, verifier):
        service, utxo = funded
        verifier.fail_next()
        service.withdraw(utxo.id)
        verifier.available = False
        assert service.withdraw(utxo.id).error == ErrorKind.VERIFIER_UNAVAILABLE
        assert service.is_ambiguous(utxo.id)

    def test_transport_timeout_is_ambiguous(self, funded, verifier, monkeypatch):
        service, utxo = funded

        def timeout(bundle):
            raise TimeoutError("rpc timeout")

        with monkeypatch.context() as m:
            m.setattr(verifier, "submit_withdraw", timeout)
            result = service.withdraw(utxo.id)
        assert result.error == ErrorKind.VERIFIER_UNAVAILABLE
        assert service.is_ambiguous(utxo.id)

        retry = service.withdraw(utxo.id)
        assert retry.success
        assert retry.revealed_value == 100
        assert not service.is_ambiguous(utxo.id)

    def test_transport_timeout_keeps_outputs_unconfirmed(self, funded, verifier, monkeypatch):
        service, utxo = funded

        def applied_then_lost(bundle):
            type(verifier).submit_split(verifier, bundle)
            raise ConnectionError("connection reset")

        monkeypatch.setattr(verifier, "submit_split", applied_then_lost)
        assert service.split(utxo.id, [60, 40]).error == ErrorKind.VERIFIER_UNAVAILABLE
        assert service.get_stats()["pending_utxos"] == 2
        assert service.split(utxo.id, [50, 50]).error == ErrorKind.NULLIFIER_ALREADY_USED
        assert service.sync()
        assert service.get_balance(TOKEN) == 100

    def test_transport_error_while_checking_nullifier(self, funded, verifier, monkeypatch):
        service, utxo = funded
        verifier.fail_next()
        service.split(utxo.id, [60, 40])

        def unreachable(nullifier):
            raise ConnectionError("no route to host")

        monkeypatch.setattr(verifier, "is_nullifier_used", unreachable)
        assert service.split(utxo.id, [60, 40]).error == ErrorKind.VERIFIER_UNAVAILABLE
        assert service.is_ambiguous(utxo.id)
        assert service.sync() is False

    def test_wallet_disconnected_while_signing(self, verifier, repository, engine):
        service = PrivateUTXOService(DisconnectingSigner(), verifier, repository, engine=engine)
        result = service.deposit(TOKEN, 10)
        assert result.error == ErrorKind.AUTHORIZATION_FAILURE
        assert "wallet disconnected" in result.message
        assert len(verifier.commitments) == 0

    def test_wallet_disconnected_before_address(self, verifier, repository, engine):
        signer = DisconnectingSigner()
        service = PrivateUTXOService(signer, verifier, repository, engine=engine)
        signer.address_available = False
        assert service.deposit(TOKEN, 10).error == ErrorKind.AUTHORIZATION_FAILURE
        assert service.sync() is False


# =============================================================================
# Sync / Query Tests
# =============================================================================


class TestSyncAndQueries:
    """Tests for sync, stats and housekeeping."""

    def test_overlapping_sync_returns_false(self, alice_service):
        with alice_service._sync_lock:
            assert alice_service.sync() is False
        assert alice_service.sync() is True

    def test_sync_from_another_thread_while_locked(self, alice_service):
        results = []
        with alice_service._sync_lock:
            t = threading.Thread(target=lambda: results.append(alice_service.sync()))
            t.start()
            t.join()
        assert results == [False]

    def test_counters_under_concurrent_operations(self, alice_service):
        def spend_missing():
            for i in range(200):
                alice_service.withdraw(f"0x{i:064x}")

        threads = [threading.Thread(target=spend_missing) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stats = alice_service.get_stats()
        assert stats["operations_attempted"] == 1600
        assert stats["operations_failed"] == 1600
        assert stats["operations_succeeded"] == 0

    def test_sync_with_verifier_down(self, funded, verifier):
        service, _ = funded
        verifier.available = False
        assert service.sync() is False

    def test_sync_idempotent(self, funded):
        service, _ = funded
        assert service.sync()
        before = service.get_stats()
        assert service.sync()
        after = service.get_stats()
        assert before["total_utxos"] == after["total_utxos"]
        assert before["balance_by_token"] == after["balance_by_token"]

    def test_balance_by_token(self, alice_service, other_token):
        alice_service.deposit(TOKEN, 10)
        alice_service.deposit(other_token, 20)
        assert alice_service.get_balance() == {TOKEN: 10, other_token: 20}
        assert alice_service.get_balance(other_token) == 20

    def test_stats(self, funded):
        service, utxo = funded
        service.split(utxo.id, [70, 40])
        service.split(utxo.id, [30, 70])
        stats = service.get_stats()
        assert stats["total_utxos"] == 3
        assert stats["unspent_utxos"] == 2
        assert stats["spent_utxos"] == 1
        assert stats["total_value"] == 100
        assert stats["average_value"] == 50
        assert stats["operations_attempted"] == 3
        assert stats["operations_succeeded"] == 2
        assert stats["operations_failed"] == 1
        assert stats["engine"]["proofs_generated"] > 0

    def test_clear_private_data(self, funded):
        service, _ = funded
        service.clear_private_data()
        assert len(service.ledger) == 0
        assert service.get_balance(TOKEN) == 0
        service.sync()
        assert service.get_balance(TOKEN) == 100

    def test_records_loaded_on_start(self, funded, verifier, repository, engine, alice):
        restarted = PrivateUTXOService(alice, verifier, repository, engine=engine)
        assert restarted.get_balance(TOKEN) == 100

    def test_no_signer_queries(self, verifier, engine):
        service = PrivateUTXOService(None, verifier, engine=engine)
        assert service.principal is None
        assert service.get_balance() == {}
        assert service.get_utxos_by_owner() == []
        assert service.sync()

    def test_repr_hides_secrets(self, funded):
        service, utxo = funded
        assert str(utxo.blinding_factor) not in repr(service)
