"""
PrivateUTXOService - deposit, split, transfer and withdraw private UTXOs.

Conceptual Background:
---------------------
The service is the principal's side of the system. It holds the openings
of the principal's UTXOs in a local Ledger, builds commitments, proofs and
attestations, and hands public bundles to a Verifier.

Operation Flow:
--------------
1. Preconditions (no cryptography, no network): input exists, is unspent,
   belongs to the principal, values are well-formed and conserve
2. Claim the input (a concurrent operation on it fails with UTXOBusy)
3. Cryptography: blindings, commitments, nullifiers, proof, attestation
4. One submission to the verifier, never retried automatically
5. On acceptance: input marked spent, outputs confirmed and stored

Ambiguous Failures:
------------------
VerifierUnavailable means the submission may or may not have been
applied. The input stays unspent but is flagged; the next operation on it
first asks the verifier whether its nullifier is used, and fails with
NullifierAlreadyUsed if so (the caller should sync()). The outputs of an
ambiguous submission are stored unconfirmed so sync() can confirm them if
the verifier did apply it.

Errors:
------
Every expected failure is returned as an OperationResult carrying an
ErrorKind. InvariantViolation is never converted: it is an engine bug.
"""

import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Sequence, Union

from privutxo.core.attestation import (
    Attestation,
    create_attestation,
    deposit_data_hash,
    split_data_hash,
    transfer_data_hash,
    withdraw_data_hash,
)
from privutxo.core.config import EngineConfig
from privutxo.core.engine import CryptoEngine
from privutxo.core.errors import (
    AuthorizationFailure,
    CorruptedCommitment,
    InvalidAddress,
    InvalidAmount,
    NullifierAlreadyUsed,
    OperationResult,
    PrivUTXOError,
    UTXOAlreadySpent,
    UTXOBusy,
    UTXONotFound,
    ValueConservationViolation,
    VerifierUnavailable,
)
from privutxo.core.interfaces import (
    DepositBundle,
    OperationRequest,
    Receipt,
    Signer,
    SplitBundle,
    TransferBundle,
    Verifier,
    WithdrawBundle,
)
from privutxo.core.state.history import AuditReport, UTXOHistory
from privutxo.core.state.ledger import Ledger
from privutxo.core.state.utxo import UTXO, UTXOType, create_utxo
from privutxo.core.storage.repository import InMemoryUTXORepository, UTXORepository
from privutxo.utils.logger import get_logger, short_hex
from privutxo.utils.validation import (
    validate_address,
    validate_amount,
    validate_output_values,
    validate_owners,
)

logger = get_logger("service")


class PrivateUTXOService:
    """
    Private UTXO ledger for one principal.

    Attributes:
        signer: Signs attestations for the principal
        verifier: Authority that accepts or rejects operations
        repository: Owner-scoped persistence for UTXO records
        engine: Commitments, nullifiers and proofs
        config: Engine configuration
        ledger: Local records (every UTXO this service knows the opening of)
        history: Lineage graph over the ledger
    """

    def __init__(
        self,
        signer: Optional[Signer],
        verifier: Verifier,
        repository: Optional[UTXORepository] = None,
        engine: Optional[CryptoEngine] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.config = config or (engine.config if engine else EngineConfig())
        self.engine = engine or CryptoEngine(config=self.config)
        self.signer = signer
        self.verifier = verifier
        self.repository = repository or InMemoryUTXORepository()

        self.ledger: Ledger[UTXO] = Ledger()
        self.history = UTXOHistory()

        self._claims: set = set()
        self._claims_lock = threading.Lock()
        self._sync_lock = threading.Lock()
        self._ambiguous: set = set()
        # Guards _ambiguous and the operation counters
        self._state_lock = threading.Lock()

        self.operations_attempted = 0
        self.operations_succeeded = 0
        self.operations_failed = 0

        loaded = self._merge_repository()
        if loaded:
            logger.info(f"Loaded {loaded} UTXO record(s) for {short_hex(self.principal)}")

    # =========================================================================
    # Principal
    # =========================================================================

    @property
    def principal(self) -> Optional[str]:
        if self.signer is None:
            return None
        try:
            return self.signer.get_address().lower()
        except Exception as e:
            raise AuthorizationFailure(f"Signer unavailable: {e}") from e

    def _require_principal(self) -> str:
        principal = self.principal
        if principal is None:
            raise AuthorizationFailure("No signer configured")
        return principal

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _run(self, request: OperationRequest, fn, *args) -> OperationResult:
        """Execute an operation, converting taxonomy errors into results."""
        with self._state_lock:
            self.operations_attempted += 1
        try:
            result = fn(*args)
        except PrivUTXOError as e:
            with self._state_lock:
                self.operations_failed += 1
            logger.warning(f"{request.kind} failed: {e.kind.value}: {e.message}")
            return OperationResult.from_error(e)
        with self._state_lock:
            self.operations_succeeded += 1
        logger.info(f"{request.kind} succeeded: {result.message}")
        return result

    @contextmanager
    def _claim(self, utxo_id: str):
        with self._claims_lock:
            if utxo_id in self._claims:
                raise UTXOBusy(f"UTXO {short_hex(utxo_id)} is being used by another operation")
            self._claims.add(utxo_id)
        try:
            yield
        finally:
            with self._claims_lock:
                self._claims.discard(utxo_id)

    def _get_spendable(self, utxo_id: str) -> UTXO:
        """Precondition checks shared by split, transfer and withdraw."""
        utxo = self.ledger.get(utxo_id)
        if utxo is None:
            raise UTXONotFound(f"UTXO {short_hex(utxo_id)} not found")
        if utxo.is_spent:
            raise UTXOAlreadySpent(f"UTXO {short_hex(utxo_id)} already spent")
        if utxo.owner != self.principal:
            raise AuthorizationFailure(f"UTXO {short_hex(utxo_id)} is not owned by the principal")
        if not utxo.confirmed:
            raise UTXONotFound(f"UTXO {short_hex(utxo_id)} is not confirmed yet; run sync()")
        return utxo

    def _check_opening(self, utxo: UTXO) -> None:
        if not self.engine.verify_commitment(utxo.commitment, utxo.value, utxo.blinding_factor):
            raise CorruptedCommitment(f"Stored opening of {short_hex(utxo.id)} no longer matches its commitment")

    def _resolve_ambiguity(self, utxo: UTXO) -> None:
        """After a lost response, find out whether the input was consumed."""
        if not self.is_ambiguous(utxo.id):
            return
        if self._query(self.verifier.is_nullifier_used, utxo.nullifier):
            raise NullifierAlreadyUsed(
                f"UTXO {short_hex(utxo.id)} was consumed by an earlier submission; run sync()"
            )
        self._set_ambiguous(utxo.id, False)
        logger.info(f"UTXO {short_hex(utxo.id)} confirmed unspent after an earlier timeout")

    def _set_ambiguous(self, utxo_id: str, flagged: bool) -> None:
        with self._state_lock:
            if flagged:
                self._ambiguous.add(utxo_id)
            else:
                self._ambiguous.discard(utxo_id)

    def _query(self, fn, *args):
        """Verifier read; transport errors become VerifierUnavailable."""
        try:
            return fn(*args)
        except OSError as e:
            raise VerifierUnavailable(f"Verifier query failed: {e}") from e

    def _attest(self, operation: str, data_hash: bytes) -> Attestation:
        try:
            return create_attestation(
                self.signer,
                operation,
                data_hash,
                self.engine.next_nonce(),
                self.config.signing_domain(),
            )
        except PrivUTXOError:
            raise
        except Exception as e:
            raise AuthorizationFailure(f"Signer failed to sign {operation}: {e}") from e

    def _submit(self, submit, bundle, input_utxo: Optional[UTXO], outputs: List[UTXO]) -> Receipt:
        """Single submission; records ambiguity on VerifierUnavailable."""
        try:
            return submit(bundle)
        except VerifierUnavailable:
            self._keep_ambiguous(input_utxo, outputs)
            raise
        except OSError as e:
            # TimeoutError and ConnectionError from the transport
            self._keep_ambiguous(input_utxo, outputs)
            raise VerifierUnavailable(f"Verifier transport failed: {e}") from e

    def _keep_ambiguous(self, input_utxo: Optional[UTXO], outputs: List[UTXO]) -> None:
        if input_utxo is not None:
            self._set_ambiguous(input_utxo.id, True)
        for utxo in outputs:
            self._store(utxo)
        logger.warning(f"Verifier unavailable; outcome unknown, {len(outputs)} output(s) kept unconfirmed")

    def _store(self, utxo: UTXO) -> None:
        self.ledger.upsert(utxo)
        self.history.add(utxo)
        self.repository.put(utxo.owner, utxo)

    def _commit(self, input_utxo: Optional[UTXO], outputs: List[UTXO], receipt: Receipt) -> None:
        if input_utxo is not None:
            input_utxo.mark_spent(receipt.receipt_id)
            self._set_ambiguous(input_utxo.id, False)
            self._store(input_utxo)
        for utxo in outputs:
            utxo.mark_confirmed(receipt.receipt_id)
            self._store(utxo)

    def _new_output(
        self,
        value: int,
        owner: str,
        token_address: str,
        utxo_type: UTXOType,
        blinding: int,
        commitment,
        parent: Optional[str] = None,
        range_proof: Optional[dict] = None,
    ) -> UTXO:
        nonce = self.engine.next_nonce()
        nullifier = self.engine.generate_nullifier(commitment, owner, nonce)
        return create_utxo(
            commitment=commitment,
            value=value,
            blinding_factor=blinding,
            token_address=token_address,
            owner=owner,
            nullifier=nullifier,
            nonce=nonce,
            utxo_type=utxo_type,
            parent_utxo=parent,
            range_proof=range_proof,
        )

    # =========================================================================
    # Deposit
    # =========================================================================

    def deposit(self, token_address: str, value: int, owner: Optional[str] = None) -> OperationResult:
        """
        Turn `value` units of a token into a private UTXO.

        Returns:
            OperationResult with the new CONFIRMED UTXO of type DEPOSIT
        """
        request = OperationRequest(kind="DEPOSIT", output_values=[value], output_owners=[owner] if owner else [])
        return self._run(request, self._deposit, token_address, value, owner)

    def _deposit(self, token_address: str, value: int, owner: Optional[str]) -> OperationResult:
        valid, err = validate_amount(value, self.config.max_amount)
        if not valid:
            raise InvalidAmount(err)
        principal = self._require_principal()
        valid, err = validate_address(token_address, "token_address")
        if not valid:
            raise InvalidAddress(err)
        owner = (owner or principal).lower()
        valid, err = validate_address(owner, "owner")
        if not valid:
            raise InvalidAddress(err)

        blinding = self.engine.generate_blinding_factor()
        commitment = self.engine.create_commitment(value, blinding)
        range_proof = self.engine.prover.generate_range_proof(value, blinding, 1, self.config.max_amount)
        amount_proof = self.engine.prover.generate_equality_proof(
            commitment, self.engine.commitments.value_point(value), value, blinding, 0
        )
        utxo = self._new_output(
            value, owner, token_address, UTXOType.DEPOSIT, blinding, commitment,
            range_proof=range_proof.to_dict(),
        )

        data_hash = deposit_data_hash(token_address, commitment, utxo.nullifier, value, owner)
        bundle = DepositBundle(
            owner=owner,
            token_address=utxo.token_address,
            amount=value,
            commitment=commitment,
            nullifier=utxo.nullifier,
            range_proof=range_proof,
            attestation=self._attest("DEPOSIT", data_hash),
            amount_proof=amount_proof,
        )
        receipt = self._submit(self.verifier.submit_deposit, bundle, None, [utxo])
        self._commit(None, [utxo], receipt)
        return OperationResult.ok(f"Deposited into {short_hex(utxo.id)}", utxos=[utxo], receipt=receipt)

    # =========================================================================
    # Split
    # =========================================================================

    def split(
        self,
        input_id: str,
        output_values: Sequence[int],
        output_owners: Optional[Sequence[str]] = None,
    ) -> OperationResult:
        """
        Split one UTXO into several with the same total value.

        Args:
            input_id: UTXO to consume
            output_values: Values of the new UTXOs (must sum to the input)
            output_owners: Owner per output (default: the principal)

        Returns:
            OperationResult with the new SPLIT UTXOs
        """
        request = OperationRequest(
            kind="SPLIT",
            input_ids=[input_id],
            output_values=list(output_values or []),
            output_owners=list(output_owners or []),
        )
        return self._run(request, self._split, input_id, output_values, output_owners)

    def _split(self, input_id: str, output_values, output_owners) -> OperationResult:
        input_utxo = self._get_spendable(input_id)
        with self._claim(input_id):
            if input_utxo.is_spent:
                raise UTXOAlreadySpent(f"UTXO {short_hex(input_id)} already spent")
            if not isinstance(output_values, (list, tuple)) or not output_values:
                raise ValueConservationViolation("Split needs a non-empty list of output values")
            values = list(output_values)
            owners = [o.lower() if isinstance(o, str) else o for o in (output_owners or [self.principal] * len(values))]
            if len(owners) != len(values):
                raise ValueConservationViolation(f"{len(values)} output values but {len(owners)} owners")
            valid, err = validate_output_values(values, self.config.max_amount)
            if not valid:
                raise InvalidAmount(err)
            valid, err = validate_owners(owners, len(values))
            if not valid:
                raise InvalidAddress(err)
            if sum(values) != input_utxo.value:
                raise ValueConservationViolation(
                    f"Outputs sum to {sum(values)} but the input holds a different value"
                )

            self._check_opening(input_utxo)
            self._resolve_ambiguity(input_utxo)

            blindings = [self.engine.generate_blinding_factor() for _ in values]
            proof = self.engine.prover.generate_split_proof(
                input_utxo.value, values, input_utxo.blinding_factor, blindings
            )
            outputs = [
                self._new_output(
                    v, owner, input_utxo.token_address, UTXOType.SPLIT, r, c,
                    parent=input_utxo.id, range_proof=rp.to_dict(),
                )
                for v, owner, r, c, rp in zip(
                    values, owners, blindings, proof.output_commitments, proof.output_range_proofs
                )
            ]

            data_hash = split_data_hash(
                input_utxo.nullifier,
                [o.commitment for o in outputs],
                [o.nullifier for o in outputs],
                [o.owner for o in outputs],
            )
            bundle = SplitBundle(
                input_commitment=input_utxo.commitment,
                input_nullifier=input_utxo.nullifier,
                output_commitments=[o.commitment for o in outputs],
                output_nullifiers=[o.nullifier for o in outputs],
                output_owners=[o.owner for o in outputs],
                proof=proof,
                attestation=self._attest("SPLIT", data_hash),
            )
            receipt = self._submit(self.verifier.submit_split, bundle, input_utxo, outputs)
            self._commit(input_utxo, outputs, receipt)

        return OperationResult.ok(
            f"Split {short_hex(input_id)} into {len(outputs)} outputs", utxos=outputs, receipt=receipt
        )

    # =========================================================================
    # Transfer
    # =========================================================================

    def transfer(self, input_id: str, new_owner: str) -> OperationResult:
        """
        Move a UTXO's full value to a new owner under a fresh commitment.

        Returns:
            OperationResult with the new TRANSFER UTXO
        """
        request = OperationRequest(kind="TRANSFER", input_ids=[input_id], output_owners=[new_owner])
        return self._run(request, self._transfer, input_id, new_owner)

    def _transfer(self, input_id: str, new_owner: str) -> OperationResult:
        input_utxo = self._get_spendable(input_id)
        with self._claim(input_id):
            if input_utxo.is_spent:
                raise UTXOAlreadySpent(f"UTXO {short_hex(input_id)} already spent")
            valid, err = validate_address(new_owner, "new_owner")
            if not valid:
                raise InvalidAddress(err)
            new_owner = new_owner.lower()

            self._check_opening(input_utxo)
            self._resolve_ambiguity(input_utxo)

            blinding = self.engine.generate_blinding_factor()
            commitment = self.engine.create_commitment(input_utxo.value, blinding)
            proof = self.engine.prover.generate_equality_proof(
                input_utxo.commitment, commitment, input_utxo.value, input_utxo.blinding_factor, blinding
            )
            output = self._new_output(
                input_utxo.value, new_owner, input_utxo.token_address, UTXOType.TRANSFER, blinding,
                commitment, parent=input_utxo.id,
            )

            data_hash = transfer_data_hash(input_utxo.nullifier, commitment, output.nullifier, new_owner)
            bundle = TransferBundle(
                input_commitment=input_utxo.commitment,
                input_nullifier=input_utxo.nullifier,
                output_commitment=commitment,
                output_nullifier=output.nullifier,
                new_owner=new_owner,
                proof=proof,
                attestation=self._attest("TRANSFER", data_hash),
            )
            receipt = self._submit(self.verifier.submit_transfer, bundle, input_utxo, [output])
            self._commit(input_utxo, [output], receipt)

        return OperationResult.ok(
            f"Transferred {short_hex(input_id)} to {short_hex(new_owner)}", utxos=[output], receipt=receipt
        )

    # =========================================================================
    # Withdraw
    # =========================================================================

    def withdraw(self, input_id: str, recipient: Optional[str] = None) -> OperationResult:
        """
        Open a UTXO to the verifier and release its value to `recipient`.

        Returns:
            OperationResult with revealed_value set; no UTXO is created
        """
        request = OperationRequest(kind="WITHDRAW", input_ids=[input_id])
        return self._run(request, self._withdraw, input_id, recipient)

    def _withdraw(self, input_id: str, recipient: Optional[str]) -> OperationResult:
        input_utxo = self._get_spendable(input_id)
        with self._claim(input_id):
            if input_utxo.is_spent:
                raise UTXOAlreadySpent(f"UTXO {short_hex(input_id)} already spent")
            recipient = recipient or self.principal
            valid, err = validate_address(recipient, "recipient")
            if not valid:
                raise InvalidAddress(err)
            recipient = recipient.lower()

            self._check_opening(input_utxo)
            self._resolve_ambiguity(input_utxo)

            data_hash = withdraw_data_hash(
                input_utxo.nullifier, input_utxo.value, input_utxo.token_address, recipient
            )
            bundle = WithdrawBundle(
                commitment=input_utxo.commitment,
                nullifier=input_utxo.nullifier,
                amount=input_utxo.value,
                blinding_factor=input_utxo.blinding_factor,
                token_address=input_utxo.token_address,
                recipient=recipient,
                attestation=self._attest("WITHDRAW", data_hash),
            )
            receipt = self._submit(self.verifier.submit_withdraw, bundle, input_utxo, [])
            self._commit(input_utxo, [], receipt)

        return OperationResult.ok(
            f"Withdrew {short_hex(input_id)} to {short_hex(recipient)}",
            receipt=receipt,
            revealed_value=input_utxo.value,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_balance(self, token_address: Optional[str] = None) -> Union[int, Dict[str, int]]:
        """
        Sum of confirmed, unspent UTXOs owned by the principal.

        Purely local; never contacts the verifier.

        Returns:
            int for one token, or a {token: balance} dict for all tokens
        """
        balances: Dict[str, int] = {}
        for utxo in self.ledger.by_owner_list(self.principal or ""):
            if utxo.is_spendable:
                balances[utxo.token_address] = balances.get(utxo.token_address, 0) + utxo.value
        if token_address is not None:
            return balances.get(token_address.lower(), 0)
        return balances

    def get_utxos_by_owner(self, owner: Optional[str] = None) -> List[UTXO]:
        owner = (owner or self.principal or "").lower()
        return self.ledger.by_owner_list(owner)

    def get_utxo(self, utxo_id: str) -> Optional[UTXO]:
        return self.ledger.get(utxo_id)

    def is_ambiguous(self, utxo_id: str) -> bool:
        with self._state_lock:
            return utxo_id in self._ambiguous

    def get_stats(self) -> dict:
        """Totals over the principal's UTXOs plus operation counters."""
        owned = self.get_utxos_by_owner()
        unspent = [u for u in owned if u.is_spendable]
        total_value = sum(u.value for u in unspent)
        return {
            "principal": self.principal,
            "total_utxos": len(owned),
            "unspent_utxos": len(unspent),
            "spent_utxos": sum(1 for u in owned if u.is_spent),
            "confirmed_utxos": sum(1 for u in owned if u.confirmed),
            "pending_utxos": sum(1 for u in owned if not u.confirmed),
            "balance_by_token": self.get_balance(),
            "total_value": total_value,
            "average_value": (total_value / len(unspent)) if unspent else 0,
            "ambiguous_inputs": len(self._ambiguous),
            "operations_attempted": self.operations_attempted,
            "operations_succeeded": self.operations_succeeded,
            "operations_failed": self.operations_failed,
            "engine": self.engine.stats(),
        }

    # =========================================================================
    # Sync / Audit
    # =========================================================================

    def sync(self) -> bool:
        """
        Reconcile local records with the repository and the verifier.

        Overlapping calls return False immediately. Idempotent.

        Returns:
            True if the sync ran to completion
        """
        if not self._sync_lock.acquire(blocking=False):
            logger.debug("sync already running")
            return False
        try:
            merged = self._merge_repository()
            changed = self._reconcile_with_verifier()
        except (VerifierUnavailable, AuthorizationFailure) as e:
            logger.warning(f"sync aborted: {e.message}")
            return False
        finally:
            self._sync_lock.release()

        logger.info(f"sync complete: {merged} record(s) loaded, {changed} updated")
        return True

    def _merge_repository(self) -> int:
        principal = self.principal
        if principal is None:
            return 0
        merged = 0
        for record in self.repository.get(principal):
            existing = self.ledger.get(record.id)
            if existing is None:
                self.ledger.add(record)
                self.history.add(record)
                merged += 1
                continue
            if record.id in self._claims:
                continue
            if record.confirmed and not existing.confirmed:
                existing.mark_confirmed(record.receipt_id)
            if record.is_spent and not existing.is_spent:
                existing.mark_spent(record.spent_receipt_id)
        return merged

    def _reconcile_with_verifier(self) -> int:
        changed = 0
        for utxo in self.ledger.all():
            if utxo.is_spent or utxo.id in self._claims:
                continue
            updated = False
            if not utxo.confirmed and self._query(self.verifier.get_commitment_exists, utxo.commitment):
                utxo.mark_confirmed()
                updated = True
            if utxo.confirmed and self._query(self.verifier.is_nullifier_used, utxo.nullifier):
                utxo.mark_spent()
                self._set_ambiguous(utxo.id, False)
                updated = True
            if updated:
                self.repository.put(utxo.owner, utxo)
                changed += 1
        return changed

    def audit(self) -> AuditReport:
        """Lineage consistency report over the local records."""
        return self.history.audit()

    def clear_private_data(self) -> None:
        """Forget every in-memory opening. Persisted records are untouched."""
        self.ledger.clear()
        self.history = UTXOHistory()
        with self._state_lock:
            self._ambiguous.clear()
        logger.info("Cleared in-memory private data")

    def __repr__(self) -> str:
        principal = short_hex(self.principal) if self.principal else None
        return f"PrivateUTXOService(principal={principal}, utxos={len(self.ledger)})"
