"""
LocalVerifier - in-process reference verifier.

Conceptual Background:
---------------------
The verifier is the public authority of the system. It knows nothing
about values or blinding factors; it keeps:

1. **Commitment registry**: every accepted commitment with the nullifier
   registered for it, the owner allowed to spend it and its token
   (outputs inherit the token of the input they were split from)
2. **Nullifier set**: every nullifier ever consumed (marks spent UTXOs)
3. **Receipts**: one per accepted operation

Operation Processing:
--------------------
1. Validate the input: commitment registered, nullifier matches the one
   registered, nullifier not yet consumed
2. Validate authorization: the attestation recovers to the registered
   owner and covers exactly this bundle's public data
3. Validate the proof (range, split conservation, equality, opening)
4. Apply: consume the input nullifier, register the outputs, persist

Validation and application run under one lock, so two submissions
spending the same nullifier can never both succeed.

Failure injection (fail_next) makes the verifier raise on the next
submission, optionally after applying it. That is how tests reproduce a
timeout whose outcome the caller cannot know.
"""

import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from privutxo.core.attestation import (
    Attestation,
    deposit_data_hash,
    split_data_hash,
    transfer_data_hash,
    verify_attestation,
    withdraw_data_hash,
)
from privutxo.core.config import EngineConfig
from privutxo.core.engine import CryptoEngine
from privutxo.core.errors import (
    AuthorizationFailure,
    InvalidProof,
    NullifierAlreadyUsed,
    PrivUTXOError,
    VerifierUnavailable,
)
from privutxo.core.interfaces import (
    DepositBundle,
    Receipt,
    SplitBundle,
    TransferBundle,
    Verifier,
    WithdrawBundle,
)
from privutxo.core.storage.storage_manager import StorageManager
from privutxo.crypto import bytes_to_hex, keccak256, normalize_address
from privutxo.crypto.curve import CurvePoint, point_from_bytes, point_to_bytes
from privutxo.utils.logger import get_logger, short_hex

logger = get_logger("verifier")


@dataclass
class RegisteredCommitment:
    """Verifier-side view of a UTXO."""
    nullifier: bytes
    owner: str
    token_address: str


@dataclass
class _InjectedFailure:
    error: PrivUTXOError
    apply: bool


class LocalVerifier(Verifier):
    """
    Commitment registry plus nullifier set with proof checking.

    Attributes:
        commitments: Mapping of commitment to RegisteredCommitment
        registered_nullifiers: Mapping of nullifier to its commitment
        nullifier_set: Consumed nullifiers
        receipts: Mapping of receipt id to Receipt
        available: When False every call raises VerifierUnavailable
    """

    def __init__(
        self,
        engine: Optional[CryptoEngine] = None,
        config: Optional[EngineConfig] = None,
        storage_manager: Optional[StorageManager] = None,
    ):
        """
        Initialize the verifier.

        Args:
            engine: Crypto engine used to check proofs
            config: Range width and attestation domain
            storage_manager: Persistence manager. None = in-memory only.
        """
        self.config = config or (engine.config if engine else EngineConfig())
        self.engine = engine or CryptoEngine(config=self.config)

        self.commitments: Dict[CurvePoint, RegisteredCommitment] = {}
        self.registered_nullifiers: Dict[bytes, CurvePoint] = {}
        self.nullifier_set: Set[bytes] = set()
        self.receipts: Dict[str, Receipt] = {}
        self._attestation_nonces: Set[Tuple[str, bytes]] = set()

        self.available = True
        self._failures: List[_InjectedFailure] = []
        self._lock = threading.Lock()

        self.accepted = 0
        self.rejected = 0

        # Persistence
        self.storage_manager = storage_manager

        if storage_manager:
            self._load_from_storage()

    # =========================================================================
    # Failure Injection
    # =========================================================================

    def fail_next(self, error: Optional[PrivUTXOError] = None, apply: bool = False, count: int = 1) -> None:
        """
        Make the next `count` submissions raise.

        Args:
            error: Exception to raise (default VerifierUnavailable)
            apply: Apply the operation before raising (a lost response)
            count: Number of submissions affected
        """
        for _ in range(count):
            self._failures.append(_InjectedFailure(error or VerifierUnavailable("Verifier timed out"), apply))

    def _take_failure(self) -> Optional[_InjectedFailure]:
        if not self.available:
            raise VerifierUnavailable("Verifier offline")
        return self._failures.pop(0) if self._failures else None

    # =========================================================================
    # Queries
    # =========================================================================

    def is_nullifier_used(self, nullifier: bytes) -> bool:
        if not self.available:
            raise VerifierUnavailable("Verifier offline")
        return nullifier in self.nullifier_set

    def get_commitment_exists(self, commitment: CurvePoint) -> bool:
        if not self.available:
            raise VerifierUnavailable("Verifier offline")
        return commitment in self.commitments

    def get_receipt(self, receipt_id: str) -> Optional[Receipt]:
        return self.receipts.get(receipt_id)

    # =========================================================================
    # Validation Helpers
    # =========================================================================

    def _check_input(self, commitment: CurvePoint, nullifier: bytes) -> RegisteredCommitment:
        registered = self.commitments.get(commitment)
        if registered is None:
            raise InvalidProof("Input commitment is not registered")
        if registered.nullifier != nullifier:
            raise InvalidProof("Nullifier does not belong to the input commitment")
        if nullifier in self.nullifier_set:
            raise NullifierAlreadyUsed(f"Nullifier {short_hex(nullifier)} already used")
        return registered

    def _check_outputs(self, commitments: List[CurvePoint], nullifiers: List[bytes]) -> None:
        if len(set(commitments)) != len(commitments) or len(set(nullifiers)) != len(nullifiers):
            raise InvalidProof("Duplicate output commitment or nullifier")
        for commitment in commitments:
            if commitment in self.commitments:
                raise InvalidProof("Output commitment already registered")
        for nullifier in nullifiers:
            if nullifier in self.registered_nullifiers or nullifier in self.nullifier_set:
                raise NullifierAlreadyUsed(f"Output nullifier {short_hex(nullifier)} already registered")

    def _check_attestation(self, attestation: Attestation, operation: str, signer: str, data_hash: bytes) -> None:
        if attestation.operation != operation:
            raise AuthorizationFailure(f"Attestation is for {attestation.operation}, not {operation}")
        if (attestation.signer.lower(), attestation.nonce) in self._attestation_nonces:
            raise AuthorizationFailure("Attestation nonce already used")
        if not verify_attestation(attestation, self.config.signing_domain(), signer, data_hash):
            raise AuthorizationFailure(f"Attestation not signed by {short_hex(signer)} over this bundle")

    def _receipt_id(self, operation: str, attestation: Attestation) -> str:
        return bytes_to_hex(keccak256(operation.encode() + attestation.data_hash + attestation.nonce))

    # =========================================================================
    # Submission
    # =========================================================================

    def _submit(self, operation: str, validate, apply) -> Receipt:
        """Run validate/apply atomically, honouring injected failures."""
        with self._lock:
            failure = self._take_failure()
            if failure is not None and not failure.apply:
                logger.warning(f"{operation} dropped: {failure.error.kind.value} (injected)")
                raise failure.error

            try:
                validate()
            except PrivUTXOError as e:
                self.rejected += 1
                logger.info(f"{operation} rejected: {e.kind.value}: {e.message}")
                raise

            receipt = apply()
            self.accepted += 1

            if failure is not None:
                logger.warning(f"{operation} applied but response lost: {failure.error.kind.value} (injected)")
                raise failure.error

        logger.info(f"{operation} accepted, receipt {short_hex(receipt.receipt_id)}")
        return receipt

    def submit_deposit(self, bundle: DepositBundle) -> Receipt:
        def validate():
            if bundle.amount <= 0 or bundle.amount > self.config.max_amount:
                raise InvalidProof(f"Deposit amount {bundle.amount} outside [1, {self.config.max_amount}]")
            if bundle.nullifier in self.registered_nullifiers or bundle.nullifier in self.nullifier_set:
                raise NullifierAlreadyUsed(f"Nullifier {short_hex(bundle.nullifier)} already registered")
            if bundle.commitment in self.commitments:
                raise InvalidProof("Commitment already registered")
            data_hash = deposit_data_hash(
                bundle.token_address, bundle.commitment, bundle.nullifier, bundle.amount, bundle.owner
            )
            # Anyone may fund a deposit; the owner is bound through the data hash
            self._check_attestation(bundle.attestation, "DEPOSIT", bundle.attestation.signer, data_hash)
            proof = bundle.range_proof
            if proof.min_value != 1 or proof.max_value != self.config.max_amount:
                raise InvalidProof("Deposit range proof has the wrong bounds")
            if not self.engine.prover.verify_range_proof(proof, bundle.commitment):
                raise InvalidProof("Deposit range proof does not verify")
            amount_point = self.engine.commitments.value_point(bundle.amount)
            if not self.engine.prover.verify_equality_proof(bundle.amount_proof, bundle.commitment, amount_point):
                raise InvalidProof("Deposit commitment does not hide the deposited amount")

        def apply():
            receipt = self._new_receipt("DEPOSIT", bundle.attestation, [], [bundle.commitment])
            outputs = [(bundle.commitment, bundle.nullifier, bundle.owner, bundle.token_address)]
            self._apply(receipt, bundle.attestation, [], outputs)
            return receipt

        return self._submit("DEPOSIT", validate, apply)

    def submit_split(self, bundle: SplitBundle) -> Receipt:
        def validate():
            registered = self._check_input(bundle.input_commitment, bundle.input_nullifier)
            n = len(bundle.output_commitments)
            if n == 0 or len(bundle.output_nullifiers) != n or len(bundle.output_owners) != n:
                raise InvalidProof("Split outputs are malformed")
            data_hash = split_data_hash(
                bundle.input_nullifier, bundle.output_commitments, bundle.output_nullifiers, bundle.output_owners
            )
            self._check_attestation(bundle.attestation, "SPLIT", registered.owner, data_hash)
            self._check_outputs(bundle.output_commitments, bundle.output_nullifiers)
            if not self.engine.prover.verify_split_proof(
                bundle.proof, bundle.input_commitment, bundle.output_commitments
            ):
                raise InvalidProof("Split proof does not verify")

        def apply():
            receipt = self._new_receipt(
                "SPLIT", bundle.attestation, [bundle.input_nullifier], list(bundle.output_commitments)
            )
            token = self.commitments[bundle.input_commitment].token_address
            outputs = [
                (c, n, normalize_address(o), token)
                for c, n, o in zip(bundle.output_commitments, bundle.output_nullifiers, bundle.output_owners)
            ]
            self._apply(receipt, bundle.attestation, [bundle.input_nullifier], outputs)
            return receipt

        return self._submit("SPLIT", validate, apply)

    def submit_transfer(self, bundle: TransferBundle) -> Receipt:
        def validate():
            registered = self._check_input(bundle.input_commitment, bundle.input_nullifier)
            data_hash = transfer_data_hash(
                bundle.input_nullifier, bundle.output_commitment, bundle.output_nullifier, bundle.new_owner
            )
            self._check_attestation(bundle.attestation, "TRANSFER", registered.owner, data_hash)
            self._check_outputs([bundle.output_commitment], [bundle.output_nullifier])
            if not self.engine.prover.verify_equality_proof(
                bundle.proof, bundle.input_commitment, bundle.output_commitment
            ):
                raise InvalidProof("Transfer equality proof does not verify")

        def apply():
            receipt = self._new_receipt(
                "TRANSFER", bundle.attestation, [bundle.input_nullifier], [bundle.output_commitment]
            )
            token = self.commitments[bundle.input_commitment].token_address
            outputs = [
                (bundle.output_commitment, bundle.output_nullifier, normalize_address(bundle.new_owner), token)
            ]
            self._apply(receipt, bundle.attestation, [bundle.input_nullifier], outputs)
            return receipt

        return self._submit("TRANSFER", validate, apply)

    def submit_withdraw(self, bundle: WithdrawBundle) -> Receipt:
        def validate():
            registered = self._check_input(bundle.commitment, bundle.nullifier)
            data_hash = withdraw_data_hash(bundle.nullifier, bundle.amount, bundle.token_address, bundle.recipient)
            self._check_attestation(bundle.attestation, "WITHDRAW", registered.owner, data_hash)
            if normalize_address(bundle.token_address) != registered.token_address:
                raise InvalidProof("Withdraw token does not match the deposited token")
            if bundle.amount <= 0:
                raise InvalidProof("Withdraw amount must be positive")
            if not self.engine.verify_commitment(bundle.commitment, bundle.amount, bundle.blinding_factor):
                raise InvalidProof("Commitment does not open to the withdrawn amount")

        def apply():
            receipt = self._new_receipt("WITHDRAW", bundle.attestation, [bundle.nullifier], [])
            receipt.revealed_value = bundle.amount
            self._apply(receipt, bundle.attestation, [bundle.nullifier], [])
            return receipt

        return self._submit("WITHDRAW", validate, apply)

    # =========================================================================
    # State Application
    # =========================================================================

    def _new_receipt(
        self,
        operation: str,
        attestation: Attestation,
        spent: List[bytes],
        created: List[CurvePoint],
    ) -> Receipt:
        return Receipt(
            receipt_id=self._receipt_id(operation, attestation),
            operation=operation,
            spent_nullifiers=list(spent),
            created_commitments=list(created),
            timestamp=int(time.time()),
        )

    def _apply(
        self,
        receipt: Receipt,
        attestation: Attestation,
        spent: List[bytes],
        created: List[Tuple[CurvePoint, bytes, str, str]],
    ) -> None:
        for nullifier in spent:
            self.nullifier_set.add(nullifier)
        for commitment, nullifier, owner, token in created:
            self.commitments[commitment] = RegisteredCommitment(
                nullifier=nullifier, owner=owner.lower(), token_address=normalize_address(token)
            )
            self.registered_nullifiers[nullifier] = commitment
        self.receipts[receipt.receipt_id] = receipt
        self._attestation_nonces.add((attestation.signer.lower(), attestation.nonce))

        # Persist if enabled
        if self.storage_manager:
            self.storage_manager.persist_operation(
                receipt.receipt_id,
                receipt.operation,
                receipt.to_dict(),
                receipt.timestamp,
                list(spent),
                [(point_to_bytes(c), n, o.lower(), normalize_address(t)) for c, n, o, t in created],
            )

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load_from_storage(self) -> None:
        """Load state from storage manager."""
        if not self.storage_manager:
            return

        commitments, nullifiers, receipts = self.storage_manager.load_verifier_state()

        for commitment_bytes, nullifier, owner, token in commitments:
            commitment = point_from_bytes(commitment_bytes)
            self.commitments[commitment] = RegisteredCommitment(
                nullifier=nullifier, owner=owner, token_address=token
            )
            self.registered_nullifiers[nullifier] = commitment

        for nullifier in nullifiers:
            self.nullifier_set.add(nullifier)

        for data in receipts:
            receipt = Receipt.from_dict(data)
            self.receipts[receipt.receipt_id] = receipt

        logger.info(
            f"Loaded verifier: {len(self.commitments)} commitments, "
            f"{len(self.nullifier_set)} nullifiers, {len(self.receipts)} receipts"
        )

    # =========================================================================
    # Utility
    # =========================================================================

    def __repr__(self) -> str:
        return f"LocalVerifier(commitments={len(self.commitments)}, nullifiers={len(self.nullifier_set)})"

    def stats(self) -> dict:
        """Get verifier statistics."""
        return {
            "commitments": len(self.commitments),
            "nullifiers_used": len(self.nullifier_set),
            "receipts": len(self.receipts),
            "accepted": self.accepted,
            "rejected": self.rejected,
        }
