"""
Contracts for the service's external collaborators.

The UTXO service never talks to a wallet or a chain directly. It needs:

- a Signer, to produce attestations for the principal
- a Verifier, the authority that registers commitments, consumes
  nullifiers and checks proofs (an on-chain vault in production,
  LocalVerifier in tests and demos)

Operation bundles are the public payloads handed to the verifier. They
never contain blinding factors, except WithdrawBundle, which opens the
commitment on purpose.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from privutxo.core.attestation import Attestation
from privutxo.core.prover.proofs import EqualityProof, RangeProof, SplitProof
from privutxo.crypto import bytes_to_hex, hex_to_bytes
from privutxo.crypto.curve import CurvePoint, point_from_hex, point_to_hex


# =============================================================================
# Signer
# =============================================================================


class Signer(ABC):
    """Signs on behalf of one address."""

    @abstractmethod
    def get_address(self) -> str:
        ...

    @abstractmethod
    def sign_message(self, data: bytes) -> bytes:
        """65-byte signature over a personal message."""

    @abstractmethod
    def sign_typed_data(self, domain: Dict[str, Any], types: Dict[str, Any], value: Dict[str, Any]) -> bytes:
        """65-byte signature over structured data."""


# =============================================================================
# Operation Bundles
# =============================================================================


@dataclass
class OperationRequest:
    """
    What the caller asked for, before any cryptography.

    Attributes:
        kind: DEPOSIT, SPLIT, TRANSFER or WITHDRAW
        input_ids: UTXOs consumed (empty for deposits)
        output_values: Values of the outputs to create
        output_owners: Owners of the outputs
    """
    kind: str
    input_ids: List[str] = field(default_factory=list)
    output_values: List[int] = field(default_factory=list)
    output_owners: List[str] = field(default_factory=list)


@dataclass
class DepositBundle:
    owner: str
    token_address: str
    amount: int
    commitment: CurvePoint
    nullifier: bytes
    range_proof: RangeProof
    attestation: Attestation
    # C and amount*G hide the same value
    amount_proof: EqualityProof


@dataclass
class SplitBundle:
    input_commitment: CurvePoint
    input_nullifier: bytes
    output_commitments: List[CurvePoint]
    output_nullifiers: List[bytes]
    output_owners: List[str]
    proof: SplitProof
    attestation: Attestation


@dataclass
class TransferBundle:
    input_commitment: CurvePoint
    input_nullifier: bytes
    output_commitment: CurvePoint
    output_nullifier: bytes
    new_owner: str
    proof: EqualityProof
    attestation: Attestation


@dataclass
class WithdrawBundle:
    commitment: CurvePoint
    nullifier: bytes
    amount: int
    blinding_factor: int
    token_address: str
    recipient: str
    attestation: Attestation


# =============================================================================
# Receipt
# =============================================================================


@dataclass
class Receipt:
    """
    Verifier acknowledgement of an accepted operation.

    Attributes:
        receipt_id: Stable identifier (0x-hex)
        operation: DEPOSIT, SPLIT, TRANSFER or WITHDRAW
        spent_nullifiers: Nullifiers consumed
        created_commitments: Commitments registered
        timestamp: Unix seconds
        revealed_value: Value opened by a withdraw
    """
    receipt_id: str
    operation: str
    spent_nullifiers: List[bytes] = field(default_factory=list)
    created_commitments: List[CurvePoint] = field(default_factory=list)
    timestamp: int = 0
    revealed_value: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "receipt_id": self.receipt_id,
            "operation": self.operation,
            "spent_nullifiers": [bytes_to_hex(n) for n in self.spent_nullifiers],
            "created_commitments": [point_to_hex(c) for c in self.created_commitments],
            "timestamp": self.timestamp,
            "revealed_value": self.revealed_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Receipt":
        return cls(
            receipt_id=data["receipt_id"],
            operation=data["operation"],
            spent_nullifiers=[hex_to_bytes(n) for n in data.get("spent_nullifiers", [])],
            created_commitments=[point_from_hex(c) for c in data.get("created_commitments", [])],
            timestamp=int(data.get("timestamp", 0)),
            revealed_value=data.get("revealed_value"),
        )


# =============================================================================
# Verifier
# =============================================================================


class Verifier(ABC):
    """
    Authority over commitments and nullifiers.

    Submissions either return a Receipt or raise a PrivUTXOError
    (InvalidProof, NullifierAlreadyUsed, AuthorizationFailure,
    VerifierUnavailable, ...). VerifierUnavailable is ambiguous: the
    operation may or may not have been applied.
    """

    @abstractmethod
    def submit_deposit(self, bundle: DepositBundle) -> Receipt:
        ...

    @abstractmethod
    def submit_split(self, bundle: SplitBundle) -> Receipt:
        ...

    @abstractmethod
    def submit_transfer(self, bundle: TransferBundle) -> Receipt:
        ...

    @abstractmethod
    def submit_withdraw(self, bundle: WithdrawBundle) -> Receipt:
        ...

    @abstractmethod
    def is_nullifier_used(self, nullifier: bytes) -> bool:
        ...

    @abstractmethod
    def get_commitment_exists(self, commitment: CurvePoint) -> bool:
        ...
