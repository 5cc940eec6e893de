"""
UTXO - a private, committed unit of token value.

Conceptual Background:
---------------------
A private UTXO holds a discrete amount of one token. On the verifier side
only its Pedersen commitment and nullifier are known; the owner keeps the
opening (value, blinding factor) locally so it can later prove things
about the committed value.

UTXO Lifecycle:
--------------
1. CREATED   - built locally, not yet accepted by the verifier
2. CONFIRMED - the verifier registered its commitment
3. SPENT     - its nullifier was consumed by a split, transfer or withdraw

The state is derived from two flags (confirmed, is_spent) rather than
stored, and is_spent flips exactly once. Records are never deleted, so
lineage through parent_utxo always resolves.

Identity:
--------
    id = keccak256(commitment(64) || owner(20) || nonce(32))

The nonce is unique per output, so ids never collide even when the same
owner receives equal values.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from privutxo.core.errors import InvariantViolation
from privutxo.crypto import address_to_bytes, bytes_to_hex, hex_to_bytes, keccak256
from privutxo.crypto.curve import CurvePoint, point_from_hex, point_to_bytes, point_to_hex


class UTXOType(str, Enum):
    """How a UTXO came into existence."""

    DEPOSIT = "DEPOSIT"
    SPLIT = "SPLIT"
    TRANSFER = "TRANSFER"
    WITHDRAW = "WITHDRAW"


class UTXOState(str, Enum):
    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    SPENT = "SPENT"


# =============================================================================
# UTXO Dataclass
# =============================================================================


@dataclass
class UTXO:
    """
    A private UTXO with its local opening.

    Attributes:
        id: 0x-hex identifier (see module docstring)
        commitment: Pedersen commitment value*G + blinding_factor*H
        value: Committed amount (secret, local only)
        token_address: Token contract address
        owner: Owner address
        blinding_factor: Commitment blinding (secret, local only)
        nullifier_hash: 0x-hex nullifier registered for this UTXO
        parent_utxo: Id of the UTXO this one was derived from
        utxo_type: Operation that created it
        is_spent: Whether the nullifier has been consumed
        confirmed: Whether the verifier registered the commitment
        created_at: Unix timestamp (seconds)
        nonce: 0x-hex nonce the nullifier was derived from
        range_proof: Serialized range proof, if one was produced
        receipt_id: Receipt of the operation that created it
        spent_receipt_id: Receipt of the operation that spent it
    """
    id: str
    commitment: CurvePoint
    value: int
    token_address: str
    owner: str
    blinding_factor: int
    nullifier_hash: str
    parent_utxo: Optional[str] = None
    utxo_type: UTXOType = UTXOType.DEPOSIT
    is_spent: bool = False
    confirmed: bool = False
    created_at: int = field(default_factory=lambda: int(time.time()))
    nonce: str = ""
    range_proof: Optional[Dict[str, Any]] = None
    receipt_id: Optional[str] = None
    spent_receipt_id: Optional[str] = None

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"value must be non-negative, got {self.value}")
        self.owner = self.owner.lower()
        self.token_address = self.token_address.lower()
        if not isinstance(self.utxo_type, UTXOType):
            self.utxo_type = UTXOType(self.utxo_type)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> UTXOState:
        if self.is_spent:
            return UTXOState.SPENT
        if self.confirmed:
            return UTXOState.CONFIRMED
        return UTXOState.CREATED

    @property
    def is_spendable(self) -> bool:
        return self.confirmed and not self.is_spent

    def mark_confirmed(self, receipt_id: Optional[str] = None) -> None:
        self.confirmed = True
        if receipt_id is not None:
            self.receipt_id = receipt_id

    def mark_spent(self, receipt_id: Optional[str] = None) -> None:
        """
        Flip is_spent. A second call is an engine bug.

        Raises:
            InvariantViolation: if already spent
        """
        if self.is_spent:
            raise InvariantViolation(f"UTXO {self.id[:10]}... spent twice")
        self.is_spent = True
        # A spent UTXO was necessarily accepted first
        self.confirmed = True
        self.spent_receipt_id = receipt_id

    @property
    def nullifier(self) -> bytes:
        return hex_to_bytes(self.nullifier_hash)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict (the private opening included)."""
        return {
            "id": self.id,
            "commitment": point_to_hex(self.commitment),
            "value": self.value,
            "token_address": self.token_address,
            "owner": self.owner,
            "blinding_factor": hex(self.blinding_factor),
            "nullifier_hash": self.nullifier_hash,
            "parent_utxo": self.parent_utxo,
            "utxo_type": self.utxo_type.value,
            "is_spent": self.is_spent,
            "confirmed": self.confirmed,
            "created_at": self.created_at,
            "nonce": self.nonce,
            "range_proof": self.range_proof,
            "receipt_id": self.receipt_id,
            "spent_receipt_id": self.spent_receipt_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UTXO":
        return cls(
            id=data["id"],
            commitment=point_from_hex(data["commitment"]),
            value=int(data["value"]),
            token_address=data["token_address"],
            owner=data["owner"],
            blinding_factor=int(data["blinding_factor"], 16),
            nullifier_hash=data["nullifier_hash"],
            parent_utxo=data.get("parent_utxo"),
            utxo_type=UTXOType(data.get("utxo_type", UTXOType.DEPOSIT.value)),
            is_spent=bool(data.get("is_spent", False)),
            confirmed=bool(data.get("confirmed", False)),
            created_at=int(data.get("created_at", 0)),
            nonce=data.get("nonce", ""),
            range_proof=data.get("range_proof"),
            receipt_id=data.get("receipt_id"),
            spent_receipt_id=data.get("spent_receipt_id"),
        )

    # =========================================================================
    # String Representation
    # =========================================================================

    def __repr__(self) -> str:
        owner = self.owner[:10] + "..."
        return f"UTXO(id={self.id[:10]}..., type={self.utxo_type.value}, state={self.state.value}, owner={owner})"


# =============================================================================
# Factory Functions
# =============================================================================


def compute_utxo_id(commitment: CurvePoint, owner: str, nonce: bytes) -> str:
    """keccak256(commitment || owner || nonce) as 0x-hex."""
    return bytes_to_hex(keccak256(point_to_bytes(commitment) + address_to_bytes(owner) + nonce))


def create_utxo(
    commitment: CurvePoint,
    value: int,
    blinding_factor: int,
    token_address: str,
    owner: str,
    nullifier: bytes,
    nonce: bytes,
    utxo_type: UTXOType = UTXOType.DEPOSIT,
    parent_utxo: Optional[str] = None,
    range_proof: Optional[Dict[str, Any]] = None,
) -> UTXO:
    """
    Build an unconfirmed UTXO from its cryptographic parts.

    Returns:
        UTXO in state CREATED
    """
    return UTXO(
        id=compute_utxo_id(commitment, owner, nonce),
        commitment=commitment,
        value=value,
        token_address=token_address,
        owner=owner,
        blinding_factor=blinding_factor,
        nullifier_hash=bytes_to_hex(nullifier),
        parent_utxo=parent_utxo,
        utxo_type=utxo_type,
        nonce=bytes_to_hex(nonce),
        range_proof=range_proof,
    )
