"""
Proof objects and their wire format.

Proof System:
------------
All proofs are non-interactive sigma protocols made non-interactive with
the Fiat-Shamir transcript in transcript.py. Statements are about
commitments C = v*G + r*H.

- SchnorrProof: knowledge of x with P = x*H. Used for conservation (the
  input minus the outputs has no G component) and for equality (two
  commitments differ only in blinding).
- BitProof: a Cramer-Damgard-Schoenmakers OR-proof that a bit commitment
  C_i opens to 0 or to 1, without saying which.
- RangeProof: bit decomposition of (v - min) and, when needed, of
  (max - v). The weighted bit commitments must sum to the shifted main
  commitment, and every bit carries a BitProof.

Proof size is linear in the bit width (no logarithmic aggregation), which
is the trade-off against a full Bulletproofs implementation.

Every proof converts to a JSON-ready dict of hex strings and back.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from privutxo.crypto.curve import CurvePoint, point_from_hex, point_to_hex


def _int_to_hex(value: int) -> str:
    return hex(value)


def _hex_to_int(value: str) -> int:
    return int(value, 16)


# =============================================================================
# Schnorr
# =============================================================================


@dataclass(frozen=True)
class SchnorrProof:
    """
    Proof of knowledge of x such that P = x*H.

    Attributes:
        challenge: Fiat-Shamir challenge c
        response: s = k + c*x (mod n)
    """
    challenge: int
    response: int

    def to_dict(self) -> Dict[str, Any]:
        return {"challenge": _int_to_hex(self.challenge), "response": _int_to_hex(self.response)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchnorrProof":
        return cls(challenge=_hex_to_int(data["challenge"]), response=_hex_to_int(data["response"]))


# =============================================================================
# Range
# =============================================================================


@dataclass(frozen=True)
class BitProof:
    """
    OR-proof that commitment opens to 0 or 1.

    Branch j proves knowledge of r with (commitment - j*G) = r*H;
    c0 + c1 must equal the transcript challenge.
    """
    commitment: CurvePoint
    c0: int
    c1: int
    s0: int
    s1: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commitment": point_to_hex(self.commitment),
            "c0": _int_to_hex(self.c0),
            "c1": _int_to_hex(self.c1),
            "s0": _int_to_hex(self.s0),
            "s1": _int_to_hex(self.s1),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BitProof":
        return cls(
            commitment=point_from_hex(data["commitment"]),
            c0=_hex_to_int(data["c0"]),
            c1=_hex_to_int(data["c1"]),
            s0=_hex_to_int(data["s0"]),
            s1=_hex_to_int(data["s1"]),
        )


@dataclass(frozen=True)
class RangeProof:
    """
    Proof that commitment hides a value in [min_value, max_value].

    Attributes:
        commitment: The main commitment C = v*G + r*H
        min_value: Public lower bound
        max_value: Public upper bound
        bit_length: Bits per decomposition, bitlen(max - min)
        lower_bits: Decomposition of C - min*G
        upper_bits: Decomposition of max*G - C, empty when the lower side
            already implies the upper bound
    """
    commitment: CurvePoint
    min_value: int
    max_value: int
    bit_length: int
    lower_bits: List[BitProof] = field(default_factory=list)
    upper_bits: List[BitProof] = field(default_factory=list)

    @property
    def bit_commitments(self) -> List[CurvePoint]:
        return [b.commitment for b in self.lower_bits + self.upper_bits]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "range",
            "commitment": point_to_hex(self.commitment),
            "min_value": self.min_value,
            "max_value": self.max_value,
            "bit_length": self.bit_length,
            "lower_bits": [b.to_dict() for b in self.lower_bits],
            "upper_bits": [b.to_dict() for b in self.upper_bits],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RangeProof":
        return cls(
            commitment=point_from_hex(data["commitment"]),
            min_value=int(data["min_value"]),
            max_value=int(data["max_value"]),
            bit_length=int(data["bit_length"]),
            lower_bits=[BitProof.from_dict(b) for b in data.get("lower_bits", [])],
            upper_bits=[BitProof.from_dict(b) for b in data.get("upper_bits", [])],
        )


# =============================================================================
# Split / Equality
# =============================================================================


@dataclass(frozen=True)
class SplitProof:
    """
    Conservation proof for one input split into several outputs.

    The balance proof shows C_in - sum(C_out) = x*H, i.e. the G parts
    (the values) cancel. Output range proofs rule out "negative" outputs
    that would wrap around the group order and inflate value.
    """
    input_commitment: CurvePoint
    output_commitments: List[CurvePoint]
    balance_proof: SchnorrProof
    output_range_proofs: List[RangeProof] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "split",
            "input_commitment": point_to_hex(self.input_commitment),
            "output_commitments": [point_to_hex(c) for c in self.output_commitments],
            "balance_proof": self.balance_proof.to_dict(),
            "output_range_proofs": [p.to_dict() for p in self.output_range_proofs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SplitProof":
        return cls(
            input_commitment=point_from_hex(data["input_commitment"]),
            output_commitments=[point_from_hex(c) for c in data["output_commitments"]],
            balance_proof=SchnorrProof.from_dict(data["balance_proof"]),
            output_range_proofs=[RangeProof.from_dict(p) for p in data.get("output_range_proofs", [])],
        )


@dataclass(frozen=True)
class EqualityProof:
    """Proof that commitment_a and commitment_b hide the same value."""
    commitment_a: CurvePoint
    commitment_b: CurvePoint
    proof: SchnorrProof

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "equality",
            "commitment_a": point_to_hex(self.commitment_a),
            "commitment_b": point_to_hex(self.commitment_b),
            "proof": self.proof.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EqualityProof":
        return cls(
            commitment_a=point_from_hex(data["commitment_a"]),
            commitment_b=point_from_hex(data["commitment_b"]),
            proof=SchnorrProof.from_dict(data["proof"]),
        )


PROOF_TYPES = {
    "range": RangeProof,
    "split": SplitProof,
    "equality": EqualityProof,
}


def proof_from_dict(data: Dict[str, Any]) -> Optional[Any]:
    """Decode any proof dict by its 'type' tag; None for unknown tags."""
    proof_cls = PROOF_TYPES.get(data.get("type", ""))
    if proof_cls is None:
        return None
    return proof_cls.from_dict(data)
