"""Sigma-protocol proofs over Pedersen commitments"""
from privutxo.core.prover.proofs import (
    SchnorrProof,
    BitProof,
    RangeProof,
    SplitProof,
    EqualityProof,
    proof_from_dict,
)
from privutxo.core.prover.prover import ProofEngine
from privutxo.core.prover.transcript import Transcript

__all__ = [
    "SchnorrProof",
    "BitProof",
    "RangeProof",
    "SplitProof",
    "EqualityProof",
    "proof_from_dict",
    "ProofEngine",
    "Transcript",
]
