"""
CryptoEngine - the cryptographic capabilities the UTXO service depends on.

Bundles commitments, randomness/nullifiers and proofs behind one object so
the service receives a single injected dependency, and tests can swap in a
seeded RNG in one place.
"""

from typing import Optional

from privutxo.core.commitment import CommitmentEngine, default_commitment_engine
from privutxo.core.config import EngineConfig
from privutxo.core.prover.prover import ProofEngine
from privutxo.core.randomness import (
    HashProvider,
    Keccak256Hasher,
    NullifierAndRandomness,
    RngProvider,
    SystemRng,
)
from privutxo.utils.logger import get_logger

logger = get_logger("engine")


class CryptoEngine:
    """
    Facade over CommitmentEngine, NullifierAndRandomness and ProofEngine.

    Attributes:
        config: Engine configuration (range width, nullifier domain)
        commitments: Pedersen commitment engine
        randomness: Blinding factors, nonces and nullifiers
        prover: Proof generation and verification
    """

    def __init__(
        self,
        rng: Optional[RngProvider] = None,
        hasher: Optional[HashProvider] = None,
        config: Optional[EngineConfig] = None,
        commitments: Optional[CommitmentEngine] = None,
    ):
        self.config = config or EngineConfig()
        self.rng = rng or SystemRng()
        self.hasher = hasher or Keccak256Hasher()
        self.commitments = commitments or default_commitment_engine()
        self.randomness = NullifierAndRandomness(
            rng=self.rng,
            hasher=self.hasher,
            domain=self.config.nullifier_domain,
        )
        self.prover = ProofEngine(
            commitments=self.commitments,
            randomness=self.randomness,
            hasher=self.hasher,
            range_bits=self.config.range_proof_bits,
        )
        logger.debug(
            f"CryptoEngine ready: {self.config.range_proof_bits}-bit ranges, hash={self.hasher.name}"
        )

    @property
    def max_amount(self) -> int:
        return self.config.max_amount

    # Convenience pass-throughs used by the service

    def create_commitment(self, value: int, blinding: int):
        return self.commitments.create_commitment(value, blinding)

    def verify_commitment(self, commitment, value: int, blinding: int) -> bool:
        return self.commitments.verify_commitment(commitment, value, blinding)

    def generate_blinding_factor(self) -> int:
        return self.randomness.generate_blinding_factor()

    def next_nonce(self) -> bytes:
        return self.randomness.next_nonce()

    def generate_nullifier(self, commitment, owner: str, nonce) -> bytes:
        return self.randomness.generate_nullifier(commitment, owner, nonce)

    def stats(self) -> dict:
        return {
            "nonces_issued": self.randomness.nonces.issued,
            **self.prover.stats(),
        }
