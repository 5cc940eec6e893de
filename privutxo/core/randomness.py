"""
Randomness and nullifier derivation.

Randomness and hashing are injected (RngProvider, HashProvider) so the
engine can run against deterministic fakes in tests. Production code uses
SystemRng (the secrets module) and Keccak-256.

Nullifiers:
----------
    nullifier = H(domain || commitment(64) || owner(20) || nonce(32))

The same triple always yields the same nullifier, which is what lets the
verifier recognise a replay. Nonces must therefore never repeat across
outputs: NonceGenerator combines a strictly increasing counter, the
nanosecond clock and 16 random bytes.
"""

import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional, Union

from privutxo.core.errors import InvalidPoint
from privutxo.crypto import (
    address_to_bytes,
    bytes_to_hex,
    hex_to_bytes,
    keccak256,
    sha256,
)
from privutxo.crypto.curve import CURVE_ORDER, CurvePoint, point_to_bytes
from privutxo.utils.logger import get_logger

logger = get_logger("randomness")

NONCE_SIZE = 32
NULLIFIER_SIZE = 32

DEFAULT_NULLIFIER_DOMAIN = "privutxo.nullifier.v1"


# =============================================================================
# Providers
# =============================================================================


class RngProvider(ABC):
    """Source of cryptographically secure random bytes."""

    @abstractmethod
    def random_bytes(self, n: int) -> bytes:
        ...


class HashProvider(ABC):
    """32-byte digest function."""

    name: str = "hash"

    @abstractmethod
    def digest(self, data: bytes) -> bytes:
        ...


class SystemRng(RngProvider):
    """OS entropy via the secrets module."""

    def random_bytes(self, n: int) -> bytes:
        return secrets.token_bytes(n)


class SeededRng(RngProvider):
    """
    Deterministic byte stream: keccak256(seed || counter) blocks.

    For reproducible tests and demos only; never use for real funds.
    """

    def __init__(self, seed: Union[bytes, int] = 0):
        if isinstance(seed, int):
            seed = seed.to_bytes(32, "big")
        self._seed = seed
        self._counter = 0
        self._lock = threading.Lock()

    def random_bytes(self, n: int) -> bytes:
        out = b""
        with self._lock:
            while len(out) < n:
                out += keccak256(self._seed + self._counter.to_bytes(8, "big"))
                self._counter += 1
        return out[:n]


class Keccak256Hasher(HashProvider):
    name = "keccak256"

    def digest(self, data: bytes) -> bytes:
        return keccak256(data)


class Sha256Hasher(HashProvider):
    name = "sha256"

    def digest(self, data: bytes) -> bytes:
        return sha256(data)


# =============================================================================
# Nonces
# =============================================================================


class NonceGenerator:
    """
    Unique 32-byte nonces.

    Layout: counter(8) || time_ns(8) || random(16). The counter is strictly
    increasing per generator, so two calls never collide even if the clock
    stalls and the RNG is a fake.
    """

    def __init__(self, rng: Optional[RngProvider] = None):
        self.rng = rng or SystemRng()
        self._counter = 0
        self._lock = threading.Lock()

    def next_nonce(self) -> bytes:
        with self._lock:
            self._counter += 1
            counter = self._counter
        return (
            counter.to_bytes(8, "big")
            + (time.time_ns() & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "big")
            + self.rng.random_bytes(16)
        )

    @property
    def issued(self) -> int:
        return self._counter


# =============================================================================
# Nullifiers and Blinding Factors
# =============================================================================


def _coerce_nonce(nonce: Union[bytes, str, int]) -> bytes:
    if isinstance(nonce, int):
        if nonce < 0:
            raise ValueError("Nonce must be non-negative")
        return nonce.to_bytes(NONCE_SIZE, "big")
    if isinstance(nonce, str):
        nonce = hex_to_bytes(nonce)
    if len(nonce) > NONCE_SIZE:
        raise ValueError(f"Nonce must be at most {NONCE_SIZE} bytes")
    return nonce.rjust(NONCE_SIZE, b"\x00")


class NullifierAndRandomness:
    """
    Blinding factors, proof nonces and nullifiers.

    Attributes:
        rng: Random byte source
        hasher: Digest used for nullifiers
        domain: Domain separation tag mixed into every nullifier
    """

    def __init__(
        self,
        rng: Optional[RngProvider] = None,
        hasher: Optional[HashProvider] = None,
        domain: str = DEFAULT_NULLIFIER_DOMAIN,
    ):
        self.rng = rng or SystemRng()
        self.hasher = hasher or Keccak256Hasher()
        self.domain = domain.encode()
        self.nonces = NonceGenerator(self.rng)

    def random_scalar(self) -> int:
        """
        Uniform scalar in [1, n).

        64 bytes are reduced so the modulo bias is negligible (2^-250).
        """
        raw = int.from_bytes(self.rng.random_bytes(64), "big")
        return raw % (CURVE_ORDER - 1) + 1

    def generate_blinding_factor(self) -> int:
        """Fresh blinding factor in [1, n); never 0, which would expose v*G."""
        return self.random_scalar()

    def next_nonce(self) -> bytes:
        return self.nonces.next_nonce()

    def generate_nullifier(
        self,
        commitment: CurvePoint,
        owner: str,
        nonce: Union[bytes, str, int],
    ) -> bytes:
        """
        Deterministic nullifier over (commitment, owner, nonce).

        Raises:
            InvalidPoint: commitment is not a CurvePoint
            ValueError: owner is not a hex address or nonce is too long
        """
        if not isinstance(commitment, CurvePoint):
            raise InvalidPoint("Nullifier commitment must be a CurvePoint")
        data = (
            self.domain
            + point_to_bytes(commitment)
            + address_to_bytes(owner)
            + _coerce_nonce(nonce)
        )
        return self.hasher.digest(data)

    def generate_nullifier_hex(self, commitment: CurvePoint, owner: str, nonce: Union[bytes, str, int]) -> str:
        return bytes_to_hex(self.generate_nullifier(commitment, owner, nonce))

