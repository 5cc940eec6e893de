"""
Fiat-Shamir transcript for non-interactive sigma proofs.

Every public value the verifier sees is absorbed, with a label, into a
running hash state before a challenge is squeezed out. Prover and
verifier replay the same sequence of appends, so they derive the same
challenge; changing any absorbed value changes every later challenge.

    state_0 = H(protocol_label)
    state_i = H(state_{i-1} || len(label) || label || len(data) || data)
    challenge = H(state || "challenge" || label) mod n
"""

from typing import Optional

from privutxo.core.randomness import HashProvider, Keccak256Hasher
from privutxo.crypto.curve import CURVE_ORDER, CurvePoint, point_to_bytes


class Transcript:
    """Running hash of the public proof inputs."""

    def __init__(self, protocol_label: bytes, hasher: Optional[HashProvider] = None):
        self.hasher = hasher or Keccak256Hasher()
        self._state = self.hasher.digest(b"privutxo.transcript" + protocol_label)

    def _absorb(self, label: bytes, data: bytes) -> None:
        self._state = self.hasher.digest(
            self._state
            + len(label).to_bytes(2, "big")
            + label
            + len(data).to_bytes(4, "big")
            + data
        )

    def append_bytes(self, label: bytes, data: bytes) -> "Transcript":
        self._absorb(label, data)
        return self

    def append_point(self, label: bytes, point: CurvePoint) -> "Transcript":
        self._absorb(label, point_to_bytes(point))
        return self

    def append_scalar(self, label: bytes, value: int) -> "Transcript":
        self._absorb(label, (value % CURVE_ORDER).to_bytes(32, "big"))
        return self

    def append_int(self, label: bytes, value: int) -> "Transcript":
        """Public integers (bounds, counts); may be wider than a scalar."""
        width = max(1, (value.bit_length() + 7) // 8)
        self._absorb(label, value.to_bytes(width, "big", signed=False))
        return self

    def challenge_scalar(self, label: bytes) -> int:
        digest = self.hasher.digest(self._state + b"challenge" + label)
        self._absorb(b"challenge:" + label, digest)
        return int.from_bytes(digest, "big") % CURVE_ORDER

    def fork(self) -> "Transcript":
        """Independent copy sharing the absorbed history."""
        clone = Transcript.__new__(Transcript)
        clone.hasher = self.hasher
        clone._state = self._state
        return clone
