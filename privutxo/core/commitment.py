"""
Pedersen commitments over BN254 G1.

Conceptual Background:
---------------------
A Pedersen commitment to value v with blinding factor r is

    C = v*G + r*H

where G and H are independent generators (nobody knows log_G(H)).

- Hiding: for uniformly random r, C is a uniformly random group element
  and reveals nothing about v.
- Binding: opening C to two different (v, r) pairs would reveal log_G(H).
- Homomorphic: C(v1, r1) + C(v2, r2) = C(v1 + v2, r1 + r2). Conservation
  proofs rely on this: if the values balance, the difference of input and
  output commitments is a pure multiple of H.

Generators:
----------
G is the standard BN254 generator (1, 2). H is produced by
try-and-increment hashing of a fixed tag onto the curve, so its discrete
log relative to G is unknown to everyone. BN254 G1 has cofactor 1, so any
curve point found this way is in the prime-order group.
"""

from typing import Iterable, Optional

from privutxo.core.errors import (
    InvalidPoint,
    InvalidScalar,
    InvariantViolation,
)
from privutxo.crypto import keccak256
from privutxo.crypto.curve import (
    CURVE_B,
    CURVE_ORDER,
    FIELD_MODULUS,
    IDENTITY,
    CurvePoint,
    add_points,
    field_add,
    field_mul,
    field_sqrt,
    is_on_curve,
    scalar_multiply,
    subtract_points,
)
from privutxo.utils.logger import get_logger

logger = get_logger("commitment")


# =============================================================================
# Generators
# =============================================================================

H_GENERATOR_TAG = b"privutxo.pedersen.H"


def hash_to_curve(tag: bytes) -> CurvePoint:
    """
    Deterministically map a tag to a curve point (try-and-increment).

    x = keccak256(tag || counter) mod p for counter = 0, 1, ... until
    x^3 + 3 is a square; the even root is taken as y.
    """
    counter = 0
    while True:
        digest = keccak256(tag + counter.to_bytes(4, "big"))
        x = int.from_bytes(digest, "big") % FIELD_MODULUS
        rhs = field_add(field_mul(field_mul(x, x), x), CURVE_B)
        y = field_sqrt(rhs)
        if y is not None and y != 0:
            if y % 2 == 1:
                y = FIELD_MODULUS - y
            return CurvePoint(x, y)
        counter += 1


G = CurvePoint(1, 2)
H = hash_to_curve(H_GENERATOR_TAG)

if not (is_on_curve(G) and is_on_curve(H)) or G == H:
    raise InvariantViolation("Pedersen generators failed validation")


# =============================================================================
# Commitment Engine
# =============================================================================


class CommitmentEngine:
    """
    Creates and checks Pedersen commitments.

    Stateless apart from the generator pair, which can be overridden for
    tests that need a second, independent commitment space.
    """

    def __init__(self, g: CurvePoint = G, h: CurvePoint = H):
        if not is_on_curve(g) or not is_on_curve(h) or g.is_identity or h.is_identity:
            raise InvalidPoint("Commitment generators must be non-identity curve points")
        self.g = g
        self.h = h

    # =========================================================================
    # Create / Verify
    # =========================================================================

    def create_commitment(self, value: int, blinding: int) -> CurvePoint:
        """
        Compute value*G + blinding*H.

        Raises:
            InvalidScalar: value negative, or blinding outside [0, n)
            InvariantViolation: the result is off-curve (engine bug)
        """
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InvalidScalar(f"Commitment value must be a non-negative integer, got {value!r}")
        if not isinstance(blinding, int) or isinstance(blinding, bool) or not (0 <= blinding < CURVE_ORDER):
            raise InvalidScalar("Blinding factor must be in [0, n)")

        commitment = add_points(
            scalar_multiply(self.g, value % CURVE_ORDER),
            scalar_multiply(self.h, blinding),
        )
        if not is_on_curve(commitment):
            raise InvariantViolation("Freshly created commitment is not on the curve")
        return commitment

    def verify_commitment(self, commitment: CurvePoint, value: int, blinding: int) -> bool:
        """
        Check that commitment opens to (value, blinding).

        Never raises: malformed, off-curve or out-of-field inputs are
        simply not valid openings.
        """
        try:
            if not is_on_curve(commitment):
                return False
            expected = self.create_commitment(value, blinding)
        except (InvalidScalar, InvalidPoint, TypeError, AttributeError):
            return False
        return expected == commitment

    # =========================================================================
    # Homomorphic Helpers
    # =========================================================================

    def commit_to_h(self, blinding: int) -> CurvePoint:
        """blinding*H, i.e. a commitment to zero."""
        return scalar_multiply(self.h, blinding)

    def value_point(self, value: int) -> CurvePoint:
        """value*G with no blinding (public offsets in range proofs)."""
        return scalar_multiply(self.g, value)

    def commit_bit(self, bit: int, blinding: int) -> CurvePoint:
        if bit not in (0, 1):
            raise InvalidScalar(f"Bit must be 0 or 1, got {bit!r}")
        return self.create_commitment(bit, blinding)

    @staticmethod
    def scalar_mul(point: CurvePoint, scalar: int) -> CurvePoint:
        return scalar_multiply(point, scalar)

    @staticmethod
    def add_commitments(commitments: Iterable[CurvePoint]) -> CurvePoint:
        total = IDENTITY
        for c in commitments:
            total = add_points(total, c)
        return total

    @staticmethod
    def subtract_commitments(a: CurvePoint, b: CurvePoint) -> CurvePoint:
        return subtract_points(a, b)

    def __repr__(self) -> str:
        return f"CommitmentEngine(G={self.g!r}, H={self.h!r})"


_default_engine: Optional[CommitmentEngine] = None


def default_commitment_engine() -> CommitmentEngine:
    """Process-wide engine over the standard generators."""
    global _default_engine
    if _default_engine is None:
        _default_engine = CommitmentEngine()
    return _default_engine


def create_commitment(value: int, blinding: int) -> CurvePoint:
    return default_commitment_engine().create_commitment(value, blinding)


def verify_commitment(commitment: CurvePoint, value: int, blinding: int) -> bool:
    return default_commitment_engine().verify_commitment(commitment, value, blinding)
