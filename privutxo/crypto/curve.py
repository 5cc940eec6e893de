"""
BN254 field and G1 curve arithmetic.

Curve: y^2 = x^3 + 3 over F_p (alt_bn128 / BN254, the curve behind the
EVM ecAdd/ecMul precompiles). Constants come from py_ecc so they are the
same numbers every other BN254 tool uses.

Representation:
--------------
Points are affine CurvePoint(x, y) values. The point at infinity is
represented as (0, 0); (0, 0) is not on the curve (0 != 3), so the
encoding is unambiguous.

All operations are total over well-formed inputs. The only failures are
the mathematically undefined inverse of zero and scalar multiplication of
an off-curve point.

Hardening note: scalar_multiply is plain double-and-add and leaks the
scalar's bit pattern through timing. Code exposed to adversarial timing
measurements should use a constant-time ladder instead.
"""

from dataclasses import dataclass
from typing import Optional

from py_ecc.bn128 import curve_order, field_modulus

from privutxo.core.errors import DivisionByZero, InvalidPoint, InverseVerificationFailed


# =============================================================================
# Constants
# =============================================================================

FIELD_MODULUS: int = field_modulus
CURVE_ORDER: int = curve_order
CURVE_B: int = 3

POINT_SIZE = 64  # x || y, 32 bytes each


# =============================================================================
# Field Arithmetic
# =============================================================================


def field_add(a: int, b: int) -> int:
    return (a + b) % FIELD_MODULUS


def field_sub(a: int, b: int) -> int:
    return (a - b) % FIELD_MODULUS


def field_mul(a: int, b: int) -> int:
    return (a * b) % FIELD_MODULUS


def field_neg(a: int) -> int:
    return (-a) % FIELD_MODULUS


def field_inv(a: int) -> int:
    """
    Modular inverse via the extended Euclidean algorithm.

    Raises:
        DivisionByZero: if a = 0 (mod p)
        InverseVerificationFailed: if a * inv != 1 (mod p)
    """
    a = a % FIELD_MODULUS
    if a == 0:
        raise DivisionByZero("Cannot invert 0 in F_p")

    old_r, r = a, FIELD_MODULUS
    old_s, s = 1, 0
    while r != 0:
        q = old_r // r
        old_r, r = r, old_r - q * r
        old_s, s = s, old_s - q * s

    inv = old_s % FIELD_MODULUS
    if old_r != 1 or (a * inv) % FIELD_MODULUS != 1:
        raise InverseVerificationFailed(f"Inverse check failed for {hex(a)}")
    return inv


def field_sqrt(a: int) -> Optional[int]:
    """
    Square root in F_p, or None for a non-residue.

    p = 3 (mod 4), so a^((p+1)/4) is a root whenever one exists.
    """
    a = a % FIELD_MODULUS
    root = pow(a, (FIELD_MODULUS + 1) // 4, FIELD_MODULUS)
    if (root * root) % FIELD_MODULUS != a:
        return None
    return root


# =============================================================================
# Curve Points
# =============================================================================


@dataclass(frozen=True)
class CurvePoint:
    """Affine point on BN254 G1; (0, 0) is the identity."""
    x: int
    y: int

    @property
    def is_identity(self) -> bool:
        return self.x == 0 and self.y == 0

    def __repr__(self) -> str:
        if self.is_identity:
            return "CurvePoint(identity)"
        return f"CurvePoint(x={hex(self.x)[:12]}..., y={hex(self.y)[:12]}...)"


IDENTITY = CurvePoint(0, 0)


def is_on_curve(point: CurvePoint) -> bool:
    """Coordinate range check plus y^2 = x^3 + 3. The identity is valid."""
    if not isinstance(point, CurvePoint):
        return False
    if not isinstance(point.x, int) or not isinstance(point.y, int):
        return False
    if point.is_identity:
        return True
    if not (0 <= point.x < FIELD_MODULUS and 0 <= point.y < FIELD_MODULUS):
        return False
    lhs = field_mul(point.y, point.y)
    rhs = field_add(field_mul(field_mul(point.x, point.x), point.x), CURVE_B)
    return lhs == rhs


def double_point(point: CurvePoint) -> CurvePoint:
    """Tangent-line doubling. Points with y = 0 double to the identity."""
    if point.is_identity or point.y == 0:
        return IDENTITY

    # lambda = 3x^2 / 2y
    numerator = field_mul(3, field_mul(point.x, point.x))
    slope = field_mul(numerator, field_inv(field_mul(2, point.y)))

    x3 = field_sub(field_mul(slope, slope), field_mul(2, point.x))
    y3 = field_sub(field_mul(slope, field_sub(point.x, x3)), point.y)
    return CurvePoint(x3, y3)


def add_points(p1: CurvePoint, p2: CurvePoint) -> CurvePoint:
    """Chord addition with identity, doubling and inverse-pair cases."""
    if p1.is_identity:
        return p2
    if p2.is_identity:
        return p1

    if p1.x == p2.x:
        if p1.y == p2.y:
            return double_point(p1)
        # P + (-P)
        return IDENTITY

    slope = field_mul(field_sub(p2.y, p1.y), field_inv(field_sub(p2.x, p1.x)))
    x3 = field_sub(field_sub(field_mul(slope, slope), p1.x), p2.x)
    y3 = field_sub(field_mul(slope, field_sub(p1.x, x3)), p1.y)
    return CurvePoint(x3, y3)


def negate_point(point: CurvePoint) -> CurvePoint:
    if point.is_identity:
        return IDENTITY
    return CurvePoint(point.x, field_neg(point.y))


def subtract_points(p1: CurvePoint, p2: CurvePoint) -> CurvePoint:
    return add_points(p1, negate_point(p2))


def scalar_multiply(point: CurvePoint, scalar: int) -> CurvePoint:
    """
    Double-and-add scalar multiplication.

    The scalar is reduced into [0, n) first, so negative scalars multiply
    by their additive inverse.

    Raises:
        InvalidPoint: if point is not on the curve
    """
    if not is_on_curve(point):
        raise InvalidPoint(f"Point not on curve: {point!r}")

    k = scalar % CURVE_ORDER
    if k == 0 or point.is_identity:
        return IDENTITY

    result = IDENTITY
    addend = point
    while k:
        if k & 1:
            result = add_points(result, addend)
        addend = double_point(addend)
        k >>= 1
    return result


# =============================================================================
# Encoding
# =============================================================================


def point_to_bytes(point: CurvePoint) -> bytes:
    """64-byte x || y encoding (identity encodes as 64 zero bytes)."""
    return point.x.to_bytes(32, "big") + point.y.to_bytes(32, "big")


def point_from_bytes(data: bytes) -> CurvePoint:
    """
    Decode a 64-byte x || y encoding.

    Only the length is checked here; curve membership is the caller's
    business (see is_on_curve).
    """
    if len(data) != POINT_SIZE:
        raise InvalidPoint(f"Point encoding must be {POINT_SIZE} bytes, got {len(data)}")
    return CurvePoint(int.from_bytes(data[:32], "big"), int.from_bytes(data[32:], "big"))


def point_to_hex(point: CurvePoint) -> str:
    return "0x" + point_to_bytes(point).hex()


def point_from_hex(hex_str: str) -> CurvePoint:
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    try:
        data = bytes.fromhex(hex_str)
    except ValueError as e:
        raise InvalidPoint(f"Malformed point hex: {e}") from e
    return point_from_bytes(data)
