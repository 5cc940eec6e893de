"""
Cryptographic primitives for privutxo.

This module provides:
- Hashing functions (Keccak-256, SHA-256)
- Key generation and Ethereum-style address derivation
- Recoverable ECDSA signatures on secp256k1 (used by signers/attestations)
- Re-exports of the BN254 field and curve arithmetic in crypto.curve

Design Notes:
-------------
Two curves are in play and they must not be confused:

* secp256k1 identifies owners. Addresses, message signatures and
  attestation signatures live here, the same way an EOA works.
* BN254 (alt_bn128) G1 carries the Pedersen commitments. Its base field
  and group order are the ones EVM precompiles understand.

Keccak-256 is the default digest for nullifiers, identifiers and
Fiat-Shamir challenges; SHA-256 is kept as an alternative hash provider.
"""

import hashlib
import json
import secrets
from dataclasses import dataclass
from typing import Any, Optional

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 group order
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """Compute SHA-256 hash."""
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: nullifiers, UTXO ids, addresses, Fiat-Shamir challenges.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Encoding Helpers
# =============================================================================


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def int_to_bytes32(value: int) -> bytes:
    """Big-endian 32-byte encoding of a non-negative integer."""
    return value.to_bytes(32, byteorder="big")


def bytes32_to_int(data: bytes) -> int:
    return int.from_bytes(data, byteorder="big")


def is_valid_address(address: Any) -> bool:
    """Check if value is a 0x-prefixed 20-byte hex address."""
    if not isinstance(address, str):
        return False
    if not address.startswith("0x") or len(address) != 42:
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False


def normalize_address(address: str) -> str:
    """Lower-case an address after validating its shape."""
    if not is_valid_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return address.lower()


def address_to_bytes(address: str) -> bytes:
    """20-byte form of a hex address."""
    return hex_to_bytes(normalize_address(address))


def canonical_json(value: Any) -> bytes:
    """Deterministic JSON encoding (sorted keys, no whitespace)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str).encode()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes
    public_key: bytes

    @property
    def address(self) -> str:
        """Ethereum-style address: last 20 bytes of keccak256(public_key)."""
        return public_key_to_address(self.public_key)

    def __repr__(self) -> str:
        return f"KeyPair(address={self.address})"


def generate_keypair() -> KeyPair:
    """Generate a new random keypair."""
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    x, y = secp256k1.privtopub(private_key)
    return x.to_bytes(32, byteorder="big") + y.to_bytes(32, byteorder="big")


def public_key_to_address(public_key: bytes) -> str:
    if len(public_key) != 64:
        raise ValueError("Public key must be 64 bytes")
    return bytes_to_hex(keccak256(public_key)[-20:])


# =============================================================================
# Recoverable Signatures (ECDSA)
# =============================================================================


def sign_recoverable(message_hash: bytes, private_key: bytes) -> bytes:
    """
    Sign a 32-byte hash, returning a 65-byte r || s || v signature.

    s is normalized to the lower half of the order (EIP-2); v is flipped
    accordingly so recovery still yields the signer.
    """
    if len(message_hash) != 32:
        raise ValueError("Message hash must be 32 bytes")
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    v, r, s = secp256k1.ecdsa_raw_sign(message_hash, private_key)
    if s > SECP256K1_ORDER // 2:
        s = SECP256K1_ORDER - s
        v = 55 - v  # 27 <-> 28

    return r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([v])


def recover_address(message_hash: bytes, signature: bytes) -> Optional[str]:
    """
    Recover the signer address from a 65-byte signature.

    Returns None for anything malformed instead of raising.
    """
    if len(message_hash) != 32 or len(signature) != 65:
        return None

    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    if v < 27:
        v += 27
    if v not in (27, 28):
        return None
    if not (1 <= r < SECP256K1_ORDER and 1 <= s < SECP256K1_ORDER):
        return None

    try:
        x, y = secp256k1.ecdsa_raw_recover(message_hash, (v, r, s))
    except Exception:
        return None
    public_key = x.to_bytes(32, "big") + y.to_bytes(32, "big")
    return public_key_to_address(public_key)


def personal_message_hash(message: bytes) -> bytes:
    """keccak256 of the '\\x19Ethereum Signed Message' envelope."""
    prefix = b"\x19Ethereum Signed Message:\n" + str(len(message)).encode()
    return keccak256(prefix + message)


def typed_data_hash(domain: dict, types: dict, value: dict) -> bytes:
    """
    Digest for structured data signing.

    keccak256(0x1901 || keccak(domain) || keccak(types, value)) over
    canonical JSON. This keeps the EIP-712 envelope shape without its ABI
    encoding rules.
    """
    domain_separator = keccak256(canonical_json(domain))
    struct_hash = keccak256(canonical_json({"types": types, "value": value}))
    return keccak256(b"\x19\x01" + domain_separator + struct_hash)


from privutxo.crypto.curve import (  # noqa: E402
    FIELD_MODULUS,
    CURVE_ORDER,
    CURVE_B,
    CurvePoint,
    IDENTITY,
    field_add,
    field_sub,
    field_mul,
    field_neg,
    field_inv,
    field_sqrt,
    is_on_curve,
    add_points,
    double_point,
    negate_point,
    subtract_points,
    scalar_multiply,
    point_to_bytes,
    point_from_bytes,
    point_to_hex,
    point_from_hex,
)
