"""
Signed attestations for private UTXO operations.

Every operation submitted to a verifier carries an attestation: the
principal's signature over a digest of the operation's public data. The
verifier recomputes the digest from the bundle it received and recovers
the signer, so a bundle cannot be altered in flight or submitted on
someone else's behalf.

Data hashes (keccak256 over the concatenated public fields):

    DEPOSIT:  token(20) || commitment(64) || nullifier(32) || amount(32) || owner(20)
    SPLIT:    input_nullifier(32) || per output: commitment(64) || nullifier(32) || owner(20)
    TRANSFER: input_nullifier(32) || commitment(64) || nullifier(32) || recipient(20)
    WITHDRAW: nullifier(32) || amount(32) || token(20) || recipient(20)

The signed message is typed data:

    domain = {name, version, chainId, verifyingContract}
    value  = {operation, dataHash, nonce, timestamp}
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from privutxo.core.errors import AuthorizationFailure
from privutxo.crypto import (
    address_to_bytes,
    bytes_to_hex,
    hex_to_bytes,
    int_to_bytes32,
    keccak256,
    recover_address,
    typed_data_hash,
)
from privutxo.crypto.curve import CurvePoint, point_to_bytes
from privutxo.utils.logger import get_logger, short_hex
from privutxo.utils.validation import validate_signature

logger = get_logger("attestation")

OPERATIONS = ("DEPOSIT", "SPLIT", "TRANSFER", "WITHDRAW")

ATTESTATION_TYPES = {
    "Attestation": [
        {"name": "operation", "type": "string"},
        {"name": "dataHash", "type": "bytes32"},
        {"name": "nonce", "type": "bytes32"},
        {"name": "timestamp", "type": "uint256"},
    ]
}


# =============================================================================
# Data Hashes
# =============================================================================


def deposit_data_hash(
    token_address: str,
    commitment: CurvePoint,
    nullifier: bytes,
    amount: int,
    owner: str,
) -> bytes:
    return keccak256(
        address_to_bytes(token_address)
        + point_to_bytes(commitment)
        + nullifier
        + int_to_bytes32(amount)
        + address_to_bytes(owner)
    )


def split_data_hash(
    input_nullifier: bytes,
    output_commitments: Sequence[CurvePoint],
    output_nullifiers: Sequence[bytes],
    output_owners: Sequence[str],
) -> bytes:
    data = input_nullifier
    for commitment, nullifier, owner in zip(output_commitments, output_nullifiers, output_owners):
        data += point_to_bytes(commitment) + nullifier + address_to_bytes(owner)
    return keccak256(data)


def transfer_data_hash(
    input_nullifier: bytes,
    output_commitment: CurvePoint,
    output_nullifier: bytes,
    recipient: str,
) -> bytes:
    return keccak256(
        input_nullifier
        + point_to_bytes(output_commitment)
        + output_nullifier
        + address_to_bytes(recipient)
    )


def withdraw_data_hash(nullifier: bytes, amount: int, token_address: str, recipient: str) -> bytes:
    return keccak256(
        nullifier
        + int_to_bytes32(amount)
        + address_to_bytes(token_address)
        + address_to_bytes(recipient)
    )


# =============================================================================
# Attestation
# =============================================================================


@dataclass(frozen=True)
class Attestation:
    """
    A signed statement about one operation.

    Attributes:
        operation: DEPOSIT, SPLIT, TRANSFER or WITHDRAW
        data_hash: 32-byte digest of the operation's public data
        nonce: 32-byte unique value
        timestamp: Unix seconds at signing time
        signer: Address that signed
        signature: 65-byte r || s || v
    """
    operation: str
    data_hash: bytes
    nonce: bytes
    timestamp: int
    signer: str
    signature: bytes

    def typed_value(self) -> Dict[str, Any]:
        return attestation_value(self.operation, self.data_hash, self.nonce, self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "data_hash": bytes_to_hex(self.data_hash),
            "nonce": bytes_to_hex(self.nonce),
            "timestamp": self.timestamp,
            "signer": self.signer,
            "signature": bytes_to_hex(self.signature),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attestation":
        return cls(
            operation=data["operation"],
            data_hash=hex_to_bytes(data["data_hash"]),
            nonce=hex_to_bytes(data["nonce"]),
            timestamp=int(data["timestamp"]),
            signer=data["signer"],
            signature=hex_to_bytes(data["signature"]),
        )


def attestation_value(operation: str, data_hash: bytes, nonce: bytes, timestamp: int) -> Dict[str, Any]:
    return {
        "operation": operation,
        "dataHash": bytes_to_hex(data_hash),
        "nonce": bytes_to_hex(nonce),
        "timestamp": timestamp,
    }


def create_attestation(
    signer,
    operation: str,
    data_hash: bytes,
    nonce: bytes,
    domain: Dict[str, Any],
    timestamp: Optional[int] = None,
) -> Attestation:
    """
    Ask signer to sign an attestation.

    Raises:
        AuthorizationFailure: no signer, unknown operation, or the signer
            refused or produced something unusable
    """
    if signer is None:
        raise AuthorizationFailure("No signer available")
    if operation not in OPERATIONS:
        raise AuthorizationFailure(f"Unknown operation {operation!r}")

    timestamp = int(time.time()) if timestamp is None else timestamp
    value = attestation_value(operation, data_hash, nonce, timestamp)
    signature = signer.sign_typed_data(domain, ATTESTATION_TYPES, value)
    valid, err = validate_signature(signature)
    if not valid:
        raise AuthorizationFailure(f"Signer returned a malformed signature: {err}")

    attestation = Attestation(
        operation=operation,
        data_hash=data_hash,
        nonce=nonce,
        timestamp=timestamp,
        signer=signer.get_address().lower(),
        signature=bytes(signature),
    )
    logger.debug(f"{operation} attestation signed by {short_hex(attestation.signer)}")
    return attestation


def verify_attestation(
    attestation: Attestation,
    domain: Dict[str, Any],
    expected_signer: Optional[str] = None,
    expected_data_hash: Optional[bytes] = None,
) -> bool:
    """
    Recover the signer and compare. Never raises.

    Args:
        attestation: The attestation to check
        domain: Typed-data domain it must have been signed under
        expected_signer: Address that must have signed (defaults to
            attestation.signer)
        expected_data_hash: Digest recomputed from the bundle
    """
    try:
        if attestation.operation not in OPERATIONS:
            return False
        if expected_data_hash is not None and attestation.data_hash != expected_data_hash:
            return False
        digest = typed_data_hash(domain, ATTESTATION_TYPES, attestation.typed_value())
        recovered = recover_address(digest, attestation.signature)
    except (ValueError, TypeError, AttributeError) as e:
        logger.debug(f"Attestation rejected: {e}")
        return False

    if recovered is None:
        return False
    signer = (expected_signer or attestation.signer).lower()
    return recovered.lower() == signer and attestation.signer.lower() == signer
