"""
LocalSigner - in-process secp256k1 signer.

Stands in for a wallet: holds a private key and signs personal messages
and typed data with recoverable ECDSA signatures. A signer can be told to
refuse, which is how a user rejecting a wallet prompt looks to the
service.
"""

from typing import Any, Dict, Optional, Union

from privutxo.core.errors import AuthorizationFailure
from privutxo.core.interfaces import Signer
from privutxo.crypto import (
    KeyPair,
    generate_keypair,
    hex_to_bytes,
    personal_message_hash,
    private_key_to_public_key,
    sign_recoverable,
    typed_data_hash,
)
from privutxo.utils.logger import get_logger, short_hex

logger = get_logger("signer")


class LocalSigner(Signer):
    """
    Signer backed by a local keypair.

    Attributes:
        keypair: secp256k1 keypair
        approve: When False every signing request is refused
    """

    def __init__(self, keypair: Optional[KeyPair] = None, approve: bool = True):
        self.keypair = keypair or generate_keypair()
        self.approve = approve
        self.signatures_issued = 0

    @classmethod
    def from_private_key(cls, private_key: Union[str, bytes], approve: bool = True) -> "LocalSigner":
        if isinstance(private_key, str):
            private_key = hex_to_bytes(private_key)
        return cls(KeyPair(private_key, private_key_to_public_key(private_key)), approve=approve)

    def get_address(self) -> str:
        return self.keypair.address

    def _sign(self, digest: bytes) -> bytes:
        if not self.approve:
            logger.info(f"Signer {short_hex(self.get_address())} refused to sign")
            raise AuthorizationFailure("Signature request rejected")
        signature = sign_recoverable(digest, self.keypair.private_key)
        self.signatures_issued += 1
        return signature

    def sign_message(self, data: bytes) -> bytes:
        return self._sign(personal_message_hash(data))

    def sign_typed_data(self, domain: Dict[str, Any], types: Dict[str, Any], value: Dict[str, Any]) -> bytes:
        return self._sign(typed_data_hash(domain, types, value))

    def __repr__(self) -> str:
        return f"LocalSigner(address={self.get_address()})"
