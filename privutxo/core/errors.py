"""
Error taxonomy and operation results.

Inside the cryptographic layers every failure is an exception carrying an
ErrorKind. At the service boundary expected failures are converted into an
OperationResult instead of propagating; only InvariantViolation (a bug in
the engine itself) is allowed to escape.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class ErrorKind(str, Enum):
    """Discriminator for every expected failure mode."""

    INVALID_AMOUNT = "InvalidAmount"
    INVALID_ADDRESS = "InvalidAddress"
    INVALID_SCALAR = "InvalidScalar"
    INVALID_POINT = "InvalidPoint"
    DIVISION_BY_ZERO = "DivisionByZero"
    INVERSE_VERIFICATION_FAILED = "InverseVerificationFailed"
    OUT_OF_RANGE = "OutOfRange"
    INVALID_BLINDING = "InvalidBlinding"
    VALUE_CONSERVATION_VIOLATION = "ValueConservationViolation"
    UTXO_NOT_FOUND = "UTXONotFound"
    UTXO_ALREADY_SPENT = "UTXOAlreadySpent"
    UTXO_BUSY = "UTXOBusy"
    CORRUPTED_COMMITMENT = "CorruptedCommitment"
    NULLIFIER_ALREADY_USED = "NullifierAlreadyUsed"
    AUTHORIZATION_FAILURE = "AuthorizationFailure"
    INVALID_PROOF = "InvalidProof"
    VERIFIER_UNAVAILABLE = "VerifierUnavailable"

    @property
    def recoverable(self) -> bool:
        """
        Whether the caller can simply correct its input and retry.

        AuthorizationFailure and NullifierAlreadyUsed need outside
        intervention (a working signer, or a sync() to learn what the
        verifier already accepted). VerifierUnavailable is retryable only
        after checking nullifier usage, so it is not counted either.
        """
        return self not in (
            ErrorKind.AUTHORIZATION_FAILURE,
            ErrorKind.NULLIFIER_ALREADY_USED,
            ErrorKind.VERIFIER_UNAVAILABLE,
        )


class PrivUTXOError(Exception):
    """Base class for expected, taxonomy-tagged failures."""

    kind: ErrorKind = ErrorKind.INVALID_AMOUNT

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value


class InvalidAmount(PrivUTXOError):
    kind = ErrorKind.INVALID_AMOUNT


class InvalidAddress(PrivUTXOError):
    kind = ErrorKind.INVALID_ADDRESS


class InvalidScalar(PrivUTXOError):
    kind = ErrorKind.INVALID_SCALAR


class InvalidPoint(PrivUTXOError):
    kind = ErrorKind.INVALID_POINT


class DivisionByZero(PrivUTXOError):
    kind = ErrorKind.DIVISION_BY_ZERO


class InverseVerificationFailed(PrivUTXOError):
    kind = ErrorKind.INVERSE_VERIFICATION_FAILED


class OutOfRange(PrivUTXOError):
    kind = ErrorKind.OUT_OF_RANGE


class InvalidBlinding(PrivUTXOError):
    kind = ErrorKind.INVALID_BLINDING


class ValueConservationViolation(PrivUTXOError):
    kind = ErrorKind.VALUE_CONSERVATION_VIOLATION


class UTXONotFound(PrivUTXOError):
    kind = ErrorKind.UTXO_NOT_FOUND


class UTXOAlreadySpent(PrivUTXOError):
    kind = ErrorKind.UTXO_ALREADY_SPENT


class UTXOBusy(PrivUTXOError):
    kind = ErrorKind.UTXO_BUSY


class CorruptedCommitment(PrivUTXOError):
    kind = ErrorKind.CORRUPTED_COMMITMENT


class NullifierAlreadyUsed(PrivUTXOError):
    kind = ErrorKind.NULLIFIER_ALREADY_USED


class AuthorizationFailure(PrivUTXOError):
    kind = ErrorKind.AUTHORIZATION_FAILURE


class InvalidProof(PrivUTXOError):
    kind = ErrorKind.INVALID_PROOF


class VerifierUnavailable(PrivUTXOError):
    kind = ErrorKind.VERIFIER_UNAVAILABLE


class InvariantViolation(RuntimeError):
    """
    The engine broke one of its own guarantees.

    Not part of the taxonomy: this is a bug, never a user error, and it
    must abort the operation loudly.
    """


# =============================================================================
# Operation Result
# =============================================================================


@dataclass
class OperationResult:
    """
    Discriminated result of a public service operation.

    Attributes:
        success: Whether the operation was accepted
        error: Failure kind when success is False
        message: Human-readable detail
        utxos: UTXOs created by the operation
        receipt: Verifier receipt on success
        revealed_value: Value disclosed to the verifier (withdraw only)
    """
    success: bool
    error: Optional[ErrorKind] = None
    message: str = ""
    utxos: List[Any] = field(default_factory=list)
    receipt: Optional[Any] = None
    revealed_value: Optional[int] = None

    @classmethod
    def ok(cls, message: str = "", **kwargs) -> "OperationResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str = "") -> "OperationResult":
        return cls(success=False, error=kind, message=message or kind.value)

    @classmethod
    def from_error(cls, exc: PrivUTXOError) -> "OperationResult":
        return cls.fail(exc.kind, exc.message)

    def __bool__(self) -> bool:
        return self.success
