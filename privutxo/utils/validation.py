"""
Input Validation - checks on everything that enters the service.

Every validator returns (is_valid, error_message), so callers decide
which ErrorKind a failure maps to. Used by the service for preconditions
and by the CLI for user input.
"""

from typing import Any, List, Optional, Tuple

from privutxo.crypto import is_valid_address

# =============================================================================
# Constants
# =============================================================================

MAX_SIGNATURE_SIZE = 65
MAX_SPLIT_OUTPUTS = 16


# =============================================================================
# Validation Functions
# =============================================================================


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate bytes input.

    Args:
        data: Data to validate
        name: Field name for error messages
        expected_length: Exact expected length
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (bytes, bytearray)):
        return False, f"{name} must be bytes, got {type(data).__name__}"

    if expected_length is not None and len(data) != expected_length:
        return False, f"{name} must be {expected_length} bytes, got {len(data)}"

    if max_length is not None and len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_signature(signature: Any) -> Tuple[bool, str]:
    """Validate a signature."""
    return validate_bytes(signature, "signature", expected_length=MAX_SIGNATURE_SIZE)


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a 0x-prefixed 20-byte hex address."""
    if not isinstance(address, str):
        return False, f"{name} must be str, got {type(address).__name__}"
    if not is_valid_address(address):
        return False, f"{name} is not a 0x-prefixed 20-byte hex address"
    return True, ""


def validate_integer(
    value: Any,
    name: str,
    min_val: int,
    max_val: int,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass; True is not an amount
    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""

def validate_amount(amount: Any, max_amount: int, name: str = "amount") -> Tuple[bool, str]:
    """Validate a strictly positive token amount."""
    return validate_integer(amount, name, 1, max_amount)


def validate_output_values(values: Any, max_amount: int) -> Tuple[bool, str]:
    """Validate the value list of a split."""
    if not isinstance(values, (list, tuple)):
        return False, f"output_values must be list/tuple, got {type(values).__name__}"
    if not values:
        return False, "output_values must not be empty"
    if len(values) > MAX_SPLIT_OUTPUTS:
        return False, f"output_values exceeds max length {MAX_SPLIT_OUTPUTS}, got {len(values)}"
    for i, value in enumerate(values):
        valid, err = validate_amount(value, max_amount, f"output_values[{i}]")
        if not valid:
            return False, err
    return True, ""


def validate_owners(owners: List[Any], expected_count: int) -> Tuple[bool, str]:
    """Validate the owner list of a split."""
    if not isinstance(owners, (list, tuple)):
        return False, f"output_owners must be list/tuple, got {type(owners).__name__}"
    if len(owners) != expected_count:
        return False, f"{len(owners)} owners for {expected_count} outputs"
    for i, owner in enumerate(owners):
        valid, err = validate_address(owner, f"output_owners[{i}]")
        if not valid:
            return False, err
    return True, ""


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_bytes",
    "validate_signature",
    "validate_address",
    "validate_integer",
    "validate_amount",
    "validate_output_values",
    "validate_owners",
    "MAX_SIGNATURE_SIZE",
    "MAX_SPLIT_OUTPUTS",
]
