"""
Input Validation - Sanitization of external inputs.

Provides validation for all values entering the treasury surface to prevent:
- Malformed account addresses
- Negative or oversized amounts
- Invalid format attacks
- Resource exhaustion on bulk operations
"""

from typing import Any, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

MAX_ADDRESS_SIZE = 20
MAX_ARRAY_LENGTH = 256

# Amounts follow 256-bit unsigned integer bounds
MIN_AMOUNT = 0
MAX_AMOUNT = 2**256 - 1


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


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate an account address."""
    return validate_bytes(address, name, expected_length=MAX_ADDRESS_SIZE)


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
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
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a token amount."""
    return validate_integer(amount, name, MIN_AMOUNT, MAX_AMOUNT)


def validate_array(
    data: Any,
    name: str,
    max_length: int = MAX_ARRAY_LENGTH,
) -> Tuple[bool, str]:
    """
    Validate array/list input.

    Args:
        data: Data to validate
        name: Field name for errors
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (list, tuple)):
        return False, f"{name} must be list/tuple, got {type(data).__name__}"

    if len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_bytes",
    "validate_address",
    "validate_integer",
    "validate_amount",
    "validate_array",
    "MAX_ADDRESS_SIZE",
    "MAX_ARRAY_LENGTH",
    "MIN_AMOUNT",
    "MAX_AMOUNT",
]
