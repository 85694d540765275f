"""
Hashing and address helpers for the treasury ledger.

Accounts are 20-byte addresses (Ethereum-style). This module provides:
- Keccak-256 hashing
- Deterministic address derivation from labels (demo / test accounts)
- EIP-55 checksum encoding for display
"""

from Crypto.Hash import keccak


ADDRESS_SIZE = 20


# =============================================================================
# Hashing
# =============================================================================


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: address derivation, checksum encoding.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Addresses
# =============================================================================


def address_from_label(label: str) -> bytes:
    """
    Derive a deterministic address from a human-readable label.

    address = keccak256(label)[-20:]
    """
    return keccak256(label.encode("utf-8"))[-ADDRESS_SIZE:]


def to_checksum_address(address: bytes) -> str:
    """
    Encode an address with EIP-55 mixed-case checksum.

    Args:
        address: 20-byte address

    Returns:
        "0x"-prefixed checksummed hex string
    """
    hex_addr = address.hex()
    digest = keccak256(hex_addr.encode("ascii")).hex()
    chars = [
        c.upper() if c.isalpha() and int(digest[i], 16) >= 8 else c
        for i, c in enumerate(hex_addr)
    ]
    return "0x" + "".join(chars)


def short_address(address: bytes) -> str:
    """Shortened checksummed form for log lines."""
    full = to_checksum_address(address)
    return f"{full[:8]}...{full[-4:]}"


# =============================================================================
# Utility Functions
# =============================================================================


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def is_valid_address(address: str) -> bool:
    """Check if string is a valid address format."""
    if not address.startswith("0x"):
        return False
    if len(address) != 42:  # 0x + 40 hex chars
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False


def parse_address(value: str) -> bytes:
    """
    Parse an address given either as 0x-hex or as a label.

    Labels (anything not shaped like an address) go through
    address_from_label, so "alice" always maps to the same account.
    """
    if is_valid_address(value):
        return hex_to_bytes(value)
    return address_from_label(value)
