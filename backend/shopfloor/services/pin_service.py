# Overview: Service-layer operations for PIN hashing and strength checks.

"""
PIN Hashing Service

WHY: Employee and admin PINs are short, so the stored form must be slow to
brute force offline. bcrypt is adaptive (cost factor) and salts every hash
with fresh random bytes, so two employees with the same PIN get different
hashes.

SECURITY NOTES:
- verify_pin() fails closed: a malformed or empty hash is a mismatch, never
  an exception that skips the check.
- bcrypt.checkpw() compares in constant time.
- Nothing here logs or returns the plaintext PIN.
- Cost factor comes from PIN_HASH_ROUNDS (default 12; tests lower it).
"""

from __future__ import annotations

import bcrypt
from flask import current_app, has_app_context


DEFAULT_ROUNDS = 12
DEFAULT_MIN_PIN_LENGTH = 6
MAX_PIN_LENGTH = 64

# Patterns nobody should be allowed to pick. Matched case-insensitively,
# either exactly or as a prefix of the chosen PIN.
WEAK_PIN_PATTERNS = (
    "000000", "111111", "222222", "333333", "444444",
    "555555", "666666", "777777", "888888", "999999",
    "123456", "654321", "012345", "543210",
    "123123", "111222", "112233", "121212",
    "abcdef", "qwerty", "password", "changeme",
)


class PinValidationError(ValueError):
    """Raised when a new PIN doesn't meet strength requirements."""
    pass


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("PIN_HASH_ROUNDS", DEFAULT_ROUNDS))
    return DEFAULT_ROUNDS


def hash_pin(pin: str) -> str:
    """Hash a PIN with a fresh salt. Returns the bcrypt string for storage."""
    salt = bcrypt.gensalt(rounds=_rounds())
    hashed = bcrypt.hashpw(pin.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_pin(pin: str, pin_hash: str | None) -> bool:
    """
    Verify a PIN against a stored bcrypt hash.

    Returns False for a wrong PIN and for any unusable hash.
    """
    if not pin or not pin_hash:
        return False
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except Exception:
        return False


def validate_pin_complexity(pin: str, min_length: int = DEFAULT_MIN_PIN_LENGTH) -> None:
    """
    Validate a PIN being set (admin setup, PIN change, new employee).

    Raises PinValidationError if:
    - shorter than min_length or longer than MAX_PIN_LENGTH
    - contains whitespace
    - matches a weak pattern (exact or prefix, case-insensitive)
    """
    if pin is None or len(pin) < min_length:
        raise PinValidationError(f"PIN must be at least {min_length} characters long")

    if len(pin) > MAX_PIN_LENGTH:
        raise PinValidationError(f"PIN must be at most {MAX_PIN_LENGTH} characters long")

    if any(ch.isspace() for ch in pin):
        raise PinValidationError("PIN must not contain whitespace")

    lowered = pin.lower()
    for pattern in WEAK_PIN_PATTERNS:
        if lowered == pattern or lowered.startswith(pattern):
            raise PinValidationError("PIN is too easy to guess")
