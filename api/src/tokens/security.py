"""Secret generation for enrolment tokens.

Secrets are lowercase hexadecimal strings produced from a cryptographically
strong random source. Two hex characters encode one random byte, so the
length must be even.
"""

import secrets

from src.core.exceptions import ValidationError


MIN_TOKEN_LENGTH = 2
MAX_TOKEN_LENGTH = 64


def normalize_length(length: int) -> int:
    """Round a requested length down to the nearest even value.

    Raises:
        ValidationError: If the length is outside 2..64
    """
    normalized = length - (length % 2)
    if not MIN_TOKEN_LENGTH <= normalized <= MAX_TOKEN_LENGTH:
        raise ValidationError(
            f"Token length must be between {MIN_TOKEN_LENGTH} and {MAX_TOKEN_LENGTH}",
            code="invalid_token_length",
        )
    return normalized


def generate_secret(length: int) -> str:
    """Generate a hex secret of exactly `length` characters.

    Args:
        length: Even number of characters

    Returns:
        Hex string, e.g. "3fa9c1" for length 6
    """
    return secrets.token_hex(length // 2)
