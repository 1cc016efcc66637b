"""Single-use enrolment tokens."""

from .models import TOKENS_TABLES_CQL, Token


__all__ = [
    "TOKENS_TABLES_CQL",
    "Token",
]
