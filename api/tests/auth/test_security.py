"""Tests for auth security functions."""

from datetime import timedelta
from uuid import uuid4

import pytest
from jose import JWTError, jwt

from src.auth.permissions import UserRole
from src.auth.security import create_access_token, decode_access_token
from src.config.settings import get_settings


class TestAccessToken:
    """Tests for JWT access tokens."""

    def test_create_and_decode(self) -> None:
        """Decoded payload should carry the principal claims."""
        user_id = str(uuid4())
        token = create_access_token(
            {"sub": user_id, "email": "ana@example.com", "role": UserRole.STUDENT.value}
        )

        payload = decode_access_token(token)

        assert payload["sub"] == user_id
        assert payload["email"] == "ana@example.com"
        assert payload["role"] == "student"
        assert payload["type"] == "access"
        assert "iat" in payload

    def test_expired_token_rejected(self) -> None:
        """Expired tokens should fail to decode."""
        token = create_access_token(
            {"sub": str(uuid4())}, expires_delta=timedelta(seconds=-1)
        )
        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_wrong_type_rejected(self) -> None:
        """Tokens of another type should be refused."""
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(uuid4()), "type": "refresh"},
            settings.auth_secret_key,
            algorithm=settings.auth_algorithm,
        )
        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_tampered_token_rejected(self) -> None:
        """A token signed with another key should fail."""
        token = jwt.encode(
            {"sub": str(uuid4()), "type": "access"},
            "another-secret",
            algorithm="HS256",
        )
        with pytest.raises(JWTError):
            decode_access_token(token)
