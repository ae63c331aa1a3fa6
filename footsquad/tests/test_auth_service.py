"""
Unit tests for authentication service.
Tests JWT access token signing and verification.
"""
from datetime import timedelta

from jose import jwt

from footsquad.services import auth_service


class TestJWTTokens:
    """Tests for JWT token creation and verification."""

    def test_verify_token_valid(self):
        token = auth_service.create_access_token({"user_id": 7})

        decoded = auth_service.verify_token(token)
        assert decoded is not None
        assert decoded["user_id"] == 7
        assert "exp" in decoded

    def test_verify_token_invalid(self):
        assert auth_service.verify_token("invalid_token_string") is None

    def test_verify_token_expired(self):
        token = auth_service.create_access_token(
            {"user_id": 7}, expires_delta=timedelta(seconds=-1)
        )
        assert auth_service.verify_token(token) is None

    def test_verify_token_wrong_secret(self):
        forged = jwt.encode({"user_id": 7}, "not-the-secret", algorithm="HS256")
        assert auth_service.verify_token(forged) is None

    def test_create_access_token_with_expires_delta(self):
        token = auth_service.create_access_token(
            {"user_id": 7}, expires_delta=timedelta(hours=2)
        )
        short = auth_service.create_access_token({"user_id": 7})

        assert auth_service.verify_token(token)["exp"] > auth_service.verify_token(short)["exp"]

    def test_create_access_token_does_not_mutate_input(self):
        data = {"user_id": 7}
        auth_service.create_access_token(data)
        assert data == {"user_id": 7}
