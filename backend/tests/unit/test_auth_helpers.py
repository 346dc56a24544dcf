"""Tests for session cookie helpers used after redemption."""

from datetime import timedelta

import jwt
import pytest
from fastapi import Response
from pydantic import SecretStr

from magic_link.core.auth import (
    JWT_AUDIENCE,
    clear_auth_cookie,
    cookie_session_finalizer,
    create_jwt,
)
from magic_link.core.config import settings
from magic_link.core.errors import MissingSecretError
from tests.conftest import TEST_AUTH_SECRET


class TestCreateJwt:
    def test_claims(self):
        token = create_jwt(user_id="42", secret=TEST_AUTH_SECRET)
        claims = jwt.decode(
            token, TEST_AUTH_SECRET, algorithms=["HS256"], audience=JWT_AUDIENCE
        )

        assert claims["sub"] == "42"
        assert claims["iss"] == settings.auth_issuer
        assert claims["exp"] - claims["iat"] == 3600

    def test_custom_expiry(self):
        token = create_jwt(
            user_id="42", secret=TEST_AUTH_SECRET, expires_delta=timedelta(minutes=5)
        )
        claims = jwt.decode(
            token, TEST_AUTH_SECRET, algorithms=["HS256"], audience=JWT_AUDIENCE
        )
        assert claims["exp"] - claims["iat"] == 300


class TestCookieSessionFinalizer:
    """Tests for the redemption session callback."""

    @pytest.mark.asyncio
    async def test_sets_httponly_session_cookie(self, configured_settings, active_account):  # noqa: ARG002
        response = Response()

        await cookie_session_finalizer(response)(active_account)

        cookie = response.headers["set-cookie"]
        assert cookie.startswith(f"{settings.auth_cookie_name}=")
        assert "HttpOnly" in cookie
        assert "Path=/" in cookie

    @pytest.mark.asyncio
    async def test_missing_secret_raises(self, configured_settings, active_account):  # noqa: ARG002
        settings.auth_secret = SecretStr("")
        response = Response()

        with pytest.raises(MissingSecretError):
            await cookie_session_finalizer(response)(active_account)

        assert "set-cookie" not in response.headers


class TestClearAuthCookie:
    def test_expires_cookie(self):
        response = Response()
        clear_auth_cookie(response)

        cookie = response.headers["set-cookie"]
        assert cookie.startswith(f"{settings.auth_cookie_name}=")
        assert "Max-Age=0" in cookie
