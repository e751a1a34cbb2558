# tests/v1/test_dependencies.py
"""Tests for API dependencies module."""

import pytest
from fastapi import HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials

from ephemera.api.v1.dependencies import get_current_user
from ephemera.core.security import create_access_token


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestGetCurrentUser:
    """Test bearer token resolution to a user row."""

    def test_valid_token_returns_user(self, db_session, alice):
        user = get_current_user(_credentials(create_access_token(alice.id)), db_session)
        assert user is alice

    def test_invalid_token(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(_credentials("not-a-token"), db_session)
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.detail == "Could not validate credentials"

    def test_token_for_unknown_user(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            get_current_user(_credentials(create_access_token("deleted-user")), db_session)
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.detail == "User not found"
