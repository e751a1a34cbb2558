# tests/test_security.py
from datetime import UTC, datetime, timedelta

from jose import jwt

from ephemera.core.security import create_access_token, decode_subject
from ephemera.core.settings import settings


def test_token_round_trip() -> None:
    token = create_access_token("user-1")
    assert decode_subject(token) == "user-1"


def test_tampered_or_foreign_tokens_rejected() -> None:
    foreign = jwt.encode({"sub": "user-1"}, "other-secret", algorithm=settings.jwt_algorithm)
    assert decode_subject(foreign) is None
    assert decode_subject("garbage") is None


def test_expired_token_rejected() -> None:
    expired = jwt.encode(
        {"sub": "user-1", "exp": datetime.now(UTC) - timedelta(minutes=1)},
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    assert decode_subject(expired) is None


def test_token_without_subject_rejected() -> None:
    token = jwt.encode({"role": "x"}, settings.secret_key, algorithm=settings.jwt_algorithm)
    assert decode_subject(token) is None
