import jwt
import pytest

from application.services.token_service import TokenService
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException


def test_round_trip_for_regular_user():
    tokens = TokenService()
    user = tokens.decode_access_token(tokens.create_access_token("u1", email="a@example.com", name="Ada"))

    assert user.user_id == "u1"
    assert user.email == "a@example.com"
    assert user.name == "Ada"
    assert user.is_admin is False


def test_admin_role_grants_admin():
    tokens = TokenService()
    assert tokens.decode_access_token(tokens.create_access_token("u1", role="admin")).is_admin is True


def test_admin_email_allowlist(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_EMAILS", "ops@example.com, Boss@Example.com")
    tokens = TokenService()

    assert tokens.decode_access_token(tokens.create_access_token("u1", email="boss@example.com")).is_admin is True
    assert tokens.decode_access_token(tokens.create_access_token("u2", email="dev@example.com")).is_admin is False


def test_expired_token():
    tokens = TokenService()
    token = tokens.create_access_token("u1", expires_minutes=-1)

    with pytest.raises(TokenExpiredException):
        tokens.decode_access_token(token)


def test_wrong_signature():
    token = TokenService(secret_key="other-secret").create_access_token("u1")

    with pytest.raises(UnauthorizedException):
        TokenService().decode_access_token(token)


def test_refresh_token_type_is_rejected():
    token = jwt.encode({"sub": "u1", "type": "refresh"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    with pytest.raises(UnauthorizedException):
        TokenService().decode_access_token(token)
