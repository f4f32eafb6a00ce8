"""Tests for security helpers, log context and app-level endpoints."""
import uuid

import jwt
import pytest
from httpx import AsyncClient

from swivel.core import security
from swivel.core.config import Settings, settings
from swivel.core.structured_logging import build_log_context
from swivel.utils import normalize_abn, normalize_email


# =============================================================================
# Security
# =============================================================================

def test_password_hash_round_trip():
    hashed = security.hash_password("hunter22")
    assert hashed != "hunter22"
    assert security.verify_password("hunter22", hashed)
    assert not security.verify_password("hunter23", hashed)
    assert not security.verify_password("hunter22", "not-a-bcrypt-hash")


def test_session_token_accepts_previous_secret(monkeypatch):
    user_id = uuid.uuid4()
    monkeypatch.setattr(settings, "JWT_SECRET", "old-secret")
    token = security.create_session_token(user_id, token_version=3)

    monkeypatch.setattr(settings, "JWT_SECRET", "new-secret")
    monkeypatch.setattr(settings, "JWT_SECRET_PREVIOUS", "old-secret")
    payload = security.decode_session_token(token)
    assert payload["sub"] == str(user_id)
    assert payload["token_version"] == 3

    monkeypatch.setattr(settings, "JWT_SECRET_PREVIOUS", "")
    with pytest.raises(jwt.InvalidTokenError):
        security.decode_session_token(token)


def test_verification_code_hash_is_stable():
    code = security.generate_verification_code()
    assert security.hash_verification_code(code) == security.hash_verification_code(code)
    assert len(security.hash_verification_code(code)) == 64


# =============================================================================
# Config / normalization
# =============================================================================

def test_settings_parse_cors_origins():
    s = Settings(CORS_ORIGINS="http://a.example, http://b.example,", ENV="production")
    assert s.cors_origins_list == ["http://a.example", "http://b.example"]
    assert s.cookie_secure is True
    assert s.is_dev is False


def test_normalizers():
    assert normalize_email("  Jane@Example.COM ") == "jane@example.com"
    assert normalize_email("   ") is None
    assert normalize_abn(None) is None
    assert normalize_abn("51 824 753 556") == "51824753556"
    assert normalize_abn("51-824-753-556") == "51824753556"
    assert normalize_abn("12-ABC") == "12-ABC"


# =============================================================================
# Log context
# =============================================================================

def test_build_log_context_keeps_ids_only():
    user_id = uuid.uuid4()
    context = build_log_context(user_id=user_id, org_id=None, path="fallback")
    assert context == {"user_id": str(user_id), "provisioning_path": "fallback"}


def test_build_log_context_empty():
    assert build_log_context() == {}


# =============================================================================
# App
# =============================================================================

@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_malformed_body_is_inline_error(client: AsyncClient):
    response = await client.post("/auth/signin", json={"email": "a@b.c"})
    assert response.status_code == 422
    assert response.json()["field"] == "password"
    assert "error" in response.json()
