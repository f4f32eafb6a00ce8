"""Tests for sign-up, email verification, sign-in and sessions."""
from datetime import timedelta

import pytest
from httpx import AsyncClient

from swivel.core.deps import COOKIE_NAME
from swivel.core.security import create_session_token, decode_session_token
from swivel.db.models import EmailVerificationCode, Organization, Profile, ProvisioningIntent, User
from swivel.services import auth_service
from swivel.utils import utcnow


CSRF_HEADERS = {"X-Requested-With": "XMLHttpRequest"}
TEST_PASSWORD = "secret-pass"  # set on conftest users

SIGNUP_BODY = {
    "email": "Jane@AcmeCare.example",
    "password": "hunter22",
    "confirmPassword": "hunter22",
    "fullName": "Jane Doe",
    "organizationName": "Acme Care",
    "plan": "starter",
}


def _sign_up(db, **overrides):
    values = {
        "email": "jane@acmecare.example",
        "password": "hunter22",
        "confirm_password": "hunter22",
        "full_name": "Jane Doe",
        "organization_name": "Acme Care",
    }
    values.update(overrides)
    return auth_service.sign_up(db, **values)


# =============================================================================
# Service
# =============================================================================

def test_sign_up_creates_unverified_user_and_intent(db):
    user, code = _sign_up(db)

    assert user.email == "jane@acmecare.example"
    assert user.is_verified is False
    assert user.password_hash != "hunter22"
    intent = db.query(ProvisioningIntent).filter(ProvisioningIntent.user_id == user.id).one()
    assert intent.organization_name == "Acme Care"
    assert intent.plan == "starter"
    assert db.query(EmailVerificationCode).count() == 1
    assert code


@pytest.mark.parametrize(
    "overrides,code",
    [
        ({"email": "not-an-email"}, "invalid_email"),
        ({"password": "abc", "confirm_password": "abc"}, "weak_password"),
        ({"confirm_password": "different"}, "password_mismatch"),
    ],
)
def test_sign_up_rejects_bad_input(db, overrides, code):
    with pytest.raises(auth_service.AuthError) as exc_info:
        _sign_up(db, **overrides)
    assert exc_info.value.code == code
    assert db.query(User).count() == 0


def test_sign_up_duplicate_email(db):
    _sign_up(db)
    with pytest.raises(auth_service.AuthError) as exc_info:
        _sign_up(db, email="JANE@acmecare.example")
    assert exc_info.value.code == "user_exists"
    assert exc_info.value.message == "An account with this email already exists. Please sign in instead."


def test_exchange_code_verifies_email_once(db):
    user, code = _sign_up(db)

    verified, token = auth_service.exchange_code_for_session(db, code)
    assert verified.id == user.id
    assert verified.is_verified
    assert decode_session_token(token)["sub"] == str(user.id)

    with pytest.raises(auth_service.AuthError) as exc_info:
        auth_service.exchange_code_for_session(db, code)
    assert exc_info.value.code == "invalid_code"


def test_expired_code_rejected(db):
    _, code = _sign_up(db)
    record = db.query(EmailVerificationCode).one()
    record.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(auth_service.AuthError) as exc_info:
        auth_service.exchange_code_for_session(db, code)
    assert exc_info.value.code == "code_expired"


def test_sign_in_requires_verified_email(db):
    _sign_up(db)
    with pytest.raises(auth_service.AuthError) as exc_info:
        auth_service.sign_in(db, "jane@acmecare.example", "hunter22")
    assert exc_info.value.code == "email_not_verified"


def test_sign_in_wrong_password(db, test_user):
    with pytest.raises(auth_service.AuthError) as exc_info:
        auth_service.sign_in(db, test_user.email, "wrong-password")
    assert exc_info.value.code == "invalid_credentials"


# =============================================================================
# API
# =============================================================================

@pytest.mark.asyncio
async def test_me_requires_session(client: AsyncClient):
    response = await client.get("/auth/me")
    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated", "redirectTo": "/auth/signin"}


@pytest.mark.asyncio
async def test_signup_verify_setup_flow(client: AsyncClient, db, monkeypatch):
    """Sign up, follow the emailed link, then provision from the staged intent."""
    sent = {}
    monkeypatch.setattr(auth_service, "send_verification_email", lambda user, code: sent.update(code=code))

    response = await client.post("/auth/signup", json=SIGNUP_BODY)
    assert response.status_code == 201
    assert response.json()["redirectTo"] == "/auth/verify-email"
    assert db.query(Organization).count() == 0

    response = await client.get(f"/auth/callback?code={sent['code']}", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].endswith("/auth/setup-organization")
    assert COOKIE_NAME in response.cookies

    response = await client.post("/auth/setup-organization", headers=CSRF_HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["redirectTo"] == "/dashboard"

    org = db.query(Organization).one()
    assert org.name == "Acme Care"
    assert str(org.id) == body["organizationId"]

    # Duplicate redirect or refresh
    response = await client.post("/auth/setup-organization", headers=CSRF_HEADERS)
    assert response.json()["status"] == "already_provisioned"
    assert db.query(Organization).count() == 1

    response = await client.get("/auth/me")
    assert response.status_code == 200
    me = response.json()
    assert me["org_name"] == "Acme Care"
    assert me["role"] == "admin"
    assert me["needs_setup"] is False


@pytest.mark.asyncio
async def test_pro_signup_provisions_pro_plan(client: AsyncClient, db, monkeypatch):
    sent = {}
    monkeypatch.setattr(auth_service, "send_verification_email", lambda user, code: sent.update(code=code))

    response = await client.post("/auth/signup", json={**SIGNUP_BODY, "plan": "pro", "abn": "51-824-753-556"})
    assert response.status_code == 201

    await client.get(f"/auth/callback?code={sent['code']}", follow_redirects=False)
    response = await client.post("/auth/setup-organization", headers=CSRF_HEADERS)
    assert response.json()["status"] == "success"

    assert db.query(Organization).one().abn == "51824753556"
    assert db.query(Profile).one().plan == "pro"


@pytest.mark.asyncio
async def test_signup_duplicate_email_is_409(client: AsyncClient, test_user):
    response = await client.post("/auth/signup", json={**SIGNUP_BODY, "email": test_user.email})

    assert response.status_code == 409
    assert response.json()["error"] == "An account with this email already exists. Please sign in instead."
    assert response.json()["field"] == "email"


@pytest.mark.asyncio
async def test_signup_blank_org_name_is_422(client: AsyncClient, db):
    response = await client.post("/auth/signup", json={**SIGNUP_BODY, "organizationName": "  "})

    assert response.status_code == 422
    assert response.json() == {"error": "Please fill in all required fields", "field": "organizationName"}
    assert db.query(User).count() == 0


@pytest.mark.asyncio
async def test_callback_without_code_redirects_to_error(client: AsyncClient):
    response = await client.get("/auth/callback", follow_redirects=False)
    assert response.status_code == 302
    assert "/auth/error" in response.headers["location"]


@pytest.mark.asyncio
async def test_callback_with_bad_code_redirects_to_error(client: AsyncClient):
    response = await client.get("/auth/callback?code=nope", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"].endswith("/auth/error?error=invalid_code")


@pytest.mark.asyncio
async def test_signin_sets_cookie_and_routes_provisioned_user(client: AsyncClient, test_user, test_org):
    response = await client.post("/auth/signin", json={"email": test_user.email, "password": TEST_PASSWORD})

    assert response.status_code == 200
    assert response.json()["redirectTo"] == "/dashboard"
    assert COOKIE_NAME in response.cookies


@pytest.mark.asyncio
async def test_signin_routes_unprovisioned_user_to_setup(client: AsyncClient, test_user):
    response = await client.post("/auth/signin", json={"email": test_user.email, "password": TEST_PASSWORD})
    assert response.json()["redirectTo"] == "/auth/setup-organization"


@pytest.mark.asyncio
async def test_signin_unverified_is_403(client: AsyncClient, user_factory):
    user = user_factory(verified=False)
    response = await client.post("/auth/signin", json={"email": user.email, "password": TEST_PASSWORD})

    assert response.status_code == 403
    assert response.json()["code"] == "email_not_verified"


@pytest.mark.asyncio
async def test_signin_bad_password_is_401(client: AsyncClient, test_user):
    response = await client.post("/auth/signin", json={"email": test_user.email, "password": "nope-nope"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_resend_confirmation_always_succeeds(client: AsyncClient):
    response = await client.post("/auth/resend-confirmation", json={"email": "nobody@example.com"})
    assert response.status_code == 200
    assert response.json() == {"success": True}


@pytest.mark.asyncio
async def test_signout_clears_cookie(authed_client: AsyncClient):
    response = await authed_client.post("/auth/signout")
    assert response.status_code == 200
    assert response.json()["redirectTo"] == "/auth/signin"
    assert 'swivel_session=""' in response.headers["set-cookie"]


@pytest.mark.asyncio
async def test_revoked_session_is_rejected(client: AsyncClient, db, test_user):
    token = create_session_token(test_user.id, test_user.token_version)
    auth_service.revoke_sessions(db, test_user)

    client.cookies.set(COOKIE_NAME, token)
    response = await client.get("/auth/me")
    assert response.status_code == 401
    assert response.json()["error"] == "Session revoked"


@pytest.mark.asyncio
async def test_me_for_unprovisioned_user_needs_setup(new_user_client: AsyncClient):
    response = await new_user_client.get("/auth/me")
    assert response.status_code == 200
    assert response.json()["needs_setup"] is True
    assert response.json()["org_id"] is None
