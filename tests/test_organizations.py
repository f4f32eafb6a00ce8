"""Tests for organization creation and the setup endpoints."""
import pytest
from httpx import AsyncClient

from swivel.db.models import Organization, Profile
from swivel.services import provisioning_service
from swivel.services.provisioning_service import BackendFunctionFailed, BackendWriteFailed


ORG_BODY = {"organizationName": "Acme Care", "fullName": "Jane Doe", "plan": "starter"}


def _fail_primary(monkeypatch):
    def broken(db, user, details):
        raise BackendFunctionFailed("Database function failed: relation does not exist")

    monkeypatch.setattr(provisioning_service, "create_organization_and_admin", broken)


# =============================================================================
# POST /api/create-organization
# =============================================================================

@pytest.mark.asyncio
async def test_create_organization_requires_session(client: AsyncClient):
    response = await client.post(
        "/api/create-organization", json=ORG_BODY, headers={"X-Requested-With": "XMLHttpRequest"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_organization_success(new_user_client: AsyncClient, db):
    response = await new_user_client.post("/api/create-organization", json=ORG_BODY)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    org = db.query(Organization).one()
    assert body["organizationId"] == str(org.id)
    assert db.query(Profile).one().organization_id == org.id


@pytest.mark.asyncio
async def test_create_organization_pro_plan_with_dashed_abn(new_user_client: AsyncClient, db):
    response = await new_user_client.post(
        "/api/create-organization", json={**ORG_BODY, "plan": "pro", "abn": "51-824-753-556"}
    )

    assert response.status_code == 200
    org = db.query(Organization).one()
    assert org.abn == "51824753556"
    assert db.query(Profile).one().plan == "pro"


@pytest.mark.asyncio
async def test_second_create_organization_is_400_without_new_rows(new_user_client: AsyncClient, db):
    await new_user_client.post("/api/create-organization", json=ORG_BODY)

    response = await new_user_client.post("/api/create-organization", json=ORG_BODY)

    assert response.status_code == 400
    assert response.json() == {"error": "Organization already exists"}
    assert db.query(Organization).count() == 1
    assert db.query(Profile).count() == 1


@pytest.mark.asyncio
async def test_create_organization_blank_name_is_422(new_user_client: AsyncClient, db):
    response = await new_user_client.post(
        "/api/create-organization", json={**ORG_BODY, "organizationName": "   "}
    )

    assert response.status_code == 422
    assert response.json() == {"error": "Please fill in all required fields", "field": "organizationName"}
    assert db.query(Organization).count() == 0


@pytest.mark.asyncio
async def test_create_organization_backend_failure_is_500_without_fallback(
    new_user_client: AsyncClient, db, monkeypatch
):
    _fail_primary(monkeypatch)

    response = await new_user_client.post("/api/create-organization", json=ORG_BODY)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create organization"}
    assert db.query(Organization).count() == 0


@pytest.mark.asyncio
async def test_get_organization(authed_client: AsyncClient, test_org):
    response = await authed_client.get("/api/organization")
    assert response.status_code == 200
    assert response.json()["name"] == test_org.name


# =============================================================================
# /auth/setup-organization and /auth/complete-setup
# =============================================================================

@pytest.mark.asyncio
async def test_setup_without_intent_needs_details(new_user_client: AsyncClient):
    response = await new_user_client.post("/auth/setup-organization")

    assert response.status_code == 200
    assert response.json() == {
        "status": "needs_details",
        "organizationId": None,
        "redirectTo": "/auth/complete-setup",
    }


@pytest.mark.asyncio
async def test_setup_requires_csrf_header(new_user_client: AsyncClient):
    response = await new_user_client.post("/auth/setup-organization", headers={"X-Requested-With": ""})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_complete_setup_prefill(new_user_client: AsyncClient, test_user):
    response = await new_user_client.get("/auth/complete-setup")
    assert response.status_code == 200
    assert response.json()["email"] == test_user.email
    assert response.json()["fullName"] == "Test User"


@pytest.mark.asyncio
async def test_complete_setup_provisions_with_entered_values(new_user_client: AsyncClient, db):
    response = await new_user_client.post("/auth/complete-setup", json=ORG_BODY)

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert response.json()["redirectTo"] == "/dashboard"
    assert db.query(Organization).one().name == "Acme Care"


@pytest.mark.asyncio
async def test_complete_setup_blank_full_name_is_422(new_user_client: AsyncClient, db):
    response = await new_user_client.post("/auth/complete-setup", json={**ORG_BODY, "fullName": ""})

    assert response.status_code == 422
    assert response.json()["field"] == "fullName"
    assert db.query(Organization).count() == 0


@pytest.mark.asyncio
async def test_complete_setup_when_provisioned_is_no_op(authed_client: AsyncClient, db, test_org):
    response = await authed_client.post("/auth/complete-setup", json={**ORG_BODY, "organizationName": "Other"})

    assert response.status_code == 200
    assert response.json()["status"] == "already_provisioned"
    assert response.json()["organizationId"] == str(test_org.id)
    assert db.query(Organization).count() == 1


@pytest.mark.asyncio
async def test_complete_setup_uses_fallback(new_user_client: AsyncClient, db, monkeypatch):
    _fail_primary(monkeypatch)

    response = await new_user_client.post("/auth/complete-setup", json=ORG_BODY)

    assert response.status_code == 200
    assert response.json()["status"] == "success"
    assert db.query(Profile).count() == 1


@pytest.mark.asyncio
async def test_complete_setup_both_paths_failing_is_502_retryable(new_user_client: AsyncClient, monkeypatch):
    _fail_primary(monkeypatch)

    def broken(db, user, details):
        raise BackendWriteFailed("Failed to create organization: could not connect to server")

    monkeypatch.setattr(provisioning_service, "create_organization_manually", broken)

    response = await new_user_client.post("/auth/complete-setup", json=ORG_BODY)

    assert response.status_code == 502
    assert response.json() == {
        "error": "Failed to create organization: could not connect to server",
        "retryable": True,
    }
