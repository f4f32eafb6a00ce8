"""Organizations router - direct organization creation for a signed-in user."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from swivel.core.deps import get_current_session, get_current_user, get_db, require_csrf_header
from swivel.core.structured_logging import build_log_context
from swivel.db.models import User
from swivel.schemas.auth import UserSession
from swivel.schemas.org import CreateOrganizationRequest, CreateOrganizationResponse, OrgRead
from swivel.services import org_service, provisioning_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["organizations"])


@router.post(
    "/create-organization",
    response_model=CreateOrganizationResponse,
    dependencies=[Depends(require_csrf_header)],
)
def create_organization(
    body: CreateOrganizationRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create an organization and admin profile in one step.

    Unlike the setup endpoints this is not idempotent: a second call is
    rejected and no fallback path is attempted.
    """
    try:
        details = provisioning_service.validate_details(
            body.organization_name,
            body.full_name,
            abn=body.abn,
            phone=body.phone,
            plan=body.plan,
        )
    except provisioning_service.FieldError as exc:
        return JSONResponse(status_code=422, content={"error": exc.message, "field": exc.field})

    try:
        org_id = provisioning_service.create_organization_for_user(db, user, details)
    except provisioning_service.AlreadyProvisioned:
        raise HTTPException(status_code=400, detail="Organization already exists")
    except provisioning_service.BackendFunctionFailed as exc:
        logger.error(
            "Organization creation failed: %s",
            exc.message,
            extra=build_log_context(user_id=user.id, route="/api/create-organization"),
        )
        raise HTTPException(status_code=500, detail="Failed to create organization")

    return CreateOrganizationResponse(success=True, organization_id=org_id)


@router.get("/organization", response_model=OrgRead)
def get_organization(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """The caller's organization."""
    org = org_service.get_org_by_id(db, session.org_id)
    if org is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org
