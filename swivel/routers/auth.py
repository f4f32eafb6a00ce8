"""Authentication router: sign-up, email verification, sign-in and setup."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from swivel.core.config import settings
from swivel.core.deps import COOKIE_NAME, get_current_user, get_db, require_csrf_header
from swivel.core.rate_limit import auth_limit, limiter
from swivel.db.models import User
from swivel.schemas.auth import (
    MeResponse,
    ResendConfirmationRequest,
    SigninRequest,
    SignupRequest,
)
from swivel.schemas.org import CreateOrganizationRequest, SetupResponse
from swivel.services import auth_service, org_service, provisioning_service
from swivel.services.provisioning_service import DASHBOARD_PATH, ProvisioningResult

router = APIRouter()

SETUP_ORGANIZATION_PATH = "/auth/setup-organization"
SIGNIN_PATH = "/auth/signin"
AUTH_ERROR_PATH = "/auth/error"

AUTH_ERROR_STATUS = {
    "user_exists": 409,
    "invalid_credentials": 401,
    "email_not_verified": 403,
    "account_disabled": 403,
}


def _frontend_url(path: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}{path}"


def _set_session_cookie(response, token: str) -> None:
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )


def _post_auth_path(db: Session, user: User) -> str:
    profile = org_service.get_profile(db, user.id)
    if profile is not None and profile.organization_id:
        return DASHBOARD_PATH
    return SETUP_ORGANIZATION_PATH


def _auth_error(exc: auth_service.AuthError) -> JSONResponse:
    content = {"error": exc.message, "code": exc.code}
    if exc.field:
        content["field"] = exc.field
    if exc.code == "email_not_verified":
        content["redirectTo"] = "/auth/verify-email"
    return JSONResponse(status_code=AUTH_ERROR_STATUS.get(exc.code, 422), content=content)


def _field_error(exc: provisioning_service.FieldError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": exc.message, "field": exc.field})


# =============================================================================
# Sign-up / verification
# =============================================================================

@router.post("/signup", status_code=201)
@limiter.limit(auth_limit)
def signup(request: Request, body: SignupRequest, db: Session = Depends(get_db)):
    """
    Register with organization details.

    The organization is created after the emailed link is followed
    (GET /auth/callback), from the provisioning intent staged here.
    """
    try:
        user, code = auth_service.sign_up(
            db,
            email=body.email,
            password=body.password,
            confirm_password=body.confirm_password,
            full_name=body.full_name,
            organization_name=body.organization_name,
            abn=body.abn,
            phone=body.phone,
            plan=body.plan,
        )
    except auth_service.AuthError as exc:
        return _auth_error(exc)
    except provisioning_service.FieldError as exc:
        return _field_error(exc)

    auth_service.send_verification_email(user, code)
    return {
        "success": True,
        "message": "Check your email to confirm your account",
        "redirectTo": "/auth/verify-email",
    }


@router.get("/callback")
def auth_callback(code: str | None = None, db: Session = Depends(get_db)):
    """
    Exchange the emailed one-time code for a session.

    Redirects to the dashboard for provisioned users, to organization setup
    otherwise, and to the auth error page on any failure.
    """
    if not code:
        return RedirectResponse(url=_frontend_url(AUTH_ERROR_PATH), status_code=302)

    try:
        user, token = auth_service.exchange_code_for_session(db, code)
    except auth_service.AuthError as exc:
        return RedirectResponse(
            url=_frontend_url(f"{AUTH_ERROR_PATH}?error={exc.code}"), status_code=302
        )

    response = RedirectResponse(url=_frontend_url(_post_auth_path(db, user)), status_code=302)
    _set_session_cookie(response, token)
    return response


@router.post("/resend-confirmation")
@limiter.limit(auth_limit)
def resend_confirmation(
    request: Request,
    body: ResendConfirmationRequest,
    db: Session = Depends(get_db),
):
    """Always succeeds so the endpoint cannot be used to probe for accounts."""
    auth_service.resend_confirmation(db, body.email)
    return {"success": True}


# =============================================================================
# Sessions
# =============================================================================

@router.post("/signin")
@limiter.limit(auth_limit)
def signin(request: Request, body: SigninRequest, db: Session = Depends(get_db)):
    try:
        user, token = auth_service.sign_in(db, body.email, body.password)
    except auth_service.AuthError as exc:
        return _auth_error(exc)

    response = JSONResponse(content={"success": True, "redirectTo": _post_auth_path(db, user)})
    _set_session_cookie(response, token)
    return response


@router.post("/signout")
def signout():
    response = JSONResponse(content={"success": True, "redirectTo": SIGNIN_PATH})
    response.delete_cookie(COOKIE_NAME, path="/")
    return response


@router.get("/me", response_model=MeResponse)
def get_me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Current user plus organization context; `needs_setup` drives routing to setup."""
    profile = org_service.get_profile(db, user.id)
    org = org_service.get_org_by_id(db, profile.organization_id) if profile else None
    return MeResponse(
        user_id=user.id,
        email=user.email,
        email_verified=user.is_verified,
        full_name=profile.full_name if profile else user.full_name,
        org_id=org.id if org else None,
        org_name=org.name if org else None,
        role=profile.role if profile else None,
        subscription_status=profile.subscription_status if profile else None,
        needs_setup=org is None,
    )


# =============================================================================
# Organization setup
# =============================================================================

def _setup_response(result: ProvisioningResult) -> SetupResponse:
    return SetupResponse(
        status=result.status,
        organization_id=result.organization_id,
        redirect_to=result.redirect_to,
    )


def _run_setup(db: Session, user: User, details=None):
    try:
        result = provisioning_service.ensure_provisioned(db, user, details)
    except provisioning_service.FieldError as exc:
        return _field_error(exc)
    except provisioning_service.ProvisioningError as exc:
        return JSONResponse(
            status_code=502,
            content={"error": exc.message, "retryable": exc.retryable},
        )
    return _setup_response(result)


@router.post(
    "/setup-organization",
    response_model=SetupResponse,
    dependencies=[Depends(require_csrf_header)],
)
def setup_organization(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Provision from the intent staged at sign-up.

    Idempotent: repeated calls after success report already_provisioned.
    Without a staged intent the client is sent to complete-setup.
    """
    return _run_setup(db, user)


@router.get("/complete-setup")
def complete_setup_defaults(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Prefill values for the manual setup form, or redirect when already provisioned."""
    if _post_auth_path(db, user) == DASHBOARD_PATH:
        return {"redirectTo": DASHBOARD_PATH}
    return {"email": user.email, "fullName": user.full_name or "", "redirectTo": None}


@router.post(
    "/complete-setup",
    response_model=SetupResponse,
    dependencies=[Depends(require_csrf_header)],
)
def complete_setup(
    body: CreateOrganizationRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Provision from values entered by a user who has no staged intent."""
    if _post_auth_path(db, user) == DASHBOARD_PATH:
        return _run_setup(db, user)
    try:
        details = provisioning_service.validate_details(
            body.organization_name,
            body.full_name,
            abn=body.abn,
            phone=body.phone,
            plan=body.plan,
        )
    except provisioning_service.FieldError as exc:
        return _field_error(exc)
    return _run_setup(db, user, details)
