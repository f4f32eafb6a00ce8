"""Organization provisioning - ensure a verified user ends up with exactly one
organization and an admin profile.

Flow (strictly sequential):
1. Idempotency check on the user's profile (keyed by the immutable user id)
2. Input resolution: explicit details, else the pending provisioning intent
3. Primary path: organization + admin profile in one transaction
4. Fallback path (only after the primary failure is observed): organization
   then profile as two separate writes, adopting an orphan left by an
   earlier failed attempt of the same user
5. Clear the consumed intent

`profiles.id` is the user id, so a racing second writer fails on the
primary key and is reported as already provisioned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from swivel.core.config import settings
from swivel.core.structured_logging import build_log_context
from swivel.db.enums import Plan, ProvisioningStatus, Role, SubscriptionStatus
from swivel.db.models import Organization, Profile, ProvisioningIntent, User
from swivel.services import org_service
from swivel.utils import ensure_utc, normalize_abn, normalize_optional, utcnow

logger = logging.getLogger(__name__)

DASHBOARD_PATH = "/dashboard"
COMPLETE_SETUP_PATH = "/auth/complete-setup"

PRIMARY_PATH = "primary"
FALLBACK_PATH = "fallback"


# =============================================================================
# Errors
# =============================================================================

class ProvisioningError(Exception):
    """Base class for provisioning failures surfaced to the caller."""

    retryable = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FieldError(ProvisioningError):
    """Input problem tied to one form field; shown inline, never retried as-is."""

    retryable = False

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class MissingRequiredField(FieldError):
    def __init__(self, field: str, message: str = "Please fill in all required fields"):
        super().__init__(field, message)


class BackendFunctionFailed(ProvisioningError):
    """Atomic create failed; the fallback path may still succeed."""


class BackendWriteFailed(ProvisioningError):
    """Manual two-step create failed; terminal for this attempt."""


class AlreadyProvisioned(ProvisioningError):
    """Raised only by the strict create endpoint; ensure_provisioned reports it as an outcome."""

    retryable = False


def _backend_message(exc: SQLAlchemyError) -> str:
    return str(getattr(exc, "orig", None) or exc)


# =============================================================================
# Inputs and outcomes
# =============================================================================

@dataclass(frozen=True)
class OrganizationDetails:
    """Validated organization + admin details, from a form or a stored intent."""

    organization_name: str
    full_name: str
    abn: str | None = None
    phone: str | None = None
    plan: str = Plan.STARTER.value


@dataclass
class ProvisioningResult:
    status: ProvisioningStatus
    organization_id: UUID | None = None
    path: str | None = None

    @property
    def redirect_to(self) -> str:
        if self.status == ProvisioningStatus.NEEDS_DETAILS:
            return COMPLETE_SETUP_PATH
        return DASHBOARD_PATH


def validate_details(
    organization_name: str | None,
    full_name: str | None,
    abn: str | None = None,
    phone: str | None = None,
    plan: str | None = None,
) -> OrganizationDetails:
    """
    Trim and validate provisioning input.

    Raises:
        MissingRequiredField: organization name or full name blank
        FieldError: unknown plan
    """
    org_name = normalize_optional(organization_name)
    if not org_name:
        raise MissingRequiredField("organizationName")
    name = normalize_optional(full_name)
    if not name:
        raise MissingRequiredField("fullName")

    clean_abn = normalize_abn(abn)
    clean_plan = normalize_optional(plan) or settings.DEFAULT_PLAN
    if not Plan.has_value(clean_plan):
        raise FieldError("plan", f"Unknown plan '{clean_plan}'")

    return OrganizationDetails(
        organization_name=org_name,
        full_name=name,
        abn=clean_abn,
        phone=normalize_optional(phone),
        plan=clean_plan,
    )


def trial_ends_at(now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(days=settings.TRIAL_PERIOD_DAYS)


# =============================================================================
# Provisioning intents
# =============================================================================

def save_intent(db: Session, user: User, details: OrganizationDetails) -> ProvisioningIntent:
    """
    Stage organization details until the user verifies their email.

    Replaces any earlier intent for the same user. Caller commits.
    """
    intent = db.query(ProvisioningIntent).filter(ProvisioningIntent.user_id == user.id).first()
    if intent is None:
        intent = ProvisioningIntent(user_id=user.id)
        db.add(intent)
    intent.email = user.email
    intent.organization_name = details.organization_name
    intent.full_name = details.full_name
    intent.abn = details.abn
    intent.phone = details.phone
    intent.plan = details.plan
    intent.expires_at = utcnow() + timedelta(hours=settings.PROVISIONING_INTENT_TTL_HOURS)
    return intent


def get_pending_intent(db: Session, user_id: UUID) -> ProvisioningIntent | None:
    """Return the user's unexpired intent. Expired intents are discarded."""
    intent = db.query(ProvisioningIntent).filter(ProvisioningIntent.user_id == user_id).first()
    if intent is None:
        return None
    if ensure_utc(intent.expires_at) <= utcnow():
        logger.info("Discarding expired provisioning intent", extra=build_log_context(user_id=user_id))
        db.delete(intent)
        db.commit()
        return None
    return intent


def _discard_intent(db: Session, user_id: UUID) -> None:
    db.query(ProvisioningIntent).filter(ProvisioningIntent.user_id == user_id).delete(
        synchronize_session=False
    )


def _consume_intent(db: Session, user_id: UUID) -> None:
    """Delete the intent after a successful write. Failure here does not undo provisioning."""
    try:
        _discard_intent(db, user_id)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to clear provisioning intent", extra=build_log_context(user_id=user_id))


# =============================================================================
# Primary path: atomic create
# =============================================================================

CREATE_ORGANIZATION_AND_ADMIN_SQL = text(
    "SELECT create_organization_and_admin("
    ":user_id, :user_email, :full_name, :organization_name, :abn, :phone, :plan, :trial_days"
    ")"
)


def _use_db_function(db: Session) -> bool:
    return settings.PROVISIONING_USE_DB_FUNCTION and db.get_bind().dialect.name == "postgresql"


def _new_admin_profile(user: User, org_id: UUID, details: OrganizationDetails) -> Profile:
    return Profile(
        id=user.id,
        organization_id=org_id,
        email=user.email,
        full_name=details.full_name,
        phone=details.phone,
        role=Role.ADMIN.value,
        subscription_status=SubscriptionStatus.TRIAL.value,
        plan=details.plan,
        trial_ends_at=trial_ends_at(),
    )


def create_organization_and_admin(db: Session, user: User, details: OrganizationDetails) -> UUID:
    """
    Create organization and admin profile in a single transaction.

    Uses the create_organization_and_admin() SQL function when enabled on
    PostgreSQL, otherwise one ORM unit of work. The user's pending intent is
    removed in the same transaction.

    Raises:
        BackendFunctionFailed: Nothing was written
    """
    try:
        if _use_db_function(db):
            org_id = db.execute(
                CREATE_ORGANIZATION_AND_ADMIN_SQL,
                {
                    "user_id": user.id,
                    "user_email": user.email,
                    "full_name": details.full_name,
                    "organization_name": details.organization_name,
                    "abn": details.abn,
                    "phone": details.phone,
                    "plan": details.plan,
                    "trial_days": settings.TRIAL_PERIOD_DAYS,
                },
            ).scalar_one()
        else:
            org = Organization(
                name=details.organization_name,
                abn=details.abn,
                phone=details.phone,
                created_by_user_id=user.id,
            )
            db.add(org)
            db.flush()
            db.add(_new_admin_profile(user, org.id, details))
            org_id = org.id
        _discard_intent(db, user.id)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise BackendFunctionFailed(
            f"Database function failed: {_backend_message(exc)}"
        ) from exc

    if not org_id:
        raise BackendFunctionFailed("Organization creation failed - no ID returned")
    return org_id if isinstance(org_id, UUID) else UUID(str(org_id))


# =============================================================================
# Fallback path: manual two-step create
# =============================================================================

def create_organization_manually(db: Session, user: User, details: OrganizationDetails) -> UUID:
    """
    Create organization, then profile, as two separate commits.

    A profile failure after the organization commit leaves an orphan; the
    next attempt by the same user adopts it instead of creating another.

    Raises:
        BackendWriteFailed: Either step failed
    """
    context = build_log_context(user_id=user.id, path=FALLBACK_PATH)

    # Step 1: organization
    try:
        org = org_service.find_adoptable_orphan(db, user.id)
        if org is not None:
            logger.info("Adopting orphaned organization", extra={**context, "org_id": str(org.id)})
            org.name = details.organization_name
            org.abn = details.abn
            org.phone = details.phone
        else:
            org = Organization(
                name=details.organization_name,
                abn=details.abn,
                phone=details.phone,
                created_by_user_id=user.id,
            )
            db.add(org)
        db.commit()
        org_id = org.id
    except SQLAlchemyError as exc:
        db.rollback()
        raise BackendWriteFailed(f"Failed to create organization: {_backend_message(exc)}") from exc

    # Step 2: profile
    try:
        db.add(_new_admin_profile(user, org_id, details))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(
            "Profile write failed after organization commit; organization left orphaned",
            extra={**context, "org_id": str(org_id)},
        )
        raise BackendWriteFailed(f"Failed to create profile: {_backend_message(exc)}") from exc

    return org_id


# =============================================================================
# Ensure provisioned
# =============================================================================

def _provisioned_org_id(db: Session, user_id: UUID) -> UUID | None:
    db.expire_all()
    profile = org_service.get_profile(db, user_id)
    if profile is not None and profile.organization_id:
        return profile.organization_id
    return None


def ensure_provisioned(
    db: Session,
    user: User,
    details: OrganizationDetails | None = None,
) -> ProvisioningResult:
    """
    Make sure `user` has exactly one organization and admin profile.

    Safe to call repeatedly (duplicate redirects, retries): an existing
    profile short-circuits with ALREADY_PROVISIONED and no writes.

    Args:
        details: Values entered on the complete-setup form. When omitted the
            user's pending intent is consumed; with neither, the result is
            NEEDS_DETAILS.

    Raises:
        FieldError: Invalid stored intent (entered values are validated by the caller)
        BackendWriteFailed: Both paths failed; retry re-runs from the start
    """
    context = build_log_context(user_id=user.id)

    org_id = _provisioned_org_id(db, user.id)
    if org_id is not None:
        logger.info("User already provisioned", extra={**context, "org_id": str(org_id)})
        return ProvisioningResult(ProvisioningStatus.ALREADY_PROVISIONED, org_id)

    if details is None:
        intent = get_pending_intent(db, user.id)
        if intent is None:
            logger.info("No pending provisioning intent; manual setup required", extra=context)
            return ProvisioningResult(ProvisioningStatus.NEEDS_DETAILS)
        details = validate_details(
            intent.organization_name,
            intent.full_name,
            abn=intent.abn,
            phone=intent.phone,
            plan=intent.plan,
        )

    try:
        org_id = create_organization_and_admin(db, user, details)
        path = PRIMARY_PATH
    except BackendFunctionFailed as primary_error:
        logger.warning(
            "Atomic provisioning failed, falling back to manual creation: %s",
            primary_error.message,
            extra=context,
        )
        existing = _provisioned_org_id(db, user.id)
        if existing is not None:
            return ProvisioningResult(ProvisioningStatus.ALREADY_PROVISIONED, existing)

        try:
            org_id = create_organization_manually(db, user, details)
            path = FALLBACK_PATH
        except BackendWriteFailed as fallback_error:
            existing = _provisioned_org_id(db, user.id)
            if existing is not None:
                return ProvisioningResult(ProvisioningStatus.ALREADY_PROVISIONED, existing)
            logger.error("Manual provisioning failed: %s", fallback_error.message, extra=context)
            raise

    _consume_intent(db, user.id)
    logger.info(
        "Organization provisioned",
        extra={**context, "org_id": str(org_id), "provisioning_path": path},
    )
    return ProvisioningResult(ProvisioningStatus.PROVISIONED, org_id, path)


def create_organization_for_user(db: Session, user: User, details: OrganizationDetails) -> UUID:
    """
    Strict create used by POST /api/create-organization: primary path only.

    Raises:
        AlreadyProvisioned: A profile already exists for the user
        BackendFunctionFailed: Atomic create failed
    """
    if org_service.get_profile(db, user.id) is not None:
        raise AlreadyProvisioned("Organization already exists")
    try:
        return create_organization_and_admin(db, user, details)
    except BackendFunctionFailed:
        if _provisioned_org_id(db, user.id) is not None:
            raise AlreadyProvisioned("Organization already exists")
        raise
