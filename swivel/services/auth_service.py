"""Authentication service - sign-up, email verification and sign-in.

Sign-up creates an unverified user, stages the organization details as a
provisioning intent and issues a one-time verification code. The code is
exchanged for a session at /auth/callback, after which provisioning runs.
"""

import logging
from datetime import timedelta
from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from swivel.core.config import settings
from swivel.core.security import (
    create_session_token,
    generate_verification_code,
    hash_password,
    hash_verification_code,
    verify_password,
)
from swivel.core.structured_logging import build_log_context
from swivel.db.models import EmailVerificationCode, User
from swivel.services import provisioning_service
from swivel.utils import ensure_utc, normalize_email, normalize_optional, utcnow

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Auth failure with a stable machine-readable code."""

    def __init__(self, code: str, message: str, field: str | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.field = field


def get_user_by_email(db: Session, email: str) -> User | None:
    normalized = normalize_email(email)
    if not normalized:
        return None
    return db.query(User).filter(User.email == normalized).first()


def get_user_by_id(db: Session, user_id: UUID) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


# =============================================================================
# Verification codes
# =============================================================================

def issue_verification_code(db: Session, user: User) -> str:
    """Create a one-time code for `user`. Caller commits."""
    code = generate_verification_code()
    db.add(
        EmailVerificationCode(
            user_id=user.id,
            code_hash=hash_verification_code(code),
            expires_at=utcnow() + timedelta(hours=settings.VERIFICATION_CODE_TTL_HOURS),
        )
    )
    return code


def build_callback_url(code: str) -> str:
    base = settings.FRONTEND_URL.rstrip("/")
    return f"{base}/auth/callback?{urlencode({'code': code})}"


def send_verification_email(user: User, code: str) -> None:
    """
    Hand the confirmation link to email delivery.

    Delivery itself is external; in dev the link is logged so it can be
    followed locally.
    """
    if settings.is_dev:
        logger.info("Verification link for %s: %s", user.email, build_callback_url(code))
    else:
        logger.info("Verification email queued", extra=build_log_context(user_id=user.id))


def exchange_code_for_session(db: Session, code: str) -> tuple[User, str]:
    """
    Consume a verification code, mark the email verified, and issue a session.

    Raises:
        AuthError: invalid_code / code_expired / account_disabled
    """
    record = (
        db.query(EmailVerificationCode)
        .filter(EmailVerificationCode.code_hash == hash_verification_code(code))
        .first()
    )
    if record is None or record.consumed_at is not None:
        raise AuthError("invalid_code", "Verification link is invalid or has already been used")
    if ensure_utc(record.expires_at) <= utcnow():
        raise AuthError("code_expired", "Verification link has expired")

    user = get_user_by_id(db, record.user_id)
    if user is None or not user.is_active:
        raise AuthError("account_disabled", "Account is disabled")

    now = utcnow()
    record.consumed_at = now
    if user.email_verified_at is None:
        user.email_verified_at = now
    user.last_login_at = now
    db.commit()
    db.refresh(user)

    logger.info("Email verified", extra=build_log_context(user_id=user.id))
    return user, create_session_token(user.id, user.token_version)


# =============================================================================
# Sign-up / sign-in
# =============================================================================

def sign_up(
    db: Session,
    *,
    email: str,
    password: str,
    confirm_password: str | None,
    full_name: str,
    organization_name: str,
    abn: str | None = None,
    phone: str | None = None,
    plan: str | None = None,
) -> tuple[User, str]:
    """
    Register a user and stage their organization for post-verification setup.

    Returns:
        (user, verification_code)

    Raises:
        AuthError: invalid input or email already registered
        provisioning_service.FieldError: invalid organization details
    """
    normalized_email = normalize_email(email)
    if not normalized_email or "@" not in normalized_email:
        raise AuthError("invalid_email", "Please enter a valid email address", field="email")
    if len(password) < settings.MIN_PASSWORD_LENGTH:
        raise AuthError(
            "weak_password",
            f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters",
            field="password",
        )
    if confirm_password is not None and confirm_password != password:
        raise AuthError("password_mismatch", "Passwords do not match", field="confirmPassword")

    details = provisioning_service.validate_details(
        organization_name, full_name, abn=abn, phone=phone, plan=plan
    )

    if get_user_by_email(db, normalized_email) is not None:
        raise AuthError(
            "user_exists",
            "An account with this email already exists. Please sign in instead.",
            field="email",
        )

    user = User(
        email=normalized_email,
        password_hash=hash_password(password),
        full_name=normalize_optional(full_name),
    )
    db.add(user)
    try:
        db.flush()
        provisioning_service.save_intent(db, user, details)
        code = issue_verification_code(db, user)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AuthError(
            "user_exists",
            "An account with this email already exists. Please sign in instead.",
            field="email",
        ) from exc

    db.refresh(user)
    logger.info("User signed up", extra=build_log_context(user_id=user.id))
    return user, code


def sign_in(db: Session, email: str, password: str) -> tuple[User, str]:
    """
    Password sign-in.

    Raises:
        AuthError: invalid_credentials / email_not_verified / account_disabled
    """
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthError("invalid_credentials", "Invalid email or password")
    if not user.is_active:
        raise AuthError("account_disabled", "Account is disabled")
    if not user.is_verified:
        raise AuthError(
            "email_not_verified",
            "Please confirm your email address before signing in",
        )

    user.last_login_at = utcnow()
    db.commit()
    return user, create_session_token(user.id, user.token_version)


def resend_confirmation(db: Session, email: str) -> None:
    """Issue a fresh code for an unverified user. Silent for unknown or verified emails."""
    user = get_user_by_email(db, email)
    if user is None or user.is_verified or not user.is_active:
        return
    code = issue_verification_code(db, user)
    db.commit()
    send_verification_email(user, code)


def revoke_sessions(db: Session, user: User) -> None:
    user.token_version += 1
    db.commit()
