"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from swivel.db.enums import Role


class UserSession(BaseModel):
    """
    Full session context for authenticated, provisioned requests.

    Returned by the get_current_session dependency; every org-scoped query
    filters by `org_id`.
    """
    user_id: UUID
    org_id: UUID
    role: Role
    email: str
    full_name: str


class SignupRequest(BaseModel):
    """
    Organization sign-up form.

    Names are plain strings here so blank values reach the service and come
    back as field-level errors instead of schema errors.
    """
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, max_length=255)
    password: str
    confirm_password: str | None = Field(default=None, alias="confirmPassword")
    full_name: str = Field(default="", alias="fullName")
    organization_name: str = Field(default="", alias="organizationName")
    abn: str | None = None
    phone: str | None = None
    plan: str | None = None


class SigninRequest(BaseModel):
    email: str
    password: str


class ResendConfirmationRequest(BaseModel):
    email: str


class MeResponse(BaseModel):
    """Response schema for GET /auth/me."""
    user_id: UUID
    email: str
    email_verified: bool
    full_name: str | None
    org_id: UUID | None
    org_name: str | None
    role: Role | None
    subscription_status: str | None
    needs_setup: bool
