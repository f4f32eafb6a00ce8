"""Pydantic schemas for API request/response models."""

from swivel.schemas.auth import (
    MeResponse,
    ResendConfirmationRequest,
    SigninRequest,
    SignupRequest,
    UserSession,
)
from swivel.schemas.client import ClientCreate, ClientRead
from swivel.schemas.form_config import (
    FormConfigWrite,
    FormField,
    FormSection,
    InputField,
    RenderedField,
    RenderedSection,
    SelectField,
)
from swivel.schemas.org import (
    CreateOrganizationRequest,
    CreateOrganizationResponse,
    OrgRead,
    SetupResponse,
)
