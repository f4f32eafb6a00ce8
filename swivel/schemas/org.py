"""Organization and provisioning schemas.

Request bodies keep the camelCase keys the web client sends.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from swivel.db.enums import ProvisioningStatus


class CreateOrganizationRequest(BaseModel):
    """Body for POST /api/create-organization and POST /auth/complete-setup."""
    model_config = ConfigDict(populate_by_name=True)

    organization_name: str = Field(default="", alias="organizationName")
    full_name: str = Field(default="", alias="fullName")
    abn: str | None = None
    phone: str | None = None
    plan: str | None = None


class CreateOrganizationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    organization_id: UUID = Field(alias="organizationId")


class SetupResponse(BaseModel):
    """Outcome of an ensure-provisioned call from the setup surfaces."""
    model_config = ConfigDict(populate_by_name=True)

    status: ProvisioningStatus
    organization_id: UUID | None = Field(default=None, alias="organizationId")
    redirect_to: str = Field(alias="redirectTo")


class OrgRead(BaseModel):
    id: UUID
    name: str
    abn: str | None
    phone: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
