"""Client service - intake records captured through the organization's form."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from swivel.core.structured_logging import build_log_context
from swivel.db.models import Client
from swivel.services import form_config_service, form_render_service
from swivel.utils import PaginationParams, paginate_query

logger = logging.getLogger(__name__)

# Always captured regardless of form configuration
IDENTITY_FIELDS = ("first_name", "last_name")


def list_clients(db: Session, org_id: UUID, pagination: PaginationParams) -> tuple[list[Client], int]:
    query = (
        db.query(Client)
        .filter(Client.organization_id == org_id)
        .order_by(Client.last_name, Client.first_name)
    )
    return paginate_query(query, pagination)


def get_client(db: Session, org_id: UUID, client_id: UUID) -> Client | None:
    return (
        db.query(Client)
        .filter(Client.organization_id == org_id, Client.id == client_id)
        .first()
    )


def create_client(
    db: Session,
    org_id: UUID,
    user_id: UUID,
    values: dict[str, Any],
) -> Client:
    """
    Validate an intake submission against the current form and store it.

    Raises:
        form_render_service.SubmissionInvalid: Field failed validation
    """
    config, _ = form_config_service.get_config(db, org_id)
    cleaned = form_render_service.validate_submission(config, values)

    # Names come from the raw submission, whatever the form shows
    identity = {}
    for key in IDENTITY_FIELDS:
        value = values.get(key)
        value = value.strip() if isinstance(value, str) else ""
        if not value:
            raise form_render_service.SubmissionInvalid(key, "First name and last name are required")
        identity[key] = value

    client = Client(
        organization_id=org_id,
        first_name=identity["first_name"],
        last_name=identity["last_name"],
        data=cleaned,
        created_by_user_id=user_id,
    )
    db.add(client)
    db.commit()
    db.refresh(client)
    logger.info("Client created", extra=build_log_context(org_id=org_id, user_id=user_id))
    return client
