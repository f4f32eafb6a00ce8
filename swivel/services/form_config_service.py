"""Form configuration service - organization-scoped intake form schema.

Read is fetch-or-default: an organization without a stored document gets
DEFAULT_FORM_CONFIG, and a stored document is returned verbatim (it fully
replaces the default, no merging). Write validates the whole document and
replaces it atomically. Saves are last-writer-wins unless the caller passes
`expected_version`.
"""

import copy
import logging
from typing import Any
from uuid import UUID

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from swivel.core.structured_logging import build_log_context
from swivel.db.models import FormConfiguration
from swivel.schemas.form_config import FormSection

logger = logging.getLogger(__name__)


DEFAULT_FORM_CONFIG: list[dict[str, Any]] = [
    {
        "section": "Personal Information",
        "enabled": True,
        "fields": [
            {"name": "first_name", "label": "First Name", "type": "text", "required": True},
            {"name": "last_name", "label": "Last Name", "type": "text", "required": True},
        ],
    },
    {
        "section": "Health & Support Information",
        "enabled": True,
        "fields": [
            {"name": "allergies", "label": "Allergies", "type": "textarea"},
        ],
    },
    {
        "section": "Funding Information",
        "enabled": True,
        "fields": [
            {
                "name": "funding_source",
                "label": "Funding Source",
                "type": "select",
                "options": ["NDIS", "Private"],
            },
        ],
    },
]

# Version reported for an organization still on the built-in default
DEFAULT_CONFIG_VERSION = 0

_sections_adapter = TypeAdapter(list[FormSection])


class ConfigWriteFailed(Exception):
    """Backend rejected the save; message is the backend error."""


class ConfigVersionConflict(Exception):
    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Form configuration was changed by someone else (expected version {expected}, "
            f"current version {actual}). Reload and try again."
        )
        self.expected = expected
        self.actual = actual


def default_config() -> list[dict[str, Any]]:
    return copy.deepcopy(DEFAULT_FORM_CONFIG)


def get_form_configuration(db: Session, org_id: UUID) -> FormConfiguration | None:
    return (
        db.query(FormConfiguration)
        .filter(FormConfiguration.organization_id == org_id)
        .first()
    )


def get_config(db: Session, org_id: UUID) -> tuple[list[Any], int]:
    """
    Get the organization's form document and its version.

    Read failures fall back to the default so intake pages stay usable.

    Returns:
        (config, version); version is 0 for the built-in default
    """
    try:
        stored = get_form_configuration(db, org_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Form config read failed, serving default", extra=build_log_context(org_id=org_id))
        return default_config(), DEFAULT_CONFIG_VERSION

    if stored is None:
        logger.debug("No form config for organization, serving default", extra=build_log_context(org_id=org_id))
        return default_config(), DEFAULT_CONFIG_VERSION
    return stored.config, stored.current_version


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid value").removeprefix("Value error, ")
    return f"{location}: {message}" if location else message


def validate_config(config: list[Any]) -> list[FormSection]:
    """
    Validate a form document.

    Raises:
        ValueError: Human-readable description of the first problem
    """
    try:
        return _sections_adapter.validate_python(config)
    except ValidationError as exc:
        raise ValueError(_describe_validation_error(exc)) from exc


def put_config(
    db: Session,
    org_id: UUID,
    config: list[Any],
    *,
    user_id: UUID | None = None,
    expected_version: int | None = None,
) -> FormConfiguration:
    """
    Replace the organization's form document (insert-or-replace).

    The document is stored exactly as submitted once it validates.

    Raises:
        ValueError: Document invalid
        ConfigVersionConflict: expected_version given and stale
        ConfigWriteFailed: Backend error
    """
    validate_config(config)
    document = copy.deepcopy(config)
    current_version = DEFAULT_CONFIG_VERSION

    try:
        stored = get_form_configuration(db, org_id)
        current_version = stored.current_version if stored else DEFAULT_CONFIG_VERSION
        if expected_version is not None and expected_version != current_version:
            raise ConfigVersionConflict(expected_version, current_version)

        if stored is None:
            stored = FormConfiguration(
                organization_id=org_id,
                config=document,
                current_version=1,
                updated_by_user_id=user_id,
            )
            db.add(stored)
        else:
            stored.config = document
            stored.current_version += 1
            stored.updated_by_user_id = user_id
        db.commit()
    except IntegrityError as exc:
        # Another writer inserted first; last writer wins unless versioned
        db.rollback()
        if expected_version is not None:
            raise ConfigVersionConflict(expected_version, current_version + 1) from exc
        stored = get_form_configuration(db, org_id)
        if stored is None:
            raise ConfigWriteFailed(str(exc.orig or exc)) from exc
        stored.config = document
        stored.current_version += 1
        stored.updated_by_user_id = user_id
        try:
            db.commit()
        except SQLAlchemyError as retry_exc:
            db.rollback()
            raise ConfigWriteFailed(str(getattr(retry_exc, "orig", None) or retry_exc)) from retry_exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Form config write failed: %s", exc, extra=build_log_context(org_id=org_id))
        raise ConfigWriteFailed(str(getattr(exc, "orig", None) or exc)) from exc

    db.refresh(stored)
    logger.info(
        "Form config saved",
        extra={**build_log_context(org_id=org_id, user_id=user_id), "version": stored.current_version},
    )
    return stored
