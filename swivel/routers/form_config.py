"""Form configuration router - the organization's intake form document."""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from swivel.core.deps import get_current_session, get_db, require_csrf_header
from swivel.schemas.auth import UserSession
from swivel.schemas.form_config import FormConfigWrite, RenderedSection
from swivel.services import form_config_service, form_render_service

router = APIRouter(tags=["form-config"])

CONFIG_VERSION_HEADER = "X-Config-Version"


@router.get("/form-config")
def get_form_config(
    response: Response,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Stored document for the caller's organization, or the default.

    The version is returned in X-Config-Version (0 for the default) so
    editors can send it back as expected_version.
    """
    config, version = form_config_service.get_config(db, session.org_id)
    response.headers[CONFIG_VERSION_HEADER] = str(version)
    return config


@router.post(
    "/form-config",
    dependencies=[Depends(require_csrf_header)],
)
def save_form_config(
    body: FormConfigWrite,
    response: Response,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Replace the whole document. Any member of the organization may save."""
    try:
        stored = form_config_service.put_config(
            db,
            session.org_id,
            body.config,
            user_id=session.user_id,
            expected_version=body.expected_version,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except form_config_service.ConfigVersionConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except form_config_service.ConfigWriteFailed as exc:
        raise HTTPException(status_code=500, detail=str(exc))

    response.headers[CONFIG_VERSION_HEADER] = str(stored.current_version)
    return {"success": True, "version": stored.current_version}


@router.get("/form-config/rendered", response_model=list[RenderedSection])
def get_rendered_form(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Enabled sections and fields only, for intake pages."""
    config, _ = form_config_service.get_config(db, session.org_id)
    return form_render_service.render_form(config)
