"""Clients router - intake records for the caller's organization."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from swivel.core.deps import get_current_session, get_db, require_csrf_header
from swivel.schemas.auth import UserSession
from swivel.schemas.client import ClientCreate, ClientListResponse, ClientRead
from swivel.services import client_service
from swivel.services.form_render_service import SubmissionInvalid
from swivel.utils import PaginationParams, get_pagination

router = APIRouter(tags=["clients"])


@router.get("/clients", response_model=ClientListResponse)
def list_clients(
    pagination: PaginationParams = Depends(get_pagination),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    items, total = client_service.list_clients(db, session.org_id, pagination)
    return ClientListResponse(
        items=[ClientRead.model_validate(item) for item in items],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.page_count(total),
    )


@router.post(
    "/clients",
    response_model=ClientRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
def create_client(
    body: ClientCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Submit the intake form; values are checked against the rendered form."""
    try:
        return client_service.create_client(db, session.org_id, session.user_id, body.values)
    except SubmissionInvalid as exc:
        return JSONResponse(status_code=422, content={"error": str(exc), "field": exc.field})


@router.get("/clients/{client_id}", response_model=ClientRead)
def get_client(
    client_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    client = client_service.get_client(db, session.org_id, client_id)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return client
