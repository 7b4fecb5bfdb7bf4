import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import ROLE_ADMIN, ROLE_RECEPTION, require_roles
from backend.models.client import Client
from backend.models.user import User
from backend.routes.common import database_unavailable, ensure_database_ready, get_db

router = APIRouter(tags=['clients'])

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 50

staff_only = require_roles(ROLE_ADMIN, ROLE_RECEPTION)


def _normalize_optional(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class ClientRequest(BaseModel):
    full_name: str
    contact_method: str
    contact_value: str
    email: str | None = None
    gender: str | None = None
    consent_privacy: bool = True
    consent_promotions: bool = False

    @field_validator('full_name', 'contact_method', 'contact_value')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Field is required.')
        return normalized

    @field_validator('contact_method')
    @classmethod
    def validate_contact_method(cls, value: str) -> str:
        return value.lower()

    @field_validator('email', 'gender')
    @classmethod
    def validate_optional(cls, value: str | None) -> str | None:
        return _normalize_optional(value)


class ClientResponse(BaseModel):
    id: str
    full_name: str
    contact_method: str
    contact_value: str
    email: str | None = None
    gender: str | None = None
    consent_privacy: bool | None = None
    consent_promotions: bool | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def find_client_by_contact(db: Session, contact_method: str, contact_value: str) -> Client | None:
    return (
        db.query(Client)
        .filter(
            Client.contact_method == contact_method,
            func.lower(Client.contact_value) == contact_value.lower(),
        )
        .order_by(Client.created_at.asc())
        .first()
    )


def ensure_client_exists(client_id: str, db: Session) -> None:
    if db.get(Client, client_id) is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Unknown client.',
        )


@router.post('', response_model=ClientResponse)
def register_client(data: ClientRequest, db: Session = Depends(get_db)):
    """Find a client by contact method and value, or create one.

    A returning client keeps their id; name and gender are refreshed from the
    request.
    """
    ensure_database_ready()

    try:
        client = find_client_by_contact(db, data.contact_method, data.contact_value)
        if client is None:
            client = Client(**data.model_dump())
            db.add(client)
            action = 'Registered'
        else:
            client.full_name = data.full_name
            if data.gender is not None:
                client.gender = data.gender
            action = 'Matched'

        db.commit()
        db.refresh(client)

        logger.info('%s client %s via %s', action, client.id, client.contact_method)
        return client
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.get('', response_model=list[ClientResponse])
def search_clients(
    query: str | None = Query(default=None, max_length=200),
    db: Session = Depends(get_db),
    _user: User = Depends(staff_only),
):
    ensure_database_ready()

    try:
        clients = db.query(Client)
        term = (query or '').strip().lower()
        if term:
            pattern = f'%{term}%'
            clients = clients.filter(
                or_(
                    func.lower(Client.full_name).like(pattern),
                    func.lower(Client.email).like(pattern),
                    func.lower(Client.contact_value).like(pattern),
                )
            )
        return clients.order_by(Client.full_name.asc(), Client.id.asc()).limit(MAX_SEARCH_RESULTS).all()
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/{client_id}', response_model=ClientResponse)
def get_client(
    client_id: str,
    db: Session = Depends(get_db),
    _user: User = Depends(staff_only),
):
    ensure_database_ready()

    try:
        client = db.get(Client, client_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc

    if client is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Client not found.',
        )
    return client
