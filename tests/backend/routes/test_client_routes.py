import os

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models.client import Client  # noqa: E402
from backend.routes.client_routes import (  # noqa: E402
    ClientRequest,
    ensure_client_exists,
    get_client,
    register_client,
    search_clients,
)


@pytest.fixture
def client_db(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('backend.routes.client_routes.ensure_database_ready', lambda: None)

    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def _request(**overrides) -> ClientRequest:
    payload = {
        'full_name': 'Made Sari',
        'contact_method': 'whatsapp',
        'contact_value': '+62811000001',
    }
    payload.update(overrides)
    return ClientRequest(**payload)


def test_client_request_normalizes_fields() -> None:
    request = _request(full_name='  Made Sari ', contact_method=' WhatsApp ', email='  ')

    assert request.full_name == 'Made Sari'
    assert request.contact_method == 'whatsapp'
    assert request.email is None


def test_client_request_requires_contact_value() -> None:
    with pytest.raises(ValidationError):
        _request(contact_value='   ')


def test_register_client_creates_new_client(client_db) -> None:
    client = register_client(_request(gender='female'), db=client_db)

    assert client.id
    assert client.full_name == 'Made Sari'
    assert client.gender == 'female'
    assert client.consent_privacy is True
    assert client_db.query(Client).count() == 1


def test_register_client_reuses_matching_contact(client_db) -> None:
    first = register_client(_request(contact_value='Sari@Mail.Example', contact_method='email'), db=client_db)

    second = register_client(
        _request(full_name='Made Sari Dewi', contact_value='sari@mail.example', contact_method='email'),
        db=client_db,
    )

    assert second.id == first.id
    assert second.full_name == 'Made Sari Dewi'
    assert client_db.query(Client).count() == 1


def test_register_client_keeps_different_contact_methods_apart(client_db) -> None:
    register_client(_request(contact_method='whatsapp'), db=client_db)
    register_client(_request(contact_method='phone'), db=client_db)

    assert client_db.query(Client).count() == 2


def test_search_clients_matches_name_email_or_contact(client_db) -> None:
    client_db.add_all([
        Client(id='c1', full_name='Made Sari', contact_method='whatsapp', contact_value='+62811000001'),
        Client(id='c2', full_name='Ketut Ari', email='ketut@mail.example', contact_method='phone', contact_value='+62811000002'),
        Client(id='c3', full_name='Nyoman Putu', contact_method='phone', contact_value='+62899000003'),
    ])
    client_db.commit()

    assert [client.id for client in search_clients(query='sari', db=client_db, _user=None)] == ['c1']
    assert [client.id for client in search_clients(query='KETUT@', db=client_db, _user=None)] == ['c2']
    assert [client.id for client in search_clients(query='62811', db=client_db, _user=None)] == ['c2', 'c1']
    assert len(search_clients(query=None, db=client_db, _user=None)) == 3


def test_get_client_returns_not_found_when_missing(client_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_client(client_id='missing', db=client_db, _user=None)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Client not found.'


def test_ensure_client_exists_rejects_unknown_id(client_db) -> None:
    client_db.add(Client(id='c1', full_name='Made Sari', contact_method='whatsapp', contact_value='+62811000001'))
    client_db.commit()

    ensure_client_exists('c1', client_db)
    with pytest.raises(HTTPException) as exception_info:
        ensure_client_exists('c2', client_db)

    assert exception_info.value.status_code == 400
