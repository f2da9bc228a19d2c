import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from core.db import Base, build_engine, get_db
from core.identity import Actor
from schemas.order import OrderCreate
from security import jwt as jwt_utils
from services import email as email_service
from services import orders as order_service
from services.order_store import OrderStore
from tests.factories import CUSTOMER, order_payload


@pytest.fixture()
def db_session_override():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def mock_email_send(monkeypatch):
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(db_session_override):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def db(db_session_override):
    return db_session_override


@pytest.fixture()
def store(db):
    return OrderStore(db)


@pytest.fixture()
def pending_order(store):
    """Checkout through the service: 100 items + 8 tax + 5 shipping - 10 discount."""
    return order_service.create_order(store, CUSTOMER, OrderCreate(**order_payload()))


@pytest.fixture()
def auth_headers():
    def _headers(actor: Actor) -> dict:
        token = jwt_utils.create_access_token(actor.user_id, role=actor.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers
