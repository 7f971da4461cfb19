from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.erp import ErpConfig, OdysseyErpGateway
from app.main import app, get_erp_gateway, get_session
from app.models import Base, QRCodeDefinition


@pytest.fixture(scope="function")
def engine():
    eng = create_engine(
        "sqlite:///:memory:", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture(scope="function")
def session(session_factory):
    with session_factory() as sess:
        yield sess


@pytest.fixture(scope="function")
def seeded_qr_codes(session):
    session.add_all(
        [
            QRCodeDefinition(code="QR-M1-START", event_type="START", equipment_number="M1", active=True),
            QRCodeDefinition(code="QR-M1-STOP", event_type="STOP", equipment_number="M1", active=True),
            QRCodeDefinition(code="QR-ANY-START", event_type="START", equipment_number=None, active=True),
            QRCodeDefinition(code="QR-RETIRED", event_type="STOP", equipment_number="M1", active=False),
        ]
    )
    session.commit()
    yield session


class FakeClock:
    """Returns a pinned timestamp that tests move forward with ``set``."""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 6, 0, 0)):
        self.now = start

    def set(self, value: datetime) -> None:
        self.now = value

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="function")
def client(session_factory):
    def _get_test_session():
        with session_factory() as s:
            yield s

    gateway = OdysseyErpGateway(ErpConfig(base_url="https://erp.test", company_id="ACME"))
    app.dependency_overrides[get_session] = _get_test_session
    app.dependency_overrides[get_erp_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
