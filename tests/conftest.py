import json
from datetime import timedelta

import pytest
from sqlmodel import Session

from app.core.clock import utcnow
from app.core.config import Settings
from app.db.models import Appointment, Client, User, UserRole
from app.db.session import create_db_engine, init_db
from app.services.auth.identity import Actor
from app.services.sms import sms_service as sms_module
from app.services.sms.sms_service import SMSService

WIDGET_VERIFY_SUFFIX = "verifyAccessToken"


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


class FakeMSG91:
    """Stands in for requests.post / requests.get against MSG91"""

    def __init__(self):
        self.calls = []
        self.fail_sends = False
        self.widget_ok = True
        self.raise_error = None

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        if self.raise_error is not None:
            raise self.raise_error
        if url.endswith(WIDGET_VERIFY_SUFFIX):
            if self.widget_ok:
                return FakeResponse({"type": "success", "message": "OTP verified"})
            return FakeResponse({"type": "error", "message": "Token already verified"})
        if self.fail_sends:
            return FakeResponse({"type": "error", "message": "Mobile number not valid"}, status_code=400)
        return FakeResponse({"type": "success", "request_id": f"req-{len(self.calls)}"})

    def get(self, url, headers=None, timeout=None):
        self.calls.append({"url": url, "json": None, "headers": headers})
        return FakeResponse({"type": "success", "balance": "1500"})

    @property
    def sms_calls(self):
        return [c for c in self.calls if not c["url"].endswith(WIDGET_VERIFY_SUFFIX)]

    @property
    def widget_calls(self):
        return [c for c in self.calls if c["url"].endswith(WIDGET_VERIFY_SUFFIX)]


@pytest.fixture
def config():
    return Settings(
        _env_file=None,
        MSG91_AUTH_KEY="test-auth-key",
        MSG91_TEMPLATE_ID=None,
        MSG91_OTP_TEMPLATE_ID=None,
        JWT_SECRET="test-secret",
        ADMIN_PHONE="9000000001",
    )


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def msg91(monkeypatch):
    fake = FakeMSG91()
    monkeypatch.setattr(sms_module.requests, "post", fake.post)
    monkeypatch.setattr(sms_module.requests, "get", fake.get)
    return fake


@pytest.fixture
def sms(session, config, msg91):
    return SMSService(session, config)


@pytest.fixture
def admin(session):
    user = User(email="admin@concreexpo.test", name="Asha Admin", phone="9000000001", role=UserRole.ADMIN)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def engineer(session):
    user = User(email="ravi@concreexpo.test", name="Ravi Kumar", phone="9812345670", role=UserRole.ENGINEER)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def other_engineer(session):
    user = User(email="meena@concreexpo.test", name="Meena Rao", phone="9812345671", role=UserRole.ENGINEER)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def client_record(session):
    client = Client(name="Skyline Towers", address="12 MG Road, Pune", primary_contact="9876543210")
    session.add(client)
    session.commit()
    session.refresh(client)
    return client


@pytest.fixture
def admin_actor(admin):
    return Actor(user_id=admin.id, role=UserRole.ADMIN)


@pytest.fixture
def engineer_actor(engineer):
    return Actor(user_id=engineer.id, role=UserRole.ENGINEER)


@pytest.fixture
def other_engineer_actor(other_engineer):
    return Actor(user_id=other_engineer.id, role=UserRole.ENGINEER)


@pytest.fixture
def make_appointment(session, engineer, client_record):
    def _make(**overrides):
        fields = {
            "engineer_id": engineer.id,
            "client_id": client_record.id,
            "visit_date": utcnow() + timedelta(days=1),
            "purpose": "Floor inspection",
        }
        fields.update(overrides)
        appointment = Appointment(**fields)
        session.add(appointment)
        session.commit()
        session.refresh(appointment)
        return appointment

    return _make
