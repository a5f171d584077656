import json
import os
from datetime import datetime

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_ENABLED"] = "false"
os.environ["EVENT_RETENTION_ENABLED"] = "false"
os.environ["LINEAR_USE_MOCK_DATA"] = "false"

import pytest
from fastapi.testclient import TestClient

from app.core import database
from app.core.config import get_settings
from app.core.database import get_db
from app.main import app
from app.models.db_models import Base, Connector, Device, Event, Organization
from app.services.automation_service import automation_service
from app.services.event_streams import event_stream_registry


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, json_data=None, text=None, reason="OK"):
        self.status_code = status_code
        self._json = json_data
        self.text = text if text is not None else (json.dumps(json_data) if json_data is not None else "")
        self.reason = reason
        self.headers = {}

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        event_stream_registry.reset()


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    monkeypatch.setattr(automation_service, "initial_delay_ms", 0)
    monkeypatch.setattr(automation_service, "max_delay_ms", 0)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def organization(db_session):
    org = Organization(id="org-1", name="Acme Security", slug="acme")
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture
def make_connector(db_session, organization):
    def _make(category="yolink", name=None, config=None, organization_id=None, events_enabled=False):
        if config is None:
            config = {
                "yolink": {"uaid": "ua-1", "clientSecret": "secret-1"},
                "piko": {"type": "cloud", "username": "user@example.com", "password": "pw", "selectedSystem": "sys-1"},
                "genea": {"apiKey": "genea-key"},
            }.get(category, {})
        connector = Connector(
            organization_id=organization_id or organization.id,
            category=category,
            name=name or f"{category} connector",
            cfg_enc=config if isinstance(config, str) else json.dumps(config),
            events_enabled=events_enabled
        )
        db_session.add(connector)
        db_session.commit()
        return connector
    return _make


@pytest.fixture
def make_device(db_session):
    def _make(connector, device_id, name=None, raw_type="DoorSensor", device_type="Sensor",
              subtype="Contact", status=None, security=True, raw=None):
        device = Device(
            connector_id=connector.id,
            device_id=device_id,
            name=name or device_id,
            type=raw_type,
            standardized_device_type=device_type,
            standardized_device_subtype=subtype,
            status=status,
            is_security_device=security,
            raw_device_data=raw
        )
        db_session.add(device)
        db_session.commit()
        return device
    return _make


@pytest.fixture
def make_event(db_session):
    counter = {"n": 0}

    def _make(connector, device_id, timestamp=None, category="DEVICE_STATE", event_type="STATE_CHANGED",
              payload=None, event_uuid=None):
        counter["n"] += 1
        event = Event(
            event_uuid=event_uuid or f"evt-{counter['n']:04d}",
            timestamp=timestamp or datetime.utcnow(),
            connector_id=connector.id,
            device_id=device_id,
            standardized_event_category=category,
            standardized_event_type=event_type,
            standardized_payload=payload if payload is not None else {},
        )
        db_session.add(event)
        db_session.commit()
        return event
    return _make
