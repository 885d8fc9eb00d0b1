"""
Pytest fixtures shared by the calendar viewer tests.

Google is never contacted: routes get a fixed Config and a fake Calendar
service built with unittest.mock.
"""

from datetime import date
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import app.main as main
from app.config import Config, load_config
from app.services.auth import SessionCodec


@pytest.fixture
def cfg():
    """Configuration with test OAuth client and session secret"""
    return Config(
        google_client_id="test-client-id.apps.googleusercontent.com",
        google_client_secret="test-client-secret",
        session_secret="test-session-secret",
        gcal_id="primary",
        tz="Asia/Tokyo",
        ui_origin="/",
        cookie_domain=None,
        session_max_age=3600,
        log_level="DEBUG",
    )


@pytest.fixture
def client(cfg):
    """TestClient with load_config overridden"""
    main.app.dependency_overrides[load_config] = lambda: cfg
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def session_cookie(cfg):
    """A valid encrypted session cookie value"""
    return SessionCodec(cfg.session_secret, cfg.session_max_age).encode("ya29.test-access-token")


@pytest.fixture
def fixed_today(monkeypatch):
    """Pin the router's notion of today to 2025-11-15"""
    today = date(2025, 11, 15)
    monkeypatch.setattr(main, "today_in", lambda tzname: today)
    return today


@pytest.fixture
def google_items():
    """Raw items as returned by events.list"""
    return [
        {
            "id": "evt-allday",
            "summary": "Conference",
            "status": "confirmed",
            "start": {"date": "2025-11-03"},
            "end": {"date": "2025-11-05"},
        },
        {
            "id": "evt-timed",
            "summary": "Standup",
            "location": "Room 4",
            "status": "confirmed",
            "start": {"dateTime": "2025-11-10T10:00:00+09:00", "timeZone": "Asia/Tokyo"},
            "end": {"dateTime": "2025-11-10T10:15:00+09:00", "timeZone": "Asia/Tokyo"},
        },
    ]


@pytest.fixture
def fake_service(monkeypatch, google_items):
    """Replace build_service in the router with a MagicMock Calendar service"""
    service = MagicMock()
    service.events.return_value.list.return_value.execute.return_value = {"items": google_items}
    tokens = []

    def _build(token):
        tokens.append(token)
        return service

    monkeypatch.setattr(main, "build_service", _build)
    service.tokens = tokens
    return service
