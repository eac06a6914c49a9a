"""
Test Configuration and Fixtures for LiteTrack Analytics
=======================================================

Central fixtures shared by the test modules:
- Event factories with controlled paths, types, sessions and timestamps
- The canonical funnel scenario (450 / 280 / 120 / 65)
- App stores wired with a mocked HTTP session and a synchronous status timer
"""

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import Mock

import pytest
import requests

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core import AppState, AppStore, DashboardConfig, EventStore, StatusTimer
from models import AnalyticsEvent, EventMetadata

logging.basicConfig(level=logging.WARNING)

NOW = int(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc).timestamp() * 1000)
TARGET_URL = "https://collector.example.com/api/collect"


def make_event(
    path: str = "/home",
    event_type: str = "pageview",
    timestamp: int = NOW,
    browser: str = "Chrome",
    os_name: str = "MacOS",
    device: str = "desktop",
    country: Optional[str] = None,
    session_id: Optional[str] = None,
    duration: Optional[float] = None,
    load_time: Optional[float] = None,
    event_id: Optional[str] = None,
) -> AnalyticsEvent:
    make_event.counter += 1
    return AnalyticsEvent(
        id=event_id or f"evt{make_event.counter:06d}",
        type=event_type,
        path=path,
        referrer="direct",
        timestamp=timestamp,
        metadata=EventMetadata(
            browser=browser,
            os=os_name,
            device=device,
            country=country,
            session_id=session_id,
            duration=duration,
            load_time=load_time,
        ),
    )


make_event.counter = 0


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to"""

    created: list["FakeTimer"] = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def is_alive(self):
        return self.started and not self.cancelled

    def fire(self):
        if not self.cancelled:
            self.function()


@pytest.fixture
def event_factory():
    return make_event


@pytest.fixture
def funnel_scenario_events():
    """450 /home pageviews, 280 /pricing pageviews, 120 signup_start, 65 purchase_complete"""
    events = []
    for count, path, event_type in [
        (450, "/home", "pageview"),
        (280, "/pricing", "pageview"),
        (120, "/signup", "signup_start"),
        (65, "/checkout/success", "purchase_complete"),
    ]:
        events.extend(make_event(path=path, event_type=event_type) for _ in range(count))
    return events


@pytest.fixture
def seeded_store():
    store = EventStore(seed=42)
    store.seed(now=NOW)
    return store


@pytest.fixture
def fake_timer():
    FakeTimer.created = []
    return FakeTimer


@pytest.fixture
def status_timer(fake_timer):
    return StatusTimer(timer_factory=fake_timer)


@pytest.fixture
def mock_session():
    session = Mock(spec=requests.Session)
    session.post.return_value = Mock(status_code=200, reason="OK")
    return session


@pytest.fixture
def app_store():
    return AppStore(AppState(config=DashboardConfig(target_url=TARGET_URL)))
