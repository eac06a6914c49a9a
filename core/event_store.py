"""
Event Store Module for LiteTrack Analytics
==========================================

This module contains the EventStore class responsible for:
- Holding the ordered, in-memory list of analytics events
- Seeding synthetic demo traffic for the conversion funnel
- DataFrame conversion for the aggregation engines
- JSON export/import of the full event list

Classes:
    EventStore: In-memory event container

Usage:
    from core.event_store import EventStore
    store = EventStore()
    store.seed()
"""

import base64
import json
import logging
import math
import time
from collections.abc import Iterable, Iterator
from functools import wraps
from typing import Optional

import numpy as np
import pandas as pd
import polars as pl

from models import AnalyticsEvent, EventMetadata

from .errors import MalformedPayloadError

SEED_WINDOW_MS = 7 * 24 * 60 * 60 * 1000

# (count, path, type) triples making up the demo funnel
SEED_FUNNEL = [
    (450, "/home", "pageview"),
    (280, "/pricing", "pageview"),
    (120, "/signup", "signup_start"),
    (65, "/checkout/success", "purchase_complete"),
]

SEED_COUNTRIES = ["US", "UK", "DE", "FR", "CA"]
SEED_COUNTRY_WEIGHTS = [0.4, 0.2, 0.15, 0.15, 0.1]
SEED_SESSION_POOL = 300

_ID_ALPHABET = list("0123456789abcdefghijklmnopqrstuvwxyz")

EVENT_COLUMNS = [
    "id",
    "type",
    "path",
    "referrer",
    "timestamp",
    "browser",
    "os",
    "device",
    "country",
    "session_id",
    "duration",
    "load_time",
]


def generate_event_id(rng: Optional[np.random.Generator] = None, length: int = 9) -> str:
    """Random base-36 identifier; uniqueness is not enforced"""
    rng = rng or np.random.default_rng()
    return "".join(rng.choice(_ID_ALPHABET, size=length))


def now_ms() -> int:
    return int(time.time() * 1000)


def _event_store_performance_monitor(func_name: str):
    """Decorator for monitoring EventStore function performance"""

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            start_time = time.time()
            try:
                result = func(self, *args, **kwargs)
                execution_time = time.time() - start_time
                self.logger.debug(f"{func_name} executed in {execution_time:.4f} seconds")
                return result
            except Exception as e:
                execution_time = time.time() - start_time
                self.logger.error(
                    f"{func_name} failed after {execution_time:.4f} seconds: {str(e)}"
                )
                raise

        return wrapper

    return decorator


class EventStore:
    """Ordered in-memory sequence of analytics events.

    Used to seed, import and export event lists; the live list is owned by
    `AppStore` and changes only through its actions.
    """

    def __init__(self, events: Optional[Iterable[AnalyticsEvent]] = None, seed: Optional[int] = None):
        self.logger = logging.getLogger(__name__)
        self._rng = np.random.default_rng(seed)
        self._events: tuple[AnalyticsEvent, ...] = tuple(events or ())

    @property
    def events(self) -> tuple[AnalyticsEvent, ...]:
        return self._events

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[AnalyticsEvent]:
        return iter(self._events)

    @_event_store_performance_monitor("seed")
    def seed(self, now: Optional[int] = None) -> tuple[AnalyticsEvent, ...]:
        """Replace the store contents with synthetic demo traffic"""
        now = now if now is not None else now_ms()
        session_ids = [generate_event_id(self._rng, 12) for _ in range(SEED_SESSION_POOL)]

        seeded = []
        for count, path, event_type in SEED_FUNNEL:
            for i in range(count):
                metadata = EventMetadata(
                    browser="Firefox" if i % 5 == 0 else "Safari" if i % 3 == 0 else "Chrome",
                    os="Linux" if i % 4 == 0 else "Windows" if i % 2 == 0 else "MacOS",
                    device="mobile" if i % 3 == 0 else "desktop",
                    country=str(self._rng.choice(SEED_COUNTRIES, p=SEED_COUNTRY_WEIGHTS)),
                    session_id=session_ids[int(self._rng.integers(0, SEED_SESSION_POOL))],
                    duration=round(float(self._rng.exponential(60.0)), 1),
                    load_time=round(float(self._rng.normal(1200.0, 250.0)), 0),
                )
                seeded.append(
                    AnalyticsEvent(
                        id=generate_event_id(self._rng),
                        type=event_type,
                        path=path,
                        referrer="direct",
                        timestamp=now - int(self._rng.integers(0, SEED_WINDOW_MS)),
                        metadata=metadata,
                    )
                )

        self._events = tuple(seeded)
        self.logger.info(f"Seeded event store with {len(seeded)} synthetic events")
        return self._events

    def to_dataframe(self, engine: str = "polars"):
        """Flatten events into a DataFrame for the given engine ("polars" or "pandas")"""
        return events_to_dataframe(self._events, engine)

    def export_json(self) -> str:
        """Serialize the full event list to a single JSON document"""
        return json.dumps([event.to_dict() for event in self._events], indent=2)

    def load_json(self, text: str) -> tuple[AnalyticsEvent, ...]:
        """Replace the store contents with events parsed from an export document"""
        self._events = parse_events_json(text)
        self.logger.info(f"Loaded {len(self._events)} events from JSON")
        return self._events

    def create_download_link(self, filename: str = "litetrack-events.json") -> str:
        """Create download link for the exported event list"""
        b64 = base64.b64encode(self.export_json().encode()).decode()
        return f'<a href="data:application/json;base64,{b64}" download="{filename}">Download Events</a>'


def parse_events_json(text: str) -> tuple[AnalyticsEvent, ...]:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError(f"Event export is not valid JSON: {e}") from e

    if not isinstance(raw, list):
        raise MalformedPayloadError("Event export must be a JSON array")

    try:
        return tuple(AnalyticsEvent.from_dict(item) for item in raw)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MalformedPayloadError(f"Event export has an invalid record: {e}") from e


def _measurement(value: Optional[float]) -> Optional[float]:
    # NaN is treated as missing so both engines skip it
    if value is None or math.isnan(float(value)):
        return None
    return float(value)


def _event_rows(events: Iterable[AnalyticsEvent]) -> list[dict]:
    return [
        {
            "id": e.id,
            "type": e.type,
            "path": e.path,
            "referrer": e.referrer,
            "timestamp": e.timestamp,
            "browser": e.metadata.browser,
            "os": e.metadata.os,
            "device": e.metadata.device,
            "country": e.metadata.country,
            "session_id": e.metadata.session_id,
            "duration": _measurement(e.metadata.duration),
            "load_time": _measurement(e.metadata.load_time),
        }
        for e in events
    ]


def events_to_dataframe(events: Iterable[AnalyticsEvent], engine: str = "polars"):
    """Flatten events (metadata promoted to columns) into a Polars or Pandas DataFrame"""
    rows = _event_rows(events)
    if engine == "polars":
        schema = {
            "id": pl.Utf8,
            "type": pl.Utf8,
            "path": pl.Utf8,
            "referrer": pl.Utf8,
            "timestamp": pl.Int64,
            "browser": pl.Utf8,
            "os": pl.Utf8,
            "device": pl.Utf8,
            "country": pl.Utf8,
            "session_id": pl.Utf8,
            "duration": pl.Float64,
            "load_time": pl.Float64,
        }
        return pl.DataFrame(rows, schema=schema)
    if engine == "pandas":
        df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
        df["timestamp"] = df["timestamp"].astype("int64")
        df["duration"] = df["duration"].astype("float64")
        df["load_time"] = df["load_time"].astype("float64")
        return df
    raise ValueError(f"Unsupported engine: {engine}")
