"""
Tests for the in-memory event store: seeding, DataFrame conversion and the
JSON export round-trip.
"""

import base64
import json

import pandas as pd
import polars as pl
import pytest

from conftest import NOW, make_event
from core import EventStore, MalformedPayloadError
from core.event_store import SEED_WINDOW_MS


class TestSeeding:
    def test_seed_fixture_sizes(self, seeded_store):
        assert len(seeded_store) == 450 + 280 + 120 + 65

        by_path = {}
        for event in seeded_store:
            by_path[(event.path, event.type)] = by_path.get((event.path, event.type), 0) + 1
        assert by_path == {
            ("/home", "pageview"): 450,
            ("/pricing", "pageview"): 280,
            ("/signup", "signup_start"): 120,
            ("/checkout/success", "purchase_complete"): 65,
        }

    def test_seed_timestamps_within_trailing_week(self, seeded_store):
        assert all(NOW - SEED_WINDOW_MS <= e.timestamp <= NOW for e in seeded_store)

    def test_seed_metadata_follows_index_rules(self, seeded_store):
        home = [e for e in seeded_store if e.path == "/home"]
        # index 0: Firefox / Linux / mobile; index 1: Chrome / MacOS / desktop
        assert (home[0].metadata.browser, home[0].metadata.os, home[0].metadata.device) == (
            "Firefox",
            "Linux",
            "mobile",
        )
        assert (home[1].metadata.browser, home[1].metadata.os, home[1].metadata.device) == (
            "Chrome",
            "MacOS",
            "desktop",
        )
        assert home[3].metadata.browser == "Safari"
        assert home[2].metadata.os == "Windows"
        assert all(e.metadata.session_id for e in seeded_store)

    def test_seed_is_reproducible(self):
        first = EventStore(seed=7).seed(now=NOW)
        second = EventStore(seed=7).seed(now=NOW)
        assert first == second

    def test_ids_are_base36(self, seeded_store):
        for event in list(seeded_store)[:50]:
            assert len(event.id) == 9
            assert event.id.isalnum() and event.id == event.id.lower()


class TestStoreOperations:
    def test_preserves_order(self):
        first, second = make_event(path="/a"), make_event(path="/b")
        store = EventStore([first, second])
        assert store.events == (first, second)
        assert list(store) == [first, second]

    @pytest.mark.parametrize("engine, frame_type", [("polars", pl.DataFrame), ("pandas", pd.DataFrame)])
    def test_to_dataframe(self, seeded_store, engine, frame_type):
        df = seeded_store.to_dataframe(engine)
        assert isinstance(df, frame_type)
        assert df.shape[0] == len(seeded_store)
        assert "session_id" in df.columns and "load_time" in df.columns

    def test_to_dataframe_rejects_unknown_engine(self, seeded_store):
        with pytest.raises(ValueError):
            seeded_store.to_dataframe("duckdb")


class TestExport:
    def test_round_trip_preserves_events(self, seeded_store):
        exported = seeded_store.export_json()
        restored = EventStore().load_json(exported)
        assert restored == seeded_store.events

    def test_round_trip_preserves_field_set_and_types(self, seeded_store):
        original = json.loads(seeded_store.export_json())
        again = json.loads(EventStore(EventStore().load_json(seeded_store.export_json())).export_json())
        for before, after in zip(original, again):
            assert before.keys() == after.keys()
            assert {k: type(v) for k, v in before["metadata"].items()} == {
                k: type(v) for k, v in after["metadata"].items()
            }

    def test_export_uses_wire_field_names(self):
        store = EventStore([make_event(session_id="s1", load_time=900.0)])
        record = json.loads(store.export_json())[0]
        assert record["metadata"]["sessionId"] == "s1"
        assert record["metadata"]["loadTime"] == 900.0
        assert "duration" not in record["metadata"]

    def test_load_rejects_invalid_json(self):
        with pytest.raises(MalformedPayloadError):
            EventStore().load_json("{not json")

    def test_load_rejects_non_list(self):
        with pytest.raises(MalformedPayloadError):
            EventStore().load_json('{"id": "x"}')

    def test_load_rejects_incomplete_record(self):
        with pytest.raises(MalformedPayloadError):
            EventStore().load_json('[{"id": "x"}]')

    def test_download_link_embeds_export(self):
        store = EventStore([make_event()])
        link = store.create_download_link("events.json")
        encoded = link.split("base64,")[1].split('"')[0]
        assert base64.b64decode(encoded).decode() == store.export_json()
        assert 'download="events.json"' in link
