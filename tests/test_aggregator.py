"""
Tests for dashboard aggregation: headline stats, technical breakdowns,
the conversion funnel, traffic timeline and retention cohorts.
"""

from datetime import datetime, timezone

import pytest

from conftest import NOW, make_event
from core import EventAggregator
from core.aggregator import (
    DEFAULT_AVG_DURATION,
    DEFAULT_AVG_LOAD_TIME,
    build_funnel_report,
    js_round,
)
from models import CategoryCount, DashboardStats, TrafficPoint


def _ms(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


@pytest.fixture(params=[True, False], ids=["polars", "pandas"])
def aggregator(request):
    return EventAggregator(use_polars=request.param)


@pytest.mark.aggregation
class TestFunnel:
    def test_reference_scenario_conversions(self, aggregator, funnel_scenario_events):
        report = aggregator.calculate_funnel(funnel_scenario_events)

        assert report.name == "Conversion Pipeline"
        assert [s.count for s in report.steps] == [450, 280, 120, 65]
        assert [s.conversion for s in report.steps] == [100, 62, 27, 14]
        assert [s.dropoff for s in report.steps] == [0, 38, 57, 46]
        assert [s.step_key for s in report.steps] == ["home", "pricing", "signup", "purchase"]

    def test_seeded_store_matches_reference_scenario(self, aggregator, seeded_store):
        report = aggregator.calculate_funnel(seeded_store.events)
        assert [s.conversion for s in report.steps] == [100, 62, 27, 14]
        assert report.steps[0].dropoff == 0

    def test_type_predicates_count_without_matching_path(self, aggregator):
        events = [
            make_event(path="/home"),
            make_event(path="/landing", event_type="view_pricing_table"),
            make_event(path="/somewhere", event_type="signup_start"),
            make_event(path="/other", event_type="purchase_complete"),
        ]
        report = aggregator.calculate_funnel(events)
        assert [s.count for s in report.steps] == [1, 1, 1, 1]

    def test_unrelated_events_are_ignored(self, aggregator):
        events = [make_event(path="/docs"), make_event(path="/blog/post-1", event_type="click")]
        report = aggregator.calculate_funnel(events)
        assert [s.count for s in report.steps] == [0, 0, 0, 0]

    def test_dropoff_formula_for_later_steps(self):
        counts = [200, 150, 60, 59]
        report = build_funnel_report(counts)
        for idx in range(1, len(counts)):
            expected = js_round((1 - counts[idx] / counts[idx - 1]) * 100)
            assert report.steps[idx].dropoff == max(0, expected)

    def test_dropoff_is_clamped_when_a_step_grows(self):
        report = build_funnel_report([10, 20, 5, 0])
        assert [s.dropoff for s in report.steps] == [0, 0, 75, 100]
        assert [s.conversion for s in report.steps] == [100, 200, 50, 0]

    def test_conversion_is_monotonic_for_nested_counts(self):
        report = build_funnel_report([1000, 731, 402, 17])
        conversions = [s.conversion for s in report.steps]
        assert conversions == sorted(conversions, reverse=True)

    def test_first_step_floor_avoids_division_by_zero(self):
        report = build_funnel_report([0, 3, 0, 0])
        assert [s.conversion for s in report.steps] == [0, 300, 0, 0]
        assert report.steps[1].dropoff == 0

    def test_rounding_is_half_up(self):
        assert js_round(62.5) == 63
        assert js_round(0.5) == 1
        assert js_round(14.444) == 14


@pytest.mark.aggregation
class TestDashboardStats:
    def test_totals_and_active_window(self, aggregator):
        events = [
            make_event(timestamp=NOW),
            make_event(timestamp=NOW - 60_000),
            make_event(timestamp=NOW - 5 * 60_000),
            make_event(timestamp=NOW - 10 * 60_000),
            make_event(timestamp=NOW + 60_000),
        ]
        stats = aggregator.calculate_stats(events, now=NOW)
        assert stats.total_events == 5
        assert stats.active_now == 3

    def test_unique_sessions_use_proxy_when_session_missing(self, aggregator):
        events = [
            make_event(session_id="s1"),
            make_event(session_id="s1", path="/pricing"),
            make_event(session_id="s2"),
            make_event(path="/home"),
            make_event(path="/home/welcome"),
            make_event(path="/home", browser="Firefox"),
        ]
        stats = aggregator.calculate_stats(events, now=NOW)
        # s1, s2, Chrome|MacOS|home, Firefox|MacOS|home
        assert stats.unique_sessions == 4

    def test_averages_over_present_values(self, aggregator):
        events = [
            make_event(duration=30.0, load_time=1000.0),
            make_event(duration=60.0),
            make_event(),
        ]
        stats = aggregator.calculate_stats(events, now=NOW)
        assert stats.avg_duration == 45.0
        assert stats.avg_load_time == 1000.0

    def test_averages_fall_back_when_fields_missing(self, aggregator):
        stats = aggregator.calculate_stats([make_event(), make_event()], now=NOW)
        assert stats.avg_duration == DEFAULT_AVG_DURATION
        assert stats.avg_load_time == DEFAULT_AVG_LOAD_TIME


@pytest.mark.aggregation
class TestTechnicalStats:
    def test_category_counts_sorted_by_frequency(self, aggregator):
        events = [
            make_event(browser="Chrome", os_name="Windows", country="US"),
            make_event(browser="Chrome", os_name="Linux", country="US"),
            make_event(browser="Safari", os_name="MacOS", device="mobile"),
        ]
        stats = aggregator.calculate_technical_stats(events)

        assert stats.browsers == [CategoryCount("Chrome", 2), CategoryCount("Safari", 1)]
        assert [c.name for c in stats.oss] == ["Linux", "MacOS", "Windows"]
        assert stats.devices == [CategoryCount("desktop", 2), CategoryCount("mobile", 1)]
        assert stats.countries == [CategoryCount("US", 2), CategoryCount("Unknown", 1)]

    def test_top_paths_limited_to_five(self, aggregator):
        paths = ["/a"] * 6 + ["/b"] * 5 + ["/c"] * 4 + ["/d"] * 3 + ["/e"] * 2 + ["/f"]
        stats = aggregator.calculate_technical_stats([make_event(path=p) for p in paths])
        assert [c.name for c in stats.top_paths] == ["/a", "/b", "/c", "/d", "/e"]
        assert stats.top_paths[0].value == 6


@pytest.mark.aggregation
class TestTrafficTimeline:
    def test_recent_events_bucketed_by_minute(self, aggregator):
        events = [
            make_event(timestamp=_ms(2024, 1, 1, 10, 1, 10)),
            make_event(timestamp=_ms(2024, 1, 1, 9, 0, 0)),
            make_event(timestamp=_ms(2024, 1, 1, 10, 0, 30)),
            make_event(timestamp=_ms(2024, 1, 1, 10, 0, 5)),
        ]
        timeline = aggregator.calculate_traffic_timeline(events, limit=3)
        assert timeline == [TrafficPoint("10:00", 2), TrafficPoint("10:01", 1)]


@pytest.mark.aggregation
class TestRetentionCohorts:
    def test_daily_cohorts(self, aggregator):
        day0 = _ms(2024, 1, 1, 8, 0)
        day1 = _ms(2024, 1, 2, 8, 0)
        events = [
            make_event(session_id="a", timestamp=day0),
            make_event(session_id="a", timestamp=day1),
            make_event(session_id="b", timestamp=day0),
            make_event(session_id="c", timestamp=day1),
            make_event(timestamp=day0),
        ]
        cohorts = aggregator.calculate_retention_cohorts(events, max_days=3)

        assert cohorts.cohort_labels == ["2024-01-01", "2024-01-02"]
        assert cohorts.cohort_sizes == {"2024-01-01": 2, "2024-01-02": 1}
        assert cohorts.retention_rates["2024-01-01"] == [100.0, 50.0, 0.0]
        assert cohorts.retention_rates["2024-01-02"] == [100.0, 0.0, 0.0]


@pytest.mark.edge_case
class TestEmptyInput:
    def test_empty_stats_are_zero(self, aggregator):
        assert aggregator.calculate_stats([], now=NOW) == DashboardStats(0, 0, 0, 0.0, 0.0)

    def test_empty_funnel_is_zero(self, aggregator):
        report = aggregator.calculate_funnel([])
        assert [s.count for s in report.steps] == [0, 0, 0, 0]
        assert [s.conversion for s in report.steps] == [0, 0, 0, 0]
        assert [s.dropoff for s in report.steps] == [0, 0, 0, 0]

    def test_empty_breakdowns(self, aggregator):
        stats = aggregator.calculate_technical_stats([])
        assert stats.browsers == [] and stats.top_paths == []
        assert aggregator.calculate_traffic_timeline([]) == []
        cohorts = aggregator.calculate_retention_cohorts([])
        assert cohorts.cohort_labels == [] and cohorts.cohort_sizes == {}
