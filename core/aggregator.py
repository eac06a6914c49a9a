"""
Aggregation engine for LiteTrack dashboard metrics.

This module contains the EventAggregator class which recomputes summary
statistics, technical breakdowns, the conversion funnel, the traffic timeline
and retention cohorts from an event list. Calculations run on Polars with
automatic fallback to Pandas; both engines produce identical results.

Every public method is a pure function of its inputs: no accumulator state
survives between calls.
"""

import logging
import math
import time
from collections import deque
from collections.abc import Sequence
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Optional

import numpy as np
import pandas as pd
import polars as pl

from logging_config import log_dataframe_info
from models import (
    AnalyticsEvent,
    CategoryCount,
    CohortData,
    DashboardStats,
    FunnelReport,
    FunnelStep,
    TechnicalStats,
    TrafficPoint,
)

from .event_store import events_to_dataframe, now_ms

ACTIVE_WINDOW_MS = 5 * 60 * 1000
DEFAULT_AVG_DURATION = 45.0  # seconds
DEFAULT_AVG_LOAD_TIME = 1200.0  # milliseconds
TOP_PATHS_LIMIT = 5
TIMELINE_LIMIT = 30
DAY_MS = 24 * 60 * 60 * 1000
PERFORMANCE_HISTORY_SIZE = 100

FUNNEL_NAME = "Conversion Pipeline"

# (step_key, label) in funnel order
FUNNEL_STEPS = [
    ("home", "Visited Home"),
    ("pricing", "Viewed Pricing"),
    ("signup", "Started Signup"),
    ("purchase", "Completed"),
]

_PATH_SEGMENT_PATTERN = r"^/?([^/]*)"


def js_round(value: float) -> int:
    """Round half up, matching the dashboard's percentage display"""
    return int(math.floor(value + 0.5))


def _aggregator_performance_monitor(func_name: str):
    """Decorator for monitoring aggregation performance"""

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            start_time = time.time()
            try:
                result = func(self, *args, **kwargs)
                execution_time = time.time() - start_time

                if func_name not in self._performance_metrics:
                    self._performance_metrics[func_name] = deque(maxlen=PERFORMANCE_HISTORY_SIZE)
                self._performance_metrics[func_name].append(execution_time)

                self.logger.debug(
                    f"EventAggregator.{func_name} executed in {execution_time:.4f} seconds"
                )
                return result

            except Exception as e:
                execution_time = time.time() - start_time
                self.logger.error(
                    f"EventAggregator.{func_name} failed after {execution_time:.4f} seconds: {str(e)}"
                )
                raise

        return wrapper

    return decorator


class EventAggregator:
    """Recomputes dashboard aggregates from the current event list"""

    def __init__(self, use_polars: bool = True):
        self.use_polars = use_polars
        self._performance_metrics: dict[str, deque[float]] = {}
        self.logger = logging.getLogger(__name__)

    def _run_engine(
        self,
        operation: str,
        events: Sequence[AnalyticsEvent],
        polars_impl: Callable[[pl.DataFrame], Any],
        pandas_impl: Callable[[pd.DataFrame], Any],
    ) -> Any:
        """Run the Polars implementation, falling back to Pandas on failure"""
        if self.use_polars:
            try:
                polars_df = events_to_dataframe(events, "polars")
                log_dataframe_info(polars_df, f"{operation} input", self.logger)
                return polars_impl(polars_df)
            except Exception as e:
                self.logger.warning(
                    f"Polars {operation} failed: {str(e)}, falling back to Pandas"
                )
        pandas_df = events_to_dataframe(events, "pandas")
        log_dataframe_info(pandas_df, f"{operation} input", self.logger)
        return pandas_impl(pandas_df)

    def get_performance_report(self) -> dict[str, dict[str, float]]:
        """Get performance metrics report over the most recent calls of each operation"""
        report = {}
        for func_name, times in self._performance_metrics.items():
            if times:
                report[func_name] = {
                    "avg_time": float(np.mean(times)),
                    "min_time": min(times),
                    "max_time": max(times),
                    "total_calls": len(times),
                    "total_time": sum(times),
                }
        return report

    # ------------------------------------------------------------------
    # Summary statistics
    # ------------------------------------------------------------------

    @_aggregator_performance_monitor("calculate_stats")
    def calculate_stats(
        self, events: Sequence[AnalyticsEvent], now: Optional[int] = None
    ) -> DashboardStats:
        """
        Calculate headline statistics for the overview.

        Args:
            events: Event list to aggregate
            now: Reference time in epoch milliseconds for the "active now" window

        Returns:
            DashboardStats with totals, unique sessions and averages
        """
        now = now if now is not None else now_ms()
        raw = self._run_engine(
            "stats",
            events,
            lambda df: self._stats_polars(df, now),
            lambda df: self._stats_pandas(df, now),
        )
        total = raw["total"]
        return DashboardStats(
            total_events=total,
            unique_sessions=raw["unique_sessions"],
            active_now=raw["active_now"],
            avg_duration=_average(total, raw["duration_count"], raw["duration_mean"], DEFAULT_AVG_DURATION),
            avg_load_time=_average(total, raw["load_time_count"], raw["load_time_mean"], DEFAULT_AVG_LOAD_TIME),
        )

    def _stats_polars(self, df: pl.DataFrame, now: int) -> dict[str, Any]:
        session_key = (
            pl.when(pl.col("session_id").is_not_null())
            .then(pl.col("session_id"))
            .otherwise(
                pl.concat_str(
                    [
                        pl.lit("proxy"),
                        pl.col("browser"),
                        pl.col("os"),
                        pl.col("path").str.extract(_PATH_SEGMENT_PATTERN, 1).fill_null(""),
                    ],
                    separator="|",
                )
            )
        )
        row = df.select(
            pl.len().alias("total"),
            session_key.n_unique().alias("unique_sessions"),
            pl.col("timestamp")
            .filter((pl.col("timestamp") >= now - ACTIVE_WINDOW_MS) & (pl.col("timestamp") <= now))
            .len()
            .alias("active_now"),
            pl.col("duration").drop_nulls().len().alias("duration_count"),
            pl.col("duration").mean().alias("duration_mean"),
            pl.col("load_time").drop_nulls().len().alias("load_time_count"),
            pl.col("load_time").mean().alias("load_time_mean"),
        ).row(0, named=True)

        return {
            "total": int(row["total"]),
            "unique_sessions": int(row["unique_sessions"]) if row["total"] else 0,
            "active_now": int(row["active_now"]),
            "duration_count": int(row["duration_count"]),
            "duration_mean": row["duration_mean"],
            "load_time_count": int(row["load_time_count"]),
            "load_time_mean": row["load_time_mean"],
        }

    def _stats_pandas(self, df: pd.DataFrame, now: int) -> dict[str, Any]:
        segment = df["path"].str.extract(_PATH_SEGMENT_PATTERN, expand=False).fillna("")
        proxy = "proxy|" + df["browser"] + "|" + df["os"] + "|" + segment
        session_key = df["session_id"].where(df["session_id"].notna(), proxy)
        in_window = (df["timestamp"] >= now - ACTIVE_WINDOW_MS) & (df["timestamp"] <= now)

        return {
            "total": int(len(df)),
            "unique_sessions": int(session_key.nunique()),
            "active_now": int(in_window.sum()),
            "duration_count": int(df["duration"].notna().sum()),
            "duration_mean": df["duration"].mean() if df["duration"].notna().any() else None,
            "load_time_count": int(df["load_time"].notna().sum()),
            "load_time_mean": df["load_time"].mean() if df["load_time"].notna().any() else None,
        }

    # ------------------------------------------------------------------
    # Technical breakdowns
    # ------------------------------------------------------------------

    @_aggregator_performance_monitor("calculate_technical_stats")
    def calculate_technical_stats(self, events: Sequence[AnalyticsEvent]) -> TechnicalStats:
        """Per-category counts for browser, OS, device, country and top paths"""
        raw = self._run_engine(
            "technical stats", events, self._technical_polars, self._technical_pandas
        )
        return TechnicalStats(
            browsers=_to_category_counts(raw["browser"]),
            oss=_to_category_counts(raw["os"]),
            devices=_to_category_counts(raw["device"]),
            countries=_to_category_counts(raw["country"]),
            top_paths=_to_category_counts(raw["path"])[:TOP_PATHS_LIMIT],
        )

    def _technical_polars(self, df: pl.DataFrame) -> dict[str, dict[str, int]]:
        df = df.with_columns(pl.col("country").fill_null("Unknown"))
        breakdown = {}
        for column in ("browser", "os", "device", "country", "path"):
            counts = df.group_by(column).agg(pl.len().alias("value"))
            breakdown[column] = {
                name: int(value) for name, value in counts.iter_rows()
            }
        return breakdown

    def _technical_pandas(self, df: pd.DataFrame) -> dict[str, dict[str, int]]:
        df = df.assign(country=df["country"].fillna("Unknown"))
        breakdown = {}
        for column in ("browser", "os", "device", "country", "path"):
            counts = df[column].value_counts()
            breakdown[column] = {str(name): int(value) for name, value in counts.items()}
        return breakdown

    # ------------------------------------------------------------------
    # Funnel
    # ------------------------------------------------------------------

    @_aggregator_performance_monitor("calculate_funnel")
    def calculate_funnel(self, events: Sequence[AnalyticsEvent]) -> FunnelReport:
        """
        Calculate the fixed 4-step conversion funnel.

        Conversion is relative to the first step (floored at 1); drop-off is
        relative to the previous step and never negative.
        """
        counts = self._run_engine("funnel", events, self._funnel_polars, self._funnel_pandas)
        return build_funnel_report(counts)

    def _funnel_polars(self, df: pl.DataFrame) -> list[int]:
        predicates = [
            pl.col("path") == "/home",
            (pl.col("path") == "/pricing") | pl.col("type").str.contains("pricing", literal=True),
            (pl.col("path") == "/signup") | (pl.col("type") == "signup_start"),
            (pl.col("path") == "/checkout/success") | (pl.col("type") == "purchase_complete"),
        ]
        return [df.filter(predicate).height for predicate in predicates]

    def _funnel_pandas(self, df: pd.DataFrame) -> list[int]:
        masks = [
            df["path"] == "/home",
            (df["path"] == "/pricing") | df["type"].str.contains("pricing", regex=False),
            (df["path"] == "/signup") | (df["type"] == "signup_start"),
            (df["path"] == "/checkout/success") | (df["type"] == "purchase_complete"),
        ]
        return [int(mask.sum()) for mask in masks]

    # ------------------------------------------------------------------
    # Traffic timeline
    # ------------------------------------------------------------------

    @_aggregator_performance_monitor("calculate_traffic_timeline")
    def calculate_traffic_timeline(
        self, events: Sequence[AnalyticsEvent], limit: int = TIMELINE_LIMIT
    ) -> list[TrafficPoint]:
        """Bucket the `limit` most recent events by UTC HH:MM, in chronological order"""
        buckets = self._run_engine(
            "timeline",
            events,
            lambda df: self._timeline_polars(df, limit),
            lambda df: self._timeline_pandas(df, limit),
        )
        return [TrafficPoint(name=name, views=views) for name, views in buckets]

    def _timeline_polars(self, df: pl.DataFrame, limit: int) -> list[tuple[str, int]]:
        if df.height == 0 or limit <= 0:
            return []
        recent = df.sort("timestamp", maintain_order=True).tail(limit)
        buckets = (
            recent.with_columns(
                pl.from_epoch("timestamp", time_unit="ms").dt.strftime("%H:%M").alias("bucket")
            )
            .group_by("bucket", maintain_order=True)
            .agg(pl.len().alias("views"))
        )
        return [(name, int(views)) for name, views in buckets.iter_rows()]

    def _timeline_pandas(self, df: pd.DataFrame, limit: int) -> list[tuple[str, int]]:
        if df.empty or limit <= 0:
            return []
        recent = df.sort_values("timestamp", kind="stable").tail(limit)
        bucket = pd.to_datetime(recent["timestamp"], unit="ms", utc=True).dt.strftime("%H:%M")
        counts = bucket.groupby(bucket, sort=False).size()
        return [(str(name), int(views)) for name, views in counts.items()]

    # ------------------------------------------------------------------
    # Retention cohorts
    # ------------------------------------------------------------------

    @_aggregator_performance_monitor("calculate_retention_cohorts")
    def calculate_retention_cohorts(
        self, events: Sequence[AnalyticsEvent], max_days: int = 7
    ) -> CohortData:
        """
        Group sessions by the UTC day of their first event and measure the share
        of each cohort active on the following days.

        Events without a session id are ignored.
        """
        sizes, active = self._run_engine(
            "retention cohorts",
            events,
            lambda df: self._cohorts_polars(df, max_days),
            lambda df: self._cohorts_pandas(df, max_days),
        )

        labels = []
        cohort_sizes = {}
        retention_rates = {}
        for cohort_day in sorted(sizes):
            label = datetime.fromtimestamp(cohort_day * DAY_MS / 1000, tz=timezone.utc).date().isoformat()
            size = sizes[cohort_day]
            labels.append(label)
            cohort_sizes[label] = size
            retention_rates[label] = [
                round(active.get((cohort_day, offset), 0) / size * 100, 1)
                for offset in range(max_days)
            ]

        return CohortData(
            cohort_period="daily",
            cohort_sizes=cohort_sizes,
            retention_rates=retention_rates,
            cohort_labels=labels,
        )

    def _cohorts_polars(
        self, df: pl.DataFrame, max_days: int
    ) -> tuple[dict[int, int], dict[tuple[int, int], int]]:
        sessions = df.filter(pl.col("session_id").is_not_null()).select(
            pl.col("session_id"), (pl.col("timestamp") // DAY_MS).alias("day")
        )
        if sessions.height == 0:
            return {}, {}

        first_seen = sessions.group_by("session_id").agg(pl.col("day").min().alias("cohort_day"))
        sizes = first_seen.group_by("cohort_day").agg(pl.len().alias("size"))

        active = (
            sessions.join(first_seen, on="session_id")
            .with_columns((pl.col("day") - pl.col("cohort_day")).alias("offset"))
            .filter(pl.col("offset") < max_days)
            .group_by(["cohort_day", "offset"])
            .agg(pl.col("session_id").n_unique().alias("sessions"))
        )
        return (
            {int(day): int(size) for day, size in sizes.iter_rows()},
            {(int(day), int(offset)): int(n) for day, offset, n in active.iter_rows()},
        )

    def _cohorts_pandas(
        self, df: pd.DataFrame, max_days: int
    ) -> tuple[dict[int, int], dict[tuple[int, int], int]]:
        sessions = df.loc[df["session_id"].notna(), ["session_id", "timestamp"]].copy()
        if sessions.empty:
            return {}, {}

        sessions["day"] = sessions["timestamp"] // DAY_MS
        sessions["cohort_day"] = sessions.groupby("session_id")["day"].transform("min")
        sessions["offset"] = sessions["day"] - sessions["cohort_day"]

        sizes = sessions.groupby("cohort_day")["session_id"].nunique()
        active = (
            sessions[sessions["offset"] < max_days]
            .groupby(["cohort_day", "offset"])["session_id"]
            .nunique()
        )
        return (
            {int(day): int(size) for day, size in sizes.items()},
            {(int(day), int(offset)): int(n) for (day, offset), n in active.items()},
        )


def build_funnel_report(counts: Sequence[int]) -> FunnelReport:
    """Turn raw step counts into FunnelSteps with conversion and drop-off percentages"""
    base = counts[0] if counts and counts[0] else 1
    steps = []
    for idx, ((step_key, label), count) in enumerate(zip(FUNNEL_STEPS, counts)):
        if idx == 0:
            dropoff = 0
        else:
            previous = counts[idx - 1]
            # nothing entered the previous step, so nothing dropped
            dropoff = max(0, js_round((1 - count / previous) * 100)) if previous else 0
        steps.append(
            FunnelStep(
                label=label,
                count=int(count),
                dropoff=dropoff,
                conversion=js_round(count / base * 100),
                step_key=step_key,
            )
        )
    return FunnelReport(name=FUNNEL_NAME, steps=steps)


def _average(total: int, present: int, mean: Optional[float], default: float) -> float:
    if total == 0:
        return 0.0
    if present == 0 or mean is None or math.isnan(mean):
        return default
    return round(float(mean), 1)


def _to_category_counts(counts: dict[str, int]) -> list[CategoryCount]:
    # descending by count, ties by name so both engines agree
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [CategoryCount(name=name, value=value) for name, value in ordered]
