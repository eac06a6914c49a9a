"""
Core Business Logic Module for LiteTrack Analytics
==================================================

This module contains the core business logic classes:
- EventStore: In-memory event list, seeding and export
- EventAggregator: Stats, technical breakdowns, funnel, timeline and cohorts
- EventSimulator: Simulated event delivery to a configured endpoint
- InsightClient: AI insight providers with fallback report
- AppStore: Application state with a single dispatch entry point
- DashboardConfigManager: Configuration management

Usage:
    from core import AppStore, EventAggregator, EventSimulator, EventStore
"""

from .aggregator import EventAggregator
from .config_manager import DashboardConfig, DashboardConfigManager
from .errors import (
    DeliverySendFailure,
    InsightFetchFailure,
    LiteTrackError,
    MalformedPayloadError,
)
from .event_store import EventStore
from .insights import CustomHttpProvider, HostedLLMProvider, InsightClient, InsightProvider
from .simulator import EventSimulator, SendResult
from .snippets import TransportMethod, generate_receiver_snippet, generate_snippet
from .state import Action, ActionType, AppState, AppStore, StatusTimer

__all__ = [
    "Action",
    "ActionType",
    "AppState",
    "AppStore",
    "CustomHttpProvider",
    "DashboardConfig",
    "DashboardConfigManager",
    "DeliverySendFailure",
    "EventAggregator",
    "EventSimulator",
    "EventStore",
    "HostedLLMProvider",
    "InsightClient",
    "InsightFetchFailure",
    "InsightProvider",
    "LiteTrackError",
    "MalformedPayloadError",
    "SendResult",
    "StatusTimer",
    "TransportMethod",
    "generate_receiver_snippet",
    "generate_snippet",
]
