"""
Application state for the LiteTrack dashboard.

All mutable state lives in one immutable AppState value. The only way to
change it is AppStore.dispatch(), which runs the pure `reduce` function and
notifies subscribers.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional

from models import AnalyticsEvent, InsightReport, LogStatus, SendStatus, SentLog

from .config_manager import DashboardConfig
from .event_store import EventStore

SENT_LOG_LIMIT = 10


class ActionType(Enum):
    REPLACE_EVENTS = "replace_events"
    APPEND_EVENT = "append_event"
    LOG_ATTEMPT = "log_attempt"
    UPDATE_LOG_STATUS = "update_log_status"
    SET_STATUS = "set_status"
    SET_DRAFT = "set_draft"
    INSIGHTS_REQUESTED = "insights_requested"
    INSIGHTS_RECEIVED = "insights_received"
    UPDATE_CONFIG = "update_config"


@dataclass(frozen=True)
class Action:
    type: ActionType
    payload: Any = None


@dataclass(frozen=True)
class AppState:
    events: tuple[AnalyticsEvent, ...] = ()
    sent_logs: tuple[SentLog, ...] = ()
    insights: Optional[InsightReport] = None
    is_loading_insights: bool = False
    config: DashboardConfig = field(default_factory=DashboardConfig)
    status: SendStatus = SendStatus.IDLE
    draft_payload: str = ""


def reduce(state: AppState, action: Action) -> AppState:
    """Pure reducer: returns a new state, never mutates the old one"""
    if action.type is ActionType.REPLACE_EVENTS:
        return replace(state, events=tuple(action.payload))

    if action.type is ActionType.APPEND_EVENT:
        return replace(state, events=state.events + (action.payload,))

    if action.type is ActionType.LOG_ATTEMPT:
        logs = (action.payload,) + state.sent_logs
        return replace(state, sent_logs=logs[:SENT_LOG_LIMIT])

    if action.type is ActionType.UPDATE_LOG_STATUS:
        log_id, status = action.payload
        logs = tuple(
            replace(log, status=LogStatus(status)) if log.id == log_id else log
            for log in state.sent_logs
        )
        return replace(state, sent_logs=logs)

    if action.type is ActionType.SET_STATUS:
        return replace(state, status=SendStatus(action.payload))

    if action.type is ActionType.SET_DRAFT:
        return replace(state, draft_payload=str(action.payload))

    if action.type is ActionType.INSIGHTS_REQUESTED:
        return replace(state, is_loading_insights=True)

    if action.type is ActionType.INSIGHTS_RECEIVED:
        return replace(state, insights=action.payload, is_loading_insights=False)

    if action.type is ActionType.UPDATE_CONFIG:
        return replace(state, config=action.payload)

    raise ValueError(f"Unknown action type: {action.type}")


class AppStore:
    """Holds the current AppState and applies actions through `reduce`"""

    def __init__(self, initial: Optional[AppState] = None):
        self._state = initial or AppState()
        self._subscribers: list[Callable[[AppState], None]] = []
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @property
    def state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> AppState:
        with self._lock:
            self._state = reduce(self._state, action)
            state = self._state
        self.logger.debug(f"Dispatched {action.type.value}")
        for subscriber in list(self._subscribers):
            subscriber(state)
        return state

    def subscribe(self, callback: Callable[[AppState], None]) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def load_events(self, event_store: EventStore) -> None:
        self.dispatch(Action(ActionType.REPLACE_EVENTS, event_store.events))

    def event_store(self) -> EventStore:
        """Snapshot of the current events, for export and DataFrame access"""
        return EventStore(self._state.events)


class StatusTimer:
    """Cancellable delayed callback used to reset the transient send status"""

    def __init__(self, timer_factory: Callable[..., threading.Timer] = threading.Timer):
        self._timer_factory = timer_factory
        self._timer: Optional[threading.Timer] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and self._timer.is_alive()

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """Run `callback` after `delay` seconds, replacing any pending callback"""
        self.cancel()
        self._timer = self._timer_factory(delay, callback)
        self._timer.daemon = True
        self._timer.start()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
