"""
Event simulator for the LiteTrack dashboard.

Builds a synthetic event from an explicit payload or the user's draft JSON,
optionally POSTs it to the configured delivery URL, records every attempt in
the bounded sent log and appends the event to the store on success. Each call
makes at most one request; there are no retries.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import requests

from models import AnalyticsEvent, EventMetadata, LogStatus, SendStatus, SentLog

from .errors import DeliverySendFailure, MalformedPayloadError
from .event_store import generate_event_id, now_ms
from .state import Action, ActionType, AppStore, StatusTimer

DEFAULT_TIMEOUT = 8.0  # seconds
SUCCESS_RESET_DELAY = 3.0
ERROR_RESET_DELAY = 3.0
NETWORK_ERROR_RESET_DELAY = 4.0

SIMULATOR_REFERRER = "LiteTrack Dashboard"

SCENARIOS: dict[str, dict[str, Any]] = {
    "ecommerce": {
        "event": "purchase_complete",
        "path": "/checkout/success",
        "transaction_id": "TXN_9921",
        "amount": 124.50,
        "items": ["Pro Subscription"],
        "currency": "USD",
    },
    "saas": {
        "event": "signup_start",
        "path": "/signup",
        "source": "pricing_page",
        "plan": "premium",
    },
    "error": {
        "event": "api_failure",
        "endpoint": "/v1/auth",
        "status_code": 500,
        "error_msg": "Database connection timeout",
    },
}

# quick action -> (event type, path)
QUICK_ACTIONS = {
    "pageview": ("pageview", "/home"),
    "view_pricing": ("pageview", "/pricing"),
    "purchase_complete": ("purchase_complete", "/checkout/success"),
}


@dataclass(frozen=True)
class SendResult:
    """Outcome of one simulated send"""

    log: SentLog
    event: Optional[AnalyticsEvent] = None
    error: Optional[DeliverySendFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class EventSimulator:
    """Sends simulated events and feeds accepted ones back into the store"""

    def __init__(
        self,
        store: AppStore,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        status_timer: Optional[StatusTimer] = None,
    ):
        self.store = store
        self.session = session or requests.Session()
        self.timeout = timeout
        self.status_timer = status_timer or StatusTimer()
        self.logger = logging.getLogger(__name__)

    def apply_template(self, name: str) -> str:
        """Load a scenario template into the draft JSON editor"""
        draft = json.dumps(SCENARIOS[name], indent=2)
        self.store.dispatch(Action(ActionType.SET_DRAFT, draft))
        return draft

    def quick_send(self, kind: str) -> SendResult:
        event_type, path = QUICK_ACTIONS.get(kind, (kind, "/simulator"))
        return self.send(
            {
                "event": event_type,
                "path": path,
                "timestamp": datetime.now().isoformat(),
                "metadata": {"source": "quick_action"},
            }
        )

    def send(self, payload: Optional[dict[str, Any]] = None) -> SendResult:
        """
        Send one simulated event.

        Args:
            payload: Explicit event payload; when omitted the draft JSON text is parsed

        Returns:
            SendResult with the log entry, the appended event on success, or the
            delivery failure

        Raises:
            MalformedPayloadError: if the draft text or the explicit payload is not a
                JSON-serializable object
        """
        try:
            payload = self._parse_draft() if payload is None else self._check_payload(payload)
        except MalformedPayloadError:
            self.store.dispatch(Action(ActionType.SET_STATUS, SendStatus.ERROR))
            self._reset_status_later(ERROR_RESET_DELAY)
            raise

        log = SentLog(
            id=generate_event_id(length=5),
            type=str(payload.get("event") or "unknown"),
            timestamp=datetime.now().strftime("%H:%M:%S"),
            status=LogStatus.PENDING,
            payload=payload,
        )
        self.status_timer.cancel()
        self.store.dispatch(Action(ActionType.SET_STATUS, SendStatus.SENDING))
        self.store.dispatch(Action(ActionType.LOG_ATTEMPT, log))

        target_url = self.store.state.config.target_url
        if target_url:
            try:
                self._deliver(target_url, payload)
            except DeliverySendFailure as failure:
                return self._record_failure(log, failure)
        else:
            self.logger.info("No delivery URL configured, accepting event locally")

        event = self._build_event(log.id, payload)
        self.store.dispatch(Action(ActionType.UPDATE_LOG_STATUS, (log.id, LogStatus.SUCCESS)))
        self.store.dispatch(Action(ActionType.APPEND_EVENT, event))
        self.store.dispatch(Action(ActionType.SET_STATUS, SendStatus.SUCCESS))
        self._reset_status_later(SUCCESS_RESET_DELAY)
        return SendResult(log=self._current_log(log), event=event)

    def _parse_draft(self) -> dict[str, Any]:
        try:
            payload = json.loads(self.store.state.draft_payload)
        except json.JSONDecodeError as e:
            self.logger.warning(f"Invalid JSON in draft payload: {str(e)}")
            raise MalformedPayloadError(f"Invalid JSON in draft payload: {e}") from e

        if not isinstance(payload, dict):
            raise MalformedPayloadError("Draft payload must be a JSON object")
        return payload

    def _check_payload(self, payload: Any) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise MalformedPayloadError(
                f"Payload must be a JSON object, got {type(payload).__name__}"
            )
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            self.logger.warning(f"Payload is not JSON serializable: {str(e)}")
            raise MalformedPayloadError(f"Payload is not JSON serializable: {e}") from e
        return payload

    def _deliver(self, url: str, payload: dict[str, Any]) -> None:
        try:
            response = self.session.post(
                url,
                data=json.dumps(payload),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise DeliverySendFailure(f"Request timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise DeliverySendFailure(f"Network error: {str(e)}") from e

        if not 200 <= response.status_code < 300:
            raise DeliverySendFailure(
                response.reason or "Unexpected response", status_code=response.status_code
            )

    def _record_failure(self, log: SentLog, failure: DeliverySendFailure) -> SendResult:
        self.logger.error(f"Delivery of {log.type} failed: {failure}")
        self.store.dispatch(Action(ActionType.UPDATE_LOG_STATUS, (log.id, LogStatus.ERROR)))
        self.store.dispatch(Action(ActionType.SET_STATUS, SendStatus.ERROR))
        delay = ERROR_RESET_DELAY if failure.status_code is not None else NETWORK_ERROR_RESET_DELAY
        self._reset_status_later(delay)
        return SendResult(log=self._current_log(log), error=failure)

    def _current_log(self, log: SentLog) -> SentLog:
        for entry in self.store.state.sent_logs:
            if entry.id == log.id:
                return entry
        return log

    def _build_event(self, event_id: str, payload: dict[str, Any]) -> AnalyticsEvent:
        return AnalyticsEvent(
            id=event_id,
            type=str(payload.get("event") or "click"),
            path=str(payload.get("path") or "/simulator"),
            referrer=SIMULATOR_REFERRER,
            timestamp=now_ms(),
            metadata=EventMetadata(browser="LiteTrack-Sim", os="Cloud", device="desktop"),
        )

    def _reset_status_later(self, delay: float) -> None:
        self.status_timer.schedule(
            delay, lambda: self.store.dispatch(Action(ActionType.SET_STATUS, SendStatus.IDLE))
        )
