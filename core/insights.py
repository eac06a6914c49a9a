"""
AI insight providers.

Condenses the event list into a small summary and asks either a hosted LLM or
a user-specified HTTP endpoint for a structured JSON report:

    {"summary": str, "suggestions": [str], "performanceScore": number,
     "anomalies": [alert]?}

InsightClient.get_insights never raises: any failure is logged and replaced by
FALLBACK_REPORT.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Sequence
from typing import Any, Optional

import requests
from openai import OpenAI

from models import AIConfig, AIProviderType, AnalyticsEvent, InsightReport

from .errors import InsightFetchFailure
from .event_store import now_ms
from .state import Action, ActionType, AppStore

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
SUMMARY_SAMPLE_SIZE = 100
CUSTOM_ENDPOINT_SAMPLE_SIZE = 50
CUSTOM_ENDPOINT_TIMEOUT = 30.0

FALLBACK_REPORT = InsightReport(
    summary="The AI engine is currently unavailable or misconfigured.",
    suggestions=[
        "Check your API settings in the Settings tab.",
        "Ensure your network allows outbound AI requests.",
    ],
    performance_score=0,
)

INSIGHT_SCHEMA = {
    "type": "object",
    "properties": {
        "summary": {"type": "string"},
        "suggestions": {"type": "array", "items": {"type": "string"}},
        "performanceScore": {"type": "number"},
        "anomalies": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "string"},
                    "level": {"type": "string", "enum": ["info", "warning", "critical"]},
                    "title": {"type": "string"},
                    "message": {"type": "string"},
                    "timestamp": {"type": "number"},
                },
                "required": ["level", "title", "message"],
            },
        },
    },
    "required": ["summary", "suggestions", "performanceScore"],
}

logger = logging.getLogger(__name__)


def prepare_summary(
    events: Sequence[AnalyticsEvent], sample_size: int = SUMMARY_SAMPLE_SIZE
) -> dict[str, Any]:
    """Condensed view of the event list; per-path counts cover only the most recent events"""
    recent = list(events)[-sample_size:] if sample_size > 0 else []
    summary: dict[str, Any] = {
        "total": len(events),
        "pages": dict(Counter(event.path for event in recent)),
        "devices": dict(Counter(event.metadata.device for event in events)),
    }

    durations = [e.metadata.duration for e in events if e.metadata.duration is not None]
    if durations:
        summary["avgDuration"] = round(sum(durations) / len(durations), 1)
    load_times = [e.metadata.load_time for e in events if e.metadata.load_time is not None]
    if load_times:
        summary["avgLoadTime"] = round(sum(load_times) / len(load_times), 1)
    return summary


def build_prompt(summary: dict[str, Any]) -> str:
    return (
        "Analyze this website traffic and return a JSON report:\n"
        f"{json.dumps(summary)}\n\n"
        "Please provide:\n"
        "1. A concise summary of the traffic patterns.\n"
        "2. 3 actionable suggestions to improve user engagement.\n"
        "3. A performance score from 0-100 based on the balance of traffic.\n"
        "4. Any anomalies worth alerting on (optional).\n\n"
        'Format: { "summary": string, "suggestions": string[], '
        '"performanceScore": number, "anomalies"?: alert[] }'
    )


class InsightProvider(ABC):
    """Interface for any AI provider implementation"""

    @abstractmethod
    def generate_insights(
        self, events: Sequence[AnalyticsEvent], config: AIConfig
    ) -> InsightReport:
        """Return a report or raise; callers decide how to handle failure"""


class HostedLLMProvider(InsightProvider):
    """Gemini through its OpenAI-compatible chat completions endpoint"""

    def __init__(self, client: Optional[OpenAI] = None):
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            api_key = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
            if not api_key:
                raise InsightFetchFailure("GEMINI_API_KEY environment variable is not set")
            self._client = OpenAI(api_key=api_key, base_url=GEMINI_OPENAI_BASE_URL)
        return self._client

    def generate_insights(
        self, events: Sequence[AnalyticsEvent], config: AIConfig
    ) -> InsightReport:
        prompt = build_prompt(prepare_summary(events))
        response = self.client.chat.completions.create(
            model=config.model,
            messages=[{"role": "user", "content": prompt}],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "insight_report", "schema": INSIGHT_SCHEMA},
            },
        )

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise InsightFetchFailure("No response from AI")
        return InsightReport.from_dict(json.loads(text.strip()))


class CustomHttpProvider(InsightProvider):
    """Generic JSON endpoint implementation"""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = CUSTOM_ENDPOINT_TIMEOUT,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout

    def generate_insights(
        self, events: Sequence[AnalyticsEvent], config: AIConfig
    ) -> InsightReport:
        if not config.custom_endpoint:
            raise InsightFetchFailure("No custom endpoint configured")

        sample = list(events)[-CUSTOM_ENDPOINT_SAMPLE_SIZE:]
        response = self.session.post(
            config.custom_endpoint,
            data=json.dumps(
                {"events": [event.to_dict() for event in sample], "timestamp": now_ms()}
            ),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        if not 200 <= response.status_code < 300:
            raise InsightFetchFailure(f"External API error: {response.status_code}")
        return InsightReport.from_dict(response.json())


class InsightClient:
    """Dispatches to the configured provider and substitutes the fallback report on failure"""

    def __init__(
        self,
        hosted: Optional[InsightProvider] = None,
        custom: Optional[InsightProvider] = None,
    ):
        self.providers: dict[AIProviderType, InsightProvider] = {
            AIProviderType.GEMINI_BUILTIN: hosted or HostedLLMProvider(),
            AIProviderType.CUSTOM_ENDPOINT: custom or CustomHttpProvider(),
        }

    def get_insights(
        self, events: Sequence[AnalyticsEvent], config: AIConfig
    ) -> InsightReport:
        try:
            provider = self.providers[AIProviderType(config.provider)]
            return provider.generate_insights(events, config)
        except Exception as e:
            failure = (
                e
                if isinstance(e, InsightFetchFailure)
                else InsightFetchFailure(f"{type(e).__name__}: {str(e)}")
            )
            logger.error(f"AI insight error ({config.provider}): {failure}")
            return FALLBACK_REPORT

    def refresh(self, store: AppStore) -> InsightReport:
        """Fetch a report for the store's current events and record it as the latest"""
        store.dispatch(Action(ActionType.INSIGHTS_REQUESTED))
        state = store.state
        report = self.get_insights(state.events, state.config.ai_config)
        store.dispatch(Action(ActionType.INSIGHTS_RECEIVED, report))
        return report
