from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class AIProviderType(Enum):
    GEMINI_BUILTIN = "gemini-builtin"
    CUSTOM_ENDPOINT = "custom-endpoint"


class SendStatus(Enum):
    IDLE = "idle"
    SENDING = "sending"
    SUCCESS = "success"
    ERROR = "error"


class LogStatus(Enum):
    SUCCESS = "success"
    ERROR = "error"
    PENDING = "pending"


class AlertLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class EventMetadata:
    """Client context attached to every analytics event"""

    browser: str
    os: str
    device: str
    country: Optional[str] = None
    session_id: Optional[str] = None
    duration: Optional[float] = None  # seconds on page
    load_time: Optional[float] = None  # milliseconds

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "browser": self.browser,
            "os": self.os,
            "device": self.device,
        }
        optional = {
            "country": self.country,
            "sessionId": self.session_id,
            "duration": self.duration,
            "loadTime": self.load_time,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EventMetadata":
        return cls(
            browser=data.get("browser", "Unknown"),
            os=data.get("os", "Unknown"),
            device=data.get("device", "desktop"),
            country=data.get("country"),
            session_id=data.get("sessionId"),
            duration=data.get("duration"),
            load_time=data.get("loadTime"),
        )


@dataclass(frozen=True)
class AnalyticsEvent:
    """A single tracked event. Immutable once created."""

    id: str
    type: str
    path: str
    referrer: str
    timestamp: int  # epoch milliseconds
    metadata: EventMetadata

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON wire shape"""
        return {
            "id": self.id,
            "type": self.type,
            "path": self.path,
            "referrer": self.referrer,
            "timestamp": self.timestamp,
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalyticsEvent":
        """Create from the JSON wire shape"""
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            path=str(data["path"]),
            referrer=str(data.get("referrer", "direct")),
            timestamp=int(data["timestamp"]),
            metadata=EventMetadata.from_dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class FunnelStep:
    """One derived funnel step; percentages are whole numbers"""

    label: str
    count: int
    dropoff: int
    conversion: int
    step_key: str


@dataclass(frozen=True)
class FunnelReport:
    name: str
    steps: list[FunnelStep]


@dataclass(frozen=True)
class Alert:
    id: str
    level: AlertLevel
    title: str
    message: str
    timestamp: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Alert":
        return cls(
            id=str(data.get("id", "")),
            level=AlertLevel(data.get("level", "info")),
            title=str(data.get("title", "")),
            message=str(data.get("message", "")),
            timestamp=int(data.get("timestamp", 0)),
        )


@dataclass(frozen=True)
class InsightReport:
    """Structured report returned by an insight provider"""

    summary: str
    suggestions: list[str]
    performance_score: float
    anomalies: Optional[list[Alert]] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InsightReport":
        """Parse the camelCase JSON report; raises on a malformed shape"""
        if not isinstance(data, dict):
            raise TypeError(f"Insight report must be an object, got {type(data).__name__}")

        suggestions = data["suggestions"]
        if not isinstance(suggestions, list):
            raise TypeError("'suggestions' must be a list")

        score = data["performanceScore"]
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise TypeError("'performanceScore' must be a number")

        anomalies = data.get("anomalies")
        return cls(
            summary=str(data["summary"]),
            suggestions=[str(item) for item in suggestions],
            performance_score=float(score),
            anomalies=[Alert.from_dict(item) for item in anomalies] if anomalies else None,
        )


@dataclass(frozen=True)
class AIConfig:
    """Insight provider selection"""

    provider: AIProviderType = AIProviderType.GEMINI_BUILTIN
    model: str = "gemini-3-flash-preview"
    custom_endpoint: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "model": self.model,
            "customEndpoint": self.custom_endpoint,
        }


@dataclass(frozen=True)
class SentLog:
    """One attempt recorded by the simulator"""

    id: str
    type: str
    timestamp: str
    status: LogStatus
    payload: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class CategoryCount:
    name: str
    value: int


@dataclass(frozen=True)
class TechnicalStats:
    browsers: list[CategoryCount]
    oss: list[CategoryCount]
    devices: list[CategoryCount]
    countries: list[CategoryCount]
    top_paths: list[CategoryCount]


@dataclass(frozen=True)
class DashboardStats:
    total_events: int
    unique_sessions: int
    active_now: int
    avg_duration: float
    avg_load_time: float


@dataclass(frozen=True)
class TrafficPoint:
    name: str  # HH:MM bucket
    views: int


@dataclass
class CohortData:
    """Retention cohort analysis data"""

    cohort_period: str
    cohort_sizes: dict[str, int]
    retention_rates: dict[str, list[float]]
    cohort_labels: list[str] = field(default_factory=list)
