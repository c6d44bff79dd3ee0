"""Domain models for test generation jobs and quality assessment."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.IN_PROGRESS}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class LogLevel(str, Enum):
    """Severity of one job log entry."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class FailureClass(str, Enum):
    """Normalized reasons a job ended FAILED."""

    AGENT_SIGNALED = "agent_signaled"
    QUALITY_INSUFFICIENT = "quality_insufficient"
    UNEXPECTED_ERROR = "unexpected_error"


class QualityLevel(str, Enum):
    """Validator quality markers."""

    HIGH = "QUALITY_HIGH"
    MEDIUM = "QUALITY_MEDIUM"
    LOW = "QUALITY_LOW"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True, slots=True)
class TicketContext:
    """Immutable ticket input driving one job."""

    ticket_id: str
    content: str
    components: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.ticket_id.strip():
            raise ValueError("Ticket id must not be empty.")
        if not self.content.strip():
            raise ValueError("Ticket content must not be empty.")

    def format_for_prompt(self) -> str:
        components = ", ".join(self.components) if self.components else "N/A"
        return (
            f"Ticket: {self.ticket_id}\n"
            f"Components: {components}\n"
            f"\n"
            f"Ticket Description:\n{self.content.strip()}\n"
        )


@dataclass(slots=True)
class QualityIssue:
    """One itemized validator finding."""

    type: str
    severity: str
    fix: str


@dataclass(slots=True)
class QualityMetrics:
    """Normalized quality signals extracted from one validator response.

    Per-metric ratings are ``None`` when the validator did not rate them.
    """

    coherence: QualityLevel | None = None
    completeness: QualityLevel | None = None
    clarity: QualityLevel | None = None
    test_data: QualityLevel | None = None
    overall: QualityLevel = QualityLevel.UNKNOWN
    issues: list[QualityIssue] = field(default_factory=list)

    def low_metrics(self) -> list[str]:
        """Names of metrics rated LOW, in a stable order."""

        ratings = (
            ("coherence", self.coherence),
            ("completeness", self.completeness),
            ("clarity", self.clarity),
            ("test_data", self.test_data),
        )
        return [name for name, rating in ratings if rating == QualityLevel.LOW]


@dataclass(slots=True)
class JobView:
    """Readable job view for callers and worker logic."""

    job_id: str
    ticket_id: str
    description: str
    components: tuple[str, ...]
    status: JobStatus
    attempts: int
    failure_class: FailureClass | None
    error_message: str | None
    test_result: str | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None

    def ticket(self) -> TicketContext:
        return TicketContext(
            ticket_id=self.ticket_id,
            content=self.description,
            components=self.components,
        )


@dataclass(slots=True)
class JobLogView:
    """One stored job log entry."""

    log_id: int
    job_id: str
    level: LogLevel
    message: str
    timestamp: datetime


@dataclass(slots=True)
class JobStatusView:
    """Pollable status shape."""

    job_id: str
    status: JobStatus
    error_message: str | None


@dataclass(slots=True)
class JobRunOutcome:
    """What one worker run did to a job."""

    job_id: str
    status: JobStatus | None
    attempts: int = 0
    quality_history: list[QualityLevel] = field(default_factory=list)
    failure_class: FailureClass | None = None
    error_message: str | None = None
    skipped: bool = False
