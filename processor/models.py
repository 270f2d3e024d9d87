"""Data models for event processing."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple


@dataclass
class EventCandidate:
    """Raw event fields extracted from a chat message."""
    title: Optional[str] = None
    date_phrase: Optional[str] = None
    time_phrase: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None

    def identity_fields(self) -> Tuple[Optional[str], ...]:
        """Fields that identify an event for duplicate detection."""
        return (self.title, self.date_phrase, self.time_phrase, self.location)


@dataclass
class ExtractionResult:
    """Outcome of analyzing one message."""
    is_event: bool
    summary: Optional[str] = None
    candidate: EventCandidate = field(default_factory=EventCandidate)


@dataclass
class ResolvedEvent:
    """Concrete, timezone-aware start and end instants."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(
                f"end must be after start, got {self.start} -> {self.end}"
            )


@dataclass
class CacheStats:
    """Snapshot of the deduplication cache."""
    keys: int
    hits: int
    misses: int
    ttl_hours: float


@dataclass
class ProcessedEvent:
    """Event that passed the duplicate gate and was encoded."""
    event_id: str
    title: Optional[str]
    summary: Optional[str]
    description: Optional[str]
    location: Optional[str]
    date_phrase: Optional[str]
    time_phrase: Optional[str]
    start: datetime
    end: datetime
    calendar: str
    filename: str
