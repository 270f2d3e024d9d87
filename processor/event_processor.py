"""Event processor turning extracted message events into calendar records."""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from processor.calendar_encoder import CalendarEncoder
from processor.fingerprint import generate_fingerprint, is_degenerate
from processor.models import ExtractionResult, ProcessedEvent
from processor.temporal_resolver import CIVIL_OFFSET, resolve
from storage.event_cache import EventDeduplicationCache

logger = logging.getLogger(__name__)


class EventProcessor:
    """Runs the duplicate gate, date resolution and calendar encoding."""

    DESCRIPTION_PREVIEW_LENGTH = 100

    def __init__(
        self,
        cache: EventDeduplicationCache,
        encoder: Optional[CalendarEncoder] = None,
        civil_offset: timezone = CIVIL_OFFSET
    ):
        """
        Initialize the processor.

        Args:
            cache: Deduplication cache gating announcements
            encoder: Calendar encoder (default: CalendarEncoder())
            civil_offset: Fixed offset for interpreting wall-clock times
        """
        self.cache = cache
        self.encoder = encoder or CalendarEncoder()
        self.civil_offset = civil_offset

    def process_events(
        self,
        extractions: List[ExtractionResult],
        reference: datetime
    ) -> List[ProcessedEvent]:
        """
        Process a batch of extraction results against one reference instant.

        Args:
            extractions: Results from the message analyzer
            reference: Instant treated as "now"

        Returns:
            List of ProcessedEvent objects for new events
        """
        processed_events = []

        for extraction in extractions:
            processed_event = self.process_event(extraction, reference)
            if processed_event:
                processed_events.append(processed_event)

        logger.info(
            f"Processed {len(processed_events)} new events out of "
            f"{len(extractions)} analyzed messages"
        )
        return processed_events

    def process_event(
        self,
        extraction: ExtractionResult,
        reference: datetime
    ) -> Optional[ProcessedEvent]:
        """
        Process a single extraction result.

        Args:
            extraction: Result from the message analyzer
            reference: Instant treated as "now" for relative dates and expiry

        Returns:
            ProcessedEvent, or None if not an announceable event or already announced
        """
        if not extraction.is_event or not extraction.summary:
            if extraction.is_event:
                logger.info("Event has no summary, skipping notification")
            return None

        candidate = extraction.candidate
        if is_degenerate(candidate):
            logger.warning(
                "Event has no title, date, time or location; "
                "its fingerprint will collide with other empty events"
            )

        if not self.cache.should_process(candidate, now=reference):
            logger.info("Event is duplicate, skipping notification")
            return None

        resolved = resolve(
            candidate.date_phrase,
            candidate.time_phrase,
            reference,
            self.civil_offset
        )

        calendar = self.encoder.encode(
            title=candidate.title,
            description=candidate.description,
            location=candidate.location,
            start=resolved.start,
            end=resolved.end,
            stamp=reference
        )

        return ProcessedEvent(
            event_id=generate_fingerprint(candidate),
            title=candidate.title,
            summary=extraction.summary,
            description=candidate.description,
            location=candidate.location,
            date_phrase=candidate.date_phrase,
            time_phrase=candidate.time_phrase,
            start=resolved.start,
            end=resolved.end,
            calendar=calendar,
            filename=self.encoder.filename_for(reference)
        )

    def format_announcement(self, event: ProcessedEvent, source_info: str) -> str:
        """
        Format the short announcement text sent alongside the calendar record.

        Args:
            event: Processed event
            source_info: Where the event came from (e.g. "Group: Family")

        Returns:
            Announcement text
        """
        message = "📅 **Event Summary**\n\n"

        if event.title:
            message += f"🎯 **{event.title}**\n"

        # Date and time on one line
        date_time_line = ""
        if event.date_phrase:
            date_time_line += f"📅 {event.date_phrase}"
        if event.time_phrase:
            date_time_line += f" {event.time_phrase}"
        if date_time_line:
            message += f"{date_time_line.strip()}\n"

        if event.location:
            message += f"📍 {event.location}\n"

        # First line of the description only
        if event.description:
            first_line = event.description.split("\n")[0]
            limit = self.DESCRIPTION_PREVIEW_LENGTH
            if len(first_line) > limit:
                first_line = f"{first_line[:limit - 3]}..."
            message += f"📝 {first_line}\n"

        message += f"\n💬 {source_info}"
        return message
