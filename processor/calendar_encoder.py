"""iCalendar record encoder for announced events."""
import itertools
from datetime import datetime, timezone
from typing import List, Optional


class CalendarEncoder:
    """Serializes a resolved event into a VCALENDAR record."""

    PRODID = '-//Chat Event Bot//EN'
    UID_DOMAIN = 'chat-event-bot'
    LINE_TERMINATOR = '\n'

    # Shared by all encoders so UIDs stay unique within the process.
    _sequence = itertools.count(1)

    def encode(
        self,
        title: Optional[str],
        description: Optional[str],
        location: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
        stamp: datetime
    ) -> str:
        """
        Build a calendar record for one event.

        Args:
            title: Event title, omitted when empty
            description: Event description, omitted when empty
            location: Event location, omitted when empty
            start: Start instant, omitted when None
            end: End instant, omitted when None
            stamp: Generation instant for DTSTAMP and UID

        Returns:
            Calendar record text
        """
        lines: List[str] = [
            'BEGIN:VCALENDAR',
            'VERSION:2.0',
            f'PRODID:{self.PRODID}',
            'BEGIN:VEVENT',
            f'UID:{self._generate_uid(stamp)}',
            f'DTSTAMP:{self.format_utc(stamp)}',
        ]

        if start:
            lines.append(f'DTSTART:{self.format_utc(start)}')
        if end:
            lines.append(f'DTEND:{self.format_utc(end)}')

        # Optional text fields
        if title:
            lines.append(f'SUMMARY:{self.escape_text(title)}')
        if description:
            lines.append(f'DESCRIPTION:{self.escape_text(description)}')
        if location:
            lines.append(f'LOCATION:{self.escape_text(location)}')

        lines.extend(['END:VEVENT', 'END:VCALENDAR'])
        return self.LINE_TERMINATOR.join(lines)

    def filename_for(self, stamp: datetime) -> str:
        """Attachment name for a record generated at stamp."""
        return f'event_{self._epoch_millis(stamp)}.ics'

    @staticmethod
    def format_utc(value: datetime) -> str:
        """
        Format an instant as compact UTC (YYYYMMDDTHHMMSSZ).

        Naive datetimes are taken to be UTC already.
        """
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%SZ')

    @staticmethod
    def escape_text(text: str) -> str:
        """Replace line breaks with the literal two-character sequence \\n."""
        return text.replace('\r\n', '\\n').replace('\n', '\\n').replace('\r', '\\n')

    def _generate_uid(self, stamp: datetime) -> str:
        return f'event-{self._epoch_millis(stamp)}-{next(self._sequence)}@{self.UID_DOMAIN}'

    @staticmethod
    def _epoch_millis(stamp: datetime) -> int:
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        return int(stamp.timestamp() * 1000)
