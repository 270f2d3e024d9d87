"""Resolution of free-text date and time phrases to concrete instants.

Date phrases are classified into a closed set of categories by an ordered
pattern table; the first category whose pattern matches wins. Every phrase
resolves to something: unrecognized input falls back to the reference date
and the default start time of 08:00.
"""
import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple

from processor.models import ResolvedEvent

logger = logging.getLogger(__name__)

# Israel Standard Time. Unqualified clock times are read in this offset.
CIVIL_OFFSET = timezone(timedelta(hours=2))

DEFAULT_HOUR = 8
DEFAULT_MINUTE = 0
EVENT_DURATION = timedelta(minutes=60)


class PhraseCategory(Enum):
    """Date phrase families, listed in matching precedence order."""
    ABSOLUTE_DATE = 'absolute_date'
    MONTH_DAY = 'month_day'
    WEEKDAY = 'weekday'
    TOMORROW = 'tomorrow'
    TODAY = 'today'
    UNRECOGNIZED = 'unrecognized'


MONTH_NUMBERS = {
    'january': 1, 'february': 2, 'march': 3, 'april': 4,
    'may': 5, 'june': 6, 'july': 7, 'august': 8,
    'september': 9, 'october': 10, 'november': 11, 'december': 12,
}
MONTH_NUMBERS.update({name[:3]: number for name, number in list(MONTH_NUMBERS.items())})

# Sunday first, matching the Hebrew week.
ENGLISH_WEEKDAYS = (
    'sunday', 'monday', 'tuesday', 'wednesday',
    'thursday', 'friday', 'saturday',
)
HEBREW_WEEKDAYS = ('ראשון', 'שני', 'שלישי', 'רביעי', 'חמישי', 'שישי', 'שבת')

WEEKDAY_INDEX = {name: index for index, name in enumerate(ENGLISH_WEEKDAYS)}
WEEKDAY_INDEX.update({name: index for index, name in enumerate(HEBREW_WEEKDAYS)})

_MONTHS = '|'.join(sorted(MONTH_NUMBERS, key=len, reverse=True))
_ORDINAL = r'(?:st|nd|rd|th)?'

_ABSOLUTE_DATE = re.compile(r'\b(\d{1,2})[./](\d{1,2})[./](\d{4}|\d{2})\b')
_MONTH_DAY = re.compile(
    rf'\b(?:(?P<month_first>{_MONTHS})\.?\s+(?P<day_after>\d{{1,2}}){_ORDINAL}'
    rf'|(?P<day_first>\d{{1,2}}){_ORDINAL}\s+(?:of\s+)?(?P<month_after>{_MONTHS}))\b'
)
_WEEKDAY = re.compile(
    r'\b(' + '|'.join(ENGLISH_WEEKDAYS) + r')\b'
    r'|(?<!\w)[בה]?(' + '|'.join(HEBREW_WEEKDAYS) + r')(?!\w)'
)
_TOMORROW = re.compile(r'\btomorrow\b|(?<!\w)מחר(?!\w)')
_TODAY = re.compile(r'\btoday\b|(?<!\w)היום(?!\w)')
_NEXT = re.compile(r'\bnext\b|הבא|הקרוב')

_DATE_PATTERNS = (
    (PhraseCategory.ABSOLUTE_DATE, _ABSOLUTE_DATE),
    (PhraseCategory.MONTH_DAY, _MONTH_DAY),
    (PhraseCategory.WEEKDAY, _WEEKDAY),
    (PhraseCategory.TOMORROW, _TOMORROW),
    (PhraseCategory.TODAY, _TODAY),
)

_TIME = re.compile(
    r'(?<![\d:/.])(\d{1,2})(?::(\d{2}))?(?![\d/]|\.\d)\s*(?:([ap])\.?m\b\.?)?',
    re.IGNORECASE,
)


def classify_date_phrase(phrase: Optional[str]) -> Tuple[PhraseCategory, Optional[re.Match]]:
    """
    Classify a date phrase by the first pattern that matches it.

    Args:
        phrase: Free-text date phrase, may be None

    Returns:
        Tuple of (category, match object or None when unrecognized)
    """
    if not phrase or not phrase.strip():
        return PhraseCategory.UNRECOGNIZED, None

    text = phrase.strip().lower()
    for category, pattern in _DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return category, match

    return PhraseCategory.UNRECOGNIZED, None


def resolve_date(phrase: Optional[str], reference_date: date) -> date:
    """
    Resolve a date phrase relative to a reference date.

    Args:
        phrase: Free-text date phrase, may be None
        reference_date: Date treated as "today"

    Returns:
        Resolved calendar date, the reference date when unrecognized
    """
    category, match = classify_date_phrase(phrase)

    if category is PhraseCategory.ABSOLUTE_DATE:
        day, month, year = (int(part) for part in match.groups())
        if year < 100:
            year += 2000
        return _safe_date(year, month, day, reference_date, phrase)

    if category is PhraseCategory.MONTH_DAY:
        month_name = match.group('month_first') or match.group('month_after')
        day = int(match.group('day_after') or match.group('day_first'))
        return _safe_date(
            reference_date.year, MONTH_NUMBERS[month_name], day,
            reference_date, phrase
        )

    if category is PhraseCategory.WEEKDAY:
        text = phrase.strip().lower()
        target = WEEKDAY_INDEX[match.group(1) or match.group(2)]
        return reference_date + timedelta(
            days=_days_until_weekday(text, target, reference_date)
        )

    if category is PhraseCategory.TOMORROW:
        return reference_date + timedelta(days=1)

    return reference_date


def _days_until_weekday(text: str, target: int, reference_date: date) -> int:
    """Days from the reference date to the named weekday."""
    # date.weekday() counts from Monday; shift to Sunday-first.
    reference_index = (reference_date.weekday() + 1) % 7
    days = target - reference_index
    says_today = _TODAY.search(text) is not None

    if _NEXT.search(text):
        days += 7
    elif days <= 0 and not says_today:
        # A bare weekday never means today, even on that weekday.
        days += 7
    elif says_today:
        days = 0

    return days


def _safe_date(year: int, month: int, day: int, reference_date: date,
               phrase: Optional[str]) -> date:
    try:
        return date(year, month, day)
    except ValueError:
        logger.debug(f"Impossible date in phrase '{phrase}', using reference date")
        return reference_date


def resolve_time(phrase: Optional[str]) -> Tuple[int, int]:
    """
    Resolve a clock-time phrase to (hour, minute).

    Args:
        phrase: Free-text time phrase (e.g. "15:00", "3 PM", "בשעה 18:00")

    Returns:
        Tuple of (hour, minute), (8, 0) when absent or unrecognized
    """
    if not phrase:
        return DEFAULT_HOUR, DEFAULT_MINUTE

    for match in _TIME.finditer(phrase):
        hour = int(match.group(1))
        minute = int(match.group(2)) if match.group(2) else 0
        meridiem = (match.group(3) or '').lower()

        if meridiem == 'a' and hour == 12:
            hour = 0
        elif meridiem == 'p' and hour < 12:
            hour += 12

        if hour <= 23 and minute <= 59:
            return hour, minute

    logger.debug(f"No in-range time in phrase '{phrase}', using default")
    return DEFAULT_HOUR, DEFAULT_MINUTE


def reference_date_for(reference: datetime, civil_offset: timezone = CIVIL_OFFSET) -> date:
    """Civil date of the reference instant; naive instants are already civil."""
    if reference.tzinfo is None:
        return reference.date()
    return reference.astimezone(civil_offset).date()


def resolve(date_phrase: Optional[str], time_phrase: Optional[str],
            reference: datetime,
            civil_offset: timezone = CIVIL_OFFSET) -> ResolvedEvent:
    """
    Resolve date and time phrases to a start instant and a one-hour end.

    Args:
        date_phrase: Free-text date phrase, may be None
        time_phrase: Free-text time phrase, may be None
        reference: Instant treated as "now"
        civil_offset: Fixed offset for interpreting wall-clock times

    Returns:
        ResolvedEvent with timezone-aware start and end
    """
    event_date = resolve_date(date_phrase, reference_date_for(reference, civil_offset))
    hour, minute = resolve_time(time_phrase)
    start = datetime.combine(event_date, time(hour, minute), tzinfo=civil_offset)
    return ResolvedEvent(start=start, end=start + EVENT_DURATION)
