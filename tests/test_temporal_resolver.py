"""Unit tests for the temporal resolver."""
import pytest
from datetime import date, datetime, timedelta, timezone

from processor.models import ResolvedEvent
from processor.temporal_resolver import (
    CIVIL_OFFSET,
    PhraseCategory,
    classify_date_phrase,
    reference_date_for,
    resolve,
    resolve_date,
    resolve_time,
)

# 2024-12-25 is a Wednesday
WEDNESDAY = date(2024, 12, 25)
REFERENCE = datetime(2024, 12, 25, 10, 0, tzinfo=CIVIL_OFFSET)


class TestClassifyDatePhrase:
    """Test cases for date phrase classification."""

    def test_absolute_date(self):
        """Test numeric dates are classified as absolute."""
        category, _ = classify_date_phrase("25/12/2024")
        assert category is PhraseCategory.ABSOLUTE_DATE

    def test_month_day(self):
        """Test month-name dates are classified as month/day."""
        category, _ = classify_date_phrase("December 25")
        assert category is PhraseCategory.MONTH_DAY

    def test_weekday(self):
        """Test weekday names in both languages."""
        assert classify_date_phrase("next Monday")[0] is PhraseCategory.WEEKDAY
        assert classify_date_phrase("יום שני")[0] is PhraseCategory.WEEKDAY

    def test_relative_days(self):
        """Test tomorrow and today."""
        assert classify_date_phrase("Tomorrow")[0] is PhraseCategory.TOMORROW
        assert classify_date_phrase("מחר")[0] is PhraseCategory.TOMORROW
        assert classify_date_phrase("today")[0] is PhraseCategory.TODAY
        assert classify_date_phrase("היום")[0] is PhraseCategory.TODAY

    def test_unrecognized(self):
        """Test empty and unknown phrases."""
        assert classify_date_phrase(None)[0] is PhraseCategory.UNRECOGNIZED
        assert classify_date_phrase("   ")[0] is PhraseCategory.UNRECOGNIZED
        assert classify_date_phrase("sometime soon")[0] is PhraseCategory.UNRECOGNIZED

    def test_absolute_date_takes_precedence_over_weekday(self):
        """Test the first matching category wins."""
        category, _ = classify_date_phrase("Friday 01/01/2025")
        assert category is PhraseCategory.ABSOLUTE_DATE

    def test_weekday_takes_precedence_over_tomorrow(self):
        """Test weekday outranks relative days."""
        category, _ = classify_date_phrase("tomorrow, Friday")
        assert category is PhraseCategory.WEEKDAY


class TestResolveDate:
    """Test cases for date resolution."""

    def test_absolute_date_four_digit_year(self):
        """Test day-first numeric date."""
        assert resolve_date("25/12/2024", WEDNESDAY) == date(2024, 12, 25)

    def test_absolute_date_two_digit_year(self):
        """Test two-digit years expand to 2000 + year."""
        assert resolve_date("25/12/24", WEDNESDAY) == date(2024, 12, 25)

    def test_absolute_date_with_dots(self):
        """Test D.M.Y separator."""
        assert resolve_date("1.3.2025", WEDNESDAY) == date(2025, 3, 1)

    def test_absolute_date_impossible(self):
        """Test impossible dates fall back to the reference date."""
        assert resolve_date("31/02/2024", WEDNESDAY) == WEDNESDAY

    def test_month_name_and_day(self):
        """Test month name dates use the reference year."""
        assert resolve_date("December 31", WEDNESDAY) == date(2024, 12, 31)
        assert resolve_date("March 3rd", WEDNESDAY) == date(2024, 3, 3)

    def test_day_before_abbreviated_month(self):
        """Test day-first month dates do not roll into next year."""
        assert resolve_date("5 Jan", WEDNESDAY) == date(2024, 1, 5)

    def test_same_weekday_rolls_forward(self):
        """Test a bare weekday equal to today resolves a week later."""
        assert resolve_date("Wednesday", WEDNESDAY) == date(2025, 1, 1)

    def test_same_weekday_with_today(self):
        """Test an explicit today keeps the reference date."""
        assert resolve_date("today Wednesday", WEDNESDAY) == WEDNESDAY

    def test_next_same_weekday(self):
        """Test next on the same weekday adds one week."""
        assert resolve_date("next Wednesday", WEDNESDAY) == date(2025, 1, 1)

    def test_next_later_weekday_adds_week(self):
        """Test next always adds seven days."""
        assert resolve_date("next Friday", WEDNESDAY) == date(2025, 1, 3)

    def test_later_weekday_this_week(self):
        """Test a later weekday resolves within the week."""
        assert resolve_date("Friday", WEDNESDAY) == date(2024, 12, 27)

    def test_earlier_weekday_rolls_to_next_week(self):
        """Test an earlier weekday resolves to the following week."""
        assert resolve_date("Monday", WEDNESDAY) == date(2024, 12, 30)

    def test_sunday(self):
        """Test Sunday is the first day of the week."""
        assert resolve_date("Sunday", WEDNESDAY) == date(2024, 12, 29)

    def test_hebrew_weekdays_match_english(self):
        """Test Hebrew weekday phrases resolve like their English counterparts."""
        pairs = [
            ("יום רביעי", "Wednesday"),
            ("יום רביעי הבא", "next Wednesday"),
            ("היום יום רביעי", "today Wednesday"),
            ("יום שישי", "Friday"),
            ("יום שני", "Monday"),
            ("יום ראשון", "Sunday"),
        ]
        for hebrew, english in pairs:
            assert resolve_date(hebrew, WEDNESDAY) == resolve_date(english, WEDNESDAY), hebrew

    def test_hebrew_upcoming_modifier(self):
        """Test the feminine upcoming modifier."""
        assert resolve_date("שבת הקרובה", WEDNESDAY) == date(2025, 1, 4)

    def test_hebrew_prefixed_weekday(self):
        """Test the definite article prefix on a weekday."""
        assert resolve_date("השבת", WEDNESDAY) == date(2024, 12, 28)

    def test_tomorrow(self):
        """Test tomorrow in both languages."""
        assert resolve_date("Tomorrow", WEDNESDAY) == date(2024, 12, 26)
        assert resolve_date("מחר", WEDNESDAY) == date(2024, 12, 26)

    def test_day_after_tomorrow_is_not_tomorrow(self):
        """Test the Hebrew word for the day after tomorrow is unrecognized."""
        assert resolve_date("מחרתיים", WEDNESDAY) == WEDNESDAY

    def test_today(self):
        """Test today in both languages."""
        assert resolve_date("today", WEDNESDAY) == WEDNESDAY
        assert resolve_date("היום", WEDNESDAY) == WEDNESDAY

    def test_absent_or_unrecognized(self):
        """Test missing phrases keep the reference date."""
        assert resolve_date(None, WEDNESDAY) == WEDNESDAY
        assert resolve_date("", WEDNESDAY) == WEDNESDAY
        assert resolve_date("sometime soon", WEDNESDAY) == WEDNESDAY


class TestResolveTime:
    """Test cases for time resolution."""

    def test_24_hour_format(self):
        """Test H:MM."""
        assert resolve_time("15:00") == (15, 0)
        assert resolve_time("9:45") == (9, 45)

    def test_pm(self):
        """Test pm adds twelve hours."""
        assert resolve_time("3 PM") == (15, 0)
        assert resolve_time("3pm") == (15, 0)
        assert resolve_time("7:30 p.m.") == (19, 30)

    def test_am(self):
        """Test am keeps the hour."""
        assert resolve_time("9:30 a.m.") == (9, 30)
        assert resolve_time("11 AM") == (11, 0)

    def test_twelve_am_and_pm(self):
        """Test midnight and noon edge cases."""
        assert resolve_time("12 am") == (0, 0)
        assert resolve_time("12 PM") == (12, 0)

    def test_bare_hour_is_literal(self):
        """Test no am/pm inference for a bare hour."""
        assert resolve_time("8") == (8, 0)
        assert resolve_time("5") == (5, 0)

    def test_hebrew_time_phrase(self):
        """Test clock time embedded in Hebrew text."""
        assert resolve_time("בשעה 18:00") == (18, 0)

    def test_default_time(self):
        """Test absent and unrecognized phrases default to 08:00."""
        assert resolve_time(None) == (8, 0)
        assert resolve_time("") == (8, 0)
        assert resolve_time("noon") == (8, 0)

    def test_out_of_range(self):
        """Test impossible clock values default to 08:00."""
        assert resolve_time("25:00") == (8, 0)
        assert resolve_time("10:75") == (8, 0)

    def test_first_in_range_time_wins(self):
        """Test an out-of-range or date-like number does not hide a later time."""
        assert resolve_time("25/12 15:00") == (15, 0)
        assert resolve_time("26:00 or 18:30") == (18, 30)
        assert resolve_time("10.5.2024 at 3pm") == (15, 0)


class TestResolve:
    """Test cases for full resolution."""

    def test_end_is_one_hour_after_start(self):
        """Test the derived end for a range of phrases."""
        phrases = [
            (None, None), ("Wednesday", "3 PM"), ("25/12/24", "23:30"),
            ("מחר", "בשעה 18:00"), ("gibberish", "gibberish"),
        ]
        for date_phrase, time_phrase in phrases:
            resolved = resolve(date_phrase, time_phrase, REFERENCE)
            assert resolved.end - resolved.start == timedelta(minutes=60)

    def test_start_in_civil_offset(self):
        """Test the start instant carries the civil offset."""
        resolved = resolve("Wednesday", "3 PM", REFERENCE)
        assert resolved.start == datetime(2025, 1, 1, 15, 0, tzinfo=CIVIL_OFFSET)
        assert resolved.start.utcoffset() == timedelta(hours=2)

    def test_defaults(self):
        """Test no phrases resolve to 08:00 on the reference date."""
        resolved = resolve(None, None, REFERENCE)
        assert resolved.start == datetime(2024, 12, 25, 8, 0, tzinfo=CIVIL_OFFSET)
        assert resolved.end == datetime(2024, 12, 25, 9, 0, tzinfo=CIVIL_OFFSET)

    def test_reference_converted_to_civil_date(self):
        """Test a UTC reference late in the day maps to the next civil date."""
        reference = datetime(2024, 12, 24, 23, 0, tzinfo=timezone.utc)
        assert reference_date_for(reference) == date(2024, 12, 25)
        resolved = resolve("today", None, reference)
        assert resolved.start.date() == date(2024, 12, 25)

    def test_naive_reference_is_civil_time(self):
        """Test naive references are not shifted."""
        assert reference_date_for(datetime(2024, 12, 24, 23, 0)) == date(2024, 12, 24)

    def test_custom_offset(self):
        """Test resolution in a different fixed offset."""
        offset = timezone(timedelta(hours=3))
        resolved = resolve("today", "10:00", REFERENCE, offset)
        assert resolved.start.utcoffset() == timedelta(hours=3)
        assert resolved.start.hour == 10


class TestResolvedEvent:
    """Test cases for the ResolvedEvent invariant."""

    def test_end_must_follow_start(self):
        """Test end <= start is rejected."""
        start = datetime(2024, 12, 25, 8, 0, tzinfo=timezone.utc)
        with pytest.raises(ValueError):
            ResolvedEvent(start=start, end=start)
