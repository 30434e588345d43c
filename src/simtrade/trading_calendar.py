"""Trading calendar: calendar dates in the fixed market timezone.

Every date in the engine is a ``datetime.date`` produced by normalizing a
timezone-aware instant into the configured market timezone (Asia/Seoul by
default). The host's local timezone is never consulted. Weekend checks are a
pure function of day-of-week; exchange holidays are not modelled.

``TradingCalendar`` owns the clock so tests can pin "today". The pure date
helpers are module-level functions.
"""

import re
from collections.abc import Callable, Iterator
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from simtrade.config import CalendarSettings
from simtrade.exceptions import ValidationError

DATE_FORMAT = "%Y-%m-%d"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_LABEL_RE = re.compile(r"^(\d{4})-(\d{2})$")

Clock = Callable[[], datetime]


def _system_clock() -> datetime:
    return datetime.now(timezone.utc)


class TradingCalendar:
    """Clock-backed calendar bound to one market timezone.

    Args:
        settings: Timezone and session bounds. Defaults to ``CalendarSettings()``.
        clock: Zero-arg callable returning a timezone-aware ``datetime``.
            Defaults to the system UTC clock.
    """

    def __init__(
        self,
        settings: CalendarSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings or CalendarSettings()
        try:
            self._tz = ZoneInfo(self._settings.timezone)
        except ZoneInfoNotFoundError as e:
            raise ValidationError(f"Unknown timezone: {self._settings.timezone}") from e
        self._clock = clock or _system_clock

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        """Current instant expressed in the market timezone."""
        return self._to_local(self._clock())

    def today(self) -> date:
        """Current calendar date in the market timezone."""
        return self.now().date()

    def normalize(self, instant: datetime) -> date:
        """Calendar date of ``instant`` in the market timezone.

        Raises ValidationError for naive datetimes, which have no defined
        instant to convert.
        """
        return self._to_local(instant).date()

    def start_of_day(self, day: date) -> datetime:
        """First instant of ``day`` in the market timezone."""
        return datetime.combine(day, time.min, tzinfo=self._tz)

    def end_of_day(self, day: date) -> datetime:
        """Last instant of ``day`` in the market timezone."""
        return datetime.combine(day, time.max, tzinfo=self._tz)

    def is_market_open(self, at: datetime | None = None) -> bool:
        """Whether the regular session is open at ``at`` (default: now)."""
        local = self._to_local(at) if at is not None else self.now()
        if is_weekend(local.date()):
            return False
        opens = time(self._settings.market_open_hour, self._settings.market_open_minute)
        closes = time(self._settings.market_close_hour, self._settings.market_close_minute)
        return opens <= local.time() <= closes

    def latest_trading_day(self, on_or_before: date | None = None) -> date:
        """Most recent weekday on or before ``on_or_before`` (default: today)."""
        day = on_or_before if on_or_before is not None else self.today()
        while is_weekend(day):
            day -= timedelta(days=1)
        return day

    def _to_local(self, instant: datetime) -> datetime:
        if instant.tzinfo is None or instant.tzinfo.utcoffset(instant) is None:
            raise ValidationError(f"Naive datetime has no timezone: {instant.isoformat()}")
        return instant.astimezone(self._tz)


# ──────────────────────────────────────────────
# Pure date helpers
# ──────────────────────────────────────────────


def parse(text: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` string."""
    if not isinstance(text, str) or not _DATE_RE.match(text):
        raise ValidationError(f"Invalid date (expected YYYY-MM-DD): {text!r}")
    try:
        return date.fromisoformat(text)
    except ValueError as e:
        raise ValidationError(f"Invalid date: {text!r}") from e


def format_date(day: date) -> str:
    return day.strftime(DATE_FORMAT)


def add_days(day: date, n: int) -> date:
    return day + timedelta(days=n)


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def equals(a: date, b: date) -> bool:
    """Calendar-day equality (ignores any time component on datetimes)."""
    a_day = a.date() if isinstance(a, datetime) else a
    b_day = b.date() if isinstance(b, datetime) else b
    return a_day == b_day


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every calendar day in ``[start, end]``, oldest first."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def trading_days(start: date, end: date) -> list[date]:
    """Weekdays in ``[start, end]``, oldest first."""
    return [d for d in iter_days(start, end) if not is_weekend(d)]


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_label(day: date) -> str:
    """``YYYY-MM`` label of the month containing ``day``."""
    return f"{day.year:04d}-{day.month:02d}"


def previous_month_label(day: date) -> str:
    """``YYYY-MM`` label of the month before the one containing ``day``."""
    return month_label(month_start(day) - timedelta(days=1))


def parse_month_label(label: str) -> tuple[int, int]:
    """Split a ``YYYY-MM`` label into (year, month)."""
    match = _MONTH_LABEL_RE.match(label) if isinstance(label, str) else None
    if match is None:
        raise ValidationError(f"Invalid period label (expected YYYY-MM): {label!r}")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month in period label: {label!r}")
    return year, month
