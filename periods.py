import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class DateRange:
    """Inclusive date filter; a missing bound leaves that side open."""

    start: Optional[date] = None
    end: Optional[date] = None

    @property
    def is_empty(self) -> bool:
        return self.start is not None and self.end is not None and self.start > self.end


def _parse_date(value: Optional[str], label: str) -> Optional[date]:
    if value is None or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError as exc:
        raise ValueError(f"Invalid {label} date: {value!r}") from exc


def resolve_date_range(start: Optional[str], end: Optional[str]) -> DateRange:
    # An inverted range is kept as-is: queries over it simply match nothing.
    return DateRange(_parse_date(start, "start"), _parse_date(end, "end"))


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def shift_months(d: date, count: int) -> date:
    """Same day ``count`` months away, clamped to the target month's last day."""
    target = add_months(d, count)
    last_day = calendar.monthrange(target.year, target.month)[1]
    return target.replace(day=min(d.day, last_day))


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def trailing_window(today: date, months: int) -> DateRange:
    if months < 1:
        raise ValueError("months must be at least 1")
    try:
        start = shift_months(today, -months)
    except (OverflowError, ValueError) as exc:
        raise ValueError(f"months is out of range: {months}") from exc
    return DateRange(start, today)


def months_between(start: date, end: date) -> list[tuple[int, int]]:
    out: list[tuple[int, int]] = []
    current = month_start(start)
    last = month_start(end)
    while current <= last:
        out.append((current.year, current.month))
        current = add_months(current, 1)
    return out
