"""
Informal date phrase resolution ("last week", "2 years ago", "2023").

Pure and deterministic given ``now``. Unrecognized phrases resolve to an
empty range, never an error.
"""

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

DAYS_PER_MONTH = 30
DAYS_PER_YEAR = 365

_YEARS_AGO_RE = re.compile(r"(\d+)\s*years?\s*ago")
_MONTHS_AGO_RE = re.compile(r"(\d+)\s*months?\s*ago")
_BARE_YEAR_RE = re.compile(r"\b(20\d{2})\b")

GMAIL_DATE_FORMAT = "%Y/%m/%d"


@dataclass(frozen=True)
class DateRange:
    after: date | None = None
    before: date | None = None

    def is_empty(self) -> bool:
        return self.after is None and self.before is None

    def to_gmail_clauses(self) -> list[str]:
        clauses = []
        if self.after:
            clauses.append(f"after:{self.after.strftime(GMAIL_DATE_FORMAT)}")
        if self.before:
            clauses.append(f"before:{self.before.strftime(GMAIL_DATE_FORMAT)}")
        return clauses


def _days_back(now: datetime, days: int) -> date:
    return (now - timedelta(days=days)).date()


def resolve_date_hint(phrase: str, now: datetime | None = None) -> DateRange:
    """
    Map one informal date phrase to a concrete date range.

    Args:
        phrase: Free-text hint such as "yesterday" or "3 months ago"
        now: Reference time, defaults to current UTC time

    Returns:
        DateRange with optional after/before bounds
    """
    if not phrase:
        return DateRange()

    now = now or datetime.now(UTC)
    hint = phrase.lower()

    if "today" in hint:
        return DateRange(after=now.date())
    if "yesterday" in hint:
        return DateRange(after=_days_back(now, 1))
    if "last week" in hint or "this week" in hint:
        return DateRange(after=_days_back(now, 7))
    if "last month" in hint or "this month" in hint:
        return DateRange(after=_days_back(now, DAYS_PER_MONTH))
    if "last year" in hint or "this year" in hint:
        return DateRange(after=_days_back(now, DAYS_PER_YEAR))

    years_match = _YEARS_AGO_RE.search(hint)
    if years_match:
        start = now - timedelta(days=int(years_match.group(1)) * DAYS_PER_YEAR)
        end = start + timedelta(days=DAYS_PER_YEAR)
        return DateRange(after=start.date(), before=end.date())

    months_match = _MONTHS_AGO_RE.search(hint)
    if months_match:
        return DateRange(after=_days_back(now, int(months_match.group(1)) * DAYS_PER_MONTH))

    year_match = _BARE_YEAR_RE.search(hint)
    if year_match:
        year = int(year_match.group(1))
        return DateRange(after=date(year, 1, 1), before=date(year, 12, 31))

    return DateRange()
