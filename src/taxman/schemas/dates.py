"""
Lenient date parsing shared by input sanitization and LLM output handling.
"""

import re
from datetime import date, datetime
from typing import Any, Callable, Optional

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_DATE_FORMATS = (
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%Y%m%d",
    "%d.%m.%Y",
    "%m/%d/%Y",
    "%Y年%m月%d日",
)


def parse_date(value: Any) -> Optional[str]:
    """Parse a date-ish value to YYYY-MM-DD, or None if it is not a date."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    clean = str(value or "").strip()
    if not clean:
        return None
    if _ISO_DATE.match(clean):
        try:
            return date.fromisoformat(clean).isoformat()
        except ValueError:
            return None

    try:
        return datetime.fromisoformat(clean.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(clean, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def normalize_date(value: Any, today: Callable[[], date] = date.today) -> str:
    """
    Normalize a date-ish value to YYYY-MM-DD.

    Unparseable input falls back to today's date. This is a deliberate lossy
    default, not an error.
    """
    return parse_date(value) or today().isoformat()
