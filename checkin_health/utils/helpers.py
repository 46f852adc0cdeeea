"""Shared request-parsing helpers for the data-management API.

parse_date_input:  raises ValueError on bad input (week starts, filter bounds)
parse_bool:        tolerant boolean coercion for query strings and JSON bodies
"""
from datetime import date, datetime

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS[+zone] (datetime ISO, returned as datetime so the
      caller can resolve its calendar day in the governing timezone)
    - DD.MM.YYYY (European format)
    - date / datetime objects (returned unchanged)

    Returns None for empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value
    if not isinstance(value, str):
        raise ValueError("Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY.")
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValueError(
            "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
        ) from exc


def parse_bool(value, default=False):
    """Coerce JSON/query values to bool; raises ValueError on unrecognised text."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")
