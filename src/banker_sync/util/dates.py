from __future__ import annotations

import re
from datetime import date

from dateutil import parser as date_parser


_NON_DATE_CHARS_RE = re.compile(r"[^0-9/\-]")
_DATE_IN_TEXT_RE = re.compile(r"\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b")


def parse_day_first_date(value: str) -> date:
    """
    Parse dates like:
    - "01/02/2024" (1 Feb 2024)
    - "1-2-24"
    - "Fecha: 01/02/2024"
    - "2024-02-01" (year first is accepted when the first part has four digits)

    Anything outside [0-9/-] is stripped first; exactly three parts are required.
    """
    if value is None:
        raise ValueError("parse_day_first_date: value is None")
    s = _NON_DATE_CHARS_RE.sub("", value).strip("/-")
    if not s:
        raise ValueError(f"parse_day_first_date: no date in {value!r}")

    parts = [p for p in re.split(r"[/-]", s) if p]
    if len(parts) != 3:
        raise ValueError(f"parse_day_first_date: expected day/month/year in {value!r}")

    year_first = len(parts[0]) == 4
    cleaned = "/".join(parts)
    dt = date_parser.parse(cleaned, dayfirst=not year_first, yearfirst=year_first)

    # dateutil silently swaps day and month when the month is out of range ("01/13/2024").
    day, month = (parts[2], parts[1]) if year_first else (parts[0], parts[1])
    if (dt.day, dt.month) != (int(day), int(month)):
        raise ValueError(f"parse_day_first_date: {value!r} is not day/month/year")
    return dt.date()


def looks_like_date(text: str) -> bool:
    return bool(_DATE_IN_TEXT_RE.search(text or ""))
