from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta

# Ambiguous numeric dates (03/04/2024) are always read day first.
DATE_POLICY = "day-first"

# Spreadsheet serial 25569 is 1970-01-01 in the 1900 date system.
EXCEL_EPOCH_OFFSET = 25569
_UNIX_EPOCH = datetime(1970, 1, 1)

ZERO_LITERALS = frozenset({"0", "0,00", "0,00 €"})

_DASHES = str.maketrans({"–": "-", "—": "-", "−": "-"})
_WHITESPACE = re.compile(r"\s+")
_LEADING_FLOAT = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

_FREE_FORM_FORMATS = (
    "%d.%m.%Y",
    "%d %m %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%Y%m%d",
)

_FRENCH_MONTHS = {
    "janvier": 1, "janv": 1,
    "fevrier": 2, "février": 2, "fevr": 2, "févr": 2, "fev": 2, "fév": 2,
    "mars": 3,
    "avril": 4, "avr": 4,
    "mai": 5,
    "juin": 6,
    "juillet": 7, "juil": 7,
    "aout": 8, "août": 8,
    "septembre": 9, "sept": 9,
    "octobre": 10, "oct": 10,
    "novembre": 11, "nov": 11,
    "decembre": 12, "décembre": 12, "dec": 12, "déc": 12,
}
_FRENCH_DATE = re.compile(r"^(\d{1,2})(?:er)?\s+([^\W\d_]+)\.?\s+(\d{2,4})$")


def parse_amount(value: object) -> float:
    """Turn a spreadsheet amount into a float; unreadable input gives 0.0.

    Handles European formatting: ``"1 234,56 €"`` -> 1234.56 and
    ``"–45,20 €"`` -> -45.2.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip().translate(_DASHES)
    text = _WHITESPACE.sub("", text.replace("€", ""))
    if not text:
        return 0.0
    if "," in text and "." in text and text.rfind(",") > text.rfind("."):
        text = text.replace(".", "")
    elif "," in text and "." in text:
        text = text.replace(",", "")
    text = text.replace(",", ".")

    m = _LEADING_FLOAT.match(text)
    if not m:
        return 0.0
    try:
        parsed = float(m.group(0))
    except ValueError:
        return 0.0
    return parsed if math.isfinite(parsed) else 0.0


def is_zero_literal(value: object) -> bool:
    text = _WHITESPACE.sub(" ", str(value)).strip()
    return text in ZERO_LITERALS


def parse_quantity(value: object) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def _leading_int(part: str) -> int:
    m = _LEADING_INT.match(part)
    if not m:
        raise ValueError(f"Not a number: {part!r}")
    return int(m.group(1))


def _build(year: int, month: int, day: int) -> str:
    if 0 <= year < 100:
        year += 2000
    return date(year, month, day).isoformat()


def _from_serial(value: float) -> str:
    try:
        moment = _UNIX_EPOCH + timedelta(days=float(value) - EXCEL_EPOCH_OFFSET)
    except OverflowError as exc:
        raise ValueError(f"Serial date out of range: {value}") from exc
    return moment.date().isoformat()


def _free_form(text: str) -> str:
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        pass

    m = _FRENCH_DATE.match(text.lower())
    if m and m.group(2) in _FRENCH_MONTHS:
        return _build(int(m.group(3)), _FRENCH_MONTHS[m.group(2)], int(m.group(1)))

    for fmt in _FREE_FORM_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date: {text!r}")


def parse_date(value: object) -> str:
    """Resolve a spreadsheet date cell to ``YYYY-MM-DD``.

    Numbers are spreadsheet serial days. ``a/b/c`` is DD/MM/YYYY and
    ``a-b-c`` is YYYY-MM-DD when ``a`` has four digits, DD-MM-YYYY
    otherwise. Raises ``ValueError`` when the value is not a date.
    """
    if isinstance(value, bool):
        raise ValueError("Boolean is not a date")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError("Serial date must be finite")
        return _from_serial(value)
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if value is None:
        raise ValueError("Missing date")

    text = str(value).strip()
    if "/" in text:
        parts = text.split("/")
        if len(parts) == 3:
            if len(parts[0].strip()) == 4:
                return _build(_leading_int(parts[0]), _leading_int(parts[1]), _leading_int(parts[2]))
            return _build(_leading_int(parts[2]), _leading_int(parts[1]), _leading_int(parts[0]))
    elif "-" in text:
        parts = text.split("-")
        if len(parts) == 3:
            if len(parts[0].strip()) == 4:
                return _build(_leading_int(parts[0]), _leading_int(parts[1]), _leading_int(parts[2]))
            return _build(_leading_int(parts[2]), _leading_int(parts[1]), _leading_int(parts[0]))
    return _free_form(text)
