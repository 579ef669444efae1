from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional


_CURRENCY = r"(?:Bs\.?S?\.?|USD|VES|\$|€)"
_CURRENCY_RE = re.compile(_CURRENCY, re.I)
_MONEY_RE = re.compile(r"[-+(]?\s*" + _CURRENCY + r"?\s*[\d.,]*\d[\d.,]*\)?", re.I)
_NON_NUMERIC_RE = re.compile(r"[^\d.,]")
# A whole cell holding one amount with a separator: "-1.234,56", "Bs. 150,00", "(12.34)".
_MONEY_CELL_RE = re.compile(
    r"[-+(−]?\s*" + _CURRENCY + r"?\s*[-−]?\d[\d.,]*[.,]\d+\)?\s*" + _CURRENCY + r"?",
    re.I,
)


def amount_polarity(value: str) -> str:
    """
    "debit" when the raw amount carries a minus sign or accounting parentheses, else "credit".
    """
    s = value or ""
    if "-" in s or "−" in s:
        return "debit"
    if "(" in s and ")" in s:
        return "debit"
    return "credit"


def _normalize_separators(digits: str, decimal_separator: str) -> str:
    has_comma = "," in digits
    has_dot = "." in digits

    if has_comma and has_dot:
        # Whichever separator appears last is the decimal one: "1.234,56" / "1,234.56".
        decimal = "," if digits.rfind(",") > digits.rfind(".") else "."
    elif has_comma or has_dot:
        sep = "," if has_comma else "."
        if digits.count(sep) > 1:
            decimal = ""
        elif len(digits) - digits.rfind(sep) - 1 != 3:
            decimal = sep
        else:
            # "1.234" / "1,234" is ambiguous; trust the portal's decimal separator.
            decimal = sep if sep == decimal_separator else ""
    else:
        decimal = ""

    thousands = {",", "."} - {decimal}
    for t in thousands:
        digits = digits.replace(t, "")
    if decimal:
        digits = digits.replace(decimal, ".")
    return digits


def parse_amount(value: str, *, decimal_separator: str = ",") -> Decimal:
    """
    Parse portal amounts into a non-negative magnitude:
    - "-1.234,56"  -> 1234.56
    - "Bs. 150,00" -> 150.00
    - "(12.34)"    -> 12.34 (with decimal_separator=".")
    - "$3,040.16"  -> 3040.16
    - "Bs. ,75"    -> 0.75

    The sign is never kept; use `amount_polarity()` on the raw text.
    Raises ValueError when no number can be read.
    """
    if value is None:
        raise ValueError("parse_amount: value is None")

    s = value.strip()
    if not s:
        raise ValueError("parse_amount: empty string")

    digits = _NON_NUMERIC_RE.sub("", _CURRENCY_RE.sub("", s)).rstrip(".,")
    if not any(ch.isdigit() for ch in digits):
        raise ValueError(f"parse_amount: no digits in {value!r}")

    if digits[0] in ".,":
        # ".50" / ",75": a leading separator is always the decimal one.
        digits = _normalize_separators("0" + digits, digits[0])
    else:
        digits = _normalize_separators(digits, decimal_separator)
    try:
        dec = Decimal(digits)
    except InvalidOperation as e:
        raise ValueError(f"parse_amount: cannot parse {value!r}") from e

    return abs(dec).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def find_first_money(text: str, *, require_separator: bool = False) -> Optional[str]:
    for m in _MONEY_RE.finditer(text or ""):
        found = m.group(0).strip()
        if not require_separator or "," in found or "." in found:
            return found
    return None


def looks_like_money(text: str) -> bool:
    return bool(_MONEY_CELL_RE.fullmatch((text or "").strip()))
