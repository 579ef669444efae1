from __future__ import annotations

import re
import unicodedata


_PUNCTUATION_RE = re.compile(r"[¿?¡!]")
_WS_RE = re.compile(r"\s+")


def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(value: str) -> str:
    """
    Lower-case, strip accents and Spanish question/exclamation marks, collapse whitespace.

    "¿Cuál es tu ánimo?" -> "cual es tu animo"
    """
    s = strip_diacritics(value or "").lower()
    s = _PUNCTUATION_RE.sub("", s)
    return _WS_RE.sub(" ", s).strip()


def mask_secret(value: str, *, keep: int = 3) -> str:
    s = value or ""
    return f"{s[:keep]}***"
