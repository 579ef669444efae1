from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional, Sequence

from .models import Polarity, RawTableGrid, TransactionRecord
from .util.dates import looks_like_date, parse_day_first_date
from .util.money import amount_polarity, looks_like_money, parse_amount
from .util.text import normalize_text


logger = logging.getLogger(__name__)


# Header keywords per field, matched against normalized header text. Order matters: a header is
# assigned to the first field whose keyword it contains.
HEADER_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("polarity", ("d/c", "dc", "d / c")),
    ("date", ("fecha", "date")),
    ("balance", ("saldo", "balance")),
    ("amount", ("monto", "amount", "importe")),
    ("reference", ("referencia", "reference", "ref", "numero", "nro")),
    ("description", ("descripcion", "description", "concepto", "detalle")),
    ("raw_type", ("tipo", "type", "operacion")),
)

# Exact-match only; "dc" would otherwise match inside other words.
_EXACT_ONLY = {"polarity"}


@dataclass(frozen=True)
class ColumnLayout:
    date: int
    amount: int
    description: Optional[int] = None
    reference: Optional[int] = None
    raw_type: Optional[int] = None
    balance: Optional[int] = None
    polarity: Optional[int] = None
    # Rows shorter than this are skipped; defaults to covering the date and amount columns.
    min_columns: Optional[int] = None

    @property
    def required_columns(self) -> int:
        if self.min_columns is not None:
            return self.min_columns
        return max(self.date, self.amount) + 1

    @classmethod
    def match_headers(cls, headers: Sequence[str]) -> Optional["ColumnLayout"]:
        """
        Map columns by header keywords (Spanish or English). None when no date or amount header is found.
        """
        found: dict[str, int] = {}
        for idx, header in enumerate(headers):
            text = normalize_text(header)
            if not text:
                continue
            for name, keywords in HEADER_KEYWORDS:
                if name in found:
                    continue
                if name in _EXACT_ONLY:
                    hit = text in keywords
                else:
                    hit = any(k in text for k in keywords)
                if hit:
                    found[name] = idx
                    break

        if "date" not in found or "amount" not in found:
            return None
        return cls(**found)

    @classmethod
    def from_headers(cls, headers: Sequence[str], *, fallback: Optional["ColumnLayout"] = None) -> "ColumnLayout":
        """Like `match_headers()`, falling back to `fallback` (or the positional layout)."""
        layout = cls.match_headers(headers)
        if layout is None:
            if headers:
                logger.debug("Unrecognized table headers %s; using positional layout", list(headers))
            return fallback or POSITIONAL_LAYOUT
        return layout


# Date, type, reference, amount, description.
POSITIONAL_LAYOUT = ColumnLayout(date=0, raw_type=1, reference=2, amount=3, description=4, min_columns=4)


def scan_row_layout(row: Sequence[str], *, min_cells: int = 3) -> Optional[ColumnLayout]:
    """
    Lay out one row by what its cells contain, for portals whose tables have no usable headers:
    the first date-like cell, the first amount-like cell, a lone "D"/"C" cell for polarity and the
    longest remaining cell as the description. None when the row has no date or no amount.
    """
    cells = [(c or "").strip() for c in row]
    if len(cells) < min_cells:
        return None

    date_idx = next((i for i, c in enumerate(cells) if looks_like_date(c)), None)
    amount_idx = next((i for i, c in enumerate(cells) if i != date_idx and looks_like_money(c)), None)
    if date_idx is None or amount_idx is None:
        return None

    polarity_idx = next(
        (i for i, c in enumerate(cells) if i not in (date_idx, amount_idx) and c.upper() in ("D", "C")), None
    )
    rest = [i for i, c in enumerate(cells) if c and i not in (date_idx, amount_idx, polarity_idx)]
    description_idx = max(rest, key=lambda i: len(cells[i]), default=None)
    return ColumnLayout(
        date=date_idx,
        amount=amount_idx,
        description=description_idx,
        polarity=polarity_idx,
        min_columns=min_cells,
    )


@dataclass
class NormalizedBatch:
    records: list[TransactionRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    skipped: int = 0

    def extend(self, other: "NormalizedBatch") -> None:
        self.records.extend(other.records)
        self.warnings.extend(other.warnings)
        self.skipped += other.skipped


def _cell(row: Sequence[str], idx: Optional[int]) -> str:
    if idx is None or idx >= len(row):
        return ""
    return (row[idx] or "").strip()


def _polarity_from_column(value: str) -> Optional[Polarity]:
    v = value.strip().upper()
    if v == "D":
        return Polarity.DEBIT
    if v == "C":
        return Polarity.CREDIT
    return None


class TransactionNormalizer:
    """
    Turns raw table rows into `TransactionRecord`s.

    Lossy on purpose, but never silently: an unreadable date becomes today and an unreadable amount
    becomes 0, each with a warning. Rows too short for the layout, or with no date or amount cell when
    scanning, are skipped.
    """

    def __init__(
        self,
        source: str,
        layout: Optional[ColumnLayout] = None,
        *,
        decimal_separator: str = ",",
        scan_rows: bool = False,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.source = (source or "").strip().lower()
        self.layout = layout
        # Without an explicit layout, lay out every row by its cells instead of by the headers.
        self.scan_rows = scan_rows
        self.decimal_separator = decimal_separator
        self._today = today

    def normalize_grid(self, grid: RawTableGrid, *, account: Optional[str] = None) -> NormalizedBatch:
        layout = self.layout
        if layout is None and not self.scan_rows:
            layout = ColumnLayout.from_headers(grid.headers)
        batch = NormalizedBatch()
        seen: dict[str, int] = {}
        for row in grid.rows:
            row_layout = layout or scan_row_layout(row)
            if row_layout is None:
                batch.skipped += 1
                continue
            record = self.normalize_row(row, layout=row_layout, account=account, warnings=batch.warnings)
            if record is None:
                batch.skipped += 1
                continue
            # Same reference + date twice in one table: keep both, deterministically.
            n = seen.get(record.id, 0) + 1
            seen[record.id] = n
            if n > 1:
                record = record.model_copy(update={"id": f"{record.id}-{n}"})
            batch.records.append(record)

        if batch.skipped:
            logger.info("%s: skipped %d unreadable row(s)", self.source, batch.skipped)
        return batch

    def normalize_row(
        self,
        row: Sequence[str],
        *,
        layout: Optional[ColumnLayout] = None,
        account: Optional[str] = None,
        warnings: Optional[list[str]] = None,
    ) -> Optional[TransactionRecord]:
        layout = layout or self.layout or POSITIONAL_LAYOUT
        if len(row) < layout.required_columns:
            return None
        notes = warnings if warnings is not None else []

        raw_date = _cell(row, layout.date)
        try:
            when = parse_day_first_date(raw_date)
        except (ValueError, OverflowError):
            when = self._today()
            msg = f"{self.source}: unparsable date {raw_date!r}; using {when.isoformat()}"
            logger.warning(msg)
            notes.append(msg)

        raw_amount = _cell(row, layout.amount)
        try:
            amount = float(parse_amount(raw_amount, decimal_separator=self.decimal_separator))
        except ValueError:
            amount = 0.0
            msg = f"{self.source}: unparsable amount {raw_amount!r}; using 0"
            logger.warning(msg)
            notes.append(msg)

        polarity = _polarity_from_column(_cell(row, layout.polarity)) if layout.polarity is not None else None
        if polarity is None:
            polarity = Polarity(amount_polarity(raw_amount))

        balance = 0.0
        raw_balance = _cell(row, layout.balance)
        if raw_balance:
            try:
                balance = float(parse_amount(raw_balance, decimal_separator=self.decimal_separator))
                if amount_polarity(raw_balance) == "debit":
                    balance = -balance
            except ValueError:
                logger.debug("%s: unparsable balance %r", self.source, raw_balance)

        raw_type = _cell(row, layout.raw_type)
        reference = _cell(row, layout.reference)
        description = _cell(row, layout.description) or raw_type

        return TransactionRecord(
            id=self._record_id(when, reference, row),
            date=when,
            description=description,
            amount=amount,
            polarity=polarity,
            running_balance=balance,
            raw_type=raw_type,
            reference_number=reference,
            account=account,
        )

    def _record_id(self, when: date, reference: str, row: Sequence[str]) -> str:
        if reference:
            return f"{self.source}-{reference}-{when.isoformat()}"
        digest = hashlib.sha1("\x1f".join(row).encode("utf-8")).hexdigest()[:12]
        return f"{self.source}-{when.isoformat()}-{digest}"
