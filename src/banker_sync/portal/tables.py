from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..models import RawTableGrid
from ..util.text import normalize_text
from .driver import PageDriver


logger = logging.getLogger(__name__)

# Header row first, then data rows; cell text trimmed. Returns null when no table matches.
_TABLE_JS = """
(selector) => {
  const table = document.querySelector(selector);
  if (!table) return null;
  const rows = table.rows ? Array.from(table.rows) : Array.from(table.querySelectorAll('tr'));
  const cells = (row) => Array.from(row.cells || row.querySelectorAll('th,td'))
    .map((cell) => (cell.textContent || '').replace(/\\s+/g, ' ').trim());
  if (!rows.length) return { headers: [], rows: [] };
  return { headers: cells(rows[0]), rows: rows.slice(1).map(cells) };
}
"""

# Every table matching the selector, same shape as above. Nested tables are read on their own too.
_ALL_TABLES_JS = """
(selector) => Array.from(document.querySelectorAll(selector)).map((table) => {
  const rows = table.rows ? Array.from(table.rows) : Array.from(table.querySelectorAll('tr'));
  const cells = (row) => Array.from(row.cells || row.querySelectorAll('th,td'))
    .map((cell) => (cell.textContent || '').replace(/\\s+/g, ' ').trim());
  if (!rows.length) return { headers: [], rows: [] };
  return { headers: cells(rows[0]), rows: rows.slice(1).map(cells) };
})
"""

# Header words that mark a movements table.
TRANSACTION_HEADER_KEYWORDS: tuple[str, ...] = (
    "fecha",
    "date",
    "monto",
    "amount",
    "descripcion",
    "description",
    "saldo",
    "balance",
)

NO_MOVEMENT_TEXTS: tuple[str, ...] = (
    "no posee movimientos",
    "no hay movimientos",
    "no existen movimientos",
    "sin movimientos",
    "no se encontraron movimientos",
    "no hay registros",
    "sin registros para mostrar",
)


class TableExtractor:
    def __init__(
        self,
        driver: PageDriver,
        *,
        action_delay_ms: int = 200,
        log: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.driver = driver
        self.action_delay_ms = action_delay_ms
        self._log = log or logger

    def extract(self, selector: str = "table") -> RawTableGrid:
        """
        Read the first table matching `selector`. Rows that are empty after trimming are dropped;
        rows may keep different widths.
        """
        data = self.driver.evaluate(_TABLE_JS, selector)
        if not data:
            self._log.warning("No table found for %s", selector)
            return RawTableGrid()

        grid = _to_grid(data)
        self._log.info("Extracted table %s: %d columns, %d rows", selector, len(grid.headers), len(grid.rows))
        return grid

    def extract_matching(
        self,
        keywords: Iterable[str] = TRANSACTION_HEADER_KEYWORDS,
        *,
        selector: str = "table",
        min_rows: int = 1,
    ) -> list[RawTableGrid]:
        """
        Read every table whose header row mentions one of `keywords` (case and accent insensitive) and
        that has at least `min_rows` non-empty data rows. For portals that render movements in one of
        many unnamed layout tables.
        """
        wanted = [normalize_text(k) for k in keywords if k]
        grids: list[RawTableGrid] = []
        data = self.driver.evaluate(_ALL_TABLES_JS, selector) or []
        for raw in data:
            grid = _to_grid(raw or {})
            header_text = normalize_text(" ".join(grid.headers))
            if not any(k in header_text for k in wanted):
                continue
            if len(grid.rows) < min_rows:
                continue
            grids.append(grid)
        self._log.info("Found %d movement table(s) out of %d", len(grids), len(data))
        return grids

    def pre_expand(self, selector: str) -> int:
        """
        Click every per-row disclosure control matching `selector`. Individual failures are logged and
        skipped. Returns the number of successful clicks.
        """
        try:
            handles = self.driver.query_selector_all(selector)
        except Exception as e:
            self._log.warning("Could not look up row expanders %s: %s", selector, e)
            return 0

        expanded = 0
        for i, handle in enumerate(handles, start=1):
            try:
                handle.click()
                expanded += 1
            except Exception as e:
                self._log.warning("Failed to expand row %d: %s", i, e)
                continue
            self.driver.wait(self.action_delay_ms)
        if handles:
            self._log.info("Expanded %d/%d row(s)", expanded, len(handles))
        return expanded

    def page_text(self) -> str:
        try:
            return self.driver.content()
        except Exception:
            self._log.debug("Could not read page content.", exc_info=True)
            return ""


def _to_grid(data: dict) -> RawTableGrid:
    headers = [str(h or "").strip() for h in (data.get("headers") or [])]
    rows: list[list[str]] = []
    for raw in data.get("rows") or []:
        row = [str(c or "").strip() for c in raw]
        if not any(row):
            continue
        rows.append(row)
    return RawTableGrid(headers=headers, rows=rows)


def has_no_movements(page_text: str, texts: Iterable[str] = NO_MOVEMENT_TEXTS) -> bool:
    haystack = normalize_text(page_text)
    return any(normalize_text(t) in haystack for t in texts if t)
