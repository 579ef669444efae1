import itertools
import logging
import os
import time
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

_session_counter = itertools.count(1)


def configure_logging(level: str = "INFO", file_path: Optional[str] = None) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # allow configure_logging() to be called multiple times (CLI does this)
    )

    # Reduce noise from chatty libraries
    for noisy in ("playwright", "asyncio"):
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING"))


class _SessionAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[{self.extra['session']}] {msg}", kwargs


class SessionLogSink:
    """
    Log stream scoped to one portal session.

    `open()` returns an adapter that prefixes every line with the session id and, when `log_dir` is set,
    also appends to `<log_dir>/<bank>-<n>-<stamp>.log`. `close()` flushes and detaches that file.
    Safe to open/close repeatedly (login retries re-open the same sink).
    """

    def __init__(self, bank: str, *, log_dir: str = "") -> None:
        self.bank = (bank or "portal").strip().lower()
        self.session_id = f"{self.bank}-{next(_session_counter)}"
        self.log_dir = log_dir
        self.file_path: Optional[Path] = None
        self._logger = logging.getLogger(f"banker_sync.session.{self.bank}")
        self._handler: Optional[logging.Handler] = None
        self._adapter = _SessionAdapter(self._logger, {"session": self.session_id})

    @property
    def logger(self) -> logging.LoggerAdapter:
        return self._adapter

    def open(self) -> logging.LoggerAdapter:
        if self._handler is not None or not self.log_dir:
            return self._adapter

        out_dir = Path(self.log_dir)
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            if self.file_path is None:
                stamp = time.strftime("%Y%m%d_%H%M%S")
                self.file_path = out_dir / f"{self.session_id}-{stamp}.log"
            handler = logging.FileHandler(self.file_path, encoding="utf-8")
        except OSError as e:
            self.file_path = None
            logger.warning("Session log file unavailable in %s: %s", self.log_dir, e)
            return self._adapter

        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        handler.addFilter(lambda record: str(record.getMessage()).startswith(f"[{self.session_id}]"))
        self._logger.addHandler(handler)
        self._handler = handler
        return self._adapter

    def close(self) -> None:
        handler, self._handler = self._handler, None
        if handler is None:
            return
        try:
            handler.flush()
        finally:
            self._logger.removeHandler(handler)
            handler.close()
