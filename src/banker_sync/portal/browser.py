from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Callable, Optional

from playwright.sync_api import Browser, BrowserContext, Playwright, sync_playwright

from ..config import SessionConfig
from .driver import PageDriver, PlaywrightDriver


logger = logging.getLogger(__name__)


class BrowserSession:
    """
    One browser + context + page. `close()` is safe to call at any time, any number of times.
    """

    def __init__(
        self,
        driver: PageDriver,
        *,
        playwright: Optional[Playwright] = None,
        browser: Optional[Browser] = None,
        context: Optional[BrowserContext] = None,
    ) -> None:
        self.driver = driver
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for name, closer in (
            ("page", getattr(self.driver, "close", None)),
            ("context", getattr(self._context, "close", None)),
            ("browser", getattr(self._browser, "close", None)),
            ("playwright", getattr(self._playwright, "stop", None)),
        ):
            if closer is None:
                continue
            try:
                closer()
            except Exception:
                logger.debug("Failed to close %s (ignored).", name, exc_info=True)


SessionFactory = Callable[[SessionConfig], BrowserSession]


def _launch_chromium(p: Playwright, config: SessionConfig) -> Browser:
    kwargs: dict[str, Any] = {
        "headless": config.headless,
        "slow_mo": int(config.slow_mo_ms or 0),
        "args": ["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
    }
    try:
        return p.chromium.launch(**kwargs)
    except Exception as e:
        msg = str(e)
        if "Executable doesn't exist" not in msg:
            raise

        logger.warning(
            "Playwright Chromium executable missing; falling back to system browser channel. (%s)",
            msg,
        )
        # Try Chrome first, then Edge.
        try:
            return p.chromium.launch(channel="chrome", **kwargs)
        except Exception:
            return p.chromium.launch(channel="msedge", **kwargs)


def open_browser_session(config: SessionConfig) -> BrowserSession:
    p = sync_playwright().start()
    browser: Optional[Browser] = None
    try:
        browser = _launch_chromium(p, config)
        ctx = browser.new_context(
            viewport={"width": config.viewport_width, "height": config.viewport_height},
            user_agent=config.user_agent,
            locale=config.locale,
            timezone_id=config.timezone_id,
            extra_http_headers={"Accept-Language": config.accept_language, "DNT": "1"},
            color_scheme="light",
        )
        page = ctx.new_page()
        page.set_default_timeout(config.timeout_ms)
        logger.debug(
            "Browser ready (headless=%s viewport=%sx%s timeout_ms=%s)",
            config.headless,
            config.viewport_width,
            config.viewport_height,
            config.timeout_ms,
        )
        return BrowserSession(PlaywrightDriver(page), playwright=p, browser=browser, context=ctx)
    except Exception:
        if browser is not None:
            try:
                browser.close()
            except Exception:
                pass
        p.stop()
        raise


def save_debug(driver: Optional[PageDriver], *, debug_dir: str, name_prefix: str) -> None:
    """
    Best-effort screenshot + HTML of the current page; no-op without a debug_dir.
    """
    if driver is None or not debug_dir:
        return
    safe = re.sub(r"[^a-zA-Z0-9_-]+", "_", name_prefix).strip("_")[:80] or "page"
    try:
        out_dir = Path(debug_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        driver.screenshot(str(out_dir / f"{safe}.png"))
        (out_dir / f"{safe}.html").write_text(driver.content(), encoding="utf-8")
    except Exception:
        logger.debug("Failed to save debug artifacts.", exc_info=True)
