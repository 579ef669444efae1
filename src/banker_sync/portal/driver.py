from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from playwright.sync_api import Frame, Page, Route, Request


logger = logging.getLogger(__name__)


class RouteDecision(str, Enum):
    ALLOW = "allow"
    ABORT = "abort"


RequestHandler = Callable[[str, str], RouteDecision]


class PageDriver(Protocol):
    """
    The page-automation capability the login/scrape core is written against.

    A driver is either a page or a frame inside it; frame drivers share the page's routing, timers and
    teardown. Timeouts are milliseconds.
    """

    def navigate(self, url: str, *, wait_until: str = "domcontentloaded", timeout_ms: Optional[int] = None) -> None: ...

    def query_selector(self, selector: str) -> Any: ...

    def query_selector_all(self, selector: str) -> list[Any]: ...

    def text_content(self, selector: str) -> Optional[str]: ...

    def wait_for_selector(self, selector: str, *, timeout_ms: int, state: str = "attached") -> None: ...

    def wait_for_function(self, expression: str, arg: Any = None, *, timeout_ms: int) -> None: ...

    def wait_for_load_state(self, state: str = "domcontentloaded", *, timeout_ms: Optional[int] = None) -> None: ...

    def fill(self, selector: str, value: str) -> None: ...

    def type_text(self, selector: str, value: str, *, delay_ms: int = 100) -> None: ...

    def click(self, selector: str) -> None: ...

    def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    def on_request(self, handler: RequestHandler) -> None: ...

    def content_frame(self, iframe_selector: str) -> Optional["PageDriver"]: ...

    def current_url(self) -> str: ...

    def content(self) -> str: ...

    def screenshot(self, path: str) -> None: ...

    def wait(self, ms: int) -> None: ...

    def pause(self) -> None: ...

    def close(self) -> None: ...


class PlaywrightDriver:
    """
    `PageDriver` over a Playwright sync `Page` (or a `Frame` of it).
    """

    def __init__(self, scope: Page | Frame, *, page: Optional[Page] = None) -> None:
        self._scope = scope
        self._page: Page = page if page is not None else scope  # type: ignore[assignment]

    @property
    def page(self) -> Page:
        return self._page

    def navigate(self, url: str, *, wait_until: str = "domcontentloaded", timeout_ms: Optional[int] = None) -> None:
        self._scope.goto(url, wait_until=wait_until, timeout=timeout_ms)

    def query_selector(self, selector: str) -> Any:
        return self._scope.query_selector(selector)

    def query_selector_all(self, selector: str) -> list[Any]:
        return list(self._scope.query_selector_all(selector))

    def text_content(self, selector: str) -> Optional[str]:
        el = self._scope.query_selector(selector)
        if el is None:
            return None
        return el.text_content()

    def wait_for_selector(self, selector: str, *, timeout_ms: int, state: str = "attached") -> None:
        self._scope.wait_for_selector(selector, state=state, timeout=timeout_ms)

    def wait_for_function(self, expression: str, arg: Any = None, *, timeout_ms: int) -> None:
        self._scope.wait_for_function(expression, arg=arg, timeout=timeout_ms)

    def wait_for_load_state(self, state: str = "domcontentloaded", *, timeout_ms: Optional[int] = None) -> None:
        self._scope.wait_for_load_state(state, timeout=timeout_ms)

    def fill(self, selector: str, value: str) -> None:
        self._scope.fill(selector, value)

    def type_text(self, selector: str, value: str, *, delay_ms: int = 100) -> None:
        # Some portals validate on keystrokes and ignore programmatic fills.
        self._scope.fill(selector, "")
        self._scope.locator(selector).press_sequentially(value, delay=delay_ms)

    def click(self, selector: str) -> None:
        self._scope.click(selector)

    def evaluate(self, expression: str, arg: Any = None) -> Any:
        return self._scope.evaluate(expression, arg)

    def on_request(self, handler: RequestHandler) -> None:
        def _route(route: Route, request: Request) -> None:
            kind = "document" if request.is_navigation_request() else request.resource_type
            try:
                decision = handler(request.url, kind)
            except Exception:
                logger.debug("Request handler failed for %s; allowing.", request.url, exc_info=True)
                decision = RouteDecision.ALLOW
            if decision == RouteDecision.ABORT:
                route.abort()
            else:
                route.continue_()

        self._page.route("**/*", _route)

    def content_frame(self, iframe_selector: str) -> Optional["PlaywrightDriver"]:
        el = self._scope.query_selector(iframe_selector)
        if el is None:
            return None
        frame = el.content_frame()
        if frame is None:
            return None
        return PlaywrightDriver(frame, page=self._page)

    def current_url(self) -> str:
        return self._scope.url or ""

    def content(self) -> str:
        return self._scope.content()

    def screenshot(self, path: str) -> None:
        self._page.screenshot(path=path, full_page=True)

    def wait(self, ms: int) -> None:
        if ms > 0:
            self._page.wait_for_timeout(ms)

    def pause(self) -> None:
        self._page.pause()

    def close(self) -> None:
        if self._scope is self._page:
            self._page.close()
