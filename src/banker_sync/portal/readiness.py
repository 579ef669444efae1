from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar, Union

from ..errors import ConfigurationError, ElementNotReadyError
from .driver import PageDriver


logger = logging.getLogger(__name__)

T = TypeVar("T")
Log = Union[logging.Logger, logging.LoggerAdapter]

# Present, rendered (non-empty box) and not disabled.
READY_JS = """
(selector) => {
  const el = document.querySelector(selector);
  if (!el) return false;
  const rect = el.getBoundingClientRect();
  const visible = el.getClientRects().length > 0 && (rect.width > 0 || rect.height > 0);
  const style = window.getComputedStyle(el);
  if (!visible || style.visibility === 'hidden' || style.display === 'none') return false;
  return !el.disabled && !el.hasAttribute('disabled');
}
"""


def _sleep_ms(ms: int) -> None:
    if ms > 0:
        time.sleep(ms / 1000)


class RetryController:
    """
    Bounded retry with a fixed backoff between attempts.

    Configuration errors are never retried: retrying can't fix a missing answer or credential.
    """

    def __init__(
        self,
        attempts: int,
        backoff_ms: int = 0,
        *,
        sleep: Optional[Callable[[int], None]] = None,
        log: Optional[Log] = None,
    ) -> None:
        self.attempts = max(1, int(attempts))
        self.backoff_ms = max(0, int(backoff_ms))
        self._sleep = sleep or _sleep_ms
        self._log = log or logger

    def run(self, fn: Callable[[], T], *, description: str = "step") -> T:
        attempt = 1
        while True:
            try:
                return fn()
            except ConfigurationError:
                raise
            except Exception as e:
                self._log.warning("%s failed (attempt %d/%d): %s", description, attempt, self.attempts, e)
                if attempt >= self.attempts:
                    raise
            self._sleep(self.backoff_ms)
            attempt += 1

    def attempt(self, fn: Callable[[], object], *, description: str = "step") -> bool:
        """
        Like `run()` but reports failure as False. A callable returning False counts as a failed attempt.
        """

        def _checked() -> None:
            if fn() is False:
                raise RuntimeError(f"{description} returned False")

        try:
            self.run(_checked, description=description)
            return True
        except ConfigurationError:
            raise
        except Exception:
            self._log.error("%s failed after %d attempt(s)", description, self.attempts)
            return False


class ElementReadinessWaiter:
    def __init__(
        self,
        scope: PageDriver,
        *,
        timeout_ms: int = 10_000,
        retry_limit: int = 3,
        backoff_ms: int = 2_000,
        action_delay_ms: int = 0,
        log: Optional[Log] = None,
    ) -> None:
        self.scope = scope
        self.timeout_ms = timeout_ms
        self.retry_limit = max(1, retry_limit)
        self.backoff_ms = backoff_ms
        self.action_delay_ms = action_delay_ms
        self._log = log or logger

    def for_scope(self, scope: PageDriver) -> "ElementReadinessWaiter":
        return ElementReadinessWaiter(
            scope,
            timeout_ms=self.timeout_ms,
            retry_limit=self.retry_limit,
            backoff_ms=self.backoff_ms,
            action_delay_ms=self.action_delay_ms,
            log=self._log,
        )

    def _retry(self, attempts: Optional[int]) -> RetryController:
        return RetryController(
            attempts if attempts is not None else self.retry_limit,
            self.backoff_ms,
            sleep=self.scope.wait,
            log=self._log,
        )

    def wait_ready(self, selector: str, timeout_ms: Optional[int] = None) -> None:
        budget = int(timeout_ms if timeout_ms is not None else self.timeout_ms)
        try:
            self.scope.wait_for_selector(selector, timeout_ms=budget, state="attached")
            self.scope.wait_for_function(READY_JS, selector, timeout_ms=budget)
        except Exception as e:
            raise ElementNotReadyError(selector, budget) from e

    def is_ready(self, selector: str, timeout_ms: Optional[int] = None) -> bool:
        try:
            self.wait_ready(selector, timeout_ms)
            return True
        except ElementNotReadyError as e:
            self._log.debug("%s", e)
            return False

    def click_with_retry(self, selector: str, attempts: Optional[int] = None) -> bool:
        def _click() -> None:
            self.wait_ready(selector)
            self.scope.click(selector)
            self.scope.wait(self.action_delay_ms)

        ok = self._retry(attempts).attempt(_click, description=f"click {selector}")
        if ok:
            self._log.debug("Clicked %s", selector)
        return ok

    def fill_with_retry(
        self,
        selector: str,
        value: str,
        attempts: Optional[int] = None,
        *,
        typed: bool = False,
    ) -> bool:
        def _fill() -> None:
            self.wait_ready(selector)
            if typed:
                self.scope.type_text(selector, value)
            else:
                self.scope.fill(selector, value)
            self.scope.wait(self.action_delay_ms)

        # Never log the value; fields are usually secrets.
        return self._retry(attempts).attempt(_fill, description=f"fill {selector}")
