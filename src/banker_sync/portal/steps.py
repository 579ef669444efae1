"""
Login step builders.

A portal's login is an ordered list of `LoginStep` callables built from these helpers; each one runs
against a `StepContext` and raises on failure (transient errors get the whole sequence retried,
configuration errors end the login).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping, Optional

from ..config import SessionConfig
from ..errors import ConfigurationError, ElementNotReadyError, TransientInteractionError
from ..models import Credentials
from .challenge import ChallengeResolver
from .driver import PageDriver
from .readiness import ElementReadinessWaiter


logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    IDLE = "idle"
    BROWSER_READY = "browser_ready"
    LOGIN_PAGE_LOADED = "login_page_loaded"
    CREDENTIALS_ENTERED = "credentials_entered"
    CHALLENGE_PENDING = "challenge_pending"
    CHALLENGE_RESOLVED = "challenge_resolved"
    SUBMITTED = "submitted"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass
class StepContext:
    driver: PageDriver
    scope: PageDriver
    credentials: Credentials
    selectors: Mapping[str, str]
    waiter: ElementReadinessWaiter
    config: SessionConfig
    resolver: Optional[ChallengeResolver] = None
    log: logging.LoggerAdapter = field(default_factory=lambda: logging.LoggerAdapter(logger, {}))
    on_transition: Optional[Callable[[AuthState], None]] = None

    def selector(self, key: str) -> str:
        try:
            return self.selectors[key]
        except KeyError:
            raise ConfigurationError(f"Unknown selector key {key!r}") from None

    def transition(self, state: AuthState) -> None:
        if self.on_transition is not None:
            self.on_transition(state)

    def use_scope(self, scope: PageDriver) -> None:
        self.scope = scope
        self.waiter = self.waiter.for_scope(scope)

    def reset_scope(self) -> None:
        self.use_scope(self.driver)


LoginStep = Callable[[StepContext], None]


def _named(name: str, fn: LoginStep) -> LoginStep:
    fn.__name__ = name
    fn.__qualname__ = name
    return fn


def enter_frame(key: str, *, timeout_ms: Optional[int] = None) -> LoginStep:
    """
    Switch the step scope into an iframe. Later steps act inside it until `leave_frame()`.
    """

    def step(ctx: StepContext) -> None:
        sel = ctx.selector(key)
        budget = timeout_ms or ctx.config.timeout_ms
        # Frames are looked up from the page, not from the current scope.
        ctx.reset_scope()
        try:
            ctx.driver.wait_for_selector(sel, timeout_ms=budget, state="attached")
        except Exception as e:
            raise ElementNotReadyError(sel, budget) from e
        frame = ctx.driver.content_frame(sel)
        if frame is None:
            raise TransientInteractionError(f"Frame {sel} has no content")
        ctx.use_scope(frame)
        ctx.log.info("Entered frame %s", sel)

    return _named(f"enter_frame({key})", step)


def leave_frame() -> LoginStep:
    def step(ctx: StepContext) -> None:
        ctx.reset_scope()

    return _named("leave_frame", step)


def fill_credential(key: str, field_name: str, *, typed: bool = False) -> LoginStep:
    def step(ctx: StepContext) -> None:
        value = ctx.credentials.require(field_name)
        sel = ctx.selector(key)
        if not ctx.waiter.fill_with_retry(sel, value, typed=typed):
            raise TransientInteractionError(f"Could not fill {field_name} field ({sel})")
        ctx.log.info("Entered %s", field_name)
        ctx.transition(AuthState.CREDENTIALS_ENTERED)

    return _named(f"fill_credential({field_name})", step)


def click(key: str, *, optional: bool = False) -> LoginStep:
    def step(ctx: StepContext) -> None:
        sel = ctx.selector(key)
        if ctx.waiter.click_with_retry(sel):
            return
        if optional:
            ctx.log.info("Optional click on %s skipped.", sel)
            return
        raise TransientInteractionError(f"Could not click {sel}")

    return _named(f"click({key})", step)


def submit(key: str, *, wait_for_key: Optional[str] = None, timeout_ms: Optional[int] = None) -> LoginStep:
    """
    Click the final submit control. With `wait_for_key`, also wait for that element to appear
    (two-stage forms where the first submit reveals the password field).
    """

    def step(ctx: StepContext) -> None:
        sel = ctx.selector(key)
        if not ctx.waiter.click_with_retry(sel):
            raise TransientInteractionError(f"Could not submit via {sel}")
        if wait_for_key:
            _wait(ctx, ctx.selector(wait_for_key), timeout_ms)
            return
        try:
            ctx.driver.wait_for_load_state("domcontentloaded", timeout_ms=timeout_ms or ctx.config.timeout_ms)
        except Exception:
            ctx.log.debug("No load state after submit (ignored).", exc_info=True)
        ctx.transition(AuthState.SUBMITTED)

    return _named(f"submit({key})", step)


def answer_challenge() -> LoginStep:
    """
    Answer security questions if the portal shows any; a no-op when none are displayed.
    """

    def step(ctx: StepContext) -> None:
        if ctx.resolver is None:
            raise ConfigurationError("answer_challenge needs a portal with challenge slots")
        if not ctx.resolver.visible_prompts(ctx.scope):
            ctx.log.info("No security questions shown.")
            return
        ctx.transition(AuthState.CHALLENGE_PENDING)
        if not ctx.resolver.resolve(ctx.scope, ctx.waiter):
            raise ConfigurationError("No configured answer matches the displayed security questions")
        ctx.transition(AuthState.CHALLENGE_RESOLVED)

    return _named("answer_challenge", step)


def dismiss_modal(key: str, confirm_key: Optional[str] = None, *, timeout_ms: int = 3_000) -> LoginStep:
    """
    Close a modal (active-session warning, logout confirmation) if it shows up within `timeout_ms`.
    Never fails: an absent modal is the common case.
    """

    def step(ctx: StepContext) -> None:
        sel = ctx.selector(key)
        if not ctx.waiter.is_ready(sel, timeout_ms):
            return
        target = ctx.selector(confirm_key) if confirm_key else sel
        ctx.log.info("Dismissing modal %s", sel)
        if not ctx.waiter.click_with_retry(target, attempts=1):
            ctx.log.warning("Could not dismiss modal via %s", target)

    return _named(f"dismiss_modal({key})", step)


def wait_for(key: str, *, timeout_ms: Optional[int] = None) -> LoginStep:
    def step(ctx: StepContext) -> None:
        _wait(ctx, ctx.selector(key), timeout_ms)

    return _named(f"wait_for({key})", step)


def _wait(ctx: StepContext, selector: str, timeout_ms: Optional[int]) -> None:
    ctx.waiter.wait_ready(selector, timeout_ms or ctx.config.timeout_ms)

