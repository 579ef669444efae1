from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence, Union

from ..config import DEFAULT_SESSION_CONFIG, SessionConfig
from ..errors import AutomationError, ConfigurationError, ErrorKind, VerificationError
from ..logging_config import SessionLogSink
from ..models import Credentials, LoginOutcome
from ..performance import PerformanceProfile
from .browser import BrowserSession, SessionFactory, open_browser_session, save_debug
from .challenge import ChallengeAnswerTable, ChallengeResolver, ChallengeSlot
from .driver import PageDriver
from .interception import ResourceInterceptionPolicy
from .readiness import ElementReadinessWaiter, _sleep_ms
from .steps import AuthState, LoginStep, StepContext


logger = logging.getLogger(__name__)

_VERIFY_POLL_MS = 500


@dataclass(frozen=True)
class SuccessIndicators:
    """
    Checked in order, first match wins: URL substring, logged-in element (optionally inside a frame),
    then absence of the login marker element.
    """

    url_patterns: tuple[str, ...] = ()
    logged_in_selector: Optional[str] = None
    logged_in_frame: Optional[str] = None
    login_marker: Optional[str] = None


@dataclass(frozen=True)
class PortalDefinition:
    name: str
    login_url: str
    bank_domain: str
    selectors: Mapping[str, str]
    steps: Sequence[LoginStep]
    indicators: SuccessIndicators = SuccessIndicators()
    # None: use SessionConfig.retry_limit.
    max_attempts: Optional[int] = None
    logout_steps: Sequence[LoginStep] = ()
    credential_fields: tuple[str, ...] = ("username", "password")
    identifier_field: str = "username"
    challenge_slots: tuple[ChallengeSlot, ...] = ()
    challenge_submit: Optional[str] = None


AnswerSource = Union[str, Mapping[str, str], ChallengeAnswerTable, None]


class AuthenticationTemplate:
    """
    Generic login driver: open a session, navigate, run the portal's steps, verify.

    `login()` never raises; failures come back as a `LoginOutcome` and leave no browser running.
    On success the session stays open and `driver` hands the authenticated page to the caller.
    """

    def __init__(
        self,
        portal: PortalDefinition,
        credentials: Credentials,
        config: Optional[SessionConfig] = None,
        *,
        answers: AnswerSource = None,
        profile: Optional[PerformanceProfile] = None,
        session_factory: SessionFactory = open_browser_session,
        log_sink: Optional[SessionLogSink] = None,
        sleep: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.portal = portal
        self.credentials = credentials
        self.config = config or DEFAULT_SESSION_CONFIG
        self.answers = ChallengeAnswerTable.coerce(answers)
        self.profile = profile or self.config.performance_profile
        self._session_factory = session_factory
        self._sink = log_sink or SessionLogSink(portal.name, log_dir=self.config.log_dir)
        self._log = self._sink.logger
        self._sleep = sleep or _sleep_ms
        self._session: Optional[BrowserSession] = None
        self.policy: Optional[ResourceInterceptionPolicy] = None
        self._state = AuthState.IDLE
        self.history: list[AuthState] = [AuthState.IDLE]

        self._log.info("%s auth initialized for user: %s", portal.name, credentials.identifier())

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state == AuthState.AUTHENTICATED and self._session is not None

    @property
    def driver(self) -> Optional[PageDriver]:
        """The authenticated page; None unless `login()` succeeded and the session is still open."""
        if not self.is_authenticated or self._session is None:
            return None
        return self._session.driver

    @property
    def session_id(self) -> str:
        return self._sink.session_id

    def _transition(self, state: AuthState) -> None:
        if state == self._state:
            return
        self._log.info("State %s -> %s", self._state.value, state.value)
        self._state = state
        self.history.append(state)

    def _attempts(self) -> int:
        return max(1, self.portal.max_attempts or self.config.retry_limit)

    def login(self) -> LoginOutcome:
        self._sink.open()
        if self.is_authenticated:
            return LoginOutcome.succeeded("Already authenticated", final_url=self._current_url())

        try:
            for name in self.portal.credential_fields:
                self.credentials.require(name)
        except ConfigurationError as e:
            self._log.error("Login not attempted: %s", e)
            self._transition(AuthState.FAILED)
            self._sink.close()
            return LoginOutcome.failed(str(e), kind=e.kind)

        attempts = self._attempts()
        outcome = LoginOutcome.failed("Login was not attempted")
        for attempt in range(1, attempts + 1):
            self._log.info("Login attempt %d/%d", attempt, attempts)
            try:
                self._run_attempt()
                self._transition(AuthState.VERIFYING)
                if not self.verify_login_success():
                    raise VerificationError("No login success indicator appeared; still on the login page?")
                self._transition(AuthState.AUTHENTICATED)
                self._log.info("Authentication successful")
                return LoginOutcome.succeeded(final_url=self._current_url())
            except ConfigurationError as e:
                self._log.error("Login failed (not retried): %s", e)
                outcome = LoginOutcome.failed(str(e), kind=e.kind, final_url=self._current_url())
                break
            except AutomationError as e:
                self._log.warning("Attempt %d failed: %s", attempt, e)
                outcome = LoginOutcome.failed(
                    f"Login failed after {attempt} attempt(s): {e}",
                    kind=e.kind,
                    error=str(e),
                    final_url=self._current_url(),
                )
            except Exception as e:
                self._log.warning("Attempt %d failed: %s", attempt, e, exc_info=True)
                outcome = LoginOutcome.failed(
                    f"Login failed after {attempt} attempt(s): {e}",
                    kind=ErrorKind.TRANSIENT,
                    error=str(e),
                    final_url=self._current_url(),
                )

            self._save_debug(f"attempt{attempt}_failed")
            # Partially filled forms and stale frames are not reusable; start over.
            self._teardown()
            if attempt < attempts:
                self._log.info("Waiting %dms before retry...", self.config.retry_delay_ms)
                self._sleep(self.config.retry_delay_ms)

        self._transition(AuthState.FAILED)
        self._teardown()
        self._log.error("Authentication failed: %s", outcome.message)
        self._sink.close()
        return outcome

    def _open_session(self) -> BrowserSession:
        session = self._session_factory(self.config)
        self._session = session
        self.policy = ResourceInterceptionPolicy(self.profile, self.portal.bank_domain)
        self.policy.install(session.driver, log=self._log)
        self._transition(AuthState.BROWSER_READY)
        return session

    def _run_attempt(self) -> None:
        session = self._session or self._open_session()
        driver = session.driver

        self._log.info("Navigating to %s", self.portal.login_url)
        driver.navigate(self.portal.login_url, wait_until="domcontentloaded", timeout_ms=self.config.timeout_ms)
        self._transition(AuthState.LOGIN_PAGE_LOADED)
        self._debug_pause(driver, "Login page loaded")

        ctx = self._step_context(driver)
        for step in self.portal.steps:
            name = getattr(step, "__name__", repr(step))
            self._log.debug("Step %s", name)
            step(ctx)
            self._debug_pause(driver, f"After {name}")

        self._transition(AuthState.SUBMITTED)

    def _step_context(self, driver: PageDriver) -> StepContext:
        waiter = ElementReadinessWaiter(
            driver,
            timeout_ms=self.config.timeout_ms,
            retry_limit=max(1, self.config.retry_limit),
            backoff_ms=self.config.retry_backoff_ms,
            action_delay_ms=self.config.action_delay_ms,
            log=self._log,
        )
        resolver = None
        if self.portal.challenge_slots:
            resolver = ChallengeResolver(
                self.answers,
                self.portal.challenge_slots,
                submit_selector=self.portal.challenge_submit,
                log=self._log,
            )
        return StepContext(
            driver=driver,
            scope=driver,
            credentials=self.credentials,
            selectors=self.portal.selectors,
            waiter=waiter,
            config=self.config,
            resolver=resolver,
            log=self._log,
            on_transition=self._transition,
        )

    def verify_login_success(self) -> bool:
        """
        Read-only check of the success indicators, polled until `verify_timeout_ms`. Never fills or clicks
        and never changes `state`, so it is safe to call again on an authenticated session.
        """
        if self._session is None:
            return False
        driver = self._session.driver
        driver.wait(self.config.verify_settle_ms)

        polls = max(1, self.config.verify_timeout_ms // _VERIFY_POLL_MS)
        for i in range(polls + 1):
            matched = self._matched_indicator(driver)
            if matched:
                self._log.info("Login verified by %s", matched)
                return True
            if i < polls:
                driver.wait(_VERIFY_POLL_MS)

        self._log.warning("Login verification failed (url=%s)", self._current_url())
        return False

    def _matched_indicator(self, driver: PageDriver) -> Optional[str]:
        ind = self.portal.indicators
        try:
            url = driver.current_url().lower()
        except Exception:
            url = ""
        for pattern in ind.url_patterns:
            if pattern.lower() in url:
                return f"url pattern {pattern!r}"

        if ind.logged_in_selector:
            try:
                scope: Optional[PageDriver] = driver
                if ind.logged_in_frame:
                    scope = driver.content_frame(ind.logged_in_frame)
                if scope is not None and scope.query_selector(ind.logged_in_selector) is not None:
                    return f"element {ind.logged_in_selector!r}"
            except Exception:
                self._log.debug("Logged-in element check failed (ignored).", exc_info=True)

        if ind.login_marker:
            try:
                if driver.query_selector(ind.login_marker) is None:
                    return f"absence of {ind.login_marker!r}"
            except Exception:
                self._log.debug("Login marker check failed (ignored).", exc_info=True)
        return None

    def logout(self) -> bool:
        if not self.is_authenticated or not self.portal.logout_steps or self._session is None:
            return False
        ctx = self._step_context(self._session.driver)
        try:
            for step in self.portal.logout_steps:
                step(ctx)
        except Exception as e:
            self._log.warning("Logout failed: %s", e)
            return False
        self._log.info("Logged out")
        self._transition(AuthState.IDLE)
        return True

    def close(self) -> None:
        """Best-effort logout, then unconditional teardown. Safe in any state."""
        try:
            if self.is_authenticated:
                self.logout()
        except Exception:
            self._log.debug("Logout during close failed (ignored).", exc_info=True)
        self._teardown()
        if self._state != AuthState.FAILED:
            self._transition(AuthState.IDLE)
        self._sink.close()

    def _teardown(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.close()
            if self.policy is not None:
                self._log.info("Request stats: %s", self.policy.stats())

    def _current_url(self) -> Optional[str]:
        if self._session is None:
            return None
        try:
            return self._session.driver.current_url()
        except Exception:
            return None

    def _save_debug(self, name: str) -> None:
        if self._session is None:
            return
        save_debug(
            self._session.driver,
            debug_dir=self.config.debug_dir,
            name_prefix=f"{self.session_id}_{name}",
        )

    def _debug_pause(self, driver: PageDriver, message: str) -> None:
        if not self.config.debug_pauses:
            return
        self._log.info("DEBUG PAUSE: %s", message)
        driver.pause()

    def __enter__(self) -> "AuthenticationTemplate":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
