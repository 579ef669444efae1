from __future__ import annotations

import logging
from typing import Optional

import pytest

from banker_sync.config import SessionConfig
from banker_sync.errors import ErrorKind
from banker_sync.models import Credentials
from banker_sync.portal.auth import AuthenticationTemplate, PortalDefinition, SuccessIndicators
from banker_sync.portal.challenge import DEFAULT_SLOTS
from banker_sync.portal.steps import (
    AuthState,
    answer_challenge,
    click,
    enter_frame,
    fill_credential,
    leave_frame,
    submit,
)

from fakes import FakePageDriver, SessionRecorder


LOGIN_URL = "https://bank.test/login"
DASHBOARD = "https://bank.test/dashboard"

SELECTORS = {
    "username": "#user",
    "password": "#pass",
    "submit": "#go",
    "logout": "#logout",
    "frame": "iframe#login",
}

BASIC_STEPS = (
    fill_credential("username", "username"),
    fill_credential("password", "password", typed=True),
    submit("submit"),
)


def _config(**overrides) -> SessionConfig:
    values = dict(
        timeout_ms=1_000,
        retry_limit=3,
        action_delay_ms=0,
        retry_backoff_ms=0,
        retry_delay_ms=500,
        verify_settle_ms=0,
        verify_timeout_ms=1_000,
    )
    values.update(overrides)
    return SessionConfig(**values)


def _portal(
    steps=BASIC_STEPS,
    indicators: Optional[SuccessIndicators] = None,
    **kwargs,
) -> PortalDefinition:
    return PortalDefinition(
        name="test",
        login_url=LOGIN_URL,
        bank_domain="bank.test",
        selectors=SELECTORS,
        steps=steps,
        indicators=indicators or SuccessIndicators(url_patterns=("dashboard",), login_marker="#user"),
        logout_steps=(click("logout"),),
        **kwargs,
    )


def _login_page(*, lands_on: Optional[str] = DASHBOARD, with_submit: bool = True) -> FakePageDriver:
    page = FakePageDriver()
    page.add("#user")
    page.add("#pass")
    page.add("#logout")
    if with_submit:
        page.add("#go", on_click=lambda d: setattr(d, "url", lands_on) if lands_on else None)
    return page


def _auth(portal: PortalDefinition, recorder: SessionRecorder, sleeps: list[int], *, creds=None, config=None, **kw):
    credentials = Credentials(creds if creds is not None else {"username": "alice", "password": "s3cret"})
    return AuthenticationTemplate(
        portal,
        credentials,
        config or _config(),
        session_factory=recorder,
        sleep=sleeps.append,
        **kw,
    )


def test_login_success_keeps_session_open_and_records_states() -> None:
    recorder = SessionRecorder(_login_page)
    sleeps: list[int] = []
    auth = _auth(_portal(), recorder, sleeps)

    outcome = auth.login()

    assert outcome.success is True
    assert outcome.session_valid is True
    assert outcome.final_url == DASHBOARD
    assert auth.is_authenticated
    page = recorder.drivers[0]
    assert auth.driver is page
    assert not page.closed
    assert page.navigations == [LOGIN_URL]
    assert page.filled == {"#user": "alice", "#pass": "s3cret"}
    assert page.typed == {"#pass": "s3cret"}
    assert len(page.handlers) == 1
    assert sleeps == []
    assert auth.history == [
        AuthState.IDLE,
        AuthState.BROWSER_READY,
        AuthState.LOGIN_PAGE_LOADED,
        AuthState.CREDENTIALS_ENTERED,
        AuthState.SUBMITTED,
        AuthState.VERIFYING,
        AuthState.AUTHENTICATED,
    ]


def test_close_logs_out_and_tears_down() -> None:
    recorder = SessionRecorder(_login_page)
    auth = _auth(_portal(), recorder, [])
    assert auth.login().success

    auth.close()

    assert recorder.drivers[0].clicks == ["#go", "#logout"]
    assert recorder.all_closed
    assert auth.state == AuthState.IDLE
    assert auth.driver is None
    # Idempotent.
    auth.close()


def test_three_failed_attempts_close_every_session() -> None:
    recorder = SessionRecorder(lambda: _login_page(with_submit=False))
    sleeps: list[int] = []
    auth = _auth(_portal(), recorder, sleeps)

    outcome = auth.login()

    assert outcome.success is False
    assert outcome.error_kind == ErrorKind.TRANSIENT
    assert "3 attempt" in outcome.message
    assert len(recorder.sessions) == 3
    assert recorder.all_closed
    assert sleeps == [500, 500]
    assert auth.state == AuthState.FAILED
    assert auth.driver is None


def test_portal_max_attempts_overrides_retry_limit() -> None:
    recorder = SessionRecorder(lambda: _login_page(with_submit=False))
    auth = _auth(_portal(max_attempts=1), recorder, [])
    assert auth.login().success is False
    assert len(recorder.sessions) == 1


def test_missing_credential_fails_without_opening_a_browser() -> None:
    recorder = SessionRecorder(_login_page)
    sleeps: list[int] = []
    auth = _auth(_portal(), recorder, sleeps, creds={"username": "alice"})

    outcome = auth.login()

    assert outcome.success is False
    assert outcome.error_kind == ErrorKind.CONFIGURATION
    assert "password" in outcome.message
    assert recorder.sessions == []
    assert sleeps == []
    assert auth.state == AuthState.FAILED


def test_verification_failure_is_retried_and_reported() -> None:
    recorder = SessionRecorder(lambda: _login_page(lands_on=None))
    sleeps: list[int] = []
    auth = _auth(_portal(), recorder, sleeps, config=_config(retry_limit=2))

    outcome = auth.login()

    assert outcome.success is False
    assert outcome.error_kind == ErrorKind.VERIFICATION_AMBIGUOUS
    assert len(recorder.sessions) == 2
    assert recorder.all_closed
    # Polled until the verification budget ran out.
    assert recorder.drivers[0].waits.count(500) == 2


def test_verification_is_read_only(caplog) -> None:
    caplog.set_level(logging.INFO)
    recorder = SessionRecorder(_login_page)
    auth = _auth(_portal(), recorder, [])
    assert auth.login().success
    page = recorder.drivers[0]
    assert page.clicks == ["#go"]
    assert "Login verified by url pattern 'dashboard'" in caplog.text


def test_rechecking_an_authenticated_session_keeps_it_authenticated() -> None:
    recorder = SessionRecorder(_login_page)
    auth = _auth(_portal(), recorder, [])
    assert auth.login().success

    assert auth.verify_login_success() is True
    assert auth.state == AuthState.AUTHENTICATED
    assert auth.driver is recorder.drivers[0]

    auth.close()
    assert recorder.drivers[0].clicks == ["#go", "#logout"]
    assert recorder.all_closed


def test_unwritable_session_log_dir_does_not_break_login(tmp_path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("not a directory", encoding="utf-8")
    recorder = SessionRecorder(_login_page)
    auth = _auth(_portal(), recorder, [], config=_config(log_dir=str(blocker / "logs")))

    outcome = auth.login()

    assert outcome.success is True
    auth.close()
    assert recorder.all_closed


def test_secrets_are_filled_verbatim() -> None:
    recorder = SessionRecorder(_login_page)
    auth = _auth(_portal(), recorder, [], creds={"username": "alice", "password": "  pw with spaces "})
    assert auth.login().success
    assert recorder.drivers[0].typed == {"#pass": "  pw with spaces "}

    blank = _auth(_portal(), SessionRecorder(_login_page), [], creds={"username": "alice", "password": "   "})
    outcome = blank.login()
    assert outcome.success is False
    assert outcome.error_kind == ErrorKind.CONFIGURATION


def test_logged_in_element_inside_frame_is_checked_after_url(caplog) -> None:
    caplog.set_level(logging.INFO)

    def build() -> FakePageDriver:
        page = _login_page(lands_on=None)
        status = FakePageDriver()
        status.add(".StatusSystemOK")
        page.frames["#cau"] = status
        return page

    indicators = SuccessIndicators(
        url_patterns=("dashboard",),
        logged_in_selector=".StatusSystemOK",
        logged_in_frame="#cau",
        login_marker="#user",
    )
    auth = _auth(_portal(indicators=indicators), SessionRecorder(build), [])
    assert auth.login().success
    assert "Login verified by element '.StatusSystemOK'" in caplog.text


def test_absence_of_login_marker_counts_as_success(caplog) -> None:
    caplog.set_level(logging.INFO)

    def build() -> FakePageDriver:
        page = _login_page(lands_on=None)
        page.elements["#go"].on_click = lambda d: d.remove("#user")
        return page

    auth = _auth(_portal(), SessionRecorder(build), [])
    assert auth.login().success
    assert "Login verified by absence of '#user'" in caplog.text


def _challenge_build(prompt: str):
    def build() -> FakePageDriver:
        page = FakePageDriver()
        frame = FakePageDriver()
        frame.add("#user")
        frame.add("#pass")
        frame.add(DEFAULT_SLOTS[0].label_selector, prompt)
        frame.add(DEFAULT_SLOTS[0].input_selector)
        frame.add("#go", on_click=lambda _: setattr(page, "url", DASHBOARD))
        page.frames["iframe#login"] = frame
        return page

    return build


CHALLENGE_STEPS = (
    enter_frame("frame"),
    fill_credential("username", "username"),
    answer_challenge(),
    fill_credential("password", "password", typed=True),
    submit("submit"),
    leave_frame(),
)


def test_challenge_inside_frame_is_answered() -> None:
    recorder = SessionRecorder(_challenge_build("¿Cómo se llama tu mascota?"))
    portal = _portal(steps=CHALLENGE_STEPS, challenge_slots=DEFAULT_SLOTS)
    auth = _auth(portal, recorder, [], answers="mascota:Firulais")

    outcome = auth.login()

    assert outcome.success is True
    frame = recorder.drivers[0].frames["iframe#login"]
    assert frame.filled == {"#user": "alice", "#txtPrimeraR": "Firulais", "#pass": "s3cret"}
    assert AuthState.CHALLENGE_PENDING in auth.history
    assert auth.history.index(AuthState.CHALLENGE_RESOLVED) < auth.history.index(AuthState.SUBMITTED)


def test_unmatched_challenge_is_a_configuration_failure_and_not_retried() -> None:
    recorder = SessionRecorder(_challenge_build("¿Color favorito?"))
    sleeps: list[int] = []
    portal = _portal(steps=CHALLENGE_STEPS, challenge_slots=DEFAULT_SLOTS)
    auth = _auth(portal, recorder, sleeps, answers="mascota:Firulais")

    outcome = auth.login()

    assert outcome.success is False
    assert outcome.error_kind == ErrorKind.CONFIGURATION
    assert len(recorder.sessions) == 1
    assert recorder.all_closed
    assert sleeps == []
    assert "#pass" not in recorder.drivers[0].frames["iframe#login"].filled


def test_debug_pauses_stop_after_each_step() -> None:
    recorder = SessionRecorder(_login_page)
    auth = _auth(_portal(), recorder, [], config=_config(debug_pauses=True))
    assert auth.login().success
    assert recorder.drivers[0].pauses == 1 + len(BASIC_STEPS)


def test_no_driver_or_logout_before_login() -> None:
    recorder = SessionRecorder(_login_page)
    auth = _auth(_portal(), recorder, [])
    assert auth.driver is None
    assert auth.logout() is False
    assert recorder.sessions == []


def test_portal_definition_has_no_free_form_extras() -> None:
    with pytest.raises(TypeError):
        _portal(extras={"anything": 1})
