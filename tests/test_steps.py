from __future__ import annotations

import pytest

from banker_sync.config import SessionConfig
from banker_sync.errors import ConfigurationError, ElementNotReadyError, TransientInteractionError
from banker_sync.models import Credentials
from banker_sync.portal.readiness import ElementReadinessWaiter
from banker_sync.portal.steps import (
    AuthState,
    StepContext,
    answer_challenge,
    click,
    dismiss_modal,
    enter_frame,
    leave_frame,
    wait_for,
)

from fakes import FakePageDriver


CONFIG = SessionConfig(timeout_ms=500, retry_limit=1, action_delay_ms=0, retry_backoff_ms=0)


def _ctx(driver: FakePageDriver, selectors: dict[str, str], transitions: list[AuthState]) -> StepContext:
    return StepContext(
        driver=driver,
        scope=driver,
        credentials=Credentials({"username": "u"}),
        selectors=selectors,
        waiter=ElementReadinessWaiter(driver, timeout_ms=500, retry_limit=1, backoff_ms=0),
        config=CONFIG,
        on_transition=transitions.append,
    )


def test_unknown_selector_key_is_a_configuration_error() -> None:
    ctx = _ctx(FakePageDriver(), {}, [])
    with pytest.raises(ConfigurationError):
        click("nope")(ctx)


def test_step_names_are_readable() -> None:
    assert click("submit").__name__ == "click(submit)"
    assert enter_frame("login_frame").__name__ == "enter_frame(login_frame)"


def test_optional_click_tolerates_missing_element() -> None:
    ctx = _ctx(FakePageDriver(), {"banner": "#banner"}, [])
    click("banner", optional=True)(ctx)
    with pytest.raises(TransientInteractionError):
        click("banner")(ctx)


def test_wait_for_raises_when_element_never_appears() -> None:
    page = FakePageDriver()
    page.add("#ready")
    ctx = _ctx(page, {"ready": "#ready", "late": "#late"}, [])
    wait_for("ready")(ctx)
    with pytest.raises(ElementNotReadyError):
        wait_for("late")(ctx)


def test_frame_scope_round_trip() -> None:
    page = FakePageDriver()
    frame = FakePageDriver()
    frame.add("#inside")
    page.frames["iframe#app"] = frame
    ctx = _ctx(page, {"frame": "iframe#app", "inside": "#inside"}, [])

    enter_frame("frame")(ctx)
    assert ctx.scope is frame
    click("inside")(ctx)
    assert frame.clicks == ["#inside"]

    leave_frame()(ctx)
    assert ctx.scope is page
    assert ctx.waiter.scope is page


def test_enter_missing_frame_is_not_ready() -> None:
    ctx = _ctx(FakePageDriver(), {"frame": "iframe#app"}, [])
    with pytest.raises(ElementNotReadyError):
        enter_frame("frame")(ctx)


def test_dismiss_modal_never_fails() -> None:
    page = FakePageDriver()
    ctx = _ctx(page, {"modal": ".swal2-popup", "ok": ".swal2-confirm"}, [])
    dismiss_modal("modal", "ok", timeout_ms=10)(ctx)
    assert page.clicks == []

    page.add(".swal2-popup")
    page.add(".swal2-confirm")
    dismiss_modal("modal", "ok", timeout_ms=10)(ctx)
    assert page.clicks == [".swal2-confirm"]


def test_answer_challenge_without_resolver_is_a_configuration_error() -> None:
    transitions: list[AuthState] = []
    ctx = _ctx(FakePageDriver(), {}, transitions)
    with pytest.raises(ConfigurationError):
        answer_challenge()(ctx)
    assert transitions == []
