from __future__ import annotations

import pytest

from banker_sync.errors import ConfigurationError, ElementNotReadyError
from banker_sync.portal.readiness import ElementReadinessWaiter, RetryController

from fakes import FakePageDriver


def _waiter(driver: FakePageDriver, **kwargs) -> ElementReadinessWaiter:
    kwargs.setdefault("retry_limit", 3)
    kwargs.setdefault("backoff_ms", 2_000)
    kwargs.setdefault("action_delay_ms", 0)
    return ElementReadinessWaiter(driver, timeout_ms=1_000, **kwargs)


def test_retry_controller_returns_first_success() -> None:
    calls: list[int] = []
    sleeps: list[int] = []

    def flaky() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise RuntimeError("not yet")
        return "ok"

    assert RetryController(5, 100, sleep=sleeps.append).run(flaky) == "ok"
    assert len(calls) == 3
    assert sleeps == [100, 100]


def test_retry_controller_raises_last_error_after_budget() -> None:
    calls: list[int] = []

    def always() -> None:
        calls.append(1)
        raise RuntimeError(f"boom {len(calls)}")

    with pytest.raises(RuntimeError, match="boom 3"):
        RetryController(3, 0, sleep=lambda ms: None).run(always)
    assert len(calls) == 3


def test_retry_controller_does_not_retry_configuration_errors() -> None:
    calls: list[int] = []

    def misconfigured() -> None:
        calls.append(1)
        raise ConfigurationError("missing answer")

    with pytest.raises(ConfigurationError):
        RetryController(3, 0, sleep=lambda ms: None).run(misconfigured)
    assert len(calls) == 1


def test_retry_controller_attempt_treats_false_as_failure() -> None:
    results = iter([False, False, True])
    assert RetryController(3, 0, sleep=lambda ms: None).attempt(lambda: next(results)) is True
    assert RetryController(2, 0, sleep=lambda ms: None).attempt(lambda: False) is False


def test_wait_ready_requires_attached_and_ready() -> None:
    driver = FakePageDriver()
    driver.add("#ok")
    driver.add("#disabled", ready=False)
    w = _waiter(driver)

    w.wait_ready("#ok")
    with pytest.raises(ElementNotReadyError) as exc:
        w.wait_ready("#disabled")
    assert exc.value.selector == "#disabled"
    with pytest.raises(ElementNotReadyError):
        w.wait_ready("#missing")
    assert w.is_ready("#ok") is True
    assert w.is_ready("#missing") is False


def test_click_with_retry_makes_at_most_n_attempts_and_returns_false() -> None:
    driver = FakePageDriver()
    el = driver.add("#btn", failures=-1)
    w = _waiter(driver)

    attempts: list[str] = []
    original = driver.click

    def counting_click(selector: str) -> None:
        attempts.append(selector)
        original(selector)

    driver.click = counting_click  # type: ignore[method-assign]

    assert w.click_with_retry("#btn", 4) is False
    assert len(attempts) == 4
    assert el.failures == -1
    # Backoff between attempts only, never after the last one.
    assert driver.waits == [2_000, 2_000, 2_000]


def test_click_with_retry_recovers_from_transient_failures() -> None:
    driver = FakePageDriver()
    driver.add("#btn", failures=2)
    assert _waiter(driver).click_with_retry("#btn") is True
    assert driver.clicks == ["#btn"]


def test_click_with_retry_on_missing_element_returns_false() -> None:
    driver = FakePageDriver()
    assert _waiter(driver).click_with_retry("#nope", attempts=2) is False
    assert driver.clicks == []


def test_fill_with_retry_typed_and_plain() -> None:
    driver = FakePageDriver()
    driver.add("#user")
    driver.add("#pass")
    w = _waiter(driver)

    assert w.fill_with_retry("#user", "alice") is True
    assert w.fill_with_retry("#pass", "s3cret", typed=True) is True
    assert driver.filled == {"#user": "alice", "#pass": "s3cret"}
    assert driver.typed == {"#pass": "s3cret"}


def test_for_scope_keeps_settings() -> None:
    page = FakePageDriver()
    frame = FakePageDriver()
    frame.add("#inside")
    w = _waiter(page, retry_limit=2).for_scope(frame)
    assert w.scope is frame
    assert w.retry_limit == 2
    assert w.fill_with_retry("#inside", "x") is True
    assert frame.filled == {"#inside": "x"}
