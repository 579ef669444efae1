from __future__ import annotations

import pytest

from banker_sync.performance import PRESETS, PerformanceProfile
from banker_sync.portal.driver import RouteDecision
from banker_sync.portal.interception import (
    ResourceInterceptionPolicy,
    decide,
    is_essential_script,
    matches_bank_domain,
)

from fakes import FakePageDriver


ALLOW = RouteDecision.ALLOW
ABORT = RouteDecision.ABORT
KINDS = ["document", "script", "stylesheet", "image", "font", "media", "xhr", "fetch", "other"]


@pytest.mark.parametrize("profile_name", list(PRESETS))
@pytest.mark.parametrize("url", ["https://cdn.tracker.io/x.js", "https://doubleclick.net/", "not a url", ""])
def test_document_requests_are_never_blocked(profile_name: str, url: str) -> None:
    assert decide(url, "document", PRESETS[profile_name], "bncenlinea.com") == ALLOW


@pytest.mark.parametrize("kind", KINDS)
def test_bank_domain_is_never_blocked(kind: str) -> None:
    profile = PRESETS["MAXIMUM"]
    assert profile.block_non_essential_scripts
    for url in (
        "https://personas.bncenlinea.com/static/app.min.js",
        "https://bncenlinea.com/Content/site.css",
        "https://img.personas.bncenlinea.com/logo.png",
    ):
        assert decide(url, kind, profile, "bncenlinea.com") == ALLOW


def test_short_bank_name_matches_host() -> None:
    assert matches_bank_domain("https://www.banesconline.com/mantis/x.js", "banesco")
    assert matches_bank_domain("https://www.banesconline.com/mantis/x.js", "banesconline.com")
    assert not matches_bank_domain("https://evil-banesconline.com.attacker.net/", "banesconline.com")
    assert not matches_bank_domain("https://example.com/", "")


def test_trackers_blocked_only_when_switch_set() -> None:
    url = "https://www.google-analytics.com/analytics.js"
    assert decide(url, "script", PRESETS["BALANCED"], "bncenlinea.com") == ABORT
    assert decide(url, "script", PRESETS["NONE"], "bncenlinea.com") == ALLOW
    assert decide("https://stats.g.doubleclick.net/r", "xhr", PRESETS["CONSERVATIVE"], "x.com") == ABORT


@pytest.mark.parametrize(
    "kind,switch",
    [("stylesheet", "block_stylesheets"), ("image", "block_images"), ("font", "block_fonts"), ("media", "block_media")],
)
def test_resource_kind_switches(kind: str, switch: str) -> None:
    url = "https://cdn.example.net/asset"
    on = PerformanceProfile(**{switch: True})
    off = PerformanceProfile()
    assert decide(url, kind, on, "bncenlinea.com") == ABORT
    assert decide(url, kind, off, "bncenlinea.com") == ALLOW


@pytest.mark.parametrize(
    "url",
    [
        "https://code.jquery.com/jquery-3.7.1.min.js",
        "https://cdn.example.net/js/login-widget.js",
        "https://cdn.example.net/csrf-token.js",
        "https://cdn.example.net/WebResource.axd?d=abc",
    ],
)
def test_essential_scripts_survive_script_blocking(url: str) -> None:
    assert is_essential_script(url, "bncenlinea.com")
    assert decide(url, "script", PRESETS["MAXIMUM"], "bncenlinea.com") == ALLOW


def test_non_essential_scripts_blocked_under_maximum() -> None:
    url = "https://cdn.example.net/widgets/carousel.js"
    assert decide(url, "script", PRESETS["MAXIMUM"], "bncenlinea.com") == ABORT
    assert decide(url, "script", PRESETS["AGGRESSIVE"], "bncenlinea.com") == ALLOW


def test_unknown_kinds_are_allowed() -> None:
    assert decide("https://cdn.example.net/api", "websocket", PRESETS["MAXIMUM"], "x.com") == ALLOW
    assert decide("https://cdn.example.net/api", "", PRESETS["MAXIMUM"], "x.com") == ALLOW


def test_policy_install_routes_through_driver_and_counts() -> None:
    driver = FakePageDriver()
    policy = ResourceInterceptionPolicy(PRESETS["MAXIMUM"], "bncenlinea.com")
    policy.install(driver)

    assert driver.route("https://personas.bncenlinea.com/", "document") == "allow"
    assert driver.route("https://cdn.example.net/hero.png", "image") == "abort"
    assert driver.route("https://cdn.example.net/site.css", "stylesheet") == "abort"
    assert driver.route("https://cdn.example.net/carousel.js", "script") == "abort"

    assert policy.stats() == {
        "allowed": 1,
        "blocked": 3,
        "blocked_image": 1,
        "blocked_script": 1,
        "blocked_stylesheet": 1,
    }
