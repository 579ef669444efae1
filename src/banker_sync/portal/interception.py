"""
Request blocking for faster page loads.

Blocking only pays off if it can never break a login: documents/navigations, anything from the bank's own
domain, and scripts that look functional (auth, forms, common UI libraries) always go through.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional
from urllib.parse import urlparse

from ..performance import PerformanceProfile
from .driver import PageDriver, RouteDecision


logger = logging.getLogger(__name__)


AD_DOMAINS: tuple[str, ...] = (
    "doubleclick.net",
    "googlesyndication.com",
    "googleadservices.com",
    "amazon-adsystem.com",
    "adsystem.amazon.com",
    "ads.yahoo.com",
    "adsrvr.org",
    "turn.com",
    "mathtag.com",
    "exelator.com",
    "mediamath.com",
    "rlcdn.com",
    "zedo.com",
    "facebook.com",
    "connect.facebook.net",
    "twitter.com",
    "platform.twitter.com",
    "linkedin.com",
    "platform.linkedin.com",
)

ANALYTICS_DOMAINS: tuple[str, ...] = (
    "google-analytics.com",
    "googletagmanager.com",
    "analytics.google.com",
    "stats.wp.com",
    "quantserve.com",
    "scorecardresearch.com",
    "hotjar.com",
    "fullstory.com",
    "loggly.com",
    "mixpanel.com",
    "cdn.mxpnl.com",
    "segment.com",
    "segment.io",
    "amplitude.com",
    "getclicky.com",
    "newrelic.com",
    "nr-data.net",
    "optimizely.com",
    "crazyegg.com",
    "mouseflow.com",
)

ESSENTIAL_SCRIPT_KEYWORDS: tuple[str, ...] = (
    # UI/runtime libraries portals are built on
    "jquery",
    "bootstrap",
    "angular",
    "react",
    "vue",
    "lodash",
    "moment",
    "axios",
    "fetch",
    "webresource.axd",
    "scriptresource.axd",
    # functional keywords
    "banking",
    "auth",
    "login",
    "security",
    "transaction",
    "account",
    "session",
    "csrf",
    "token",
    "validate",
    "form",
    "banco",
)

_KIND_SWITCHES = {
    "stylesheet": "block_stylesheets",
    "image": "block_images",
    "font": "block_fonts",
    "media": "block_media",
}


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def _host_matches(host: str, domain: str) -> bool:
    return bool(host) and (host == domain or host.endswith("." + domain))


def matches_bank_domain(url: str, bank_domain: str) -> bool:
    domain = (bank_domain or "").strip().lower()
    if not domain:
        return False
    host = _host(url)
    if _host_matches(host, domain):
        return True
    # Short names like "banesco" match "www.banesconline.com"-style hosts.
    return "." not in domain and domain in host


def is_tracker(url: str, profile: PerformanceProfile) -> bool:
    host = _host(url)
    if profile.block_ads and any(_host_matches(host, d) for d in AD_DOMAINS):
        return True
    if profile.block_analytics and any(_host_matches(host, d) for d in ANALYTICS_DOMAINS):
        return True
    return False


def is_essential_script(url: str, bank_domain: str) -> bool:
    if matches_bank_domain(url, bank_domain):
        return True
    lowered = (url or "").lower()
    domain = (bank_domain or "").strip().lower()
    if domain and domain in lowered:
        return True
    return any(k in lowered for k in ESSENTIAL_SCRIPT_KEYWORDS)


def decide(url: str, resource_kind: str, profile: PerformanceProfile, bank_domain: str) -> RouteDecision:
    """
    Allow/abort one outgoing request. Pure and total: any input yields a decision.
    """
    kind = (resource_kind or "other").strip().lower()

    if kind == "document":
        return RouteDecision.ALLOW
    if matches_bank_domain(url or "", bank_domain):
        return RouteDecision.ALLOW
    if is_tracker(url or "", profile):
        return RouteDecision.ABORT

    switch = _KIND_SWITCHES.get(kind)
    if switch is not None:
        return RouteDecision.ABORT if getattr(profile, switch) else RouteDecision.ALLOW

    if kind == "script" and profile.block_non_essential_scripts:
        return RouteDecision.ALLOW if is_essential_script(url or "", bank_domain) else RouteDecision.ABORT

    return RouteDecision.ALLOW


class ResourceInterceptionPolicy:
    def __init__(self, profile: PerformanceProfile, bank_domain: str) -> None:
        self.profile = profile
        self.bank_domain = bank_domain
        self._counts: Counter[str] = Counter()
        self._blocked_by_kind: Counter[str] = Counter()

    def decide(self, url: str, resource_kind: str) -> RouteDecision:
        decision = decide(url, resource_kind, self.profile, self.bank_domain)
        self._counts[decision.value] += 1
        if decision == RouteDecision.ABORT:
            self._blocked_by_kind[resource_kind] += 1
        return decision

    def install(self, driver: PageDriver, *, log: Optional[logging.LoggerAdapter] = None) -> None:
        (log or logger).info(
            "Installing request interception (bank_domain=%s profile=%s)",
            self.bank_domain,
            self.profile.model_dump(),
        )
        driver.on_request(self.decide)

    def stats(self) -> dict[str, int]:
        out = {"allowed": self._counts["allow"], "blocked": self._counts["abort"]}
        for kind, n in sorted(self._blocked_by_kind.items()):
            out[f"blocked_{kind}"] = n
        return out
