from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from ..config import BankConfig, SessionConfig
from ..logging_config import SessionLogSink
from ..models import Credentials
from ..performance import bank_profile, resolve_profile
from ..portal.accounts import AccountListDefinition, AccountLister
from ..portal.auth import AuthenticationTemplate, PortalDefinition
from ..portal.browser import SessionFactory, open_browser_session
from ..portal.driver import PageDriver
from ..portal.scraper import ScraperDefinition, TransactionScraper
from . import banesco, bnc


@dataclass(frozen=True)
class BankInfo:
    slug: str
    display_name: str
    portal: PortalDefinition
    scraper: ScraperDefinition
    # None: the bank has no account listing.
    accounts: Optional[AccountListDefinition] = None


KNOWN_BANKS: Mapping[str, BankInfo] = {
    "bnc": BankInfo(slug="bnc", display_name="Banco Nacional de Crédito", portal=bnc.PORTAL, scraper=bnc.SCRAPER),
    "banesco": BankInfo(
        slug="banesco",
        display_name="Banesco",
        portal=banesco.PORTAL,
        scraper=banesco.SCRAPER,
        accounts=banesco.ACCOUNT_LIST,
    ),
}


def get_bank(slug: str) -> BankInfo:
    key = (slug or "").strip().lower()
    if key not in KNOWN_BANKS:
        raise KeyError(f"Unknown bank {slug!r} (known: {', '.join(sorted(KNOWN_BANKS))})")
    return KNOWN_BANKS[key]


def build_authenticator(
    slug: str,
    bank_cfg: BankConfig,
    session: SessionConfig,
    *,
    session_factory: SessionFactory = open_browser_session,
    log_sink: Optional[SessionLogSink] = None,
) -> AuthenticationTemplate:
    info = get_bank(slug)
    profile = (
        resolve_profile(bank_cfg.auth_profile) if bank_cfg.auth_profile is not None else bank_profile(info.slug, "auth")
    )
    return AuthenticationTemplate(
        info.portal,
        Credentials(fields=dict(bank_cfg.credentials), identifier_field=info.portal.identifier_field),
        session,
        answers=bank_cfg.security_questions or None,
        profile=profile,
        session_factory=session_factory,
        log_sink=log_sink,
    )


def build_scraper(
    slug: str,
    driver: PageDriver,
    bank_cfg: BankConfig,
    session: SessionConfig,
    *,
    log: Optional[logging.LoggerAdapter] = None,
) -> TransactionScraper:
    info = get_bank(slug)
    definition = info.scraper
    if bank_cfg.accounts and definition.accounts:
        wanted = {a.strip().lower() for a in bank_cfg.accounts}
        selected = tuple(a for a in definition.accounts if a.name.lower() in wanted)
        if not selected:
            known = ", ".join(a.name for a in definition.accounts)
            raise ValueError(f"{slug}: none of the configured accounts exist (known: {known})")
        definition = replace(definition, accounts=selected)
    profile = (
        resolve_profile(bank_cfg.scraping_profile)
        if bank_cfg.scraping_profile is not None
        else bank_profile(info.slug, "scraping")
    )
    return TransactionScraper(driver, definition, session, profile=profile, log=log)


def build_account_lister(
    slug: str,
    driver: PageDriver,
    *,
    log: Optional[logging.LoggerAdapter] = None,
) -> AccountLister:
    info = get_bank(slug)
    if info.accounts is None:
        raise ValueError(f"{info.slug}: account listing is not supported")
    return AccountLister(driver, info.accounts, log=log)


__all__ = [
    "BankInfo",
    "KNOWN_BANKS",
    "get_bank",
    "build_authenticator",
    "build_scraper",
    "build_account_lister",
]
