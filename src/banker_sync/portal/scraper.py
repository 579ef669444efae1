from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import DEFAULT_SESSION_CONFIG, SessionConfig
from ..errors import ErrorKind, TransientInteractionError
from ..models import ItemError, ScrapingResult, TransactionRecord
from ..normalize import ColumnLayout, NormalizedBatch, TransactionNormalizer
from ..performance import PerformanceProfile
from .driver import PageDriver
from .interception import ResourceInterceptionPolicy
from .readiness import ElementReadinessWaiter, RetryController
from .tables import NO_MOVEMENT_TEXTS, TableExtractor, has_no_movements


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountTarget:
    name: str
    # Clicked in order to bring this account's movements on screen (open filter, pick option, search).
    clicks: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScraperDefinition:
    source: str
    bank_domain: str = ""
    # None: scrape whatever page the login left us on.
    transactions_url: Optional[str] = None
    wait_until: str = "networkidle"
    table_selector: str = "table"
    # Non-empty: read every `table_selector` match whose headers mention one of these, not just the first.
    table_keywords: tuple[str, ...] = ()
    scan_rows: bool = False
    expand_selector: Optional[str] = None
    accounts: tuple[AccountTarget, ...] = ()
    no_movement_texts: tuple[str, ...] = NO_MOVEMENT_TEXTS
    layout: Optional[ColumnLayout] = None
    decimal_separator: str = ","
    results_wait_ms: int = 3_000


class TransactionScraper:
    """
    Scraping phase over an authenticated page.

    Each account is retried as a whole; an account that still fails is recorded as an `ItemError`
    and the remaining accounts are scraped anyway. `scrape()` never raises.
    """

    def __init__(
        self,
        driver: PageDriver,
        definition: ScraperDefinition,
        config: Optional[SessionConfig] = None,
        *,
        profile: Optional[PerformanceProfile] = None,
        log: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.driver = driver
        self.definition = definition
        self.config = config or DEFAULT_SESSION_CONFIG
        self.profile = profile
        self._log = log or logging.LoggerAdapter(logger, {})
        self.waiter = ElementReadinessWaiter(
            driver,
            timeout_ms=self.config.timeout_ms,
            retry_limit=max(1, self.config.retry_limit),
            backoff_ms=self.config.retry_backoff_ms,
            action_delay_ms=self.config.action_delay_ms,
            log=self._log,
        )
        self.extractor = TableExtractor(driver, log=self._log)
        self.normalizer = TransactionNormalizer(
            definition.source,
            definition.layout,
            decimal_separator=definition.decimal_separator,
            scan_rows=definition.scan_rows,
        )

    def scrape(self) -> ScrapingResult:
        d = self.definition
        self._log.info("Starting %s transactions scraping", d.source)
        records: list[TransactionRecord] = []
        errors: list[ItemError] = []
        warnings: list[str] = []
        scraped: list[str] = []

        try:
            if self.profile is not None:
                ResourceInterceptionPolicy(self.profile, d.bank_domain).install(self.driver, log=self._log)

            targets: tuple[Optional[AccountTarget], ...] = d.accounts or (None,)
            retry = RetryController(
                max(1, self.config.retry_limit),
                self.config.retry_backoff_ms,
                sleep=self.driver.wait,
                log=self._log,
            )
            for target in targets:
                name = target.name if target is not None else d.source
                try:
                    batch = retry.run(lambda t=target: self._scrape_account(t), description=f"scrape {name}")
                except Exception as e:
                    self._log.error("Failed to scrape %s: %s", name, e)
                    errors.append(ItemError(item=name, message=str(e)))
                    continue

                records.extend(batch.records)
                warnings.extend(batch.warnings)
                scraped.append(name)
                self._log.info("%s: %d transaction(s)", name, len(batch.records))
                self.driver.wait(self.config.action_delay_ms)
        except Exception as e:
            self._log.error("Fatal error during scraping: %s", e, exc_info=True)
            return ScrapingResult(
                success=False,
                message=f"Scraping failed: {e}",
                source=d.source,
                records=records,
                errors=errors,
                warnings=warnings,
                accounts_scraped=scraped,
                error=str(e),
                error_kind=ErrorKind.TRANSIENT,
            )

        if errors and not scraped:
            return ScrapingResult(
                success=False,
                message=f"Scraping failed for all {len(errors)} account(s)",
                source=d.source,
                errors=errors,
                warnings=warnings,
                error="; ".join(err.message for err in errors),
                error_kind=ErrorKind.PARTIAL_FAILURE,
            )

        message = f"Scraped {len(records)} transaction(s) from {len(scraped)} account(s)"
        if errors:
            message += f"; {len(errors)} account(s) failed"
        self._log.info("%s", message)
        return ScrapingResult(
            success=True,
            message=message,
            source=d.source,
            records=records,
            errors=errors,
            warnings=warnings,
            accounts_scraped=scraped,
            error_kind=ErrorKind.PARTIAL_FAILURE if errors else None,
        )

    def _scrape_account(self, target: Optional[AccountTarget]) -> NormalizedBatch:
        d = self.definition
        if d.transactions_url:
            # Fresh load per account; filters from the previous account must not leak.
            self.driver.navigate(d.transactions_url, wait_until=d.wait_until, timeout_ms=self.config.timeout_ms)

        if target is not None:
            self._log.info("Selecting account %s", target.name)
            for selector in target.clicks:
                if not self.waiter.click_with_retry(selector):
                    raise TransientInteractionError(f"Could not click {selector} for {target.name}")

        self.driver.wait(d.results_wait_ms)
        if has_no_movements(self.extractor.page_text(), d.no_movement_texts):
            self._log.info("No movements for %s", target.name if target else d.source)
            return NormalizedBatch()

        if d.expand_selector:
            self.extractor.pre_expand(d.expand_selector)
        account = target.name if target else None
        if not d.table_keywords:
            grid = self.extractor.extract(d.table_selector)
            return self.normalizer.normalize_grid(grid, account=account)

        batch = NormalizedBatch()
        seen: set[str] = set()
        for grid in self.extractor.extract_matching(d.table_keywords, selector=d.table_selector):
            part = self.normalizer.normalize_grid(grid, account=account)
            # Nested layout tables can repeat the same movement rows.
            part.records = [r for r in part.records if r.id not in seen]
            seen.update(r.id for r in part.records)
            batch.extend(part)
        return batch
