from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..models import AccountSummary
from ..util.money import amount_polarity, find_first_money, parse_amount
from ..util.text import normalize_text
from .driver import PageDriver


logger = logging.getLogger(__name__)

# Each link with its own text and the text of the table row around it (balance, number).
_LINKS_JS = """
(selector) => Array.from(document.querySelectorAll(selector)).map((link) => {
  const row = link.closest('tr');
  const clean = (el) => ((el && el.textContent) || '').replace(/\\s+/g, ' ').trim();
  return { text: clean(link), href: link.href || '', context: row ? clean(row) : '' };
})
"""

_ACCOUNT_NUMBER_RE = re.compile(r"\b\d{10,20}\b")

# First keyword found wins.
ACCOUNT_TYPE_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("corriente", "corriente"),
    ("ahorro", "ahorro"),
    ("credito", "credito"),
    ("tarjeta", "tarjeta"),
)


def account_type_of(text: str) -> str:
    t = normalize_text(text)
    for keyword, kind in ACCOUNT_TYPE_KEYWORDS:
        if keyword in t:
            return kind
    return "unknown"


@dataclass(frozen=True)
class AccountListDefinition:
    source: str
    # Links whose text or href contains one of these (case-insensitive) lead to an account.
    link_keywords: tuple[str, ...] = ("cuenta",)
    link_selector: str = "a"
    currency: str = "VES"
    decimal_separator: str = ","


class AccountLister:
    """
    Lists the accounts shown on an authenticated landing page.

    Accounts come from account links first; when a page has none, bare account numbers in the page
    text are used instead (type unknown, no balance).
    """

    def __init__(
        self,
        driver: PageDriver,
        definition: AccountListDefinition,
        *,
        log: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.driver = driver
        self.definition = definition
        self._log = log or logging.LoggerAdapter(logger, {})

    def list_accounts(self) -> list[AccountSummary]:
        d = self.definition
        links = self.driver.evaluate(_LINKS_JS, d.link_selector) or []
        accounts: list[AccountSummary] = []
        seen: set[str] = set()
        for link in links:
            text = str(link.get("text") or "").strip()
            href = str(link.get("href") or "").strip()
            if not self._is_account_link(text, href):
                continue
            account = self._from_link(text, href, str(link.get("context") or ""), index=len(accounts) + 1)
            if account.number in seen:
                continue
            seen.add(account.number)
            accounts.append(account)
        self._log.info("%s: %d account link(s)", d.source, len(accounts))

        if not accounts:
            accounts = self._from_page_text()
        return accounts

    def _is_account_link(self, text: str, href: str) -> bool:
        t = normalize_text(text)
        h = href.lower()
        return any(normalize_text(k) in t or k.lower() in h for k in self.definition.link_keywords)

    def _from_link(self, text: str, href: str, context: str, *, index: int) -> AccountSummary:
        d = self.definition
        haystack = f"{text} {context}"
        m = _ACCOUNT_NUMBER_RE.search(haystack)
        number = m.group(0) if m else f"link-{index}"

        balance = 0.0
        # The account number itself would read as an amount.
        raw = find_first_money(_ACCOUNT_NUMBER_RE.sub(" ", context), require_separator=True)
        if raw:
            try:
                balance = float(parse_amount(raw, decimal_separator=d.decimal_separator))
                if amount_polarity(raw) == "debit":
                    balance = -balance
            except ValueError:
                self._log.debug("%s: unparsable balance %r", d.source, raw)

        return AccountSummary(
            number=number,
            name=text,
            account_type=account_type_of(haystack),
            balance=balance,
            currency=d.currency,
            url=href,
        )

    def _from_page_text(self) -> list[AccountSummary]:
        try:
            text = self.driver.content()
        except Exception:
            self._log.debug("Could not read page content.", exc_info=True)
            return []
        numbers = list(dict.fromkeys(_ACCOUNT_NUMBER_RE.findall(text)))
        if numbers:
            self._log.info("%s: %d account number(s) found in page text", self.definition.source, len(numbers))
        return [AccountSummary(number=n, currency=self.definition.currency) for n in numbers]
