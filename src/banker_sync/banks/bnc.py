from __future__ import annotations

from ..normalize import POSITIONAL_LAYOUT
from ..portal import steps
from ..portal.auth import PortalDefinition, SuccessIndicators
from ..portal.scraper import AccountTarget, ScraperDefinition


BASE_URL = "https://personas.bncenlinea.com"
LOGIN_URL = f"{BASE_URL}/"
TRANSACTIONS_URL = f"{BASE_URL}/Accounts/Transactions/Last25"

SELECTORS = {
    "card": "#CardNumber",
    "user_id": "#UserID",
    "password": "#UserPassword",
    "submit": "button#BtnSend",
    "logout": "#btn-logout",
    "logout_modal": "#Mdl-Confirm",
    "logout_confirm": "#Mdl-Confirm-Yes",
}

FILTER_BUTTON = (
    "#PnlFilter > div.card.container-card.rounded > div.card-body > div > "
    "div.col-12.col-md-8.pb-4.pb-md-2 > div.form-label-floating > div > button"
)
SEARCH_BUTTON = (
    "#PnlFilter > div.card.container-card.rounded > div.card-body > div > "
    "div.col-12.offset-md-0.col-md-4.pb-md-2 > button"
)
ROW_EXPANDER = "#Tbl_Transactions > tbody > tr > td:nth-child(6) > i"

ACCOUNTS: tuple[str, ...] = ("BNC VES 1109", "BNC USD 0816", "BNC USD 0801")


def _account(index: int, name: str) -> AccountTarget:
    return AccountTarget(name=name, clicks=(FILTER_BUTTON, f"#bs-select-1-{index}", SEARCH_BUTTON))


PORTAL = PortalDefinition(
    name="bnc",
    login_url=LOGIN_URL,
    bank_domain="bncenlinea.com",
    selectors=SELECTORS,
    steps=(
        steps.fill_credential("card", "card"),
        steps.fill_credential("user_id", "id"),
        # First submit only reveals the password field.
        steps.submit("submit", wait_for_key="password", timeout_ms=20_000),
        steps.fill_credential("password", "password", typed=True),
        steps.submit("submit"),
    ),
    indicators=SuccessIndicators(
        url_patterns=("dashboard", "main", "home", "menu", "accounts"),
        logged_in_selector=SELECTORS["logout"],
        login_marker=SELECTORS["card"],
    ),
    max_attempts=3,
    logout_steps=(
        steps.click("logout"),
        steps.dismiss_modal("logout_modal", "logout_confirm", timeout_ms=5_000),
    ),
    credential_fields=("card", "id", "password"),
    identifier_field="id",
)

SCRAPER = ScraperDefinition(
    source="bnc",
    bank_domain="bncenlinea.com",
    transactions_url=TRANSACTIONS_URL,
    table_selector="#Tbl_Transactions",
    expand_selector=ROW_EXPANDER,
    accounts=tuple(_account(i, name) for i, name in enumerate(ACCOUNTS, start=1)),
    layout=POSITIONAL_LAYOUT,
)
