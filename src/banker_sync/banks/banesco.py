from __future__ import annotations

from ..portal import steps
from ..portal.auth import PortalDefinition, SuccessIndicators
from ..portal.accounts import AccountListDefinition
from ..portal.challenge import DEFAULT_SLOTS
from ..portal.scraper import ScraperDefinition
from ..portal.tables import TRANSACTION_HEADER_KEYWORDS


BASE_URL = "https://www.banesconline.com"
LOGIN_URL = f"{BASE_URL}/mantis/Website/Login.aspx"
LOGIN_FRAME = "iframe#ctl00_cp_frmAplicacion"

SELECTORS = {
    "login_frame": LOGIN_FRAME,
    "username": 'input[name="txtUsuario"]',
    "password": 'input[name="txtClave"]',
    "accept": 'input[name="bAceptar"]',
    # "Hemos detectado que existe una conexión activa..."
    "active_session_modal": ".swal2-popup",
    "active_session_confirm": ".swal2-confirm",
}

PORTAL = PortalDefinition(
    name="banesco",
    login_url=LOGIN_URL,
    bank_domain="banesconline.com",
    selectors=SELECTORS,
    steps=(
        steps.enter_frame("login_frame"),
        steps.fill_credential("username", "username"),
        steps.click("accept"),
        steps.dismiss_modal("active_session_modal", "active_session_confirm"),
        steps.answer_challenge(),
        steps.fill_credential("password", "password", typed=True),
        steps.submit("accept"),
        steps.leave_frame(),
    ),
    indicators=SuccessIndicators(
        url_patterns=("default.aspx", "principal.aspx", "dashboard", "home", "index.aspx"),
        logged_in_selector=".StatusSystemOK, .available",
        logged_in_frame="#ctl00_cp_frmCAU",
        login_marker=LOGIN_FRAME,
    ),
    credential_fields=("username", "password"),
    identifier_field="username",
    challenge_slots=DEFAULT_SLOTS,
    challenge_submit=SELECTORS["accept"],
)

# Movements are read from the page the login lands on, from whichever unnamed layout tables carry
# movement headers. Cells are found by content; a lone D/C cell carries polarity.
SCRAPER = ScraperDefinition(
    source="banesco",
    bank_domain="banesconline.com",
    table_selector="table",
    table_keywords=TRANSACTION_HEADER_KEYWORDS,
    scan_rows=True,
)

ACCOUNT_LIST = AccountListDefinition(
    source="banesco",
    link_keywords=("cuenta", "movimiento"),
)
