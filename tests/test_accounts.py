from __future__ import annotations

import pytest

from banker_sync.banks import banesco, build_account_lister
from banker_sync.portal.accounts import AccountListDefinition, AccountLister, account_type_of

from fakes import FakePageDriver


LINKS = [
    {"text": "Inicio", "href": "https://www.banesconline.com/Mantis/WebSite/Default.aspx", "context": ""},
    {
        "text": "Cuenta Corriente",
        "href": "https://www.banesconline.com/Mantis/WebSite/consultamovimientoscuenta/movimientoscuenta.aspx?id=1",
        "context": "Cuenta Corriente 01340123456789012345 Bs. 12.345,67",
    },
    {
        "text": "Cuenta de Ahorro 01340999888777666555",
        "href": "javascript:void(0)",
        "context": "Ahorro 01340999888777666555 Saldo -45,10",
    },
    # Same account linked twice (menu and table).
    {"text": "Ver movimientos", "href": "movimientoscuenta.aspx?id=1", "context": "01340123456789012345"},
]


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Cuenta Corriente", "corriente"),
        ("CUENTA DE AHORROS", "ahorro"),
        ("Tarjeta de Crédito Visa", "credito"),
        ("Tarjeta prepagada", "tarjeta"),
        ("Fondo", "unknown"),
    ],
)
def test_account_type_of(text: str, expected: str) -> None:
    assert account_type_of(text) == expected


def test_accounts_from_links() -> None:
    driver = FakePageDriver(tables={"a": LINKS})
    accounts = build_account_lister("banesco", driver).list_accounts()

    assert [a.number for a in accounts] == ["01340123456789012345", "01340999888777666555"]
    current, savings = accounts
    assert (current.account_type, current.balance, current.currency) == ("corriente", 12345.67, "VES")
    assert current.url.endswith("movimientoscuenta.aspx?id=1")
    assert (savings.account_type, savings.balance) == ("ahorro", -45.10)


def test_link_without_number_gets_a_placeholder() -> None:
    driver = FakePageDriver(tables={"a": [{"text": "Mis cuentas", "href": "/cuentas", "context": ""}]})
    [account] = AccountLister(driver, AccountListDefinition(source="test")).list_accounts()
    assert account.number == "link-1"
    assert account.account_type == "unknown"
    assert account.balance == 0.0


def test_falls_back_to_numbers_in_page_text() -> None:
    driver = FakePageDriver(html="<td>01340123456789012345</td><td>01340123456789012345</td><td>123</td>")
    accounts = AccountLister(driver, banesco.ACCOUNT_LIST).list_accounts()
    assert [a.number for a in accounts] == ["01340123456789012345"]
    assert accounts[0].account_type == "unknown"


def test_account_listing_is_not_available_for_every_bank() -> None:
    with pytest.raises(ValueError):
        build_account_lister("bnc", FakePageDriver())
