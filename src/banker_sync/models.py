from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date as _date
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from .errors import ConfigurationError, ErrorKind
from .util.text import mask_secret


@dataclass(frozen=True)
class Credentials:
    """
    Named secrets for one portal: username/password, or card + id + password, etc.

    Never log these directly; use `identifier()`.
    """

    fields: Mapping[str, str] = field(default_factory=dict)
    identifier_field: str = "username"

    def get(self, name: str, default: str = "") -> str:
        return str(self.fields.get(name) or default)

    def require(self, name: str) -> str:
        value = str(self.fields.get(name) or "")
        # Secrets are filled verbatim; whitespace only counts as missing.
        if not value.strip():
            raise ConfigurationError(f"Missing required credential field: {name!r}")
        return value

    def identifier(self) -> str:
        return mask_secret(self.get(self.identifier_field))

    def __repr__(self) -> str:
        return f"Credentials({self.identifier_field}={self.identifier()!r}, fields={sorted(self.fields)})"

    __str__ = __repr__


class Polarity(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class LoginOutcome(BaseModel):
    success: bool
    message: str
    session_valid: bool = False
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    final_url: Optional[str] = None

    @classmethod
    def succeeded(cls, message: str = "Authentication successful", *, final_url: Optional[str] = None) -> "LoginOutcome":
        return cls(success=True, message=message, session_valid=True, final_url=final_url)

    @classmethod
    def failed(
        cls,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.TRANSIENT,
        error: Optional[str] = None,
        final_url: Optional[str] = None,
    ) -> "LoginOutcome":
        return cls(
            success=False,
            message=message,
            session_valid=False,
            error=error or message,
            error_kind=kind,
            final_url=final_url,
        )


class RawTableGrid(BaseModel):
    headers: list[str] = Field(default_factory=list)
    # Rows may have different widths (colspan rows, expanded detail rows).
    rows: list[list[str]] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.rows


class TransactionRecord(BaseModel):
    id: str
    date: _date
    description: str
    # Always a non-negative magnitude; direction lives in `polarity`.
    amount: float = Field(ge=0)
    polarity: Polarity
    running_balance: float = 0.0
    raw_type: str = ""
    reference_number: str = ""
    account: Optional[str] = None


class AccountSummary(BaseModel):
    number: str
    name: str = ""
    # corriente, ahorro, credito, tarjeta or unknown.
    account_type: str = "unknown"
    balance: float = 0.0
    currency: str = "VES"
    url: str = ""


class ItemError(BaseModel):
    item: str
    message: str
    kind: ErrorKind = ErrorKind.PARTIAL_FAILURE


class ScrapingResult(BaseModel):
    success: bool
    message: str
    source: str = ""
    records: list[TransactionRecord] = Field(default_factory=list)
    errors: list[ItemError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    accounts_scraped: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    scraped_at: datetime = Field(default_factory=datetime.now)

    @property
    def count(self) -> int:
        return len(self.records)
