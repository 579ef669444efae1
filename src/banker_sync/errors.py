from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    CONFIGURATION = "configuration"
    VERIFICATION_AMBIGUOUS = "verification_ambiguous"
    PARTIAL_FAILURE = "partial_failure"


class AutomationError(RuntimeError):
    """
    Internal failure raised inside a login/scrape flow.

    These never cross the public API: `AuthenticationTemplate.login()` and `TransactionScraper.scrape()`
    convert them into result values carrying `kind` and the message.
    """

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, *, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class TransientInteractionError(AutomationError):
    kind = ErrorKind.TRANSIENT


class ElementNotReadyError(TransientInteractionError):
    def __init__(self, selector: str, timeout_ms: int) -> None:
        super().__init__(f"Element not ready within {timeout_ms}ms: {selector}")
        self.selector = selector
        self.timeout_ms = timeout_ms


class ConfigurationError(AutomationError):
    """
    Not retryable: a missing credential field, an unmatched challenge, an unknown selector key.
    """

    kind = ErrorKind.CONFIGURATION


class VerificationError(AutomationError):
    kind = ErrorKind.VERIFICATION_AMBIGUOUS
