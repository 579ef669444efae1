from .auth import AuthenticationTemplate, PortalDefinition, SuccessIndicators
from .challenge import ChallengeAnswerTable, ChallengeResolver, ChallengeSlot
from .driver import PageDriver, PlaywrightDriver, RouteDecision
from .interception import ResourceInterceptionPolicy, decide
from .readiness import ElementReadinessWaiter, RetryController
from .scraper import AccountTarget, ScraperDefinition, TransactionScraper
from .steps import AuthState, StepContext
from .tables import TableExtractor

__all__ = [
    "AccountTarget",
    "AuthState",
    "AuthenticationTemplate",
    "ChallengeAnswerTable",
    "ChallengeResolver",
    "ChallengeSlot",
    "ElementReadinessWaiter",
    "PageDriver",
    "PlaywrightDriver",
    "PortalDefinition",
    "ResourceInterceptionPolicy",
    "RetryController",
    "RouteDecision",
    "ScraperDefinition",
    "StepContext",
    "SuccessIndicators",
    "TableExtractor",
    "TransactionScraper",
    "decide",
]
