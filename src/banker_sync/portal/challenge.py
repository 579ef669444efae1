from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Union

from ..errors import TransientInteractionError
from ..util.text import normalize_text
from .driver import PageDriver
from .readiness import ElementReadinessWaiter


logger = logging.getLogger(__name__)


class ChallengeAnswerTable:
    """
    Ordered keyword -> answer pairs. Keywords are matched as substrings of the normalized prompt,
    first entry wins.
    """

    def __init__(self, pairs: Iterable[tuple[str, str]] = ()) -> None:
        self._pairs: list[tuple[str, str]] = []
        for keyword, answer in pairs:
            key = normalize_text(keyword)
            if not key:
                continue
            self._pairs.append((key, str(answer).strip()))

    @classmethod
    def from_string(cls, raw: str) -> "ChallengeAnswerTable":
        """
        Parse "keyword:answer,keyword:answer". Malformed entries are skipped.
        """
        pairs: list[tuple[str, str]] = []
        for chunk in (raw or "").split(","):
            keyword, sep, answer = chunk.partition(":")
            if not sep or not keyword.strip() or not answer.strip():
                if chunk.strip():
                    logger.warning("Ignoring malformed security question entry (expected keyword:answer).")
                continue
            pairs.append((keyword, answer))
        return cls(pairs)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> "ChallengeAnswerTable":
        return cls(mapping.items())

    @classmethod
    def coerce(cls, value: Union[str, Mapping[str, str], "ChallengeAnswerTable", None]) -> "ChallengeAnswerTable":
        if value is None:
            return cls()
        if isinstance(value, ChallengeAnswerTable):
            return value
        if isinstance(value, str):
            return cls.from_string(value)
        return cls.from_mapping(value)

    def find(self, prompt: str) -> Optional[str]:
        text = normalize_text(prompt)
        if not text:
            return None
        for keyword, answer in self._pairs:
            if keyword in text:
                return answer
        return None

    def keywords(self) -> list[str]:
        return [k for k, _ in self._pairs]

    def __len__(self) -> int:
        return len(self._pairs)

    def __repr__(self) -> str:
        # Answers are secrets.
        return f"ChallengeAnswerTable(keywords={self.keywords()})"


@dataclass(frozen=True)
class ChallengeSlot:
    label_id: str
    input_id: str

    @property
    def label_selector(self) -> str:
        return f"#{self.label_id}"

    @property
    def input_selector(self) -> str:
        return f"#{self.input_id}"


DEFAULT_SLOTS: tuple[ChallengeSlot, ...] = (
    ChallengeSlot("lblPrimeraP", "txtPrimeraR"),
    ChallengeSlot("lblSegundaP", "txtSegundaR"),
    ChallengeSlot("lblTerceraP", "txtTerceraR"),
    ChallengeSlot("lblCuartaP", "txtCuartaR"),
)


class ChallengeResolver:
    def __init__(
        self,
        table: ChallengeAnswerTable,
        slots: Iterable[ChallengeSlot] = DEFAULT_SLOTS,
        *,
        submit_selector: Optional[str] = None,
        log: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self.table = table
        self.slots = tuple(slots)
        self.submit_selector = submit_selector
        self._log = log or logger

    def visible_prompts(self, scope: PageDriver) -> list[tuple[ChallengeSlot, str]]:
        out: list[tuple[ChallengeSlot, str]] = []
        for slot in self.slots:
            try:
                if scope.query_selector(slot.label_selector) is None:
                    continue
                if scope.query_selector(slot.input_selector) is None:
                    continue
                text = (scope.text_content(slot.label_selector) or "").strip()
            except Exception:
                self._log.debug("Could not read challenge slot %s", slot.label_id, exc_info=True)
                continue
            if text:
                out.append((slot, text))
        return out

    def resolve(self, scope: PageDriver, waiter: ElementReadinessWaiter) -> bool:
        """
        Answer every visible question whose prompt matches a configured keyword, then submit.

        Returns False without submitting when nothing could be answered. Prompts with no matching keyword
        are logged and left blank.
        """
        prompts = self.visible_prompts(scope)
        if not prompts:
            self._log.info("No security questions on page.")
            return False

        answered = 0
        for slot, prompt in prompts:
            answer = self.table.find(prompt)
            if answer is None:
                self._log.warning(
                    "No configured answer matches security question in %s (keywords: %s)",
                    slot.label_id,
                    ", ".join(self.table.keywords()) or "(none)",
                )
                continue
            self._log.info("Answering security question %s", slot.label_id)
            if not waiter.fill_with_retry(slot.input_selector, answer):
                raise TransientInteractionError(f"Could not fill security answer field {slot.input_id}")
            answered += 1

        if not answered:
            return False
        if self.submit_selector and not waiter.click_with_retry(self.submit_selector):
            raise TransientInteractionError(f"Security question submit failed: {self.submit_selector}")
        self._log.info("Answered %d of %d security question(s).", answered, len(prompts))
        return True
