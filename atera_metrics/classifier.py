"""Keyword driven classification of free-text ticket statuses."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

DEFAULT_CLOSED_KEYWORDS: Tuple[str, ...] = (
    "closed",
    "resolved",
    "merged",
    "deleted",
    "spam",
    "cancelled",
)
DEFAULT_PENDING_KEYWORDS: Tuple[str, ...] = (
    "pending",
    "uptime",
    "waiting",
    "waiting on user",
    "waiting on customer",
    "in-progress",
    "closure pending",
    "internal escalation",
)


def make_keyword_list(raw: Optional[str], fallback: Sequence[str]) -> List[str]:
    """Parse a comma separated keyword setting.

    Entries are trimmed and lower-cased and blanks are dropped. ``fallback``
    is returned when the setting is absent or parses to nothing.
    """
    if raw is None:
        return list(fallback)
    keywords = [part.strip().lower() for part in str(raw).split(",")]
    keywords = [keyword for keyword in keywords if keyword]
    return keywords or list(fallback)


@dataclass(frozen=True)
class KeywordRule:
    """Matches a status containing ``keyword`` anywhere in its text."""

    keyword: str

    def matches(self, normalised_status: str) -> bool:
        return self.keyword in normalised_status


class StatusClassifier:
    """Classify ticket statuses as closed or pending by substring rules.

    Matching is by substring, so free-text variants such as
    ``"Closed - done"`` still count as closed.
    """

    def __init__(
        self,
        *,
        closed_keywords: Optional[Iterable[str]] = None,
        pending_keywords: Optional[Iterable[str]] = None,
    ) -> None:
        closed = list(closed_keywords) if closed_keywords is not None else []
        pending = list(pending_keywords) if pending_keywords is not None else []
        self.closed_keywords: Tuple[str, ...] = tuple(closed or DEFAULT_CLOSED_KEYWORDS)
        self.pending_keywords: Tuple[str, ...] = tuple(pending or DEFAULT_PENDING_KEYWORDS)
        self._closed_rules = tuple(KeywordRule(keyword) for keyword in self.closed_keywords)
        self._pending_rules = tuple(KeywordRule(keyword) for keyword in self.pending_keywords)

    @classmethod
    def from_settings(
        cls,
        closed_setting: Optional[str],
        pending_setting: Optional[str],
    ) -> "StatusClassifier":
        return cls(
            closed_keywords=make_keyword_list(closed_setting, DEFAULT_CLOSED_KEYWORDS),
            pending_keywords=make_keyword_list(pending_setting, DEFAULT_PENDING_KEYWORDS),
        )

    def is_closed(self, status: Optional[str]) -> bool:
        return _any_match(self._closed_rules, status)

    def is_pending(self, status: Optional[str]) -> bool:
        return _any_match(self._pending_rules, status)


def _any_match(rules: Sequence[KeywordRule], status: Optional[str]) -> bool:
    if not status:
        return False
    normalised = status.lower()
    return any(rule.matches(normalised) for rule in rules)
