"""Yes/no reply recognition."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

BASE_AFFIRMATIVE = ("y", "yes", "1", "approve")
BASE_NEGATIVE = ("n", "no", "0", "deny")


def normalize(text: str) -> str:
    return (text or "").strip().lower()


@dataclass(frozen=True)
class TokenSets:
    """Normalised affirmative/negative vocabularies.

    A token present in both sets counts as negative.
    """

    affirmative: frozenset[str]
    negative: frozenset[str]

    @classmethod
    def build(cls, extra_affirmative: Iterable[str] = (), extra_negative: Iterable[str] = ()) -> "TokenSets":
        aff = {normalize(t) for t in (*BASE_AFFIRMATIVE, *extra_affirmative) if normalize(t)}
        neg = {normalize(t) for t in (*BASE_NEGATIVE, *extra_negative) if normalize(t)}
        return cls(frozenset(aff - neg), frozenset(neg))

    def classify(self, text: str) -> bool | None:
        """True for approve, False for deny, None when the reply is not a verdict."""
        token = normalize(text)
        if token in self.negative:
            return False
        if token in self.affirmative:
            return True
        return None
