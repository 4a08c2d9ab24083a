"""Free-text specialty matching used to pick who gets notified about a new request.

Technicians type their specialties freely, so their wording rarely matches
catalog service names. This matcher is deliberately lossy and is only used for
fan-out notifications; visibility is decided by category ids.
"""

import math
import re
from typing import Protocol

from app.config import settings

_MIN_WORD_LENGTH = 3


class SpecialtyMatcher(Protocol):
    def matches(self, service_name: str, specialties: list[str]) -> bool: ...


def _words(text: str) -> list[str]:
    return [w for w in re.split(r"\s+", text.lower()) if len(w) >= _MIN_WORD_LENGTH]


def _overlap(a: str, b: str) -> bool:
    return a in b or b in a


class WordOverlapMatcher:
    """Matches when enough service-name words overlap one specialty's words.

    A word overlaps when either word is a substring of the other. The
    threshold is ``ceil(ratio * len(service words))`` and never below 1.
    """

    def __init__(self, ratio: float | None = None):
        self.ratio = ratio if ratio is not None else settings.specialty_match_ratio

    def threshold(self, word_count: int) -> int:
        return max(1, math.ceil(self.ratio * word_count))

    def matches(self, service_name: str, specialties: list[str]) -> bool:
        if not specialties:
            return False
        name = service_name.strip().lower()
        service_words = _words(name)
        needed = self.threshold(len(service_words))

        for specialty in specialties:
            tag = specialty.strip().lower()
            if not tag:
                continue
            if _overlap(tag, name):
                return True
            tag_words = _words(tag)
            count = sum(1 for sw in service_words if any(_overlap(sw, pw) for pw in tag_words))
            if count >= needed:
                return True
        return False


default_matcher = WordOverlapMatcher()
