"""Bank-name correction: tiered pattern match first, registry fuzzy match second."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from .patterns import BankPattern, BankPatternSet, tier_bonus
from .registry import BankRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternMatch:
    canonical_name: str
    priority_tier: int
    pattern: str
    score: int
    start: int
    end: int


def _whole_word(pattern: str) -> re.Pattern[str]:
    # \b fails on patterns that start or end with punctuation ("kuda.", "o-pay").
    return re.compile(rf"(?<!\w){re.escape(pattern)}(?!\w)", re.IGNORECASE)


class BankNameCorrector:
    """Normalizes noisy OCR / LLM text into a canonical bank name.

    Deterministic for a fixed pattern set and registry snapshot: the highest
    score wins and ties keep the earlier declared pattern.
    """

    def __init__(self, patterns: BankPatternSet, registry: BankRegistry) -> None:
        self._patterns = patterns
        self._registry = registry
        self._compiled: list[tuple[BankPattern, str, re.Pattern[str]]] = [
            (bank, p, _whole_word(p)) for bank in patterns for p in bank.match_patterns
        ]

    def correct(self, raw_text: str) -> str:
        """Return the canonical bank name for *raw_text*, or *raw_text* unchanged."""
        if not raw_text or not raw_text.strip():
            return raw_text

        match = self.best_pattern_match(raw_text)
        if match is not None:
            logger.debug("Pattern match %r -> %r (score=%d)", raw_text, match.canonical_name, match.score)
            return match.canonical_name

        fuzzy = self.fuzzy_registry_match(raw_text)
        if fuzzy is not None:
            logger.debug("Registry match %r -> %r", raw_text, fuzzy)
            return fuzzy

        logger.debug("No bank match for %r", raw_text)
        return raw_text

    def best_pattern_match(self, text: str) -> PatternMatch | None:
        best: PatternMatch | None = None
        for bank, pattern, regex in self._compiled:
            found = regex.search(text)
            if found is None:
                continue
            score = tier_bonus(bank.priority_tier) + len(pattern)
            if best is None or score > best.score:
                best = PatternMatch(
                    canonical_name=bank.canonical_name,
                    priority_tier=bank.priority_tier,
                    pattern=pattern,
                    score=score,
                    start=found.start(),
                    end=found.end(),
                )
        return best

    def find_mention(self, text: str) -> str | None:
        """The raw substring of *text* that names a bank, as written."""
        if not text:
            return None
        match = self.best_pattern_match(text)
        if match is None:
            return None
        return text[match.start : match.end]

    def fuzzy_registry_match(self, text: str) -> str | None:
        query = " ".join(text.lower().split())
        if not query:
            return None
        banks = self._registry.entries()

        for bank in banks:
            if bank.name.lower() == query:
                return bank.name

        for bank in banks:
            name = bank.name.lower()
            if query in name or name in query:
                return bank.name

        words = query.split()
        required = min(2, len(words))
        for bank in banks:
            bank_words = bank.name.lower().split()
            shared = sum(1 for w in words if any(bw in w or w in bw for bw in bank_words))
            if shared >= required:
                return bank.name

        return None

    # --- introspection ---

    def supported_banks(self) -> list[str]:
        return sorted(self._patterns.canonical_names())

    def is_supported(self, bank_name: str) -> bool:
        return bool(self._patterns.for_bank(bank_name))

    def patterns_for(self, bank_name: str) -> list[str]:
        return [p for bank in self._patterns.for_bank(bank_name) for p in bank.match_patterns]

    def stats(self) -> dict[str, int]:
        per_tier = {1: 0, 2: 0, 3: 0, 4: 0}
        for bank in self._patterns:
            per_tier[bank.priority_tier] += 1
        return {
            "total_pattern_banks": len(self._patterns.canonical_names()),
            "fintech_banks": per_tier[1],
            "traditional_banks": per_tier[2],
            "microfinance_banks": per_tier[3],
            "generic_patterns": per_tier[4],
            "total_registry_banks": len(self._registry),
        }
