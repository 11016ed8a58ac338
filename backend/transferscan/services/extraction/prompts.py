"""Prompt construction and success-driven learning for vision backends.

Banks the service has confirmed most often are listed first and used as
few-shot examples, so the models see the institutions this deployment
actually encounters.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .contracts import ExtractedBankData
from .corrector import BankNameCorrector
from .patterns import BankPattern, BankPatternSet

logger = logging.getLogger(__name__)

DEFAULT_MAX_EXAMPLES = 5
DEFAULT_RANKED_BANKS = 10
TOP_BANKS_IN_STATS = 5
GUIDANCE_FORMATS = 3

NO_EXAMPLES_TEXT = "No successful extractions yet. Focus on clear text and logos."

_OUTPUT_SCHEMA = {
    "bankName": "Exact bank name from list",
    "accountNumber": "1234567890",
    "accountHolderName": "FULL NAME",
    "amount": "1000.00",
    "confidence": 95,
}


@dataclass(frozen=True)
class BankGuidance:
    bank_name: str
    color_scheme: str
    logo_description: str
    account_number_format: str
    common_formats: tuple[str, ...] = ()

    def render(self) -> str:
        return (
            f"BANK-SPECIFIC GUIDANCE for {self.bank_name}:\n"
            f"- Look for {self.color_scheme} color scheme\n"
            f"- Logo: {self.logo_description}\n"
            f"- Account format: {self.account_number_format}\n"
            f"- Common formats: {', '.join(self.common_formats)}"
        )


@dataclass(frozen=True)
class PromptContext:
    ranked_banks: tuple[str, ...]
    examples: tuple[str, ...] = ()
    guidance: BankGuidance | None = None
    bank_formats: dict[str, str] = field(default_factory=dict)


class PromptAdapter:
    def __init__(
        self,
        patterns: BankPatternSet,
        corrector: BankNameCorrector,
        *,
        max_examples: int = DEFAULT_MAX_EXAMPLES,
        ranked_banks: int = DEFAULT_RANKED_BANKS,
    ) -> None:
        self._patterns = patterns
        self._corrector = corrector
        self._max_examples = max_examples
        self._ranked_banks = ranked_banks

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def build_context(self, bank_name_hint: str | None = None) -> PromptContext:
        ranking = self._ranking()
        formats = {name: self._account_format(name) for name, _ in ranking}

        examples = tuple(
            f"{name}: {formats[name]} ({count} successful)"
            for name, count in ranking
            if count > 0
        )[: self._max_examples]

        return PromptContext(
            ranked_banks=tuple(name for name, _ in ranking),
            examples=examples,
            guidance=self._guidance_for(bank_name_hint) if bank_name_hint else None,
            bank_formats=formats,
        )

    def _ranking(self) -> list[tuple[str, int]]:
        """Canonical names by total success count; ``sorted`` keeps declaration order on ties."""
        totals: dict[str, int] = {}
        for pattern in self._patterns:
            totals[pattern.canonical_name] = totals.get(pattern.canonical_name, 0) + pattern.success_count
        return sorted(totals.items(), key=lambda item: item[1], reverse=True)

    def _account_format(self, canonical_name: str) -> str:
        hint = self._patterns.hint_for(canonical_name)
        return hint.account_number_format if hint else "10 digits"

    def _resolve(self, bank_name: str) -> BankPattern | None:
        pattern = self._patterns.primary_for(bank_name)
        if pattern is None:
            pattern = self._patterns.primary_for(self._corrector.correct(bank_name))
        return pattern

    def _guidance_for(self, bank_name_hint: str) -> BankGuidance | None:
        pattern = self._resolve(bank_name_hint)
        if pattern is None:
            return None
        hint = self._patterns.hint_for(pattern.canonical_name)
        if hint is None:
            return None

        formats: list[str] = []
        for value in (*hint.common_formats, *pattern.observed_formats):
            if value not in formats:
                formats.append(value)
        return BankGuidance(
            bank_name=hint.canonical_name,
            color_scheme=hint.color_scheme,
            logo_description=hint.logo_description,
            account_number_format=hint.account_number_format,
            common_formats=tuple(formats[:GUIDANCE_FORMATS]),
        )

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def record_success(self, bank_name: str, data: ExtractedBankData) -> None:
        if not bank_name:
            return
        pattern = self._resolve(bank_name)
        if pattern is None:
            logger.debug("No pattern for %r, success not recorded", bank_name)
            return

        with self._patterns.lock_for(pattern.canonical_name):
            pattern.success_count += 1
            pattern.last_updated = datetime.now(timezone.utc)
            account = data.account_number
            if account:
                # Most recent last; a repeat moves back to the end.
                if account in pattern.observed_formats:
                    pattern.observed_formats.remove(account)
                pattern.observed_formats.append(account)

        logger.info("Recorded successful %s extraction (total=%d)", pattern.canonical_name, pattern.success_count)

    def stats(self) -> dict[str, Any]:
        ranking = self._ranking()
        return {
            "total_extractions": sum(count for _, count in ranking),
            "top_banks": [name for name, count in ranking if count > 0][:TOP_BANKS_IN_STATS],
        }

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _examples_text(self, context: PromptContext, limit: int | None = None) -> str:
        examples = context.examples[:limit] if limit is not None else context.examples
        return "\n".join(examples) if examples else NO_EXAMPLES_TEXT

    def render_ocr_prompt(self, context: PromptContext) -> str:
        banks = "\n".join(
            f"- {name} ({context.bank_formats.get(name, '10 digits')})"
            for name in context.ranked_banks[: self._ranked_banks]
        )
        return (
            "Extract Nigerian bank account details from this image:\n"
            "REQUIRED FIELDS:\n"
            "- Bank Name (exact match from list)\n"
            "- Account Number (10 digits)\n"
            "- Account Holder Name\n"
            "- Amount (if visible)\n"
            "NIGERIAN BANKS TO LOOK FOR:\n"
            f"{banks}\n\n"
            f"EXAMPLES:\n{self._examples_text(context, 3)}\n\n"
            "Return structured JSON with confidence score."
        )

    def render_llm_prompt(self, context: PromptContext, prior: ExtractedBankData | None = None) -> str:
        sections = [
            "You are an expert at extracting Nigerian bank account information. "
            "Analyze this image and extract:",
            "1. Bank Name: match exactly from this list of Nigerian banks:\n"
            + "\n".join(f"- {name}" for name in context.ranked_banks),
            "2. Account Number: must be exactly 10 digits (Nigerian standard)",
            "3. Account Holder Name: full name as written",
            "4. Amount: any monetary value if visible",
        ]
        if context.guidance is not None:
            sections.append(context.guidance.render())
        sections.append(f"SUCCESSFUL EXAMPLES:\n{self._examples_text(context)}")

        if prior is not None and not prior.is_empty:
            sections.append(
                "A previous OCR pass read the following. Verify each value against the "
                "image, correct mistakes and fill in anything missing:\n"
                f"- Bank Name: {prior.bank_name or 'not found'}\n"
                f"- Account Number: {prior.account_number or 'not found'}\n"
                f"- Account Holder Name: {prior.account_holder_name or 'not found'}\n"
                f"- Amount: {prior.amount or 'not found'}\n"
                f"- OCR confidence: {prior.confidence}"
            )

        sections.append(
            "Respond with a single JSON object only:\n" + json.dumps(_OUTPUT_SCHEMA, indent=2)
        )
        sections.append("Focus on accuracy over speed. Use context clues like logos, colors, and formatting patterns.")
        return "\n\n".join(sections)
