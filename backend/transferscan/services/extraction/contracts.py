"""Value types shared by backends, cache and orchestrator."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from .errors import FieldValidationError

logger = logging.getLogger(__name__)

ACCOUNT_NUMBER_LENGTH = 10
CONFIDENCE_MIN = 0
CONFIDENCE_MAX = 100

_HONORIFIC_RE = re.compile(r"^(?:MR|MRS|MS|DR|PROF)\.?\s+", re.IGNORECASE)
_CURRENCY_RE = re.compile(r"NGN|[₦$€£¥₹,\s]", re.IGNORECASE)
_DECIMAL_RE = re.compile(r"\d+(?:\.\d+)?")


class BackendName(str, Enum):
    VISION_OCR = "vision_ocr"
    CONTEXT_LLM = "context_llm"
    MOCK = "mock"


class ExtractionState(str, Enum):
    """States of the primary to secondary fallback chain."""

    INIT = "init"
    PRIMARY_PENDING = "primary_pending"
    SECONDARY_PENDING = "secondary_pending"
    DONE = "done"


# ------------------------------------------------------------------
# Field sanitizers
# ------------------------------------------------------------------


def sanitize_account_number(value: Any) -> str:
    """Keep digits only; anything other than exactly 10 digits is rejected."""
    digits = re.sub(r"\D", "", str(value or ""))
    if not digits:
        return ""
    if len(digits) != ACCOUNT_NUMBER_LENGTH:
        raise FieldValidationError(
            "account_number", value, f"expected exactly {ACCOUNT_NUMBER_LENGTH} digits"
        )
    return digits


def sanitize_amount(value: Any) -> str:
    """Strip currency symbols and thousands separators, return decimal text."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        if value < 0:
            raise FieldValidationError("amount", value, "negative amount")
        if isinstance(value, float):
            if not math.isfinite(value):
                raise FieldValidationError("amount", value, "not a finite number")
            return f"{value:.2f}".rstrip("0").rstrip(".")
        return str(value)
    text = str(value).strip()
    if not text:
        return ""
    cleaned = _CURRENCY_RE.sub("", text)
    if cleaned.startswith("-"):
        raise FieldValidationError("amount", value, "negative amount")
    match = _DECIMAL_RE.search(cleaned)
    if not match:
        raise FieldValidationError("amount", value, "no numeric value")
    return match.group(0)


def sanitize_holder_name(value: Any) -> str:
    text = " ".join(str(value or "").split())
    return _HONORIFIC_RE.sub("", text).strip()


def clamp_confidence(value: Any) -> int:
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return CONFIDENCE_MIN
    if math.isnan(number):
        return CONFIDENCE_MIN
    if math.isinf(number):
        return CONFIDENCE_MAX if number > 0 else CONFIDENCE_MIN
    return int(min(max(round(number), CONFIDENCE_MIN), CONFIDENCE_MAX))


# ------------------------------------------------------------------
# Models
# ------------------------------------------------------------------


class ExtractedFields(BaseModel):
    model_config = ConfigDict(frozen=True)

    bank_name: bool = False
    account_number: bool = False
    account_holder_name: bool = False
    amount: bool = False

    def count(self) -> int:
        return sum((self.bank_name, self.account_number, self.account_holder_name, self.amount))


class ExtractedBankData(BaseModel):
    """Structured payment details extracted from one image.

    Every construction path re-runs the field sanitizers, so the invariants
    hold for any instance: ``confidence`` is within 0-100, ``account_number``
    is empty or exactly 10 digits, and ``extracted_fields`` mirrors which
    values are present. Instances are frozen; use :meth:`replace`.
    """

    model_config = ConfigDict(frozen=True)

    bank_name: str = ""
    account_number: str = ""
    account_holder_name: str = ""
    amount: str = ""
    confidence: int = 0
    extracted_fields: ExtractedFields = ExtractedFields()

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        data = dict(values)

        data["bank_name"] = " ".join(str(data.get("bank_name") or "").split())
        data["account_holder_name"] = sanitize_holder_name(data.get("account_holder_name"))
        data["confidence"] = clamp_confidence(data.get("confidence"))

        for name, sanitizer in (
            ("account_number", sanitize_account_number),
            ("amount", sanitize_amount),
        ):
            try:
                data[name] = sanitizer(data.get(name))
            except FieldValidationError as exc:
                logger.debug("Dropping invalid field: %s", exc)
                data[name] = ""

        data["extracted_fields"] = {
            "bank_name": bool(data["bank_name"]),
            "account_number": len(data["account_number"]) == ACCOUNT_NUMBER_LENGTH,
            "account_holder_name": bool(data["account_holder_name"]),
            "amount": bool(data["amount"]),
        }
        return data

    @classmethod
    def empty(cls) -> ExtractedBankData:
        return cls()

    def replace(self, **changes: Any) -> ExtractedBankData:
        """Return a validated copy with *changes* applied."""
        values = self.model_dump(exclude={"extracted_fields"})
        values.update(changes)
        return type(self)(**values)

    @property
    def completeness(self) -> int:
        return self.extracted_fields.count()

    @property
    def is_empty(self) -> bool:
        return self.completeness == 0 and self.confidence == 0


@dataclass
class ExtractionAttempt:
    """One backend invocation, kept for decision-making and diagnostics only."""

    backend: str
    data: ExtractedBankData
    duration_ms: int
    succeeded: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "duration_ms": self.duration_ms,
            "succeeded": self.succeeded,
            "error": self.error,
            "confidence": self.data.confidence,
            "completeness": self.data.completeness,
        }


@dataclass
class ExtractionMetadata:
    attempts: list[ExtractionAttempt] = field(default_factory=list)
    primary_backend: str | None = None
    fallback_used: bool = False
    total_duration_ms: int = 0
    cache_hit: bool = False
    states: list[ExtractionState] = field(default_factory=list)
    corrected_from: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": [a.to_dict() for a in self.attempts],
            "primary_backend": self.primary_backend,
            "fallback_used": self.fallback_used,
            "total_duration_ms": self.total_duration_ms,
            "cache_hit": self.cache_hit,
            "states": [s.value for s in self.states],
            "corrected_from": self.corrected_from,
        }


@dataclass
class ExtractionOutcome:
    """Result returned together with its diagnostics."""

    result: ExtractedBankData
    metadata: ExtractionMetadata
