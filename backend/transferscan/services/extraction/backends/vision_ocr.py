"""Google Cloud Vision OCR backend and the heuristic receipt-text parser."""

from __future__ import annotations

import base64
import logging
import re
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..contracts import ExtractedBankData
from ..corrector import BankNameCorrector
from ..errors import BackendProtocolError
from ..image_source import ImagePayload
from .base import ExtractionBackend

logger = logging.getLogger(__name__)

DEFAULT_VISION_URL = "https://vision.googleapis.com/v1/images:annotate"
LANGUAGE_HINTS = ["en", "en-NG"]

# ------------------------------------------------------------------
# Response schema
# ------------------------------------------------------------------


class TextAnnotation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str = ""
    confidence: float = 0.0


class FullTextAnnotation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = ""


class VisionStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    code: int = 0
    message: str = ""


class AnnotateImageResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    text_annotations: list[TextAnnotation] = Field(default_factory=list, alias="textAnnotations")
    full_text_annotation: FullTextAnnotation | None = Field(default=None, alias="fullTextAnnotation")
    error: VisionStatus | None = None


class BatchAnnotateResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    responses: list[AnnotateImageResponse] = Field(default_factory=list)


# ------------------------------------------------------------------
# Text parser
# ------------------------------------------------------------------

ACCOUNT_RE = re.compile(r"(?<!\d)\d{10}(?!\d)")
ACCOUNT_CONTEXT_KEYWORDS = ("account", "number", "acct", "a/c")

_MONEY = r"([0-9,]+(?:\.\d{2})?)"
_CURRENCY = r"(?:₦|NGN|(?<![A-Za-z])N)"
AMOUNT_PATTERNS = (
    re.compile(rf"{_CURRENCY}\s*{_MONEY}", re.IGNORECASE),
    re.compile(rf"{_MONEY}\s*(?:₦|NGN|N(?![A-Za-z]))", re.IGNORECASE),
    re.compile(rf"(?:amount|total|sum|balance|value)\s*:?\s*{_CURRENCY}?\s*{_MONEY}", re.IGNORECASE),
    re.compile(rf"(?:receive|send|transfer)\s*{_CURRENCY}?\s*{_MONEY}", re.IGNORECASE),
)
AMOUNT_MIN = 1
AMOUNT_MAX = 10_000_000

_SEGMENT_SPLIT_RE = re.compile(r"[\d:|;,/#()\[\]]+")
_NAME_WORD_RE = re.compile(r"^(?:[A-Z][a-z]+|[A-Z]{2,})(?:[-'][A-Za-z]+)?\.?$")
NAME_MIN_WORDS = 2
NAME_MAX_WORDS = 5
HIGH_CONFIDENCE = 0.8

# Receipt labels that look like Title Case names.
_LABEL_WORDS = frozenset(
    {
        "account", "acct", "name", "number", "bank", "beneficiary", "recipient",
        "receiver", "sender", "from", "to", "transfer", "transaction", "amount",
        "successful", "success", "completed", "pending", "failed", "details",
        "receipt", "reference", "ref", "session", "id", "date", "time", "status",
        "narration", "remark", "description", "fee", "charge", "total", "balance",
        "ngn", "naira", "payment", "paid", "sent", "received", "credit", "debit",
        "share", "download", "done", "the", "of", "and", "for",
    }
)

SCORE_ACCOUNT = 30
SCORE_ACCOUNT_CONTEXT = 5
SCORE_BANK = 30
SCORE_AMOUNT = 25
SCORE_NAME_HIGH = 20
SCORE_NAME_FALLBACK = 10
SCORE_PER_FIELD = 5
SCORE_BANK_AND_ACCOUNT = 10


def _best_account_number(text: str) -> tuple[str, int] | None:
    """First 10-digit run, unless another one sits closer to more account keywords."""
    matches = ACCOUNT_RE.findall(text)
    if not matches:
        return None
    best, best_score = matches[0], 1
    for candidate in matches:
        score = sum(
            1
            for keyword in ACCOUNT_CONTEXT_KEYWORDS
            if re.search(
                rf"{re.escape(keyword)}.*{candidate}|{candidate}.*{re.escape(keyword)}",
                text,
                re.IGNORECASE,
            )
        )
        if score > best_score:
            best, best_score = candidate, score
    return best, best_score


def _find_amount(text: str) -> str:
    for pattern in AMOUNT_PATTERNS:
        for match in pattern.finditer(text):
            candidate = match.group(1).replace(",", "")
            try:
                value = float(candidate)
            except ValueError:
                continue
            if AMOUNT_MIN <= value <= AMOUNT_MAX:
                return candidate
    return ""


def _name_from_segment(segment: str, corrector: BankNameCorrector) -> str:
    mention = corrector.find_mention(segment)
    while mention:
        segment = segment.replace(mention, " ")
        mention = corrector.find_mention(segment)

    words = [w for w in segment.split() if w.lower().strip(".") not in _LABEL_WORDS]
    if not NAME_MIN_WORDS <= len(words) <= NAME_MAX_WORDS:
        return ""
    if not all(_NAME_WORD_RE.match(w) for w in words):
        return ""
    name = " ".join(words)
    return name if 5 < len(name) < 50 else ""


def _find_holder_name(candidates: Sequence[str], corrector: BankNameCorrector) -> str:
    for text in candidates:
        for line in text.splitlines():
            for segment in _SEGMENT_SPLIT_RE.split(line):
                name = _name_from_segment(segment, corrector)
                if name:
                    return name
    return ""


def parse_ocr_text(
    text: str,
    corrector: BankNameCorrector,
    *,
    confident_texts: Sequence[str] = (),
) -> ExtractedBankData:
    """Turn raw OCR text into bank details with an additive confidence score.

    The bank name is returned as written on the receipt; canonicalization is
    left to the caller. *confident_texts* are OCR fragments the engine itself
    scored above 0.8 and are searched for the holder name first.
    """
    if not text or not text.strip():
        return ExtractedBankData.empty()

    confidence = 0

    account_number = ""
    found = _best_account_number(text)
    if found is not None:
        account_number, context_score = found
        confidence += SCORE_ACCOUNT + context_score * SCORE_ACCOUNT_CONTEXT

    bank_name = corrector.find_mention(text) or ""
    if bank_name:
        confidence += SCORE_BANK

    amount = _find_amount(text)
    if amount:
        confidence += SCORE_AMOUNT

    holder = _find_holder_name(confident_texts, corrector)
    if holder:
        confidence += SCORE_NAME_HIGH
    else:
        holder = _find_holder_name([text], corrector)
        if holder:
            confidence += SCORE_NAME_FALLBACK

    confidence += SCORE_PER_FIELD * sum(1 for v in (bank_name, account_number, holder, amount) if v)
    if bank_name and account_number:
        confidence += SCORE_BANK_AND_ACCOUNT

    return ExtractedBankData(
        bank_name=bank_name,
        account_number=account_number,
        account_holder_name=holder,
        amount=amount,
        confidence=confidence,
    )


# ------------------------------------------------------------------
# Backend
# ------------------------------------------------------------------


def _image_part(image: ImagePayload) -> dict[str, object]:
    if isinstance(image, bytes):
        return {"content": base64.b64encode(image).decode("ascii")}
    if image.lower().startswith("data:"):
        return {"content": image.partition(",")[2]}
    return {"source": {"imageUri": image}}


class VisionOCRBackend(ExtractionBackend):
    name = "vision_ocr"

    def __init__(
        self,
        api_key: str,
        corrector: BankNameCorrector,
        *,
        url: str = DEFAULT_VISION_URL,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._api_key = api_key
        self._corrector = corrector
        self._url = url
        self._timeout_seconds = timeout_seconds

    def build_request(self, image: ImagePayload) -> dict[str, object]:
        return {
            "requests": [
                {
                    "image": _image_part(image),
                    "features": [
                        {"type": "DOCUMENT_TEXT_DETECTION", "maxResults": 1},
                        {"type": "TEXT_DETECTION", "maxResults": 50},
                    ],
                    "imageContext": {
                        "languageHints": LANGUAGE_HINTS,
                        "textDetectionParams": {"enableTextDetectionConfidenceScore": True},
                    },
                }
            ]
        }

    async def recognize(
        self,
        image: ImagePayload,
        context: ExtractedBankData | None = None,
    ) -> ExtractedBankData:
        import httpx

        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            resp = await client.post(
                self._url,
                params={"key": self._api_key},
                json=self.build_request(image),
            )
            resp.raise_for_status()
            payload = resp.json()

        return self.parse_response(payload)

    def parse_response(self, payload: object) -> ExtractedBankData:
        try:
            batch = BatchAnnotateResponse.model_validate(payload)
        except ValidationError as exc:
            raise BackendProtocolError(f"unexpected Vision response: {exc.error_count()} errors") from exc

        if not batch.responses:
            raise BackendProtocolError("Vision response has no results")
        result = batch.responses[0]
        if result.error is not None and result.error.code:
            raise BackendProtocolError(f"Vision error {result.error.code}: {result.error.message}")
        if not result.text_annotations:
            raise BackendProtocolError("no text detected in image")

        full_text = result.text_annotations[0].description
        structured = result.full_text_annotation.text if result.full_text_annotation else ""
        confident = [
            a.description for a in result.text_annotations[1:] if a.confidence > HIGH_CONFIDENCE
        ]
        logger.debug("Vision OCR returned %d annotations", len(result.text_annotations))

        return parse_ocr_text(f"{full_text}\n{structured}", self._corrector, confident_texts=confident)
