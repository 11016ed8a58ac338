"""Primary/secondary backend orchestration.

One extraction runs through ``INIT -> PRIMARY_PENDING -> [SECONDARY_PENDING]
-> DONE``. The secondary backend only runs when the primary result is not
high quality, and it receives the primary result as context. Backend
failures become failed attempts; ``extract`` itself only raises for invalid
arguments.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path

from .audit import log_extraction_run
from .backends.base import ExtractionBackend
from .cache import ExtractionCache
from .contracts import (
    ExtractedBankData,
    ExtractionAttempt,
    ExtractionMetadata,
    ExtractionOutcome,
    ExtractionState,
)
from .corrector import BankNameCorrector
from .errors import BackendTimeoutError, ImageAcquisitionError
from .image_source import ImagePayload, ImageRef, ImageSource

logger = logging.getLogger(__name__)

DEFAULT_QUALITY_THRESHOLD = 85
DEFAULT_PRIMARY_TIMEOUT_SECONDS = 15.0
DEFAULT_SECONDARY_TIMEOUT_SECONDS = 20.0
CONFIDENCE_TIE_MARGIN = 5


def compare(a: ExtractedBankData, b: ExtractedBankData) -> int:
    """1 if *a* is better, -1 if *b* is better, 0 if neither wins."""
    if a.completeness != b.completeness:
        return 1 if a.completeness > b.completeness else -1

    diff = a.confidence - b.confidence
    if abs(diff) > CONFIDENCE_TIE_MARGIN:
        return 1 if diff > 0 else -1

    a_has_holder = bool(a.account_holder_name)
    b_has_holder = bool(b.account_holder_name)
    if a_has_holder != b_has_holder:
        return 1 if a_has_holder else -1
    return 0


class ExtractionOrchestrator:
    def __init__(
        self,
        primary: ExtractionBackend,
        secondary: ExtractionBackend,
        corrector: BankNameCorrector,
        *,
        cache: ExtractionCache | None = None,
        image_source: ImageSource | None = None,
        normalizer: Callable[[bytes], bytes] | None = None,
        quality_threshold: int = DEFAULT_QUALITY_THRESHOLD,
        primary_timeout_seconds: float = DEFAULT_PRIMARY_TIMEOUT_SECONDS,
        secondary_timeout_seconds: float = DEFAULT_SECONDARY_TIMEOUT_SECONDS,
        write_cache_on_success: bool = True,
        store_raw: bool = False,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._corrector = corrector
        self._cache = cache
        self._image_source = image_source or ImageSource()
        self._normalizer = normalizer
        self._quality_threshold = quality_threshold
        self._primary_timeout_seconds = primary_timeout_seconds
        self._secondary_timeout_seconds = secondary_timeout_seconds
        self._write_cache_on_success = write_cache_on_success
        self._store_raw = store_raw

    def is_high_quality(self, data: ExtractedBankData) -> bool:
        fields = data.extracted_fields
        return fields.bank_name and fields.account_number and data.confidence >= self._quality_threshold

    compare = staticmethod(compare)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(
        self,
        image_ref: ImageRef,
        *,
        known_bank_name: str | None = None,
        known_account_number: str | None = None,
    ) -> ExtractedBankData:
        outcome = await self.extract_with_metadata(
            image_ref,
            known_bank_name=known_bank_name,
            known_account_number=known_account_number,
        )
        return outcome.result

    def extract_sync(
        self,
        image_ref: ImageRef,
        *,
        known_bank_name: str | None = None,
        known_account_number: str | None = None,
    ) -> ExtractedBankData:
        """Blocking wrapper; must not be called from a running event loop."""
        return asyncio.run(
            self.extract(
                image_ref,
                known_bank_name=known_bank_name,
                known_account_number=known_account_number,
            )
        )

    async def extract_with_metadata(
        self,
        image_ref: ImageRef,
        *,
        known_bank_name: str | None = None,
        known_account_number: str | None = None,
    ) -> ExtractionOutcome:
        _validate_image_ref(image_ref)
        t0 = time.monotonic()
        metadata = ExtractionMetadata(states=[ExtractionState.INIT])

        if self._cache is not None and known_bank_name and known_account_number:
            cached = await self._cache.get(known_account_number, known_bank_name)
            if cached is not None:
                logger.info("Cache hit for supplied account details, skipping backends")
                metadata.cache_hit = True
                metadata.states.append(ExtractionState.DONE)
                return self._finish(cached, metadata, t0, image_ref)

        image = await self._prepare_image(image_ref)

        hints = None
        if known_bank_name or known_account_number:
            hints = ExtractedBankData(
                bank_name=known_bank_name or "",
                account_number=known_account_number or "",
            )

        metadata.states.append(ExtractionState.PRIMARY_PENDING)
        primary = await self._attempt(self._primary, image, hints, self._primary_timeout_seconds)
        metadata.attempts.append(primary)

        if not (primary.succeeded and self.is_high_quality(primary.data)):
            logger.info(
                "Primary result insufficient (succeeded=%s, confidence=%d), trying %s",
                primary.succeeded,
                primary.data.confidence,
                self._secondary.name,
            )
            metadata.states.append(ExtractionState.SECONDARY_PENDING)
            metadata.fallback_used = True
            context = primary.data if primary.succeeded else hints
            secondary = await self._attempt(self._secondary, image, context, self._secondary_timeout_seconds)
            metadata.attempts.append(secondary)

        metadata.states.append(ExtractionState.DONE)
        metadata.primary_backend = next((a.backend for a in metadata.attempts if a.succeeded), None)

        winner = self._select(metadata.attempts)
        if winner is None:
            logger.warning("All backends failed, returning empty result")
            return self._finish(ExtractedBankData.empty(), metadata, t0, image_ref)

        result = self._correct_bank_name(winner.data, metadata)

        if self._cache is not None and self._write_cache_on_success and self._cache.can_cache(result):
            await self._cache.put(result)

        return self._finish(result, metadata, t0, image_ref)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _prepare_image(self, image_ref: ImageRef) -> ImagePayload:
        try:
            content = await self._image_source.resolve(image_ref)
        except ImageAcquisitionError as exc:
            logger.warning("Image acquisition failed, passing original reference: %s", exc)
            return bytes(image_ref) if isinstance(image_ref, (bytes, bytearray)) else str(image_ref)

        if self._normalizer is None:
            return content
        try:
            return await asyncio.to_thread(self._normalizer, content)
        except Exception:
            logger.warning("Image normalization failed, using original bytes", exc_info=True)
            return content

    async def _attempt(
        self,
        backend: ExtractionBackend,
        image: ImagePayload,
        context: ExtractedBankData | None,
        timeout_seconds: float,
    ) -> ExtractionAttempt:
        t0 = time.monotonic()
        try:
            data = await asyncio.wait_for(backend.recognize(image, context), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            error: Exception = BackendTimeoutError(backend.name, timeout_seconds)
        except Exception as exc:
            error = exc
        else:
            elapsed = int((time.monotonic() - t0) * 1000)
            logger.debug("%s answered in %dms (confidence=%d)", backend.name, elapsed, data.confidence)
            return ExtractionAttempt(backend=backend.name, data=data, duration_ms=elapsed, succeeded=True)

        elapsed = int((time.monotonic() - t0) * 1000)
        logger.warning("Backend %s failed after %dms: %s", backend.name, elapsed, error)
        return ExtractionAttempt(
            backend=backend.name,
            data=ExtractedBankData.empty(),
            duration_ms=elapsed,
            succeeded=False,
            error=f"{error.__class__.__name__}: {error}",
        )

    def _select(self, attempts: list[ExtractionAttempt]) -> ExtractionAttempt | None:
        best: ExtractionAttempt | None = None
        for attempt in attempts:
            if not attempt.succeeded:
                continue
            # Equal results keep the earlier attempt.
            if best is None or compare(attempt.data, best.data) > 0:
                best = attempt
        return best

    def _correct_bank_name(self, data: ExtractedBankData, metadata: ExtractionMetadata) -> ExtractedBankData:
        if not data.bank_name:
            return data
        corrected = self._corrector.correct(data.bank_name)
        if corrected == data.bank_name:
            return data
        logger.info("Corrected bank name %r -> %r", data.bank_name, corrected)
        metadata.corrected_from = data.bank_name
        return data.replace(bank_name=corrected)

    def _finish(
        self,
        result: ExtractedBankData,
        metadata: ExtractionMetadata,
        t0: float,
        image_ref: ImageRef,
    ) -> ExtractionOutcome:
        metadata.total_duration_ms = int((time.monotonic() - t0) * 1000)
        outcome = ExtractionOutcome(result=result, metadata=metadata)
        digest_source = bytes(image_ref) if isinstance(image_ref, (bytes, bytearray)) else str(image_ref)
        log_extraction_run(outcome, image=digest_source, store_raw=self._store_raw)
        return outcome


def _validate_image_ref(image_ref: object) -> None:
    if image_ref is None:
        raise ValueError("image_ref is required")
    if not isinstance(image_ref, (bytes, bytearray, str, Path)):
        raise TypeError(f"unsupported image reference type: {type(image_ref).__name__}")
    if isinstance(image_ref, (bytes, bytearray)) and not image_ref:
        raise ValueError("image_ref is empty")
    if isinstance(image_ref, str) and not image_ref.strip():
        raise ValueError("image_ref is empty")
