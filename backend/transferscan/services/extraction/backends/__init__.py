"""Backend factory: returns the configured backend or falls back to mock."""

from __future__ import annotations

import logging

from transferscan.core.config import Settings

from ..corrector import BankNameCorrector
from ..prompts import PromptAdapter
from .base import ExtractionBackend
from .mock import MockBackend

logger = logging.getLogger(__name__)

__all__ = ["get_backend", "ExtractionBackend", "MockBackend"]


def get_backend(
    backend_name: str,
    settings: Settings,
    *,
    corrector: BankNameCorrector,
    prompts: PromptAdapter,
    timeout_seconds: float | None = None,
) -> ExtractionBackend:
    """Return a backend instance for *backend_name*.

    Names outside the allowlist, unknown names and backends without an API
    key all fall back to ``MockBackend`` with a warning.
    """
    name = backend_name.lower().strip()

    if name not in settings.scan_allowed_backends:
        logger.warning("Backend %r not in allowlist, falling back to mock", name)
        return MockBackend()

    if name == "mock":
        return MockBackend()

    if name == "vision_ocr":
        if not settings.google_vision_api_key:
            logger.warning("GOOGLE_VISION_API_KEY not set, falling back to mock")
            return MockBackend()
        from .vision_ocr import VisionOCRBackend

        return VisionOCRBackend(
            api_key=settings.google_vision_api_key,
            corrector=corrector,
            url=settings.google_vision_url,
            timeout_seconds=timeout_seconds or settings.scan_primary_timeout_seconds,
        )

    if name == "context_llm":
        if not settings.llm_api_key:
            logger.warning("LLM_API_KEY not set, falling back to mock")
            return MockBackend()
        from .context_llm import ContextAwareLLMBackend

        return ContextAwareLLMBackend(
            api_key=settings.llm_api_key,
            prompts=prompts,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout_seconds=timeout_seconds or settings.scan_secondary_timeout_seconds,
        )

    logger.warning("Unknown backend %r, falling back to mock", name)
    return MockBackend()
