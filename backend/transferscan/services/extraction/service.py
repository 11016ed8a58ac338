"""Process-wide extraction services, built once from ``Settings``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from transferscan.core.config import Settings
from transferscan.core.image_processing import normalize_for_recognition

from .backends import ExtractionBackend, get_backend
from .cache import ExtractionCache
from .contracts import ExtractedBankData
from .corrector import BankNameCorrector
from .image_source import ImageSource
from .orchestrator import ExtractionOrchestrator
from .patterns import BankPatternSet
from .prompts import PromptAdapter
from .registry import BankRegistry, BankRegistrySource, HttpBankRegistrySource, StaticBankRegistrySource
from .stores import InMemoryKeyValueStore, KeyValueStore, create_sql_store

logger = logging.getLogger(__name__)


@dataclass
class ScanServices:
    registry: BankRegistry
    patterns: BankPatternSet
    corrector: BankNameCorrector
    prompts: PromptAdapter
    cache: ExtractionCache
    image_source: ImageSource
    primary: ExtractionBackend
    secondary: ExtractionBackend
    orchestrator: ExtractionOrchestrator

    async def start(self) -> None:
        """Load the bank registry; the bundled list stays in place on failure."""
        await self.registry.refresh()

    async def confirm(self, data: ExtractedBankData) -> None:
        """Record an extraction the user has confirmed as correct."""
        if data.bank_name:
            canonical = self.corrector.correct(data.bank_name)
            if canonical != data.bank_name:
                data = data.replace(bank_name=canonical)
            self.prompts.record_success(canonical, data)
        await self.cache.put(data, confirmed=True)


def _registry_source(settings: Settings) -> BankRegistrySource:
    if settings.bank_registry_url:
        return HttpBankRegistrySource(
            settings.bank_registry_url,
            timeout_seconds=settings.bank_registry_timeout_seconds,
        )
    return StaticBankRegistrySource()


def _key_value_store(settings: Settings) -> KeyValueStore:
    if settings.cache_database_url:
        return create_sql_store(settings.cache_database_url)
    return InMemoryKeyValueStore()


def _normalizer(settings: Settings):
    if not settings.image_normalize_enabled:
        return None

    def normalize(content: bytes) -> bytes:
        return normalize_for_recognition(
            content,
            max_width=settings.image_max_width,
            max_height=settings.image_max_height,
            quality=settings.image_jpeg_quality,
        ).content

    return normalize


def build_scan_services(
    settings: Settings,
    *,
    store: KeyValueStore | None = None,
    primary: ExtractionBackend | None = None,
    secondary: ExtractionBackend | None = None,
) -> ScanServices:
    registry = BankRegistry(_registry_source(settings))
    patterns = BankPatternSet()
    corrector = BankNameCorrector(patterns, registry)
    prompts = PromptAdapter(
        patterns,
        corrector,
        max_examples=settings.prompt_max_examples,
        ranked_banks=settings.prompt_ranked_banks,
    )
    cache = ExtractionCache(
        store if store is not None else _key_value_store(settings),
        ttl=timedelta(seconds=settings.cache_ttl_seconds),
        similarity_threshold=settings.cache_similarity_threshold,
        min_confidence=settings.cache_min_confidence,
        max_entries=settings.cache_max_entries,
        store_key=settings.cache_store_key,
    )
    image_source = ImageSource(fetch_timeout_seconds=settings.image_fetch_timeout_seconds)

    if primary is None:
        primary = get_backend(
            settings.scan_primary_backend,
            settings,
            corrector=corrector,
            prompts=prompts,
            timeout_seconds=settings.scan_primary_timeout_seconds,
        )
    if secondary is None:
        secondary = get_backend(
            settings.scan_secondary_backend,
            settings,
            corrector=corrector,
            prompts=prompts,
            timeout_seconds=settings.scan_secondary_timeout_seconds,
        )

    orchestrator = ExtractionOrchestrator(
        primary,
        secondary,
        corrector,
        cache=cache,
        image_source=image_source,
        normalizer=_normalizer(settings),
        quality_threshold=settings.scan_quality_threshold,
        primary_timeout_seconds=settings.scan_primary_timeout_seconds,
        secondary_timeout_seconds=settings.scan_secondary_timeout_seconds,
        write_cache_on_success=settings.cache_write_on_success,
        store_raw=settings.scan_debug_store_raw,
    )
    logger.info("Scan services ready (primary=%s, secondary=%s)", primary.name, secondary.name)

    return ScanServices(
        registry=registry,
        patterns=patterns,
        corrector=corrector,
        prompts=prompts,
        cache=cache,
        image_source=image_source,
        primary=primary,
        secondary=secondary,
        orchestrator=orchestrator,
    )
