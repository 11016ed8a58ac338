import asyncio

from tests.conftest import make_data
from transferscan.core.config import Settings
from transferscan.services.extraction.backends import MockBackend
from transferscan.services.extraction.registry import HttpBankRegistrySource, StaticBankRegistrySource
from transferscan.services.extraction.service import build_scan_services
from transferscan.services.extraction.stores import InMemoryKeyValueStore, SqlKeyValueStore


def _settings(**overrides) -> Settings:
    values = {
        "google_vision_api_key": "",
        "llm_api_key": "",
        "cache_database_url": "",
        "bank_registry_url": "",
    }
    values.update(overrides)
    return Settings(**values)


def test_defaults_without_keys_fall_back_to_mock():
    services = build_scan_services(_settings())
    assert isinstance(services.primary, MockBackend)
    assert isinstance(services.secondary, MockBackend)
    assert isinstance(services.cache._store, InMemoryKeyValueStore)
    assert isinstance(services.registry._source, StaticBankRegistrySource)


def test_registry_url_selects_http_source():
    services = build_scan_services(_settings(bank_registry_url="https://banks.example/api"))
    assert isinstance(services.registry._source, HttpBankRegistrySource)


def test_sql_store_from_database_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'cache.db'}"
    services = build_scan_services(_settings(cache_database_url=url))
    assert isinstance(services.cache._store, SqlKeyValueStore)

    asyncio.run(services.cache.put(make_data()))
    cached = asyncio.run(services.cache.get("0123456789", "GTBank"))
    assert cached is not None
    assert cached.account_holder_name == "JOHN DOE"


def test_confirm_canonicalizes_learns_and_caches():
    services = build_scan_services(_settings(), store=InMemoryKeyValueStore())

    asyncio.run(services.confirm(make_data(bank_name="guaranty trust")))

    cached = asyncio.run(services.cache.get("0123456789", "GTBank"))
    assert cached is not None
    assert cached.bank_name == "GTBank"
    assert services.prompts.stats() == {"total_extractions": 1, "top_banks": ["GTBank"]}


def test_confirm_without_bank_name_learns_nothing():
    services = build_scan_services(_settings(), store=InMemoryKeyValueStore())

    asyncio.run(services.confirm(make_data(bank_name="")))

    assert services.prompts.stats()["total_extractions"] == 0


def test_injected_backends_are_used_by_orchestrator():
    primary = MockBackend(make_data(confidence=95))
    secondary = MockBackend()
    services = build_scan_services(
        _settings(image_normalize_enabled=False),
        store=InMemoryKeyValueStore(),
        primary=primary,
        secondary=secondary,
    )

    result = asyncio.run(services.orchestrator.extract(b"image-bytes"))

    assert result.confidence == 95
    assert primary.call_count == 1
    assert secondary.call_count == 0


def test_start_keeps_bundled_registry_with_static_source():
    services = build_scan_services(_settings())
    before = len(services.registry)

    asyncio.run(services.start())

    assert len(services.registry) == before
    assert services.registry.loaded_from == "static"


def test_confirmed_data_cached_regardless_of_confidence():
    services = build_scan_services(_settings(), store=InMemoryKeyValueStore())

    asyncio.run(services.confirm(make_data(confidence=0)))

    assert asyncio.run(services.cache.get("0123456789", "GTBank")) is not None


def test_cache_limits_come_from_settings():
    services = build_scan_services(
        _settings(cache_min_confidence=95, cache_max_entries=2),
        store=InMemoryKeyValueStore(),
    )

    assert services.cache.can_cache(make_data(confidence=90)) is False
    for account in ("0000000001", "0000000002", "0000000003"):
        asyncio.run(services.cache.put(make_data(account_number=account, confidence=99)))
    assert asyncio.run(services.cache.stats())["total_entries"] == 2
