from datetime import datetime, timedelta, timezone

import pytest

from transferscan.core.config import get_settings
from transferscan.core.dependencies import get_scan_services
from transferscan.services.extraction.contracts import ExtractedBankData
from transferscan.services.extraction.corrector import BankNameCorrector
from transferscan.services.extraction.patterns import BankPatternSet
from transferscan.services.extraction.registry import BankRegistry


@pytest.fixture(autouse=True)
def _reset_cached_singletons():
    # Tests patch env vars; never leak a cached Settings or service container.
    get_settings.cache_clear()
    get_scan_services.cache_clear()
    yield
    get_settings.cache_clear()
    get_scan_services.cache_clear()


def make_corrector() -> BankNameCorrector:
    return BankNameCorrector(BankPatternSet(), BankRegistry())


def make_data(**overrides) -> ExtractedBankData:
    values = {
        "bank_name": "GTBank",
        "account_number": "0123456789",
        "account_holder_name": "JOHN DOE",
        "amount": "5000",
        "confidence": 90,
    }
    values.update(overrides)
    return ExtractedBankData(**values)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)
