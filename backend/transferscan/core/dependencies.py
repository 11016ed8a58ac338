from functools import lru_cache

from transferscan.core.config import get_settings
from transferscan.services.extraction.service import ScanServices, build_scan_services


@lru_cache
def get_scan_services() -> ScanServices:
    # One container per process; tests swap it via app.dependency_overrides.
    return build_scan_services(get_settings())
