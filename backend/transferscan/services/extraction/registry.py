"""Authoritative bank list used for fuzzy fallback and lookups."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from threading import Lock

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BankEntry:
    code: str
    name: str


# NIP institution codes.
DEFAULT_BANKS: tuple[BankEntry, ...] = (
    BankEntry("100004", "Opay Digital Services Limited"),
    BankEntry("100033", "PALMPAY"),
    BankEntry("090267", "Kuda."),
    BankEntry("090405", "Moniepoint"),
    BankEntry("100026", "Carbon"),
    BankEntry("120001", "9 Payment Service Bank (9PSB)"),
    BankEntry("090110", "VFD MFB"),
    BankEntry("090175", "Rubies"),
    BankEntry("090325", "Sparkle MFB"),
    BankEntry("000013", "GTBank"),
    BankEntry("000014", "Access Bank"),
    BankEntry("000005", "Access Bank PLC (Diamond)"),
    BankEntry("000015", "Zenith Bank"),
    BankEntry("000004", "United Bank for Africa"),
    BankEntry("000016", "First Bank of Nigeria"),
    BankEntry("000007", "Fidelity Bank"),
    BankEntry("000001", "Sterling Bank"),
    BankEntry("000018", "Union Bank"),
    BankEntry("000012", "Stanbic IBTC Bank"),
    BankEntry("000010", "Ecobank Bank"),
    BankEntry("000017", "Wema Bank"),
    BankEntry("000003", "FCMB"),
    BankEntry("000002", "Keystone Bank"),
    BankEntry("000008", "POLARIS BANK"),
    BankEntry("000011", "Unity Bank"),
    BankEntry("000023", "Providus Bank"),
    BankEntry("000006", "JAIZ Bank"),
    BankEntry("000021", "Standard Chartered"),
    BankEntry("000009", "Citibank"),
    BankEntry("090134", "ACCION MFB"),
    BankEntry("090614", "Aella MFB"),
    BankEntry("090409", "FCMB MFB"),
    BankEntry("070010", "Abbey Mortgage Bank"),
    BankEntry("090282", "AG Mortgage Bank"),
    BankEntry("090629", "9jaPay MFB"),
    BankEntry("090832", "5TT MFB"),
    BankEntry("110072", "78 Finance Company Limited"),
    BankEntry("090155", "Advans La Fayette MFB"),
    BankEntry("090649", "Advancly MFB"),
)


class BankRegistrySource(abc.ABC):
    """Where the registry snapshot comes from."""

    name: str = "base"

    @abc.abstractmethod
    async def fetch(self) -> list[BankEntry]:
        """Return the full bank list."""


class StaticBankRegistrySource(BankRegistrySource):
    name = "static"

    def __init__(self, banks: tuple[BankEntry, ...] | list[BankEntry] = DEFAULT_BANKS) -> None:
        self._banks = list(banks)

    async def fetch(self) -> list[BankEntry]:
        return list(self._banks)


class _BankPayload(BaseModel):
    code: str
    name: str


class _BankListResponse(BaseModel):
    status: bool = False
    banks: list[_BankPayload] = []


class HttpBankRegistrySource(BankRegistrySource):
    """Fetches ``GET {base_url}/accounts/banks``."""

    name = "http"

    def __init__(self, base_url: str, *, timeout_seconds: float = 15.0) -> None:
        self._url = f"{base_url.rstrip('/')}/accounts/banks"
        self._timeout_seconds = timeout_seconds

    async def fetch(self) -> list[BankEntry]:
        import httpx

        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            resp = await client.get(self._url, headers={"Accept": "application/json"})
            resp.raise_for_status()
            payload = resp.json()

        try:
            parsed = _BankListResponse.model_validate(payload)
        except ValidationError as exc:
            msg = f"Malformed bank list response from {self._url}"
            raise ValueError(msg) from exc
        if not parsed.status:
            msg = f"Bank list endpoint {self._url} reported status=false"
            raise ValueError(msg)
        return [BankEntry(code=b.code.strip(), name=b.name.strip()) for b in parsed.banks if b.name.strip()]


class BankRegistry:
    """In-memory snapshot of the bank list.

    Seeded from the bundled list so lookups work before the first refresh; a
    failed refresh keeps the previous snapshot.
    """

    def __init__(
        self,
        source: BankRegistrySource | None = None,
        *,
        initial: list[BankEntry] | tuple[BankEntry, ...] | None = None,
    ) -> None:
        self._source = source or StaticBankRegistrySource()
        self._entries: tuple[BankEntry, ...] = tuple(DEFAULT_BANKS if initial is None else initial)
        self._lock = Lock()
        self.loaded_from: str | None = None

    async def refresh(self) -> bool:
        try:
            banks = await self._source.fetch()
        except Exception:
            logger.warning(
                "Bank registry refresh from %r failed, keeping %d cached entries",
                self._source.name,
                len(self._entries),
                exc_info=True,
            )
            return False

        if not banks:
            logger.warning("Bank registry source %r returned no banks, keeping snapshot", self._source.name)
            return False

        with self._lock:
            self._entries = tuple(banks)
            self.loaded_from = self._source.name
        logger.info("Bank registry loaded %d banks from %s", len(banks), self._source.name)
        return True

    def entries(self) -> tuple[BankEntry, ...]:
        return self._entries

    def names(self) -> list[str]:
        return [b.name for b in self._entries]

    def find_by_code(self, code: str) -> BankEntry | None:
        code = code.strip()
        for bank in self._entries:
            if bank.code == code:
                return bank
        return None

    def find_by_name(self, name: str) -> BankEntry | None:
        key = name.strip().lower()
        for bank in self._entries:
            if bank.name.lower() == key:
                return bank
        return None

    def __len__(self) -> int:
        return len(self._entries)
