"""Tiered bank-name patterns and per-bank recognition hints.

Tier 1 = digital / fintech, 2 = commercial, 3 = microfinance and mortgage,
4 = generic single tokens. The tier bonus gap is what keeps a short generic
token ("access") from outranking a specific fintech brand ("opay").
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock

OBSERVED_FORMATS_LIMIT = 10

TIER_BONUS: dict[int, int] = {
    1: 10_000,
    2: 5_000,
    3: 500,
    4: 10,
}


def tier_bonus(tier: int) -> int:
    return TIER_BONUS[tier]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BankPattern:
    canonical_name: str
    priority_tier: int
    match_patterns: tuple[str, ...]
    success_count: int = 0
    last_updated: datetime = field(default_factory=_utcnow)
    observed_formats: deque[str] = field(default_factory=lambda: deque(maxlen=OBSERVED_FORMATS_LIMIT))

    def __post_init__(self) -> None:
        if self.priority_tier not in TIER_BONUS:
            msg = f"priority_tier must be 1-4, got {self.priority_tier}"
            raise ValueError(msg)
        self.match_patterns = tuple(p.strip().lower() for p in self.match_patterns if p.strip())


@dataclass(frozen=True)
class BankHint:
    """Visual and formatting cues surfaced to vision-language backends."""

    canonical_name: str
    color_scheme: str
    logo_description: str
    account_number_format: str
    common_formats: tuple[str, ...] = ()


# (canonical name, tier, patterns); declaration order breaks score ties.
_DEFAULT_PATTERN_TABLE: tuple[tuple[str, int, tuple[str, ...]], ...] = (
    # Tier 1: digital banks, wallets, payment service banks
    ("Opay Digital Services Limited", 1, ("opay", "o-pay", "o pay", "opay digital", "opay digital services", "opay digital services limited")),
    ("PALMPAY", 1, ("palmpay", "palm-pay", "palm pay")),
    ("Kuda.", 1, ("kuda", "kuda bank", "kuda microfinance", "kuda.")),
    ("Moniepoint", 1, ("moniepoint", "monie point", "moniepoint mfb")),
    ("Carbon", 1, ("carbon", "carbon microfinance", "carbon mfb")),
    ("9 Payment Service Bank (9PSB)", 1, ("9psb", "9 psb", "9 payment", "9 payment service", "9 payment service bank")),
    ("UBA MONI", 1, ("uba moni", "ubamoni", "moni")),
    ("Zenith Eazy Wallet", 1, ("zenith eazy", "zenith wallet", "eazy wallet", "zenith eazy wallet")),
    ("StanbicMobileMoney", 1, ("stanbic mobile", "stanbic mobile money", "stanbicmobilemoney")),
    ("Ecobank Xpress Account", 1, ("ecobank xpress", "eco xpress", "ecobank express", "xpress account")),
    ("Rubies", 1, ("rubies", "rubies bank", "rubies mfb", "rubies microfinance")),
    ("VFD MFB", 1, ("vfd", "vfd microfinance", "vfd mfb", "vfd microfinance bank")),
    ("Sparkle MFB", 1, ("sparkle", "sparkle microfinance", "sparkle mfb")),
    # Tier 2: commercial banks
    ("GTBank", 2, ("gtbank", "gt bank", "guaranty trust", "gtb", "gtbank plc", "guaranty trust bank")),
    ("Access Bank", 2, ("access bank", "access bank plc")),
    ("Access Bank PLC (Diamond)", 2, ("access diamond", "access bank diamond", "diamond bank", "access bank plc diamond")),
    ("Zenith Bank", 2, ("zenith bank", "zenith", "zenith bank plc")),
    ("United Bank for Africa", 2, ("uba", "united bank", "united bank for africa", "united bank africa")),
    ("First Bank of Nigeria", 2, ("first bank", "firstbank", "fbn", "first bank of nigeria", "first bank nigeria")),
    ("Fidelity Bank", 2, ("fidelity", "fidelity bank", "fidelity bank plc")),
    ("Sterling Bank", 2, ("sterling", "sterling bank", "sterling bank plc")),
    ("Union Bank", 2, ("union bank", "union bank of nigeria", "union bank nigeria", "union bank plc")),
    ("Stanbic IBTC Bank", 2, ("stanbic", "stanbic ibtc", "stanbic bank", "stanbic ibtc bank")),
    ("Ecobank Bank", 2, ("ecobank", "eco bank", "ecobank nigeria", "ecobank bank")),
    ("Wema Bank", 2, ("wema", "wema bank", "wema bank plc")),
    ("FCMB", 2, ("fcmb", "first city monument bank", "fcmb group")),
    ("Keystone Bank", 2, ("keystone", "keystone bank", "keystone bank limited")),
    ("POLARIS BANK", 2, ("polaris", "polaris bank", "polaris bank limited")),
    ("Unity Bank", 2, ("unity", "unity bank", "unity bank plc")),
    ("Providus Bank", 2, ("providus", "providus bank", "providus bank limited")),
    ("JAIZ Bank", 2, ("jaiz", "jaiz bank", "jaiz bank plc")),
    ("Standard Chartered", 2, ("standard chartered", "standard chartered bank", "scb")),
    ("Citibank", 2, ("citibank", "citi bank", "citi")),
    # Tier 3: microfinance, mortgage, finance companies
    ("ACCION MFB", 3, ("accion", "accion mfb", "accion microfinance")),
    ("Aella MFB", 3, ("aella", "aella mfb", "aella microfinance")),
    ("FCMB MFB", 3, ("fcmb mfb", "fcmb microfinance", "first city monument microfinance")),
    ("Abbey Mortgage Bank", 3, ("abbey", "abbey mortgage", "abbey mortgage bank")),
    ("AG Mortgage Bank", 3, ("ag mortgage", "ag mortgage bank")),
    ("9jaPay MFB", 3, ("9japay", "9ja pay", "9japay mfb")),
    ("5TT MFB", 3, ("5tt", "5tt mfb", "5tt microfinance")),
    ("78 Finance Company Limited", 3, ("78 finance", "78finance", "78 finance company")),
    ("Advans La Fayette MFB", 3, ("advans", "la fayette", "advans la fayette", "advans mfb")),
    ("Advancly MFB", 3, ("advancly", "advancly mfb", "advancly microfinance")),
    # Tier 4: generic tokens
    ("Access Bank", 4, ("access",)),
    ("GTBank", 4, ("gt",)),
    ("United Bank for Africa", 4, ("united",)),
    ("Zenith Bank", 4, ("zenith",)),
)


DEFAULT_BANK_HINTS: tuple[BankHint, ...] = (
    BankHint("GTBank", "Orange and White", "GT logo with orange/red background", "10 digits starting with 0", ("0123456789", "012-345-6789", "012 345 6789")),
    BankHint("Access Bank", "Orange and Blue", "Access logo with orange diamond", "10 digits", ("0123456789", "012-345-6789")),
    BankHint("Zenith Bank", "Blue and White", "Zenith logo with blue design", "10 digits starting with 2", ("2123456789", "212-345-6789")),
    BankHint("United Bank for Africa", "Red and White", "UBA logo with red background", "10 digits starting with 2", ("2023456789", "202-345-6789")),
    BankHint("First Bank of Nigeria", "Blue and Gold", "First Bank logo with blue and gold", "10 digits starting with 3", ("3123456789", "312-345-6789")),
    BankHint("Moniepoint", "Blue and White", "Moniepoint logo with blue design", "10 digits starting with 7", ("7059957131", "705-995-7131")),
    BankHint("Opay Digital Services Limited", "Green and White", "Opay logo with green background", "10 digits starting with 8", ("8012345678", "801-234-5678")),
    BankHint("Kuda.", "Purple and White", "Kuda logo with purple design", "10 digits", ("1234567890", "123-456-7890")),
    BankHint("PALMPAY", "Purple and White", "PalmPay wordmark on a purple header", "10 digits", ("8123456789",)),
)


def default_bank_patterns() -> list[BankPattern]:
    """Fresh, unshared pattern instances built from the bundled table."""
    return [BankPattern(name, tier, patterns) for name, tier, patterns in _DEFAULT_PATTERN_TABLE]


class BankPatternSet:
    """Read-mostly collection of ``BankPattern`` shared by corrector and prompt adapter."""

    def __init__(
        self,
        patterns: Iterable[BankPattern] | None = None,
        hints: Iterable[BankHint] | None = None,
    ) -> None:
        self._patterns = list(patterns) if patterns is not None else default_bank_patterns()
        hint_list = DEFAULT_BANK_HINTS if hints is None else tuple(hints)
        self._hints = {h.canonical_name.lower(): h for h in hint_list}
        self._locks: dict[str, Lock] = {}
        self._locks_guard = Lock()

    def __iter__(self) -> Iterator[BankPattern]:
        return iter(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def canonical_names(self) -> list[str]:
        seen: dict[str, None] = {}
        for pattern in self._patterns:
            seen.setdefault(pattern.canonical_name, None)
        return list(seen)

    def for_bank(self, canonical_name: str) -> list[BankPattern]:
        key = canonical_name.strip().lower()
        return [p for p in self._patterns if p.canonical_name.lower() == key]

    def primary_for(self, canonical_name: str) -> BankPattern | None:
        """The most specific (lowest tier number) entry for *canonical_name*."""
        candidates = self.for_bank(canonical_name)
        if not candidates:
            return None
        return min(candidates, key=lambda p: p.priority_tier)

    def hint_for(self, canonical_name: str) -> BankHint | None:
        return self._hints.get(canonical_name.strip().lower())

    def lock_for(self, canonical_name: str) -> Lock:
        key = canonical_name.strip().lower()
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = Lock()
                self._locks[key] = lock
            return lock
