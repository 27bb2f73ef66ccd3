import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

logger = logging.getLogger("country_api.refresh")

MULTIPLIER_MIN = 1000
MULTIPLIER_MAX = 2000


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...


@dataclass
class DerivedCountry:
    name: str
    normalized_name: str
    capital: Optional[str]
    region: Optional[str]
    population: int
    currency_code: Optional[str]
    exchange_rate: Optional[float]
    estimated_gdp: Optional[float]
    flag_url: Optional[str]
    last_refreshed_at: datetime

    def as_row(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "normalized_name": self.normalized_name,
            "capital": self.capital,
            "region": self.region,
            "population": self.population,
            "currency_code": self.currency_code,
            "exchange_rate": self.exchange_rate,
            "estimated_gdp": self.estimated_gdp,
            "flag_url": self.flag_url,
            "last_refreshed_at": self.last_refreshed_at,
        }


def normalize_name(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def _extract_name(entry: Mapping[str, Any]) -> Optional[str]:
    name = entry.get("name")
    # restcountries v3 nests the display name
    if isinstance(name, dict):
        name = name.get("common")
    if not isinstance(name, str) or not name.strip():
        return None
    return name.strip()


def _text_field(value: Any) -> Optional[str]:
    # v3 payloads give capital as a list
    if isinstance(value, list):
        value = value[0] if value else None
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def _extract_flag(entry: Mapping[str, Any]) -> Optional[str]:
    flag = entry.get("flag")
    if isinstance(flag, str) and flag.startswith("http"):
        return flag
    flags = entry.get("flags")
    if isinstance(flags, dict):
        return _text_field(flags.get("png")) or _text_field(flags.get("svg"))
    return _text_field(flag)


def _extract_population(entry: Mapping[str, Any]) -> Optional[int]:
    population = entry.get("population")
    if isinstance(population, bool) or not isinstance(population, int) or population < 0:
        return None
    return population


def extract_currency_code(entry: Mapping[str, Any]) -> Optional[str]:
    """First currency code, upper-cased.

    v2 lists ``[{"code": "NGN", ...}]``; v3 keys a dict by code,
    ``{"NGN": {"name": ...}}``.
    """
    currencies = entry.get("currencies")
    if isinstance(currencies, dict):
        code = next(iter(currencies), None)
    elif isinstance(currencies, list) and currencies and isinstance(currencies[0], dict):
        code = currencies[0].get("code")
    else:
        return None
    if not isinstance(code, str) or not code.strip():
        return None
    return code.strip().upper()


def estimate_gdp(population: int, exchange_rate: Optional[float], rng: RandomSource) -> Optional[float]:
    if not exchange_rate:
        return None
    multiplier = rng.randint(MULTIPLIER_MIN, MULTIPLIER_MAX)
    return population * multiplier / exchange_rate


def derive_country(
    entry: Mapping[str, Any],
    rates: Mapping[str, Optional[float]],
    refreshed_at: datetime,
    rng: RandomSource,
) -> Optional[DerivedCountry]:
    """Merge one catalog entry with the rate table.

    Returns None when the entry lacks a name or a non-negative integer
    population; such entries are left out of the cycle entirely.
    """
    name = _extract_name(entry)
    population = _extract_population(entry)
    if name is None or population is None:
        return None

    currency_code = extract_currency_code(entry)
    if currency_code is None:
        exchange_rate = None
        estimated_gdp: Optional[float] = 0
    else:
        exchange_rate = rates.get(currency_code)
        estimated_gdp = estimate_gdp(population, exchange_rate, rng)

    return DerivedCountry(
        name=name,
        normalized_name=normalize_name(name),
        capital=_text_field(entry.get("capital")),
        region=_text_field(entry.get("region")),
        population=population,
        currency_code=currency_code,
        exchange_rate=exchange_rate,
        estimated_gdp=estimated_gdp,
        flag_url=_extract_flag(entry),
        last_refreshed_at=refreshed_at,
    )


def derive_records(
    entries: Iterable[Mapping[str, Any]],
    rates: Mapping[str, Optional[float]],
    refreshed_at: datetime,
    rng: Optional[RandomSource] = None,
) -> List[DerivedCountry]:
    rng = rng or random.Random()
    records: List[DerivedCountry] = []
    skipped = 0
    for entry in entries:
        record = derive_country(entry, rates, refreshed_at, rng) if isinstance(entry, Mapping) else None
        if record is None:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.debug("Skipped %d catalog entries without a name or a valid population", skipped)
    return records
