"""HTTP clients for the two external data sources used by a refresh.

Both calls go through :func:`fetch_json`, which bounds each request with a
deadline and cancels the request when it expires. Provider-specific response
shapes are normalized here so the derivation step only ever sees a list of
country entries and a flat ``{code: rate}`` mapping.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger("country_api.clients")

# Exchange-rate providers disagree on the key holding the table.
RATE_KEYS = ("rates", "conversion_rates")


class FetchError(Exception):
    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class FetchTimeout(FetchError):
    pass


class HttpStatusError(FetchError):
    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code


async def fetch_json(client: httpx.AsyncClient, url: str, timeout_ms: int) -> Any:
    timeout_s = timeout_ms / 1000
    try:
        resp = await asyncio.wait_for(client.get(url, timeout=timeout_s), timeout=timeout_s)
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        raise FetchTimeout(url, f"timed out after {timeout_ms} ms") from e
    except httpx.HTTPError as e:
        raise FetchError(url, str(e) or e.__class__.__name__) from e

    if not resp.is_success:
        raise HttpStatusError(url, resp.status_code)
    try:
        return resp.json()
    except ValueError as e:
        raise FetchError(url, "response body is not valid JSON") from e


async def fetch_countries(client: httpx.AsyncClient, url: str, timeout_ms: int) -> List[Dict[str, Any]]:
    data = await fetch_json(client, url, timeout_ms)
    if not isinstance(data, list):
        raise FetchError(url, f"expected a JSON array, got {type(data).__name__}")
    return data


async def fetch_exchange_rates(client: httpx.AsyncClient, url: str, timeout_ms: int) -> Dict[str, Optional[float]]:
    data = await fetch_json(client, url, timeout_ms)
    if not isinstance(data, dict):
        raise FetchError(url, f"expected a JSON object, got {type(data).__name__}")
    return normalize_rates(data)


def _as_rate(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_rates(payload: Dict[str, Any]) -> Dict[str, Optional[float]]:
    """Flatten any supported provider payload into ``{CODE: rate}``.

    A payload without a recognised rate table yields an empty mapping; every
    country with a currency then resolves to a null rate.
    """
    table = None
    for key in RATE_KEYS:
        if isinstance(payload.get(key), dict):
            table = payload[key]
            break
    if table is None:
        logger.warning("Exchange-rate payload has none of %s; continuing with no rates", ", ".join(RATE_KEYS))
        return {}
    return {str(code).strip().upper(): _as_rate(rate) for code, rate in table.items()}
