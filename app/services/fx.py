from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import httpx

from app.pricing.models import FxRates

logger = logging.getLogger("luxe-price-agent.fx")


def rates_from_payload(
    payload: Any,
    *,
    defaults: Mapping[str, float],
    currencies: Iterable[str],
) -> FxRates:
    """Pick the needed per-USD rates, falling back per currency."""
    raw = payload.get("rates") if isinstance(payload, dict) else None
    raw = raw if isinstance(raw, dict) else {}

    rates: dict[str, float] = {"USD": 1.0}
    missing: list[str] = []
    for code in currencies:
        code = code.upper()
        if code == "USD":
            continue
        value = raw.get(code)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            rates[code] = float(value)
        else:
            rates[code] = float(defaults[code])
            missing.append(code)

    if missing:
        logger.warning("fx_rates_defaulted currencies=%s", ",".join(missing))
        source = "fallback" if len(missing) == len(rates) - 1 else "partial"
    else:
        source = "live"
    return FxRates(rates=rates, source=source)


async def fetch_fx_rates(
    *,
    url: str,
    defaults: Mapping[str, float],
    currencies: Iterable[str],
    timeout_s: float,
) -> FxRates:
    currencies = list(currencies)
    try:
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            res = await client.get(url)
        res.raise_for_status()
        payload = res.json()
    except Exception as exc:
        logger.warning("fx_fetch_failed url=%s err=%r", url, exc)
        payload = {}
    return rates_from_payload(payload, defaults=defaults, currencies=currencies)
