from __future__ import annotations

import math
from typing import Optional

from app.pricing.models import ExtractedRegion, FxRates, Number, RegionPriceRecord
from app.pricing.regions import RegionSpec

_CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "HKD": "HK$",
    "JPY": "¥",
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_number(value: Number) -> Number:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def tax_exclusive_price(raw_price: Number, tax_inclusive: bool, region: RegionSpec) -> Number:
    if not tax_inclusive or region.tax_rate <= 0:
        return _as_number(raw_price)
    return round_half_up(raw_price / (1.0 + region.tax_rate))


def to_usd(amount: Number, currency: str, fx: FxRates) -> float:
    return amount / fx.per_usd(currency)


def normalize_price_exact(
    raw_price: Optional[Number],
    tax_inclusive: bool,
    region: RegionSpec,
    fx: FxRates,
) -> tuple[Optional[Number], Optional[float]]:
    if not raw_price or raw_price < 0:
        return None, None
    price_numeric = tax_exclusive_price(raw_price, tax_inclusive, region)
    return price_numeric, to_usd(price_numeric, region.currency, fx)


def normalize_price(
    raw_price: Optional[Number],
    tax_inclusive: bool,
    region: RegionSpec,
    fx: FxRates,
) -> tuple[Optional[Number], Optional[int]]:
    """Return ``(price_numeric, price_usd)`` for one raw regional price.

    Tax is removed before conversion; both values are ``None`` when there is
    no usable price.
    """
    price_numeric, price_usd = normalize_price_exact(raw_price, tax_inclusive, region, fx)
    if price_usd is None:
        return price_numeric, None
    return price_numeric, round_half_up(price_usd)


def format_currency(amount: Optional[Number], currency: str) -> Optional[str]:
    if amount is None:
        return None
    text = f"{round_half_up(amount):,}"
    symbol = _CURRENCY_SYMBOLS.get(currency.upper())
    if symbol is None:
        return f"{text} {currency.upper()}"
    return f"{symbol}{text}"


def exchange_rate_label(region: RegionSpec, fx: FxRates) -> str:
    if region.currency.upper() == "USD":
        return "Base currency"
    rate = fx.per_usd(region.currency)
    if region.quote_rate_inverted:
        return f"1 {region.currency} = {1.0 / rate:.{region.rate_label_decimals}f} USD"
    return f"1 USD = {rate:.{region.rate_label_decimals}f} {region.currency}"


def normalize_record(extracted: ExtractedRegion, region: RegionSpec, fx: FxRates) -> RegionPriceRecord:
    price_numeric, price_usd_exact = normalize_price_exact(
        extracted.raw_price, extracted.tax_inclusive, region, fx
    )
    price_usd = round_half_up(price_usd_exact) if price_usd_exact is not None else None

    if price_numeric is None:
        raw_price = None
        confidence = "unavailable"
    else:
        raw_price = extracted.raw_price
        confidence = extracted.confidence if extracted.confidence != "unavailable" else "medium"

    return RegionPriceRecord(
        region=region.name,
        flag=region.flag,
        currency=region.currency,
        raw_price=raw_price,
        tax_inclusive=bool(extracted.tax_inclusive) if raw_price is not None else False,
        confidence=confidence,
        official_url=extracted.official_url,
        notes=extracted.notes,
        price_numeric=price_numeric,
        price_usd=price_usd,
        price_usd_exact=price_usd_exact,
        local_price=format_currency(price_numeric, region.currency),
        price_usd_formatted=format_currency(price_usd, "USD"),
        exchange_rate=exchange_rate_label(region, fx),
        tax_note=region.tax_note,
    )
