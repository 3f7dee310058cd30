from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RegionSpec(BaseModel):
    """Static description of one market the comparison covers."""

    model_config = ConfigDict(frozen=True)

    name: str
    code: str
    flag: str
    currency: str
    tax_rate: float = 0.0
    # Whether retail prices in this market are shown with tax included.
    displays_tax_inclusive: bool = False
    tax_note: str = ""
    search_query: str
    fallback_query: str
    url_markers: tuple[str, ...] = ()
    rate_label_decimals: int = 2
    # Quote the rate as "1 <local> = x USD" instead of "1 USD = x <local>".
    quote_rate_inverted: bool = False


class PricingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    regions: tuple[RegionSpec, ...]
    default_region: str = "US"
    default_fx_rates: dict[str, float] = Field(default_factory=dict)
    disclaimer: str = ""

    def region(self, key: Optional[str]) -> Optional[RegionSpec]:
        """Look a region up by name, code or currency, case-insensitively."""
        needle = (key or "").strip().lower()
        if not needle:
            return None
        for spec in self.regions:
            if needle in {spec.name.lower(), spec.code.lower(), spec.currency.lower()}:
                return spec
        return None

    def home_region_for_url(self, url: Optional[str]) -> RegionSpec:
        text = (url or "").lower()
        if text:
            for spec in self.regions:
                if any(marker.lower() in text for marker in spec.url_markers):
                    return spec
        fallback = self.region(self.default_region)
        if fallback is None:
            return self.regions[0]
        return fallback


DEFAULT_REGIONS: tuple[RegionSpec, ...] = (
    RegionSpec(
        name="US",
        code="US",
        flag="\U0001F1FA\U0001F1F8",
        currency="USD",
        tax_note="MSRP - state sales tax not included",
        search_query="{query} price USD official retail",
        fallback_query="{brand} {query} price US",
    ),
    RegionSpec(
        name="Hong Kong",
        code="HK",
        flag="\U0001F1ED\U0001F1F0",
        currency="HKD",
        tax_note="No VAT or GST in Hong Kong",
        search_query="{query} Hong Kong price HKD official",
        fallback_query="{brand} {query} HK$ price",
        url_markers=("/zh_hk/", "/hk/"),
    ),
    RegionSpec(
        name="Japan",
        code="JP",
        flag="\U0001F1EF\U0001F1F5",
        currency="JPY",
        tax_rate=0.10,
        displays_tax_inclusive=True,
        tax_note="Pre-tax price (ex 10% consumption tax)",
        search_query="{query} Japan price JPY official",
        fallback_query="{brand} {query} 価格 円",
        url_markers=("/ja_jp/", "/ja/"),
        rate_label_decimals=1,
    ),
    RegionSpec(
        name="France",
        code="FR",
        flag="\U0001F1EB\U0001F1F7",
        currency="EUR",
        tax_rate=0.20,
        displays_tax_inclusive=True,
        tax_note="Pre-tax price (ex 20% VAT)",
        search_query="{query} France prix EUR officiel",
        fallback_query="{brand} {query} prix €",
        url_markers=("/fr_fr/", "/fr/"),
        rate_label_decimals=4,
        quote_rate_inverted=True,
    ),
)

DEFAULT_FX_RATES: dict[str, float] = {"USD": 1.0, "HKD": 7.85, "JPY": 150.0, "EUR": 0.92}

DEFAULT_DISCLAIMER = (
    "Prices sourced from web search and may not reflect current retail prices. "
    "Always verify on the official brand website before purchasing."
)

DEFAULT_PRICING_CONFIG = PricingConfig(
    regions=DEFAULT_REGIONS,
    default_region="US",
    default_fx_rates=DEFAULT_FX_RATES,
    disclaimer=DEFAULT_DISCLAIMER,
)
