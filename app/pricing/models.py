from __future__ import annotations

from datetime import datetime
import re
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Confidence = Literal["high", "medium", "unavailable"]
Number = Union[int, float]

_PRICE_TOKEN_RE = re.compile(r"\d[\d.,]*")


def parse_price_text(text: str) -> Optional[Number]:
    """Read the first price in ``text``.

    Whitespace of any kind is dropped. A "." or "," followed by exactly three
    digits groups thousands; a trailing one followed by one or two digits is
    the decimal mark. Anything else is ambiguous and gives ``None``.
    """
    match = _PRICE_TOKEN_RE.search(re.sub(r"\s", "", text))
    if not match:
        return None
    parts = re.split(r"[.,]", match.group(0).rstrip(".,"))
    if all(len(p) == 3 for p in parts[1:]):
        number = float("".join(parts))
    elif all(len(p) == 3 for p in parts[1:-1]) and len(parts[-1]) in (1, 2):
        number = float("".join(parts[:-1]) + "." + parts[-1])
    else:
        return None
    return int(number) if number.is_integer() else number


class FxRates(BaseModel):
    """Units of each currency per one USD."""

    model_config = ConfigDict(frozen=True)

    rates: dict[str, float]
    source: Literal["live", "partial", "fallback"] = "fallback"

    def per_usd(self, currency: str) -> float:
        code = currency.upper()
        if code == "USD":
            return 1.0
        return self.rates[code]


class ExtractedRegion(BaseModel):
    """One region as proposed by the model. Untrusted until validated."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)

    region: str
    raw_price: Optional[Number] = None
    tax_inclusive: bool = False
    confidence: Confidence = "unavailable"
    official_url: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("raw_price", mode="before")
    @classmethod
    def coerce_price(cls, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            return parse_price_text(value)
        return value

    @field_validator("tax_inclusive", mode="before")
    @classmethod
    def coerce_tax_flag(cls, value: Any) -> Any:
        if value is None:
            return False
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def lower_confidence(cls, value: Any) -> Any:
        if value is None:
            return "unavailable"
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ExtractionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product: Optional[str] = None
    brand: Optional[str] = None
    regions: list[ExtractedRegion]


class HomePriceSeed(BaseModel):
    """A price already known for one region from the identification step."""

    model_config = ConfigDict(frozen=True)

    region: str
    price: float
    tax_inclusive: Optional[bool] = None
    official_url: Optional[str] = None


class RegionPriceRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    region: str
    flag: str = ""
    currency: str
    raw_price: Optional[Number] = None
    tax_inclusive: bool = False
    confidence: Confidence = "unavailable"
    official_url: Optional[str] = None
    notes: Optional[str] = None
    price_numeric: Optional[Number] = None
    price_usd: Optional[int] = Field(default=None, alias="priceUSD")
    price_usd_exact: Optional[float] = Field(default=None, exclude=True)
    local_price: Optional[str] = None
    price_usd_formatted: Optional[str] = Field(default=None, alias="priceUSDFormatted")
    exchange_rate: str = ""
    tax_note: str = ""
    is_best: bool = False


class PriceComparisonResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    product: str
    brand: str
    confirmed_query: str
    regions: tuple[RegionPriceRecord, ...]
    best_region: Optional[str] = None
    searched_at: datetime
    disclaimer: str
