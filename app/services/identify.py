from __future__ import annotations

import logging
import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from app.pricing.aggregator import CompleteFn, SearchFn
from app.pricing.normalizer import format_currency
from app.pricing.regions import PricingConfig
from app.services.llm import LLMParseError, parse_json_reply
from app.services.search import format_evidence

logger = logging.getLogger("luxe-price-agent.identify")

_URL_TAIL_RE = re.compile(r"[^/?#]+(?=[/?#]|$)")

IDENTIFY_SYSTEM_PROMPT = (
    "You are a luxury goods expert. Extract product info from search results. "
    "Return ONLY valid JSON, no markdown."
)

CLARIFY_SYSTEM_PROMPT = (
    "You are a luxury goods expert. Given a product description, return ONLY valid JSON with "
    "clarifying questions to identify the exact SKU. No markdown, no code blocks. Format:\n"
    '{"brand":"Chanel","productSummary":"Classic Flap Mini","questions":['
    '{"id":"size","label":"Size","type":"select","options":["Mini 20cm","Small 23cm","Medium 25cm"],"required":true},'
    '{"id":"material","label":"Leather","type":"select","options":["Caviar","Lambskin","Tweed","Patent"],"required":true},'
    '{"id":"hardware","label":"Hardware","type":"select","options":["Gold","Silver","Ruthenium"],"required":true},'
    '{"id":"color","label":"Color","type":"text","required":true}]}\n'
    "Tailor questions to the specific brand and product type. For jewelry include metal, stone, "
    "ring size optional. For bags include size, material, hardware, handle type, color."
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")


class ProductIdentity(_CamelModel):
    brand: str = ""
    product: str = ""
    sku: Optional[str] = None
    home_region: str
    home_flag: str
    home_currency: str
    home_price: Optional[float] = None
    home_price_label: Optional[str] = None
    official_url: Optional[str] = None
    confidence: str = "medium"


class ClarifyQuestion(_CamelModel):
    id: str
    label: str
    type: Literal["select", "text"] = "text"
    options: Optional[list[str]] = None
    required: bool = True


class ClarifyResponse(_CamelModel):
    questions: list[ClarifyQuestion] = Field(default_factory=list)
    product_summary: str = ""
    brand: str = ""


def is_url(text: str) -> bool:
    return text.lower().startswith(("http://", "https://"))


def sku_from_input(text: str) -> Optional[str]:
    if not is_url(text):
        return text or None
    path = text.split("#", 1)[0].split("?", 1)[0]
    tails = _URL_TAIL_RE.findall(path)
    return tails[-1] if tails else None


def _positive_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if value > 0 else None


async def identify_product(
    raw_input: str,
    *,
    config: PricingConfig,
    search: SearchFn,
    complete: CompleteFn,
) -> ProductIdentity:
    text = raw_input.strip()
    url_input = is_url(text)
    home = config.home_region_for_url(text) if url_input else config.home_region_for_url(None)

    try:
        results = await search(text)
    except Exception as exc:
        logger.warning("identify_search_failed input=%r err=%r", text, exc)
        results = []
    evidence = format_evidence(results)

    reply = await complete(
        [
            {"role": "system", "content": IDENTIFY_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f"Input: {text}\nType: {'URL' if url_input else 'SKU'}\nHome region: {home.name}\n\n"
                    f"Search results:\n{evidence or 'No results'}\n\n"
                    'Return: {"brand":"Harry Winston","product":"Ribbon Diamond Wedding Band",'
                    '"sku":"WBDPRDPAR","homePrice":7100,"homePriceLabel":"$7,100",'
                    '"officialUrl":"https://www.harrywinston.com/en/products/...","confidence":"high"}'
                ),
            },
        ]
    )
    parsed = parse_json_reply(reply, expect_keys=("brand", "product", "sku"))

    home_price = _positive_number(parsed.get("homePrice"))
    label = parsed.get("homePriceLabel") if isinstance(parsed.get("homePriceLabel"), str) else None
    if home_price is not None and not label:
        label = format_currency(home_price, home.currency)

    return ProductIdentity(
        brand=str(parsed.get("brand") or ""),
        product=str(parsed.get("product") or ""),
        sku=str(parsed.get("sku") or "") or sku_from_input(text),
        home_region=home.name,
        home_flag=home.flag,
        home_currency=home.currency,
        home_price=home_price,
        home_price_label=label,
        official_url=str(parsed.get("officialUrl") or "") or (text if url_input else None),
        confidence=str(parsed.get("confidence") or "medium"),
    )


async def clarify_product(query: str, *, complete: CompleteFn) -> ClarifyResponse:
    reply = await complete(
        [
            {"role": "system", "content": CLARIFY_SYSTEM_PROMPT},
            {"role": "user", "content": query},
        ]
    )
    parsed = parse_json_reply(reply, expect_keys=("questions",))
    try:
        return ClarifyResponse.model_validate(parsed)
    except ValidationError as exc:
        raise LLMParseError(f"Model reply does not match the clarify schema: {exc}") from exc
