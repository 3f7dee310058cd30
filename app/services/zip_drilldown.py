from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.pricing.aggregator import CompleteFn, SearchFn
from app.services.identify import is_url
from app.services.llm import LLMParseError, parse_json_reply

logger = logging.getLogger("luxe-price-agent.zips")

DEFAULT_MAX_ZIPS = 8
MAX_ZIPS = 20
DEFAULT_MAX_LISTINGS = 12
MAX_LISTINGS = 30
# Upper bound on ZIPs kept from one reply, whatever the search width.
MAX_ZIPS_PER_REPLY = 10

_ZIP_RE = re.compile(r"^\d{5}$")

ZIP_SUGGESTIONS_SYSTEM_PROMPT = """
You receive Tavily-style web search results (JSON) about neighborhoods and real estate
for a metro/region in the United States.

Extract 3-10 promising ZIP codes in that metro/region that are good candidates for
strong public high schools, reasonable access to good public universities, and
owner-occupied-friendly short term rental potential (where legal).

For each ZIP assign score (0-100 overall desirability) plus educationNotes, strNotes and
overallNotes of 1-2 short sentences each. Say "limited info" when STR data is missing.

Return ONLY this JSON shape:
{"locationId": "string", "state": "CA", "label": "San Francisco Bay Area, CA",
"zips": [{"zip": "94303", "city": "Palo Alto", "state": "CA", "score": 92,
"educationNotes": "", "strNotes": "", "overallNotes": ""}]}

"zip" must be a 5-digit US ZIP code as a string. Do NOT include markdown or text outside the JSON.
""".strip()

ZIP_LISTINGS_SYSTEM_PROMPT = """
You receive Tavily-style web search results (JSON) for homes for sale in a specific US ZIP code.

Identify up to 12 current or recent for-sale listings from major real-estate portals
(prefer Redfin, Zillow, Opendoor, Realtor.com when present). For each listing output
url (direct absolute URL of the listing page), title (e.g. "3bd 2ba home on Elm St"),
price (short string such as "$899,000" if available), source (domain such as "redfin.com")
and summary (1-2 short sentences on notable features).

Return ONLY this JSON shape:
{"zip": "94301", "listings": [{"url": "https://www.redfin.com/...", "title": "", "price": "$3.2M",
"source": "redfin.com", "summary": ""}]}

"listings" may be empty if no suitable URLs are found. Do NOT include markdown or text outside the JSON.
""".strip()


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")


class ZipSuggestion(_CamelModel):
    zip: str
    city: Optional[str] = None
    state: str = ""
    score: float = 0.0
    education_notes: Optional[str] = None
    str_notes: Optional[str] = None
    overall_notes: Optional[str] = None

    @field_validator("zip", mode="before")
    @classmethod
    def zip_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return f"{value:05d}"
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: Any) -> Any:
        if value is None:
            return 0.0
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return max(0.0, min(100.0, float(value)))
        return value


class ZipSuggestionsResponse(_CamelModel):
    location_id: Optional[str] = None
    state: str
    label: str
    zips: list[ZipSuggestion] = Field(default_factory=list)


class ZipListing(_CamelModel):
    url: str
    title: Optional[str] = None
    price: Optional[str] = None
    source: Optional[str] = None
    summary: Optional[str] = None

    @field_validator("price", mode="before")
    @classmethod
    def price_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ZipListingsResponse(_CamelModel):
    zip: str
    listings: list[ZipListing] = Field(default_factory=list)


def bounded_count(value: Any, *, default: int, upper: int) -> int:
    """Use ``value`` when it is a number in ``(0, upper]``, else ``default``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if value <= 0 or value > upper:
        return default
    return int(value)


async def _search_json(search: SearchFn, query: str, *, what: str) -> str:
    try:
        results = await search(query)
    except Exception as exc:
        logger.warning("%s_search_failed query=%r err=%r", what, query, exc)
        results = []
    return json.dumps(results, indent=2, ensure_ascii=False)


def _rows(parsed: dict[str, Any], key: str) -> list[Any]:
    rows = parsed.get(key)
    if not isinstance(rows, list):
        raise LLMParseError(f"Parsed JSON is missing '{key}' array.")
    return rows


async def suggest_zips(
    *,
    state: str,
    label: str,
    location_id: Optional[str],
    search: SearchFn,
    complete: CompleteFn,
) -> ZipSuggestionsResponse:
    query = (
        "Best ZIP codes for families with strong public high schools and good "
        f"owner-occupied-friendly short term rental potential in {label}, {state}"
    )
    raw_results = await _search_json(search, query, what="zip_suggestions")

    user_prompt = (
        f"State code: {state}\nLocation label: {label}\n"
        f"Location id (caller-provided): {location_id or '(none)'}\n\n"
        f"Here is the raw Tavily-style JSON from the search endpoint:\n{raw_results}\n\n"
        "Using ONLY this data plus your general knowledge, output the JSON object described in the system prompt."
    )
    reply = await complete(
        [
            {"role": "system", "content": ZIP_SUGGESTIONS_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]
    )
    parsed = parse_json_reply(reply, expect_keys=("zips",))

    zips: list[ZipSuggestion] = []
    for row in _rows(parsed, "zips"):
        try:
            suggestion = ZipSuggestion.model_validate(row)
        except ValidationError as exc:
            logger.info("zip_row_dropped row=%r err=%s", row, exc.errors()[:1])
            continue
        if not _ZIP_RE.match(suggestion.zip):
            logger.info("zip_row_dropped zip=%r", suggestion.zip)
            continue
        # The caller's state is authoritative.
        zips.append(suggestion.model_copy(update={"state": state}))

    parsed_id = parsed.get("locationId")
    return ZipSuggestionsResponse(
        location_id=location_id or (parsed_id if isinstance(parsed_id, str) and parsed_id else None),
        state=state,
        label=label,
        zips=zips[:MAX_ZIPS_PER_REPLY],
    )


async def find_zip_listings(
    *,
    zip_code: str,
    state: str,
    max_listings: int,
    search: SearchFn,
    complete: CompleteFn,
) -> ZipListingsResponse:
    query = (
        f"Current homes for sale in ZIP {zip_code} {state} on Redfin, Zillow, Opendoor, "
        "or similar real estate portals."
    )
    raw_results = await _search_json(search, query, what="zip_listings")

    user_prompt = (
        f"ZIP code: {zip_code}\nState: {state or '(unknown)'}\n\n"
        f"Here is the raw Tavily-style JSON from the search endpoint:\n{raw_results}\n\n"
        "Using ONLY this data plus your general knowledge, output the JSON object described in the system prompt."
    )
    reply = await complete(
        [
            {"role": "system", "content": ZIP_LISTINGS_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]
    )
    parsed = parse_json_reply(reply, expect_keys=("listings",))

    listings: list[ZipListing] = []
    for row in _rows(parsed, "listings"):
        try:
            listing = ZipListing.model_validate(row)
        except ValidationError as exc:
            logger.info("listing_row_dropped row=%r err=%s", row, exc.errors()[:1])
            continue
        if not is_url(listing.url.strip()):
            logger.info("listing_row_dropped url=%r", listing.url)
            continue
        listings.append(listing)

    return ZipListingsResponse(zip=zip_code, listings=listings[:max_listings])
