from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.pricing.aggregator import CompleteFn, SearchFn
from app.services.llm import LLMParseError, parse_json_reply

logger = logging.getLogger("luxe-price-agent.locations")

DEFAULT_STATES: tuple[str, ...] = ("CA", "WA", "OR", "TX", "MA", "MI", "WI", "MN", "NJ", "NY")
MAX_STATES = 20

# Weights of the four sub-scores in totalScore.
SCORE_WEIGHTS: dict[str, float] = {
    "education_score": 0.45,
    "financial_score": 0.25,
    "str_viability_score": 0.15,
    "lifestyle_score": 0.15,
}

SCORING_SYSTEM_PROMPT = """
You are ranking US metros/regions for a long-term education + Airbnb plan.
You receive raw web search data (Tavily-style JSON) and must:

- Propose 1-3 strong candidate metros or regions per requested state.
- For each location, compute:
  - EducationScore (0-100), weight 0.45: public high school quality and pipeline,
    proximity and quality of nearby public universities.
  - FinancialFeasibilityScore (0-100), weight 0.25: can conservative STR income during
    ~6 months/year plausibly cover interest + property tax for a typical property?
  - STRViabilityScore (0-100), weight 0.15: clarity and friendliness of short-term rental
    rules for owner-occupied or mixed-use (live ~6 months, rent ~6 months).
  - LifestyleScore (0-100), weight 0.15: safety, amenities, airport access, community.

Return ONLY this JSON shape:
{"locations": [{"id": "CA|SF Bay Area", "state": "CA", "label": "San Francisco Bay Area, CA",
"totalScore": 0, "educationScore": 0, "financialScore": 0, "strViabilityScore": 0,
"lifestyleScore": 0, "educationNotes": "", "financialNotes": "", "strNotes": "",
"lifestyleNotes": "", "overallNotes": ""}]}

Scores must be numbers between 0 and 100. Do NOT include markdown or text outside the JSON.
""".strip()


def _clamp_score(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return max(0.0, min(100.0, float(value)))
    return value


class LocationScore(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")

    id: str
    state: str
    label: str
    total_score: float = 0.0
    education_score: float
    financial_score: float
    str_viability_score: float
    lifestyle_score: float
    education_notes: Optional[str] = None
    financial_notes: Optional[str] = None
    str_notes: Optional[str] = None
    lifestyle_notes: Optional[str] = None
    overall_notes: Optional[str] = None

    @field_validator(*SCORE_WEIGHTS, mode="before")
    @classmethod
    def clamp_scores(cls, value: Any) -> Any:
        return _clamp_score(value)


class LocationScoresResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    locations: list[LocationScore] = Field(default_factory=list)


def normalize_state_codes(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return list(DEFAULT_STATES)
    codes: list[str] = []
    for item in raw:
        code = str(item or "").strip().upper()
        if code and code not in codes:
            codes.append(code)
    return codes[:MAX_STATES] or list(DEFAULT_STATES)


def weighted_total(location: LocationScore) -> float:
    total = sum(getattr(location, field) * weight for field, weight in SCORE_WEIGHTS.items())
    return round(total, 1)


def rank_locations(locations: Sequence[LocationScore]) -> list[LocationScore]:
    scored = [loc.model_copy(update={"total_score": weighted_total(loc)}) for loc in locations]
    return sorted(scored, key=lambda loc: loc.total_score, reverse=True)


async def score_locations(
    state_codes: Sequence[str],
    *,
    search: SearchFn,
    complete: CompleteFn,
) -> LocationScoresResponse:
    query = (
        "Best metros and suburbs for strong public high schools, nearby public universities, "
        "and owner-occupied-friendly short term rentals in these US states: "
        + json.dumps(list(state_codes))
    )
    try:
        results = await search(query)
    except Exception as exc:
        logger.warning("location_search_failed states=%s err=%r", ",".join(state_codes), exc)
        results = []

    user_prompt = (
        f"Requested US state codes: {json.dumps(list(state_codes))}.\n\n"
        "Here is raw web search data about schools, universities, STR rules, and lifestyle "
        "for various locations in those states:\n"
        f"{json.dumps(results, indent=2, ensure_ascii=False)}\n\n"
        "Using ONLY this data plus your general knowledge, produce the JSON described in the system prompt."
    )
    reply = await complete(
        [
            {"role": "system", "content": SCORING_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]
    )
    parsed = parse_json_reply(reply, expect_keys=("locations",))
    if not isinstance(parsed.get("locations"), list):
        raise LLMParseError("Parsed JSON is missing 'locations' array.")
    try:
        response = LocationScoresResponse.model_validate(parsed)
    except ValidationError as exc:
        raise LLMParseError(f"Model reply does not match the location schema: {exc}") from exc

    return LocationScoresResponse(locations=rank_locations(response.locations))
