from __future__ import annotations

import logging
from typing import Any, Optional, Union

import httpx

logger = logging.getLogger("luxe-price-agent.search")


async def web_search(
    keywords: Union[str, list[str]],
    *,
    base_url: str,
    token: Optional[str],
    max_results: int,
    timeout_s: float,
) -> list[dict[str, Any]]:
    url = f"{base_url.rstrip('/')}/search/"
    if isinstance(keywords, str):
        keywords = [keywords]
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    async with httpx.AsyncClient(timeout=timeout_s) as client:
        res = await client.post(url, headers=headers, json={"keywords": keywords, "max_results": max_results})

    if res.status_code >= 400:
        raise httpx.HTTPStatusError(
            f"Search returned error status={res.status_code}", request=res.request, response=res
        )

    try:
        data = res.json()
    except Exception:
        logger.warning("search_response_not_json url=%s", url)
        return []
    return extract_search_results(data)


def extract_search_results(data: Any) -> list[dict[str, Any]]:
    """Flatten either ``{queries: [{response: {results}}]}`` or ``{results}``."""
    if not isinstance(data, dict):
        return []

    results: list[dict[str, Any]] = []
    queries = data.get("queries")
    if isinstance(queries, list):
        for q in queries:
            response = q.get("response") if isinstance(q, dict) else None
            items = response.get("results") if isinstance(response, dict) else None
            if isinstance(items, list):
                results.extend(r for r in items if isinstance(r, dict))

    top_level = data.get("results")
    if isinstance(top_level, list):
        results.extend(r for r in top_level if isinstance(r, dict))

    return results


def format_evidence(results: list[dict[str, Any]], *, content_limit: int = 800) -> str:
    blocks: list[str] = []
    for r in results:
        title = str(r.get("title") or "").strip()
        url = str(r.get("url") or "").strip()
        content = str(r.get("content") or "").strip()[:content_limit]
        if not (title or url or content):
            continue
        blocks.append(f"TITLE: {title}\nURL: {url}\nCONTENT: {content}")
    return "\n---\n".join(blocks)
