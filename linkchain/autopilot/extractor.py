"""Client for the external link-extraction service.

The service takes a listing-page URL and returns the page title together with
the download links found on it::

    POST <EXTRACT_API_URL>  {"url": "..."}
    -> {"title": "...", "links": [{"name": "...", "link": "..."}, ...]}

Older deployments nest both fields under ``preview``; that shape is accepted
too.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from linkchain.config import settings


class ExtractionError(RuntimeError):
    """The extraction service failed or returned an unusable payload."""


@dataclass
class ExtractedPage:
    title: Optional[str]
    links: list[dict[str, Any]] = field(default_factory=list)


def _normalise_links(raw: Any) -> list[dict[str, Any]]:
    """Keep entries that carry a URL and give id-less ones a position id.

    Position ids count kept links only and skip any id an entry brings
    along, so every id in the result is unique.
    """
    kept: list[dict[str, Any]] = []
    for item in raw or []:
        if isinstance(item, str):
            item = {"link": item}
        if isinstance(item, dict) and (item.get("link") or item.get("url")):
            kept.append(item)

    taken = {item["id"] for item in kept if item.get("id") is not None}
    fresh = (n for n in itertools.count() if n not in taken)
    links: list[dict[str, Any]] = []
    for position, item in enumerate(kept):
        lid = item.get("id")
        if lid is None:
            lid = position if position not in taken else next(fresh)
            taken.add(lid)
        links.append(
            {
                "id": lid,
                "name": item.get("name") or "",
                "link": item.get("link") or item.get("url"),
                "status": item.get("status") or "pending",
            }
        )
    return links


class LinkExtractor:
    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._endpoint = endpoint or settings.extract_api_url
        self._timeout = timeout if timeout is not None else settings.solver_request_timeout

    async def extract(self, url: str) -> ExtractedPage:
        """Return the title and links of the page at *url*.

        Raises:
            ExtractionError: On transport errors, non-2xx responses, an
                ``error`` field in the reply, or a non-object body.
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._endpoint,
                    json={"url": url},
                    headers={"User-Agent": settings.user_agent},
                )
        except httpx.HTTPError as exc:
            raise ExtractionError(f"extractor request failed: {exc}") from exc

        if response.is_error:
            raise ExtractionError(
                f"extractor HTTP {response.status_code}: {response.text[:100]}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ExtractionError("extractor returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise ExtractionError("extractor returned an unexpected payload")
        if data.get("error"):
            raise ExtractionError(str(data["error"]))

        preview = data.get("preview") if isinstance(data.get("preview"), dict) else {}
        return ExtractedPage(
            title=data.get("title") or preview.get("title"),
            links=_normalise_links(data.get("links") or preview.get("links")),
        )
