"""Web search tool backed by Tavily, with Serper as a fallback.

Both backends are plain JSON-over-HTTPS APIs called through ``httpx``.  A
failing backend is logged and skipped; when nothing is configured or every
backend fails the search returns an empty result set instead of raising.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

logger = logging.getLogger(__name__)

TAVILY_URL = "https://api.tavily.com/search"
SERPER_URL = "https://google.serper.dev/search"


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    snippet: str
    relevance_score: float | None = None


@dataclass
class SearchResponse:
    query: str
    results: list[SearchResult] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SearchTool:
    """Async web search with provider fallback.

    Parameters
    ----------
    tavily_api_key, serper_api_key : str | None
        Backend keys; when omitted they are read from ``TAVILY_API_KEY`` and
        ``SERPER_API_KEY``.
    timeout : float
        Per-request timeout in seconds.
    client : httpx.AsyncClient | None
        Injected client (tests pass one built on ``httpx.MockTransport``).
    """

    def __init__(
        self,
        tavily_api_key: str | None = None,
        serper_api_key: str | None = None,
        *,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.tavily_api_key = tavily_api_key or os.getenv("TAVILY_API_KEY")
        self.serper_api_key = serper_api_key or os.getenv("SERPER_API_KEY")
        self.timeout = timeout
        self._client = client

        if not self.configured:
            logger.warning("No search API keys configured; search returns no results")

    @property
    def configured(self) -> bool:
        return bool(self.tavily_api_key or self.serper_api_key)

    async def search(self, query: str, max_results: int = 5) -> SearchResponse:
        """Search the web, trying Tavily first and Serper second."""
        backends = []
        if self.tavily_api_key:
            backends.append(("tavily", self._search_tavily))
        if self.serper_api_key:
            backends.append(("serper", self._search_serper))

        for name, backend in backends:
            try:
                results = await backend(query, max_results)
            except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
                logger.warning("%s search failed for %r: %s", name, query, exc)
                continue
            logger.debug("%s returned %d results for %r", name, len(results), query)
            return SearchResponse(query=query, results=results)

        return SearchResponse(query=query)

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        if self._client is not None:
            resp = await self._client.post(url, json=payload, headers=headers, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload, headers=headers)
        resp.raise_for_status()
        return resp.json()

    async def _search_tavily(self, query: str, max_results: int) -> list[SearchResult]:
        data = await self._post(
            TAVILY_URL,
            {
                "query": query,
                "max_results": max_results,
                "search_depth": "advanced",
                "include_answer": True,
                "include_raw_content": False,
            },
            {"Authorization": f"Bearer {self.tavily_api_key}"},
        )
        return [
            SearchResult(
                title=item["title"],
                url=item["url"],
                snippet=item.get("content", ""),
                relevance_score=item.get("score"),
            )
            for item in data["results"]
        ]

    async def _search_serper(self, query: str, max_results: int) -> list[SearchResult]:
        data = await self._post(
            SERPER_URL,
            {"q": query, "num": max_results},
            {"X-API-KEY": self.serper_api_key or ""},
        )
        return [
            SearchResult(title=item["title"], url=item["link"], snippet=item.get("snippet", ""))
            for item in data.get("organic", [])
        ]

    @staticmethod
    def format_for_llm(response: SearchResponse) -> str:
        """Render results as a numbered block to append to a prompt."""
        if not response.results:
            return "No search results found."

        lines = [f'Search results for "{response.query}":', ""]
        for idx, result in enumerate(response.results, start=1):
            lines.append(f"{idx}. {result.title}")
            lines.append(f"   URL: {result.url}")
            lines.append(f"   {result.snippet}")
            lines.append("")
        return "\n".join(lines)
