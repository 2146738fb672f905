"""External tools available to agents that declare the matching capability."""

from tools.search import SearchResponse, SearchResult, SearchTool

__all__ = ["SearchResponse", "SearchResult", "SearchTool"]
