"""
Suggestion lookup.

Free text typed into the formula is used as a search term against a remote
suggestion endpoint (``GET <url>?search=<term>``), which answers with a JSON
list of ``{id, name, category, value}`` objects.

Lookups are asynchronous and never touch the tag store. Results are kept in
a display-only cache keyed by search term; only the results of the most
recent query are ever shown, so a slow answer to an older query is simply
never consulted.
"""

import logging
import math
import re
import time
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, field_validator

from .config import Settings
from .errors import ConfigurationError
from .tags import new_tag_id, read_digits

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^\d+$")


class Suggestion(BaseModel):
    """A single suggestion returned by the lookup endpoint."""
    id: str
    name: str
    category: str
    value: Union[int, float, str, None] = None

    @field_validator('id', 'name', 'category', mode='before')
    @classmethod
    def coerce_to_str(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


def number_suggestion(buffer: str) -> Optional[Suggestion]:
    """Synthetic suggestion offering the typed digits themselves as a value."""
    if not _DIGITS.match(buffer):
        return None
    value = read_digits(buffer)
    # JSON has no infinity; an overflowing number keeps its digits
    return Suggestion(
        id=new_tag_id(),
        name=buffer,
        category="number",
        value=value if math.isfinite(value) else buffer,
    )


def visible_suggestions(buffer: str, remote: List[Suggestion]) -> List[Suggestion]:
    """Suggestions to offer for the current buffer: the typed number first, then remote results."""
    own = number_suggestion(buffer)
    return ([own] if own else []) + list(remote)


class SuggestionService:
    """Client for the remote suggestion endpoint."""

    def __init__(
        self,
        api_url: Optional[str],
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={
                "User-Agent": "FormulaTags/1.0",
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SuggestionService":
        return cls(settings.suggestions_url, timeout=settings.suggestions_timeout)

    async def lookup(self, search_term: str) -> List[Suggestion]:
        """
        Fetch suggestions for a search term.

        Args:
            search_term: Free text typed by the user

        Returns:
            List of suggestions; empty for an empty term or on any transport,
            HTTP or decoding failure

        Raises:
            ConfigurationError: If no endpoint is configured
        """
        if not search_term:
            return []
        if not self.api_url:
            raise ConfigurationError("Suggestion API URL is not configured")

        try:
            logger.info(f"Fetching suggestions for {search_term!r}")
            response = await self.client.get(self.api_url, params={"search": search_term})
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, list):
                logger.error(f"Unexpected suggestion payload type: {type(data).__name__}")
                return []
            return [Suggestion.model_validate(item) for item in data]

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error {e.response.status_code} when fetching suggestions: {str(e)}")
            return []

        except httpx.RequestError as e:
            logger.error(f"Request error when fetching suggestions: {str(e)}")
            return []

        except ValueError as e:
            # Malformed JSON or suggestion objects missing required fields
            logger.error(f"Invalid suggestion payload: {str(e)}")
            return []

    async def close(self):
        """Close the HTTP client session."""
        await self.client.aclose()


class SuggestionCache:
    """Per-query cache of lookup results with last-query-wins selection."""

    def __init__(self, service: SuggestionService, ttl: float = 300.0):
        self.service = service
        self.ttl = ttl
        self.entries: Dict[str, Dict[str, Any]] = {}
        self.latest_query = ""

    def get(self, query: str) -> Optional[List[Suggestion]]:
        """Cached results for a query, or None if absent or expired."""
        entry = self.entries.get(query)
        if entry is None:
            return None
        if time.time() - entry["timestamp"] >= self.ttl:
            del self.entries[query]
            return None
        return entry["data"]

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were dropped."""
        now = time.time()
        expired = [q for q, entry in self.entries.items() if now - entry["timestamp"] >= self.ttl]
        for query in expired:
            del self.entries[query]
        return len(expired)

    async def refresh(self, query: str) -> List[Suggestion]:
        """Make ``query`` the current one and fetch its results unless cached."""
        self.latest_query = query
        if not query:
            return []

        cached = self.get(query)
        if cached is not None:
            logger.info(f"Suggestion cache hit for {query!r}")
            return cached

        results = await self.service.lookup(query)
        self.sweep()
        self.entries[query] = {
            "data": results,
            "timestamp": time.time(),
        }
        return results

    @property
    def current(self) -> List[Suggestion]:
        """Results of the most recent query only."""
        if not self.latest_query:
            return []
        return self.get(self.latest_query) or []

    @property
    def is_loading(self) -> bool:
        return bool(self.latest_query) and self.latest_query not in self.entries

    def reset(self) -> None:
        """Forget the current query (results stay cached)."""
        self.latest_query = ""
