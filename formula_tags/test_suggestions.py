import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from formula_tags.config import Settings
from formula_tags.errors import ConfigurationError
from formula_tags.suggestions import (
    Suggestion,
    SuggestionCache,
    SuggestionService,
    number_suggestion,
    visible_suggestions,
)

API_URL = "https://suggest.example.com/api/autocomplete"

SAMPLE = [
    {"id": "1", "name": "pi", "category": "constant", "value": "3.14159"},
    {"id": 2, "name": "double", "category": "function", "value": 2},
]


def ok_response(data):
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json.return_value = data
    return response


class TestSuggestionModel:
    def test_numeric_ids_are_coerced(self):
        suggestion = Suggestion.model_validate({"id": 7, "name": "x", "category": "variable", "value": 1.5})
        assert suggestion.id == "7"
        assert suggestion.value == 1.5

    def test_value_is_optional(self):
        assert Suggestion(id="a", name="b", category="c").value is None

    def test_number_suggestion_only_for_digits(self):
        own = number_suggestion("25")
        assert (own.name, own.category, own.value) == ("25", "number", 25)
        assert number_suggestion("2.5") is None
        assert number_suggestion("") is None

    def test_number_suggestion_for_overlong_digits(self):
        digits = "9" * 5000
        own = number_suggestion(digits)
        assert own.name == digits
        assert own.value == digits
        assert [s.name for s in visible_suggestions(digits, [])] == [digits]

    def test_visible_suggestions_order(self):
        remote = [Suggestion(id="1", name="one", category="variable", value=1)]
        assert [s.name for s in visible_suggestions("1", remote)] == ["1", "one"]
        assert [s.name for s in visible_suggestions("o", remote)] == ["one"]


class TestSuggestionService:
    @pytest.fixture
    def service(self):
        return SuggestionService(API_URL)

    def test_from_settings(self):
        service = SuggestionService.from_settings(Settings(suggestions_url=API_URL, suggestions_timeout=3))
        assert service.api_url == API_URL
        assert service.client.timeout.read == 3

    @pytest.mark.asyncio
    async def test_lookup_success(self, service):
        with patch.object(service.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = ok_response(SAMPLE)

            result = await service.lookup("p")

            mock_get.assert_called_once_with(API_URL, params={"search": "p"})
            assert [s.name for s in result] == ["pi", "double"]
            assert result[1].id == "2"

    @pytest.mark.asyncio
    async def test_empty_term_skips_request(self, service):
        with patch.object(service.client, 'get', new_callable=AsyncMock) as mock_get:
            assert await service.lookup("") == []
            mock_get.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_url_is_configuration_error(self):
        service = SuggestionService(None)
        with pytest.raises(ConfigurationError) as excinfo:
            await service.lookup("pi")
        assert "not configured" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_http_status_error_returns_empty(self, service):
        with patch.object(service.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = httpx.HTTPStatusError(
                "Error",
                request=MagicMock(),
                response=MagicMock(status_code=500, text="Server Error")
            )
            assert await service.lookup("pi") == []

    @pytest.mark.asyncio
    async def test_request_error_returns_empty(self, service):
        with patch.object(service.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = httpx.RequestError("Connection error", request=MagicMock())
            assert await service.lookup("pi") == []

    @pytest.mark.asyncio
    async def test_invalid_json_returns_empty(self, service):
        response = MagicMock()
        response.raise_for_status = MagicMock()
        response.json.side_effect = json.JSONDecodeError("Expecting value", "", 0)
        with patch.object(service.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = response
            assert await service.lookup("pi") == []

    @pytest.mark.asyncio
    async def test_wrong_payload_shape_returns_empty(self, service):
        with patch.object(service.client, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.return_value = ok_response({"results": SAMPLE})
            assert await service.lookup("pi") == []
            mock_get.return_value = ok_response([{"id": "1"}])
            assert await service.lookup("pi") == []

    @pytest.mark.asyncio
    async def test_lookup_against_transport(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["search"] == "tax rate"
            return httpx.Response(200, json=SAMPLE[:1])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = SuggestionService(API_URL, client=client)
        result = await service.lookup("tax rate")
        await service.close()
        assert [s.name for s in result] == ["pi"]

    @pytest.mark.asyncio
    async def test_close(self, service):
        with patch.object(service.client, 'aclose', new_callable=AsyncMock) as mock_close:
            await service.close()
            mock_close.assert_awaited_once()


class TestSuggestionCache:
    @pytest.fixture
    def service(self):
        service = SuggestionService(API_URL)
        service.lookup = AsyncMock(side_effect=lambda q: [
            Suggestion(id=q, name=f"{q}-result", category="variable", value=1)
        ])
        return service

    @pytest.mark.asyncio
    async def test_refresh_caches_by_query(self, service):
        cache = SuggestionCache(service)
        await cache.refresh("a")
        await cache.refresh("a")
        service.lookup.assert_awaited_once_with("a")
        assert "a" in cache.entries
        assert [s.name for s in cache.current] == ["a-result"]

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, service):
        cache = SuggestionCache(service, ttl=60)
        cache.entries["a"] = {"data": [], "timestamp": time.time() - 120}
        result = await cache.refresh("a")
        assert [s.name for s in result] == ["a-result"]
        service.lookup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_last_query_wins(self):
        service = SuggestionService(API_URL)
        slow_started = asyncio.Event()
        release_slow = asyncio.Event()

        async def lookup(query):
            if query == "p":
                slow_started.set()
                await release_slow.wait()
            return [Suggestion(id=query, name=query, category="variable", value=1)]

        service.lookup = lookup
        cache = SuggestionCache(service)

        slow = asyncio.create_task(cache.refresh("p"))
        await slow_started.wait()
        await cache.refresh("pi")
        release_slow.set()
        await slow

        # the stale answer is cached but never shown
        assert "p" in cache.entries
        assert [s.name for s in cache.current] == ["pi"]

    @pytest.mark.asyncio
    async def test_is_loading_until_result_arrives(self, service):
        cache = SuggestionCache(service)
        cache.latest_query = "tax"
        assert cache.is_loading
        await cache.refresh("tax")
        assert not cache.is_loading

    @pytest.mark.asyncio
    async def test_empty_query_and_reset(self, service):
        cache = SuggestionCache(service)
        assert await cache.refresh("") == []
        service.lookup.assert_not_awaited()
        await cache.refresh("a")
        cache.reset()
        assert cache.current == []
        assert "a" in cache.entries

    @pytest.mark.asyncio
    async def test_expired_entries_are_swept_on_store(self, service):
        cache = SuggestionCache(service, ttl=60)
        cache.entries["old"] = {"data": [], "timestamp": time.time() - 120}
        cache.entries["fresh"] = {"data": [], "timestamp": time.time()}
        await cache.refresh("new")
        assert set(cache.entries) == {"fresh", "new"}

    def test_sweep_reports_dropped_count(self, service):
        cache = SuggestionCache(service, ttl=60)
        cache.entries["old"] = {"data": [], "timestamp": time.time() - 120}
        assert cache.sweep() == 1
        assert cache.sweep() == 0
        assert cache.entries == {}
