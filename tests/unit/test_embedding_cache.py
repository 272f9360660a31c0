"""Unit tests for the Redis embedding cache."""
import json
from unittest.mock import AsyncMock

import pytest

from similarity_service.services.cache import EmbeddingCache


@pytest.mark.unit
class TestEmbeddingCache:

    @pytest.fixture
    def cache(self, mock_redis_client):
        cache = EmbeddingCache(url="redis://localhost:6379/15", ttl_seconds=60, model="test-model")
        cache.redis_client = mock_redis_client
        return cache

    def test_key_is_model_scoped(self, cache):
        key = cache._key("hello")
        assert key.startswith("embedding:test-model:")
        assert key == cache._key("hello")
        assert key != cache._key("hello!")

    @pytest.mark.asyncio
    async def test_miss(self, cache):
        assert await cache.get_embedding("hello") is None

    @pytest.mark.asyncio
    async def test_hit(self, cache, mock_redis_client):
        mock_redis_client.get.return_value = json.dumps([0.1, 0.2])
        assert await cache.get_embedding("hello") == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_set_uses_ttl(self, cache, mock_redis_client):
        await cache.set_embedding("hello", [0.1])
        mock_redis_client.setex.assert_awaited_once_with(cache._key("hello"), 60, "[0.1]")

    @pytest.mark.asyncio
    async def test_redis_errors_are_misses(self, cache, mock_redis_client):
        mock_redis_client.get = AsyncMock(side_effect=ConnectionError("redis down"))
        mock_redis_client.setex = AsyncMock(side_effect=ConnectionError("redis down"))

        assert await cache.get_embedding("hello") is None
        await cache.set_embedding("hello", [0.1])

    @pytest.mark.asyncio
    async def test_close(self, cache, mock_redis_client):
        await cache.close()
        mock_redis_client.aclose.assert_awaited_once()
        assert cache.redis_client is None
