"""
Redis cache in front of the embedding API.

Identical canonical texts (re-uploads of unchanged content) reuse the stored
vector; forced regeneration bypasses the lookup and refreshes the entry.
"""
import hashlib
import json
import logging
from typing import List, Optional

import redis.asyncio as redis

from similarity_service.core.config import settings

logger = logging.getLogger(__name__)


class EmbeddingCache:
    """Text -> embedding cache. Failures are logged and treated as misses."""

    def __init__(self, url: str = None, ttl_seconds: int = None, model: str = None):
        self.url = url or settings.get_redis_url()
        self.ttl_seconds = ttl_seconds or settings.EMBEDDING_CACHE_TTL_SECONDS
        self.model = model or settings.OPENAI_EMBEDDING_MODEL
        self.redis_client: Optional[redis.Redis] = None

    async def _get_client(self) -> redis.Redis:
        if self.redis_client is None:
            self.redis_client = redis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self.redis_client

    def _key(self, text: str) -> str:
        digest = hashlib.sha256(text.encode()).hexdigest()
        return f"embedding:{self.model}:{digest}"

    async def get_embedding(self, text: str) -> Optional[List[float]]:
        try:
            client = await self._get_client()
            cached = await client.get(self._key(text))
            if cached:
                return json.loads(cached)
        except Exception as e:
            logger.warning(f"Embedding cache read failed: {e}")
        return None

    async def set_embedding(self, text: str, embedding: List[float]) -> None:
        try:
            client = await self._get_client()
            await client.setex(self._key(text), self.ttl_seconds, json.dumps(embedding))
        except Exception as e:
            logger.warning(f"Failed to cache embedding: {e}")

    async def close(self):
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
