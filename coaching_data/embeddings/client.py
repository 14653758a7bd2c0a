from __future__ import annotations

import logging
from typing import List, Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from coaching_data.core.config import settings
from coaching_data.core.exceptions import EmbeddingError

logger = logging.getLogger(__name__)

# OpenAI rejects inputs much over ~8k tokens
MAX_INPUT_CHARS = 32000


class _RetryableEmbeddingError(Exception):
    pass


class EmbeddingClient:
    """
    Client for an OpenAI-compatible ``/embeddings`` endpoint.

    Defaults to text-embedding-3-small at 1536 dimensions.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
    ) -> None:
        self.base_url = (base_url or settings.EMBEDDING_BASE_URL).rstrip("/")
        self.api_key = api_key or settings.EMBEDDING_API_KEY
        self.model = model or settings.EMBEDDING_MODEL
        self.dimensions = dimensions or settings.EMBEDDING_DIMENSIONS

        self.timeout = httpx.Timeout(connect=5.0, read=30.0, write=10.0, pool=10.0)
        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def close(self) -> None:
        await self.client.aclose()

    async def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingError: the service could not produce a vector
        """
        if len(text) > MAX_INPUT_CHARS:
            logger.warning(f"Text too long ({len(text)} chars), truncating to {MAX_INPUT_CHARS}")
            text = text[:MAX_INPUT_CHARS]
        text = text.replace("\x00", "")

        try:
            return await self._request(text)
        except _RetryableEmbeddingError as e:
            raise EmbeddingError(str(e)) from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(_RetryableEmbeddingError),
        reraise=True,
    )
    async def _request(self, text: str) -> List[float]:
        payload = {
            "model": self.model,
            "input": text,
            "dimensions": self.dimensions,
        }

        try:
            response = await self.client.post(
                f"{self.base_url}/embeddings",
                json=payload,
                headers=self._get_headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Embedding API error: {status} - {e.response.text}")
            if status == 429 or status >= 500:
                raise _RetryableEmbeddingError(f"Embedding request failed: {status}") from e
            raise EmbeddingError(f"Embedding request failed: {status}") from e
        except httpx.RequestError as e:
            logger.error(f"Embedding request error: {e}")
            raise _RetryableEmbeddingError("Failed to connect to embedding API") from e

        try:
            embedding = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingError(f"Unexpected embedding response: {e}") from e

        if len(embedding) != self.dimensions:
            raise EmbeddingError(
                f"Expected {self.dimensions} dimensions, got {len(embedding)}"
            )
        return embedding
