"""OpenAI embedding provider for semantic query vectors."""

from __future__ import annotations

from openai import AsyncOpenAI

from hybrid_engine.exceptions import EmbeddingError
from hybrid_engine.observability.logger import get_logger

logger = get_logger("embeddings")


class OpenAIEmbedder:
    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key)
        self._model = model
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed_query(self, query: str) -> list[float]:
        if not query.strip():
            raise EmbeddingError("Cannot embed an empty query")
        try:
            response = await self._client.embeddings.create(
                input=[query], model=self._model, dimensions=self._dimensions
            )
        except Exception as e:
            raise EmbeddingError(f"Failed to embed query: {e}") from e
        embedding = response.data[0].embedding
        logger.debug("embedded_query", model=self._model, dimensions=len(embedding))
        return embedding
