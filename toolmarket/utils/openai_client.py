"""
Embedding client utilities.

Tool registration and discovery only need one thing from a language model
provider: a fixed-length vector for a piece of text. This module defines that
contract and an OpenAI-backed implementation of it.
"""

import logging
from typing import List, Optional, Protocol

from openai import AsyncOpenAI, OpenAIError
from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_exponential

from toolmarket.config import settings
from toolmarket.utils.error_handling import EmbeddingUnavailable

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    """Maps arbitrary text to a fixed-length vector of floats."""

    async def embed(self, text: str) -> List[float]:
        ...


class OpenAIEmbeddingProvider:
    """
    Embedding provider backed by the OpenAI embeddings endpoint.

    Transient provider errors are retried with exponential backoff; once the
    attempts are used up the failure is reported as EmbeddingUnavailable.
    """

    def __init__(self,
                 api_key: Optional[str] = None,
                 model: Optional[str] = None,
                 max_attempts: Optional[int] = None,
                 client: Optional[AsyncOpenAI] = None):
        """
        Initialize the provider.

        Args:
            api_key: OpenAI API key (defaults to settings)
            model: Embedding model name (defaults to settings)
            max_attempts: Attempts per text before giving up (defaults to settings)
            client: Pre-built client, mainly for tests
        """
        self.model = model or settings.embedding_model
        self.max_attempts = max_attempts or settings.embedding_max_attempts
        self._api_key = api_key or settings.openai_api_key
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # Built lazily so that importing the module never requires a key
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def embed(self, text: str) -> List[float]:
        """
        Get an embedding for a piece of text.

        Args:
            text: The text to embed

        Returns:
            The embedding as a list of floats

        Raises:
            EmbeddingUnavailable: If the provider keeps failing or returns nothing
        """
        try:
            async for attempt in AsyncRetrying(
                wait=wait_exponential(min=1, max=20),
                stop=stop_after_attempt(self.max_attempts),
                reraise=True
            ):
                with attempt:
                    response = await self.client.embeddings.create(model=self.model, input=text)
        except (OpenAIError, RetryError) as e:
            logger.error(f"Error getting embedding: {e}")
            raise EmbeddingUnavailable(
                f"Embedding provider failed: {e}",
                component="embeddings",
                details={"model": self.model}
            ) from e

        if not response.data or not response.data[0].embedding:
            raise EmbeddingUnavailable("Embedding provider returned no vector", component="embeddings")

        return list(response.data[0].embedding)
