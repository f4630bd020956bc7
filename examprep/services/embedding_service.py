"""
Embedding service for query and knowledge-base embeddings
Uses the OpenAI embeddings API with an in-process cache keyed by normalized text
"""

from typing import List, Optional
from openai import AsyncOpenAI

from examprep.config import settings
from examprep.utils.cache import Cache
from examprep.utils.helpers import normalize_query
from examprep.utils.logger import logger

# text-embedding-3-small supports up to 8191 tokens, roughly 4 characters each
MAX_EMBEDDING_CHARS = 30000


def create_openai_client() -> Optional[AsyncOpenAI]:
    """Create the async OpenAI client, or None when no key is configured"""
    try:
        if settings.OPENAI_API_KEY and "your-openai" not in settings.OPENAI_API_KEY:
            return AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        logger.warning("OpenAI API key not configured. AI features will not work.")
        return None
    except Exception as e:
        logger.error(f"Error initializing OpenAI client: {str(e)}")
        return None


class EmbeddingService:
    """Generates embeddings, reusing cached vectors for repeated text"""

    def __init__(self, client: Optional[AsyncOpenAI], cache: Optional[Cache] = None, model: Optional[str] = None):
        self.client = client
        self.cache = cache if cache is not None else Cache(default_ttl=None, max_entries=settings.EMBEDDING_CACHE_MAX_ENTRIES)
        self.model = model or settings.OPENAI_EMBEDDING_MODEL

    def _require_client(self) -> AsyncOpenAI:
        if not self.client:
            raise RuntimeError("OpenAI client not initialized")
        return self.client

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Embed a single text

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            ValueError: empty text
            RuntimeError: no OpenAI client
        """
        if not text or not text.strip():
            raise ValueError("Empty text provided for embedding")

        key = normalize_query(text)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        if len(text) > MAX_EMBEDDING_CHARS:
            text = text[:MAX_EMBEDDING_CHARS]
            logger.warning(f"Text truncated to {MAX_EMBEDDING_CHARS} characters for embedding")

        response = await self._require_client().embeddings.create(model=self.model, input=text)
        embedding = response.data[0].embedding
        self.cache.set(key, embedding)
        return embedding
