import time
from typing import List, Sequence, Union

from memrag.embeddings.chunker import Chunk
from memrag.embeddings.client import EmbeddingClient
from memrag.errors import EmbeddingProviderError
from memrag.logging import logger

DEFAULT_BATCH_SIZE = 100
DEFAULT_DELAY = 0.1


class BatchEmbedder:
    """
    Embeds chunks in fixed-size batches with a pause between requests.

    This is cooperative pacing for provider rate limits, not a token bucket:
    the delay is constant and does not react to 429s. The first failing batch
    aborts the whole call; no partial vector list is ever returned.
    """

    def __init__(self, client: EmbeddingClient, batch_size: int = 50, delay: float = 0.2):
        self.client = client
        self.batch_size = batch_size if batch_size > 0 else DEFAULT_BATCH_SIZE
        self.delay = delay if delay > 0 else DEFAULT_DELAY

    def embed_all(self, chunks: Sequence[Union[Chunk, str]], model: str) -> List[List[float]]:
        if not chunks:
            return []

        texts = [c.text if isinstance(c, Chunk) else c for c in chunks]
        vectors: List[List[float]] = []

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i:i + self.batch_size]
            try:
                vectors.extend(self.client.embed_batch(batch, model))
            except EmbeddingProviderError as e:
                logger.error(f"Embedding batch starting at {i} failed: {e}")
                raise EmbeddingProviderError(
                    f"failed to embed batch starting at {i}: {e.message}",
                    status_code=e.status_code,
                    body=e.body,
                ) from e

            # No sleep after the last batch
            if i + self.batch_size < len(texts):
                time.sleep(self.delay)

        return vectors
