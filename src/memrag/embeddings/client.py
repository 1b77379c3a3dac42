"""
HTTP client for the embedding/rerank provider.

Speaks the provider's JSON API:

    POST /embeddings {input: [str], model}         -> {data: [{embedding, index}], usage}
    POST /rerank {query, documents, model, top_k}  -> {data: [{document, index, relevance_score}]}

Every failure (transport, non-2xx, malformed body) surfaces as
EmbeddingProviderError. There is no retry here.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from memrag.errors import EmbeddingProviderError
from memrag.logging import logger

DEFAULT_BASE_URL = "https://api.voyageai.com/v1"
DEFAULT_EMBEDDING_MODEL = "voyage-3.5"
DEFAULT_RERANK_MODEL = "rerank-lite-1"


@dataclass
class RerankResult:
    index: int # position in the documents list that was sent
    relevance_score: float
    document: str = ""


class EmbeddingClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.Client(timeout=httpx.Timeout(timeout))

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self._client.close()

    def _post_json(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        try:
            response = self._client.post(f"{self.base_url}{endpoint}", json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Provider request to {endpoint} failed: {e}")
            raise EmbeddingProviderError(f"request to {endpoint} failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Provider {endpoint} returned {response.status_code}")
            raise EmbeddingProviderError(
                f"{endpoint} failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            parsed = response.json()
        except ValueError as e:
            raise EmbeddingProviderError(f"invalid JSON from {endpoint}: {e}", body=response.text) from e
        if not isinstance(parsed, dict) or not isinstance(parsed.get("data"), list):
            raise EmbeddingProviderError(f"unexpected response shape from {endpoint}", body=response.text)
        return parsed

    def embed_batch(self, texts: List[str], model: str = DEFAULT_EMBEDDING_MODEL) -> List[List[float]]:
        """Embed a batch of texts. Output order matches input order."""
        if not texts:
            raise EmbeddingProviderError("no texts provided")
        model = model or DEFAULT_EMBEDDING_MODEL

        logger.info(f"Embedding {len(texts)} texts with {model}")
        parsed = self._post_json("/embeddings", {"input": texts, "model": model})

        vectors: List[Optional[List[float]]] = [None] * len(texts)
        try:
            for item in parsed["data"]:
                idx = int(item["index"])
                if idx < 0 or idx >= len(texts):
                    raise EmbeddingProviderError(f"invalid embedding index: {idx}")
                vectors[idx] = [float(v) for v in item["embedding"]]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingProviderError(f"malformed embedding item: {e}") from e

        missing = [i for i, v in enumerate(vectors) if v is None]
        if missing:
            raise EmbeddingProviderError(f"provider returned no embedding for indices {missing}")

        usage = parsed.get("usage") or {}
        logger.debug(f"Embedded {len(vectors)} texts ({usage.get('total_tokens', '?')} tokens)")
        return vectors

    def embed_one(self, text: str, model: str = DEFAULT_EMBEDDING_MODEL) -> List[float]:
        """Get embedding for a single string."""
        return self.embed_batch([text], model)[0]

    def rerank(
        self,
        query: str,
        documents: List[str],
        model: str = DEFAULT_RERANK_MODEL,
        top_k: Optional[int] = None,
    ) -> List[RerankResult]:
        """Rerank documents against a query. Results come back in provider order."""
        if not documents:
            raise EmbeddingProviderError("no documents provided")

        payload: Dict[str, Any] = {
            "query": query,
            "documents": documents,
            "model": model or DEFAULT_RERANK_MODEL,
        }
        if top_k:
            payload["top_k"] = top_k

        parsed = self._post_json("/rerank", payload)
        try:
            return [
                RerankResult(
                    index=int(item["index"]),
                    relevance_score=float(item["relevance_score"]),
                    document=item.get("document") or "",
                )
                for item in parsed["data"]
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingProviderError(f"malformed rerank item: {e}") from e

    def validate(self, model: str = DEFAULT_EMBEDDING_MODEL):
        """Check the API key by embedding a probe string."""
        try:
            self.embed_one("test", model)
        except EmbeddingProviderError as e:
            raise EmbeddingProviderError(f"API key validation failed: {e.message}", e.status_code, e.body) from e
