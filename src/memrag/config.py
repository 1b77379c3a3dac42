from dataclasses import dataclass
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MEMRAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    VOYAGE_API_KEY: SecretStr | None = Field(None, description="Embedding/rerank provider API key")
    VOYAGE_BASE_URL: str = Field(
        "https://api.voyageai.com/v1",
        description="Base URL of the embedding/rerank provider"
    )
    EMBEDDING_MODEL: str = Field("voyage-3.5", description="Model for chunk and query embeddings")
    RERANK_MODEL: str = Field("rerank-lite-1", description="Model for backlink reranking")
    REQUEST_TIMEOUT: float = Field(30.0, description="Per-request HTTP timeout in seconds")

    BATCH_SIZE: int = Field(50, description="Chunks per embedding request")
    BATCH_DELAY: float = Field(
        0.2,
        description="Seconds to wait between embedding batches (provider rate limits)"
    )

    CHUNK_MAX_SIZE: int = Field(1000, description="Maximum characters per chunk")
    CHUNK_MIN_SIZE: int = Field(100, description="Chunks shorter than this are dropped unless final")
    CHUNK_OVERLAP: int = Field(100, description="Characters shared between consecutive chunks")

    DISCOVERY_THRESHOLD: float = Field(
        0.5,
        description="Minimum similarity for creating a semantic backlink"
    )
    DISCOVERY_LIMIT: int = Field(20, description="Neighbours considered when creating backlinks")
    SEARCH_THRESHOLD: float = Field(0.1, description="Minimum similarity for search results")
    BACKLINK_DISPLAY_THRESHOLD: float = Field(
        0.1,
        description="Minimum similarity for semantic backlinks shown to callers"
    )

    DB_PATH: str = Field(".cache/memrag.db", description="SQLite database file")


@dataclass(frozen=True)
class RAGConfig:
    """Immutable processor configuration, built once and passed in explicitly."""
    embedding_model: str = "voyage-3.5"
    rerank_model: str = "rerank-lite-1"
    batch_size: int = 50
    batch_delay: float = 0.2
    chunk_max_size: int = 1000
    chunk_min_size: int = 100
    chunk_overlap: int = 100
    discovery_threshold: float = 0.5
    discovery_limit: int = 20
    search_threshold: float = 0.1
    backlink_display_threshold: float = 0.1
    snippet_length: int = 200

    @classmethod
    def from_settings(cls, s: Settings) -> "RAGConfig":
        return cls(
            embedding_model=s.EMBEDDING_MODEL,
            rerank_model=s.RERANK_MODEL,
            batch_size=s.BATCH_SIZE,
            batch_delay=s.BATCH_DELAY,
            chunk_max_size=s.CHUNK_MAX_SIZE,
            chunk_min_size=s.CHUNK_MIN_SIZE,
            chunk_overlap=s.CHUNK_OVERLAP,
            discovery_threshold=s.DISCOVERY_THRESHOLD,
            discovery_limit=s.DISCOVERY_LIMIT,
            search_threshold=s.SEARCH_THRESHOLD,
            backlink_display_threshold=s.BACKLINK_DISPLAY_THRESHOLD,
        )

# Singleton instance
settings = Settings()
