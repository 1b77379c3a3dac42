from typing import Optional


class MemragError(Exception):
    """Base exception for memrag errors."""


class EmbeddingProviderError(MemragError):
    """Any failure talking to the embedding/rerank provider.

    Covers transport errors, non-2xx responses and malformed payloads.
    No retry happens at the client layer; callers decide.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(self.message)


class MemoryNotFoundError(MemragError):
    """Requested memory name is not in the store."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"memory not found: {name}")


class ConfigurationError(MemragError):
    """Processor cannot be built from the current settings."""
    pass
