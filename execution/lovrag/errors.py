"""
Error taxonomy for the Legal RAG pipeline.

Ingestion errors (DimensionMismatch) surface to the ingestion caller.
Retrieval and generation errors are absorbed by the conversation
orchestrator and turned into a fallback answer.
"""

from enum import Enum
from typing import Optional


class LovRagError(Exception):
    """Base class for all pipeline errors."""


class EncodingUnavailable(LovRagError):
    """Raised when the embedding model cannot be loaded or invoked."""


class DimensionMismatch(LovRagError):
    """Raised when a vector does not have the configured dimensionality."""

    def __init__(self, expected: int, actual: int, statute_id: Optional[str] = None):
        target = f" for statute {statute_id}" if statute_id else ""
        super().__init__(
            f"Embedding dimension mismatch{target}: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual
        self.statute_id = statute_id


class RetrievalUnavailable(LovRagError):
    """Raised by the retriever when encoding or corpus search fails."""


class NotFound(LovRagError):
    """Raised when a statute, session or message cannot be located."""


class FailureKind(str, Enum):
    """Why an answer backend failed."""
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    BAD_REQUEST = "bad_request"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"

    @property
    def is_configuration_error(self) -> bool:
        """Configuration errors skip the remaining backends."""
        return self in (FailureKind.UNAUTHORIZED, FailureKind.BAD_REQUEST)


class GenerationFailure(LovRagError):
    """Raised by an answer backend; carries the failure kind."""

    def __init__(self, kind: FailureKind, message: str = "", backend: str = ""):
        super().__init__(message or f"{backend or 'backend'} failed: {kind.value}")
        self.kind = kind
        self.backend = backend
