"""
Runtime Configuration for the Danish Legal RAG Pipeline

All tunables live in one dataclass. Values come from defaults, can be
overridden from environment variables via RagConfig.from_env(), and are
checked with validate() before the service container wires anything.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


# Backends the generator knows how to build, in default priority order
KNOWN_BACKENDS = ("deepseek", "rule_based")

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


@dataclass
class RagConfig:
    """Configuration for the whole RAG pipeline."""
    # Embedding space (fixed at configuration time)
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dimensions: int = 384
    encoder_timeout_s: float = 10.0

    # Retrieval
    top_k: int = 5
    min_score: float = 0.0
    search_timeout_s: float = 10.0

    # Prompt / citation sizing
    excerpt_chars: int = 500
    snippet_chars: int = 200

    # Generation
    backend_order: list[str] = field(default_factory=lambda: list(KNOWN_BACKENDS))
    backend_timeout_s: float = 60.0
    deepseek_api_key: Optional[str] = None
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_model: str = "deepseek-reasoner"
    temperature: float = 0.3
    max_tokens: int = 1500
    history_messages: int = 6

    # Persistence (None -> in-memory stores)
    database_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RagConfig":
        """
        Build a configuration from environment variables.

        Unset variables fall back to the dataclass defaults.
        """
        backends = os.getenv("LOVRAG_BACKENDS")
        backend_order = (
            [b.strip() for b in backends.split(",") if b.strip()]
            if backends else list(KNOWN_BACKENDS)
        )
        return cls(
            embedding_model=os.getenv("LOVRAG_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            embedding_dimensions=_env_int("LOVRAG_EMBEDDING_DIMENSIONS", 384),
            encoder_timeout_s=_env_float("LOVRAG_ENCODER_TIMEOUT", 10.0),
            top_k=_env_int("LOVRAG_TOP_K", 5),
            min_score=_env_float("LOVRAG_MIN_SCORE", 0.0),
            search_timeout_s=_env_float("LOVRAG_SEARCH_TIMEOUT", 10.0),
            backend_order=backend_order,
            backend_timeout_s=_env_float("LOVRAG_BACKEND_TIMEOUT", 60.0),
            deepseek_api_key=os.getenv("DEEPSEEK_API_KEY") or None,
            deepseek_base_url=os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com"),
            deepseek_model=os.getenv("DEEPSEEK_MODEL", "deepseek-reasoner"),
            database_url=os.getenv("POSTGRES_URL") or os.getenv("DATABASE_URL") or None,
        )

    def validate(self) -> "RagConfig":
        """Raise ValueError on settings the pipeline cannot run with."""
        if self.embedding_dimensions <= 0:
            raise ValueError(
                f"embedding_dimensions must be positive, got {self.embedding_dimensions}"
            )
        if self.top_k < 0:
            raise ValueError(f"top_k must be >= 0, got {self.top_k}")
        if not -1.0 <= self.min_score <= 1.0:
            raise ValueError(f"min_score must be within [-1, 1], got {self.min_score}")
        unknown = [b for b in self.backend_order if b not in KNOWN_BACKENDS]
        if unknown:
            raise ValueError(
                f"Unknown answer backends {unknown}; expected any of {list(KNOWN_BACKENDS)}"
            )
        for name in ("encoder_timeout_s", "search_timeout_s", "backend_timeout_s"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        return self

    @property
    def deepseek_configured(self) -> bool:
        """True when a real DeepSeek API key is present."""
        return bool(self.deepseek_api_key) and self.deepseek_api_key != "not-configured"
