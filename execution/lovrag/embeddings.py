"""
Embedding Encoder for Legal RAG

Turns text into fixed-length dense vectors with a local
sentence-transformers model (all-MiniLM-L6-v2, 384 dimensions by default).

Architecture:
    EmbeddingConfig  -- model name, dimensionality, cache settings
    EmbeddingEncoder -- a ready handle: normalize, encode, cache
    EncoderLoader    -- one-time model loading; hands out the shared handle

The model is loaded exactly once per loader, under a lock, and the
resulting handle is passed explicitly to whoever needs it.
"""

import re
import json
import hashlib
import logging
import threading
from typing import Callable, Optional
from dataclasses import dataclass
from pathlib import Path

from .errors import EncodingUnavailable
from .models import StatuteRecord

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

# Content prefix length used when embedding a statute
STATUTE_CONTENT_CHARS = 1000


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding encoder."""
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimensions: int = 384
    cache_dir: Optional[str] = None
    use_cache: bool = True
    max_cache_entries: int = 10000


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE.sub(" ", text or "").strip()


def statute_embedding_text(record: StatuteRecord) -> str:
    """Text used to embed a statute: headings plus the start of its content."""
    parts = [
        record.title,
        record.law_number or "",
        record.chapter or "",
        record.section or "",
        record.paragraph or "",
        record.content[:STATUTE_CONTENT_CHARS],
    ]
    return " ".join(p for p in parts if p)


def _load_sentence_transformer(model_name: str):
    """Load a sentence-transformers model by name."""
    from sentence_transformers import SentenceTransformer
    return SentenceTransformer(model_name)


class EmbeddingEncoder:
    """
    A loaded embedding model.

    encode() is deterministic for identical normalized input and always
    returns exactly `dimensions` floats. Any model failure is raised as
    EncodingUnavailable.
    """

    def __init__(self, model, config: EmbeddingConfig):
        self._model = model
        self.config = config
        self._cache: dict[str, list[float]] = {}
        self._cache_lock = threading.Lock()

        if self.config.cache_dir:
            self._cache_path = Path(self.config.cache_dir)
            self._cache_path.mkdir(parents=True, exist_ok=True)
        else:
            self._cache_path = None

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions."""
        return self.config.dimensions

    @property
    def model_name(self) -> str:
        return self.config.model

    def encode(self, text: str) -> list[float]:
        """
        Embed a single text.

        Args:
            text: Arbitrary text; whitespace is normalized first

        Returns:
            Embedding vector of length `dimensions`
        """
        cleaned = normalize_text(text)
        cache_key = self._get_cache_key(cleaned)
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        try:
            output = self._model.encode(cleaned, normalize_embeddings=True)
        except Exception as e:
            logger.error(f"Embedding model {self.config.model} failed: {e}")
            raise EncodingUnavailable(f"Embedding model invocation failed: {e}") from e

        vector = [float(v) for v in (output.tolist() if hasattr(output, "tolist") else output)]
        if len(vector) != self.config.dimensions:
            raise EncodingUnavailable(
                f"Model {self.config.model} produced {len(vector)} dimensions, "
                f"configured for {self.config.dimensions}"
            )

        self._set_cached(cache_key, vector)
        return vector

    def encode_many(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts by repeated single calls."""
        return [self.encode(text) for text in texts]

    def _get_cache_key(self, text: str) -> str:
        """Generate cache key for normalized text."""
        content = f"{self.config.model}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]

    def _get_cached(self, key: str) -> Optional[list[float]]:
        """Get cached embedding."""
        if not self.config.use_cache:
            return None

        with self._cache_lock:
            if key in self._cache:
                return list(self._cache[key])

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            if cache_file.exists():
                try:
                    with open(cache_file) as f:
                        embedding = json.load(f)
                except (OSError, ValueError) as e:
                    logger.debug(f"Failed to read embedding cache file {cache_file}: {e}")
                    return None
                if len(embedding) == self.config.dimensions:
                    with self._cache_lock:
                        self._cache[key] = embedding
                    return list(embedding)

        return None

    def _set_cached(self, key: str, embedding: list[float]) -> None:
        """Cache an embedding."""
        if not self.config.use_cache:
            return

        with self._cache_lock:
            if len(self._cache) >= self.config.max_cache_entries:
                self._cache.pop(next(iter(self._cache)))
            self._cache[key] = list(embedding)

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            try:
                with open(cache_file, "w") as f:
                    json.dump(embedding, f)
            except OSError as e:
                logger.warning(f"Failed to cache embedding: {e}")


class EncoderLoader:
    """
    Loads the embedding model once and hands out the ready encoder.

    Safe for concurrent callers: the first load() runs the model factory
    under a lock, later calls return the same handle. A failed load is
    not cached, so a later call retries.
    """

    def __init__(
        self,
        config: Optional[EmbeddingConfig] = None,
        model_factory: Optional[Callable[[str], object]] = None,
    ):
        self.config = config or EmbeddingConfig()
        self._model_factory = model_factory or _load_sentence_transformer
        self._encoder: Optional[EmbeddingEncoder] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._encoder is not None

    def load(self) -> EmbeddingEncoder:
        """Return the ready encoder, loading the model on first use."""
        if self._encoder is not None:
            return self._encoder

        with self._lock:
            if self._encoder is None:
                logger.info(f"Loading embeddings model {self.config.model}...")
                try:
                    model = self._model_factory(self.config.model)
                except ImportError as e:
                    raise EncodingUnavailable(
                        "sentence-transformers not installed. "
                        "Run: pip install sentence-transformers"
                    ) from e
                except Exception as e:
                    logger.error(f"Failed to load embeddings model {self.config.model}: {e}")
                    raise EncodingUnavailable(
                        f"Could not load embedding model {self.config.model}: {e}"
                    ) from e
                self._encoder = EmbeddingEncoder(model, self.config)
                logger.info("Embeddings model loaded successfully")
        return self._encoder
