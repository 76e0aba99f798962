"""
Semantic Retriever for Legal RAG

Encodes the query, searches the corpus store by cosine similarity and
drops candidates below a relevance floor. The floor is a parameter:
the chat pipeline and the plain search command use different values.

Encoding and search are blocking calls, so both run in worker threads
under a timeout to keep other turns responsive.
"""

import time
import asyncio
import logging
from typing import Optional
from dataclasses import dataclass

from .errors import RetrievalUnavailable
from .models import RetrievalCandidate
from .vector_store import CorpusStore

logger = logging.getLogger(__name__)


@dataclass
class RetrievalConfig:
    """Configuration for semantic retrieval."""
    top_k: int = 5
    # 0.0 is permissive; ~0.3 keeps only clearly related provisions
    min_score: float = 0.0
    encoder_timeout_s: float = 10.0
    search_timeout_s: float = 10.0


class SemanticRetriever:
    """
    Vector retriever over the corpus store.

    Any encoder or store failure (including timeouts) reaches the caller
    as RetrievalUnavailable; the cause is logged and chained.
    """

    def __init__(
        self,
        store: CorpusStore,
        encoder,
        config: Optional[RetrievalConfig] = None,
    ):
        """
        Initialize retriever.

        Args:
            store: Corpus store to search
            encoder: Ready embedding encoder handle (anything with encode(text))
            config: Optional configuration. Uses defaults if not provided.
        """
        self.store = store
        self.encoder = encoder
        self.config = config or RetrievalConfig()

    async def _encode(self, query: str) -> list[float]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.encoder.encode, query),
                timeout=self.config.encoder_timeout_s,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Query encoding timed out after {self.config.encoder_timeout_s}s")
            raise RetrievalUnavailable("Query encoding timed out") from e
        except Exception as e:
            logger.error(f"Query encoding failed: {type(e).__name__}: {e}")
            raise RetrievalUnavailable(f"Query encoding failed: {e}") from e

    async def _search(
        self,
        vector: list[float],
        domain_filter: Optional[list[str]],
        top_k: int,
    ) -> list[RetrievalCandidate]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.store.search, vector, domain_filter, top_k),
                timeout=self.config.search_timeout_s,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Corpus search timed out after {self.config.search_timeout_s}s")
            raise RetrievalUnavailable("Corpus search timed out") from e
        except Exception as e:
            logger.error(f"Corpus search failed: {type(e).__name__}: {e}")
            raise RetrievalUnavailable(f"Corpus search failed: {e}") from e

    async def retrieve(
        self,
        query: str,
        domain_filter: Optional[list[str]] = None,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> list[RetrievalCandidate]:
        """
        Retrieve statutes relevant to a query.

        Args:
            query: User question
            domain_filter: Optional domain ids narrowing the search
            top_k: Maximum candidates (defaults to config.top_k)
            min_score: Relevance floor (defaults to config.min_score)

        Returns:
            Candidates with score >= min_score, best first
        """
        top_k = self.config.top_k if top_k is None else top_k
        min_score = self.config.min_score if min_score is None else min_score
        start = time.time()

        vector = await self._encode(query)
        candidates = await self._search(vector, domain_filter, top_k)
        kept = [c for c in candidates if c.score >= min_score]

        elapsed = (time.time() - start) * 1000
        logger.info(
            f"Retrieved {len(kept)}/{len(candidates)} statutes "
            f"(min_score={min_score}) in {elapsed:.0f}ms"
        )
        for i, c in enumerate(kept, 1):
            logger.debug(f"  {i}. {c.statute.title} (similarity: {c.relevance_percent})")
        return kept
