"""
Citation Builder

Turns the retrieval candidates that grounded an answer into citations:
one per candidate, same order, score copied unchanged, and a short
snippet of the statute text.
"""

import logging

from .models import Citation, RetrievalCandidate
from .prompts import truncate_text

logger = logging.getLogger(__name__)


class CitationBuilder:
    """Maps retrieval candidates to persisted citations."""

    def __init__(self, snippet_chars: int = 200):
        self.snippet_chars = snippet_chars

    def snippet(self, content: str) -> str:
        return truncate_text(content, self.snippet_chars)

    def build(self, candidates: list[RetrievalCandidate]) -> list[Citation]:
        """
        Build citations for the candidates an answer was grounded on.

        Args:
            candidates: Retrieval candidates in rank order

        Returns:
            One citation per candidate, in the same order
        """
        citations = [
            Citation(
                statute_id=c.statute.id,
                relevance_score=c.score,
                snippet=self.snippet(c.statute.content),
            )
            for c in candidates
        ]
        logger.debug(f"Built {len(citations)} citations")
        return citations
