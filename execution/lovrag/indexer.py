"""
Embedding indexer

Embeds statutes that have no embedding yet, in batches, and re-embeds
single statutes on demand. A failing record is logged and skipped so one
bad provision does not stop the run.
"""

import time
import logging
from dataclasses import dataclass, field

from .embeddings import EmbeddingEncoder, statute_embedding_text
from .errors import LovRagError, NotFound
from .metrics import get_metrics_collector
from .models import EmbeddingRecord
from .vector_store import CorpusStore

logger = logging.getLogger(__name__)


@dataclass
class IndexingReport:
    """Outcome of an indexing run."""
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    failed_ids: list[str] = field(default_factory=list)
    duration_ms: float = 0

    @property
    def total(self) -> int:
        return self.processed + self.skipped + self.failed

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "failed_ids": list(self.failed_ids),
            "duration_ms": round(self.duration_ms, 2),
        }


class EmbeddingIndexer:
    """Fills the corpus store with statute embeddings."""

    def __init__(self, store: CorpusStore, encoder: EmbeddingEncoder):
        self.store = store
        self.encoder = encoder

    def embed_statute(self, statute_id: str) -> EmbeddingRecord:
        record = self.store.get_statute(statute_id)
        if record is None:
            raise NotFound(f"Statute {statute_id} not found")
        vector = self.encoder.encode(statute_embedding_text(record))
        return self.store.upsert_embedding(record.id, vector)

    def index_missing(self, batch_size: int = 10) -> IndexingReport:
        """
        Embed every statute that lacks an embedding.

        Args:
            batch_size: Records encoded per batch (progress is logged per batch)

        Returns:
            IndexingReport with processed / skipped / failed counts
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        start = time.time()
        report = IndexingReport()
        pending = self.store.list_unembedded_statutes()
        logger.info(f"Found {len(pending)} statutes without embeddings")

        for offset in range(0, len(pending), batch_size):
            batch = pending[offset:offset + batch_size]
            for record in batch:
                if self.store.has_embedding(record.id):
                    report.skipped += 1
                    continue
                try:
                    vector = self.encoder.encode(statute_embedding_text(record))
                    self.store.upsert_embedding(record.id, vector)
                    report.processed += 1
                except LovRagError as e:
                    logger.warning(f"Skipping statute {record.id} ({record.title}): {e}")
                    report.failed += 1
                    report.failed_ids.append(record.id)
            logger.info(
                f"Indexed batch {offset // batch_size + 1}: "
                f"{min(offset + batch_size, len(pending))}/{len(pending)} statutes"
            )

        report.duration_ms = (time.time() - start) * 1000
        get_metrics_collector().record_indexing(report.processed, report.failed)
        logger.info(
            f"Indexing finished: {report.processed} processed, "
            f"{report.skipped} skipped, {report.failed} failed"
        )
        return report

    def reindex_statute(self, statute_id: str) -> EmbeddingRecord:
        """Re-embed one statute, replacing its current embedding."""
        embedding = self.embed_statute(statute_id)
        logger.info(f"Re-indexed statute {statute_id}")
        return embedding
