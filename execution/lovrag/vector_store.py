"""
Corpus Store: statutes, their embeddings, and cosine similarity search

Two implementations share the CorpusStore interface:
- InMemoryCorpusStore: numpy-backed, for development, tests and small corpora
- PgVectorCorpusStore: PostgreSQL + pgvector, for production

A statute has at most one active embedding. Statutes without one are
simply not searchable. Upserting an embedding replaces the whole vector
at once, so a concurrent search sees either the old or the new vector.
"""

import logging
import threading
from typing import Iterable, Optional
from dataclasses import replace

import numpy as np
import psycopg2

from .database import Database
from .errors import DimensionMismatch, NotFound
from .models import EmbeddingRecord, RetrievalCandidate, StatuteRecord, new_id, utcnow

logger = logging.getLogger(__name__)

# Norm below which a vector is treated as zero (similarity 0)
ZERO_NORM_EPSILON = 1e-12


def cosine_scores(query: Iterable[float], matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of `query` against each row of `matrix`.

    Rows (or a query) with near-zero norm score 0.0 instead of dividing
    by zero. Results are clipped to [-1, 1].
    """
    q = np.asarray(list(query), dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    if matrix.shape[0] == 0:
        return scores

    q_norm = np.linalg.norm(q)
    if q_norm < ZERO_NORM_EPSILON:
        return scores

    row_norms = np.linalg.norm(matrix, axis=1)
    valid = row_norms >= ZERO_NORM_EPSILON
    scores[valid] = (matrix[valid] @ q) / (row_norms[valid] * q_norm)
    return np.clip(scores, -1.0, 1.0)


def cosine_similarity(a: Iterable[float], b: Iterable[float]) -> float:
    """Cosine similarity between two vectors (0.0 for near-zero vectors)."""
    return float(cosine_scores(a, np.asarray([list(b)], dtype=np.float64))[0])


def _normalize_domain_filter(domain_filter: Optional[Iterable[str]]) -> Optional[frozenset]:
    """An empty domain filter means no filter."""
    if not domain_filter:
        return None
    return frozenset(domain_filter)


class CorpusStore:
    """
    Interface shared by corpus store implementations.

    Subclasses implement statute storage, embedding upsert and search.
    """

    def __init__(self, dimensions: int):
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        """Embedding dimensionality every stored vector must have."""
        return self._dimensions

    def _check_dimensions(self, vector, statute_id: Optional[str] = None) -> None:
        if len(vector) != self._dimensions:
            raise DimensionMismatch(self._dimensions, len(vector), statute_id)

    # Ingestion
    def put_statute(self, record: StatuteRecord) -> StatuteRecord:
        raise NotImplementedError

    def upsert_embedding(self, statute_id: str, vector: list[float]) -> EmbeddingRecord:
        raise NotImplementedError

    # Reads
    def get_statute(self, statute_id: str) -> Optional[StatuteRecord]:
        raise NotImplementedError

    def get_statute_by_source_id(self, source_id: str) -> Optional[StatuteRecord]:
        raise NotImplementedError

    def list_statutes(self, domain_filter: Optional[list[str]] = None) -> list[StatuteRecord]:
        raise NotImplementedError

    def list_unembedded_statutes(self) -> list[StatuteRecord]:
        raise NotImplementedError

    def has_embedding(self, statute_id: str) -> bool:
        raise NotImplementedError

    def count_embeddings(self) -> int:
        raise NotImplementedError

    # Search
    def search(
        self,
        query_vector: list[float],
        domain_filter: Optional[list[str]] = None,
        top_k: int = 10,
    ) -> list[RetrievalCandidate]:
        raise NotImplementedError

    def close(self) -> None:
        """Release resources held by the store."""


class InMemoryCorpusStore(CorpusStore):
    """
    Corpus store held in process memory.

    Writers serialize on a lock and publish new dictionaries (copy on
    write); readers grab the current dictionary once and never lock.
    """

    def __init__(self, dimensions: int = 384):
        super().__init__(dimensions)
        self._statutes: dict[str, StatuteRecord] = {}
        self._source_index: dict[str, str] = {}
        self._embeddings: dict[str, EmbeddingRecord] = {}
        self._write_lock = threading.Lock()

    def put_statute(self, record: StatuteRecord) -> StatuteRecord:
        """Insert a statute, or update the one with the same source id."""
        with self._write_lock:
            existing_id = self._source_index.get(record.source_id)
            if existing_id is not None and existing_id != record.id:
                record = replace(record, id=existing_id)

            statutes = dict(self._statutes)
            statutes[record.id] = record
            source_index = dict(self._source_index)
            source_index[record.source_id] = record.id

            self._source_index = source_index
            self._statutes = statutes

        logger.debug(f"Stored statute {record.id} ({record.source_id})")
        return record

    def upsert_embedding(self, statute_id: str, vector: list[float]) -> EmbeddingRecord:
        """Set the active embedding of a statute, replacing any previous one."""
        self._check_dimensions(vector, statute_id)
        if statute_id not in self._statutes:
            raise NotFound(f"Statute {statute_id} not found")

        frozen = tuple(float(v) for v in vector)
        with self._write_lock:
            previous = self._embeddings.get(statute_id)
            record = EmbeddingRecord(
                id=previous.id if previous else new_id(),
                statute_id=statute_id,
                vector=frozen,
                created_at=utcnow(),
            )
            embeddings = dict(self._embeddings)
            embeddings[statute_id] = record
            self._embeddings = embeddings
        return record

    def get_statute(self, statute_id: str) -> Optional[StatuteRecord]:
        return self._statutes.get(statute_id)

    def get_statute_by_source_id(self, source_id: str) -> Optional[StatuteRecord]:
        statute_id = self._source_index.get(source_id)
        return self._statutes.get(statute_id) if statute_id else None

    def list_statutes(self, domain_filter: Optional[list[str]] = None) -> list[StatuteRecord]:
        domains = _normalize_domain_filter(domain_filter)
        return [
            s for s in self._statutes.values()
            if domains is None or s.domain_id in domains
        ]

    def list_unembedded_statutes(self) -> list[StatuteRecord]:
        embeddings = self._embeddings
        return [s for s in self._statutes.values() if s.id not in embeddings]

    def has_embedding(self, statute_id: str) -> bool:
        return statute_id in self._embeddings

    def count_embeddings(self) -> int:
        return len(self._embeddings)

    def search(
        self,
        query_vector: list[float],
        domain_filter: Optional[list[str]] = None,
        top_k: int = 10,
    ) -> list[RetrievalCandidate]:
        """
        Rank indexed statutes by cosine similarity to `query_vector`.

        Args:
            query_vector: Query embedding
            domain_filter: Optional domain ids; empty or None searches everything
            top_k: Maximum number of candidates

        Returns:
            Candidates in non-increasing score order, ties in store order
        """
        self._check_dimensions(query_vector)
        if top_k <= 0:
            return []

        embeddings = self._embeddings
        statutes = self._statutes
        domains = _normalize_domain_filter(domain_filter)

        entries = []
        for statute_id, embedding in embeddings.items():
            statute = statutes.get(statute_id)
            if statute is None:
                continue
            if domains is not None and statute.domain_id not in domains:
                continue
            entries.append((statute, embedding.vector))

        if not entries:
            return []

        matrix = np.asarray([vector for _, vector in entries], dtype=np.float64)
        scores = cosine_scores(query_vector, matrix)
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [RetrievalCandidate(statute=entries[i][0], score=float(scores[i])) for i in order]


_STATUTE_COLUMNS = (
    "id", "title", "law_number", "chapter", "section", "paragraph",
    "content", "domain_id", "source_url", "last_updated", "source_id",
)


def _row_to_statute(row: dict) -> StatuteRecord:
    return StatuteRecord(
        id=str(row["id"]),
        title=row["title"],
        content=row["content"],
        source_id=row["source_id"],
        law_number=row.get("law_number"),
        chapter=row.get("chapter"),
        section=row.get("section"),
        paragraph=row.get("paragraph"),
        domain_id=row.get("domain_id"),
        source_url=row.get("source_url"),
        last_updated=row.get("last_updated") or utcnow(),
    )


class PgVectorCorpusStore(CorpusStore):
    """
    PostgreSQL corpus store with pgvector.

    Features:
    - Cosine similarity search (`<=>` operator, HNSW index)
    - Domain filtering
    - Idempotent statute upsert on the external source id
    - One embedding row per statute, replaced atomically on upsert
    """

    def __init__(self, database: Database, dimensions: int = 384):
        super().__init__(dimensions)
        self._db = database

    def _execute_with_retry(self, operation, label="db_operation"):
        return self._db.execute_with_retry(operation, label)

    def close(self) -> None:
        self._db.close()

    def initialize_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        schema_sql = f"""
        CREATE EXTENSION IF NOT EXISTS vector;

        CREATE TABLE IF NOT EXISTS law_texts (
            id UUID PRIMARY KEY,
            title TEXT NOT NULL,
            law_number TEXT,
            chapter TEXT,
            section TEXT,
            paragraph TEXT,
            content TEXT NOT NULL,
            domain_id TEXT,
            source_url TEXT,
            last_updated TIMESTAMPTZ DEFAULT NOW(),
            source_id TEXT NOT NULL UNIQUE
        );
        CREATE INDEX IF NOT EXISTS law_texts_domain_idx ON law_texts(domain_id);

        -- One active embedding per statute; seq gives a stable store order
        CREATE TABLE IF NOT EXISTS text_embeddings (
            id UUID PRIMARY KEY,
            seq BIGSERIAL,
            law_text_id UUID NOT NULL UNIQUE REFERENCES law_texts(id) ON DELETE CASCADE,
            embedding VECTOR({self.dimensions}) NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS text_embeddings_hnsw_idx
            ON text_embeddings USING hnsw (embedding vector_cosine_ops);
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(schema_sql)
                conn.commit()
            logger.info("Corpus schema initialized successfully")

        self._execute_with_retry(_op, "initialize_schema")

    def put_statute(self, record: StatuteRecord) -> StatuteRecord:
        """Insert a statute, or update the one with the same source id."""
        sql = f"""
        INSERT INTO law_texts
            (id, title, law_number, chapter, section, paragraph,
             content, domain_id, source_url, last_updated, source_id)
        VALUES (%s::uuid, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (source_id) DO UPDATE SET
            title = EXCLUDED.title,
            law_number = EXCLUDED.law_number,
            chapter = EXCLUDED.chapter,
            section = EXCLUDED.section,
            paragraph = EXCLUDED.paragraph,
            content = EXCLUDED.content,
            domain_id = EXCLUDED.domain_id,
            source_url = EXCLUDED.source_url,
            last_updated = EXCLUDED.last_updated
        RETURNING {", ".join(_STATUTE_COLUMNS)}
        """
        params = (
            record.id, record.title, record.law_number, record.chapter,
            record.section, record.paragraph, record.content, record.domain_id,
            record.source_url, record.last_updated, record.source_id,
        )

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
                conn.commit()
            return _row_to_statute(row)

        return self._execute_with_retry(_op, "put_statute")

    def upsert_embedding(self, statute_id: str, vector: list[float]) -> EmbeddingRecord:
        """Set the active embedding of a statute in a single statement."""
        self._check_dimensions(vector, statute_id)
        values = [float(v) for v in vector]
        sql = """
        INSERT INTO text_embeddings (id, law_text_id, embedding)
        VALUES (%s::uuid, %s::uuid, %s::vector)
        ON CONFLICT (law_text_id) DO UPDATE SET
            embedding = EXCLUDED.embedding,
            created_at = NOW()
        RETURNING id, law_text_id, created_at
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (new_id(), statute_id, values))
                row = cur.fetchone()
                conn.commit()
            return row

        try:
            row = self._execute_with_retry(_op, "upsert_embedding")
        except psycopg2.IntegrityError as e:
            raise NotFound(f"Statute {statute_id} not found") from e

        return EmbeddingRecord(
            id=str(row["id"]),
            statute_id=str(row["law_text_id"]),
            vector=tuple(values),
            created_at=row["created_at"],
        )

    def _fetch_statutes(self, where: str, params: tuple, label: str) -> list[StatuteRecord]:
        sql = f"SELECT {', '.join('t.' + c for c in _STATUTE_COLUMNS)} FROM law_texts t {where}"

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall()

        return [_row_to_statute(row) for row in self._execute_with_retry(_op, label)]

    def get_statute(self, statute_id: str) -> Optional[StatuteRecord]:
        rows = self._fetch_statutes("WHERE t.id = %s::uuid", (statute_id,), "get_statute")
        return rows[0] if rows else None

    def get_statute_by_source_id(self, source_id: str) -> Optional[StatuteRecord]:
        rows = self._fetch_statutes(
            "WHERE t.source_id = %s", (source_id,), "get_statute_by_source_id"
        )
        return rows[0] if rows else None

    def list_statutes(self, domain_filter: Optional[list[str]] = None) -> list[StatuteRecord]:
        domains = _normalize_domain_filter(domain_filter)
        if domains is None:
            return self._fetch_statutes("ORDER BY t.title", (), "list_statutes")
        return self._fetch_statutes(
            "WHERE t.domain_id = ANY(%s) ORDER BY t.title", (sorted(domains),), "list_statutes"
        )

    def list_unembedded_statutes(self) -> list[StatuteRecord]:
        return self._fetch_statutes(
            "WHERE NOT EXISTS (SELECT 1 FROM text_embeddings e WHERE e.law_text_id = t.id)",
            (),
            "list_unembedded_statutes",
        )

    def has_embedding(self, statute_id: str) -> bool:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT 1 AS found FROM text_embeddings WHERE law_text_id = %s::uuid",
                    (statute_id,),
                )
                return cur.fetchone() is not None

        return self._execute_with_retry(_op, "has_embedding")

    def count_embeddings(self) -> int:
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) AS n FROM text_embeddings")
                return int(cur.fetchone()["n"])

        return self._execute_with_retry(_op, "count_embeddings")

    def search(
        self,
        query_vector: list[float],
        domain_filter: Optional[list[str]] = None,
        top_k: int = 10,
    ) -> list[RetrievalCandidate]:
        """
        Semantic search using pgvector cosine distance.

        Args:
            query_vector: Query embedding vector
            domain_filter: Optional domain ids; empty or None searches everything
            top_k: Number of results to return

        Returns:
            Candidates in non-increasing score order, ties by insertion order
        """
        self._check_dimensions(query_vector)
        if top_k <= 0:
            return []

        values = [float(v) for v in query_vector]
        params: dict = {"top_k": top_k, "eps": ZERO_NORM_EPSILON}

        if float(np.linalg.norm(values)) < ZERO_NORM_EPSILON:
            score_sql = "0::float8"
        else:
            score_sql = (
                "CASE WHEN vector_norm(e.embedding) < %(eps)s THEN 0::float8 "
                "ELSE 1 - (e.embedding <=> %(query)s::vector) END"
            )
            params["query"] = values

        where_clause = ""
        domains = _normalize_domain_filter(domain_filter)
        if domains is not None:
            where_clause = "WHERE t.domain_id = ANY(%(domains)s)"
            params["domains"] = sorted(domains)

        sql = f"""
        SELECT {", ".join("t." + c for c in _STATUTE_COLUMNS)},
               {score_sql} AS score
        FROM text_embeddings e
        JOIN law_texts t ON t.id = e.law_text_id
        {where_clause}
        ORDER BY score DESC, e.seq ASC
        LIMIT %(top_k)s
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall()

        rows = self._execute_with_retry(_op, "search")
        return [
            RetrievalCandidate(statute=_row_to_statute(row), score=float(row["score"]))
            for row in rows
        ]
