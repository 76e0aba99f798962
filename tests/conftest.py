"""
Shared fixtures and test utilities for the lovrag tests.

Provides deterministic encoders, a keyword-matching retriever double,
scripted answer backends and sample Danish statutes, so that all tests
run without model downloads, API keys, databases or network access.
"""

import sys
import hashlib
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

TEST_DIMENSIONS = 8


# ---------------------------------------------------------------------------
# Sample statutes
# ---------------------------------------------------------------------------

SAMPLE_STATUTES = [
    {
        "id": "11111111-1111-1111-1111-111111111111",
        "source_id": "funktionaerloven-2",
        "title": "Funktionærloven",
        "law_number": "LBK nr 1002 af 24/08/2017",
        "chapter": "2",
        "section": "2",
        "paragraph": "2",
        "content": (
            "Opsigelse fra arbejdsgiverens side skal ske med et varsel af mindst "
            "1 måned til fratræden ved en måneds udgang inden for de første "
            "6 måneder efter ansættelsen, 3 måneder efter 6 måneders ansættelse."
        ),
        "domain_id": "arbejdsret",
    },
    {
        "id": "22222222-2222-2222-2222-222222222222",
        "source_id": "lejeloven-34",
        "title": "Lejeloven",
        "law_number": "LOV nr 341 af 16/04/2024",
        "chapter": "5",
        "section": "34",
        "paragraph": None,
        "content": (
            "Lejeren betaler den aftalte husleje forud på de fastsatte tidspunkter. "
            "Betalingen sker til udlejeren eller til den, som udlejeren anviser."
        ),
        "domain_id": "lejeret",
    },
    {
        "id": "33333333-3333-3333-3333-333333333333",
        "source_id": "koebeloven-76",
        "title": "Købeloven",
        "law_number": "LBK nr 140 af 17/02/2014",
        "chapter": None,
        "section": "76",
        "paragraph": "1",
        "content": (
            "Forbrugeren kan gøre mangelsbeføjelser gældende, hvis varen ikke "
            "svarer til det aftalte, og reklamation sker inden rimelig tid."
        ),
        "domain_id": "forbrugerret",
    },
]


def make_statute(**overrides):
    from execution.lovrag.models import StatuteRecord
    data = dict(SAMPLE_STATUTES[0])
    data.update(overrides)
    return StatuteRecord(**data)


@pytest.fixture
def sample_statutes():
    """Return the sample statutes as StatuteRecord instances."""
    from execution.lovrag.models import StatuteRecord
    return [StatuteRecord(**data) for data in SAMPLE_STATUTES]


# ---------------------------------------------------------------------------
# Deterministic encoders
# ---------------------------------------------------------------------------

def hashed_vector(text, dimensions=TEST_DIMENSIONS):
    """Unit vector derived from the sha256 of the text."""
    h = hashlib.sha256(text.encode()).digest()
    values = np.array([h[i % len(h)] - 127.5 for i in range(dimensions)], dtype=np.float64)
    return (values / np.linalg.norm(values)).tolist()


class FakeEncoder:
    """Encoder double: fixed vectors for known texts, hashed vectors otherwise."""

    def __init__(self, dimensions=TEST_DIMENSIONS, vectors=None):
        self.dimensions = dimensions
        self.vectors = dict(vectors or {})
        self.calls = []

    def encode(self, text):
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        return hashed_vector(text, self.dimensions)


class FailingEncoder:
    """Encoder double that always fails."""

    def encode(self, text):
        from execution.lovrag.errors import EncodingUnavailable
        raise EncodingUnavailable("model offline")


class FakeSentenceModel:
    """Stands in for a sentence-transformers model in EncoderLoader tests."""

    def __init__(self, dimensions=TEST_DIMENSIONS):
        self.dimensions = dimensions
        self.calls = 0

    def encode(self, text, normalize_embeddings=True):
        self.calls += 1
        return np.asarray(hashed_vector(text, self.dimensions))


@pytest.fixture
def fake_encoder():
    return FakeEncoder()


@pytest.fixture
def model_factory():
    """Model factory for EncoderLoader that never downloads anything."""
    return MagicMock(side_effect=lambda name: FakeSentenceModel())


# ---------------------------------------------------------------------------
# Keyword retriever double
# ---------------------------------------------------------------------------

class KeywordRetriever:
    """
    Retriever double matching statute words against the query text.

    A statute matches when any of its words (five letters or more)
    occurs in the lowercased query. Every match gets the same fixed score.
    """

    def __init__(self, statutes, score=0.85):
        self.statutes = list(statutes)
        self.score = score
        self.calls = []

    async def retrieve(self, query, domain_filter=None, top_k=None, min_score=None):
        from execution.lovrag.models import RetrievalCandidate
        self.calls.append({"query": query, "domain_filter": domain_filter})
        lowered = query.lower()
        matches = []
        for statute in self.statutes:
            if domain_filter and statute.domain_id not in domain_filter:
                continue
            words = {w.strip(".,;:").lower() for w in statute.content.split()}
            if any(len(w) >= 5 and w in lowered for w in words):
                matches.append(RetrievalCandidate(statute=statute, score=self.score))
        return matches[:top_k] if top_k else matches


class FailingRetriever:
    """Retriever double that always reports retrieval as unavailable."""

    async def retrieve(self, query, domain_filter=None, top_k=None, min_score=None):
        from execution.lovrag.errors import RetrievalUnavailable
        raise RetrievalUnavailable("corpus offline")


# ---------------------------------------------------------------------------
# Scripted answer backends
# ---------------------------------------------------------------------------

class ScriptedBackend:
    """
    Answer backend double.

    Each invoke() consumes the next scripted item: a string is returned,
    an exception instance is raised. The last item repeats.
    """

    def __init__(self, name, *script, delay=0.0):
        self.name = name
        self.script = list(script) or ["Svar"]
        self.delay = delay
        self.prompts = []

    async def invoke(self, prompt, timeout):
        import asyncio
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return item


def failure(kind, backend="scripted"):
    from execution.lovrag.errors import GenerationFailure
    return GenerationFailure(kind, f"{backend} failed", backend=backend)


# ---------------------------------------------------------------------------
# Metrics singleton
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty global metrics."""
    from execution.lovrag.metrics import get_metrics_collector
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


# ---------------------------------------------------------------------------
# Mocked PostgreSQL
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_db():
    """Database with a mocked single connection; returns (db, cursor)."""
    from execution.lovrag.database import Database, DatabaseConfig
    db = Database(DatabaseConfig(connection_string="postgresql://test/lovrag", use_pooling=False))
    conn = MagicMock()
    conn.closed = False
    db._conn = conn
    cursor = conn.cursor.return_value.__enter__.return_value
    return db, cursor
