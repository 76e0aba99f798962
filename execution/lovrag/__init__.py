"""
Lovrag - retrieval-augmented answers to Danish legal questions

This module provides:
- Statute embedding and cosine-similarity retrieval (in-memory or pgvector)
- Danish prompt composition grounded in retrieved provisions
- Answer generation with layered backend fallback (DeepSeek, rule-based)
- Citations linking every answer back to its statutes
- Chat sessions with append-only message history
"""

from .config import RagConfig
from .embeddings import EmbeddingEncoder, EncoderLoader
from .vector_store import InMemoryCorpusStore, PgVectorCorpusStore
from .chat_store import InMemoryChatStore, PostgresChatStore
from .retriever import SemanticRetriever
from .prompts import PromptComposer
from .generator import AnswerGenerator
from .citation import CitationBuilder
from .orchestrator import ConversationOrchestrator
from .services import ServiceContainer

__all__ = [
    "RagConfig",
    "EmbeddingEncoder",
    "EncoderLoader",
    "InMemoryCorpusStore",
    "PgVectorCorpusStore",
    "InMemoryChatStore",
    "PostgresChatStore",
    "SemanticRetriever",
    "PromptComposer",
    "AnswerGenerator",
    "CitationBuilder",
    "ConversationOrchestrator",
    "ServiceContainer",
]

__version__ = "0.1.0"
