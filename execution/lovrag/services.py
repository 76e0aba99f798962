"""
Service Container - wires the pipeline from a RagConfig

Stores, encoder, retriever and orchestrator are built lazily on first
use and cached. With no database_url the in-memory stores are used.
"""

import logging
from typing import Callable, Optional

from .backends import AnswerBackend, DeepSeekBackend, RuleBasedBackend
from .chat_store import ChatStore, InMemoryChatStore, PostgresChatStore
from .citation import CitationBuilder
from .config import RagConfig
from .database import Database, DatabaseConfig
from .embeddings import EmbeddingConfig, EmbeddingEncoder, EncoderLoader
from .generator import AnswerGenerator
from .indexer import EmbeddingIndexer
from .orchestrator import ConversationOrchestrator
from .prompts import PromptComposer
from .retriever import RetrievalConfig, SemanticRetriever
from .vector_store import CorpusStore, InMemoryCorpusStore, PgVectorCorpusStore

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Builds and caches the pipeline components for one configuration."""

    def __init__(
        self,
        config: Optional[RagConfig] = None,
        model_factory: Optional[Callable[[str], object]] = None,
        corpus_store: Optional[CorpusStore] = None,
        chat_store: Optional[ChatStore] = None,
    ):
        self.config = (config or RagConfig()).validate()
        self._database: Optional[Database] = None
        self._corpus_store = corpus_store
        self._chat_store = chat_store
        self._encoder_loader = EncoderLoader(
            EmbeddingConfig(
                model=self.config.embedding_model,
                dimensions=self.config.embedding_dimensions,
            ),
            model_factory=model_factory,
        )
        self._retriever: Optional[SemanticRetriever] = None
        self._generator: Optional[AnswerGenerator] = None
        self._orchestrator: Optional[ConversationOrchestrator] = None

    @property
    def uses_database(self) -> bool:
        return bool(self.config.database_url)

    def get_database(self) -> Database:
        if self._database is None:
            self._database = Database(DatabaseConfig(connection_string=self.config.database_url))
            self._database.connect()
        return self._database

    def get_corpus_store(self) -> CorpusStore:
        if self._corpus_store is None:
            if self.uses_database:
                store = PgVectorCorpusStore(self.get_database(), self.config.embedding_dimensions)
                store.initialize_schema()
                self._corpus_store = store
            else:
                logger.info("No database configured, using in-memory corpus store")
                self._corpus_store = InMemoryCorpusStore(self.config.embedding_dimensions)
        return self._corpus_store

    def get_chat_store(self) -> ChatStore:
        if self._chat_store is None:
            if self.uses_database:
                store = PostgresChatStore(self.get_database())
                store.initialize_schema()
                self._chat_store = store
            else:
                self._chat_store = InMemoryChatStore()
        return self._chat_store

    def get_encoder(self) -> EmbeddingEncoder:
        """Load the embedding model once; raises EncodingUnavailable on failure."""
        return self._encoder_loader.load()

    def get_retriever(self) -> SemanticRetriever:
        if self._retriever is None:
            self._retriever = SemanticRetriever(
                self.get_corpus_store(),
                self.get_encoder(),
                RetrievalConfig(
                    top_k=self.config.top_k,
                    min_score=self.config.min_score,
                    encoder_timeout_s=self.config.encoder_timeout_s,
                    search_timeout_s=self.config.search_timeout_s,
                ),
            )
        return self._retriever

    def build_backends(self) -> list[AnswerBackend]:
        """Answer backends in configured priority order."""
        backends: list[AnswerBackend] = []
        for name in self.config.backend_order:
            if name == "deepseek":
                if not self.config.deepseek_configured:
                    logger.warning("DEEPSEEK_API_KEY not set, skipping DeepSeek backend")
                    continue
                backends.append(DeepSeekBackend(
                    api_key=self.config.deepseek_api_key,
                    base_url=self.config.deepseek_base_url,
                    model=self.config.deepseek_model,
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                    history_messages=self.config.history_messages,
                ))
            elif name == "rule_based":
                backends.append(RuleBasedBackend())
        return backends

    def get_generator(self) -> AnswerGenerator:
        if self._generator is None:
            self._generator = AnswerGenerator(
                self.build_backends(), timeout_s=self.config.backend_timeout_s,
            )
        return self._generator

    def get_orchestrator(self) -> ConversationOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = ConversationOrchestrator(
                chat_store=self.get_chat_store(),
                retriever=self.get_retriever(),
                composer=PromptComposer(excerpt_chars=self.config.excerpt_chars),
                generator=self.get_generator(),
                citation_builder=CitationBuilder(snippet_chars=self.config.snippet_chars),
                history_messages=self.config.history_messages,
            )
        return self._orchestrator

    def get_indexer(self) -> EmbeddingIndexer:
        return EmbeddingIndexer(self.get_corpus_store(), self.get_encoder())

    def status(self) -> dict:
        """Configuration and readiness of the pipeline components."""
        return {
            "backends": {
                "order": [b.name for b in self.get_generator().backends],
                "deepseek": {
                    "configured": self.config.deepseek_configured,
                    "model": self.config.deepseek_model,
                    "endpoint": self.config.deepseek_base_url,
                },
            },
            "encoder": {
                "model": self.config.embedding_model,
                "dimensions": self.config.embedding_dimensions,
                "loaded": self._encoder_loader.loaded,
            },
            "store": "postgres" if self.uses_database else "memory",
        }

    def close(self) -> None:
        if self._database is not None:
            self._database.close()
            self._database = None
