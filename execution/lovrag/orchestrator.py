"""
Conversation Orchestrator

Runs one conversational turn end to end:

    persist user message -> retrieve -> compose -> generate
        -> cite (same candidates the prompt showed) -> persist answer
        -> touch session

Chat store calls run in worker threads, off the event loop.

Retrieval and generation errors never reach the caller: the turn ends
with the apology message and no citations. Regeneration appends a new
assistant message and leaves the earlier one untouched.
"""

import asyncio
import logging
from typing import Optional

from .chat_store import ChatStore
from .citation import CitationBuilder
from .errors import NotFound, RetrievalUnavailable
from .generator import AnswerGenerator
from .metrics import MetricsCollector, get_metrics_collector
from .models import ROLE_ASSISTANT, ROLE_USER, ChatMessage, Citation
from .prompts import APOLOGY_MESSAGE, PromptComposer
from .retriever import SemanticRetriever

logger = logging.getLogger(__name__)


class ConversationOrchestrator:
    """Coordinates retriever, composer, generator and citation builder."""

    def __init__(
        self,
        chat_store: ChatStore,
        retriever: SemanticRetriever,
        composer: PromptComposer,
        generator: AnswerGenerator,
        citation_builder: CitationBuilder,
        history_messages: int = 6,
        metrics: Optional[MetricsCollector] = None,
        apology: str = APOLOGY_MESSAGE,
    ):
        self.chat_store = chat_store
        self.retriever = retriever
        self.composer = composer
        self.generator = generator
        self.citation_builder = citation_builder
        self.history_messages = history_messages
        self.metrics = metrics or get_metrics_collector()
        self.apology = apology

    async def _resolve_domain_filter(
        self,
        session_id: str,
        domain_filter: Optional[list[str]],
    ) -> Optional[list[str]]:
        """Explicit filter wins; otherwise the session's stored filter."""
        if domain_filter is not None:
            return list(domain_filter) or None
        session = await asyncio.to_thread(self.chat_store.get_session, session_id)
        if session and session.domain_filter:
            return list(session.domain_filter)
        return None

    def _recent(self, messages: list[ChatMessage]) -> list[ChatMessage]:
        if self.history_messages <= 0:
            return []
        return messages[-self.history_messages:]

    async def _answer(
        self,
        session_id: str,
        query: str,
        domain_filter: Optional[list[str]],
        history: list[ChatMessage],
    ) -> tuple[str, list[Citation]]:
        """Retrieve, compose, generate and cite; never raises."""
        with self.metrics.track_turn(session_id, query) as tracker:
            try:
                candidates = await self.retriever.retrieve(query, domain_filter=domain_filter)
                prompt = self.composer.compose(query, candidates, history=history)
                answer = await self.generator.generate_answer(prompt)
            except RetrievalUnavailable as e:
                logger.error(f"Retrieval unavailable for session {session_id}: {e}")
                tracker.set_retrieval_failed()
                return self.apology, []
            except Exception as e:
                logger.exception(f"Turn failed for session {session_id}: {type(e).__name__}: {e}")
                return self.apology, []

            for backend, kind in answer.failures:
                self.metrics.record_backend_failure(backend, kind)
            tracker.set_candidates(len(candidates))
            tracker.set_backend(answer.backend)

            if answer.is_fallback:
                return answer.text, []
            return answer.text, self.citation_builder.build(candidates)

    async def process_turn(
        self,
        session_id: str,
        user_text: str,
        domain_filter: Optional[list[str]] = None,
    ) -> tuple[ChatMessage, ChatMessage]:
        """
        Answer one user message.

        Args:
            session_id: Existing chat session
            user_text: The user's question
            domain_filter: Optional domain ids; defaults to the session's filter

        Returns:
            (user message, assistant message), both persisted

        Raises:
            ValueError: If user_text is blank
            NotFound: If the session does not exist
        """
        if not user_text or not user_text.strip():
            raise ValueError("user_text must not be empty")

        history = self._recent(
            await asyncio.to_thread(self.chat_store.list_messages, session_id)
        )
        user_message = await asyncio.to_thread(
            self.chat_store.create_message, session_id, ROLE_USER, user_text,
        )

        filters = await self._resolve_domain_filter(session_id, domain_filter)
        answer_text, citations = await self._answer(session_id, user_text, filters, history)

        assistant_message = await asyncio.to_thread(
            self.chat_store.create_message, session_id, ROLE_ASSISTANT, answer_text, citations,
        )
        await asyncio.to_thread(self.chat_store.touch_session, session_id)
        logger.info(
            f"Turn completed for session {session_id} with {len(citations)} citations"
        )
        return user_message, assistant_message

    async def regenerate_turn(
        self,
        assistant_message_id: str,
        domain_filter: Optional[list[str]] = None,
    ) -> ChatMessage:
        """
        Produce a fresh answer to the question behind an assistant message.

        The new answer is appended to the session; the original message
        stays in the history unchanged.

        Raises:
            NotFound: If the message is missing or not an assistant message,
                or if the message before it is not a user message
        """
        target = await asyncio.to_thread(self.chat_store.get_message, assistant_message_id)
        if target is None or not target.is_assistant:
            raise NotFound(f"Assistant message {assistant_message_id} not found")

        messages = await asyncio.to_thread(self.chat_store.list_messages, target.session_id)
        position = next((i for i, m in enumerate(messages) if m.id == target.id), None)
        if position is None or position == 0 or not messages[position - 1].is_user:
            raise NotFound(
                f"No user message precedes assistant message {assistant_message_id}"
            )

        question = messages[position - 1]
        history = self._recent(messages[:position - 1])
        session_id = target.session_id

        filters = await self._resolve_domain_filter(session_id, domain_filter)
        answer_text, citations = await self._answer(session_id, question.content, filters, history)

        regenerated = await asyncio.to_thread(
            self.chat_store.create_message, session_id, ROLE_ASSISTANT, answer_text, citations,
        )
        await asyncio.to_thread(self.chat_store.touch_session, session_id)
        logger.info(f"Regenerated answer {regenerated.id} for message {assistant_message_id}")
        return regenerated
