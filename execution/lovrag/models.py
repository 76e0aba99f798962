"""
Data model for statutes, embeddings, retrieval candidates and chat history.

Statutes and their embeddings belong to the corpus store. Chat sessions
own their messages, and messages own their citations. Published records
and messages are frozen; changing one means creating a new instance.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class StatuteRecord:
    """A single statute provision as published by the ingestion side."""
    id: str
    title: str
    content: str
    source_id: str  # external source identifier (unique)
    law_number: Optional[str] = None
    chapter: Optional[str] = None
    section: Optional[str] = None
    paragraph: Optional[str] = None
    domain_id: Optional[str] = None
    source_url: Optional[str] = None
    last_updated: datetime = field(default_factory=utcnow)

    @property
    def locator(self) -> str:
        """Chapter/section/paragraph locator, empty parts skipped."""
        parts = []
        if self.chapter:
            parts.append(f"Kapitel {self.chapter}")
        if self.section:
            parts.append(f"§ {self.section}")
        if self.paragraph:
            parts.append(f"Stk. {self.paragraph}")
        return ", ".join(parts)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "law_number": self.law_number,
            "chapter": self.chapter,
            "section": self.section,
            "paragraph": self.paragraph,
            "content": self.content,
            "domain_id": self.domain_id,
            "source_url": self.source_url,
            "last_updated": self.last_updated.isoformat(),
            "source_id": self.source_id,
        }


@dataclass(frozen=True)
class EmbeddingRecord:
    """The active embedding of one statute."""
    id: str
    statute_id: str
    vector: tuple[float, ...]
    created_at: datetime = field(default_factory=utcnow)

    @property
    def dimensions(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class RetrievalCandidate:
    """A statute with its cosine similarity to the query."""
    statute: StatuteRecord
    score: float

    @property
    def statute_id(self) -> str:
        return self.statute.id

    @property
    def relevance_percent(self) -> str:
        return f"{self.score * 100:.1f}%"


@dataclass(frozen=True)
class Citation:
    """Pointer from an answer back to the statute that supports it."""
    statute_id: str
    relevance_score: float
    snippet: str

    def to_dict(self) -> dict:
        return {
            "statute_id": self.statute_id,
            "relevance_score": self.relevance_score,
            "snippet": self.snippet,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Citation":
        return cls(
            statute_id=data["statute_id"],
            relevance_score=data["relevance_score"],
            snippet=data["snippet"],
        )


ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)


@dataclass(frozen=True)
class ChatMessage:
    """One message in a chat session. Never mutated after creation."""
    id: str
    session_id: str
    role: str
    content: str
    citations: tuple[Citation, ...] = ()
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid message role: {self.role!r}")

    @property
    def is_user(self) -> bool:
        return self.role == ROLE_USER

    @property
    def is_assistant(self) -> bool:
        return self.role == ROLE_ASSISTANT

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role,
            "content": self.content,
            "citations": [c.to_dict() for c in self.citations],
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ChatSession:
    """A conversation. Messages are held by the chat store, in creation order."""
    id: str
    title: Optional[str] = None
    domain_filter: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "domain_filter": list(self.domain_filter),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
