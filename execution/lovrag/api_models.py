"""
Pydantic models for the client-facing turn request and response.
"""

from typing import Optional
from pydantic import BaseModel, Field

from .models import ChatMessage, ChatSession


class TurnRequest(BaseModel):
    """Request body for a new conversational turn."""
    query: str = Field(..., min_length=1, max_length=2000)
    domain_filter: Optional[list[str]] = None


class CitationInfo(BaseModel):
    """Citation attached to an answer."""
    statute_id: str
    relevance_score: float
    snippet: str


class TurnResponse(BaseModel):
    """Response body for a conversational turn."""
    answer_text: str
    citations: list[CitationInfo] = []
    message_id: Optional[str] = None

    @classmethod
    def from_message(cls, message: ChatMessage) -> "TurnResponse":
        return cls(
            answer_text=message.content,
            citations=[CitationInfo(**c.to_dict()) for c in message.citations],
            message_id=message.id,
        )


class SessionCreate(BaseModel):
    """Request body for opening a chat session."""
    title: Optional[str] = Field(None, max_length=200)
    domain_filter: list[str] = []


class SessionInfo(BaseModel):
    """A chat session as returned to clients."""
    id: str
    title: Optional[str] = None
    domain_filter: list[str] = []
    created_at: str
    updated_at: str

    @classmethod
    def from_session(cls, session: ChatSession) -> "SessionInfo":
        return cls(**session.to_dict())


class SearchHit(BaseModel):
    """One result of a plain semantic search."""
    statute_id: str
    title: str
    law_number: Optional[str] = None
    locator: str = ""
    similarity: float
    content: str
