"""
Chat persistence: sessions and their messages

The orchestrator only needs create_message, list_messages and
touch_session; the remaining calls serve session bookkeeping and
regeneration lookups. Messages are listed in creation order and are
never updated in place.
"""

import json
import logging
import threading
from typing import Optional
from dataclasses import replace

from .database import Database
from .errors import NotFound
from .models import ChatMessage, ChatSession, Citation, new_id, utcnow

logger = logging.getLogger(__name__)


class ChatStore:
    """Interface shared by chat store implementations."""

    def create_session(
        self,
        title: Optional[str] = None,
        domain_filter: Optional[list[str]] = None,
    ) -> ChatSession:
        raise NotImplementedError

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        raise NotImplementedError

    def touch_session(self, session_id: str) -> None:
        raise NotImplementedError

    def create_message(
        self,
        session_id: str,
        role: str,
        content: str,
        citations: Optional[list[Citation]] = None,
    ) -> ChatMessage:
        raise NotImplementedError

    def list_messages(self, session_id: str) -> list[ChatMessage]:
        raise NotImplementedError

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        raise NotImplementedError


class InMemoryChatStore(ChatStore):
    """Chat store held in process memory, safe for concurrent callers."""

    def __init__(self):
        self._sessions: dict[str, ChatSession] = {}
        self._messages: dict[str, list[ChatMessage]] = {}
        self._message_index: dict[str, ChatMessage] = {}
        self._lock = threading.Lock()

    def create_session(
        self,
        title: Optional[str] = None,
        domain_filter: Optional[list[str]] = None,
    ) -> ChatSession:
        session = ChatSession(id=new_id(), title=title, domain_filter=list(domain_filter or []))
        with self._lock:
            self._sessions[session.id] = session
            self._messages[session.id] = []
        return replace(session, domain_filter=list(session.domain_filter))

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session, domain_filter=list(session.domain_filter)) if session else None

    def touch_session(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFound(f"Chat session {session_id} not found")
            session.updated_at = utcnow()

    def create_message(
        self,
        session_id: str,
        role: str,
        content: str,
        citations: Optional[list[Citation]] = None,
    ) -> ChatMessage:
        with self._lock:
            if session_id not in self._sessions:
                raise NotFound(f"Chat session {session_id} not found")
            message = ChatMessage(
                id=new_id(),
                session_id=session_id,
                role=role,
                content=content,
                citations=tuple(citations or ()),
            )
            self._messages[session_id].append(message)
            self._message_index[message.id] = message
        return message

    def list_messages(self, session_id: str) -> list[ChatMessage]:
        with self._lock:
            return list(self._messages.get(session_id, []))

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        with self._lock:
            return self._message_index.get(message_id)


def _row_to_session(row: dict) -> ChatSession:
    return ChatSession(
        id=str(row["id"]),
        title=row.get("title"),
        domain_filter=list(row.get("domain_filter") or []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_message(row: dict) -> ChatMessage:
    raw = row.get("citations") or []
    if isinstance(raw, str):
        raw = json.loads(raw)
    return ChatMessage(
        id=str(row["id"]),
        session_id=str(row["session_id"]),
        role=row["role"],
        content=row["content"],
        citations=tuple(Citation.from_dict(c) for c in raw),
        created_at=row["created_at"],
    )


class PostgresChatStore(ChatStore):
    """
    Chat store backed by PostgreSQL.

    Citations are stored as JSONB on the message row. A BIGSERIAL
    column records insertion order, which is the order listed.
    """

    def __init__(self, database: Database):
        self._db = database

    def initialize_schema(self) -> None:
        """Create chat tables if they don't exist."""
        self._db.execute_script("""
        CREATE TABLE IF NOT EXISTS chat_sessions (
            id UUID PRIMARY KEY,
            title TEXT,
            domain_filter JSONB DEFAULT '[]',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE TABLE IF NOT EXISTS chat_messages (
            id UUID PRIMARY KEY,
            seq BIGSERIAL,
            session_id UUID NOT NULL REFERENCES chat_sessions(id) ON DELETE CASCADE,
            role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
            content TEXT NOT NULL,
            citations JSONB DEFAULT '[]',
            created_at TIMESTAMPTZ DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS chat_messages_session_idx
            ON chat_messages(session_id, seq);
        """, "initialize_chat_schema")
        logger.info("Chat schema initialized successfully")

    def create_session(
        self,
        title: Optional[str] = None,
        domain_filter: Optional[list[str]] = None,
    ) -> ChatSession:
        sql = """
        INSERT INTO chat_sessions (id, title, domain_filter)
        VALUES (%s::uuid, %s, %s)
        RETURNING id, title, domain_filter, created_at, updated_at
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (new_id(), title, json.dumps(list(domain_filter or []))))
                row = cur.fetchone()
                conn.commit()
            return _row_to_session(row)

        return self._db.execute_with_retry(_op, "create_session")

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        sql = """
        SELECT id, title, domain_filter, created_at, updated_at
        FROM chat_sessions WHERE id = %s::uuid
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (session_id,))
                return cur.fetchone()

        row = self._db.execute_with_retry(_op, "get_session")
        return _row_to_session(row) if row else None

    def touch_session(self, session_id: str) -> None:
        """Update the session's last-activity timestamp."""
        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE chat_sessions SET updated_at = NOW() WHERE id = %s::uuid",
                    (session_id,),
                )
                updated = cur.rowcount
                conn.commit()
            return updated

        if not self._db.execute_with_retry(_op, "touch_session"):
            raise NotFound(f"Chat session {session_id} not found")

    def create_message(
        self,
        session_id: str,
        role: str,
        content: str,
        citations: Optional[list[Citation]] = None,
    ) -> ChatMessage:
        # Validates the role before touching the database
        message = ChatMessage(
            id=new_id(),
            session_id=session_id,
            role=role,
            content=content,
            citations=tuple(citations or ()),
        )
        sql = """
        INSERT INTO chat_messages (id, session_id, role, content, citations)
        SELECT %s::uuid, s.id, %s, %s, %s
        FROM chat_sessions s WHERE s.id = %s::uuid
        RETURNING id, session_id, role, content, citations, created_at
        """
        citations_json = json.dumps([c.to_dict() for c in message.citations])

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (message.id, role, content, citations_json, session_id))
                row = cur.fetchone()
                conn.commit()
            return row

        row = self._db.execute_with_retry(_op, "create_message")
        if row is None:
            raise NotFound(f"Chat session {session_id} not found")
        return _row_to_message(row)

    def list_messages(self, session_id: str) -> list[ChatMessage]:
        sql = """
        SELECT id, session_id, role, content, citations, created_at
        FROM chat_messages WHERE session_id = %s::uuid
        ORDER BY seq ASC
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (session_id,))
                return cur.fetchall()

        return [_row_to_message(row) for row in self._db.execute_with_retry(_op, "list_messages")]

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        sql = """
        SELECT id, session_id, role, content, citations, created_at
        FROM chat_messages WHERE id = %s::uuid
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (message_id,))
                return cur.fetchone()

        row = self._db.execute_with_retry(_op, "get_message")
        return _row_to_message(row) if row else None
