"""
Tests for execution/lovrag/models.py and execution/lovrag/errors.py

Covers: StatuteRecord locator, RetrievalCandidate, Citation serialization,
        ChatMessage role validation, and the error taxonomy.
"""

from dataclasses import FrozenInstanceError

import pytest

from tests.conftest import make_statute


# ---------------------------------------------------------------------------
# StatuteRecord
# ---------------------------------------------------------------------------

class TestStatuteRecord:
    """Tests for StatuteRecord."""

    def test_locator_all_parts(self):
        statute = make_statute(chapter="2", section="2", paragraph="3")
        assert statute.locator == "Kapitel 2, § 2, Stk. 3"

    def test_locator_skips_missing_parts(self):
        statute = make_statute(chapter=None, section="76", paragraph=None)
        assert statute.locator == "§ 76"

    def test_locator_empty(self):
        statute = make_statute(chapter=None, section=None, paragraph=None)
        assert statute.locator == ""

    def test_frozen(self):
        statute = make_statute()
        with pytest.raises(FrozenInstanceError):
            statute.title = "Ændret"

    def test_to_dict(self):
        d = make_statute().to_dict()
        assert d["title"] == "Funktionærloven"
        assert d["source_id"] == "funktionaerloven-2"
        assert isinstance(d["last_updated"], str)


# ---------------------------------------------------------------------------
# RetrievalCandidate / Citation
# ---------------------------------------------------------------------------

class TestRetrievalCandidate:

    def test_relevance_percent(self):
        from execution.lovrag.models import RetrievalCandidate
        candidate = RetrievalCandidate(statute=make_statute(), score=0.8512)
        assert candidate.relevance_percent == "85.1%"
        assert candidate.statute_id == make_statute().id


class TestCitation:

    def test_dict_round_trip(self):
        from execution.lovrag.models import Citation
        citation = Citation(statute_id="s1", relevance_score=0.123456789, snippet="Tekst...")
        assert Citation.from_dict(citation.to_dict()) == citation


# ---------------------------------------------------------------------------
# ChatMessage / ChatSession
# ---------------------------------------------------------------------------

class TestChatMessage:

    def test_valid_roles(self):
        from execution.lovrag.models import ChatMessage
        user = ChatMessage(id="m1", session_id="s1", role="user", content="Hej")
        assistant = ChatMessage(id="m2", session_id="s1", role="assistant", content="Svar")
        assert user.is_user and not user.is_assistant
        assert assistant.is_assistant and not assistant.is_user

    def test_invalid_role_rejected(self):
        from execution.lovrag.models import ChatMessage
        with pytest.raises(ValueError, match="role"):
            ChatMessage(id="m1", session_id="s1", role="system", content="x")

    def test_to_dict_includes_citations(self):
        from execution.lovrag.models import ChatMessage, Citation
        message = ChatMessage(
            id="m1", session_id="s1", role="assistant", content="Svar",
            citations=(Citation("s9", 0.5, "abc"),),
        )
        d = message.to_dict()
        assert d["citations"] == [{"statute_id": "s9", "relevance_score": 0.5, "snippet": "abc"}]


class TestChatSession:

    def test_defaults(self):
        from execution.lovrag.models import ChatSession
        session = ChatSession(id="s1")
        assert session.domain_filter == []
        assert session.title is None
        assert session.to_dict()["id"] == "s1"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestErrors:

    def test_dimension_mismatch_attributes(self):
        from execution.lovrag.errors import DimensionMismatch, LovRagError
        err = DimensionMismatch(384, 768, statute_id="s1")
        assert isinstance(err, LovRagError)
        assert err.expected == 384
        assert err.actual == 768
        assert "s1" in str(err)

    @pytest.mark.parametrize("kind,expected", [
        ("UNAUTHORIZED", True),
        ("BAD_REQUEST", True),
        ("RATE_LIMITED", False),
        ("UNAVAILABLE", False),
        ("TIMEOUT", False),
    ])
    def test_configuration_errors(self, kind, expected):
        from execution.lovrag.errors import FailureKind
        assert FailureKind[kind].is_configuration_error is expected

    def test_generation_failure_carries_kind(self):
        from execution.lovrag.errors import FailureKind, GenerationFailure
        err = GenerationFailure(FailureKind.RATE_LIMITED, backend="deepseek")
        assert err.kind is FailureKind.RATE_LIMITED
        assert err.backend == "deepseek"
        assert "rate_limited" in str(err)
