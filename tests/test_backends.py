"""
Tests for execution/lovrag/backends.py

Covers: OpenAI error classification, DeepSeekBackend request shape and
        failure mapping (mocked AsyncOpenAI client), RuleBasedBackend output.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from tests.conftest import make_statute


def _prompt(candidates=(), history=(), query="Hvad er opsigelsesvarslet?"):
    from execution.lovrag.prompts import PromptComposer
    return PromptComposer().compose(query, list(candidates), history=list(history))


def _candidate(score=0.85, **overrides):
    from execution.lovrag.models import RetrievalCandidate
    return RetrievalCandidate(statute=make_statute(**overrides), score=score)


def _status_error(cls, status):
    request = httpx.Request("POST", "https://api.deepseek.com/chat/completions")
    response = httpx.Response(status, request=request)
    return cls("error", response=response, body=None)


def _completion(content):
    completion = MagicMock()
    completion.choices = [MagicMock()]
    completion.choices[0].message.content = content
    return completion


def _client(result=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=result, side_effect=error)
    return client


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class TestClassifyOpenAIError:

    @pytest.mark.parametrize("cls,status,expected", [
        (openai.AuthenticationError, 401, "UNAUTHORIZED"),
        (openai.PermissionDeniedError, 403, "UNAUTHORIZED"),
        (openai.RateLimitError, 429, "RATE_LIMITED"),
        (openai.BadRequestError, 400, "BAD_REQUEST"),
        (openai.InternalServerError, 503, "UNAVAILABLE"),
    ])
    def test_status_errors(self, cls, status, expected):
        from execution.lovrag.backends import classify_openai_error
        from execution.lovrag.errors import FailureKind
        assert classify_openai_error(_status_error(cls, status)) is FailureKind[expected]

    def test_timeout(self):
        from execution.lovrag.backends import classify_openai_error
        from execution.lovrag.errors import FailureKind
        request = httpx.Request("POST", "https://api.deepseek.com")
        assert classify_openai_error(openai.APITimeoutError(request)) is FailureKind.TIMEOUT

    def test_connection_error(self):
        from execution.lovrag.backends import classify_openai_error
        from execution.lovrag.errors import FailureKind
        request = httpx.Request("POST", "https://api.deepseek.com")
        error = openai.APIConnectionError(request=request)
        assert classify_openai_error(error) is FailureKind.UNAVAILABLE


# ---------------------------------------------------------------------------
# DeepSeekBackend
# ---------------------------------------------------------------------------

class TestDeepSeekBackend:

    def test_configured(self):
        from execution.lovrag.backends import DeepSeekBackend
        assert DeepSeekBackend(api_key="sk-test").configured
        assert not DeepSeekBackend(api_key=None).configured
        assert not DeepSeekBackend(api_key="not-configured").configured

    @pytest.mark.asyncio
    async def test_request_shape(self):
        from execution.lovrag.backends import DeepSeekBackend
        from execution.lovrag.prompts import PROMPTS
        client = _client(result=_completion("Varslet er 3 måneder."))
        backend = DeepSeekBackend(api_key="sk-test", client=client)
        prompt = _prompt([_candidate()])

        answer = await backend.invoke(prompt, timeout=30)

        assert answer == "Varslet er 3 måneder."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "deepseek-reasoner"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1500
        assert kwargs["timeout"] == 30
        assert kwargs["messages"][0] == {"role": "system", "content": PROMPTS["system"]}
        assert kwargs["messages"][-1] == {"role": "user", "content": prompt.text}

    @pytest.mark.asyncio
    async def test_history_limited_to_recent_messages(self):
        from execution.lovrag.backends import DeepSeekBackend
        from execution.lovrag.models import ChatMessage
        history = [
            ChatMessage(id=f"m{i}", session_id="s", role="user" if i % 2 == 0 else "assistant",
                        content=f"besked {i}")
            for i in range(10)
        ]
        client = _client(result=_completion("Svar"))
        backend = DeepSeekBackend(api_key="sk-test", client=client, history_messages=6)
        await backend.invoke(_prompt(history=history), timeout=30)
        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert [m["content"] for m in messages[1:-1]] == [f"besked {i}" for i in range(4, 10)]

    @pytest.mark.asyncio
    async def test_unconfigured_is_unavailable(self):
        from execution.lovrag.backends import DeepSeekBackend
        from execution.lovrag.errors import FailureKind, GenerationFailure
        with pytest.raises(GenerationFailure) as exc_info:
            await DeepSeekBackend(api_key=None).invoke(_prompt(), timeout=30)
        assert exc_info.value.kind is FailureKind.UNAVAILABLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cls,status,expected", [
        (openai.AuthenticationError, 401, "UNAUTHORIZED"),
        (openai.RateLimitError, 429, "RATE_LIMITED"),
        (openai.BadRequestError, 400, "BAD_REQUEST"),
    ])
    async def test_api_errors_mapped(self, cls, status, expected):
        from execution.lovrag.backends import DeepSeekBackend
        from execution.lovrag.errors import FailureKind, GenerationFailure
        backend = DeepSeekBackend(api_key="sk-test", client=_client(error=_status_error(cls, status)))
        with pytest.raises(GenerationFailure) as exc_info:
            await backend.invoke(_prompt(), timeout=30)
        assert exc_info.value.kind is FailureKind[expected]
        assert exc_info.value.backend == "deepseek"

    @pytest.mark.asyncio
    async def test_empty_response_is_unavailable(self):
        from execution.lovrag.backends import DeepSeekBackend
        from execution.lovrag.errors import FailureKind, GenerationFailure
        backend = DeepSeekBackend(api_key="sk-test", client=_client(result=_completion("  ")))
        with pytest.raises(GenerationFailure) as exc_info:
            await backend.invoke(_prompt(), timeout=30)
        assert exc_info.value.kind is FailureKind.UNAVAILABLE

    def test_status(self):
        from execution.lovrag.backends import DeepSeekBackend
        status = DeepSeekBackend(api_key="sk-test").status()
        assert status == {
            "configured": True,
            "model": "deepseek-reasoner",
            "endpoint": "https://api.deepseek.com",
        }


# ---------------------------------------------------------------------------
# RuleBasedBackend
# ---------------------------------------------------------------------------

class TestRuleBasedBackend:

    @pytest.mark.asyncio
    async def test_grounded_answer_lists_statutes(self):
        from execution.lovrag.backends import RuleBasedBackend
        answer = await RuleBasedBackend().invoke(_prompt([_candidate()]), timeout=1)
        assert "1. Funktionærloven (Kapitel 2, § 2, Stk. 2): Opsigelse fra arbejdsgiverens" in answer
        assert "juridisk rådgiver" in answer

    @pytest.mark.asyncio
    async def test_ungrounded_answer_mentions_query(self):
        from execution.lovrag.backends import RuleBasedBackend
        answer = await RuleBasedBackend().invoke(_prompt(query="Må min hund gø?"), timeout=1)
        assert "\"Må min hund gø?\"" in answer
        assert answer.strip()

    def test_excerpt_truncated(self):
        from execution.lovrag.backends import RuleBasedBackend
        answer = RuleBasedBackend(excerpt_chars=20).answer(_prompt([_candidate(content="b" * 100)]))
        assert "b" * 20 + "..." in answer
        assert "b" * 21 not in answer

    def test_deterministic(self):
        from execution.lovrag.backends import RuleBasedBackend
        prompt = _prompt([_candidate()])
        assert RuleBasedBackend().answer(prompt) == RuleBasedBackend().answer(prompt)
