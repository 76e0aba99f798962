"""
Answer backends

Each backend exposes `name` and `async invoke(prompt, timeout) -> str`
and raises GenerationFailure with a FailureKind when it cannot answer.

- DeepSeekBackend: DeepSeek chat completions through the OpenAI SDK
- RuleBasedBackend: local, deterministic answer assembled from the
  retrieved statutes; needs no network access
"""

import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

from .errors import FailureKind, GenerationFailure
from .prompts import PROMPTS, RULE_BASED, ComposedPrompt, truncate_text

logger = logging.getLogger(__name__)


class AnswerBackend:
    """Capability shared by all answer backends."""

    name = "backend"

    async def invoke(self, prompt: ComposedPrompt, timeout: float) -> str:
        raise NotImplementedError


def classify_openai_error(error: Exception) -> FailureKind:
    """Map an OpenAI SDK exception to a FailureKind."""
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return FailureKind.UNAUTHORIZED
    if isinstance(error, openai.RateLimitError):
        return FailureKind.RATE_LIMITED
    if isinstance(error, (openai.BadRequestError, openai.UnprocessableEntityError)):
        return FailureKind.BAD_REQUEST
    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(error, openai.APITimeoutError):
        return FailureKind.TIMEOUT
    return FailureKind.UNAVAILABLE


class DeepSeekBackend(AnswerBackend):
    """
    DeepSeek reasoning model as a Danish legal expert.

    DeepSeek is OpenAI-compatible, so the OpenAI SDK is used with a
    different base URL. SDK retries are disabled: the generator moves
    on to the next backend instead.
    """

    name = "deepseek"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.deepseek.com",
        model: str = "deepseek-reasoner",
        temperature: float = 0.3,
        max_tokens: int = 1500,
        history_messages: int = 6,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.history_messages = history_messages
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key) and self.api_key != "not-configured"

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                base_url=self.base_url,
                api_key=self.api_key,
                max_retries=0,
            )
        return self._client

    def build_messages(self, prompt: ComposedPrompt) -> list[dict]:
        """System persona, recent history, then the composed prompt."""
        messages = [{"role": "system", "content": PROMPTS["system"]}]
        if self.history_messages > 0:
            for message in prompt.history[-self.history_messages:]:
                messages.append({"role": message.role, "content": message.content})
        messages.append({"role": "user", "content": prompt.text})
        return messages

    async def invoke(self, prompt: ComposedPrompt, timeout: float) -> str:
        if not self.configured:
            raise GenerationFailure(
                FailureKind.UNAVAILABLE,
                "DEEPSEEK_API_KEY not configured",
                backend=self.name,
            )

        try:
            completion = await self._get_client().chat.completions.create(
                model=self.model,
                messages=self.build_messages(prompt),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=timeout,
            )
        except openai.OpenAIError as e:
            kind = classify_openai_error(e)
            logger.error(f"DeepSeek API error ({kind.value}): {type(e).__name__}: {e}")
            raise GenerationFailure(kind, f"DeepSeek API error: {e}", backend=self.name) from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            raise GenerationFailure(
                FailureKind.UNAVAILABLE,
                "No response generated from DeepSeek API",
                backend=self.name,
            )
        return content

    def status(self) -> dict:
        return {
            "configured": self.configured,
            "model": self.model,
            "endpoint": self.base_url,
        }


class RuleBasedBackend(AnswerBackend):
    """
    Assembles an answer directly from the retrieved statutes.

    Lists each provision with a short excerpt, or explains that nothing
    relevant was found. Used when no language model is reachable.
    """

    name = "rule_based"

    def __init__(self, excerpt_chars: int = 300):
        self.excerpt_chars = excerpt_chars

    def answer(self, prompt: ComposedPrompt) -> str:
        if not prompt.candidates:
            return RULE_BASED["ungrounded"].format(query=prompt.query)

        lines = [RULE_BASED["grounded_intro"], ""]
        for rank, candidate in enumerate(prompt.candidates, 1):
            statute = candidate.statute
            locator = statute.locator
            lines.append(RULE_BASED["grounded_item"].format(
                rank=rank,
                title=statute.title,
                locator_suffix=f" ({locator})" if locator else "",
                excerpt=truncate_text(" ".join(statute.content.split()), self.excerpt_chars),
            ))
        lines.extend(["", RULE_BASED["grounded_outro"]])
        return "\n".join(lines)

    async def invoke(self, prompt: ComposedPrompt, timeout: float) -> str:
        return self.answer(prompt)
