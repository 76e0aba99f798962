"""
Answer Generator with layered fallback

Backends are tried once each, in the configured priority order:

    Attempt(backend) -> Success           return the answer
    Attempt(backend) -> Failure(kind)     next backend
                                          (Unauthorized / BadRequest: stop,
                                           go straight to the apology)
    All backends exhausted                fixed apology message

Every attempt runs under a timeout; exceeding it counts as Timeout.
generate() never raises, except for cancellation of the calling task.
"""

import time
import asyncio
import logging
from typing import Optional
from dataclasses import dataclass, field

from .backends import AnswerBackend
from .errors import FailureKind, GenerationFailure
from .prompts import APOLOGY_MESSAGE, ComposedPrompt

logger = logging.getLogger(__name__)


@dataclass
class GeneratedAnswer:
    """Answer text plus how it was obtained."""
    text: str
    backend: Optional[str] = None  # None when the apology was returned
    failures: list[tuple[str, FailureKind]] = field(default_factory=list)
    latency_ms: float = 0

    @property
    def is_fallback(self) -> bool:
        return self.backend is None


class AnswerGenerator:
    """Sends a composed prompt to the first backend that can answer it."""

    def __init__(
        self,
        backends: list[AnswerBackend],
        timeout_s: float = 60.0,
        apology: str = APOLOGY_MESSAGE,
    ):
        if not apology:
            raise ValueError("apology message must be non-empty")
        self.backends = list(backends)
        self.timeout_s = timeout_s
        self.apology = apology

    async def _attempt(self, backend: AnswerBackend, prompt: ComposedPrompt) -> str:
        try:
            text = await asyncio.wait_for(
                backend.invoke(prompt, self.timeout_s),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise GenerationFailure(
                FailureKind.TIMEOUT,
                f"{backend.name} timed out after {self.timeout_s}s",
                backend=backend.name,
            ) from e
        except GenerationFailure:
            raise
        except Exception as e:
            raise GenerationFailure(
                FailureKind.UNAVAILABLE,
                f"{backend.name} raised {type(e).__name__}: {e}",
                backend=backend.name,
            ) from e

        if not isinstance(text, str) or not text.strip():
            raise GenerationFailure(
                FailureKind.UNAVAILABLE, f"{backend.name} returned an empty answer",
                backend=backend.name,
            )
        return text

    async def generate_answer(self, prompt: ComposedPrompt) -> GeneratedAnswer:
        """Run the fallback chain and report which backend answered."""
        start = time.time()
        failures: list[tuple[str, FailureKind]] = []

        for backend in self.backends:
            try:
                text = await self._attempt(backend, prompt)
            except GenerationFailure as e:
                failures.append((backend.name, e.kind))
                if e.kind.is_configuration_error:
                    logger.error(
                        f"Backend {backend.name} failed with configuration error "
                        f"({e.kind.value}); skipping remaining backends: {e}"
                    )
                    break
                logger.warning(f"Backend {backend.name} failed ({e.kind.value}): {e}")
                continue

            elapsed = (time.time() - start) * 1000
            logger.info(f"Answer generated by {backend.name} in {elapsed:.0f}ms")
            return GeneratedAnswer(
                text=text, backend=backend.name, failures=failures, latency_ms=elapsed,
            )

        logger.error(
            f"All answer backends failed {[(name, kind.value) for name, kind in failures]}; "
            "returning apology"
        )
        return GeneratedAnswer(
            text=self.apology, backend=None, failures=failures,
            latency_ms=(time.time() - start) * 1000,
        )

    async def generate(self, prompt: ComposedPrompt) -> str:
        """Return answer text; falls back to the apology instead of raising."""
        return (await self.generate_answer(prompt)).text
