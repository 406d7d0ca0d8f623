"""
Analysis providers: turn raw text into summary, title, topics and sentiment.

Variants
────────
mock       MockProvider    local heuristics, simulated latency and failures
anthropic  ClaudeProvider  Anthropic Messages API, JSON output

``create_provider(settings)`` picks the variant named by ``LLM_PROVIDER``.
Whatever the variant, results pass through ``normalize_result`` so stored
metadata always has a non-empty summary, 1–3 topics and a known sentiment.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from pydantic import ValidationError

from core.errors import (
    EmptyInputError,
    InvalidProviderResponseError,
    ProviderUnavailableError,
)
from core.models import AnalysisResult, Sentiment

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "No summary available"
DEFAULT_TOPICS: tuple[str, ...] = ("general", "uncategorized", "text")
MAX_TOPICS = 3

_VALID_SENTIMENTS: frozenset[str] = frozenset(s.value for s in Sentiment)


# ── Normalisation ──────────────────────────────────────────────────────────


def normalize_result(result: AnalysisResult) -> AnalysisResult:
    """Apply the storage invariants to a provider result.

    - empty summary → ``DEFAULT_SUMMARY``
    - no topics → ``DEFAULT_TOPICS``; more than three → first three
    - unknown sentiment → ``"neutral"``

    Idempotent: normalising a normalised result changes nothing.
    """
    topics = list(result.topics[:MAX_TOPICS]) if result.topics else list(DEFAULT_TOPICS)
    sentiment = result.sentiment if result.sentiment in _VALID_SENTIMENTS else Sentiment.NEUTRAL.value
    return result.model_copy(
        update={
            "summary": result.summary or DEFAULT_SUMMARY,
            "topics": topics,
            "sentiment": sentiment,
        }
    )


_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def parse_json_response(content: str) -> AnalysisResult:
    """Parse a provider's raw JSON payload into a normalised result.

    A surrounding markdown code fence is tolerated.

    Raises:
        InvalidProviderResponseError: If the payload is not a JSON object of
            the expected shape.
    """
    payload = content.strip()
    fenced = _FENCE_RE.match(payload)
    if fenced:
        payload = fenced.group(1)

    try:
        result = AnalysisResult.model_validate_json(payload)
    except ValidationError as exc:
        raise InvalidProviderResponseError(str(exc)) from exc

    return normalize_result(result)


# ── Interface ──────────────────────────────────────────────────────────────


class AnalysisProvider(ABC):
    """Capability that analyses a single text."""

    #: Registry name, echoed by the health endpoint.
    name: str = ""

    @abstractmethod
    async def analyze(self, text: str) -> AnalysisResult:
        """Analyse *text*.

        Cancelling the awaiting task aborts the analysis.

        Raises:
            EmptyInputError: If *text* is empty or whitespace only.
            ProviderUnavailableError: On upstream failure.
            InvalidProviderResponseError: If the upstream payload is unusable.
        """
        raise NotImplementedError

    @abstractmethod
    def is_available(self) -> bool:
        """Cheap health probe; must not call the upstream service."""
        raise NotImplementedError


# ── Mock provider ──────────────────────────────────────────────────────────

_MOCK_TOPICS: tuple[str, ...] = ("technology", "innovation", "analysis")


class MockProvider(AnalysisProvider):
    """Local provider producing synthetic analyses.

    Randomness (failures, sentiment, availability) comes from a private
    ``random.Random`` so tests can pass a *seed*, a ``failure_rate`` of 0 and
    a ``delay`` of 0 to make it fully deterministic.
    """

    name = "mock"

    def __init__(
        self,
        failure_rate: float = 0.1,
        delay: float = 0.1,
        outage_rate: float = 0.05,
        seed: Optional[int] = None,
    ) -> None:
        """Initialise the mock.

        Args:
            failure_rate: Probability that ``analyze`` raises
                ``ProviderUnavailableError``.
            delay: Simulated latency in seconds.
            outage_rate: Probability that ``is_available`` reports False.
            seed: Seed for the internal random generator.
        """
        self.failure_rate = failure_rate
        self.delay = delay
        self.outage_rate = outage_rate
        self._rng = random.Random(seed)

    async def analyze(self, text: str) -> AnalysisResult:
        if not text.strip():
            raise EmptyInputError()

        # Raises CancelledError if the caller gave up while we "worked"
        await asyncio.sleep(self.delay)

        if self._rng.random() < self.failure_rate:
            raise ProviderUnavailableError("mock failure")

        words = text.split()
        summary_length = max(5, min(20, len(words) // 10))
        summary = "This text discusses " + " ".join(words[:summary_length]) + "..."

        title = ""
        if len(words) > 3:
            title = " ".join(w[:1].upper() + w[1:] for w in words[:3])

        return normalize_result(
            AnalysisResult(
                summary=summary,
                title=title,
                topics=list(_MOCK_TOPICS),
                sentiment=self._rng.choice([s.value for s in Sentiment]),
            )
        )

    def is_available(self) -> bool:
        return self._rng.random() >= self.outage_rate


# ── Anthropic provider ─────────────────────────────────────────────────────

#: System prompt asking Claude for the structured analysis.
_ANALYSIS_SYSTEM = (
    "You are a text analyst. Read the user's text and return only a JSON object "
    "with these keys: \"summary\" (1-2 sentences), \"title\" (a short title, or an "
    "empty string if none fits), \"topics\" (exactly 3 short lowercase topics), "
    "\"sentiment\" (one of \"positive\", \"neutral\", \"negative\"). "
    "No commentary, no markdown fences."
)


class ClaudeProvider(AnalysisProvider):
    """Analyses text with the Anthropic Messages API.

    A new async client is opened for every call. Each Flask async view runs
    in its own event loop, and a client's connection pool is bound to the
    loop it was first used in.
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-haiku-4-5",
        max_tokens: int = 500,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens

    def _make_client(self):
        import anthropic
        # No retries: a failed call is terminal for the item.
        return anthropic.AsyncAnthropic(api_key=self.api_key, max_retries=0)

    async def analyze(self, text: str) -> AnalysisResult:
        if not text.strip():
            raise EmptyInputError()

        import anthropic

        try:
            async with self._make_client() as client:
                response = await client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=_ANALYSIS_SYSTEM,
                    messages=[{"role": "user", "content": text}],
                )
        except anthropic.APIError as exc:
            logger.warning("Anthropic request failed: %s", exc)
            raise ProviderUnavailableError(str(exc)) from exc

        content = "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", None) == "text"
        )
        if not content:
            raise InvalidProviderResponseError("empty response from LLM")
        return parse_json_response(content)

    def is_available(self) -> bool:
        return bool(self.api_key)


# ── Factory ────────────────────────────────────────────────────────────────


def _build_mock(settings: Settings) -> AnalysisProvider:
    return MockProvider(
        failure_rate=settings.mock_failure_rate,
        delay=settings.mock_delay_ms / 1000,
    )


def _build_claude(settings: Settings) -> AnalysisProvider:
    return ClaudeProvider(
        api_key=settings.anthropic_api_key,
        model=settings.llm_model,
        max_tokens=settings.max_tokens,
    )


_PROVIDER_REGISTRY = {
    "mock": _build_mock,
    "anthropic": _build_claude,
    "claude": _build_claude,
}


def available_providers() -> list[str]:
    """Return the registered provider names."""
    return sorted(_PROVIDER_REGISTRY)


def create_provider(settings: Settings) -> AnalysisProvider:
    """Build the provider named by ``settings.llm_provider``.

    Raises:
        ValueError: If the name is not registered.
    """
    name = settings.llm_provider.lower().strip()
    builder = _PROVIDER_REGISTRY.get(name)
    if builder is None:
        supported = ", ".join(available_providers())
        raise ValueError(f"Unsupported LLM provider: {settings.llm_provider}. Supported: {supported}")
    return builder(settings)
