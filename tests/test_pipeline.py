"""Tests for core/pipeline.py — single-item analysis and bounded batches."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from core.errors import (
    BatchTooLargeError,
    EmptyBatchError,
    EmptyInputError,
    PersistenceError,
    ProviderUnavailableError,
)
from core.models import AnalysisResult, SearchQuery
from core.pipeline import AnalysisPipeline
from core.providers import DEFAULT_TOPICS, AnalysisProvider, MockProvider
from core.store import AnalysisStore

TEXT = (
    "The platform team shipped a new release of the database service. "
    "Customer feedback on the release was strong and the database migration "
    "finished without downtime."
)


# ── Fixtures ───────────────────────────────────────────────────────────────────


class InstrumentedProvider(AnalysisProvider):
    """Records how many analyze() calls are in flight at once."""

    name = "instrumented"

    def __init__(self, delay: float = 0.02, result: AnalysisResult | None = None,
                 fail_on: set[str] | None = None) -> None:
        self.delay = delay
        self.result = result or AnalysisResult(
            summary="A short summary of the text.",
            title="Title",
            topics=["technology", "innovation", "analysis"],
            sentiment="positive",
        )
        self.fail_on = fail_on or set()
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls = 0

    async def analyze(self, text: str) -> AnalysisResult:
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if text in self.fail_on:
                raise ProviderUnavailableError("upstream down")
            return self.result
        finally:
            self.in_flight -= 1

    def is_available(self) -> bool:
        return True


@pytest.fixture
def store(tmp_path) -> AnalysisStore:
    store = AnalysisStore(tmp_path / "pipeline.db")
    store.init_db()
    return store


def make_pipeline(provider: AnalysisProvider, store, **kwargs) -> AnalysisPipeline:
    return AnalysisPipeline(provider, store, **kwargs)


# ── Single item ────────────────────────────────────────────────────────────────


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_persists_combined_record(self, store):
        pipeline = make_pipeline(MockProvider(failure_rate=0.0, delay=0, seed=3), store)
        record = await pipeline.analyze(TEXT)

        assert record.text == TEXT
        assert record.summary.startswith("This text discusses")
        assert record.metadata.topics == ["technology", "innovation", "analysis"]
        assert record.metadata.keywords == ["database", "release", "customer"]
        assert 0.0 <= record.confidence <= 1.0
        assert record.processing_ms >= 0
        assert store.get_by_id(record.id) == record

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   "])
    async def test_blank_text_rejected_before_provider(self, store, text):
        provider = InstrumentedProvider()
        with pytest.raises(EmptyInputError):
            await make_pipeline(provider, store).analyze(text)
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_provider_output_normalised(self, store):
        provider = InstrumentedProvider(
            delay=0,
            result=AnalysisResult(summary="", topics=[], sentiment="furious"),
        )
        record = await make_pipeline(provider, store).analyze(TEXT)

        assert record.summary == "No summary available"
        assert record.metadata.topics == list(DEFAULT_TOPICS)
        assert record.metadata.sentiment == "neutral"

    @pytest.mark.asyncio
    async def test_more_than_three_topics_truncated(self, store):
        provider = InstrumentedProvider(
            delay=0,
            result=AnalysisResult(summary="s", topics=["a", "b", "c", "d", "e"], sentiment="negative"),
        )
        record = await make_pipeline(provider, store).analyze(TEXT)
        [stored] = store.search(SearchQuery())
        assert record.metadata.topics == ["a", "b", "c"]
        assert stored.metadata.topics == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_timeout_is_provider_failure(self, store):
        provider = InstrumentedProvider(delay=1.0)
        pipeline = make_pipeline(provider, store, request_timeout=0.01)
        with pytest.raises(ProviderUnavailableError, match="timed out"):
            await pipeline.analyze(TEXT)
        assert store.search(SearchQuery()) == []

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self):
        failing_store = MagicMock()
        failing_store.save.side_effect = PersistenceError("disk full")
        pipeline = make_pipeline(InstrumentedProvider(delay=0), failing_store)
        with pytest.raises(PersistenceError):
            await pipeline.analyze(TEXT)


# ── Batch ──────────────────────────────────────────────────────────────────────


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, store):
        with pytest.raises(EmptyBatchError):
            await make_pipeline(InstrumentedProvider(), store).run_batch([])

    @pytest.mark.asyncio
    async def test_eleven_items_rejected_without_side_effects(self, store):
        provider = InstrumentedProvider(delay=0)
        with pytest.raises(BatchTooLargeError):
            await make_pipeline(provider, store).run_batch([TEXT] * 11)
        assert provider.calls == 0
        assert store.search(SearchQuery()) == []

    @pytest.mark.asyncio
    async def test_blank_item_reported_per_index(self, store):
        texts = [f"Text number {i} about the platform." for i in range(5)]
        texts[2] = ""
        pipeline = make_pipeline(MockProvider(failure_rate=0.0, delay=0), store)

        outcome = await pipeline.run_batch(texts)

        assert [r.text for r in outcome.results] == [texts[0], texts[1], texts[3], texts[4]]
        assert len(outcome.failed) == 1
        assert outcome.failed[0].index == 2
        assert outcome.failed[0].error == "Text cannot be empty"
        assert len(store.search(SearchQuery())) == 4

    @pytest.mark.asyncio
    async def test_provider_failure_does_not_abort_others(self, store):
        texts = ["alpha report", "beta report", "gamma report"]
        provider = InstrumentedProvider(delay=0.01, fail_on={"beta report"})

        outcome = await make_pipeline(provider, store).run_batch(texts)

        assert [r.text for r in outcome.results] == ["alpha report", "gamma report"]
        assert [(f.index, f.error) for f in outcome.failed] == [
            (1, "Analysis failed: upstream down")
        ]

    @pytest.mark.asyncio
    async def test_unexpected_error_recorded_per_item(self, store):
        class BrokenOnOne(InstrumentedProvider):
            async def analyze(self, text):
                if text == "boom":
                    raise RuntimeError("sdk bug")
                return await super().analyze(text)

        outcome = await make_pipeline(BrokenOnOne(delay=0), store).run_batch(
            ["fine text", "boom", "other text"]
        )

        assert [r.text for r in outcome.results] == ["fine text", "other text"]
        assert [(f.index, f.error) for f in outcome.failed] == [(1, "Analysis failed: sdk bug")]

    @pytest.mark.asyncio
    async def test_store_failure_recorded_per_item(self):
        failing_store = MagicMock()
        failing_store.save.side_effect = PersistenceError("disk full")
        pipeline = make_pipeline(InstrumentedProvider(delay=0), failing_store)

        outcome = await pipeline.run_batch(["one text", "two text"])

        assert outcome.results == []
        assert [f.index for f in outcome.failed] == [0, 1]
        assert all(f.error == "Failed to save: disk full" for f in outcome.failed)

    @pytest.mark.asyncio
    async def test_item_timeout_only_fails_that_item(self, store):
        class SlowOnOne(InstrumentedProvider):
            async def analyze(self, text):
                if text == "slow":
                    await asyncio.sleep(1.0)
                return await super().analyze(text)

        pipeline = make_pipeline(SlowOnOne(delay=0), store, item_timeout=0.05)
        outcome = await pipeline.run_batch(["fast", "slow", "quick"])

        assert [r.text for r in outcome.results] == ["fast", "quick"]
        assert outcome.failed[0].index == 1
        assert "timed out" in outcome.failed[0].error

    @pytest.mark.asyncio
    async def test_at_most_three_provider_calls_in_flight(self, store):
        provider = InstrumentedProvider(delay=0.05)
        texts = [f"document {i}" for i in range(10)]

        outcome = await make_pipeline(provider, store).run_batch(texts)

        assert provider.calls == 10
        assert provider.max_in_flight == 3
        assert len(outcome.results) == 10
        assert outcome.failed == []

    @pytest.mark.asyncio
    async def test_results_keep_submission_order(self, store):
        class ReverseDelay(InstrumentedProvider):
            async def analyze(self, text):
                await asyncio.sleep(0.01 * (10 - int(text.split()[-1])))
                return await super().analyze(text)

        texts = [f"item {i}" for i in range(6)]
        outcome = await make_pipeline(ReverseDelay(delay=0), store).run_batch(texts)

        assert [r.text for r in outcome.results] == texts
