"""Analysis pipeline: single-item path and bounded-concurrency batches.

Per item:
    provider.analyze → normalize → keyword extraction → confidence → store.save

Batches of 1–10 texts run one asyncio task per item behind a semaphore of
three slots. Each task returns its own outcome; the outcomes are aggregated
once every task has finished, so a failing item never aborts the others and
successes keep their submission order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from core.confidence import calculate_confidence
from core.errors import (
    AnalysisError,
    BatchTooLargeError,
    EmptyBatchError,
    EmptyInputError,
    PersistenceError,
    ProviderError,
    ProviderUnavailableError,
)
from core.keywords import KeywordExtractor
from core.models import AnalysisMetadata, AnalysisRecord, BatchError
from core.providers import AnalysisProvider, normalize_result
from core.store import AnalysisStore

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 10
MAX_CONCURRENCY = 3


@dataclass
class BatchOutcome:
    """Result of a batch run: successes in submission order plus failures."""

    results: list[AnalysisRecord] = field(default_factory=list)
    failed: list[BatchError] = field(default_factory=list)


@dataclass
class _ItemOutcome:
    index: int
    record: Optional[AnalysisRecord] = None
    error: str = ""


class AnalysisPipeline:
    """Runs texts through the provider, local heuristics and the store."""

    def __init__(
        self,
        provider: AnalysisProvider,
        store: AnalysisStore,
        extractor: Optional[KeywordExtractor] = None,
        *,
        keyword_count: int = 3,
        request_timeout: float = 45.0,
        item_timeout: float = 30.0,
        max_concurrency: int = MAX_CONCURRENCY,
    ) -> None:
        """Initialise the pipeline.

        Args:
            provider: Analysis provider used for every item.
            store: Destination for successful records.
            extractor: Keyword extractor; a default one is created if omitted.
            keyword_count: Number of local keywords kept per record.
            request_timeout: Provider timeout (seconds) for ``analyze``.
            item_timeout: Provider timeout (seconds) for each batch item.
            max_concurrency: Batch items processed at the same time.
        """
        self.provider = provider
        self.store = store
        self.extractor = extractor or KeywordExtractor()
        self.keyword_count = keyword_count
        self.request_timeout = request_timeout
        self.item_timeout = item_timeout
        self.max_concurrency = max_concurrency

    # ── Single item ────────────────────────────────────────────────────────

    async def analyze(self, text: str) -> AnalysisRecord:
        """Analyse and persist one text.

        Raises:
            EmptyInputError: If *text* is empty or blank.
            ProviderError: If the provider fails or times out.
            PersistenceError: If the record cannot be saved.
        """
        if not text or not text.strip():
            raise EmptyInputError()
        return await self._run(text, self.request_timeout)

    async def _run(self, text: str, timeout: float) -> AnalysisRecord:
        started = time.monotonic()

        try:
            raw = await asyncio.wait_for(self.provider.analyze(text), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderUnavailableError(f"timed out after {timeout:g}s") from exc

        result = normalize_result(raw)
        keywords = self.extractor.extract_keywords(text, self.keyword_count)
        confidence = calculate_confidence(text, result.summary, result.topics)

        record = AnalysisRecord(
            text=text,
            summary=result.summary,
            metadata=AnalysisMetadata(
                title=result.title,
                topics=result.topics,
                sentiment=result.sentiment,
                keywords=keywords,
            ),
            confidence=confidence,
            processing_ms=int((time.monotonic() - started) * 1000),
        )

        await asyncio.to_thread(self.store.save, record)
        return record

    # ── Batch ──────────────────────────────────────────────────────────────

    async def run_batch(self, texts: list[str]) -> BatchOutcome:
        """Analyse up to ``MAX_BATCH_SIZE`` texts concurrently.

        The whole batch is rejected before any work starts if it is empty or
        too large. Otherwise every item is attempted; blank texts, provider
        failures and storage failures are reported per index in ``failed``.

        Raises:
            EmptyBatchError: If *texts* is empty.
            BatchTooLargeError: If *texts* has more than ``MAX_BATCH_SIZE`` items.
        """
        if not texts:
            raise EmptyBatchError()
        if len(texts) > MAX_BATCH_SIZE:
            raise BatchTooLargeError(f"got {len(texts)} texts")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(index: int, text: str) -> _ItemOutcome:
            async with semaphore:
                return await self._run_item(index, text)

        outcomes = await asyncio.gather(
            *(bounded(i, text) for i, text in enumerate(texts))
        )

        batch = BatchOutcome()
        for outcome in outcomes:
            if outcome.record is not None:
                batch.results.append(outcome.record)
            else:
                batch.failed.append(BatchError(index=outcome.index, error=outcome.error))

        logger.info(
            "Batch complete: %d texts, %d succeeded, %d failed",
            len(texts), len(batch.results), len(batch.failed),
        )
        return batch

    async def _run_item(self, index: int, text: str) -> _ItemOutcome:
        if not text or not text.strip():
            return _ItemOutcome(index=index, error=EmptyInputError.message)

        try:
            record = await self._run(text, self.item_timeout)
        except (ProviderError, EmptyInputError) as exc:
            logger.warning("Batch item %d analysis failed: %s", index, exc)
            return _ItemOutcome(index=index, error=f"Analysis failed: {exc}")
        except PersistenceError as exc:
            logger.warning("Batch item %d save failed: %s", index, exc)
            return _ItemOutcome(index=index, error=f"Failed to save: {exc}")
        except AnalysisError as exc:
            logger.warning("Batch item %d failed: %s", index, exc)
            return _ItemOutcome(index=index, error=str(exc))
        except Exception as exc:
            logger.exception("Batch item %d failed unexpectedly", index)
            return _ItemOutcome(index=index, error=f"Analysis failed: {exc}")

        return _ItemOutcome(index=index, record=record)
