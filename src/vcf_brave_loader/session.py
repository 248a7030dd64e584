"""Import session: drive records from a source to the variant server.

Each record goes through filter, extraction and aggregation in turn;
the resulting variants are batched and submitted. While one batch is in
flight the next one is assembled, but a new submission only starts once
the previous one has finished, so at most one request is outstanding
and the server sees variants in input order.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable

from .aggregator import EmptyMetricError, MetricAggregator
from .batcher import Batcher
from .config import UploadConfig
from .extractor import ExtractionError, extract_variants
from .filters import passes_filter
from .models import (
    AggregatedVariant,
    ImportResult,
    ImportStats,
    RawVariantRecord,
    RunState,
    SubmissionBatch,
)
from .reader import VariantSourceError
from .submitter import BatchSubmitter, SubmissionError, SubmissionReceipt
from .tls import TLSError

logger = logging.getLogger(__name__)

BatchCallback = Callable[[SubmissionBatch, ImportStats], None]


class ImportSession:
    """Orchestrates one run over a variant source.

    Args:
        config: Upload settings; validated on construction.
        submitter: Used for delivery unless ``config.dry_run`` is set.
            Created from ``config`` when omitted.
        total_samples: Header sample count, sent with every batch.
        batch_callback: Called with each batch once it has been
            delivered (or, in dry-run mode, once it has been assembled).
    """

    def __init__(
        self,
        config: UploadConfig,
        submitter: BatchSubmitter | None = None,
        total_samples: int = 0,
        batch_callback: BatchCallback | None = None,
    ):
        config.validate()
        self.config = config
        self.total_samples = total_samples
        self.batch_callback = batch_callback
        self._submitter = submitter

    def transform(
        self, record: RawVariantRecord, aggregator: MetricAggregator, stats: ImportStats
    ) -> list[AggregatedVariant]:
        """Run filter, extraction and aggregation for one record."""
        if not passes_filter(record, self.config.dont_filter):
            stats.records_filtered += 1
            logger.debug("%s: filtered (FILTER=%s)", record.locus, ";".join(record.filters))
            return []
        stats.records_passed += 1

        if not record.alts:
            logger.debug("%s: no alternate alleles", record.locus)
            return []

        try:
            extracted = extract_variants(record)
        except ExtractionError as e:
            stats.record_failure(e.reason)
            logger.warning("Skipping record %s", e)
            return []

        try:
            metrics = aggregator.aggregate(record)
        except EmptyMetricError as e:
            stats.record_dropped(e.reason, len(record.alts))
            logger.warning("Dropping variant %s", e)
            return []
        stats.samples_missing += metrics.missing_samples

        variants = [
            AggregatedVariant(
                variant=variant,
                depth=metrics.depth,
                genotype_quality=metrics.genotype_quality,
            )
            for variant in extracted
        ]
        stats.variants_emitted += len(variants)
        return variants

    async def run(self, source: Iterable[RawVariantRecord]) -> ImportResult:
        """Process the whole source and report the terminal state.

        Never raises for per-record problems. A submission failure or a
        source error ends the run as ABORTED with partial counters.
        """
        if self.config.dry_run:
            return await self._run(source, None)

        submitter = self._submitter or BatchSubmitter(
            self.config, total_samples=self.total_samples
        )
        try:
            await submitter.connect()
        except TLSError as e:
            logger.error("Aborting import: %s", e)
            return ImportResult(
                state=RunState.ABORTED, stats=ImportStats(), dry_run=False, error=str(e)
            )
        async with submitter:
            return await self._run(source, submitter)

    async def _run(
        self, source: Iterable[RawVariantRecord], submitter: BatchSubmitter | None
    ) -> ImportResult:
        stats = ImportStats()
        aggregator = MetricAggregator()
        batcher = Batcher(self.config.batch_size)
        in_flight: list[tuple[asyncio.Task, SubmissionBatch]] = []
        started = time.monotonic()
        error: str | None = None

        try:
            for record in source:
                stats.records_read += 1
                for variant in self.transform(record, aggregator, stats):
                    if self.config.verbose:
                        logger.debug("%s: %s", variant.locus, variant.to_payload())
                    batch = batcher.add(variant)
                    if batch is not None:
                        await self._dispatch(batch, in_flight, submitter, stats)
                # let an in-flight submission make progress
                await asyncio.sleep(0)

            batch = batcher.flush()
            if batch is not None:
                await self._dispatch(batch, in_flight, submitter, stats)
            if in_flight:
                await self._settle(*in_flight.pop(), stats)

        except (SubmissionError, VariantSourceError) as e:
            error = str(e)
            logger.error("Aborting import: %s", e)
        finally:
            while in_flight:
                task, batch = in_flight.pop()
                try:
                    await self._settle(task, batch, stats)
                except SubmissionError as e:
                    logger.error("In-flight batch %d failed during abort: %s", batch.sequence, e)

        return ImportResult(
            state=RunState.ABORTED if error else RunState.COMPLETED,
            stats=stats,
            dry_run=self.config.dry_run,
            error=error,
            elapsed_seconds=time.monotonic() - started,
        )

    async def _dispatch(
        self,
        batch: SubmissionBatch,
        in_flight: list[tuple[asyncio.Task, SubmissionBatch]],
        submitter: BatchSubmitter | None,
        stats: ImportStats,
    ) -> None:
        """Wait for the previous submission, then start this one."""
        if in_flight:
            await self._settle(*in_flight.pop(), stats)

        if submitter is None:
            logger.info(
                "Dry run: batch %d with %d variants not submitted", batch.sequence, len(batch)
            )
            if self.batch_callback:
                self.batch_callback(batch, stats)
            return

        in_flight.append((asyncio.create_task(submitter.submit(batch)), batch))

    async def _settle(
        self, task: asyncio.Task, batch: SubmissionBatch, stats: ImportStats
    ) -> SubmissionReceipt:
        """Await a submission task and account for its outcome."""
        try:
            receipt = await task
        except SubmissionError:
            stats.variants_failed += len(batch)
            raise
        stats.variants_submitted += receipt.size
        stats.batches_submitted += 1
        if self.batch_callback:
            self.batch_callback(batch, stats)
        return receipt
