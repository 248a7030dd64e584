"""Data models for VCF variants and import runs."""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


@dataclass
class RawVariantRecord:
    """A single VCF record as produced by a variant source.

    ``info`` maps INFO keys to a scalar or to a sequence aligned with
    ``alts``. ``samples`` holds one FORMAT mapping per sample, in header
    order; absent values are ``None``.
    """

    chrom: str
    pos: int
    ref: str
    alts: list[str]
    filters: tuple[str, ...] = ()
    info: dict[str, Any] = field(default_factory=dict)
    samples: list[dict[str, Any]] = field(default_factory=list)
    rs_id: str | None = None

    @property
    def locus(self) -> str:
        return f"{self.chrom}:{self.pos}"


@dataclass
class ExtractedVariant:
    """One alternate allele of a record with its required annotations."""

    chrom: str
    pos: int
    ref: str
    alt: str
    allele_index: int
    sample_count: int
    allele_frequency: float
    annotation: str
    clinical_significance: str | None = None
    snp_ids: list[str] | None = None
    gene_symbols: list[str] = field(default_factory=list)
    variant_types: list[str] = field(default_factory=list)
    hgvs: list[str] = field(default_factory=list)

    @property
    def locus(self) -> str:
        return f"{self.chrom}:{self.pos} {self.ref}>{self.alt}"


@dataclass(frozen=True)
class DistributionSummary:
    """Six-number summary of per-sample values."""

    min: float
    q25: float
    median: float
    q75: float
    max: float
    mean: float

    def to_dict(self) -> dict[str, float]:
        return {
            "min": self.min,
            "q25": self.q25,
            "median": self.median,
            "q75": self.q75,
            "max": self.max,
            "mean": self.mean,
        }


@dataclass
class AggregatedVariant:
    """A per-allele variant ready for submission."""

    variant: ExtractedVariant
    depth: DistributionSummary
    genotype_quality: DistributionSummary

    @property
    def locus(self) -> str:
        return self.variant.locus

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the server's variant schema."""
        v = self.variant
        return {
            "referenceName": v.chrom,
            "start": v.pos,
            "referenceBases": v.ref,
            "alternateBases": v.alt,
            "snpIds": v.snp_ids,
            "sampleCount": v.sample_count,
            "alleleFrequency": v.allele_frequency,
            "annotation": v.annotation,
            "geneSymbol": v.gene_symbols,
            "type": v.variant_types,
            "hgvs": v.hgvs,
            "clnsig": v.clinical_significance,
            "coverage": self.depth.to_dict(),
            "genotypeQuality": self.genotype_quality.to_dict(),
        }


@dataclass
class SubmissionBatch:
    """Variants submitted together in one request."""

    variants: list[AggregatedVariant] = field(default_factory=list)
    batch_id: UUID = field(default_factory=uuid4)
    sequence: int = 0

    def __len__(self) -> int:
        return len(self.variants)

    def to_payload(self, assembly: str, dataset: str, total_samples: int) -> dict[str, Any]:
        return {
            "batchId": str(self.batch_id),
            "assemblyId": assembly,
            "datasetId": dataset,
            "totalSamples": total_samples,
            "variants": [v.to_payload() for v in self.variants],
        }


@dataclass
class ImportStats:
    """Counters for one import run."""

    records_read: int = 0
    records_filtered: int = 0
    records_passed: int = 0
    records_failed: int = 0
    variants_emitted: int = 0
    variants_dropped: int = 0
    variants_submitted: int = 0
    variants_failed: int = 0
    samples_missing: int = 0
    batches_submitted: int = 0
    failures: Counter = field(default_factory=Counter)

    def record_failure(self, reason: str) -> None:
        self.records_failed += 1
        self.failures[reason] += 1

    def record_dropped(self, reason: str, variants: int = 1) -> None:
        """Count the alleles of one record dropped for ``reason``."""
        self.variants_dropped += variants
        self.failures[reason] += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "records_read": self.records_read,
            "records_filtered": self.records_filtered,
            "records_passed": self.records_passed,
            "records_failed": self.records_failed,
            "variants_emitted": self.variants_emitted,
            "variants_dropped": self.variants_dropped,
            "variants_submitted": self.variants_submitted,
            "variants_failed": self.variants_failed,
            "samples_missing": self.samples_missing,
            "batches_submitted": self.batches_submitted,
            "failures": dict(sorted(self.failures.items())),
        }


class RunState(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class ImportResult:
    """Terminal state and counters of an import run."""

    state: RunState
    stats: ImportStats
    dry_run: bool = False
    error: str | None = None
    elapsed_seconds: float = 0.0

    @property
    def exit_code(self) -> int:
        return 0 if self.state is RunState.COMPLETED else 1

    def to_report(self) -> dict[str, Any]:
        return {
            "status": self.state.value,
            "dry_run": self.dry_run,
            "error": self.error,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            **self.stats.as_dict(),
        }
