"""Per-variant distribution summaries of FORMAT metrics.

For each record the depth (DP) and genotype quality (GQ) values of all
samples are collected and reduced to a six-number summary
(min, q25, median, q75, max, mean).

Quantiles use linear interpolation between order statistics: for
sorted values ``v[0..n-1]`` and probability ``p`` the rank is
``h = p * (n - 1)`` and

    Q(p) = v[floor(h)] + (h - floor(h)) * (v[floor(h) + 1] - v[floor(h)])

This is the Hyndman & Fan type 7 estimator. The same rule is used for
q25, median and q75.

Reference:
Hyndman RJ, Fan Y. Sample quantiles in statistical packages.
Am Stat. 1996;50(4):361-365. DOI: 10.2307/2684934
"""

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .models import DistributionSummary, RawVariantRecord

logger = logging.getLogger(__name__)

DEPTH = "DP"
GENOTYPE_QUALITY = "GQ"


class EmptyMetricError(Exception):
    """Raised when no sample carries a usable value for a metric."""

    def __init__(self, metric: str, locus: str, n_samples: int):
        self.metric = metric
        self.locus = locus
        self.n_samples = n_samples
        super().__init__(
            f"{locus}: no usable {metric} values in {n_samples} sample(s)"
        )

    @property
    def reason(self) -> str:
        return f"no_samples:{self.metric}"


class SampleValueBuffer:
    """Reusable storage for one metric's values across records.

    Slots are overwritten in place, so the backing list keeps its
    allocation between records instead of being rebuilt per record.
    """

    def __init__(self) -> None:
        self._values: list[float] = []
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def reset(self) -> None:
        self._size = 0

    def append(self, value: float) -> None:
        if self._size < len(self._values):
            self._values[self._size] = value
        else:
            self._values.append(value)
        self._size += 1

    def sorted_values(self) -> list[float]:
        """Sort the filled slots in place and return them."""
        del self._values[self._size :]
        self._values.sort()
        return self._values


def to_metric_value(value: Any) -> float | None:
    """Return a finite float, or None for absent or non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def collect_metric(
    samples: Iterable[Mapping[str, Any]], key: str, buffer: SampleValueBuffer
) -> int:
    """Fill ``buffer`` with the usable ``key`` values of all samples.

    Returns:
        Number of samples whose value was absent or not numeric.
    """
    buffer.reset()
    missing = 0
    for sample in samples:
        value = to_metric_value(sample.get(key))
        if value is None:
            missing += 1
        else:
            buffer.append(value)
    return missing


def quantile(sorted_values: Sequence[float], p: float) -> float:
    """Linearly interpolated quantile of already sorted values."""
    if not sorted_values:
        raise ValueError("quantile of empty sequence")
    if not 0.0 <= p <= 1.0:
        raise ValueError(f"p must be within [0, 1], got {p}")

    rank = p * (len(sorted_values) - 1)
    lower = math.floor(rank)
    fraction = rank - lower
    if fraction == 0 or lower + 1 >= len(sorted_values):
        return float(sorted_values[lower])
    low = sorted_values[lower]
    high = sorted_values[lower + 1]
    return float(low + (high - low) * fraction)


def summarize_sorted(sorted_values: Sequence[float]) -> DistributionSummary:
    if not sorted_values:
        raise ValueError("cannot summarize an empty value set")

    lo = float(sorted_values[0])
    hi = float(sorted_values[-1])
    mean = math.fsum(sorted_values) / len(sorted_values)

    return DistributionSummary(
        min=lo,
        q25=quantile(sorted_values, 0.25),
        median=quantile(sorted_values, 0.5),
        q75=quantile(sorted_values, 0.75),
        max=hi,
        # rounding of the division may step one ulp outside [lo, hi]
        mean=min(max(mean, lo), hi),
    )


def summarize(values: Iterable[float]) -> DistributionSummary:
    """Compute the six-number summary of a non-empty set of values.

    Raises:
        ValueError: If ``values`` is empty.
    """
    return summarize_sorted(sorted(float(v) for v in values))


@dataclass
class RecordMetrics:
    """Depth and genotype quality summaries of one record."""

    depth: DistributionSummary
    genotype_quality: DistributionSummary
    missing_depth: int = 0
    missing_quality: int = 0

    @property
    def missing_samples(self) -> int:
        return self.missing_depth + self.missing_quality


class MetricAggregator:
    """Summarize DP and GQ for records, reusing one value buffer."""

    def __init__(self, depth_key: str = DEPTH, quality_key: str = GENOTYPE_QUALITY):
        self.depth_key = depth_key
        self.quality_key = quality_key
        self._buffer = SampleValueBuffer()

    def summarize_metric(
        self, record: RawVariantRecord, key: str
    ) -> tuple[DistributionSummary, int]:
        """Summarize one FORMAT key of a record.

        Returns:
            Tuple of (summary, number of samples with missing data).

        Raises:
            EmptyMetricError: If no sample has a usable value.
        """
        missing = collect_metric(record.samples, key, self._buffer)
        if missing:
            logger.debug(
                "%s: missing genotype data for %s in %d of %d sample(s)",
                record.locus,
                key,
                missing,
                len(record.samples),
            )
        if not len(self._buffer):
            raise EmptyMetricError(key, record.locus, len(record.samples))
        return summarize_sorted(self._buffer.sorted_values()), missing

    def aggregate(self, record: RawVariantRecord) -> RecordMetrics:
        """Compute depth and genotype quality summaries for a record.

        Raises:
            EmptyMetricError: If either metric has no usable sample value.
        """
        depth, missing_depth = self.summarize_metric(record, self.depth_key)
        quality, missing_quality = self.summarize_metric(record, self.quality_key)
        return RecordMetrics(
            depth=depth,
            genotype_quality=quality,
            missing_depth=missing_depth,
            missing_quality=missing_quality,
        )
