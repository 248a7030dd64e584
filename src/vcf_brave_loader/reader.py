"""Variant sources: the boundary between the import pipeline and VCF parsing.

The pipeline only depends on :class:`VariantSource`; any iterable of
:class:`RawVariantRecord` satisfies it. :class:`CyVCF2Reader` adapts
``cyvcf2`` (htslib) so plain, bgzipped and BCF inputs are all handled.
"""

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from cyvcf2 import VCF

from .models import RawVariantRecord

logger = logging.getLogger(__name__)

REQUIRED_INFO_FIELDS = ("NS", "AF", "ANN")
METRIC_FORMAT_FIELDS = ("DP", "GQ")
OPTIONAL_INFO_FIELDS = ("CLNSIG",)

# htslib sentinels for missing / end-of-vector integer values
INT32_MISSING = -2147483648
INT32_VECTOR_END = -2147483647


class VariantSourceError(Exception):
    """Raised when the input cannot be read or a record cannot be parsed."""

    pass


@runtime_checkable
class VariantSource(Protocol):
    """A lazy sequence of raw variant records."""

    def __iter__(self) -> Iterator[RawVariantRecord]: ...


def _format_value(value: Any) -> Any:
    """Convert one cyvcf2 FORMAT cell to a Python value, None when missing."""
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if isinstance(value, int) and value in (INT32_MISSING, INT32_VECTOR_END):
        return None
    return value


def _info_value(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    return value


class CyVCF2Reader:
    """Read a VCF/BCF file into :class:`RawVariantRecord` objects.

    Only the INFO keys in ``info_fields`` and the FORMAT keys in
    ``format_fields`` are copied out of htslib, which keeps per-record
    conversion cheap for cohorts with many samples.
    """

    def __init__(
        self,
        path: Path | str,
        info_fields: tuple[str, ...] = REQUIRED_INFO_FIELDS + OPTIONAL_INFO_FIELDS,
        format_fields: tuple[str, ...] = METRIC_FORMAT_FIELDS,
    ):
        self.path = Path(path)
        self.info_fields = info_fields
        self.format_fields = format_fields
        if not self.path.exists():
            raise VariantSourceError(f"VCF file not found: {self.path}")
        try:
            self._vcf = VCF(str(self.path))
        except (OSError, ValueError) as e:
            raise VariantSourceError(f"Cannot open {self.path}: {e}") from e
        self.samples: list[str] = list(self._vcf.samples)

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    def declared_fields(self) -> dict[str, set[str]]:
        """Return the INFO and FORMAT IDs declared in the header."""
        declared: dict[str, set[str]] = {"INFO": set(), "FORMAT": set()}
        for hrec in self._vcf.header_iter():
            kind = hrec.type
            if kind in declared:
                field_id = hrec.info().get("ID")
                if field_id:
                    declared[kind].add(field_id)
        return declared

    def missing_header_fields(self) -> list[str]:
        """List required INFO/FORMAT keys the header does not declare."""
        declared = self.declared_fields()
        missing = [f"INFO/{k}" for k in REQUIRED_INFO_FIELDS if k not in declared["INFO"]]
        missing.extend(
            f"FORMAT/{k}" for k in self.format_fields if k not in declared["FORMAT"]
        )
        return missing

    def __iter__(self) -> Iterator[RawVariantRecord]:
        records = iter(self._vcf)
        while True:
            try:
                variant = next(records)
            except StopIteration:
                return
            except Exception as e:
                raise VariantSourceError(f"Failed to parse {self.path}: {e}") from e
            yield self.to_record(variant)

    def to_record(self, variant) -> RawVariantRecord:
        """Convert a cyvcf2 variant."""
        info = {}
        for key in self.info_fields:
            value = variant.INFO.get(key)
            if value is not None:
                info[key] = _info_value(value)

        columns = {key: self._format_column(variant, key) for key in self.format_fields}
        samples = [
            {key: column[i] if column is not None else None for key, column in columns.items()}
            for i in range(len(self.samples))
        ]

        rs_id = variant.ID if variant.ID and variant.ID != "." else None
        filters = tuple(variant.FILTER.split(";")) if variant.FILTER else ()

        return RawVariantRecord(
            chrom=variant.CHROM,
            pos=variant.POS,
            ref=variant.REF,
            alts=[alt for alt in variant.ALT if alt is not None],
            filters=filters,
            info=info,
            samples=samples,
            rs_id=rs_id,
        )

    def _format_column(self, variant, key: str) -> list | None:
        try:
            array = variant.format(key)
        except KeyError:
            return None
        if array is None:
            return None
        return [_format_value(row) for row in array.tolist()]

    def close(self) -> None:
        self._vcf.close()

    def __enter__(self) -> "CyVCF2Reader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
