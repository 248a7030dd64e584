"""INFO field extraction with multi-allelic decomposition.

A record with k alternate alleles fans out into k
:class:`ExtractedVariant` objects. Number=A fields such as AF are indexed
by allele; NS, ANN and CLNSIG are record-level and shared by every
allele.
"""

import logging
import math
from collections.abc import Iterator
from typing import Any

from .models import ExtractedVariant, RawVariantRecord

logger = logging.getLogger(__name__)

SAMPLE_COUNT = "NS"
ALLELE_FREQUENCY = "AF"
ANNOTATION = "ANN"
CLINICAL_SIGNIFICANCE = "CLNSIG"

# Positions within a pipe-delimited ANN entry
ANN_GENE_SYMBOL = 3
ANN_TYPE = 5
ANN_HGVS = 9


class ExtractionError(Exception):
    """Base class for records that cannot be turned into variants."""

    kind = "invalid"

    def __init__(self, field: str, locus: str, message: str):
        self.field = field
        self.locus = locus
        super().__init__(f"{locus}: {message}")

    @property
    def reason(self) -> str:
        return f"{self.kind}:{self.field}"


class MissingRequiredField(ExtractionError):
    kind = "missing"

    def __init__(self, field: str, locus: str):
        super().__init__(field, locus, f"required INFO field {field} is absent")


class ArityMismatch(ExtractionError):
    kind = "arity"

    def __init__(self, field: str, locus: str, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            field,
            locus,
            f"INFO field {field} has {actual} values for {expected} alternate allele(s)",
        )


class InvalidFieldValue(ExtractionError):
    kind = "invalid"


def _as_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def parse_allele_frequencies(record: RawVariantRecord) -> list[float]:
    """Return one validated allele frequency per alternate allele."""
    raw = record.info.get(ALLELE_FREQUENCY)
    if raw is None:
        raise MissingRequiredField(ALLELE_FREQUENCY, record.locus)

    values = _as_list(raw)
    if len(values) != len(record.alts):
        raise ArityMismatch(ALLELE_FREQUENCY, record.locus, len(record.alts), len(values))

    frequencies = []
    for alt, value in zip(record.alts, values, strict=True):
        try:
            af = float(value)
        except (TypeError, ValueError):
            raise InvalidFieldValue(
                ALLELE_FREQUENCY, record.locus, f"AF for {alt} is not numeric: {value!r}"
            ) from None
        if math.isnan(af) or not 0.0 <= af <= 1.0:
            raise InvalidFieldValue(
                ALLELE_FREQUENCY, record.locus, f"AF for {alt} is not a probability: {value!r}"
            )
        frequencies.append(af)
    return frequencies


def parse_sample_count(record: RawVariantRecord) -> int:
    raw = record.info.get(SAMPLE_COUNT)
    if raw is None:
        raise MissingRequiredField(SAMPLE_COUNT, record.locus)
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else None
    if raw is None:
        raise MissingRequiredField(SAMPLE_COUNT, record.locus)
    try:
        count = int(str(raw).strip())
    except ValueError:
        raise InvalidFieldValue(
            SAMPLE_COUNT, record.locus, f"NS is not an integer: {raw!r}"
        ) from None
    if count < 0:
        raise InvalidFieldValue(SAMPLE_COUNT, record.locus, f"NS is not a count: {raw!r}")
    return count


def parse_annotation(record: RawVariantRecord) -> str:
    raw = record.info.get(ANNOTATION)
    if raw is None or raw == "":
        raise MissingRequiredField(ANNOTATION, record.locus)
    if isinstance(raw, (list, tuple)):
        return ",".join(str(v) for v in raw)
    return str(raw)


def parse_clinical_significance(record: RawVariantRecord) -> str | None:
    raw = record.info.get(CLINICAL_SIGNIFICANCE)
    if raw is None:
        return None
    if isinstance(raw, (list, tuple)):
        return ",".join(str(v) for v in raw)
    return str(raw)


def split_annotation(annotation: str) -> list[list[str]]:
    """Split an ANN value into entries of pipe-delimited fields."""
    return [entry.split("|") for entry in annotation.split(",") if entry]


def annotation_field(entries: list[list[str]], index: int) -> list[str]:
    """Collect one field from every entry long enough to carry it."""
    return [fields[index] for fields in entries if len(fields) > index]


def parse_snp_ids(record: RawVariantRecord) -> list[str] | None:
    if not record.rs_id or record.rs_id == ".":
        return None
    return [rs for rs in record.rs_id.split(";") if rs]


def extract_variants(record: RawVariantRecord) -> Iterator[ExtractedVariant]:
    """Fan a record out into one extracted variant per alternate allele.

    All record-level validation happens before the first variant is
    yielded, so a failing record yields nothing.

    Raises:
        MissingRequiredField: NS, AF or ANN is absent.
        ArityMismatch: AF does not have one value per alternate allele.
        InvalidFieldValue: NS or AF cannot be parsed or is out of range.
    """
    sample_count = parse_sample_count(record)
    annotation = parse_annotation(record)
    frequencies = parse_allele_frequencies(record)
    clinical_significance = parse_clinical_significance(record)
    snp_ids = parse_snp_ids(record)

    entries = split_annotation(annotation)
    gene_symbols = annotation_field(entries, ANN_GENE_SYMBOL)
    variant_types = annotation_field(entries, ANN_TYPE)
    hgvs = annotation_field(entries, ANN_HGVS)

    return _fan_out(
        record,
        sample_count,
        annotation,
        frequencies,
        clinical_significance,
        snp_ids,
        gene_symbols,
        variant_types,
        hgvs,
    )


def _fan_out(
    record: RawVariantRecord,
    sample_count: int,
    annotation: str,
    frequencies: list[float],
    clinical_significance: str | None,
    snp_ids: list[str] | None,
    gene_symbols: list[str],
    variant_types: list[str],
    hgvs: list[str],
) -> Iterator[ExtractedVariant]:
    for i, (alt, af) in enumerate(zip(record.alts, frequencies, strict=True)):
        yield ExtractedVariant(
            chrom=record.chrom,
            pos=record.pos,
            ref=record.ref,
            alt=alt,
            allele_index=i,
            sample_count=sample_count,
            allele_frequency=af,
            annotation=annotation,
            clinical_significance=clinical_significance,
            snp_ids=list(snp_ids) if snp_ids is not None else None,
            gene_symbols=list(gene_symbols),
            variant_types=list(variant_types),
            hgvs=list(hgvs),
        )
