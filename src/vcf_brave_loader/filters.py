"""FILTER column evaluation."""

from .models import RawVariantRecord

PASS = "PASS"
MISSING = "."


def passes_filter(record: RawVariantRecord, dont_filter: bool = False) -> bool:
    """Return True when the record should continue through the pipeline.

    A record passes when filtering is disabled, or when its FILTER column
    is empty, the missing marker, or exactly ``PASS``. Token comparison is
    case-sensitive and stacked filters never pass, even if one is ``PASS``.
    """
    if dont_filter:
        return True
    filters = record.filters
    if not filters:
        return True
    return len(filters) == 1 and filters[0] in (PASS, MISSING)
