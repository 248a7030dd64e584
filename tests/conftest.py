"""Pytest configuration and fixtures for vcf-brave-loader tests."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from vcf_brave_loader.config import UploadConfig  # noqa: E402
from vcf_brave_loader.models import RawVariantRecord  # noqa: E402


def make_record(
    chrom: str = "chr1",
    pos: int = 100,
    ref: str = "A",
    alts: list[str] | None = None,
    filters: tuple[str, ...] = ("PASS",),
    info: dict | None = None,
    depths: list | None = None,
    qualities: list | None = None,
    rs_id: str | None = None,
) -> RawVariantRecord:
    """Build a raw record with complete required annotations by default."""
    alts = alts if alts is not None else ["G"]
    if info is None:
        info = {
            "NS": 5,
            "AF": [0.1] * len(alts),
            "ANN": "|".join([alts[0] if alts else "G", "missense_variant", "MODERATE", "BRCA1"]),
        }
    depths = depths if depths is not None else [2, 4, 4, 8, 10]
    qualities = qualities if qualities is not None else [10, 20, 30, 40, 50]
    samples = [
        {"DP": dp, "GQ": gq} for dp, gq in zip(depths, qualities, strict=True)
    ]
    return RawVariantRecord(
        chrom=chrom,
        pos=pos,
        ref=ref,
        alts=alts,
        filters=filters,
        info=info,
        samples=samples,
        rs_id=rs_id,
    )


@pytest.fixture
def record_factory():
    """Return the raw record builder."""
    return make_record


@pytest.fixture
def upload_config() -> UploadConfig:
    """Valid config pointing at a fake server, with instant retries."""
    return UploadConfig(
        assembly="GRCh38",
        dataset="cohort-1",
        host="http://brave.test",
        batch_size=1000,
        max_retries=3,
        backoff_factor=0,
        max_backoff=0,
    )
