"""Synthetic VCF generator for unit tests."""

import tempfile
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class SyntheticVariant:
    """Represents a synthetic variant for testing."""

    chrom: str
    pos: int
    ref: str
    alt: list[str]
    qual: float | None = 30.0
    filter: str = "PASS"
    info: dict = field(default_factory=dict)
    format_fields: dict = field(default_factory=dict)
    rs_id: str = "."


def make_ann(alt: str, gene: str = "BRCA1", hgvs: str = "c.100A>G") -> str:
    """Build one pipe-delimited ANN entry for ``alt``."""
    return "|".join(
        [
            alt,
            "missense_variant",
            "MODERATE",
            gene,
            "ENSG00000012048",
            "SNV",
            "ENST00000357654",
            "protein_coding",
            "2/23",
            hgvs,
            "p.Lys34Glu",
        ]
    )


class VCFGenerator:
    """Generate minimal VCFs for targeted unit tests."""

    HEADER_TEMPLATE = """##fileformat=VCFv4.2
##FILTER=<ID=PASS,Description="All filters passed">
##FILTER=<ID=q10,Description="Quality below 10">
##FILTER=<ID=s50,Description="Less than 50% of samples have data">
##INFO=<ID=NS,Number=1,Type=Integer,Description="Number of Samples With Data">
##INFO=<ID=AF,Number=A,Type=Float,Description="Allele Frequency">
##INFO=<ID=ANN,Number=.,Type=String,Description="Functional annotations: 'Allele | Annotation | Annotation_Impact | Gene_Name | Gene_ID | Feature_Type | Feature_ID | Transcript_BioType | Rank | HGVS.c | HGVS.p'">
##INFO=<ID=CLNSIG,Number=.,Type=String,Description="Clinical significance">
##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">
##FORMAT=<ID=DP,Number=1,Type=Integer,Description="Read Depth">
##FORMAT=<ID=GQ,Number=1,Type=Integer,Description="Genotype Quality">
##contig=<ID=chr1,length=248956422>
##contig=<ID=chr2,length=242193529>
##contig=<ID=chr17,length=83257441>
"""

    @classmethod
    def generate(
        cls,
        variants: list[SyntheticVariant],
        samples: list[str] | None = None,
        header: str | None = None,
    ) -> str:
        """Generate a minimal VCF string."""
        samples = samples or ["SAMPLE1"]
        lines = [(header or cls.HEADER_TEMPLATE).strip()]
        lines.append(
            "#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\tFORMAT\t"
            + "\t".join(samples)
        )

        for v in variants:
            info_str = cls._format_info(v.info) if v.info else "."
            alt_str = ",".join(v.alt) if v.alt else "."
            qual_str = str(v.qual) if v.qual is not None else "."

            format_keys = ["GT"]
            if v.format_fields:
                first_sample = list(v.format_fields.values())[0]
                format_keys = list(first_sample.keys())

            sample_cols = []
            for sample in samples:
                if v.format_fields and sample in v.format_fields:
                    vals = [str(v.format_fields[sample].get(k, ".")) for k in format_keys]
                    sample_cols.append(":".join(vals))
                else:
                    sample_cols.append(":".join(["./."] + ["."] * (len(format_keys) - 1)))

            line = (
                f"{v.chrom}\t{v.pos}\t{v.rs_id}\t{v.ref}\t{alt_str}\t{qual_str}\t"
                f"{v.filter}\t{info_str}\t{':'.join(format_keys)}\t"
                + "\t".join(sample_cols)
            )
            lines.append(line)

        return "\n".join(lines) + "\n"

    @classmethod
    def generate_file(
        cls,
        variants: list[SyntheticVariant],
        samples: list[str] | None = None,
        directory: Path | None = None,
        header: str | None = None,
    ) -> Path:
        """Generate a VCF file and return the path."""
        content = cls.generate(variants, samples, header=header)
        with tempfile.NamedTemporaryFile(
            mode="w", suffix=".vcf", delete=False, dir=directory
        ) as f:
            f.write(content)
            return Path(f.name)

    @staticmethod
    def _format_info(info: dict) -> str:
        parts = []
        for k, v in info.items():
            if v is True:
                parts.append(k)
            elif isinstance(v, list):
                parts.append(f"{k}={','.join(map(str, v))}")
            else:
                parts.append(f"{k}={v}")
        return ";".join(parts) if parts else "."


def cohort_format_fields(
    samples: list[str], depths: list, qualities: list
) -> dict[str, dict]:
    """Per-sample GT/DP/GQ mappings; ``None`` values are written as '.'."""
    fields = {}
    for sample, dp, gq in zip(samples, depths, qualities, strict=True):
        fields[sample] = {
            "GT": "0/1",
            "DP": "." if dp is None else dp,
            "GQ": "." if gq is None else gq,
        }
    return fields


def make_upload_vcf_file(directory: Path | None = None) -> Path:
    """VCF covering PASS, filtered, multi-allelic and incomplete records."""
    samples = ["S1", "S2", "S3", "S4", "S5"]
    full = cohort_format_fields(samples, [2, 4, 4, 8, 10], [10, 20, 30, 40, 50])
    return VCFGenerator.generate_file(
        [
            SyntheticVariant(
                chrom="chr1",
                pos=100,
                ref="A",
                alt=["G"],
                rs_id="rs123;rs456",
                info={"NS": 5, "AF": [0.25], "ANN": make_ann("G"), "CLNSIG": "Pathogenic"},
                format_fields=full,
            ),
            SyntheticVariant(
                chrom="chr1",
                pos=200,
                ref="C",
                alt=["T", "G"],
                info={
                    "NS": 5,
                    "AF": [0.3, 0.2],
                    "ANN": f"{make_ann('T')},{make_ann('G', hgvs='c.200C>G')}",
                },
                format_fields=full,
            ),
            SyntheticVariant(
                chrom="chr1",
                pos=300,
                ref="G",
                alt=["A"],
                filter="q10",
                info={"NS": 5, "AF": [0.1], "ANN": make_ann("A")},
                format_fields=full,
            ),
            SyntheticVariant(
                chrom="chr2",
                pos=400,
                ref="T",
                alt=["C"],
                info={"AF": [0.1], "ANN": make_ann("C")},
                format_fields=full,
            ),
            SyntheticVariant(
                chrom="chr2",
                pos=500,
                ref="T",
                alt=["A"],
                info={"NS": 5, "AF": [0.4], "ANN": make_ann("A")},
                format_fields=cohort_format_fields(
                    samples, [None] * 5, [10, 20, 30, 40, 50]
                ),
            ),
            SyntheticVariant(
                chrom="chr17",
                pos=600,
                ref="A",
                alt=["T"],
                filter=".",
                info={"NS": 5, "AF": [0.5], "ANN": make_ann("T")},
                format_fields=cohort_format_fields(
                    samples, [30, None, 10, 20, None], [99, 99, None, 60, 70]
                ),
            ),
        ],
        samples=samples,
        directory=directory,
    )
