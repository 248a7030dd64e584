"""vcf-brave-loader: submit aggregated VCF variants to a BraVE server."""

__version__ = "0.2.0"
