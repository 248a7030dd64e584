"""vcf-brave-loader: submit aggregated VCF variants to a BraVE server."""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from . import __version__
from .config import ConfigValidationError, load_config
from .models import ImportResult, ImportStats, RunState, SubmissionBatch
from .reader import CyVCF2Reader, VariantSourceError
from .secrets import (
    DEFAULT_PASSWORD_ENV,
    DEFAULT_TOKEN_ENV,
    CredentialValidationError,
    get_server_password,
    get_server_token,
    mask_password_in_url,
    validate_no_password_in_url,
)
from .session import ImportSession
from .tls import TLSConfig


def version_callback(value: bool) -> None:
    if value:
        print(__version__)
        raise typer.Exit()


app = typer.Typer(
    name="vcf-brave-loader", help="Submit aggregated VCF variants to a BraVE variant server"
)
console = Console()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version", callback=version_callback, is_eager=True, help="Show version and exit"
        ),
    ] = None,
) -> None:
    pass


def setup_logging(verbose: bool, quiet: bool) -> None:
    """Configure logging based on verbosity flags."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("vcf_brave_loader").setLevel(level)


def print_summary(result: ImportResult) -> None:
    """Print the counters of a finished run."""
    stats = result.stats
    if result.state is RunState.COMPLETED:
        label = "Dry run completed" if result.dry_run else "Completed"
        console.print(f"[green]✓[/green] {label} in {result.elapsed_seconds:.1f}s")
    else:
        console.print(f"[red]✗[/red] Aborted: {result.error}")

    console.print(f"  Total variants: {stats.records_read:,}")
    console.print(f"  Passed variants: {stats.records_passed:,}")
    console.print(f"  Filtered: {stats.records_filtered:,}")
    console.print(f"  Failed records: {stats.records_failed:,}")
    console.print(f"  Dropped (no sample data): {stats.variants_dropped:,}")
    console.print(f"  Aggregated variants: {stats.variants_emitted:,}")
    if not result.dry_run:
        console.print(f"  Submitted: {stats.variants_submitted:,}")
        console.print(f"  Failed submissions: {stats.variants_failed:,}")
    if stats.samples_missing:
        console.print(f"  Samples with missing genotype data: {stats.samples_missing:,}")
    for reason, count in sorted(stats.failures.items()):
        console.print(f"    {reason}: {count:,}")


@app.command()
def upload(
    vcf_path: Path = typer.Argument(..., help="Path to VCF file (.vcf, .vcf.gz, .bcf)"),
    dataset: Annotated[str | None, typer.Option("--dataset", help="Dataset name")] = None,
    assembly: Annotated[
        str | None, typer.Option("--assembly", help="Genome assembly version")
    ] = None,
    host: Annotated[
        str | None, typer.Option("--host", help="URL to BraVE server [default: localhost:8080]")
    ] = None,
    username: Annotated[str | None, typer.Option("--username", help="User name")] = None,
    password_env: Annotated[
        str, typer.Option("--password-env", help="Environment variable holding the password")
    ] = DEFAULT_PASSWORD_ENV,
    token_env: Annotated[
        str, typer.Option("--token-env", help="Environment variable holding a bearer token")
    ] = DEFAULT_TOKEN_ENV,
    dont_filter: bool = typer.Option(
        False, "--dont-filter", help="Don't filter variants by FILTER column"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "--dryrun", help="Just check VCF without connecting to server"
    ),
    batch_size: Annotated[
        int | None, typer.Option("--batch", "-b", help="Variants per request")
    ] = None,
    retries: Annotated[
        int | None, typer.Option("--retries", help="Retries per batch on transient failure")
    ] = None,
    timeout: Annotated[
        float | None, typer.Option("--timeout", help="Per-request timeout in seconds")
    ] = None,
    disable_ssl: bool = typer.Option(
        False, "--disable-ssl", help="Disable SSL certificate verification"
    ),
    ca_cert: Annotated[
        Path | None, typer.Option("--ca-cert", help="CA bundle for server verification")
    ] = None,
    config_file: Annotated[
        Path | None, typer.Option("--config", "-c", help="TOML configuration file")
    ] = None,
    report: Annotated[
        Path | None, typer.Option("--report", "-r", help="Write JSON report to file")
    ] = None,
    log_file: Annotated[Path | None, typer.Option("--log", help="Write log to file")] = None,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging, including variant data"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-error output"),
    progress: bool = typer.Option(True, "--progress/--no-progress", help="Show progress"),
) -> None:
    """Filter, aggregate and submit the variants of a VCF file.

    Exits with status 0 when every record was processed and 1 when the
    run was aborted or could not start.
    """
    setup_logging(verbose, quiet)

    if not vcf_path.exists():
        console.print(f"[red]Error: VCF file not found: {vcf_path}[/red]")
        raise typer.Exit(1)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        logging.getLogger("vcf_brave_loader").addHandler(file_handler)

    try:
        if host:
            validate_no_password_in_url(host)
        tls_config = None
        if disable_ssl or ca_cert:
            tls_config = TLSConfig(verify_server=not disable_ssl, ca_cert_path=ca_cert)
        config = load_config(
            config_file,
            overrides={
                "dataset": dataset,
                "assembly": assembly,
                "host": host,
                "username": username,
                "password": get_server_password(password_env_var=password_env),
                "token": get_server_token(token_env_var=token_env),
                "dont_filter": dont_filter or None,
                "dry_run": dry_run or None,
                "verbose": verbose or None,
                "batch_size": batch_size,
                "max_retries": retries,
                "timeout": timeout,
                "tls_config": tls_config,
            },
        )
    except CredentialValidationError as e:
        console.print(f"[red]Security Error: {e}[/red]")
        raise typer.Exit(1) from None
    except (ConfigValidationError, FileNotFoundError) as e:
        console.print(f"[red]Configuration Error: {e}[/red]")
        raise typer.Exit(1) from None

    try:
        reader = CyVCF2Reader(vcf_path)
    except VariantSourceError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    for missing in reader.missing_header_fields():
        logging.getLogger(__name__).warning(
            "%s is not declared in the VCF header; affected records will be skipped", missing
        )

    if not quiet:
        target = "dry run" if config.dry_run else mask_password_in_url(config.host)
        console.print(
            f"Uploading {vcf_path.name} ({reader.sample_count:,} samples) "
            f"to {target} as {config.dataset}/{config.assembly}..."
        )

    with reader:
        if progress and not quiet:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress_bar:
                task = progress_bar.add_task("Processing variants...", total=None)

                def update_progress(batch: SubmissionBatch, stats: ImportStats) -> None:
                    if config.dry_run:
                        done = stats.variants_emitted
                    else:
                        done = stats.variants_submitted
                    progress_bar.update(
                        task, description=f"Batch {batch.sequence}: {done:,} variants"
                    )

                session = ImportSession(
                    config, total_samples=reader.sample_count, batch_callback=update_progress
                )
                result = asyncio.run(session.run(reader))
        else:
            session = ImportSession(config, total_samples=reader.sample_count)
            result = asyncio.run(session.run(reader))

    print_summary(result)

    if report:
        report_data = result.to_report()
        report_data["vcf_file"] = str(vcf_path)
        report_data["dataset"] = config.dataset
        report_data["assembly"] = config.assembly
        report_data["timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        with open(report, "w") as f:
            json.dump(report_data, f, indent=2)
            f.write("\n")
        if not quiet:
            console.print(f"  Report: {report}")

    raise typer.Exit(result.exit_code)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
