"""vcfstream: stream, inspect and filter VCF files."""

import logging
import sys
from pathlib import Path
from typing import Annotated, TextIO

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import ConfigValidationError, FilterConfig, load_config
from .errors import FilterError, VCFError
from .filters import FilterType, VariantFilter, filter_variables
from .header import FieldDefinition
from .reader import VariantCallFile


def version_callback(value: bool) -> None:
    if value:
        print(__version__)
        raise typer.Exit()


app = typer.Typer(name="vcfstream", help="Stream, inspect and filter VCF files")
console = Console()
err_console = Console(stderr=True)


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


def setup_logging(verbose: bool, quiet: bool, log_level: str = "INFO") -> None:
    """Configure logging based on verbosity flags, falling back to a configured level."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, log_level.upper())

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("vcfstream").setLevel(level)


def _open_vcf(vcf_path: Path) -> VariantCallFile:
    if not vcf_path.exists():
        err_console.print(f"[red]Error: VCF file not found: {vcf_path}[/red]")
        raise typer.Exit(1)

    vcf = VariantCallFile()
    if not vcf.open(vcf_path):
        err_console.print(f"[red]Error: could not parse VCF header of {vcf_path}[/red]")
        raise typer.Exit(1)
    return vcf


def _apply_region(vcf: VariantCallFile, region: str | None) -> None:
    if region is None:
        return
    try:
        positioned = vcf.set_region(region)
    except ValueError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None
    if not positioned:
        err_console.print(
            f"[red]Error: cannot seek to {region}; region queries need an indexed .vcf.gz[/red]"
        )
        raise typer.Exit(1)


def _load_filter_config(config_path: Path | None, overrides: dict) -> FilterConfig:
    if config_path is None:
        return FilterConfig(**{k: v for k, v in overrides.items() if v is not None})
    try:
        return load_config(config_path, overrides)
    except (FileNotFoundError, ConfigValidationError) as e:
        err_console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1) from None


@app.command("filter")
def filter_vcf(
    vcf_path: Path = typer.Argument(..., help="Path to VCF file (.vcf or indexed .vcf.gz)"),
    filters: Annotated[
        list[str] | None,
        typer.Option("--filter", "-f", help="Record filter, e.g. 'DP > 10 & AF < 0.5'"),
    ] = None,
    sample_filters: Annotated[
        list[str] | None,
        typer.Option(
            "--genotype-filter", "-g", help="Sample filter; failing genotypes are set to missing"
        ),
    ] = None,
    region: Annotated[
        str | None, typer.Option("--region", "-r", help="Region chrom[:start[-end]]")
    ] = None,
    invert: Annotated[
        bool, typer.Option("--invert", "-v", help="Keep records that fail the record filters")
    ] = False,
    tag: Annotated[
        str | None,
        typer.Option("--tag", "-t", help="Add TAG to FILTER of failing records instead of dropping"),
    ] = None,
    config_path: Annotated[
        Path | None, typer.Option("--config", "-c", help="TOML configuration file")
    ] = None,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Output file path")] = None,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-error output"),
) -> None:
    """Filter records and genotypes of a VCF file.

    Example:
        vcfstream filter calls.vcf -f "QUAL > 30 & DP > 10" -g "GQ < 20 | HOM_REF"
    """
    config = _load_filter_config(
        config_path,
        {
            "filters": filters or None,
            "sample_filters": sample_filters or None,
            "region": region,
            "invert": invert or None,
            "tag": tag,
        },
    )
    setup_logging(verbose, quiet, config.log_level)
    logger = logging.getLogger(__name__)

    vcf = _open_vcf(vcf_path)
    header = vcf.header

    try:
        record_filters = [
            VariantFilter(spec, FilterType.RECORD, filter_variables(header, FilterType.RECORD))
            for spec in config.filters
        ]
        genotype_filters = [
            VariantFilter(spec, FilterType.SAMPLE, filter_variables(header, FilterType.SAMPLE))
            for spec in config.sample_filters
        ]
    except FilterError as e:
        err_console.print(f"[red]Error in filter expression: {e}[/red]")
        vcf.close()
        raise typer.Exit(1) from None

    _apply_region(vcf, config.region)

    if config.tag:
        description = " & ".join(config.filters) or "record filter"
        header.add_header_line(f'##FILTER=<ID={config.tag},Description="Failed: {description}">')

    out_file: TextIO = open(output, "w") if output else sys.stdout
    n_read = 0
    n_written = 0
    try:
        out_file.write(header.to_text())
        for variant in vcf:
            n_read += 1
            for genotype_filter in genotype_filters:
                genotype_filter.remove_filtered_genotypes(variant)

            passed = all(record_filter.passes(variant) for record_filter in record_filters)
            if config.invert:
                passed = not passed

            if config.tag:
                if not passed:
                    variant.add_filter(config.tag)
            elif not passed:
                continue

            out_file.write(f"{variant}\n")
            n_written += 1
    except VCFError as e:
        err_console.print(f"[red]Error after {n_read} records: {e}[/red]")
        raise typer.Exit(1) from None
    finally:
        vcf.close()
        if output:
            out_file.close()

    logger.info("Wrote %d of %d records", n_written, n_read)


def _definitions_table(title: str, definitions: dict[str, FieldDefinition]) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Number")
    table.add_column("Type")
    table.add_column("Description")
    for definition in definitions.values():
        table.add_row(
            definition.tag, str(definition.number), definition.type.value, definition.description
        )
    return table


@app.command("header")
def show_header(
    vcf_path: Path = typer.Argument(..., help="Path to VCF file"),
) -> None:
    """Show INFO and FORMAT field declarations and sample names."""
    vcf = _open_vcf(vcf_path)
    header = vcf.header
    vcf.close()

    if header.fileformat:
        console.print(f"Format: {header.fileformat}")
    console.print(_definitions_table("INFO fields", header.info_fields))
    console.print(_definitions_table("FORMAT fields", header.format_fields))
    console.print(f"Samples ({len(header.sample_names)}): {', '.join(header.sample_names)}")


@app.command("sites")
def show_sites(
    vcf_path: Path = typer.Argument(..., help="Path to VCF file"),
    region: Annotated[
        str | None, typer.Option("--region", "-r", help="Region chrom[:start[-end]]")
    ] = None,
) -> None:
    """Print CHROM, POS and the comma-separated allele list of each record."""
    vcf = _open_vcf(vcf_path)
    _apply_region(vcf, region)
    try:
        for variant in vcf:
            sys.stdout.write(
                f"{variant.sequence_name}\t{variant.position}\t{variant.format_alleles()}\n"
            )
    except VCFError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None
    finally:
        vcf.close()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
