"""Decode CLI command for labelscan.

Reads a label photo from disk, runs it through the decoding service and
prints the model code and asset tag as a table or as JSON.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from labelscan.app.config import load_settings
from labelscan.domain.models import DecodeOutcome, Failure, Success
from labelscan.infrastructure.observability import configure_logging, configure_tracing
from labelscan.services.label_decoding import (
    LabelDecodingService,
    build_decoding_service,
)

console = Console()
err_console = Console(stderr=True)

EXTENSION_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
}
DEFAULT_CONTENT_TYPE = "image/jpeg"


def infer_content_type(path: Path) -> str:
    """Guess the MIME type of a label photo from its file extension."""
    return EXTENSION_CONTENT_TYPES.get(path.suffix.lower(), DEFAULT_CONTENT_TYPE)


async def _run_decode(
    service: LabelDecodingService, data: bytes, filename: str, content_type: str
) -> DecodeOutcome:
    try:
        return await service.decode(data, filename=filename, content_type=content_type)
    finally:
        await service.close()


def _render_success(outcome: Success) -> None:
    identifiers = outcome.identifiers
    table = Table(title="Decoded label")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Model code", identifiers.model_code)
    table.add_row("Asset tag", identifiers.asset_tag)
    table.add_row("Combined", identifiers.combined_code)
    table.add_row("Raw text", escape(identifiers.raw_code))
    table.add_row("Strategy", outcome.strategy.value)
    if outcome.symbology:
        table.add_row("Symbology", outcome.symbology)
    console.print(table)

    if outcome.ocr_diagnostics:
        diag_table = Table(title="OCR fields")
        diag_table.add_column("Field")
        diag_table.add_column("Value")
        diag_table.add_column("Status")
        diag_table.add_column("Confidence", justify="right")
        for name, diag in outcome.ocr_diagnostics.items():
            diag_table.add_row(
                name,
                escape(diag.value or "-"),
                diag.status.value,
                f"{diag.confidence:.2f}",
            )
        console.print(diag_table)


def _render_failure(outcome: Failure, debug: bool) -> None:
    err_console.print(
        f"[red]Decode failed ({outcome.kind.value}):[/red] {escape(outcome.message)}"
    )
    if debug and outcome.cause is not None:
        err_console.print(f"[dim]Cause: {escape(repr(outcome.cause))}[/dim]")


@click.command(name="decode")
@click.argument(
    "path", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option(
    "--content-type",
    default=None,
    help="MIME type of the photo. Inferred from the file extension if omitted.",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the result as JSON instead of a table.",
)
@click.option(
    "--no-ocr",
    is_flag=True,
    help="Only try barcode recognition, never the OCR fallback.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="JSON config file. Defaults to config.json if present.",
)
@click.option("--debug", is_flag=True, help="Verbose logging and failure causes.")
@click.pass_context
def decode_label(
    ctx: click.Context,
    path: Path,
    content_type: str | None,
    as_json: bool,
    no_ocr: bool,
    config_path: str | None,
    debug: bool,
) -> None:
    """Decode the model code and asset tag from a label photo.

    Exits with status 1 when the label could not be decoded.
    """
    try:
        settings = load_settings(config_path)
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc

    configure_logging("DEBUG" if debug else settings.log_level)
    if settings.tracing_enabled:
        configure_tracing(
            service_name="labelscan-cli", sample_rate=settings.tracing_sample_rate
        )

    if no_ocr:
        service = LabelDecodingService(ocr=None)
    else:
        service = build_decoding_service(settings)

    content_type = content_type or infer_content_type(path)
    outcome = asyncio.run(
        _run_decode(service, path.read_bytes(), path.name, content_type)
    )

    if as_json:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
    elif isinstance(outcome, Success):
        _render_success(outcome)
    else:
        _render_failure(outcome, debug)

    if isinstance(outcome, Failure):
        ctx.exit(1)
