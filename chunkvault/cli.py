"""ChunkVault CLI application with Typer."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import ValidationError

from chunkvault import __version__
from chunkvault.bootstrap import ApplicationContainer, bootstrap_application
from chunkvault.config import get_settings, set_settings
from chunkvault.store import ChunkRecord, ChunkStore, ChunkStoreError
from chunkvault.utils.cli_output import json_response
from chunkvault.utils.jsonl import atomic_write_jsonl, read_jsonl
from chunkvault.utils.log import configure_logging

app = typer.Typer(
    name="chunkvault",
    help="Persistent batched store for text chunks and their embedding vectors",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"ChunkVault version {__version__}")
        raise typer.Exit()


def _open() -> ApplicationContainer:
    try:
        return bootstrap_application()
    except ChunkStoreError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    store_dir: Annotated[
        Path | None,
        typer.Option("--store-dir", "-s", help="Override store directory"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
    ] = None,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Fail on corrupt store files instead of resetting them"),
    ] = False,
) -> None:
    """ChunkVault - batched chunk and embedding storage."""
    settings = get_settings()
    if store_dir:
        settings.store_dir = store_dir
    if log_level:
        settings.log_level = log_level
    if strict:
        settings.strict = True
    set_settings(settings)
    configure_logging(settings.log_level)


@app.command("stats")
def stats(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show record count, batch topology and configuration."""
    container = _open()
    store_stats = container.store.get_stats()

    if json_output:
        typer.echo(
            json_response(
                "store_stats",
                1,
                store=str(container.store.root),
                **store_stats.to_json_dict(),
            )
        )
        return

    typer.secho(f"Store: {container.store.root}", fg=typer.colors.BLUE)
    typer.echo(f"  Chunks:     {store_stats.chunk_count}")
    typer.echo(f"  Batches:    {store_stats.batch_count} (size {store_stats.batch_size})")
    typer.echo(f"  Dimension:  {store_stats.dimension}")
    typer.echo(f"  Threshold:  {store_stats.threshold}")


@app.command("configure")
def configure(
    dimension: Annotated[
        int,
        typer.Option("--dimension", "-d", help="Embedding vector dimension", min=1),
    ],
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", "-t", help="Similarity threshold (0.0-1.0)", min=0.0, max=1.0),
    ] = None,
) -> None:
    """Set the vector dimension and similarity threshold."""
    container = _open()
    value = threshold if threshold is not None else container.settings.default_threshold
    try:
        container.store.set_config(dimension, value)
    except ChunkStoreError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    typer.secho(
        f"Configured dimension={dimension} threshold={value}", fg=typer.colors.GREEN
    )


def _parse_import_line(payload: dict[str, Any]) -> tuple[ChunkRecord, list[float]]:
    body = dict(payload)
    embedding = body.pop("embedding", None)
    if not isinstance(embedding, list):
        raise ValueError("missing 'embedding' list")
    body.setdefault("id", str(uuid.uuid4()))
    return ChunkRecord.model_validate(body), embedding


@app.command("import")
def import_records(
    path: Annotated[
        Path,
        typer.Argument(help="JSONL file of {id?, text, source, chunkIndex, embedding}", exists=True),
    ],
    replace: Annotated[
        bool,
        typer.Option("--replace", help="Remove existing records for each imported source first"),
    ] = False,
) -> None:
    """Append records with precomputed embeddings from a JSONL file."""
    container = _open()
    store = container.store
    replaced: set[str] = set()
    count = 0

    try:
        for line_number, payload in enumerate(read_jsonl(path), start=1):
            try:
                record, embedding = _parse_import_line(payload)
            except (ValueError, ValidationError) as exc:
                typer.secho(f"Error: line {line_number}: {exc}", fg=typer.colors.RED, err=True)
                raise typer.Exit(code=1) from exc

            if not store.dimension:
                store.set_config(len(embedding), container.settings.default_threshold)
                typer.secho(
                    f"Store dimension set to {len(embedding)} from first record",
                    fg=typer.colors.YELLOW,
                )

            if replace and record.source not in replaced:
                store.remove_chunks_by_source(record.source)
                replaced.add(record.source)

            store.add_chunk(record, embedding)
            count += 1
    except (ChunkStoreError, ValueError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    try:
        store.save()
    except (ChunkStoreError, OSError) as exc:
        typer.secho(f"Error: failed to save store: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    typer.secho(f"Imported {count} records into {store.root}", fg=typer.colors.GREEN)


def _export_rows(store: ChunkStore) -> Iterator[dict[str, Any]]:
    for _, records, vectors in store.iter_batches():
        for record, vector in zip(records, vectors):
            row = record.to_json_dict()
            row["embedding"] = vector.tolist()
            yield row


@app.command("export")
def export_records(
    output: Annotated[Path, typer.Argument(help="Destination JSONL file")],
) -> None:
    """Write every record with its embedding to a JSONL file."""
    container = _open()
    try:
        count = atomic_write_jsonl(output, _export_rows(container.store))
    except ChunkStoreError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc
    typer.secho(f"Exported {count} records to {output}", fg=typer.colors.GREEN)


@app.command("remove-source")
def remove_source(
    source: Annotated[str, typer.Argument(help="Source key whose records should be removed")],
) -> None:
    """Remove every record for a source and compact the store."""
    container = _open()
    try:
        removed = container.store.remove_chunks_by_source(source)
    except ChunkStoreError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc
    container.state.forget(source)
    container.state.save()

    if removed:
        typer.secho(f"Removed {removed} records for {source}", fg=typer.colors.GREEN)
    else:
        typer.secho(f"No records found for {source}", fg=typer.colors.YELLOW)


@app.command("sources")
def list_sources() -> None:
    """List distinct source keys in storage order."""
    container = _open()
    try:
        sources = container.store.get_sources()
    except ChunkStoreError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc

    for source in sources:
        typer.echo(source)


@app.command("verify")
def verify(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Check that batch files on disk agree with the index."""
    container = _open()
    report = container.store.verify()

    if json_output:
        typer.echo(json_response("store_verify", 1, ok=report.ok, **report.to_json_dict()))
    elif report.ok:
        typer.secho(
            f"✅ Store is consistent: {report.chunk_count} records in "
            f"{report.expected_batches} batches",
            fg=typer.colors.GREEN,
        )
    else:
        typer.secho("❌ Store verification failed:", fg=typer.colors.RED)
        for problem in report.problems:
            typer.secho(f"  - {problem}", fg=typer.colors.RED)

    if not report.ok:
        raise typer.Exit(code=1)


@app.command("clear")
def clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete all records from the store."""
    container = _open()
    if not yes:
        typer.confirm(f"Delete all records in {container.store.root}?", abort=True)

    container.store.clear()
    for source in container.state.processed_sources():
        container.state.forget(source)
    container.state.save()
    typer.secho("Store cleared", fg=typer.colors.GREEN)


if __name__ == "__main__":
    app()
