from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer

from lgtnav.artifacts import ArtifactKind, cleanup_all
from lgtnav.log import configure_logging
from lgtnav.records import Record, filter_for_file, parse
from lgtnav.schema import RecordDTO

app = typer.Typer(add_completion=False)


def record_payload(kind: ArtifactKind, record: Record) -> dict[str, object]:
    return RecordDTO(kind=kind.value, **asdict(record)).model_dump(exclude_none=True)


@app.command("serve")
def serve(
    log_level: str = typer.Option("warning", "--log-level"),
) -> None:
    """Run the language server on stdio."""
    from lgtnav import server

    configure_logging(log_level)
    server.start()


@app.command("cleanup")
def cleanup(root: Path = typer.Argument(..., exists=True, file_okay=False)) -> None:
    """Delete leftover engine artifacts below ROOT."""
    configure_logging("info")
    removed = cleanup_all(root)
    for path in removed:
        typer.echo(str(path))
    typer.echo(f"Removed {len(removed)} file(s).", err=True)


@app.command("records")
def records(
    kind: ArtifactKind = typer.Argument(...),
    artifact: Path = typer.Argument(..., exists=True, dir_okay=False),
    source: Optional[str] = typer.Option(None, "--file", help="Only records for this source file."),
) -> None:
    """Decode an artifact and print its records as JSON (the file is left in place)."""
    decoded = parse(artifact.read_bytes(), kind)
    if source is not None:
        decoded = filter_for_file(decoded, source)
    payload = [record_payload(kind, record) for record in decoded]
    typer.echo(json.dumps(payload, indent=2))


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
