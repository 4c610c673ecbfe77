"""CLI for the ``budget_categorizer`` package.

Exposes a Typer app with one command, ``categorize``, which reads raw
provider-shaped transactions and a taxonomy from JSON files and prints the
results as JSON. Environment variables (notably ``AI_API_KEY``) are loaded
from a local ``.env`` using ``python-dotenv`` before settings are built.

Exit codes: ``0`` success, ``1`` input errors or at least one failed chunk,
``2`` configuration errors.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from pydantic import ValidationError

from .categorize import BatchCategorizer, CategorizationRun
from .config import CategorizerSettings
from .errors import ConfigurationError
from .logging_setup import configure_logging
from .taxonomy import build_taxonomy, load_taxonomy_json

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Categorize bank transactions into a closed budgeting taxonomy using an external "
        "classifier. Loads AI_API_KEY from a local .env before running."
    ),
)


def _run_to_json(run: CategorizationRun) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for tx_id, result in run:
        row: dict[str, Any] = {"id": tx_id}
        if result is None:
            row.update({"mainCategory": None, "subCategory": None, "userModified": False})
        else:
            row.update(result.to_dict())
        out.append(row)
    return out


def _read_transactions(path: Path) -> list[dict[str, Any]]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    # Accept either a bare list or the provider's {"transactions": [...]} page.
    if isinstance(raw, dict):
        raw = raw.get("transactions")
    if not isinstance(raw, list):
        raise ValueError("transactions file must contain a JSON array")
    return raw


@app.command("categorize")
def categorize_cmd(
    transactions_path: Annotated[
        Path,
        typer.Option("--transactions", help="JSON file with raw provider transactions."),
    ],
    taxonomy_path: Annotated[
        Path,
        typer.Option("--taxonomy", help='JSON file: [{"mainCategory", "subcategories"}].'),
    ],
    batch_size: Annotated[
        int | None,
        typer.Option(help="Override AI_BATCH_SIZE for this run."),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(help="Log level (defaults to BUDGET_CATEGORIZER_LOG_LEVEL or INFO)."),
    ] = None,
) -> None:
    """Categorize transactions and print a JSON array of results."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)

    try:
        settings = CategorizerSettings.from_env()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise typer.Exit(2) from e
    if batch_size is not None:
        # Re-validate so a bad override falls back like the env value would.
        settings = CategorizerSettings(**{**settings.model_dump(), "batch_size": batch_size})

    try:
        transactions = _read_transactions(transactions_path)
        # Duplicate main categories are an input error too.
        taxonomy = build_taxonomy(load_taxonomy_json(taxonomy_path))
    except FileNotFoundError as e:
        print(f"Error: File not found: {e.filename}", file=sys.stderr)
        raise typer.Exit(1) from e
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too.
        print(f"Error: invalid input file: {e}", file=sys.stderr)
        raise typer.Exit(1) from e

    categorizer = BatchCategorizer.from_settings(settings, lambda: taxonomy)
    try:
        run = categorizer.categorize(transactions)
    except ValidationError as e:
        print(f"Error: invalid transaction record: {e}", file=sys.stderr)
        raise typer.Exit(1) from e

    typer.echo(json.dumps(_run_to_json(run), ensure_ascii=False, indent=2))
    for failure in run.failures:
        print(
            f"Error: chunk {failure.chunk_index} ({len(failure.transaction_ids)} transactions) "
            f"failed: {failure.error}",
            file=sys.stderr,
        )
    if run.failures:
        raise typer.Exit(1)


@app.callback()
def _root() -> None:
    """Transaction anonymization and categorization tools."""


if __name__ == "__main__":  # pragma: no cover
    app()
