"""Typer console interface for ``statement_ingest``.

``.env`` in the working directory is loaded (without overriding existing
variables) and logging is configured by the root callback, before any
subcommand runs. Commands print one JSON document to stdout; logs go to
stderr.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from typer.models import ArgumentInfo

from .config import IngestSettings
from .errors import StatementError
from .logging_setup import configure_logging, get_logger
from .models import StatementDocument
from .pipeline import PipelineResult, StatementPipeline

_logger = get_logger("statement_ingest.cli")


def build_pipeline(
    settings: IngestSettings, *, use_ai: bool = True, company_id: str | None = None
) -> StatementPipeline:
    """Wire the concrete collaborators that ``settings`` has credentials for."""

    analyzer = None
    if use_ai and settings.openai_api_key:
        from .analysis import StatementAnalyzer
        from .openai_client import OpenAIChatModel

        analyzer = StatementAnalyzer(OpenAIChatModel(settings), settings)
    elif use_ai:
        _logger.warning("cli:no_openai_key analysis=fallback")

    ocr = storage = None
    if settings.aws_region or settings.s3_bucket:
        from .aws import S3ObjectStorage, TextractOcrClient

        ocr = TextractOcrClient(settings.aws_region)
        if settings.s3_bucket:
            storage = S3ObjectStorage(settings.s3_bucket, settings.aws_region)

    invoices = store = None
    if settings.database_url:
        from .invoices import SqlInvoiceSource
        from .persistence import SqlTransactionStore

        store = SqlTransactionStore(settings.database_url)
        if company_id:
            invoices = SqlInvoiceSource(settings.database_url)

    return StatementPipeline(
        settings,
        analyzer=analyzer,
        ocr=ocr,
        storage=storage,
        invoices=invoices,
        store=store,
    )


def result_payload(result: PipelineResult) -> dict[str, Any]:
    payload: dict[str, Any] = {"filename": result.filename}
    if result.error is not None:
        payload["error"] = result.error
        return payload
    if result.envelope is not None:
        payload["statement"] = result.envelope.model_dump(mode="json", by_alias=True)
    if result.analysis is not None:
        payload["analysis"] = result.analysis.model_dump(mode="json", by_alias=True)
    if result.persist_report is not None:
        payload["persisted"] = result.persist_report.persisted
        payload["skippedDuplicates"] = result.persist_report.skipped
    return payload


def _settings(database_url: str | None) -> IngestSettings:
    settings = IngestSettings.from_env()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    return settings


def _read(path: Path, declared_type: str | None = None) -> StatementDocument:
    try:
        content = path.read_bytes()
    except OSError as e:
        typer.echo(f"Error: cannot read {path}: {e}", err=True)
        raise typer.Exit(1) from e
    return StatementDocument(content=content, filename=path.name, declared_type=declared_type)


def _check_persist(persist: bool, settings: IngestSettings, bank_account: str | None) -> None:
    if persist and not (settings.database_url and bank_account):
        typer.echo("Error: --persist needs DATABASE_URL and --bank-account.", err=True)
        raise typer.Exit(2)


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statements (CSV, XLS/XLSX, PDF), analyze them with OpenAI and "
        "reconcile them against open invoices. Loads .env before running."
    ),
)

# Module-level argument object to satisfy ruff B008 (no calls in parameter defaults).
FILES_ARGUMENT: ArgumentInfo = typer.Argument(
    ..., help="Statement files to import", dir_okay=False, file_okay=True
)


@app.command("process")
def process_cmd(
    file: Annotated[Path, typer.Argument(help="Statement file (csv, xls, xlsx or pdf)")],
    *,
    doc_type: str | None = typer.Option(
        None, "--type", help="Declared type or MIME type; defaults to the file suffix."
    ),
    company_id: str | None = typer.Option(None, help="Company whose open invoices to match."),
    bank_account: str | None = typer.Option(
        None, help="Bank account identifier used for the dedup key."
    ),
    persist: bool = typer.Option(False, help="Persist transactions to the database."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    no_ai: bool = typer.Option(False, "--no-ai", help="Skip the language model entirely."),
) -> None:
    """Process one statement and print envelope, analysis and reconciliation as JSON."""

    settings = _settings(database_url)
    _check_persist(persist, settings, bank_account)
    pipeline = build_pipeline(settings, use_ai=not no_ai, company_id=company_id)
    document = _read(file, doc_type)
    try:
        result = pipeline.process(
            document, company_id=company_id, bank_account_id=bank_account, persist=persist
        )
    except StatementError as e:
        _logger.error("cli:process_failed file=%s error=%s", file.name, e)
        typer.echo(json.dumps({"filename": file.name, "error": str(e)}))
        raise typer.Exit(1) from e
    typer.echo(json.dumps(result_payload(result), ensure_ascii=False, indent=2))


@app.command("batch")
def batch_cmd(
    files: Annotated[list[Path], FILES_ARGUMENT],
    *,
    company_id: str | None = typer.Option(None, help="Company whose open invoices to match."),
    bank_account: str | None = typer.Option(
        None, help="Bank account identifier used for the dedup key."
    ),
    persist: bool = typer.Option(False, help="Persist transactions to the database."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    no_ai: bool = typer.Option(False, "--no-ai", help="Skip the language model entirely."),
) -> None:
    """Process statements sequentially, pausing between items."""

    settings = _settings(database_url)
    _check_persist(persist, settings, bank_account)
    pipeline = build_pipeline(settings, use_ai=not no_ai, company_id=company_id)
    documents = [_read(f) for f in files]
    results = pipeline.process_batch(
        documents, company_id=company_id, bank_account_id=bank_account, persist=persist
    )
    typer.echo(json.dumps([result_payload(r) for r in results], ensure_ascii=False, indent=2))
    if any(not r.ok for r in results) or len(results) < len(documents):
        raise typer.Exit(1)


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None, help="Log level (defaults to STATEMENT_INGEST_LOG_LEVEL or INFO)."
    ),
) -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover
    app()
