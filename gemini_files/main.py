from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, NoReturn, Optional

import click
import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt
from rich.table import Table

from gemini_files.activation import ActivationReport
from gemini_files.api import GeminiClient
from gemini_files.config import DEFAULT_MAX_OUTPUT_TOKENS, Settings, load_settings, resolve_api_key
from gemini_files.deletion import DeletionResult, reconcile_deletion
from gemini_files.errors import GeminiFilesError
from gemini_files.ids import normalize_file_ids, normalize_query_target
from gemini_files.log import configure_logging, err_console
from gemini_files.models import QueryRequest
from gemini_files.query import read_query_file, run_query
from gemini_files.snapshot import list_remote_files
from gemini_files.upload import UploadReport, upload_files

app = typer.Typer(help="List, delete, upload, or query files using the Gemini File API.")
console = Console()


@dataclass
class AppState:
    settings: Settings
    keyfile: Optional[Path]


# --------------------------- Setup ---------------------------

@app.callback()
def app_callback(
    ctx: typer.Context,
    keyfile: Optional[Path] = typer.Option(
        None, "--keyfile", help="File containing the API key (overrides GEMINI_API_KEY).",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose progress output on stderr."),
) -> None:
    """
    Files are stored by the API for 48 hours; max 2 GB per file, 20 GB per project.
    """
    configure_logging(verbose)
    try:
        settings = load_settings()
    except GeminiFilesError as e:
        _fail(str(e))
    ctx.obj = AppState(settings=settings, keyfile=keyfile)


def get_client(state: AppState) -> GeminiClient:
    """
    Create a client. The API key comes from --keyfile, else GEMINI_API_KEY.
    """
    try:
        api_key = resolve_api_key(state.keyfile)
    except GeminiFilesError as e:
        _fail(str(e))
    return GeminiClient(api_key, state.settings)


# --------------------------- CLI Commands ---------------------------

@app.command("list")
def list_cmd(
    ctx: typer.Context,
    file_ids: Optional[List[str]] = typer.Argument(None, help="Only list these ids (files/xxx or xxx)."),
) -> None:
    """
    Print {"files": [...]} as JSON. With ids, only those files are listed.
    """
    state: AppState = ctx.obj
    requested = _requested_ids(file_ids, action="list")

    with get_client(state) as client:
        try:
            selection = list_remote_files(
                client,
                requested,
                page_size=state.settings.page_size,
                pause=state.settings.page_pause,
            )
        except GeminiFilesError as e:
            _fail(f"Aborting list: {e}")

    typer.echo(json.dumps({"files": [f.to_dict() for f in selection.files]}, indent=2))


@app.command()
def delete(
    ctx: typer.Context,
    file_ids: Optional[List[str]] = typer.Argument(None, help="Only delete these ids. Omit to delete ALL files."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """
    Delete files after checking them against a fresh listing.
    """
    state: AppState = ctx.obj
    requested = _requested_ids(file_ids, action="delete")
    confirm = (lambda _prompt: True) if yes else confirm_on_console

    with get_client(state) as client:
        try:
            result = reconcile_deletion(
                client,
                requested,
                confirm,
                page_size=state.settings.page_size,
                page_pause=state.settings.page_pause,
                delay=state.settings.delete_delay,
                workers=state.settings.workers,
            )
        except GeminiFilesError as e:
            _fail(f"Aborting delete: {e}")

    if result.confirmed:
        _print_deletion_summary(result)
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def upload(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Local files to upload."),
) -> None:
    """
    Upload files and wait until each is ACTIVE. Prints the ids that became ACTIVE.
    """
    state: AppState = ctx.obj

    with get_client(state) as client:
        report = upload_files(
            client,
            paths,
            default_mime_type=state.settings.default_mime_type,
            delays=state.settings.verify_delays,
            workers=state.settings.workers,
        )

    _print_upload_summary(report)
    for file_id in report.activation.active_ids:
        typer.echo(file_id)
    if not report.ok:
        raise typer.Exit(code=1)


@app.command()
def query(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="File id (files/xxx or xxx) or its full https URI."),
    query_file: Path = typer.Option(..., "--query-file", help="File containing the query text."),
    model: Optional[str] = typer.Option(None, "--model", help="Model name (default: gemini-2.0-flash-lite)."),
    max_tokens: int = typer.Option(DEFAULT_MAX_OUTPUT_TOKENS, "--max-tokens", min=1, help="Max output tokens."),
    json_output: bool = typer.Option(False, "--json-output", help="Print the raw JSON response instead of text."),
) -> None:
    """
    Ask a model a question about one uploaded file.
    """
    state: AppState = ctx.obj
    try:
        target_id = normalize_query_target(target)
        prompt_text = read_query_file(query_file)
    except GeminiFilesError as e:
        _fail(str(e))

    request = QueryRequest(
        target_id=target_id,
        prompt_text=prompt_text,
        model_name=model or state.settings.model,
        max_output_tokens=max_tokens,
        output_mode="raw" if json_output else "text",
    )
    with get_client(state) as client:
        try:
            result = run_query(client, request)
        except GeminiFilesError as e:
            _fail(str(e))

    if result.output:
        typer.echo(result.output)


# --------------------------- Utilities ---------------------------

def confirm_on_console(prompt: str) -> bool:
    """Accepts 'y' or 'yes' (any case). EOF counts as no."""
    try:
        answer = Prompt.ask(f"{prompt} (type 'yes' to confirm)", console=err_console, default="", show_default=False)
    except (EOFError, KeyboardInterrupt):
        err_console.print()
        return False
    return answer.strip().lower() in {"y", "yes"}


def _requested_ids(raw_ids: Optional[List[str]], *, action: str) -> Optional[List[str]]:
    if not raw_ids:
        return None
    normalized, rejected = normalize_file_ids(raw_ids)
    for raw in rejected:
        err_console.print(f"[yellow]Warning:[/yellow] skipping invalid id {escape(repr(raw))} for {action}.")
    if not normalized:
        _fail("No valid file IDs provided.")
    return normalized


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(code=1)


def _print_upload_summary(report: UploadReport) -> None:
    failed_uploads = [o for o in report.outcomes if not o.ok]
    if failed_uploads:
        table = Table(title="Failed Uploads", box=box.SIMPLE)
        table.add_column("Path", overflow="fold")
        table.add_column("Error", overflow="fold")
        for outcome in failed_uploads:
            table.add_row(escape(str(outcome.local_path)), escape(outcome.error or ""))
        err_console.print(table)
    _print_verification_summary(report.activation)


def _print_verification_summary(activation: ActivationReport) -> None:
    if not activation.entries:
        err_console.print("No files were successfully verified.")
        return
    table = Table(title="Verification Summary", box=box.SIMPLE)
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Checks", justify="right")
    table.add_column("Detail", overflow="fold")
    for entry in activation.entries.values():
        if entry.status == "timeout":
            detail = f"timed out, last state: {entry.last_remote_state or '?'}"
        else:
            detail = entry.detail or ""
        style = "green" if entry.status == "active" else "red"
        table.add_row(entry.id, f"[{style}]{entry.status}[/{style}]", str(entry.attempts), escape(detail))
    err_console.print(table)


def _print_deletion_summary(result: DeletionResult) -> None:
    table = Table(title="Deletion Summary", box=box.SIMPLE)
    table.add_column("Targeted", justify="right")
    table.add_column("Deleted", justify="right")
    table.add_column("Errors", justify="right")
    table.add_row(str(len(result.plan.resolved_ids)), str(len(result.deleted)), str(len(result.errors)))
    console.print(table)


# --------------------------- Entrypoint ---------------------------

def main() -> None:
    # Usage errors exit 1 like every other failure.
    try:
        code = app(standalone_mode=False)
    except click.exceptions.Abort:
        err_console.print("Aborted.")
        sys.exit(1)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
    sys.exit(code if isinstance(code, int) else 0)


if __name__ == "__main__":
    main()
