# docrecon/cli/main.py
# ============================================================
# Document Reconstruction — Command Line Interface
# ============================================================
# Typer-based front end for the orchestrator. Plays the part of
# the upload view, the backend settings panel and the results
# view: check the connection, pick a mode and tasks, submit
# files, read the results and export them as JSON.
#
# Usage:
#   docrecon health --base-url http://gpu-box:8000
#   docrecon process scan.pdf invoice.png --output output/
#   docrecon process scan.pdf --mode single --task ocr
#   docrecon infer-image page.png --image-id page1
# ============================================================

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from docrecon.client.api import InferenceClient
from docrecon.client.schemas import ProcessingResult
from docrecon.config.settings import settings
from docrecon.exceptions import DocReconError
from docrecon.pipeline.modes import ProcessingMode, build_request, resolve_tasks
from docrecon.pipeline.orchestrator import DocumentOrchestrator
from docrecon.pipeline.state import FileProcessingState, Stage
from docrecon.pipeline.store import ResultStore, full_text
from docrecon.tasks import TASK_CATALOG, list_tasks, parse_tasks
from docrecon.utils.files import encode_base64, load_submitted_file, save_visualization

# Tokens listed per result before the rest is summarized
MAX_TOKENS_SHOWN = 20

app = typer.Typer(
    name="docrecon",
    help=(
        "Document OCR Pipeline — layout detection and text extraction\n\n"
        "Sends documents to a Reconstruction Backend and shows the detected\n"
        "regions, OCR tokens and full text. Supports PNG, JPG and PDF files."
    ),
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _build_client(base_url: Optional[str] = None) -> InferenceClient:
    return InferenceClient(base_url=base_url or settings.api_base_url)


# ============================================================
# Commands
# ============================================================

@app.command()
def health(
    base_url: Optional[str] = typer.Option(
        None, "--base-url", "-u", help="Backend URL. Default: API_BASE_URL setting.",
    ),
):
    """
    Test the connection to the backend and list its models.
    """
    client = _build_client(base_url)

    async def run():
        async with client:
            status = await client.health_check()
            models = await client.list_models()
            return status, models

    try:
        status, models = asyncio.run(run())
    except DocReconError as e:
        console.print(f"[red]Connection failed:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    table = Table(title="Backend Health", show_header=False)
    table.add_column("Property", style="bold")
    table.add_column("Value")
    table.add_row("URL", client.base_url)
    table.add_row("Status", f"[green]{status.status}[/green]")
    table.add_row(
        "Layout Models",
        f"{len(models.layout_models)} available: {', '.join(models.layout_models) or '-'}",
    )
    table.add_row(
        "OCR Models",
        f"{len(models.ocr_models)} available: {', '.join(models.ocr_models) or '-'}",
    )
    console.print(table)


@app.command()
def models(
    base_url: Optional[str] = typer.Option(
        None, "--base-url", "-u", help="Backend URL. Default: API_BASE_URL setting.",
    ),
):
    """
    List the layout and OCR models offered by the backend.
    """
    client = _build_client(base_url)

    async def run():
        async with client:
            return await client.list_models()

    try:
        available = asyncio.run(run())
    except DocReconError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    table = Table(title="Available Models")
    table.add_column("Kind", style="bold")
    table.add_column("Model")
    for model in available.layout_models:
        table.add_row("layout", model)
    for model in available.ocr_models:
        table.add_row("ocr", model)
    console.print(table)


@app.command()
def tasks():
    """
    Show the processing tasks and their default models.
    """
    table = Table(title="Processing Tasks")
    table.add_column("Task", style="bold")
    table.add_column("Name")
    table.add_column("Model")
    table.add_column("Description")
    for info in TASK_CATALOG.values():
        table.add_row(info.task.value, info.name, info.model, info.description)
    console.print(table)


@app.command()
def process(
    files: list[str] = typer.Argument(
        ..., help="Documents to process (PNG, JPG, PDF).",
    ),
    mode: str = typer.Option(
        "pipeline", "--mode", "-m",
        help="pipeline (layout → OCR → visualization) or single (chosen tasks only).",
    ),
    task: Optional[list[str]] = typer.Option(
        None, "--task", "-t",
        help=f"Task for single mode, repeatable: {', '.join(list_tasks())}.",
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o",
        help="Export results as JSON to this file or directory.",
    ),
    visualizations: Optional[str] = typer.Option(
        None, "--visualizations",
        help="Directory to save the overlay images returned by the backend.",
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", "-u", help="Backend URL. Default: API_BASE_URL setting.",
    ),
    retry: Optional[bool] = typer.Option(
        None, "--retry/--no-retry",
        help="Offer to retry failed files. Default: only when run from a terminal.",
    ),
):
    """
    Process documents and show the extracted layout and text.

    Examples:
        process scan.pdf
        process page1.png page2.png --output output/
        process scan.pdf --mode single --task layout --task visualization
        process scan.pdf --retry
    """
    try:
        processing_mode = ProcessingMode(mode)
        selected = parse_tasks(task or []) if processing_mode is ProcessingMode.SINGLE else []
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if processing_mode is ProcessingMode.PIPELINE and task:
        console.print("[dim]--task is ignored in pipeline mode[/dim]")

    if processing_mode is ProcessingMode.SINGLE and not selected:
        console.print("[red]Error:[/red] Select at least one task to proceed (--task).")
        raise typer.Exit(code=1)

    try:
        submitted = [load_submitted_file(path) for path in files]
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    resolved = resolve_tasks(processing_mode, selected)
    console.print(Panel(
        f"[bold blue]Document OCR Pipeline[/bold blue]\n"
        f"Files:  {len(submitted)}\n"
        f"Mode:   {processing_mode.value}\n"
        f"Tasks:  {', '.join(t.value for t in resolved)}\n"
        f"Output: {output or 'stdout'}",
        title="Reconstruction",
        border_style="blue",
    ))

    orchestrator = DocumentOrchestrator(
        client=_build_client(base_url),
        on_change=_print_transition,
    )
    for file in submitted:
        orchestrator.accept(file)

    if retry is None:
        retry = sys.stdin.isatty()

    async def run_pipeline():
        async with orchestrator:
            await orchestrator.process_all(processing_mode, selected)
            _print_status_table(orchestrator.states())

            # Manual retry: one attempt per confirmation, no backoff
            while retry:
                failed = [s.file_id for s in orchestrator.states() if s.stage is Stage.ERROR]
                if not failed or not typer.confirm(f"Retry {len(failed)} failed file(s)?"):
                    break
                await _retry_all(orchestrator, failed)
                _print_status_table(orchestrator.states())

    asyncio.run(run_pipeline())

    states = orchestrator.states()

    for state in states:
        result = orchestrator.store.get(state.file_id)
        if result is None:
            continue
        _print_result(state.filename, result)
        if visualizations and result.visualization:
            stem = Path(state.filename).stem
            save_visualization(
                result.visualization,
                Path(visualizations) / f"{stem}_overlay.png",
            )

    if output and len(orchestrator.store):
        saved = orchestrator.store.save_json(_output_path(output))
        console.print(f"Results saved to [bold]{saved}[/bold]")

    if any(state.stage is Stage.ERROR for state in states):
        raise typer.Exit(code=1)


@app.command("infer-image")
def infer_image(
    image: str = typer.Argument(..., help="Image file to send as base64."),
    image_id: str = typer.Option("page1", "--image-id", help="Identifier echoed by the backend."),
    task: Optional[list[str]] = typer.Option(
        None, "--task", "-t",
        help="Restrict to these tasks (repeatable). Default: all tasks.",
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Export the result as JSON to this file or directory.",
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", "-u", help="Backend URL. Default: API_BASE_URL setting.",
    ),
):
    """
    Process one image through the base64 endpoint (/infer).
    """
    try:
        submitted = load_submitted_file(image)
        resolved = resolve_tasks(
            ProcessingMode.SINGLE if task else ProcessingMode.PIPELINE,
            task or [],
        )
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    request = build_request(resolved, settings.layout_model, settings.ocr_model)
    client = _build_client(base_url)

    async def run():
        async with client:
            return await client.process_image(
                encode_base64(submitted.content),
                image_id=image_id,
                layout_model=request.layout_model,
                ocr_model=request.ocr_model,
                return_visualization=(
                    request.return_visualization and settings.return_visualization
                ),
            )

    try:
        result = asyncio.run(run())
    except DocReconError as e:
        console.print(f"[red]Processing failed:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    _print_result(submitted.filename, result)

    if output:
        store = ResultStore()
        store.put(image_id, result)
        saved = store.save_json(_output_path(output), key=image_id)
        console.print(f"Result saved to [bold]{saved}[/bold]")


# ============================================================
# Helper Functions
# ============================================================

def _output_path(output: str) -> Path:
    """Treat a trailing slash as a directory to create."""
    output_path = Path(output)
    if output.endswith("/"):
        output_path.mkdir(parents=True, exist_ok=True)
    return output_path


async def _retry_all(orchestrator: DocumentOrchestrator, file_ids: list[str]) -> None:
    """Retry each failed file once, bounded like process_all()."""
    semaphore = asyncio.Semaphore(orchestrator.max_concurrent_files)

    async def _retry(file_id: str) -> None:
        async with semaphore:
            await orchestrator.retry(file_id)

    await asyncio.gather(*[_retry(file_id) for file_id in file_ids])


def _print_transition(state: FileProcessingState) -> None:
    if state.stage is Stage.ERROR:
        console.print(f"[red]✗[/red] {escape(state.filename)}: {escape(state.last_error or '')}")
    elif state.stage is Stage.COMPLETE:
        console.print(f"[green]✓[/green] {escape(state.filename)}: complete")
    elif state.is_processing:
        console.print(f"… {escape(state.filename)}: {state.status_text}")


def _print_status_table(states: list[FileProcessingState]) -> None:
    """Print one row per file with its final status."""
    table = Table(title="Uploaded Files")
    table.add_column("File")
    table.add_column("Status", justify="center")
    table.add_column("Progress", justify="right")
    table.add_column("Error")

    for state in states:
        color = {
            Stage.COMPLETE: "green",
            Stage.ERROR: "red",
        }.get(state.stage, "white")
        table.add_row(
            escape(state.filename),
            f"[{color}]{state.status_text}[/{color}]",
            f"{state.progress}%",
            escape(state.last_error or ""),
        )

    console.print(table)


def _print_result(filename: str, result: ProcessingResult) -> None:
    """Print layout regions, the first OCR tokens and the full text."""
    console.print(f"\n[bold]{escape(result.filename or filename)}[/bold]")

    regions = Table(title=f"Layout Regions ({len(result.layout.boxes)})")
    regions.add_column("Label", style="bold")
    regions.add_column("Confidence", justify="right")
    regions.add_column("Bbox")
    for box in result.layout.boxes:
        regions.add_row(
            escape(box.label),
            f"{box.confidence * 100:.1f}%",
            f"({box.x1:g}, {box.y1:g}) → ({box.x2:g}, {box.y2:g})",
        )
    console.print(regions)

    tokens = Table(title=f"OCR Tokens ({len(result.ocr.tokens)})")
    tokens.add_column("#", justify="right")
    tokens.add_column("Text")
    tokens.add_column("Confidence", justify="right")
    tokens.add_column("Bbox")
    for index, token in enumerate(result.ocr.tokens[:MAX_TOKENS_SHOWN], 1):
        tokens.add_row(
            str(index),
            escape(token.text),
            f"{token.confidence * 100:.1f}%",
            f"({token.x1:g}, {token.y1:g}) → ({token.x2:g}, {token.y2:g})",
        )
    console.print(tokens)

    hidden = len(result.ocr.tokens) - MAX_TOKENS_SHOWN
    if hidden > 0:
        console.print(f"... and {hidden} more tokens")

    text = full_text(result)
    console.print(Panel(escape(text) if text else "[dim](no text)[/dim]", title="Full Extracted Text"))


# ============================================================
# Entry Point
# ============================================================

if __name__ == "__main__":
    app()
