"""
Trust Debt CLI

Command-line interface for the trust debt pipeline.
Provides commands for running the pipeline over a repository, running
single stages, and inspecting runs and categories.

Commands:
    trustdebt run <path>              Run every stage, from --from-stage through grading
    trustdebt stage <index> <path>    Run exactly one stage
    trustdebt status [path]           Show the stages and grade of a run
    trustdebt history [path]          Show recorded runs
    trustdebt explain <id> [path]     Show how one category contributes to the drift

Usage:
    $ trustdebt run ./my-project
    $ trustdebt run ./my-project --from-stage 3 --run-id run-20260101T120000000000
    $ trustdebt explain AB ./my-project

Exit codes:
    0 when the run completes (or the single stage succeeds),
    1 with the failing stage index and reason code otherwise.
"""

from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from trustdebt import __version__
from trustdebt.config import PipelineConfig, load_config
from trustdebt.corpus import collect_corpus
from trustdebt.errors import TrustDebtError
from trustdebt.grading import GradeReport
from trustdebt.logging_config import setup_logging
from trustdebt.matrix import DriftMatrix, direction
from trustdebt.models import Corpus, Grade
from trustdebt.pipeline import LAST_STAGE, PipelineRunner, RunResult, stage_index
from trustdebt.storage import STAGE_LABELS, ArtifactStore, Database
from trustdebt.taxonomy import Taxonomy

# Initialize Typer app and Rich console
app = typer.Typer(
    name="trustdebt",
    help="Trust Debt: measure the drift between what a repository documents and what it does",
    add_completion=False,
)
console = Console()


# Default paths, relative to the analyzed project
DEFAULT_ARTIFACTS_DIR = ".trustdebt/runs"
DEFAULT_DB_PATH = ".trustdebt/trustdebt.db"
CONFIG_FILES = ("trustdebt.toml", "pyproject.toml")

GRADE_COLORS = {
    Grade.A: "green",
    Grade.B: "cyan",
    Grade.C: "yellow",
    Grade.D: "red",
}


def _resolve_config(path: Path, config_path: Optional[Path]) -> PipelineConfig:
    """Load the explicit config file, or the first one found in the project."""
    if config_path is None:
        for name in CONFIG_FILES:
            if (path / name).exists():
                config_path = path / name
                break
    try:
        return load_config(config_path)
    except ValueError as e:
        console.print(f"[bold red]Invalid configuration:[/bold red] {e}")
        raise typer.Exit(2)


def _open_stores(path: Path, artifacts: Optional[Path], db_path: Optional[Path]) -> tuple[ArtifactStore, Database]:
    return (
        ArtifactStore(artifacts or path / DEFAULT_ARTIFACTS_DIR),
        Database(db_path or path / DEFAULT_DB_PATH),
    )


def _collect(path: Path, include_commits: bool) -> Corpus:
    corpus = collect_corpus(path, include_commits=include_commits)
    if corpus.errors:
        console.print(f"[yellow]⚠️  {len(corpus.errors)} file(s) could not be read:[/yellow]")
        for identifier, error in corpus.errors[:5]:
            console.print(f"   • {identifier}: {error}")
        if len(corpus.errors) > 5:
            console.print(f"   ... and {len(corpus.errors) - 5} more")
    return corpus


@app.command()
def run(
    path: Path = typer.Argument(
        ...,
        help="Path to the repository to analyze",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    from_stage: int = typer.Option(
        0,
        "--from-stage",
        "-s",
        min=0,
        max=LAST_STAGE,
        help="First stage to run (needs the run's previous artifact when > 0)",
    ),
    run_id: Optional[str] = typer.Option(
        None,
        "--run-id",
        "-r",
        help="Run to resume (default: a new run, or the latest run when resuming)",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML configuration file (default: trustdebt.toml or pyproject.toml in the project)",
    ),
    artifacts: Optional[Path] = typer.Option(
        None,
        "--artifacts",
        help="Artifact directory (default: .trustdebt/runs in project)",
    ),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        "-d",
        help="Path to the run ledger (default: .trustdebt/trustdebt.db in project)",
    ),
    no_commits: bool = typer.Option(
        False,
        "--no-commits",
        help="Leave git commit messages out of the Reality corpus",
    ),
) -> None:
    """
    Run the pipeline through grading.

    This command:
    1. Collects documentation (Intent) and code and commits (Reality)
    2. Extracts keywords and builds the category taxonomy
    3. Validates orthogonality and balance of the categories
    4. Builds the drift matrix and grades the calibrated score
    """
    config = _resolve_config(path, config_path)
    store, db = _open_stores(path, artifacts, db_path)

    corpus = None
    if from_stage == 0:
        console.print(f"\n[bold blue]📂 Analyzing:[/bold blue] {path}\n")
        corpus = _collect(path, include_commits=not no_commits)
    elif run_id is None:
        run_id = _latest_run_or_exit(store)

    runner = PipelineRunner(store, config, ledger=db)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Running stages {from_stage}..{LAST_STAGE}...", total=None)
        result = runner.run(corpus, from_stage=from_stage, run_id=run_id, directory=str(path))

    _report(result)


@app.command()
def stage(
    index: str = typer.Argument(..., help="Stage index (0-5) or label (keywords, taxonomy, ...)"),
    path: Path = typer.Argument(
        ...,
        help="Path to the repository",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    run_id: Optional[str] = typer.Option(
        None,
        "--run-id",
        "-r",
        help="Run holding the previous stage's artifact (default: latest run)",
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML configuration file"),
    artifacts: Optional[Path] = typer.Option(None, "--artifacts", help="Artifact directory"),
    db_path: Optional[Path] = typer.Option(None, "--db", "-d", help="Path to the run ledger"),
    no_commits: bool = typer.Option(False, "--no-commits", help="Leave git commit messages out"),
) -> None:
    """
    Run exactly one stage.

    Stage 0 collects the corpus and starts a new run unless --run-id is
    given; later stages read the previous stage's artifact of the run.
    """
    resolved = stage_index(index)
    if resolved is None:
        console.print(
            f"[red]Unknown stage '{index}'.[/red] Stages: "
            + ", ".join(f"{i} {label}" for i, label in enumerate(STAGE_LABELS))
        )
        raise typer.Exit(2)

    config = _resolve_config(path, config_path)
    store, db = _open_stores(path, artifacts, db_path)

    corpus = None
    if resolved == 0:
        corpus = _collect(path, include_commits=not no_commits)
    elif run_id is None:
        run_id = _latest_run_or_exit(store)

    runner = PipelineRunner(store, config, ledger=db)
    result = runner.run_stage(resolved, run_id=run_id, corpus=corpus, directory=str(path))
    _report(result)


@app.command()
def status(
    path: Optional[Path] = typer.Argument(
        None,
        help="Path to the repository (default: current directory)",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    run_id: Optional[str] = typer.Option(None, "--run-id", "-r", help="Run to show (default: latest)"),
    artifacts: Optional[Path] = typer.Option(None, "--artifacts", help="Artifact directory"),
    db_path: Optional[Path] = typer.Option(None, "--db", "-d", help="Path to the run ledger"),
) -> None:
    """
    Show the stages and grade of a run.
    """
    if path is None:
        path = Path.cwd()

    artifacts_dir = artifacts or path / DEFAULT_ARTIFACTS_DIR
    if not artifacts_dir.exists():
        console.print(f"[yellow]No runs found.[/yellow] Run [bold]trustdebt run {path}[/bold] first.")
        raise typer.Exit(1)

    store, db = _open_stores(path, artifacts, db_path)
    run_id = run_id or _latest_run_or_exit(store)
    record = db.get_run(run_id)

    table = Table(title=f"Run {run_id}", box=box.ROUNDED)
    table.add_column("Stage", justify="right")
    table.add_column("Label", style="cyan")
    table.add_column("Versions", justify="right")
    table.add_column("Latest")

    for index, label in enumerate(STAGE_LABELS):
        versions = store.list_versions(run_id, index)
        if versions:
            latest = versions[-1].name.split(".")[1]
            table.add_row(str(index), label, str(len(versions)), latest)
        else:
            table.add_row(str(index), label, "-", "[dim]not run[/dim]")
    console.print(table)

    if record is not None:
        line = f"[bold]Status:[/bold] {record.status}"
        if record.failed_stage is not None:
            line += f" at stage {record.failed_stage} ({record.reason})"
        console.print(line)

    if store.has_artifact(run_id, LAST_STAGE):
        report = GradeReport.from_dict(store.read_latest(run_id, LAST_STAGE).payload)
        _print_grade(report)


@app.command()
def history(
    path: Optional[Path] = typer.Argument(
        None,
        help="Path to the repository (default: current directory)",
    ),
    db_path: Optional[Path] = typer.Option(None, "--db", "-d", help="Path to the run ledger"),
    limit: int = typer.Option(
        10,
        "--limit",
        "-n",
        help="Number of runs to show",
    ),
) -> None:
    """
    Show run history.
    """
    if path is None:
        path = Path.cwd()

    if db_path is None:
        db_path = path / DEFAULT_DB_PATH

    if not db_path.exists():
        console.print("[yellow]No run history found.[/yellow]")
        raise typer.Exit(0)

    db = Database(db_path)
    runs = db.get_run_history(limit)

    if not runs:
        console.print("[yellow]No runs recorded.[/yellow]")
        raise typer.Exit(0)

    table = Table(title="Run History", box=box.ROUNDED)
    table.add_column("Run", style="cyan")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Score", justify="right")
    table.add_column("Grade", justify="center")

    for record in runs:
        status_text = record.status
        if record.failed_stage is not None:
            status_text += f" ({record.failed_stage}: {record.reason})"
        table.add_row(
            record.run_id,
            record.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            status_text,
            f"{record.score:.1f}" if record.score is not None else "-",
            record.grade or "-",
        )

    console.print(table)


@app.command()
def explain(
    category_id: str = typer.Argument(..., help="Category code to explain (e.g., A or AB)"),
    path: Optional[Path] = typer.Argument(
        None,
        help="Path to the repository (default: current directory)",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    run_id: Optional[str] = typer.Option(None, "--run-id", "-r", help="Run to read (default: latest)"),
    artifacts: Optional[Path] = typer.Option(None, "--artifacts", help="Artifact directory"),
    limit: int = typer.Option(5, "--limit", "-n", help="Number of cells to show"),
) -> None:
    """
    Show how one category contributes to the drift.

    Provides:
    - The category's keywords, units and ShortLex position
    - Its diagonal self-consistency cell
    - Its largest off-diagonal cells, with their direction
    """
    if path is None:
        path = Path.cwd()

    store = ArtifactStore(artifacts or path / DEFAULT_ARTIFACTS_DIR)
    run_id = run_id or _latest_run_or_exit(store)
    category_id = category_id.upper()

    try:
        taxonomy = Taxonomy.from_dict(store.read_latest(run_id, 3).payload["taxonomy"])
        matrix = DriftMatrix.from_dict(store.read_latest(run_id, 4).payload)
    except TrustDebtError as e:
        console.print(f"[red]Run {run_id} has no matrix yet:[/red] {e.message}")
        raise typer.Exit(1)

    if category_id not in taxonomy:
        console.print(f"[red]Category '{category_id}' not found.[/red]")
        console.print("Categories: " + ", ".join(f"{c.id} ({c.name})" for c in taxonomy))
        raise typer.Exit(1)

    category = taxonomy.get(category_id)
    console.print(f"\n[bold]Category:[/bold] {category.id} {category.name}")
    console.print(f"[bold]Position:[/bold] {category.position}   [bold]Units:[/bold] {category.units}")
    if category.parent_id:
        console.print(f"[bold]Parent:[/bold] {category.parent_id} {taxonomy.get(category.parent_id).name}")
    console.print(f"[bold]Keywords:[/bold] {', '.join(sorted(category.keywords))}")

    diagonal = matrix.cell(category_id, category_id)
    console.print(
        f"\n[bold]Self-consistency cell:[/bold] intent {diagonal.intent_value:.2f}, "
        f"reality {diagonal.reality_value:.2f}, drift {diagonal.contribution:.2f}"
    )

    table = Table(title="Largest interactions", box=box.SIMPLE)
    table.add_column("Cell", style="cyan")
    table.add_column("Intent", justify="right")
    table.add_column("Reality", justify="right")
    table.add_column("Drift", justify="right")
    table.add_column("Direction")

    cells = [
        cell for cell in matrix.row(category_id) + matrix.column(category_id)
        if not cell.is_diagonal
    ]
    cells.sort(key=lambda cell: -cell.contribution)
    for cell in cells[:limit]:
        table.add_row(
            f"{cell.row_id} → {cell.col_id}",
            f"{cell.intent_value:.2f}",
            f"{cell.reality_value:.2f}",
            f"{cell.contribution:.2f}",
            direction(cell).replace("_", " "),
        )
    console.print(table)


# Helper functions for output formatting

def _latest_run_or_exit(store: ArtifactStore) -> str:
    run_id = store.latest_run_id()
    if run_id is None:
        console.print("[yellow]No runs found.[/yellow] Run [bold]trustdebt run <path>[/bold] first.")
        raise typer.Exit(1)
    return run_id


def _report(result: RunResult) -> None:
    """Print the outcome of a pipeline invocation and set the exit code."""
    if not result.succeeded:
        error = result.error
        index = result.state.stage_index
        console.print(
            f"\n[bold red]✗ Failed at stage {index} ({STAGE_LABELS[index]}):[/bold red] "
            f"{error.reason_code}"
        )
        console.print(f"   {error.message}")
        console.print(f"   [dim]Run: {result.run_id}[/dim]")
        raise typer.Exit(1)

    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Label", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Run", result.run_id)
    table.add_row("State", str(result.state))
    for stored in result.artifacts:
        label = stored.artifact.label
        table.add_row(f"{stored.artifact.stage_index} {label}", f"{result.timings.get(label, 0.0):.3f}s")

    panel = Panel(table, title="[bold green]✓ Pipeline finished[/bold green]", border_style="green")
    console.print(panel)

    report = result.grade_report
    if report is not None:
        _print_grade(report)


def _print_grade(report: GradeReport) -> None:
    """Print the grade and the worst categories."""
    color = GRADE_COLORS[report.grade]
    console.print(
        f"\n[bold]Trust debt:[/bold] {report.calibrated_score:.1f} "
        f"[{color}](grade {report.grade.value})[/{color}]"
    )
    console.print(
        f"[dim]Total drift {report.total_drift:.1f}, "
        f"sophistication discount {report.discount:.0%} applied[/dim]"
    )

    if report.breakdown:
        table = Table(title="Categories by drift", box=box.ROUNDED)
        table.add_column("Category", style="cyan")
        table.add_column("Name")
        table.add_column("Row drift", justify="right")
        table.add_column("Grade", justify="center")
        for entry in report.breakdown[:5]:
            table.add_row(entry.category_id, entry.name, f"{entry.row_drift:.1f}", entry.grade.value)
        console.print(table)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]Trust Debt[/bold] version {__version__}")
        raise typer.Exit()


# Version command
@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (default: $TRUSTDEBT_LOG_LEVEL or INFO)",
    ),
) -> None:
    """
    Trust Debt: measure documentation/implementation drift.
    """
    setup_logging(log_level)


if __name__ == "__main__":
    app()
