"""Command-line interface for GitForensics."""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from gitforensics.cancellation import CancellationToken
from gitforensics.errors import CancellationError
from gitforensics.incremental import BuildStore, ForensicsManager, StepResult
from gitforensics.logs import configure_logging
from gitforensics.models import ForensicsSettings, RepositoryConfig

app = typer.Typer(
    name="gitforensics",
    help="Git forensics for CI builds - record commits, mine file statistics and find reference builds",
    add_completion=False,
)
console = Console()


def _settings(
    state_dir: Optional[Path] = None,
    max_commits: Optional[int] = None,
    skip_unknown_commits: Optional[bool] = None,
    latest_if_not_found: Optional[bool] = None,
    target_job: Optional[str] = None,
    target_branch: Optional[str] = None,
    scm_key: Optional[str] = None,
    timeout: Optional[float] = None,
) -> ForensicsSettings:
    """Load the settings from the environment and apply the command line overrides."""
    overrides = {
        "state_dir": state_dir,
        "max_commits": max_commits,
        "skip_unknown_commits": skip_unknown_commits,
        "latest_build_if_not_found": latest_if_not_found,
        "target_job": target_job,
        "target_branch": target_branch,
        "scm_key": scm_key,
        "timeout_seconds": timeout,
    }
    settings = ForensicsSettings(**{k: v for k, v in overrides.items() if v is not None})
    configure_logging(settings.log_level)
    return settings


def _print_result(result: StepResult) -> None:
    if result.skipped:
        status = "[yellow]skipped[/yellow]"
    elif result.success:
        status = "[green]✓[/green]"
    else:
        status = "[red]failed[/red]"
    console.print(f"\n[bold]{result.name}[/bold] {status}")
    for message in result.info_messages:
        console.print(f"  {message}")
    for message in result.error_messages:
        console.print(f"  [red]{message}[/red]")


def _manager(settings: ForensicsSettings) -> ForensicsManager:
    return ForensicsManager(BuildStore(settings.state_dir), settings)


@app.command()
def record(
    repo_path: Path = typer.Argument(..., help="Path to the Git work tree"),
    job: str = typer.Option(..., "--job", "-j", help="Name of the job"),
    build: int = typer.Option(..., "--build", "-b", help="Build number"),
    repository_key: Optional[str] = typer.Option(None, "--repository-key", help="Key of the repository"),
    max_commits: Optional[int] = typer.Option(None, "--max-commits", "-n", help="Maximum commits per record"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory of the build store"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Timeout in seconds"),
) -> None:
    """Record the commits that are new since the previous build."""
    try:
        settings = _settings(state_dir=state_dir, max_commits=max_commits, timeout=timeout)
        config = RepositoryConfig(repo_path=repo_path, repository_key=repository_key)
        result = _manager(settings).record_commits(job, build, config)
        _print_result(result)
        if result.value is not None and not result.skipped:
            console.print(f"\n[bold green]✓[/bold green] {result.value}")
    except CancellationError as e:
        console.print(f"[bold red]Cancelled:[/bold red] {e}")
        raise typer.Exit(2)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def mine(
    repo_path: Path = typer.Argument(..., help="Path to the Git work tree"),
    job: str = typer.Option(..., "--job", "-j", help="Name of the job"),
    build: int = typer.Option(..., "--build", "-b", help="Build number"),
    repository_key: Optional[str] = typer.Option(None, "--repository-key", help="Key of the repository"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory of the build store"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Timeout in seconds"),
) -> None:
    """Mine the per-file statistics incrementally."""
    try:
        settings = _settings(state_dir=state_dir, timeout=timeout)
        config = RepositoryConfig(repo_path=repo_path, repository_key=repository_key)
        result = _manager(settings).mine_statistics(job, build, config)
        _print_result(result)
    except CancellationError as e:
        console.print(f"[bold red]Cancelled:[/bold red] {e}")
        raise typer.Exit(2)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def reference(
    job: str = typer.Option(..., "--job", "-j", help="Name of the job"),
    build: int = typer.Option(..., "--build", "-b", help="Build number"),
    target_job: Optional[str] = typer.Option(None, "--target-job", "-t", help="Job to search"),
    target_branch: Optional[str] = typer.Option(None, "--target-branch", help="Branch of the same project to search"),
    max_commits: Optional[int] = typer.Option(None, "--max-commits", "-n", help="Size of the search window"),
    skip_unknown_commits: Optional[bool] = typer.Option(
        None, "--skip-unknown-commits/--keep-unknown-commits", help="Skip builds with unknown commits"
    ),
    latest_if_not_found: Optional[bool] = typer.Option(
        None, "--latest-if-not-found/--no-fallback", help="Use the latest target build if nothing matches"
    ),
    scm_key: Optional[str] = typer.Option(None, "--scm", help="Substring of the repository key"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory of the build store"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Timeout in seconds"),
) -> None:
    """Find the reference build in the target job."""
    try:
        settings = _settings(
            state_dir=state_dir,
            max_commits=max_commits,
            skip_unknown_commits=skip_unknown_commits,
            latest_if_not_found=latest_if_not_found,
            target_job=target_job,
            target_branch=target_branch,
            scm_key=scm_key,
            timeout=timeout,
        )
        result = _manager(settings).find_reference(job, build)
        _print_result(result)
        if result.value is not None and result.value.found:
            console.print(
                f"\n[bold green]Reference build:[/bold green] {result.value.build_id} "
                f"[dim]({result.value.outcome.value})[/dim]"
            )
        else:
            console.print("\n[yellow]No reference build found[/yellow]")
    except CancellationError as e:
        console.print(f"[bold red]Cancelled:[/bold red] {e}")
        raise typer.Exit(2)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def diffstat(
    repo_path: Path = typer.Argument(..., help="Path to the Git work tree"),
    job: str = typer.Option(..., "--job", "-j", help="Name of the job"),
    build: int = typer.Option(..., "--build", "-b", help="Build number"),
    repository_key: Optional[str] = typer.Option(None, "--repository-key", help="Key of the repository"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory of the build store"),
) -> None:
    """Compute the statistics of the commits since the reference (or previous) build."""
    try:
        settings = _settings(state_dir=state_dir)
        config = RepositoryConfig(repo_path=repo_path, repository_key=repository_key)
        result = _manager(settings).diff_statistics(job, build, config)
        _print_result(result)
        if result.value is not None:
            stats = result.value
            console.print(
                f"\n[bold]Commits:[/bold] {stats.commit_count}  [bold]Authors:[/bold] {stats.author_count}  "
                f"[bold]Files:[/bold] {stats.files_count}  "
                f"[green]+{stats.added_lines}[/green] [red]-{stats.deleted_lines}[/red]"
            )
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command("build")
def run_build(
    repo_path: Path = typer.Argument(..., help="Path to the Git work tree"),
    job: str = typer.Option(..., "--job", "-j", help="Name of the job"),
    build: Optional[int] = typer.Option(None, "--build", "-b", help="Build number (default: next)"),
    repository_key: Optional[str] = typer.Option(None, "--repository-key", help="Key of the repository"),
    target_job: Optional[str] = typer.Option(None, "--target-job", "-t", help="Job to search a reference in"),
    target_branch: Optional[str] = typer.Option(None, "--target-branch", help="Branch of the same project"),
    max_commits: Optional[int] = typer.Option(None, "--max-commits", "-n", help="Size of the search window"),
    skip_mining: bool = typer.Option(False, "--skip-mining", help="Do not mine file statistics"),
    with_diffstat: bool = typer.Option(False, "--diffstat", help="Compute diff statistics"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory of the build store"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Timeout in seconds"),
) -> None:
    """Run all steps for a new build of a job."""
    try:
        settings = _settings(
            state_dir=state_dir,
            max_commits=max_commits,
            target_job=target_job,
            target_branch=target_branch,
            timeout=timeout,
        )
        config = RepositoryConfig(repo_path=repo_path, repository_key=repository_key)
        manager = _manager(settings)
        token = CancellationToken(settings.timeout_seconds)

        console.print(f"[bold green]Running forensics for job:[/bold green] {job}")
        results = manager.run_build(
            job,
            config,
            number=build,
            mine=not skip_mining,
            reference=settings.resolve_target_job(job) is not None,
            diffstat=with_diffstat,
            cancellation=token,
        )
        for result in results:
            _print_result(result)
        console.print(f"\n[bold green]✓[/bold green] Completed {len(results)} steps")
    except CancellationError as e:
        console.print(f"[bold red]Cancelled:[/bold red] {e}")
        raise typer.Exit(2)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def stats(
    job: str = typer.Option(..., "--job", "-j", help="Name of the job"),
    build: Optional[int] = typer.Option(None, "--build", "-b", help="Build number (default: latest)"),
    scm_key: Optional[str] = typer.Option(None, "--scm", help="Substring of the repository key"),
    top: int = typer.Option(20, "--top", help="Number of files to show"),
    sort_by: str = typer.Option("churn", "--sort", help="Sort by: churn, loc, commits, authors"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory of the build store"),
) -> None:
    """Show the file statistics of a build."""
    try:
        settings = _settings(state_dir=state_dir, scm_key=scm_key)
        store = BuildStore(settings.state_dir)
        state = store.get_build(job, build) if build else next(store.iter_builds(job), None)
        if state is None:
            console.print(f"[yellow]No build found for job '{job}'[/yellow]")
            raise typer.Exit(1)

        snapshot = state.find_statistics(settings.scm_key)
        if snapshot is None:
            console.print(f"[yellow]Build {state.id} has no statistics[/yellow]")
            raise typer.Exit(1)

        keys = {
            "churn": lambda f: f.total_churn,
            "loc": lambda f: f.loc,
            "commits": lambda f: f.number_of_commits,
            "authors": lambda f: f.number_of_authors,
        }
        if sort_by not in keys:
            console.print(f"[bold red]Error:[/bold red] Unknown sort key: {sort_by}")
            raise typer.Exit(1)
        files = sorted(snapshot.files.values(), key=keys[sort_by], reverse=True)[:top]

        console.print(f"[bold green]Statistics of build:[/bold green] {state.id}")
        console.print(f"[bold blue]Latest commit:[/bold blue] {snapshot.latest_commit[:7]}\n")

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("File", style="cyan")
        table.add_column("Commits", justify="right", style="yellow")
        table.add_column("Authors", justify="right", style="green")
        table.add_column("LOC", justify="right")
        table.add_column("Churn", justify="right", style="red")
        table.add_column("Last Modified", style="blue")

        for stat in files:
            modified = stat.last_modification_time
            table.add_row(
                stat.path,
                str(stat.number_of_commits),
                str(stat.number_of_authors),
                str(stat.loc),
                str(stat.total_churn),
                datetime.fromtimestamp(modified).strftime("%Y-%m-%d %H:%M") if modified else "-",
            )

        console.print(table)
        console.print(f"\n[dim]{len(snapshot)} files total[/dim]")

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


@app.command()
def history(
    job: str = typer.Option(..., "--job", "-j", help="Name of the job"),
    max_count: int = typer.Option(20, "--max", "-n", help="Maximum builds to show"),
    state_dir: Optional[Path] = typer.Option(None, "--state-dir", help="Directory of the build store"),
) -> None:
    """List the builds of a job with their records."""
    try:
        settings = _settings(state_dir=state_dir)
        store = BuildStore(settings.state_dir)

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Build", style="cyan")
        table.add_column("Started", style="blue")
        table.add_column("Status")
        table.add_column("Commits", justify="right", style="yellow")
        table.add_column("Head", style="green")
        table.add_column("Reference", style="white")

        rows: List[tuple] = []
        for state in store.iter_builds(job):
            if len(rows) >= max_count:
                break
            record = state.find_record(settings.scm_key)
            reference_result = next(iter(state.references.values()), None)
            rows.append(
                (
                    state.id,
                    state.started_at.strftime("%Y-%m-%d %H:%M"),
                    "completed" if state.completed else "running",
                    str(record.size) if record else "-",
                    record.head[:7] if record else "-",
                    (reference_result.build_id or "-") if reference_result else "-",
                )
            )

        if not rows:
            console.print(f"[yellow]No builds found for job '{job}'[/yellow]")
            return

        for row in rows:
            table.add_row(*row)
        console.print(table)

    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
