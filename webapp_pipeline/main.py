"""
Web application pipeline - Main Entry Point
CLI interface for running and inspecting the build-test-deploy pipeline.
"""

import asyncio
import json
from pathlib import Path
from types import SimpleNamespace
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from webapp_pipeline.config import Config, ConfigError, get_config
from webapp_pipeline.core.credentials import CredentialStore, CredentialsError
from webapp_pipeline.core.logger import setup_logging
from webapp_pipeline.engine.history import BuildHistory
from webapp_pipeline.models.report import PipelineReport, StageStatus
from webapp_pipeline.pipelines import build_webapp_pipeline, run_webapp_pipeline
from webapp_pipeline.utils.helpers import truncate_text
from webapp_pipeline.utils.validators import validate_config, validate_workspace_path

# CLI app
app = typer.Typer(
    name="webapp-pipeline",
    help="🚀 Build, test and deploy the web application",
    add_completion=False,
)

credentials_app = typer.Typer(help="🔑 Manage the encrypted credentials file")
app.add_typer(credentials_app, name="credentials")

console = Console()
err_console = Console(stderr=True)

STATUS_STYLE = {
    StageStatus.SUCCESS: ("✅", "green"),
    StageStatus.FAILED: ("❌", "red"),
    StageStatus.SKIPPED: ("⏭️", "dim"),
    StageStatus.NOT_RUN: ("⏸️", "dim"),
    StageStatus.ABORTED: ("🛑", "red"),
    StageStatus.PENDING: ("…", "white"),
}


def _load_config(out: Console, **overrides) -> Config:
    """Configuration with command-line overrides applied; exits with code 2 when it is invalid."""
    config = get_config().with_overrides(**overrides)
    try:
        config.ensure_valid()
    except ConfigError as e:
        out.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)
    return config


def print_header():
    """Print the application header."""
    console.print(Panel.fit(
        "[bold blue]Web Application Pipeline[/bold blue]\n"
        "[dim]checkout → test → image → deploy[/dim]",
        border_style="blue",
    ))


@app.command()
def run(
    branch: Optional[str] = typer.Option(
        None,
        "--branch", "-b",
        help="Branch being built (defaults to BRANCH_NAME)",
    ),
    build_number: Optional[str] = typer.Option(
        None,
        "--build-number", "-n",
        help="Build number used for the image tag (defaults to BUILD_NUMBER)",
    ),
    workspace: Optional[Path] = typer.Option(
        None,
        "--workspace", "-w",
        help="Workspace directory when no REPO_URL is configured",
        file_okay=False,
    ),
    no_history: bool = typer.Option(
        False,
        "--no-history",
        help="Do not write a build record",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Output the report as JSON",
    ),
    report_file: Optional[Path] = typer.Option(
        None,
        "--report", "-r",
        help="Write a Markdown report to this file",
        dir_okay=False,
    ),
):
    """
    🚀 Run the pipeline.

    Example:
        webapp-pipeline run --branch main --build-number 42
    """
    # With --json, stdout carries only the report
    out = err_console if output_json else console
    if not output_json:
        print_header()

    config = _load_config(out, branch=branch, build_number=build_number, workspace=workspace)
    setup_logging(verbose or config.verbose, to_stderr=output_json)

    if not config.build.repo_url:
        is_valid, error = validate_workspace_path(config.workspace_dir)
        if not is_valid:
            out.print(f"[yellow]Warning:[/yellow] {error}")

    for issue in validate_config(config):
        out.print(f"[yellow]Warning:[/yellow] {issue}")

    report = asyncio.run(run_webapp_pipeline(config, record_history=not no_history))

    if output_json:
        console.print_json(report.to_json())
    else:
        _print_report(report)

    if report_file:
        report_file.write_text(report.to_markdown())
        out.print(f"[dim]Report written to {report_file}[/dim]")

    raise typer.Exit(0 if report.success else 1)


@app.command()
def plan(
    branch: Optional[str] = typer.Option(
        None,
        "--branch", "-b",
        help="Branch to plan for (defaults to BRANCH_NAME)",
    ),
):
    """
    🗺️ Show the stages and which ones would run, without running anything.
    """
    config = _load_config(console, branch=branch)
    pipeline = build_webapp_pipeline(config)

    table = Table(title=f"Pipeline '{pipeline.name}' on {config.build.branch_name}")
    table.add_column("#", style="dim")
    table.add_column("Stage", style="cyan")
    table.add_column("Runs")
    table.add_column("Details")

    # Gates only look at the branch and config, so a stand-in context is enough
    probe = SimpleNamespace(branch=config.build.branch_name, config=config)

    for index, stage in enumerate(pipeline.stages, 1):
        runs = stage.when is None or stage.when.evaluate(probe)
        details = []
        if stage.is_parallel:
            details.append("parallel: " + ", ".join(branch.name for branch in stage.parallel))
        if stage.retry > 1:
            details.append(f"retry {stage.retry}")
        if stage.when is not None:
            details.append(f"when {stage.when.description}")
        table.add_row(str(index), stage.name, "yes" if runs else "[dim]skipped[/dim]", "; ".join(details) or "-")

    console.print(table)
    console.print(f"Image tags: {', '.join(config.image_tags)}")
    console.print(f"Timeout: {config.timeout_minutes:g} minutes")


@app.command()
def check():
    """
    🔧 Check toolchain and configuration.
    """
    print_header()

    config = get_config()

    table = Table(title="Prerequisites Check")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details")

    from webapp_pipeline.core.executor import CommandExecutor
    executor = CommandExecutor()

    for tool in ("git", "node", "npm", "docker", "docker-compose"):
        version = asyncio.run(executor.get_tool_version(tool))
        if version:
            table.add_row(tool, "✅ Found", version)
        else:
            table.add_row(tool, "❌ Not found", f"Install {tool}")

    table.add_row("Image", "ℹ️", ", ".join(config.image_tags))
    table.add_row("Branch", "ℹ️", config.build.branch_name)

    for issue in config.validate():
        table.add_row("Config", "❌ Invalid", issue)
    for issue in validate_config(config):
        table.add_row("Config", "⚠️ Warning", issue)

    console.print()
    console.print(table)


@app.command()
def history(
    limit: int = typer.Option(10, "--limit", "-l", help="Number of builds to show"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    📜 List recorded builds, newest first.
    """
    config = _load_config(console)
    records = BuildHistory(config.history.directory, keep=config.history.keep).list(limit=limit)

    if output_json:
        console.print(json.dumps(records, indent=2))
        return

    if not records:
        console.print("[dim]No builds recorded yet[/dim]")
        return

    table = Table(title="Build History")
    table.add_column("Build", style="cyan")
    table.add_column("Branch")
    table.add_column("Status")
    table.add_column("Started")
    table.add_column("Duration")
    table.add_column("Failed Stage")

    for record in records:
        color = "green" if record["status"] == "success" else "red"
        table.add_row(
            f"#{record['build_number']}",
            record["branch"],
            f"[{color}]{record['status']}[/{color}]",
            record["started_at"][:19],
            f"{record['duration_seconds']:.1f}s",
            record["failed_stage"] or "-",
        )

    console.print(table)


@credentials_app.command("set")
def credentials_set(
    credentials_id: str = typer.Argument(..., help="Credential id, e.g. registry-credentials"),
    username: str = typer.Option(..., "--username", "-u", help="Username"),
    password: str = typer.Option(
        ..., "--password", "-p",
        prompt=True, hide_input=True, confirmation_prompt=True,
        help="Password (prompted when omitted)",
    ),
):
    """
    Store a username/password pair in the encrypted credentials file.
    """
    try:
        CredentialStore().set_credentials(credentials_id, username, password)
    except CredentialsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Stored credentials '{credentials_id}'")


@credentials_app.command("list")
def credentials_list():
    """
    List stored credential ids (values are never shown).
    """
    try:
        ids = CredentialStore().list_ids()
    except CredentialsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not ids:
        console.print("[dim]No stored credentials[/dim]")
        return
    for credentials_id in sorted(ids):
        console.print(f"  • {credentials_id}")


@credentials_app.command("delete")
def credentials_delete(
    credentials_id: str = typer.Argument(..., help="Credential id to remove"),
):
    """
    Remove a credential from the encrypted credentials file.
    """
    try:
        CredentialStore().delete_credentials(credentials_id)
    except CredentialsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Removed credentials '{credentials_id}'")


def _print_report(report: PipelineReport):
    """Print the pipeline report."""
    color = "green" if report.success else "red"
    status = report.status.value.upper() + (" (TIMED OUT)" if report.timed_out else "")

    console.print(Panel(
        f"[bold {color}]{status}[/bold {color}]\n"
        f"Duration: {report.duration_seconds:.2f}s",
        title=f"Build #{report.build_number} ({report.branch})",
        border_style=color,
    ))

    table = Table(title="Pipeline Stages")
    table.add_column("Stage", style="cyan")
    table.add_column("Status")
    table.add_column("Duration")
    table.add_column("Message")

    for stage in report.stages:
        icon, _ = STATUS_STYLE[stage.status]
        table.add_row(
            stage.name,
            f"{icon} {stage.status.value}",
            f"{stage.duration_seconds:.1f}s",
            truncate_text(stage.errors[0] if stage.errors else stage.message, 60) or "-",
        )
        for branch in stage.branches:
            branch_icon, _ = STATUS_STYLE[branch.status]
            table.add_row(
                f"  └ {branch.name}",
                f"{branch_icon} {branch.status.value}",
                f"{branch.duration_seconds:.1f}s",
                truncate_text(branch.errors[0] if branch.errors else branch.message, 60) or "-",
            )

    console.print(table)

    if report.image_tags:
        console.print(f"\n[bold]📦 Image:[/bold] {', '.join(report.image_tags)}")
    if report.deployment_url and report.success:
        console.print(f"[bold green]🚀 Deployed:[/bold green] {report.deployment_url}")

    failed_posts = [post for post in report.post_actions if not post.step.success]
    if failed_posts:
        console.print("\n[bold yellow]Post action warnings:[/bold yellow]")
        for post in failed_posts:
            console.print(f"  ⚠️ [{post.condition}] {post.step.name}: {post.step.message}")


if __name__ == "__main__":
    app()
