"""Helm chart plan commands.

This module provides commands for deploying and destroying a plan of Helm
charts against a cluster, and for inspecting the releases it manages.
"""

import threading
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from src.cli.context import CLIContext, get_cli_context
from src.cli.deployment.helm_deployer import (
    DeploymentReport,
    LeveledDeploymentSequencer,
    PlanExecutionError,
    load_plan,
)
from src.cli.deployment.helm_deployer.sequencer import DeploymentPlan
from src.cli.shared.console import with_error_handling
from src.infra.constants import DEFAULT_CONSTANTS
from src.infra.helm.descriptor import ChartDescriptor, HelmAction

charts_app = typer.Typer(
    help="Deploy, destroy and inspect Helm chart plans",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Shared options
# ---------------------------------------------------------------------------

KubeconfigOption = Annotated[
    Path,
    typer.Option(
        "--kubeconfig",
        "-k",
        envvar="KUBECONFIG",
        help="Path to the cluster kubeconfig",
    ),
]

PlanOption = Annotated[
    Path | None,
    typer.Option(
        "--plan",
        "-p",
        help="Plan file (defaults to plans/plan.yaml)",
    ),
]

ChartsRootOption = Annotated[
    Path | None,
    typer.Option(
        "--charts-root",
        help="Directory chart paths are relative to (defaults to charts/)",
    ),
]

MaxWorkersOption = Annotated[
    int,
    typer.Option(
        "--max-workers",
        min=1,
        help="Maximum number of charts deployed at once within a level",
    ),
]

DEFAULT_KUBECONFIG = Path.home() / ".kube" / "config"


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


def _run_plan(
    cli: CLIContext,
    sequencer: LeveledDeploymentSequencer,
    plan: DeploymentPlan,
    cancelled: threading.Event,
) -> DeploymentReport:
    """Run a plan off the main thread so Ctrl-C can request cancellation.

    The first interrupt asks every running Helm command to stop; the plan
    then finishes unwinding and its error is reported as usual.
    """
    outcome: dict[str, object] = {}

    def target() -> None:
        try:
            outcome["report"] = sequencer.run(plan)
        except BaseException as e:  # re-raised on the main thread
            outcome["error"] = e

    worker = threading.Thread(target=target, name="plan-runner", daemon=True)
    worker.start()
    while worker.is_alive():
        try:
            worker.join(timeout=0.5)
        except KeyboardInterrupt:
            if cancelled.is_set():
                raise
            cli.console.warn("Cancelling, waiting for running charts to stop...")
            cancelled.set()

    if "error" in outcome:
        raise outcome["error"]  # type: ignore[misc]
    return outcome["report"]  # type: ignore[return-value]


def _print_report(cli: CLIContext, report: DeploymentReport) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Level", justify="right")
    table.add_column("Chart")
    table.add_column("Action")
    table.add_column("Result")

    for stage in report.stages:
        for chart in stage.charts:
            if chart.error is not None:
                result = f"[red]{escape(str(chart.error))}[/red]"
            elif chart.payload is not None and chart.payload.get("skipped"):
                result = "[dim]skipped[/dim]"
            else:
                result = "[green]ok[/green]"
            table.add_row(str(stage.index), chart.name, chart.action.value, result)

    cli.console.print(table)


def _execute(
    cli: CLIContext,
    *,
    action: HelmAction | None,
    kubeconfig: Path,
    plan_file: Path | None,
    charts_root: Path | None,
    max_workers: int,
    continue_on_failure: bool,
    dry_run: bool,
) -> None:
    loaded = load_plan(
        plan_file or cli.paths.default_plan,
        charts_root or cli.paths.charts,
        action=action,
    )
    cancelled = threading.Event()
    sequencer = LeveledDeploymentSequencer(
        cli.shell_commands(kubeconfig, loaded.envs),
        cli.console,
        max_workers=max_workers,
        continue_on_failure=continue_on_failure,
        dry_run=dry_run,
        is_cancelled=cancelled.is_set,
    )
    try:
        report = _run_plan(cli, sequencer, loaded.plan, cancelled)
    except PlanExecutionError as e:
        _print_report(cli, e.report)
        raise
    if not report.dry_run:
        _print_report(cli, report)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@charts_app.command()
@with_error_handling
def deploy(
    kubeconfig: KubeconfigOption = DEFAULT_KUBECONFIG,
    plan_file: PlanOption = None,
    charts_root: ChartsRootOption = None,
    max_workers: MaxWorkersOption = DEFAULT_CONSTANTS.DEFAULT_MAX_WORKERS,
    continue_on_failure: Annotated[
        bool,
        typer.Option(
            "--continue-on-failure",
            help="Keep deploying later levels after a level had failures",
        ),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            help="Print the deployment order without touching the cluster",
        ),
    ] = False,
) -> None:
    """Deploy every chart of a plan, level by level.

    Charts of a level are deployed concurrently; a level only starts once
    every chart of the previous level has finished.

    Examples:
        cluster-forge charts deploy
        cluster-forge charts deploy -p plans/staging.yaml --dry-run
        cluster-forge charts deploy -k ~/.kube/prod --max-workers 4
    """
    cli = get_cli_context()
    cli.console.print_header("Deploying Helm Charts")
    _execute(
        cli,
        action=None,
        kubeconfig=kubeconfig,
        plan_file=plan_file,
        charts_root=charts_root,
        max_workers=max_workers,
        continue_on_failure=continue_on_failure,
        dry_run=dry_run,
    )


@charts_app.command()
@with_error_handling
def destroy(
    kubeconfig: KubeconfigOption = DEFAULT_KUBECONFIG,
    plan_file: PlanOption = None,
    charts_root: ChartsRootOption = None,
    max_workers: MaxWorkersOption = DEFAULT_CONSTANTS.DEFAULT_MAX_WORKERS,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip confirmation prompt",
        ),
    ] = False,
) -> None:
    """Uninstall every chart of a plan, last level first.

    Examples:
        cluster-forge charts destroy
        cluster-forge charts destroy -y  # Skip confirmation
    """
    cli = get_cli_context()
    cli.console.print_header("Destroying Helm Charts", style="red")

    if not cli.console.confirm_action(
        "Uninstall every chart of the plan",
        "This will:\n"
        "  • Uninstall each Helm release, last level first\n"
        "  • Delete the CRDs declared by the charts",
        force=yes,
    ):
        cli.console.print("[dim]Operation cancelled[/dim]")
        raise typer.Exit(0)

    _execute(
        cli,
        action=HelmAction.DESTROY,
        kubeconfig=kubeconfig,
        plan_file=plan_file,
        charts_root=charts_root,
        max_workers=max_workers,
        continue_on_failure=True,
        dry_run=False,
    )


@charts_app.command("list")
@with_error_handling
def list_releases(
    kubeconfig: KubeconfigOption = DEFAULT_KUBECONFIG,
    namespace: Annotated[
        str | None,
        typer.Option(
            "--namespace",
            "-n",
            help="Only list releases of this namespace (default: all)",
        ),
    ] = None,
) -> None:
    """List installed Helm releases.

    Examples:
        cluster-forge charts list
        cluster-forge charts list -n monitoring
    """
    cli = get_cli_context()
    releases = cli.shell_commands(kubeconfig).helm.list_releases(namespace)

    if not releases:
        cli.console.print("[yellow]No releases found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Namespace")
    table.add_column("Revision", justify="right")
    table.add_column("Status")
    table.add_column("Chart")
    table.add_column("Version")
    table.add_column("App Version")

    for release in sorted(releases, key=lambda r: (r.namespace, r.name)):
        status_style = "green" if release.status == "deployed" else "yellow"
        version = release.chart_version
        table.add_row(
            release.name,
            release.namespace,
            str(release.revision),
            f"[{status_style}]{release.status}[/{status_style}]",
            release.chart,
            str(version) if version else "[dim]-[/dim]",
            release.app_version or "[dim]-[/dim]",
        )

    cli.console.print(table)


@charts_app.command()
@with_error_handling
def status(
    release: Annotated[str, typer.Argument(help="Helm release name")],
    kubeconfig: KubeconfigOption = DEFAULT_KUBECONFIG,
    namespace: Annotated[
        str,
        typer.Option(
            "--namespace",
            "-n",
            help="Kubernetes namespace",
        ),
    ] = DEFAULT_CONSTANTS.DEFAULT_NAMESPACE,
) -> None:
    """Show the revision and status of a release.

    Examples:
        cluster-forge charts status cert-manager -n cert-manager
    """
    cli = get_cli_context()
    chart = ChartDescriptor(name=release, path=cli.paths.charts, namespace=namespace)
    current = cli.shell_commands(kubeconfig).helm.status(chart)

    style = "yellow" if current.is_locked else "green"
    cli.console.print(
        f"[bold]{release}[/bold] ({namespace}): revision {current.revision}, "
        f"[{style}]{current.status or 'unknown'}[/{style}]"
    )
    if current.is_locked:
        cli.console.warn(
            "Release is locked by a pending operation; the next deploy will recover it"
        )
