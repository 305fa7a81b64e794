"""CLI entry point for the cluster image registry operator."""

from __future__ import annotations

import typer
from loguru import logger
from rich.console import Console

from registry_operator import __logo__, __version__

app = typer.Typer(
    name="registry-operator",
    help=f"{__logo__} OpenShift cluster image registry operator",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} registry-operator v{__version__}")
        raise typer.Exit()


@app.command()
def main(
    kubeconfig: str | None = typer.Option(
        None, "--kubeconfig", help="Path to a kubeconfig. Only required if out-of-cluster"
    ),
    files: list[str] | None = typer.Option(
        None, "--files", help="File to watch; a change shuts the operator down (repeatable)"
    ),
    config: str | None = typer.Option(None, "--config", help="Path to the controller config file"),
    runner: str | None = typer.Option(
        None,
        "--runner",
        help="Control loop factory as module:attribute (default: serve metrics only)",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
) -> None:
    """Run the operator: serve metrics and run the leader-elected control loop."""
    from registry_operator.app.bootstrap import OperatorOptions, run_operator
    from registry_operator.app.runner import load_runner_factory
    from registry_operator.config.schema import OperatorSettings
    from registry_operator.log import configure_logging

    settings = OperatorSettings()
    configure_logging("DEBUG" if verbose else settings.log_level)

    options = OperatorOptions(
        kubeconfig=kubeconfig or None,
        config_path=config or None,
        files_to_watch=list(files or []),
        watch_interval_seconds=settings.watch_interval_seconds,
    )
    try:
        runner_factory = load_runner_factory(runner)
        run_operator(options, runner_factory)
    except Exception as e:
        logger.error("{}", e)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
