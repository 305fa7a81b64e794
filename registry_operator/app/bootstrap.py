"""Operator process bootstrap.

Loads the controller config, starts the HTTPS metrics server and runs the
leader-elected control loop until a termination signal or a watched-file
change cancels the shared shutdown context.
"""

from __future__ import annotations

import platform
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from registry_operator import __version__
from registry_operator.app.runner import IdleRunner
from registry_operator.app.signals import FileWatcher, ShutdownContext, setup_signal_handler
from registry_operator.config.defaults import (
    DEFAULT_WATCH_INTERVAL_SECONDS,
    TLS_CERT_FILE,
    TLS_KEY_FILE,
)
from registry_operator.config.loader import read_and_parse_controller_config
from registry_operator.errors import ConfigurationError
from registry_operator.metrics.server import MetricsServer

if TYPE_CHECKING:
    from pathlib import Path

    from registry_operator.app.runner import RunnerFactory


@dataclass
class OperatorOptions:
    """Command-line options for one operator run."""

    kubeconfig: str | None = None
    config_path: str | None = None
    files_to_watch: list[str] = field(default_factory=list)
    watch_interval_seconds: float = DEFAULT_WATCH_INTERVAL_SECONDS


def log_version() -> None:
    logger.info("Cluster Image Registry Operator Version: {}", __version__)
    logger.info("Python Version: {}", platform.python_version())
    logger.info("OS/Arch: {}/{}", platform.system().lower(), platform.machine())


def _report_shutdown(ctx: ShutdownContext, finished: threading.Event) -> None:
    while not finished.is_set():
        if ctx.wait(timeout=0.1):
            reason = ctx.reason or "shutdown requested"
            logger.info("{}{}, shutting down the operator.", reason[:1].upper(), reason[1:])
            return


def run_operator(
    options: OperatorOptions,
    runner_factory: RunnerFactory = IdleRunner,
    *,
    ctx: ShutdownContext | None = None,
    install_signal_handlers: bool = True,
    cert_file: str = TLS_CERT_FILE,
    key_file: str = TLS_KEY_FILE,
) -> None:
    """Run the operator until the control loop returns.

    Raises:
        ConfigurationError: The config file or TLS settings are invalid.
        TransportError: The metrics listener could not be bound.
        Exception: Whatever the control loop raised.
    """
    ctx = ctx or ShutdownContext()

    def _on_file_change(path: Path) -> None:
        ctx.cancel(f"watched file {path} changed")

    restore_signals = setup_signal_handler(ctx) if install_signal_handlers else None
    watcher = FileWatcher(
        options.files_to_watch,
        on_change=_on_file_change,
        interval=options.watch_interval_seconds,
    )
    finished = threading.Event()
    reporter = threading.Thread(
        target=_report_shutdown, args=(ctx, finished), name="shutdown-reporter", daemon=True
    )
    reporter.start()

    try:
        log_version()
        try:
            config = read_and_parse_controller_config(options.config_path)
        except ConfigurationError as e:
            raise ConfigurationError(f"failed to read config: {e}") from e

        logger.info("Watching files {}...", options.files_to_watch)
        watcher.start()

        try:
            metrics_server = MetricsServer(cert_file, key_file, config.serving_info)
        except ConfigurationError as e:
            raise ConfigurationError(f"failed to create metrics server: {e}") from e
        metrics_server.start()

        try:
            runner = runner_factory(options.kubeconfig)
            runner.run(ctx)
        finally:
            metrics_server.stop()
    finally:
        watcher.stop()
        if restore_signals is not None:
            restore_signals()
        finished.set()
        reporter.join()
