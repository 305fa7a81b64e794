"""Process wiring: shutdown coordination and the operator bootstrap."""

from registry_operator.app.bootstrap import OperatorOptions, run_operator
from registry_operator.app.runner import IdleRunner, LeaderElectedRunner, load_runner_factory
from registry_operator.app.signals import FileWatcher, ShutdownContext, setup_signal_handler

__all__ = [
    "FileWatcher",
    "IdleRunner",
    "LeaderElectedRunner",
    "OperatorOptions",
    "ShutdownContext",
    "load_runner_factory",
    "run_operator",
    "setup_signal_handler",
]
