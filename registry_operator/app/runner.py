"""Leader-elected run loop capability.

The bootstrap depends only on :class:`LeaderElectedRunner`; the control loop
and the leader-election mechanism behind it are supplied from outside,
through a factory named on the command line as ``module:attribute``.
"""

from __future__ import annotations

import importlib
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from loguru import logger

from registry_operator.errors import ConfigurationError

if TYPE_CHECKING:
    from registry_operator.app.signals import ShutdownContext


@runtime_checkable
class LeaderElectedRunner(Protocol):
    """Runs the control loop once leadership is held.

    ``run`` blocks until the loop ends, returning normally on a graceful stop
    and raising on failure. ``ctx`` is advisory: implementations poll or wait
    on it and return once it is cancelled.
    """

    def run(self, ctx: ShutdownContext) -> None: ...


RunnerFactory = Callable[[str | None], LeaderElectedRunner]


class IdleRunner:
    """Runner with no control loop; holds the process until shutdown."""

    def __init__(self, kubeconfig: str | None = None) -> None:
        self.kubeconfig = kubeconfig

    def run(self, ctx: ShutdownContext) -> None:
        logger.info("No control loop configured, serving metrics until shutdown")
        ctx.wait()


def load_runner_factory(target: str | None) -> RunnerFactory:
    """Resolve a ``module:attribute`` runner factory. Empty target selects :class:`IdleRunner`."""
    if not target:
        return IdleRunner

    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"runner {target!r} must be given as module:attribute")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"failed to import runner module {module_name!r}: {e}") from e
    try:
        factory = getattr(module, attr)
    except AttributeError:
        raise ConfigurationError(f"runner module {module_name!r} has no attribute {attr!r}") from None
    if not callable(factory):
        raise ConfigurationError(f"runner {target!r} is not callable")
    return factory
