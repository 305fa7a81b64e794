"""Shutdown triggers: OS termination signals and watched-file changes.

Both sources cancel one shared :class:`ShutdownContext`. Whichever fires
first wins; later triggers from either source are ignored.
"""

from __future__ import annotations

import hashlib
import os
import signal
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from types import FrameType

from loguru import logger

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ShutdownContext:
    """One-shot cancellation token shared by the process activities."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._done.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str) -> bool:
        """Cancel the context. Returns False if it was already cancelled."""
        with self._lock:
            if self._done.is_set():
                return False
            self._reason = reason
            self._done.set()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses. Returns ``cancelled``."""
        return self._done.wait(timeout)


def setup_signal_handler(
    ctx: ShutdownContext,
    signals: Iterable[signal.Signals] = TERMINATION_SIGNALS,
) -> Callable[[], None]:
    """Cancel ``ctx`` on the first termination signal.

    A second termination signal exits the process with status 1 without
    waiting for shutdown. Must be called from the main thread. Returns a
    callable restoring the previous handlers.

    The handler runs on the main thread, possibly while that thread holds
    the context's locks inside ``ctx.wait()``, so cancellation is handed to
    a short-lived thread instead of being done in the handler.
    """
    received = 0

    def _handle(signum: int, frame: FrameType | None) -> None:
        nonlocal received
        received += 1
        if received > 1:
            os._exit(1)
        threading.Thread(
            target=ctx.cancel,
            args=(f"received {signal.Signals(signum).name} signal",),
            name="signal-cancel",
            daemon=True,
        ).start()

    previous = {sig: signal.signal(sig, _handle) for sig in signals}

    def restore() -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    return restore


def _digest(path: Path) -> str:
    try:
        return hashlib.sha256(path.read_bytes()).hexdigest()
    except FileNotFoundError:
        return ""


class FileWatcher:
    """Poll a set of files and report the first content change.

    Files are compared by SHA-256 of their content; a missing file hashes as
    empty, so creating or deleting a watched file counts as a change. The
    watcher stops after the first change.
    """

    def __init__(
        self,
        paths: Iterable[str | Path],
        on_change: Callable[[Path], None],
        interval: float = 1.0,
    ) -> None:
        self._paths = [Path(p) for p in paths]
        self._on_change = on_change
        self._interval = interval
        self._digests: dict[Path, str] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if not self._paths or self._thread is not None:
            return
        self._digests = {path: _digest(path) for path in self._paths}
        self._thread = threading.Thread(target=self._run, name="file-watcher", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            for path in self._paths:
                try:
                    current = _digest(path)
                except OSError as e:
                    logger.warning("Failed to read watched file {}: {}", path, e)
                    continue
                if current != self._digests[path]:
                    logger.debug("Watched file {} changed", path)
                    self._on_change(path)
                    return
