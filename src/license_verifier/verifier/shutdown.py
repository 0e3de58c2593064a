"""Two-phase process termination."""

from __future__ import annotations

import logging
import os
import signal
import sys
import threading
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)

EXIT_CODE = 1


def _flush_and_exit(code: int) -> None:
    logging.shutdown()
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass
    os._exit(code)


class ProcessShutdown:
    """Cancel cooperating work, interrupt the process, then exit.

    ``cancel`` is the event background loops watch; the process owner calls
    ``acknowledge()`` once everything has wound down, ending the grace wait.
    The exit in ``terminate`` runs even when the grace wait times out or is
    interrupted.
    """

    def __init__(
        self,
        cancel: threading.Event | None = None,
        grace_s: float = 5.0,
        *,
        kill: Callable[[int, int], None] = os.kill,
        exit: Callable[[int], None] = _flush_and_exit,
    ) -> None:
        self.cancel = cancel if cancel is not None else threading.Event()
        self.grace_s = grace_s
        self._acknowledged = threading.Event()
        self._kill = kill
        self._exit = exit

    def acknowledge(self) -> None:
        self._acknowledged.set()

    def terminate(self, code: int = EXIT_CODE) -> None:
        try:
            self.cancel.set()
            try:
                self._kill(os.getpid(), signal.SIGINT)
            except OSError as exc:
                logger.warning("self_interrupt_failed", error=str(exc))
            if not self._acknowledged.wait(self.grace_s):
                logger.warning("shutdown_grace_expired", grace_s=self.grace_s)
        finally:
            self._exit(code)
