"""
Run context
===========

Holds what the pipeline stages share for one run: the logger, a scoped
temporary working directory (sampled backgrounds, split motif files,
external scanner output), the output directory and the collected warnings.

Used as a context manager; the temporary directory and any output file
still being written are removed on every exit path, including
``KeyboardInterrupt`` and ``SIGTERM``.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import signal
import tempfile
import threading
from typing import Iterator, List, Optional, Set

from motifscan.exceptions import MotifscanWarning

INCOMPLETE_SUFFIX = ".incomplete"


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt(f"Received signal {signum}")


class RunContext:
    """
    Shared state of one scan run.

    Parameters
    ----------
    outdir : str
        Directory receiving report files; created when missing.
    tmp_root : str, optional
        Parent of the temporary working directory (system default if None).
    keep_temporary : bool
        Leave the temporary directory in place on exit (debugging aid).
    """

    def __init__(self, outdir: str = ".", tmp_root: Optional[str] = None, keep_temporary: bool = False) -> None:
        self.outdir = outdir
        self.tmp_root = tmp_root
        self.keep_temporary = keep_temporary
        self.logger = logging.getLogger("motifscan")
        self.workdir: Optional[str] = None
        self._warnings: List[MotifscanWarning] = []
        self._pending: Set[str] = set()
        self._previous_handler = None

    def __enter__(self) -> "RunContext":
        os.makedirs(self.outdir, exist_ok=True)
        self.workdir = tempfile.mkdtemp(prefix="motifscan_", dir=self.tmp_root)
        self.logger.debug(f"Temporary working directory: {self.workdir}")
        if threading.current_thread() is threading.main_thread():
            self._previous_handler = signal.signal(signal.SIGTERM, _raise_interrupt)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is KeyboardInterrupt:
            self.logger.warning("Interrupted: discarding temporary files and incomplete outputs")
        self.cleanup()
        if self._previous_handler is not None:
            signal.signal(signal.SIGTERM, self._previous_handler)
            self._previous_handler = None

    def cleanup(self) -> None:
        """Remove incomplete outputs and the temporary working directory."""
        for path in list(self._pending):
            with contextlib.suppress(FileNotFoundError):
                os.remove(path)
            self._pending.discard(path)
        if self.workdir is not None and not self.keep_temporary:
            shutil.rmtree(self.workdir, ignore_errors=True)
            self.workdir = None

    def warn(self, warning: MotifscanWarning) -> None:
        """Record a recoverable condition and log it."""
        self._warnings.append(warning)
        self.logger.warning(f"{type(warning).__name__}: {warning}")

    @property
    def warnings(self) -> List[MotifscanWarning]:
        return list(self._warnings)

    def output_path(self, filename: str) -> str:
        return os.path.join(self.outdir, filename)

    @contextlib.contextmanager
    def atomic_output(self, path: str) -> Iterator:
        """Open ``path`` for writing so that it only appears once complete.

        Content goes to ``<path>.incomplete`` and is renamed on success; on
        any error the partial file is deleted.
        """
        partial = path + INCOMPLETE_SUFFIX
        self._pending.add(partial)
        try:
            with open(partial, "w") as handle:
                yield handle
            os.replace(partial, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.remove(partial)
            raise
        finally:
            self._pending.discard(partial)
