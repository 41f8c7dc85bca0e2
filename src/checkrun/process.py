"""Process primitives used by the step runner: start, wait, kill, read output."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import threading
from pathlib import Path
from typing import Mapping, Optional, Sequence

_POSIX = sys.platform != "win32"


class Process:
    """
    One external process with stdout and stderr captured into a single buffer.

    On POSIX the process is started in its own session so that kill() takes
    down everything it spawned (e.g. the children of `sh -c`).
    """

    def __init__(self, popen: subprocess.Popen, max_output: int):
        self._popen = popen
        self._max_output = max_output
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._reader = threading.Thread(target=self._drain, name=f"checkrun-output-{popen.pid}", daemon=True)
        self._reader.start()

    @classmethod
    def start(
        cls,
        argv: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        max_output: int = 1024 * 1024,
    ) -> "Process":
        """
        Spawn argv. Raises FileNotFoundError / PermissionError / OSError
        when the process cannot be created.
        """
        popen = subprocess.Popen(
            list(argv),
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=_POSIX,
        )
        return cls(popen, max_output)

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._popen.returncode

    def _drain(self) -> None:
        stream = self._popen.stdout
        if stream is None:
            return
        for chunk in iter(lambda: stream.read1(65536), b""):
            with self._lock:
                self._buffer.extend(chunk)
                overflow = len(self._buffer) - self._max_output
                if overflow > 0:
                    del self._buffer[:overflow]
        stream.close()

    def wait(self, timeout: float | None = None) -> Optional[int]:
        """Wait up to `timeout` seconds; return the exit code or None if still running."""
        try:
            code = self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None
        self._reader.join(timeout=5)
        return code

    def kill(self) -> None:
        """Forcefully terminate the process (group) and reap it."""
        if self._popen.poll() is None:
            try:
                if _POSIX:
                    os.killpg(self._popen.pid, signal.SIGKILL)
                else:
                    self._popen.kill()
            except ProcessLookupError:
                pass
        elif _POSIX:
            # leader exited; stragglers in its group may still hold the pipe
            try:
                os.killpg(self._popen.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                pass
        self._popen.wait()
        self._reader.join(timeout=5)

    def output(self) -> bytes:
        with self._lock:
            return bytes(self._buffer)
