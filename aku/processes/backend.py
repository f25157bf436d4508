"""Process backends — launch, check and terminate agent processes.

One capability, two platform variants. ``AgentManager`` and
``BatchSpawner`` only talk to ``ProcessBackend``; ``default_backend()``
picks the variant for the running OS.

Liveness is a query only: nothing here alters a running process except
``terminate``. PID reuse by the OS is not detected.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO

from aku.exceptions import SignalFailureError

_logger = logging.getLogger(__name__)


class ProcessBackend(ABC):
    """Platform process operations used by the lifecycle manager."""

    @abstractmethod
    def launch(self, command: list[str], stdin_path: Path, log_path: Path) -> int:
        """Start ``command`` detached, stdin from ``stdin_path``, stdout and
        stderr appended to ``log_path``. Returns the OS pid."""

    @abstractmethod
    def is_alive(self, pid: int) -> bool:
        """Non-destructive existence check."""

    @abstractmethod
    def terminate(self, pid: int) -> None:
        """Ask the process to exit. Raises SignalFailureError if undeliverable."""

    def which(self, executable: str) -> str | None:
        return shutil.which(executable)


class PosixBackend(ProcessBackend):
    """Detached children in their own session, checked with signal 0."""

    def __init__(self) -> None:
        # Children launched by this invocation; poll() reaps them once they exit
        self._children: dict[int, subprocess.Popen] = {}

    def launch(self, command: list[str], stdin_path: Path, log_path: Path) -> int:
        with open(stdin_path, "rb") as stdin, _open_log(log_path) as log:
            proc = subprocess.Popen(
                command,
                stdin=stdin,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
                close_fds=True,
            )
        self._children[proc.pid] = proc
        _logger.debug("Launched %s as PID %d", command[0], proc.pid)
        return proc.pid

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        child = self._children.get(pid)
        if child is not None:
            return child.poll() is None
        try:
            os.kill(pid, 0)  # signal 0 only checks existence
        except ProcessLookupError:
            return False
        except PermissionError:
            return True  # exists, owned by someone else
        except OSError:
            return False
        return True

    def terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGTERM)
        except OSError as e:
            raise SignalFailureError(
                f"Could not send SIGTERM to PID {pid}: {e.strerror or e}"
            ) from e


class WindowsBackend(ProcessBackend):
    """Detached console-less children, checked through the Win32 API."""

    _DETACHED_PROCESS = 0x00000008
    _CREATE_NEW_PROCESS_GROUP = 0x00000200
    _PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
    _ERROR_ACCESS_DENIED = 5
    _STILL_ACTIVE = 259

    def launch(self, command: list[str], stdin_path: Path, log_path: Path) -> int:
        with open(stdin_path, "rb") as stdin, _open_log(log_path) as log:
            proc = subprocess.Popen(
                command,
                stdin=stdin,
                stdout=log,
                stderr=subprocess.STDOUT,
                creationflags=self._DETACHED_PROCESS | self._CREATE_NEW_PROCESS_GROUP,
                close_fds=True,
            )
        _logger.debug("Launched %s as PID %d", command[0], proc.pid)
        return proc.pid

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        import ctypes
        from ctypes import wintypes

        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
        handle = kernel32.OpenProcess(self._PROCESS_QUERY_LIMITED_INFORMATION, False, pid)
        if not handle:
            return ctypes.get_last_error() == self._ERROR_ACCESS_DENIED
        try:
            code = wintypes.DWORD()
            if not kernel32.GetExitCodeProcess(handle, ctypes.byref(code)):
                return False
            return code.value == self._STILL_ACTIVE
        finally:
            kernel32.CloseHandle(handle)

    def terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGTERM)  # TerminateProcess on Windows
        except OSError as e:
            raise SignalFailureError(f"Could not terminate PID {pid}: {e}") from e


def default_backend() -> ProcessBackend:
    if os.name == "nt":
        return WindowsBackend()
    return PosixBackend()


def _open_log(log_path: Path) -> BinaryIO:
    """Open the log for appending, creating it owner-only."""
    log_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
    return os.fdopen(fd, "ab")
