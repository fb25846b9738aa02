"""Blocking child-process execution with cancellation support.

Every process started through a ``ProcessRunner`` is tracked until it exits so
that ``cancel_all()`` (or the shared ``CancellationToken``) can terminate
outstanding builds.
"""

import logging
import shutil
import subprocess  # nosec B404
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 5


class CancellationToken:
    """Thread-safe cancellation flag shared across the pipeline."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._callbacks: List = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
        logger.warning("Cancellation requested")
        for callback in callbacks:
            callback()

    def register(self, callback) -> None:
        """Run ``callback`` on cancellation (immediately if already cancelled)."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()


@dataclass
class ProcessResult:
    """Result of a finished child process."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass
class CommandAvailability:
    available: bool
    path: Optional[str] = None


@dataclass
class ProcessOptions:
    """Execution options for a single command."""

    cwd: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    timeout: Optional[float] = None
    show_output: bool = False


class ProcessRunner:
    """Runs external commands and tracks them for cancellation."""

    def __init__(self, cancellation: Optional[CancellationToken] = None) -> None:
        self.cancellation = cancellation or CancellationToken()
        self._processes: set[subprocess.Popen] = set()
        self._lock = threading.Lock()
        self.cancellation.register(self.cancel_all)

    def is_available(self, command: str) -> CommandAvailability:
        """Check whether ``command`` is on PATH."""
        path = shutil.which(command)
        return CommandAvailability(available=path is not None, path=path)

    def execute(
        self,
        command: str,
        args: Sequence[str],
        options: Optional[ProcessOptions] = None,
    ) -> ProcessResult:
        """Run ``command`` with ``args`` and wait for it to finish.

        A cancelled runner refuses new work and reports exit code 130.
        """
        options = options or ProcessOptions()
        cmd = [command, *args]
        if self.cancellation.cancelled:
            return ProcessResult(130, "", "Cancelled before start")

        logger.debug(f"Running command: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(  # nosec B603
                cmd,
                cwd=options.cwd,
                env=options.env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            logger.error(f"Failed to start {command}: {e}")
            return ProcessResult(127, "", str(e))

        with self._lock:
            self._processes.add(process)
        try:
            stdout, stderr = process.communicate(timeout=options.timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            stdout, stderr = process.communicate()
            logger.error(f"Command timed out after {options.timeout}s: {command}")
            return ProcessResult(124, stdout or "", (stderr or "") + "\nCommand timed out")
        finally:
            with self._lock:
                self._processes.discard(process)

        if options.show_output and stdout:
            for line in stdout.splitlines():
                logger.info(f"[{command}] {line}")

        exit_code = process.returncode
        if self.cancellation.cancelled and exit_code != 0:
            exit_code = 130
        return ProcessResult(exit_code, stdout or "", stderr or "")

    def cancel_all(self) -> None:
        """Terminate every outstanding child process."""
        with self._lock:
            processes = list(self._processes)
        for process in processes:
            if process.poll() is not None:
                continue
            logger.warning(f"Terminating process {process.pid}")
            process.terminate()
            try:
                process.wait(timeout=TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                logger.warning(f"Process {process.pid} did not stop gracefully, killing it")
                process.kill()
