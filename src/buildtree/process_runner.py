"""Process execution abstraction layer.

Every external tool invocation goes through a ProcessRunner so that output
handling can be selected per invocation and replaced in tests.
"""

from __future__ import annotations

import subprocess
import sys
from abc import ABC, abstractmethod
from enum import Enum
from threading import Thread
from typing import Any, TextIO

from buildtree.logging import Logger

__all__ = [
    "ProcessRunner",
    "PassthroughProcessRunner",
    "SilentProcessRunner",
    "StreamingProcessRunner",
    "TaskOutputTypes",
    "make_process_runner",
    "stream_output",
]


class TaskOutputTypes(Enum):
    """Which streams of an external process reach the terminal."""

    ALL = "all"
    NONE = "none"
    OUT = "out"
    ERR = "err"


class ProcessRunner(ABC):
    """Interface for running subprocess commands."""

    @abstractmethod
    def run(self, *args: Any, **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        """Run a subprocess command.

        The signature matches subprocess.run() so implementations can be
        swapped in without changing call sites.

        Raises:
            subprocess.CalledProcessError: If check=True and process exits non-zero
            subprocess.TimeoutExpired: If timeout is exceeded
        """
        ...


class PassthroughProcessRunner(ProcessRunner):
    """Delegates straight to subprocess.run; output goes to the terminal."""

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    def run(self, *args: Any, **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        return subprocess.run(*args, **kwargs)


class SilentProcessRunner(ProcessRunner):
    """Discards both stdout and stderr of the process."""

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    def run(self, *args: Any, **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        kwargs.pop("capture_output", None)
        kwargs["stdout"] = subprocess.DEVNULL
        kwargs["stderr"] = subprocess.DEVNULL
        return subprocess.run(*args, **kwargs)


def stream_output(pipe: Any, target: Any) -> None:
    """Copy lines from a pipe to a target stream until the pipe closes.

    A closed pipe or a write error ends the copy quietly; the process exit
    code is what reports failure.
    """
    if pipe:
        try:
            for line in pipe:
                target.write(line)
                target.flush()
        except (OSError, ValueError):
            pass


class StreamingProcessRunner(ProcessRunner):
    """Streams one of stdout/stderr to the terminal and discards the other.

    A background thread copies the kept stream line by line so output appears
    while the process runs; the call itself stays synchronous.
    """

    JOIN_TIMEOUT_SECS = 1.0

    def __init__(self, logger: Logger, keep: str) -> None:
        if keep not in ("stdout", "stderr"):
            raise ValueError(f"keep must be 'stdout' or 'stderr', not {keep!r}")
        self._logger = logger
        self._keep = keep

    def _target(self) -> TextIO:
        return sys.stdout if self._keep == "stdout" else sys.stderr

    def run(self, *args: Any, **kwargs: Any) -> subprocess.CompletedProcess[Any]:
        check = kwargs.pop("check", False)
        timeout = kwargs.pop("timeout", None)
        kwargs.pop("capture_output", None)

        discard = "stderr" if self._keep == "stdout" else "stdout"
        kwargs[self._keep] = subprocess.PIPE
        kwargs[discard] = subprocess.DEVNULL
        kwargs["text"] = True
        kwargs["bufsize"] = 1

        process = subprocess.Popen(*args, **kwargs)
        pipe = getattr(process, self._keep)
        thread = Thread(
            target=stream_output,
            args=(pipe, self._target()),
            name=f"{self._keep}-streamer",
        )
        thread.start()

        try:
            return_code = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            raise
        finally:
            thread.join(timeout=self.JOIN_TIMEOUT_SECS)
            if pipe:
                pipe.close()

        if thread.is_alive():
            self._logger.warn(
                f"Stream thread did not complete within {self.JOIN_TIMEOUT_SECS} seconds"
            )

        command = args[0] if args else kwargs.get("args", [])
        if check and return_code != 0:
            raise subprocess.CalledProcessError(return_code, command)

        return subprocess.CompletedProcess(args=command, returncode=return_code)


def make_process_runner(output_type: TaskOutputTypes, logger: Logger) -> ProcessRunner:
    """Create the ProcessRunner for a task output mode.

    Raises:
        ValueError: If an invalid TaskOutputTypes value is provided
    """
    match output_type:
        case TaskOutputTypes.ALL:
            return PassthroughProcessRunner(logger)
        case TaskOutputTypes.NONE:
            return SilentProcessRunner(logger)
        case TaskOutputTypes.OUT:
            return StreamingProcessRunner(logger, "stdout")
        case TaskOutputTypes.ERR:
            return StreamingProcessRunner(logger, "stderr")
        case _:
            raise ValueError(f"Invalid TaskOutputTypes: {output_type}")
