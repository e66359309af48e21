"""
Timestamped console lines for people watching a native build.

Every line starts with the time since init_timer() as MM:SS.cc, so the
platform that holds up a multi-platform build stands out:

    00:00.02 platbuild v0.3.0
    00:00.05 [1/3] Configuring natives.json...
    00:00.07       Platforms: win32, win64, linux64, osx64
    00:04.30       linux64: build/os/linux64/libdecompiler.so

Diagnostics go through ``logging``; this module only writes what the CLI
reports to its user.
"""

import sys
import time
from types import TracebackType
from typing import Optional, TextIO

DETAIL_INDENT = 6

_start_time: Optional[float] = None
_output_stream: TextIO = sys.stdout
_verbose: bool = True


def init_timer(output_stream: Optional[TextIO] = None) -> None:
    """
    Restart the clock that every timestamp is measured from.

    Args:
        output_stream: Stream to write to from now on (keeps the current one if None)
    """
    global _start_time, _output_stream
    _start_time = time.time()
    if output_stream is not None:
        _output_stream = output_stream


def set_verbose(verbose: bool) -> None:
    """Show or hide lines written with verbose_only=True."""
    global _verbose
    _verbose = verbose


def format_timestamp() -> str:
    """
    Elapsed time since init_timer() as MM:SS.cc.

    The clock starts on first use when init_timer() was never called.
    """
    if _start_time is None:
        init_timer()
    minutes, seconds = divmod(time.time() - _start_time, 60)  # type: ignore[operator]
    return f"{int(minutes):02d}:{seconds:05.2f}"


def _emit(message: str, verbose_only: bool = False) -> None:
    if verbose_only and not _verbose:
        return
    _output_stream.write(f"{format_timestamp()} {message}\n")
    _output_stream.flush()


def log(message: str, verbose_only: bool = False) -> None:
    _emit(message, verbose_only)


def log_phase(phase: int, total: int, message: str) -> None:
    """Write a ``[phase/total] message`` step line."""
    _emit(f"[{phase}/{total}] {message}")


def log_detail(message: str, verbose_only: bool = False) -> None:
    _emit(" " * DETAIL_INDENT + message, verbose_only)


def log_header(title: str, version: str) -> None:
    _emit(f"{title} v{version}")
    _emit("")


def log_artifact(platform_name: str, path: str) -> None:
    """Write where a platform's artifact ended up, as ``<platform>: <path>``."""
    log_detail(f"{platform_name}: {path}")


def log_build_complete(build_time: float) -> None:
    _emit("")
    _emit(f"Build time: {build_time:.2f}s")


def log_error(message: str) -> None:
    _emit(f"ERROR: {message}")


def log_warning(message: str) -> None:
    _emit(f"WARNING: {message}")


def log_success(message: str) -> None:
    _emit(message)


class TimedLogger:
    """
    Announce an operation on entry and its duration on a clean exit.

        with TimedLogger("Finalizing task graph", phase=(2, 3)) as timed:
            graph = builder.finalize(project, backend)
            timed.detail(f"{len(graph)} task(s)")

    Nothing is written on exit when the block raises; the caller reports the error.
    """

    def __init__(self, operation: str, phase: Optional[tuple[int, int]] = None):
        self.operation = operation
        self.phase = phase
        self._started = 0.0

    def __enter__(self) -> "TimedLogger":
        self._started = time.time()
        if self.phase is not None:
            log_phase(self.phase[0], self.phase[1], f"{self.operation}...")
        else:
            log(f"{self.operation}...")
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if exc_type is None:
            self.detail(f"Done ({time.time() - self._started:.2f}s)")

    def detail(self, message: str, verbose_only: bool = False) -> None:
        log_detail(message, verbose_only=verbose_only)
