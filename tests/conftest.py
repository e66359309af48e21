"""Pytest configuration and shared fixtures for platbuild tests.

Also works around Python 3.13 "I/O operation on closed file" errors during
teardown when a test replaces or closes stdout/stderr
(https://github.com/pytest-dev/pytest/issues/11439).
"""

import sys
import threading
import warnings
from pathlib import Path
from typing import Callable, Optional

import pytest

from platbuild.graph.models import BuildUnit
from platbuild.platforms.registry import PlatformDescriptor, PlatformRegistry
from platbuild.toolchain.guard import ToolchainGuard

# Suppress ResourceWarnings from file cleanup in Python 3.13
if sys.version_info >= (3, 13):
    warnings.filterwarnings("ignore", category=ResourceWarning)


@pytest.fixture(autouse=True)
def _restore_stdio():  # noqa: PT004
    """Ensure stdout/stderr are always restored after each test."""
    yield

    if sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if sys.stderr.closed:
        sys.stderr = sys.__stderr__


class RecordingBackend:
    """Thread-safe fake build backend.

    Writes a small file at each link unit's output path and records every
    call. Units named in ``fail_units`` raise RuntimeError instead.
    """

    def __init__(self, fail_units: Optional[set[str]] = None) -> None:
        self.fail_units = fail_units or set()
        self.calls: list[tuple[str, Optional[str]]] = []
        self._lock = threading.Lock()

    def build(self, unit: BuildUnit, platform: Optional[PlatformDescriptor]) -> Optional[Path]:
        with self._lock:
            self.calls.append((unit.name, platform.name if platform is not None else None))
        if unit.name in self.fail_units:
            raise RuntimeError(f"compile error in {unit.name}")
        if unit.output_path is None:
            return None
        unit.output_path.parent.mkdir(parents=True, exist_ok=True)
        unit.output_path.write_bytes(b"\x7fELF")
        return unit.output_path

    def built_units(self) -> list[str]:
        with self._lock:
            return [name for name, _ in self.calls]


@pytest.fixture
def registry() -> PlatformRegistry:
    return PlatformRegistry.with_defaults()


@pytest.fixture
def linux_guard() -> ToolchainGuard:
    """Toolchain guard that behaves as on a Linux host (no check needed)."""
    return ToolchainGuard(host_os="linux")


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def failing_backend() -> Callable[..., RecordingBackend]:
    """Factory for a RecordingBackend whose named units fail."""

    def make(*unit_names: str) -> RecordingBackend:
        return RecordingBackend(fail_units=set(unit_names))

    return make
