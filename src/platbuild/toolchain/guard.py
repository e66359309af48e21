"""Toolchain presence check shared by every native build unit.

Native link units cannot run without a compiler toolchain on the host. The
check is cheap but its failure has to be reported once, early, and with a
message that says where the toolchain was expected and which configuration
file to fix, instead of surfacing as an opaque compiler error from every
unit at once.

ToolchainGuard is a one-shot initializer: the first verify() call performs
the check under a lock, later calls (from any thread) return the memoized
outcome without checking again.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from platbuild.platforms.host import host_operating_system

logger = logging.getLogger(__name__)

# Name of the graph node that gates every native build unit.
TOOLCHAIN_TASK_NAME = "CheckToolChain"


class ToolchainConfigurationError(Exception):
    """Raised when the toolchain required by the host is not installed."""

    pass


class GuardState(Enum):
    """Outcome of the toolchain check."""

    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass(frozen=True)
class VisualStudioLocation:
    """Where the Microsoft Visual Studio toolchain is expected on Windows hosts.

    Attributes:
        base_dir: Visual Studio base directory
        install_dir: Edition install directory (contains VC/Tools)
        config_source: Configuration file where these paths can be corrected
    """

    base_dir: Path
    install_dir: Path
    config_source: str


def check_visual_studio(location: Optional[VisualStudioLocation]) -> None:
    """Verify that both Visual Studio directories exist.

    Raises:
        ToolchainConfigurationError: If either directory is missing.
    """
    if location is None:
        raise ToolchainConfigurationError(
            "Microsoft Visual Studio install not found: (no install directory configured)\n"
            "Adjust path in natives.json if needed."
        )
    if not location.base_dir.exists() or not location.install_dir.exists():
        raise ToolchainConfigurationError(
            f"Microsoft Visual Studio install not found: {location.base_dir}\n"
            f"Adjust path in {location.config_source} if needed."
        )


class ToolchainGuard:
    """Memoized, thread-safe toolchain check.

    Only Windows hosts need an explicit check; on other hosts the native
    compiler is located by the build backend itself and verify() succeeds
    immediately (but still only once).

    Args:
        visual_studio: Expected Visual Studio location for Windows hosts.
        host_os: Host OS family override (defaults to the running host).
    """

    def __init__(self, visual_studio: Optional[VisualStudioLocation] = None, host_os: Optional[str] = None) -> None:
        self._visual_studio = visual_studio
        self._host_os = host_os
        self._state = GuardState.PENDING
        self._error: Optional[ToolchainConfigurationError] = None
        self._lock = threading.Lock()
        self._check_count = 0
        self._checks: dict[str, Callable[[], None]] = {
            "windows": lambda: check_visual_studio(self._visual_studio),
        }

    @property
    def name(self) -> str:
        return TOOLCHAIN_TASK_NAME

    @property
    def state(self) -> GuardState:
        with self._lock:
            return self._state

    @property
    def check_count(self) -> int:
        """Number of times the underlying check actually ran (0 or 1)."""
        with self._lock:
            return self._check_count

    def verify(self, host_os: Optional[str] = None) -> None:
        """Run the toolchain check on first call, replay its outcome afterwards.

        Concurrent callers block until the first check finishes and then all
        observe the same outcome.

        Args:
            host_os: Host OS family; defaults to the value given at construction,
                     then to the running host.

        Raises:
            ToolchainConfigurationError: If the required toolchain is missing.
                Later calls raise a new error with the same message, chained
                to the first one.
        """
        with self._lock:
            if self._state is GuardState.VERIFIED:
                return
            if self._state is GuardState.FAILED:
                assert self._error is not None
                raise ToolchainConfigurationError(str(self._error)) from self._error

            os_family = host_os or self._host_os or host_operating_system()
            self._check_count += 1
            check = self._checks.get(os_family)
            try:
                if check is not None:
                    check()
            except ToolchainConfigurationError as e:
                self._state = GuardState.FAILED
                self._error = e
                logger.error("Toolchain check failed on %s host: %s", os_family, e)
                raise
            self._state = GuardState.VERIFIED
            logger.debug("Toolchain verified for %s host", os_family)
