"""Platform registry for native builds.

A platform is a named (architecture, operating system) pair. Every native
build unit targets exactly one registered platform, and the platform name is
what appears in aggregate task names (``buildNatives_win64``) and in output
paths (``build/os/win64/``).

The registry starts out with the four platforms every project supports and
can be extended by callers (for example from the ``platforms`` section of
natives.json) before the task graph is finalized.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

logger = logging.getLogger(__name__)


class PlatformNotFoundError(KeyError):
    """Raised when a platform name is not in the registry."""

    def __init__(self, name: str, available: list[str]) -> None:
        super().__init__(name)
        self.name = name
        self.available = available

    def __str__(self) -> str:
        return f"Unknown platform '{self.name}'. Available: {', '.join(self.available) or '(none)'}"


class DuplicatePlatformError(ValueError):
    """Raised when a platform name is registered twice."""

    pass


class RegistryFrozenError(RuntimeError):
    """Raised when registering a platform after the configuration phase."""

    pass


@dataclass(frozen=True)
class PlatformDescriptor:
    """A native build target.

    Attributes:
        name: Short identifier used in task names and paths (e.g. "win64")
        architecture: CPU architecture (e.g. "x86", "x86_64")
        operating_system: Operating system family (e.g. "windows", "linux", "osx")
    """

    name: str
    architecture: str
    operating_system: str

    def matches(self, architecture: str, operating_system: str) -> bool:
        """Check whether this platform describes the given arch/OS pair."""
        return self.architecture == architecture and self.operating_system == operating_system

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "PlatformDescriptor":
        """Build a descriptor from a natives.json ``platforms`` entry."""
        try:
            return cls(
                name=name,
                architecture=str(data["architecture"]),
                operating_system=str(data["operating_system"]),
            )
        except KeyError as e:
            raise ValueError(f"Platform '{name}' is missing required key {e}") from e


# The platforms every project supports out of the box.
DEFAULT_PLATFORMS: tuple[PlatformDescriptor, ...] = (
    PlatformDescriptor("win32", "x86", "windows"),
    PlatformDescriptor("win64", "x86_64", "windows"),
    PlatformDescriptor("linux64", "x86_64", "linux"),
    PlatformDescriptor("osx64", "x86_64", "osx"),
)


class PlatformRegistry:
    """Catalog of supported platforms, keyed by name.

    Thread-safe. Registration is only allowed until freeze() is called, which
    NativeProject does when it finalizes the task graph.

    Usage:
        registry = PlatformRegistry.with_defaults()
        registry.register("linux_arm64", "arm64", "linux")
        registry.lookup("win64").architecture  # "x86_64"
    """

    def __init__(self, platforms: tuple[PlatformDescriptor, ...] | list[PlatformDescriptor] = ()) -> None:
        self._platforms: dict[str, PlatformDescriptor] = {}
        self._frozen = False
        self._lock = threading.Lock()
        for descriptor in platforms:
            self._add(descriptor)

    @classmethod
    def with_defaults(cls) -> "PlatformRegistry":
        return cls(DEFAULT_PLATFORMS)

    def _add(self, descriptor: PlatformDescriptor) -> None:
        if descriptor.name in self._platforms:
            raise DuplicatePlatformError(f"Duplicate platform name: {descriptor.name}")
        self._platforms[descriptor.name] = descriptor

    def register(self, name: str, architecture: str, operating_system: str) -> PlatformDescriptor:
        """Add a platform to the registry.

        Args:
            name: Unique platform name.
            architecture: CPU architecture string.
            operating_system: Operating system family string.

        Returns:
            The registered descriptor.

        Raises:
            DuplicatePlatformError: If the name is already registered.
            RegistryFrozenError: If the registry has been frozen.
        """
        descriptor = PlatformDescriptor(name, architecture, operating_system)
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(f"Cannot register platform '{name}': registry is frozen")
            self._add(descriptor)
        logger.debug("Registered platform %s (%s/%s)", name, architecture, operating_system)
        return descriptor

    def lookup(self, name: str) -> PlatformDescriptor:
        """Return the descriptor for a platform name.

        Raises:
            PlatformNotFoundError: If the name is not registered.
        """
        with self._lock:
            descriptor = self._platforms.get(name)
            if descriptor is None:
                raise PlatformNotFoundError(name, sorted(self._platforms))
            return descriptor

    def find(self, architecture: str, operating_system: str) -> PlatformDescriptor | None:
        """Return the first platform matching an architecture/OS pair, or None."""
        with self._lock:
            for descriptor in self._platforms.values():
                if descriptor.matches(architecture, operating_system):
                    return descriptor
            return None

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        with self._lock:
            return self._frozen

    def names(self) -> list[str]:
        """Platform names in registration order."""
        with self._lock:
            return list(self._platforms)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._platforms

    def __iter__(self) -> Iterator[PlatformDescriptor]:
        with self._lock:
            return iter(list(self._platforms.values()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._platforms)
