"""Host platform detection.

Maps the machine running the build onto one of the registry's platform
names, using the same (architecture, operating system) vocabulary the
registry is declared with. The result picks the aggregate that ``assemble``
builds by default.
"""

import platform
import sys
from typing import Optional

from .registry import PlatformNotFoundError, PlatformRegistry

# platform.machine() values -> registry architecture names
_ARCHITECTURE_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "i386": "x86",
    "i486": "x86",
    "i586": "x86",
    "i686": "x86",
    "x86": "x86",
    "arm64": "arm64",
    "aarch64": "arm64",
}


def host_operating_system(sys_platform: Optional[str] = None) -> str:
    """Return the OS family of the host ("windows", "linux", "osx" or the raw value).

    Args:
        sys_platform: Override for sys.platform (used by tests).
    """
    value = sys_platform if sys_platform is not None else sys.platform
    if value.startswith("win") or value == "cygwin":
        return "windows"
    if value.startswith("linux"):
        return "linux"
    if value == "darwin":
        return "osx"
    return value


def host_architecture(machine: Optional[str] = None) -> str:
    """Return the CPU architecture of the host in registry vocabulary.

    Args:
        machine: Override for platform.machine() (used by tests).
    """
    value = (machine if machine is not None else platform.machine()).lower()
    return _ARCHITECTURE_ALIASES.get(value, value)


def current_platform_name(
    registry: PlatformRegistry,
    machine: Optional[str] = None,
    sys_platform: Optional[str] = None,
) -> str:
    """Return the registry name of the platform this build is running on.

    Args:
        registry: Registry to search.
        machine: Override for platform.machine().
        sys_platform: Override for sys.platform.

    Raises:
        PlatformNotFoundError: If no registered platform matches the host.
    """
    architecture = host_architecture(machine)
    operating_system = host_operating_system(sys_platform)
    descriptor = registry.find(architecture, operating_system)
    if descriptor is None:
        raise PlatformNotFoundError(f"{architecture}/{operating_system}", registry.names())
    return descriptor.name
