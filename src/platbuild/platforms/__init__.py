"""Platform catalog and host platform detection."""

from .host import current_platform_name, host_architecture, host_operating_system
from .registry import (
    DEFAULT_PLATFORMS,
    DuplicatePlatformError,
    PlatformDescriptor,
    PlatformNotFoundError,
    PlatformRegistry,
    RegistryFrozenError,
)

__all__ = [
    "DEFAULT_PLATFORMS",
    "DuplicatePlatformError",
    "PlatformDescriptor",
    "PlatformNotFoundError",
    "PlatformRegistry",
    "RegistryFrozenError",
    "current_platform_name",
    "host_architecture",
    "host_operating_system",
]
