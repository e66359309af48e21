"""Toolchain verification."""

from .guard import (
    TOOLCHAIN_TASK_NAME,
    GuardState,
    ToolchainConfigurationError,
    ToolchainGuard,
    VisualStudioLocation,
    check_visual_studio,
)

__all__ = [
    "GuardState",
    "TOOLCHAIN_TASK_NAME",
    "ToolchainConfigurationError",
    "ToolchainGuard",
    "VisualStudioLocation",
    "check_visual_studio",
]
