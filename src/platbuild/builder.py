"""Builds a NativeProject from natives.json and runs it.

Glue between the configuration layer and the task graph:
- create_project() turns a NativeBuildConfig into a NativeProject
- NativeBuilder finalizes the project and executes the graph with a live
  Rich display on terminals, or a plain callback elsewhere
"""

import logging
import os
import sys
from typing import Optional

from platbuild.backend import NativeBuildBackend
from platbuild.config import NativeBuildConfig
from platbuild.graph.callbacks import NullCallback, VerboseCallback
from platbuild.graph.executor import GraphExecutor
from platbuild.graph.models import GraphResult, TaskGraph, UnitKind
from platbuild.graph.progress_display import BuildProgressDisplay
from platbuild.graph.project import NativeProject
from platbuild.platforms.registry import DEFAULT_PLATFORMS, PlatformDescriptor, PlatformRegistry
from platbuild.toolchain.guard import ToolchainGuard

logger = logging.getLogger(__name__)


def create_registry(config: NativeBuildConfig) -> PlatformRegistry:
    """Default platforms, with natives.json entries overriding or extending them."""
    platforms: dict[str, PlatformDescriptor] = {p.name: p for p in DEFAULT_PLATFORMS}
    for descriptor in config.platforms:
        if descriptor.name in platforms:
            logger.debug("Overriding default platform %s from %s", descriptor.name, config.source)
        platforms[descriptor.name] = descriptor
    return PlatformRegistry(list(platforms.values()))


def create_project(
    config: NativeBuildConfig,
    host_platform: Optional[str] = None,
    host_os: Optional[str] = None,
) -> NativeProject:
    """Create a project with every unit declared in the config.

    Args:
        config: Parsed build description.
        host_platform: Override for the platform "assemble" builds.
        host_os: Override for the OS family the toolchain check runs for.
    """
    project = NativeProject(
        project_dir=config.project_dir,
        registry=create_registry(config),
        guard=ToolchainGuard(config.visual_studio, host_os=host_os),
        repo_project_dir=config.repo_project_dir,
        strict_platforms=config.strict_platforms,
        host_platform=host_platform,
    )
    for unit in config.units:
        command = list(unit.command)
        if unit.kind is UnitKind.EXECUTABLE:
            assert unit.platform is not None and unit.output is not None
            project.add_executable(unit.name, unit.platform, unit.output, command)
        elif unit.kind is UnitKind.SHARED_LIBRARY:
            assert unit.platform is not None and unit.output is not None
            project.add_shared_library(unit.name, unit.platform, unit.output, command)
        else:
            project.add_make_task(unit.name, command)
    return project


class NativeBuilder:
    """Finalizes a NativeProject and executes its task graph.

    Args:
        jobs: Maximum number of tasks running at once (defaults to the CPU count).
    """

    def __init__(self, jobs: Optional[int] = None) -> None:
        self._jobs = jobs if jobs is not None else (os.cpu_count() or 1)
        self._executor: Optional[GraphExecutor] = None

    def finalize(self, project: NativeProject, backend: NativeBuildBackend) -> TaskGraph:
        graph = project.finalize(backend)
        logger.info("Finalized task graph: %d node(s), roots: %s", len(graph), ", ".join(graph.roots))
        return graph

    def run(
        self,
        graph: TaskGraph,
        title: str,
        verbose: bool = False,
        use_tui: Optional[bool] = None,
    ) -> GraphResult:
        """Execute the graph's requested tasks.

        Args:
            graph: Finalized task graph.
            title: Heading shown above the live display.
            verbose: Print per-task progress when not using the live display.
            use_tui: Override TUI display. None = auto-detect (TTY check).

        Raises:
            BuildCancelledError: If cancel() is called during the run.
        """
        executor = GraphExecutor(max_workers=self._jobs)
        self._executor = executor
        if use_tui is None:
            use_tui = _is_tty()

        if use_tui:
            display = BuildProgressDisplay(console=None, title=title)
            for name in graph.closure():
                display.register_task(name)
            with display:
                return executor.run(graph, display)

        callback = VerboseCallback() if verbose else NullCallback()
        return executor.run(graph, callback)

    def cancel(self) -> None:
        if self._executor is not None:
            self._executor.cancel()


def _is_tty() -> bool:
    """Check if stdout is a terminal (TTY)."""
    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False
