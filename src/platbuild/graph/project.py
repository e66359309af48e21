"""NativeProject - owner of the native build task graph.

Graph construction happens in two phases:

1. Configuration: platforms are registered, units are declared and tasks
   are requested, in any order. Nothing is bound yet.
2. finalize(): every requested aggregate is bound against the complete unit
   set, output paths are relocated, and a frozen TaskGraph is returned.

After finalize() the project is sealed; the graph handed to the executor is
never mutated.

Requestable task names:
    assemble                    build the natives for the host platform
    buildNatives_<platform>     build every unit targeting <platform>
    prebuildNatives_<platform>  build, then stage the outputs into the bin repo
    <unit name>                 build a single unit
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Union

from platbuild.platforms.host import current_platform_name
from platbuild.platforms.registry import PlatformDescriptor, PlatformNotFoundError, PlatformRegistry
from platbuild.toolchain.guard import ToolchainGuard

from .aggregates import BUILD_NATIVES_PREFIX, AggregateTaskFactory, parse_platform
from .binder import PlatformTaskBinder
from .models import AggregateTask, BuildUnit, NodeKind, TaskGraph, TaskGraphError, TaskNode, UnitKind
from .relocator import OutputRelocator
from .staging import PREBUILD_NATIVES_PREFIX, StagingAggregateFactory

if TYPE_CHECKING:
    from platbuild.backend import NativeBuildBackend

logger = logging.getLogger(__name__)

ASSEMBLE_TASK_NAME = "assemble"


class GraphSealedError(RuntimeError):
    """Raised when the project is modified after finalize()."""

    pass


class NativeProject:
    """Collects native build units and requested tasks, then freezes them into a TaskGraph.

    Args:
        project_dir: Project root directory; outputs land in <project_dir>/build/os/<platform>/.
        registry: Platform registry (defaults to the four standard platforms).
        guard: Toolchain check shared by every unit (defaults to a guard for the running host).
        repo_project_dir: Location of this project inside the bin repo, if any.
        strict_platforms: Reject aggregate requests for unregistered platforms
                          instead of creating an empty aggregate.
        host_platform: Override for the host platform name used by "assemble".
    """

    def __init__(
        self,
        project_dir: Path,
        registry: Optional[PlatformRegistry] = None,
        guard: Optional[ToolchainGuard] = None,
        repo_project_dir: Optional[Path] = None,
        strict_platforms: bool = False,
        host_platform: Optional[str] = None,
    ) -> None:
        self.project_dir = project_dir
        self.registry = registry if registry is not None else PlatformRegistry.with_defaults()
        self.guard = guard if guard is not None else ToolchainGuard()
        self._strict_platforms = strict_platforms
        self._host_platform = host_platform
        self._binder = PlatformTaskBinder(self.guard.name)
        self._build_factory = AggregateTaskFactory(self.registry, self._binder)
        self._staging_factory = StagingAggregateFactory(self._build_factory, project_dir, repo_project_dir)
        self._relocator = OutputRelocator(project_dir)
        self._units: dict[str, BuildUnit] = {}
        self._assemble: Optional[AggregateTask] = None
        self._requested: list[str] = []
        self._sealed = False

    def _check_open(self) -> None:
        if self._sealed:
            raise GraphSealedError("The task graph has been finalized; no further changes are allowed")

    def _platform_source(self, platform: Union[str, Callable[[], str]]) -> Callable[[], PlatformDescriptor]:
        registry = self.registry

        def resolve() -> PlatformDescriptor:
            name = platform() if callable(platform) else platform
            return registry.lookup(name)

        return resolve

    def add_unit(self, unit: BuildUnit) -> BuildUnit:
        """Declare a unit.

        Raises:
            GraphSealedError: If the project has been finalized.
            TaskGraphError: If the name is already taken.
        """
        self._check_open()
        if unit.name in self._units or self._is_reserved_name(unit.name):
            raise TaskGraphError(f"Duplicate task name: {unit.name}")
        self._units[unit.name] = unit
        logger.debug("Declared %s", unit)
        return unit

    def add_executable(
        self,
        name: str,
        platform: Union[str, Callable[[], str]],
        output: Union[str, Path],
        command: Optional[list[str]] = None,
    ) -> BuildUnit:
        """Declare an executable link unit.

        Args:
            name: Unique task name.
            platform: Target platform name, or a callable returning it (resolved lazily).
            output: Artifact file name (any directory part is discarded on relocation).
            command: Command line for the build backend.
        """
        return self.add_unit(
            BuildUnit(name, UnitKind.EXECUTABLE, self._platform_source(platform), Path(output), command)
        )

    def add_shared_library(
        self,
        name: str,
        platform: Union[str, Callable[[], str]],
        output: Union[str, Path],
        command: Optional[list[str]] = None,
    ) -> BuildUnit:
        """Declare a shared library link unit. Arguments as for add_executable()."""
        return self.add_unit(
            BuildUnit(name, UnitKind.SHARED_LIBRARY, self._platform_source(platform), Path(output), command)
        )

    def add_make_task(self, name: str, command: Optional[list[str]] = None) -> BuildUnit:
        """Declare a custom Make step.

        The step joins buildNatives_<platform> when its name starts with the
        platform name and ends with "Make" (e.g. "win64DemanglerMake").
        """
        return self.add_unit(BuildUnit(name, UnitKind.MAKE, command=command))

    def units(self) -> list[BuildUnit]:
        return list(self._units.values())

    def get_unit(self, name: str) -> BuildUnit:
        try:
            return self._units[name]
        except KeyError:
            raise KeyError(f"Unknown task: {name}") from None

    def _is_reserved_name(self, name: str) -> bool:
        return (
            name in (ASSEMBLE_TASK_NAME, self.guard.name)
            or parse_platform(name, BUILD_NATIVES_PREFIX) is not None
            or parse_platform(name, PREBUILD_NATIVES_PREFIX) is not None
        )

    def get_or_create_aggregate(self, platform_name: str) -> AggregateTask:
        """Return buildNatives_<platform_name>, creating it on first request.

        Raises:
            PlatformNotFoundError: In strict mode, if the platform is not registered.
        """
        self._check_open()
        if self._strict_platforms and platform_name not in self.registry:
            raise PlatformNotFoundError(platform_name, self.registry.names())
        return self._build_factory.get_or_create(platform_name)

    def get_or_create_staging(self, platform_name: str) -> AggregateTask:
        """Return prebuildNatives_<platform_name>, creating it (and its build aggregate) on first request."""
        self._check_open()
        if self._strict_platforms and platform_name not in self.registry:
            raise PlatformNotFoundError(platform_name, self.registry.names())
        return self._staging_factory.get_or_create(platform_name)

    def configure_assemble(self) -> AggregateTask:
        """Make "assemble" depend on buildNatives_<host platform>.

        Raises:
            PlatformNotFoundError: If the host matches no registered platform.
        """
        self._check_open()
        if self._assemble is not None:
            return self._assemble
        host = self._host_platform or current_platform_name(self.registry)
        build_aggregate = self.get_or_create_aggregate(host)
        assemble = AggregateTask(
            name=ASSEMBLE_TASK_NAME,
            platform_name=host,
            description=f"Assemble the project (builds natives for {host})",
        )
        assemble.depends_on(build_aggregate.name)
        self._assemble = assemble
        return assemble

    def request(self, task_name: str) -> str:
        """Request a task by name so it is part of the finalized graph's roots.

        Returns:
            The requested task name.

        Raises:
            TaskGraphError: If the name matches no rule and no declared unit.
        """
        self._check_open()
        if task_name == ASSEMBLE_TASK_NAME:
            self.configure_assemble()
        elif parse_platform(task_name, PREBUILD_NATIVES_PREFIX) is not None:
            self.get_or_create_staging(task_name[len(PREBUILD_NATIVES_PREFIX):])
        elif parse_platform(task_name, BUILD_NATIVES_PREFIX) is not None:
            self.get_or_create_aggregate(task_name[len(BUILD_NATIVES_PREFIX):])
        elif task_name not in self._units:
            raise TaskGraphError(
                f"Task '{task_name}' not found. Expected '{ASSEMBLE_TASK_NAME}', "
                f"'{BUILD_NATIVES_PREFIX}<platform>', '{PREBUILD_NATIVES_PREFIX}<platform>' or a unit name"
            )
        if task_name not in self._requested:
            self._requested.append(task_name)
        return task_name

    @property
    def requested(self) -> list[str]:
        return list(self._requested)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def finalize(self, backend: "NativeBuildBackend") -> TaskGraph:
        """Bind, relocate and freeze the graph. Can only be called once.

        Args:
            backend: Build backend the unit nodes invoke.

        Returns:
            Frozen TaskGraph whose roots are the requested tasks.

        Raises:
            GraphSealedError: If called twice.
            PlatformNotFoundError: If a link unit targets an unregistered platform.
        """
        self._check_open()
        self._sealed = True
        self.registry.freeze()

        units = self.units()
        bound = self._build_factory.bind_all(units)
        logger.debug("Bound %d unit(s) to %d aggregate(s)", bound, len(self._build_factory.aggregates()))
        # Units requested directly by name are gated by the toolchain check too.
        for unit in units:
            unit.depends_on(self.guard.name)
        self._relocator.relocate(units)

        nodes: list[TaskNode] = [TaskNode(name=self.guard.name, kind=NodeKind.GUARD, action=self.guard.verify)]
        for unit in units:
            platform = unit.target_platform if unit.kind.is_link else None
            nodes.append(
                TaskNode(
                    name=unit.name,
                    kind=NodeKind.UNIT,
                    dependencies=frozenset(unit.dependencies),
                    action=_unit_action(backend, unit, platform),
                    platform_name=platform.name if platform is not None else None,
                    output_path=unit.output_path,
                )
            )

        aggregates = self._build_factory.aggregates() + self._staging_factory.aggregates()
        if self._assemble is not None:
            aggregates.append(self._assemble)
        for aggregate in aggregates:
            nodes.append(
                TaskNode(
                    name=aggregate.name,
                    kind=NodeKind.AGGREGATE,
                    dependencies=frozenset(aggregate.dependencies),
                    action=aggregate.action,
                    platform_name=aggregate.platform_name,
                )
            )
        return TaskGraph(nodes, self._requested)


def _unit_action(
    backend: "NativeBuildBackend",
    unit: BuildUnit,
    platform: Optional[PlatformDescriptor],
) -> Callable[[], Optional[Path]]:
    def action() -> Optional[Path]:
        return backend.build(unit, platform)

    return action
