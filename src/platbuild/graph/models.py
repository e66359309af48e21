"""Data models for the native build task graph.

Defines the core types used while constructing and executing the graph:
- UnitKind: What a build unit produces (executable, shared library, custom Make step)
- BuildUnit: One native build target, mutable during the configuration phase
- AggregateTask: Barrier task for "build/stage everything for platform P"
- TaskNode / TaskGraph: Frozen graph handed to the executor
- TaskPhase / TaskRun / GraphResult: Execution-time state and results
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Union

from platbuild.platforms.registry import PlatformDescriptor


class TaskGraphError(Exception):
    """Raised when the task graph cannot be constructed."""

    pass


class CyclicDependencyError(TaskGraphError, ValueError):
    """Raised when task dependencies form a cycle."""

    pass


class UnitKind(Enum):
    """What a build unit produces."""

    EXECUTABLE = "executable"
    SHARED_LIBRARY = "shared-library"
    MAKE = "make"

    @property
    def is_link(self) -> bool:
        """True for the link-producing kinds (executable and shared library)."""
        return self in (UnitKind.EXECUTABLE, UnitKind.SHARED_LIBRARY)


class NodeKind(Enum):
    """Role of a node in the frozen task graph."""

    GUARD = "guard"
    UNIT = "unit"
    AGGREGATE = "aggregate"


# A unit's target platform: a descriptor, or something that yields one on demand.
PlatformSource = Union[PlatformDescriptor, Callable[[], PlatformDescriptor]]


class BuildUnit:
    """One native build target.

    Link units (executables and shared libraries) target a platform that is
    resolved lazily: the platform source is only called the first time
    ``target_platform`` is read, so a unit may be declared before its platform
    is registered. Custom Make steps carry their platform in their name and
    have no platform source.

    Attributes:
        name: Unique task name (e.g. "linkDecompilerLinux64Executable", "linux64DemanglerMake")
        kind: What the unit produces
        output_path: Artifact path; rewritten once by the OutputRelocator
        command: Command line handed to the build backend
        dependencies: Names of tasks this unit waits for (only ever grows)
    """

    def __init__(
        self,
        name: str,
        kind: UnitKind,
        platform: Optional[PlatformSource] = None,
        output_path: Optional[Path] = None,
        command: Optional[list[str]] = None,
    ) -> None:
        if kind.is_link and platform is None:
            raise TaskGraphError(f"{kind.value} unit '{name}' must declare a target platform")
        if kind.is_link and output_path is None:
            raise TaskGraphError(f"{kind.value} unit '{name}' must declare an output file")
        self.name = name
        self.kind = kind
        self.output_path = output_path
        self.command = list(command) if command else []
        self.dependencies: set[str] = set()
        self._platform_source = platform
        self._platform: Optional[PlatformDescriptor] = None

    @property
    def target_platform(self) -> PlatformDescriptor:
        """The platform this unit is built for, resolved on first access.

        Raises:
            TaskGraphError: If the unit is a Make step (no declared platform).
            PlatformNotFoundError: If the platform source cannot resolve.
        """
        if self._platform is None:
            source = self._platform_source
            if source is None:
                raise TaskGraphError(f"Unit '{self.name}' has no declared target platform")
            self._platform = source if isinstance(source, PlatformDescriptor) else source()
        return self._platform

    @property
    def platform_resolved(self) -> bool:
        return self._platform is not None

    def depends_on(self, task_name: str) -> bool:
        """Add a dependency edge. Returns True if the edge is new."""
        if task_name in self.dependencies:
            return False
        self.dependencies.add(task_name)
        return True

    def __repr__(self) -> str:
        return f"BuildUnit(name={self.name!r}, kind={self.kind.value!r}, output_path={self.output_path!r})"


@dataclass(eq=False)
class AggregateTask:
    """Barrier task that completes once every task it depends on completes.

    Attributes:
        name: Task name (e.g. "buildNatives_win64")
        platform_name: Platform the aggregate collects units for
        dependencies: Names of tasks the aggregate waits for (only ever grows)
        action: Work to run after the dependencies complete (staging copy), or None
        description: Human-readable summary for listings
    """

    name: str
    platform_name: str
    dependencies: set[str] = field(default_factory=set)
    action: Optional[Callable[[], Any]] = None
    description: str = ""

    def depends_on(self, task_name: str) -> bool:
        """Add a dependency edge. Returns True if the edge is new."""
        if task_name in self.dependencies:
            return False
        self.dependencies.add(task_name)
        return True


@dataclass(frozen=True)
class TaskNode:
    """Immutable node of a finalized task graph.

    Attributes:
        name: Unique task name
        kind: Guard, unit or aggregate
        dependencies: Names of tasks that must complete first
        action: Callable run by the executor, None for pure barriers
        platform_name: Target platform, when known
        output_path: Relocated artifact path for link units
    """

    name: str
    kind: NodeKind
    dependencies: frozenset[str] = frozenset()
    action: Optional[Callable[[], Any]] = None
    platform_name: Optional[str] = None
    output_path: Optional[Path] = None


class TaskGraph:
    """Frozen dependency graph produced by NativeProject.finalize().

    Nodes cannot be added or changed after construction. ``roots`` are the
    tasks that were requested; executing the graph runs their transitive
    dependency closure.
    """

    def __init__(self, nodes: Iterable[TaskNode], roots: Iterable[str]) -> None:
        node_map: dict[str, TaskNode] = {}
        for node in nodes:
            if node.name in node_map:
                raise TaskGraphError(f"Duplicate task name: {node.name}")
            node_map[node.name] = node
        for node in node_map.values():
            for dep_name in node.dependencies:
                if dep_name not in node_map:
                    raise TaskGraphError(f"Task '{node.name}' depends on unknown task '{dep_name}'")
        _check_acyclic(node_map)
        root_list = list(dict.fromkeys(roots))
        for root in root_list:
            if root not in node_map:
                raise TaskGraphError(f"Requested task '{root}' is not in the graph")
        self._nodes: Mapping[str, TaskNode] = MappingProxyType(node_map)
        self._roots = tuple(root_list)

    @property
    def nodes(self) -> Mapping[str, TaskNode]:
        return self._nodes

    @property
    def roots(self) -> tuple[str, ...]:
        return self._roots

    def __getitem__(self, name: str) -> TaskNode:
        return self._nodes[name]

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __iter__(self) -> Iterator[TaskNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def closure(self, targets: Optional[Iterable[str]] = None) -> list[str]:
        """Return the targets plus everything they transitively depend on.

        Args:
            targets: Task names to start from. Defaults to the graph roots.

        Returns:
            Task names in dependency order (dependencies before dependents).

        Raises:
            KeyError: If a target is not in the graph.
        """
        start = list(targets) if targets is not None else list(self._roots)
        order: list[str] = []
        visited: set[str] = set()

        def visit(name: str) -> None:
            if name in visited:
                return
            visited.add(name)
            for dep_name in sorted(self._nodes[name].dependencies):
                visit(dep_name)
            order.append(name)

        for name in start:
            if name not in self._nodes:
                raise KeyError(f"Unknown task: {name}")
            visit(name)
        return order

    def dependents_of(self, name: str) -> list[str]:
        """Names of tasks that directly depend on the given task."""
        return sorted(n.name for n in self._nodes.values() if name in n.dependencies)


def _check_acyclic(nodes: Mapping[str, TaskNode]) -> None:
    """Raise CyclicDependencyError naming the first cycle found, if any."""
    finished: set[str] = set()
    stack: list[str] = []
    on_stack: set[str] = set()

    def visit(name: str) -> None:
        stack.append(name)
        on_stack.add(name)
        for dep_name in sorted(nodes[name].dependencies):
            if dep_name in on_stack:
                cycle = stack[stack.index(dep_name):] + [dep_name]
                raise CyclicDependencyError(f"Cyclic dependency detected: {' -> '.join(cycle)}")
            if dep_name not in finished:
                visit(dep_name)
        on_stack.discard(stack.pop())
        finished.add(name)

    for name in sorted(nodes):
        if name not in finished:
            visit(name)


class TaskPhase(Enum):
    """Execution phase of a task."""

    WAITING = "waiting"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskPhase.DONE, TaskPhase.FAILED, TaskPhase.CANCELLED)


@dataclass
class TaskRun:
    """Execution state of one graph node.

    Attributes:
        name: Task name
        dependencies: Names of tasks that must be DONE before this one starts
        phase: Current execution phase
        error_message: Error detail if phase is FAILED or CANCELLED
        elapsed: Seconds spent running
        start_time: Monotonic timestamp when the task started (None if not started)
        exception: Exception raised by the task's action, if any
    """

    name: str
    dependencies: list[str] = field(default_factory=list)
    phase: TaskPhase = TaskPhase.WAITING
    error_message: str = ""
    elapsed: float = 0.0
    start_time: Optional[float] = None
    exception: Optional[BaseException] = field(default=None, repr=False)

    def mark_started(self) -> None:
        self.start_time = time.monotonic()

    def update_elapsed(self) -> None:
        if self.start_time is not None:
            self.elapsed = time.monotonic() - self.start_time

    def fail(self, error: str, exception: Optional[BaseException] = None) -> None:
        """Mark this task as failed with an error message."""
        self.phase = TaskPhase.FAILED
        self.error_message = error
        self.exception = exception
        self.update_elapsed()

    def cancel(self, reason: str) -> None:
        """Mark this task as cancelled (never started because the build stopped)."""
        self.phase = TaskPhase.CANCELLED
        self.error_message = reason


@dataclass
class GraphResult:
    """Aggregated result of executing a task graph.

    Attributes:
        tasks: Final state of every executed task, in dependency order
        total_elapsed: Total wall-clock time in seconds
        success: True if every task completed successfully
        first_error: Message of the first task failure, if any
    """

    tasks: list[TaskRun]
    total_elapsed: float
    success: bool
    first_error: str = ""

    @property
    def completed_count(self) -> int:
        return sum(1 for t in self.tasks if t.phase == TaskPhase.DONE)

    @property
    def failed_tasks(self) -> list[TaskRun]:
        return [t for t in self.tasks if t.phase == TaskPhase.FAILED]

    def get(self, name: str) -> TaskRun:
        for task in self.tasks:
            if task.name == name:
                return task
        raise KeyError(f"Unknown task: {name}")
