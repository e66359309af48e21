"""Native build task graph: construction, relocation, staging and execution.

Public API:
    NativeProject: Collects units and task requests, then finalizes a frozen TaskGraph.
    GraphExecutor: Runs a TaskGraph on a thread pool with first-failure-stops-all semantics.
"""

from .aggregates import BUILD_NATIVES_PREFIX, AggregateTaskFactory, GraphConstructionWarning
from .binder import PlatformTaskBinder, is_native_make_task
from .callbacks import NullCallback, ProgressCallback, VerboseCallback
from .executor import BuildCancelledError, GraphExecutor
from .models import (
    AggregateTask,
    BuildUnit,
    CyclicDependencyError,
    GraphResult,
    NodeKind,
    TaskGraph,
    TaskGraphError,
    TaskNode,
    TaskPhase,
    TaskRun,
    UnitKind,
)
from .project import ASSEMBLE_TASK_NAME, GraphSealedError, NativeProject
from .relocator import OutputRelocator, RelocationError, platform_output_dir
from .scheduler import DependencyScheduler
from .staging import PREBUILD_NATIVES_PREFIX, StagingAggregateFactory, StagingIOError, stage_platform_outputs

__all__ = [
    "ASSEMBLE_TASK_NAME",
    "AggregateTask",
    "AggregateTaskFactory",
    "BUILD_NATIVES_PREFIX",
    "BuildCancelledError",
    "BuildUnit",
    "CyclicDependencyError",
    "DependencyScheduler",
    "GraphConstructionWarning",
    "GraphExecutor",
    "GraphResult",
    "GraphSealedError",
    "NativeProject",
    "NodeKind",
    "NullCallback",
    "OutputRelocator",
    "PREBUILD_NATIVES_PREFIX",
    "PlatformTaskBinder",
    "ProgressCallback",
    "RelocationError",
    "StagingAggregateFactory",
    "StagingIOError",
    "TaskGraph",
    "TaskGraphError",
    "TaskNode",
    "TaskPhase",
    "TaskRun",
    "UnitKind",
    "VerboseCallback",
    "is_native_make_task",
    "platform_output_dir",
    "stage_platform_outputs",
]
