"""Phase tracking for a task graph run.

The executor owns one DependencyScheduler per run. Worker threads report
phase changes through mark_phase() while the executor loop asks which tasks
can start and which can never start.

The graph is validated when it is frozen (see TaskGraph), so the scheduler
assumes every dependency name is present and the dependencies are acyclic.
"""

import threading
from typing import Iterable

from .models import TaskPhase, TaskRun

_BLOCKING_PHASES = (TaskPhase.FAILED, TaskPhase.CANCELLED)


class DependencyScheduler:
    """Thread-safe view of the runs of one graph execution.

    Args:
        runs: One TaskRun per task in the closure being executed.

    Raises:
        ValueError: If two runs share a name.
    """

    def __init__(self, runs: Iterable[TaskRun]) -> None:
        self._runs: dict[str, TaskRun] = {}
        for run in runs:
            if run.name in self._runs:
                raise ValueError(f"Duplicate task name: {run.name}")
            self._runs[run.name] = run
        self._lock = threading.Lock()

    def get_task(self, task_name: str) -> TaskRun:
        with self._lock:
            try:
                return self._runs[task_name]
            except KeyError:
                raise KeyError(f"Unknown task: {task_name}") from None

    def get_all_tasks(self) -> list[TaskRun]:
        with self._lock:
            return list(self._runs.values())

    def mark_phase(self, task_name: str, phase: TaskPhase) -> None:
        with self._lock:
            if task_name not in self._runs:
                raise KeyError(f"Unknown task: {task_name}")
            self._runs[task_name].phase = phase

    def get_ready_tasks(self) -> list[TaskRun]:
        """WAITING tasks whose dependencies are all DONE."""
        with self._lock:
            return [
                run
                for run in self._runs.values()
                if run.phase == TaskPhase.WAITING
                and all(self._runs[dep].phase == TaskPhase.DONE for dep in run.dependencies)
            ]

    def get_blocked_tasks(self) -> list[tuple[TaskRun, str]]:
        """WAITING tasks that can never start, each with the dependency that blocks it."""
        with self._lock:
            blocked = []
            for run in self._runs.values():
                if run.phase != TaskPhase.WAITING:
                    continue
                failed = next((dep for dep in run.dependencies if self._runs[dep].phase in _BLOCKING_PHASES), None)
                if failed is not None:
                    blocked.append((run, failed))
            return blocked

    def all_done(self) -> bool:
        with self._lock:
            return all(run.phase.is_terminal for run in self._runs.values())
