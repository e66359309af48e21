"""Progress callback protocol for task graph execution.

Defines the callback interface the executor uses to report task phase
changes to the display layer.
"""

import sys
from typing import Protocol, runtime_checkable

from .models import TaskPhase


@runtime_checkable
class ProgressCallback(Protocol):
    """Protocol for receiving progress updates from the executor."""

    def on_progress(self, task_name: str, phase: TaskPhase, detail: str) -> None:
        """Called when a task changes phase.

        Args:
            task_name: Name of the task (e.g. "buildNatives_linux64").
            phase: New execution phase.
            detail: Human-readable status detail (e.g. "Done in 1.2s", an error message).
        """
        ...


class NullCallback:
    """No-op callback for tests and non-interactive use."""

    def on_progress(self, task_name: str, phase: TaskPhase, detail: str) -> None:
        pass


class VerboseCallback:
    """Plain-text callback for non-TTY verbose mode."""

    def on_progress(self, task_name: str, phase: TaskPhase, detail: str) -> None:
        if phase == TaskPhase.FAILED:
            print(f"  {task_name}: Failed - {detail}", file=sys.stderr)
        elif phase in (TaskPhase.RUNNING, TaskPhase.DONE):
            suffix = f" - {detail}" if detail else ""
            print(f"  {task_name}: {phase.value.capitalize()}{suffix}")
