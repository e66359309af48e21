"""Rich-based live progress display for native build execution.

Renders one line per task with its current phase and status:

    CheckToolChain          Done     ✓ 0.0s
    linkDecompilerLinux64   Running  ⠹ building...
    buildNatives_linux64    Waiting

Thread-safe: executor worker threads report through on_progress() while the
display renders in the main thread.
"""

import threading
import time
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.table import Table
from rich.text import Text

from .models import TaskPhase

# Braille spinner frames for the RUNNING phase animation
_SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")

_PHASE_LABELS = {
    TaskPhase.WAITING: ("Waiting", "dim"),
    TaskPhase.RUNNING: ("Running", "cyan"),
    TaskPhase.DONE: ("Done", "green"),
    TaskPhase.FAILED: ("Failed", "red bold"),
    TaskPhase.CANCELLED: ("Cancelled", "yellow"),
}


class _TaskDisplayState:
    """Display state for a single task line."""

    __slots__ = ("name", "phase", "detail", "elapsed", "start_time")

    def __init__(self, name: str) -> None:
        self.name = name
        self.phase = TaskPhase.WAITING
        self.detail: str = ""
        self.elapsed: float = 0.0
        self.start_time: float | None = None


class BuildProgressDisplay:
    """Live task table using Rich; implements ProgressCallback.

    Args:
        console: Rich Console instance for rendering. If None, creates a new one.
        title: Header line (e.g. "Building natives for linux64").
        refresh_per_second: Display refresh rate.
    """

    def __init__(self, console: Console | None, title: str, refresh_per_second: int = 10) -> None:
        self._console = console if console is not None else Console()
        self._title = title
        self._refresh_per_second = refresh_per_second
        self._states: dict[str, _TaskDisplayState] = {}
        self._task_order: list[str] = []
        self._lock = threading.Lock()
        self._live: Live | None = None

    def register_task(self, name: str) -> None:
        """Register a task for display before execution starts."""
        with self._lock:
            if name not in self._states:
                self._states[name] = _TaskDisplayState(name)
                self._task_order.append(name)

    def on_progress(self, task_name: str, phase: TaskPhase, detail: str) -> None:
        """Update the display state for a task. Thread-safe."""
        with self._lock:
            state = self._states.get(task_name)
            if state is None:
                state = _TaskDisplayState(task_name)
                self._states[task_name] = state
                self._task_order.append(task_name)

            if state.phase == TaskPhase.WAITING and phase != TaskPhase.WAITING:
                state.start_time = time.monotonic()

            state.phase = phase
            state.detail = detail
            if state.start_time is not None:
                state.elapsed = time.monotonic() - state.start_time

        if self._live is not None:
            self._live.update(self._render_display())

    def start(self) -> None:
        self._live = Live(
            self._render_display(),
            console=self._console,
            refresh_per_second=self._refresh_per_second,
            transient=False,
        )
        self._live.start()

    def stop(self) -> None:
        if self._live is not None:
            self._live.update(self._render_display())
            self._live.stop()
            self._live = None

    def _render_display(self) -> Group:
        header = Text(f"\n{self._title}...\n", style="bold")
        return Group(header, self._render_table(), self._render_footer())

    def _render_table(self) -> Table:
        table = Table(show_header=False, show_edge=False, show_lines=False, box=None, padding=(0, 1), expand=False)
        table.add_column("Task", style="bold", no_wrap=True, min_width=28)
        table.add_column("Phase", no_wrap=True, min_width=10)
        table.add_column("Status", no_wrap=True, min_width=30)

        with self._lock:
            for name in self._task_order:
                state = self._states[name]
                label, style = _PHASE_LABELS[state.phase]
                table.add_row(self._format_name(state), Text(label, style=style), self._format_status(state))
        return table

    def _render_footer(self) -> Text:
        with self._lock:
            total = len(self._states)
            counts = {phase: 0 for phase in TaskPhase}
            for state in self._states.values():
                counts[state.phase] += 1

        parts = [f"{total} tasks"]
        if counts[TaskPhase.RUNNING]:
            parts.append(f"{counts[TaskPhase.RUNNING]} running")
        if counts[TaskPhase.DONE]:
            parts.append(f"{counts[TaskPhase.DONE]} done")
        if counts[TaskPhase.FAILED]:
            parts.append(f"{counts[TaskPhase.FAILED]} failed")
        if counts[TaskPhase.CANCELLED]:
            parts.append(f"{counts[TaskPhase.CANCELLED]} cancelled")
        return Text(f"\n  {', '.join(parts)}", style="dim")

    @staticmethod
    def _format_name(state: _TaskDisplayState) -> Text:
        styles = {
            TaskPhase.DONE: "green",
            TaskPhase.FAILED: "red",
            TaskPhase.WAITING: "dim",
            TaskPhase.CANCELLED: "yellow",
        }
        return Text(state.name, style=styles.get(state.phase, "bold cyan"))

    @staticmethod
    def _format_status(state: _TaskDisplayState) -> Text:
        if state.phase == TaskPhase.RUNNING:
            spinner = _SPINNER_FRAMES[int(time.monotonic() * 8) % len(_SPINNER_FRAMES)]
            return Text(f"{spinner} {state.detail or 'building...'}", style="cyan")
        if state.phase == TaskPhase.DONE:
            elapsed_str = f"{state.elapsed:.1f}s" if state.elapsed > 0 else ""
            return Text(f"✓ {elapsed_str}", style="green")
        if state.phase == TaskPhase.FAILED:
            # Only the first line; the full message is printed after the run.
            first_line = (state.detail or "Error").splitlines()[0]
            return Text(f"✗ {first_line}", style="red")
        if state.phase == TaskPhase.CANCELLED:
            return Text("- skipped", style="yellow")
        return Text("")

    def get_snapshot(self) -> list[dict[str, Any]]:
        """Current display states, in registration order."""
        with self._lock:
            return [
                {
                    "name": state.name,
                    "phase": state.phase,
                    "detail": state.detail,
                    "elapsed": state.elapsed,
                }
                for state in (self._states[name] for name in self._task_order)
            ]

    def __enter__(self) -> "BuildProgressDisplay":
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()
