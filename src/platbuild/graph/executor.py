"""Executor for finalized native build task graphs.

Runs the dependency closure of the requested tasks on a thread pool:
1. DependencyScheduler decides which tasks are ready
2. Ready tasks are submitted to the pool; independent tasks run in parallel
3. A failed task fails every task that (transitively) depends on it
4. After the first failure no new work is started; tasks already running are
   allowed to finish and the remaining independent tasks are cancelled
5. Ctrl-C and cancel() stop the build and fail whatever has not finished
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Iterable, Optional

from .callbacks import ProgressCallback
from .models import GraphResult, TaskGraph, TaskNode, TaskPhase, TaskRun
from .scheduler import DependencyScheduler

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05  # seconds


class BuildCancelledError(Exception):
    """Raised when the build is cancelled via Ctrl-C or explicit cancellation."""

    pass


class GraphExecutor:
    """Executes a frozen TaskGraph with a bounded worker pool.

    Args:
        max_workers: Number of tasks that may run concurrently.
        stop_on_first_failure: Stop submitting new tasks once any task fails.
    """

    def __init__(self, max_workers: int, stop_on_first_failure: bool = True) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self._max_workers = max_workers
        self._stop_on_first_failure = stop_on_first_failure
        self._cancelled = False
        self._lock = threading.Lock()

    def run(
        self,
        graph: TaskGraph,
        callback: ProgressCallback,
        targets: Optional[Iterable[str]] = None,
    ) -> GraphResult:
        """Execute the requested tasks and everything they depend on.

        Args:
            graph: Finalized task graph.
            callback: Progress callback for reporting phase changes.
            targets: Task names to run. Defaults to the graph's roots.

        Returns:
            GraphResult with final task states (in dependency order) and timing.

        Raises:
            BuildCancelledError: If the build is cancelled via cancel().
        """
        start_time = time.monotonic()
        with self._lock:
            self._cancelled = False

        order = graph.closure(targets)
        if not order:
            return GraphResult(tasks=[], total_elapsed=0.0, success=True)

        scheduler = DependencyScheduler(
            TaskRun(name=name, dependencies=sorted(graph[name].dependencies)) for name in order
        )

        active_futures: dict[Future[Any], str] = {}
        first_error = ""

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="native") as pool:
            try:
                while not scheduler.all_done():
                    if self._is_cancelled():
                        self._cancel_active_futures(active_futures)
                        self._fail_remaining_tasks(scheduler, "Build cancelled")
                        raise BuildCancelledError("Build was cancelled")

                    self._fail_blocked_tasks(scheduler, callback)

                    stopping = self._stop_on_first_failure and bool(first_error)
                    if not stopping:
                        for task in scheduler.get_ready_tasks():
                            self._submit_task(graph[task.name], task, scheduler, pool, callback, active_futures)
                    elif not active_futures:
                        self._cancel_waiting_tasks(scheduler, callback)
                        continue

                    if not active_futures:
                        if not scheduler.get_ready_tasks() and not scheduler.all_done():
                            self._fail_remaining_tasks(scheduler, "Task could not be scheduled")
                        continue

                    wait(list(active_futures), timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                    error = self._process_completed_futures(active_futures, scheduler, callback)
                    if error and not first_error:
                        first_error = error

            except KeyboardInterrupt:
                self._cancel_active_futures(active_futures)
                self._fail_remaining_tasks(scheduler, "Interrupted by user")
                raise

        total_elapsed = time.monotonic() - start_time
        runs = [scheduler.get_task(name) for name in order]
        success = all(t.phase == TaskPhase.DONE for t in runs)
        return GraphResult(tasks=runs, total_elapsed=total_elapsed, success=success, first_error=first_error)

    def cancel(self) -> None:
        """Request build cancellation. Thread-safe."""
        with self._lock:
            self._cancelled = True

    def _is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def _submit_task(
        self,
        node: TaskNode,
        task: TaskRun,
        scheduler: DependencyScheduler,
        pool: ThreadPoolExecutor,
        callback: ProgressCallback,
        active_futures: dict[Future[Any], str],
    ) -> None:
        task.mark_started()
        scheduler.mark_phase(task.name, TaskPhase.RUNNING)
        callback.on_progress(task.name, TaskPhase.RUNNING, "")
        future = pool.submit(self._run_node, node)
        active_futures[future] = task.name

    @staticmethod
    def _run_node(node: TaskNode) -> Any:
        if node.action is None:
            return None
        logger.debug("Running %s", node.name)
        return node.action()

    def _process_completed_futures(
        self,
        active_futures: dict[Future[Any], str],
        scheduler: DependencyScheduler,
        callback: ProgressCallback,
    ) -> str:
        """Move finished tasks to DONE or FAILED.

        Returns:
            The first error message seen in this batch, or "".
        """
        first_error = ""
        completed = [f for f in active_futures if f.done()]
        for future in completed:
            task_name = active_futures.pop(future)
            task = scheduler.get_task(task_name)
            try:
                future.result()
            except KeyboardInterrupt:
                raise
            except Exception as e:
                message = str(e) or type(e).__name__
                task.fail(message, e)
                scheduler.mark_phase(task_name, TaskPhase.FAILED)
                callback.on_progress(task_name, TaskPhase.FAILED, message)
                logger.error("Task %s failed: %s", task_name, message)
                if not first_error:
                    first_error = message
                continue
            task.update_elapsed()
            scheduler.mark_phase(task_name, TaskPhase.DONE)
            callback.on_progress(task_name, TaskPhase.DONE, f"Done in {task.elapsed:.1f}s")
        return first_error

    def _fail_blocked_tasks(self, scheduler: DependencyScheduler, callback: ProgressCallback) -> None:
        """Mark tasks as FAILED when a dependency failed or was cancelled.

        Runs until no more tasks are blocked so failures propagate through the
        whole chain of dependents in one pass.
        """
        while True:
            blocked = scheduler.get_blocked_tasks()
            if not blocked:
                return
            for task, failed_dep in blocked:
                error_msg = f"Dependency '{failed_dep}' failed"
                task.fail(error_msg)
                scheduler.mark_phase(task.name, TaskPhase.FAILED)
                callback.on_progress(task.name, TaskPhase.FAILED, error_msg)

    def _cancel_waiting_tasks(self, scheduler: DependencyScheduler, callback: ProgressCallback) -> None:
        for task in scheduler.get_all_tasks():
            if task.phase == TaskPhase.WAITING:
                task.cancel("Build stopped after an earlier failure")
                scheduler.mark_phase(task.name, TaskPhase.CANCELLED)
                callback.on_progress(task.name, TaskPhase.CANCELLED, task.error_message)

    def _cancel_active_futures(self, active_futures: dict[Future[Any], str]) -> None:
        for future in active_futures:
            future.cancel()

    def _fail_remaining_tasks(self, scheduler: DependencyScheduler, reason: str) -> None:
        for task in scheduler.get_all_tasks():
            if not task.phase.is_terminal:
                task.fail(reason)
                scheduler.mark_phase(task.name, TaskPhase.FAILED)
