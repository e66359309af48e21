"""
Command-line interface for platbuild.

This module provides the `platbuild` CLI tool for building a project's
native executables and shared libraries for one or more platforms.

Examples:
    platbuild                            # Build natives for the host platform
    platbuild buildNatives_win64         # Build every win64 native
    platbuild prebuildNatives_linux64    # Build, then stage into the bin repo
    platbuild --dry-run buildNatives_osx64
    platbuild --list-platforms
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from platbuild import __version__, output
from platbuild.backend import CommandBackend
from platbuild.builder import NativeBuilder, create_project
from platbuild.config import ENV_BIN_REPO, ConfigError, load_config
from platbuild.graph.executor import BuildCancelledError
from platbuild.graph.models import GraphResult, NodeKind, TaskGraph, TaskGraphError, TaskPhase
from platbuild.graph.project import ASSEMBLE_TASK_NAME, GraphSealedError, NativeProject
from platbuild.platforms.registry import DuplicatePlatformError, PlatformNotFoundError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%H:%M:%S"

_log_handler: Optional[logging.Handler] = None


@dataclass
class BuildArgs:
    """Arguments for a build run."""

    project_dir: Path
    tasks: list[str] = field(default_factory=lambda: [ASSEMBLE_TASK_NAME])
    bin_repo: Optional[Path] = None
    jobs: Optional[int] = None
    dry_run: bool = False
    list_platforms: bool = False
    verbose: bool = False
    use_tui: Optional[bool] = None


def setup_logging(verbose: bool) -> None:
    """Send platbuild diagnostics to stderr (DEBUG when verbose, WARNING otherwise)."""
    global _log_handler
    logger = logging.getLogger("platbuild")
    if _log_handler is None:
        _log_handler = logging.StreamHandler(sys.stderr)
        _log_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
        logger.addHandler(_log_handler)
    level = logging.DEBUG if verbose else logging.WARNING
    logger.setLevel(level)
    _log_handler.setLevel(level)


def list_platforms(project: NativeProject) -> None:
    output.log("Platforms:")
    for descriptor in project.registry:
        output.log_detail(f"{descriptor.name:<12} {descriptor.architecture}/{descriptor.operating_system}")


def print_plan(graph: TaskGraph) -> None:
    """Print the tasks a build would run, in execution order."""
    order = graph.closure()
    output.log(f"Would run {len(order)} task(s):")
    for name in order:
        node = graph[name]
        line = f"{name} ({node.kind.value})"
        if node.output_path is not None:
            line += f" -> {node.output_path}"
        needed_by = [dependent for dependent in graph.dependents_of(name) if dependent in order]
        if needed_by:
            line += f" [needed by {', '.join(needed_by)}]"
        output.log_detail(line)


def report_result(graph: TaskGraph, result: GraphResult) -> None:
    for run in result.tasks:
        node = graph[run.name]
        if run.phase == TaskPhase.DONE and node.kind is NodeKind.UNIT and node.output_path is not None:
            output.log_artifact(node.platform_name or "", str(node.output_path))
    for run in result.failed_tasks:
        output.log_error(f"{run.name}: {run.error_message}")
    output.log_detail(f"{result.completed_count}/{len(result.tasks)} task(s) done")


def build_command(args: BuildArgs) -> int:
    """Configure, finalize and execute the requested tasks.

    Returns:
        Process exit code (0 success, 1 failure, 130 interrupted).
    """
    output.init_timer()
    output.set_verbose(args.verbose)
    setup_logging(args.verbose)
    output.log_header("platbuild", __version__)

    environ = dict(os.environ)
    if args.bin_repo is not None:
        environ[ENV_BIN_REPO] = str(args.bin_repo.resolve())

    builder = NativeBuilder(jobs=args.jobs)
    try:
        with output.TimedLogger("Configuring natives.json", phase=(1, 3)) as timed:
            config = load_config(args.project_dir, environ=environ)
            project = create_project(config)
            timed.detail(f"Platforms: {', '.join(project.registry.names())}")
            timed.detail(f"Units: {len(project.units())}", verbose_only=True)

        if args.list_platforms:
            list_platforms(project)
            return 0

        with output.TimedLogger("Finalizing task graph", phase=(2, 3)) as timed:
            for task_name in args.tasks:
                project.request(task_name)
            graph = builder.finalize(project, CommandBackend(args.project_dir))
            timed.detail(f"{len(graph.closure())} task(s) for: {', '.join(graph.roots)}")

        if args.dry_run:
            print_plan(graph)
            return 0

        output.log_phase(3, 3, "Executing tasks...")
        result = builder.run(graph, title=f"Building {', '.join(graph.roots)}", verbose=args.verbose, use_tui=args.use_tui)
        report_result(graph, result)
        output.log_build_complete(result.total_elapsed)
        if not result.success:
            output.log_error("Build failed")
            return 1
        output.log_success("Build successful")
        return 0

    except (
        ConfigError,
        TaskGraphError,
        GraphSealedError,
        DuplicatePlatformError,
        PlatformNotFoundError,
        BuildCancelledError,
    ) as e:
        output.log_error(str(e))
        return 1
    except KeyboardInterrupt:
        builder.cancel()
        output.log_warning("Build interrupted")
        return 130


def parse_args(argv: Optional[list[str]] = None) -> BuildArgs:
    parser = argparse.ArgumentParser(
        prog="platbuild",
        description="Build native executables and shared libraries for multiple platforms",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"platbuild {__version__}",
    )
    parser.add_argument(
        "tasks",
        nargs="*",
        default=[ASSEMBLE_TASK_NAME],
        help="Tasks to run: assemble, buildNatives_<platform>, prebuildNatives_<platform> or a unit name "
        "(default: assemble)",
    )
    parser.add_argument(
        "-C",
        "--project-dir",
        type=Path,
        default=Path.cwd(),
        help="Project directory containing natives.json (default: current directory)",
    )
    parser.add_argument(
        "--bin-repo",
        type=Path,
        default=None,
        help=f"Bin repo root for prebuildNatives_<platform> (overrides natives.json and {ENV_BIN_REPO})",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Number of tasks to run in parallel (default: CPU count)",
    )
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Print the tasks that would run, in order, without running them",
    )
    parser.add_argument(
        "--list-platforms",
        action="store_true",
        help="List registered platforms and exit",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )
    parser.add_argument(
        "--no-tui",
        action="store_true",
        help="Disable the live progress display",
    )

    parsed = parser.parse_args(argv)
    if parsed.jobs is not None and parsed.jobs < 1:
        parser.error(f"--jobs must be at least 1, got {parsed.jobs}")

    return BuildArgs(
        project_dir=parsed.project_dir.resolve(),
        tasks=list(parsed.tasks) or [ASSEMBLE_TASK_NAME],
        bin_repo=parsed.bin_repo,
        jobs=parsed.jobs,
        dry_run=parsed.dry_run,
        list_platforms=parsed.list_platforms,
        verbose=parsed.verbose,
        use_tui=False if parsed.no_tui else None,
    )


def main(argv: Optional[list[str]] = None) -> int:
    """platbuild - multi-platform native build orchestration."""
    args = parse_args(argv)

    if not args.project_dir.exists():
        print(f"Error: Path does not exist: {args.project_dir}", file=sys.stderr)
        return 2
    if not args.project_dir.is_dir():
        print(f"Error: Path is not a directory: {args.project_dir}", file=sys.stderr)
        return 2

    return build_command(args)


if __name__ == "__main__":
    sys.exit(main())
