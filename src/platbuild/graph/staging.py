"""Factory for ``prebuildNatives_<platform>`` staging aggregates.

Example: requesting "prebuildNatives_win64" builds every win64 native and
then copies build/os/win64/ into <bin repo>/<project path in repo>/os/win64/,
leaving out link-time-only files (import libraries and export definitions).
"""

import errno
import fnmatch
import logging
import shutil
from pathlib import Path
from typing import Optional

from .aggregates import AggregateTaskFactory
from .models import AggregateTask, TaskGraphError
from .relocator import platform_output_dir

logger = logging.getLogger(__name__)

PREBUILD_NATIVES_PREFIX = "prebuildNatives_"

# Link-time-only artifacts directly under build/os/<platform>; never staged
STAGING_EXCLUDES: tuple[str, ...] = ("*.exp", "*.lib")


class StagingIOError(OSError):
    """Raised when a platform's build output cannot be staged."""

    pass


def prebuild_task_name(platform_name: str) -> str:
    return f"{PREBUILD_NATIVES_PREFIX}{platform_name}"


def is_staging_excluded(relative_path: Path) -> bool:
    """Whether a file, given relative to build/os/<platform>, stays out of the bin repo.

    Only top-level files are matched; a nested plugins/x.lib is staged.
    """
    if len(relative_path.parts) != 1:
        return False
    return any(fnmatch.fnmatch(relative_path.name, pattern) for pattern in STAGING_EXCLUDES)


def staging_dir(repo_project_dir: Path, platform_name: str) -> Path:
    """<bin repo>/<project path in repo>/os/<platform>"""
    return repo_project_dir / "os" / platform_name


def stage_platform_outputs(project_dir: Path, repo_project_dir: Path, platform_name: str) -> list[Path]:
    """Copy a platform's build outputs into the bin repo.

    Args:
        project_dir: Project root directory.
        repo_project_dir: Location of the project inside the bin repo.
        platform_name: Platform whose outputs are staged.

    Returns:
        Paths of the files written into the bin repo.

    Raises:
        StagingIOError: If the platform's output directory is missing or a copy fails.
    """
    source = platform_output_dir(project_dir, platform_name)
    if not source.is_dir():
        raise StagingIOError(
            errno.ENOENT,
            f"No native build output to stage for {platform_name}",
            str(source),
        )

    destination = staging_dir(repo_project_dir, platform_name)
    copied: list[Path] = []
    try:
        for file_path in sorted(source.rglob("*")):
            relative_path = file_path.relative_to(source)
            if not file_path.is_file() or is_staging_excluded(relative_path):
                continue
            target = destination / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(file_path, target)
            copied.append(target)
    except OSError as e:
        raise StagingIOError(e.errno or errno.EIO, f"Failed to stage {platform_name} outputs: {e.strerror or e}", str(source)) from e

    logger.info("Staged %d file(s) from %s to %s", len(copied), source, destination)
    return copied


class StagingAggregateFactory:
    """Creates and memoizes per-platform staging aggregates.

    Args:
        build_factory: Factory for the build aggregates staging depends on.
        project_dir: Project root directory.
        repo_project_dir: Location of the project inside the bin repo, or None
                          when no bin repo is configured.
    """

    def __init__(
        self,
        build_factory: AggregateTaskFactory,
        project_dir: Path,
        repo_project_dir: Optional[Path],
    ) -> None:
        self._build_factory = build_factory
        self._project_dir = project_dir
        self._repo_project_dir = repo_project_dir
        self._aggregates: dict[str, AggregateTask] = {}

    def get_or_create(self, platform_name: str) -> AggregateTask:
        """Return the staging aggregate for a platform, creating it on first request.

        Also creates buildNatives_<platform> if it does not exist yet.

        Raises:
            TaskGraphError: If no bin repo is configured.
        """
        aggregate = self._aggregates.get(platform_name)
        if aggregate is not None:
            return aggregate

        repo_project_dir = self._repo_project_dir
        if repo_project_dir is None:
            raise TaskGraphError(
                f"{prebuild_task_name(platform_name)} needs a bin repo: set 'bin_repo' in natives.json "
                "or the PLATBUILD_BIN_REPO environment variable"
            )

        build_aggregate = self._build_factory.get_or_create(platform_name)
        project_dir = self._project_dir

        def stage() -> list[Path]:
            return stage_platform_outputs(project_dir, repo_project_dir, platform_name)

        aggregate = AggregateTask(
            name=prebuild_task_name(platform_name),
            platform_name=platform_name,
            action=stage,
            description=f"Build all natives for {platform_name} and copy them to the bin repo",
        )
        aggregate.depends_on(build_aggregate.name)
        self._aggregates[platform_name] = aggregate
        return aggregate

    def aggregates(self) -> list[AggregateTask]:
        return list(self._aggregates.values())
