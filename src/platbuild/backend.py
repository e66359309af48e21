"""Native build backends.

The backend is the part of the build that actually invokes compilers and
linkers. platbuild only needs one operation from it: given a unit and the
platform it targets, produce the unit's artifact or fail.

CommandBackend runs the command line declared for each unit in natives.json,
with placeholders for the target platform and the (relocated) output path:

    {platform}    platform name, e.g. "linux64"
    {arch}        platform architecture, e.g. "x86_64"
    {os}          platform operating system, e.g. "linux"
    {output}      relocated output file
    {output_dir}  directory of the relocated output file
"""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional, Protocol

from platbuild.graph.models import BuildUnit, UnitKind
from platbuild.platforms.registry import PlatformDescriptor
from platbuild.subprocess_utils import safe_run

logger = logging.getLogger(__name__)

# Keep the tail of compiler output in error messages
_MAX_ERROR_OUTPUT = 2000


class BackendError(Exception):
    """Raised when a native build command fails."""

    def __init__(self, unit_name: str, message: str, output: str = "") -> None:
        super().__init__(message)
        self.unit_name = unit_name
        self.output = output


class NativeBuildBackend(Protocol):
    """Builds one native unit."""

    def build(self, unit: BuildUnit, platform: Optional[PlatformDescriptor]) -> Optional[Path]:
        """Produce the unit's artifact.

        Args:
            unit: Unit to build. Link units carry their relocated output_path.
            platform: Target platform for link units, None for custom Make steps.

        Returns:
            The produced artifact path, or None for units without an artifact.

        Raises:
            BackendError: If the build fails.
        """
        ...


def expand_command(unit: BuildUnit, platform: Optional[PlatformDescriptor]) -> list[str]:
    """Substitute platform and output placeholders into the unit's command."""
    values: dict[str, str] = {"platform": "", "arch": "", "os": "", "output": "", "output_dir": ""}
    if platform is not None:
        values.update(platform=platform.name, arch=platform.architecture, os=platform.operating_system)
    if unit.output_path is not None:
        values.update(output=str(unit.output_path), output_dir=str(unit.output_path.parent))
    try:
        return [arg.format(**values) for arg in unit.command]
    except (KeyError, IndexError) as e:
        raise BackendError(unit.name, f"Unknown placeholder {e} in command") from e


class CommandBackend:
    """Runs each unit's declared command in the project directory.

    Args:
        project_dir: Working directory for build commands.
        env: Extra environment variables for build commands.
    """

    def __init__(self, project_dir: Path, env: Optional[Mapping[str, str]] = None) -> None:
        self._project_dir = project_dir
        self._env = dict(env) if env else {}

    def build(self, unit: BuildUnit, platform: Optional[PlatformDescriptor]) -> Optional[Path]:
        if not unit.command:
            raise BackendError(unit.name, "No build command declared")

        cmd = expand_command(unit, platform)
        if unit.output_path is not None:
            unit.output_path.parent.mkdir(parents=True, exist_ok=True)

        env = os.environ.copy()
        env.update(self._env)
        logger.info("Building %s: %s", unit.name, " ".join(cmd))
        try:
            result = safe_run(cmd, cwd=self._project_dir, env=env, capture_output=True, text=True)
        except OSError as e:
            raise BackendError(unit.name, f"Cannot run '{cmd[0]}': {e}") from e

        if result.returncode != 0:
            output = (result.stderr or result.stdout or "")[-_MAX_ERROR_OUTPUT:]
            raise BackendError(unit.name, f"Command exited with code {result.returncode}\n{output}".rstrip(), output)

        if unit.kind is UnitKind.MAKE:
            return None
        assert unit.output_path is not None
        if not unit.output_path.is_file():
            raise BackendError(unit.name, f"Command succeeded but did not produce {unit.output_path}")
        return unit.output_path
