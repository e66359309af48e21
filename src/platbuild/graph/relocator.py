"""Output relocation for native link units.

Rewrites every link unit's output path to

    <project>/build/os/<platform>/<original file name>

so artifacts of the same name built for different platforms never collide.
Runs once, after every unit is known, because it needs each unit's resolved
target platform.
"""

import logging
import threading
from pathlib import Path
from typing import Iterable

from .models import BuildUnit

logger = logging.getLogger(__name__)


class RelocationError(RuntimeError):
    """Raised when output paths are relocated more than once."""

    pass


def platform_output_dir(project_dir: Path, platform_name: str) -> Path:
    """Directory that holds every artifact built for a platform."""
    return project_dir / "build" / "os" / platform_name


def relocated_output_path(project_dir: Path, platform_name: str, original: Path) -> Path:
    """Keep the file name, drop the configured directory."""
    return platform_output_dir(project_dir, platform_name) / original.name


class OutputRelocator:
    """Moves link unit outputs into platform-scoped directories, exactly once.

    Args:
        project_dir: Project root directory.
    """

    def __init__(self, project_dir: Path) -> None:
        self._project_dir = project_dir
        self._done = False
        self._lock = threading.Lock()

    @property
    def done(self) -> bool:
        with self._lock:
            return self._done

    def relocate(self, units: Iterable[BuildUnit]) -> dict[str, Path]:
        """Rewrite the output path of every link unit.

        Args:
            units: All units of the project; non-link units are skipped.

        Returns:
            Mapping of unit name to its new output path.

        Raises:
            RelocationError: If called a second time.
        """
        with self._lock:
            if self._done:
                raise RelocationError("Output paths have already been relocated for this build")
            self._done = True

        relocated: dict[str, Path] = {}
        for unit in units:
            if not unit.kind.is_link or unit.output_path is None:
                continue
            platform_name = unit.target_platform.name
            new_path = relocated_output_path(self._project_dir, platform_name, unit.output_path)
            logger.debug("Relocating %s output %s -> %s", unit.name, unit.output_path, new_path)
            unit.output_path = new_path
            relocated[unit.name] = new_path
        return relocated
