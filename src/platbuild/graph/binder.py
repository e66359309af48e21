"""Binds native build units to platform aggregates.

A unit belongs to the aggregate for platform P when:
- it is a link unit (executable or shared library) whose target platform is P, or
- it is a custom Make step whose name starts with P and ends with "Make".

Binding adds two edges: the aggregate waits for the unit, and the unit waits
for the toolchain check. Both edge sets are sets, so binding is idempotent.
"""

import logging

from platbuild.toolchain.guard import TOOLCHAIN_TASK_NAME

from .models import AggregateTask, BuildUnit, UnitKind

logger = logging.getLogger(__name__)

MAKE_TASK_SUFFIX = "Make"


def is_native_make_task(task_name: str, platform_name: str) -> bool:
    """Return True if the task is a custom Make step for the platform.

    Example: "linux64DemanglerMake" is a Make step for "linux64".
    """
    return task_name.startswith(platform_name) and task_name.endswith(MAKE_TASK_SUFFIX)


class PlatformTaskBinder:
    """Wires units into platform aggregates.

    Args:
        guard_task_name: Name of the toolchain check every bound unit waits for.
    """

    def __init__(self, guard_task_name: str = TOOLCHAIN_TASK_NAME) -> None:
        self._guard_task_name = guard_task_name
        self._bound: set[tuple[str, str]] = set()

    @property
    def guard_task_name(self) -> str:
        return self._guard_task_name

    def belongs_to(self, unit: BuildUnit, platform_name: str) -> bool:
        """Check whether a unit targets the given platform.

        Link units resolve their target platform here (possibly for the first
        time). Make steps are matched by name only.
        """
        if unit.kind is UnitKind.MAKE:
            return is_native_make_task(unit.name, platform_name)
        if unit.kind.is_link:
            return unit.target_platform.name == platform_name
        return False

    def bind(self, unit: BuildUnit, aggregate: AggregateTask, platform_name: str) -> bool:
        """Add aggregate -> unit and unit -> toolchain edges if the unit targets the platform.

        Args:
            unit: Unit to consider.
            aggregate: Aggregate that may depend on the unit.
            platform_name: Platform the aggregate collects.

        Returns:
            True if the unit was newly bound, False if it does not belong to the
            platform or was already bound to this aggregate.
        """
        key = (unit.name, aggregate.name)
        if key in self._bound:
            return False
        if not self.belongs_to(unit, platform_name):
            return False
        self._bound.add(key)
        aggregate.depends_on(unit.name)
        unit.depends_on(self._guard_task_name)
        logger.debug("Bound %s to %s", unit.name, aggregate.name)
        return True
