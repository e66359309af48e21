"""Factory for ``buildNatives_<platform>`` aggregate tasks.

Example: requesting "buildNatives_win64" builds every win64 executable,
shared library and custom Make step declared in the project.

Aggregates are created on first request and memoized by platform name.
Membership is not decided at creation time: NativeProject collects every
unit first and calls bind_all() once the configuration phase is over, so a
unit declared after its aggregate was requested is still picked up.
"""

import logging
import warnings
from typing import Iterable, Optional

from platbuild.platforms.registry import PlatformRegistry

from .binder import PlatformTaskBinder
from .models import AggregateTask, BuildUnit

logger = logging.getLogger(__name__)

BUILD_NATIVES_PREFIX = "buildNatives_"


class GraphConstructionWarning(UserWarning):
    """Issued when an aggregate is requested for a platform the registry does not know."""

    pass


def build_task_name(platform_name: str) -> str:
    return f"{BUILD_NATIVES_PREFIX}{platform_name}"


def parse_platform(task_name: str, prefix: str) -> Optional[str]:
    """Return the platform part of "<prefix><platform>", or None if the name does not match."""
    if not task_name.startswith(prefix):
        return None
    platform_name = task_name[len(prefix):]
    return platform_name or None


class AggregateTaskFactory:
    """Creates and memoizes per-platform build aggregates.

    Args:
        registry: Platform registry used to flag unknown platform names.
        binder: Binder that decides aggregate membership.
    """

    def __init__(self, registry: PlatformRegistry, binder: PlatformTaskBinder) -> None:
        self._registry = registry
        self._binder = binder
        self._aggregates: dict[str, AggregateTask] = {}

    def get_or_create(self, platform_name: str) -> AggregateTask:
        """Return the aggregate for a platform, creating it on first request.

        A platform missing from the registry still gets an (empty) aggregate;
        a GraphConstructionWarning is issued and logged.
        """
        aggregate = self._aggregates.get(platform_name)
        if aggregate is not None:
            return aggregate

        if platform_name not in self._registry:
            message = (
                f"Aggregate {build_task_name(platform_name)} requested for unregistered platform "
                f"'{platform_name}'; it will build nothing"
            )
            logger.warning(message)
            warnings.warn(message, GraphConstructionWarning, stacklevel=2)

        aggregate = AggregateTask(
            name=build_task_name(platform_name),
            platform_name=platform_name,
            description=f"Build all natives for {platform_name}",
        )
        self._aggregates[platform_name] = aggregate
        logger.debug("Created aggregate %s", aggregate.name)
        return aggregate

    def aggregates(self) -> list[AggregateTask]:
        return list(self._aggregates.values())

    def bind_all(self, units: Iterable[BuildUnit]) -> int:
        """Bind every unit to every requested aggregate.

        Returns:
            Number of new (unit, aggregate) bindings.
        """
        unit_list = list(units)
        count = 0
        for aggregate in self._aggregates.values():
            for unit in unit_list:
                if self._binder.bind(unit, aggregate, aggregate.platform_name):
                    count += 1
        return count
