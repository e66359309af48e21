"""Unit tests for binding units to platform aggregates."""

from pathlib import Path

import pytest

from platbuild.graph.binder import PlatformTaskBinder, is_native_make_task
from platbuild.graph.models import AggregateTask, BuildUnit, UnitKind
from platbuild.platforms.registry import PlatformDescriptor

WIN64 = PlatformDescriptor("win64", "x86_64", "windows")
LINUX64 = PlatformDescriptor("linux64", "x86_64", "linux")


def _link(name: str, platform: PlatformDescriptor) -> BuildUnit:
    return BuildUnit(name, UnitKind.SHARED_LIBRARY, platform=platform, output_path=Path("libfoo.so"))


class TestIsNativeMakeTask:
    @pytest.mark.parametrize(
        "task_name, platform_name, expected",
        [
            ("win64DemanglerMake", "win64", True),
            ("win64Make", "win64", True),
            ("win64DemanglerMake", "win32", False),
            ("linux64Demangler", "linux64", False),
            ("buildLinux64Make", "linux64", False),
        ],
    )
    def test_rule(self, task_name, platform_name, expected):
        """Name starts with the platform and ends with "Make"."""
        assert is_native_make_task(task_name, platform_name) is expected


class TestPlatformTaskBinder:
    def test_binds_matching_link_unit(self):
        """A unit targeting the platform is added to the aggregate and gated by the guard."""
        binder = PlatformTaskBinder()
        unit = _link("linkFooWin64", WIN64)
        aggregate = AggregateTask("buildNatives_win64", "win64")

        assert binder.bind(unit, aggregate, "win64") is True
        assert aggregate.dependencies == {"linkFooWin64"}
        assert unit.dependencies == {"CheckToolChain"}

    def test_ignores_other_platform(self):
        binder = PlatformTaskBinder()
        unit = _link("linkFooLinux64", LINUX64)
        aggregate = AggregateTask("buildNatives_win64", "win64")

        assert binder.bind(unit, aggregate, "win64") is False
        assert aggregate.dependencies == set()
        assert unit.dependencies == set()

    def test_bind_is_idempotent(self):
        """Binding twice adds each edge once."""
        binder = PlatformTaskBinder()
        unit = _link("linkFooWin64", WIN64)
        aggregate = AggregateTask("buildNatives_win64", "win64")

        assert binder.bind(unit, aggregate, "win64") is True
        assert binder.bind(unit, aggregate, "win64") is False
        assert aggregate.dependencies == {"linkFooWin64"}
        assert unit.dependencies == {"CheckToolChain"}

    def test_make_task_matched_by_name(self):
        binder = PlatformTaskBinder()
        make = BuildUnit("win64DemanglerMake", UnitKind.MAKE)
        aggregate = AggregateTask("buildNatives_win64", "win64")

        assert binder.bind(make, aggregate, "win64") is True
        assert make.dependencies == {"CheckToolChain"}

    def test_make_task_for_other_platform(self):
        binder = PlatformTaskBinder()
        make = BuildUnit("linux64DemanglerMake", UnitKind.MAKE)
        aggregate = AggregateTask("buildNatives_win64", "win64")
        assert binder.bind(make, aggregate, "win64") is False

    def test_custom_guard_name(self):
        binder = PlatformTaskBinder(guard_task_name="CheckClang")
        unit = _link("linkFooWin64", WIN64)
        binder.bind(unit, AggregateTask("buildNatives_win64", "win64"), "win64")
        assert unit.dependencies == {"CheckClang"}
        assert binder.guard_task_name == "CheckClang"
