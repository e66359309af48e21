"""Unit tests for staging platform outputs into the bin repo."""

from pathlib import Path

import pytest

from platbuild.graph.aggregates import AggregateTaskFactory
from platbuild.graph.binder import PlatformTaskBinder
from platbuild.graph.models import TaskGraphError
from platbuild.graph.staging import (
    StagingAggregateFactory,
    StagingIOError,
    is_staging_excluded,
    prebuild_task_name,
    stage_platform_outputs,
    staging_dir,
)


def _write(path: Path, content: bytes = b"data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


class TestExcludes:
    @pytest.mark.parametrize(
        "name, excluded",
        [
            ("a.dll", False),
            ("a.lib", True),
            ("a.exp", True),
            ("libfoo.so", False),
            ("decompile", False),
            ("a.lib.txt", False),
            ("plugins/a.lib", False),
        ],
    )
    def test_patterns(self, name, excluded):
        assert is_staging_excluded(Path(name)) is excluded


class TestStagePlatformOutputs:
    def test_copies_all_but_link_time_files(self, tmp_path):
        """Only a.dll is staged from a.dll, a.lib and a.exp."""
        project = tmp_path / "proj"
        repo_project = tmp_path / "bin" / "Features" / "Decompiler"
        out = project / "build" / "os" / "win64"
        _write(out / "a.dll", b"dll")
        _write(out / "a.lib")
        _write(out / "a.exp")

        copied = stage_platform_outputs(project, repo_project, "win64")

        destination = staging_dir(repo_project, "win64")
        assert destination == repo_project / "os" / "win64"
        assert copied == [destination / "a.dll"]
        assert sorted(p.name for p in destination.iterdir()) == ["a.dll"]
        assert (destination / "a.dll").read_bytes() == b"dll"

    def test_preserves_subdirectories(self, tmp_path):
        project = tmp_path / "proj"
        repo_project = tmp_path / "bin" / "proj"
        _write(project / "build" / "os" / "linux64" / "plugins" / "libx.so")

        copied = stage_platform_outputs(project, repo_project, "linux64")
        assert copied == [repo_project / "os" / "linux64" / "plugins" / "libx.so"]

    def test_nested_import_library_is_staged(self, tmp_path):
        """Only top-level link-time files are left out."""
        project = tmp_path / "proj"
        repo_project = tmp_path / "bin" / "proj"
        out = project / "build" / "os" / "win64"
        _write(out / "sleigh.lib")
        _write(out / "sdk" / "sleigh.lib")

        copied = stage_platform_outputs(project, repo_project, "win64")
        assert copied == [repo_project / "os" / "win64" / "sdk" / "sleigh.lib"]

    def test_missing_output_dir_raises(self, tmp_path):
        """Staging without build output is an error, not a silent no-op."""
        with pytest.raises(StagingIOError, match="No native build output to stage for osx64") as exc_info:
            stage_platform_outputs(tmp_path / "proj", tmp_path / "bin", "osx64")
        assert isinstance(exc_info.value, OSError)

    def test_overwrites_existing_files(self, tmp_path):
        project = tmp_path / "proj"
        repo_project = tmp_path / "bin" / "proj"
        _write(project / "build" / "os" / "linux64" / "libfoo.so", b"new")
        _write(repo_project / "os" / "linux64" / "libfoo.so", b"old")

        stage_platform_outputs(project, repo_project, "linux64")
        assert (repo_project / "os" / "linux64" / "libfoo.so").read_bytes() == b"new"


class TestStagingAggregateFactory:
    def _factories(self, registry, project_dir: Path, repo_project_dir):
        build_factory = AggregateTaskFactory(registry, PlatformTaskBinder())
        return build_factory, StagingAggregateFactory(build_factory, project_dir, repo_project_dir)

    def test_depends_on_build_aggregate(self, registry, tmp_path):
        """prebuildNatives_P depends on buildNatives_P, creating it if needed."""
        build_factory, staging_factory = self._factories(registry, tmp_path, tmp_path / "bin")
        aggregate = staging_factory.get_or_create("win64")

        assert aggregate.name == prebuild_task_name("win64") == "prebuildNatives_win64"
        assert aggregate.dependencies == {"buildNatives_win64"}
        assert [a.name for a in build_factory.aggregates()] == ["buildNatives_win64"]
        assert aggregate.action is not None

    def test_memoized(self, registry, tmp_path):
        _, staging_factory = self._factories(registry, tmp_path, tmp_path / "bin")
        assert staging_factory.get_or_create("win64") is staging_factory.get_or_create("win64")
        assert len(staging_factory.aggregates()) == 1

    def test_action_stages_outputs(self, registry, tmp_path):
        project = tmp_path / "proj"
        repo_project = tmp_path / "bin" / "proj"
        _write(project / "build" / "os" / "linux64" / "libfoo.so")
        _, staging_factory = self._factories(registry, project, repo_project)

        copied = staging_factory.get_or_create("linux64").action()
        assert copied == [repo_project / "os" / "linux64" / "libfoo.so"]

    def test_no_bin_repo(self, registry, tmp_path):
        """Without a bin repo there is nowhere to stage to."""
        _, staging_factory = self._factories(registry, tmp_path, None)
        with pytest.raises(TaskGraphError, match="PLATBUILD_BIN_REPO"):
            staging_factory.get_or_create("win64")
