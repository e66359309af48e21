"""Unit tests for building a NativeProject from natives.json and running it."""

from pathlib import Path

import pytest

from platbuild.builder import NativeBuilder, create_project, create_registry
from platbuild.config import NativeBuildConfig
from platbuild.graph.models import TaskPhase, UnitKind
from platbuild.platforms.registry import PlatformDescriptor, PlatformNotFoundError


def _config(project_dir: Path, data: dict) -> NativeBuildConfig:
    return NativeBuildConfig.from_dict(project_dir, data, environ={})


class TestCreateRegistry:
    def test_defaults_only(self, tmp_path):
        registry = create_registry(_config(tmp_path, {}))
        assert registry.names() == ["win32", "win64", "linux64", "osx64"]

    def test_config_extends_and_overrides(self, tmp_path):
        data = {
            "platforms": {
                "linux64": {"architecture": "x86_64", "operating_system": "linux-gnu"},
                "linux_arm64": {"architecture": "arm64", "operating_system": "linux"},
            }
        }
        registry = create_registry(_config(tmp_path, data))
        assert registry.names() == ["win32", "win64", "linux64", "osx64", "linux_arm64"]
        assert registry.lookup("linux64") == PlatformDescriptor("linux64", "x86_64", "linux-gnu")


class TestCreateProject:
    def test_declares_configured_units(self, tmp_path):
        data = {
            "units": [
                {
                    "name": "linkDecompile",
                    "kind": "executable",
                    "platform": "linux64",
                    "output": "decompile",
                    "command": ["make", "{output}"],
                },
                {"name": "linkSleigh", "kind": "shared-library", "platform": "win64", "output": "sleigh.dll"},
                {"name": "win64DemanglerMake", "kind": "make", "command": ["make", "-C", "demangler"]},
            ],
            "bin_repo": str(tmp_path / "bin"),
            "project_path_in_repo": "Features/Decompiler",
        }
        project = create_project(_config(tmp_path, data), host_platform="linux64", host_os="linux")

        kinds = {unit.name: unit.kind for unit in project.units()}
        assert kinds == {
            "linkDecompile": UnitKind.EXECUTABLE,
            "linkSleigh": UnitKind.SHARED_LIBRARY,
            "win64DemanglerMake": UnitKind.MAKE,
        }
        assert project.get_unit("linkDecompile").command == ["make", "{output}"]

        project.request("prebuildNatives_win64")
        project.request("assemble")
        assert project.requested == ["prebuildNatives_win64", "assemble"]

    def test_strict_platforms_from_config(self, tmp_path):
        project = create_project(_config(tmp_path, {"strict_platforms": True}))
        with pytest.raises(PlatformNotFoundError):
            project.request("buildNatives_amiga")


SLEIGH_UNITS = [
    {"name": "linkSleighWin64", "kind": "shared-library", "platform": "win64", "output": "sleigh.dll"},
    {"name": "linkSleighLinux64", "kind": "shared-library", "platform": "linux64", "output": "libsleigh.so"},
]


class TestNativeBuilder:
    def test_end_to_end_with_staging(self, tmp_path, backend):
        """buildNatives + staging for win64: import libraries stay out of the bin repo."""
        project_dir = tmp_path / "Decompiler"
        project_dir.mkdir()
        config = _config(project_dir, {"units": SLEIGH_UNITS, "bin_repo": str(tmp_path / "bin")})
        project = create_project(config, host_os="linux")
        project.request("prebuildNatives_win64")

        builder = NativeBuilder(jobs=2)
        graph = builder.finalize(project, backend)
        # Link-time leftovers the staging step must skip
        out_dir = project_dir / "build" / "os" / "win64"
        out_dir.mkdir(parents=True)
        (out_dir / "sleigh.lib").write_bytes(b"lib")
        (out_dir / "sleigh.exp").write_bytes(b"exp")

        result = builder.run(graph, title="Building prebuildNatives_win64", use_tui=False)

        assert result.success, result.first_error
        assert backend.built_units() == ["linkSleighWin64"]
        staged = tmp_path / "bin" / "Decompiler" / "os" / "win64"
        assert sorted(p.name for p in staged.iterdir()) == ["sleigh.dll"]
        assert result.get("prebuildNatives_win64").phase == TaskPhase.DONE

    def test_failed_unit_blocks_staging(self, tmp_path, failing_backend):
        backend = failing_backend("linkSleighWin64")
        config = _config(tmp_path, {"units": SLEIGH_UNITS, "bin_repo": str(tmp_path / "bin")})
        project = create_project(config, host_os="linux")
        project.request("prebuildNatives_win64")

        builder = NativeBuilder(jobs=1)
        result = builder.run(builder.finalize(project, backend), title="Building", use_tui=False)

        assert not result.success
        assert result.first_error == "compile error in linkSleighWin64"
        assert result.get("prebuildNatives_win64").phase == TaskPhase.FAILED
        assert not (tmp_path / "bin").exists()

    def test_verbose_callback(self, tmp_path, backend, capsys):
        config = _config(tmp_path, {"units": SLEIGH_UNITS})
        project = create_project(config, host_os="linux")
        project.request("buildNatives_linux64")

        builder = NativeBuilder(jobs=1)
        result = builder.run(builder.finalize(project, backend), title="Building", verbose=True, use_tui=False)

        assert result.success
        assert "linkSleighLinux64: Done" in capsys.readouterr().out

    def test_default_jobs(self):
        assert NativeBuilder()._jobs >= 1
