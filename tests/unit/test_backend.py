"""Unit tests for the command build backend."""

import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from platbuild.backend import BackendError, CommandBackend, expand_command
from platbuild.graph.models import BuildUnit, UnitKind
from platbuild.platforms.registry import PlatformDescriptor

LINUX64 = PlatformDescriptor("linux64", "x86_64", "linux")

WRITE_OUTPUT = "import pathlib, sys; pathlib.Path(sys.argv[1]).write_text('built')"


def _link_unit(tmp_path: Path, command: list[str]) -> BuildUnit:
    unit = BuildUnit("linkFoo", UnitKind.SHARED_LIBRARY, platform=LINUX64, output_path=Path("libfoo.so"), command=command)
    unit.output_path = tmp_path / "build" / "os" / "linux64" / "libfoo.so"
    return unit


class TestExpandCommand:
    def test_placeholders(self, tmp_path):
        unit = _link_unit(tmp_path, ["cc", "-o", "{output}", "-march={arch}", "-D{os}", "{platform}", "{output_dir}"])
        cmd = expand_command(unit, LINUX64)
        output = tmp_path / "build" / "os" / "linux64" / "libfoo.so"
        assert cmd == ["cc", "-o", str(output), "-march=x86_64", "-Dlinux", "linux64", str(output.parent)]

    def test_make_step_without_platform(self):
        unit = BuildUnit("win64DemanglerMake", UnitKind.MAKE, command=["make", "PLATFORM={platform}"])
        assert expand_command(unit, None) == ["make", "PLATFORM="]

    def test_unknown_placeholder(self, tmp_path):
        unit = _link_unit(tmp_path, ["cc", "{compiler}"])
        with pytest.raises(BackendError, match="Unknown placeholder"):
            expand_command(unit, LINUX64)


class TestCommandBackend:
    def test_builds_output(self, tmp_path):
        """The command runs and the artifact lands at the relocated path."""
        unit = _link_unit(tmp_path, [sys.executable, "-c", WRITE_OUTPUT, "{output}"])
        produced = CommandBackend(tmp_path).build(unit, LINUX64)
        assert produced == unit.output_path
        assert produced.read_text() == "built"

    def test_nonzero_exit(self, tmp_path):
        unit = _link_unit(tmp_path, [sys.executable, "-c", "import sys; sys.stderr.write('undefined symbol'); sys.exit(3)"])
        with pytest.raises(BackendError) as exc_info:
            CommandBackend(tmp_path).build(unit, LINUX64)
        assert "exited with code 3" in str(exc_info.value)
        assert "undefined symbol" in exc_info.value.output
        assert exc_info.value.unit_name == "linkFoo"

    def test_missing_artifact(self, tmp_path):
        unit = _link_unit(tmp_path, [sys.executable, "-c", "pass"])
        with pytest.raises(BackendError, match="did not produce"):
            CommandBackend(tmp_path).build(unit, LINUX64)

    def test_no_command(self, tmp_path):
        unit = _link_unit(tmp_path, [])
        with pytest.raises(BackendError, match="No build command"):
            CommandBackend(tmp_path).build(unit, LINUX64)

    def test_missing_program(self, tmp_path):
        unit = _link_unit(tmp_path, ["definitely-not-a-compiler-xyz"])
        with pytest.raises(BackendError, match="Cannot run"):
            CommandBackend(tmp_path).build(unit, LINUX64)

    def test_make_step_returns_none(self, tmp_path):
        unit = BuildUnit("linux64DemanglerMake", UnitKind.MAKE, command=[sys.executable, "-c", "pass"])
        assert CommandBackend(tmp_path).build(unit, None) is None

    @patch("platbuild.backend.safe_run")
    def test_runs_in_project_dir_with_extra_env(self, mock_run, tmp_path):
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")
        unit = BuildUnit("win64Make", UnitKind.MAKE, command=["make"])
        CommandBackend(tmp_path, env={"CFLAGS": "-O2"}).build(unit, None)

        mock_run.assert_called_once()
        kwargs = mock_run.call_args[1]
        assert kwargs["cwd"] == tmp_path
        assert kwargs["env"]["CFLAGS"] == "-O2"
        assert kwargs["capture_output"] is True
