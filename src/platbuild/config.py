"""Build description loader (natives.json).

A project describes its native build in a single JSON file:

    {
        "platforms": {"linux_arm64": {"architecture": "arm64", "operating_system": "linux"}},
        "units": [
            {"name": "decompile", "kind": "executable", "platform": "linux64",
             "output": "decompile", "command": ["make", "OUT={output}", "ARCH={arch}"]},
            {"name": "linux64DemanglerMake", "kind": "make", "command": ["make", "-C", "demangler"]}
        ],
        "toolchain": {
            "visual_studio_base_dir": "C:/Program Files (x86)/Microsoft Visual Studio",
            "visual_studio_install_dir": "C:/Program Files (x86)/Microsoft Visual Studio/2017/Community"
        },
        "bin_repo": "../bin-repo",
        "project_path_in_repo": "Features/Decompiler",
        "strict_platforms": false
    }

Environment variables override the file:
    PLATBUILD_BIN_REPO        bin repo root
    PLATBUILD_VS_BASE_DIR     Visual Studio base directory
    PLATBUILD_VS_INSTALL_DIR  Visual Studio install directory
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from platbuild.graph.models import UnitKind
from platbuild.platforms.registry import PlatformDescriptor
from platbuild.toolchain.guard import VisualStudioLocation

CONFIG_FILE_NAME = "natives.json"

DEFAULT_VS_BASE_DIR = "C:/Program Files (x86)/Microsoft Visual Studio"
DEFAULT_VS_INSTALL_DIR = "C:/Program Files (x86)/Microsoft Visual Studio/2017/Community"

ENV_BIN_REPO = "PLATBUILD_BIN_REPO"
ENV_VS_BASE_DIR = "PLATBUILD_VS_BASE_DIR"
ENV_VS_INSTALL_DIR = "PLATBUILD_VS_INSTALL_DIR"

_UNIT_KEYS = {"name", "kind", "platform", "output", "command"}
_TOP_LEVEL_KEYS = {"platforms", "units", "toolchain", "bin_repo", "project_path_in_repo", "strict_platforms"}


class ConfigError(ValueError):
    """Raised when natives.json is missing, malformed or inconsistent."""

    pass


@dataclass(frozen=True)
class UnitConfig:
    """One entry of the ``units`` list."""

    name: str
    kind: UnitKind
    platform: Optional[str] = None
    output: Optional[str] = None
    command: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UnitConfig":
        if not isinstance(data, Mapping):
            raise ConfigError(f"Unit entry must be an object, got {type(data).__name__}")
        unknown = sorted(str(key) for key in data if key not in _UNIT_KEYS)
        name = str(data.get("name", "")).strip()
        if not name:
            raise ConfigError("Unit entry is missing 'name'")
        if unknown:
            raise ConfigError(f"Unit '{name}' contains unknown keys: {', '.join(unknown)}")
        try:
            kind = UnitKind(str(data.get("kind", "")))
        except ValueError as e:
            allowed = ", ".join(k.value for k in UnitKind)
            raise ConfigError(f"Unit '{name}' has invalid kind {data.get('kind')!r} (expected one of: {allowed})") from e

        command = data.get("command", [])
        if isinstance(command, str) or not isinstance(command, list):
            raise ConfigError(f"Unit '{name}' command must be a list of arguments")

        platform = data.get("platform")
        output = data.get("output")
        if kind.is_link:
            if not platform:
                raise ConfigError(f"Unit '{name}' ({kind.value}) must declare 'platform'")
            if not output:
                raise ConfigError(f"Unit '{name}' ({kind.value}) must declare 'output'")
        return cls(
            name=name,
            kind=kind,
            platform=str(platform) if platform else None,
            output=str(output) if output else None,
            command=tuple(str(arg) for arg in command),
        )


@dataclass(frozen=True)
class NativeBuildConfig:
    """Parsed build description.

    Attributes:
        project_dir: Project root directory
        source: File the settings were read from (named in toolchain error messages)
        platforms: Extra or overriding platforms
        units: Declared build units
        visual_studio: Expected Visual Studio location on Windows hosts
        bin_repo: Root of the external artifact repository, if configured
        project_path_in_repo: Location of this project inside the bin repo
        strict_platforms: Reject aggregates for unregistered platforms
    """

    project_dir: Path
    source: str
    platforms: tuple[PlatformDescriptor, ...] = ()
    units: tuple[UnitConfig, ...] = ()
    visual_studio: Optional[VisualStudioLocation] = None
    bin_repo: Optional[Path] = None
    project_path_in_repo: str = ""
    strict_platforms: bool = False

    @property
    def repo_project_dir(self) -> Optional[Path]:
        """<bin repo>/<project path in repo>, or None without a bin repo."""
        if self.bin_repo is None:
            return None
        return self.bin_repo / (self.project_path_in_repo or self.project_dir.name)

    @classmethod
    def from_dict(
        cls,
        project_dir: Path,
        data: Mapping[str, Any],
        source: str = CONFIG_FILE_NAME,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "NativeBuildConfig":
        """Build a config from parsed JSON plus environment overrides.

        Raises:
            ConfigError: If the data is malformed.
        """
        env = environ if environ is not None else os.environ
        if not isinstance(data, Mapping):
            raise ConfigError(f"{source}: top level must be an object")
        unknown = sorted(str(key) for key in data if key not in _TOP_LEVEL_KEYS)
        if unknown:
            raise ConfigError(f"{source}: unknown keys: {', '.join(unknown)}")

        platforms_section = data.get("platforms") or {}
        if not isinstance(platforms_section, Mapping):
            raise ConfigError(f"{source}: 'platforms' must be an object")
        platforms: list[PlatformDescriptor] = []
        for name, entry in platforms_section.items():
            if not isinstance(entry, Mapping):
                raise ConfigError(f"{source}: platform '{name}' must be an object")
            try:
                platforms.append(PlatformDescriptor.from_dict(str(name), entry))
            except ValueError as e:
                raise ConfigError(f"{source}: {e}") from e

        units_section = data.get("units") or []
        if not isinstance(units_section, list):
            raise ConfigError(f"{source}: 'units' must be a list")
        units = tuple(UnitConfig.from_dict(entry) for entry in units_section)
        seen: set[str] = set()
        for unit in units:
            if unit.name in seen:
                raise ConfigError(f"{source}: duplicate unit name '{unit.name}'")
            seen.add(unit.name)

        toolchain_section = data.get("toolchain") or {}
        if not isinstance(toolchain_section, Mapping):
            raise ConfigError(f"{source}: 'toolchain' must be an object")
        base_dir = env.get(ENV_VS_BASE_DIR) or toolchain_section.get("visual_studio_base_dir") or DEFAULT_VS_BASE_DIR
        install_dir = (
            env.get(ENV_VS_INSTALL_DIR) or toolchain_section.get("visual_studio_install_dir") or DEFAULT_VS_INSTALL_DIR
        )
        visual_studio = VisualStudioLocation(
            base_dir=Path(str(base_dir)),
            install_dir=Path(str(install_dir)),
            config_source=source,
        )

        strict_platforms = data.get("strict_platforms", False)
        if not isinstance(strict_platforms, bool):
            raise ConfigError(f"{source}: 'strict_platforms' must be true or false, got {strict_platforms!r}")

        bin_repo_value = env.get(ENV_BIN_REPO) or data.get("bin_repo")
        bin_repo = None
        if bin_repo_value:
            bin_repo = Path(str(bin_repo_value))
            if not bin_repo.is_absolute():
                bin_repo = (project_dir / bin_repo).resolve()

        return cls(
            project_dir=project_dir,
            source=source,
            platforms=tuple(platforms),
            units=units,
            visual_studio=visual_studio,
            bin_repo=bin_repo,
            project_path_in_repo=str(data.get("project_path_in_repo") or ""),
            strict_platforms=strict_platforms,
        )


def load_config(project_dir: Path, environ: Optional[Mapping[str, str]] = None) -> NativeBuildConfig:
    """Load natives.json from a project directory.

    A missing file yields an empty build description (defaults plus
    environment overrides).

    Raises:
        ConfigError: If the file exists but cannot be read or parsed.
    """
    config_path = project_dir / CONFIG_FILE_NAME
    data: Mapping[str, Any] = {}
    if config_path.is_file():
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigError(f"{config_path}: invalid JSON: {e}") from e
        except OSError as e:
            raise ConfigError(f"{config_path}: cannot read: {e.strerror or e}") from e
    return NativeBuildConfig.from_dict(project_dir, data, source=str(config_path), environ=environ)
