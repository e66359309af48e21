"""Unit tests for the platform registry."""

import threading

import pytest

from platbuild.platforms.registry import (
    DEFAULT_PLATFORMS,
    DuplicatePlatformError,
    PlatformDescriptor,
    PlatformNotFoundError,
    PlatformRegistry,
    RegistryFrozenError,
)


class TestDefaults:
    """The four platforms every project supports."""

    def test_default_names(self):
        """Defaults are win32, win64, linux64 and osx64, in that order."""
        registry = PlatformRegistry.with_defaults()
        assert registry.names() == ["win32", "win64", "linux64", "osx64"]

    def test_default_descriptors(self):
        """Defaults carry the expected architecture and OS."""
        registry = PlatformRegistry.with_defaults()
        assert registry.lookup("win32") == PlatformDescriptor("win32", "x86", "windows")
        assert registry.lookup("win64") == PlatformDescriptor("win64", "x86_64", "windows")
        assert registry.lookup("linux64") == PlatformDescriptor("linux64", "x86_64", "linux")
        assert registry.lookup("osx64") == PlatformDescriptor("osx64", "x86_64", "osx")

    def test_defaults_are_shared_descriptors(self):
        """with_defaults() builds independent registries from the same descriptors."""
        first = PlatformRegistry.with_defaults()
        second = PlatformRegistry.with_defaults()
        first.register("linux_arm64", "arm64", "linux")
        assert "linux_arm64" not in second
        assert len(second) == len(DEFAULT_PLATFORMS)


class TestRegisterAndLookup:
    """register() / lookup() / find()."""

    def test_register_new_platform(self):
        """A registered platform can be looked up by name."""
        registry = PlatformRegistry()
        descriptor = registry.register("linux_arm64", "arm64", "linux")
        assert registry.lookup("linux_arm64") is descriptor
        assert "linux_arm64" in registry

    def test_register_duplicate_raises(self):
        """Registering a name twice raises DuplicatePlatformError."""
        registry = PlatformRegistry.with_defaults()
        with pytest.raises(DuplicatePlatformError, match="win64"):
            registry.register("win64", "x86_64", "windows")

    def test_duplicate_in_constructor_raises(self):
        """Constructing with two descriptors of the same name raises."""
        with pytest.raises(DuplicatePlatformError):
            PlatformRegistry([PlatformDescriptor("a", "x86", "linux"), PlatformDescriptor("a", "x86", "osx")])

    def test_lookup_unknown_raises_with_available(self):
        """Unknown names raise PlatformNotFoundError listing the registered platforms."""
        registry = PlatformRegistry.with_defaults()
        with pytest.raises(PlatformNotFoundError) as exc_info:
            registry.lookup("bogus")
        assert exc_info.value.name == "bogus"
        assert "linux64" in exc_info.value.available
        assert str(exc_info.value).startswith("Unknown platform 'bogus'")

    def test_not_found_is_key_error(self):
        """PlatformNotFoundError can be caught as KeyError."""
        registry = PlatformRegistry()
        with pytest.raises(KeyError):
            registry.lookup("anything")

    def test_find_by_arch_and_os(self):
        """find() returns the first platform matching an arch/OS pair."""
        registry = PlatformRegistry.with_defaults()
        found = registry.find("x86_64", "linux")
        assert found is not None
        assert found.name == "linux64"

    def test_find_no_match(self):
        """find() returns None when nothing matches."""
        registry = PlatformRegistry.with_defaults()
        assert registry.find("riscv64", "linux") is None

    def test_iteration_in_registration_order(self):
        """Iterating yields descriptors in registration order."""
        registry = PlatformRegistry.with_defaults()
        registry.register("linux_arm64", "arm64", "linux")
        assert [d.name for d in registry][-1] == "linux_arm64"


class TestFreeze:
    """Registration is closed once the graph is finalized."""

    def test_register_after_freeze_raises(self):
        """register() after freeze() raises RegistryFrozenError."""
        registry = PlatformRegistry.with_defaults()
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register("linux_arm64", "arm64", "linux")

    def test_lookup_after_freeze(self):
        """Lookups keep working after freeze()."""
        registry = PlatformRegistry.with_defaults()
        registry.freeze()
        assert registry.lookup("osx64").operating_system == "osx"


class TestDescriptorFromDict:
    """PlatformDescriptor.from_dict()."""

    def test_from_dict(self):
        """from_dict() reads architecture and operating_system."""
        descriptor = PlatformDescriptor.from_dict("linux_arm64", {"architecture": "arm64", "operating_system": "linux"})
        assert descriptor == PlatformDescriptor("linux_arm64", "arm64", "linux")

    def test_from_dict_missing_key(self):
        """A missing key raises ValueError naming the platform."""
        with pytest.raises(ValueError, match="linux_arm64"):
            PlatformDescriptor.from_dict("linux_arm64", {"architecture": "arm64"})


class TestThreadSafety:
    """Concurrent registration."""

    def test_concurrent_register_distinct_names(self):
        """Concurrent registration of distinct names loses nothing."""
        registry = PlatformRegistry()
        errors: list[Exception] = []

        def worker(index: int) -> None:
            try:
                registry.register(f"p{index}", "x86_64", "linux")
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert len(registry) == 20
