"""
Tests for the behaviour shared by all drivers.
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from cmakekits.config import Settings
from cmakekits.core.interfaces import SuiteEnvironmentProvider
from cmakekits.driver.base import NO_WARN_UNUSED_CLI, CMakeDriver, Target
from cmakekits.driver.variant import Variant
from cmakekits.kits.model import CompilerKit, SuiteKit, ToolchainFileKit, UnspecifiedKit
from tests.fixtures.collaborators import (
    FakePrompter,
    ManualWatchBridge,
    RecordingErrorReporter,
    wait_for,
)
from tests.fixtures.projects import write_cache


class StubDriver(CMakeDriver):
    """Driver with a fixed target list and no generator invocation."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.known_targets = []
        self.built = []

    async def set_kit(self, kit):
        await self._set_base_kit(kit)

    async def configure(self, extra_args=(), consumer=None):
        return 0

    async def clean_configure(self, consumer=None):
        return 0

    async def build(self, target=None, consumer=None):
        self.built.append(target or self.default_target)
        return 0

    async def stop_current_process(self):
        return False

    @property
    def needs_reconfigure(self):
        return self._needs_reconfigure

    @property
    def targets(self):
        return self.known_targets


class FakeEnvironmentProvider(SuiteEnvironmentProvider):
    def __init__(self, env=None, error=None):
        self.env = env
        self.error = error
        self.calls = []

    async def get_environment(self, suite_id, architecture):
        self.calls.append((suite_id, architecture))
        if self.error is not None:
            raise self.error
        return self.env


async def make_driver(root, settings=None, prompter=None, env_provider=None):
    return await StubDriver.create(
        root,
        settings or Settings(),
        ManualWatchBridge(),
        prompter or FakePrompter(),
        RecordingErrorReporter(),
        env_provider,
    )


class TestNeedsClean:
    """Tests for clean detection on kit changes."""

    @pytest.mark.asyncio
    async def test_first_kit_never_cleans(self, cmake_project):
        """Test selecting the first kit keeps build output."""
        driver = await make_driver(cmake_project)

        assert driver.needs_clean(CompilerKit("gcc", {"C": "/usr/bin/gcc"})) is False
        await driver.async_dispose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "old,new,expected",
        [
            (CompilerKit("a", {"C": "/a/gcc"}), CompilerKit("b", {"C": "/b/gcc"}), True),
            (CompilerKit("a", {"C": "/a/gcc"}), CompilerKit("b", {"C": "/a/gcc", "CXX": "/a/g++"}), False),
            (CompilerKit("a", {"C": "/a/gcc"}), CompilerKit("a", {"CXX": "/b/g++"}), False),
            (CompilerKit("a", {"C": "/a/gcc"}), ToolchainFileKit("t", "/t.cmake"), True),
            (ToolchainFileKit("t", "/t.cmake"), ToolchainFileKit("u", "/t.cmake"), False),
            (ToolchainFileKit("t", "/t.cmake"), ToolchainFileKit("t", "/u.cmake"), True),
            (SuiteKit("v", "id", "x86"), SuiteKit("v", "id", "amd64"), True),
            (SuiteKit("v", "id", "x86"), SuiteKit("w", "id", "x86"), False),
            (UnspecifiedKit(), UnspecifiedKit(), False),
            (UnspecifiedKit(), CompilerKit("a", {"C": "/a/gcc"}), True),
        ],
    )
    async def test_kit_pairs(self, cmake_project, old, new, expected):
        """Test each kit pair against the clean rules."""
        driver = await make_driver(cmake_project)
        await driver.set_kit(old)

        assert driver.needs_clean(new) is expected
        await driver.async_dispose()


class TestKitApplication:
    """Tests for committing a kit."""

    @pytest.mark.asyncio
    async def test_kit_persisted_in_state(self, cmake_project):
        """Test the active kit name is remembered."""
        driver = await make_driver(cmake_project)

        await driver.set_kit(CompilerKit("GCC", {"C": "/usr/bin/gcc"}))

        assert driver.state.load().active_kit == "GCC"
        assert driver.kit_configure_arguments() == ["-DCMAKE_C_COMPILER:FILEPATH=/usr/bin/gcc"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_toolchain_file_arguments(self, cmake_project):
        """Test toolchain-file kits pass CMAKE_TOOLCHAIN_FILE."""
        driver = await make_driver(cmake_project)

        await driver.set_kit(ToolchainFileKit("arm", "/tc/arm.cmake"))

        assert driver.kit_configure_arguments() == [
            "-DCMAKE_TOOLCHAIN_FILE:FILEPATH=/tc/arm.cmake"
        ]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_suite_environment_resolved(self, cmake_project):
        """Test suite kits take their environment from the provider."""
        provider = FakeEnvironmentProvider(env={"INCLUDE": "C:\\VS\\include"})
        driver = await make_driver(cmake_project, env_provider=provider)

        await driver.set_kit(SuiteKit("VS - amd64", "abc", "amd64"))

        assert provider.calls == [("abc", "amd64")]
        assert driver.kit_environment == {"INCLUDE": "C:\\VS\\include"}
        assert driver.kit_configure_arguments() == []
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_suite_environment_failure_is_empty(self, cmake_project):
        """Test a failing provider leaves an empty environment."""
        provider = FakeEnvironmentProvider(error=OSError("vcvarsall failed"))
        driver = await make_driver(cmake_project, env_provider=provider)

        await driver.set_kit(SuiteKit("VS - x86", "abc", "x86"))

        assert driver.kit.name == "VS - x86"
        assert driver.kit_environment == {}
        await driver.async_dispose()


class TestConfigureArguments:
    """Tests for layering of configure arguments."""

    @pytest.mark.asyncio
    async def test_layering(self, cmake_project):
        """Test variant settings override global ones and the build type wins."""
        settings = Settings(configure_settings={"FOO": "global", "CMAKE_BUILD_TYPE": "Wrong", "KEEP": 1})
        driver = await make_driver(cmake_project, settings=settings)
        driver.set_variant_options(
            Variant("fast", "Fast", build_type="Release", linkage="shared", settings={"FOO": "variant"})
        )

        args = driver.prepare_configure_arguments()

        assert args == [
            NO_WARN_UNUSED_CLI,
            "-DFOO:STRING=variant",
            "-DCMAKE_BUILD_TYPE:STRING=Release",
            "-DKEEP:STRING=1",
            "-DBUILD_SHARED_LIBS:BOOL=TRUE",
            "-DCMAKE_EXPORT_COMPILE_COMMANDS:BOOL=TRUE",
        ]
        assert driver.prepare_configure_arguments() == args
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_multi_config_omits_build_type(self, cmake_project):
        """Test multi-configuration generators get no CMAKE_BUILD_TYPE."""
        write_cache(cmake_project / "build", generator="Ninja Multi-Config")
        driver = await make_driver(cmake_project)

        assert driver.is_multi_conf
        assert not any("CMAKE_BUILD_TYPE" in a for a in driver.prepare_configure_arguments())
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_static_linkage(self, cmake_project):
        """Test static linkage turns shared libraries off."""
        driver = await make_driver(cmake_project)
        driver.set_variant_options(Variant("s", "S", linkage="static"))

        assert "-DBUILD_SHARED_LIBS:BOOL=FALSE" in driver.prepare_configure_arguments()
        await driver.async_dispose()


class TestCacheSynchronization:
    """Tests for following the cache file on disk."""

    @pytest.mark.asyncio
    async def test_initial_load(self, project_with_cache):
        """Test an existing cache is loaded on creation."""
        driver = await make_driver(project_with_cache)

        assert driver.project_name == "Foo"
        assert driver.generator_name == "Ninja"
        assert driver.compiler_id == "GNU"
        assert len(driver.all_cache_entries) == 3
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_name_change_fires_once(self, project_with_cache):
        """Test a rewritten cache fires exactly one project-name notification."""
        driver = await make_driver(project_with_cache)
        names = []
        driver.on_project_name_changed.subscribe(names.append)

        write_cache(project_with_cache / "build", project="Bar")
        driver.watch_bridge.fire(driver.cache_path)
        assert await wait_for(lambda: driver.project_name == "Bar")

        driver.watch_bridge.fire(driver.cache_path)
        await asyncio.sleep(0.1)

        assert names == ["Bar"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_malformed_cache_reported(self, project_with_cache):
        """Test a broken cache is reported and the old snapshot stays."""
        driver = await make_driver(project_with_cache)

        (project_with_cache / "build" / "CMakeCache.txt").write_text("garbage line\n")
        driver.watch_bridge.fire(driver.cache_path)

        assert await wait_for(lambda: driver.reporter.exceptions)
        assert driver.reporter.exceptions[0][0] == "Reloading CMake cache"
        assert driver.project_name == "Foo"
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_malformed_cache_at_creation(self, cmake_project):
        """Test a broken cache at creation is reported and treated as absent."""
        (cmake_project / "build").mkdir()
        (cmake_project / "build" / "CMakeCache.txt").write_text("this is garbage\n")

        driver = await make_driver(cmake_project)

        assert driver.cmake_cache is None
        assert driver.reporter.exceptions[0][0] == "Loading CMake cache"
        assert len(driver.watch_bridge.active) == 1
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_cache_follows_build_type_directory(self, cmake_project):
        """Test switching variants moves the cache watch to the new build directory."""
        settings = Settings(build_directory="${workspaceRoot}/build/${buildType}")
        write_cache(cmake_project / "build" / "Debug", project="DebugName")
        release_cache = write_cache(cmake_project / "build" / "Release", project="ReleaseName")
        driver = await make_driver(cmake_project, settings=settings)
        bridge = driver.watch_bridge
        assert driver.project_name == "DebugName"

        assert await driver.set_variant("release")

        assert driver.project_name == "ReleaseName"
        assert bridge.watched_paths() == [release_cache.resolve()]
        assert len(bridge.active) == 1

        write_cache(cmake_project / "build" / "Release", project="Renamed")
        bridge.fire(release_cache)
        assert await wait_for(lambda: driver.project_name == "Renamed")

        assert await driver.set_variant("minsize")
        assert driver.cmake_cache is None
        await driver.async_dispose()
        assert bridge.active == []

    @pytest.mark.asyncio
    async def test_dispose_releases_watch(self, project_with_cache):
        """Test disposing the driver releases its cache watch."""
        driver = await make_driver(project_with_cache)
        bridge = driver.watch_bridge
        assert len(bridge.active) == 1

        await driver.async_dispose()

        assert bridge.active == []


class TestVariants:
    """Tests for variant selection."""

    @pytest.mark.asyncio
    async def test_default_variant_is_debug(self, cmake_project):
        """Test a fresh project starts with the settings default variant."""
        driver = await make_driver(cmake_project)

        assert driver.current_build_type == "Debug"
        assert driver.variant.name == "debug"
        assert driver.binary_dir == cmake_project / "build"
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_set_variant_by_name(self, cmake_project):
        """Test selecting a variant fires the build-type change and persists it."""
        driver = await make_driver(cmake_project)
        changes = []
        driver.on_build_type_changed.subscribe(changes.append)

        assert await driver.set_variant("release")
        assert await driver.set_variant("release")

        assert changes == ["Release"]
        assert driver.state.load().active_variant == "release"
        assert driver.needs_reconfigure
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_set_variant_from_menu(self, cmake_project):
        """Test the variant can be picked from a menu."""
        prompter = FakePrompter(picks=["MinSizeRel"])
        driver = await make_driver(cmake_project, prompter=prompter)

        assert await driver.set_variant()

        assert driver.current_build_type == "MinSizeRel"
        assert [i.label for i in prompter.picked[0][1]] == [
            "Debug",
            "Release",
            "MinSizeRel",
            "RelWithDebInfo",
        ]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_unknown_variant(self, cmake_project):
        """Test an unknown variant name is an error."""
        prompter = FakePrompter()
        driver = await make_driver(cmake_project, prompter=prompter)

        assert await driver.set_variant("nope") is False
        assert prompter.errors == ["Unknown variant: nope"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_variant_restored_from_state(self, cmake_project):
        """Test a new driver restores the saved variant."""
        first = await make_driver(cmake_project)
        await first.set_variant("reldeb")
        await first.async_dispose()

        second = await make_driver(cmake_project)

        assert second.current_build_type == "RelWithDebInfo"
        await second.async_dispose()


class TestBeforeConfigure:
    """Tests for pre-configure checks."""

    @pytest.mark.asyncio
    async def test_ok(self, cmake_project):
        driver = await make_driver(cmake_project)

        assert await driver._before_configure()
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_busy(self, cmake_project):
        """Test configure is refused while busy."""
        prompter = FakePrompter()
        driver = await make_driver(cmake_project, prompter=prompter)
        driver._set_busy(True)

        assert await driver._before_configure() is False
        assert "already running" in prompter.errors[0]
        driver._set_busy(False)
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_missing_lists_file(self, cmake_project):
        """Test a source directory without CMakeLists.txt is refused."""
        (cmake_project / "CMakeLists.txt").unlink()
        prompter = FakePrompter()
        driver = await make_driver(cmake_project, prompter=prompter)

        assert await driver._before_configure() is False
        assert prompter.errors == ["You do not have a CMakeLists.txt"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer,expected", [("Yes", True), ("No", False), (None, False)])
    async def test_unsaved_documents(self, cmake_project, answer, expected):
        """Test failed saves ask whether to continue."""
        prompter = FakePrompter(answers=[answer], save_ok=False)
        driver = await make_driver(cmake_project, prompter=prompter)

        assert await driver._before_configure() is expected
        assert prompter.asked[0][1] == ["Yes", "No"]
        await driver.async_dispose()


class TestTargets:
    """Tests for default and launch targets."""

    @pytest.mark.asyncio
    async def test_default_target(self, cmake_project):
        """Test the default target falls back to 'all' and can be changed."""
        driver = await make_driver(cmake_project)
        changes = []
        driver.on_default_target_changed.subscribe(changes.append)

        assert driver.default_target == "all"
        driver.set_default_target("app")

        assert driver.default_target == "app"
        assert changes == ["app"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_visual_studio_target_names(self, cmake_project):
        """Test Visual Studio generators use ALL_BUILD and INSTALL."""
        write_cache(cmake_project / "build", generator="Visual Studio 17 2022")
        driver = await make_driver(cmake_project)

        assert driver.all_target_name == "ALL_BUILD"
        await driver.install()
        assert driver.built == ["INSTALL"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_launch_without_executables(self, cmake_project):
        """Test selecting a launch target needs executable targets."""
        prompter = FakePrompter()
        driver = await make_driver(cmake_project, prompter=prompter)

        assert await driver.select_launch_target() is None
        assert prompter.errors
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_launch_target_picked_once(self, cmake_project):
        """Test the launch target is asked for once, then remembered."""
        prompter = FakePrompter(picks=["app"])
        driver = await make_driver(cmake_project, prompter=prompter)
        driver.known_targets = [
            Target("lib", "STATIC_LIBRARY"),
            Target("app", "EXECUTABLE", cmake_project / "build" / "app"),
        ]

        assert await driver.launch_target_path() == cmake_project / "build" / "app"
        assert await driver.launch_target_path() == cmake_project / "build" / "app"
        assert len(prompter.picked) == 1
        assert [i.label for i in prompter.picked[0][1]] == ["app"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_debug_target_gnu(self, project_with_cache):
        """Test GNU projects are debugged with gdb."""
        driver = await make_driver(project_with_cache)
        driver.known_targets = [Target("app", "EXECUTABLE", project_with_cache / "build" / "app")]
        await driver.select_launch_target("app")

        config = await driver.debug_target()

        assert config["type"] == "cppdbg"
        assert config["MIMode"] == "gdb"
        assert config["program"] == str(project_with_cache / "build" / "app")
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_unknown_launch_target(self, cmake_project):
        """Test naming a target that is not executable is an error."""
        prompter = FakePrompter()
        driver = await make_driver(cmake_project, prompter=prompter)
        driver.known_targets = [Target("lib", "STATIC_LIBRARY")]

        assert await driver.select_launch_target("lib") is None
        await driver.async_dispose()


class TestCommands:
    """Tests for the generic commands."""

    @pytest.mark.asyncio
    async def test_clean_rebuild(self, cmake_project):
        """Test clean-rebuild builds clean, then the default target."""
        driver = await make_driver(cmake_project)

        assert await driver.clean_rebuild() == 0
        assert driver.built == ["clean", "all"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_edit_cache(self, cmake_project):
        """Test edit_cache needs an existing cache."""
        prompter = FakePrompter()
        driver = await make_driver(cmake_project, prompter=prompter)

        assert driver.edit_cache() is None
        write_cache(cmake_project / "build")
        assert driver.edit_cache() == driver.cache_path
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_reset_state(self, cmake_project):
        """Test reset_state forgets selections and returns to the default variant."""
        driver = await make_driver(cmake_project)
        await driver.set_variant("release")
        driver.set_default_target("app")
        launch = []
        driver.on_launch_target_changed.subscribe(launch.append)

        await driver.reset_state()

        assert driver.current_build_type == "Debug"
        assert driver.default_target == "all"
        assert launch == [None]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_execute_command_environment_layers(self, cmake_project):
        """Test settings, kit and call environments are layered in order."""
        settings = Settings(environment={"A": "settings", "B": "settings"})
        provider = FakeEnvironmentProvider(env={"B": "kit", "C": "kit"})
        driver = await make_driver(cmake_project, settings=settings, env_provider=provider)
        await driver.set_kit(SuiteKit("vs", "id", "x86"))

        with patch("cmakekits.driver.base.execute", new=AsyncMock()) as execute:
            await driver.execute_command("cmake", ["--version"], env={"C": "call"})

        command, args, consumer, environment, cwd = execute.call_args.args
        assert environment == {"A": "settings", "B": "kit", "C": "call"}
        assert cwd == Path(cmake_project)
        await driver.async_dispose()
