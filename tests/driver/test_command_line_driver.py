"""
Tests for the command line driver.

The generator is never run: ``execute_command`` is replaced by a recorder.
"""

import asyncio
from pathlib import Path

import pytest

from cmakekits.config import Settings
from cmakekits.core.exceptions import ConfigureError
from cmakekits.core.process import ExecutionResult
from cmakekits.driver.base import NO_WARN_UNUSED_CLI
from cmakekits.driver.legacy import CommandLineDriver
from cmakekits.kits.model import CompilerKit
from tests.fixtures.collaborators import FakePrompter, ManualWatchBridge, RecordingErrorReporter
from tests.fixtures.projects import write_cache


class FakeProcess:
    def __init__(self, retc=0, delay=0.0):
        self.retc = retc
        self.delay = delay
        self.terminated = False

    async def wait(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        return ExecutionResult(retc=self.retc)

    def terminate(self):
        self.terminated = True


class CommandRecorder:
    """Stands in for ``execute_command`` and records every call."""

    def __init__(self, retcs=(), error=None, on_call=None, delay=0.0):
        self.calls = []
        self.retcs = list(retcs)
        self.error = error
        self.on_call = on_call
        self.delay = delay

    async def __call__(self, command, args, consumer=None, env=None, cwd=None):
        self.calls.append({"command": command, "args": list(args), "cwd": cwd})
        if self.error is not None:
            raise self.error
        if self.on_call is not None:
            self.on_call(command, list(args))
        return FakeProcess(self.retcs.pop(0) if self.retcs else 0, self.delay)


async def make_driver(root, recorder=None, prompter=None, **settings):
    settings.setdefault("generator", "Ninja")
    driver = await CommandLineDriver.create(
        root,
        Settings(**settings),
        ManualWatchBridge(),
        prompter or FakePrompter(),
        RecordingErrorReporter(),
    )
    driver.execute_command = recorder or CommandRecorder()
    return driver


class TestConfigure:
    """Tests for configure."""

    @pytest.mark.asyncio
    async def test_configure_arguments(self, cmake_project):
        """Test the full configure command line."""
        recorder = CommandRecorder()
        driver = await make_driver(
            cmake_project,
            recorder,
            configure_args=["--log-level=VERBOSE"],
            install_prefix="/opt/${buildType}",
        )
        await driver.set_kit(CompilerKit("GCC", {"C": "/usr/bin/gcc"}))
        reconfigured = []
        driver.on_reconfigured.subscribe(reconfigured.append)

        assert await driver.configure(["-Wdev"]) == 0

        call = recorder.calls[0]
        assert call["command"] == "cmake"
        assert call["args"] == [
            "-S",
            str(cmake_project),
            "-B",
            str(cmake_project / "build"),
            "-G",
            "Ninja",
            "-DCMAKE_C_COMPILER:FILEPATH=/usr/bin/gcc",
            NO_WARN_UNUSED_CLI,
            "-DCMAKE_EXPORT_COMPILE_COMMANDS:BOOL=TRUE",
            "-DCMAKE_BUILD_TYPE:STRING=Debug",
            "-DCMAKE_INSTALL_PREFIX:PATH=/opt/Debug",
            "--log-level=VERBOSE",
            "-Wdev",
        ]
        assert reconfigured == [None]
        assert driver.generator_name == "Ninja"
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_configure_reloads_cache(self, cmake_project):
        """Test a successful configure picks up the written cache."""

        def generate(command, args):
            write_cache(cmake_project / "build", project="Foo")

        driver = await make_driver(cmake_project, CommandRecorder(on_call=generate))
        names = []
        driver.on_project_name_changed.subscribe(names.append)

        assert await driver.configure() == 0

        assert driver.project_name == "Foo"
        assert names == ["Foo"]
        assert not driver.needs_reconfigure
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_failed_configure(self, cmake_project):
        """Test a failing configure keeps the reconfigure flag."""
        driver = await make_driver(cmake_project, CommandRecorder(retcs=[1]))
        reconfigured = []
        driver.on_reconfigured.subscribe(reconfigured.append)

        assert await driver.configure() == 1
        assert driver.needs_reconfigure
        assert reconfigured == []
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_missing_cmake(self, cmake_project):
        """Test a missing executable is reported and returns -1."""
        prompter = FakePrompter()
        recorder = CommandRecorder(error=FileNotFoundError("cmake"))
        driver = await make_driver(cmake_project, recorder, prompter=prompter)

        assert await driver.configure() == -1
        assert prompter.errors == ["Cannot run cmake. Is it installed?"]
        assert not driver.is_busy
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_busy_flag_toggles(self, cmake_project):
        """Test the busy flag is raised for the duration of the process."""
        driver = await make_driver(cmake_project)
        busy = []
        driver.on_busy_changed.subscribe(busy.append)

        await driver.configure()

        assert busy == [True, False]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_cached_generator_kept(self, cmake_project):
        """Test an existing cache keeps its generator."""
        write_cache(cmake_project / "build", generator="Unix Makefiles")
        driver = await make_driver(cmake_project)

        assert driver.select_generator() == "Unix Makefiles"
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_kit_preferred_generator(self, cmake_project):
        """Test the kit's preferred generator beats the settings."""
        driver = await make_driver(cmake_project)
        await driver.set_kit(CompilerKit("k", {"C": "cc"}, preferred_generator="Unix Makefiles"))

        assert driver.select_generator() == "Unix Makefiles"
        await driver.async_dispose()


class TestCleanConfigure:
    """Tests for removing prior configuration."""

    @pytest.mark.asyncio
    async def test_kit_change_cleans(self, project_with_cache):
        """Test switching compilers removes the cache and CMakeFiles."""
        build = project_with_cache / "build"
        (build / "CMakeFiles" / "3.28").mkdir(parents=True)
        driver = await make_driver(project_with_cache)
        await driver.set_kit(CompilerKit("a", {"C": "/a/gcc"}))
        assert (build / "CMakeCache.txt").exists()

        await driver.set_kit(CompilerKit("b", {"C": "/b/gcc"}))

        assert not (build / "CMakeCache.txt").exists()
        assert not (build / "CMakeFiles").exists()
        assert driver.needs_reconfigure
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_clean_configure(self, project_with_cache):
        """Test clean-configure wipes the cache before configuring."""
        recorder = CommandRecorder()
        driver = await make_driver(project_with_cache, recorder)

        assert await driver.clean_configure() == 0

        assert not (project_with_cache / "build" / "CMakeCache.txt").exists()
        assert recorder.calls[0]["args"][:2] == ["-S", str(project_with_cache)]
        await driver.async_dispose()


class TestBuild:
    """Tests for build, install and ctest."""

    @pytest.mark.asyncio
    async def test_build_configures_first(self, cmake_project):
        """Test a project without a cache is configured before building."""
        recorder = CommandRecorder()
        driver = await make_driver(cmake_project, recorder, build_args=["-j4"])

        assert await driver.build() == 0

        assert len(recorder.calls) == 2
        assert recorder.calls[1]["args"] == [
            "--build",
            str(cmake_project / "build"),
            "--target",
            "all",
            "--",
            "-j4",
        ]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_failed_configure_stops_build(self, cmake_project):
        """Test the build is skipped when the implicit configure fails."""
        recorder = CommandRecorder(retcs=[2])
        driver = await make_driver(cmake_project, recorder)

        assert await driver.build("app") == 2
        assert len(recorder.calls) == 1
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_multi_config_passes_config(self, cmake_project):
        """Test multi-configuration generators get --config."""
        write_cache(cmake_project / "build", generator="Ninja Multi-Config")
        recorder = CommandRecorder()
        driver = await make_driver(cmake_project, recorder)
        await driver.set_variant("release")
        driver._needs_reconfigure = False

        assert await driver.build("app") == 0

        assert recorder.calls[0]["args"][-2:] == ["--config", "Release"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_build_while_busy(self, project_with_cache):
        """Test a second build is refused while one is running."""
        prompter = FakePrompter()
        recorder = CommandRecorder()
        driver = await make_driver(project_with_cache, recorder, prompter=prompter)
        driver._set_busy(True)

        assert await driver.build() == -1
        assert recorder.calls == []
        driver._set_busy(False)
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_install_target(self, project_with_cache):
        """Test install builds the install target."""
        recorder = CommandRecorder()
        driver = await make_driver(project_with_cache, recorder)
        driver._needs_reconfigure = False

        await driver.install()

        assert recorder.calls[0]["args"][3] == "install"
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_ctest_runs_in_build_dir(self, project_with_cache):
        """Test ctest runs after a successful build from the build directory."""
        recorder = CommandRecorder()
        driver = await make_driver(project_with_cache, recorder)
        driver._needs_reconfigure = False

        assert await driver.ctest() == 0

        ctest = recorder.calls[-1]
        assert ctest["command"] == "ctest"
        assert ctest["cwd"] == project_with_cache / "build"
        assert ctest["args"][2:] == ["-C", "Debug", "-T", "test", "--output-on-failure"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_stop_without_process(self, cmake_project):
        """Test stopping with nothing running reports False."""
        driver = await make_driver(cmake_project)

        assert await driver.stop_current_process() is False
        await driver.async_dispose()


class TestBusyGate:
    """Tests for refusing overlapping operations on one driver."""

    @pytest.mark.asyncio
    async def test_concurrent_configures_run_once(self, cmake_project):
        """Test two configures started together invoke cmake once."""
        prompter = FakePrompter()
        recorder = CommandRecorder(delay=0.2)
        driver = await make_driver(cmake_project, recorder, prompter=prompter)

        results = await asyncio.gather(driver.configure(), driver.configure())

        assert sorted(results) == [-1, 0]
        assert len(recorder.calls) == 1
        assert "already running" in prompter.errors[0]
        assert not driver.is_busy
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_configure_refused_while_building(self, project_with_cache):
        """Test a configure started during a build does not run."""
        recorder = CommandRecorder(delay=0.2)
        driver = await make_driver(project_with_cache, recorder)
        driver._needs_reconfigure = False

        results = await asyncio.gather(driver.build(), driver.configure())

        assert results == [0, -1]
        assert [c["args"][0] for c in recorder.calls] == ["--build"]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_busy_held_across_implicit_configure(self, cmake_project):
        """Test a build that configures first raises the flag only once."""
        driver = await make_driver(cmake_project)
        busy = []
        driver.on_busy_changed.subscribe(busy.append)

        assert await driver.build() == 0

        assert busy == [True, False]
        await driver.async_dispose()

    @pytest.mark.asyncio
    async def test_flag_cleared_after_failed_arguments(self, cmake_project):
        """Test an error while preparing arguments still lowers the flag."""
        driver = await make_driver(cmake_project, configure_settings={"BAD": object()})

        with pytest.raises(ConfigureError):
            await driver.configure()

        assert not driver.is_busy
        await driver.async_dispose()


class TestCacheAfterConfigure:
    """Tests for the cache reload following a configure."""

    @pytest.mark.asyncio
    async def test_malformed_cache_reported(self, cmake_project):
        """Test a configure producing a broken cache still succeeds."""

        def generate(command, args):
            build = cmake_project / "build"
            build.mkdir(exist_ok=True)
            (build / "CMakeCache.txt").write_text("this is garbage\n")

        driver = await make_driver(cmake_project, CommandRecorder(on_call=generate))

        assert await driver.configure() == 0

        assert driver.reporter.exceptions[0][0] == "Reloading CMake cache"
        assert driver.cmake_cache is None
        await driver.async_dispose()
