"""
Abstract per-project driver.

A driver owns everything needed to configure and build one project root:
the active kit and its resolved environment, the active variant, the busy
flag and an in-memory mirror of the generated cache that follows the file on
disk. Concrete drivers decide how the generator is actually run.

Lifecycle:
    driver = await SomeDriver.create(root, settings, ...)
    await driver.set_kit(kit)
    await driver.configure()
    await driver.async_dispose()
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from cmakekits.cmake.cache import CacheEntry, CMakeCache
from cmakekits.cmake.generators import compiler_id, is_multi_config_generator, linker_id
from cmakekits.cmake.values import define_flag
from cmakekits.config import Settings, replace_vars
from cmakekits.core.events import Event
from cmakekits.core.exceptions import CacheError, ConfigError
from cmakekits.core.interfaces import (
    ErrorReporter,
    PickItem,
    Prompter,
    SuiteEnvironmentProvider,
    WatchBridge,
    WatchSubscription,
)
from cmakekits.core.process import OutputConsumer, Subprocess, execute
from cmakekits.core.reporting import invoke_reported, take_task
from cmakekits.core.state import StateManager
from cmakekits.driver.variant import (
    BUILTIN_VARIANTS,
    Variant,
    VariantConfiguration,
    load_variants,
)
from cmakekits.kits.model import (
    CompilerKit,
    Kit,
    SuiteKit,
    ToolchainFileKit,
    kit_type,
)

logger = logging.getLogger(__name__)

NO_WARN_UNUSED_CLI = "--no-warn-unused-cli"


@dataclass
class Target:
    """A build target known to the driver."""

    name: str
    type: str = "UTILITY"
    filepath: Optional[Path] = None


class CMakeDriver(ABC):
    """
    Base class of all drivers.

    Subclasses implement the generator invocation (``configure``, ``build``,
    ...). The base class implements kit application, clean detection,
    configure-argument preparation and cache synchronization.
    """

    def __init__(
        self,
        project_root: Path,
        settings: Settings,
        watch_bridge: WatchBridge,
        prompter: Prompter,
        reporter: ErrorReporter,
        env_provider: Optional[SuiteEnvironmentProvider] = None,
    ):
        self.project_root = Path(project_root)
        self.settings = settings
        self.watch_bridge = watch_bridge
        self.prompter = prompter
        self.reporter = reporter
        self.env_provider = env_provider
        self.state = StateManager(self.project_root)

        self._kit: Optional[Kit] = None
        self._kit_environment: Dict[str, str] = {}
        self._variants: Dict[str, Variant] = {}
        self._variant = VariantConfiguration()
        self._is_busy = False
        self._needs_reconfigure = False
        self._cmake_cache: Optional[CMakeCache] = None
        self._generator_name: Optional[str] = None

        self._cache_watch: Optional[WatchSubscription] = None
        self._cache_consumer: Optional[asyncio.Future] = None
        self._watched_cache_path: Optional[Path] = None

        self.on_project_name_changed: Event[str] = Event("project_name_changed")
        self.on_busy_changed: Event[bool] = Event("busy_changed")
        self.on_build_type_changed: Event[str] = Event("build_type_changed")
        self.on_default_target_changed: Event[str] = Event("default_target_changed")
        self.on_launch_target_changed: Event[Optional[str]] = Event("launch_target_changed")
        self.on_reconfigured: Event[None] = Event("reconfigured")

    @classmethod
    async def create(cls, project_root: Path, *args, **kwargs) -> "CMakeDriver":
        """Construct and initialize a driver."""
        driver = cls(project_root, *args, **kwargs)
        await driver._init()
        return driver

    # ------------------------------------------------------------------
    # Abstract operations
    # ------------------------------------------------------------------

    @abstractmethod
    async def set_kit(self, kit: Kit) -> None:
        """Change the active kit, wiping prior configuration when required."""

    @abstractmethod
    async def configure(
        self, extra_args: Sequence[str] = (), consumer: Optional[OutputConsumer] = None
    ) -> int:
        pass

    @abstractmethod
    async def clean_configure(self, consumer: Optional[OutputConsumer] = None) -> int:
        pass

    @abstractmethod
    async def build(
        self, target: Optional[str] = None, consumer: Optional[OutputConsumer] = None
    ) -> int:
        pass

    @abstractmethod
    async def stop_current_process(self) -> bool:
        pass

    @property
    @abstractmethod
    def needs_reconfigure(self) -> bool:
        pass

    @property
    @abstractmethod
    def targets(self) -> List[Target]:
        pass

    # ------------------------------------------------------------------
    # Paths and properties
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self._is_busy

    def _set_busy(self, busy: bool) -> None:
        if busy != self._is_busy:
            self._is_busy = busy
            self.on_busy_changed.fire(busy)

    @property
    def source_dir(self) -> Path:
        return Path(replace_vars(self.settings.source_directory, self.project_root))

    @property
    def main_list_file(self) -> Path:
        return self.source_dir / "CMakeLists.txt"

    @property
    def binary_dir(self) -> Path:
        return Path(
            replace_vars(
                self.settings.build_directory, self.project_root, self.current_build_type
            )
        )

    @property
    def cache_path(self) -> Path:
        return self.binary_dir / "CMakeCache.txt"

    @property
    def current_build_type(self) -> str:
        return self._variant.build_type

    @property
    def variant(self) -> VariantConfiguration:
        return self._variant

    @property
    def variants(self) -> Dict[str, Variant]:
        return dict(self._variants)

    @property
    def is_multi_conf(self) -> bool:
        return bool(self._generator_name) and is_multi_config_generator(self._generator_name)

    @property
    def generator_name(self) -> Optional[str]:
        return self._generator_name

    @property
    def kit(self) -> Optional[Kit]:
        return self._kit

    @property
    def kit_environment(self) -> Dict[str, str]:
        return dict(self._kit_environment)

    @property
    def cmake_cache(self) -> Optional[CMakeCache]:
        return self._cmake_cache

    @property
    def all_cache_entries(self) -> List[CacheEntry]:
        if self._cmake_cache is None:
            return []
        return self._cmake_cache.all_entries

    @property
    def project_name(self) -> Optional[str]:
        if self._cmake_cache is None:
            return None
        entry = self._cmake_cache.get("CMAKE_PROJECT_NAME")
        return entry.value if entry else None

    @property
    def compiler_id(self) -> Optional[str]:
        """Compiler family of the configured project, as best we can tell."""
        if self._cmake_cache is None:
            return None
        for lang in ("CXX", "C", "CUDA"):
            entry = self._cmake_cache.get(f"CMAKE_{lang}_COMPILER")
            if entry is None:
                continue
            found = compiler_id(entry.value)
            if found:
                return found
        return None

    @property
    def linker_id(self) -> Optional[str]:
        if self._cmake_cache is None:
            return None
        entry = self._cmake_cache.get("CMAKE_LINKER")
        return linker_id(entry.value) if entry else None

    @property
    def executable_targets(self) -> List[Target]:
        return [t for t in self.targets if t.type == "EXECUTABLE"]

    @property
    def all_target_name(self) -> str:
        if self._generator_name and self._generator_name.startswith("Visual Studio"):
            return "ALL_BUILD"
        return "all"

    @property
    def default_target(self) -> str:
        return self.state.load().default_target or self.all_target_name

    @property
    def launch_target_name(self) -> Optional[str]:
        return self.state.load().launch_target

    # ------------------------------------------------------------------
    # Initialization and cache synchronization
    # ------------------------------------------------------------------

    async def _init(self) -> None:
        logger.debug(f"Initializing driver for {self.project_root}")
        try:
            self._variants = await asyncio.to_thread(load_variants, self.project_root)
        except ConfigError as e:
            self.reporter.exception("Loading variants", e, root=str(self.project_root))
            self._variants = dict(BUILTIN_VARIANTS)
        saved = self.state.load().active_variant
        name = saved if saved in self._variants else self.settings.default_variant
        if name in self._variants:
            self._variant = self._variant.with_options(self._variants[name])

        await self._load_cache_if_present()
        self._watch_cache()

    def _watch_cache(self) -> None:
        path = self.cache_path
        self._watched_cache_path = path
        self._cache_watch = self.watch_bridge.watch(path)
        self._cache_consumer = take_task(
            self.reporter,
            "Watching CMake cache",
            asyncio.ensure_future(self._consume_cache_events(self._cache_watch)),
            path=str(path),
        )

    def _unwatch_cache(self) -> Optional[asyncio.Future]:
        """Release the cache watch; returns the cancelled consumer task."""
        consumer, self._cache_consumer = self._cache_consumer, None
        if self._cache_watch is not None:
            self._cache_watch.dispose()
            self._cache_watch = None
        if consumer is not None:
            consumer.cancel()
        self._watched_cache_path = None
        return consumer

    async def _load_cache_if_present(self) -> None:
        """Load the cache file; a missing or malformed file leaves no cache."""
        if not await asyncio.to_thread(self.cache_path.exists):
            self._cmake_cache = None
            return
        try:
            await self._reload_cmake_cache()
        except (CacheError, OSError) as e:
            self.reporter.exception("Loading CMake cache", e, path=str(self.cache_path))
            self._cmake_cache = None

    async def _follow_cache_path(self) -> None:
        """Move cache synchronization to the current build directory."""
        if self._watched_cache_path is None or self.cache_path == self._watched_cache_path:
            return
        logger.debug(f"Build directory moved, following {self.cache_path}")
        consumer = self._unwatch_cache()
        if consumer is not None:
            await asyncio.wait([consumer])
        await self._load_cache_if_present()
        self._watch_cache()

    async def _consume_cache_events(self, subscription: WatchSubscription) -> None:
        async for event in subscription:
            logger.debug(f"Reload CMake cache: {event.path} {event.kind}")
            await invoke_reported(
                self.reporter,
                "Reloading CMake cache",
                self._reload_cmake_cache(),
                path=str(self.cache_path),
            )

    async def _reload_cmake_cache(self) -> None:
        """
        Replace the cache mirror with the current file content.

        Raises:
            CacheParseError: If the file is malformed; the previous cache stays
        """
        new_cache = await CMakeCache.from_path(self.cache_path)
        old_name = self.project_name
        self._cmake_cache = new_cache

        generator = new_cache.get("CMAKE_GENERATOR")
        if generator is not None and generator.value:
            self._generator_name = generator.value

        name = self.project_name
        if name and name != old_name:
            logger.debug(f"Project name changed to {name}")
            self.on_project_name_changed.fire(name)

    # ------------------------------------------------------------------
    # Kits
    # ------------------------------------------------------------------

    def needs_clean(self, kit: Kit) -> bool:
        """
        Whether switching to ``kit`` invalidates existing build output.

        The very first kit never needs a clean.
        """
        old = self._kit
        if old is None:
            return False
        if kit_type(old) != kit_type(kit):
            return True
        match (old, kit):
            case (CompilerKit(compilers=before), CompilerKit(compilers=after)):
                common = sorted(before.keys() & after.keys())
                return any(before[lang] != after[lang] for lang in common)
            case (ToolchainFileKit(toolchain_file=before), ToolchainFileKit(toolchain_file=after)):
                return before != after
            case (SuiteKit(), SuiteKit()):
                return old.suite != kit.suite or old.architecture != kit.architecture
            case _:
                return False

    async def _set_base_kit(self, kit: Kit) -> None:
        """Commit ``kit`` and resolve its environment."""
        environment: Dict[str, str] = {}
        match kit:
            case SuiteKit(suite=suite, architecture=architecture):
                resolved = None
                if self.env_provider is not None:
                    try:
                        resolved = await self.env_provider.get_environment(suite, architecture)
                    except Exception as e:
                        logger.warning(f"Environment resolution for '{kit.name}' failed: {e}")
                if resolved is None:
                    logger.warning(
                        f"Could not resolve the environment of kit '{kit.name}', "
                        f"continuing with an empty environment"
                    )
                else:
                    environment = dict(resolved)
            case _:
                pass

        logger.debug(f"Active kit for {self.project_root}: {kit.name}")
        self._kit = kit
        self._kit_environment = environment
        self.state.update(active_kit=kit.name)

    def kit_configure_arguments(self) -> List[str]:
        """Defines selecting the toolchain of the active kit."""
        match self._kit:
            case CompilerKit(compilers=compilers):
                return [
                    f"-DCMAKE_{lang}_COMPILER:FILEPATH={path}"
                    for lang, path in compilers.items()
                ]
            case ToolchainFileKit(toolchain_file=toolchain_file):
                return [f"-DCMAKE_TOOLCHAIN_FILE:FILEPATH={toolchain_file}"]
            case _:
                return []

    # ------------------------------------------------------------------
    # Configure arguments
    # ------------------------------------------------------------------

    def prepare_configure_arguments(self) -> List[str]:
        """
        Build the ``-D`` flags applied on every configure.

        Layering, later wins: global configure settings, variant settings,
        linkage, exported compile commands, and the build type (single
        configuration generators only).
        """
        settings: Dict[str, Any] = dict(self.settings.configure_settings)
        for key, value in self._variant.settings:
            settings[key] = value
        if self._variant.linkage is not None:
            settings["BUILD_SHARED_LIBS"] = self._variant.linkage == "shared"

        # Always export so that compile_commands.json exists
        settings["CMAKE_EXPORT_COMPILE_COMMANDS"] = True

        if not self.is_multi_conf:
            settings["CMAKE_BUILD_TYPE"] = self.current_build_type

        flags = [NO_WARN_UNUSED_CLI]
        flags.extend(define_flag(key, value) for key, value in settings.items())
        logger.debug(f"Configure flags: {flags}")
        return flags

    def _claim_busy(self) -> bool:
        """
        Raise the busy flag unless it is already raised.

        Must be called before the first suspension point of an operation.
        """
        if self._is_busy:
            logger.debug("Refusing to start: we're busy")
            self.prompter.show_error(
                "A CMake task is already running. Stop it before starting another one."
            )
            return False
        self._set_busy(True)
        return True

    async def _before_configure(self, check_busy: bool = True) -> bool:
        """
        Pre-configure checks. False means the configure must not run.

        Args:
            check_busy: False when the caller already holds the busy flag
        """
        logger.debug("Running pre-configure checks")
        if check_busy and self._is_busy:
            logger.debug("No configuring: we're busy")
            self.prompter.show_error(
                "A CMake task is already running. Stop it before trying to configure."
            )
            return False

        if not await asyncio.to_thread(self.source_dir.is_dir):
            logger.debug("No configuring: there is no source directory")
            self.prompter.show_error("You do not have a source directory open")
            return False

        if not await asyncio.to_thread(self.main_list_file.exists):
            logger.debug(f"No configuring: there is no {self.main_list_file}")
            self.prompter.show_error("You do not have a CMakeLists.txt")
            return False

        if self.settings.save_before_build:
            logger.debug("Saving open files before configure/build")
            if not await self.prompter.save_all_documents():
                chosen = await self.prompter.ask(
                    "Not all open documents were saved. Would you like to continue anyway?",
                    ["Yes", "No"],
                    modal=True,
                )
                return chosen == "Yes"
        return True

    # ------------------------------------------------------------------
    # Processes
    # ------------------------------------------------------------------

    async def execute_command(
        self,
        command: str,
        args: Sequence[str],
        consumer: Optional[OutputConsumer] = None,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
    ) -> Subprocess:
        """Run a process in the environment of the active kit."""
        environment: Dict[str, str] = {}
        environment.update(self.settings.environment)
        environment.update(self._kit_environment)
        environment.update(env or {})
        return await execute(command, args, consumer, environment, cwd or self.project_root)

    # ------------------------------------------------------------------
    # Variants and targets
    # ------------------------------------------------------------------

    def set_variant_options(self, variant: Variant) -> None:
        old_build_type = self.current_build_type
        self._variant = self._variant.with_options(variant)
        self._needs_reconfigure = True
        if self.current_build_type != old_build_type:
            self.on_build_type_changed.fire(self.current_build_type)

    async def set_variant(self, name: Optional[str] = None) -> bool:
        """
        Select a variant by name, or ask the user when no name is given.

        Returns:
            False if the user cancelled or the name is unknown
        """
        if name is None:
            items = [
                PickItem(label=v.short, description=v.long, value=v.name)
                for v in self._variants.values()
            ]
            chosen = await self.prompter.pick("Select a build variant", items)
            if chosen is None:
                return False
            name = chosen.value

        variant = self._variants.get(name)
        if variant is None:
            self.prompter.show_error(f"Unknown variant: {name}")
            return False

        self.set_variant_options(variant)
        self.state.update(active_variant=name)
        await self._follow_cache_path()
        logger.info(f"Variant set to {name} ({self.current_build_type})")
        return True

    def set_default_target(self, target: str) -> None:
        self.state.update(default_target=target)
        self.on_default_target_changed.fire(target)

    async def select_launch_target(self, name: Optional[str] = None) -> Optional[str]:
        executables = self.executable_targets
        if not executables:
            self.prompter.show_error(
                "No executable targets are available. Configure the project first."
            )
            return None

        if name is None:
            items = [
                PickItem(label=t.name, description=str(t.filepath or ""), value=t.name)
                for t in executables
            ]
            chosen = await self.prompter.pick("Select a target to launch", items)
            if chosen is None:
                return None
            name = chosen.value
        elif name not in {t.name for t in executables}:
            self.prompter.show_error(f"No executable target named {name}")
            return None

        self.state.update(launch_target=name)
        self.on_launch_target_changed.fire(name)
        return name

    async def launch_target_path(self) -> Optional[Path]:
        name = self.launch_target_name
        if name is None:
            name = await self.select_launch_target()
            if name is None:
                return None
        for target in self.executable_targets:
            if target.name == name:
                return target.filepath
        return None

    async def launch_target(self, consumer: Optional[OutputConsumer] = None) -> Optional[Subprocess]:
        path = await self.launch_target_path()
        if path is None:
            return None
        logger.info(f"Launching {path}")
        return await self.execute_command(str(path), [], consumer, cwd=path.parent)

    async def debug_target(self) -> Optional[Dict[str, Any]]:
        """
        Describe a debug session for the launch target.

        Returns:
            Launch description for the editor's debugger, or None
        """
        path = await self.launch_target_path()
        if path is None:
            return None
        if self.compiler_id == "MSVC":
            return {
                "type": "cppvsdbg",
                "name": f"Debug {path.name}",
                "request": "launch",
                "program": str(path),
                "cwd": str(path.parent),
                "environment": self.kit_environment,
            }
        return {
            "type": "cppdbg",
            "name": f"Debug {path.name}",
            "request": "launch",
            "program": str(path),
            "cwd": str(path.parent),
            "MIMode": "lldb" if self.compiler_id == "Clang" else "gdb",
            "environment": self.kit_environment,
        }

    # ------------------------------------------------------------------
    # Generic commands
    # ------------------------------------------------------------------

    async def install(self, consumer: Optional[OutputConsumer] = None) -> int:
        name = "INSTALL" if self.all_target_name == "ALL_BUILD" else "install"
        return await self.build(name, consumer)

    async def clean(self, consumer: Optional[OutputConsumer] = None) -> int:
        return await self.build("clean", consumer)

    async def clean_rebuild(self, consumer: Optional[OutputConsumer] = None) -> int:
        retc = await self.clean(consumer)
        if retc != 0:
            return retc
        return await self.build(consumer=consumer)

    def edit_cache(self) -> Optional[Path]:
        """Path of the cache file for the editor to open, or None."""
        if not self.cache_path.exists():
            self.prompter.show_error("There is no CMake cache. Configure the project first.")
            return None
        return self.cache_path

    async def reset_state(self) -> None:
        """Forget persisted selections and return to the default variant."""
        self.state.clear()
        default = self._variants.get(self.settings.default_variant)
        if default is not None:
            self.set_variant_options(default)
            await self._follow_cache_path()
        self.on_default_target_changed.fire(self.default_target)
        self.on_launch_target_changed.fire(None)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def dispose(self) -> None:
        """Release the cache watch and stop notifying subscribers."""
        self._unwatch_cache()
        for event in (
            self.on_project_name_changed,
            self.on_busy_changed,
            self.on_build_type_changed,
            self.on_default_target_changed,
            self.on_launch_target_changed,
            self.on_reconfigured,
        ):
            event.clear()

    async def async_dispose(self) -> None:
        await self.stop_current_process()
        consumer = self._cache_consumer
        self.dispose()
        if consumer is not None:
            await asyncio.wait([consumer])


__all__ = ["NO_WARN_UNUSED_CLI", "Target", "CMakeDriver"]
