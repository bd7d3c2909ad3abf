"""
Top-level owner of the per-project drivers.

The orchestrator keeps one driver per registered project root and tracks
which root is active. Registration, removal and activation of roots run
through a Strand, so concurrent add/remove events never double-register a
root or use a driver that is being torn down.

Activating a root re-scopes the kits-file watch to the user kits file plus
the project kits file of that root, re-reads both files and re-applies the
active kit. Editor commands are dispatched to the active driver only after a
kit has been selected; when that is not possible they return a default value.

Example:
    >>> orchestrator = Orchestrator(factory, registry, bridge, prompter, reporter)
    >>> await orchestrator.add_project_root(Path("/work/app"))
    >>> await orchestrator.configure()
    0
"""

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, TypeVar, Union

from cmakekits.config import Settings, load_settings
from cmakekits.core.directory import project_kits_path
from cmakekits.core.exceptions import CMakeKitsError, ConfigError
from cmakekits.core.interfaces import (
    ErrorReporter,
    PickItem,
    Prompter,
    Scaffolder,
    WatchBridge,
    WatchSubscription,
)
from cmakekits.core.reporting import invoke_reported, take_task
from cmakekits.core.strand import Strand
from cmakekits.driver.base import CMakeDriver
from cmakekits.kits.model import Kit, UnspecifiedKit, describe_kit, is_unspecified, kit_label
from cmakekits.kits.registry import KitRegistry
from cmakekits.kits.scanner import ScanHints

logger = logging.getLogger(__name__)

T = TypeVar("T")

DriverFactory = Callable[[Path], Awaitable[CMakeDriver]]

SCAN_FOR_KITS = "Scan for kits"
USE_UNSPECIFIED = "Do not use a kit"
CLOSE = "Close"
CANCEL = "Cancel"


class Orchestrator:
    """
    Owns the drivers of all project roots.

    Attributes:
        registry: Kit registry shared by all projects
        prompter: Asks the user for decisions
        reporter: Receives consistency violations and background failures
        log_path: Log file reported by ``view_log``
    """

    def __init__(
        self,
        driver_factory: DriverFactory,
        registry: KitRegistry,
        watch_bridge: WatchBridge,
        prompter: Prompter,
        reporter: ErrorReporter,
        scaffolder: Optional[Scaffolder] = None,
        settings_loader: Callable[[Optional[Path]], Settings] = load_settings,
        log_path: Optional[Path] = None,
    ):
        self._driver_factory = driver_factory
        self.registry = registry
        self.watch_bridge = watch_bridge
        self.prompter = prompter
        self.reporter = reporter
        self.scaffolder = scaffolder
        self._settings_loader = settings_loader
        self.log_path = log_path

        self._strand = Strand("project-roots")
        self._drivers: Dict[Path, CMakeDriver] = {}
        self._active_root: Optional[Path] = None
        self._kits_watch: Optional[WatchSubscription] = None
        self._background: Set[asyncio.Future] = set()

        self.registry.set_changed_hook(self._on_kits_changed)

    # ------------------------------------------------------------------
    # Project roots
    # ------------------------------------------------------------------

    @staticmethod
    def _key(root: Union[str, Path]) -> Path:
        return Path(root).resolve()

    @property
    def project_roots(self) -> List[Path]:
        return list(self._drivers)

    @property
    def active_project_root(self) -> Optional[Path]:
        return self._active_root

    @property
    def active_driver(self) -> Optional[CMakeDriver]:
        if self._active_root is None:
            return None
        driver = self._drivers.get(self._active_root)
        if driver is None:
            self.reporter.error(
                "No driver attached to the active project root",
                root=str(self._active_root),
            )
        return driver

    def driver_for(self, root: Union[str, Path]) -> Optional[CMakeDriver]:
        return self._drivers.get(self._key(root))

    async def add_project_root(self, root: Union[str, Path]) -> Optional[CMakeDriver]:
        """
        Create the driver of a project root.

        The first registered root becomes the active one. Registering a root
        twice is reported and returns the existing driver. A driver that
        cannot be created is reported and the root stays unregistered.
        """
        key = self._key(root)

        async def _add() -> Optional[CMakeDriver]:
            existing = self._drivers.get(key)
            if existing is not None:
                self.reporter.error("Project root registered twice", root=str(key))
                return existing
            logger.info(f"Registering project root {key}")
            try:
                driver = await self._driver_factory(key)
            except (CMakeKitsError, OSError) as e:
                self.reporter.exception("Creating driver", e, root=str(key))
                return None
            self._drivers[key] = driver
            if self._active_root is None:
                await self._set_active_project_root(key)
            return driver

        return await self._strand.execute(_add)

    async def remove_project_root(self, root: Union[str, Path]) -> None:
        """Dispose of the driver of a project root."""
        key = self._key(root)

        async def _remove() -> None:
            driver = self._drivers.get(key)
            if driver is None:
                self.reporter.error("Removed a project root that is not registered", root=str(key))
                return
            logger.info(f"Unregistering project root {key}")
            if key == self._active_root:
                await self._set_active_project_root(None)
            del self._drivers[key]
            await driver.async_dispose()

        await self._strand.execute(_remove)

    async def on_project_roots_changed(
        self, added: Iterable[Union[str, Path]] = (), removed: Iterable[Union[str, Path]] = ()
    ) -> None:
        for root in removed:
            await self.remove_project_root(root)
        for root in added:
            await self.add_project_root(root)

    async def set_active_project_root(self, root: Optional[Union[str, Path]]) -> None:
        key = self._key(root) if root is not None else None
        await self._strand.execute(lambda: self._set_active_project_root(key))

    async def _set_active_project_root(self, root: Optional[Path]) -> None:
        if root is not None and root not in self._drivers:
            self.reporter.error(
                "No driver is registered for the project root being activated",
                root=str(root),
            )
            return
        logger.debug(f"Active project root: {root}")
        self._active_root = root
        self._reset_kits_watch()
        await self._reread_kits()
        await self._restore_kit()

    # ------------------------------------------------------------------
    # Kits files
    # ------------------------------------------------------------------

    @property
    def project_kits_path(self) -> Optional[Path]:
        if self._active_root is None:
            return None
        return project_kits_path(self._active_root)

    def _track(self, what: str, aw: Awaitable) -> asyncio.Future:
        task = asyncio.ensure_future(aw)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return take_task(self.reporter, what, task)

    def _reset_kits_watch(self) -> None:
        # The old subscription is released before the new one is created
        if self._kits_watch is not None:
            self._kits_watch.dispose()
            self._kits_watch = None

        paths = [self.registry.user_path]
        if self.project_kits_path is not None:
            paths.append(self.project_kits_path)
        self._kits_watch = self.watch_bridge.watch(*paths)
        self._track("Watching kits files", self._consume_kits_events(self._kits_watch))

    async def _consume_kits_events(self, subscription: WatchSubscription) -> None:
        async for event in subscription:
            logger.debug(f"Kits file {event.path} {event.kind}")
            await invoke_reported(self.reporter, "Re-reading kits", self._reread_kits())

    async def _reread_kits(self) -> None:
        await self.registry.reload(self.project_kits_path)
        # Pruning waits on the user, it runs in the background
        self.registry.start_prune()

    def on_document_saved(self, path: Union[str, Path]) -> Optional[asyncio.Future]:
        """Re-read kits when one of the kits files was saved in the editor."""
        saved = Path(path).resolve()
        kit_files = [self.registry.user_path.resolve()]
        if self.project_kits_path is not None:
            kit_files.append(self.project_kits_path.resolve())
        if saved not in kit_files:
            return None
        return self._track("Re-reading kits on save", self._reread_kits())

    async def _on_kits_changed(self) -> None:
        """Re-apply the active kit by name from the new kit set."""
        driver = self.active_driver
        if driver is None or driver.kit is None:
            return
        current = driver.kit
        replacement = self.registry.find(current.name)
        if replacement is None:
            logger.debug(f"Active kit '{current.name}' is no longer known")
            return
        if replacement != current:
            await driver.set_kit(replacement)

    async def _restore_kit(self) -> None:
        driver = self.active_driver
        if driver is None or driver.kit is not None:
            return
        name = driver.state.load().active_kit
        if name is None:
            return
        kit = self.registry.find(name)
        if kit is None:
            logger.info(f"Previously selected kit '{name}' is not available")
            return
        logger.debug(f"Restoring kit '{name}'")
        await driver.set_kit(kit)

    async def _set_current_kit(self, kit: Kit) -> None:
        driver = self.active_driver
        if driver is not None:
            await driver.set_kit(kit)

    # ------------------------------------------------------------------
    # Kit commands
    # ------------------------------------------------------------------

    def _mingw_dirs(self) -> List[str]:
        driver = self.active_driver
        if driver is not None:
            return list(driver.settings.mingw_search_dirs)
        try:
            return list(self._settings_loader(None).mingw_search_dirs)
        except ConfigError as e:
            self.reporter.exception("Loading settings for kit scan", e)
            return []

    async def scan_for_kits(self) -> List[Kit]:
        """Rescan the host, save the user kits and start pruning."""
        discovered = await self.registry.scan(ScanHints(mingw_search_dirs=self._mingw_dirs()))
        self.registry.start_prune()
        return discovered

    async def edit_kits(self) -> Optional[Path]:
        """
        Path of the user kits file for the editor to open.

        When the file does not exist yet, the user may scan to create it.
        """
        path = self.registry.user_path
        if not path.exists():
            chosen = await self.prompter.ask(
                "No kits file is present. What would you like to do?",
                [SCAN_FOR_KITS, CANCEL],
                modal=True,
            )
            if chosen != SCAN_FOR_KITS:
                return None
            await self.scan_for_kits()
            if not path.exists():
                return None
        return path

    async def _check_have_kits(self) -> str:
        """
        Returns:
            'ok', 'use-unspec' or 'cancel'
        """
        kits = self.registry.all_kits
        if len(kits) > 1:
            return "ok"
        if not kits or not is_unspecified(kits[0]):
            self.reporter.error("Invalid only kit. Expected to find the unspecified kit")
            return "ok"

        chosen = await self.prompter.ask(
            "No CMake kits are available. What would you like to do?",
            [SCAN_FOR_KITS, USE_UNSPECIFIED, CLOSE],
            modal=True,
        )
        if chosen == SCAN_FOR_KITS:
            await self.scan_for_kits()
            return "ok"
        if chosen == USE_UNSPECIFIED:
            await self._set_current_kit(UnspecifiedKit())
            return "use-unspec"
        return "cancel"

    async def select_kit(self, name: Optional[str] = None) -> bool:
        """
        Select the active kit, by name or from a menu.

        Returns:
            False if the user cancelled or the name is unknown
        """
        if name is not None:
            kit = self.registry.find(name)
            if kit is None and name == kit_label(UnspecifiedKit()):
                kit = UnspecifiedKit()
            if kit is None:
                self.prompter.show_error(f"No kit named {name}")
                return False
            await self._set_current_kit(kit)
            return True

        logger.debug(f"Start selection of kits. Found {len(self.registry.all_kits)} kits")
        state = await self._check_have_kits()
        if state == "cancel":
            return False
        if state == "use-unspec":
            return True

        items = [
            PickItem(label=kit_label(kit), description=describe_kit(kit), value=kit)
            for kit in self.registry.all_kits
        ]
        chosen = await self.prompter.pick("Select a Kit", items)
        if chosen is None:
            logger.debug("User cancelled kit selection")
            return False
        logger.debug(f"User selected kit {chosen.value.name}")
        await self._set_current_kit(chosen.value)
        return True

    async def _ensure_active_kit(self) -> bool:
        driver = self.active_driver
        if driver is None:
            return False
        if driver.kit is not None:
            return True
        if not await self.select_kit():
            return False
        return driver.kit is not None

    # ------------------------------------------------------------------
    # Driver commands
    # ------------------------------------------------------------------

    async def with_driver(
        self, default: T, fn: Callable[[CMakeDriver], Union[T, Awaitable[T]]]
    ) -> T:
        """
        Run ``fn`` on the active driver once a kit is selected.

        Returns:
            ``default`` if there is no active project, no kit was selected or
            the command failed with a reported error
        """
        driver = self.active_driver
        if driver is None:
            self.prompter.show_error("CMakeKits is not available without an open project")
            return default
        if not await self._ensure_active_kit():
            return default
        try:
            result = fn(driver)
            if inspect.isawaitable(result):
                result = await result
        except CMakeKitsError as e:
            self.reporter.exception("Running command", e, root=str(self._active_root))
            return default
        return result

    async def clean_configure(self) -> int:
        return await self.with_driver(-1, lambda d: d.clean_configure())

    async def configure(self, extra_args: Iterable[str] = ()) -> int:
        return await self.with_driver(-1, lambda d: d.configure(list(extra_args)))

    async def build(self, target: Optional[str] = None) -> int:
        return await self.with_driver(-1, lambda d: d.build(target))

    async def set_variant(self, name: Optional[str] = None) -> bool:
        return await self.with_driver(False, lambda d: d.set_variant(name))

    async def install(self) -> int:
        return await self.with_driver(-1, lambda d: d.install())

    async def edit_cache(self) -> Optional[Path]:
        return await self.with_driver(None, lambda d: d.edit_cache())

    async def clean(self) -> int:
        return await self.with_driver(-1, lambda d: d.clean())

    async def clean_rebuild(self) -> int:
        return await self.with_driver(-1, lambda d: d.clean_rebuild())

    async def _pick_default_target(self, driver: CMakeDriver, target: Optional[str]) -> Optional[str]:
        if target is None:
            if not driver.targets:
                self.prompter.show_error("No targets are known. Name the target explicitly.")
                return None
            items = [PickItem(label=t.name, description=t.type, value=t.name) for t in driver.targets]
            chosen = await self.prompter.pick("Select the default build target", items)
            if chosen is None:
                return None
            target = chosen.value
        driver.set_default_target(target)
        return target

    async def set_default_target(self, target: Optional[str] = None) -> Optional[str]:
        return await self.with_driver(None, lambda d: self._pick_default_target(d, target))

    async def ctest(self) -> int:
        return await self.with_driver(-1, lambda d: d.ctest())

    async def stop(self) -> bool:
        return await self.with_driver(False, lambda d: d.stop_current_process())

    async def quickstart(self) -> int:
        if self.scaffolder is None:
            self.prompter.show_error("Project quickstart is not available")
            return -1
        return await self.with_driver(-1, lambda d: self.scaffolder.quick_start(d.source_dir))

    async def launch_target_path(self) -> Optional[Path]:
        return await self.with_driver(None, lambda d: d.launch_target_path())

    async def debug_target(self):
        return await self.with_driver(None, lambda d: d.debug_target())

    async def launch_target(self):
        return await self.with_driver(None, lambda d: d.launch_target())

    async def select_launch_target(self, name: Optional[str] = None) -> Optional[str]:
        return await self.with_driver(None, lambda d: d.select_launch_target(name))

    async def reset_state(self) -> None:
        return await self.with_driver(None, lambda d: d.reset_state())

    async def view_log(self) -> Optional[Path]:
        return self.log_path

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def async_dispose(self) -> None:
        """Release watches and background work, then dispose every driver."""
        await self._strand.drain()
        if self._kits_watch is not None:
            self._kits_watch.dispose()
            self._kits_watch = None

        pending = list(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)

        self.registry.set_changed_hook(None)
        await self.registry.async_dispose()

        for driver in list(self._drivers.values()):
            await driver.async_dispose()
        self._drivers.clear()
        self._active_root = None


__all__ = ["DriverFactory", "Orchestrator"]
