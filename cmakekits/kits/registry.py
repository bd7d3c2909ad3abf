"""
Layered kit registry.

Kits come from two files: the user-global kits file and, when a project is
active, the project-local kits file. The registry keeps both lists, exposes
their merge, and owns every change to the user list (scan, keep, remove,
prune) together with its persistence.

Merge rules:
- The ``__unspec__`` sentinel is appended to the user list after loading
  and is present exactly once in the merged set.
- User kits come first, project kits second; for a duplicated name the
  later entry wins.
- The sentinel is stripped before anything is written to disk.

Example:
    >>> registry = KitRegistry(prompter, reporter)
    >>> await registry.reload(project_kits_path(root))
    >>> [k.name for k in registry.all_kits]
    ['GCC 13.2.0 x86_64-linux-gnu', '__unspec__']
"""

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from cmakekits.core.directory import user_kits_path
from cmakekits.core.exceptions import KitFileError
from cmakekits.core.filesystem import find_executable
from cmakekits.core.interfaces import ErrorReporter, Prompter
from cmakekits.core.reporting import take_task
from cmakekits.kits import files
from cmakekits.kits.model import CompilerKit, Kit, UnspecifiedKit, is_unspecified
from cmakekits.kits.scanner import ScanHints, scan as default_scan

logger = logging.getLogger(__name__)

PRUNE_REMOVE = "Remove it"
PRUNE_KEEP = "Keep it"
WRITE_RETRY = "Retry"
WRITE_CANCEL = "Cancel"

KitsChangedHook = Callable[[], Awaitable[None]]


def with_sentinel(kits: Iterable[Kit]) -> List[Kit]:
    """Return ``kits`` with exactly one sentinel, placed last."""
    stripped = [k for k in kits if not is_unspecified(k)]
    stripped.append(UnspecifiedKit())
    return stripped


def merge_kits(user: Iterable[Kit], project: Iterable[Kit]) -> List[Kit]:
    """
    Merge user and project kits by name.

    The entry appearing later wins, keeping the position of the first
    occurrence. The sentinel is present exactly once.
    """
    by_name: Dict[str, Kit] = {}
    for kit in with_sentinel(user):
        by_name[kit.name] = kit
    for kit in project:
        if is_unspecified(kit):
            continue
        by_name[kit.name] = kit
    return list(by_name.values())


async def compiler_exists(path: str) -> bool:
    """
    Check that a compiler referenced by a kit exists.

    Absolute paths are checked directly; bare names are resolved on PATH.
    """
    if Path(path).is_absolute():
        return await asyncio.to_thread(Path(path).exists)
    return await asyncio.to_thread(find_executable, path) is not None


async def find_missing_compiler(kit: CompilerKit) -> Optional[str]:
    """Return the first compiler path of ``kit`` that does not exist, if any."""
    paths = list(kit.compilers.values())
    results = await asyncio.gather(*(compiler_exists(p) for p in paths))
    for path, exists in zip(paths, results):
        if not exists:
            return path
    return None


class KitRegistry:
    """
    Owns the user and project kit lists.

    Attributes:
        user_path: User-global kits file
        project_path: Kits file of the active project, if any
        prompter: Asked for keep/remove and retry decisions
        reporter: Receives failures of background pruning
    """

    def __init__(
        self,
        prompter: Prompter,
        reporter: ErrorReporter,
        user_path: Optional[Path] = None,
        scanner: Callable[[ScanHints], Awaitable[List[Kit]]] = default_scan,
    ):
        self.user_path = Path(user_path) if user_path else user_kits_path()
        self.project_path: Optional[Path] = None
        self.prompter = prompter
        self.reporter = reporter
        self._scanner = scanner
        self._user_kits: List[Kit] = with_sentinel([])
        self._project_kits: List[Kit] = []
        self._on_changed: Optional[KitsChangedHook] = None
        self._pending: Set[asyncio.Task] = set()
        # Orders changes of the user list together with their writes
        self._user_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def user_kits(self) -> List[Kit]:
        return list(self._user_kits)

    @property
    def project_kits(self) -> List[Kit]:
        return list(self._project_kits)

    @property
    def all_kits(self) -> List[Kit]:
        return merge_kits(self._user_kits, self._project_kits)

    def find(self, name: str) -> Optional[Kit]:
        for kit in self.all_kits:
            if kit.name == name:
                return kit
        return None

    def set_changed_hook(self, hook: Optional[KitsChangedHook]) -> None:
        """Register the coroutine run after every change of the kit lists."""
        self._on_changed = hook

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _read(self, path: Path) -> List[Kit]:
        try:
            return await files.load(path)
        except KitFileError as e:
            self.reporter.exception("Failed to read kits file", e, path=str(path))
            return []

    async def reload(self, project_path: Optional[Path] = None) -> None:
        """
        Re-read both kits files.

        Args:
            project_path: Kits file of the active project, or None
        """
        self.project_path = Path(project_path) if project_path else None
        user = await self._read(self.user_path)
        project = await self._read(self.project_path) if self.project_path else []
        logger.debug(
            f"Loaded {len(user)} user kits and {len(project)} project kits"
        )
        await self.set_known_kits(user, project)

    async def set_known_kits(self, user: Iterable[Kit], project: Iterable[Kit]) -> None:
        """Replace both lists and run the change hook."""
        self._user_kits = with_sentinel(user)
        self._project_kits = [k for k in project if not is_unspecified(k)]
        if self._on_changed is not None:
            await self._on_changed()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def write_user_kits(self, kits: Iterable[Kit]) -> bool:
        """
        Persist the user kits, offering a retry when the write fails.

        Returns:
            True if the file was written. A declined retry drops the write;
            the in-memory list stays correct.
        """
        kits = list(kits)
        while True:
            try:
                await files.persist(kits, self.user_path)
                return True
            except KitFileError as e:
                logger.warning(f"Failed to write kits file: {e}")
                choice = await self.prompter.ask(
                    f"Failed to write kits file to disk: {self.user_path}: {e.reason}",
                    [WRITE_RETRY, WRITE_CANCEL],
                )
                if choice != WRITE_RETRY:
                    logger.info("Kits file write abandoned")
                    return False

    # ------------------------------------------------------------------
    # Mutation of the user list
    # ------------------------------------------------------------------

    async def _update_user_kits(self, change: Callable[[List[Kit]], List[Kit]]) -> bool:
        """
        Apply ``change`` to the current user list and persist the result.

        Changes run one at a time, and each write persists the user list as
        it is at write time, so a later write never carries an older list.
        """
        async with self._user_lock:
            await self.set_known_kits(change(list(self._user_kits)), self._project_kits)
            return await self.write_user_kits(self._user_kits)

    async def scan(self, hints: Optional[ScanHints] = None) -> List[Kit]:
        """
        Discover installed toolchains and merge them into the user kits.

        A discovered kit replaces a stored kit of the same name wholesale;
        a previously set ``keep`` flag is not carried over.

        Returns:
            The newly discovered kits
        """
        logger.info("Rescanning for kits")
        discovered = await self._scanner(hints or ScanHints())

        def _merge(current: List[Kit]) -> List[Kit]:
            by_name: Dict[str, Kit] = {k.name: k for k in current}
            for kit in discovered:
                by_name[kit.name] = kit
            return list(by_name.values())

        await self._update_user_kits(_merge)
        return discovered

    async def keep_kit(self, kit: Kit) -> bool:
        """Mark a user kit ``keep=True`` and persist."""
        return await self._update_user_kits(
            lambda current: [replace(k, keep=True) if k.name == kit.name else k for k in current]
        )

    async def remove_kit(self, kit: Kit) -> bool:
        """Delete a user kit and persist."""
        return await self._update_user_kits(
            lambda current: [k for k in current if k.name != kit.name]
        )

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------

    async def _prune_kit(self, kit: CompilerKit) -> Optional[str]:
        missing = await find_missing_compiler(kit)
        if missing is None:
            return None

        chosen = await self.prompter.ask(
            f'The kit "{kit.name}" references a non-existent compiler binary '
            f"[{missing}]. What would you like to do?",
            [PRUNE_REMOVE, PRUNE_KEEP],
        )
        if chosen == PRUNE_KEEP:
            await self.keep_kit(kit)
            return "keep"
        if chosen == PRUNE_REMOVE:
            await self.remove_kit(kit)
            return "remove"
        return None

    async def prune(self, kits: Optional[Iterable[Kit]] = None) -> Dict[str, Optional[str]]:
        """
        Offer removal of user kits whose compilers no longer exist.

        Kits marked ``keep`` and kits without compilers are skipped. Kits are
        checked concurrently and each one's failure is reported separately.

        Returns:
            Kit name → decision ('keep', 'remove' or None) for each candidate
        """
        source = self._user_kits if kits is None else list(kits)
        candidates = [
            k for k in source if isinstance(k, CompilerKit) and k.keep is not True
        ]
        results = await asyncio.gather(
            *(self._prune_kit(k) for k in candidates), return_exceptions=True
        )

        decisions: Dict[str, Optional[str]] = {}
        for kit, result in zip(candidates, results):
            if isinstance(result, BaseException):
                self.reporter.exception("Pruning kit", result, kit=kit.name)
                decisions[kit.name] = None
            else:
                decisions[kit.name] = result
        return decisions

    def start_prune(self) -> "asyncio.Task":
        """
        Run ``prune`` in the background; failures go to the reporter.

        While a prune is running, the running task is returned instead of
        starting another one, so a kit is never offered for removal twice.
        """
        for running in self._pending:
            if not running.done():
                return running
        task = asyncio.ensure_future(self.prune())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return take_task(self.reporter, "Pruning kits", task)

    async def async_dispose(self) -> None:
        """Cancel background pruning."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.wait(list(self._pending))
        self._on_changed = None


__all__ = [
    "PRUNE_REMOVE",
    "PRUNE_KEEP",
    "WRITE_RETRY",
    "WRITE_CANCEL",
    "with_sentinel",
    "merge_kits",
    "compiler_exists",
    "find_missing_compiler",
    "KitRegistry",
]
