"""
Persisted per-project driver state.

A driver remembers the user's selections for its project root (kit, variant,
default build target, launch target) in ``<root>/.cmakekits/state.json`` so
the next session can restore them.

Example:
    >>> manager = StateManager(Path('/work/app'))
    >>> manager.update(active_kit='GCC 13.2.0 x86_64-linux-gnu')
    >>> manager.load().active_kit
    'GCC 13.2.0 x86_64-linux-gnu'
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from cmakekits.core.directory import project_state_path
from cmakekits.core.exceptions import StateError
from cmakekits.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

STATE_VERSION = 1


@dataclass
class DriverState:
    """
    Selections of one project root.

    Attributes:
        version: Format version of state.json
        active_kit: Name of the last selected kit
        active_variant: Name of the last selected variant
        default_target: Target of a plain build
        launch_target: Executable target to launch or debug
    """

    version: int = STATE_VERSION
    active_kit: Optional[str] = None
    active_variant: Optional[str] = None
    default_target: Optional[str] = None
    launch_target: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriverState":
        # Keys written by other versions are dropped
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StateManager:
    """
    Reads and writes the state file of one project root.

    The state is read once and cached; every change is written through
    atomically.
    """

    def __init__(self, project_root: Path):
        project_root = Path(project_root)
        if not project_root.is_dir():
            raise StateError(f"Cannot keep state for {project_root}: not a directory")

        self.project_root = project_root.resolve()
        self.state_file = project_state_path(self.project_root)
        self._cached: Optional[DriverState] = None

    def _read(self) -> DriverState:
        try:
            raw = json.loads(self.state_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return DriverState()
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.state_file}: {e}")
            return DriverState()

        if not isinstance(raw, dict):
            logger.warning(f"Ignoring state file {self.state_file}: expected an object")
            return DriverState()
        return DriverState.from_dict(raw)

    def load(self) -> DriverState:
        """Current state; defaults when the file is missing or unreadable."""
        if self._cached is None:
            self._cached = self._read()
            logger.debug(f"State of {self.project_root}: {self._cached}")
        return self._cached

    def save(self, state: DriverState) -> None:
        self._cached = state
        atomic_write(self.state_file, json.dumps(state.to_dict(), indent=2))

    def update(self, **changes: Any) -> DriverState:
        """
        Change some fields and write the file.

        Raises:
            StateError: A field name is unknown
        """
        state = self.load()
        known = {f.name for f in fields(DriverState)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise StateError(f"Unknown state fields: {', '.join(unknown)}")
        for key, value in changes.items():
            setattr(state, key, value)
        self.save(state)
        return state

    def clear(self) -> None:
        """Forget every selection."""
        self.save(DriverState())
        logger.info(f"Reset state of {self.project_root}")


__all__ = ["DriverState", "StateManager"]
