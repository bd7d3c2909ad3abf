"""
Rendering of Python values as typed generator definitions (``-DKEY:TYPE=VALUE``).
"""

from dataclasses import dataclass
from typing import Any

from cmakekits.core.exceptions import ConfigureError

UNTYPED = "UNKNOWN"


@dataclass(frozen=True)
class CMakeValue:
    """A value with its declared cache type (``UNKNOWN`` renders untyped)."""

    type: str
    value: str


def cmakeify(value: Any) -> CMakeValue:
    """
    Convert a settings value to a ``CMakeValue``.

    - ``bool`` → ``BOOL`` ``TRUE``/``FALSE``
    - ``str`` → ``STRING``, with ``;`` escaped
    - ``int``/``float`` → ``STRING``
    - list of strings → ``STRING`` joined with ``;``
    - ``{"type": ..., "value": ...}`` → as declared

    Raises:
        ConfigureError: For any other value
    """
    if isinstance(value, CMakeValue):
        return value
    if isinstance(value, bool):
        return CMakeValue("BOOL", "TRUE" if value else "FALSE")
    if isinstance(value, str):
        return CMakeValue("STRING", value.replace(";", r"\;"))
    if isinstance(value, (int, float)):
        return CMakeValue("STRING", str(value))
    if isinstance(value, (list, tuple)):
        if not all(isinstance(v, str) for v in value):
            raise ConfigureError(f"Lists may only contain strings: {value!r}")
        return CMakeValue("STRING", ";".join(value))
    if isinstance(value, dict) and "type" in value and "value" in value:
        return CMakeValue(str(value["type"]).upper(), str(value["value"]))
    raise ConfigureError(f"Cannot convert {value!r} to a cache value")


def define_flag(key: str, value: Any) -> str:
    """Render one ``-D`` flag; untyped values omit the type suffix."""
    cmval = cmakeify(value)
    if cmval.type == UNTYPED:
        return f"-D{key}={cmval.value}"
    return f"-D{key}:{cmval.type}={cmval.value}"


__all__ = ["UNTYPED", "CMakeValue", "cmakeify", "define_flag"]
