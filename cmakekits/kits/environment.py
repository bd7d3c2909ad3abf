"""
Environment resolution for IDE-suite kits.

A Visual Studio kit does not store compiler paths. Its environment is
recovered by running the suite's ``vcvarsall.bat`` for the kit architecture
and capturing the resulting variables.
"""

import asyncio
import json
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Optional

from cmakekits.core.filesystem import IS_WINDOWS
from cmakekits.core.interfaces import SuiteEnvironmentProvider
from cmakekits.kits.scanner import VSWHERE_PATH

logger = logging.getLogger(__name__)


def parse_set_output(output: str) -> Dict[str, str]:
    """Parse the ``KEY=VALUE`` lines printed by ``cmd /c set``."""
    env: Dict[str, str] = {}
    for line in output.splitlines():
        if "=" not in line or line.startswith("="):
            continue
        key, value = line.split("=", 1)
        env[key] = value
    return env


class VsWhereEnvironmentProvider(SuiteEnvironmentProvider):
    """Resolves suite environments with vswhere and vcvarsall."""

    def __init__(self, vswhere_path: Path = VSWHERE_PATH):
        self.vswhere_path = vswhere_path

    def _installation_path(self, suite_id: str) -> Optional[Path]:
        if not self.vswhere_path.exists():
            return None
        result = subprocess.run(
            [str(self.vswhere_path), "-all", "-format", "json", "-legacy", "-prerelease"],
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
        if result.returncode != 0:
            return None
        for inst in json.loads(result.stdout or "[]"):
            if inst.get("instanceId") == suite_id and inst.get("installationPath"):
                return Path(inst["installationPath"])
        return None

    def _resolve(self, suite_id: str, architecture: str) -> Optional[Dict[str, str]]:
        install = self._installation_path(suite_id)
        if install is None:
            logger.debug(f"No installation found for suite {suite_id}")
            return None

        vcvarsall = install / "VC" / "Auxiliary" / "Build" / "vcvarsall.bat"
        if not vcvarsall.exists():
            logger.debug(f"vcvarsall.bat not found in {install}")
            return None

        with tempfile.TemporaryDirectory(prefix="cmakekits_") as tmp:
            script = Path(tmp) / "vcvars.bat"
            script.write_text(
                f'@echo off\r\ncall "{vcvarsall}" {architecture} >NUL\r\nset\r\n',
                encoding="utf-8",
            )
            result = subprocess.run(
                ["cmd.exe", "/c", str(script)],
                capture_output=True,
                text=True,
                timeout=60,
                check=False,
            )
        if result.returncode != 0:
            logger.debug(f"vcvarsall returned {result.returncode}")
            return None

        env = parse_set_output(result.stdout)
        # vcvarsall succeeded only if it set up the tools directory
        if "VCToolsInstallDir" not in env and "VCINSTALLDIR" not in env:
            return None
        return env

    async def get_environment(
        self, suite_id: str, architecture: str
    ) -> Optional[Dict[str, str]]:
        if not IS_WINDOWS:
            return None
        try:
            return await asyncio.to_thread(self._resolve, suite_id, architecture)
        except (OSError, subprocess.TimeoutExpired, json.JSONDecodeError) as e:
            logger.debug(f"Suite environment resolution failed: {e}")
            return None


__all__ = ["parse_set_output", "VsWhereEnvironmentProvider"]
