"""
Driver running the generator executable as a plain subprocess.

Each configure and build is a separate ``cmake`` invocation; project
information comes only from the cache file, so no target list is available.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

from cmakekits.cmake.generators import pick_generator
from cmakekits.core.filesystem import safe_rmtree
from cmakekits.core.process import OutputConsumer, Subprocess
from cmakekits.core.reporting import invoke_reported
from cmakekits.driver.base import CMakeDriver, Target
from cmakekits.kits.model import Kit

logger = logging.getLogger(__name__)


class CommandLineDriver(CMakeDriver):
    """Concrete driver invoking ``cmake`` and ``ctest`` on the command line."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._current_process: Optional[Subprocess] = None

    @property
    def targets(self) -> List[Target]:
        return []

    @property
    def needs_reconfigure(self) -> bool:
        return self._needs_reconfigure or not self.cache_path.exists()

    def _clean_prior_configuration(self) -> None:
        cache = self.cache_path
        files_dir = self.binary_dir / "CMakeFiles"
        if cache.exists():
            logger.info(f"Removing {cache}")
            cache.unlink()
        if files_dir.exists():
            logger.info(f"Removing {files_dir}")
            safe_rmtree(files_dir, within=self.binary_dir)

    async def set_kit(self, kit: Kit) -> None:
        if self.needs_clean(kit):
            logger.info(
                f"Switching from kit '{self._kit.name}' to '{kit.name}' "
                f"requires a clean configure"
            )
            await asyncio.to_thread(self._clean_prior_configuration)
        await self._set_base_kit(kit)
        self._needs_reconfigure = True

    def select_generator(self) -> Optional[str]:
        """
        Generator used for the next configure.

        An existing cache keeps its generator. Otherwise: the kit's preferred
        generator, then the configured override, then the first available
        preferred generator.
        """
        cached = self._cmake_cache.get("CMAKE_GENERATOR") if self._cmake_cache else None
        if cached is not None and cached.value:
            return cached.value
        if self._kit is not None and self._kit.preferred_generator:
            return self._kit.preferred_generator
        if self.settings.generator:
            return self.settings.generator
        return pick_generator(self.settings.preferred_generators)

    async def _run(
        self,
        command: str,
        args: Sequence[str],
        consumer: Optional[OutputConsumer],
        cwd: Optional[Path] = None,
    ) -> int:
        """Run one process. The caller holds the busy flag."""
        try:
            try:
                proc = await self.execute_command(command, args, consumer, cwd=cwd)
            except FileNotFoundError as e:
                logger.error(f"Cannot run {command}: {e}")
                self.prompter.show_error(f"Cannot run {command}. Is it installed?")
                return -1
            self._current_process = proc
            result = await proc.wait()
        finally:
            self._current_process = None
        return result.retc if result.retc is not None else -1

    async def configure(
        self, extra_args: Sequence[str] = (), consumer: Optional[OutputConsumer] = None
    ) -> int:
        if not self._claim_busy():
            return -1
        try:
            return await self._configure(extra_args, consumer)
        finally:
            self._set_busy(False)

    async def _configure(
        self, extra_args: Sequence[str] = (), consumer: Optional[OutputConsumer] = None
    ) -> int:
        if not await self._before_configure(check_busy=False):
            return -1

        generator = self.select_generator()
        if generator:
            self._generator_name = generator

        args = ["-S", str(self.source_dir), "-B", str(self.binary_dir)]
        if generator:
            args.extend(["-G", generator])
        args.extend(self.kit_configure_arguments())
        args.extend(self.prepare_configure_arguments())
        if self.settings.install_prefix:
            prefix = self.settings.install_prefix
            prefix = prefix.replace("${buildType}", self.current_build_type)
            args.append(f"-DCMAKE_INSTALL_PREFIX:PATH={prefix}")
        args.extend(self.settings.configure_args)
        args.extend(extra_args)

        logger.info(f"Configuring {self.source_dir} into {self.binary_dir}")
        retc = await self._run(self.settings.cmake_path, args, consumer)
        if retc == 0:
            self._needs_reconfigure = False
            await invoke_reported(
                self.reporter,
                "Reloading CMake cache",
                self._reload_cmake_cache(),
                path=str(self.cache_path),
            )
            self.on_reconfigured.fire(None)
        else:
            logger.warning(f"Configure failed with exit code {retc}")
        return retc

    async def clean_configure(self, consumer: Optional[OutputConsumer] = None) -> int:
        if not self._claim_busy():
            return -1
        try:
            await asyncio.to_thread(self._clean_prior_configuration)
            return await self._configure(consumer=consumer)
        finally:
            self._set_busy(False)

    async def build(
        self, target: Optional[str] = None, consumer: Optional[OutputConsumer] = None
    ) -> int:
        if not self._claim_busy():
            return -1
        try:
            return await self._build(target, consumer)
        finally:
            self._set_busy(False)

    async def _build(
        self, target: Optional[str] = None, consumer: Optional[OutputConsumer] = None
    ) -> int:
        if self.needs_reconfigure:
            retc = await self._configure(consumer=consumer)
            if retc != 0:
                return retc

        target = target or self.default_target
        args = ["--build", str(self.binary_dir), "--target", target]
        if self.is_multi_conf:
            args.extend(["--config", self.current_build_type])
        if self.settings.build_args:
            args.append("--")
            args.extend(self.settings.build_args)

        logger.info(f"Building target {target}")
        return await self._run(self.settings.cmake_path, args, consumer)

    async def ctest(self, consumer: Optional[OutputConsumer] = None) -> int:
        """Build the default target, then run the tests."""
        if not self._claim_busy():
            return -1
        try:
            retc = await self._build(consumer=consumer)
            if retc != 0:
                return retc
            args = [
                "-j",
                str(os.cpu_count() or 1),
                "-C",
                self.current_build_type,
                "-T",
                "test",
                "--output-on-failure",
            ]
            return await self._run(
                self.settings.ctest_path, args, consumer, cwd=self.binary_dir
            )
        finally:
            self._set_busy(False)

    async def stop_current_process(self) -> bool:
        proc = self._current_process
        if proc is None:
            return False
        proc.terminate()
        await proc.wait()
        return True


__all__ = ["CommandLineDriver"]
