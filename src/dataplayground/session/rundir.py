"""Per-session run directories.

Every session runs its interpreter inside a fresh temporary directory
seeded with copies of the template files. The directory is owned by
exactly one session and removed when that session ends.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path

from dataplayground.errors import ProvisioningError

logger = logging.getLogger(__name__)


class RunDirectory:
    """An ephemeral directory owned by one session."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._removed = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def removed(self) -> bool:
        return self._removed

    def join(self, name: str) -> Path:
        return self._path / name

    async def remove(self) -> None:
        """Delete the directory tree. Best-effort: errors are only logged."""
        if self._removed:
            return
        self._removed = True
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._rmtree)

    def remove_now(self) -> None:
        """Delete the directory tree without yielding to the event loop."""
        if self._removed:
            return
        self._removed = True
        self._rmtree()

    def _rmtree(self) -> None:
        try:
            shutil.rmtree(self._path)
            logger.info("Removed run directory %s", self._path)
        except OSError as e:
            logger.warning("Could not remove run directory %s: %s", self._path, e)

    def __repr__(self) -> str:
        return f"RunDirectory({str(self._path)!r})"


class RunDirectoryProvisioner:
    """Creates isolated run directories from a template directory.

    Usage::

        provisioner = RunDirectoryProvisioner("templates/r")
        run_dir = await provisioner.provision()
        ...
        await run_dir.remove()
    """

    def __init__(self, template_dir: Path | str, prefix: str = "dataplayground-") -> None:
        self._template_dir = Path(template_dir)
        self._prefix = prefix

    @property
    def template_dir(self) -> Path:
        return self._template_dir

    async def provision(self) -> RunDirectory:
        """Create a directory and copy every template file into it.

        The directory is returned only after all copies have finished.

        Raises:
            ProvisioningError: If the template cannot be listed, the
                directory cannot be created, or a file fails to copy.
        """
        loop = asyncio.get_running_loop()
        path = await loop.run_in_executor(None, self._provision_sync)
        logger.info("Provisioned run directory %s from %s", path, self._template_dir)
        return RunDirectory(path)

    def _provision_sync(self) -> Path:
        try:
            files = sorted(
                entry.path for entry in os.scandir(self._template_dir) if entry.is_file()
            )
        except OSError as e:
            raise ProvisioningError(
                f"Cannot list template directory {self._template_dir}: {e}",
                path=str(self._template_dir),
            ) from e

        try:
            dst = Path(tempfile.mkdtemp(prefix=self._prefix))
        except OSError as e:
            raise ProvisioningError(f"Cannot create run directory: {e}") from e

        for src in files:
            try:
                shutil.copyfile(src, dst / os.path.basename(src))
            except OSError as e:
                shutil.rmtree(dst, ignore_errors=True)
                raise ProvisioningError(
                    f"Failed to copy template file {src}: {e}", path=src
                ) from e
        logger.debug("Copied %d template file(s) into %s", len(files), dst)
        return dst
