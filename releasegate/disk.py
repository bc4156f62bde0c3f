"""Disk queries used by the free space rule.

Calls are blocking; the engine runs them in a worker thread with a timeout.
"""

import os
import shutil
from pathlib import Path


class DiskProvider:
    """Thin wrapper over the local filesystem."""

    def available_space(self, path: str) -> int | None:
        """Free bytes on the volume holding ``path``.

        Raises:
            FileNotFoundError: If the path does not exist.
            OSError: On other filesystem errors.
        """
        return shutil.disk_usage(path).free

    def folder_exists(self, path: str) -> bool:
        return os.path.isdir(path)

    def file_exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def parent_path(self, path: str) -> str:
        return str(Path(path).parent)
