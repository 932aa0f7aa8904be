from __future__ import annotations
import dataclasses
import os
import time
from dataclasses import dataclass
from typing import Optional

from ..debug_util import dbg
from ..ingestion.parser import Profile
from .base import Backend

DEFAULT_DIRECTORY = 'profiles'


@dataclass(frozen=True, kw_only=True, eq=False)
class FileBackend(Backend):
    """Write each exported profile to ``directory/filename``.

    Without a configured filename one is generated per send as
    ``profile_<YYYYmmddHHMMSS>.<ext>`` using the exporter's extension; a name
    already taken (two sends in one second) gets a ``_1``, ``_2``... suffix, so
    every send lands in its own file. An explicit filename is overwritten.
    Directory creation and write failures are logged and reported as a failed
    attempt (the generic retry policy still applies).
    """
    directory: str = DEFAULT_DIRECTORY
    filename: Optional[str] = None

    name = 'file'

    def __post_init__(self):
        if len(self.directory) > 1:
            object.__setattr__(self, 'directory', self.directory.rstrip('/') or '/')

    def with_directory(self, directory: str) -> "FileBackend":
        return dataclasses.replace(self, directory=directory)

    def with_filename(self, filename: Optional[str]) -> "FileBackend":
        return dataclasses.replace(self, filename=filename)

    def target_path(self) -> str:
        filename = self.filename
        if filename is None:
            filename = f"profile_{time.strftime('%Y%m%d%H%M%S')}.{self.exporter.file_extension}"
        return os.path.join(self.directory, filename)

    def is_available(self) -> bool:
        try:
            os.makedirs(self.directory, exist_ok=True)
        except OSError:
            return False
        return os.access(self.directory, os.W_OK)

    def _open_generated(self, path: str):
        """Create a fresh file for ``path``, adding ``_1``, ``_2``... when taken."""
        stem, ext = os.path.splitext(path)
        candidate, n = path, 0
        while True:
            try:
                return candidate, open(candidate, 'xb')
            except FileExistsError:
                n += 1
                candidate = f'{stem}_{n}{ext}'

    def _do_send(self, profile: Profile, payload: bytes) -> bool:
        try:
            os.makedirs(self.directory, exist_ok=True)
        except OSError as e:
            self.logger.warning('Failed to create directory %s: %s', self.directory, e)
            return False
        path = self.target_path()
        try:
            if self.filename is None:
                path, f = self._open_generated(path)
            else:
                f = open(path, 'wb')
            with f:
                f.write(payload)
        except OSError as e:
            self.logger.warning('Failed to write profile to %s: %s', path, e)
            return False
        dbg(f'file_written path={path} bytes={len(payload)}')
        return True


__all__ = ["FileBackend", "DEFAULT_DIRECTORY"]
