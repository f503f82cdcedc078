"""Tracking, creation and removal of the storage system's files.

Files are split into groups (pages, metadata, WAL), each kept in its own
sub-folder of the base directory and named ``<sort key>-<id>.<extension>``.
"""

from __future__ import annotations

import asyncio
import enum
import errno
import itertools
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .file import DirFile, RingFile, ROFile, RWFile

logger = logging.getLogger(__name__)

_U32_MAX = 0xFFFF_FFFF
_FIRST_FILE_ID = 1000
_MAX_REGISTERED_FILES = 32_000
# Only the directory itself holds a handle when nothing else is using the file.
_DEFAULT_FILE_REF_COUNT = 1
_CLOEXEC = getattr(os, "O_CLOEXEC", 0)
_FILE_FLAGS = os.O_RDWR | _CLOEXEC
_DIGITS = frozenset("0123456789")


@dataclass(frozen=True, order=True)
class FileId:
    """A unique identifier for a file."""

    value: int

    def __int__(self) -> int:
        return self.value


class FileGroup(enum.Enum):
    """Which kind of data a file holds, and so where it is stored."""

    PAGES = "pages"
    METADATA = "metadata"
    WAL = "wal"

    def extension(self) -> str:
        """The file name extension used by files in the group."""
        return _EXTENSIONS[self]

    def folder_name(self) -> str:
        """The name of the sub-folder holding the group's files."""
        return self.value


_EXTENSIONS = {
    FileGroup.PAGES: "dat.lnx",
    FileGroup.METADATA: "pts.lnx",
    FileGroup.WAL: "wal.lnx",
}


class InvalidFilenameError(OSError):
    """A file in a group folder has a name that cannot be understood."""

    def __init__(self, message: str = "invalid filename") -> None:
        super().__init__(message)


def _parse_u32(text: str) -> int:
    if not text:
        raise ValueError("cannot parse integer from empty string")
    digits = text[1:] if text.startswith("+") else text
    if not digits or not set(digits) <= _DIGITS:
        raise ValueError("invalid digit found in string")
    value = int(digits)
    if value > _U32_MAX:
        raise ValueError("number too large to fit in target type")
    return value


def _ensure_is_directory(path: Path) -> None:
    if not path.is_dir():
        if not path.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))
        raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), str(path))


def _create_base_dir(path: Path) -> None:
    if path.exists():
        _ensure_is_directory(path)
    path.mkdir(parents=True, exist_ok=True)


def _create_file(path: Path) -> int:
    return os.open(path, _FILE_FLAGS | os.O_CREAT | os.O_EXCL, 0o644)


def _open_file(path: Path) -> int:
    fd = os.open(path, _FILE_FLAGS)
    try:
        # Flush anything a crashed process may have left half written.
        os.fsync(fd)
    except OSError:
        os.close(fd)
        raise
    return fd


def list_files(file_group: FileGroup, path) -> list[tuple[int, Path]]:
    """List the group's files in ``path`` as ``(file id, path)`` pairs sorted by id.

    Directories and files with other extensions are skipped; empty files are
    removed and skipped. Malformed names raise :class:`InvalidFilenameError`.
    """
    extension = file_group.extension()
    found: list[tuple[int, Path]] = []

    for entry in os.scandir(path):
        entry_path = Path(entry.path)
        if entry.is_dir():
            logger.warning("unexpected directory present in system files: %s", entry_path)
            continue

        name = entry.name
        if not name.endswith(extension):
            logger.warning("unexpected file present in system files: %s", entry_path)
            continue

        stem = name[: -len(extension)]
        if not stem.endswith("."):
            raise InvalidFilenameError()
        _sort_key, hyphen, raw_id = stem[:-1].partition("-")
        if not hyphen:
            raise InvalidFilenameError()

        try:
            file_id = _parse_u32(raw_id)
        except ValueError as exc:
            raise InvalidFilenameError(f"invalid file id present: {exc}") from exc

        if entry.stat().st_size == 0:
            try:
                entry_path.unlink()
            except OSError as exc:
                logger.warning("cannot remove empty file: %s", exc)
            continue

        found.append((file_id, entry_path))

    found.sort(key=lambda item: item[0])
    return found


class _GroupDirectory:
    """The files of one group, kept in their own folder."""

    def __init__(self, file_group: FileGroup, base_path: Path) -> None:
        self.file_group = file_group
        self.base_path = base_path
        self.files: dict[int, RingFile] = {}
        self._ring_ids = itertools.count()
        self.lock = asyncio.Lock()
        self.dir_file: DirFile | None = None

    @classmethod
    def open(cls, file_group: FileGroup, parent_path: Path) -> _GroupDirectory:
        base_path = parent_path / file_group.folder_name()
        logger.info("opening directory %s", base_path)
        try:
            base_path.mkdir()
        except FileExistsError:
            _ensure_is_directory(base_path)

        this = cls(file_group, base_path)
        dir_fd = os.open(base_path, os.O_RDONLY | _CLOEXEC)
        this.dir_file = DirFile(this._register(0, dir_fd))

        try:
            for file_id, path in list_files(file_group, base_path):
                this.files[file_id] = this._register(file_id, _open_file(path))
        except BaseException:
            this._close_all()
            raise
        return this

    def _register(self, file_id: int, fd: int) -> RingFile:
        registered = len(self.files) + (1 if self.dir_file is not None else 0)
        if registered >= _MAX_REGISTERED_FILES:
            os.close(fd)
            raise OSError("out of capacity")
        return RingFile(file_id, next(self._ring_ids), fd)

    def _close_all(self) -> None:
        for ring_file in self.files.values():
            ring_file.release()
        self.files.clear()
        if self.dir_file is not None:
            self.dir_file.close()

    def file_path(self, file_id: int) -> Path:
        return self.base_path / f"{file_id:010d}-{file_id}.{self.file_group.extension()}"

    def next_file_id(self) -> int:
        return max(self.files) + 1 if self.files else _FIRST_FILE_ID

    def get(self, file_id: int) -> RingFile:
        try:
            return self.files[file_id]
        except KeyError:
            raise FileNotFoundError(
                errno.ENOENT, os.strerror(errno.ENOENT), str(self.file_path(file_id))
            ) from None

    async def create_new_file(self) -> int:
        assigned_id = self.next_file_id()
        path = self.file_path(assigned_id)
        fd = await asyncio.to_thread(_create_file, path)

        try:
            await self.dir_file.sync()
            ring_file = self._register(assigned_id, fd)
        except BaseException:
            try:
                os.close(fd)
            except OSError:
                pass
            try:
                await asyncio.to_thread(os.remove, path)
            except OSError:
                pass
            raise

        if assigned_id in self.files:
            raise RuntimeError("inserted file that already existed")
        self.files[assigned_id] = ring_file
        return assigned_id

    async def remove_file(self, file_id: int) -> None:
        ring_file = self.files.get(file_id)
        if ring_file is None:
            return
        if ring_file.ref_count() > _DEFAULT_FILE_REF_COUNT:
            raise OSError(errno.EBUSY, "file is still in use")

        # The file leaves the state here: it can no longer be accessed safely.
        del self.files[file_id]
        ring_file.release()

        await asyncio.to_thread(os.remove, self.file_path(file_id))
        await self.dir_file.sync()


class SystemDirectory:
    """Tracks every file of the storage system and manages their lifecycle."""

    def __init__(self, base_path: Path, groups: dict[FileGroup, _GroupDirectory]) -> None:
        self._base_path = base_path
        self._groups = groups

    @property
    def base_path(self) -> Path:
        return self._base_path

    def __repr__(self) -> str:
        return f"SystemDirectory(path={self._base_path})"

    @classmethod
    async def open(cls, base_path) -> SystemDirectory:
        """Open the directory at ``base_path``, creating it if it does not exist."""
        base = Path(base_path)
        await asyncio.to_thread(_create_base_dir, base)

        groups: dict[FileGroup, _GroupDirectory] = {}
        try:
            for group in FileGroup:
                groups[group] = await asyncio.to_thread(_GroupDirectory.open, group, base)
        except BaseException:
            for opened in groups.values():
                opened._close_all()
            raise
        return cls(base, groups)

    async def create_new_file(self, group: FileGroup) -> FileId:
        """Create a new file in ``group`` and return its freshly assigned ID."""
        directory = self._groups[group]
        async with directory.lock:
            return FileId(await directory.create_new_file())

    async def remove_file(self, group: FileGroup, file_id: FileId) -> None:
        """Remove a file; does nothing if it does not exist.

        Raises :class:`OSError` with ``EBUSY`` if the file is still in use.
        """
        directory = self._groups[group]
        async with directory.lock:
            await directory.remove_file(file_id.value)

    async def get_ro_file(self, group: FileGroup, file_id: FileId) -> ROFile:
        """Get a read-only handle to a file; raises :class:`FileNotFoundError`."""
        return ROFile(self._groups[group].get(file_id.value).clone())

    async def get_rw_file(self, group: FileGroup, file_id: FileId) -> RWFile:
        """Get a read/write handle to a file; raises :class:`FileNotFoundError`.

        Nothing prevents several writers to the same file existing at once.
        """
        return RWFile(self._groups[group].get(file_id.value).clone())

    async def list_dir(self, group: FileGroup) -> list[FileId]:
        """The IDs of the open files in ``group``, in ascending order."""
        return [FileId(file_id) for file_id in sorted(self._groups[group].files)]

    async def num_open_files(self, group: FileGroup) -> int:
        """The number of open files in ``group``."""
        return len(self._groups[group].files)