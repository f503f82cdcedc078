"""Small shared helpers: alignment maths, shared values and durable file creation."""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO, Generic, TypeVar

T = TypeVar("T")

_EMPTY = object()


class SingleOrShared(Generic[T]):
    """A value held by one owner that can be promoted to a shared value on demand.

    Once shared, every call to :meth:`share` hands back the very same object.
    """

    __slots__ = ("_value", "_shared")

    def __init__(self, value: T = _EMPTY) -> None:  # type: ignore[assignment]
        self._value = value
        self._shared = False

    @property
    def is_shared(self) -> bool:
        """Whether the value has been promoted to a shared value."""
        return self._shared

    def share(self) -> T:
        """Promote the value to a shared one (if not already) and return it."""
        if self._value is _EMPTY:
            raise RuntimeError("variant should never be hit")
        self._shared = True
        return self._value


def align_up(value: int, align: int) -> int:
    """Round ``value`` up to the next multiple of ``align``."""
    return -(-value // align) * align


def align_down(value: int, align: int) -> int:
    """Round ``value`` down to the previous multiple of ``align``."""
    return (value // align) * align


def _sync_directory(path: Path) -> None:
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def create_file(path: str | os.PathLike[str], allow_existing: bool) -> BinaryIO:
    """Open ``path`` for reading and writing, creating it if missing.

    If ``allow_existing`` is false and the file already exists,
    :class:`FileExistsError` is raised. Existing contents are never truncated.
    On POSIX systems the parent directory is synced so the new entry is durable.
    """
    flags = os.O_RDWR | os.O_CREAT
    if not allow_existing:
        flags |= os.O_EXCL

    fd = os.open(path, flags, 0o644)
    file = os.fdopen(fd, "r+b")

    if os.name == "posix":
        try:
            _sync_directory(Path(path).parent)
        except OSError:
            file.close()
            raise

    return file