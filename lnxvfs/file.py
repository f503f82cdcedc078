"""Reference-counted file handles and mode-specific asynchronous file access."""

from __future__ import annotations

import asyncio
import errno
import os
import threading


class _SharedDescriptor:
    __slots__ = ("fd", "refs", "lock")

    def __init__(self, fd: int) -> None:
        self.fd = fd
        self.refs = 1
        self.lock = threading.Lock()


class RingFile:
    """A shared handle to an open file descriptor.

    Every handle counts as one reference; the descriptor is closed when the
    last handle is released.
    """

    __slots__ = ("_id", "_ring_id", "_shared", "_released")

    def __init__(self, file_id: int, ring_id: int, fd: int) -> None:
        self._id = file_id
        self._ring_id = ring_id
        self._shared = _SharedDescriptor(fd)
        self._released = False

    @property
    def id(self) -> int:
        """The unique ID assigned to the file."""
        return self._id

    @property
    def ring_id(self) -> int:
        """The ID assigned to the file by the I/O scheduler."""
        return self._ring_id

    @property
    def fd(self) -> int:
        """The underlying file descriptor."""
        if self._released:
            raise ValueError("file handle has been released")
        return self._shared.fd

    def clone(self) -> RingFile:
        """Return a new handle sharing the same descriptor."""
        if self._released:
            raise ValueError("file handle has been released")
        other = object.__new__(RingFile)
        other._id = self._id
        other._ring_id = self._ring_id
        other._shared = self._shared
        other._released = False
        with self._shared.lock:
            self._shared.refs += 1
        return other

    def release(self) -> None:
        """Drop this handle's reference, closing the descriptor if it was the last."""
        if self._released:
            return
        self._released = True
        with self._shared.lock:
            self._shared.refs -= 1
            last = self._shared.refs == 0
        if last:
            os.close(self._shared.fd)

    def ref_count(self) -> int:
        """The number of live handles to the descriptor."""
        return self._shared.refs

    def __repr__(self) -> str:
        return f"RingFile(id={self._id}, ring_id={self._ring_id})"


def _datasync(fd: int) -> None:
    sync = getattr(os, "fdatasync", None) or os.fsync
    sync(fd)


class File:
    """An open file; owns one reference to its :class:`RingFile` until closed."""

    def __init__(self, file_ref: RingFile) -> None:
        self._file_ref = file_ref
        self._closed = False

    @property
    def id(self) -> int:
        """The unique ID of the file."""
        return self._file_ref.id

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the file's reference; safe to call more than once."""
        if not self._closed:
            self._closed = True
            self._file_ref.release()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __del__(self) -> None:
        if not getattr(self, "_closed", True):
            self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"

    def _fd(self) -> int:
        if self._closed:
            raise ValueError("I/O operation on closed file")
        return self._file_ref.fd

    async def read_buffer(self, buffer, length: int, offset: int) -> int:
        """Read up to ``length`` bytes at ``offset`` into ``buffer``; return the count read."""
        view = memoryview(buffer)
        if not 0 <= length <= len(view):
            raise ValueError("read length exceeds buffer size")
        if offset < 0:
            raise ValueError("offset must not be negative")
        fd = self._fd()
        data = await asyncio.to_thread(os.pread, fd, length, offset)
        view[: len(data)] = data
        return len(data)


class ROFile(File):
    """A read-only file."""


class RWFile(File):
    """A read/write file whose writes are locked out after a failed sync."""

    def __init__(self, file_ref: RingFile) -> None:
        super().__init__(file_ref)
        self._write_lockout = False

    def _ensure_writeable(self) -> None:
        if self._write_lockout:
            raise OSError(
                errno.EROFS, "file is read-only due to a prior fsync failure"
            )

    async def write_buffer(self, buffer, offset: int) -> int:
        """Write the whole of ``buffer`` at ``offset``; return the count written."""
        if offset < 0:
            raise ValueError("offset must not be negative")
        self._ensure_writeable()
        fd = self._fd()
        data = bytes(buffer)
        return await asyncio.to_thread(os.pwrite, fd, data, offset)

    async def fdatasync(self) -> None:
        """Flush data to the device; a failure locks out all further writes."""
        self._ensure_writeable()
        fd = self._fd()
        try:
            await asyncio.to_thread(_datasync, fd)
        except OSError:
            # A failed fsync is not safe to retry; data may already be lost.
            self._write_lockout = True
            raise


class DirFile(File):
    """An open directory."""

    async def sync(self) -> None:
        """Sync the directory entries to the device."""
        fd = self._fd()
        await asyncio.to_thread(os.fsync, fd)