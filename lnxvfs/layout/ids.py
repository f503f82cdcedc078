"""Identifiers for page groups, page files and pages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

U32_MAX = 0xFFFF_FFFF
U64_MAX = 0xFFFF_FFFF_FFFF_FFFF


@dataclass(frozen=True, order=True, repr=False)
class _IntId:
    value: int
    _MAX: ClassVar[int] = U64_MAX

    def __post_init__(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise TypeError(f"{type(self).__name__} value must be an int")
        if not 0 <= self.value <= self._MAX:
            raise ValueError(
                f"{type(self).__name__} value {self.value} out of range 0..={self._MAX}"
            )

    def __int__(self) -> int:
        return self.value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value})"


class PageGroupId(_IntId):
    """A unique identifier for a group of pages (64-bit)."""

    _MAX: ClassVar[int] = U64_MAX


class PageFileId(_IntId):
    """A unique identifier for a file of pages (32-bit)."""

    _MAX: ClassVar[int] = U32_MAX


class PageId(_IntId):
    """A unique ID for a page of data within a storage file (32-bit)."""

    _MAX: ClassVar[int] = U32_MAX
    TERMINATOR: ClassVar[PageId]

    def is_terminator(self) -> bool:
        """Whether this ID marks the end of a page chain rather than a real page."""
        return self.value == U32_MAX


PageId.TERMINATOR = PageId(U32_MAX)