"""Value types exchanged between the backend and its host."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class Directory:
    """A directory entry produced by a listing."""

    remote: str
    mod_time: datetime
    id: str


@dataclass(frozen=True)
class SourceInfo:
    """Describes the content handed to put/update.

    A negative size means the length is unknown.
    """

    remote: str
    size: int
    mod_time: datetime


@dataclass(frozen=True)
class RangeOption:
    """Byte range request, inclusive on both ends.

    ``start < 0`` requests the last ``end`` bytes. ``end < 0`` reads to EOF.
    """

    start: int
    end: int = -1

    def header(self) -> tuple[str, str]:
        if self.start < 0:
            return "Range", f"bytes=-{self.end}"
        if self.end < 0:
            return "Range", f"bytes={self.start}-"
        return "Range", f"bytes={self.start}-{self.end}"


@dataclass(frozen=True)
class SeekOption:
    """Start reading at a byte offset."""

    offset: int

    def header(self) -> tuple[str, str]:
        return "Range", f"bytes={self.offset}-"


OpenOption = Union[RangeOption, SeekOption]


@dataclass(frozen=True)
class Features:
    """Optional capabilities advertised to the host."""

    can_have_empty_directories: bool = True
    case_insensitive: bool = False
    server_side_copy: bool = False
    server_side_move: bool = False


def fix_range_option(options: Iterable[OpenOption], size: int) -> list[OpenOption]:
    """Normalise range and seek options against a known object size.

    Suffix ranges are resolved to absolute offsets, open or oversized ends are
    clamped to ``size - 1`` and seeks become ranges. For an empty object every
    range is dropped. Options are returned untouched when the size is unknown.
    """
    options = list(options)
    if size < 0:
        return options
    if size == 0:
        return [opt for opt in options if not isinstance(opt, (RangeOption, SeekOption))]

    fixed: list[OpenOption] = []
    for opt in options:
        if isinstance(opt, SeekOption):
            opt = RangeOption(start=opt.offset, end=size - 1)
        elif isinstance(opt, RangeOption):
            if opt.start < 0:
                opt = RangeOption(start=max(size - opt.end, 0), end=-1)
            if opt.end < 0 or opt.end > size:
                opt = RangeOption(start=opt.start, end=size - 1)
        fixed.append(opt)
    return fixed


def range_headers(options: Iterable[OpenOption]) -> dict[str, str]:
    """Render options as request headers; a later option wins."""
    return dict(opt.header() for opt in options)
