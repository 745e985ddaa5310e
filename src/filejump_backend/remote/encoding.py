"""Reversible filename encoding for characters FileJump does not accept.

Disallowed characters are replaced with visually similar Unicode symbols
before names are sent to the API and restored when names are read back.
A literal occurrence of one of the replacement symbols is prefixed with
QUOTE so that decode(encode(name)) == name for every name.
"""

from __future__ import annotations

import enum

QUOTE = "‛"
SYMBOL_SPACE = "␠"
FULLWIDTH_DOT = "．"


class EncodingFlag(enum.Flag):
    """Character classes that can be encoded."""

    NONE = 0
    ZERO = enum.auto()
    SLASH = enum.auto()
    BACK_SLASH = enum.auto()
    CTL = enum.auto()
    DEL = enum.auto()
    DOT = enum.auto()
    LEFT_SPACE = enum.auto()
    RIGHT_SPACE = enum.auto()
    INVALID_UTF8 = enum.auto()


_FLAG_NAMES: dict[str, EncodingFlag] = {
    "none": EncodingFlag.NONE,
    "zero": EncodingFlag.ZERO,
    "slash": EncodingFlag.SLASH,
    "backslash": EncodingFlag.BACK_SLASH,
    "ctl": EncodingFlag.CTL,
    "del": EncodingFlag.DEL,
    "dot": EncodingFlag.DOT,
    "leftspace": EncodingFlag.LEFT_SPACE,
    "rightspace": EncodingFlag.RIGHT_SPACE,
    "invalidutf8": EncodingFlag.INVALID_UTF8,
}

DEFAULT_ENCODING = "Slash,BackSlash,Ctl,Del,Dot,Zero,RightSpace,InvalidUtf8"


def parse_encoding(value: str) -> EncodingFlag:
    """Parse a comma-separated list of flag names (case-insensitive).

    Raises:
        ValueError: If a name is not a known flag.
    """
    flags = EncodingFlag.NONE
    for part in value.split(","):
        name = part.strip().lower()
        if not name:
            continue
        if name not in _FLAG_NAMES:
            raise ValueError(f"unknown encoding flag: {part.strip()!r}")
        flags |= _FLAG_NAMES[name]
    return flags


def _character_map(flags: EncodingFlag) -> dict[str, str]:
    forward: dict[str, str] = {}
    if EncodingFlag.ZERO in flags:
        forward["\x00"] = "␀"
    if EncodingFlag.CTL in flags:
        for code in range(0x01, 0x20):
            forward[chr(code)] = chr(0x2400 + code)
    if EncodingFlag.DEL in flags:
        forward["\x7f"] = "␡"
    if EncodingFlag.SLASH in flags:
        forward["/"] = "／"
    if EncodingFlag.BACK_SLASH in flags:
        forward["\\"] = "＼"
    if EncodingFlag.INVALID_UTF8 in flags:
        # surrogateescape stores undecodable bytes 0x80-0xFF as U+DC80-U+DCFF
        for offset in range(0x80):
            forward[chr(0xDC80 + offset)] = chr(0xEE80 + offset)
    return forward


class Encoder:
    """Encodes names for the remote and decodes names read from it."""

    def __init__(self, flags: EncodingFlag | str = DEFAULT_ENCODING) -> None:
        self.flags = parse_encoding(flags) if isinstance(flags, str) else flags
        self._forward = _character_map(self.flags)
        self._reverse = {symbol: char for char, symbol in self._forward.items()}
        if self.flags & (EncodingFlag.LEFT_SPACE | EncodingFlag.RIGHT_SPACE):
            self._reverse[SYMBOL_SPACE] = " "

    def _edge_space(self, index: int, last: int) -> bool:
        return (index == 0 and EncodingFlag.LEFT_SPACE in self.flags) or (
            index == last and EncodingFlag.RIGHT_SPACE in self.flags
        )

    def _quotable(self, char: str) -> bool:
        # Characters that decode unquotes when they follow QUOTE
        if char == QUOTE or char in self._reverse:
            return True
        return char == FULLWIDTH_DOT and EncodingFlag.DOT in self.flags

    def encode(self, name: str) -> str:
        """Convert a local name into one the API accepts."""
        if not name or self.flags == EncodingFlag.NONE:
            return name
        if EncodingFlag.DOT in self.flags:
            if name in (".", ".."):
                return FULLWIDTH_DOT * len(name)
            if name in (FULLWIDTH_DOT, FULLWIDTH_DOT * 2):
                return "".join(QUOTE + char for char in name)

        pieces: list[str] = []
        last = len(name) - 1
        for index, char in enumerate(name):
            if char == " " and self._edge_space(index, last):
                pieces.append(SYMBOL_SPACE)
            elif char in self._forward:
                pieces.append(self._forward[char])
            elif char != QUOTE and char in self._reverse:
                pieces.append(QUOTE + char)
            else:
                pieces.append(char)

        # A literal QUOTE only needs quoting where decode would consume it
        for index in range(last - 1, -1, -1):
            if name[index] == QUOTE and self._quotable(pieces[index + 1][0]):
                pieces[index] = QUOTE + QUOTE
        return "".join(pieces)

    def decode(self, name: str) -> str:
        """Convert a name read from the API back into its local form."""
        if not name or self.flags == EncodingFlag.NONE:
            return name
        if EncodingFlag.DOT in self.flags and name in (FULLWIDTH_DOT, FULLWIDTH_DOT * 2):
            return "." * len(name)

        out: list[str] = []
        index = 0
        while index < len(name):
            char = name[index]
            if char == QUOTE and index + 1 < len(name) and self._quotable(name[index + 1]):
                out.append(name[index + 1])
                index += 2
                continue
            out.append(self._reverse.get(char, char))
            index += 1
        return "".join(out)
