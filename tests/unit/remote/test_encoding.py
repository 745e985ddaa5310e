"""Unit tests for remote/encoding.py — reversible filename encoding."""

import pytest

from filejump_backend.remote.encoding import (
    DEFAULT_ENCODING,
    QUOTE,
    Encoder,
    EncodingFlag,
    parse_encoding,
)

# ---------------------------------------------------------------------------
# parse_encoding tests
# ---------------------------------------------------------------------------


class TestParseEncoding:
    def test_default_flags(self) -> None:
        flags = parse_encoding(DEFAULT_ENCODING)
        assert EncodingFlag.SLASH in flags
        assert EncodingFlag.INVALID_UTF8 in flags
        assert EncodingFlag.LEFT_SPACE not in flags

    def test_names_are_case_insensitive(self) -> None:
        assert parse_encoding("slash, DEL") == EncodingFlag.SLASH | EncodingFlag.DEL

    def test_none(self) -> None:
        assert parse_encoding("None") == EncodingFlag.NONE

    def test_unknown_flag_raises(self) -> None:
        with pytest.raises(ValueError, match="Colon"):
            parse_encoding("Slash,Colon")


# ---------------------------------------------------------------------------
# Encoder tests
# ---------------------------------------------------------------------------


class TestEncode:
    def test_plain_names_unchanged(self) -> None:
        enc = Encoder()
        assert enc.encode("report 2024.pdf") == "report 2024.pdf"
        assert enc.decode("report 2024.pdf") == "report 2024.pdf"

    def test_slash_and_backslash(self) -> None:
        assert Encoder().encode("a/b\\c") == "a／b＼c"

    def test_control_characters(self) -> None:
        enc = Encoder()
        assert enc.encode("a\x00b") == "a␀b"
        assert enc.encode("a\tb") == "a␉b"
        assert enc.encode("a\x7fb") == "a␡b"

    def test_dot_names(self) -> None:
        enc = Encoder()
        assert enc.encode(".") == "．"
        assert enc.encode("..") == "．．"
        assert enc.encode("...") == "..."

    def test_right_space_only_by_default(self) -> None:
        enc = Encoder()
        assert enc.encode(" name ") == " name␠"

    def test_left_space_when_enabled(self) -> None:
        enc = Encoder("LeftSpace,RightSpace")
        assert enc.encode(" x ") == "␠x␠"

    def test_invalid_utf8_bytes(self) -> None:
        name = b"bad\xff".decode("utf-8", "surrogateescape")
        assert Encoder().encode(name) == "bad\ueeff"

    def test_none_flag_is_identity(self) -> None:
        enc = Encoder(EncodingFlag.NONE)
        assert enc.encode("a/b") == "a/b"
        assert enc.decode("a／b") == "a／b"

    def test_literal_replacement_symbol_is_quoted(self) -> None:
        enc = Encoder()
        assert enc.encode("a／b") == f"a{QUOTE}／b"


class TestDecode:
    @pytest.mark.parametrize(
        "name",
        [
            "a/b",
            "a／b",
            "back\\slash",
            "..",
            "．",
            "．．",
            "tab\there",
            "trailing ",
            "trailing␠",
            f"quote{QUOTE}mark",
            f"{QUOTE}／",
            f"{QUOTE}",
            f"{QUOTE}{QUOTE}x",
            f"{QUOTE}．",
            f"a{QUOTE}/b",
            b"raw\x80\xfe".decode("utf-8", "surrogateescape"),
        ],
    )
    def test_decode_reverses_encode(self, name: str) -> None:
        enc = Encoder()
        assert enc.decode(enc.encode(name)) == name

    def test_decodes_server_names(self) -> None:
        assert Encoder().decode("a／b␀") == "a/b\x00"

    def test_quote_before_ordinary_character_is_kept(self) -> None:
        enc = Encoder()
        assert enc.decode(f"{QUOTE}x") == f"{QUOTE}x"
        assert enc.encode(enc.decode(f"{QUOTE}x")) == f"{QUOTE}x"

    def test_quote_before_replacement_symbol_is_consumed(self) -> None:
        assert Encoder().decode(f"{QUOTE}／") == "／"
