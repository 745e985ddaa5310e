"""Unit tests for api/models.py — Item and FileEntriesPage decoding."""

from datetime import UTC, datetime

from filejump_backend.api.models import (
    FileEntriesPage,
    Item,
    as_id,
    as_int,
    response_status,
)
from filejump_backend.api.timestamps import ZERO_TIME

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_raw_entry(**overrides: object) -> dict[str, object]:
    raw: dict[str, object] = {
        "id": 42,
        "name": "report.pdf",
        "type": "pdf",
        "file_size": 1024,
        "mime": "application/pdf",
        "file_name": "a1b2c3",
        "parent_id": 7,
        "created_at": "2024-01-01T00:00:00.000000Z",
        "updated_at": "2024-02-01T12:00:00.000000Z",
        "hash": "NDJ8",
    }
    raw.update(overrides)
    return raw


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


class TestAsId:
    def test_int_and_digit_strings(self) -> None:
        assert as_id(42) == "42"
        assert as_id("0042") == "42"

    def test_absent_or_invalid(self) -> None:
        assert as_id(None) == ""
        assert as_id(0) == ""
        assert as_id("abc") == ""
        assert as_id(True) == ""


class TestAsInt:
    def test_values(self) -> None:
        assert as_int(5) == 5
        assert as_int(5.9) == 5
        assert as_int("12") == 12
        assert as_int("x") == 0
        assert as_int(None) == 0


def test_response_status() -> None:
    assert response_status({"status": "success"}) == "success"
    assert response_status({}) == ""
    assert response_status({"status": 1}) == ""


# ---------------------------------------------------------------------------
# Item tests
# ---------------------------------------------------------------------------


class TestItem:
    def test_from_json_maps_all_fields(self) -> None:
        item = Item.from_json(_make_raw_entry())

        assert item.id == "42"
        assert item.name == "report.pdf"
        assert item.type == "pdf"
        assert item.size == 1024
        assert item.mime == "application/pdf"
        assert item.file_name == "a1b2c3"
        assert item.parent_id == "7"
        assert item.hash == "NDJ8"
        assert item.is_file
        assert not item.is_folder

    def test_folder(self) -> None:
        item = Item.from_json(_make_raw_entry(type="folder"))
        assert item.is_folder
        assert not item.is_file

    def test_missing_fields_become_zero_values(self) -> None:
        item = Item.from_json({})
        assert item == Item(id="", name="", type="")
        assert not item.is_file
        assert not item.is_folder

    def test_null_parent_is_root(self) -> None:
        assert Item.from_json(_make_raw_entry(parent_id=None)).parent_id == ""

    def test_wrong_types_do_not_raise(self) -> None:
        item = Item.from_json({"id": [1], "name": 5, "file_size": "big", "type": None})
        assert item.id == ""
        assert item.name == ""
        assert item.size == 0

    def test_non_dict_input(self) -> None:
        assert Item.from_json("garbage").id == ""

    def test_mod_time_prefers_updated_at(self) -> None:
        item = Item.from_json(_make_raw_entry())
        assert item.mod_time() == datetime(2024, 2, 1, 12, 0, 0, tzinfo=UTC)

    def test_mod_time_falls_back_to_created_at(self) -> None:
        item = Item.from_json(_make_raw_entry(updated_at=None))
        assert item.mod_time() == datetime(2024, 1, 1, tzinfo=UTC)

    def test_mod_time_zero_when_unparseable(self) -> None:
        item = Item.from_json(_make_raw_entry(updated_at="soon", created_at=""))
        assert item.mod_time() == ZERO_TIME


# ---------------------------------------------------------------------------
# FileEntriesPage tests
# ---------------------------------------------------------------------------


class TestFileEntriesPage:
    def test_decodes_items_and_next_page(self) -> None:
        page = FileEntriesPage.from_json(
            {"data": [_make_raw_entry(), _make_raw_entry(id=43)], "current_page": 1, "next_page": 2}
        )
        assert [item.id for item in page.items] == ["42", "43"]
        assert page.current_page == 1
        assert page.next_page == 2

    def test_null_next_page_is_last(self) -> None:
        page = FileEntriesPage.from_json({"data": [], "current_page": 3, "next_page": None})
        assert page.next_page is None

    def test_missing_fields(self) -> None:
        page = FileEntriesPage.from_json({})
        assert page.items == []
        assert page.next_page is None

    def test_zero_next_page_is_last(self) -> None:
        assert FileEntriesPage.from_json({"next_page": 0}).next_page is None
