"""Data models for FileJump file entries and listing pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from filejump_backend.api.timestamps import decode_mod_time

# File entry JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_TYPE = "type"
FIELD_MIME = "mime"
FIELD_FILE_SIZE = "file_size"
FIELD_FILE_NAME = "file_name"
FIELD_PARENT_ID = "parent_id"
FIELD_CREATED_AT = "created_at"
FIELD_UPDATED_AT = "updated_at"
FIELD_HASH = "hash"

# Response envelope keys
RESPONSE_DATA = "data"
RESPONSE_CURRENT_PAGE = "current_page"
RESPONSE_NEXT_PAGE = "next_page"
RESPONSE_STATUS = "status"
RESPONSE_FOLDER = "folder"
RESPONSE_FILE_ENTRY = "fileEntry"

STATUS_SUCCESS = "success"

# Types of things in Item.type; anything non-empty other than folder is a file
ITEM_TYPE_FOLDER = "folder"
ITEM_TYPE_IMAGE = "image"
ITEM_TYPE_TEXT = "text"
ITEM_TYPE_AUDIO = "audio"
ITEM_TYPE_VIDEO = "video"
ITEM_TYPE_PDF = "pdf"

# The drive root has no identifier of its own
ROOT_ID = ""

# API endpoints, relative to the base URL
PATH_FILE_ENTRIES = "/drive/file-entries"
PATH_FOLDERS = "/folders"
PATH_UPLOADS = "/uploads"
PATH_PRESIGN = "/s3/simple/presign"
PATH_S3_ENTRIES = "/s3/entries"
PATH_DELETE = "/file-entries/delete"
PATH_DOWNLOAD = "/file-entries/download/{id}"

# Storage disk and workspace used for every upload
UPLOAD_DISK = "uploads"
DEFAULT_WORKSPACE_ID = 0


def as_id(value: Any) -> str:
    """Render a server identifier as a string; "" when absent or invalid."""
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value) if value > 0 else ""
    if isinstance(value, str) and value.isdigit() and int(value) > 0:
        return str(int(value))
    return ""


def as_int(value: Any) -> int:
    """Coerce a JSON number (or numeric string) to int, defaulting to 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def response_status(raw: dict[str, Any]) -> str:
    """Return the ``status`` field of a response envelope, or ""."""
    return as_str(raw.get(RESPONSE_STATUS))


@dataclass
class Item:
    """A single file or folder entry as returned by the FileJump API."""

    id: str
    name: str
    type: str
    size: int = 0
    mime: str = ""
    file_name: str = ""
    parent_id: str = ""
    created_at: str = ""
    updated_at: str = ""
    hash: str = ""

    @property
    def is_folder(self) -> bool:
        return self.type == ITEM_TYPE_FOLDER

    @property
    def is_file(self) -> bool:
        return bool(self.type) and self.type != ITEM_TYPE_FOLDER

    def mod_time(self) -> datetime:
        """Modification time, falling back to creation time, then ZERO_TIME."""
        return decode_mod_time(self.updated_at, self.created_at)

    @classmethod
    def from_json(cls, raw: Any) -> Item:
        """Map a raw API entry dict to an Item; missing fields become zero values."""
        if not isinstance(raw, dict):
            raw = {}
        return cls(
            id=as_id(raw.get(FIELD_ID)),
            name=as_str(raw.get(FIELD_NAME)),
            type=as_str(raw.get(FIELD_TYPE)),
            size=as_int(raw.get(FIELD_FILE_SIZE)),
            mime=as_str(raw.get(FIELD_MIME)),
            file_name=as_str(raw.get(FIELD_FILE_NAME)),
            parent_id=as_id(raw.get(FIELD_PARENT_ID)),
            created_at=as_str(raw.get(FIELD_CREATED_AT)),
            updated_at=as_str(raw.get(FIELD_UPDATED_AT)),
            hash=as_str(raw.get(FIELD_HASH)),
        )


@dataclass
class FileEntriesPage:
    """One page of a ``/drive/file-entries`` listing."""

    items: list[Item] = field(default_factory=list)
    current_page: int = 0
    next_page: int | None = None

    @classmethod
    def from_json(cls, raw: dict[str, Any]) -> FileEntriesPage:
        data = raw.get(RESPONSE_DATA)
        entries = data if isinstance(data, list) else []
        next_page = as_int(raw.get(RESPONSE_NEXT_PAGE))
        return cls(
            items=[Item.from_json(entry) for entry in entries],
            current_page=as_int(raw.get(RESPONSE_CURRENT_PAGE)),
            next_page=next_page if next_page > 0 else None,
        )
