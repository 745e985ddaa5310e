"""Shared fixtures for remote tests: an in-memory FileJump server."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterator
from email.parser import BytesParser
from email.policy import HTTP
from typing import Any

import httpx
import pytest

from filejump_backend.api.client import FileJumpClient
from filejump_backend.api.pacer import Pacer
from filejump_backend.config import BackendConfig
from filejump_backend.remote.backend import FileJumpBackend

BASE_URL = "https://fj.test/api/v1"
STORAGE_HOST = "storage.test"
TIMESTAMP = "2024-05-01T10:20:30.000000Z"

_API_PREFIX = "/api/v1"
_DOWNLOAD_RE = re.compile(r"^/api/v1/file-entries/download/(\d+)$")
_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


class FakeFileJump:
    """Minimal in-memory model of the FileJump API, served via MockTransport.

    Every request is recorded in ``requests``. Responses queued in
    ``failures`` are returned (oldest first) before normal handling, which
    lets tests inject transient errors. ``put_failures`` does the same for
    uploads to pre-signed storage URLs only.
    """

    def __init__(self) -> None:
        self.entries: dict[int, dict[str, Any]] = {}
        self.content: dict[int, bytes] = {}
        self.staged: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self.failures: list[httpx.Response] = []
        self.put_failures: list[httpx.Response] = []
        self.page_size: int | None = None
        self.delete_status = "success"
        self._next_id = 100

    # -- seeding ---------------------------------------------------------

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add_folder(self, name: str, parent_id: int | None = None) -> int:
        entry_id = self._new_id()
        self.entries[entry_id] = {
            "id": entry_id,
            "name": name,
            "type": "folder",
            "file_size": 0,
            "mime": "",
            "parent_id": parent_id,
            "created_at": TIMESTAMP,
            "updated_at": TIMESTAMP,
        }
        return entry_id

    def add_file(
        self,
        name: str,
        parent_id: int | None = None,
        content: bytes = b"",
        type: str = "text",
        updated_at: str | None = TIMESTAMP,
    ) -> int:
        entry_id = self._new_id()
        self.entries[entry_id] = {
            "id": entry_id,
            "name": name,
            "type": type,
            "file_size": len(content),
            "mime": "text/plain",
            "file_name": f"blob-{entry_id}",
            "parent_id": parent_id,
            "created_at": TIMESTAMP,
            "updated_at": updated_at,
        }
        self.content[entry_id] = content
        return entry_id

    def children(self, parent_id: int | None) -> list[dict[str, Any]]:
        return [e for e in self.entries.values() if e["parent_id"] == parent_id]

    def api_requests(
        self, method: str | None = None, path: str | None = None
    ) -> list[httpx.Request]:
        """Recorded API requests, optionally filtered by method and API path."""
        return [
            r
            for r in self.requests
            if r.url.host == "fj.test"
            and (method is None or r.method == method)
            and (path is None or r.url.path == _API_PREFIX + path)
        ]

    # -- request handling ------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        if self.failures:
            return self.failures.pop(0)
        if request.url.host == STORAGE_HOST:
            return self._handle_storage(request)

        path = request.url.path
        if request.method == "GET" and path == f"{_API_PREFIX}/drive/file-entries":
            return self._list(request)
        if request.method == "POST" and path == f"{_API_PREFIX}/folders":
            return self._create_folder(request)
        if request.method == "POST" and path == f"{_API_PREFIX}/uploads":
            return self._upload(request)
        if request.method == "POST" and path == f"{_API_PREFIX}/s3/simple/presign":
            return self._presign(request)
        if request.method == "POST" and path == f"{_API_PREFIX}/s3/entries":
            return self._register(request)
        if request.method == "POST" and path == f"{_API_PREFIX}/file-entries/delete":
            return self._delete(request)
        match = _DOWNLOAD_RE.match(path)
        if request.method == "GET" and match:
            location = f"https://{STORAGE_HOST}/download/{match.group(1)}?sig=abc"
            return httpx.Response(302, headers={"Location": location})
        return httpx.Response(404, json={"message": "not found"})

    @staticmethod
    def _parent(value: Any) -> int | None:
        if value in (None, "", 0, "0"):
            return None
        return int(value)

    def _list(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        parent = self._parent(params.get("folderId"))
        per_page = int(params.get("perPage", "50"))
        if self.page_size is not None:
            per_page = min(per_page, self.page_size)
        page = int(params.get("page", "1"))
        items = self.children(parent)
        start = (page - 1) * per_page
        chunk = items[start : start + per_page]
        more = start + per_page < len(items)
        return httpx.Response(
            200,
            json={"data": chunk, "current_page": page, "next_page": page + 1 if more else None},
        )

    def _create_folder(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        folder_id = self.add_folder(body["name"], self._parent(body.get("parentId")))
        return httpx.Response(200, json={"status": "success", "folder": self.entries[folder_id]})

    def _upload(self, request: httpx.Request) -> httpx.Response:
        header = f"Content-Type: {request.headers['Content-Type']}\r\n\r\n".encode()
        message = BytesParser(policy=HTTP).parsebytes(header + request.content)
        fields: dict[str, bytes] = {}
        filename = ""
        for part in message.iter_parts():
            field = part.get_param("name", header="content-disposition")
            payload = part.get_payload(decode=True)
            fields[str(field)] = payload if isinstance(payload, bytes) else b""
            if field == "file":
                filename = part.get_filename() or ""
        content = fields.get("file", b"")
        parent = self._parent(fields.get("parentId", b"").decode() or None)
        entry_id = self.add_file(filename, parent, content)
        return httpx.Response(200, json={"status": "success", "fileEntry": self.entries[entry_id]})

    def _presign(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        key = f"uploads/staged-{len(self.staged) + 1}-{body['filename']}"
        url = f"https://{STORAGE_HOST}/bucket/{key}?X-Amz-Signature=sig"
        return httpx.Response(
            200, json={"status": "success", "url": url, "key": key, "acl": "private"}
        )

    def _register(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        key = f"uploads/{body['filename']}"
        content = self.staged.get(key, b"")
        entry_id = self.add_file(body["clientName"], self._parent(body.get("parentId")), content)
        return httpx.Response(200, json={"status": "success", "fileEntry": self.entries[entry_id]})

    def _delete(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        pending = list(body["entryIds"])
        while pending:
            entry_id = pending.pop()
            pending.extend(e["id"] for e in self.children(entry_id))
            self.entries.pop(entry_id, None)
            self.content.pop(entry_id, None)
        return httpx.Response(200, json={"status": self.delete_status})

    def _handle_storage(self, request: httpx.Request) -> httpx.Response:
        if request.method == "PUT" and request.url.path.startswith("/bucket/"):
            if self.put_failures:
                return self.put_failures.pop(0)
            self.staged[request.url.path[len("/bucket/") :]] = request.content
            return httpx.Response(200)
        if request.method == "GET" and request.url.path.startswith("/download/"):
            entry_id = int(request.url.path.rsplit("/", 1)[1])
            data = self.content.get(entry_id)
            if data is None:
                return httpx.Response(404)
            match = _RANGE_RE.match(request.headers.get("Range", ""))
            if match is None:
                return httpx.Response(200, content=data)
            start, end = match.groups()
            first = int(start) if start else len(data) - int(end)
            last = int(end) if start and end else len(data) - 1
            return httpx.Response(206, content=data[first : last + 1])
        return httpx.Response(404)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake() -> FakeFileJump:
    return FakeFileJump()


@pytest.fixture
def make_backend(fake: FakeFileJump) -> Iterator[Callable[..., FileJumpBackend]]:
    """Factory building backends wired to the fake server.

    Keyword arguments other than ``root`` override BackendConfig fields.
    """
    created: list[FileJumpBackend] = []

    def _make(root: str = "", **overrides: Any) -> FileJumpBackend:
        config = BackendConfig(access_token="test-token", api_base_url=BASE_URL, **overrides)
        client = FileJumpClient(
            "test-token", base_url=BASE_URL, transport=httpx.MockTransport(fake.handler)
        )
        pacer = Pacer(min_sleep=0.0, max_sleep=0.0, retries=3, sleep=lambda _: None)
        backend = FileJumpBackend("fj", root, config, client=client, pacer=pacer)
        created.append(backend)
        return backend

    yield _make
    for backend in created:
        backend.close()


@pytest.fixture
def backend(make_backend: Callable[..., FileJumpBackend]) -> FileJumpBackend:
    return make_backend()
