"""A single file stored on FileJump."""

from __future__ import annotations

import mimetypes
import posixpath
import threading
from collections.abc import Iterable, Iterator
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Any, BinaryIO

import httpx

from filejump_backend.api.client import DownloadStream, FileJumpApiError, FileJumpDecodeError
from filejump_backend.api.models import (
    DEFAULT_WORKSPACE_ID,
    PATH_DELETE,
    PATH_DOWNLOAD,
    PATH_PRESIGN,
    PATH_S3_ENTRIES,
    PATH_UPLOADS,
    RESPONSE_FILE_ENTRY,
    STATUS_SUCCESS,
    UPLOAD_DISK,
    Item,
    as_str,
    response_status,
)
from filejump_backend.api.timestamps import ZERO_TIME, is_zero_time
from filejump_backend.config import UPLOAD_CUTOFF_OFF
from filejump_backend.remote.errors import (
    ApiStatusError,
    BackendError,
    CantSetModTimeError,
    HashUnsupportedError,
    IsDirectoryError,
    PreconditionFailedError,
)
from filejump_backend.remote.models import (
    OpenOption,
    SourceInfo,
    fix_range_option,
    range_headers,
)

if TYPE_CHECKING:
    from filejump_backend.remote.backend import FileJumpBackend

DEFAULT_MIME_TYPE = "application/octet-stream"
DEFAULT_EXTENSION = "bin"

_CHUNK_SIZE = 64 * 1024


def extension_and_mime(filename: str) -> tuple[str, str]:
    """Guess the extension (without dot) and MIME type of a file name."""
    ext = posixpath.splitext(filename)[1]
    if not ext:
        return DEFAULT_EXTENSION, DEFAULT_MIME_TYPE
    mime, _ = mimetypes.guess_type(filename, strict=False)
    return ext[1:], mime or DEFAULT_MIME_TYPE


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read exactly size bytes and make sure nothing follows them."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    content = b"".join(chunks)
    if len(content) != size:
        raise PreconditionFailedError(f"short upload: expected {size} bytes, got {len(content)}")
    if stream.read(1):
        raise PreconditionFailedError(f"upload is longer than the declared {size} bytes")
    return content


def _iter_exact(stream: BinaryIO, size: int) -> Iterator[bytes]:
    """Yield exactly size bytes from stream in chunks, checking the length."""
    remaining = size
    while remaining > 0:
        chunk = stream.read(min(_CHUNK_SIZE, remaining))
        if not chunk:
            raise PreconditionFailedError(
                f"short upload: expected {size} bytes, got {size - remaining}"
            )
        remaining -= len(chunk)
        yield chunk
    if stream.read(1):
        raise PreconditionFailedError(f"upload is longer than the declared {size} bytes")


class FileJumpObject:
    """A file on the remote, addressed by its root-relative path.

    Metadata comes from the listing that produced the object or is fetched
    lazily on first access. An object with an empty id has not been resolved
    and cannot be opened or removed.
    """

    def __init__(self, backend: FileJumpBackend, remote: str) -> None:
        self._backend = backend
        self._remote = remote
        self._log = backend.log
        self.id = ""
        self.mime_type = ""
        self._size = -1
        self._mod_time = ZERO_TIME
        self._has_metadata = False

    @property
    def backend(self) -> FileJumpBackend:
        return self._backend

    @property
    def remote(self) -> str:
        return self._remote

    @property
    def has_metadata(self) -> bool:
        return self._has_metadata

    def __str__(self) -> str:
        return self._remote

    def __repr__(self) -> str:
        return f"FileJumpObject(remote={self._remote!r}, id={self.id!r})"

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def set_metadata(self, item: Item) -> None:
        """Copy id, size, MIME type and modification time from an entry.

        Raises:
            IsDirectoryError: If the entry is a folder.
        """
        if item.is_folder:
            raise IsDirectoryError(f"{self._remote!r} is a directory")
        self.id = item.id
        self._size = item.size
        self.mime_type = item.mime
        self._mod_time = item.mod_time()
        self._has_metadata = True

    def read_metadata(self, *, cancel: threading.Event | None = None) -> None:
        """Fetch metadata from the remote unless it is already known."""
        if self._has_metadata:
            return
        item = self._backend.read_metadata_for_path(self._remote, cancel=cancel)
        self.set_metadata(item)

    def _try_read_metadata(self) -> bool:
        try:
            self.read_metadata()
        except (BackendError, FileJumpApiError, FileJumpDecodeError, httpx.HTTPError) as exc:
            self._log.debug(
                "[read_metadata] failed to read metadata; remote:%s;error:%s", self._remote, exc
            )
            return False
        return True

    def size(self) -> int:
        """Size in bytes, or -1 if the metadata cannot be read."""
        if not self._try_read_metadata():
            return -1
        return self._size

    def mod_time(self) -> datetime:
        """Modification time; ZERO_TIME when nothing better is known."""
        self._try_read_metadata()
        return self._mod_time

    def set_mod_time(
        self, mod_time: datetime, *, cancel: threading.Event | None = None
    ) -> None:
        raise CantSetModTimeError("FileJump does not support setting modification times")

    def hash(self, hash_type: str = "") -> str:
        raise HashUnsupportedError(f"hash type {hash_type!r} is not supported")

    def storable(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def open(
        self,
        options: Iterable[OpenOption] = (),
        *,
        cancel: threading.Event | None = None,
    ) -> DownloadStream:
        """Open the file for reading.

        Args:
            options: Range or seek options; normalised against the known size.
            cancel: Optional cancellation token.

        Returns:
            Readable stream; the caller must close it.

        Raises:
            PreconditionFailedError: If the object has no id.
        """
        self._log.debug("[open] opening object; remote:%s;id:%s", self._remote, self.id)
        if not self.id:
            raise PreconditionFailedError(f"can't download {self._remote!r}: object has no id")
        headers = range_headers(fix_range_option(options, self._size))
        path = PATH_DOWNLOAD.format(id=self.id)
        return self._backend.pacer.call(
            partial(self._backend.client.download, path, headers=headers), cancel
        )

    def update(
        self,
        stream: BinaryIO,
        src: SourceInfo,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """Upload stream as the new content of this object.

        Content below the upload cutoff is sent as a multipart form. Larger
        content goes to a pre-signed storage URL and is then registered as a
        file entry. Either way the object's metadata is refreshed from the
        entry the API returns.

        Raises:
            PreconditionFailedError: If src.size is negative or the stream
                length differs from it.
            ApiStatusError: If the API does not report success.
        """
        self._log.debug("[update] uploading object; remote:%s;size:%d", self._remote, src.size)
        if src.size < 0:
            raise PreconditionFailedError("can't upload objects of unknown size")

        leaf, dir_id = self._backend.dir_cache.find_path(self._remote, create=True, cancel=cancel)
        cutoff = self._backend.config.upload_cutoff
        if cutoff == UPLOAD_CUTOFF_OFF or src.size < cutoff:
            entry = self._upload_multipart(stream, leaf, dir_id, src.size, cancel)
        else:
            entry = self._upload_presigned(stream, leaf, dir_id, src.size, cancel)

        item = Item.from_json(entry)
        if not item.id:
            raise ApiStatusError("upload", STATUS_SUCCESS, "response has no file entry id")
        _, mime = extension_and_mime(leaf)
        self.id = item.id
        self._size = item.size or src.size
        self.mime_type = item.mime or mime
        mod_time = item.mod_time()
        self._mod_time = src.mod_time if is_zero_time(mod_time) else mod_time
        self._has_metadata = True
        self._log.info(
            "[update] uploaded object; remote:%s;id:%s;size:%d", self._remote, self.id, self._size
        )

    def _upload_multipart(
        self,
        stream: BinaryIO,
        leaf: str,
        dir_id: str,
        size: int,
        cancel: threading.Event | None,
    ) -> Any:
        # Buffered; every retry resends the same body
        content = _read_exact(stream, size)
        _, mime = extension_and_mime(leaf)
        files = {"file": (self._backend.encoder.encode(leaf), content, mime)}
        data = {"parentId": dir_id} if dir_id else None
        raw = self._backend.pacer.call(
            partial(self._backend.client.call_json, "POST", PATH_UPLOADS, data=data, files=files),
            cancel,
        )
        status = response_status(raw)
        if status != STATUS_SUCCESS:
            raise ApiStatusError("upload", status)
        return raw.get(RESPONSE_FILE_ENTRY)

    def _upload_presigned(
        self,
        stream: BinaryIO,
        leaf: str,
        dir_id: str,
        size: int,
        cancel: threading.Event | None,
    ) -> Any:
        client = self._backend.client
        pacer = self._backend.pacer
        encoded = self._backend.encoder.encode(leaf)
        extension, mime = extension_and_mime(leaf)
        parent_id = int(dir_id) if dir_id else None

        presign_body = {
            "filename": encoded,
            "mime": mime,
            "disk": UPLOAD_DISK,
            "size": size,
            "extension": extension,
            "workspaceId": DEFAULT_WORKSPACE_ID,
            "parentId": parent_id,
            "relativePath": "",
        }
        presign = pacer.call(
            partial(client.call_json, "POST", PATH_PRESIGN, json_body=presign_body), cancel
        )
        status = response_status(presign)
        if status != STATUS_SUCCESS:
            raise ApiStatusError("presign", status)
        url = as_str(presign.get("url"))
        key = as_str(presign.get("key"))
        if not url:
            raise ApiStatusError("presign", status, "response has no upload url")

        headers = {"Content-Type": DEFAULT_MIME_TYPE, "Content-Length": str(size)}
        acl = as_str(presign.get("acl"))
        if acl:
            headers["x-amz-acl"] = acl

        if stream.seekable():
            start = stream.tell()

            def put_from_start() -> None:
                stream.seek(start)
                client.put_presigned(url, _iter_exact(stream, size), headers)

            pacer.call(put_from_start, cancel)
        else:
            pacer.call_no_retry(
                partial(client.put_presigned, url, _iter_exact(stream, size), headers), cancel
            )
        self._log.debug("[update] stored content; remote:%s;key:%s", self._remote, key)

        entries_body = {
            "workspaceId": DEFAULT_WORKSPACE_ID,
            "parentId": parent_id,
            "relativePath": "",
            "disk": UPLOAD_DISK,
            "clientMime": mime,
            "clientName": encoded,
            "filename": posixpath.basename(key),
            "size": size,
            "clientExtension": extension,
        }
        raw = pacer.call(
            partial(client.call_json, "POST", PATH_S3_ENTRIES, json_body=entries_body), cancel
        )
        status = response_status(raw)
        if status and status != STATUS_SUCCESS:
            raise ApiStatusError("register upload", status)
        # Either {status, fileEntry} or the bare entry
        entry = raw.get(RESPONSE_FILE_ENTRY)
        return entry if isinstance(entry, dict) else raw

    def remove(self, *, cancel: threading.Event | None = None) -> None:
        """Delete the file permanently.

        Raises:
            PreconditionFailedError: If the object has no id.
            ApiStatusError: If the API does not report success.
        """
        self._log.debug("[remove] removing object; remote:%s;id:%s", self._remote, self.id)
        if not self.id:
            raise PreconditionFailedError(f"can't remove {self._remote!r}: object has no id")
        body = {"entryIds": [int(self.id)], "deleteForever": True}
        raw = self._backend.pacer.call(
            partial(self._backend.client.call_json, "POST", PATH_DELETE, json_body=body), cancel
        )
        status = response_status(raw)
        if status != STATUS_SUCCESS:
            raise ApiStatusError("remove", status)
        self._log.info("[remove] removed object; remote:%s;id:%s", self._remote, self.id)
