"""FileJump backend: directory listing, lookups and mutations."""

from __future__ import annotations

import logging
import posixpath
import threading
from collections.abc import Callable
from datetime import timedelta
from functools import partial
from typing import TYPE_CHECKING, Any, BinaryIO

from filejump_backend.api.client import FileJumpClient, filejump_client_from_config
from filejump_backend.api.models import (
    PATH_DELETE,
    PATH_FILE_ENTRIES,
    PATH_FOLDERS,
    RESPONSE_FOLDER,
    ROOT_ID,
    STATUS_SUCCESS,
    FileEntriesPage,
    Item,
    as_id,
    response_status,
)
from filejump_backend.api.pacer import Pacer, pacer_from_config
from filejump_backend.config import load_config
from filejump_backend.remote.dircache import DirCache, split_path
from filejump_backend.remote.encoding import Encoder
from filejump_backend.remote.errors import (
    ApiStatusError,
    CantPurgeRootError,
    DirectoryNotEmptyError,
    DirectoryNotFoundError,
    IsDirectoryError,
    ObjectNotFoundError,
    PreconditionFailedError,
)
from filejump_backend.remote.models import Directory, Features, SourceInfo
from filejump_backend.remote.object import FileJumpObject

if TYPE_CHECKING:
    from filejump_backend.config import BackendConfig

logger = logging.getLogger(__name__)

# Callback for list_all; returning True stops the listing
ListAllFn = Callable[[Item], bool]

DirEntry = Directory | FileJumpObject
DirEntries = list[DirEntry]


def _join(directory: str, leaf: str) -> str:
    return posixpath.join(directory, leaf) if directory else leaf


class FileJumpBackend:
    """A FileJump drive rooted at a directory path."""

    def __init__(
        self,
        name: str,
        root: str,
        config: BackendConfig,
        client: FileJumpClient | None = None,
        pacer: Pacer | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialise the backend without touching the network.

        Use new_backend() to also resolve the root.

        Args:
            name: Name of the remote, as chosen by the host.
            root: Directory path below the drive root; slashes are trimmed.
            config: Backend configuration.
            client: API client; built from config when omitted.
            pacer: Retry policy; built from config when omitted.
            log: Logger for all backend operations; defaults to the module logger.
        """
        self._name = name
        self._root = root.strip("/")
        self._config = config
        self._log = log or logger
        self._client = client or filejump_client_from_config(config, log=log)
        self._pacer = pacer or pacer_from_config(config, log=log)
        self._encoder = Encoder(config.encoding)
        self._features = Features()
        self.root_is_file = False
        self.dir_cache = DirCache(self._root, ROOT_ID, self, log=self._log)

    # ------------------------------------------------------------------
    # Info
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def root(self) -> str:
        return self._root

    @property
    def config(self) -> BackendConfig:
        return self._config

    @property
    def client(self) -> FileJumpClient:
        return self._client

    @property
    def pacer(self) -> Pacer:
        return self._pacer

    @property
    def encoder(self) -> Encoder:
        return self._encoder

    @property
    def log(self) -> logging.Logger:
        return self._log

    @property
    def features(self) -> Features:
        return self._features

    def __str__(self) -> str:
        return f"filejump root '{self._root}'"

    def precision(self) -> timedelta:
        """Modification times are only accurate to the second."""
        return timedelta(seconds=1)

    def hashes(self) -> frozenset[str]:
        """No hash types are supported."""
        return frozenset()

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_all(
        self,
        dir_id: str,
        fn: ListAllFn,
        *,
        directories_only: bool = False,
        files_only: bool = False,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Walk every page of a folder listing, calling fn on each entry.

        Entry names are decoded before fn sees them. Entries with an
        unrecognised type are skipped.

        Args:
            dir_id: Folder id to list ("" for the drive root).
            fn: Callback; returning True stops the walk.
            directories_only: Only pass folders to fn.
            files_only: Only pass files to fn.
            cancel: Optional cancellation token.

        Returns:
            True if fn stopped the walk early.
        """
        page: int | None = None
        while True:
            params = {"folderId": dir_id, "perPage": str(self._config.list_chunk)}
            if page is not None:
                params["page"] = str(page)
            raw = self._pacer.call(
                partial(self._client.call_json, "GET", PATH_FILE_ENTRIES, params=params),
                cancel,
            )
            result = FileEntriesPage.from_json(raw)
            for item in result.items:
                if item.is_folder:
                    if files_only:
                        continue
                elif item.is_file:
                    if directories_only:
                        continue
                else:
                    self._log.debug(
                        "[list_all] ignoring entry of unknown type; name:%s;type:%s",
                        item.name,
                        item.type,
                    )
                    continue
                item.name = self._encoder.decode(item.name)
                if fn(item):
                    return True
            page = result.next_page
            if page is None:
                return False

    def list(
        self, dir: str = "", *, cancel: threading.Event | None = None
    ) -> DirEntries:
        """List the files and directories directly inside dir.

        Folders found are remembered in the directory cache.

        Raises:
            DirectoryNotFoundError: If dir does not exist.
        """
        dir = dir.strip("/")
        self._log.debug("[list] listing directory; dir:%s", dir)
        dir_id = self.dir_cache.find_dir(dir, cancel=cancel)
        entries: DirEntries = []

        def collect(item: Item) -> bool:
            remote = _join(dir, item.name)
            if item.is_folder:
                self.dir_cache.put(remote, item.id)
                entries.append(Directory(remote=remote, mod_time=item.mod_time(), id=item.id))
            else:
                entries.append(self._new_object_with_info(remote, item))
            return False

        self.list_all(dir_id, collect, cancel=cancel)
        self._log.debug("[list] listed directory; dir:%s;entry_count:%d", dir, len(entries))
        return entries

    # ------------------------------------------------------------------
    # Directory cache callbacks
    # ------------------------------------------------------------------

    def find_leaf(
        self, parent_id: str, leaf: str, *, cancel: threading.Event | None = None
    ) -> str | None:
        """Return the id of the folder named leaf inside parent_id, or None."""
        self._log.debug("[find_leaf] looking up folder; parent_id:%s;leaf:%s", parent_id, leaf)
        found: list[str] = []

        def match(item: Item) -> bool:
            if item.name == leaf:
                found.append(item.id)
                return True
            return False

        self.list_all(parent_id, match, directories_only=True, cancel=cancel)
        return found[0] if found else None

    def create_dir(
        self, parent_id: str, leaf: str, *, cancel: threading.Event | None = None
    ) -> str:
        """Create folder leaf inside parent_id and return its id.

        Raises:
            ApiStatusError: If the API does not report success or omits the id.
        """
        self._log.debug("[create_dir] creating folder; parent_id:%s;leaf:%s", parent_id, leaf)
        body = {
            "name": self._encoder.encode(leaf),
            "parentId": int(parent_id) if parent_id else None,
        }
        raw = self._pacer.call(
            lambda: self._client.call_json("POST", PATH_FOLDERS, json_body=body), cancel
        )
        status = response_status(raw)
        if status != STATUS_SUCCESS:
            raise ApiStatusError("create_dir", status)
        folder = raw.get(RESPONSE_FOLDER)
        folder_id = as_id(folder.get("id")) if isinstance(folder, dict) else ""
        if not folder_id:
            raise ApiStatusError("create_dir", status, "response has no folder id")
        self._log.info(
            "[create_dir] created folder; parent_id:%s;leaf:%s;id:%s", parent_id, leaf, folder_id
        )
        return folder_id

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def _new_object_with_info(self, remote: str, item: Item) -> FileJumpObject:
        obj = FileJumpObject(self, remote)
        obj.set_metadata(item)
        return obj

    def new_object(self, remote: str, *, cancel: threading.Event | None = None) -> FileJumpObject:
        """Look up the file at remote.

        Raises:
            ObjectNotFoundError: If no file exists there.
            IsDirectoryError: If remote names a folder.
        """
        self._log.debug("[new_object] looking up object; remote:%s", remote)
        obj = FileJumpObject(self, remote)
        obj.read_metadata(cancel=cancel)
        return obj

    def read_metadata_for_path(
        self, path: str, *, cancel: threading.Event | None = None
    ) -> Item:
        """Find the entry named by path by listing its parent folder.

        Raises:
            ObjectNotFoundError: If the parent or the entry does not exist.
            IsDirectoryError: If the entry is a folder.
        """
        try:
            leaf, dir_id = self.dir_cache.find_path(path, cancel=cancel)
        except DirectoryNotFoundError as exc:
            raise ObjectNotFoundError(f"object not found: {path!r}") from exc

        found: list[Item] = []

        def match(item: Item) -> bool:
            if item.name == leaf:
                found.append(item)
                return True
            return False

        self.list_all(dir_id, match, cancel=cancel)
        if not found:
            raise ObjectNotFoundError(f"object not found: {path!r}")
        if found[0].is_folder:
            raise IsDirectoryError(f"{path!r} is a directory")
        return found[0]

    def put(
        self, stream: BinaryIO, src: SourceInfo, *, cancel: threading.Event | None = None
    ) -> FileJumpObject:
        """Upload stream to src.remote and return the new object.

        FileJump permits several entries with the same name, so an existing
        file at the path is left in place.

        Raises:
            PreconditionFailedError: If src.size is negative.
        """
        return self.put_unchecked(stream, src, cancel=cancel)

    def put_unchecked(
        self, stream: BinaryIO, src: SourceInfo, *, cancel: threading.Event | None = None
    ) -> FileJumpObject:
        """Upload stream to src.remote without checking for an existing file."""
        self._log.debug("[put] uploading; remote:%s;size:%d", src.remote, src.size)
        if src.size < 0:
            raise PreconditionFailedError("can't upload objects of unknown size")
        self.dir_cache.find_path(src.remote, create=True, cancel=cancel)
        obj = FileJumpObject(self, src.remote)
        obj.update(stream, src, cancel=cancel)
        return obj

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    def mkdir(self, dir: str, *, cancel: threading.Event | None = None) -> None:
        """Create dir and any missing parents. Existing directories are fine."""
        self._log.debug("[mkdir] creating directory; dir:%s", dir)
        self.dir_cache.find_dir(dir, create=True, cancel=cancel)

    def rmdir(self, dir: str, *, cancel: threading.Event | None = None) -> None:
        """Delete dir, which must be empty.

        Raises:
            CantPurgeRootError: If dir is the drive root.
            DirectoryNotFoundError: If dir does not exist.
            DirectoryNotEmptyError: If dir has children.
            ApiStatusError: If the API does not report success.
        """
        self._log.debug("[rmdir] removing directory; dir:%s", dir)
        self._purge_check(dir, check=True, cancel=cancel)

    def purge(self, dir: str, *, cancel: threading.Event | None = None) -> None:
        """Delete dir and everything in it."""
        self._log.debug("[purge] purging directory; dir:%s", dir)
        self._purge_check(dir, check=False, cancel=cancel)

    def _purge_check(self, dir: str, check: bool, cancel: threading.Event | None) -> None:
        dir = dir.strip("/")
        operation = "rmdir" if check else "purge"
        if not _join(self._root, dir):
            raise CantPurgeRootError("can't purge root directory")
        dir_id = self.dir_cache.find_dir(dir, cancel=cancel)

        if check and self.list_all(dir_id, lambda item: True, cancel=cancel):
            raise DirectoryNotEmptyError(f"directory not empty: {dir!r}")

        body: dict[str, Any] = {"entryIds": [int(dir_id)], "deleteForever": True}
        raw = self._pacer.call(
            lambda: self._client.call_json("POST", PATH_DELETE, json_body=body), cancel
        )
        # Flushed before the status check
        self.dir_cache.flush_dir(dir)
        status = response_status(raw)
        if status != STATUS_SUCCESS:
            raise ApiStatusError(operation, status)
        self._log.info("[%s] removed directory; dir:%s;id:%s", operation, dir, dir_id)

    def close(self) -> None:
        """Release the HTTP connection pools."""
        self._client.close()


def new_backend(
    name: str,
    root: str,
    config: BackendConfig,
    *,
    client: FileJumpClient | None = None,
    pacer: Pacer | None = None,
    log: logging.Logger | None = None,
    cancel: threading.Event | None = None,
) -> FileJumpBackend:
    """Create a backend and resolve its root.

    If root names a file rather than a directory, the returned backend is
    rooted at the file's parent and has root_is_file set. If root does not
    exist at all the backend is returned as is, so the host can mkdir it.
    """
    backend = FileJumpBackend(name, root, config, client=client, pacer=pacer, log=log)
    try:
        backend.dir_cache.find_root(cancel=cancel)
        return backend
    except DirectoryNotFoundError:
        pass

    new_root, leaf = split_path(backend.root)
    parent = FileJumpBackend(
        name, new_root, config, client=backend.client, pacer=backend.pacer, log=log
    )
    try:
        parent.dir_cache.find_root(cancel=cancel)
        parent.new_object(leaf, cancel=cancel)
    except (DirectoryNotFoundError, ObjectNotFoundError):
        return backend
    parent.root_is_file = True
    parent.log.debug("[new_backend] root is a file; root:%s;parent:%s", root, new_root)
    return parent


def backend_from_config(
    name: str,
    root: str = "",
    log: logging.Logger | None = None,
    cancel: threading.Event | None = None,
) -> FileJumpBackend:
    """Load configuration from the environment and create a backend."""
    return new_backend(name, root, load_config(), log=log, cancel=cancel)
