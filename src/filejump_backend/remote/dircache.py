"""Thread-safe cache of directory path to FileJump folder id."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from filejump_backend.remote.errors import DirectoryNotFoundError

logger = logging.getLogger(__name__)


class DirectoryFinder(Protocol):
    """Live lookups the cache falls back to on a miss."""

    def find_leaf(
        self, parent_id: str, leaf: str, *, cancel: threading.Event | None = None
    ) -> str | None: ...

    def create_dir(
        self, parent_id: str, leaf: str, *, cancel: threading.Event | None = None
    ) -> str: ...


def split_path(path: str) -> tuple[str, str]:
    """Split "a/b/c" into ("a/b", "c") and "c" into ("", "c")."""
    path = path.strip("/")
    parent, _, leaf = path.rpartition("/")
    return parent, leaf


class DirCache:
    """Maps root-relative directory paths to folder ids.

    The root itself is stored under "". Entries are only ever a positive
    answer; a missing key always falls back to a live lookup through the
    finder, so a stale miss is never reported as "does not exist".
    """

    def __init__(
        self,
        root: str,
        true_root_id: str,
        finder: DirectoryFinder,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialise an empty cache.

        Args:
            root: Path of the backend root below the drive root.
            true_root_id: Id of the drive root.
            finder: Object performing live leaf lookups and folder creation.
            log: Logger for cache tracing; defaults to the module logger.
        """
        self._root = root.strip("/")
        self._true_root_id = true_root_id
        self._finder = finder
        self._log = log or logger
        self._lock = threading.RLock()
        self._cache: dict[str, str] = {}
        self._root_id: str | None = None

    @property
    def root(self) -> str:
        return self._root

    @property
    def root_id(self) -> str | None:
        """Id of the backend root, or None until find_root succeeds."""
        with self._lock:
            return self._root_id

    def get(self, path: str) -> str | None:
        with self._lock:
            return self._cache.get(path.strip("/"))

    def put(self, path: str, dir_id: str) -> None:
        with self._lock:
            self._cache[path.strip("/")] = dir_id

    def flush_dir(self, path: str) -> None:
        """Forget path and everything below it. "" flushes the whole cache."""
        path = path.strip("/")
        with self._lock:
            if not path:
                self._flush_locked()
                return
            prefix = path + "/"
            for key in [k for k in self._cache if k == path or k.startswith(prefix)]:
                del self._cache[key]
        self._log.debug("[flush_dir] evicted cached directory; path:%s", path)

    def flush(self) -> None:
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        self._cache.clear()
        self._root_id = None

    def find_root(self, create: bool = False, *, cancel: threading.Event | None = None) -> str:
        """Resolve the backend root to a folder id.

        Raises:
            DirectoryNotFoundError: If the root does not exist and create is False.
        """
        with self._lock:
            if self._root_id is not None:
                return self._root_id
            dir_id = self._true_root_id
            if self._root:
                walked = []
                for leaf in self._root.split("/"):
                    walked.append(leaf)
                    dir_id = self._lookup(dir_id, leaf, "/".join(walked), create, cancel)
            self._root_id = dir_id
            self._cache[""] = dir_id
            self._log.debug("[find_root] resolved root; root:%s;id:%s", self._root, dir_id)
            return dir_id

    def find_dir(
        self, path: str, create: bool = False, *, cancel: threading.Event | None = None
    ) -> str:
        """Resolve a root-relative directory path to a folder id.

        Raises:
            DirectoryNotFoundError: If a component is missing and create is False.
        """
        with self._lock:
            self.find_root(create, cancel=cancel)
            return self._find_dir_locked(path.strip("/"), create, cancel)

    def find_path(
        self, remote: str, create: bool = False, *, cancel: threading.Event | None = None
    ) -> tuple[str, str]:
        """Resolve the parent directory of remote.

        Returns:
            Tuple of (leaf name, parent folder id).
        """
        directory, leaf = split_path(remote)
        return leaf, self.find_dir(directory, create, cancel=cancel)

    def _find_dir_locked(
        self, path: str, create: bool, cancel: threading.Event | None
    ) -> str:
        cached = self._cache.get(path)
        if cached is not None:
            return cached
        parent, leaf = split_path(path)
        parent_id = self._find_dir_locked(parent, create, cancel)
        dir_id = self._lookup(parent_id, leaf, path, create, cancel)
        self._cache[path] = dir_id
        return dir_id

    def _lookup(
        self,
        parent_id: str,
        leaf: str,
        path: str,
        create: bool,
        cancel: threading.Event | None,
    ) -> str:
        self._log.debug("[find_dir] cache miss; path:%s;parent_id:%s", path, parent_id)
        dir_id = self._finder.find_leaf(parent_id, leaf, cancel=cancel)
        if dir_id is not None:
            return dir_id
        if not create:
            raise DirectoryNotFoundError(f"directory not found: {path!r}")
        dir_id = self._finder.create_dir(parent_id, leaf, cancel=cancel)
        self._log.info("[find_dir] created directory; path:%s;id:%s", path, dir_id)
        return dir_id
