"""Object storage with namespace isolation, plus vector search wrappers."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, NoReturn, Protocol

from .model import FeatureNotImplementedError

MAX_STORE_OBJECT_SIZE = 1024 * 1024 * 2  # 2 MB

_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)


class PutMode(Enum):
    """How a write treats an object that already exists."""

    OVERWRITE = "overwrite"
    CREATE = "create"


@dataclass(frozen=True)
class ObjectMeta:
    """Metadata describing a stored object."""

    location: str
    last_modified: datetime
    size: int
    e_tag: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class PutResult:
    """Outcome of a successful write."""

    e_tag: str | None = None
    version: str | None = None


class ObjectStoreError(Exception):
    """Base error raised by object stores."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class ObjectNotFoundError(ObjectStoreError):
    """Raised when an object does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"object not found: {path}", path)


class ObjectAlreadyExistsError(ObjectStoreError):
    """Raised when an object exists but must not."""

    def __init__(self, path: str) -> None:
        super().__init__(f"object already exists: {path}", path)


class ObjectStore(Protocol):
    """Backend interface used by :class:`Store`."""

    async def get(self, path: str) -> tuple[bytes, ObjectMeta]: ...

    async def put(self, path: str, data: bytes, mode: PutMode) -> PutResult: ...

    def list_with_offset(
        self, prefix: str | None, offset: str
    ) -> AsyncIterator[ObjectMeta]: ...

    async def delete(self, path: str) -> None: ...

    async def rename_if_not_exists(self, src: str, dst: str) -> None: ...


@dataclass
class _Entry:
    data: bytes
    last_modified: datetime
    e_tag: str


def _has_prefix(location: str, prefix: str) -> bool:
    if not prefix:
        return True
    return location == prefix or location.startswith(prefix + "/")


class InMemoryObjectStore:
    """A process-local object store keyed by path."""

    def __init__(self) -> None:
        self._objects: dict[str, _Entry] = {}
        self._etags = itertools.count()

    @staticmethod
    def _meta(location: str, entry: _Entry) -> ObjectMeta:
        return ObjectMeta(
            location=location,
            last_modified=entry.last_modified,
            size=len(entry.data),
            e_tag=entry.e_tag,
        )

    async def get(self, path: str) -> tuple[bytes, ObjectMeta]:
        """Return the object's content and metadata."""
        entry = self._objects.get(path)
        if entry is None:
            raise ObjectNotFoundError(path)
        return entry.data, self._meta(path, entry)

    async def put(
        self, path: str, data: bytes, mode: PutMode = PutMode.OVERWRITE
    ) -> PutResult:
        """Store ``data`` at ``path`` according to ``mode``."""
        if mode is PutMode.CREATE and path in self._objects:
            raise ObjectAlreadyExistsError(path)
        e_tag = str(next(self._etags))
        self._objects[path] = _Entry(
            data=bytes(data), last_modified=datetime.now(timezone.utc), e_tag=e_tag
        )
        return PutResult(e_tag=e_tag)

    async def list_with_offset(
        self, prefix: str | None, offset: str
    ) -> AsyncIterator[ObjectMeta]:
        """Yield objects under ``prefix`` whose location sorts after ``offset``."""
        for location, entry in sorted(self._objects.items()):
            if location <= offset:
                continue
            if prefix is not None and not _has_prefix(location, prefix):
                continue
            yield self._meta(location, entry)

    async def delete(self, path: str) -> None:
        """Remove the object at ``path``; a missing object is not an error."""
        self._objects.pop(path, None)

    async def rename_if_not_exists(self, src: str, dst: str) -> None:
        """Move ``src`` to ``dst`` unless ``dst`` already exists."""
        if src not in self._objects:
            raise ObjectNotFoundError(src)
        if dst in self._objects:
            raise ObjectAlreadyExistsError(dst)
        self._objects[dst] = self._objects.pop(src)


def path_lowercase(path: str) -> str:
    """Lowercase the ASCII letters of a path."""
    return path.translate(_ASCII_LOWER)


def join_path(namespace: str, path: str) -> str:
    """Join a namespace and a path into one normalised location."""
    return "/".join(part for part in f"{namespace}/{path}".split("/") if part)


class VectorSearch(Protocol):
    """Vector search capabilities."""

    async def top_n(self, namespace: str, query: str, n: int) -> list[str]: ...

    async def top_n_ids(self, namespace: str, query: str, n: int) -> list[str]: ...


def _refuse(feature: str, namespace: str) -> NoReturn:
    error = FeatureNotImplementedError(feature)
    error.namespace = namespace
    raise error


class NotImplementedVectorSearch:
    """Placeholder whose searches always fail."""

    async def top_n(self, namespace: str, query: str, n: int) -> list[str]:
        """Fail with :class:`FeatureNotImplementedError`."""
        _refuse("top_n", namespace)

    async def top_n_ids(self, namespace: str, query: str, n: int) -> list[str]:
        """Fail with :class:`FeatureNotImplementedError`."""
        _refuse("top_n_ids", namespace)


@dataclass(frozen=True)
class MockVectorSearch:
    """Vector search over a fixed result list, empty unless given one."""

    results: tuple[str, ...] = ()

    async def top_n(self, namespace: str, query: str, n: int) -> list[str]:
        return list(self.results[:n])

    async def top_n_ids(self, namespace: str, query: str, n: int) -> list[str]:
        return list(self.results[:n])


class VectorStore:
    """Wrapper delegating to a vector search implementation."""

    def __init__(self, inner: VectorSearch) -> None:
        self._inner = inner

    @classmethod
    def not_implemented(cls) -> VectorStore:
        return cls(NotImplementedVectorSearch())

    async def top_n(self, namespace: str, query: str, n: int) -> list[str]:
        """Return the top ``n`` matching items."""
        return await self._inner.top_n(namespace, query, n)

    async def top_n_ids(self, namespace: str, query: str, n: int) -> list[str]:
        """Return the ids of the top ``n`` matching items."""
        return await self._inner.top_n_ids(namespace, query, n)


class Store:
    """Namespaced object storage over an object store backend."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    @staticmethod
    def _location(namespace: str, path: str) -> str:
        return path_lowercase(join_path(namespace, path))

    async def store_get(self, namespace: str, path: str) -> tuple[bytes, ObjectMeta]:
        """Read the object at ``path`` within ``namespace``."""
        return await self._store.get(self._location(namespace, path))

    async def store_list(
        self, namespace: str, prefix: str | None, offset: str
    ) -> list[ObjectMeta]:
        """List objects in ``namespace``, optionally under ``prefix``, after ``offset``."""
        full_prefix = None if prefix is None else self._location(namespace, prefix)
        full_offset = self._location(namespace, offset)
        return [
            meta
            async for meta in self._store.list_with_offset(full_prefix, full_offset)
        ]

    async def store_put(
        self, namespace: str, path: str, mode: PutMode, val: bytes
    ) -> PutResult:
        """Write ``val`` at ``path`` within ``namespace``."""
        return await self._store.put(self._location(namespace, path), bytes(val), mode)

    async def store_rename_if_not_exists(
        self, namespace: str, src: str, dst: str
    ) -> None:
        """Rename ``src`` to ``dst`` unless the target exists."""
        await self._store.rename_if_not_exists(
            self._location(namespace, src), self._location(namespace, dst)
        )

    async def store_delete(self, namespace: str, path: str) -> None:
        """Delete the object at ``path`` within ``namespace``."""
        await self._store.delete(self._location(namespace, path))