"""
Permission Store Adapter interface.

Adapters move raw documents; this base class owns the merge semantics
(field paths into maps, array union/remove, field deletion) and the
normalization of every document read, so each adapter only has to
implement ``_read``, ``_write`` and ``_scan``.
"""
import abc
import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from goalshare.hierarchy import collection_name
from goalshare.logs import get_logger
from goalshare.models import ResourceType, SharedResource
from goalshare.recovery import CorruptionError, InvalidGrantError, NotFoundError
from .migrate import load_resource

log = get_logger("store")

Document = Dict[str, Any]


class ArrayUnion:
    """Append values missing from a list field."""

    def __init__(self, *values):
        self.values = values

    def __repr__(self):
        return f"ArrayUnion{self.values!r}"


class ArrayRemove:
    """Remove every occurrence of the values from a list field."""

    def __init__(self, *values):
        self.values = values

    def __repr__(self):
        return f"ArrayRemove{self.values!r}"


class _DeleteField:
    def __repr__(self):
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


FieldPath = Union[str, Tuple[str, ...]]


def _path_parts(path: FieldPath) -> Tuple[str, ...]:
    # Tuples are taken verbatim so map keys (user ids) may contain dots.
    if isinstance(path, tuple):
        return path
    return tuple(path.split("."))


def _path_label(path: FieldPath) -> str:
    return ".".join(_path_parts(path))


def _raw_field(document: Document, field: str):
    """A field of an unnormalized document, under its snake_case or camelCase key."""
    if field in document:
        return document[field]
    head, *rest = field.split("_")
    return document.get(head + "".join(part.title() for part in rest))


def apply_changes(document: Document, changes: Dict[FieldPath, Any]) -> Document:
    """
    Merge ``changes`` into a copy of ``document``.

    Keys are field paths, either dotted strings or tuples of segments;
    ``("permissions", "u2")`` touches only that map entry and leaves sibling
    keys alone. Use the tuple form whenever a segment is data rather than a
    field name. Values may be plain data, ``ArrayUnion``, ``ArrayRemove`` or
    ``DELETE_FIELD``.
    """
    merged = copy.deepcopy(document)
    for path, value in changes.items():
        *parents, leaf = _path_parts(path)
        target = merged
        for key in parents:
            child = target.get(key)
            if not isinstance(child, dict):
                child = {}
                target[key] = child
            target = child

        if value is DELETE_FIELD:
            target.pop(leaf, None)
        elif isinstance(value, ArrayUnion):
            current = list(target.get(leaf) or [])
            current.extend(v for v in value.values if v not in current)
            target[leaf] = current
        elif isinstance(value, ArrayRemove):
            target[leaf] = [v for v in (target.get(leaf) or []) if v not in value.values]
        else:
            target[leaf] = copy.deepcopy(value)
    return merged


class PermissionStore(abc.ABC):
    """
    Multi-collection document store keyed by resource type and id.

    Collection names are ``<collection_prefix><collection>``; the prefix
    separates environments (``dev_``, ``test_``) sharing one backend.
    """

    def __init__(self, collection_prefix: str = ""):
        self.collection_prefix = collection_prefix
        self._locks: Dict[str, asyncio.Lock] = {}

    def collection_for(self, resource_type: ResourceType) -> str:
        return f"{self.collection_prefix}{collection_name(resource_type)}"

    @asynccontextmanager
    async def _locked(self, collection: str):
        lock = self._locks.setdefault(collection, asyncio.Lock())
        async with lock:
            yield

    @abc.abstractmethod
    async def _read(self, collection: str, resource_id: str) -> Optional[Document]:
        """Raw document or None."""
        pass

    @abc.abstractmethod
    async def _write(self, collection: str, resource_id: str, document: Document) -> None:
        """Replace the whole raw document."""
        pass

    @abc.abstractmethod
    async def _scan(self, collection: str) -> Iterable[Document]:
        """Every raw document of a collection."""
        pass

    async def get(self, resource_type: ResourceType, resource_id: str) -> Optional[SharedResource]:
        """The normalized resource, or None when it does not exist."""
        document = await self._read(self.collection_for(resource_type), resource_id)
        if document is None:
            return None
        return load_resource(resource_type, {**document, "id": resource_id})

    async def require(self, resource_type: ResourceType, resource_id: str) -> SharedResource:
        """Like ``get`` but a missing resource raises ``NotFoundError``."""
        resource = await self.get(resource_type, resource_id)
        if resource is None:
            raise NotFoundError(resource_type, resource_id)
        return resource

    async def query_by_parent(self, resource_type: ResourceType, parent_field: str, parent_id: str,
                              shared_with: Optional[str] = None,
                              unreadable: Optional[Dict[str, CorruptionError]] = None) -> List[SharedResource]:
        """
        Resources of ``resource_type`` whose ``parent_field`` equals ``parent_id``.

        Documents are matched on their raw fields before normalization, so an
        unreadable document under another parent never affects the query.

        Args:
            shared_with: Only return resources listing this user.
            unreadable: When given, matching documents that cannot be read
                are recorded here by id instead of raising.

        Raises:
            CorruptionError: a matching document cannot be read and no
                ``unreadable`` map was given.
        """
        matches = []
        for document in await self._scan(self.collection_for(resource_type)):
            if _raw_field(document, parent_field) != parent_id:
                continue
            if shared_with is not None and shared_with not in (_raw_field(document, "shared_with") or []):
                continue
            try:
                matches.append(load_resource(resource_type, document))
            except CorruptionError as e:
                if unreadable is None:
                    raise
                log.error(f"Skipping unreadable {resource_type.value} {document.get('id')}: {e}")
                unreadable[document.get("id")] = e
        return matches

    async def update(self, resource_type: ResourceType, resource_id: str, changes: Dict[FieldPath, Any]) -> SharedResource:
        """
        Merge ``changes`` into a stored resource (see ``apply_changes``).

        Legacy documents are rewritten in the current shape on their first
        update.

        Raises:
            NotFoundError: the resource does not exist.
            InvalidGrantError: the merged document breaks a sharing invariant.
        """
        collection = self.collection_for(resource_type)
        async with self._locked(collection):
            document = await self._read(collection, resource_id)
            if document is None:
                raise NotFoundError(resource_type, resource_id)

            current = load_resource(resource_type, {**document, "id": resource_id}).to_document()
            merged = apply_changes(current, changes)
            try:
                resource = SharedResource.model_validate(merged)
            except ValidationError as e:
                raise InvalidGrantError(f"Update of {resource_type.value} {resource_id} rejected: {e}") from e

            await self._write(collection, resource_id, resource.to_document())
        log.debug(f"Updated {collection}/{resource_id}: {sorted(_path_label(p) for p in changes)}")
        return resource

    async def put(self, resource: SharedResource) -> None:
        """Create or replace a resource."""
        collection = self.collection_for(resource.resource_type)
        async with self._locked(collection):
            await self._write(collection, resource.id, resource.to_document())

    async def put_raw(self, resource_type: ResourceType, resource_id: str, document: Document) -> None:
        """Store a document as-is, without normalization. Used to seed legacy data."""
        collection = self.collection_for(resource_type)
        async with self._locked(collection):
            await self._write(collection, resource_id, {**document, "id": resource_id})
