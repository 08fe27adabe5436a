import copy
from typing import Dict, Iterable, Optional

from .base import Document, PermissionStore


class InMemoryStore(PermissionStore):
    """Dict-backed store. Documents are copied in and out so callers never share state with it."""

    def __init__(self, collection_prefix: str = ""):
        super().__init__(collection_prefix)
        self.collections: Dict[str, Dict[str, Document]] = {}

    async def _read(self, collection: str, resource_id: str) -> Optional[Document]:
        document = self.collections.get(collection, {}).get(resource_id)
        return copy.deepcopy(document) if document is not None else None

    async def _write(self, collection: str, resource_id: str, document: Document) -> None:
        self.collections.setdefault(collection, {})[resource_id] = copy.deepcopy(document)

    async def _scan(self, collection: str) -> Iterable[Document]:
        return [copy.deepcopy(d) for d in self.collections.get(collection, {}).values()]
