"""
File-backed permission store.

Each collection is one YAML file, ``<data_dir>/<prefix><collection>.yml``,
mapping document id to document. Writes replace the file atomically.
"""
import asyncio
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from goalshare.logs import get_logger
from .base import Document, PermissionStore
from .io import atomic_write, load_yaml_file

log = get_logger("store.yaml")


class YamlDocumentStore(PermissionStore):

    def __init__(self, data_dir: Union[Path, str], collection_prefix: str = ""):
        super().__init__(collection_prefix)
        self.data_dir = Path(data_dir)

    def path_for(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.yml"

    async def _load(self, collection: str) -> Dict[str, Document]:
        return await asyncio.to_thread(load_yaml_file, self.path_for(collection))

    async def _read(self, collection: str, resource_id: str) -> Optional[Document]:
        return (await self._load(collection)).get(resource_id)

    async def _write(self, collection: str, resource_id: str, document: Document) -> None:
        # Callers hold the collection lock, so this read-modify-write is not interleaved.
        documents = await self._load(collection)
        documents[resource_id] = document
        await asyncio.to_thread(atomic_write, self.path_for(collection), documents)

    async def _scan(self, collection: str) -> Iterable[Document]:
        documents = await self._load(collection)
        return [{**document, "id": resource_id} for resource_id, document in documents.items()]
