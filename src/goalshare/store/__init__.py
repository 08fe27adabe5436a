"""
Permission Store Adapters: the document store the permission core reads and writes.
"""

from .base import PermissionStore, ArrayUnion, ArrayRemove, DELETE_FIELD, apply_changes
from .memory import InMemoryStore
from .yaml_store import YamlDocumentStore
from .migrate import PermissionSchemaEngine, PermissionMigration, load_resource, normalize_permissions

__all__ = [
    'PermissionStore',
    'ArrayUnion',
    'ArrayRemove',
    'DELETE_FIELD',
    'apply_changes',
    'InMemoryStore',
    'YamlDocumentStore',
    'PermissionSchemaEngine',
    'PermissionMigration',
    'load_resource',
    'normalize_permissions',
]
