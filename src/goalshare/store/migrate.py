"""
Normalization of stored permission records.

Documents written by older clients hold flag-style grants
(``{"edit": true, "view": true}``) and revoked grants left behind as
``null``. Every record read from a store passes through here, so the
permission core only ever sees ``HierarchicalPermissions``.

A record's schema version is found by validating it against the bundled
schemas from newest to oldest, then lifted one ``PermissionMigration`` step
at a time to ``APP_SCHEMA_VERSION``.
"""
import abc
import json
from functools import lru_cache
from importlib.resources import files
from typing import Any, Dict, List, Optional, Type

from jsonschema import validate, ValidationError, SchemaError
from packaging import version
from pydantic import ValidationError as ModelValidationError

from goalshare.logs import get_logger
from goalshare.models import HierarchicalPermissions, ResourceType, SharedResource
from goalshare.recovery import CorruptionError
from goalshare.version import APP_SCHEMA_VERSION

log = get_logger("store.migrate")

PermissionRecord = Dict[str, Any]

SCHEMA_FILENAME = "permission.schema.json"


class PermissionMigration(abc.ABC):
    """
    One upgrade step for a single stored permission record.

    FROM_VERSION is the schema version the step reads, VERSION the one it
    produces.
    """
    FROM_VERSION = None
    VERSION = None

    @abc.abstractmethod
    def upgrade(self, record: PermissionRecord) -> Optional[PermissionRecord]:
        """
        Lift ``record`` to VERSION.

        Returns:
            The upgraded record, or None when the old record granted no access.
        """
        pass


class FlagsToLevelMigration(PermissionMigration):
    """``{edit, view, invite?}`` flags become a level plus overrides."""
    FROM_VERSION = "0.0.0"
    VERSION = "1.0.0"

    def upgrade(self, record: PermissionRecord) -> Optional[PermissionRecord]:
        if record.get("edit"):
            upgraded = {"level": "editor"}
        elif record.get("view"):
            upgraded = {"level": "viewer"}
        else:
            return None

        if record.get("invite"):
            upgraded["specific_overrides"] = {"can_invite_users": True}
        return upgraded


DEFAULT_MIGRATIONS: List[Type[PermissionMigration]] = [FlagsToLevelMigration]


def _load_schemas() -> Dict[str, dict]:
    """Read every bundled ``v<version>/permission.schema.json``."""
    schemas = {}
    schema_root = files("goalshare") / "schemas"
    for entry in schema_root.iterdir():
        if not entry.is_dir() or not entry.name.startswith("v"):
            continue
        schema_file = entry / SCHEMA_FILENAME
        if not schema_file.is_file():
            log.warning(f"Schema directory {entry.name} has no {SCHEMA_FILENAME}")
            continue
        try:
            schemas[entry.name[1:]] = json.loads(schema_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise CorruptionError(f"Bundled schema {entry.name}/{SCHEMA_FILENAME} is not valid JSON: {e}") from e
    return schemas


class PermissionSchemaEngine:
    """Detects the schema version of stored records and migrates them forward."""

    def __init__(self, schemas: Optional[Dict[str, dict]] = None,
                 migrations: Optional[List[Type[PermissionMigration]]] = None):
        self.schemas = schemas if schemas is not None else _load_schemas()
        self.available_versions = sorted(self.schemas, key=version.parse)
        self.latest_version = self.available_versions[-1] if self.available_versions else APP_SCHEMA_VERSION
        if self.latest_version != APP_SCHEMA_VERSION:
            log.warning(f"Latest bundled schema {self.latest_version} differs from APP_SCHEMA_VERSION {APP_SCHEMA_VERSION}")

        self.migrations: Dict[str, PermissionMigration] = {}
        for migration_class in migrations if migrations is not None else DEFAULT_MIGRATIONS:
            self.migrations[migration_class.FROM_VERSION] = migration_class()
        log.debug(f"Permission schema versions: {self.available_versions}")

    def find_schema_version(self, record: PermissionRecord) -> Optional[str]:
        """Newest schema version ``record`` validates against, or None."""
        for candidate in reversed(self.available_versions):
            try:
                validate(instance=record, schema=self.schemas[candidate])
                return candidate
            except ValidationError:
                continue
            except SchemaError as e:
                raise CorruptionError(f"Bundled permission schema v{candidate} is invalid: {e.message}") from e
        return None

    def upgrade_record(self, record: Optional[PermissionRecord]) -> Optional[PermissionRecord]:
        """
        Migrate one stored record to the latest schema.

        Returns:
            The record in the latest shape, or None when it grants no access.

        Raises:
            CorruptionError: the record matches no known schema, or no
                migration path leads from its version to the latest.
        """
        if record is None:
            return None

        current = self.find_schema_version(record)
        if current is None:
            raise CorruptionError(f"Unrecognized permission record: {record!r}")

        while current != self.latest_version:
            migration = self.migrations.get(current)
            if migration is None:
                raise CorruptionError(f"No permission migration from v{current}")
            log.debug(f"Migrating permission record v{migration.FROM_VERSION} -> v{migration.VERSION}")
            record = migration.upgrade(record)
            if record is None:
                return None
            current = migration.VERSION

        return record


@lru_cache(maxsize=1)
def default_engine() -> PermissionSchemaEngine:
    return PermissionSchemaEngine()


def normalize_permissions(raw: Optional[Dict[str, Any]],
                          engine: Optional[PermissionSchemaEngine] = None) -> Dict[str, HierarchicalPermissions]:
    """
    Turn a stored ``permissions`` map into direct grants.

    Null entries and flag records granting nothing are dropped. Records that
    carry an inheritance marker were never direct grants and are dropped too.
    """
    engine = engine or default_engine()
    grants = {}
    for user_id, record in (raw or {}).items():
        upgraded = engine.upgrade_record(record)
        if upgraded is None:
            continue
        grant = HierarchicalPermissions.model_validate(upgraded)
        if grant.is_inherited:
            log.warning(f"Dropping stored inherited record for {user_id}; only direct grants are persisted")
            continue
        grants[user_id] = grant
    return grants


def load_resource(resource_type: ResourceType, document: Dict[str, Any],
                  engine: Optional[PermissionSchemaEngine] = None) -> SharedResource:
    """
    Validate a raw stored document as a ``SharedResource``.

    Raises:
        CorruptionError: the document cannot be read as a resource.
    """
    document = dict(document)
    try:
        permissions = normalize_permissions(document.pop("permissions", None), engine)
    except ModelValidationError as e:
        raise CorruptionError(f"Stored {resource_type.value} {document.get('id')} has an unreadable grant: {e}") from e

    owner_id = document.get("owner_id", document.get("ownerId"))
    if owner_id in permissions:
        log.warning(f"Dropping grant for owner {owner_id} on {resource_type.value} {document.get('id')}")
        permissions.pop(owner_id)
    for key in ("shared_with", "sharedWith"):
        if owner_id in (document.get(key) or []):
            document[key] = [u for u in document[key] if u != owner_id]

    for key in ("resource_type", "resourceType", "type"):
        document.pop(key, None)

    try:
        return SharedResource.model_validate({**document, "resource_type": resource_type, "permissions": permissions})
    except ModelValidationError as e:
        raise CorruptionError(f"Stored {resource_type.value} {document.get('id')} is not a valid resource: {e}") from e
