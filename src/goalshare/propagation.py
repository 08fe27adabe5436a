"""
Propagation Engine.

Fans a permission change made on one resource out to every descendant the
resource's inheritance settings allow. Descendant collections are processed
one after another; the writes inside one collection run concurrently.

A failed descendant write never stops its siblings. Failures are collected
and raised together as ``PartialPropagationFailure`` once every write has
settled; writes that landed are not rolled back. There is no fencing between
overlapping propagations: the last write to reach a document wins.
"""
import asyncio
from typing import Any, Dict, List, Optional

from .hierarchy import DescendantLink, descendant_links
from .logs import get_logger
from .models import (
    HierarchicalPermissions,
    PermissionChange,
    PermissionInheritanceSettings,
    PropagationOperation,
    PropagationResult,
    ResourceRef,
    ResourceType,
    SharedResource,
)
from .recovery import CorruptionError, PartialPropagationFailure
from .store.base import ArrayRemove, ArrayUnion, DELETE_FIELD, FieldPath, PermissionStore

log = get_logger("propagation")

REVOKE = PropagationOperation.REVOKE


def grant_changes(user_id: str, grant: HierarchicalPermissions) -> Dict[FieldPath, Any]:
    """Store changes adding ``user_id`` with ``grant``; union keeps it idempotent."""
    return {
        "shared_with": ArrayUnion(user_id),
        ("permissions", user_id): grant.as_direct().to_record(),
    }


def revoke_changes(user_id: str) -> Dict[FieldPath, Any]:
    """Store changes removing ``user_id`` from membership and grants."""
    return {
        "shared_with": ArrayRemove(user_id),
        ("permissions", user_id): DELETE_FIELD,
    }


class PropagationEngine:

    def __init__(self, store: PermissionStore):
        self.store = store

    async def propagate(self, resource_type: ResourceType, resource_id: str, user_id: str,
                        change: PermissionChange, settings: PermissionInheritanceSettings) -> PropagationResult:
        """
        Write ``change`` for ``user_id`` on every eligible descendant.

        Args:
            resource_type: Type of the resource whose grant changed.
            resource_id: Id of that resource.
            user_id: Collaborator whose access changed.
            change: The grant to copy onto descendants, or ``REVOKE``.
            settings: Which descendant categories receive the change.

        Returns:
            The per-descendant outcome when every write succeeded.

        Raises:
            PartialPropagationFailure: one or more descendant writes failed, or a
                matching descendant could not be read.
            StoreUnavailableError: a descendant query failed; collections
                already processed keep their writes.
        """
        if change is REVOKE:
            operation, grant = PropagationOperation.REVOKE, None
        else:
            operation, grant = PropagationOperation.GRANT, change.as_direct()

        result = PropagationResult(
            source=ResourceRef(type=resource_type, id=resource_id),
            user_id=user_id,
            operation=operation,
        )

        for link in descendant_links(resource_type):
            if not settings.is_enabled(link.settings_flag):
                log.debug(f"{link.settings_flag} is off; leaving {link.resource_type.value}s of {result.source} alone")
                continue
            result.merge(await self._propagate_collection(link, result.source, user_id, grant))

        log.info(f"{operation.value} for {user_id} from {result.source}: "
                 f"{len(result.succeeded)} written, {len(result.failed)} failed, {len(result.skipped)} skipped")

        if result.failed:
            raise PartialPropagationFailure(result)
        return result

    async def _propagate_collection(self, link: DescendantLink, source: ResourceRef, user_id: str,
                                    grant: Optional[HierarchicalPermissions]) -> PropagationResult:
        operation = PropagationOperation.REVOKE if grant is None else PropagationOperation.GRANT
        collection_result = PropagationResult(source=source, user_id=user_id, operation=operation)

        # Revocations only need the descendants that currently list the user.
        unreadable: Dict[str, CorruptionError] = {}
        descendants = await self.store.query_by_parent(
            link.resource_type, link.parent_field, source.id,
            shared_with=user_id if grant is None else None,
            unreadable=unreadable,
        )
        log.info(f"Found {len(descendants)} {link.resource_type.value}(s) under {source} to update")

        for resource_id, error in unreadable.items():
            ref = ResourceRef(type=link.resource_type, id=resource_id)
            collection_result.failed.append(PropagationResult.Failure(ref=ref, error=str(error)))

        targets: List[SharedResource] = []
        for descendant in descendants:
            if descendant.is_owner(user_id):
                collection_result.skipped.append(descendant.ref)
            else:
                targets.append(descendant)

        changes = revoke_changes(user_id) if grant is None else grant_changes(user_id, grant)
        outcomes = await asyncio.gather(
            *(self.store.update(d.resource_type, d.id, changes) for d in targets),
            return_exceptions=True,
        )

        for descendant, outcome in zip(targets, outcomes):
            if isinstance(outcome, Exception):
                log.error(f"Failed to {operation.value} {user_id} on {descendant.ref}: {outcome}")
                collection_result.failed.append(PropagationResult.Failure(ref=descendant.ref, error=str(outcome)))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                collection_result.succeeded.append(descendant.ref)

        return collection_result
