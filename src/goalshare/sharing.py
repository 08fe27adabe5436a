"""
Sharing surface used by applications.

Each operation writes the direct grant on the resource first, then fans the
change out with the Propagation Engine. The direct write stays in place even
when propagation only partially succeeds.
"""
from typing import List, Optional, Union

from .checker import AccessChecker
from .hierarchy import ancestry_of
from .logs import get_logger
from .models import (
    Capability,
    HierarchicalPermissions,
    PermissionInheritanceSettings,
    PermissionLevel,
    PropagationResult,
    ResourceRef,
    ResourceType,
    SharedResource,
)
from .notify import Notifier, UpdateType, UserDirectory, deliver_collaborator_update, deliver_share_invite
from .propagation import REVOKE, PropagationEngine, grant_changes, revoke_changes
from .recovery import InvalidGrantError, PermissionDeniedError
from .resolver import InheritancePolicy, PermissionResolver, inherit_every_level
from .store.base import PermissionStore

log = get_logger("sharing")

OWNER_PERMISSIONS = HierarchicalPermissions(level=PermissionLevel.OWNER)


class SharingService:
    """
    Share, update and revoke collaborators on one store.

    Build one per request or test; it holds no state beyond its collaborators.
    """

    def __init__(self, store: PermissionStore, notifier: Optional[Notifier] = None,
                 directory: Optional[UserDirectory] = None, policy: InheritancePolicy = inherit_every_level):
        self.store = store
        self.notifier = notifier
        self.directory = directory
        self.resolver = PermissionResolver(store, policy)
        self.checker = AccessChecker(self.resolver)
        self.engine = PropagationEngine(store)

    def ancestry(self, resource: SharedResource) -> List[ResourceRef]:
        return ancestry_of(resource)

    async def effective_permissions(self, user_id: str, resource_type: ResourceType,
                                    resource_id: str) -> Optional[HierarchicalPermissions]:
        """Resolved access of ``user_id``; the owner gets an owner-level record."""
        resource = await self.store.require(resource_type, resource_id)
        if resource.is_owner(user_id):
            return OWNER_PERMISSIONS
        return await self.resolver.resolve_resource(user_id, resource, self.ancestry(resource))

    async def can(self, user_id: str, resource_type: ResourceType, resource_id: str,
                  capability: Union[Capability, str]) -> bool:
        resource = await self.store.require(resource_type, resource_id)
        return await self.checker.check_resource(user_id, resource, self.ancestry(resource), capability)

    async def share(self, actor_id: str, resource_type: ResourceType, resource_id: str, user_id: str,
                    permissions: HierarchicalPermissions,
                    settings: Optional[PermissionInheritanceSettings] = None) -> PropagationResult:
        """
        Give ``user_id`` access to a resource and its descendants.

        Raises:
            NotFoundError: the resource does not exist.
            PermissionDeniedError: ``actor_id`` may not invite collaborators.
            InvalidGrantError: the user is the owner, already a collaborator,
                or the grant is owner-level.
            PartialPropagationFailure: some descendants were not updated.
        """
        resource = await self.store.require(resource_type, resource_id)
        await self._authorize(actor_id, resource, Capability.CAN_INVITE_USERS)
        grant = self._validate_grant(resource, user_id, permissions)
        if user_id in resource.permissions:
            raise InvalidGrantError(f"{user_id} already has access to {resource.ref}")

        resource = await self.store.update(resource_type, resource_id, grant_changes(user_id, grant))
        log.info(f"{actor_id} shared {resource.ref} with {user_id} as {grant.level.value}")

        try:
            return await self._propagate(resource, user_id, grant, settings)
        finally:
            await deliver_share_invite(self.notifier, self.directory, user_id, actor_id, resource, grant)

    async def update_permissions(self, actor_id: str, resource_type: ResourceType, resource_id: str,
                                 user_id: str, permissions: HierarchicalPermissions,
                                 settings: Optional[PermissionInheritanceSettings] = None) -> PropagationResult:
        """
        Change an existing collaborator's level or overrides.

        Raises:
            NotFoundError: the resource does not exist.
            PermissionDeniedError: ``actor_id`` may not modify permissions.
            InvalidGrantError: the user is not a collaborator, is the owner,
                or the grant is owner-level.
            PartialPropagationFailure: some descendants were not updated.
        """
        resource = await self.store.require(resource_type, resource_id)
        await self._authorize(actor_id, resource, Capability.CAN_MODIFY_PERMISSIONS)
        grant = self._validate_grant(resource, user_id, permissions)
        if user_id not in resource.permissions:
            raise InvalidGrantError(f"{user_id} is not a collaborator on {resource.ref}")

        resource = await self.store.update(resource_type, resource_id, grant_changes(user_id, grant))
        log.info(f"{actor_id} changed {user_id} on {resource.ref} to {grant.level.value}")

        try:
            return await self._propagate(resource, user_id, grant, settings)
        finally:
            await deliver_collaborator_update(self.notifier, self.directory, user_id, actor_id, resource,
                                              UpdateType.PERMISSIONS_UPDATED)

    async def revoke(self, actor_id: str, resource_type: ResourceType, resource_id: str, user_id: str,
                     settings: Optional[PermissionInheritanceSettings] = None) -> PropagationResult:
        """
        Remove ``user_id`` from a resource and its descendants.

        Revoking a user who has no access is allowed and still sweeps the
        descendants, so repeating a revoke converges on the same state.

        Raises:
            NotFoundError: the resource does not exist.
            PermissionDeniedError: ``actor_id`` may not modify permissions.
            InvalidGrantError: the user is the owner.
            PartialPropagationFailure: some descendants were not updated.
        """
        resource = await self.store.require(resource_type, resource_id)
        await self._authorize(actor_id, resource, Capability.CAN_MODIFY_PERMISSIONS)
        if resource.is_owner(user_id):
            raise InvalidGrantError(f"The owner of {resource.ref} cannot be removed")

        resource = await self.store.update(resource_type, resource_id, revoke_changes(user_id))
        log.info(f"{actor_id} revoked {user_id} from {resource.ref}")

        return await self._propagate(resource, user_id, REVOKE, settings)

    async def _propagate(self, resource: SharedResource, user_id: str, change,
                         settings: Optional[PermissionInheritanceSettings]) -> PropagationResult:
        settings = settings if settings is not None else resource.permission_inheritance
        return await self.engine.propagate(resource.resource_type, resource.id, user_id, change, settings)

    async def _authorize(self, actor_id: str, resource: SharedResource, capability: Capability):
        if not await self.checker.check_resource(actor_id, resource, self.ancestry(resource), capability):
            raise PermissionDeniedError(f"{actor_id} lacks {capability.value} on {resource.ref}")

    def _validate_grant(self, resource: SharedResource, user_id: str,
                        permissions: HierarchicalPermissions) -> HierarchicalPermissions:
        if resource.is_owner(user_id):
            raise InvalidGrantError(f"{user_id} owns {resource.ref}; ownership already grants full access")
        if permissions.level is PermissionLevel.OWNER:
            raise InvalidGrantError("Ownership cannot be granted; it belongs to the creator")
        return permissions.as_direct()
