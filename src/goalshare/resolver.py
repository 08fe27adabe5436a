"""
Permission Resolver.

Computes a user's single effective permission record on a resource from
the resource's own direct grants and those of its ancestors. A direct grant
always wins; otherwise the nearest ancestor holding an inheritable grant
supplies a copy marked with ``inherited_from``.

Ownership is not considered here. Callers short-circuit owners first.
"""
from typing import Callable, Optional, Sequence

from .logs import get_logger
from .models import HierarchicalPermissions, ResourceRef, ResourceType, SharedResource
from .store.base import PermissionStore

log = get_logger("resolver")

InheritancePolicy = Callable[[HierarchicalPermissions, ResourceType], bool]


def inherit_every_level(grant: HierarchicalPermissions, child_type: ResourceType) -> bool:
    """Default policy: editor and viewer grants flow down just like owner/admin ones."""
    return True


def may_inherit(grant: HierarchicalPermissions, child_type: ResourceType,
                policy: InheritancePolicy = inherit_every_level) -> bool:
    # Owner and admin grants always flow down, whatever the policy says.
    if grant.level.is_full_access:
        return True
    return policy(grant, child_type)


def resolve_permissions(user_id: str, resource: SharedResource, ancestors: Sequence[SharedResource],
                        policy: InheritancePolicy = inherit_every_level) -> Optional[HierarchicalPermissions]:
    """
    Effective permissions of ``user_id`` on ``resource``.

    Args:
        user_id: The user being resolved.
        resource: The loaded resource.
        ancestors: Loaded ancestors, nearest parent first.
        policy: Decides whether a non owner/admin grant inherits downward.

    Returns:
        The direct grant unmodified, an inherited copy of the nearest
        eligible ancestor grant, or None when the user has no access.
    """
    direct = resource.direct_permissions(user_id)
    if direct is not None:
        return direct

    for ancestor in ancestors:
        grant = ancestor.direct_permissions(user_id)
        if grant is None:
            continue
        if may_inherit(grant, resource.resource_type, policy):
            return grant.inherit_from(ancestor.resource_type, ancestor.id)
        log.debug(f"Grant for {user_id} on {ancestor.ref} is not inheritable by {resource.resource_type.value}")

    return None


class PermissionResolver:
    """Loads a resource and its ancestry from the store and resolves against it."""

    def __init__(self, store: PermissionStore, policy: InheritancePolicy = inherit_every_level):
        self.store = store
        self.policy = policy

    async def resolve(self, user_id: str, resource_type: ResourceType, resource_id: str,
                      ancestry: Sequence[ResourceRef]) -> Optional[HierarchicalPermissions]:
        """
        Resolve by id. ``ancestry`` is the caller-supplied chain, nearest parent first.

        Raises:
            NotFoundError: the resource itself does not exist.
        """
        resource = await self.store.require(resource_type, resource_id)
        return await self.resolve_resource(user_id, resource, ancestry)

    async def resolve_resource(self, user_id: str, resource: SharedResource,
                               ancestry: Sequence[ResourceRef]) -> Optional[HierarchicalPermissions]:
        direct = resource.direct_permissions(user_id)
        if direct is not None:
            return direct

        # Ancestors are loaded lazily, stopping at the first one that answers.
        for ref in ancestry:
            ancestor = await self.store.get(ref.type, ref.id)
            if ancestor is None:
                log.warning(f"Ancestor {ref} of {resource.ref} does not exist; skipping")
                continue
            permissions = resolve_permissions(user_id, resource, [ancestor], self.policy)
            if permissions is not None:
                return permissions

        return None
