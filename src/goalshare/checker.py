from typing import Optional, Sequence, Union

from .models import Capability, HierarchicalPermissions, PermissionLevel, ResourceRef, ResourceType, SharedResource
from .resolver import PermissionResolver

# Capabilities each level holds when no override says otherwise.
LEVEL_DEFAULTS = {
    PermissionLevel.EDITOR: frozenset({Capability.VIEW, Capability.EDIT}),
    PermissionLevel.VIEWER: frozenset({Capability.VIEW}),
}


def check_capability(permissions: Optional[HierarchicalPermissions], capability: Union[Capability, str]) -> bool:
    """Whether a resolved record allows ``capability``."""
    capability = Capability.parse(capability)
    if permissions is None:
        return False

    if permissions.level.is_full_access:
        return True

    if permissions.specific_overrides is not None:
        override = permissions.specific_overrides.get(capability)
        if override is not None:
            return override

    return capability in LEVEL_DEFAULTS.get(permissions.level, frozenset())


class AccessChecker:
    """Allow/deny decisions for a user, a resource and a capability."""

    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    async def has_permission(self, user_id: str, resource_type: ResourceType, resource_id: str,
                             ancestry: Sequence[ResourceRef], capability: Union[Capability, str]) -> bool:
        resource = await self.resolver.store.require(resource_type, resource_id)
        return await self.check_resource(user_id, resource, ancestry, capability)

    async def check_resource(self, user_id: str, resource: SharedResource,
                             ancestry: Sequence[ResourceRef], capability: Union[Capability, str]) -> bool:
        capability = Capability.parse(capability)
        if resource.is_owner(user_id):
            return True
        permissions = await self.resolver.resolve_resource(user_id, resource, ancestry)
        return check_capability(permissions, capability)
