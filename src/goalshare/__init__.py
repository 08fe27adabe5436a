"""
goalshare - hierarchical sharing for goal and task trackers.

Users organize work as a tree and share any node with collaborators:
Area → Goal → Milestone → {Task, Routine}

This package resolves a user's effective access on any node, checks
capabilities, and propagates permission changes down the tree.
"""

from .version import VERSION, APP_SCHEMA_VERSION
from .models import (
    Capability,
    HierarchicalPermissions,
    InheritedFrom,
    PermissionInheritanceSettings,
    PermissionLevel,
    PropagationResult,
    ResourceRef,
    ResourceType,
    SharedResource,
    SpecificOverrides,
)
from .resolver import PermissionResolver, resolve_permissions
from .checker import AccessChecker, check_capability
from .propagation import PropagationEngine, REVOKE
from .sharing import SharingService
from .recovery import (
    GoalshareError,
    NotFoundError,
    PermissionDeniedError,
    InvalidGrantError,
    PartialPropagationFailure,
    StoreUnavailableError,
    CorruptionError,
)

__version__ = VERSION

__all__ = [
    "VERSION",
    "APP_SCHEMA_VERSION",
    "Capability",
    "HierarchicalPermissions",
    "InheritedFrom",
    "PermissionInheritanceSettings",
    "PermissionLevel",
    "PropagationResult",
    "ResourceRef",
    "ResourceType",
    "SharedResource",
    "SpecificOverrides",
    "PermissionResolver",
    "resolve_permissions",
    "AccessChecker",
    "check_capability",
    "PropagationEngine",
    "REVOKE",
    "SharingService",
    "GoalshareError",
    "NotFoundError",
    "PermissionDeniedError",
    "InvalidGrantError",
    "PartialPropagationFailure",
    "StoreUnavailableError",
    "CorruptionError",
]
