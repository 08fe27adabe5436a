"""
Static shape of the resource tree.

    Area -> Goal -> Milestone -> {Task, Routine}

Every document carries the ids of all of its ancestors (``area_id``,
``goal_id``, ``milestone_id``), so the whole subtree under a resource is
reachable with one equality query per descendant collection.
"""
from typing import Dict, List, NamedTuple, Tuple

from .models import ResourceRef, ResourceType, SharedResource


class DescendantLink(NamedTuple):
    """How a change on a parent reaches one descendant collection."""
    resource_type: ResourceType
    settings_flag: str
    parent_field: str


COLLECTIONS: Dict[ResourceType, str] = {
    ResourceType.AREA: "areas",
    ResourceType.GOAL: "goals",
    ResourceType.MILESTONE: "milestones",
    ResourceType.TASK: "tasks",
    ResourceType.ROUTINE: "routines",
}

SETTINGS_FLAGS: Dict[ResourceType, str] = {
    ResourceType.GOAL: "propagate_to_goals",
    ResourceType.MILESTONE: "propagate_to_milestones",
    ResourceType.TASK: "propagate_to_tasks",
    ResourceType.ROUTINE: "propagate_to_routines",
}

# Field a descendant uses to point at an ancestor of the given type.
PARENT_FIELDS: Dict[ResourceType, str] = {
    ResourceType.AREA: "area_id",
    ResourceType.GOAL: "goal_id",
    ResourceType.MILESTONE: "milestone_id",
}

CHILD_TYPES: Dict[ResourceType, Tuple[ResourceType, ...]] = {
    ResourceType.AREA: (ResourceType.GOAL, ResourceType.MILESTONE, ResourceType.TASK, ResourceType.ROUTINE),
    ResourceType.GOAL: (ResourceType.MILESTONE, ResourceType.TASK, ResourceType.ROUTINE),
    ResourceType.MILESTONE: (ResourceType.TASK, ResourceType.ROUTINE),
    ResourceType.TASK: (),
    ResourceType.ROUTINE: (),
}

# Nearest ancestor first.
_ANCESTOR_ORDER = (ResourceType.MILESTONE, ResourceType.GOAL, ResourceType.AREA)

HIERARCHY: Dict[ResourceType, Tuple[DescendantLink, ...]] = {
    parent: tuple(
        DescendantLink(child, SETTINGS_FLAGS[child], PARENT_FIELDS[parent])
        for child in children
    )
    for parent, children in CHILD_TYPES.items()
}


def descendant_links(resource_type: ResourceType) -> Tuple[DescendantLink, ...]:
    """Descendant collections of ``resource_type``; empty for tasks and routines."""
    return HIERARCHY[resource_type]


def collection_name(resource_type: ResourceType) -> str:
    return COLLECTIONS[resource_type]


def is_ancestor_type(ancestor: ResourceType, resource_type: ResourceType) -> bool:
    return resource_type in CHILD_TYPES[ancestor]


def ancestor_types(resource_type: ResourceType) -> List[ResourceType]:
    """Types that can sit above ``resource_type``, nearest first."""
    return [t for t in _ANCESTOR_ORDER if is_ancestor_type(t, resource_type)]


def ancestry_of(resource: SharedResource) -> List[ResourceRef]:
    """
    The ancestry chain of a loaded resource, nearest parent first.

    Built only from the resource's own parent-linking fields; a task with a
    goal but no milestone yields ``[goal, area]``.
    """
    chain = []
    for ancestor in ancestor_types(resource.resource_type):
        ancestor_id = getattr(resource, PARENT_FIELDS[ancestor])
        if ancestor_id:
            chain.append(ResourceRef(type=ancestor, id=ancestor_id))
    return chain
