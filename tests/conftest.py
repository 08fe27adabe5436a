"""Shared fixtures: an in-memory store seeded with a small resource tree."""

import pytest
import pytest_asyncio

from goalshare.models import HierarchicalPermissions, PermissionLevel, ResourceType, SharedResource
from goalshare.store import InMemoryStore

OWNER = "u1"
COLLABORATOR = "u2"
OTHER = "u3"


def make_resource(resource_type, resource_id, owner_id=OWNER, **fields):
    return SharedResource(id=resource_id, resource_type=resource_type, owner_id=owner_id, **fields)


def grant(level=PermissionLevel.EDITOR, **overrides):
    if overrides:
        return HierarchicalPermissions(level=level, specific_overrides=overrides)
    return HierarchicalPermissions(level=level)


@pytest.fixture
def store():
    return InMemoryStore(collection_prefix="test_")


@pytest_asyncio.fixture
async def tree(store):
    """
    Area A1 (owner u1) holding:
        goal G1 -> milestone M1 -> task T1
        goal G1 -> routine R1
        goal G1 -> task T2 (no milestone)
    and a separate area A2 with goal G2.
    """
    resources = [
        make_resource(ResourceType.AREA, "A1", name="Health"),
        make_resource(ResourceType.GOAL, "G1", name="Run a marathon", area_id="A1"),
        make_resource(ResourceType.MILESTONE, "M1", name="First 10k", area_id="A1", goal_id="G1"),
        make_resource(ResourceType.TASK, "T1", name="Buy shoes", area_id="A1", goal_id="G1", milestone_id="M1"),
        make_resource(ResourceType.TASK, "T2", name="Plan route", area_id="A1", goal_id="G1"),
        make_resource(ResourceType.ROUTINE, "R1", name="Morning run", area_id="A1", goal_id="G1"),
        make_resource(ResourceType.AREA, "A2", name="Work"),
        make_resource(ResourceType.GOAL, "G2", name="Ship v2", area_id="A2"),
    ]
    for resource in resources:
        await store.put(resource)
    return store
