"""Tests for fanning permission changes out to descendants."""

import copy

import pytest

from goalshare.models import PermissionInheritanceSettings, PermissionLevel, PropagationOperation, ResourceType
from goalshare.propagation import REVOKE, PropagationEngine, grant_changes
from goalshare.recovery import CorruptionError, PartialPropagationFailure, StoreUnavailableError
from goalshare.store import InMemoryStore

from conftest import COLLABORATOR, OTHER, grant, make_resource

ALL = PermissionInheritanceSettings()
GOALS_ONLY = PermissionInheritanceSettings(propagate_to_goals=True, propagate_to_milestones=False,
                                           propagate_to_tasks=False, propagate_to_routines=False)
A1_DESCENDANTS = {"G1", "M1", "T1", "T2", "R1"}


class FlakyStore(InMemoryStore):
    """Fails updates to the listed ids, or descendant queries of one collection."""

    def __init__(self, fail_ids=(), fail_query=None):
        super().__init__(collection_prefix="test_")
        self.fail_ids = set(fail_ids)
        self.fail_query = fail_query

    async def update(self, resource_type, resource_id, changes):
        if resource_id in self.fail_ids:
            raise StoreUnavailableError(f"write to {resource_id} timed out")
        return await super().update(resource_type, resource_id, changes)

    async def query_by_parent(self, resource_type, parent_field, parent_id, shared_with=None, unreadable=None):
        if resource_type is self.fail_query:
            raise StoreUnavailableError(f"query of {resource_type.value}s failed")
        return await super().query_by_parent(resource_type, parent_field, parent_id, shared_with, unreadable)


async def seed(store, *resources):
    for resource in resources:
        await store.put(resource)
    return store


async def a1_tree(store):
    return await seed(
        store,
        make_resource(ResourceType.AREA, "A1"),
        make_resource(ResourceType.GOAL, "G1", area_id="A1"),
        make_resource(ResourceType.MILESTONE, "M1", area_id="A1", goal_id="G1"),
        make_resource(ResourceType.TASK, "T1", area_id="A1", goal_id="G1", milestone_id="M1"),
        make_resource(ResourceType.TASK, "T2", area_id="A1", goal_id="G1"),
        make_resource(ResourceType.ROUTINE, "R1", area_id="A1", goal_id="G1"),
    )


def snapshot(store):
    return copy.deepcopy(store.collections)


async def holders(store, user_id):
    """Ids of every readable stored resource granting ``user_id`` directly."""
    found = set()
    for resource_type in ResourceType:
        for resource_id in store.collections.get(store.collection_for(resource_type), {}):
            try:
                resource = await store.get(resource_type, resource_id)
            except CorruptionError:
                continue
            if user_id in resource.shared_with or user_id in resource.permissions:
                found.add(resource.id)
    return found


class TestGrantPropagation:
    """Test fanning out grants."""

    @pytest.mark.asyncio
    async def test_grant_reaches_every_descendant(self, tree):
        engine = PropagationEngine(tree)

        result = await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(PermissionLevel.EDITOR), ALL)

        assert result.ok
        assert result.operation == PropagationOperation.GRANT
        assert set(result.succeeded_ids) == A1_DESCENDANTS
        for resource_type, resource_id in [(ResourceType.GOAL, "G1"), (ResourceType.MILESTONE, "M1"),
                                           (ResourceType.TASK, "T1"), (ResourceType.TASK, "T2"),
                                           (ResourceType.ROUTINE, "R1")]:
            resource = await tree.get(resource_type, resource_id)
            assert COLLABORATOR in resource.shared_with
            assert resource.permissions[COLLABORATOR].level == PermissionLevel.EDITOR
            assert not resource.permissions[COLLABORATOR].is_inherited

    @pytest.mark.asyncio
    async def test_other_area_untouched(self, tree):
        await PropagationEngine(tree).propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)
        assert (await tree.get(ResourceType.GOAL, "G2")).shared_with == []

    @pytest.mark.asyncio
    async def test_source_not_written(self, tree):
        """The engine only writes descendants; the direct grant is the caller's job."""
        await PropagationEngine(tree).propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)
        assert (await tree.get(ResourceType.AREA, "A1")).permissions == {}

    @pytest.mark.asyncio
    async def test_goals_only(self, tree):
        """With only propagate_to_goals on, tasks under the goal stay untouched."""
        result = await PropagationEngine(tree).propagate(ResourceType.AREA, "A1", COLLABORATOR,
                                                         grant(PermissionLevel.EDITOR), GOALS_ONLY)

        assert result.succeeded_ids == ["G1"]
        goal = await tree.get(ResourceType.GOAL, "G1")
        assert goal.shared_with == [COLLABORATOR]
        assert goal.permissions[COLLABORATOR].level == PermissionLevel.EDITOR
        assert (await tree.get(ResourceType.TASK, "T1")).shared_with == []

    @pytest.mark.asyncio
    async def test_routines_scoped_out(self, tree):
        settings = PermissionInheritanceSettings(propagate_to_routines=False)

        result = await PropagationEngine(tree).propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), settings)

        assert set(result.succeeded_ids) == A1_DESCENDANTS - {"R1"}
        assert (await tree.get(ResourceType.ROUTINE, "R1")).shared_with == []

    @pytest.mark.asyncio
    async def test_goal_reaches_its_own_subtree(self, tree):
        result = await PropagationEngine(tree).propagate(ResourceType.GOAL, "G1", COLLABORATOR, grant(), ALL)
        assert set(result.succeeded_ids) == {"M1", "T1", "T2", "R1"}
        assert (await tree.get(ResourceType.GOAL, "G1")).shared_with == []

    @pytest.mark.asyncio
    async def test_leaf_is_noop(self, tree):
        before = snapshot(tree)

        result = await PropagationEngine(tree).propagate(ResourceType.TASK, "T1", COLLABORATOR, grant(), ALL)

        assert result.ok
        assert result.succeeded == []
        assert snapshot(tree) == before

    @pytest.mark.asyncio
    async def test_repeated_grant_is_idempotent(self, tree):
        engine = PropagationEngine(tree)
        await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(PermissionLevel.VIEWER), ALL)
        once = snapshot(tree)

        await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(PermissionLevel.VIEWER), ALL)

        assert snapshot(tree) == once

    @pytest.mark.asyncio
    async def test_update_replaces_descendant_grant(self, tree):
        engine = PropagationEngine(tree)
        await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(PermissionLevel.VIEWER), ALL)

        await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR,
                               grant(PermissionLevel.EDITOR, can_edit_tasks=True), ALL)

        task = await tree.get(ResourceType.TASK, "T1")
        assert task.shared_with == [COLLABORATOR]
        assert task.permissions[COLLABORATOR] == grant(PermissionLevel.EDITOR, can_edit_tasks=True)

    @pytest.mark.asyncio
    async def test_inherited_change_written_as_direct(self, tree):
        inherited = grant(PermissionLevel.VIEWER).inherit_from(ResourceType.AREA, "A1")
        await PropagationEngine(tree).propagate(ResourceType.AREA, "A1", COLLABORATOR, inherited, GOALS_ONLY)
        assert not (await tree.get(ResourceType.GOAL, "G1")).permissions[COLLABORATOR].is_inherited

    @pytest.mark.asyncio
    async def test_descendant_owned_by_user_skipped(self, tree):
        """A collaborator who owns a descendant is never written onto it."""
        await tree.put(make_resource(ResourceType.TASK, "T3", owner_id=COLLABORATOR, area_id="A1", goal_id="G1"))

        result = await PropagationEngine(tree).propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)

        assert [ref.id for ref in result.skipped] == ["T3"]
        assert "T3" not in result.succeeded_ids
        assert (await tree.get(ResourceType.TASK, "T3")).permissions == {}


class TestRevokePropagation:
    """Test fanning out revocations."""

    @pytest.mark.asyncio
    async def test_revoke_removes_everywhere(self, tree):
        engine = PropagationEngine(tree)
        await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)

        result = await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, REVOKE, ALL)

        assert result.operation == PropagationOperation.REVOKE
        assert set(result.succeeded_ids) == A1_DESCENDANTS
        assert await holders(tree, COLLABORATOR) == set()

    @pytest.mark.asyncio
    async def test_revoke_touches_only_holders(self, tree):
        """Descendants that never listed the user are neither written nor gain anything."""
        await tree.update(ResourceType.TASK, "T2", grant_changes(COLLABORATOR, grant()))
        await tree.update(ResourceType.TASK, "T1", grant_changes(OTHER, grant()))

        result = await PropagationEngine(tree).propagate(ResourceType.AREA, "A1", COLLABORATOR, REVOKE, ALL)

        assert result.succeeded_ids == ["T2"]
        assert await holders(tree, COLLABORATOR) == set()
        assert await holders(tree, OTHER) == {"T1"}

    @pytest.mark.asyncio
    async def test_repeated_revoke(self, tree):
        """Revoking from an area twice leaves the same state as once."""
        engine = PropagationEngine(tree)
        await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), GOALS_ONLY)

        await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, REVOKE, GOALS_ONLY)
        once = snapshot(tree)
        result = await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, REVOKE, GOALS_ONLY)

        assert COLLABORATOR not in (await tree.get(ResourceType.GOAL, "G1")).shared_with
        assert result.succeeded == []
        assert snapshot(tree) == once

    @pytest.mark.asyncio
    async def test_revoke_respects_settings(self, tree):
        engine = PropagationEngine(tree)
        await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)

        await engine.propagate(ResourceType.AREA, "A1", COLLABORATOR, REVOKE,
                               PermissionInheritanceSettings(propagate_to_tasks=False))

        assert await holders(tree, COLLABORATOR) == {"T1", "T2"}


class TestPartialFailure:
    """Test isolation of failed descendant writes."""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_siblings(self):
        store = await a1_tree(FlakyStore(fail_ids={"T1"}))

        with pytest.raises(PartialPropagationFailure) as excinfo:
            await PropagationEngine(store).propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)

        result = excinfo.value.result
        assert excinfo.value.failed_ids == ["T1"]
        assert set(result.succeeded_ids) == A1_DESCENDANTS - {"T1"}
        assert "timed out" in result.failed[0].error
        assert await holders(store, COLLABORATOR) == A1_DESCENDANTS - {"T1"}

    @pytest.mark.asyncio
    async def test_several_failures_reported(self):
        store = await a1_tree(FlakyStore(fail_ids={"G1", "R1"}))

        with pytest.raises(PartialPropagationFailure) as excinfo:
            await PropagationEngine(store).propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)

        assert sorted(excinfo.value.failed_ids) == ["G1", "R1"]
        assert "G1" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_query_failure_aborts(self):
        """Collections processed before a failed query keep their writes."""
        store = await a1_tree(FlakyStore(fail_query=ResourceType.TASK))

        with pytest.raises(StoreUnavailableError):
            await PropagationEngine(store).propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)

        assert await holders(store, COLLABORATOR) == {"G1", "M1"}

    @pytest.mark.asyncio
    async def test_unreadable_document_under_other_parent_ignored(self):
        store = await a1_tree(InMemoryStore("test_"))
        await store.put_raw(ResourceType.TASK, "TX", {
            "owner_id": "u9", "area_id": "A2", "permissions": {"u5": {"bogus": 1}},
        })

        result = await PropagationEngine(store).propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)

        assert result.ok
        assert set(result.succeeded_ids) == A1_DESCENDANTS
        assert await holders(store, COLLABORATOR) == A1_DESCENDANTS

    @pytest.mark.asyncio
    async def test_unreadable_descendant_reported(self):
        """A corrupt descendant is a failure; its readable siblings are still written."""
        store = await a1_tree(InMemoryStore("test_"))
        await store.put_raw(ResourceType.TASK, "TX", {
            "owner_id": "u9", "area_id": "A1", "permissions": {"u5": {"bogus": 1}},
        })

        with pytest.raises(PartialPropagationFailure) as excinfo:
            await PropagationEngine(store).propagate(ResourceType.AREA, "A1", COLLABORATOR, grant(), ALL)

        result = excinfo.value.result
        assert excinfo.value.failed_ids == ["TX"]
        assert result.failed[0].ref.type == ResourceType.TASK
        assert set(result.succeeded_ids) == A1_DESCENDANTS
        assert store.collections["test_tasks"]["TX"]["permissions"] == {"u5": {"bogus": 1}}
