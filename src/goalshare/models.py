from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from enum import Enum
from typing import Optional, List, Dict, Union
import yaml

from .recovery import InvalidGrantError


class BaseYAMLModel(BaseModel):
    """Pydantic model stored as a plain document and shown as YAML."""

    def to_document(self) -> Dict:
        """Plain, sparse dict suitable for a document store."""
        return self.model_dump(mode="json", exclude_none=True)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_document(), default_flow_style=False, sort_keys=False, indent=2, allow_unicode=True)


class ResourceType(Enum):
    AREA = "area"
    GOAL = "goal"
    MILESTONE = "milestone"
    TASK = "task"
    ROUTINE = "routine"


class PermissionLevel(Enum):
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"

    @property
    def rank(self) -> int:
        """Higher is more privileged: owner > admin > editor > viewer."""
        return _LEVEL_RANK[self]

    @property
    def is_full_access(self) -> bool:
        """Owner and admin hold every capability."""
        return self in (PermissionLevel.OWNER, PermissionLevel.ADMIN)

    def __ge__(self, other):
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.rank >= other.rank

    def __gt__(self, other):
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.rank > other.rank

    def __le__(self, other):
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __lt__(self, other):
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.rank < other.rank


_LEVEL_RANK = {
    PermissionLevel.VIEWER: 0,
    PermissionLevel.EDITOR: 1,
    PermissionLevel.ADMIN: 2,
    PermissionLevel.OWNER: 3,
}


class Capability(Enum):
    VIEW = "view"
    EDIT = "edit"
    CAN_EDIT_TASKS = "can_edit_tasks"
    CAN_EDIT_ROUTINES = "can_edit_routines"
    CAN_INVITE_USERS = "can_invite_users"
    CAN_MODIFY_PERMISSIONS = "can_modify_permissions"

    @classmethod
    def parse(cls, value: Union['Capability', str]) -> 'Capability':
        """
        Look up a capability by member, snake_case name or camelCase name.

        Raises:
            InvalidGrantError: the name is not a known capability.
        """
        if isinstance(value, cls):
            return value
        for capability in cls:
            if value in (capability.value, _camel(capability.value)):
                return capability
        raise InvalidGrantError(f"Unknown capability {value!r}")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class SpecificOverrides(BaseModel):
    """Sparse fine-grained capability flags. Unset flags fall back to the level defaults."""

    model_config = ConfigDict(frozen=True)

    view: Optional[bool] = Field(default=None, description="Explicit view access")
    edit: Optional[bool] = Field(default=None, description="Explicit edit access")
    can_edit_tasks: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("can_edit_tasks", "canEditTasks"),
        description="May edit tasks under the resource"
    )
    can_edit_routines: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("can_edit_routines", "canEditRoutines"),
        description="May edit routines under the resource"
    )
    can_invite_users: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("can_invite_users", "canInviteUsers"),
        description="May share the resource with new collaborators"
    )
    can_modify_permissions: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("can_modify_permissions", "canModifyPermissions"),
        description="May change or revoke other collaborators' access"
    )

    def get(self, capability: Capability) -> Optional[bool]:
        """The override for ``capability``, or None when it is not set."""
        return getattr(self, capability.value)

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class InheritedFrom(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ResourceType = Field(description="Type of the ancestor holding the direct grant")
    id: str = Field(description="Id of the ancestor holding the direct grant")


class HierarchicalPermissions(BaseModel):
    """A user's access record on one resource."""

    model_config = ConfigDict(frozen=True)

    level: PermissionLevel = Field(description="Coarse permission level")
    specific_overrides: Optional[SpecificOverrides] = Field(
        default=None,
        validation_alias=AliasChoices("specific_overrides", "specificOverrides"),
        description="Fine-grained capability overrides"
    )
    inherited_from: Optional[InheritedFrom] = Field(
        default=None,
        validation_alias=AliasChoices("inherited_from", "inheritedFrom"),
        description="Set only on records synthesized from an ancestor's grant"
    )

    @field_validator("specific_overrides")
    @classmethod
    def drop_empty_overrides(cls, v):
        if v is not None and v.is_empty():
            return None
        return v

    @property
    def is_inherited(self) -> bool:
        return self.inherited_from is not None

    def inherit_from(self, resource_type: ResourceType, resource_id: str) -> 'HierarchicalPermissions':
        """Copy of this record marked as traced to the given ancestor."""
        return self.model_copy(update={"inherited_from": InheritedFrom(type=resource_type, id=resource_id)})

    def as_direct(self) -> 'HierarchicalPermissions':
        """Copy of this record without the inheritance marker."""
        return self.model_copy(update={"inherited_from": None})

    def to_record(self) -> Dict:
        return self.model_dump(mode="json", exclude_none=True)


class PermissionInheritanceSettings(BaseModel):
    """Which descendant categories a permission change on this resource fans out to."""

    propagate_to_goals: bool = Field(
        default=True,
        validation_alias=AliasChoices("propagate_to_goals", "propagateToGoals")
    )
    propagate_to_milestones: bool = Field(
        default=True,
        validation_alias=AliasChoices("propagate_to_milestones", "propagateToMilestones")
    )
    propagate_to_tasks: bool = Field(
        default=True,
        validation_alias=AliasChoices("propagate_to_tasks", "propagateToTasks")
    )
    propagate_to_routines: bool = Field(
        default=True,
        validation_alias=AliasChoices("propagate_to_routines", "propagateToRoutines")
    )

    @classmethod
    def disabled(cls) -> 'PermissionInheritanceSettings':
        return cls(propagate_to_goals=False, propagate_to_milestones=False,
                   propagate_to_tasks=False, propagate_to_routines=False)

    def is_enabled(self, flag: str) -> bool:
        return bool(getattr(self, flag))


class ResourceRef(BaseModel):
    """Names one node of the resource tree."""

    model_config = ConfigDict(frozen=True)

    type: ResourceType
    id: str

    def __str__(self) -> str:
        return f"{self.type.value}/{self.id}"


class SharedResource(BaseYAMLModel):
    """An Area, Goal, Milestone, Task or Routine with its sharing state."""

    id: str = Field(description="Document id")
    resource_type: ResourceType = Field(
        validation_alias=AliasChoices("resource_type", "resourceType", "type"),
        description="Which collection the document lives in"
    )
    name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("name", "title"),
        description="Display name used in notifications"
    )
    owner_id: str = Field(
        validation_alias=AliasChoices("owner_id", "ownerId"),
        description="Creator; always has full access"
    )
    shared_with: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("shared_with", "sharedWith"),
        description="Collaborator ids, kept equal to the keys of permissions"
    )
    permissions: Dict[str, HierarchicalPermissions] = Field(
        default_factory=dict,
        description="Direct grants only"
    )
    permission_inheritance: PermissionInheritanceSettings = Field(
        default_factory=PermissionInheritanceSettings,
        validation_alias=AliasChoices("permission_inheritance", "permissionInheritance")
    )
    area_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("area_id", "areaId"))
    goal_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("goal_id", "goalId"))
    milestone_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("milestone_id", "milestoneId"))

    @field_validator("shared_with")
    @classmethod
    def dedupe_shared_with(cls, v):
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_grants(self):
        if self.owner_id in self.shared_with or self.owner_id in self.permissions:
            raise ValueError(f"owner {self.owner_id} cannot be listed as a collaborator")
        for user_id, grant in self.permissions.items():
            if grant.inherited_from is not None:
                raise ValueError(f"direct grant for {user_id} must not carry inherited_from")
        return self

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(type=self.resource_type, id=self.id)

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def direct_permissions(self, user_id: str) -> Optional[HierarchicalPermissions]:
        return self.permissions.get(user_id)

    def pending_collaborators(self) -> List[str]:
        """Users in shared_with whose grant has not been written yet."""
        return [u for u in self.shared_with if u not in self.permissions]


class PropagationOperation(Enum):
    GRANT = "grant"
    REVOKE = "revoke"


class PropagationResult(BaseModel):
    """Outcome of one fan-out, per descendant document."""

    source: ResourceRef = Field(description="Resource the change was made on")
    user_id: str = Field(description="Collaborator whose access changed")
    operation: PropagationOperation
    succeeded: List[ResourceRef] = Field(default_factory=list, description="Descendants written")
    failed: List['PropagationResult.Failure'] = Field(default_factory=list, description="Descendant writes that raised")
    skipped: List[ResourceRef] = Field(default_factory=list, description="Descendants owned by the user, never touched")

    class Failure(BaseModel):
        ref: ResourceRef
        error: str

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def failed_ids(self) -> List[str]:
        return [f.ref.id for f in self.failed]

    @property
    def succeeded_ids(self) -> List[str]:
        return [r.id for r in self.succeeded]

    def merge(self, other: 'PropagationResult'):
        self.succeeded.extend(other.succeeded)
        self.failed.extend(other.failed)
        self.skipped.extend(other.skipped)

PropagationResult.model_rebuild()


# Either a grant to write on every descendant, or a revocation.
PermissionChange = Union[HierarchicalPermissions, PropagationOperation]
