from typing import List, Optional


class GoalshareError(Exception):
    """Base exception for all permission-core errors."""
    pass

class RecoverableError(GoalshareError):
    """An error the caller can report or retry without data loss."""
    pass

class FatalError(GoalshareError):
    """An error that requires operator intervention."""
    pass

class CorruptionError(FatalError):
    """Stored data is in a shape no known schema version describes."""
    pass

class NotFoundError(RecoverableError):
    """The resource does not exist at read time. Terminal for the operation."""

    def __init__(self, resource_type, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{getattr(resource_type, 'value', resource_type)} '{resource_id}' not found")

class PermissionDeniedError(RecoverableError):
    """The acting user lacks the capability the operation requires."""
    pass

class InvalidGrantError(RecoverableError):
    """A grant that would break the sharing invariants (e.g. sharing with the owner)."""
    pass

class StoreUnavailableError(RecoverableError):
    """Transport or adapter level failure. Never retried by the core."""
    pass

class PartialPropagationFailure(RecoverableError):
    """
    One or more descendant writes failed during a fan-out.

    Writes that succeeded stay in place; ``result`` holds the full outcome.
    """

    def __init__(self, result, message: Optional[str] = None):
        self.result = result
        self.failed_ids: List[str] = result.failed_ids
        super().__init__(message or f"Permission propagation partially applied; failed: {', '.join(self.failed_ids)}")
