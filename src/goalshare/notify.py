"""
Notification collaborator.

Permission operations announce grants through a ``Notifier``. Delivery is
best effort: ``deliver_share_invite`` and ``deliver_collaborator_update``
log failures and return, so a broken mailer never fails a permission change.
"""
import abc
from enum import Enum
from typing import Dict, Optional

from .logs import get_logger
from .models import HierarchicalPermissions, SharedResource

log = get_logger("notify")


class UpdateType(Enum):
    TASK_COMPLETED = "task_completed"
    GOAL_UPDATED = "goal_updated"
    REVIEW_NEEDED = "review_needed"
    PERMISSIONS_UPDATED = "permissions_updated"


class Notifier(abc.ABC):

    @abc.abstractmethod
    async def send_share_invite(self, to_email: str, from_email: str, resource_name: str,
                                resource_id: str, permissions: HierarchicalPermissions) -> None:
        pass

    @abc.abstractmethod
    async def send_collaborator_update(self, to_email: str, from_email: str, resource_name: str,
                                       resource_id: str, update_type: UpdateType) -> None:
        pass


class LogNotifier(Notifier):
    """Writes notifications to the log instead of sending them."""

    async def send_share_invite(self, to_email, from_email, resource_name, resource_id, permissions):
        log.info(f"Sending share invite to {to_email} from {from_email} for {resource_name} "
                 f"({resource_id}) as {permissions.level.value}")

    async def send_collaborator_update(self, to_email, from_email, resource_name, resource_id, update_type):
        log.info(f"Sending {update_type.value} update to {to_email} from {from_email} for {resource_name} ({resource_id})")


class UserDirectory(abc.ABC):
    """Maps user ids to notification addresses."""

    @abc.abstractmethod
    async def email_for(self, user_id: str) -> Optional[str]:
        pass


class StaticUserDirectory(UserDirectory):

    def __init__(self, emails: Optional[Dict[str, str]] = None):
        self.emails = dict(emails or {})

    async def email_for(self, user_id: str) -> Optional[str]:
        return self.emails.get(user_id)


async def _addresses(directory: Optional[UserDirectory], recipient_id: str, actor_id: str):
    if directory is None:
        return recipient_id, actor_id
    to_email = await directory.email_for(recipient_id)
    from_email = await directory.email_for(actor_id)
    if to_email is None:
        log.warning(f"No address for {recipient_id}; notification skipped")
        return None, None
    return to_email, from_email or actor_id


async def deliver_share_invite(notifier: Optional[Notifier], directory: Optional[UserDirectory],
                               recipient_id: str, actor_id: str, resource: SharedResource,
                               permissions: HierarchicalPermissions) -> bool:
    """Send a share invite; returns False instead of raising when delivery fails."""
    if notifier is None:
        return False
    try:
        to_email, from_email = await _addresses(directory, recipient_id, actor_id)
        if to_email is None:
            return False
        await notifier.send_share_invite(to_email, from_email, resource.name or resource.id, resource.id, permissions)
        return True
    except Exception as e:
        log.warning(f"Share invite to {recipient_id} for {resource.ref} failed: {e}")
        return False


async def deliver_collaborator_update(notifier: Optional[Notifier], directory: Optional[UserDirectory],
                                      recipient_id: str, actor_id: str, resource: SharedResource,
                                      update_type: UpdateType) -> bool:
    """Send a collaborator update; returns False instead of raising when delivery fails."""
    if notifier is None:
        return False
    try:
        to_email, from_email = await _addresses(directory, recipient_id, actor_id)
        if to_email is None:
            return False
        await notifier.send_collaborator_update(to_email, from_email, resource.name or resource.id, resource.id, update_type)
        return True
    except Exception as e:
        log.warning(f"{update_type.value} update to {recipient_id} for {resource.ref} failed: {e}")
        return False
