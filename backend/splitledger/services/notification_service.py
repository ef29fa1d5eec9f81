"""
Outbound notification dispatch.

Requests are posted to an external dispatcher after the membership change
has been committed. Delivery problems are logged and never propagate back
into the ledger operation that triggered them.
"""
import logging
from typing import Optional
import httpx
from pydantic import BaseModel
from splitledger.core.config import settings

logger = logging.getLogger(__name__)


class GroupInviteNotification(BaseModel):
    """Payload telling a user they were added to a group."""
    recipient_id: int
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    group_name: str
    inviter_name: str


def send_group_invite_notification(notification: GroupInviteNotification) -> bool:
    """
    Post a group invite notification to the dispatcher.

    Returns True if the dispatcher accepted it, False otherwise.
    """
    webhook_url = settings.NOTIFICATION_WEBHOOK_URL
    if not webhook_url:
        logger.info(
            f"NOTIFICATION_WEBHOOK_URL not configured. Skipping invite for user {notification.recipient_id}."
        )
        return False

    payload = {"type": "group_invite", **notification.model_dump()}

    try:
        response = httpx.post(webhook_url, json=payload, timeout=settings.NOTIFICATION_TIMEOUT)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error(
            f"Notification dispatcher rejected invite for user {notification.recipient_id}: "
            f"{e.response.status_code} - {e.response.text}"
        )
        return False
    except httpx.HTTPError as e:
        logger.error(f"Failed to dispatch invite for user {notification.recipient_id}: {e}", exc_info=True)
        return False

    logger.info(f"Group invite for '{notification.group_name}' dispatched to user {notification.recipient_id}")
    return True
