"""Notification fan-out.

`notify` writes the Notification first and only then attempts realtime
push and (for selected kinds) email. Each delivery attempt is isolated:
a failing channel is logged and the next one still runs. Nothing here
raises to the caller, so lifecycle code can notify without guarding.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from aftersales.channel import ChannelType, get_channel
from aftersales.errors import NotificationFailure
from aftersales.identity.user import User
from aftersales.notification.notification import EMAIL_TYPES, Notification, NotificationType

logger = structlog.get_logger(__name__)


def notify(
    user_id: str,
    notification_type: str,
    message: str,
    metadata: dict | None = None,
    link: str | None = None,
    title: str | None = None,
    send_email: bool | None = None,
) -> Notification | None:
    """Persist a notification for `user_id`, then push and maybe email it.

    Returns the persisted notification, or None if even the write failed.
    """
    try:
        notification = Notification.create(
            user_id=user_id,
            notification_type=notification_type,
            message=message,
            title=title,
            link=link,
            metadata=metadata,
        )
        current_domain.repository_for(Notification).add(notification)
    except Exception as exc:
        logger.error(
            "Failed to persist notification",
            user_id=str(user_id),
            notification_type=notification_type,
            error=str(exc),
        )
        return None

    _push(notification)

    if send_email is None:
        send_email = NotificationType(notification_type) in EMAIL_TYPES
    if send_email:
        _email(notification)

    return notification


def notify_many(user_ids, notification_type: str, message: str, **kwargs) -> list[Notification]:
    """Notify each distinct user once."""
    sent = []
    for user_id in dict.fromkeys(str(u) for u in user_ids if u):
        notification = notify(user_id, notification_type, message, **kwargs)
        if notification is not None:
            sent.append(notification)
    return sent


def notify_admins(notification_type: str, message: str, **kwargs) -> list[Notification]:
    try:
        admins = current_domain.repository_for(User).admins()
    except Exception as exc:
        logger.error("Failed to load admins for notification", notification_type=notification_type, error=str(exc))
        return []
    return notify_many([a.id for a in admins], notification_type, message, **kwargs)


def _push(notification: Notification) -> None:
    payload = {
        "type": "notification",
        "notification": {
            "id": str(notification.id),
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "link": notification.link,
            "created_at": notification.created_at.isoformat() if notification.created_at else None,
        },
    }
    try:
        result = get_channel(ChannelType.PUSH.value).send(user_id=str(notification.user_id), payload=payload)
        if result.get("status") == "failed":
            raise NotificationFailure(result.get("error") or "Push delivery failed")
        if result.get("status") == "offline":
            logger.debug("Recipient offline, push skipped", notification_id=str(notification.id))
    except Exception as exc:
        logger.warning(
            "Realtime push failed",
            notification_id=str(notification.id),
            user_id=str(notification.user_id),
            error=str(exc),
        )


def _email(notification: Notification) -> None:
    try:
        user = current_domain.repository_for(User).get(str(notification.user_id))
    except ObjectNotFoundError:
        logger.warning("No user for notification email", notification_id=str(notification.id))
        return

    body = notification.message
    if notification.link:
        body = f"{body}\n\nView details: {notification.link}"

    try:
        result = get_channel(ChannelType.EMAIL.value).send(
            to=user.email,
            subject=notification.title,
            body=body,
        )
        if result.get("status") != "sent":
            raise NotificationFailure(result.get("error") or "Email delivery failed")
    except Exception as exc:
        logger.error(
            "Notification email failed",
            notification_id=str(notification.id),
            user_id=str(notification.user_id),
            error=str(exc),
        )
