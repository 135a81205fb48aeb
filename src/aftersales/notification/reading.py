"""Recipients marking their notifications as read."""

from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from aftersales.domain import aftersales
from aftersales.errors import NotFoundError
from aftersales.notification.notification import Notification


@aftersales.command(part_of="Notification")
class MarkNotificationRead:
    notification_id = Identifier(required=True)
    reader_id = Identifier(required=True)


@aftersales.command(part_of="Notification")
class MarkAllNotificationsRead:
    reader_id = Identifier(required=True)


@aftersales.command_handler(part_of=Notification)
class NotificationReadHandler:
    @handle(MarkNotificationRead)
    def mark_read(self, command):
        repo = current_domain.repository_for(Notification)
        try:
            notification = repo.get(str(command.notification_id))
        except ObjectNotFoundError:
            raise NotFoundError("Notification not found") from None

        notification.mark_read(command.reader_id)
        repo.add(notification)

    @handle(MarkAllNotificationsRead)
    def mark_all_read(self, command):
        repo = current_domain.repository_for(Notification)
        unread = repo.for_user(command.reader_id, unread_only=True)
        for notification in unread:
            notification.mark_read(command.reader_id)
            repo.add(notification)
        return len(unread)
