"""
Notification engine.

All notifications are created here so the suppression rules live in one
place:

1. Self-actions never notify (liking your own post, etc.)
2. post_like / comment_like: skip if the same sender already produced an
   unread notification of that type for the same target within the window
   (24h by default). Like/unlike/like spam would otherwise keep re-alerting.
3. friend_request: skip while an unread request notification from the same
   sender to the same recipient exists, however old.
4. Everything else always notifies.

A created notification is broadcast on the recipient's private channel.
"""
import logging
import re
from datetime import timedelta

from django.contrib.auth.models import User
from django.utils import timezone

from . import broadcasting
from .conf import social_settings
from .models import Notifiable, Notification

logger = logging.getLogger(__name__)

LIKE_TYPES = (Notification.Type.POST_LIKE, Notification.Type.COMMENT_LIKE)
MENTION_PATTERN = re.compile(r'(?<![\w@])@([A-Za-z0-9_.]{1,50})')


class NotificationService:
    """
    Creates, deduplicates and manages notifications.

    Stateless; instantiate per request or share a module-level instance.
    """

    def create(self, type, recipient_id, sender_id=None, target=None, data=None):
        """
        Create a notification unless a suppression rule applies.

        `target` is a model instance or a Notifiable. Returns the created
        Notification, or None when the notification was skipped.
        """
        if sender_id is not None and sender_id == recipient_id:
            return None

        notifiable = target if target is None or isinstance(target, Notifiable) else Notifiable.of(target)

        if self._should_skip(type, recipient_id, sender_id, notifiable):
            logger.debug(
                "Skipping duplicate %s notification from %s to %s", type, sender_id, recipient_id
            )
            return None

        notification = Notification.objects.create(
            type=type,
            recipient_id=recipient_id,
            sender_id=sender_id,
            notifiable_kind=notifiable.kind if notifiable else None,
            notifiable_id=notifiable.id if notifiable else None,
            data=data or {},
        )
        logger.info("Created %s notification %s for user %s", type, notification.id, recipient_id)

        broadcasting.notification_sent(notification)
        return notification

    def _should_skip(self, type, recipient_id, sender_id, notifiable):
        if type in LIKE_TYPES and notifiable is not None:
            window = timedelta(hours=social_settings.LIKE_NOTIFICATION_WINDOW_HOURS)
            return Notification.objects.unread().for_target(notifiable).filter(
                type=type,
                recipient_id=recipient_id,
                sender_id=sender_id,
                created_at__gt=timezone.now() - window,
            ).exists()

        if type == Notification.Type.FRIEND_REQUEST:
            return Notification.objects.unread().filter(
                type=type,
                recipient_id=recipient_id,
                sender_id=sender_id,
            ).exists()

        return False

    # Typed helpers, one per social action

    def friend_request(self, recipient_id, sender_id, friendship=None):
        return self.create(Notification.Type.FRIEND_REQUEST, recipient_id, sender_id, friendship)

    def friend_accepted(self, recipient_id, sender_id, friendship=None):
        return self.create(Notification.Type.FRIEND_ACCEPTED, recipient_id, sender_id, friendship)

    def post_like(self, post, sender_id):
        return self.create(Notification.Type.POST_LIKE, post.author_id, sender_id, post)

    def post_comment(self, post, comment, sender_id):
        return self.create(Notification.Type.POST_COMMENT, post.author_id, sender_id, post, {
            'comment_id': comment.id,
            'comment_content': comment.content[:100],
        })

    def post_share(self, post, sender_id, share=None):
        data = {'share_type': share.share_type, 'share_id': share.id} if share else {}
        return self.create(Notification.Type.POST_SHARE, post.author_id, sender_id, post, data)

    def comment_like(self, comment, sender_id):
        return self.create(Notification.Type.COMMENT_LIKE, comment.author_id, sender_id, comment, {
            'post_id': comment.post_id,
        })

    def mention(self, post, recipient_id, sender_id):
        return self.create(Notification.Type.MENTION, recipient_id, sender_id, post, {
            'post_id': post.id,
        })

    def tag(self, post, recipient_id, sender_id):
        return self.create(Notification.Type.TAG, recipient_id, sender_id, post, {
            'post_id': post.id,
        })

    def mentions_in(self, post):
        """Notify every @username mentioned in a post's content."""
        usernames = set(MENTION_PATTERN.findall(post.content or ''))
        if not usernames:
            return []
        recipients = User.objects.filter(profile__username__in=usernames).exclude(pk=post.author_id)
        created = [self.mention(post, user.id, post.author_id) for user in recipients]
        return [notification for notification in created if notification]

    # Read state

    def list_for(self, user_id):
        return Notification.objects.filter(recipient_id=user_id).select_related('sender__profile')

    def _get_owned(self, notification_id, user_id):
        return Notification.objects.filter(pk=notification_id, recipient_id=user_id).first()

    def mark_as_read(self, notification_id, user_id):
        """Returns False if the notification does not belong to the user."""
        notification = self._get_owned(notification_id, user_id)
        if notification is None:
            return False
        notification.mark_as_read()
        return True

    def mark_as_unread(self, notification_id, user_id):
        notification = self._get_owned(notification_id, user_id)
        if notification is None:
            return False
        notification.mark_as_unread()
        return True

    def mark_all_as_read(self, user_id):
        return Notification.objects.filter(recipient_id=user_id).unread().update(
            read=True, read_at=timezone.now()
        )

    def delete(self, notification_id, user_id):
        deleted, _ = Notification.objects.filter(pk=notification_id, recipient_id=user_id).delete()
        return deleted > 0

    def delete_all_read(self, user_id):
        deleted, _ = Notification.objects.filter(recipient_id=user_id).read().delete()
        return deleted

    def unread_count(self, user_id):
        return Notification.objects.filter(recipient_id=user_id).unread().count()

    def cleanup_old_notifications(self, days_old=None):
        """Purge read notifications read more than `days_old` days ago."""
        if days_old is None:
            days_old = social_settings.NOTIFICATION_RETENTION_DAYS
        cutoff = timezone.now() - timedelta(days=days_old)
        deleted, _ = Notification.objects.read().filter(read_at__lt=cutoff).delete()
        logger.info("Purged %s read notifications older than %s days", deleted, days_old)
        return deleted


notifications = NotificationService()
