"""
Real-time fan-out of domain events.

Every mutation that other users should see live ends in one of the event
functions at the bottom of this module. Each one:

1. picks the channels (see channel helpers below)
2. builds a flat payload, never a raw model, so receivers need no extra fetch
3. hands both to broadcast(), which writes a BroadcastEvent outbox row in the
   caller's transaction and publishes it once that transaction commits

Delivery is best effort. A transport failure is logged and recorded on the
outbox row; it never propagates into the request that caused the event.

Channels:
- user.<id>          private, notifications and friendship events
- posts              public, new posts and timeline shares
- post.<id>          public, likes/comments/shares on one post
- conversation.<id>  private, members only (checked at subscribe time)
- user.status        public, online/offline
"""
import logging
from functools import lru_cache, partial

from django.db import transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from .conf import social_settings
from .models import BroadcastEvent, ConversationMember, display_name

logger = logging.getLogger(__name__)

POSTS_CHANNEL = 'posts'
USER_STATUS_CHANNEL = 'user.status'


def user_channel(user_id):
    return f"user.{user_id}"


def post_channel(post_id):
    return f"post.{post_id}"


def conversation_channel(conversation_id):
    return f"conversation.{conversation_id}"


def can_subscribe(user, channel):
    """
    Authorize a subscription request from the real-time gateway.

    Public channels are open to everyone; user channels only to their owner;
    conversation channels only to members.
    """
    if channel in (POSTS_CHANNEL, USER_STATUS_CHANNEL):
        return True
    prefix, _, raw_id = channel.partition('.')
    if not raw_id.isdigit():
        return False
    target_id = int(raw_id)
    if prefix == 'post':
        return True
    if prefix == 'user':
        return user.id == target_id
    if prefix == 'conversation':
        return ConversationMember.objects.filter(
            conversation_id=target_id, user_id=user.id
        ).exists()
    return False


# --- Transports -------------------------------------------------------------

class BaseTransport:
    """Pub/sub backend. Subclasses deliver one event to one channel."""

    def publish(self, channel, event, payload):
        raise NotImplementedError


class LoggingTransport(BaseTransport):
    """Default transport: writes every publish to the log."""

    def publish(self, channel, event, payload):
        logger.info("broadcast %s on %s", event, channel)


# Populated by LocMemTransport, like django.core.mail.outbox
outbox = []


class LocMemTransport(BaseTransport):
    """Keeps published events in memory for tests."""

    def publish(self, channel, event, payload):
        outbox.append({'channel': channel, 'event': event, 'payload': payload})


@lru_cache(maxsize=None)
def _transport_for(path):
    return import_string(path)()


def get_transport():
    return _transport_for(social_settings.BROADCAST_TRANSPORT)


# --- Outbox -----------------------------------------------------------------

def broadcast(event, channels, payload):
    """
    Record an event and schedule its publication after commit.

    Outside of an atomic block on_commit runs immediately, so callers do not
    need to care whether they are inside a transaction.
    """
    record = BroadcastEvent.objects.create(event=event, channels=list(channels), payload=payload)
    transaction.on_commit(partial(dispatch_event, record.pk), robust=True)
    return record


def dispatch_event(event_id):
    """
    Publish one outbox row to all of its channels.

    Returns True if every channel accepted the event. Never raises for
    transport errors; they are logged and stored on the row. Channels that
    accepted the event on an earlier attempt are not published to again.
    """
    record = BroadcastEvent.objects.filter(pk=event_id, dispatched_at__isnull=True).first()
    if record is None:
        return False

    transport = get_transport()
    record.attempts += 1
    try:
        for channel in record.channels:
            if channel in record.delivered_channels:
                continue
            transport.publish(channel, record.event, record.payload)
            record.delivered_channels.append(channel)
    except Exception as exc:
        logger.exception("Failed to broadcast %s (event %s)", record.event, record.pk)
        record.last_error = str(exc)
        record.save(update_fields=['attempts', 'delivered_channels', 'last_error'])
        return False

    record.dispatched_at = timezone.now()
    record.last_error = ''
    record.save(update_fields=['attempts', 'delivered_channels', 'dispatched_at', 'last_error'])
    return True


def dispatch_pending(limit=None):
    """Retry outbox rows that were never delivered. Returns delivered count."""
    pending_ids = BroadcastEvent.objects.pending().order_by('created_at', 'pk').values_list('pk', flat=True)
    if limit:
        pending_ids = pending_ids[:limit]
    return sum(1 for event_id in list(pending_ids) if dispatch_event(event_id))


# --- Payload helpers --------------------------------------------------------

def _iso(value):
    return value.isoformat() if value else None


def user_summary(user):
    """The {id, name, avatar} block embedded in every payload."""
    if user is None:
        return None
    profile = getattr(user, 'profile', None)
    return {
        'id': user.id,
        'name': display_name(user),
        'avatar': profile.avatar_url if profile else None,
    }


# --- Events -----------------------------------------------------------------

def friend_request_received(friendship):
    payload = {
        'friendship': {
            'id': friendship.id,
            'user': user_summary(friendship.requester),
            'status': friendship.status,
            'created_at': _iso(friendship.created_at),
            'type': 'friend_request_received',
        }
    }
    return broadcast(
        'friendship.request_received',
        [user_channel(friendship.recipient_id)],
        payload,
    )


def friendship_status_changed(friendship, action):
    """Sent to both parties. Build before deleting a rejected request."""
    payload = {
        'friendship': {
            'id': friendship.id,
            'user': user_summary(friendship.requester),
            'friend': user_summary(friendship.recipient),
            'status': friendship.status,
            'action': action,
            'updated_at': _iso(friendship.updated_at or timezone.now()),
            'type': 'friendship_status_changed',
        }
    }
    return broadcast(
        'friendship.status_changed',
        [user_channel(friendship.requester_id), user_channel(friendship.recipient_id)],
        payload,
    )


def notification_payload(notification):
    return {
        'id': notification.id,
        'type': notification.type,
        'message': notification.message,
        'icon': notification.icon,
        'color': notification.color,
        'read': notification.read,
        'created_at': _iso(notification.created_at),
        'read_at': _iso(notification.read_at),
        'sender': user_summary(notification.sender),
        'data': notification.data,
        'url': notification.url,
    }


def notification_sent(notification):
    return broadcast(
        'notification.sent',
        [user_channel(notification.recipient_id)],
        notification_payload(notification),
    )


def post_created(post):
    payload = {
        'post': {
            'id': post.id,
            'content': post.content,
            'post_type': post.type,
            'media': post.media_urls,
            'user': user_summary(post.author),
            'created_at': _iso(post.created_at),
            'type': 'post_created',
        }
    }
    return broadcast(
        'post.created',
        [POSTS_CHANNEL, user_channel(post.author_id)],
        payload,
    )


def post_liked(like, like_count):
    payload = {
        'like': {
            'id': like.id,
            'post_id': like.post_id,
            'user': user_summary(like.user),
            'like_count': like_count,
            'created_at': _iso(like.created_at),
            'type': 'post_liked',
        }
    }
    return broadcast(
        'post.liked',
        [post_channel(like.post_id), user_channel(like.post.author_id)],
        payload,
    )


def post_shared(share, timeline_post=None):
    """Timeline shares also go to the public feed channel."""
    payload = {
        'share': {
            'id': share.id,
            'post_id': share.post_id,
            'user': user_summary(share.user),
            'share_type': share.share_type,
            'content': share.content,
            'privacy': share.privacy,
            'timeline_post_id': timeline_post.id if timeline_post else None,
            'created_at': _iso(share.created_at),
            'type': 'post_shared',
        }
    }
    channels = [post_channel(share.post_id), user_channel(share.post.author_id)]
    if share.share_type == share.ShareType.TIMELINE:
        channels.insert(0, POSTS_CHANNEL)
    return broadcast('post.shared', channels, payload)


def comment_created(comment):
    payload = {
        'comment': {
            'id': comment.id,
            'post_id': comment.post_id,
            'parent_id': comment.parent_id,
            'content': comment.content,
            'user': user_summary(comment.author),
            'created_at': _iso(comment.created_at),
            'type': 'comment_created',
        }
    }
    return broadcast('comment.created', [post_channel(comment.post_id)], payload)


def comment_deleted(comment_id, post_id):
    payload = {'comment_id': comment_id, 'post_id': post_id, 'type': 'comment_deleted'}
    return broadcast('comment.deleted', [post_channel(post_id)], payload)


def message_sent(message):
    payload = {
        'message': {
            'id': message.id,
            'conversation_id': message.conversation_id,
            'content': message.content,
            'type': message.type,
            'media': message.media,
            'user': user_summary(message.sender),
            'created_at': _iso(message.created_at),
        }
    }
    return broadcast('message.sent', [conversation_channel(message.conversation_id)], payload)


def user_typing(conversation_id, user, is_typing):
    payload = {
        'conversation_id': conversation_id,
        'user_id': user.id,
        'user_name': display_name(user),
        'is_typing': is_typing,
    }
    return broadcast('user.typing', [conversation_channel(conversation_id)], payload)


def user_online_status(user, is_online, last_seen=None):
    payload = {
        'user_id': user.id,
        'user_name': display_name(user),
        'is_online': is_online,
        'last_seen': _iso(last_seen),
        'type': 'online_status',
    }
    return broadcast('user.status', [USER_STATUS_CHANNEL], payload)
