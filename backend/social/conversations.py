"""
Conversations, messages and unread tracking.

Design decisions:
1. Unread state is a per-member watermark (ConversationMember.last_read_at).
   A message is unread for a member when created_at > last_read_at, or when
   the member has never read the conversation. Counts are never stored.
2. Private conversations are keyed by pair_key so starting one twice for the
   same pair returns the same row, even under a race
3. Sending a message advances the sender's watermark to the message's own
   timestamp, so your own messages never count as unread

Performance considerations:
- conversations_for() computes unread counts and the last message in the same
  query as the list, via annotations
- (conversation, created_at) index backs the unread filter
"""
import logging

from django.contrib.auth.models import User
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Count, F, OuterRef, Q, Subquery
from django.utils import timezone

from . import broadcasting
from .conf import social_settings
from .errors import (
    BlockedError, NotFoundError, SelfActionError, UnauthorizedError, ValidationError,
)
from .models import Conversation, ConversationMember, Friendship, Message

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


def _get_conversation(conversation_id):
    conversation = Conversation.objects.filter(pk=conversation_id).first()
    if conversation is None:
        raise NotFoundError('Conversation not found')
    return conversation


def _get_membership(conversation_id, user_id):
    """Membership row for user, or UnauthorizedError. 404 wins over 403."""
    conversation = _get_conversation(conversation_id)
    membership = ConversationMember.objects.filter(
        conversation=conversation, user_id=user_id
    ).first()
    if membership is None:
        raise UnauthorizedError('You are not a member of this conversation')
    return conversation, membership


def _get_group_membership(conversation_id, user_id):
    conversation, membership = _get_membership(conversation_id, user_id)
    if not conversation.is_group:
        raise ValidationError('This is not a group conversation')
    return conversation, membership


def _existing_user_ids(user_ids):
    wanted = set(user_ids)
    found = set(User.objects.filter(pk__in=wanted).values_list('pk', flat=True))
    missing = wanted - found
    if missing:
        raise ValidationError(f"Unknown users: {', '.join(str(i) for i in sorted(missing))}")
    return found


def _is_blocked(user_id, other_id):
    return Friendship.objects.between(user_id, other_id).filter(
        status=Friendship.Status.BLOCKED
    ).exists()


def _validate_message(content, type, media):
    content = (content or '').strip()
    if not content:
        raise ValidationError('Message content is required')
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters")
    if type not in Message.Type.values:
        raise ValidationError(f"Invalid message type '{type}'")
    if media is None:
        media = []
    if not isinstance(media, list) or not all(isinstance(item, str) for item in media):
        raise ValidationError('Media must be a list of URLs or paths')
    return content, media


# --- Unread tracking --------------------------------------------------------

def unread_filter(last_read_at):
    """Q for messages a member with this watermark has not read."""
    if last_read_at is None:
        return Q()
    return Q(created_at__gt=last_read_at)


def unread_count(conversation_id, user_id):
    _, membership = _get_membership(conversation_id, user_id)
    return Message.objects.filter(
        unread_filter(membership.last_read_at), conversation_id=conversation_id
    ).count()


def mark_as_read(conversation_id, user_id):
    """Move the member's watermark to now. Returns the new watermark."""
    _, membership = _get_membership(conversation_id, user_id)
    membership.last_read_at = timezone.now()
    membership.save(update_fields=['last_read_at'])
    return membership.last_read_at


def with_unread_counts(queryset, user_id):
    """Annotate unread_count, last_read_at and the last message for user_id."""
    watermark = ConversationMember.objects.filter(
        conversation=OuterRef('pk'), user_id=user_id
    ).values('last_read_at')[:1]
    last_message = Message.objects.filter(conversation=OuterRef('pk')).order_by('-created_at')
    return queryset.annotate(
        last_read_at=Subquery(watermark),
    ).annotate(
        unread_count=Count(
            'messages',
            filter=Q(last_read_at__isnull=True) | Q(messages__created_at__gt=F('last_read_at')),
            distinct=True,
        ),
        last_message_content=Subquery(last_message.values('content')[:1]),
        last_message_at=Subquery(last_message.values('created_at')[:1]),
    )


def conversations_for(user_id):
    """User's conversations, most recently active first, with unread counts."""
    queryset = Conversation.objects.filter(memberships__user_id=user_id)
    return with_unread_counts(queryset, user_id).prefetch_related(
        'members__profile'
    ).order_by('-updated_at')


def get_conversation(conversation_id, user_id):
    """One conversation with the member's unread state. Members only."""
    _get_membership(conversation_id, user_id)
    return conversations_for(user_id).get(pk=conversation_id)


def search_conversations(user_id, query):
    """Conversations whose group name or any member's name/email matches."""
    query = (query or '').strip()
    if not query:
        return conversations_for(user_id)
    matching_members = ConversationMember.objects.filter(
        Q(user__username__icontains=query)
        | Q(user__first_name__icontains=query)
        | Q(user__last_name__icontains=query)
        | Q(user__email__icontains=query)
    ).values('conversation_id')
    return conversations_for(user_id).filter(
        Q(pk__in=matching_members) | Q(name__icontains=query)
    )


# --- Conversations ----------------------------------------------------------

def start_private(user_id, other_id):
    """
    Get or create the private conversation between two users.

    Returns (conversation, created). Both members start with their watermark
    at creation time, so a fresh conversation has nothing unread.
    """
    if user_id == other_id:
        raise SelfActionError('You cannot start a conversation with yourself')
    if not User.objects.filter(pk=other_id).exists():
        raise NotFoundError('User not found')
    if _is_blocked(user_id, other_id):
        raise BlockedError('You cannot message this user')

    key = Conversation.pair_key_for(user_id, other_id)
    existing = Conversation.objects.filter(pair_key=key).first()
    if existing is not None:
        return existing, False

    try:
        with transaction.atomic():
            conversation = Conversation.objects.create(type=Conversation.Type.PRIVATE, pair_key=key)
            now = timezone.now()
            ConversationMember.objects.bulk_create([
                ConversationMember(conversation=conversation, user_id=uid, last_read_at=now)
                for uid in (user_id, other_id)
            ])
    except IntegrityError:
        # Lost the race to the other participant
        return Conversation.objects.get(pair_key=key), False

    logger.info("Private conversation %s started by %s with %s", conversation.id, user_id, other_id)
    return conversation, True


def create_group(user_id, name, user_ids, avatar=''):
    """Create a group with the creator plus at least two other users."""
    name = (name or '').strip()
    if not name:
        raise ValidationError('Group name is required')
    if len(name) > 255:
        raise ValidationError('Group name cannot exceed 255 characters')
    other_ids = _existing_user_ids(user_ids or []) - {user_id}
    if len(other_ids) < 2:
        raise ValidationError('A group needs at least two other members')

    with transaction.atomic():
        conversation = Conversation.objects.create(
            type=Conversation.Type.GROUP, name=name, avatar=avatar or ''
        )
        now = timezone.now()
        ConversationMember.objects.bulk_create([
            ConversationMember(conversation=conversation, user_id=uid, last_read_at=now)
            for uid in sorted(other_ids | {user_id})
        ])

    logger.info("Group conversation %s created by %s", conversation.id, user_id)
    return conversation


def add_members(conversation_id, user_id, user_ids):
    """Add users to a group. Users already in the group are skipped."""
    conversation, _ = _get_group_membership(conversation_id, user_id)
    if not user_ids:
        raise ValidationError('No users to add')
    new_ids = _existing_user_ids(user_ids) - set(
        conversation.memberships.values_list('user_id', flat=True)
    )
    now = timezone.now()
    ConversationMember.objects.bulk_create([
        ConversationMember(conversation=conversation, user_id=uid, last_read_at=now)
        for uid in sorted(new_ids)
    ], ignore_conflicts=True)
    logger.info("Added %s to conversation %s", sorted(new_ids), conversation_id)
    return conversation


def remove_member(conversation_id, user_id, member_id):
    conversation, _ = _get_group_membership(conversation_id, user_id)
    deleted, _ = ConversationMember.objects.filter(
        conversation=conversation, user_id=member_id
    ).delete()
    if not deleted:
        raise NotFoundError('User is not a member of this conversation')
    logger.info("User %s removed %s from conversation %s", user_id, member_id, conversation_id)


def leave(conversation_id, user_id):
    _, membership = _get_group_membership(conversation_id, user_id)
    membership.delete()
    logger.info("User %s left conversation %s", user_id, conversation_id)


def set_muted(conversation_id, user_id, muted):
    _, membership = _get_membership(conversation_id, user_id)
    membership.is_muted = muted
    membership.save(update_fields=['is_muted'])
    return membership


def mute(conversation_id, user_id):
    return set_muted(conversation_id, user_id, True)


def unmute(conversation_id, user_id):
    return set_muted(conversation_id, user_id, False)


# --- Messages ---------------------------------------------------------------

def messages_for(conversation_id, user_id):
    """All messages, oldest first. Reading them moves the watermark to now."""
    conversation, membership = _get_membership(conversation_id, user_id)
    membership.last_read_at = timezone.now()
    membership.save(update_fields=['last_read_at'])
    return conversation.messages.select_related('sender__profile').order_by('created_at')


def send_message(conversation_id, user_id, content, type=Message.Type.TEXT, media=None):
    conversation, membership = _get_membership(conversation_id, user_id)
    content, media = _validate_message(content, type, media)

    if not conversation.is_group:
        other_id = conversation.memberships.exclude(user_id=user_id).values_list(
            'user_id', flat=True
        ).first()
        if other_id is not None and _is_blocked(user_id, other_id):
            raise BlockedError('You cannot message this user')

    with transaction.atomic():
        message = Message.objects.create(
            conversation=conversation,
            sender_id=user_id,
            content=content,
            type=type,
            media=media,
        )
        conversation.touch()
        membership.last_read_at = message.created_at
        membership.save(update_fields=['last_read_at'])
        broadcasting.message_sent(message)

    logger.info("Message %s sent to conversation %s by %s", message.id, conversation_id, user_id)
    return message


def _get_own_message(message_id, user_id):
    message = Message.objects.filter(pk=message_id).first()
    if message is None:
        raise NotFoundError('Message not found')
    if message.sender_id != user_id:
        raise UnauthorizedError('You can only change your own messages')
    return message


def edit_message(message_id, user_id, content):
    message = _get_own_message(message_id, user_id)
    message.content, _ = _validate_message(content, message.type, message.media)
    message.is_edited = True
    message.save(update_fields=['content', 'is_edited', 'updated_at'])
    return message


def delete_message(message_id, user_id):
    message = _get_own_message(message_id, user_id)
    message.delete()
    logger.info("Message %s deleted by %s", message_id, user_id)


# --- Typing indicators ------------------------------------------------------

def _typing_key(conversation_id, user_id):
    return f"social:typing:{conversation_id}:{user_id}"


def typing(conversation_id, user):
    _get_membership(conversation_id, user.id)
    cache.set(_typing_key(conversation_id, user.id), True, social_settings.TYPING_TIMEOUT_SECONDS)
    broadcasting.user_typing(conversation_id, user, True)


def stop_typing(conversation_id, user):
    _get_membership(conversation_id, user.id)
    cache.delete(_typing_key(conversation_id, user.id))
    broadcasting.user_typing(conversation_id, user, False)


def is_typing(conversation_id, user_id):
    return bool(cache.get(_typing_key(conversation_id, user_id)))
