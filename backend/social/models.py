"""
Models for the Social application.

Design decisions:
1. Users are stock django.contrib.auth users; everything social hangs off Profile
2. Friendships are stored once per unordered pair (pair_low, pair_high) with a
   single unique constraint, so duplicate rows for a pair cannot exist
3. Likes use nullable dual FKs (post XOR comment) with partial unique constraints
4. Share uniqueness is per (user, post, share_type) except for timeline shares
5. Notifications reference their target through a tagged (kind, id) pair
6. Broadcasts are written to an outbox table in the same transaction as the
   mutation that caused them, then published after commit

Performance considerations:
- Unread counts are never stored; they are computed from watermarks
- Unique constraints prevent race conditions at DB level
"""
from typing import NamedTuple
from urllib.parse import urlparse

from django.conf import settings
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from .conf import social_settings


def display_name(user):
    """Full name if the user has one, otherwise the login username."""
    if user is None:
        return None
    return user.get_full_name() or user.username


def resolve_media_url(value, default=None):
    """
    Turn a stored media reference into something a client can load.

    Absolute URLs pass through untouched; storage-relative paths are
    prefixed with MEDIA_URL. Empty values fall back to `default`, which is
    a static path.
    """
    if not value:
        if not default:
            return None
        return settings.STATIC_URL.rstrip('/') + '/' + default.lstrip('/')
    if urlparse(value).scheme in ('http', 'https'):
        return value
    return settings.MEDIA_URL.rstrip('/') + '/' + value.lstrip('/')


class Profile(models.Model):
    """
    Public face of a user. Exactly one per user, created at registration.

    `avatar` and `cover_photo` hold either a storage-relative path or an
    external URL; use the *_url properties when rendering.
    """
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='profile'
    )
    username = models.CharField(max_length=50, unique=True)
    bio = models.TextField(blank=True, default='')
    avatar = models.CharField(max_length=500, blank=True, default='')
    cover_photo = models.CharField(max_length=500, blank=True, default='')
    location = models.CharField(max_length=255, blank=True, default='')
    website = models.URLField(blank=True, default='')
    is_private = models.BooleanField(default=False)
    is_online = models.BooleanField(default=False)
    last_seen_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"@{self.username}"

    @property
    def avatar_url(self):
        return resolve_media_url(self.avatar, social_settings.DEFAULT_AVATAR)

    @property
    def cover_photo_url(self):
        return resolve_media_url(self.cover_photo, social_settings.DEFAULT_COVER_PHOTO)


class Post(models.Model):
    """
    A post on a user's timeline.

    A timeline share is itself a Post with is_shared=True pointing at the
    original through shared_post. The reference is weak: deleting the
    original leaves the share in place with shared_post set to NULL.

    Indexes:
    - created_at: For ordering the feed
    - author + created_at: For a user's timeline
    """
    class Type(models.TextChoices):
        TEXT = 'text', 'Text'
        IMAGE = 'image', 'Image'
        VIDEO = 'video', 'Video'
        LINK = 'link', 'Link'
        SHARED = 'shared', 'Shared'

    author = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='posts'
    )
    content = models.TextField(blank=True, default='')
    type = models.CharField(max_length=10, choices=Type.choices, default=Type.TEXT)
    # Ordered list of storage paths or URLs
    media = models.JSONField(default=list, blank=True)
    is_public = models.BooleanField(default=True)
    is_shared = models.BooleanField(default=False)
    shared_post = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reshares'
    )
    share_content = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='post_created_idx'),
            models.Index(fields=['author', '-created_at'], name='post_author_created_idx'),
            models.Index(fields=['is_shared', 'created_at'], name='post_shared_created_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(is_shared=True) | Q(shared_post__isnull=True),
                name='post_unshared_has_no_original'
            ),
        ]

    def __str__(self):
        return f"Post {self.id} by {self.author.username}"

    @property
    def media_urls(self):
        return [resolve_media_url(item) for item in self.media or []]


class Comment(models.Model):
    """
    Comment with one level of replies.

    parent always points at a top-level comment: replying to a reply is
    re-parented at write time (see posts.add_comment), so the tree is never
    deeper than two levels.

    Indexes:
    - post + created_at: For fetching all comments for a post ordered by time
    - parent: For collecting replies
    """
    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='replies'
    )
    content = models.TextField()
    author = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    is_edited = models.BooleanField(default=False)
    edited_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['post', 'created_at'], name='comment_post_created_idx'),
            models.Index(fields=['parent'], name='comment_parent_idx'),
        ]

    def __str__(self):
        return f"Comment {self.id} on Post {self.post_id}"


class Like(models.Model):
    """
    Like on either a post or a comment.

    CRITICAL: Uniqueness is enforced by partial unique constraints, not by
    application checks. Toggling relies on the constraint to reject the
    second insert of a racing pair.

    The check constraint ensures exactly one of post/comment is set; clean()
    repeats it so model-level errors read better than an IntegrityError.
    """
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='likes'
    )
    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='likes'
    )
    comment = models.ForeignKey(
        Comment,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='likes'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'post'],
                name='unique_user_post_like',
                condition=Q(post__isnull=False)
            ),
            models.UniqueConstraint(
                fields=['user', 'comment'],
                name='unique_user_comment_like',
                condition=Q(comment__isnull=False)
            ),
            models.CheckConstraint(
                condition=(
                    Q(post__isnull=False, comment__isnull=True)
                    | Q(post__isnull=True, comment__isnull=False)
                ),
                name='like_targets_post_xor_comment'
            ),
        ]
        indexes = [
            models.Index(fields=['post'], name='like_post_idx'),
            models.Index(fields=['comment'], name='like_comment_idx'),
            models.Index(fields=['user'], name='like_user_idx'),
        ]

    def clean(self):
        if self.post_id and self.comment_id:
            raise ValidationError("Like must be for either a post or comment, not both.")
        if not self.post_id and not self.comment_id:
            raise ValidationError("Like must be for either a post or a comment.")

    def save(self, *args, **kwargs):
        # Uniqueness is left to the database so races surface as IntegrityError
        self.full_clean(validate_unique=False, validate_constraints=False)
        super().save(*args, **kwargs)

    def __str__(self):
        target = f"Post {self.post_id}" if self.post_id else f"Comment {self.comment_id}"
        return f"Like by {self.user.username} on {target}"


class Share(models.Model):
    """
    A user redistributing a post.

    Uniqueness is (user, post, share_type) for every type except timeline,
    which may be repeated. This mirrors observed product behavior and is
    recorded as an open product decision in DESIGN.md.
    """
    class ShareType(models.TextChoices):
        TIMELINE = 'timeline', 'Timeline'
        STORY = 'story', 'Story'
        MESSAGE = 'message', 'Message'
        COPY_LINK = 'copy_link', 'Copy link'

    class Privacy(models.TextChoices):
        PUBLIC = 'public', 'Public'
        FRIENDS = 'friends', 'Friends'
        ONLY_ME = 'only_me', 'Only me'

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='shares'
    )
    post = models.ForeignKey(
        Post,
        on_delete=models.CASCADE,
        related_name='shares'
    )
    share_type = models.CharField(
        max_length=10, choices=ShareType.choices, default=ShareType.TIMELINE
    )
    content = models.TextField(blank=True, default='')
    privacy = models.CharField(
        max_length=10, choices=Privacy.choices, default=Privacy.PUBLIC
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'post', 'share_type'],
                name='unique_non_timeline_share',
                condition=~Q(share_type='timeline')
            ),
        ]
        indexes = [
            models.Index(fields=['user', 'created_at'], name='share_user_created_idx'),
            models.Index(fields=['post', 'created_at'], name='share_post_created_idx'),
        ]

    def __str__(self):
        return f"{self.share_type} share of Post {self.post_id} by {self.user.username}"


class FriendshipQuerySet(models.QuerySet):

    def between(self, user_a_id, user_b_id):
        low, high = Friendship.canonical_pair(user_a_id, user_b_id)
        return self.filter(pair_low=low, pair_high=high)

    def involving(self, user_id):
        return self.filter(Q(requester_id=user_id) | Q(recipient_id=user_id))


class Friendship(models.Model):
    """
    Relationship state between two users.

    One row per unordered pair: (pair_low, pair_high) is (min id, max id) and
    carries the only unique constraint, so two near-simultaneous requests
    between the same users cannot both insert. requester/recipient keep the
    direction of the original request.
    """
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        ACCEPTED = 'accepted', 'Accepted'
        BLOCKED = 'blocked', 'Blocked'

    requester = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='sent_friendships'
    )
    recipient = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='received_friendships'
    )
    pair_low = models.BigIntegerField(editable=False)
    pair_high = models.BigIntegerField(editable=False)
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.PENDING
    )
    accepted_at = models.DateTimeField(null=True, blank=True)
    blocked_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    # Both sides have blocked; blocked_by holds the first blocker
    mutual_block = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = FriendshipQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['pair_low', 'pair_high'],
                name='unique_friendship_pair'
            ),
            models.CheckConstraint(
                condition=Q(pair_low__lt=F('pair_high')),
                name='friendship_pair_ordered'
            ),
        ]
        indexes = [
            models.Index(fields=['requester', 'status'], name='friendship_requester_idx'),
            models.Index(fields=['recipient', 'status'], name='friendship_recipient_idx'),
        ]

    @staticmethod
    def canonical_pair(user_a_id, user_b_id):
        return (user_a_id, user_b_id) if user_a_id < user_b_id else (user_b_id, user_a_id)

    def save(self, *args, **kwargs):
        self.pair_low, self.pair_high = self.canonical_pair(self.requester_id, self.recipient_id)
        super().save(*args, **kwargs)

    def involves(self, user_id):
        return user_id in (self.requester_id, self.recipient_id)

    def other_party_id(self, user_id):
        return self.recipient_id if user_id == self.requester_id else self.requester_id

    def is_blocked_by(self, user_id):
        if self.status != self.Status.BLOCKED or not self.involves(user_id):
            return False
        return self.mutual_block or self.blocked_by_id == user_id

    def __str__(self):
        return f"{self.requester_id} -> {self.recipient_id} ({self.status})"


class Conversation(models.Model):
    """
    Private (two users) or group conversation.

    pair_key is only set for private conversations ("<low id>:<high id>") and
    is unique, which makes starting a conversation idempotent per pair.
    updated_at moves forward with every new message.
    """
    class Type(models.TextChoices):
        PRIVATE = 'private', 'Private'
        GROUP = 'group', 'Group'

    type = models.CharField(max_length=10, choices=Type.choices, default=Type.PRIVATE)
    name = models.CharField(max_length=255, blank=True, default='')
    avatar = models.CharField(max_length=500, blank=True, default='')
    pair_key = models.CharField(max_length=64, null=True, blank=True, unique=True, editable=False)
    members = models.ManyToManyField(
        User,
        through='ConversationMember',
        related_name='conversations'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(default=timezone.now, db_index=True)

    @staticmethod
    def pair_key_for(user_a_id, user_b_id):
        low, high = Friendship.canonical_pair(user_a_id, user_b_id)
        return f"{low}:{high}"

    @property
    def is_group(self):
        return self.type == self.Type.GROUP

    def touch(self):
        self.updated_at = timezone.now()
        Conversation.objects.filter(pk=self.pk).update(updated_at=self.updated_at)

    def __str__(self):
        return self.name or f"Conversation {self.id}"


class ConversationMember(models.Model):
    """
    Membership with the per-user read watermark.

    last_read_at is NULL until the member reads the conversation for the
    first time, in which case every message counts as unread.
    """
    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='memberships'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='conversation_memberships'
    )
    last_read_at = models.DateTimeField(null=True, blank=True)
    is_muted = models.BooleanField(default=False)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['conversation', 'user'],
                name='unique_conversation_member'
            ),
        ]

    def __str__(self):
        return f"{self.user_id} in Conversation {self.conversation_id}"


class Message(models.Model):
    class Type(models.TextChoices):
        TEXT = 'text', 'Text'
        IMAGE = 'image', 'Image'
        VIDEO = 'video', 'Video'
        AUDIO = 'audio', 'Audio'
        FILE = 'file', 'File'

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages'
    )
    sender = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='messages'
    )
    content = models.TextField()
    type = models.CharField(max_length=10, choices=Type.choices, default=Type.TEXT)
    media = models.JSONField(default=list, blank=True)
    is_edited = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at']
        indexes = [
            # Unread counts filter on created_at within a conversation
            models.Index(fields=['conversation', 'created_at'], name='message_conv_created_idx'),
        ]

    def __str__(self):
        return f"Message {self.id} in Conversation {self.conversation_id}"


class NotificationQuerySet(models.QuerySet):

    def unread(self):
        return self.filter(read=False)

    def read(self):
        return self.filter(read=True)

    def for_target(self, notifiable):
        return self.filter(notifiable_kind=notifiable.kind, notifiable_id=notifiable.id)


class Notifiable(NamedTuple):
    """Tagged reference to the entity a notification is about."""
    kind: str
    id: int

    @classmethod
    def of(cls, instance):
        for model, kind in NOTIFIABLE_KINDS.items():
            if isinstance(instance, model):
                return cls(kind, instance.pk)
        raise ValueError(f"{type(instance).__name__} cannot be a notification target")


# (message template, icon, color) per notification type
NOTIFICATION_PRESENTATION = {
    'friend_request': ('{sender} sent you a friend request', 'user-plus', 'blue'),
    'friend_accepted': ('{sender} accepted your friend request', 'user-plus', 'blue'),
    'post_like': ('{sender} liked your post', 'heart', 'red'),
    'post_comment': ('{sender} commented on your post', 'message-circle', 'green'),
    'post_share': ('{sender} shared your post', 'share-2', 'purple'),
    'comment_like': ('{sender} liked your comment', 'heart', 'red'),
    'mention': ('{sender} mentioned you in a post', 'at-sign', 'yellow'),
    'tag': ('{sender} tagged you in a post', 'at-sign', 'yellow'),
}
DEFAULT_PRESENTATION = ('{sender} interacted with your content', 'bell', 'gray')


class Notification(models.Model):
    """
    Alert for a user about someone else's action.

    Rows are only created through notifications.NotificationService, which
    applies the self-action and deduplication rules. Presentation fields
    (message, icon, color, url) are derived at read time from `type`.

    Indexes:
    - recipient + read: unread counts
    - recipient + created_at: notification list
    - type + recipient + sender: deduplication lookups
    """
    class Type(models.TextChoices):
        FRIEND_REQUEST = 'friend_request', 'Friend request'
        FRIEND_ACCEPTED = 'friend_accepted', 'Friend accepted'
        POST_LIKE = 'post_like', 'Post like'
        POST_COMMENT = 'post_comment', 'Post comment'
        POST_SHARE = 'post_share', 'Post share'
        COMMENT_LIKE = 'comment_like', 'Comment like'
        MENTION = 'mention', 'Mention'
        TAG = 'tag', 'Tag'

    class Kind(models.TextChoices):
        POST = 'post', 'Post'
        COMMENT = 'comment', 'Comment'
        FRIENDSHIP = 'friendship', 'Friendship'
        SHARE = 'share', 'Share'
        MESSAGE = 'message', 'Message'

    type = models.CharField(max_length=20, choices=Type.choices)
    recipient = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='notifications'
    )
    sender = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )
    notifiable_kind = models.CharField(max_length=20, choices=Kind.choices, null=True, blank=True)
    notifiable_id = models.PositiveBigIntegerField(null=True, blank=True)
    data = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = NotificationQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient', 'read'], name='notif_recipient_read_idx'),
            models.Index(fields=['recipient', '-created_at'], name='notif_recipient_created_idx'),
            models.Index(fields=['type', 'recipient', 'sender'], name='notif_dedup_idx'),
            models.Index(fields=['notifiable_kind', 'notifiable_id'], name='notif_target_idx'),
        ]

    def __str__(self):
        return f"{self.type} for {self.recipient_id}"

    @property
    def notifiable(self):
        if self.notifiable_kind is None:
            return None
        return Notifiable(self.notifiable_kind, self.notifiable_id)

    @property
    def message(self):
        template = NOTIFICATION_PRESENTATION.get(self.type, DEFAULT_PRESENTATION)[0]
        return template.format(sender=display_name(self.sender) or 'Someone')

    @property
    def icon(self):
        return NOTIFICATION_PRESENTATION.get(self.type, DEFAULT_PRESENTATION)[1]

    @property
    def color(self):
        return NOTIFICATION_PRESENTATION.get(self.type, DEFAULT_PRESENTATION)[2]

    @property
    def url(self):
        """Client route to open when the notification is clicked."""
        if self.type == self.Type.FRIEND_REQUEST:
            return '/friends/requests'
        if self.type == self.Type.FRIEND_ACCEPTED:
            return f"/profile/{self.sender_id}"
        if self.type == self.Type.COMMENT_LIKE:
            return f"/posts/{self.data.get('post_id')}"
        if self.type in (self.Type.POST_LIKE, self.Type.POST_COMMENT, self.Type.POST_SHARE,
                         self.Type.MENTION, self.Type.TAG):
            return f"/posts/{self.notifiable_id}"
        return None

    def mark_as_read(self):
        if not self.read:
            self.read = True
            self.read_at = timezone.now()
            self.save(update_fields=['read', 'read_at'])

    def mark_as_unread(self):
        if self.read:
            self.read = False
            self.read_at = None
            self.save(update_fields=['read', 'read_at'])


NOTIFIABLE_KINDS = {
    Post: Notification.Kind.POST,
    Comment: Notification.Kind.COMMENT,
    Friendship: Notification.Kind.FRIENDSHIP,
    Share: Notification.Kind.SHARE,
    Message: Notification.Kind.MESSAGE,
}


class BroadcastEventQuerySet(models.QuerySet):

    def pending(self):
        return self.filter(dispatched_at__isnull=True)


class BroadcastEvent(models.Model):
    """
    Outbox row for one real-time event.

    Written in the same transaction as the mutation; published to every
    channel after commit. A row with dispatched_at NULL has not been fully
    delivered and is retried by the dispatch_broadcasts command.
    """
    event = models.CharField(max_length=100)
    channels = models.JSONField(default=list)
    payload = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    # Channels that already accepted the event; retries skip them
    delivered_channels = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    dispatched_at = models.DateTimeField(null=True, blank=True)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True, default='')

    objects = BroadcastEventQuerySet.as_manager()

    class Meta:
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['dispatched_at', 'created_at'], name='broadcast_pending_idx'),
        ]

    def __str__(self):
        return f"{self.event} -> {', '.join(self.channels)}"
