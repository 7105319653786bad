"""
Posts, comments, likes and shares.

Every write here ends in a notification and/or a broadcast, so the order is
always: validate, mutate inside transaction.atomic(), notify, broadcast. The
broadcast only leaves the process after the transaction commits.

Design decisions:
1. Likes toggle. The partial unique constraints on Like decide races, the same
   way the old like endpoint relied on IntegrityError
2. Comments are two levels deep; a reply to a reply is attached to the
   top-level comment
3. A share of a shared post is recorded against the original
4. Timeline shares may repeat and each one creates a `shared` Post on the
   sharer's timeline; every other share type is unique per user and post

Performance considerations:
- Feed querysets annotate like/comment/share counts to avoid N+1
- Comment trees are fetched in ONE query and assembled in Python, O(n)
"""
import logging
from posixpath import splitext
from urllib.parse import urlparse

from django.contrib.auth.models import User
from django.db import IntegrityError, transaction
from django.db.models import Count, Exists, OuterRef
from django.utils import timezone

from . import broadcasting
from .conf import social_settings
from .errors import DuplicateRequestError, NotFoundError, UnauthorizedError, ValidationError
from .models import Comment, Like, Post, Share
from .notifications import notifications

logger = logging.getLogger(__name__)

MAX_POST_LENGTH = 5000
MAX_COMMENT_LENGTH = 1000
MAX_SHARE_LENGTH = 1000

IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp'}
VIDEO_EXTENSIONS = {'mp4', 'avi', 'mov', 'wmv', 'flv', 'webm'}

CREATABLE_TYPES = (Post.Type.TEXT, Post.Type.IMAGE, Post.Type.VIDEO, Post.Type.LINK)


def with_counts(queryset, viewer=None):
    """Annotate like_count, comment_count, share_count and, for a viewer, is_liked."""
    queryset = queryset.select_related(
        'author__profile', 'shared_post__author__profile'
    ).annotate(
        like_count=Count('likes', distinct=True),
        comment_count=Count('comments', distinct=True),
        share_count=Count('shares', distinct=True),
    )
    if viewer is not None and viewer.is_authenticated:
        queryset = queryset.annotate(
            is_liked=Exists(Like.objects.filter(post=OuterRef('pk'), user=viewer))
        )
    return queryset


def detect_media_type(media):
    """image or video from file extensions, text if nothing matches. Last match wins."""
    detected = Post.Type.TEXT
    for item in media:
        extension = splitext(urlparse(item).path)[1].lstrip('.').lower()
        if extension in IMAGE_EXTENSIONS:
            detected = Post.Type.IMAGE
        elif extension in VIDEO_EXTENSIONS:
            detected = Post.Type.VIDEO
    return detected


def _validate_text(value, limit, label, required=True):
    value = (value or '').strip()
    if required and not value:
        raise ValidationError(f"{label} is required")
    if len(value) > limit:
        raise ValidationError(f"{label} cannot exceed {limit} characters")
    return value


def _tagged_users(user_ids, author):
    """Validated, de-duplicated ids of tagged users, without the author."""
    if not user_ids:
        return []
    if not isinstance(user_ids, list) or not all(isinstance(uid, int) for uid in user_ids):
        raise ValidationError('Tagged users must be a list of user ids')
    wanted = set(user_ids) - {author.id}
    found = set(User.objects.filter(pk__in=wanted, is_active=True).values_list('pk', flat=True))
    missing = wanted - found
    if missing:
        raise ValidationError(f"Unknown users: {', '.join(str(uid) for uid in sorted(missing))}")
    return sorted(found)


# --- Posts ------------------------------------------------------------------

def create_post(author, content='', type=None, media=None, is_public=True, tagged_user_ids=None):
    """
    Create a post. Users in tagged_user_ids get a tag notification, users
    @mentioned in content get a mention notification; the author gets neither.
    """
    content = _validate_text(content, MAX_POST_LENGTH, 'Content', required=False)
    media = [] if media is None else media
    if not isinstance(media, list) or not all(isinstance(item, str) and item for item in media):
        raise ValidationError('Media must be a list of URLs or paths')
    if type is not None and type not in CREATABLE_TYPES:
        raise ValidationError(f"Invalid post type '{type}'")
    if not content and not media:
        raise ValidationError('A post needs content or media')
    tagged = _tagged_users(tagged_user_ids, author)

    detected = detect_media_type(media)
    final_type = type or detected
    if final_type == Post.Type.TEXT and detected != Post.Type.TEXT:
        final_type = detected

    with transaction.atomic():
        post = Post.objects.create(
            author=author,
            content=content,
            type=final_type,
            media=media,
            is_public=bool(is_public),
        )
        if post.is_public:
            broadcasting.post_created(post)
        notifications.mentions_in(post)
        for user_id in tagged:
            notifications.tag(post, user_id, author.id)

    logger.info("Post %s created by %s (%s)", post.id, author.id, post.type)
    return post


def get_post(post_id, viewer=None):
    """Post visible to viewer. Non-public posts are only visible to their author."""
    post = Post.objects.select_related('author__profile').filter(pk=post_id).first()
    if post is None or not (post.is_public or (viewer is not None and viewer.id == post.author_id)):
        raise NotFoundError('Post not found')
    return post


def _get_own_post(post_id, user):
    post = Post.objects.filter(pk=post_id).first()
    if post is None:
        raise NotFoundError('Post not found')
    if post.author_id != user.id:
        raise UnauthorizedError('You can only change your own posts')
    return post


def update_post(post_id, user, content=None, is_public=None):
    post = _get_own_post(post_id, user)
    fields = ['updated_at']
    if content is not None:
        post.content = _validate_text(content, MAX_POST_LENGTH, 'Content', required=not post.media)
        fields.append('content')
    if is_public is not None:
        post.is_public = bool(is_public)
        fields.append('is_public')
    post.save(update_fields=fields)
    return post


def delete_post(post_id, user):
    post = _get_own_post(post_id, user)
    post.delete()
    logger.info("Post %s deleted by %s", post_id, user.id)


def public_feed(viewer=None):
    return with_counts(Post.objects.filter(is_public=True), viewer).order_by('-created_at')


def posts_by_user(user_id, viewer=None):
    """A user's timeline. Non-public posts only show up for the owner."""
    queryset = Post.objects.filter(author_id=user_id)
    if viewer is None or viewer.id != user_id:
        queryset = queryset.filter(is_public=True)
    return with_counts(queryset, viewer).order_by('-created_at')


# --- Likes ------------------------------------------------------------------

def _toggle_like(user, lookup):
    """
    Remove the user's like if present, otherwise create it.

    Returns (like, liked); like is None when nothing new was created.
    """
    deleted, _ = Like.objects.filter(user=user, **lookup).delete()
    if deleted:
        return None, False
    try:
        with transaction.atomic():
            return Like.objects.create(user=user, **lookup), True
    except IntegrityError:
        # A concurrent request from the same user liked first
        return None, True


def toggle_post_like(post_id, user):
    """Like or unlike a post. Returns (liked, like_count) after the toggle."""
    post = get_post(post_id, user)
    with transaction.atomic():
        like, liked = _toggle_like(user, {'post': post})
        like_count = post.likes.count()
        if like is not None:
            notifications.post_like(post, user.id)
            broadcasting.post_liked(like, like_count)
    return liked, like_count


def toggle_comment_like(comment_id, user):
    comment = _get_comment(comment_id)
    get_post(comment.post_id, user)
    with transaction.atomic():
        like, liked = _toggle_like(user, {'comment': comment})
        like_count = comment.likes.count()
        if like is not None:
            notifications.comment_like(comment, user.id)
    return liked, like_count


# --- Comments ---------------------------------------------------------------

def _get_comment(comment_id):
    comment = Comment.objects.select_related('post').filter(pk=comment_id).first()
    if comment is None:
        raise NotFoundError('Comment not found')
    return comment


def add_comment(post_id, author, content, parent_id=None):
    post = get_post(post_id, author)
    content = _validate_text(content, MAX_COMMENT_LENGTH, 'Comment')

    parent = None
    if parent_id is not None:
        parent = Comment.objects.filter(pk=parent_id, post=post).first()
        if parent is None:
            raise ValidationError('Parent comment does not belong to this post')
        if parent.parent_id is not None:
            parent = parent.parent

    with transaction.atomic():
        comment = Comment.objects.create(post=post, author=author, content=content, parent=parent)
        notifications.post_comment(post, comment, author.id)
        broadcasting.comment_created(comment)

    logger.info("Comment %s on post %s by %s", comment.id, post.id, author.id)
    return comment


def edit_comment(comment_id, user, content):
    comment = _get_comment(comment_id)
    if comment.author_id != user.id:
        raise UnauthorizedError('You can only edit your own comments')
    comment.content = _validate_text(content, MAX_COMMENT_LENGTH, 'Comment')
    comment.is_edited = True
    comment.edited_at = timezone.now()
    comment.save(update_fields=['content', 'is_edited', 'edited_at', 'updated_at'])
    return comment


def delete_comment(comment_id, user):
    """The comment's author or the post's author may delete a comment."""
    comment = _get_comment(comment_id)
    if user.id not in (comment.author_id, comment.post.author_id):
        raise UnauthorizedError('You cannot delete this comment')
    post_id = comment.post_id
    with transaction.atomic():
        comment.delete()
        broadcasting.comment_deleted(comment_id, post_id)
    logger.info("Comment %s deleted by %s", comment_id, user.id)


def comments_for(post_id, viewer=None):
    """
    Top-level comments with their replies attached as `_children`.

    Algorithm: O(n) time and space
    1. Fetch every comment of the post in one query
    2. Index them by id
    3. Attach each reply to its parent, keep the roots
    """
    post = get_post(post_id, viewer)
    comments = list(
        Comment.objects.filter(post=post).select_related('author__profile').annotate(
            like_count=Count('likes', distinct=True)
        ).order_by('created_at')
    )

    for comment in comments:
        comment._children = []
    comment_map = {comment.id: comment for comment in comments}

    roots = []
    for comment in comments:
        if comment.parent_id is None:
            roots.append(comment)
        else:
            parent = comment_map.get(comment.parent_id)
            if parent:
                parent._children.append(comment)
    return roots


# --- Shares -----------------------------------------------------------------

def _original_of(post):
    if not post.is_shared:
        return post
    if post.shared_post_id is None:
        raise NotFoundError('The original post is no longer available')
    return post.shared_post


def share_post(post_id, user, share_type=Share.ShareType.TIMELINE, content='',
               privacy=Share.Privacy.PUBLIC):
    """
    Share a post. Returns (share, timeline_post); timeline_post is None for
    anything but timeline shares.
    """
    if share_type not in Share.ShareType.values:
        raise ValidationError(f"Invalid share type '{share_type}'")
    if privacy not in Share.Privacy.values:
        raise ValidationError(f"Invalid privacy '{privacy}'")
    content = _validate_text(content, MAX_SHARE_LENGTH, 'Share content', required=False)
    original = _original_of(get_post(post_id, user))

    if share_type != Share.ShareType.TIMELINE and Share.objects.filter(
        user=user, post=original, share_type=share_type
    ).exists():
        raise DuplicateRequestError('You have already shared this post')

    try:
        with transaction.atomic():
            share = Share.objects.create(
                user=user, post=original, share_type=share_type, content=content, privacy=privacy
            )
            timeline_post = None
            if share_type == Share.ShareType.TIMELINE:
                timeline_post = Post.objects.create(
                    author=user,
                    type=Post.Type.SHARED,
                    is_shared=True,
                    shared_post=original,
                    share_content=content,
                    is_public=privacy == Share.Privacy.PUBLIC,
                )
            notifications.post_share(original, user.id, share)
            broadcasting.post_shared(share, timeline_post)
    except IntegrityError:
        raise DuplicateRequestError('You have already shared this post')

    logger.info("Post %s shared by %s (%s)", original.id, user.id, share_type)
    return share, timeline_post


def unshare_post(post_id, user, share_type):
    """Remove the user's most recent share of this type, and its timeline post."""
    if share_type not in Share.ShareType.values:
        raise ValidationError(f"Invalid share type '{share_type}'")
    share = Share.objects.filter(user=user, post_id=post_id, share_type=share_type).order_by(
        '-created_at', '-id'
    ).first()
    if share is None:
        raise NotFoundError('Share not found')

    with transaction.atomic():
        if share_type == Share.ShareType.TIMELINE:
            timeline_post = Post.objects.filter(
                author=user, is_shared=True, shared_post_id=post_id
            ).order_by('-created_at', '-id').first()
            if timeline_post is not None:
                timeline_post.delete()
        share.delete()
    logger.info("Share %s of post %s removed by %s", share.id, post_id, user.id)


def share_stats(post_id, user):
    post = get_post(post_id, user)
    by_type = dict(
        post.shares.values_list('share_type').annotate(total=Count('id')).order_by()
    )
    stats = {
        'total_shares': sum(by_type.values()),
        'user_has_shared': post.shares.filter(user=user).exists(),
    }
    for share_type in Share.ShareType.values:
        stats[f"{share_type}_shares"] = by_type.get(share_type, 0)
    return stats


def post_link(post):
    return f"{social_settings.FRONTEND_URL.rstrip('/')}/posts/{post.id}"


def copy_link(post_id, user):
    """Record a copy_link share once per user and post, return the post's link."""
    original = _original_of(get_post(post_id, user))
    Share.objects.get_or_create(user=user, post=original, share_type=Share.ShareType.COPY_LINK)
    return post_link(original)
