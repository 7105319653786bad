"""
Friendship state machine.

    none -> pending -> accepted
                    -> (rejected: row deleted, back to none)
                    -> blocked
    blocked -> (unblocked: row deleted, back to none)

Design decisions:
1. One row per unordered pair (see Friendship.pair_low/pair_high), so "is there
   a relationship between A and B" is a single indexed lookup in either
   direction
2. Pre-checks give specific error messages; the unique pair constraint is the
   real guard against two racing requests
3. Every transition broadcasts to both parties; notifications only go out for
   new requests and acceptances
"""
import logging
from typing import NamedTuple, Optional

from django.contrib.auth.models import User
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from . import broadcasting
from .errors import (
    BlockedError, ConflictError, DuplicateRequestError, NotFoundError,
    SelfActionError, SelfRequestError, UnauthorizedError, ValidationError,
)
from .models import Friendship
from .notifications import notifications

logger = logging.getLogger(__name__)

ACCEPT = 'accept'
REJECT = 'reject'
BLOCK = 'block'
RESPONSE_ACTIONS = (ACCEPT, REJECT, BLOCK)

# Relationship as seen from one side of the pair
STATUS_NONE = 'none'
STATUS_FRIENDS = 'friends'
STATUS_PENDING_SENT = 'pending_sent'
STATUS_PENDING_RECEIVED = 'pending_received'


class FriendshipStatus(NamedTuple):
    status: str
    friendship_id: Optional[int] = None


def _get_user(user_id):
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise NotFoundError('User not found')
    return user


def _get_friendship(friendship_id):
    friendship = Friendship.objects.select_related('requester', 'recipient').filter(
        pk=friendship_id
    ).first()
    if friendship is None:
        raise NotFoundError('Friend request not found')
    return friendship


def _raise_for_existing(friendship, requester_id):
    if friendship.status == Friendship.Status.BLOCKED:
        raise BlockedError('You cannot send a friend request to this user')
    if friendship.status == Friendship.Status.ACCEPTED:
        raise DuplicateRequestError('You are already friends with this user')
    if friendship.requester_id == requester_id:
        raise DuplicateRequestError('Friend request already sent')
    raise DuplicateRequestError('This user has already sent you a friend request')


def send_request(requester_id, target_id):
    """
    Create a pending request from requester to target.

    Raises SelfRequestError, NotFoundError, BlockedError or
    DuplicateRequestError; a request that races past the pre-checks raises
    ConflictError from the unique pair constraint.
    """
    if requester_id == target_id:
        raise SelfRequestError()
    _get_user(target_id)

    existing = Friendship.objects.between(requester_id, target_id).first()
    if existing is not None:
        _raise_for_existing(existing, requester_id)

    try:
        with transaction.atomic():
            friendship = Friendship.objects.create(
                requester_id=requester_id,
                recipient_id=target_id,
                status=Friendship.Status.PENDING,
            )
            notifications.friend_request(target_id, requester_id, friendship)
            broadcasting.friend_request_received(friendship)
    except IntegrityError:
        raise ConflictError('A friendship between these users already exists')

    logger.info("Friend request %s: %s -> %s", friendship.id, requester_id, target_id)
    return friendship


def respond(friendship_id, acting_user_id, action):
    """
    Accept, reject or block a pending request. Only the recipient may respond.

    Returns the updated friendship, or None when the request was rejected
    (rejecting deletes the row).
    """
    friendship = _get_friendship(friendship_id)
    if friendship.recipient_id != acting_user_id:
        raise UnauthorizedError('Only the recipient can respond to this request')
    if action not in RESPONSE_ACTIONS:
        raise ValidationError(f"Invalid action '{action}'")
    if friendship.status != Friendship.Status.PENDING:
        raise ValidationError('This friend request is no longer pending')

    with transaction.atomic():
        if action == REJECT:
            # The payload has to be built while the row still exists
            broadcasting.friendship_status_changed(friendship, REJECT)
            friendship.delete()
            logger.info("Friend request %s rejected by %s", friendship_id, acting_user_id)
            return None

        if action == ACCEPT:
            friendship.status = Friendship.Status.ACCEPTED
            friendship.accepted_at = timezone.now()
            friendship.save(update_fields=['status', 'accepted_at', 'updated_at'])
            notifications.friend_accepted(friendship.requester_id, acting_user_id, friendship)
        else:
            friendship.status = Friendship.Status.BLOCKED
            friendship.blocked_by_id = acting_user_id
            friendship.save(update_fields=['status', 'blocked_by', 'updated_at'])

        broadcasting.friendship_status_changed(friendship, action)

    logger.info("Friend request %s: %s by %s", friendship_id, action, acting_user_id)
    return friendship


def remove(friendship_id, acting_user_id):
    """
    Either party removes the relationship (unfriend or cancel a request).

    Blocked rows are left alone; they are only cleared through unblock().
    """
    friendship = _get_friendship(friendship_id)
    if not friendship.involves(acting_user_id):
        raise UnauthorizedError()
    if friendship.status == Friendship.Status.BLOCKED:
        raise BlockedError('Use unblock to remove a blocked relationship')

    with transaction.atomic():
        broadcasting.friendship_status_changed(friendship, 'remove')
        friendship.delete()
    logger.info("Friendship %s removed by %s", friendship_id, acting_user_id)


def block(acting_user_id, target_id):
    """
    Block target. Upserts the pair's row; blocking twice is a no-op.

    If target already blocked the actor the row becomes a mutual block, so
    the target unblocking later leaves the actor's block in place.
    """
    if acting_user_id == target_id:
        raise SelfActionError('You cannot block yourself')
    _get_user(target_id)

    with transaction.atomic():
        friendship = Friendship.objects.select_for_update().between(acting_user_id, target_id).first()
        if friendship is not None and friendship.is_blocked_by(acting_user_id):
            return friendship

        if friendship is None:
            friendship = Friendship(requester_id=acting_user_id, recipient_id=target_id)
        if friendship.status == Friendship.Status.BLOCKED:
            friendship.mutual_block = True
        else:
            friendship.status = Friendship.Status.BLOCKED
            friendship.blocked_by_id = acting_user_id
        try:
            with transaction.atomic():
                friendship.save()
        except IntegrityError:
            raise ConflictError('A friendship between these users already exists')
        broadcasting.friendship_status_changed(friendship, BLOCK)

    logger.info("User %s blocked %s", acting_user_id, target_id)
    return friendship


def unblock(acting_user_id, target_id):
    """Clear a block placed by the actor. Blocks placed by the other side stay."""
    with transaction.atomic():
        friendship = Friendship.objects.select_for_update().between(acting_user_id, target_id).first()
        if friendship is None or not friendship.is_blocked_by(acting_user_id):
            raise ValidationError('User is not blocked')

        if friendship.mutual_block:
            friendship.mutual_block = False
            friendship.blocked_by_id = target_id
            friendship.save(update_fields=['mutual_block', 'blocked_by', 'updated_at'])
        else:
            friendship.delete()
    logger.info("User %s unblocked %s", acting_user_id, target_id)


def get_status(user_id, other_id):
    """Relationship as seen by user_id. A blocked pair reports none."""
    friendship = Friendship.objects.between(user_id, other_id).first()
    if friendship is None:
        return FriendshipStatus(STATUS_NONE)
    if friendship.status == Friendship.Status.ACCEPTED:
        return FriendshipStatus(STATUS_FRIENDS, friendship.id)
    if friendship.status == Friendship.Status.PENDING:
        if friendship.requester_id == user_id:
            return FriendshipStatus(STATUS_PENDING_SENT, friendship.id)
        return FriendshipStatus(STATUS_PENDING_RECEIVED, friendship.id)
    return FriendshipStatus(STATUS_NONE, friendship.id)


def are_friends(user_id, other_id):
    return Friendship.objects.between(user_id, other_id).filter(
        status=Friendship.Status.ACCEPTED
    ).exists()


def friends_of(user_id):
    """Users with an accepted friendship with user_id."""
    accepted = Friendship.objects.involving(user_id).filter(status=Friendship.Status.ACCEPTED)
    return User.objects.filter(
        Q(pk__in=accepted.values('requester_id')) | Q(pk__in=accepted.values('recipient_id'))
    ).exclude(pk=user_id).select_related('profile').order_by('username')


def pending_received(user_id):
    return Friendship.objects.filter(
        recipient_id=user_id, status=Friendship.Status.PENDING
    ).select_related('requester__profile').order_by('-created_at')


def sent_requests(user_id):
    return Friendship.objects.filter(
        requester_id=user_id, status=Friendship.Status.PENDING
    ).select_related('recipient__profile').order_by('-created_at')


def suggestions(user_id, limit=10):
    """Random users with no relationship row with user_id in either direction."""
    related = Friendship.objects.involving(user_id)
    return User.objects.exclude(pk=user_id).exclude(
        pk__in=related.values('requester_id')
    ).exclude(
        pk__in=related.values('recipient_id')
    ).filter(is_active=True).select_related('profile').order_by('?')[:limit]
