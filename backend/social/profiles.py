"""
Profiles and presence.
"""
import logging
import re

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from . import broadcasting
from .errors import ConflictError, NotFoundError, ValidationError
from .friendships import are_friends
from .models import Profile

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.]{3,50}$')

# Fields a user may change on their own profile, with max lengths
PROFILE_FIELDS = {
    'username': 50,
    'bio': 1000,
    'avatar': 500,
    'cover_photo': 500,
    'location': 255,
    'website': 200,
}
USER_FIELDS = {
    'first_name': 150,
    'last_name': 150,
}


def ensure_profile(user):
    """Profile for user, created with the login username if missing."""
    profile = Profile.objects.filter(user=user).first()
    if profile is not None:
        return profile
    username = user.username
    if Profile.objects.filter(username=username).exists():
        username = f"{username}{user.id}"
    profile, _ = Profile.objects.get_or_create(user=user, defaults={'username': username[:50]})
    return profile


def get_profile(user_id, viewer=None):
    """
    Profile of user_id as seen by viewer.

    Private profiles only exist for their owner and accepted friends;
    everyone else gets NotFoundError, same as a missing user.
    """
    profile = Profile.objects.select_related('user').filter(user_id=user_id).first()
    if profile is None:
        raise NotFoundError('Profile not found')
    if profile.is_private:
        viewer_id = viewer.id if viewer is not None else None
        if viewer_id != user_id and not (viewer_id and are_friends(viewer_id, user_id)):
            raise NotFoundError('Profile not found')
    return profile


def _clean(field, value, limit):
    value = '' if value is None else str(value).strip()
    if len(value) > limit:
        raise ValidationError(f"{field} cannot exceed {limit} characters")
    if field == 'username' and not USERNAME_PATTERN.match(value):
        raise ValidationError(
            'Username must be 3-50 characters of letters, digits, underscores or dots'
        )
    if field == 'website' and value:
        try:
            URLValidator()(value)
        except DjangoValidationError:
            raise ValidationError('Website must be a valid URL')
    return value


def update_profile(user, **fields):
    """
    Update whitelisted profile and name fields. Unknown fields are rejected.
    """
    unknown = set(fields) - set(PROFILE_FIELDS) - set(USER_FIELDS) - {'is_private'}
    if unknown:
        raise ValidationError(f"Cannot update: {', '.join(sorted(unknown))}")

    profile = ensure_profile(user)
    if 'username' in fields:
        username = _clean('username', fields['username'], PROFILE_FIELDS['username'])
        if Profile.objects.filter(username__iexact=username).exclude(pk=profile.pk).exists():
            raise ConflictError('Username already taken')

    profile_changes = []
    user_changes = []
    for field, value in fields.items():
        if field == 'is_private':
            profile.is_private = bool(value)
            profile_changes.append(field)
        elif field in PROFILE_FIELDS:
            setattr(profile, field, _clean(field, value, PROFILE_FIELDS[field]))
            profile_changes.append(field)
        else:
            setattr(user, field, _clean(field, value, USER_FIELDS[field]))
            user_changes.append(field)

    try:
        with transaction.atomic():
            if profile_changes:
                profile.save(update_fields=profile_changes + ['updated_at'])
            if user_changes:
                user.save(update_fields=user_changes)
    except IntegrityError:
        raise ConflictError('Username already taken')

    logger.info("Profile of %s updated: %s", user.id, ', '.join(profile_changes + user_changes))
    return profile


def set_online_status(user, is_online):
    """Record presence and announce it on the public status channel."""
    profile = ensure_profile(user)
    profile.is_online = bool(is_online)
    profile.last_seen_at = timezone.now()
    with transaction.atomic():
        profile.save(update_fields=['is_online', 'last_seen_at', 'updated_at'])
        broadcasting.user_online_status(user, profile.is_online, profile.last_seen_at)
    return profile


def search_users(query, limit=20):
    """Active users whose username, profile username or name contains query."""
    query = (query or '').strip()
    if not query:
        return User.objects.none()
    return User.objects.filter(is_active=True).filter(
        Q(username__icontains=query)
        | Q(profile__username__icontains=query)
        | Q(first_name__icontains=query)
        | Q(last_name__icontains=query)
    ).select_related('profile').distinct().order_by('username')[:limit]

