from datetime import timedelta

from django.contrib.auth.models import User
from django.utils import timezone

from social import broadcasting
from social.models import ConversationMember, Profile

LOCMEM_SOCIAL = {
    'BROADCAST_TRANSPORT': 'social.broadcasting.LocMemTransport',
    'FRONTEND_URL': 'https://social.example.com',
}


def make_user(username, **extra):
    """User with a profile, the way registration creates them."""
    user = User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password='Str0ng-Passw0rd!',
        **extra
    )
    Profile.objects.create(user=user, username=username)
    return user


def rewind_watermarks(conversation, minutes=10):
    """Put every member's watermark safely in the past."""
    ConversationMember.objects.filter(conversation=conversation).update(
        last_read_at=timezone.now() - timedelta(minutes=minutes)
    )


def published(event=None, channel=None):
    """Events the LocMemTransport has published, optionally filtered."""
    return [
        entry for entry in broadcasting.outbox
        if (event is None or entry['event'] == event)
        and (channel is None or entry['channel'] == channel)
    ]
