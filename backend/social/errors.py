"""
Exception hierarchy for social operations.

Every operation module raises one of these instead of returning error codes.
The DRF exception handler in views.py maps `status_code` onto the response,
so controllers never need their own try/except for expected failures.
"""


class SocialError(Exception):
    """
    Base class for all expected failures.

    `message` is user-facing and should say why the action failed
    ("You are already friends with this user"), not just that it did.
    """
    status_code = 400
    default_message = 'Request could not be completed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class SelfActionError(SocialError):
    """Friend request, block or conversation targeting oneself."""
    default_message = 'You cannot perform this action on yourself'


class SelfRequestError(SelfActionError):
    default_message = 'You cannot send a friend request to yourself'


class ValidationError(SocialError):
    """Malformed input: unknown enum value, bad media list, oversized text."""
    status_code = 422
    default_message = 'Validation failed'


class UnauthorizedError(SocialError):
    """Actor is not a party to the resource."""
    status_code = 403
    default_message = 'Unauthorized'


class BlockedError(SocialError):
    status_code = 403
    default_message = 'This user is blocked'


class NotFoundError(SocialError):
    """Entity is missing or not visible to the viewer."""
    status_code = 404
    default_message = 'Not found'


class ConflictError(SocialError):
    """A unique constraint rejected the write."""
    status_code = 409
    default_message = 'Conflicting request'


class DuplicateRequestError(ConflictError):
    """Redundant friend request or repeated non-timeline share."""
    default_message = 'Duplicate request'
