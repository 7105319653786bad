"""
Tests for profiles and presence.
"""
from django.test import TestCase, override_settings

from social import broadcasting, friendships, profiles
from social.errors import ConflictError, NotFoundError, ValidationError
from social.models import Profile

from .utils import LOCMEM_SOCIAL, make_user, published


class ProfileVisibilityTest(TestCase):

    def setUp(self):
        self.owner = make_user('owner')
        self.friend = make_user('friend')
        self.stranger = make_user('stranger')
        Profile.objects.filter(user=self.owner).update(is_private=True)
        friendship = friendships.send_request(self.friend.id, self.owner.id)
        friendships.respond(friendship.id, self.owner.id, friendships.ACCEPT)

    def test_private_profile_visible_to_owner_and_friends(self):
        self.assertEqual(profiles.get_profile(self.owner.id, self.owner).user, self.owner)
        self.assertEqual(profiles.get_profile(self.owner.id, self.friend).user, self.owner)

    def test_private_profile_hidden_from_others(self):
        with self.assertRaises(NotFoundError):
            profiles.get_profile(self.owner.id, self.stranger)
        with self.assertRaises(NotFoundError):
            profiles.get_profile(self.owner.id)

    def test_public_profile(self):
        self.assertEqual(profiles.get_profile(self.stranger.id, self.owner).username, 'stranger')
        with self.assertRaises(NotFoundError):
            profiles.get_profile(999999, self.owner)


class UpdateProfileTest(TestCase):

    def setUp(self):
        self.user = make_user('alice')
        make_user('bob')

    def test_updates_profile_and_name(self):
        profile = profiles.update_profile(
            self.user, bio='  Hi  ', website='https://alice.example.com', first_name='Alice'
        )
        self.assertEqual(profile.bio, 'Hi')
        self.assertEqual(profile.website, 'https://alice.example.com')
        self.user.refresh_from_db()
        self.assertEqual(self.user.first_name, 'Alice')

    def test_rejects_unknown_and_invalid_fields(self):
        with self.assertRaises(ValidationError):
            profiles.update_profile(self.user, is_online=True)
        with self.assertRaises(ValidationError):
            profiles.update_profile(self.user, website='not a url')
        with self.assertRaises(ValidationError):
            profiles.update_profile(self.user, username='a!')
        with self.assertRaises(ValidationError):
            profiles.update_profile(self.user, bio='x' * 1001)

    def test_duplicate_username_conflicts(self):
        with self.assertRaises(ConflictError):
            profiles.update_profile(self.user, username='bob')

    def test_username_differing_only_in_case_conflicts(self):
        with self.assertRaises(ConflictError):
            profiles.update_profile(self.user, username='BOB')
        self.assertEqual(Profile.objects.get(user=self.user).username, 'alice')

    def test_changing_case_of_own_username(self):
        profile = profiles.update_profile(self.user, username='Alice')
        self.assertEqual(profile.username, 'Alice')

    def test_missing_profile_is_created(self):
        Profile.objects.filter(user=self.user).delete()
        self.user.refresh_from_db()
        profile = profiles.ensure_profile(self.user)
        self.assertEqual(profile.username, 'alice')


@override_settings(SOCIAL=LOCMEM_SOCIAL)
class PresenceTest(TestCase):

    def setUp(self):
        broadcasting.outbox.clear()
        self.user = make_user('alice')

    def test_online_status_is_broadcast(self):
        with self.captureOnCommitCallbacks(execute=True):
            profile = profiles.set_online_status(self.user, True)

        self.assertTrue(profile.is_online)
        self.assertIsNotNone(profile.last_seen_at)
        events = published('user.status', 'user.status')
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]['payload']['user_id'], self.user.id)
        self.assertTrue(events[0]['payload']['is_online'])


class SearchUsersTest(TestCase):

    def setUp(self):
        self.alice = make_user('alice', first_name='Alice', last_name='Smith')
        self.bob = make_user('bob', last_name='Smithers')
        self.carol = make_user('carol')

    def test_matches_username_and_names(self):
        self.assertEqual(list(profiles.search_users('smith')), [self.alice, self.bob])
        self.assertEqual(list(profiles.search_users('CAR')), [self.carol])

    def test_empty_query_returns_nothing(self):
        self.assertEqual(list(profiles.search_users('  ')), [])

    def test_inactive_users_are_hidden(self):
        self.carol.is_active = False
        self.carol.save()
        self.assertEqual(list(profiles.search_users('carol')), [])
