"""
Tests for the HTTP layer.

Key test coverage:
1. Every response uses the {success, message, data} envelope
2. Operation errors map onto their status codes (403, 404, 409, 422)
3. Registration, login and token-protected endpoints
"""
from rest_framework import status
from rest_framework.test import APITestCase

from social import conversations, friendships, posts
from social.models import Friendship, Notification, Profile, Share

from .utils import make_user, rewind_watermarks


class AuthApiTest(APITestCase):

    def test_register_creates_profile_and_tokens(self):
        response = self.client.post('/api/auth/register/', {
            'username': 'newbie',
            'email': 'newbie@example.com',
            'password': 'Str0ng-Passw0rd!',
            'first_name': 'New',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertIn('access', response.data['data']['tokens'])
        self.assertIn('refresh', response.data['data']['tokens'])
        self.assertTrue(Profile.objects.filter(user__username='newbie', username='newbie').exists())

    def test_register_validation(self):
        make_user('taken')
        response = self.client.post('/api/auth/register/', {
            'username': 'taken',
            'email': 'not-used@example.com',
            'password': 'Str0ng-Passw0rd!',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertFalse(response.data['success'])
        self.assertIn('username', response.data['errors'])

    def test_login(self):
        make_user('alice')

        response = self.client.post(
            '/api/auth/login/', {'username': 'alice@example.com', 'password': 'Str0ng-Passw0rd!'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(Profile.objects.get(username='alice').is_online)

        response = self.client.post(
            '/api/auth/login/', {'username': 'alice', 'password': 'wrong'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data, {'success': False, 'message': 'Invalid credentials'})

    def test_anonymous_requests_are_rejected(self):
        response = self.client.get('/api/posts/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class FriendshipApiTest(APITestCase):

    def setUp(self):
        self.alice = make_user('alice')
        self.bob = make_user('bob')
        self.client.force_authenticate(user=self.alice)

    def test_send_request_then_duplicate(self):
        response = self.client.post(f"/api/users/{self.bob.id}/friend-request/")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['status'], Friendship.Status.PENDING)

        response = self.client.post(f"/api/users/{self.bob.id}/friend-request/")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data, {'success': False, 'message': 'Friend request already sent'})

    def test_request_to_self(self):
        response = self.client.post(f"/api/users/{self.alice.id}/friend-request/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_only_recipient_can_respond(self):
        friendship = friendships.send_request(self.alice.id, self.bob.id)

        response = self.client.post(f"/api/friends/{friendship.id}/respond/", {'action': 'accept'})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.bob)
        response = self.client.post(f"/api/friends/{friendship.id}/respond/", {'action': 'accept'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Friend request accepted')

        response = self.client.get(f"/api/users/{self.alice.id}/friendship-status/")
        self.assertEqual(response.data['data'], {'status': 'friends', 'friendship_id': friendship.id})

    def test_unknown_response_action(self):
        friendship = friendships.send_request(self.alice.id, self.bob.id)
        self.client.force_authenticate(user=self.bob)

        response = self.client.post(f"/api/friends/{friendship.id}/respond/", {'action': 'maybe'})
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)


class PostApiTest(APITestCase):

    def setUp(self):
        self.author = make_user('author')
        self.fan = make_user('fan')
        self.post = posts.create_post(self.author, 'Hello API')
        self.client.force_authenticate(user=self.fan)

    def test_feed_is_paginated(self):
        response = self.client.get('/api/posts/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['count'], 1)
        self.assertEqual(response.data['data']['results'][0]['id'], self.post.id)

    def test_create_post(self):
        response = self.client.post(
            '/api/posts/', {'content': 'Pics', 'media': ['a.png', 'b.png']}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['type'], 'image')
        self.assertEqual(response.data['data']['like_count'], 0)

    def test_create_post_with_tags(self):
        response = self.client.post(
            '/api/posts/', {'content': 'With you', 'tagged_user_ids': [self.author.id]}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        notification = Notification.objects.get(type=Notification.Type.TAG)
        self.assertEqual(notification.recipient, self.author)
        self.assertEqual(notification.url, f"/posts/{response.data['data']['id']}")

    def test_invalid_post_is_422(self):
        response = self.client.post('/api/posts/', {'content': '  '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertFalse(response.data['success'])

    def test_like_toggle(self):
        response = self.client.post(f"/api/posts/{self.post.id}/like/")
        self.assertEqual(response.data['data'], {'liked': True, 'like_count': 1})

        response = self.client.post(f"/api/posts/{self.post.id}/like/")
        self.assertEqual(response.data['data'], {'liked': False, 'like_count': 0})

    def test_story_share_twice_conflicts(self):
        response = self.client.post(f"/api/posts/{self.post.id}/share/", {'share_type': 'story'})
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['data']['timeline_post_id'])

        response = self.client.post(f"/api/posts/{self.post.id}/share/", {'share_type': 'story'})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(Share.objects.count(), 1)

    def test_private_post_is_404(self):
        private = posts.create_post(self.author, 'Hidden', is_public=False)
        response = self.client.get(f"/api/posts/{private.id}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['message'], 'Post not found')

    def test_detail_includes_comment_tree(self):
        top = posts.add_comment(self.post.id, self.fan, 'Top')
        posts.add_comment(self.post.id, self.author, 'Reply', parent_id=top.id)

        response = self.client.get(f"/api/posts/{self.post.id}/")
        comments = response.data['data']['comments']
        self.assertEqual(len(comments), 1)
        self.assertEqual(comments[0]['replies'][0]['content'], 'Reply')


class NotificationApiTest(APITestCase):

    def setUp(self):
        self.author = make_user('author')
        self.fan = make_user('fan')
        self.post = posts.create_post(self.author, 'Hello')
        posts.toggle_post_like(self.post.id, self.fan)
        self.client.force_authenticate(user=self.author)

    def test_unread_count_and_read_all(self):
        response = self.client.get('/api/notifications/unread-count/')
        self.assertEqual(response.data['data'], {'unread_count': 1})

        response = self.client.post('/api/notifications/read-all/')
        self.assertEqual(response.data['data'], {'updated': 1})

        response = self.client.get('/api/notifications/unread-count/')
        self.assertEqual(response.data['data'], {'unread_count': 0})

    def test_list_includes_presentation(self):
        response = self.client.get('/api/notifications/')
        item = response.data['data']['results'][0]
        self.assertEqual(item['message'], 'fan liked your post')
        self.assertEqual(item['url'], f"/posts/{self.post.id}")

    def test_other_users_notification_is_404(self):
        notification = Notification.objects.get()
        self.client.force_authenticate(user=self.fan)

        response = self.client.delete(f"/api/notifications/{notification.id}/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(Notification.objects.filter(pk=notification.pk).exists())


class ConversationApiTest(APITestCase):

    def setUp(self):
        self.alice = make_user('alice')
        self.bob = make_user('bob')
        self.carol = make_user('carol')
        self.client.force_authenticate(user=self.alice)

    def test_start_is_idempotent(self):
        first = self.client.post(f"/api/conversations/start/{self.bob.id}/")
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)

        second = self.client.post(f"/api/conversations/start/{self.bob.id}/")
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(first.data['data']['id'], second.data['data']['id'])

    def test_unread_count_in_list(self):
        conversation, _ = conversations.start_private(self.alice.id, self.bob.id)
        rewind_watermarks(conversation)
        conversations.send_message(conversation.id, self.bob.id, 'Hi Alice')

        response = self.client.get('/api/conversations/')
        self.assertEqual(response.data['data'][0]['unread_count'], 1)

        self.client.get(f"/api/conversations/{conversation.id}/messages/")
        response = self.client.get('/api/conversations/')
        self.assertEqual(response.data['data'][0]['unread_count'], 0)

    def test_non_member_cannot_read(self):
        conversation, _ = conversations.start_private(self.bob.id, self.carol.id)
        response = self.client.get(f"/api/conversations/{conversation.id}/messages/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ProfileAndChannelApiTest(APITestCase):

    def setUp(self):
        self.alice = make_user('alice')
        self.bob = make_user('bob')
        self.client.force_authenticate(user=self.alice)

    def test_private_profile_is_404_for_strangers(self):
        Profile.objects.filter(user=self.bob).update(is_private=True)

        response = self.client.get(f"/api/users/{self.bob.id}/profile/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_own_profile(self):
        response = self.client.patch('/api/profile/', {'bio': 'Hello there'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['bio'], 'Hello there')

    def test_channel_auth(self):
        conversation, _ = conversations.start_private(self.bob.id, make_user('carol').id)

        response = self.client.post('/api/broadcasting/auth/', {'channel': f"user.{self.alice.id}"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.post(
            '/api/broadcasting/auth/', {'channel': f"conversation.{conversation.id}"}
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.post('/api/broadcasting/auth/', {})
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
