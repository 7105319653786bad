"""
Tests for posts, likes, comments and shares.

Key test coverage:
1. Media type detection and media ordering
2. Like toggling and net like_count
3. Two-level comment trees
4. Share rules: timeline repeats, other types are unique, shares of
   shares resolve to the original
"""
from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings

from social import broadcasting, posts
from social.errors import (
    ConflictError, DuplicateRequestError, NotFoundError, UnauthorizedError, ValidationError,
)
from social.models import Comment, Like, Notification, Post, Share

from .utils import LOCMEM_SOCIAL, make_user, published


@override_settings(SOCIAL=LOCMEM_SOCIAL)
class CreatePostTest(TestCase):

    def setUp(self):
        broadcasting.outbox.clear()
        self.author = make_user('author')

    def test_text_post(self):
        post = posts.create_post(self.author, 'Hello world')
        self.assertEqual(post.type, Post.Type.TEXT)
        self.assertEqual(post.media, [])
        self.assertTrue(post.is_public)

    def test_media_round_trips_in_order(self):
        media = ['posts/c.png', 'https://cdn.example.com/a.jpg', 'posts/b.gif']
        post = posts.create_post(self.author, '', media=media)

        post.refresh_from_db()
        self.assertEqual(post.media, media)
        self.assertEqual(post.media_urls, [
            '/media/posts/c.png', 'https://cdn.example.com/a.jpg', '/media/posts/b.gif',
        ])

    def test_type_detected_from_media(self):
        self.assertEqual(posts.create_post(self.author, media=['a.JPG']).type, Post.Type.IMAGE)
        self.assertEqual(posts.create_post(self.author, media=['clip.mp4?t=3']).type, Post.Type.VIDEO)
        self.assertEqual(posts.create_post(self.author, 'doc', media=['notes.pdf']).type, Post.Type.TEXT)

    def test_explicit_text_is_upgraded_when_media_present(self):
        post = posts.create_post(self.author, 'Look', type=Post.Type.TEXT, media=['a.png'])
        self.assertEqual(post.type, Post.Type.IMAGE)

    def test_explicit_link_is_kept(self):
        post = posts.create_post(self.author, 'https://example.com', type=Post.Type.LINK)
        self.assertEqual(post.type, Post.Type.LINK)

    def test_invalid_input(self):
        with self.assertRaises(ValidationError):
            posts.create_post(self.author, 'Hi', media='a.png')
        with self.assertRaises(ValidationError):
            posts.create_post(self.author, 'Hi', media=[1, 2])
        with self.assertRaises(ValidationError):
            posts.create_post(self.author, 'Hi', type=Post.Type.SHARED)
        with self.assertRaises(ValidationError):
            posts.create_post(self.author, '   ')
        with self.assertRaises(ValidationError):
            posts.create_post(self.author, 'x' * 5001)

    def test_public_post_is_broadcast(self):
        with self.captureOnCommitCallbacks(execute=True):
            post = posts.create_post(self.author, 'Hello')

        channels = [e['channel'] for e in published('post.created')]
        self.assertEqual(channels, ['posts', f"user.{self.author.id}"])
        payload = published('post.created')[0]['payload']['post']
        self.assertEqual(payload['id'], post.id)
        self.assertEqual(payload['post_type'], 'text')
        self.assertEqual(payload['user']['name'], 'author')

    def test_private_post_is_not_broadcast(self):
        with self.captureOnCommitCallbacks(execute=True):
            posts.create_post(self.author, 'Secret', is_public=False)
        self.assertEqual(published('post.created'), [])

    def test_tagged_users_are_notified(self):
        bob = make_user('bob')
        carol = make_user('carol')

        post = posts.create_post(
            self.author, 'Team photo', tagged_user_ids=[bob.id, carol.id, bob.id, self.author.id]
        )

        tags = Notification.objects.filter(type=Notification.Type.TAG)
        self.assertEqual({n.recipient for n in tags}, {bob, carol})
        self.assertTrue(all(n.notifiable_id == post.id and n.sender == self.author for n in tags))
        self.assertEqual(tags.first().message, 'author tagged you in a post')

    def test_tagging_unknown_users_is_rejected(self):
        with self.assertRaises(ValidationError):
            posts.create_post(self.author, 'Hi', tagged_user_ids=[999999])
        with self.assertRaises(ValidationError):
            posts.create_post(self.author, 'Hi', tagged_user_ids='1,2')
        self.assertFalse(Post.objects.exists())

    def test_mentions_notify(self):
        bob = make_user('bob')
        posts.create_post(self.author, 'Thanks @bob!')
        self.assertTrue(
            Notification.objects.filter(recipient=bob, type=Notification.Type.MENTION).exists()
        )


class PostVisibilityTest(TestCase):

    def setUp(self):
        self.author = make_user('author')
        self.stranger = make_user('stranger')
        self.public = posts.create_post(self.author, 'Public')
        self.private = posts.create_post(self.author, 'Private', is_public=False)

    def test_private_post_only_visible_to_author(self):
        self.assertEqual(posts.get_post(self.private.id, self.author), self.private)
        with self.assertRaises(NotFoundError):
            posts.get_post(self.private.id, self.stranger)
        with self.assertRaises(NotFoundError):
            posts.get_post(999999, self.author)

    def test_feed_and_timeline(self):
        self.assertEqual(list(posts.public_feed(self.stranger)), [self.public])
        self.assertEqual(list(posts.posts_by_user(self.author.id, self.stranger)), [self.public])
        self.assertEqual(
            set(posts.posts_by_user(self.author.id, self.author)), {self.public, self.private}
        )

    def test_only_author_updates_and_deletes(self):
        with self.assertRaises(UnauthorizedError):
            posts.update_post(self.public.id, self.stranger, content='Hacked')
        with self.assertRaises(UnauthorizedError):
            posts.delete_post(self.public.id, self.stranger)

        updated = posts.update_post(self.public.id, self.author, content='Edited', is_public=False)
        self.assertEqual(updated.content, 'Edited')
        self.assertFalse(updated.is_public)

        posts.delete_post(self.public.id, self.author)
        self.assertFalse(Post.objects.filter(pk=self.public.id).exists())


@override_settings(SOCIAL=LOCMEM_SOCIAL)
class LikeToggleTest(TestCase):
    """
    Test that liking twice toggles and like_count reflects net state.
    """

    def setUp(self):
        broadcasting.outbox.clear()
        self.author = make_user('author')
        self.fan = make_user('fan')
        self.other = make_user('other')
        self.post = posts.create_post(self.author, 'Like me')

    def test_like_twice_toggles(self):
        self.assertEqual(posts.toggle_post_like(self.post.id, self.fan), (True, 1))
        self.assertEqual(posts.toggle_post_like(self.post.id, self.other), (True, 2))
        self.assertEqual(posts.toggle_post_like(self.post.id, self.fan), (False, 1))
        self.assertEqual(posts.toggle_post_like(self.post.id, self.fan), (True, 2))

    def test_relike_does_not_renotify(self):
        for _ in range(3):
            posts.toggle_post_like(self.post.id, self.fan)
        self.assertEqual(
            Notification.objects.filter(type=Notification.Type.POST_LIKE, recipient=self.author).count(), 1
        )

    def test_own_like_does_not_notify(self):
        posts.toggle_post_like(self.post.id, self.author)
        self.assertFalse(Notification.objects.exists())

    def test_like_is_broadcast_to_post_and_owner(self):
        with self.captureOnCommitCallbacks(execute=True):
            posts.toggle_post_like(self.post.id, self.fan)
            posts.toggle_post_like(self.post.id, self.fan)

        events = published('post.liked')
        self.assertEqual([e['channel'] for e in events], [f"post.{self.post.id}", f"user.{self.author.id}"])
        self.assertEqual(events[0]['payload']['like']['like_count'], 1)

    def test_comment_like_toggle(self):
        comment = posts.add_comment(self.post.id, self.author, 'Thanks all')
        self.assertEqual(posts.toggle_comment_like(comment.id, self.fan), (True, 1))
        self.assertEqual(posts.toggle_comment_like(comment.id, self.fan), (False, 0))
        self.assertTrue(
            Notification.objects.filter(type=Notification.Type.COMMENT_LIKE, recipient=self.author).exists()
        )

    def test_database_rejects_duplicate_like(self):
        Like.objects.create(user=self.fan, post=self.post)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Like.objects.create(user=self.fan, post=self.post)

    def test_like_needs_exactly_one_target(self):
        from django.core.exceptions import ValidationError as ModelValidationError
        comment = Comment.objects.create(post=self.post, author=self.fan, content='c')
        with self.assertRaises(ModelValidationError):
            Like.objects.create(user=self.fan, post=self.post, comment=comment)
        with self.assertRaises(ModelValidationError):
            Like.objects.create(user=self.fan)


@override_settings(SOCIAL=LOCMEM_SOCIAL)
class CommentTest(TestCase):

    def setUp(self):
        broadcasting.outbox.clear()
        self.author = make_user('author')
        self.fan = make_user('fan')
        self.stranger = make_user('stranger')
        self.post = posts.create_post(self.author, 'Discuss')

    def test_reply_to_reply_is_attached_to_top_level(self):
        top = posts.add_comment(self.post.id, self.fan, 'Top')
        reply = posts.add_comment(self.post.id, self.author, 'Reply', parent_id=top.id)
        nested = posts.add_comment(self.post.id, self.fan, 'Nested', parent_id=reply.id)

        self.assertEqual(reply.parent, top)
        self.assertEqual(nested.parent, top)

    def test_parent_must_belong_to_post(self):
        other_post = posts.create_post(self.author, 'Elsewhere')
        foreign = posts.add_comment(other_post.id, self.fan, 'Over there')
        with self.assertRaises(ValidationError):
            posts.add_comment(self.post.id, self.fan, 'Here', parent_id=foreign.id)

    def test_comment_tree(self):
        first = posts.add_comment(self.post.id, self.fan, 'First')
        second = posts.add_comment(self.post.id, self.stranger, 'Second')
        reply = posts.add_comment(self.post.id, self.author, 'Reply', parent_id=first.id)
        posts.toggle_comment_like(reply.id, self.fan)

        tree = posts.comments_for(self.post.id, self.fan)

        self.assertEqual([c.id for c in tree], [first.id, second.id])
        self.assertEqual([c.id for c in tree[0]._children], [reply.id])
        self.assertEqual(tree[0]._children[0].like_count, 1)
        self.assertEqual(tree[1]._children, [])

    def test_comment_notifies_and_broadcasts(self):
        with self.captureOnCommitCallbacks(execute=True):
            comment = posts.add_comment(self.post.id, self.fan, 'Nice post')

        notification = Notification.objects.get(type=Notification.Type.POST_COMMENT)
        self.assertEqual(notification.recipient, self.author)
        self.assertEqual(notification.data['comment_id'], comment.id)
        events = published('comment.created', f"post.{self.post.id}")
        self.assertEqual(events[0]['payload']['comment']['id'], comment.id)

    def test_edit_comment(self):
        comment = posts.add_comment(self.post.id, self.fan, 'Tpyo')
        with self.assertRaises(UnauthorizedError):
            posts.edit_comment(comment.id, self.author, 'Typo')

        edited = posts.edit_comment(comment.id, self.fan, 'Typo')
        self.assertEqual(edited.content, 'Typo')
        self.assertTrue(edited.is_edited)
        self.assertIsNotNone(edited.edited_at)

    def test_delete_by_comment_author_or_post_author(self):
        by_fan = posts.add_comment(self.post.id, self.fan, 'Mine')
        by_stranger = posts.add_comment(self.post.id, self.stranger, 'Spam')

        with self.assertRaises(UnauthorizedError):
            posts.delete_comment(by_fan.id, self.stranger)

        with self.captureOnCommitCallbacks(execute=True):
            posts.delete_comment(by_fan.id, self.fan)
            posts.delete_comment(by_stranger.id, self.author)

        self.assertFalse(Comment.objects.exists())
        deleted_ids = [e['payload']['comment_id'] for e in published('comment.deleted')]
        self.assertEqual(deleted_ids, [by_fan.id, by_stranger.id])

    def test_empty_comment(self):
        with self.assertRaises(ValidationError):
            posts.add_comment(self.post.id, self.fan, '  ')


@override_settings(SOCIAL=LOCMEM_SOCIAL)
class ShareTest(TestCase):

    def setUp(self):
        broadcasting.outbox.clear()
        self.author = make_user('author')
        self.fan = make_user('fan')
        self.post = posts.create_post(self.author, 'Share me')

    def test_timeline_share_twice_succeeds(self):
        first, first_post = posts.share_post(self.post.id, self.fan, Share.ShareType.TIMELINE)
        second, second_post = posts.share_post(self.post.id, self.fan, Share.ShareType.TIMELINE)

        self.assertNotEqual(first.id, second.id)
        self.assertEqual(Share.objects.filter(share_type=Share.ShareType.TIMELINE).count(), 2)
        for timeline_post in (first_post, second_post):
            self.assertTrue(timeline_post.is_shared)
            self.assertEqual(timeline_post.type, Post.Type.SHARED)
            self.assertEqual(timeline_post.shared_post, self.post)
            self.assertEqual(timeline_post.author, self.fan)

    def test_story_share_twice_conflicts(self):
        share, timeline_post = posts.share_post(self.post.id, self.fan, Share.ShareType.STORY)
        self.assertIsNone(timeline_post)

        with self.assertRaises(DuplicateRequestError) as ctx:
            posts.share_post(self.post.id, self.fan, Share.ShareType.STORY)
        self.assertIsInstance(ctx.exception, ConflictError)
        self.assertEqual(Share.objects.count(), 1)

    def test_database_rejects_duplicate_story_share(self):
        Share.objects.create(user=self.fan, post=self.post, share_type=Share.ShareType.STORY)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Share.objects.create(user=self.fan, post=self.post, share_type=Share.ShareType.STORY)

    def test_share_of_share_resolves_to_original(self):
        _, timeline_post = posts.share_post(self.post.id, self.fan)
        reader = make_user('reader')

        share, reshared = posts.share_post(timeline_post.id, reader)

        self.assertEqual(share.post, self.post)
        self.assertEqual(reshared.shared_post, self.post)

    def test_share_of_share_with_deleted_original(self):
        _, timeline_post = posts.share_post(self.post.id, self.fan)
        self.post.delete()
        timeline_post.refresh_from_db()
        self.assertIsNone(timeline_post.shared_post)

        with self.assertRaises(NotFoundError):
            posts.share_post(timeline_post.id, self.fan)

    def test_private_post_cannot_be_shared_by_others(self):
        private = posts.create_post(self.author, 'Mine', is_public=False)
        with self.assertRaises(NotFoundError):
            posts.share_post(private.id, self.fan)

    def test_invalid_share_type_and_privacy(self):
        with self.assertRaises(ValidationError):
            posts.share_post(self.post.id, self.fan, 'fax')
        with self.assertRaises(ValidationError):
            posts.share_post(self.post.id, self.fan, Share.ShareType.STORY, privacy='everyone')

    def test_share_notifies_and_broadcasts(self):
        with self.captureOnCommitCallbacks(execute=True):
            share, timeline_post = posts.share_post(self.post.id, self.fan, content='Read this')

        notification = Notification.objects.get(type=Notification.Type.POST_SHARE)
        self.assertEqual(notification.recipient, self.author)
        self.assertEqual(notification.data['share_type'], 'timeline')

        channels = [e['channel'] for e in published('post.shared')]
        self.assertEqual(channels, ['posts', f"post.{self.post.id}", f"user.{self.author.id}"])
        payload = published('post.shared')[0]['payload']['share']
        self.assertEqual(payload['timeline_post_id'], timeline_post.id)
        self.assertEqual(payload['content'], 'Read this')

    def test_non_timeline_share_skips_public_channel(self):
        with self.captureOnCommitCallbacks(execute=True):
            posts.share_post(self.post.id, self.fan, Share.ShareType.MESSAGE)
        channels = [e['channel'] for e in published('post.shared')]
        self.assertNotIn('posts', channels)

    def test_unshare_timeline_removes_shared_post(self):
        posts.share_post(self.post.id, self.fan)
        posts.unshare_post(self.post.id, self.fan, Share.ShareType.TIMELINE)

        self.assertFalse(Share.objects.exists())
        self.assertFalse(Post.objects.filter(is_shared=True).exists())
        with self.assertRaises(NotFoundError):
            posts.unshare_post(self.post.id, self.fan, Share.ShareType.TIMELINE)

    def test_share_stats(self):
        posts.share_post(self.post.id, self.fan)
        posts.share_post(self.post.id, self.fan)
        posts.share_post(self.post.id, self.fan, Share.ShareType.STORY)

        stats = posts.share_stats(self.post.id, self.fan)
        self.assertEqual(stats['total_shares'], 3)
        self.assertEqual(stats['timeline_shares'], 2)
        self.assertEqual(stats['story_shares'], 1)
        self.assertEqual(stats['message_shares'], 0)
        self.assertEqual(stats['copy_link_shares'], 0)
        self.assertTrue(stats['user_has_shared'])
        self.assertFalse(posts.share_stats(self.post.id, self.author)['user_has_shared'])

    def test_copy_link_is_idempotent(self):
        first = posts.copy_link(self.post.id, self.fan)
        second = posts.copy_link(self.post.id, self.fan)

        self.assertEqual(first, f"https://social.example.com/posts/{self.post.id}")
        self.assertEqual(first, second)
        self.assertEqual(Share.objects.filter(share_type=Share.ShareType.COPY_LINK).count(), 1)
