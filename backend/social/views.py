"""
Views for the Social API.

Views are thin: parse input, call one operation module function, wrap the
result. Business rules and their failures (SocialError subclasses) live in
the operation modules; social_exception_handler turns those failures into
responses.

Every response uses the same envelope:
    {"success": bool, "message": str, "data": ...}
"""
import logging

from rest_framework import status, viewsets, views
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import exception_handler

from . import conversations, friendships, posts, profiles
from .broadcasting import can_subscribe
from .errors import NotFoundError, SocialError, UnauthorizedError, ValidationError
from .models import Post
from .notifications import notifications
from .serializers import (
    CommentCreateSerializer, CommentSerializer, ConversationSerializer, FriendshipSerializer,
    GroupCreateSerializer, MessageCreateSerializer, MessageSerializer, NotificationSerializer,
    PostCreateSerializer, PostSerializer, PostUpdateSerializer, ProfileSerializer,
    ProfileUpdateSerializer, ShareCreateSerializer, ShareSerializer, UserIdsSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)

RESPOND_MESSAGES = {
    friendships.ACCEPT: 'Friend request accepted',
    friendships.REJECT: 'Friend request rejected',
    friendships.BLOCK: 'User blocked successfully',
}


def social_exception_handler(exc, context):
    """
    Map SocialError onto its status code; defer everything else to DRF.
    """
    if isinstance(exc, SocialError):
        logger.debug("%s: %s", type(exc).__name__, exc.message)
        return Response({'success': False, 'message': exc.message}, status=exc.status_code)
    return exception_handler(exc, context)


def envelope(data=None, message='', status_code=status.HTTP_200_OK):
    return Response({'success': True, 'message': message, 'data': data}, status=status_code)


def paginated(view, queryset, serializer_class):
    """Page through queryset with the project paginator, inside the envelope."""
    paginator = PageNumberPagination()
    page = paginator.paginate_queryset(queryset, view.request, view=view)
    serializer = serializer_class(page, many=True, context={'request': view.request})
    return envelope({
        'count': paginator.page.paginator.count,
        'next': paginator.get_next_link(),
        'previous': paginator.get_previous_link(),
        'results': serializer.data,
    })


def _valid(serializer_class, request):
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class PostViewSet(viewsets.ViewSet):
    """
    Feed, post CRUD, likes, comments and shares.

    List view: annotated counts via posts.with_counts(), no N+1.
    Detail view: includes the full comment tree built in one query.
    """
    lookup_value_regex = r'\d+'

    def list(self, request):
        return paginated(self, posts.public_feed(request.user), PostSerializer)

    def create(self, request):
        data = _valid(PostCreateSerializer, request)
        post = posts.create_post(
            request.user, data['content'], data['type'], data['media'], data['is_public'],
            data['tagged_user_ids'],
        )
        post = posts.with_counts(Post.objects.filter(pk=post.pk), request.user).get()
        return envelope(PostSerializer(post).data, 'Post created successfully', status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        post = posts.get_post(int(pk), request.user)
        post = posts.with_counts(Post.objects.filter(pk=post.pk), request.user).get()
        data = PostSerializer(post).data
        data['comments'] = CommentSerializer(posts.comments_for(post.pk, request.user), many=True).data
        return envelope(data)

    def partial_update(self, request, pk=None):
        data = _valid(PostUpdateSerializer, request)
        post = posts.update_post(int(pk), request.user, **data)
        post = posts.with_counts(Post.objects.filter(pk=post.pk), request.user).get()
        return envelope(PostSerializer(post).data, 'Post updated successfully')

    def destroy(self, request, pk=None):
        posts.delete_post(int(pk), request.user)
        return envelope(message='Post deleted successfully')

    @action(detail=True, methods=['post'])
    def like(self, request, pk=None):
        liked, like_count = posts.toggle_post_like(int(pk), request.user)
        return envelope(
            {'liked': liked, 'like_count': like_count},
            'Post liked' if liked else 'Post unliked',
        )

    @action(detail=True, methods=['get', 'post'])
    def comments(self, request, pk=None):
        if request.method == 'GET':
            tree = posts.comments_for(int(pk), request.user)
            return envelope(CommentSerializer(tree, many=True).data)
        data = _valid(CommentCreateSerializer, request)
        comment = posts.add_comment(int(pk), request.user, data['content'], data['parent_id'])
        return envelope(CommentSerializer(comment).data, 'Comment added successfully', status.HTTP_201_CREATED)

    @action(detail=True, methods=['post', 'delete'])
    def share(self, request, pk=None):
        data = _valid(ShareCreateSerializer, request)
        if request.method == 'DELETE':
            posts.unshare_post(int(pk), request.user, data['share_type'])
            return envelope(message='Post unshared successfully')
        share, timeline_post = posts.share_post(
            int(pk), request.user, data['share_type'], data['content'], data['privacy']
        )
        payload = ShareSerializer(share).data
        payload['timeline_post_id'] = timeline_post.id if timeline_post else None
        return envelope(payload, 'Post shared successfully', status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='share-stats')
    def share_stats(self, request, pk=None):
        return envelope(posts.share_stats(int(pk), request.user))

    @action(detail=True, methods=['post'], url_path='copy-link')
    def copy_link(self, request, pk=None):
        link = posts.copy_link(int(pk), request.user)
        return envelope({'link': link}, 'Link copied successfully')


class CommentViewSet(viewsets.ViewSet):
    """Edit, delete and like single comments. Creation goes through posts."""
    lookup_value_regex = r'\d+'

    def partial_update(self, request, pk=None):
        data = _valid(CommentCreateSerializer, request)
        comment = posts.edit_comment(int(pk), request.user, data['content'])
        return envelope(CommentSerializer(comment).data, 'Comment updated successfully')

    def destroy(self, request, pk=None):
        posts.delete_comment(int(pk), request.user)
        return envelope(message='Comment deleted successfully')

    @action(detail=True, methods=['post'])
    def like(self, request, pk=None):
        liked, like_count = posts.toggle_comment_like(int(pk), request.user)
        return envelope(
            {'liked': liked, 'like_count': like_count},
            'Comment liked' if liked else 'Comment unliked',
        )


class UserPostsView(views.APIView):

    def get(self, request, user_id):
        return paginated(self, posts.posts_by_user(user_id, request.user), PostSerializer)


class FriendshipViewSet(viewsets.ViewSet):
    """
    Friend requests and the friend list. `pk` is a friendship id, except for
    the user-targeted actions which take a user id in the URL.
    """
    lookup_value_regex = r'\d+'

    def list(self, request):
        friends = friendships.friends_of(request.user.id)
        return envelope(UserSerializer(friends, many=True).data)

    def destroy(self, request, pk=None):
        friendships.remove(int(pk), request.user.id)
        return envelope(message='Friendship removed successfully')

    @action(detail=False, methods=['get'])
    def requests(self, request):
        pending = friendships.pending_received(request.user.id)
        return envelope(FriendshipSerializer(pending, many=True).data)

    @action(detail=False, methods=['get'])
    def sent(self, request):
        sent = friendships.sent_requests(request.user.id)
        return envelope(FriendshipSerializer(sent, many=True).data)

    @action(detail=False, methods=['get'])
    def suggestions(self, request):
        users = friendships.suggestions(request.user.id)
        return envelope(UserSerializer(users, many=True).data)

    @action(detail=True, methods=['post'])
    def respond(self, request, pk=None):
        action_name = request.data.get('action', '')
        friendship = friendships.respond(int(pk), request.user.id, action_name)
        data = FriendshipSerializer(friendship).data if friendship else None
        return envelope(data, RESPOND_MESSAGES[action_name])


class FriendRequestView(views.APIView):

    def post(self, request, user_id):
        friendship = friendships.send_request(request.user.id, user_id)
        return envelope(
            FriendshipSerializer(friendship).data,
            'Friend request sent successfully',
            status.HTTP_201_CREATED,
        )


class FriendshipStatusView(views.APIView):

    def get(self, request, user_id):
        result = friendships.get_status(request.user.id, user_id)
        return envelope({'status': result.status, 'friendship_id': result.friendship_id})


class BlockView(views.APIView):

    def post(self, request, user_id):
        friendships.block(request.user.id, user_id)
        return envelope(message='User blocked successfully')

    def delete(self, request, user_id):
        friendships.unblock(request.user.id, user_id)
        return envelope(message='User unblocked successfully')


class NotificationViewSet(viewsets.ViewSet):
    lookup_value_regex = r'\d+'

    def list(self, request):
        queryset = notifications.list_for(request.user.id)
        if request.query_params.get('unread') in ('1', 'true'):
            queryset = queryset.unread()
        return paginated(self, queryset, NotificationSerializer)

    def destroy(self, request, pk=None):
        if not notifications.delete(int(pk), request.user.id):
            raise NotFoundError('Notification not found')
        return envelope(message='Notification deleted')

    @action(detail=True, methods=['post'])
    def read(self, request, pk=None):
        if not notifications.mark_as_read(int(pk), request.user.id):
            raise NotFoundError('Notification not found')
        return envelope(message='Notification marked as read')

    @action(detail=True, methods=['post'])
    def unread(self, request, pk=None):
        if not notifications.mark_as_unread(int(pk), request.user.id):
            raise NotFoundError('Notification not found')
        return envelope(message='Notification marked as unread')

    @action(detail=False, methods=['post'], url_path='read-all')
    def read_all(self, request):
        updated = notifications.mark_all_as_read(request.user.id)
        return envelope({'updated': updated}, 'All notifications marked as read')

    @action(detail=False, methods=['delete'], url_path='clear-read')
    def clear_read(self, request):
        deleted = notifications.delete_all_read(request.user.id)
        return envelope({'deleted': deleted}, 'Read notifications deleted')

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        return envelope({'unread_count': notifications.unread_count(request.user.id)})


class ConversationViewSet(viewsets.ViewSet):
    """
    Conversations and messages. List ordering and unread counts come from
    conversations.conversations_for(), computed in one query.
    """
    lookup_value_regex = r'\d+'

    def _detail(self, conversation_id):
        conversation = conversations.get_conversation(conversation_id, self.request.user.id)
        return ConversationSerializer(conversation).data

    def list(self, request):
        query = request.query_params.get('query', '')
        queryset = conversations.search_conversations(request.user.id, query)
        return envelope(ConversationSerializer(queryset, many=True).data)

    def retrieve(self, request, pk=None):
        return envelope(self._detail(int(pk)))

    @action(detail=False, methods=['post'], url_path=r'start/(?P<user_id>\d+)')
    def start(self, request, user_id=None):
        conversation, created = conversations.start_private(request.user.id, int(user_id))
        return envelope(
            self._detail(conversation.pk),
            'Conversation started successfully' if created else 'Conversation already exists',
            status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=False, methods=['post'])
    def groups(self, request):
        data = _valid(GroupCreateSerializer, request)
        conversation = conversations.create_group(
            request.user.id, data['name'], data['user_ids'], data['avatar']
        )
        return envelope(self._detail(conversation.pk), 'Group created successfully', status.HTTP_201_CREATED)

    @action(detail=True, methods=['get', 'post'])
    def messages(self, request, pk=None):
        if request.method == 'GET':
            return paginated(self, conversations.messages_for(int(pk), request.user.id), MessageSerializer)
        data = _valid(MessageCreateSerializer, request)
        message = conversations.send_message(
            int(pk), request.user.id, data['content'], data['type'], data['media']
        )
        return envelope(MessageSerializer(message).data, 'Message sent successfully', status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def read(self, request, pk=None):
        conversations.mark_as_read(int(pk), request.user.id)
        return envelope(message='Conversation marked as read')

    @action(detail=True, methods=['post'])
    def mute(self, request, pk=None):
        conversations.mute(int(pk), request.user.id)
        return envelope(message='Conversation muted')

    @action(detail=True, methods=['post'])
    def unmute(self, request, pk=None):
        conversations.unmute(int(pk), request.user.id)
        return envelope(message='Conversation unmuted')

    @action(detail=True, methods=['post'])
    def members(self, request, pk=None):
        data = _valid(UserIdsSerializer, request)
        conversations.add_members(int(pk), request.user.id, data['user_ids'])
        return envelope(self._detail(int(pk)), 'Users added to group successfully')

    @action(detail=True, methods=['delete'], url_path=r'members/(?P<user_id>\d+)')
    def remove_member(self, request, pk=None, user_id=None):
        conversations.remove_member(int(pk), request.user.id, int(user_id))
        return envelope(message='User removed from group successfully')

    @action(detail=True, methods=['post'])
    def leave(self, request, pk=None):
        conversations.leave(int(pk), request.user.id)
        return envelope(message='Left group successfully')

    @action(detail=True, methods=['post', 'delete'])
    def typing(self, request, pk=None):
        if request.method == 'DELETE':
            conversations.stop_typing(int(pk), request.user)
            return envelope(message='Typing indicator stopped')
        conversations.typing(int(pk), request.user)
        return envelope(message='Typing indicator sent')


class MessageViewSet(viewsets.ViewSet):
    lookup_value_regex = r'\d+'

    def partial_update(self, request, pk=None):
        content = request.data.get('content', '')
        message = conversations.edit_message(int(pk), request.user.id, content)
        return envelope(MessageSerializer(message).data, 'Message updated successfully')

    def destroy(self, request, pk=None):
        conversations.delete_message(int(pk), request.user.id)
        return envelope(message='Message deleted successfully')


class ProfileView(views.APIView):
    """The current user's own profile."""

    def get(self, request):
        profile = profiles.ensure_profile(request.user)
        return envelope(ProfileSerializer(profile).data)

    def patch(self, request):
        serializer = ProfileUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        profile = profiles.update_profile(request.user, **serializer.validated_data)
        return envelope(ProfileSerializer(profile).data, 'Profile updated successfully')


class UserProfileView(views.APIView):

    def get(self, request, user_id):
        profile = profiles.get_profile(user_id, request.user)
        return envelope(ProfileSerializer(profile).data)


class OnlineStatusView(views.APIView):

    def post(self, request):
        is_online = request.data.get('is_online', True)
        if isinstance(is_online, str):
            is_online = is_online.lower() in ('1', 'true', 'yes')
        profile = profiles.set_online_status(request.user, is_online)
        return envelope({'is_online': profile.is_online, 'last_seen_at': profile.last_seen_at})


class UserSearchView(views.APIView):

    def get(self, request):
        users = profiles.search_users(request.query_params.get('q', ''))
        return envelope(UserSerializer(users, many=True).data)


class ChannelAuthView(views.APIView):
    """
    Subscription check for the real-time gateway: may this user listen on
    the requested channel?
    """

    def post(self, request):
        channel = request.data.get('channel', '')
        if not channel:
            raise ValidationError('channel is required')
        if not can_subscribe(request.user, channel):
            raise UnauthorizedError('You may not subscribe to this channel')
        return envelope({'channel': channel})
