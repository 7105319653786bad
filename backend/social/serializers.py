"""
Serializers for the Social API.

Design decisions:
1. Output serializers read annotated fields (like_count, unread_count, ...)
   set by the operation modules' querysets; they never query per row
2. CommentSerializer nests pre-built children instead of recursing into the DB
3. Input serializers only check shape (types, presence). Domain rules such as
   allowed post types live in the operation modules, which raise SocialError
"""
from django.contrib.auth.models import User
from rest_framework import serializers

from .models import (
    Comment, Conversation, Friendship, Message, Notification, Post, Profile, Share,
    display_name,
)


class UserSerializer(serializers.ModelSerializer):
    """Basic user serializer for nested representations."""
    name = serializers.SerializerMethodField()
    avatar = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'name', 'avatar']

    def get_name(self, obj):
        return display_name(obj)

    def get_avatar(self, obj):
        profile = getattr(obj, 'profile', None)
        return profile.avatar_url if profile else None


class ProfileSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)
    avatar_url = serializers.ReadOnlyField()
    cover_photo_url = serializers.ReadOnlyField()

    class Meta:
        model = Profile
        fields = [
            'id', 'user', 'username', 'bio', 'avatar_url', 'cover_photo_url',
            'location', 'website', 'is_private', 'is_online', 'last_seen_at', 'created_at',
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.Serializer):
    username = serializers.CharField(required=False, allow_blank=True)
    first_name = serializers.CharField(required=False, allow_blank=True)
    last_name = serializers.CharField(required=False, allow_blank=True)
    bio = serializers.CharField(required=False, allow_blank=True)
    avatar = serializers.CharField(required=False, allow_blank=True)
    cover_photo = serializers.CharField(required=False, allow_blank=True)
    location = serializers.CharField(required=False, allow_blank=True)
    website = serializers.CharField(required=False, allow_blank=True)
    is_private = serializers.BooleanField(required=False)


class OriginalPostSerializer(serializers.ModelSerializer):
    """The post a shared post points at, without counts."""
    author = UserSerializer(read_only=True)
    media = serializers.ListField(source='media_urls', read_only=True)

    class Meta:
        model = Post
        fields = ['id', 'author', 'content', 'type', 'media', 'created_at']
        read_only_fields = fields


class PostSerializer(serializers.ModelSerializer):
    """
    Post with author details and counts.

    Performance: counts and is_liked are expected to be annotated by
    posts.with_counts() to avoid N+1 queries.
    """
    author = UserSerializer(read_only=True)
    media = serializers.ListField(source='media_urls', read_only=True)
    shared_post = OriginalPostSerializer(read_only=True)
    like_count = serializers.IntegerField(read_only=True, default=0)
    comment_count = serializers.IntegerField(read_only=True, default=0)
    share_count = serializers.IntegerField(read_only=True, default=0)
    is_liked = serializers.BooleanField(read_only=True, default=False)

    class Meta:
        model = Post
        fields = [
            'id', 'author', 'content', 'type', 'media', 'is_public', 'is_shared',
            'shared_post', 'share_content', 'created_at', 'updated_at',
            'like_count', 'comment_count', 'share_count', 'is_liked',
        ]
        read_only_fields = fields


class PostCreateSerializer(serializers.Serializer):
    content = serializers.CharField(required=False, allow_blank=True, default='')
    type = serializers.CharField(required=False, allow_null=True, default=None)
    media = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    is_public = serializers.BooleanField(required=False, default=True)
    tagged_user_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)


class PostUpdateSerializer(serializers.Serializer):
    content = serializers.CharField(required=False, allow_blank=True)
    is_public = serializers.BooleanField(required=False)


class CommentSerializer(serializers.ModelSerializer):
    """
    Comment with nested author and replies.

    Note: replies are attached as `_children` by posts.comments_for(),
    so this never triggers recursive DB queries.
    """
    author = UserSerializer(read_only=True)
    like_count = serializers.IntegerField(read_only=True, default=0)
    replies = serializers.SerializerMethodField()

    class Meta:
        model = Comment
        fields = [
            'id', 'post', 'parent', 'content', 'author', 'is_edited', 'edited_at',
            'created_at', 'like_count', 'replies',
        ]
        read_only_fields = fields

    def get_replies(self, obj):
        children = getattr(obj, '_children', [])
        return CommentSerializer(children, many=True, context=self.context).data


class CommentCreateSerializer(serializers.Serializer):
    content = serializers.CharField(allow_blank=True)
    parent_id = serializers.IntegerField(required=False, allow_null=True, default=None)


class ShareSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = Share
        fields = ['id', 'user', 'post', 'share_type', 'content', 'privacy', 'created_at']
        read_only_fields = fields


class ShareCreateSerializer(serializers.Serializer):
    share_type = serializers.CharField(default=Share.ShareType.TIMELINE)
    content = serializers.CharField(required=False, allow_blank=True, default='')
    privacy = serializers.CharField(required=False, default=Share.Privacy.PUBLIC)


class FriendshipSerializer(serializers.ModelSerializer):
    requester = UserSerializer(read_only=True)
    recipient = UserSerializer(read_only=True)

    class Meta:
        model = Friendship
        fields = ['id', 'requester', 'recipient', 'status', 'accepted_at', 'created_at', 'updated_at']
        read_only_fields = fields


class NotificationSerializer(serializers.ModelSerializer):
    """Presentation fields come from Notification's properties."""
    sender = UserSerializer(read_only=True)
    message = serializers.ReadOnlyField()
    icon = serializers.ReadOnlyField()
    color = serializers.ReadOnlyField()
    url = serializers.ReadOnlyField()

    class Meta:
        model = Notification
        fields = [
            'id', 'type', 'message', 'icon', 'color', 'url', 'sender', 'data',
            'notifiable_kind', 'notifiable_id', 'read', 'read_at', 'created_at',
        ]
        read_only_fields = fields


class MessageSerializer(serializers.ModelSerializer):
    sender = UserSerializer(read_only=True)

    class Meta:
        model = Message
        fields = [
            'id', 'conversation', 'sender', 'content', 'type', 'media',
            'is_edited', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    content = serializers.CharField(allow_blank=True)
    type = serializers.CharField(required=False, default=Message.Type.TEXT)
    media = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class ConversationSerializer(serializers.ModelSerializer):
    """
    Conversation with members and, when annotated by
    conversations.with_unread_counts(), the viewer's unread state.
    """
    members = UserSerializer(many=True, read_only=True)
    unread_count = serializers.IntegerField(read_only=True, default=0)
    last_read_at = serializers.DateTimeField(read_only=True, default=None)
    last_message = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            'id', 'type', 'name', 'avatar', 'members', 'unread_count', 'last_read_at',
            'last_message', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_last_message(self, obj):
        if getattr(obj, 'last_message_at', None) is None:
            return None
        return {'content': obj.last_message_content, 'created_at': obj.last_message_at}


class GroupCreateSerializer(serializers.Serializer):
    name = serializers.CharField(allow_blank=True)
    user_ids = serializers.ListField(child=serializers.IntegerField())
    avatar = serializers.CharField(required=False, allow_blank=True, default='')


class UserIdsSerializer(serializers.Serializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=True)
