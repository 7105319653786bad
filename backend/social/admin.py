from django.contrib import admin
from .models import (
    BroadcastEvent, Comment, Conversation, ConversationMember, Friendship, Like, Message,
    Notification, Post, Profile, Share,
)


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'username', 'is_private', 'is_online', 'last_seen_at']
    list_filter = ['is_private', 'is_online']
    search_fields = ['username', 'user__username', 'user__email']


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ['id', 'author', 'type', 'is_public', 'is_shared', 'created_at', 'content_preview']
    list_filter = ['type', 'is_public', 'is_shared', 'created_at']
    search_fields = ['content', 'author__username']

    def content_preview(self, obj):
        return obj.content[:50] + '...' if len(obj.content) > 50 else obj.content


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ['id', 'post', 'parent', 'author', 'is_edited', 'created_at']
    list_filter = ['created_at', 'is_edited']
    search_fields = ['content', 'author__username']


@admin.register(Like)
class LikeAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'post', 'comment', 'created_at']
    list_filter = ['created_at']
    search_fields = ['user__username']


@admin.register(Share)
class ShareAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'post', 'share_type', 'privacy', 'created_at']
    list_filter = ['share_type', 'privacy']
    search_fields = ['user__username']


@admin.register(Friendship)
class FriendshipAdmin(admin.ModelAdmin):
    list_display = ['id', 'requester', 'recipient', 'status', 'blocked_by', 'mutual_block', 'created_at']
    list_filter = ['status']
    search_fields = ['requester__username', 'recipient__username']


class ConversationMemberInline(admin.TabularInline):
    model = ConversationMember
    extra = 0


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ['id', 'type', 'name', 'updated_at']
    list_filter = ['type']
    inlines = [ConversationMemberInline]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'conversation', 'sender', 'type', 'is_edited', 'created_at']
    list_filter = ['type', 'created_at']
    search_fields = ['content', 'sender__username']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'type', 'recipient', 'sender', 'notifiable_kind', 'notifiable_id', 'read', 'created_at']
    list_filter = ['type', 'read', 'created_at']
    search_fields = ['recipient__username', 'sender__username']


@admin.register(BroadcastEvent)
class BroadcastEventAdmin(admin.ModelAdmin):
    list_display = ['id', 'event', 'created_at', 'dispatched_at', 'attempts']
    list_filter = ['event', 'dispatched_at']
    search_fields = ['event', 'last_error']
