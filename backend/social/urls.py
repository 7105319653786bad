"""
URL configuration for the Social API.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from .views import (
    PostViewSet, CommentViewSet, UserPostsView, FriendshipViewSet, FriendRequestView,
    FriendshipStatusView, BlockView, NotificationViewSet, ConversationViewSet, MessageViewSet,
    ProfileView, UserProfileView, OnlineStatusView, UserSearchView, ChannelAuthView,
)
from .auth_views import RegisterView, LoginView, MeView, LogoutView

router = DefaultRouter()
router.register(r'posts', PostViewSet, basename='post')
router.register(r'comments', CommentViewSet, basename='comment')
router.register(r'friends', FriendshipViewSet, basename='friendship')
router.register(r'notifications', NotificationViewSet, basename='notification')
router.register(r'conversations', ConversationViewSet, basename='conversation')
router.register(r'messages', MessageViewSet, basename='message')

urlpatterns = [
    path('', include(router.urls)),
    path('users/search/', UserSearchView.as_view(), name='user-search'),
    path('users/<int:user_id>/posts/', UserPostsView.as_view(), name='user-posts'),
    path('users/<int:user_id>/profile/', UserProfileView.as_view(), name='user-profile'),
    path('users/<int:user_id>/friend-request/', FriendRequestView.as_view(), name='friend-request'),
    path('users/<int:user_id>/friendship-status/', FriendshipStatusView.as_view(), name='friendship-status'),
    path('users/<int:user_id>/block/', BlockView.as_view(), name='block'),
    path('profile/', ProfileView.as_view(), name='profile'),
    path('profile/status/', OnlineStatusView.as_view(), name='online-status'),
    path('broadcasting/auth/', ChannelAuthView.as_view(), name='broadcasting-auth'),

    # Authentication endpoints
    path('auth/register/', RegisterView.as_view(), name='register'),
    path('auth/login/', LoginView.as_view(), name='login'),
    path('auth/logout/', LogoutView.as_view(), name='logout'),
    path('auth/me/', MeView.as_view(), name='me'),
    path('auth/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
]
