"""
Client-side services: local fallback cache, notifications and the social view.
"""

from .local_cache import LocalGameCache
from .notification_service import NotificationService
from .social_service import SocialService

__all__ = ["LocalGameCache", "NotificationService", "SocialService"]
