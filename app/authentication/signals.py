"""
Django signals for the identity app.

Handlers:
- Auto-create Profile when a User is created

Signals are connected in AuthenticationConfig.ready().
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_user_profile(sender, instance, created, **kwargs):
    """
    Create an empty Profile for newly created users.

    Chat serializers join profiles unconditionally, so every identity must
    have one from the moment it exists.
    """
    if created:
        from authentication.models import Profile

        Profile.objects.get_or_create(user=instance)
        logger.debug(f"Profile created for user: {instance.id}")
