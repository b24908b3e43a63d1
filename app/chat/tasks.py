"""
Celery tasks for chat app.

This module defines periodic tasks for:
- Clearing typing flags left behind by clients that went away mid-typing

Related files:
    - services.py: MembershipService.clear_stale_typing
    - config/settings.py: CELERY_BEAT_SCHEDULE

Usage:
    from chat.tasks import clear_stale_typing_flags

    clear_stale_typing_flags.delay()
"""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def clear_stale_typing_flags(self, older_than_seconds: int | None = None) -> int:
    """
    Reset typing flags that have not changed recently.

    Scheduled by Celery Beat every few seconds. A storage failure is raised
    so the task is retried.

    Args:
        older_than_seconds: Staleness threshold (default CHAT_TYPING_STALE_SECONDS)

    Returns:
        Number of flags cleared
    """
    from datetime import timedelta

    from chat.exceptions import raise_for_result
    from chat.services import MembershipService

    older_than = timedelta(seconds=older_than_seconds) if older_than_seconds else None
    cleared = raise_for_result(MembershipService.clear_stale_typing(older_than=older_than))

    if cleared:
        logger.info(f"Cleared {cleared} stale typing flags")
    return cleared
