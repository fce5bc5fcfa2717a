"""Celery tasks for registrations."""

from celery import shared_task

from events.service.cleanup_service import cleanup_expired_registrations


@shared_task
def cleanup_expired_registrations_task() -> dict[str, int]:
    """Cancel lapsed holds and expire their invites."""
    result = cleanup_expired_registrations()
    return result.model_dump()
