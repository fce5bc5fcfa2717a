"""Celery tasks for billing."""

from celery import shared_task

from billing.service.maintenance import run_billing_maintenance


@shared_task
def run_billing_maintenance_task() -> dict[str, int]:
    """End lapsed subscriptions, warn expiring trials and disable expired codes."""
    return run_billing_maintenance().model_dump()
