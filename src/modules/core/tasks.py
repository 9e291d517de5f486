"""Celery tasks for core infrastructure."""

from celery import shared_task

from modules.core.outbox import relay_pending_events


@shared_task(name="core.relay_outbox")
def relay_outbox_task():
    """Publish the next batch of outbox events (scheduled every minute)."""
    return relay_pending_events()
