"""Outbox relay.

Hands committed ``OutboxEvent`` rows to a publisher, oldest first.  Rows are
claimed with ``SELECT ... FOR UPDATE SKIP LOCKED`` so concurrent relay workers
never publish the same row twice.  ``FAILED`` rows are retried until
``OUTBOX_MAX_RETRIES`` attempts have been made.

The default publisher emits one structured ``outbox.event_published`` log
line per event; the JSON log stream is what downstream consumers read.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

import structlog
from django.conf import settings
from django.db import transaction
from django.db.models import Q

from modules.core.models import EventStatus, OutboxEvent

logger = structlog.get_logger(__name__)

Publisher = Callable[[OutboxEvent], None]


def log_publisher(event: OutboxEvent) -> None:
    logger.info(
        "outbox.event_published",
        event_id=str(event.id),
        topic=event.topic,
        event_type=event.event_type,
        aggregate_id=event.aggregate_id,
        payload=event.payload,
    )


def relay_pending_events(
    publisher: Publisher = log_publisher, batch_size: Optional[int] = None
) -> Dict[str, int]:
    """Publish one batch of outstanding events.

    A publisher error marks that row ``FAILED`` (bumping ``retry_count``)
    and the batch carries on with the next row.
    """
    batch_size = batch_size or settings.OUTBOX_RELAY_BATCH_SIZE
    published = 0
    failed = 0

    with transaction.atomic():
        rows = list(
            OutboxEvent.objects.select_for_update(skip_locked=True)
            .filter(
                Q(status=EventStatus.PENDING)
                | Q(
                    status=EventStatus.FAILED,
                    retry_count__lt=settings.OUTBOX_MAX_RETRIES,
                )
            )
            .order_by("created_at", "id")[:batch_size]
        )
        for row in rows:
            try:
                publisher(row)
            except Exception as exc:
                row.mark_as_failed(str(exc))
                failed += 1
                logger.warning(
                    "outbox.publish_failed",
                    event_id=str(row.id),
                    event_type=row.event_type,
                    retry_count=row.retry_count,
                    error=str(exc),
                )
            else:
                row.mark_as_published()
                published += 1

    if rows:
        logger.info("outbox.relayed", published=published, failed=failed)
    return {"published": published, "failed": failed}
