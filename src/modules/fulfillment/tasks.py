"""Celery tasks for automated fulfillment jobs."""

import structlog
from celery import shared_task

from modules.fulfillment.constants import SYSTEM_ACTOR
from modules.fulfillment.dtos import BulkTransitionDTO
from modules.fulfillment.exceptions import OrderNotFound
from modules.fulfillment.services import build_fulfillment_service

logger = structlog.get_logger(__name__)


@shared_task(name="fulfillment.bulk_transition")
def bulk_transition_task(payload):
    """Run a bulk transition as the ``system`` actor.

    ``payload`` is the JSON form of ``BulkTransitionDTO``; the result is the
    JSON form of ``BulkTransitionResultDTO``.
    """
    dto = BulkTransitionDTO.model_validate({**payload, "actor": SYSTEM_ACTOR})
    result = build_fulfillment_service().bulk_transition(dto)
    return result.model_dump(mode="json")


@shared_task(name="fulfillment.refresh_order_health")
def refresh_order_health_task():
    """Flag stale items and refresh cached derived fields of open orders."""
    service = build_fulfillment_service()
    order_ids = service.list_open_order_ids()
    attention = 0
    for order_id in order_ids:
        try:
            order = service.refresh_order_health(order_id)
        except OrderNotFound:
            logger.info("order_health.order_vanished", order_id=str(order_id))
            continue
        if order.needs_attention:
            attention += 1

    logger.info(
        "order_health.refreshed", order_count=len(order_ids), needs_attention=attention
    )
    return {"refreshed": len(order_ids), "needs_attention": attention}
