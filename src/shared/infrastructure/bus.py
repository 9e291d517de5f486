"""In-memory event bus implementation."""

from __future__ import annotations

from typing import Dict, Iterable, List, Type

import structlog
from django.db import transaction

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    """In-process bus; handlers run synchronously in the publisher's thread."""

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        for handler in self._handlers.get(type(event), []):
            handler.handle(event)

    def publish_after_commit(self, events: Iterable[DomainEvent]) -> None:
        """Defer publication until the surrounding transaction commits.

        Outside an atomic block the events are published immediately.
        Rolled-back transactions drop them; the outbox row is the durable copy.
        """
        pending = list(events)
        if not pending:
            return

        def _publish() -> None:
            for event in pending:
                self.publish(event)
            logger.info("event_bus.published", event_count=len(pending))

        transaction.on_commit(_publish)


# Global bus instance (singleton)

event_bus = InMemoryEventBus()
