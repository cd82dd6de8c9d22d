"""
Change notifier.

Every committed mutation of a post or claim produces one ``ChangeEvent``
delivered through the ``entity_changed`` signal. Events are registered with
``transaction.on_commit`` so a command that rolls back never announces
anything, and events leave in the order their transactions committed.

Receivers get the event as a keyword argument::

    from django.dispatch import receiver
    from apps.sharing.services.notifications import entity_changed

    @receiver(entity_changed)
    def push_to_clients(sender, event, **kwargs):
        channel.broadcast(event.as_dict())

Consumers dedupe on ``event.key`` (entity, id, updated_at); the notifier
guarantees at-least-once delivery and never goes backwards for one entity.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from django.db import transaction
from django.dispatch import Signal

from apps.sharing.models import Claim, FoodPost

logger = logging.getLogger(__name__)

POST_ENTITY = 'post'
CLAIM_ENTITY = 'claim'

# Status carried by the event for a row that was removed
DELETED_STATUS = 'deleted'

ENTITY_NAMES = {
    FoodPost: POST_ENTITY,
    Claim: CLAIM_ENTITY,
}

entity_changed = Signal()


@dataclass(frozen=True)
class ChangeEvent:
    entity: str
    id: UUID
    status: str
    updated_at: datetime

    @classmethod
    def for_instance(cls, instance, status=None):
        try:
            entity = ENTITY_NAMES[type(instance)]
        except KeyError:
            raise TypeError(f"No change events for {type(instance).__name__}")
        return cls(
            entity=entity,
            id=instance.id,
            status=status or str(instance.status),
            updated_at=instance.updated_at,
        )

    @property
    def key(self):
        return (self.entity, self.id, self.updated_at)

    def as_dict(self):
        return {
            'entity': self.entity,
            'id': str(self.id),
            'status': self.status,
            'updated_at': self.updated_at.isoformat(),
        }


def publish(*instances):
    """
    Queue change events for rows written in the current transaction.

    Snapshots each row now, so later in-memory edits to the instance do
    not leak into the event.
    """
    for instance in instances:
        event = ChangeEvent.for_instance(instance)
        transaction.on_commit(lambda event=event: dispatch(event))


def publish_deletion(instance):
    """Queue the event announcing that ``instance`` is being deleted."""
    event = ChangeEvent.for_instance(instance, status=DELETED_STATUS)
    transaction.on_commit(lambda: dispatch(event))


def dispatch(event):
    """Deliver one committed event to every receiver."""
    logger.debug("Dispatching %s %s -> %s", event.entity, event.id, event.status)
    responses = entity_changed.send_robust(sender=ChangeEvent, event=event)
    for receiver, response in responses:
        if isinstance(response, Exception):
            # Already committed; keep delivering to the other receivers
            logger.error(
                "Change receiver %r failed for %s %s",
                receiver,
                event.entity,
                event.id,
                exc_info=response,
            )
