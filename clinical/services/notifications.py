"""
Fire-and-forget notifications to the pharmacy and lab work queues.

Events are pushed through the Channels layer after the originating
transaction commits.  Delivery failures are logged and dropped: the
clinical change has already been committed and does not depend on it.
"""
from __future__ import annotations

import logging
from functools import partial

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.utils import timezone

logger = logging.getLogger(__name__)

PHARMACY = 'pharmacy'
LAB = 'lab'
UPDATES_GROUP = 'updates'


def worklist_group(queue: str) -> str:
    return f"worklist.{queue}"


def _group_send(group: str, event: dict) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    try:
        async_to_sync(channel_layer.group_send)(group, event)
    except Exception:
        logger.exception('failed to publish %s to %s', event.get('type'), group)
        return False
    return True


def notify_pending_work(queue: str, *, patient_id: int, record_id: int, item_ids: list[int]) -> bool:
    event = {
        'type': 'worklist.pending',
        'queue': queue,
        'patientId': patient_id,
        'recordId': record_id,
        'itemIds': item_ids,
        'ts': timezone.now().isoformat(),
    }
    return _group_send(worklist_group(queue), event)


def broadcast_refresh(keys: list[str]) -> bool:
    now = timezone.now()
    event = {"type": "broadcast.refresh", "version": int(now.timestamp()), "ts": now.isoformat(), "keys": keys[:50]}
    return _group_send(UPDATES_GROUP, event)


def notify_pending_work_on_commit(queue: str, **kwargs) -> None:
    transaction.on_commit(partial(notify_pending_work, queue, **kwargs))
