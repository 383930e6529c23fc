"""
Dataset lifecycle signals.

Other features (favorites, notifications, ...) subscribe here to learn that a
dataset was created, updated or deleted. Delivery runs after the HTTP response
via FastAPI BackgroundTasks, so a failing subscriber never affects the request
that triggered it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

CREATED = "dataset.created"
UPDATED = "dataset.updated"
DELETED = "dataset.deleted"
KINDS = (CREATED, UPDATED, DELETED)


@dataclass(frozen=True)
class DatasetEvent:
    kind: str
    dataset_id: int
    owner: str
    address: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[DatasetEvent], Awaitable[None]]

_subscribers: dict[str, list[Subscriber]] = {kind: [] for kind in KINDS}


def subscribe(kind: str, subscriber: Subscriber) -> None:
    if kind not in _subscribers:
        raise ValueError(f"Unknown dataset event '{kind}'. Allowed: {list(KINDS)}")
    _subscribers[kind].append(subscriber)


def unsubscribe(kind: str, subscriber: Subscriber) -> None:
    if subscriber in _subscribers.get(kind, []):
        _subscribers[kind].remove(subscriber)


def clear_subscribers() -> None:
    for subscribers in _subscribers.values():
        subscribers.clear()


async def publish(event: DatasetEvent) -> None:
    """
    BackgroundTasks entrypoint.

    This should never raise to the request path; subscriber failures are logged
    and the remaining subscribers still run.
    """
    logger.info("dataset_event kind=%s dataset_id=%s address=%s", event.kind, event.dataset_id, event.address)
    for subscriber in list(_subscribers.get(event.kind, [])):
        try:
            await subscriber(event)
        except Exception:
            logger.exception(
                "dataset_event_subscriber_failed kind=%s dataset_id=%s subscriber=%r",
                event.kind,
                event.dataset_id,
                subscriber,
            )
