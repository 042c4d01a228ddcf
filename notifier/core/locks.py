"""In-process serialization of notification processing per work item.

Events for the same work item must not interleave (watch upserts and the
"already notified" computation read and write the same watch set). A fixed
array of lock stripes keeps memory bounded; two items hashing to the same
stripe are serialized too.

Cross-process ordering is provided by the row lock taken in
work_item_notification_service.

The stripe lock taken inside `on_event` is released before the caller
commits. Callers on a database without row locks (SQLite) hold
`work_item_lock` around both `on_event` and the commit; the lock is
reentrant, so the nested acquisition inside `on_event` does not deadlock.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from notifier.core.config import settings

_STRIPES: list[threading.RLock] = [
    threading.RLock() for _ in range(max(1, settings.NOTIFICATION_LOCK_STRIPES))
]


def stripe_index(work_item_id: UUID) -> int:
    return work_item_id.int % len(_STRIPES)


@contextmanager
def work_item_lock(work_item_id: UUID) -> Iterator[None]:
    """Hold the stripe lock of a work item for the duration of the block."""
    lock = _STRIPES[stripe_index(work_item_id)]
    with lock:
        yield
