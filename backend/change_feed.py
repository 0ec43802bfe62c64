"""Push notifications for leaderboard clients.

Any committed insert, update or delete of a ``profiles`` row produces one
"profiles changed" message. Messages carry a monotonically increasing revision
and the changed profile ids; clients treat them as a signal to refetch.
"""
import asyncio
import logging
import threading
from typing import Dict, Optional, Set, Tuple

from sqlalchemy import event
from sqlalchemy.orm import Session

from models import Profile

logger = logging.getLogger(__name__)

_PENDING_KEY = "leaderboard_profile_changes"
_STAGED_KEY = "leaderboard_profile_inserts"


class LeaderboardChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._revision = 0
        self._subscribers: Set[Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = set()

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        loop = asyncio.get_running_loop()
        with self._lock:
            self._subscribers.add((loop, queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers = {item for item in self._subscribers if item[1] is not queue}

    def publish(self, changes: Dict[int, str]) -> dict:
        with self._lock:
            self._revision += 1
            message = {
                "type": "profiles_changed",
                "table": "profiles",
                "revision": self._revision,
                "events": sorted(set(changes.values())),
                "profile_ids": sorted(changes),
            }
            subscribers = list(self._subscribers)

        stale = []
        for loop, queue in subscribers:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, message)
            except RuntimeError:
                stale.append(queue)
        for queue in stale:
            logger.warning("Dropping leaderboard subscriber with a closed event loop")
            self.unsubscribe(queue)
        return message


change_feed = LeaderboardChangeFeed()


def _pending(session: Session) -> Dict[int, str]:
    return session.info.setdefault(_PENDING_KEY, {})


@event.listens_for(Session, "before_flush")
def _stage_profile_changes(session: Session, flush_context, instances) -> None:
    # SQL-expression assignments are expired once flushed, so history is read here.
    pending = _pending(session)
    staged = session.info.setdefault(_STAGED_KEY, [])
    for obj in session.new:
        if isinstance(obj, Profile):
            staged.append(obj)
    for obj in session.dirty:
        if isinstance(obj, Profile) and obj.id is not None and session.is_modified(obj, include_collections=False):
            pending.setdefault(obj.id, "UPDATE")
    for obj in session.deleted:
        if isinstance(obj, Profile) and obj.id is not None:
            pending[obj.id] = "DELETE"


@event.listens_for(Session, "after_flush")
def _collect_inserted_profiles(session: Session, flush_context) -> None:
    # New rows only get their primary key during the flush.
    pending = _pending(session)
    for obj in session.info.pop(_STAGED_KEY, []):
        if obj.id is not None:
            pending[obj.id] = "INSERT"


@event.listens_for(Session, "after_commit")
def _publish_profile_changes(session: Session) -> None:
    pending: Optional[Dict[int, str]] = session.info.pop(_PENDING_KEY, None)
    if pending:
        change_feed.publish(pending)


@event.listens_for(Session, "after_soft_rollback")
def _discard_profile_changes(session: Session, previous_transaction) -> None:
    session.info.pop(_PENDING_KEY, None)
    session.info.pop(_STAGED_KEY, None)
