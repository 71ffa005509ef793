"""
Pending history buffer.

Group messages that do not trigger a reply (e.g. the bot was not mentioned)
are kept per conversation and replayed as context ahead of the next message
that does.
"""

import logging
import threading
from collections import OrderedDict, deque
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional

from .models import HistoryEntry

logger = logging.getLogger(__name__)

HISTORY_CONTEXT_MARKER = "[Chat messages since your last reply - for context]"
CURRENT_MESSAGE_MARKER = "[Current message - respond to this]"

DEFAULT_MAX_KEYS = 1000


def format_envelope(
    channel: str,
    sender: str,
    body: str,
    timestamp: Optional[datetime] = None,
) -> str:
    """Wrap a message body with its channel, sender and UTC time."""
    ts = timestamp or datetime.now(timezone.utc)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    stamp = ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    return f"[{channel} {sender} {stamp}] {body}"


class PendingHistoryBuffer:
    """
    Keyed FIFO of suppressed messages.

    Each key keeps at most ``limit`` of its most recent entries. At most
    ``max_keys`` conversations are tracked; the one recorded to least
    recently is dropped first.
    """

    def __init__(self, max_keys: int = DEFAULT_MAX_KEYS):
        self.max_keys = max_keys
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, Deque[HistoryEntry]]" = OrderedDict()

    def record(self, key: str, entry: HistoryEntry, limit: int) -> None:
        """Append an entry, evicting the oldest ones beyond ``limit``."""
        if limit <= 0:
            return
        with self._lock:
            bucket = self._entries.get(key)
            if bucket is None:
                bucket = deque()
                self._entries[key] = bucket
            else:
                self._entries.move_to_end(key)

            bucket.append(entry)
            while len(bucket) > limit:
                dropped = bucket.popleft()
                logger.debug(f"History {key}: evicted entry {dropped.message_id}")

            while self.max_keys > 0 and len(self._entries) > self.max_keys:
                old_key, _ = self._entries.popitem(last=False)
                logger.debug(f"History: dropped buffered conversation {old_key}")

    def entries(self, key: str) -> List[HistoryEntry]:
        """Snapshot of the buffered entries for ``key``, oldest first."""
        with self._lock:
            return list(self._entries.get(key, ()))

    def build_replay_prefix(
        self,
        key: str,
        limit: int,
        current_message: str,
        format_entry: Callable[[HistoryEntry], str],
    ) -> str:
        """
        Render buffered entries ahead of ``current_message``.

        Returns ``current_message`` unchanged when nothing is buffered or
        buffering is disabled. The buffer is not modified.
        """
        if limit <= 0:
            return current_message
        entries = self.entries(key)
        if not entries:
            return current_message

        rendered = "\n".join(format_entry(entry) for entry in entries)
        return (
            f"{HISTORY_CONTEXT_MARKER}\n{rendered}\n\n"
            f"{CURRENT_MESSAGE_MARKER}\n{current_message}"
        )

    def clear(self, key: str, limit: int) -> None:
        """Forget the entries of ``key`` after they were replayed."""
        if limit <= 0:
            return
        with self._lock:
            removed = self._entries.pop(key, None)
        if removed:
            logger.debug(f"History {key}: cleared {len(removed)} entries")

    def consume(self, key: str, replayed: List[HistoryEntry], limit: int) -> int:
        """
        Forget exactly the ``replayed`` entries of ``key``.

        Entries recorded after the replay snapshot was taken stay buffered
        for the next turn. Returns how many entries were removed.
        """
        if limit <= 0 or not replayed:
            return 0
        # the snapshot holds references, so ids stay unique while we compare
        done = {id(entry) for entry in replayed}
        with self._lock:
            bucket = self._entries.get(key)
            if bucket is None:
                return 0
            kept = deque(entry for entry in bucket if id(entry) not in done)
            removed = len(bucket) - len(kept)
            if kept:
                self._entries[key] = kept
            else:
                del self._entries[key]
        if removed:
            logger.debug(f"History {key}: consumed {removed} replayed entries, {len(kept)} left")
        return removed
