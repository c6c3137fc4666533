"""
In-memory session store with time-to-live and capacity eviction.

Sessions are the only shared mutable state in the refiner. The store hands
out deep snapshots, so callers can never observe (or cause) a half-written
transcript, and structured CV data is only ever replaced wholesale.

Locking:
- a store-wide lock guards the session table and its recency order
- each session carries its own lock guarding transcript appends and data
  replacement

Usage:
    store = SessionStore(ttl_seconds=86400, max_sessions=500)
    store.add_eviction_listener(lambda event: print(event.session_id, event.reason))

    session_id = store.create(text, parsed_data)
    store.touch_and_append(session_id, ChatMessage(role="user", content="Hi"))
    session = store.get(session_id)
"""

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Literal, Optional

from refiner.common.error_handling import SessionNotFoundError
from refiner.common.types import ChatMessage, CvSession, ParsedCvData

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_MAX_SESSIONS = 500

EvictionReason = Literal["expired", "capacity"]


@dataclass(frozen=True)
class SessionEvicted:
    """Emitted whenever a session leaves the store other than by request."""
    session_id: str
    reason: EvictionReason
    last_activity_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Entry:
    """A stored session plus the lock serializing its mutations."""

    __slots__ = ("session", "lock")

    def __init__(self, session: CvSession):
        self.session = session
        self.lock = threading.Lock()


class SessionStore:
    """
    Thread-safe session table keyed by opaque random ids.

    Expired sessions are purged lazily whenever the table is accessed.
    When ``max_sessions`` is exceeded the least-recently-active session is
    evicted. Every eviction is logged and delivered to registered
    listeners as a SessionEvicted event.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            ttl_seconds: Idle time after which a session expires
            max_sessions: Maximum number of live sessions
            clock: Returns the current time (tests inject a fake clock)
        """
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")

        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_sessions = max_sessions
        self._clock = clock or _utcnow

        # Ordered least- to most-recently active
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = threading.RLock()
        self._listeners: List[Callable[[SessionEvicted], None]] = []

    # ===== Eviction events =====

    def add_eviction_listener(self, listener: Callable[[SessionEvicted], None]) -> None:
        """Register a callback invoked for every eviction."""
        with self._lock:
            self._listeners.append(listener)

    def _emit(self, events: List[SessionEvicted]) -> None:
        """Log evictions and notify listeners. Called without the store lock held."""
        for event in events:
            logger.info(
                f"Evicted session {event.session_id[:8]} ({event.reason}, "
                f"last active {event.last_activity_at.isoformat()})"
            )
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    logger.error(f"Eviction listener failed: {e}")

    def _is_expired(self, session: CvSession, now: datetime) -> bool:
        return now - session.last_activity_at >= self.ttl

    def _purge_expired_locked(self, now: datetime) -> List[SessionEvicted]:
        """Drop expired sessions. Caller holds the store lock."""
        events = []
        # Entries are in recency order, so the scan stops at the first live one
        while self._entries:
            session_id, entry = next(iter(self._entries.items()))
            if not self._is_expired(entry.session, now):
                break
            del self._entries[session_id]
            events.append(SessionEvicted(session_id, "expired", entry.session.last_activity_at))
        return events

    def _enforce_capacity_locked(self) -> List[SessionEvicted]:
        """Drop least-recently-active sessions beyond capacity. Caller holds the store lock."""
        events = []
        while len(self._entries) > self.max_sessions:
            session_id, entry = self._entries.popitem(last=False)
            events.append(SessionEvicted(session_id, "capacity", entry.session.last_activity_at))
        return events

    def evict_expired(self) -> List[str]:
        """
        Purge every expired session now.

        Returns:
            Ids of the evicted sessions
        """
        with self._lock:
            events = self._purge_expired_locked(self._clock())
        self._emit(events)
        return [event.session_id for event in events]

    # ===== Lookup =====

    def _lookup(self, session_id: str, touch: bool) -> _Entry:
        """Find a live entry, optionally marking it most-recently active."""
        with self._lock:
            now = self._clock()
            events = self._purge_expired_locked(now)
            entry = self._entries.get(session_id)
            if entry is not None and touch:
                self._entries.move_to_end(session_id)
        self._emit(events)

        if entry is None:
            raise SessionNotFoundError(session_id)
        return entry

    def get(self, session_id: str) -> CvSession:
        """
        Return a snapshot of the session.

        Raises:
            SessionNotFoundError: If the id is unknown, evicted or expired
        """
        entry = self._lookup(session_id, touch=False)
        with entry.lock:
            return entry.session.model_copy(deep=True)

    def __contains__(self, session_id: str) -> bool:
        try:
            self._lookup(session_id, touch=False)
        except SessionNotFoundError:
            return False
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ===== Mutation =====

    def create(
        self,
        original_text: str,
        parsed_data: ParsedCvData,
        language: str = "en",
        country_code: str = "DK",
    ) -> str:
        """
        Store a new session and return its id.

        Always succeeds; may evict the least-recently-active session.
        """
        now = self._clock()
        session_id = uuid.uuid4().hex
        session = CvSession(
            id=session_id,
            original_text=original_text,
            parsed_data=parsed_data.model_copy(deep=True),
            chat_history=[],
            created_at=now,
            last_activity_at=now,
            language=language,
            country_code=country_code,
        )

        with self._lock:
            events = self._purge_expired_locked(now)
            self._entries[session_id] = _Entry(session)
            events.extend(self._enforce_capacity_locked())
        self._emit(events)

        logger.info(f"Created session {session_id[:8]} ({len(original_text)} chars)")
        return session_id

    def touch(self, session_id: str) -> None:
        """Mark the session as active now."""
        entry = self._lookup(session_id, touch=True)
        with entry.lock:
            entry.session = entry.session.model_copy(
                update={"last_activity_at": self._clock()}
            )

    def touch_and_append(self, session_id: str, message: ChatMessage) -> CvSession:
        """
        Append one transcript turn and mark the session active.

        Returns:
            Snapshot of the session including the new turn
        """
        entry = self._lookup(session_id, touch=True)
        with entry.lock:
            session = entry.session
            entry.session = session.model_copy(
                update={
                    "chat_history": [*session.chat_history, message.model_copy()],
                    "last_activity_at": self._clock(),
                }
            )
            return entry.session.model_copy(deep=True)

    def replace_data(self, session_id: str, new_data: ParsedCvData) -> None:
        """Replace the session's structured data wholesale."""
        self.update_data(session_id, lambda _current, _country: new_data)

    def update_data(
        self,
        session_id: str,
        transform: Callable[[ParsedCvData, str], ParsedCvData],
        country_code: Optional[str] = None,
    ) -> ParsedCvData:
        """
        Atomically derive new structured data from the current data.

        ``transform`` runs under the session lock with the current data and
        the session's current country code, and must return a new
        ParsedCvData; it must not call back into the store.

        Args:
            session_id: Session to update
            transform: Function of (current data, current country code)
            country_code: If given, stored as the session's country code
                          together with the new data

        Returns:
            Copy of the stored data after the update
        """
        entry = self._lookup(session_id, touch=True)
        with entry.lock:
            current = entry.session.parsed_data.model_copy(deep=True)
            updated = transform(current, entry.session.country_code).model_copy(deep=True)
            changes = {
                "parsed_data": updated,
                "last_activity_at": self._clock(),
            }
            if country_code:
                changes["country_code"] = country_code
            entry.session = entry.session.model_copy(update=changes)
            return updated.model_copy(deep=True)
