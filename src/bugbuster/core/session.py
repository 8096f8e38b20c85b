"""In-memory channel sessions with idle eviction."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional

from bugbuster.ai.conversation import Turn
from bugbuster.log import get_logger

logger = get_logger(__name__)

DEFAULT_IDLE_TIMEOUT = 30 * 60.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionStats:
    total_cost: float = 0.0
    message_count: int = 0
    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "total_cost": self.total_cost,
            "message_count": self.message_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_activity_at": self.last_activity_at.isoformat() if self.last_activity_at else None,
        }


@dataclass
class ChannelSession:
    channel_id: str
    history: list[Turn] = field(default_factory=list)
    stats: SessionStats = field(default_factory=SessionStats)
    idle_timer: Optional[asyncio.TimerHandle] = None


class ChannelSessionStore:
    """Per-channel history and usage, discarded after a period of inactivity.

    The store is total over channel ids: every mutating operation creates the
    session when it does not exist. Timers are scheduled on the running event
    loop, so mutating calls must happen inside it.

    ``is_busy`` lets the owner veto eviction while a run for the channel is in
    flight; the timer is rearmed instead.
    """

    def __init__(
        self,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        is_busy: Callable[[str], bool] | None = None,
    ):
        self._idle_timeout = idle_timeout
        self._is_busy = is_busy
        self._sessions: dict[str, ChannelSession] = {}

    @property
    def idle_timeout(self) -> float:
        return self._idle_timeout

    def set_busy_check(self, is_busy: Callable[[str], bool]) -> None:
        self._is_busy = is_busy

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._sessions

    def active_channels(self) -> list[str]:
        return list(self._sessions.keys())

    def get(self, channel_id: str) -> ChannelSession | None:
        """The live session, if any; unlike ``get_or_create`` this has no side effects."""
        return self._sessions.get(channel_id)

    def get_or_create(self, channel_id: str) -> ChannelSession:
        """Return the channel's session, creating an empty one if needed, and rearm its timer."""
        session = self._sessions.get(channel_id)
        if session is None:
            now = _now()
            session = ChannelSession(
                channel_id=channel_id,
                stats=SessionStats(created_at=now, last_activity_at=now),
            )
            self._sessions[channel_id] = session
            logger.info("session_created", channel_id=channel_id)
        self._arm(session)
        return session

    def touch(self, channel_id: str) -> None:
        """Push eviction ``idle_timeout`` seconds into the future."""
        session = self.get_or_create(channel_id)
        session.stats.last_activity_at = _now()

    def record_cost(self, channel_id: str, delta: float, count_message: bool = True) -> float:
        """Accumulate cost; returns the new session total."""
        if delta < 0:
            raise ValueError(f"Cost delta must be non-negative, got {delta}")
        session = self._sessions.get(channel_id) or self.get_or_create(channel_id)
        session.stats.total_cost += delta
        if count_message:
            session.stats.message_count += 1
        return session.stats.total_cost

    def get_stats(self, channel_id: str) -> SessionStats:
        """Copy of the channel's stats; zeroed for unknown channels (nothing is created)."""
        session = self._sessions.get(channel_id)
        if session is None:
            return SessionStats()
        return replace(session.stats)

    def evict(self, channel_id: str) -> bool:
        """Cancel the timer and discard history and stats. Returns False if there was nothing to evict."""
        session = self._sessions.pop(channel_id, None)
        if session is None:
            return False
        if session.idle_timer is not None:
            session.idle_timer.cancel()
        logger.info(
            "session_evicted",
            channel_id=channel_id,
            turns=len(session.history),
            total_cost=round(session.stats.total_cost, 4),
            message_count=session.stats.message_count,
        )
        return True

    def close(self) -> None:
        """Cancel every pending timer (process shutdown)."""
        for session in self._sessions.values():
            if session.idle_timer is not None:
                session.idle_timer.cancel()
                session.idle_timer = None

    def _arm(self, session: ChannelSession) -> None:
        if session.idle_timer is not None:
            session.idle_timer.cancel()
        loop = asyncio.get_running_loop()
        session.idle_timer = loop.call_later(self._idle_timeout, self._on_idle, session.channel_id)

    def _on_idle(self, channel_id: str) -> None:
        session = self._sessions.get(channel_id)
        if session is None:
            return
        if self._is_busy is not None and self._is_busy(channel_id):
            logger.debug("session_idle_deferred", channel_id=channel_id)
            self._arm(session)
            return
        logger.info("session_idle_expired", channel_id=channel_id, idle_seconds=self._idle_timeout)
        self.evict(channel_id)
