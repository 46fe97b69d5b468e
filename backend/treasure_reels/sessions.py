"""In-memory game sessions, one per player id.

Nothing is persisted across restarts. Each session owns an orchestrator
whose scheduler follows a monotonic wall clock: every request first catches
the scheduler up to "now", so free-spin and autoplay continuations fire as
the client polls. Sessions idle for longer than the configured TTL are
dropped, and the registry never holds more than `max_sessions` players.
"""
import logging
import time
from collections import OrderedDict
from collections.abc import Callable

from treasure_reels.config import settings
from treasure_reels.config_hash import get_config_hash
from treasure_reels.logic.engine import SpinOrchestrator
from treasure_reels.logic.events import EventLog, MultiSink
from treasure_reels.logic.rng import RNGBase
from treasure_reels.logic.rules import GameRules
from treasure_reels.logic.scheduler import EventQueue
from treasure_reels.telemetry import SessionTelemetrySink


logger = logging.getLogger(__name__)


class GameSession:
    """One player's game: state, orchestrator, scheduler and event log."""

    def __init__(
        self,
        player_id: str,
        rules: GameRules,
        clock: Callable[[], float],
        rng: RNGBase | None = None,
    ):
        self.player_id = player_id
        self._clock = clock
        self._origin = clock()
        self.last_seen = self._origin
        self.events = EventLog()
        self.queue = EventQueue()
        self.orchestrator = SpinOrchestrator(
            rules=rules,
            rng=rng,
            queue=self.queue,
            sink=MultiSink(self.events, SessionTelemetrySink(player_id, get_config_hash(rules))),
        )

    @property
    def elapsed_ms(self) -> int:
        return int((self._clock() - self._origin) * 1000)

    def sync(self) -> int:
        """Fire every continuation that has come due since the last request."""
        self.last_seen = self._clock()
        fired = self.queue.advance_to(self.elapsed_ms)
        if fired:
            logger.debug("Session %s fired %d deferred tasks", self.player_id, fired)
        return fired


class SessionRegistry:
    """Creates sessions on first sight of a player id and drops idle ones."""

    def __init__(
        self,
        rules: GameRules | None = None,
        clock: Callable[[], float] = time.monotonic,
        rng_factory: Callable[[], RNGBase | None] = lambda: None,
        ttl_seconds: float | None = None,
        max_sessions: int | None = None,
    ):
        self.rules = rules or GameRules.from_settings()
        self.clock = clock
        self.rng_factory = rng_factory
        self.ttl_seconds = settings.session_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.max_sessions = settings.max_sessions if max_sessions is None else max_sessions
        # Least recently seen first
        self._sessions: OrderedDict[str, GameSession] = OrderedDict()

    def evict_idle(self) -> int:
        """Drop every session not seen within the TTL. Returns how many went."""
        cutoff = self.clock() - self.ttl_seconds
        evicted = 0
        while self._sessions:
            player_id, session = next(iter(self._sessions.items()))
            if session.last_seen > cutoff:
                break
            del self._sessions[player_id]
            evicted += 1
            logger.info("Session expired for player %s", player_id)
        return evicted

    def get(self, player_id: str) -> GameSession:
        self.evict_idle()
        session = self._sessions.get(player_id)
        if session is None:
            while len(self._sessions) >= self.max_sessions:
                dropped, _ = self._sessions.popitem(last=False)
                logger.warning("Session limit reached, dropping player %s", dropped)
            session = GameSession(player_id, self.rules, self.clock, self.rng_factory())
            self._sessions[player_id] = session
            logger.info("Session created for player %s", player_id)
        else:
            self._sessions.move_to_end(player_id)
        session.sync()
        return session

    def __contains__(self, player_id: str) -> bool:
        session = self._sessions.get(player_id)
        return session is not None and session.last_seen > self.clock() - self.ttl_seconds

    def __len__(self) -> int:
        return len(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()


# Global instance
session_registry = SessionRegistry()
