"""Server-side telemetry."""
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from treasure_reels.logic.events import GameEvent, SpinRejected, SpinSettled


logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    """Protocol for telemetry sinks."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Emit a telemetry event."""
        ...


class LoggingTelemetrySink:
    """Default sink that logs telemetry events."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        logger.info("TELEMETRY %s: %s", event_name, data)


@dataclass
class SessionStartedEvent:
    """session_started: first request seen for a player."""

    player_id: str
    balance: float
    config_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "balance": self.balance,
            "config_hash": self.config_hash,
        }


@dataclass
class SpinProcessedEvent:
    """spin_processed: a spin the core accepted and settled."""

    player_id: str
    trigger: str  # MANUAL | BONUS_BUY | FIRST_BONUS_SPIN | ...
    bet: float
    line_win: float
    chest_prize: float
    balance: float
    free_spins_remaining: int
    config_hash: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "trigger": self.trigger,
            "bet": self.bet,
            "line_win": self.line_win,
            "chest_prize": self.chest_prize,
            "balance": self.balance,
            "free_spins_remaining": self.free_spins_remaining,
            "config_hash": self.config_hash,
        }


@dataclass
class SpinRejectedEvent:
    """spin_rejected: a trigger the core refused."""

    player_id: str
    trigger: str | None
    reason: str  # ROUND_IN_PROGRESS | BONUS_IN_PROGRESS | INSUFFICIENT_FUNDS | ...

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "trigger": self.trigger,
            "reason": self.reason,
        }


class TelemetryService:
    """Service for emitting server telemetry events."""

    def __init__(self, sink: TelemetrySink | None = None):
        self._sink = sink or LoggingTelemetrySink()
        self._sink_errors = 0

    def set_sink(self, sink: TelemetrySink) -> None:
        """Set the telemetry sink (useful for testing)."""
        self._sink = sink

    @property
    def sink_errors(self) -> int:
        return self._sink_errors

    def _safe_emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Sink failures must never break a request."""
        try:
            self._sink.emit(event_name, data)
        except Exception as e:
            self._sink_errors += 1
            logger.warning(
                "Telemetry sink error (count=%d): %s - %s",
                self._sink_errors,
                event_name,
                str(e),
            )

    def emit_session_started(self, event: SessionStartedEvent) -> None:
        self._safe_emit("session_started", event.to_dict())

    def emit_spin_processed(self, event: SpinProcessedEvent) -> None:
        self._safe_emit("spin_processed", event.to_dict())

    def emit_spin_rejected(self, event: SpinRejectedEvent) -> None:
        self._safe_emit("spin_rejected", event.to_dict())


# Global instance
telemetry_service = TelemetryService()


class SessionTelemetrySink:
    """
    Game event sink that reports one player's spins.

    Listens on the orchestrator's event stream, so spins fired later by the
    scheduler (free spins, autoplay chains) are reported the same way as the
    spin a request started directly.
    """

    def __init__(self, player_id: str, config_hash: str, service: TelemetryService | None = None):
        self.player_id = player_id
        self.config_hash = config_hash
        self._service = service or telemetry_service

    def emit(self, event: GameEvent) -> None:
        if isinstance(event, SpinSettled):
            spin = event.result
            self._service.emit_spin_processed(
                SpinProcessedEvent(
                    player_id=self.player_id,
                    trigger=spin.trigger.value,
                    bet=spin.bet,
                    line_win=spin.line_win,
                    chest_prize=spin.chest_prize,
                    balance=event.balance,
                    free_spins_remaining=event.free_spins,
                    config_hash=self.config_hash,
                )
            )
        elif isinstance(event, SpinRejected):
            self._service.emit_spin_rejected(
                SpinRejectedEvent(
                    player_id=self.player_id,
                    trigger=event.trigger.value if event.trigger else None,
                    reason=event.reason.value,
                )
            )
