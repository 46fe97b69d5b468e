"""Events the core emits for the presentation layer."""
import logging
from typing import Any, Literal, Protocol, Union

from pydantic import BaseModel, Field

from treasure_reels.logic.models import HistoryEntry, RejectReason, SpinResult, SpinTrigger
from treasure_reels.logic.paytable import LineWin, WinningCell


logger = logging.getLogger(__name__)


class SpinStarted(BaseModel):
    type: Literal["spinStarted"] = "spinStarted"
    trigger: SpinTrigger
    bet: float


class GridSettled(BaseModel):
    type: Literal["gridSettled"] = "gridSettled"
    grid: list[list[str]]


class LineWinsComputed(BaseModel):
    type: Literal["lineWinsComputed"] = "lineWinsComputed"
    total_win: float
    winning_cells: list[WinningCell] = Field(default_factory=list)
    line_wins: list[LineWin] = Field(default_factory=list)


class ChestTriggered(BaseModel):
    type: Literal["chestTriggered"] = "chestTriggered"
    scatter_count: int
    prize: float


class BonusTriggered(BaseModel):
    type: Literal["bonusTriggered"] = "bonusTriggered"
    spins_awarded: int
    is_retrigger: bool


class BonusTransition(BaseModel):
    """Modal prompt; the first bonus spin waits for acknowledgment."""
    type: Literal["bonusTransition"] = "bonusTransition"
    spins_awarded: int
    message: str


class BonusEnded(BaseModel):
    type: Literal["bonusEnded"] = "bonusEnded"
    total_win: float
    summary: str


class BalanceChanged(BaseModel):
    type: Literal["balanceChanged"] = "balanceChanged"
    new_balance: float


class HistoryAppended(BaseModel):
    type: Literal["historyAppended"] = "historyAppended"
    entry: HistoryEntry


class WinDisplayChanged(BaseModel):
    type: Literal["winDisplayChanged"] = "winDisplayChanged"
    amount: float


class FreeSpinsChanged(BaseModel):
    type: Literal["freeSpinsChanged"] = "freeSpinsChanged"
    remaining: int
    multiplier: int


class AutoplayChanged(BaseModel):
    type: Literal["autoplayChanged"] = "autoplayChanged"
    active: bool
    remaining: int


class SpinRejected(BaseModel):
    type: Literal["spinRejected"] = "spinRejected"
    trigger: SpinTrigger | None = None
    reason: RejectReason
    message: str


class SpinSettled(BaseModel):
    """Last event of every accepted spin, whatever triggered it."""
    type: Literal["spinSettled"] = "spinSettled"
    result: SpinResult
    balance: float
    free_spins: int


GameEvent = Union[
    SpinStarted,
    GridSettled,
    LineWinsComputed,
    ChestTriggered,
    BonusTriggered,
    BonusTransition,
    BonusEnded,
    BalanceChanged,
    HistoryAppended,
    WinDisplayChanged,
    FreeSpinsChanged,
    AutoplayChanged,
    SpinRejected,
    SpinSettled,
]


class EventSink(Protocol):
    """Protocol for consumers of game events."""

    def emit(self, event: GameEvent) -> None:
        """Receive one event."""
        ...


class NullSink:
    """Sink that discards everything."""

    def emit(self, event: GameEvent) -> None:
        pass


class MultiSink:
    """Fans each event out to several sinks, in order."""

    def __init__(self, *sinks: EventSink):
        self.sinks = sinks

    def emit(self, event: GameEvent) -> None:
        for sink in self.sinks:
            sink.emit(event)


class EventLog:
    """
    In-memory, sequence-numbered event sink.

    The presentation adapter polls it with a cursor: `since(n)` returns the
    events with sequence number greater than n.
    """

    def __init__(self, limit: int = 1000):
        self._events: list[tuple[int, GameEvent]] = []
        self._seq = 0
        self._limit = limit

    def emit(self, event: GameEvent) -> None:
        self._seq += 1
        self._events.append((self._seq, event))
        if len(self._events) > self._limit:
            del self._events[: len(self._events) - self._limit]
        logger.debug("event #%d %s", self._seq, event.type)

    @property
    def cursor(self) -> int:
        return self._seq

    @property
    def events(self) -> list[GameEvent]:
        return [event for _, event in self._events]

    def since(self, cursor: int = 0) -> list[GameEvent]:
        return [event for seq, event in self._events if seq > cursor]

    def of_type(self, event_type: type[BaseModel]) -> list[Any]:
        return [event for _, event in self._events if isinstance(event, event_type)]

    def clear(self) -> None:
        self._events.clear()
