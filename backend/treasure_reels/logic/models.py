"""Game state models for the spin/payout core."""
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SpinTrigger(str, Enum):
    """What caused a spin."""
    MANUAL = "MANUAL"
    AUTOPLAY_CHAIN = "AUTOPLAY_CHAIN"
    FREE_SPIN_CONTINUATION = "FREE_SPIN_CONTINUATION"
    BONUS_BUY = "BONUS_BUY"
    FIRST_BONUS_SPIN = "FIRST_BONUS_SPIN"


class Phase(str, Enum):
    """Orchestrator state."""
    IDLE = "IDLE"
    SPINNING = "SPINNING"
    FREE_SPIN_PENDING = "FREE_SPIN_PENDING"
    AUTOPLAY_PENDING = "AUTOPLAY_PENDING"
    BONUS_TRANSITION = "BONUS_TRANSITION"


class RejectReason(str, Enum):
    """Why a trigger was refused. Values line up with the HTTP error codes."""
    ROUND_IN_PROGRESS = "ROUND_IN_PROGRESS"
    BONUS_IN_PROGRESS = "BONUS_IN_PROGRESS"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    NOTHING_TO_CONFIRM = "NOTHING_TO_CONFIRM"
    NOTHING_TO_ACKNOWLEDGE = "NOTHING_TO_ACKNOWLEDGE"
    INVALID_BET = "INVALID_BET"
    INVALID_REQUEST = "INVALID_REQUEST"
    FEATURE_DISABLED = "FEATURE_DISABLED"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HistoryEntry(BaseModel):
    """One spin in the game history; `win` holds the line win only."""
    bet: float
    win: float = 0.0
    timestamp: datetime = Field(default_factory=utc_now)


class StateSnapshot(BaseModel):
    """Read-only copy of the game state handed to the presentation layer."""

    model_config = ConfigDict(frozen=True)

    balance: float
    current_bet: float
    is_spinning: bool
    is_autoplay: bool
    autoplay_count: int
    free_spins: int
    current_free_spin: int
    spin_multiplier: int
    bonus_total_win: float
    displayed_win: float
    history_length: int
    phase: Phase = Phase.IDLE


class GameState(BaseModel):
    """
    The single mutable game record.

    Tracks:
    - balance, clamped to [0, max_win] after every update
    - current bet (one of the bet ladder)
    - spinning and autoplay flags
    - free spins remaining and the current free spin, which doubles as the
      bonus multiplier
    - the running bonus win and the value on the win display
    - the append-only spin history
    """
    balance: float = 1000.0
    current_bet: float = 1.0
    is_spinning: bool = False

    # Autoplay
    is_autoplay: bool = False
    autoplay_count: int = 0

    # Free spins
    free_spins: int = 0
    current_free_spin: int = 0
    spin_multiplier: int = 1
    bonus_total_win: float = 0.0

    displayed_win: float = 0.0
    game_history: list[HistoryEntry] = Field(default_factory=list)

    @property
    def in_free_spins(self) -> bool:
        return self.free_spins > 0

    @property
    def bonus_unsettled(self) -> bool:
        """A bonus run is live or has ended but not yet been paid out."""
        return self.free_spins > 0 or self.current_free_spin > 0

    def update_balance(self, amount: float, max_win: float) -> float:
        """Apply a credit (or debit, if negative) and saturate to [0, max_win]."""
        self.balance = clamp_balance(self.balance + amount, max_win)
        return self.balance

    def snapshot(self, phase: Phase = Phase.IDLE) -> StateSnapshot:
        return StateSnapshot(
            balance=self.balance,
            current_bet=self.current_bet,
            is_spinning=self.is_spinning,
            is_autoplay=self.is_autoplay,
            autoplay_count=self.autoplay_count,
            free_spins=self.free_spins,
            current_free_spin=self.current_free_spin,
            spin_multiplier=self.spin_multiplier,
            bonus_total_win=self.bonus_total_win,
            displayed_win=self.displayed_win,
            history_length=len(self.game_history),
            phase=phase,
        )


def clamp_balance(value: float, max_win: float) -> float:
    if value > max_win:
        return max_win
    if value < 0:
        return 0.0
    return value


class SpinResult(BaseModel):
    """Everything one resolved spin produced."""
    trigger: SpinTrigger
    bet: float
    grid: list[list[str]] = Field(default_factory=list)
    line_win: float = 0.0
    chest_prize: float = 0.0
    scatter_count: int = 0
    bonus_count: int = 0
    spins_awarded: int = 0
    is_retrigger: bool = False
    bonus_ended: bool = False


class TriggerResult(BaseModel):
    """Outcome of asking the orchestrator to do something."""
    accepted: bool
    trigger: SpinTrigger | None = None
    reason: RejectReason | None = None
    message: str = ""
    result: SpinResult | None = None

    @classmethod
    def ok(
        cls,
        trigger: SpinTrigger | None = None,
        message: str = "",
        result: SpinResult | None = None,
    ) -> "TriggerResult":
        return cls(accepted=True, trigger=trigger, message=message, result=result)

    @classmethod
    def rejected(
        cls, reason: RejectReason, message: str, trigger: SpinTrigger | None = None
    ) -> "TriggerResult":
        return cls(accepted=False, trigger=trigger, reason=reason, message=message)


class BonusBuyQuote(BaseModel):
    """Pending bonus-buy offer awaiting confirmation."""
    bet: float
    cost: float
