"""HTTP request and response models for the presentation client."""
from typing import Any

from pydantic import BaseModel, Field

from treasure_reels.config import settings
from treasure_reels.logic.models import BonusBuyQuote, SpinResult, StateSnapshot
from treasure_reels.logic.rules import GameRules


# === Request Models ===


class BetRequest(BaseModel):
    """POST /bet: either an absolute ladder amount or a step along the ladder."""

    amount: float | None = None
    step: int | None = Field(default=None, description="+1 up the ladder, -1 down")


class AutoplayRequest(BaseModel):
    """POST /autoplay."""

    count: int | None = Field(default=None, description="Must be one of autoplayOptions")


# === Response Models ===


class SymbolInfo(BaseModel):
    name: str
    value: int
    weight: int
    isBonus: bool
    isScatter: bool
    color: int
    asset: str | None = None


class Configuration(BaseModel):
    """Static configuration object in /init."""

    currency: str = "USD"
    reels: int
    rows: int
    betLevels: list[float]
    autoplayOptions: list[int]
    paytable: dict[str, dict[int, float]]
    paylines: list[list[int]]
    symbols: list[SymbolInfo]
    chestPrize: float
    maxWin: float
    enableBonusBuy: bool
    bonusBuyCostMultiplier: int
    spinDurationMs: int

    @classmethod
    def from_rules(cls, rules: GameRules) -> "Configuration":
        return cls(
            reels=rules.reels,
            rows=rules.rows,
            betLevels=list(rules.bet_levels),
            autoplayOptions=list(rules.autoplay_options),
            paytable=rules.paytable,
            paylines=[list(line) for line in rules.paylines],
            symbols=[
                SymbolInfo(
                    name=s.name,
                    value=s.value,
                    weight=s.weight,
                    isBonus=s.is_bonus,
                    isScatter=s.is_scatter,
                    color=s.color,
                    asset=s.asset,
                )
                for s in rules.symbols
            ],
            chestPrize=rules.chest_prize,
            maxWin=rules.max_win,
            enableBonusBuy=rules.enable_bonus_buy,
            bonusBuyCostMultiplier=rules.bonus_buy_cost_multiplier,
            spinDurationMs=rules.spin_duration_ms,
        )


class InitResponse(BaseModel):
    """GET /init."""

    protocolVersion: str = settings.protocol_version
    configuration: Configuration
    state: StateSnapshot
    cursor: int = 0


class ActionResponse(BaseModel):
    """Response to any accepted action, with the events it produced."""

    protocolVersion: str = settings.protocol_version
    message: str = ""
    spin: SpinResult | None = None
    quote: BonusBuyQuote | None = None
    state: StateSnapshot
    events: list[dict[str, Any]] = Field(default_factory=list)
    cursor: int = 0


class StateResponse(BaseModel):
    """GET /state: snapshot plus the events after the client's cursor."""

    protocolVersion: str = settings.protocol_version
    state: StateSnapshot
    events: list[dict[str, Any]] = Field(default_factory=list)
    cursor: int = 0
