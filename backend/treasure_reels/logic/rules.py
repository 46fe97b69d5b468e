"""Static game rules: symbols, paytable, paylines and feature constants.

Rules are validated once when they are built, so a drawn symbol can never be
missing a payout entry or reference an unknown name at play time.
"""

from pydantic import BaseModel, ConfigDict, model_validator

from treasure_reels.config import Settings, settings
from treasure_reels.logic.symbols import DEFAULT_SYMBOLS, Symbol


# Payout multipliers as a fraction of the bet, by consecutive count
DEFAULT_PAYTABLE: dict[str, dict[int, float]] = {
    "COIN": {3: 0.5, 4: 1, 5: 5},
    "RING": {3: 0.75, 4: 1.5, 5: 7.5},
    "GEM": {3: 1, 4: 2.5, 5: 10},
    "CROWN": {3: 1.5, 4: 3.75, 5: 25},
}

# Row index per reel: top, middle, bottom, V, inverted V
DEFAULT_PAYLINES: tuple[tuple[int, ...], ...] = (
    (0, 0, 0, 0, 0),
    (1, 1, 1, 1, 1),
    (2, 2, 2, 2, 2),
    (0, 1, 2, 1, 0),
    (2, 1, 0, 1, 2),
)

MIN_RUN = 3


class GameRules(BaseModel):
    """Validated, immutable rule set consumed by the core."""

    model_config = ConfigDict(frozen=True)

    reels: int = 5
    rows: int = 3
    symbols: tuple[Symbol, ...] = DEFAULT_SYMBOLS
    paytable: dict[str, dict[int, float]] = DEFAULT_PAYTABLE
    paylines: tuple[tuple[int, ...], ...] = DEFAULT_PAYLINES

    bet_levels: tuple[float, ...] = (1, 2, 5, 10, 20, 50, 100)
    autoplay_options: tuple[int, ...] = (10, 25, 50, 100)
    starting_balance: float = 1000.0
    max_win: float = 5000.0
    random_multiplier_max: int = 3

    free_spins_trigger: int = 3
    free_spins_base_count: int = 10
    free_spins_step: int = 5
    free_spins_retrigger: int = 6
    scatter_trigger: int = 3
    chest_prize: float = 50.0

    enable_bonus_buy: bool = True
    bonus_buy_cost_multiplier: int = 100

    spin_duration_ms: int = 1500
    free_spin_extra_delay_ms: int = 1000
    autoplay_extra_delay_ms: int = 500
    bonus_settle_delay_ms: int = 1500

    @model_validator(mode="after")
    def _check_consistency(self) -> "GameRules":
        names = [s.name for s in self.symbols]
        if not names:
            raise ValueError("symbol table is empty")
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate symbol names: {names}")
        if not any(s.is_bonus for s in self.symbols):
            raise ValueError("no bonus symbol configured")

        by_name = {s.name: s for s in self.symbols}
        for name, counts in self.paytable.items():
            symbol = by_name.get(name)
            if symbol is None:
                raise ValueError(f"paytable references unknown symbol {name!r}")
            if symbol.is_bonus or symbol.is_scatter or symbol.value <= 0:
                raise ValueError(f"symbol {name!r} cannot pay on lines")
            for count in counts:
                if not MIN_RUN <= count <= self.reels:
                    raise ValueError(f"paytable count {count} out of range for {name!r}")

        for line in self.paylines:
            if len(line) != self.reels:
                raise ValueError(f"payline {line} does not span {self.reels} reels")
            if any(not 0 <= row < self.rows for row in line):
                raise ValueError(f"payline {line} has a row outside 0..{self.rows - 1}")

        if not self.bet_levels or list(self.bet_levels) != sorted(self.bet_levels):
            raise ValueError("bet ladder must be non-empty and ascending")
        if not self.autoplay_options:
            raise ValueError("autoplay options must be non-empty")
        if self.starting_balance > self.max_win:
            raise ValueError("starting balance exceeds the balance cap")
        return self

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "GameRules":
        """Build rules from the application settings and default tables."""
        cfg = cfg or settings
        return cls(
            reels=cfg.reels,
            rows=cfg.rows,
            bet_levels=tuple(cfg.bet_levels),
            autoplay_options=tuple(cfg.autoplay_options),
            starting_balance=cfg.starting_balance,
            max_win=cfg.max_win,
            random_multiplier_max=cfg.random_multiplier_max,
            free_spins_trigger=cfg.free_spins_trigger,
            free_spins_base_count=cfg.free_spins_base_count,
            free_spins_step=cfg.free_spins_step,
            free_spins_retrigger=cfg.free_spins_retrigger,
            scatter_trigger=cfg.scatter_trigger,
            chest_prize=cfg.chest_prize,
            enable_bonus_buy=cfg.enable_bonus_buy,
            bonus_buy_cost_multiplier=cfg.bonus_buy_cost_multiplier,
            spin_duration_ms=cfg.spin_duration_ms,
            free_spin_extra_delay_ms=cfg.free_spin_extra_delay_ms,
            autoplay_extra_delay_ms=cfg.autoplay_extra_delay_ms,
            bonus_settle_delay_ms=cfg.bonus_settle_delay_ms,
        )

    def symbol(self, name: str) -> Symbol:
        for s in self.symbols:
            if s.name == name:
                return s
        raise KeyError(name)

    @property
    def bonus_symbol(self) -> Symbol:
        return next(s for s in self.symbols if s.is_bonus)

    @property
    def free_spin_delay_ms(self) -> int:
        return self.spin_duration_ms + self.free_spin_extra_delay_ms

    @property
    def autoplay_delay_ms(self) -> int:
        return self.spin_duration_ms + self.autoplay_extra_delay_ms

    def bonus_buy_cost(self, bet: float) -> float:
        return bet * self.bonus_buy_cost_multiplier
