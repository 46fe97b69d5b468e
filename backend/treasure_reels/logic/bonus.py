"""Scatter (chest) and bonus (free spins) trigger detection."""
import logging
from collections.abc import Sequence

from pydantic import BaseModel

from treasure_reels.logic.models import GameState
from treasure_reels.logic.rules import GameRules
from treasure_reels.logic.symbols import Symbol


logger = logging.getLogger(__name__)

VISIBLE_ROWS = 3


class SpecialCounts(BaseModel):
    """Scatter and bonus symbol counts across the visible grid."""

    scatters: int = 0
    bonuses: int = 0


class BonusOutcome(BaseModel):
    """What the trigger logic did to the game state."""

    chest_prize: float = 0.0
    spins_awarded: int = 0
    is_retrigger: bool = False
    started_run: bool = False

    @property
    def bonus_triggered(self) -> bool:
        return self.spins_awarded > 0


def count_specials(
    grid: Sequence[Sequence[Symbol]], visible_rows: int = VISIBLE_ROWS
) -> SpecialCounts:
    """Count scatters and bonus symbols in rows 0..visible_rows-1 of each reel."""
    counts = SpecialCounts()
    for reel in grid:
        for symbol in reel[:visible_rows]:
            if symbol.is_scatter:
                counts.scatters += 1
            if symbol.is_bonus:
                counts.bonuses += 1
    return counts


def chest_prize(scatter_count: int, rules: GameRules) -> float:
    if scatter_count < rules.scatter_trigger:
        return 0.0
    return rules.chest_prize * scatter_count


def free_spins_award(bonus_count: int, rules: GameRules) -> int:
    if bonus_count < rules.free_spins_trigger:
        return 0
    return rules.free_spins_base_count + rules.free_spins_step * (
        bonus_count - rules.free_spins_trigger
    )


def resolve_bonus(
    state: GameState, counts: SpecialCounts, rules: GameRules
) -> BonusOutcome:
    """
    Apply chest and free-spin triggers for a settled grid.

    The chest prize goes straight to the balance. A bonus trigger outside
    free spins starts a new run scaled by symbol count and resets the run
    counters; inside free spins it adds a flat retrigger award.
    """
    outcome = BonusOutcome()

    prize = chest_prize(counts.scatters, rules)
    if prize > 0:
        state.update_balance(prize, rules.max_win)
        outcome.chest_prize = prize
        logger.info("Chest triggered: scatters=%d prize=%.2f", counts.scatters, prize)

    if counts.bonuses >= rules.free_spins_trigger:
        if state.free_spins == 0:
            award = free_spins_award(counts.bonuses, rules)
            state.free_spins += award
            state.current_free_spin = 0
            state.spin_multiplier = 1
            outcome.spins_awarded = award
            outcome.started_run = True
            logger.info("Free spins triggered: bonus_symbols=%d spins=%d", counts.bonuses, award)
        else:
            state.free_spins += rules.free_spins_retrigger
            outcome.spins_awarded = rules.free_spins_retrigger
            outcome.is_retrigger = True
            logger.info(
                "Free spins retriggered: +%d, remaining=%d",
                rules.free_spins_retrigger,
                state.free_spins,
            )

    return outcome
