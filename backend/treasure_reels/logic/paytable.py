"""Payline evaluation for a settled grid."""
from collections.abc import Sequence

from pydantic import BaseModel, Field

from treasure_reels.logic.rng import RNGBase
from treasure_reels.logic.rules import MIN_RUN, GameRules
from treasure_reels.logic.symbols import Symbol


class WinningCell(BaseModel):
    """Grid position that took part in a winning line."""

    reel: int
    row: int


class LineWin(BaseModel):
    """A single paying line."""

    line_id: int
    symbol: str
    count: int
    multiplier: float
    random_multiplier: int
    amount: float


class LineEvaluation(BaseModel):
    """Result of scoring every payline on a grid."""

    total_win: float = 0.0
    winning_cells: list[WinningCell] = Field(default_factory=list)
    line_wins: list[LineWin] = Field(default_factory=list)


def read_line(
    grid: Sequence[Sequence[Symbol]], line: Sequence[int]
) -> list[Symbol] | None:
    """Symbols along a payline, or None if any cell is missing."""
    symbols: list[Symbol] = []
    for reel_idx, row in enumerate(line):
        if reel_idx >= len(grid) or row >= len(grid[reel_idx]):
            return None
        symbols.append(grid[reel_idx][row])
    return symbols


def left_run(symbols: Sequence[Symbol]) -> int:
    """Count of symbols matching the first one, contiguous from reel 0."""
    first = symbols[0]
    count = 1
    for symbol in symbols[1:]:
        if symbol.name != first.name:
            break
        count += 1
    return count


def evaluate_lines(
    grid: Sequence[Sequence[Symbol]],
    bet: float,
    spin_multiplier: int,
    in_free_spins: bool,
    rules: GameRules,
    rng: RNGBase,
) -> LineEvaluation:
    """
    Score every payline independently and sum the wins.

    A line pays when its left-anchored run is at least three long and the
    run symbol has a positive value and a paytable entry for that count.
    Outside free spins each winning line draws its own random multiplier in
    1..random_multiplier_max; during free spins it is always 1.
    """
    result = LineEvaluation()

    for line_id, line in enumerate(rules.paylines):
        symbols = read_line(grid, line)
        if symbols is None or len(symbols) != rules.reels:
            continue

        count = left_run(symbols)
        first = symbols[0]
        pays = rules.paytable.get(first.name)
        if count < MIN_RUN or first.value <= 0 or not pays or count not in pays:
            continue

        multiplier = pays[count]
        random_multiplier = (
            1 if in_free_spins else rng.line_multiplier(rules.random_multiplier_max)
        )
        amount = multiplier * bet * spin_multiplier * random_multiplier

        result.total_win += amount
        result.line_wins.append(
            LineWin(
                line_id=line_id,
                symbol=first.name,
                count=count,
                multiplier=multiplier,
                random_multiplier=random_multiplier,
                amount=amount,
            )
        )
        for reel_idx in range(count):
            result.winning_cells.append(WinningCell(reel=reel_idx, row=line[reel_idx]))

    return result
