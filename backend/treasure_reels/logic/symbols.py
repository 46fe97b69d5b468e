"""Reel symbols and weighted symbol draws."""
from collections.abc import Iterator, Sequence

from pydantic import BaseModel, ConfigDict, Field

from treasure_reels.logic.rng import RNGBase


class Symbol(BaseModel):
    """
    Immutable reel symbol.

    `value` is the base payout weight (0 for non-paying symbols) and `weight`
    the relative draw probability. `color` and `asset` are presentation hints
    only; payouts never depend on them, and a symbol without an asset still
    plays normally.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    value: int = Field(ge=0)
    weight: int = Field(gt=0)
    is_bonus: bool = False
    is_scatter: bool = False
    color: int = 0xFFFFFF
    asset: str | None = None


DEFAULT_SYMBOLS: tuple[Symbol, ...] = (
    Symbol(name="COIN", value=10, weight=40, color=0xFFD700, asset="coin"),
    Symbol(name="RING", value=15, weight=30, color=0xE5E4E2, asset="ring"),
    Symbol(name="GEM", value=20, weight=20, color=0x00FFAA, asset="gem"),
    Symbol(name="MAP", value=0, weight=5, is_bonus=True, color=0x8B4513, asset="map"),
    Symbol(name="CHEST", value=0, weight=3, is_scatter=True, color=0xCD7F32, asset="chest"),
    Symbol(name="CROWN", value=30, weight=10, color=0xFFAA00, asset="crown"),
)

Grid = list[list[Symbol]]


def total_weight(symbols: Sequence[Symbol]) -> int:
    return sum(s.weight for s in symbols)


def draw_symbol(symbols: Sequence[Symbol], rng: RNGBase) -> Symbol:
    """
    Draw one symbol with probability weight / total weight.

    Walks the table subtracting weights until the cursor falls inside a
    symbol's band. Falls back to the first symbol if float drift leaves the
    cursor unmatched.
    """
    cursor = rng.weight_cursor(total_weight(symbols))
    for symbol in symbols:
        if cursor < symbol.weight:
            return symbol
        cursor -= symbol.weight
    return symbols[0]


def symbol_stream(symbols: Sequence[Symbol], rng: RNGBase) -> Iterator[Symbol]:
    """Infinite lazy sequence of independent draws."""
    while True:
        yield draw_symbol(symbols, rng)


def draw_grid(
    symbols: Sequence[Symbol], rng: RNGBase, reels: int, rows: int
) -> Grid:
    """Draw a column-major grid, indexed grid[reel][row]."""
    stream = symbol_stream(symbols, rng)
    return [[next(stream) for _ in range(rows)] for _ in range(reels)]


def grid_names(grid: Grid) -> list[list[str]]:
    """Symbol names of a grid, same shape."""
    return [[symbol.name for symbol in reel] for reel in grid]
