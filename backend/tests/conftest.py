"""Pytest fixtures for backend tests."""
from collections.abc import Sequence
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from treasure_reels.logic.engine import SpinOrchestrator
from treasure_reels.logic.events import EventLog
from treasure_reels.logic.rng import RNGBase, SeededRNG
from treasure_reels.logic.rules import GameRules
from treasure_reels.logic.symbols import Symbol
from treasure_reels.main import app
from treasure_reels.sessions import session_registry


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (long statistical runs)"
    )


# Grids are written row-major here (top, middle, bottom) for readability and
# converted to the column-major grid[reel][row] layout the core uses.

# No paying run, fewer than three scatters and fewer than three bonus symbols.
DEAD_ROWS = [
    ["COIN", "RING", "COIN", "COIN", "RING"],
    ["RING", "GEM", "RING", "RING", "GEM"],
    ["GEM", "COIN", "GEM", "GEM", "COIN"],
]

# Three MAP on the middle row, nothing else pays.
BONUS_ROWS = [
    ["COIN", "RING", "COIN", "COIN", "RING"],
    ["MAP", "GEM", "MAP", "RING", "MAP"],
    ["GEM", "COIN", "GEM", "GEM", "COIN"],
]

# Three CHEST on the middle row, nothing else pays.
CHEST_ROWS = [
    ["COIN", "RING", "COIN", "COIN", "RING"],
    ["RING", "CHEST", "CHEST", "CHEST", "GEM"],
    ["GEM", "COIN", "GEM", "GEM", "COIN"],
]

# Top row COIN COIN COIN RING GEM: exactly one 3-COIN line.
COIN3_ROWS = [
    ["COIN", "COIN", "COIN", "RING", "GEM"],
    ["RING", "GEM", "RING", "COIN", "RING"],
    ["GEM", "RING", "GEM", "GEM", "COIN"],
]


def to_columns(rows: Sequence[Sequence[str]]) -> list[list[str]]:
    """Row-major names to column-major names."""
    return [list(column) for column in zip(*rows)]


def make_grid(rows: Sequence[Sequence[str]], rules: GameRules | None = None) -> list[list[Symbol]]:
    """Row-major names to a column-major Symbol grid."""
    rules = rules or GameRules()
    return [[rules.symbol(name) for name in column] for column in to_columns(rows)]


def band_midpoint(name: str, symbols: Sequence[Symbol]) -> float:
    """A uniform value in [0, 1) that draw_symbol maps to `name`."""
    total = sum(s.weight for s in symbols)
    start = 0
    for s in symbols:
        if s.name == name:
            return (start + s.weight / 2) / total
        start += s.weight
    raise KeyError(name)


class ScriptedRNG(RNGBase):
    """
    RNG that lays out chosen grids.

    Each queued grid (row-major names) is drawn in the order draw_grid asks
    for cells. Once the queue is empty every spin draws DEAD_ROWS. randint()
    pops queued line multipliers and otherwise returns the low bound.
    """

    def __init__(
        self,
        grids: Sequence[Sequence[Sequence[str]]] = (),
        multipliers: Sequence[int] = (),
        symbols: Sequence[Symbol] | None = None,
    ):
        self.symbols = tuple(symbols or GameRules().symbols)
        self._values: list[float] = []
        for rows in grids:
            self.queue_grid(rows)
        self._multipliers = list(multipliers)
        self.randint_calls: list[tuple[int, int]] = []

    def queue_grid(self, rows: Sequence[Sequence[str]]) -> None:
        for column in to_columns(rows):
            for name in column:
                self._values.append(band_midpoint(name, self.symbols))

    def random(self) -> float:
        if not self._values:
            self.queue_grid(DEAD_ROWS)
        return self._values.pop(0)

    def randint(self, a: int, b: int) -> int:
        self.randint_calls.append((a, b))
        if self._multipliers:
            return self._multipliers.pop(0)
        return a


@pytest.fixture
def rules() -> GameRules:
    return GameRules()


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def make_orchestrator(rules: GameRules, event_log: EventLog):
    """Factory for an orchestrator wired to a scripted RNG and the shared event log."""

    def factory(grids=(), multipliers=(), **kwargs) -> SpinOrchestrator:
        rng = kwargs.pop("rng", None) or ScriptedRNG(grids, multipliers)
        return SpinOrchestrator(
            rules=kwargs.pop("rules", rules), rng=rng, sink=event_log, **kwargs
        )

    return factory


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def client(fake_clock: FakeClock) -> Generator[TestClient, None, None]:
    """TestClient over a fresh session registry with a fake clock and seeded RNG."""
    saved_clock = session_registry.clock
    saved_factory = session_registry.rng_factory
    session_registry.clear()
    session_registry.clock = fake_clock
    session_registry.rng_factory = lambda: SeededRNG(seed=1234)

    with TestClient(app) as test_client:
        yield test_client

    session_registry.clear()
    session_registry.clock = saved_clock
    session_registry.rng_factory = saved_factory


@pytest.fixture
def scripted_client(client: TestClient) -> Generator[tuple[TestClient, list], None, None]:
    """Client whose new sessions draw from ScriptedRNGs queued by the test."""
    queued: list[ScriptedRNG] = []
    session_registry.rng_factory = lambda: queued.pop(0) if queued else ScriptedRNG()
    yield client, queued
