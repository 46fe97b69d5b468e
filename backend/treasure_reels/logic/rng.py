"""Uniform random sources for symbol draws and line multipliers."""
import logging
import random
import secrets
from abc import ABC, abstractmethod


logger = logging.getLogger(__name__)


class RNGBase(ABC):
    """
    Uniform source consumed by the reel and payout logic.

    Subclasses supply `random()` and `randint()`; the game-facing helpers
    below are built on those two, so scripted sources in tests only need to
    override the primitives.
    """

    @abstractmethod
    def random(self) -> float:
        """Return random float in [0, 1)."""

    @abstractmethod
    def randint(self, a: int, b: int) -> int:
        """Return random int in [a, b] inclusive."""

    def weight_cursor(self, total_weight: float) -> float:
        """Position in [0, total_weight) used to pick a symbol band."""
        return self.random() * total_weight

    def line_multiplier(self, high: int) -> int:
        """Draw a winning line's random multiplier, 1..high inclusive."""
        if high < 1:
            raise ValueError(f"line multiplier ceiling must be >= 1, got {high}")
        return self.randint(1, high)


class ProductionRNG(RNGBase):
    """Live-play RNG backed by the operating system's secure source."""

    def __init__(self):
        self._rng = secrets.SystemRandom()

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)


class SeededRNG(RNGBase):
    """
    Simulation RNG.

    Deterministic for a given seed. The seed is logged so an audit run
    can be replayed.
    """

    def __init__(self, seed: int):
        self._rng = random.Random(seed)
        self.seed = seed
        logger.debug("SeededRNG created with seed=%s", seed)

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)
