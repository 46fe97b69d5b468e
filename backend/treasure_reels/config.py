"""Application configuration for Treasure Reels, overridable from environment."""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Game and server settings with the shipped defaults."""

    model_config = ConfigDict(env_prefix="TREASURE_")

    # Server
    debug: bool = False

    # Sessions
    session_ttl_seconds: int = 86400  # idle sessions are dropped after this
    max_sessions: int = 10000

    # Protocol
    protocol_version: str = "1.0"

    # Grid
    reels: int = 5
    rows: int = 3

    # Wallet
    starting_balance: float = 1000.0
    max_win: float = 5000.0  # balance cap, saturating
    bet_levels: list[float] = [1, 2, 5, 10, 20, 50, 100]
    autoplay_options: list[int] = [10, 25, 50, 100]

    # Line wins
    random_multiplier_max: int = 3  # base-game line wins draw 1..N
    rtp_target: float = 0.96

    # Free spins
    free_spins_trigger: int = 3
    free_spins_base_count: int = 10
    free_spins_step: int = 5  # extra spins per bonus symbol beyond the trigger
    free_spins_retrigger: int = 6

    # Scatter
    scatter_trigger: int = 3
    chest_prize: float = 50.0

    # Bonus buy
    enable_bonus_buy: bool = True
    bonus_buy_cost_multiplier: int = 100

    # Timing (milliseconds)
    spin_duration_ms: int = 1500
    free_spin_extra_delay_ms: int = 1000
    autoplay_extra_delay_ms: int = 500
    bonus_settle_delay_ms: int = 1500

    # History export
    history_filename: str = "game_history.json"


settings = Settings()
