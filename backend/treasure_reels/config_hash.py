"""Stable hash of the game rules.

Shared by:
- audit_sim.py (CSV audit rows)
- telemetry.py (spin_processed events)

Both must hash identically, so the snapshot is canonical JSON.
"""
import hashlib
import json

from treasure_reels.logic.rules import GameRules


def get_config_hash(rules: GameRules | None = None) -> str:
    """Return a 16-char hex hash of the rules that affect payouts."""
    rules = rules or GameRules.from_settings()
    config_snapshot = {
        "symbols": [
            [s.name, s.value, s.weight, s.is_bonus, s.is_scatter] for s in rules.symbols
        ],
        "paytable": {
            name: {str(count): mult for count, mult in counts.items()}
            for name, counts in rules.paytable.items()
        },
        "paylines": [list(line) for line in rules.paylines],
        "bet_levels": list(rules.bet_levels),
        "max_win": rules.max_win,
        "random_multiplier_max": rules.random_multiplier_max,
        "free_spins": [
            rules.free_spins_trigger,
            rules.free_spins_base_count,
            rules.free_spins_step,
            rules.free_spins_retrigger,
        ],
        "chest": [rules.scatter_trigger, rules.chest_prize],
        "bonus_buy_cost_multiplier": rules.bonus_buy_cost_multiplier,
    }
    canonical = json.dumps(config_snapshot, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]
