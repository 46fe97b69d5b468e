#!/usr/bin/env python3
"""
Headless RTP audit simulation.

Drives the real spin orchestrator with a seeded RNG and a virtual clock,
acknowledging bonus prompts and draining every continuation, and writes a
one-row CSV summary.

Usage:
    python -m scripts.audit_sim --mode base --rounds 100000 --seed AUDIT_2026 --out out/audit_base.csv
    python -m scripts.audit_sim --mode buy --rounds 5000 --seed AUDIT_2026 --out out/audit_buy.csv
"""
import argparse
import csv
import hashlib
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from treasure_reels.config import settings
from treasure_reels.config_hash import get_config_hash
from treasure_reels.logic.engine import SpinOrchestrator
from treasure_reels.logic.events import BonusTriggered, ChestTriggered, GameEvent
from treasure_reels.logic.models import Phase
from treasure_reels.logic.rng import SeededRNG
from treasure_reels.logic.rules import GameRules


# Simulated wallet large enough that the balance cap never bites
SIM_BALANCE = 1e12


@dataclass
class SimulationStats:
    """Statistics accumulated during simulation."""
    total_wagered: float = 0.0
    total_won: float = 0.0
    rounds: int = 0
    wins: int = 0
    bonus_entries: int = 0
    retriggers: int = 0
    chest_hits: int = 0
    win_x_values: list[float] = field(default_factory=list)
    max_win_x_observed: float = 0.0
    debit_multiplier: float = 1.0  # 1x for base, cost multiplier for buy


class AuditSink:
    """Counts the feature events the audit reports on."""

    def __init__(self, stats: SimulationStats):
        self.stats = stats

    def emit(self, event: GameEvent) -> None:
        if isinstance(event, BonusTriggered):
            if event.is_retrigger:
                self.stats.retriggers += 1
            else:
                self.stats.bonus_entries += 1
        elif isinstance(event, ChestTriggered):
            self.stats.chest_hits += 1


def get_timestamp_iso() -> str:
    """Get ISO 8601 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def seed_to_int(seed_str: str) -> int:
    """Convert string seed to integer deterministically."""
    return int(hashlib.sha256(seed_str.encode()).hexdigest(), 16) % (2**31)


def simulation_rules(rules: GameRules | None = None) -> GameRules:
    """Rules with an effectively unbounded wallet so RTP is not distorted by the cap."""
    rules = rules or GameRules.from_settings()
    return rules.model_copy(update={"starting_balance": SIM_BALANCE, "max_win": SIM_BALANCE * 10})


def drain(orchestrator: SpinOrchestrator) -> None:
    """Play out everything a round set in motion: prompts, free spins, settlement."""
    while True:
        if orchestrator.phase == Phase.BONUS_TRANSITION:
            orchestrator.acknowledge_bonus()
        orchestrator.queue.run_until_idle()
        # A new run parks the queue until it is acknowledged
        if orchestrator.phase != Phase.BONUS_TRANSITION:
            return


def run_simulation(
    mode: str,
    rounds: int,
    seed_str: str,
    bet_amount: float = 1.0,
    verbose: bool = False,
) -> SimulationStats:
    """
    Run headless simulation.

    Args:
        mode: 'base' (paid spins) or 'buy' (every round is a bought bonus)
        rounds: Number of rounds to simulate
        seed_str: Seed string for reproducibility
        bet_amount: Bet per round, must be on the bet ladder
        verbose: Print progress

    Returns:
        SimulationStats with aggregated results
    """
    rules = simulation_rules()
    stats = SimulationStats()
    orchestrator = SpinOrchestrator(
        rules=rules, rng=SeededRNG(seed=seed_to_int(seed_str)), sink=AuditSink(stats)
    )
    orchestrator.set_bet(bet_amount)

    is_buy_mode = mode == "buy"
    stats.debit_multiplier = rules.bonus_buy_cost_multiplier if is_buy_mode else 1.0
    progress_interval = max(1, rounds // 100)

    for round_count in range(rounds):
        if verbose and round_count % progress_interval == 0:
            pct = (round_count / rounds) * 100
            print(f"\rProgress: {pct:.1f}%", end="", flush=True)

        balance_before = orchestrator.state.balance
        if is_buy_mode:
            wager = rules.bonus_buy_cost(bet_amount)
            orchestrator.request_bonus_buy()
            result = orchestrator.confirm_bonus_buy()
        else:
            wager = bet_amount
            result = orchestrator.spin()
        if not result.accepted:
            raise RuntimeError(f"Round {round_count} rejected: {result.reason} {result.message}")
        drain(orchestrator)

        round_win = orchestrator.state.balance - balance_before + wager
        stats.total_wagered += wager
        stats.total_won += round_win
        stats.rounds += 1
        if round_win > 0:
            stats.wins += 1

        win_x = round_win / bet_amount if bet_amount > 0 else 0
        stats.win_x_values.append(win_x)
        stats.max_win_x_observed = max(stats.max_win_x_observed, win_x)

    if verbose:
        print("\rProgress: 100.0%")

    return stats


def calculate_percentile(values: list[float], percentile: float) -> float:
    """Calculate percentile from sorted list."""
    if not values:
        return 0.0
    sorted_vals = sorted(values)
    idx = int(len(sorted_vals) * percentile / 100)
    idx = min(idx, len(sorted_vals) - 1)
    return sorted_vals[idx]


def summary_row(mode: str, rounds: int, seed_str: str, stats: SimulationStats) -> dict[str, str | int]:
    rtp = (stats.total_won / stats.total_wagered * 100) if stats.total_wagered > 0 else 0
    per_round = 100 / stats.rounds if stats.rounds > 0 else 0
    return {
        "timestamp": get_timestamp_iso(),
        "config_hash": get_config_hash(),
        "mode": mode,
        "rounds": rounds,
        "seed": seed_str,
        "debit_multiplier": f"{stats.debit_multiplier:.2f}",
        "rtp": f"{rtp:.4f}",
        "rtp_target": f"{settings.rtp_target * 100:.4f}",
        "hit_freq": f"{stats.wins * per_round:.4f}",
        "bonus_entry_rate": f"{stats.bonus_entries * per_round:.4f}",
        "retrigger_rate": f"{stats.retriggers * per_round:.4f}",
        "chest_rate": f"{stats.chest_hits * per_round:.4f}",
        "avg_debit": f"{stats.total_wagered / stats.rounds if stats.rounds else 0:.4f}",
        "avg_credit": f"{stats.total_won / stats.rounds if stats.rounds else 0:.4f}",
        "p95_win_x": f"{calculate_percentile(stats.win_x_values, 95):.2f}",
        "p99_win_x": f"{calculate_percentile(stats.win_x_values, 99):.2f}",
        "max_win_x": f"{stats.max_win_x_observed:.2f}",
    }


def generate_csv(
    mode: str,
    rounds: int,
    seed_str: str,
    stats: SimulationStats,
    output_path: str,
) -> None:
    """Write the one-row audit CSV."""
    row = summary_row(mode, rounds, seed_str, stats)

    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    with open(output_file, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=row.keys())
        writer.writeheader()
        writer.writerow(row)

    print(f"CSV written to: {output_path}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Treasure Reels RTP audit simulation")
    parser.add_argument(
        "--mode",
        choices=["base", "buy"],
        required=True,
        help="Simulation mode: 'base' or 'buy'",
    )
    parser.add_argument("--rounds", type=int, required=True, help="Number of rounds to simulate")
    parser.add_argument("--seed", type=str, required=True, help="Seed string for reproducibility")
    parser.add_argument("--bet", type=float, default=1.0, help="Bet per round")
    parser.add_argument("--out", type=str, required=True, help="Output CSV path")
    parser.add_argument("--verbose", action="store_true", help="Show progress")

    args = parser.parse_args(argv)

    print(f"Running simulation: mode={args.mode}, rounds={args.rounds}, seed={args.seed}")
    print(f"Config hash: {get_config_hash()}")

    stats = run_simulation(
        mode=args.mode,
        rounds=args.rounds,
        seed_str=args.seed,
        bet_amount=args.bet,
        verbose=args.verbose,
    )
    generate_csv(args.mode, args.rounds, args.seed, stats, args.out)

    row = summary_row(args.mode, args.rounds, args.seed, stats)
    print("\nSummary:")
    print(f"  Rounds: {stats.rounds}")
    print(f"  Total wagered: {stats.total_wagered:.2f}")
    print(f"  Total won: {stats.total_won:.2f}")
    print(f"  RTP: {row['rtp']}% (target {row['rtp_target']}%)")
    print(f"  Hit frequency: {row['hit_freq']}%")
    print(f"  Bonus entries: {stats.bonus_entries} ({row['bonus_entry_rate']}%)")
    print(f"  Chest hits: {stats.chest_hits} ({row['chest_rate']}%)")
    print(f"  Max win_x observed: {stats.max_win_x_observed:.2f}x")
    return 0


if __name__ == "__main__":
    sys.exit(main())
