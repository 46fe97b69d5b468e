"""Spin orchestrator tests: triggers, continuations, bonus lifecycle."""
from datetime import datetime, timezone

import pytest

from treasure_reels.logic.engine import SpinOrchestrator
from treasure_reels.logic.events import (
    AutoplayChanged,
    BonusEnded,
    BonusTransition,
    BonusTriggered,
    FreeSpinsChanged,
    SpinRejected,
    SpinStarted,
)
from treasure_reels.logic.models import Phase, RejectReason, SpinTrigger
from treasure_reels.logic.rules import GameRules
from tests.conftest import BONUS_ROWS, CHEST_ROWS, COIN3_ROWS, DEAD_ROWS, ScriptedRNG


def play_out(orchestrator: SpinOrchestrator) -> None:
    """Acknowledge prompts and advance until nothing is scheduled."""
    while True:
        if orchestrator.phase == Phase.BONUS_TRANSITION:
            orchestrator.acknowledge_bonus()
            continue
        due = orchestrator.queue.next_due_ms()
        if due is None:
            return
        orchestrator.queue.advance_to(due)


class TestManualSpin:
    def test_debits_bet_and_records_history(self, make_orchestrator):
        orch = make_orchestrator()
        result = orch.spin()
        assert result.accepted
        assert result.trigger == SpinTrigger.MANUAL
        assert orch.state.balance == 999
        assert len(orch.state.game_history) == 1
        assert orch.state.game_history[0].bet == 1
        assert orch.state.game_history[0].win == 0
        assert orch.phase == Phase.IDLE
        assert not orch.state.is_spinning
        assert orch.queue.pending() == []

    def test_line_win_credited_to_balance(self, make_orchestrator):
        """COIN x3 at bet 1 with drawn multiplier 2 pays 1.00."""
        orch = make_orchestrator(grids=[COIN3_ROWS], multipliers=[2])
        result = orch.spin()
        assert result.result.line_win == pytest.approx(1.0)
        assert orch.state.balance == pytest.approx(1000.0)
        assert orch.state.displayed_win == pytest.approx(1.0)
        assert orch.state.game_history[0].win == pytest.approx(1.0)

    def test_history_timestamp_from_clock(self, make_orchestrator):
        ts = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        orch = make_orchestrator(clock=lambda: ts)
        orch.spin()
        assert orch.state.game_history[0].timestamp == ts

    def test_chest_prize_is_not_part_of_history_win(self, make_orchestrator):
        orch = make_orchestrator(grids=[CHEST_ROWS])
        result = orch.spin()
        assert result.result.chest_prize == 150
        assert result.result.scatter_count == 3
        assert orch.state.balance == 1000 - 1 + 150
        assert orch.state.game_history[0].win == 0

    def test_balance_cap_applies_to_wins(self, make_orchestrator, rules):
        orch = make_orchestrator(grids=[CHEST_ROWS])
        orch.state.balance = rules.max_win - 20
        orch.spin()
        assert orch.state.balance == rules.max_win


class TestRejections:
    """A rejected trigger leaves the state untouched."""

    def test_insufficient_funds(self, make_orchestrator, event_log):
        orch = make_orchestrator()
        orch.state.balance = 0.5
        before = orch.state.model_copy(deep=True)
        result = orch.spin()
        assert not result.accepted
        assert result.reason == RejectReason.INSUFFICIENT_FUNDS
        assert orch.state == before
        assert isinstance(event_log.events[-1], SpinRejected)

    def test_spin_during_spin_is_rejected(self, rules):
        """A spin requested from inside a running spin is refused."""
        nested = []

        class ReentrantSink:
            def emit(self, event):
                if isinstance(event, SpinStarted) and not nested:
                    nested.append(orch.spin())

        orch = SpinOrchestrator(rules=rules, rng=ScriptedRNG(), sink=ReentrantSink())
        assert orch.spin().accepted
        assert nested[0].reason == RejectReason.ROUND_IN_PROGRESS
        assert len(orch.state.game_history) == 1
        assert orch.state.balance == 999

    def test_acknowledge_without_bonus(self, make_orchestrator):
        result = make_orchestrator().acknowledge_bonus()
        assert result.reason == RejectReason.NOTHING_TO_ACKNOWLEDGE


class TestEventOrder:
    def test_paid_spin_sequence(self, make_orchestrator, event_log):
        orch = make_orchestrator(grids=[COIN3_ROWS])
        orch.spin()
        assert [e.type for e in event_log.events] == [
            "spinStarted",
            "historyAppended",
            "balanceChanged",
            "winDisplayChanged",
            "gridSettled",
            "balanceChanged",
            "lineWinsComputed",
            "winDisplayChanged",
            "spinSettled",
        ]

    def test_bonus_trigger_sequence(self, make_orchestrator, event_log):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.spin()
        assert [e.type for e in event_log.events] == [
            "spinStarted",
            "historyAppended",
            "balanceChanged",
            "winDisplayChanged",
            "gridSettled",
            "bonusTriggered",
            "freeSpinsChanged",
            "lineWinsComputed",
            "winDisplayChanged",
            "bonusTransition",
            "spinSettled",
        ]


class TestBonusLifecycle:
    def test_trigger_waits_for_acknowledgment(self, make_orchestrator, event_log):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        result = orch.spin()
        assert result.result.spins_awarded == 10
        assert orch.phase == Phase.BONUS_TRANSITION
        assert orch.state.free_spins == 10
        assert orch.queue.pending() == []
        assert event_log.of_type(BonusTransition)[0].message == "BONUS TRIGGERED! +10 FREE SPINS!"

        # Time alone never starts the bonus
        assert orch.advance(60_000) == 0
        assert orch.state.free_spins == 10

    def test_paid_actions_blocked_during_transition(self, make_orchestrator):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.spin()
        assert orch.spin().reason == RejectReason.BONUS_IN_PROGRESS
        assert orch.start_autoplay(10).reason == RejectReason.BONUS_IN_PROGRESS
        assert orch.set_bet(5).reason == RejectReason.BONUS_IN_PROGRESS
        assert orch.request_bonus_buy().reason == RejectReason.BONUS_IN_PROGRESS

    def test_first_bonus_spin_does_not_consume(self, make_orchestrator):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.spin()
        result = orch.acknowledge_bonus()
        assert result.result.trigger == SpinTrigger.FIRST_BONUS_SPIN
        assert orch.state.free_spins == 10
        assert orch.state.current_free_spin == 0
        assert orch.state.spin_multiplier == 1
        assert orch.state.balance == 999
        assert orch.phase == Phase.FREE_SPIN_PENDING
        assert orch.queue.next_due_ms() == orch.rules.free_spin_delay_ms

    def test_continuations_step_the_multiplier(self, make_orchestrator, event_log):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.spin()
        orch.acknowledge_bonus()
        for expected in range(1, 4):
            assert orch.advance(orch.rules.free_spin_delay_ms) == 1
            assert orch.state.current_free_spin == expected
            assert orch.state.spin_multiplier == expected
            assert orch.state.free_spins == 10 - expected
        multipliers = [e.multiplier for e in event_log.of_type(FreeSpinsChanged)]
        assert multipliers[-3:] == [1, 2, 3]

    def test_nothing_fires_early(self, make_orchestrator):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.spin()
        orch.acknowledge_bonus()
        assert orch.advance(orch.rules.free_spin_delay_ms - 1) == 0
        assert orch.state.free_spins == 10

    def test_settlement_pays_bonus_total_once(self, make_orchestrator, event_log):
        """Bet 5, COIN x3 on free spins with multipliers 1..5: 2.50 x 15 = 37.50."""
        grids = [BONUS_ROWS, COIN3_ROWS, DEAD_ROWS] + [COIN3_ROWS] * 4
        orch = make_orchestrator(grids=grids)
        orch.set_bet(5)
        orch.spin()
        orch.acknowledge_bonus()
        for _ in range(10):
            orch.advance(orch.rules.free_spin_delay_ms)

        assert orch.state.free_spins == 0
        assert orch.state.bonus_total_win == pytest.approx(37.5)
        assert orch.state.balance == 995
        assert orch.state.bonus_unsettled
        assert orch.spin().reason == RejectReason.BONUS_IN_PROGRESS

        orch.advance(orch.rules.bonus_settle_delay_ms)
        ended = event_log.of_type(BonusEnded)
        assert len(ended) == 1
        assert ended[0].summary == "37.50"
        assert orch.state.balance == pytest.approx(1032.5)
        assert orch.state.bonus_total_win == 0
        assert orch.state.current_free_spin == 0
        assert orch.state.spin_multiplier == 1

        orch.advance(60_000)
        assert len(event_log.of_type(BonusEnded)) == 1
        assert orch.state.balance == pytest.approx(1032.5)
        assert orch.spin().accepted

    def test_final_free_spin_pays_to_balance(self, make_orchestrator):
        """Once no spins remain the last win is a base-game win with a drawn multiplier."""
        grids = [BONUS_ROWS] + [DEAD_ROWS] * 10 + [COIN3_ROWS]
        orch = make_orchestrator(grids=grids, multipliers=[3])
        orch.spin()
        orch.acknowledge_bonus()
        for _ in range(10):
            orch.advance(orch.rules.free_spin_delay_ms)
        # 0.5 x bet 1 x multiplier 10 x drawn 3
        assert orch.state.balance == pytest.approx(999 + 15)
        assert orch.state.bonus_total_win == 0

    def test_retrigger_adds_spins_without_prompt(self, make_orchestrator, event_log):
        orch = make_orchestrator(grids=[BONUS_ROWS, DEAD_ROWS, BONUS_ROWS])
        orch.spin()
        orch.acknowledge_bonus()
        orch.advance(orch.rules.free_spin_delay_ms)

        triggered = event_log.of_type(BonusTriggered)
        assert [t.is_retrigger for t in triggered] == [False, True]
        assert triggered[1].spins_awarded == 6
        assert orch.state.free_spins == 9 + 6
        assert orch.state.current_free_spin == 1
        assert orch.phase == Phase.FREE_SPIN_PENDING
        assert len(event_log.of_type(BonusTransition)) == 1

        play_out(orch)
        # trigger spin, first bonus spin, 16 continuations
        assert len(orch.state.game_history) == 18
        assert not orch.state.bonus_unsettled

    def test_stale_continuation_is_ignored(self, make_orchestrator):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.spin()
        orch.acknowledge_bonus()
        first = orch.queue.pending()[0]
        orch.advance(orch.rules.free_spin_delay_ms)
        assert orch.state.free_spins == 9

        first.callback()
        assert orch.state.free_spins == 9
        assert len(orch.state.game_history) == 3


class TestAutoplay:
    def test_runs_requested_number_of_spins(self, make_orchestrator, event_log):
        orch = make_orchestrator()
        result = orch.start_autoplay(10)
        assert result.accepted
        assert orch.state.is_autoplay
        assert orch.state.autoplay_count == 9
        assert orch.phase == Phase.AUTOPLAY_PENDING

        play_out(orch)
        assert len(orch.state.game_history) == 10
        assert orch.state.balance == 990
        assert not orch.state.is_autoplay
        assert event_log.of_type(AutoplayChanged)[-1].active is False

    def test_chain_waits_for_delay(self, make_orchestrator):
        orch = make_orchestrator()
        orch.start_autoplay(10)
        assert orch.advance(orch.rules.autoplay_delay_ms - 1) == 0
        assert orch.advance(1) == 1
        assert len(orch.state.game_history) == 2

    def test_stop_cancels_pending_chain(self, make_orchestrator):
        orch = make_orchestrator()
        orch.start_autoplay(25)
        orch.advance(orch.rules.autoplay_delay_ms)
        assert orch.stop_autoplay().accepted
        assert orch.phase == Phase.IDLE
        assert orch.queue.pending() == []
        orch.advance(60_000)
        assert len(orch.state.game_history) == 2

    def test_stop_is_always_allowed(self, make_orchestrator):
        assert make_orchestrator().stop_autoplay().accepted

    def test_rejects_unknown_count(self, make_orchestrator):
        result = make_orchestrator().start_autoplay(7)
        assert result.reason == RejectReason.INVALID_REQUEST

    def test_stops_when_funds_run_out(self, make_orchestrator, event_log):
        orch = make_orchestrator()
        orch.state.balance = 3
        orch.start_autoplay(10)
        play_out(orch)
        assert len(orch.state.game_history) == 3
        assert not orch.state.is_autoplay
        rejected = event_log.of_type(SpinRejected)[-1]
        assert rejected.trigger == SpinTrigger.AUTOPLAY_CHAIN
        assert rejected.reason == RejectReason.INSUFFICIENT_FUNDS

    def test_resumes_after_bonus(self, make_orchestrator):
        """A bonus inside autoplay pauses the chain; it resumes after settlement."""
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.start_autoplay(10)
        assert orch.phase == Phase.BONUS_TRANSITION
        play_out(orch)
        # 10 paid spins, first bonus spin, 10 free spins
        assert len(orch.state.game_history) == 21
        assert orch.state.balance == 990
        assert not orch.state.is_autoplay

    def test_resumes_after_bonus_with_short_spins(self, make_orchestrator):
        """The chain survives a bonus even when the autoplay gap is shorter than settlement."""
        orch = make_orchestrator(grids=[BONUS_ROWS], rules=GameRules(spin_duration_ms=500))
        orch.start_autoplay(10)
        play_out(orch)
        assert len(orch.state.game_history) == 21
        assert orch.state.balance == 990
        assert not orch.state.is_autoplay
        assert orch.phase == Phase.IDLE

    def test_stop_during_settlement(self, make_orchestrator):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.start_autoplay(10)
        orch.acknowledge_bonus()
        while orch.state.free_spins > 0:
            orch.queue.advance_to(orch.queue.next_due_ms())
        assert orch.state.bonus_unsettled
        orch.stop_autoplay()
        play_out(orch)
        # One paid spin, first bonus spin, 10 free spins
        assert len(orch.state.game_history) == 12
        assert orch.queue.pending() == []


class TestBonusBuy:
    def test_quote_then_confirm(self, make_orchestrator, event_log):
        orch = make_orchestrator()
        quote = orch.request_bonus_buy()
        assert quote.accepted
        assert quote.message == "Buy bonus for $100.00?"
        assert orch.pending_bonus_buy.cost == 100
        assert orch.state.balance == 1000

        result = orch.confirm_bonus_buy()
        assert result.accepted
        spin = result.result
        assert spin.trigger == SpinTrigger.BONUS_BUY
        assert [spin.grid[reel][1] for reel in range(3)] == ["MAP"] * 3
        assert spin.spins_awarded == 10
        assert orch.state.balance == 900
        assert orch.phase == Phase.BONUS_TRANSITION
        assert orch.pending_bonus_buy is None

    def test_bought_bonus_plays_like_natural_one(self, make_orchestrator):
        orch = make_orchestrator()
        orch.request_bonus_buy()
        orch.confirm_bonus_buy()
        play_out(orch)
        assert len(orch.state.game_history) == 12
        assert orch.state.balance == 900
        assert not orch.state.bonus_unsettled

    def test_cancel(self, make_orchestrator):
        orch = make_orchestrator()
        orch.request_bonus_buy()
        assert orch.cancel_bonus_buy().accepted
        assert orch.confirm_bonus_buy().reason == RejectReason.NOTHING_TO_CONFIRM
        assert orch.state.balance == 1000

    def test_confirm_without_quote(self, make_orchestrator):
        assert make_orchestrator().confirm_bonus_buy().reason == RejectReason.NOTHING_TO_CONFIRM

    def test_insufficient_balance(self, make_orchestrator):
        orch = make_orchestrator()
        orch.state.balance = 50
        result = orch.request_bonus_buy()
        assert result.reason == RejectReason.INSUFFICIENT_FUNDS
        assert result.message == "Insufficient Balance!"

    def test_not_during_bonus(self, make_orchestrator):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.spin()
        orch.acknowledge_bonus()
        result = orch.request_bonus_buy()
        assert result.message == "Cannot Buy Bonus Now!"

    def test_disabled(self):
        orch = SpinOrchestrator(rules=GameRules(enable_bonus_buy=False), rng=ScriptedRNG())
        assert orch.request_bonus_buy().reason == RejectReason.FEATURE_DISABLED

    def test_bet_change_drops_quote(self, make_orchestrator):
        orch = make_orchestrator()
        orch.request_bonus_buy()
        orch.set_bet(2)
        assert orch.pending_bonus_buy is None


class TestBetLadder:
    def test_steps_and_saturates(self, make_orchestrator):
        orch = make_orchestrator()
        orch.change_bet(1)
        assert orch.state.current_bet == 2
        orch.change_bet(-1)
        orch.change_bet(-1)
        assert orch.state.current_bet == 1
        orch.change_bet(100)
        assert orch.state.current_bet == 100

    def test_rejects_amount_off_ladder(self, make_orchestrator):
        orch = make_orchestrator()
        assert orch.set_bet(3).reason == RejectReason.INVALID_BET
        assert orch.state.current_bet == 1

    def test_not_during_free_spins(self, make_orchestrator):
        orch = make_orchestrator(grids=[BONUS_ROWS])
        orch.spin()
        orch.acknowledge_bonus()
        assert orch.change_bet(1).reason == RejectReason.BONUS_IN_PROGRESS
