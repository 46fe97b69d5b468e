"""Spin orchestrator: the state machine that sequences every kind of spin."""
import logging
from collections.abc import Callable
from datetime import datetime

from treasure_reels.logic.bonus import count_specials, resolve_bonus
from treasure_reels.logic.events import (
    AutoplayChanged,
    BalanceChanged,
    BonusEnded,
    BonusTransition,
    BonusTriggered,
    ChestTriggered,
    EventSink,
    FreeSpinsChanged,
    GameEvent,
    GridSettled,
    HistoryAppended,
    LineWinsComputed,
    NullSink,
    SpinRejected,
    SpinSettled,
    SpinStarted,
    WinDisplayChanged,
)
from treasure_reels.logic.models import (
    BonusBuyQuote,
    GameState,
    HistoryEntry,
    Phase,
    RejectReason,
    SpinResult,
    SpinTrigger,
    StateSnapshot,
    TriggerResult,
    utc_now,
)
from treasure_reels.logic.paytable import evaluate_lines
from treasure_reels.logic.rng import ProductionRNG, RNGBase
from treasure_reels.logic.rules import GameRules
from treasure_reels.logic.scheduler import EventQueue, ScheduledTask
from treasure_reels.logic.symbols import Grid, draw_grid, grid_names


logger = logging.getLogger(__name__)

# Row that receives the forced bonus symbols on a bought bonus spin
BONUS_BUY_ROW = 1

PAID_TRIGGERS = (SpinTrigger.MANUAL, SpinTrigger.AUTOPLAY_CHAIN)


class SpinOrchestrator:
    """
    Owns the game state and decides what every spin trigger does.

    Implements:
    - trigger validation (manual, autoplay, bonus buy, bonus acknowledgment)
    - the per-spin sequence: history, debit or free-spin step, grid draw,
      chest/bonus triggers, line evaluation, settlement
    - continuation scheduling (free-spin chain, autoplay chain, bonus
      transition prompt, bonus settlement)

    Spins resolve synchronously; deferred continuations live on an EventQueue
    and only run when its clock is advanced. Each continuation remembers the
    spin serial it was scheduled after and becomes a no-op if another spin
    has started since.
    """

    def __init__(
        self,
        rules: GameRules | None = None,
        rng: RNGBase | None = None,
        queue: EventQueue | None = None,
        sink: EventSink | None = None,
        state: GameState | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.rules = rules or GameRules.from_settings()
        self.rng = rng or ProductionRNG()
        self.queue = queue or EventQueue()
        self.sink = sink or NullSink()
        self.state = state or GameState(
            balance=self.rules.starting_balance,
            current_bet=self.rules.bet_levels[0],
        )
        self.phase = Phase.IDLE
        self.last_result: SpinResult | None = None
        self._clock = clock
        self._spin_serial = 0
        self._continuation: ScheduledTask | None = None
        self._settlement: ScheduledTask | None = None
        self._buy_quote: BonusBuyQuote | None = None

    # === Public triggers ===

    def spin(self) -> TriggerResult:
        """Manual spin."""
        rejection = self._check_paid_spin(SpinTrigger.MANUAL)
        if rejection is not None:
            return self._reject(rejection)
        return TriggerResult.ok(SpinTrigger.MANUAL, result=self._execute_spin(SpinTrigger.MANUAL))

    def start_autoplay(self, count: int | None = None) -> TriggerResult:
        """Activate autoplay for `count` spins and fire the first one now."""
        state = self.state
        if state.is_spinning:
            return self._reject(TriggerResult.rejected(
                RejectReason.ROUND_IN_PROGRESS, "Cannot start autoplay while spinning."
            ))
        if state.bonus_unsettled or self.phase == Phase.BONUS_TRANSITION:
            return self._reject(TriggerResult.rejected(
                RejectReason.BONUS_IN_PROGRESS, "Cannot start autoplay during a bonus round."
            ))
        if state.is_autoplay:
            return self._reject(TriggerResult.rejected(
                RejectReason.INVALID_REQUEST, "Autoplay is already running."
            ))
        count = self.rules.autoplay_options[0] if count is None else count
        if count not in self.rules.autoplay_options:
            return self._reject(TriggerResult.rejected(
                RejectReason.INVALID_REQUEST,
                f"Autoplay count {count} not allowed. Allowed: {list(self.rules.autoplay_options)}",
            ))

        rejection = self._check_paid_spin(SpinTrigger.MANUAL)
        if rejection is not None:
            return self._reject(rejection)

        state.is_autoplay = True
        state.autoplay_count = count
        self._emit(AutoplayChanged(active=True, remaining=count))
        logger.info("Autoplay started: %d spins", count)
        return TriggerResult.ok(SpinTrigger.MANUAL, result=self._execute_spin(SpinTrigger.MANUAL))

    def stop_autoplay(self) -> TriggerResult:
        """Deactivate autoplay. A pending autoplay chain is cancelled."""
        state = self.state
        was_active = state.is_autoplay
        state.is_autoplay = False
        state.autoplay_count = 0
        if self.phase == Phase.AUTOPLAY_PENDING:
            self._cancel_continuation()
            self.phase = Phase.IDLE
        if was_active:
            self._emit(AutoplayChanged(active=False, remaining=0))
            logger.info("Autoplay stopped")
        return TriggerResult.ok()

    def change_bet(self, step: int) -> TriggerResult:
        """Move up (step > 0) or down (step < 0) the bet ladder, saturating at the ends."""
        levels = list(self.rules.bet_levels)
        index = levels.index(self.state.current_bet) if self.state.current_bet in levels else 0
        index = max(0, min(len(levels) - 1, index + step))
        return self.set_bet(levels[index])

    def set_bet(self, amount: float) -> TriggerResult:
        if amount not in self.rules.bet_levels:
            return self._reject(TriggerResult.rejected(
                RejectReason.INVALID_BET,
                f"Bet amount {amount} not allowed. Allowed: {list(self.rules.bet_levels)}",
            ))
        if self.state.is_spinning:
            return self._reject(TriggerResult.rejected(
                RejectReason.ROUND_IN_PROGRESS, "Cannot change bet while spinning."
            ))
        if self.state.bonus_unsettled or self.phase == Phase.BONUS_TRANSITION:
            return self._reject(TriggerResult.rejected(
                RejectReason.BONUS_IN_PROGRESS, "Cannot change bet during a bonus round."
            ))
        self.state.current_bet = amount
        self._buy_quote = None
        return TriggerResult.ok()

    @property
    def pending_bonus_buy(self) -> BonusBuyQuote | None:
        return self._buy_quote

    def request_bonus_buy(self) -> TriggerResult:
        """Quote a bonus buy. Nothing is debited until confirm_bonus_buy()."""
        rejection = self._check_bonus_buy()
        if rejection is not None:
            return self._reject(rejection)
        bet = self.state.current_bet
        self._buy_quote = BonusBuyQuote(bet=bet, cost=self.rules.bonus_buy_cost(bet))
        return TriggerResult.ok(
            SpinTrigger.BONUS_BUY,
            message=f"Buy bonus for ${self._buy_quote.cost:.2f}?",
        )

    def cancel_bonus_buy(self) -> TriggerResult:
        if self._buy_quote is None:
            return self._reject(TriggerResult.rejected(
                RejectReason.NOTHING_TO_CONFIRM, "No bonus buy is awaiting confirmation.",
                SpinTrigger.BONUS_BUY,
            ))
        self._buy_quote = None
        return TriggerResult.ok(SpinTrigger.BONUS_BUY, message="Bonus buy cancelled.")

    def confirm_bonus_buy(self) -> TriggerResult:
        """Debit bet x cost multiplier and run the bought spin with forced bonus symbols."""
        quote = self._buy_quote
        if quote is None:
            return self._reject(TriggerResult.rejected(
                RejectReason.NOTHING_TO_CONFIRM, "No bonus buy is awaiting confirmation.",
                SpinTrigger.BONUS_BUY,
            ))
        self._buy_quote = None
        rejection = self._check_bonus_buy()
        if rejection is not None:
            return self._reject(rejection)

        cost = self.rules.bonus_buy_cost(self.state.current_bet)
        self.state.update_balance(-cost, self.rules.max_win)
        self._emit(BalanceChanged(new_balance=self.state.balance))
        logger.info("Bonus bought: bet=%.2f cost=%.2f", self.state.current_bet, cost)
        return TriggerResult.ok(
            SpinTrigger.BONUS_BUY, result=self._execute_spin(SpinTrigger.BONUS_BUY)
        )

    def acknowledge_bonus(self) -> TriggerResult:
        """Dismiss the bonus prompt and fire the first bonus spin."""
        if self.phase != Phase.BONUS_TRANSITION:
            return self._reject(TriggerResult.rejected(
                RejectReason.NOTHING_TO_ACKNOWLEDGE, "No bonus is waiting to start.",
                SpinTrigger.FIRST_BONUS_SPIN,
            ))
        if self.state.is_spinning:
            return self._reject(TriggerResult.rejected(
                RejectReason.ROUND_IN_PROGRESS, "Cannot start the bonus while spinning.",
                SpinTrigger.FIRST_BONUS_SPIN,
            ))
        return TriggerResult.ok(
            SpinTrigger.FIRST_BONUS_SPIN,
            result=self._execute_spin(SpinTrigger.FIRST_BONUS_SPIN),
        )

    def snapshot(self) -> StateSnapshot:
        return self.state.snapshot(self.phase)

    def advance(self, delta_ms: int) -> int:
        """Advance the scheduler clock, firing due continuations."""
        return self.queue.advance(delta_ms)

    # === Validation ===

    def _check_paid_spin(self, trigger: SpinTrigger) -> TriggerResult | None:
        state = self.state
        if state.is_spinning:
            return TriggerResult.rejected(
                RejectReason.ROUND_IN_PROGRESS, "Cannot spin while already spinning.", trigger
            )
        if state.bonus_unsettled or self.phase == Phase.BONUS_TRANSITION:
            return TriggerResult.rejected(
                RejectReason.BONUS_IN_PROGRESS, "Cannot manually spin during a bonus round.", trigger
            )
        if state.balance < state.current_bet:
            return TriggerResult.rejected(
                RejectReason.INSUFFICIENT_FUNDS, "Insufficient balance to spin.", trigger
            )
        return None

    def _check_bonus_buy(self) -> TriggerResult | None:
        state = self.state
        if not self.rules.enable_bonus_buy:
            return TriggerResult.rejected(
                RejectReason.FEATURE_DISABLED, "Bonus buy is disabled.", SpinTrigger.BONUS_BUY
            )
        if state.is_spinning or state.bonus_unsettled or self.phase == Phase.BONUS_TRANSITION:
            reason = (
                RejectReason.ROUND_IN_PROGRESS if state.is_spinning
                else RejectReason.BONUS_IN_PROGRESS
            )
            return TriggerResult.rejected(reason, "Cannot Buy Bonus Now!", SpinTrigger.BONUS_BUY)
        if state.balance < self.rules.bonus_buy_cost(state.current_bet):
            return TriggerResult.rejected(
                RejectReason.INSUFFICIENT_FUNDS, "Insufficient Balance!", SpinTrigger.BONUS_BUY
            )
        return None

    def _reject(self, result: TriggerResult) -> TriggerResult:
        logger.info(
            "Trigger rejected: trigger=%s reason=%s",
            result.trigger.value if result.trigger else None,
            result.reason.value if result.reason else None,
        )
        self._emit(SpinRejected(trigger=result.trigger, reason=result.reason, message=result.message))
        return result

    # === Spin sequence ===

    def _execute_spin(self, trigger: SpinTrigger) -> SpinResult:
        state = self.state
        rules = self.rules

        # 1) Accept: lock, invalidate older continuations, open a history entry
        self._spin_serial += 1
        self._cancel_continuation()
        state.is_spinning = True
        self.phase = Phase.SPINNING
        entry = HistoryEntry(bet=state.current_bet, win=0.0, timestamp=self._clock())
        state.game_history.append(entry)
        self._emit(SpinStarted(trigger=trigger, bet=state.current_bet))
        self._emit(HistoryAppended(entry=entry))
        logger.debug("Spin #%d started: trigger=%s bet=%.2f", self._spin_serial, trigger.value, state.current_bet)

        # 2) Free-spin step or bet debit
        if trigger == SpinTrigger.FREE_SPIN_CONTINUATION:
            state.free_spins -= 1
            state.current_free_spin += 1
            state.spin_multiplier = state.current_free_spin
            self._emit(FreeSpinsChanged(remaining=state.free_spins, multiplier=state.spin_multiplier))
        elif trigger == SpinTrigger.FIRST_BONUS_SPIN:
            state.spin_multiplier = 1
        elif trigger in PAID_TRIGGERS:
            state.update_balance(-state.current_bet, rules.max_win)
            state.displayed_win = 0.0
            self._emit(BalanceChanged(new_balance=state.balance))
            self._emit(WinDisplayChanged(amount=0.0))

        # 3) Draw the grid
        grid = draw_grid(rules.symbols, self.rng, rules.reels, rules.rows)
        if trigger == SpinTrigger.BONUS_BUY:
            self._force_bonus_symbols(grid)
        names = grid_names(grid)
        self._emit(GridSettled(grid=names))

        # 4) Chest and free-spin triggers
        counts = count_specials(grid)
        outcome = resolve_bonus(state, counts, rules)
        if outcome.chest_prize > 0:
            self._emit(ChestTriggered(scatter_count=counts.scatters, prize=outcome.chest_prize))
            self._emit(BalanceChanged(new_balance=state.balance))
        if outcome.bonus_triggered:
            self._emit(BonusTriggered(spins_awarded=outcome.spins_awarded, is_retrigger=outcome.is_retrigger))
            self._emit(FreeSpinsChanged(remaining=state.free_spins, multiplier=state.spin_multiplier))

        # 5) Line wins on the same grid
        in_free_spins = state.in_free_spins
        evaluation = evaluate_lines(
            grid, state.current_bet, state.spin_multiplier, in_free_spins, rules, self.rng
        )
        line_win = evaluation.total_win
        entry.win = line_win
        if in_free_spins:
            state.bonus_total_win += line_win
            state.displayed_win = state.bonus_total_win
        else:
            if line_win > 0:
                state.update_balance(line_win, rules.max_win)
                self._emit(BalanceChanged(new_balance=state.balance))
            state.displayed_win = line_win
        self._emit(LineWinsComputed(
            total_win=line_win,
            winning_cells=evaluation.winning_cells,
            line_wins=evaluation.line_wins,
        ))
        self._emit(WinDisplayChanged(amount=state.displayed_win))

        # 6) Unlock
        state.is_spinning = False
        self.phase = Phase.IDLE

        # 7) Bonus run just ran out: settle after a pause
        bonus_ended = (
            trigger == SpinTrigger.FREE_SPIN_CONTINUATION
            and state.free_spins == 0
            and state.current_free_spin > 0
        )
        if bonus_ended:
            self._settlement = self.queue.schedule(
                rules.bonus_settle_delay_ms, self._settle_bonus, label="BONUS_SETTLE"
            )

        # 8) What happens next
        if outcome.started_run:
            self.phase = Phase.BONUS_TRANSITION
            self._emit(BonusTransition(
                spins_awarded=outcome.spins_awarded,
                message=f"BONUS TRIGGERED! +{outcome.spins_awarded} FREE SPINS!",
            ))
        elif state.free_spins > 0:
            self.phase = Phase.FREE_SPIN_PENDING
            self._schedule_continuation(SpinTrigger.FREE_SPIN_CONTINUATION, rules.free_spin_delay_ms)
        elif not bonus_ended:
            # After a bonus run the chain resumes from _settle_bonus instead
            self._step_autoplay(rules.autoplay_delay_ms)

        result = SpinResult(
            trigger=trigger,
            bet=state.current_bet,
            grid=names,
            line_win=line_win,
            chest_prize=outcome.chest_prize,
            scatter_count=counts.scatters,
            bonus_count=counts.bonuses,
            spins_awarded=outcome.spins_awarded,
            is_retrigger=outcome.is_retrigger,
            bonus_ended=bonus_ended,
        )
        self.last_result = result
        self._emit(SpinSettled(result=result, balance=state.balance, free_spins=state.free_spins))
        logger.debug(
            "Spin #%d settled: line_win=%.2f chest=%.2f balance=%.2f free_spins=%d",
            self._spin_serial, line_win, outcome.chest_prize, state.balance, state.free_spins,
        )
        return result

    def _force_bonus_symbols(self, grid: Grid) -> None:
        """Put bonus symbols on the middle row of the first trigger-count reels."""
        bonus = self.rules.bonus_symbol
        for reel_idx in range(min(self.rules.free_spins_trigger, len(grid))):
            grid[reel_idx][BONUS_BUY_ROW] = bonus

    # === Continuations ===

    def _schedule_continuation(self, trigger: SpinTrigger, delay_ms: int) -> None:
        serial = self._spin_serial

        def fire() -> None:
            self._fire_continuation(trigger, serial)

        self._continuation = self.queue.schedule(delay_ms, fire, label=trigger.value)

    def _cancel_continuation(self) -> None:
        if self._continuation is not None:
            self._continuation.cancel()
            self._continuation = None

    def _fire_continuation(self, trigger: SpinTrigger, serial: int) -> None:
        if serial != self._spin_serial or self.state.is_spinning:
            logger.debug("Stale %s continuation dropped", trigger.value)
            return
        self._continuation = None

        if trigger == SpinTrigger.FREE_SPIN_CONTINUATION:
            if self.state.free_spins <= 0:
                self.phase = Phase.IDLE
                return
            self._execute_spin(trigger)
            return

        if not self.state.is_autoplay:
            self.phase = Phase.IDLE
            return
        rejection = self._check_paid_spin(trigger)
        if rejection is not None:
            self.state.is_autoplay = False
            self.state.autoplay_count = 0
            self.phase = Phase.IDLE
            self._emit(AutoplayChanged(active=False, remaining=0))
            self._reject(rejection)
            return
        self._execute_spin(trigger)

    def _settle_bonus(self) -> None:
        """Pay out the bonus run and reset its counters."""
        state = self.state
        self._settlement = None
        total = state.bonus_total_win
        if total > 0:
            state.update_balance(total, self.rules.max_win)
            self._emit(BalanceChanged(new_balance=state.balance))
        state.current_free_spin = 0
        state.spin_multiplier = 1
        state.bonus_total_win = 0.0
        state.displayed_win = 0.0
        self._emit(WinDisplayChanged(amount=0.0))
        self._emit(FreeSpinsChanged(remaining=state.free_spins, multiplier=1))
        self._emit(BonusEnded(total_win=total, summary=f"{total:.2f}"))
        logger.info("Bonus ended: total_win=%.2f balance=%.2f", total, state.balance)
        self._step_autoplay(self.rules.autoplay_extra_delay_ms)

    def _step_autoplay(self, delay_ms: int) -> None:
        """Count down one autoplay spin and schedule the next, or finish autoplay."""
        state = self.state
        if not state.is_autoplay or state.autoplay_count <= 0:
            return
        state.autoplay_count -= 1
        if state.autoplay_count == 0:
            state.is_autoplay = False
            self._emit(AutoplayChanged(active=False, remaining=0))
            logger.info("Autoplay finished")
            return
        self._emit(AutoplayChanged(active=True, remaining=state.autoplay_count))
        self.phase = Phase.AUTOPLAY_PENDING
        self._schedule_continuation(SpinTrigger.AUTOPLAY_CHAIN, delay_ms)

    def _emit(self, event: GameEvent) -> None:
        self.sink.emit(event)
