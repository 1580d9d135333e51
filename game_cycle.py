"""
game_cycle.py -- Run exactly one game cycle end to end.

A cycle reads the game once, lets the planner pick a branch, then:

  CLAIM_THEN_RESTART  collect anything owed by the last hand, start a new one
  RESUME_ACTIVE       finish the hand already on the table
  START_FRESH         start a new hand
  UNKNOWN_STATE       stop with UnknownState

and plays the hand to its end, records the result and claims winnings.
One cycle plays one game; continuous play is the caller's job.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable

import events
import planner
from errors import Cancelled, ClaimFailed, CycleError, TransactionFailed, UnknownState
from game_stats import GameResult, GameStats, classify_outcome
from hand_loop import HandLoop, submit_and_confirm
from poller import poll_until, transition_classifier, wait_for_trading_period
from run_state import CycleContext, CycleSettings, GameLoopState, RunState
from snapshot import HandPhase, Snapshot, to_dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleResult:
    stats: GameStats
    last_result: GameResult
    game_id: int


class GameCycle:
    def __init__(
        self,
        gateway,
        strategy,
        sink: events.EventSink,
        settings: CycleSettings | None = None,
        run: RunState | None = None,
    ) -> None:
        self.gateway = gateway
        self.strategy = strategy
        self.sink = sink
        self.settings = settings or CycleSettings.from_config()
        self.run = run or RunState()
        self._last_snapshot: Snapshot | None = None

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    def run_one_cycle(self, cancel: Callable[[], bool] | None = None) -> CycleResult:
        ctx = CycleContext(self.gateway, self.strategy, self.sink, self.settings, self.run, cancel)
        self.run.last_error = None
        try:
            return self._run(ctx)
        except Cancelled:
            logger.info("Cycle stopped by user in %s", self.run.phase.value)
            ctx.set_phase(GameLoopState.IDLE, cancelled=True)
            raise
        except CycleError as e:
            self._fail(ctx, e)
            raise
        except Exception as e:
            wrapped = CycleError(f"{type(e).__name__}: {e}", self._last_snapshot)
            self._fail(ctx, wrapped)
            raise wrapped from e

    def _fail(self, ctx: CycleContext, err: CycleError) -> None:
        self.run.last_error = str(err)
        logger.error("Cycle failed in %s: %s", self.run.phase.value, err)
        ctx.set_phase(GameLoopState.ERROR)
        snap = err.snapshot if err.snapshot is not None else self._last_snapshot
        ctx.emit(events.ERROR, {
            "error": str(err),
            "category": type(err).__name__,
            "fatal": True,
            "snapshot": to_dict(snap) if snap is not None else None,
        })

    def _run(self, ctx: CycleContext) -> CycleResult:
        ctx.set_phase(GameLoopState.CHECKING_CLAIMABLE)
        ctx.check_cancel()
        snap = self._fetch(ctx)
        ctx.check_cancel()

        plan = planner.plan_next(snap)
        logger.info("Plan: %s -- %s", plan.branch, plan.reason)

        if plan.branch == planner.CLAIM_THEN_RESTART:
            self._claim_if_owed(ctx, snap.game_id)
            terminal = self._start_fresh(ctx, snap)
        elif plan.branch == planner.RESUME_ACTIVE:
            terminal = self._resume(ctx, plan)
        elif plan.branch == planner.START_FRESH:
            terminal = self._start_fresh(ctx, snap)
        else:
            raise UnknownState(snap, plan.reason)

        return self._complete(ctx, terminal)

    def _fetch(self, ctx: CycleContext) -> Snapshot:
        snap = ctx.fetch()
        self._last_snapshot = snap
        return snap

    # ------------------------------------------------------------------ #
    # Branches
    # ------------------------------------------------------------------ #

    def _start_fresh(self, ctx: CycleContext, baseline: Snapshot) -> Snapshot:
        s = self.settings
        if s.bet_wei < s.min_bet_wei:
            raise TransactionFailed(
                "start", f"wager {s.bet_wei} wei is below the minimum {s.min_bet_wei} wei",
            )

        ctx.set_phase(GameLoopState.STARTING_GAME, wager_wei=str(s.bet_wei))
        submit_and_confirm(ctx, "start", s.bet_wei)

        ctx.set_phase(GameLoopState.WAITING_INITIAL_DEAL)
        dealt = poll_until(
            ctx.fetch,
            transition_classifier(HandPhase.PENDING_INITIAL_DEAL, baseline),
            interval=s.poll_interval,
            timeout=s.vrf_timeout,
            cancel=ctx.cancelled,
            sleep=s.sleep,
            clock=s.clock,
            label="initial deal",
        )
        self._last_snapshot = dealt
        self.run.current_game_id = dealt.game_id
        self._emit_deal(ctx, dealt)

        if dealt.is_terminal:
            logger.info("Game %d decided on the deal (%s)", dealt.game_id, dealt.status)
            return dealt
        return self._play(ctx, dealt)

    def _resume(self, ctx: CycleContext, plan: planner.Plan) -> Snapshot:
        snap = plan.snapshot
        self.run.current_game_id = snap.game_id
        logger.info("Resuming game %d (%s)", snap.game_id, snap.status)

        if plan.vrf_in_flight:
            was_dealing = snap.phase == HandPhase.PENDING_INITIAL_DEAL
            snap = HandLoop(ctx).await_vrf(snap)
            self._last_snapshot = snap
            if was_dealing:
                self._emit_deal(ctx, snap)
            if snap.is_terminal:
                return snap
        return self._play(ctx, snap)

    def _play(self, ctx: CycleContext, snap: Snapshot) -> Snapshot:
        s = self.settings
        if snap.seconds_until_can_act > 0:
            ctx.set_phase(GameLoopState.WAITING_TRADING_PERIOD,
                          seconds=snap.seconds_until_can_act)
            snap = wait_for_trading_period(
                ctx.fetch,
                cancel=ctx.cancelled,
                interval=s.poll_interval,
                timeout=s.action_gate_timeout,
                sleep=s.sleep,
                clock=s.clock,
                snapshot=snap,
            )
            self._last_snapshot = snap
        return HandLoop(ctx).play(snap)

    def _emit_deal(self, ctx: CycleContext, snap: Snapshot) -> None:
        ctx.emit(events.INITIAL_DEAL, {
            "game_id": snap.game_id,
            "player_cards": [c.label() for c in snap.player_cards],
            "dealer_cards": [c.label() for c in snap.dealer_cards],
            "player_total": snap.player_total,
            "dealer_total": snap.dealer_total,
        })

    # ------------------------------------------------------------------ #
    # Completion & claims
    # ------------------------------------------------------------------ #

    def _complete(self, ctx: CycleContext, terminal: Snapshot) -> CycleResult:
        self._last_snapshot = terminal
        ctx.set_phase(GameLoopState.GAME_COMPLETE)
        result = classify_outcome(terminal)
        self.run.stats = self.run.stats.record(result)
        self.run.last_result = result
        self.run.current_game_id = terminal.game_id
        logger.info(
            "Game %d: %s (%d vs %d) -- record %d-%d-%d",
            terminal.game_id, result.value, terminal.player_total, terminal.dealer_total,
            self.run.stats.wins, self.run.stats.losses, self.run.stats.pushes,
        )
        ctx.emit(events.GAME_COMPLETE, {
            "game_id": terminal.game_id,
            "result": result.value,
            "status": terminal.status,
            "player_total": terminal.player_total,
            "dealer_total": terminal.dealer_total,
            "stats": self.run.stats.to_dict(),
        })

        if result == GameResult.WIN:
            self._claim_if_owed(ctx, terminal.game_id)
            ctx.set_phase(GameLoopState.GAME_COMPLETE)

        return CycleResult(self.run.stats, result, terminal.game_id)

    def _claim_if_owed(self, ctx: CycleContext, game_id: int) -> int:
        """
        Claim winnings for *game_id* if any are owed.  Returns the amount
        claimed (0 when nothing was owed or the claim failed).  Failures are
        reported as non-fatal error events and never abort the cycle.
        """
        ctx.set_phase(GameLoopState.CHECKING_CLAIMABLE, game_id=game_id)
        try:
            amount = self._claim(ctx, game_id)
        except ClaimFailed as e:
            logger.warning("%s -- continuing", e)
            ctx.emit(events.ERROR, {
                "error": str(e),
                "category": type(e).__name__,
                "fatal": False,
                "game_id": game_id,
            })
            return 0
        return amount

    def _claim(self, ctx: CycleContext, game_id: int) -> int:
        try:
            amount = int(self.gateway.get_claimable_amount(game_id))
        except CycleError:
            raise
        except Exception as e:
            raise ClaimFailed(game_id, f"claimable lookup failed: {e}") from e
        if amount <= 0:
            logger.info("Nothing to claim for game %d", game_id)
            return 0

        ctx.set_phase(GameLoopState.CLAIMING_WINNINGS, game_id=game_id,
                      amount_wei=str(amount))
        attempts = 1 + max(0, self.settings.claim_retries)
        last_reason = ""
        for attempt in range(1, attempts + 1):
            try:
                receipt = submit_and_confirm(ctx, "claim", game_id)
                left = self._still_claimable(game_id)
            except TransactionFailed as e:
                last_reason = e.reason
                logger.warning("Claim attempt %d/%d for game %d failed: %s",
                               attempt, attempts, game_id, e.reason)
                continue
            if left > 0:
                # A confirmed receipt is not proof the balance moved.
                last_reason = f"confirmed in {receipt.tx_ref} but {left} wei still claimable"
                logger.warning("Claim attempt %d/%d for game %d had no effect: %s",
                               attempt, attempts, game_id, last_reason)
                continue
            logger.info("Claimed %d wei for game %d", amount, game_id)
            ctx.emit(events.WINNINGS_CLAIMED, {
                "game_id": game_id,
                "amount_wei": str(amount),
                "tx": receipt.tx_ref,
            })
            return amount
        raise ClaimFailed(game_id, last_reason)

    def _still_claimable(self, game_id: int) -> int:
        try:
            return int(self.gateway.get_claimable_amount(game_id))
        except CycleError:
            raise
        except Exception as e:
            raise TransactionFailed("claim", f"claimable re-check failed: {e}") from e
