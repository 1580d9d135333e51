"""
hand_loop.py -- Play one hand from its first decision to a terminal state.

Each iteration reads a fresh snapshot, asks the strategy, submits the move
and waits for the randomness callback.  Bust and dealer play are never
computed here; they are read back from the resolved snapshot.
"""

from __future__ import annotations

import logging

import events
from errors import ActionGateTimeout, CycleError, TransactionFailed
from poller import poll_until, transition_classifier
from run_state import CycleContext, GameLoopState
from snapshot import HandPhase, Receipt, Snapshot, visible_dealer_total
from strategy import HIT, STAND

logger = logging.getLogger(__name__)

_WAIT_STATES = {
    HandPhase.PENDING_INITIAL_DEAL: (GameLoopState.WAITING_INITIAL_DEAL, "initial deal"),
    HandPhase.PENDING_HIT: (GameLoopState.WAITING_HIT_VRF, "hit"),
    HandPhase.PENDING_STAND: (GameLoopState.WAITING_STAND_VRF, "stand"),
}


def submit_and_confirm(ctx: CycleContext, action: str, value: int | None = None) -> Receipt:
    """
    Send one transaction and wait for its receipt.

    Cancellation is honoured before sending and after the receipt, never in
    between: a submitted transaction is always seen through.
    """
    ctx.check_cancel()
    try:
        tx_ref = ctx.gateway.submit(action, value)
    except CycleError:
        raise
    except Exception as e:
        raise TransactionFailed(action, str(e)) from e
    logger.info("%s submitted: %s", action, tx_ref)

    try:
        receipt = ctx.gateway.await_confirmation(tx_ref)
    except CycleError:
        raise
    except Exception as e:
        raise TransactionFailed(action, str(e), tx_ref) from e
    if not receipt.succeeded:
        raise TransactionFailed(action, "reverted", tx_ref)
    logger.info("%s confirmed in block %s", action, receipt.block_number)
    ctx.check_cancel()
    return receipt


class HandLoop:
    def __init__(self, ctx: CycleContext) -> None:
        self.ctx = ctx

    def _poll(self, expected: HandPhase, baseline: Snapshot, label: str) -> Snapshot:
        s = self.ctx.settings
        return poll_until(
            self.ctx.fetch,
            transition_classifier(expected, baseline),
            interval=s.poll_interval,
            timeout=s.vrf_timeout,
            cancel=self.ctx.cancelled,
            sleep=s.sleep,
            clock=s.clock,
            label=label,
        )

    def await_vrf(self, snapshot: Snapshot) -> Snapshot:
        """Wait out a randomness request that was already in flight."""
        state, label = _WAIT_STATES[snapshot.phase]
        self.ctx.set_phase(state, game_id=snapshot.game_id, resumed=True)
        return self._poll(snapshot.phase, snapshot, label)

    def _decide(self, snap: Snapshot) -> str | None:
        """
        Ask the strategy for a move.  Returns None when it chose to stand but
        the contract will not accept a stand yet; the caller waits and asks
        again rather than hitting on the strategy's behalf.
        """
        dealer_up = visible_dealer_total(snap)
        move = str(self.ctx.strategy(
            snap.player_total, dealer_up, snap.player_cards, snap.dealer_cards,
        )).strip().lower()
        if move not in (HIT, STAND):
            logger.warning("Strategy returned %r, treating as stand", move)
            move = STAND
        if move == HIT and not snap.can_hit:
            move = STAND
        if move == STAND and not snap.can_stand:
            logger.info("Strategy stands at %d but stand is not open yet", snap.player_total)
            return None
        logger.info("Decision at %d vs %d: %s", snap.player_total, dealer_up, move)
        self.ctx.emit(events.DECISION, {
            "game_id": snap.game_id,
            "action": move,
            "player_total": snap.player_total,
            "dealer_total": dealer_up,
        })
        return move

    def _gate_wait(self, snap: Snapshot, gate_started: float | None, label: str) -> float:
        """Sleep one retry interval while a move is blocked.  Returns the gate start time."""
        s = self.ctx.settings
        now = s.clock()
        if gate_started is None:
            gate_started = now
        elif now - gate_started >= s.action_gate_timeout:
            raise ActionGateTimeout(label, now - gate_started, snap)
        logger.debug("Cannot %s yet (%s), re-reading", label, snap.status)
        self.ctx.check_cancel()
        s.sleep(s.act_retry_interval)
        return gate_started

    def play(self, snapshot: Snapshot | None = None) -> Snapshot:
        """Run decisions until the hand is over; return the terminal snapshot."""
        ctx = self.ctx
        ctx.set_phase(GameLoopState.PLAYING)
        gate_started: float | None = None
        snap = snapshot

        while True:
            if snap is None:
                ctx.check_cancel()
                snap = ctx.fetch()
                ctx.check_cancel()

            if snap.is_terminal:
                return snap

            if snap.is_pending:
                snap = self.await_vrf(snap)
                if snap.is_terminal:
                    return snap
                ctx.set_phase(GameLoopState.PLAYING)
                continue

            if not (snap.can_hit or snap.can_stand):
                gate_started = self._gate_wait(snap, gate_started, "hit/stand")
                snap = None
                continue

            move = self._decide(snap)
            if move is None:
                gate_started = self._gate_wait(snap, gate_started, "stand")
                snap = None
                continue
            gate_started = None
            if move == HIT:
                submit_and_confirm(ctx, "hit")
                ctx.set_phase(GameLoopState.WAITING_HIT_VRF)
                resolved = self._poll(HandPhase.PENDING_HIT, snap, "hit")
                if resolved.is_terminal:
                    return resolved
                ctx.set_phase(GameLoopState.PLAYING)
                snap = resolved
            else:
                submit_and_confirm(ctx, "stand")
                ctx.set_phase(GameLoopState.WAITING_STAND_VRF)
                return self._poll(HandPhase.PENDING_STAND, snap, "stand")
