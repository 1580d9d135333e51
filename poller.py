"""
poller.py -- Bounded, cancellable polling of game snapshots.

Every hit, stand and start submission asks the contract for randomness; the
card(s) land later in a separate callback transaction.  We learn about it
only by re-reading the game.  A classifier answers one of three things about
each read:

    PENDING   -- the request is still in flight, keep waiting
    RESOLVED  -- the callback landed, hand the snapshot back
    MISMATCH  -- the state is neither; on the very first read this means the
                 submission had no visible effect and we fail fast

Sleep and clock are injectable so tests run without real time.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from errors import ActionGateTimeout, Cancelled, ProtocolMismatch, VrfTimeout
from snapshot import HandPhase, Snapshot

logger = logging.getLogger(__name__)

PENDING = "pending"
RESOLVED = "resolved"
MISMATCH = "mismatch"

Fetch = Callable[[], Snapshot]
Classifier = Callable[[Snapshot], str]
CancelCheck = Callable[[], bool]

_RESOLVED_PHASES = {
    HandPhase.PENDING_INITIAL_DEAL: frozenset({
        HandPhase.ACTIVE, HandPhase.BUSTED, HandPhase.FINISHED,
    }),
    HandPhase.PENDING_HIT: frozenset({
        HandPhase.ACTIVE, HandPhase.BUSTED, HandPhase.FINISHED,
    }),
    HandPhase.PENDING_STAND: frozenset({HandPhase.BUSTED, HandPhase.FINISHED}),
}


def _never_cancelled() -> bool:
    return False


def _check(cancel: CancelCheck) -> None:
    if cancel():
        raise Cancelled()


def transition_classifier(expected: HandPhase, baseline: Snapshot) -> Classifier:
    """
    Build the classifier for one submitted action.

    *baseline* is the snapshot the action was submitted from, or the pending
    snapshot we are resuming.  A resolved-looking phase only counts when
    something shows the action took effect; otherwise a silently ignored
    submission would be mistaken for a fast VRF callback.
    """
    if expected not in _RESOLVED_PHASES:
        raise ValueError(f"not a pending phase: {expected!r}")
    resolved = _RESOLVED_PHASES[expected]
    resumed = baseline.phase == expected

    def _took_effect(snap: Snapshot) -> bool:
        if resumed:
            return True
        if expected == HandPhase.PENDING_INITIAL_DEAL:
            return snap.game_id != baseline.game_id
        if expected == HandPhase.PENDING_HIT:
            return len(snap.player_cards) > len(baseline.player_cards)
        return snap.is_terminal

    def classify(snap: Snapshot) -> str:
        if snap.phase == expected:
            return PENDING
        if snap.phase in resolved and _took_effect(snap):
            return RESOLVED
        return MISMATCH

    return classify


def poll_until(
    fetch: Fetch,
    classify: Classifier,
    interval: float,
    timeout: float,
    cancel: CancelCheck = _never_cancelled,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    label: str = "poll",
) -> Snapshot:
    """Re-read until *classify* says RESOLVED; raise on mismatch, timeout or cancel."""
    started = clock()
    _check(cancel)
    snap = fetch()
    _check(cancel)
    outcome = classify(snap)
    logger.debug("%s poll #1: %s (%s)", label, outcome, snap.status)
    if outcome == RESOLVED:
        return snap
    if outcome == MISMATCH:
        raise ProtocolMismatch(label, snap)

    polls = 1
    while True:
        elapsed = clock() - started
        if elapsed >= timeout:
            raise VrfTimeout(label, elapsed, snap)
        _check(cancel)
        sleep(interval)
        _check(cancel)
        snap = fetch()
        _check(cancel)
        polls += 1
        outcome = classify(snap)
        if outcome == RESOLVED:
            logger.info("%s resolved after %d polls (%.1fs)", label, polls, clock() - started)
            return snap
        if outcome == MISMATCH:
            logger.warning("%s poll #%d: unexpected status %r, still waiting",
                           label, polls, snap.status)
        elif polls % 10 == 0:
            logger.info("%s still pending after %d polls", label, polls)


def wait_for_trading_period(
    fetch: Fetch,
    cancel: CancelCheck = _never_cancelled,
    interval: float = 2.0,
    timeout: float = 600.0,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    snapshot: Snapshot | None = None,
) -> Snapshot:
    """Re-read until the contract reports no remaining wait before acting."""
    started = clock()
    _check(cancel)
    snap = snapshot if snapshot is not None else fetch()
    while snap.seconds_until_can_act > 0 and not snap.is_terminal:
        elapsed = clock() - started
        if elapsed >= timeout:
            raise ActionGateTimeout("trading period", elapsed, snap)
        logger.info("Trading period active, %ds until we can act", snap.seconds_until_can_act)
        _check(cancel)
        sleep(min(interval, max(snap.seconds_until_can_act, 0.1)))
        _check(cancel)
        snap = fetch()
        _check(cancel)
    return snap
