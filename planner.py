"""
planner.py -- Decide how to re-enter the game from whatever state it is in.

The process may have been restarted mid-hand, a previous hand may still owe
winnings, or a randomness request may be in flight.  plan_next() looks at a
single snapshot and picks one branch.  It performs no I/O.

Decision table (first match wins):

    1. terminal phase or can_start_new, with a prior game  -> CLAIM_THEN_RESTART
    2. cannot start new, with a prior game                  -> RESUME_ACTIVE
    3. can_start_new                                        -> START_FRESH
    4. anything else                                        -> UNKNOWN_STATE
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from snapshot import Snapshot

Branch = Literal["CLAIM_THEN_RESTART", "RESUME_ACTIVE", "START_FRESH", "UNKNOWN_STATE"]

CLAIM_THEN_RESTART: Branch = "CLAIM_THEN_RESTART"
RESUME_ACTIVE: Branch = "RESUME_ACTIVE"
START_FRESH: Branch = "START_FRESH"
UNKNOWN_STATE: Branch = "UNKNOWN_STATE"


@dataclass(frozen=True)
class Plan:
    branch: Branch
    snapshot: Snapshot
    reason: str = ""

    @property
    def vrf_in_flight(self) -> bool:
        return self.branch == RESUME_ACTIVE and self.snapshot.is_pending

    @property
    def must_wait(self) -> bool:
        return self.branch == RESUME_ACTIVE and self.snapshot.seconds_until_can_act > 0


def plan_next(snapshot: Snapshot) -> Plan:
    if snapshot.has_game and (snapshot.is_terminal or snapshot.can_start_new):
        return Plan(CLAIM_THEN_RESTART, snapshot,
                    f"game {snapshot.game_id} is over ({snapshot.status or snapshot.phase.name})")
    if snapshot.has_game and not snapshot.can_start_new:
        return Plan(RESUME_ACTIVE, snapshot,
                    f"game {snapshot.game_id} in progress ({snapshot.phase.name})")
    if snapshot.can_start_new:
        return Plan(START_FRESH, snapshot, "no previous game")
    return Plan(UNKNOWN_STATE, snapshot, "no game and cannot start one")
