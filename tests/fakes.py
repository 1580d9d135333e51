"""Scripted in-memory gateway and clock for cycle tests."""

from collections import deque
from dataclasses import replace

from dry_run_table import make_card
from snapshot import HandPhase, Receipt, Snapshot, hand_value

_DEFAULT_STATUS = {
    HandPhase.NONE: "No active game",
    HandPhase.PENDING_INITIAL_DEAL: "Dealing cards...",
    HandPhase.ACTIVE: "Your turn",
    HandPhase.PENDING_HIT: "Drawing card...",
    HandPhase.PENDING_STAND: "Dealer playing...",
    HandPhase.BUSTED: "Busted! Dealer wins",
    HandPhase.FINISHED: "Game finished",
}


def cards(*ranks):
    return tuple(make_card(r) for r in ranks)


def snap(game_id=1, phase=HandPhase.ACTIVE, player=(), dealer=(), **overrides):
    pc = cards(*player)
    dc = cards(*dealer)
    base = Snapshot(
        game_id=game_id,
        phase=phase,
        status=_DEFAULT_STATUS[phase],
        player_cards=pc,
        dealer_cards=dc,
        player_total=hand_value(pc),
        dealer_total=hand_value(dc),
        can_hit=phase == HandPhase.ACTIVE,
        can_stand=phase == HandPhase.ACTIVE,
        can_start_new=phase in (HandPhase.NONE, HandPhase.BUSTED, HandPhase.FINISHED),
    )
    return replace(base, **overrides)


class FakeClock:
    def __init__(self, start=1_000.0):
        self.now = float(start)
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedChain:
    """
    Gateway double.  Each read returns the next queued snapshot (the last
    one sticks); each submission queues the next scripted sequence for its
    action.
    """

    def __init__(self, initial, reads=(), on_submit=None, claimable=None,
                 stats=(0, 0, 0, 0, 0), failing=None):
        self.current = initial
        self.queue = deque(reads)
        self.on_submit = {k: deque(v) for k, v in (on_submit or {}).items()}
        self.claimable = dict(claimable or {})
        self.stats = stats
        self.failing = dict(failing or {})
        self.submitted = []
        self.log = []
        self.reads = 0
        self._receipts = {}

    def fetch_snapshot(self):
        self.reads += 1
        if self.queue:
            self.current = self.queue.popleft()
        self.log.append(("read", self.current))
        return self.current

    def submit(self, action, value=None):
        self.submitted.append((action, value))
        self.log.append(("submit", action))
        tx = f"0xtx{len(self.submitted)}"
        if self.failing.get(action, 0) > 0:
            self.failing[action] -= 1
            self._receipts[tx] = False
            return tx
        self._receipts[tx] = True
        script = self.on_submit.get(action)
        if script:
            self.queue.extend(script.popleft())
        if action == "claim":
            self.claimable[value] = 0
        return tx

    def await_confirmation(self, tx_ref):
        return Receipt(tx_ref, self._receipts.get(tx_ref, True), len(self.submitted))

    def get_claimable_amount(self, game_id):
        return self.claimable.get(game_id, 0)

    def get_player_stats(self):
        return self.stats

    def actions(self):
        return [a for a, _ in self.submitted]
