import unittest
from collections import deque

from errors import ActionGateTimeout, Cancelled, ProtocolMismatch, VrfTimeout
from fakes import FakeClock, snap
from poller import (
    MISMATCH,
    PENDING,
    RESOLVED,
    poll_until,
    transition_classifier,
    wait_for_trading_period,
)
from snapshot import HandPhase


def _reader(*snapshots):
    queue = deque(snapshots)
    last = [snapshots[-1]]

    def fetch():
        if queue:
            last[0] = queue.popleft()
        return last[0]

    return fetch


class ClassifierTests(unittest.TestCase):
    def test_hit_resolves_only_when_hand_grew(self):
        before = snap(player=("10", "2"))
        classify = transition_classifier(HandPhase.PENDING_HIT, before)
        self.assertEqual(classify(snap(phase=HandPhase.PENDING_HIT, player=("10", "2"))), PENDING)
        self.assertEqual(classify(snap(player=("10", "2", "5"))), RESOLVED)
        self.assertEqual(classify(snap(phase=HandPhase.BUSTED, player=("10", "2", "K"))), RESOLVED)
        self.assertEqual(classify(snap(player=("10", "2"))), MISMATCH)

    def test_stand_never_resolves_to_active(self):
        before = snap(player=("10", "9"))
        classify = transition_classifier(HandPhase.PENDING_STAND, before)
        self.assertEqual(classify(snap(player=("10", "9"))), MISMATCH)
        self.assertEqual(classify(snap(phase=HandPhase.FINISHED, player=("10", "9"))), RESOLVED)

    def test_initial_deal_needs_a_new_game_id(self):
        before = snap(game_id=4, phase=HandPhase.FINISHED)
        classify = transition_classifier(HandPhase.PENDING_INITIAL_DEAL, before)
        self.assertEqual(classify(snap(game_id=4, phase=HandPhase.FINISHED)), MISMATCH)
        self.assertEqual(classify(snap(game_id=5, player=("9", "7"))), RESOLVED)
        self.assertEqual(classify(snap(game_id=5, phase=HandPhase.FINISHED, player=("A", "K"))), RESOLVED)

    def test_resumed_request_accepts_any_resolved_phase(self):
        pending = snap(game_id=2, phase=HandPhase.PENDING_INITIAL_DEAL)
        classify = transition_classifier(HandPhase.PENDING_INITIAL_DEAL, pending)
        self.assertEqual(classify(snap(game_id=2, player=("9", "7"))), RESOLVED)

    def test_rejects_non_pending_expectation(self):
        with self.assertRaises(ValueError):
            transition_classifier(HandPhase.ACTIVE, snap())


class PollUntilTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()

    def _poll(self, fetch, classify, **kw):
        kw.setdefault("interval", 2.0)
        kw.setdefault("timeout", 300.0)
        return poll_until(fetch, classify, sleep=self.clock.sleep, clock=self.clock, label="hit", **kw)

    def test_returns_first_resolved_snapshot(self):
        before = snap(player=("10", "2"))
        fetch = _reader(
            snap(phase=HandPhase.PENDING_HIT, player=("10", "2")),
            snap(phase=HandPhase.PENDING_HIT, player=("10", "2")),
            snap(player=("10", "2", "5")),
        )
        out = self._poll(fetch, transition_classifier(HandPhase.PENDING_HIT, before))
        self.assertEqual(out.player_total, 17)
        self.assertEqual(self.clock.sleeps, [2.0, 2.0])

    def test_first_read_mismatch_fails_fast(self):
        before = snap(player=("10", "9"))
        fetch = _reader(snap(player=("10", "9"), status="Your turn"))
        with self.assertRaises(ProtocolMismatch) as ctx:
            self._poll(fetch, transition_classifier(HandPhase.PENDING_STAND, before))
        self.assertIn("Your turn", str(ctx.exception))
        self.assertEqual(ctx.exception.snapshot.status, "Your turn")
        self.assertEqual(self.clock.sleeps, [])

    def test_later_mismatch_keeps_waiting(self):
        before = snap(player=("10", "9"))
        fetch = _reader(
            snap(phase=HandPhase.PENDING_STAND, player=("10", "9")),
            snap(phase=HandPhase.NONE, player=("10", "9"), status="???"),
            snap(phase=HandPhase.FINISHED, player=("10", "9")),
        )
        out = self._poll(fetch, transition_classifier(HandPhase.PENDING_STAND, before))
        self.assertEqual(out.phase, HandPhase.FINISHED)

    def test_times_out_with_elapsed(self):
        before = snap(player=("10", "2"))
        fetch = _reader(snap(phase=HandPhase.PENDING_HIT, player=("10", "2")))
        with self.assertRaises(VrfTimeout) as ctx:
            self._poll(fetch, transition_classifier(HandPhase.PENDING_HIT, before), timeout=10.0)
        self.assertGreaterEqual(ctx.exception.elapsed, 10.0)
        self.assertEqual(len(self.clock.sleeps), 5)

    def test_cancel_before_first_read(self):
        calls = []

        def fetch():
            calls.append(1)
            return snap()

        with self.assertRaises(Cancelled):
            self._poll(fetch, lambda s: PENDING, cancel=lambda: True)
        self.assertEqual(calls, [])

    def test_cancel_during_wait_stops_within_one_interval(self):
        flag = {"stop": False}

        def sleep(seconds):
            flag["stop"] = True

        before = snap(player=("10", "2"))
        fetch = _reader(snap(phase=HandPhase.PENDING_HIT, player=("10", "2")))
        with self.assertRaises(Cancelled):
            poll_until(fetch, transition_classifier(HandPhase.PENDING_HIT, before),
                       interval=2.0, timeout=300.0, cancel=lambda: flag["stop"],
                       sleep=sleep, clock=self.clock)


class TradingWaitTests(unittest.TestCase):
    def test_waits_until_countdown_reaches_zero(self):
        clock = FakeClock()
        fetch = _reader(
            snap(can_hit=False, can_stand=False, seconds_until_can_act=3),
            snap(can_hit=True, can_stand=True, seconds_until_can_act=0),
        )
        first = snap(can_hit=False, can_stand=False, seconds_until_can_act=5)
        out = wait_for_trading_period(fetch, interval=2.0, sleep=clock.sleep, clock=clock, snapshot=first)
        self.assertEqual(out.seconds_until_can_act, 0)
        self.assertEqual(clock.sleeps, [2.0, 2.0])

    def test_gate_timeout(self):
        clock = FakeClock()
        fetch = _reader(snap(can_hit=False, can_stand=False, seconds_until_can_act=60))
        with self.assertRaises(ActionGateTimeout):
            wait_for_trading_period(fetch, interval=2.0, timeout=10.0, sleep=clock.sleep, clock=clock)

    def test_cancel(self):
        fetch = _reader(snap(seconds_until_can_act=60))
        with self.assertRaises(Cancelled):
            wait_for_trading_period(fetch, cancel=lambda: True, sleep=lambda s: None)


if __name__ == "__main__":
    unittest.main()
