import threading
import unittest

import events


class EventSinkTests(unittest.TestCase):
    def test_sequence_numbers_strictly_increase(self):
        sink = events.EventSink()
        a = sink.emit(events.STATE_CHANGE, "IDLE", {"to": "CHECKING_CLAIMABLE"})
        b = sink.emit(events.DECISION, "PLAYING", {"action": "hit"})
        self.assertEqual((a.seq, b.seq), (1, 2))
        self.assertEqual(sink.last_seq, 2)

    def test_listeners_see_events_in_emission_order(self):
        sink = events.EventSink()
        seen = []
        sink.subscribe(lambda e: seen.append(e.seq))
        for _ in range(5):
            sink.emit(events.STATE_CHANGE, "PLAYING")
        self.assertEqual(seen, [1, 2, 3, 4, 5])

    def test_concurrent_emitters_deliver_in_seq_order(self):
        sink = events.EventSink(history_limit=1000)
        seen = []
        sink.subscribe(lambda e: seen.append(e.seq))

        def worker():
            for _ in range(100):
                sink.emit(events.DECISION, "PLAYING")

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(seen, list(range(1, 401)))

    def test_unsubscribe_stops_delivery(self):
        sink = events.EventSink()
        seen = []
        unsubscribe = sink.subscribe(seen.append)
        sink.emit(events.ERROR, "ERROR", {"error": "x"})
        unsubscribe()
        sink.emit(events.ERROR, "ERROR", {"error": "y"})
        self.assertEqual(len(seen), 1)
        self.assertFalse(sink.unsubscribe(seen.append))

    def test_failing_listener_does_not_block_others(self):
        sink = events.EventSink()
        seen = []

        def broken(_event):
            raise RuntimeError("boom")

        sink.subscribe(broken)
        sink.subscribe(seen.append)
        with self.assertLogs("events", level="ERROR"):
            sink.emit(events.GAME_COMPLETE, "GAME_COMPLETE", {"result": "WIN"})
        self.assertEqual(len(seen), 1)

    def test_slow_listener_does_not_block_readers(self):
        sink = events.EventSink()
        entered = threading.Event()
        release = threading.Event()

        def slow(_event):
            entered.set()
            release.wait(5)

        sink.subscribe(slow)
        emitter = threading.Thread(target=sink.emit, args=(events.GAME_COMPLETE, "GAME_COMPLETE"))
        emitter.start()
        self.assertTrue(entered.wait(5))

        seen = []
        reader = threading.Thread(target=lambda: seen.append((sink.last_seq, len(sink.replay(0)))))
        reader.start()
        reader.join(1)
        try:
            self.assertFalse(reader.is_alive())
            self.assertEqual(seen, [(1, 1)])
        finally:
            release.set()
            emitter.join(5)
            reader.join(5)

    def test_replay_since_and_history_limit(self):
        sink = events.EventSink(history_limit=3)
        for _ in range(5):
            sink.emit(events.STATE_CHANGE, "PLAYING")
        self.assertEqual([e.seq for e in sink.replay()], [3, 4, 5])
        self.assertEqual([e.seq for e in sink.replay(4)], [5])
        self.assertEqual(sink.replay(5), [])

    def test_rejects_unknown_kind(self):
        with self.assertRaises(ValueError):
            events.EventSink().emit("bogus", "IDLE")

    def test_event_payload_is_copied(self):
        sink = events.EventSink(clock=lambda: 42.0)
        data = {"a": 1}
        event = sink.emit(events.DECISION, "PLAYING", data)
        data["a"] = 2
        self.assertEqual(event.data, {"a": 1})
        self.assertEqual(event.to_dict()["timestamp"], 42.0)


if __name__ == "__main__":
    unittest.main()
