"""
events.py -- Ordered, replayable event log for one bot process.

The orchestrator emits every state change, deal, decision, result, claim and
error here.  Listeners (Telegram, the HTTP API, tests) subscribe and receive
events in sequence order.  A bounded history lets late subscribers catch up
with replay(since_seq).
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)

STATE_CHANGE = "state_change"
INITIAL_DEAL = "initial_deal"
DECISION = "decision"
GAME_COMPLETE = "game_complete"
WINNINGS_CLAIMED = "winnings_claimed"
ERROR = "error"

EVENT_KINDS = frozenset({
    STATE_CHANGE, INITIAL_DEAL, DECISION, GAME_COMPLETE, WINNINGS_CLAIMED, ERROR,
})


@dataclass(frozen=True)
class GameEvent:
    seq: int
    kind: str
    phase: str
    timestamp: float
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "seq": self.seq,
            "kind": self.kind,
            "phase": self.phase,
            "timestamp": self.timestamp,
            "data": self.data,
        }


Listener = Callable[[GameEvent], Any]


class EventSink:
    def __init__(self, history_limit: int = 500, clock: Callable[[], float] = time.time) -> None:
        self.lock = threading.RLock()
        # Held across seq assignment and delivery; readers only take self.lock.
        self._deliver_lock = threading.RLock()
        self._history: deque[GameEvent] = deque(maxlen=max(1, int(history_limit)))
        self._listeners: list[Listener] = []
        self._seq = 0
        self._clock = clock

    @property
    def last_seq(self) -> int:
        with self.lock:
            return self._seq

    def emit(self, kind: str, phase: str, data: dict | None = None) -> GameEvent:
        if kind not in EVENT_KINDS:
            raise ValueError(f"unknown event kind: {kind}")
        with self._deliver_lock:
            with self.lock:
                self._seq += 1
                event = GameEvent(self._seq, kind, phase, self._clock(), dict(data or {}))
                self._history.append(event)
                listeners = list(self._listeners)
            for listener in listeners:
                try:
                    listener(event)
                except Exception:
                    logger.exception("Event listener %r failed on %s #%d",
                                     listener, kind, event.seq)
        return event

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self.lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: Listener) -> bool:
        with self.lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    def replay(self, since_seq: int = 0) -> list[GameEvent]:
        with self.lock:
            return [e for e in self._history if e.seq > since_seq]
