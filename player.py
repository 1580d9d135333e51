"""
player.py -- The autonomous player as seen by the dashboard and Telegram.

Owns the single RunState, refuses to start a second cycle while one is
running, and lets the operator ask the running cycle to stop.  Cycles run on
a worker thread; the control surface only reads status and flips the cancel
flag.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

import events
from errors import Cancelled, CycleError
from game_cycle import CycleResult, GameCycle
from game_stats import GameStats
from run_state import CycleSettings, GameLoopState, RunState

logger = logging.getLogger(__name__)


class Player:
    def __init__(
        self,
        gateway_factory: Callable[[], Any],
        strategy,
        sink: events.EventSink | None = None,
        settings: CycleSettings | None = None,
    ) -> None:
        self.lock = threading.RLock()
        self.sink = sink or events.EventSink()
        self.strategy = strategy
        self.settings = settings or CycleSettings.from_config()
        self.run = RunState()
        self.gateway = None
        self.last_cycle: CycleResult | None = None
        self._gateway_factory = gateway_factory
        self._running = False
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------ #
    # Control surface
    # ------------------------------------------------------------------ #

    @property
    def is_running(self) -> bool:
        with self.lock:
            return self._running

    def start(self, block: bool = False) -> bool:
        """Begin one cycle unless one is already running.  Returns True if started."""
        with self.lock:
            if self._running:
                logger.info("Start ignored: a cycle is already running")
                return False
            self._running = True
            self.run.cancel_requested = False
            if not block:
                self._thread = threading.Thread(target=self._worker, daemon=True, name="game-cycle")
                self._thread.start()
                return True
        self._worker()
        return True

    def request_cancel(self) -> bool:
        with self.lock:
            if not self._running:
                return False
            if not self.run.cancel_requested:
                logger.info("Stop requested, finishing the current step")
            self.run.cancel_requested = True
            return True

    def wait(self, timeout: float | None = None) -> bool:
        """Join the worker thread.  Returns True once no cycle is running."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        return not self.is_running

    def status(self) -> dict:
        with self.lock:
            run = self.run
            return {
                "is_running": self._running,
                "current_phase": run.phase.value,
                "stats": run.stats.to_dict(),
                "current_game_id": run.current_game_id,
                "last_error": run.last_error,
                "last_result": run.last_result.value if run.last_result else None,
                "cancel_requested": run.cancel_requested,
            }

    def subscribe(self, listener) -> Callable[[], None]:
        return self.sink.subscribe(listener)

    def unsubscribe(self, listener) -> bool:
        return self.sink.unsubscribe(listener)

    def replay(self, since_seq: int = 0) -> list[events.GameEvent]:
        return self.sink.replay(since_seq)

    # ------------------------------------------------------------------ #
    # Cycle execution
    # ------------------------------------------------------------------ #

    def initialize(self) -> None:
        """Create the gateway and seed stats from the contract, once."""
        if self.gateway is not None:
            return
        self.gateway = self._gateway_factory()
        try:
            played, won, lost, pushed, busts = self.gateway.get_player_stats()
        except Exception as e:
            logger.warning("Could not load stats from contract, starting at zero: %s", e)
            return
        self.run.stats = GameStats.from_contract(played, won, lost, pushed, busts)
        logger.info(
            "Loaded stats: %d played, %d won, %d lost, %d pushed, %d busts",
            played, won, lost, pushed, busts,
        )

    def _prepare(self) -> GameCycle:
        try:
            self.initialize()
        except Exception as e:
            err = CycleError(f"gateway setup failed: {e}")
            self.run.last_error = str(err)
            self.run.phase = GameLoopState.ERROR
            self.sink.emit(events.ERROR, self.run.phase.value, {
                "error": str(err),
                "category": type(err).__name__,
                "fatal": True,
            })
            raise err from e
        return GameCycle(self.gateway, self.strategy, self.sink, self.settings, self.run)

    def _worker(self) -> None:
        try:
            cycle = self._prepare()
            self.last_cycle = cycle.run_one_cycle()
        except Cancelled:
            logger.info("Cycle stopped by user")
        except CycleError as e:
            # Already recorded in run.last_error and emitted as an error event.
            logger.debug("Cycle ended with %s", type(e).__name__)
        finally:
            with self.lock:
                self._running = False
                self.run.cancel_requested = False
