"""
run_state.py -- Local progress of one game cycle and the context shared by
the orchestrator and the hand loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import time
from typing import Any, Callable

import config
import events
from errors import Cancelled
from game_stats import GameResult, GameStats
from snapshot import Snapshot

logger = logging.getLogger(__name__)


class GameLoopState(str, Enum):
    IDLE = "IDLE"
    CHECKING_CLAIMABLE = "CHECKING_CLAIMABLE"
    CLAIMING_WINNINGS = "CLAIMING_WINNINGS"
    STARTING_GAME = "STARTING_GAME"
    WAITING_INITIAL_DEAL = "WAITING_INITIAL_DEAL"
    WAITING_TRADING_PERIOD = "WAITING_TRADING_PERIOD"
    PLAYING = "PLAYING"
    WAITING_HIT_VRF = "WAITING_HIT_VRF"
    WAITING_STAND_VRF = "WAITING_STAND_VRF"
    GAME_COMPLETE = "GAME_COMPLETE"
    ERROR = "ERROR"


@dataclass
class RunState:
    phase: GameLoopState = GameLoopState.IDLE
    current_game_id: int | None = None
    stats: GameStats = field(default_factory=GameStats)
    last_result: GameResult | None = None
    last_error: str | None = None
    # Written by the control surface, read at every suspension point.
    cancel_requested: bool = False


@dataclass(frozen=True)
class CycleSettings:
    bet_wei: int = 700_000_000_000_000
    min_bet_wei: int = 690_000_000_000_000
    poll_interval: float = 2.0
    vrf_timeout: float = 300.0
    act_retry_interval: float = 2.0
    action_gate_timeout: float = 600.0
    claim_retries: int = 1
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def from_config(cls) -> "CycleSettings":
        return cls(
            bet_wei=int(config.BET_AMOUNT_WEI),
            min_bet_wei=int(config.MIN_BET_WEI),
            poll_interval=float(config.POLL_INTERVAL_SECONDS),
            vrf_timeout=float(config.VRF_TIMEOUT_SECONDS),
            act_retry_interval=float(config.ACT_RETRY_SECONDS),
            action_gate_timeout=float(config.ACTION_GATE_TIMEOUT_SECONDS),
            claim_retries=max(0, int(config.CLAIM_RETRIES)),
        )


class CycleContext:
    """Everything one cycle needs: gateway, strategy, sink, settings and state."""

    def __init__(
        self,
        gateway,
        strategy,
        sink: events.EventSink,
        settings: CycleSettings,
        run: RunState,
        cancel: Callable[[], bool] | None = None,
    ) -> None:
        self.gateway = gateway
        self.strategy = strategy
        self.sink = sink
        self.settings = settings
        self.run = run
        self._external_cancel = cancel

    def cancelled(self) -> bool:
        if self.run.cancel_requested:
            return True
        return bool(self._external_cancel and self._external_cancel())

    def check_cancel(self) -> None:
        if self.cancelled():
            raise Cancelled()

    def fetch(self) -> Snapshot:
        return self.gateway.fetch_snapshot()

    def set_phase(self, phase: GameLoopState, **data: Any) -> None:
        previous = self.run.phase
        self.run.phase = phase
        logger.info("State: %s -> %s", previous.value, phase.value)
        self.emit(events.STATE_CHANGE, {"from": previous.value, "to": phase.value, **data})

    def emit(self, kind: str, data: dict | None = None) -> events.GameEvent:
        return self.sink.emit(kind, self.run.phase.value, data)
