"""
dry_run_table.py -- In-process stand-in for the blackjack contract.

Used when DRY_RUN is True.  It speaks the same gateway interface as
ChainClient and mimics the parts of the contract the bot cares about:

  - every start / hit / stand waits for a delayed "VRF" callback
  - a trading period after each deal or hit blocks further moves
  - winnings accrue as a claimable balance that must be claimed before the
    next game can start
  - illegal moves revert (TransactionFailed) like a failed gas estimate

Nothing here touches the network.  Time comes from an injectable clock.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Callable

import config
from errors import TransactionFailed
from snapshot import Card, HandPhase, Receipt, Snapshot, hand_value, seconds_until

logger = logging.getLogger(__name__)

RANKS = ("A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K")
SUITS = ("♠", "♥", "♦", "♣")

_PENDING_STATUS = {
    HandPhase.PENDING_INITIAL_DEAL: "Dealing cards...",
    HandPhase.PENDING_HIT: "Drawing card...",
    HandPhase.PENDING_STAND: "Dealer playing...",
}


def make_card(rank: str, suit: str = "♠") -> Card:
    if rank == "A":
        value = 11
    elif rank in ("J", "Q", "K"):
        value = 10
    else:
        value = int(rank)
    return Card(rank, suit, value)


class SimulatedTable:
    def __init__(
        self,
        vrf_delay: float = 4.0,
        trading_period: float = 6.0,
        min_bet_wei: int = 690_000_000_000_000,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        deck=None,
    ) -> None:
        self.vrf_delay = vrf_delay
        self.trading_period = trading_period
        self.min_bet_wei = min_bet_wei
        self.rng = rng or random.Random()
        # Optional fixed draw order (ranks), consumed before falling back to rng.
        self.deck = list(deck or ())
        self.clock = clock
        self.lock = threading.Lock()

        self.game_id = 0
        self.phase = HandPhase.NONE
        self.status = "No active game"
        self.player: list[Card] = []
        self.dealer: list[Card] = []
        self.wager = 0
        self.started_at = 0
        self.last_action_at = 0
        self.trading_ends = 0.0
        self.pending_until: float | None = None
        self.claimable: dict[int, int] = {}
        # gamesPlayed, gamesWon, gamesLost, gamesPushed, playerBusts
        self.stats = [0, 0, 0, 0, 0]
        self._block = 0
        self._receipts: dict[str, Receipt] = {}

    @classmethod
    def from_config(cls) -> "SimulatedTable":
        return cls(
            vrf_delay=config.DRY_RUN_VRF_DELAY_SECONDS,
            trading_period=config.DRY_RUN_TRADING_PERIOD_SECONDS,
            min_bet_wei=config.MIN_BET_WEI,
        )

    # -- gateway interface -------------------------------------------------

    def fetch_snapshot(self) -> Snapshot:
        with self.lock:
            self._settle()
            return self._snapshot()

    def get_claimable_amount(self, game_id: int) -> int:
        with self.lock:
            return self.claimable.get(int(game_id), 0)

    def get_player_stats(self) -> tuple[int, int, int, int, int]:
        with self.lock:
            return tuple(self.stats)

    def submit(self, action: str, value: int | None = None) -> str:
        with self.lock:
            self._settle()
            if action == "start":
                self._start(int(value or 0))
            elif action in ("hit", "stand"):
                self._act(action)
            elif action == "claim":
                self._claim(int(value or 0))
            else:
                raise ValueError(f"unknown action: {action}")
            self._block += 1
            tx_ref = f"0x{self._block:064x}"
            self._receipts[tx_ref] = Receipt(tx_ref, True, self._block)
            logger.debug("[DRY RUN] %s -> %s", action, self.status)
            return tx_ref

    def await_confirmation(self, tx_ref: str) -> Receipt:
        with self.lock:
            return self._receipts[tx_ref]

    # -- contract rules ----------------------------------------------------

    def _can_start_new(self) -> bool:
        idle = self.phase in (HandPhase.NONE, HandPhase.BUSTED, HandPhase.FINISHED)
        return idle and self.claimable.get(self.game_id, 0) == 0

    def _can_act(self) -> bool:
        return self.phase == HandPhase.ACTIVE and self.clock() >= self.trading_ends

    def _revert(self, action: str, reason: str):
        raise TransactionFailed(action, f"reverted: {reason}")

    def _start(self, wager: int) -> None:
        if not self._can_start_new():
            self._revert("start", "game in progress or winnings unclaimed")
        if wager < self.min_bet_wei:
            self._revert("start", "bet below minimum")
        now = self.clock()
        self.game_id += 1
        self.wager = wager
        self.player, self.dealer = [], []
        self.started_at = self.last_action_at = int(now)
        self.trading_ends = 0.0
        self._pend(HandPhase.PENDING_INITIAL_DEAL, now)

    def _act(self, action: str) -> None:
        if not self._can_act():
            self._revert(action, "cannot act now")
        now = self.clock()
        self.last_action_at = int(now)
        phase = HandPhase.PENDING_HIT if action == "hit" else HandPhase.PENDING_STAND
        self._pend(phase, now)

    def _claim(self, game_id: int) -> None:
        if self.claimable.get(game_id, 0) <= 0:
            self._revert("claim", "nothing to claim")
        self.claimable[game_id] = 0

    def _pend(self, phase: HandPhase, now: float) -> None:
        self.phase = phase
        self.status = _PENDING_STATUS[phase]
        self.pending_until = now + self.vrf_delay

    def _draw(self) -> Card:
        if self.deck:
            return make_card(self.deck.pop(0), self.rng.choice(SUITS))
        return make_card(self.rng.choice(RANKS), self.rng.choice(SUITS))

    def _settle(self) -> None:
        """Deliver the VRF callback once its delay has passed."""
        if self.pending_until is None or self.clock() < self.pending_until:
            return
        self.pending_until = None
        now = self.clock()
        if self.phase == HandPhase.PENDING_INITIAL_DEAL:
            self.player = [self._draw(), self._draw()]
            self.dealer = [self._draw()]
            if hand_value(self.player) == 21:
                self.dealer.append(self._draw())
                if hand_value(self.dealer) == 21:
                    self._finish("Push", payout=self.wager)
                else:
                    self._finish("Blackjack! You win", payout=self.wager * 5 // 2)
                return
            self._open(now)
        elif self.phase == HandPhase.PENDING_HIT:
            self.player.append(self._draw())
            if hand_value(self.player) > 21:
                self.phase = HandPhase.BUSTED
                self.status = "Busted! Dealer wins"
                self.stats[0] += 1
                self.stats[2] += 1
                self.stats[4] += 1
                return
            self._open(now)
        elif self.phase == HandPhase.PENDING_STAND:
            while hand_value(self.dealer) < 17:
                self.dealer.append(self._draw())
            mine, theirs = hand_value(self.player), hand_value(self.dealer)
            if theirs > 21:
                self._finish("Dealer busts! You win", payout=self.wager * 2)
            elif mine > theirs:
                self._finish("You win!", payout=self.wager * 2)
            elif mine < theirs:
                self._finish("Dealer wins")
            else:
                self._finish("Push", payout=self.wager)

    def _open(self, now: float) -> None:
        self.phase = HandPhase.ACTIVE
        self.status = "Your turn"
        self.trading_ends = now + self.trading_period

    def _finish(self, status: str, payout: int = 0) -> None:
        self.phase = HandPhase.FINISHED
        self.status = status
        self.stats[0] += 1
        if payout > self.wager:
            self.stats[1] += 1
        elif payout == self.wager:
            self.stats[3] += 1
        else:
            self.stats[2] += 1
        if payout:
            self.claimable[self.game_id] = payout

    def _snapshot(self) -> Snapshot:
        now = self.clock()
        active = self.phase == HandPhase.ACTIVE
        return Snapshot(
            game_id=self.game_id,
            phase=self.phase,
            status=self.status,
            player_cards=tuple(self.player),
            dealer_cards=tuple(self.dealer),
            player_total=hand_value(self.player),
            dealer_total=hand_value(self.dealer),
            can_hit=self._can_act(),
            can_stand=self._can_act(),
            can_start_new=self._can_start_new(),
            can_cancel_stuck=False,
            started_at=self.started_at,
            last_action_at=self.last_action_at,
            trading_period_ends_at=int(self.trading_ends),
            seconds_until_can_act=seconds_until(self.trading_ends, now) if active else 0,
        )
