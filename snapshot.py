"""
snapshot.py

Point-in-time view of one player's on-chain blackjack game.

- Snapshots are immutable and rebuilt on every read
- The contract's display struct has no numeric hand state, so the phase is
  derived from its status string
- Card totals come from the contract; hand_value() is the local rule used by
  the simulator and the decision helpers
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
import math
import time


class HandPhase(IntEnum):
    """Hand state with the contract's ordinals."""

    NONE = 0
    PENDING_INITIAL_DEAL = 1
    ACTIVE = 2
    PENDING_HIT = 3
    PENDING_STAND = 4
    BUSTED = 5
    FINISHED = 6


PENDING_PHASES = frozenset({
    HandPhase.PENDING_INITIAL_DEAL,
    HandPhase.PENDING_HIT,
    HandPhase.PENDING_STAND,
})
TERMINAL_PHASES = frozenset({HandPhase.BUSTED, HandPhase.FINISHED})

# Ordered: "dealer busts! you win" is a finished hand, "busted! dealer wins"
# is a player bust.
_STATUS_MARKERS: tuple[tuple[str, HandPhase], ...] = (
    ("dealing", HandPhase.PENDING_INITIAL_DEAL),
    ("drawing", HandPhase.PENDING_HIT),
    ("dealer playing", HandPhase.PENDING_STAND),
    ("you win", HandPhase.FINISHED),
    ("bust", HandPhase.BUSTED),
    ("blackjack", HandPhase.FINISHED),
    ("dealer wins", HandPhase.FINISHED),
    ("push", HandPhase.FINISHED),
    ("finished", HandPhase.FINISHED),
    ("game over", HandPhase.FINISHED),
    ("your turn", HandPhase.ACTIVE),
)


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str
    value: int

    @property
    def is_ace(self) -> bool:
        return self.rank.upper() in ("A", "ACE") or self.value in (1, 11)

    def label(self) -> str:
        return f"{self.rank}{self.suit}"


@dataclass(frozen=True)
class Snapshot:
    game_id: int = 0
    phase: HandPhase = HandPhase.NONE
    status: str = ""
    player_cards: tuple[Card, ...] = ()
    dealer_cards: tuple[Card, ...] = ()
    player_total: int = 0
    dealer_total: int = 0
    can_hit: bool = False
    can_stand: bool = False
    can_start_new: bool = False
    can_cancel_stuck: bool = False
    started_at: int = 0
    last_action_at: int = 0
    trading_period_ends_at: int = 0
    seconds_until_can_act: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def is_pending(self) -> bool:
        return self.phase in PENDING_PHASES

    @property
    def has_game(self) -> bool:
        return self.game_id > 0


def card_points(card: Card) -> int:
    """Raw points for one card, ace counted high."""
    if card.is_ace:
        return 11
    return min(int(card.value), 10)


def hand_value(cards) -> int:
    """
    Blackjack total: aces count 11 and drop to 1, one at a time, while the
    hand would otherwise bust.
    """
    total = 0
    aces = 0
    for card in cards:
        total += card_points(card)
        if card.is_ace:
            aces += 1
    while total > 21 and aces:
        total -= 10
        aces -= 1
    return total


def is_soft(cards) -> bool:
    """True when an ace is still being counted as 11."""
    total = 0
    aces = 0
    for card in cards:
        total += card_points(card)
        if card.is_ace:
            aces += 1
    while total > 21 and aces:
        total -= 10
        aces -= 1
    return aces > 0 and total <= 21


def visible_dealer_total(snapshot: Snapshot) -> int:
    if snapshot.dealer_cards:
        return card_points(snapshot.dealer_cards[0])
    return snapshot.dealer_total


def seconds_until(ends_at: int, now: float | None = None) -> int:
    if now is None:
        now = time.time()
    return max(0, math.ceil(ends_at - now))


def phase_from_status(
    status: str,
    game_id: int,
    can_hit: bool = False,
    can_stand: bool = False,
) -> HandPhase:
    """Map the contract's human-readable status onto a HandPhase."""
    if game_id <= 0:
        return HandPhase.NONE
    text = (status or "").strip().lower()
    for marker, phase in _STATUS_MARKERS:
        if marker in text:
            return phase
    if can_hit or can_stand:
        return HandPhase.ACTIVE
    return HandPhase.NONE


def to_dict(snapshot: Snapshot) -> dict:
    return {
        "game_id": snapshot.game_id,
        "phase": snapshot.phase.name,
        "status": snapshot.status,
        "player_cards": [c.label() for c in snapshot.player_cards],
        "dealer_cards": [c.label() for c in snapshot.dealer_cards],
        "player_total": snapshot.player_total,
        "dealer_total": snapshot.dealer_total,
        "can_hit": snapshot.can_hit,
        "can_stand": snapshot.can_stand,
        "can_start_new": snapshot.can_start_new,
        "can_cancel_stuck": snapshot.can_cancel_stuck,
        "started_at": snapshot.started_at,
        "last_action_at": snapshot.last_action_at,
        "trading_period_ends_at": snapshot.trading_period_ends_at,
        "seconds_until_can_act": snapshot.seconds_until_can_act,
    }


@dataclass(frozen=True)
class Receipt:
    tx_ref: str
    succeeded: bool
    block_number: int | None = None
