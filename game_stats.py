"""
game_stats.py -- Hand results and running statistics.

Results are classified from the terminal snapshot only.  The contract also
reports a human-readable result in its status string; when that disagrees
with our own reading of the totals, the contract wins.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import logging

from snapshot import Snapshot

logger = logging.getLogger(__name__)


class GameResult(str, Enum):
    WIN = "WIN"
    LOSS = "LOSS"
    PUSH = "PUSH"
    BUST = "BUST"
    UNKNOWN = "UNKNOWN"

    @property
    def is_loss(self) -> bool:
        return self in (GameResult.LOSS, GameResult.BUST)


@dataclass(frozen=True)
class GameStats:
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    pushes: int = 0
    busts: int = 0
    win_rate: float = 0.0
    current_streak: int = 0
    longest_win_streak: int = 0
    longest_loss_streak: int = 0

    @classmethod
    def from_contract(cls, played: int, won: int, lost: int, pushed: int, busts: int) -> "GameStats":
        played = int(played)
        won = int(won)
        return cls(
            games_played=played,
            wins=won,
            losses=int(lost),
            pushes=int(pushed),
            busts=int(busts),
            win_rate=(won / played) if played > 0 else 0.0,
        )

    def record(self, result: GameResult) -> "GameStats":
        played = self.games_played + 1
        wins, losses = self.wins, self.losses
        pushes, busts = self.pushes, self.busts
        streak = self.current_streak

        if result == GameResult.WIN:
            wins += 1
            streak = streak + 1 if streak > 0 else 1
        elif result.is_loss:
            losses += 1
            if result == GameResult.BUST:
                busts += 1
            streak = streak - 1 if streak < 0 else -1
        elif result == GameResult.PUSH:
            pushes += 1

        return replace(
            self,
            games_played=played,
            wins=wins,
            losses=losses,
            pushes=pushes,
            busts=busts,
            win_rate=wins / played,
            current_streak=streak,
            longest_win_streak=max(self.longest_win_streak, streak),
            longest_loss_streak=max(self.longest_loss_streak, -streak),
        )

    def to_dict(self) -> dict:
        return {
            "games_played": self.games_played,
            "wins": self.wins,
            "losses": self.losses,
            "pushes": self.pushes,
            "busts": self.busts,
            "win_rate": round(self.win_rate, 4),
            "current_streak": self.current_streak,
            "longest_win_streak": self.longest_win_streak,
            "longest_loss_streak": self.longest_loss_streak,
        }


def result_from_status(status: str) -> GameResult:
    text = (status or "").lower()
    if "you win" in text or "blackjack" in text:
        return GameResult.WIN
    if "bust" in text:
        return GameResult.BUST
    if "dealer wins" in text:
        return GameResult.LOSS
    if "push" in text:
        return GameResult.PUSH
    return GameResult.UNKNOWN


def result_from_totals(player_total: int, dealer_total: int) -> GameResult:
    if player_total > 21:
        return GameResult.BUST
    if dealer_total > 21:
        return GameResult.WIN
    if player_total > dealer_total:
        return GameResult.WIN
    if player_total < dealer_total:
        return GameResult.LOSS
    return GameResult.PUSH


def classify_outcome(snapshot: Snapshot) -> GameResult:
    local = result_from_totals(snapshot.player_total, snapshot.dealer_total)
    reported = result_from_status(snapshot.status)
    if reported == GameResult.UNKNOWN:
        return local
    if reported != local:
        logger.warning(
            "Game %d: totals %d vs %d read as %s but contract reports %r -- using %s",
            snapshot.game_id, snapshot.player_total, snapshot.dealer_total,
            local.value, snapshot.status, reported.value,
        )
    return reported
