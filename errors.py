"""
errors.py -- Failure categories for one game cycle.

Every cycle failure is a CycleError.  Only ClaimFailed is recoverable; the
orchestrator logs it and keeps going.  Cancelled is a clean stop requested by
the operator and is never reported as an error.
"""

from __future__ import annotations


class CycleError(Exception):
    fatal = True

    def __init__(self, message: str, snapshot=None):
        super().__init__(message)
        self.snapshot = snapshot


class Cancelled(CycleError):
    fatal = False

    def __init__(self, message: str = "Stopped by user"):
        super().__init__(message)


class VrfTimeout(CycleError):
    def __init__(self, label: str, elapsed: float, snapshot=None):
        super().__init__(
            f"{label}: randomness not fulfilled after {elapsed:.0f}s", snapshot,
        )
        self.label = label
        self.elapsed = elapsed


class ActionGateTimeout(CycleError):
    def __init__(self, label: str, elapsed: float, snapshot=None):
        super().__init__(
            f"{label}: still unable to act after {elapsed:.0f}s", snapshot,
        )
        self.label = label
        self.elapsed = elapsed


class ProtocolMismatch(CycleError):
    def __init__(self, expected: str, snapshot):
        status = getattr(snapshot, "status", "") or "?"
        super().__init__(
            f"Transaction succeeded but game didn't enter expected {expected} "
            f"state (status: {status!r})",
            snapshot,
        )
        self.expected = expected


class TransactionFailed(CycleError):
    def __init__(self, action: str, reason: str, tx_ref: str | None = None):
        ref = f" [{tx_ref}]" if tx_ref else ""
        super().__init__(f"{action} transaction failed{ref}: {reason}")
        self.action = action
        self.reason = reason
        self.tx_ref = tx_ref


class UnknownState(CycleError):
    def __init__(self, snapshot, reason: str = ""):
        status = getattr(snapshot, "status", "") or "?"
        msg = f"Unknown game state: {status!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg, snapshot)


class ClaimFailed(CycleError):
    fatal = False

    def __init__(self, game_id: int, reason: str):
        super().__init__(f"claim for game {game_id} failed: {reason}")
        self.game_id = game_id
        self.reason = reason
