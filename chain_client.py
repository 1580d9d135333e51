"""
chain_client.py -- web3 wrapper around the blackjack contract.

Handles:
  - Reading the player's game (getGameDisplay) into an immutable Snapshot
  - Submitting startGame / hit / stand / claimWinnings
  - Waiting for receipts and turning reverts into TransactionFailed
  - Claimable amount and lifetime stats lookups

SIGNING:
  When PRIVATE_KEY is set, transactions are built, signed locally and sent
  raw.  Otherwise they are sent from PLAYER_ADDRESS via eth_sendTransaction
  and the node must manage that account.

All wei amounts are Python ints.
"""

from __future__ import annotations

import json
import logging
import threading
import time

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

import config
from errors import TransactionFailed
from snapshot import Card, Receipt, Snapshot, phase_from_status, seconds_until

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# ABI fragment -- only the functions the bot calls
# ---------------------------------------------------------------------------

_CARD = {
    "components": [
        {"name": "rank", "type": "string"},
        {"name": "suit", "type": "string"},
        {"name": "value", "type": "uint8"},
    ],
    "type": "tuple[]",
}

# Field order of the GameDisplay struct; also used to read tuple results.
GAME_DISPLAY_FIELDS = (
    ("status", "string"),
    ("playerCards", None),
    ("playerTotal", "uint8"),
    ("dealerCards", None),
    ("dealerTotal", "uint8"),
    ("canHit", "bool"),
    ("canStand", "bool"),
    ("canStartNew", "bool"),
    ("canCancelStuck", "bool"),
    ("canAdminResolve", "bool"),
    ("startedAt", "uint256"),
    ("lastActionAt", "uint256"),
    ("tradingPeriodEnds", "uint256"),
    ("secondsUntilCanAct", "uint256"),
    ("gameId", "uint256"),
)


def _display_components() -> list:
    out = []
    for name, typ in GAME_DISPLAY_FIELDS:
        if typ is None:
            out.append({"name": name, **_CARD})
        else:
            out.append({"name": name, "type": typ})
    return out


def _fn(name, inputs=(), outputs=(), mutability="view") -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": list(outputs),
    }


BLACKJACK_ABI = [
    _fn("getGameDisplay", [("player", "address")], [{
        "name": "",
        "type": "tuple",
        "components": _display_components(),
    }]),
    _fn("getClaimableAmount", [("gameId", "uint256"), ("player", "address")],
        [{"name": "", "type": "uint256"}]),
    _fn("getStats", [("player", "address")], [
        {"name": "gamesPlayed", "type": "uint256"},
        {"name": "gamesWon", "type": "uint256"},
        {"name": "gamesLost", "type": "uint256"},
        {"name": "gamesPushed", "type": "uint256"},
        {"name": "playerBusts", "type": "uint256"},
    ]),
    _fn("startGame", mutability="payable"),
    _fn("hit", mutability="nonpayable"),
    _fn("stand", mutability="nonpayable"),
    _fn("claimWinnings", [("gameId", "uint256")], mutability="nonpayable"),
]


def load_abi(path: str) -> list:
    """Load an ABI from a JSON file (bare list or a {"abi": [...]} artifact)."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("abi", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: no ABI list found")
    return data


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _field(raw, index: int, name: str, default=None):
    """Read a struct field from a dict, an attribute-style result or a tuple."""
    if isinstance(raw, dict):
        return raw.get(name, default)
    if hasattr(raw, name):
        return getattr(raw, name)
    try:
        return raw[index]
    except (IndexError, TypeError, KeyError):
        return default


def _cards(raw) -> tuple[Card, ...]:
    cards = []
    for item in raw or ():
        cards.append(Card(
            rank=str(_field(item, 0, "rank", "")),
            suit=str(_field(item, 1, "suit", "")),
            value=int(_field(item, 2, "value", 0) or 0),
        ))
    return tuple(cards)


def snapshot_from_display(raw, now: float | None = None) -> Snapshot:
    """Normalize a getGameDisplay result into a Snapshot."""
    idx = {name: i for i, (name, _) in enumerate(GAME_DISPLAY_FIELDS)}

    def get(name, default=None):
        return _field(raw, idx[name], name, default)

    status = str(get("status", "") or "")
    game_id = int(get("gameId", 0) or 0)
    can_hit = bool(get("canHit", False))
    can_stand = bool(get("canStand", False))
    trading_ends = int(get("tradingPeriodEnds", 0) or 0)
    wait = get("secondsUntilCanAct")
    wait = int(wait) if wait is not None else seconds_until(trading_ends, now)

    return Snapshot(
        game_id=game_id,
        phase=phase_from_status(status, game_id, can_hit, can_stand),
        status=status,
        player_cards=_cards(get("playerCards")),
        dealer_cards=_cards(get("dealerCards")),
        player_total=int(get("playerTotal", 0) or 0),
        dealer_total=int(get("dealerTotal", 0) or 0),
        can_hit=can_hit,
        can_stand=can_stand,
        can_start_new=bool(get("canStartNew", False)),
        can_cancel_stuck=bool(get("canCancelStuck", False)),
        started_at=int(get("startedAt", 0) or 0),
        last_action_at=int(get("lastActionAt", 0) or 0),
        trading_period_ends_at=trading_ends,
        seconds_until_can_act=max(0, wait),
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class ChainClient:
    """Gateway to one player's game on the blackjack contract."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        player_address: str = "",
        private_key: str = "",
        abi: list | None = None,
        receipt_timeout: float = 120,
        w3: Web3 | None = None,
    ) -> None:
        if not contract_address:
            raise ValueError("BLACKJACK_CONTRACT_ADDRESS is not set")
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 20}))
        self.account = self.w3.eth.account.from_key(private_key) if private_key else None
        if not player_address and self.account is not None:
            player_address = self.account.address
        if not player_address:
            raise ValueError("PLAYER_ADDRESS (or PRIVATE_KEY) is not set")
        self.player = Web3.to_checksum_address(player_address)
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=abi or BLACKJACK_ABI,
        )
        self.receipt_timeout = receipt_timeout
        # Serializes nonce lookup + send for locally signed transactions.
        self._send_lock = threading.Lock()

    @classmethod
    def from_config(cls) -> "ChainClient":
        abi = load_abi(config.BLACKJACK_ABI_PATH) if config.BLACKJACK_ABI_PATH else None
        return cls(
            rpc_url=config.RPC_URL,
            contract_address=config.BLACKJACK_CONTRACT_ADDRESS,
            player_address=config.PLAYER_ADDRESS,
            private_key=config.PRIVATE_KEY,
            abi=abi,
            receipt_timeout=config.TX_RECEIPT_TIMEOUT_SECONDS,
        )

    # -- reads -------------------------------------------------------------

    def fetch_snapshot(self) -> Snapshot:
        raw = self.contract.functions.getGameDisplay(self.player).call()
        return snapshot_from_display(raw, time.time())

    def get_claimable_amount(self, game_id: int) -> int:
        return int(self.contract.functions.getClaimableAmount(int(game_id), self.player).call())

    def get_player_stats(self) -> tuple[int, int, int, int, int]:
        played, won, lost, pushed, busts = self.contract.functions.getStats(self.player).call()
        return int(played), int(won), int(lost), int(pushed), int(busts)

    # -- writes ------------------------------------------------------------

    def _function(self, action: str, value: int | None):
        fns = self.contract.functions
        if action == "start":
            return fns.startGame(), int(value or 0)
        if action == "hit":
            return fns.hit(), 0
        if action == "stand":
            return fns.stand(), 0
        if action == "claim":
            if value is None:
                raise ValueError("claim needs a game id")
            return fns.claimWinnings(int(value)), 0
        raise ValueError(f"unknown action: {action}")

    def submit(self, action: str, value: int | None = None) -> str:
        fn, wei = self._function(action, value)
        params = {"from": self.player, "value": wei}
        try:
            if self.account is None:
                tx_hash = fn.transact(params)
            else:
                with self._send_lock:
                    params["nonce"] = self.w3.eth.get_transaction_count(
                        self.account.address, "pending",
                    )
                    tx = fn.build_transaction(params)
                    signed = self.account.sign_transaction(tx)
                    raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction", None)
                    if raw is None:
                        raise RuntimeError("SignedTransaction missing raw transaction bytes")
                    tx_hash = self.w3.eth.send_raw_transaction(raw)
        except ContractLogicError as e:
            raise TransactionFailed(action, f"reverted: {e}") from e
        return Web3.to_hex(tx_hash)

    def await_confirmation(self, tx_ref: str) -> Receipt:
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_ref, timeout=self.receipt_timeout)
        except TimeExhausted as e:
            raise TransactionFailed("confirm", f"no receipt after {self.receipt_timeout}s", tx_ref) from e
        return Receipt(
            tx_ref=tx_ref,
            succeeded=int(receipt["status"]) == 1,
            block_number=int(receipt["blockNumber"]),
        )
