"""
config.py -- All tunable parameters for the VRF blackjack bot.

Every value here is loaded from environment variables so you can configure
the bot via your host's dashboard (or a local .env file) without touching code.

HOW TO READ THIS FILE:
  Each config value has a comment explaining:
    1. What it controls
    2. What happens if you raise/lower it
    3. The default and why it was chosen
"""

import os
import logging

# ---------------------------------------------------------------------------
# Helper: read an env var with a typed default
# ---------------------------------------------------------------------------

def _env(name, default, cast=str):
    """
    Read an environment variable and cast it to the right type.
    If the var is missing or empty, return *default* (already the right type).
    """
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        # Special handling for booleans -- "true"/"1"/"yes" are all truthy
        if cast is bool:
            return raw.strip().lower() in ("true", "1", "yes")
        return cast(raw)
    except (ValueError, TypeError):
        return default


# ---------------------------------------------------------------------------
# Chain access  (NEVER hard-code keys -- always use env vars)
# ---------------------------------------------------------------------------

# JSON-RPC endpoint of the chain the blackjack contract lives on.
RPC_URL: str = _env("RPC_URL", "https://mainnet.base.org")

# Address of the deployed blackjack contract.
BLACKJACK_CONTRACT_ADDRESS: str = _env("BLACKJACK_CONTRACT_ADDRESS", "")

# The identity whose game we play.  AI_WALLET is accepted as an alias.
PLAYER_ADDRESS: str = _env("PLAYER_ADDRESS", _env("AI_WALLET", ""))

# Optional local signer.  When empty, transactions are sent from
# PLAYER_ADDRESS and the node is expected to manage that account.
PRIVATE_KEY: str = _env("PRIVATE_KEY", "")

# Optional path to a full contract ABI JSON file.  When empty, the built-in
# fragment in chain_client.py is used.
BLACKJACK_ABI_PATH: str = _env("BLACKJACK_ABI_PATH", "")

# Seconds to wait for a transaction receipt before giving up.
TX_RECEIPT_TIMEOUT_SECONDS: int = _env("TX_RECEIPT_TIMEOUT_SECONDS", 120, int)

# ---------------------------------------------------------------------------
# DRY RUN -- the most important toggle
# ---------------------------------------------------------------------------

# When True, the bot:
#   - Plays against an in-process simulated contract (dry_run_table.py)
#   - Simulates the VRF callback delay and the trading period
#   - Sends nothing to the chain, spends no wei
#   - Tags Telegram messages with [DRY RUN]
#
# Set to False only after watching a few simulated games end to end.
DRY_RUN: bool = _env("DRY_RUN", False, bool)

# Simulated VRF callback delay (seconds) and post-deal trading period.
DRY_RUN_VRF_DELAY_SECONDS: float = _env("DRY_RUN_VRF_DELAY_SECONDS", 4.0, float)
DRY_RUN_TRADING_PERIOD_SECONDS: float = _env("DRY_RUN_TRADING_PERIOD_SECONDS", 6.0, float)

# ---------------------------------------------------------------------------
# Wager
# ---------------------------------------------------------------------------

# Wei sent with every startGame() call.  Python ints hold this exactly;
# never convert wei amounts to float.
#   Default: 0.0007 ETH.
BET_AMOUNT_WEI: int = _env("BET_AMOUNT_WEI", 700_000_000_000_000, int)

# The contract rejects wagers below this amount.  Checked locally before
# submitting so a misconfigured bet fails fast instead of burning gas.
MIN_BET_WEI: int = _env("MIN_BET_WEI", 690_000_000_000_000, int)

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

# How often (seconds) to re-read the game while a VRF request is in flight.
#   Lower = snappier reaction, more RPC calls.  2s matches block times.
POLL_INTERVAL_SECONDS: float = _env("POLL_INTERVAL_SECONDS", 2.0, float)

# Ceiling on how long a single randomness request may take before the
# cycle fails with VrfTimeout.  5 minutes covers congested VRF providers.
VRF_TIMEOUT_SECONDS: float = _env("VRF_TIMEOUT_SECONDS", 300.0, float)

# Re-read interval while the contract says we can neither hit nor stand
# (trading period or action cooldown).
ACT_RETRY_SECONDS: float = _env("ACT_RETRY_SECONDS", 2.0, float)

# Ceiling on how long we wait for a trading-period / cooldown gate to open.
ACTION_GATE_TIMEOUT_SECONDS: float = _env("ACTION_GATE_TIMEOUT_SECONDS", 600.0, float)

# Extra claim attempts after the first one fails.  Claim failures never
# abort the cycle, they only surface as warnings.
CLAIM_RETRIES: int = _env("CLAIM_RETRIES", 1, int)

# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------

# Which decision function plays the hand:
#   "threshold" -- hit below STAND_THRESHOLD, stand otherwise
#   "basic"     -- hit/stand basic-strategy table (uses the dealer upcard)
#   "llm"       -- ask an OpenAI-compatible model, fall back to threshold
STRATEGY: str = _env("STRATEGY", "threshold").strip().lower()

# Threshold strategy cut-off.  17 mirrors the dealer's own rule.
STAND_THRESHOLD: int = _env("STAND_THRESHOLD", 17, int)

# OpenAI-compatible endpoint for the "llm" strategy.
GROQ_API_KEY: str = _env("GROQ_API_KEY", "")
AI_API_URL: str = _env("AI_API_URL", "https://api.groq.com/openai/v1/chat/completions")
AI_API_KEY: str = _env("AI_API_KEY", GROQ_API_KEY)
AI_MODEL: str = _env("AI_MODEL", "llama-3.3-70b-versatile")
AI_TIMEOUT_SECONDS: float = _env("AI_TIMEOUT_SECONDS", 20.0, float)

# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------

# When True, the main loop starts a new cycle after each one finishes.
# Each cycle is still a single game; stop it with /stop or the dashboard.
CONTINUOUS_PLAY: bool = _env("CONTINUOUS_PLAY", False, bool)

# Pause between continuous cycles (seconds).
CYCLE_PAUSE_SECONDS: float = _env("CYCLE_PAUSE_SECONDS", 10.0, float)

# How many past events the sink keeps for /api/events replay.
EVENT_HISTORY_LIMIT: int = _env("EVENT_HISTORY_LIMIT", 500, int)

# Main loop tick (seconds) for Telegram polling and continuous play.
MAIN_LOOP_SECONDS: float = _env("MAIN_LOOP_SECONDS", 5.0, float)

# ---------------------------------------------------------------------------
# Telegram
# ---------------------------------------------------------------------------

# Telegram bot token (from @BotFather) and your chat ID (from @userinfobot).
TELEGRAM_BOT_TOKEN: str = _env("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_CHAT_ID: str = _env("TELEGRAM_CHAT_ID", "")

# ---------------------------------------------------------------------------
# Logging / HTTP
# ---------------------------------------------------------------------------

LOG_LEVEL: str = _env("LOG_LEVEL", "INFO")

# Port for /api/status, /api/events and /api/action.  0 disables the server.
HEALTH_PORT: int = _env("HEALTH_PORT", _env("PORT", 8080, int), int)


# ---------------------------------------------------------------------------
# Startup banner -- printed when the bot launches
# ---------------------------------------------------------------------------

def _eth(wei: int) -> str:
    return f"{wei / 10**18:.6f} ETH"


def print_banner():
    """Print a clear summary of all active settings so you know what's running."""
    mode = "DRY RUN (simulated table)" if DRY_RUN else "LIVE (real wagers!)"
    lines = [
        "",
        "=" * 60,
        "  VRF BLACKJACK BOT",
        "=" * 60,
        f"  Mode:            {mode}",
        f"  Strategy:        {STRATEGY} (stand on {STAND_THRESHOLD})",
        f"  Wager:           {BET_AMOUNT_WEI} wei ({_eth(BET_AMOUNT_WEI)})",
        f"  Minimum wager:   {MIN_BET_WEI} wei",
        f"  Poll interval:   {POLL_INTERVAL_SECONDS}s",
        f"  VRF timeout:     {VRF_TIMEOUT_SECONDS}s",
        f"  Continuous play: {'on' if CONTINUOUS_PLAY else 'off'}",
        f"  Health port:     {HEALTH_PORT}",
        f"  Log level:       {LOG_LEVEL}",
        f"  RPC:             {RPC_URL}",
        f"  Contract:        {BLACKJACK_CONTRACT_ADDRESS or 'NOT SET'}",
        f"  Player:          {PLAYER_ADDRESS or 'NOT SET'}",
        f"  Signer:          {'local key' if PRIVATE_KEY else 'node-managed'}",
        f"  AI key:          {'configured' if AI_API_KEY else 'NOT SET'}",
        f"  Telegram:        {'configured' if TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID else 'NOT SET'}",
        "=" * 60,
        "",
    ]
    if not DRY_RUN and not (BLACKJACK_CONTRACT_ADDRESS and PLAYER_ADDRESS):
        logging.getLogger(__name__).warning(
            "Live mode without contract/player address -- cycles will fail",
        )
    print("\n".join(lines))
