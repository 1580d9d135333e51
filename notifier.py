"""
notifier.py -- Telegram side of the blackjack bot.

Outgoing: startup / shutdown notices, one message per finished game, claimed
winnings, and cycle errors.  Incoming: slash commands from the configured
chat (/play, /stop, /status, /help), polled from the main loop.

Configure with TELEGRAM_BOT_TOKEN (from @BotFather) and TELEGRAM_CHAT_ID.
Either one missing turns the whole module into a no-op.

Talks to the Bot API with plain urllib.  Nothing in here raises: a failed
send is a log line, never a failed game.
"""

import html
import json
import logging
import urllib.error
import urllib.request

import config
import events

logger = logging.getLogger(__name__)

BOT_API_URL = "https://api.telegram.org/bot{token}/{method}"

# Highest update_id seen so far; getUpdates resumes after it.
_update_offset = 0

_RESULT_EMOJI = {
    "WIN": "🏆",
    "LOSS": "📉",
    "BUST": "💥",
    "PUSH": "🤝",
}


def _telegram_api(method: str, payload: dict) -> dict:
    """
    POST *payload* to a Bot API method.

    Returns the decoded response when Telegram answers ok=true, otherwise {}.
    """
    token = config.TELEGRAM_BOT_TOKEN
    if not token:
        logger.debug("No Telegram token, not calling %s", method)
        return {}

    req = urllib.request.Request(
        BOT_API_URL.format(token=token, method=method),
        data=json.dumps(payload).encode("utf-8"),
        headers={
            "Content-Type": "application/json",
            "User-Agent": "VRFBlackjackBot/1.0",
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=10) as resp:
            body = json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        detail = e.read().decode("utf-8", errors="replace")
        logger.warning("Telegram %s rejected (HTTP %d): %s", method, e.code, detail[:200])
        return {}
    except Exception as e:
        logger.warning("Telegram %s unreachable: %s", method, e)
        return {}

    if not body.get("ok"):
        logger.warning("Telegram %s answered ok=false: %s", method, body)
        return {}
    return body


def _send_message(text: str, parse_mode: str = "HTML") -> bool:
    """Send *text* to the configured chat.  True on success."""
    if not config.TELEGRAM_CHAT_ID:
        logger.debug("No Telegram chat id, dropping message")
        return False
    sent = _telegram_api("sendMessage", {
        "chat_id": config.TELEGRAM_CHAT_ID,
        "text": text,
        "parse_mode": parse_mode,
        "disable_web_page_preview": True,
    })
    return bool(sent)


def poll_commands() -> list:
    """
    Fetch new slash commands from the configured chat without blocking.

    Messages from any other chat are dropped with a warning; plain text is
    ignored.  Returns [{"text": str, "message_id": int}, ...].
    """
    global _update_offset

    params = {"timeout": 0, "allowed_updates": ["message"]}
    if _update_offset > 0:
        params["offset"] = _update_offset + 1

    response = _telegram_api("getUpdates", params)
    commands = []
    for update in response.get("result", []):
        _update_offset = max(_update_offset, update.get("update_id", 0))
        msg = update.get("message") or {}
        if not msg:
            continue

        sender = str((msg.get("chat") or {}).get("id", ""))
        if sender != str(config.TELEGRAM_CHAT_ID):
            logger.warning("Dropping command from unknown chat %s", sender)
            continue

        text = msg.get("text") or ""
        if text.startswith("/"):
            commands.append({"text": text, "message_id": msg.get("message_id", 0)})
    return commands


def send_reply(text: str) -> bool:
    return _send_message(html.escape(text))


def _prefix() -> str:
    return "[DRY RUN] " if config.DRY_RUN else ""


def _eth(wei) -> str:
    return f"{int(wei) / 10**18:.6f} ETH"


def _record(stats: dict) -> str:
    return f"{stats.get('wins', 0)}W / {stats.get('losses', 0)}L / {stats.get('pushes', 0)}P"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def notify_startup(stats: dict):
    mode = "DRY RUN (simulated table)" if config.DRY_RUN else "LIVE"
    _send_message(
        f"🃏 <b>{_prefix()}Blackjack Bot Started</b>\n\n"
        f"Mode: {mode}\n"
        f"Strategy: {config.STRATEGY}\n"
        f"Wager: {_eth(config.BET_AMOUNT_WEI)}\n"
        f"Continuous play: {'on' if config.CONTINUOUS_PLAY else 'off'}\n"
        f"Record: {_record(stats)}"
    )


def notify_shutdown(reason: str = "Manual"):
    _send_message(f"🛑 <b>{_prefix()}Blackjack Bot Stopped</b>\n\nReason: {html.escape(str(reason))}")


def notify_game_complete(data: dict):
    """One message per finished hand, with the running record."""
    result = data.get("result", "UNKNOWN")
    stats = data.get("stats", {})
    _send_message(
        f"{_RESULT_EMOJI.get(result, '🃏')} "
        f"<b>{_prefix()}Game #{data.get('game_id', '?')}: {result}</b>\n\n"
        f"{html.escape(str(data.get('status', '')))}\n"
        f"Player {data.get('player_total', '?')} vs dealer {data.get('dealer_total', '?')}\n"
        f"Record: {_record(stats)} (win rate {stats.get('win_rate', 0.0) * 100:.1f}%)"
    )


def notify_winnings_claimed(data: dict):
    _send_message(
        f"💰 <b>{_prefix()}Winnings Claimed</b>\n\n"
        f"Game #{data.get('game_id', '?')}: {_eth(data.get('amount_wei', 0))}"
    )


def notify_error(error_msg: str, fatal: bool = True):
    title = "Game Cycle Error" if fatal else "Warning"
    _send_message(f"❌ <b>{_prefix()}{title}</b>\n\n{html.escape(str(error_msg))}\n\n<i>See the bot log</i>")


def handle_event(event: events.GameEvent):
    """EventSink listener: forward finished games, claims and errors."""
    if event.kind == events.GAME_COMPLETE:
        notify_game_complete(event.data)
    elif event.kind == events.WINNINGS_CLAIMED:
        notify_winnings_claimed(event.data)
    elif event.kind == events.ERROR:
        notify_error(event.data.get("error", "unknown error"), bool(event.data.get("fatal", True)))
