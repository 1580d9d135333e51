"""
strategy.py -- Hit/stand decision functions.

A decision function receives (player_total, dealer_visible_total,
player_cards, dealer_cards) and returns "hit" or "stand".  It never touches
the chain; the hand loop checks legality and submits.

  - threshold: hit below a fixed total (dealer-style, default 17)
  - basic:     hit/stand basic-strategy table keyed on the dealer upcard
  - llm:       ask an OpenAI-compatible chat model, fall back to threshold

ZERO DEPENDENCIES:
  The llm strategy uses urllib.request to POST to the chat endpoint.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Callable, Sequence

import config
from snapshot import Card, is_soft

logger = logging.getLogger(__name__)

HIT = "hit"
STAND = "stand"

Strategy = Callable[[int, int, Sequence[Card], Sequence[Card]], str]


def threshold_strategy(stand_on: int = 17) -> Strategy:
    def decide(player_total, dealer_total, player_cards=(), dealer_cards=()) -> str:
        return HIT if player_total < stand_on else STAND

    decide.__name__ = f"threshold_{stand_on}"
    return decide


def basic_strategy(player_total, dealer_total, player_cards=(), dealer_cards=()) -> str:
    """Hit/stand subset of basic strategy (no doubles or splits on this table)."""
    up = dealer_total if dealer_total > 0 else 10
    if player_cards and is_soft(player_cards):
        if player_total <= 17:
            return HIT
        if player_total == 18:
            return HIT if up >= 9 else STAND
        return STAND

    if player_total <= 11:
        return HIT
    if player_total == 12:
        return STAND if 4 <= up <= 6 else HIT
    if player_total <= 16:
        return STAND if 2 <= up <= 6 else HIT
    return STAND


# ---------------------------------------------------------------------------
# LLM advisor
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = (
    "You are a blackjack strategy engine. The only legal moves are HIT and "
    "STAND. Reply with exactly one word: HIT or STAND."
)


def _build_prompt(player_total, dealer_total, player_cards, dealer_cards) -> str:
    pc = ", ".join(c.label() for c in player_cards) or "?"
    dc = ", ".join(c.label() for c in dealer_cards) or "?"
    return (
        f"Player cards: {pc} (total {player_total})\n"
        f"Dealer showing: {dc} (visible total {dealer_total})\n"
        "Should the player HIT or STAND?"
    )


def _parse_decision(text: str) -> str | None:
    """Return HIT/STAND if the reply names exactly one of them."""
    lowered = (text or "").lower()
    says_hit = "hit" in lowered
    says_stand = "stand" in lowered
    if says_hit == says_stand:
        return None
    return HIT if says_hit else STAND


def _call_model(prompt: str) -> tuple[str, str]:
    """
    POST one chat completion.  Returns (response_text, error_string); on
    success error is "".  Never raises.
    """
    payload = json.dumps({
        "model": config.AI_MODEL,
        "messages": [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "temperature": 0.0,
        "max_tokens": 8,
    }).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {config.AI_API_KEY}",
        "User-Agent": "VRFBlackjackBot/1.0",
    }
    req = urllib.request.Request(config.AI_API_URL, data=payload, headers=headers)

    try:
        with urllib.request.urlopen(req, timeout=config.AI_TIMEOUT_SECONDS) as resp:
            body = json.loads(resp.read().decode("utf-8"))
            choices = body.get("choices", [])
            if choices:
                content = choices[0].get("message", {}).get("content")
                return (content.strip(), "") if content else ("", "Empty response body")
            return ("", "No choices in response")
    except urllib.error.HTTPError as e:
        error_body = e.read().decode("utf-8", errors="replace")
        logger.warning("LLM strategy HTTP %d: %s", e.code, error_body[:200])
        return ("", f"HTTP {e.code}")
    except urllib.error.URLError as e:
        logger.warning("LLM strategy connection error: %s", e.reason)
        return ("", f"Connection error: {e.reason}")
    except Exception as e:
        logger.warning("LLM strategy error: %s", e)
        return ("", str(e))


def llm_strategy(fallback: Strategy | None = None) -> Strategy:
    fallback = fallback or threshold_strategy(config.STAND_THRESHOLD)

    def decide(player_total, dealer_total, player_cards=(), dealer_cards=()) -> str:
        if not config.AI_API_KEY:
            return fallback(player_total, dealer_total, player_cards, dealer_cards)
        text, err = _call_model(_build_prompt(player_total, dealer_total, player_cards, dealer_cards))
        decision = _parse_decision(text) if not err else None
        if decision is None:
            logger.info("LLM gave no usable move (%s) -- using fallback", err or repr(text))
            return fallback(player_total, dealer_total, player_cards, dealer_cards)
        logger.info("LLM decision at %d vs %d: %s", player_total, dealer_total, decision)
        return decision

    decide.__name__ = "llm"
    return decide


def get_strategy(name: str | None = None) -> Strategy:
    name = (name or config.STRATEGY or "threshold").strip().lower()
    if name == "basic":
        return basic_strategy
    if name == "llm":
        return llm_strategy()
    if name != "threshold":
        logger.warning("Unknown STRATEGY %r, using threshold", name)
    return threshold_strategy(config.STAND_THRESHOLD)
