"""
VRF blackjack bot runtime.

Process entry point:
- env-driven config + startup banner
- one autonomous player (one game per cycle, optional continuous play)
- Telegram commands + notifications
- HTTP status / event replay / start-stop controls
"""

from __future__ import annotations

import json
import logging
import queue
import signal
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from typing import Any
from urllib.parse import parse_qs, urlparse

import config
import events
import notifier
import strategy
from chain_client import ChainClient
from dry_run_table import SimulatedTable
from player import Player


logger = logging.getLogger(__name__)


def setup_logging() -> None:
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def _now() -> float:
    return time.time()


def make_gateway():
    if config.DRY_RUN:
        logger.info("DRY RUN: playing against the simulated table")
        return SimulatedTable.from_config()
    return ChainClient.from_config()


class BotRuntime:
    def __init__(self, player: Player | None = None) -> None:
        self.lock = threading.RLock()
        self.running = True
        self.sink = player.sink if player is not None else events.EventSink(config.EVENT_HISTORY_LIMIT)
        self.player = player or Player(make_gateway, strategy.get_strategy(), self.sink)
        self.auto_play = bool(config.CONTINUOUS_PLAY)
        self.idle_since: float | None = None
        # Telegram calls block for up to 10s; they run off the game-cycle thread.
        self.notify_queue: queue.Queue = queue.Queue()
        self._notify_thread: threading.Thread | None = None

    def initialize(self) -> None:
        config.print_banner()
        self.start_notifier()
        notifier.notify_startup(self.player.status()["stats"])
        if self.auto_play:
            self.player.start()

    def shutdown(self, reason: str) -> None:
        if not self.running:
            return
        self.running = False
        self.auto_play = False
        logger.info("Shutting down: %s", reason)
        if self.player.request_cancel():
            self.player.wait(timeout=max(5.0, config.POLL_INTERVAL_SECONDS * 3))
        notifier.notify_shutdown(reason)
        self.stop_notifier()

    # -- notifications ------------------------------------------------------

    def start_notifier(self) -> None:
        if self._notify_thread is not None:
            return
        self._notify_thread = threading.Thread(
            target=self._notify_worker, daemon=True, name="notifier",
        )
        self._notify_thread.start()
        self.sink.subscribe(self.notify_queue.put)

    def stop_notifier(self, timeout: float = 5.0) -> None:
        thread = self._notify_thread
        if thread is None:
            return
        self.sink.unsubscribe(self.notify_queue.put)
        self.notify_queue.put(None)
        thread.join(timeout)
        self._notify_thread = None

    def _notify_worker(self) -> None:
        while True:
            event = self.notify_queue.get()
            if event is None:
                return
            try:
                notifier.handle_event(event)
            except Exception:
                logger.exception("Notification for event #%d failed", event.seq)

    # -- operator actions ---------------------------------------------------

    def start_play(self, continuous: bool | None = None) -> tuple[bool, str]:
        if continuous is not None:
            self.auto_play = continuous
        if self.player.start():
            return True, "cycle started"
        return False, "a cycle is already running"

    def stop_play(self) -> tuple[bool, str]:
        self.auto_play = False
        if self.player.request_cancel():
            return True, "stop requested"
        return True, "not running"

    def status_text(self) -> str:
        st = self.player.status()
        stats = st["stats"]
        lines = [
            f"Phase: {st['current_phase']}",
            f"Running: {'yes' if st['is_running'] else 'no'}"
            f"{' (continuous)' if self.auto_play else ''}",
            f"Game: #{st['current_game_id'] or '-'}",
            f"Last result: {st['last_result'] or '-'}",
            f"Record: {stats['wins']}W / {stats['losses']}L / {stats['pushes']}P "
            f"({stats['busts']} busts, win rate {stats['win_rate'] * 100:.1f}%)",
        ]
        if st["last_error"]:
            lines.append(f"Last error: {st['last_error']}")
        return "\n".join(lines)

    def status_payload(self) -> dict:
        return {
            **self.player.status(),
            "auto_play": self.auto_play,
            "dry_run": bool(config.DRY_RUN),
            "strategy": config.STRATEGY,
            "wager_wei": str(config.BET_AMOUNT_WEI),
            "last_event_seq": self.sink.last_seq,
        }

    # -- main loop ------------------------------------------------------------

    def run_loop_once(self) -> None:
        if not self.auto_play or self.player.is_running:
            self.idle_since = None
            return
        if self.player.status()["last_error"]:
            self.auto_play = False
            logger.warning("Continuous play stopped after a failed cycle")
            return
        now = _now()
        if self.idle_since is None:
            self.idle_since = now
            return
        if now - self.idle_since >= config.CYCLE_PAUSE_SECONDS:
            self.idle_since = None
            self.player.start()

    def poll_telegram(self) -> None:
        for cmd in notifier.poll_commands():
            text = (cmd.get("text") or "").strip()
            parts = text.split()
            head = parts[0].lower() if parts else ""

            if head == "/play":
                continuous = len(parts) > 1 and parts[1].lower() in ("on", "loop", "continuous")
                _, msg = self.start_play(continuous=continuous)
            elif head == "/stop":
                _, msg = self.stop_play()
            elif head == "/status":
                msg = self.status_text()
            elif head == "/help":
                msg = (
                    "Commands:\n"
                    "/play -- play one game\n"
                    "/play loop -- keep playing until /stop\n"
                    "/stop\n/status\n/help"
                )
            else:
                msg = f"unknown command: {head}"
            notifier.send_reply(msg)


_RUNTIME: BotRuntime | None = None


class ThreadingHTTPServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True


class DashboardHandler(BaseHTTPRequestHandler):
    def log_message(self, fmt: str, *args: Any) -> None:  # noqa: D401
        logger.debug("HTTP %s - %s", self.address_string(), fmt % args)

    def _send_json(self, data: dict, code: int = 200) -> None:
        payload = json.dumps(data).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Cache-Control", "no-store, no-cache, must-revalidate, max-age=0")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _read_json(self) -> dict:
        n = int(self.headers.get("Content-Length", "0") or "0")
        if n <= 0:
            return {}
        raw = self.rfile.read(n)
        try:
            body = json.loads(raw.decode("utf-8"))
        except Exception as exc:
            raise ValueError("invalid request body") from exc
        if not isinstance(body, dict):
            raise ValueError("invalid request body")
        return body

    def do_GET(self) -> None:  # noqa: N802
        url = urlparse(self.path)
        if _RUNTIME is None:
            self._send_json({"error": "runtime not ready"}, 503)
            return

        if url.path == "/api/status":
            self._send_json(_RUNTIME.status_payload())
            return

        if url.path == "/api/events":
            try:
                since = int(parse_qs(url.query).get("since", ["0"])[0])
            except ValueError:
                self._send_json({"error": "invalid since"}, 400)
                return
            replayed = [e.to_dict() for e in _RUNTIME.sink.replay(since)]
            self._send_json({"events": replayed, "last_seq": _RUNTIME.sink.last_seq})
            return

        self._send_json({"error": "not found"}, 404)

    def do_POST(self) -> None:  # noqa: N802
        try:
            if not self.path.startswith("/api/action"):
                self._send_json({"ok": False, "message": "not found"}, 404)
                return
            if _RUNTIME is None:
                self._send_json({"ok": False, "message": "runtime not ready"}, 503)
                return

            try:
                body = self._read_json()
            except ValueError:
                self._send_json({"ok": False, "message": "invalid request body"}, 400)
                return

            action = (body.get("action") or "").strip()
            if action == "start":
                ok, msg = _RUNTIME.start_play(continuous=bool(body.get("continuous", False)))
            elif action == "stop":
                ok, msg = _RUNTIME.stop_play()
            else:
                self._send_json({"ok": False, "message": f"unknown action: {action}"}, 400)
                return

            self._send_json({"ok": bool(ok), "message": str(msg)}, 200 if ok else 409)
        except Exception:
            logger.exception("Unhandled exception in /api/action")
            self._send_json({"ok": False, "message": "internal server error"}, 500)


def start_http_server() -> ThreadingHTTPServer | None:
    if config.HEALTH_PORT <= 0:
        return None
    server = ThreadingHTTPServer(("0.0.0.0", int(config.HEALTH_PORT)), DashboardHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True, name="status-server")
    thread.start()
    logger.info("Status server started on :%s", config.HEALTH_PORT)
    return server


def run() -> None:
    global _RUNTIME
    setup_logging()

    rt = BotRuntime()
    _RUNTIME = rt

    def _handle_signal(signum, _frame):
        logger.info("Signal %s received", signum)
        rt.shutdown(f"signal {signum}")

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGBREAK"):
        signal.signal(signal.SIGBREAK, _handle_signal)

    server = None
    try:
        rt.initialize()
        server = start_http_server()

        tick = max(1.0, float(config.MAIN_LOOP_SECONDS))
        logger.info("Entering main loop (every %ss)", tick)

        while rt.running:
            loop_start = _now()
            try:
                with rt.lock:
                    rt.run_loop_once()
                    rt.poll_telegram()
            except Exception as e:
                logger.exception("Main loop error: %s", e)

            elapsed = _now() - loop_start
            time.sleep(max(0.2, tick - elapsed))

    finally:
        if server is not None:
            server.shutdown()
        if _RUNTIME is not None:
            _RUNTIME.shutdown("process exit")


if __name__ == "__main__":
    run()
