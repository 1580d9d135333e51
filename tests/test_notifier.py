import unittest
from unittest import mock

import config
import events
import notifier


def _event(kind, data):
    return events.GameEvent(seq=1, kind=kind, phase="GAME_COMPLETE", timestamp=0.0, data=data)


class NotifierTests(unittest.TestCase):
    def test_no_token_skips_network(self):
        with mock.patch.object(config, "TELEGRAM_BOT_TOKEN", ""), \
                mock.patch("urllib.request.urlopen") as urlopen:
            self.assertEqual(notifier._telegram_api("sendMessage", {"text": "hi"}), {})
        urlopen.assert_not_called()

    def test_game_complete_message(self):
        data = {
            "game_id": 12,
            "result": "WIN",
            "status": "Dealer busts! You win",
            "player_total": 18,
            "dealer_total": 24,
            "stats": {"wins": 4, "losses": 3, "pushes": 1, "win_rate": 0.5},
        }
        with mock.patch.object(config, "DRY_RUN", True), \
                mock.patch("notifier._send_message") as send:
            notifier.handle_event(_event(events.GAME_COMPLETE, data))
        text = send.call_args[0][0]
        self.assertIn("[DRY RUN] Game #12: WIN", text)
        self.assertIn("Player 18 vs dealer 24", text)
        self.assertIn("50.0%", text)

    def test_claim_and_error_routing(self):
        with mock.patch("notifier._send_message") as send:
            notifier.handle_event(_event(events.WINNINGS_CLAIMED, {"game_id": 3, "amount_wei": 1_400_000_000_000_000}))
            notifier.handle_event(_event(events.ERROR, {"error": "claim failed", "fatal": False}))
            notifier.handle_event(_event(events.DECISION, {"action": "hit"}))
        self.assertEqual(send.call_count, 2)
        self.assertIn("0.001400 ETH", send.call_args_list[0][0][0])
        self.assertIn("Warning", send.call_args_list[1][0][0])

    def test_free_text_is_html_escaped(self):
        with mock.patch("notifier._send_message") as send:
            notifier.notify_error("CycleError: <ContractLogicError 'x & y'>")
            notifier.handle_event(_event(events.GAME_COMPLETE, {"result": "LOSS", "status": "Dealer <21> wins"}))
        error_text = send.call_args_list[0][0][0]
        self.assertIn("&lt;ContractLogicError", error_text)
        self.assertIn("&amp; y", error_text)
        self.assertNotIn("<ContractLogicError", error_text)
        self.assertIn("Dealer &lt;21&gt; wins", send.call_args_list[1][0][0])

    def test_poll_commands_filters_chat_and_text(self):
        updates = {"ok": True, "result": [
            {"update_id": 5, "message": {"chat": {"id": 42}, "text": "/play", "message_id": 1}},
            {"update_id": 6, "message": {"chat": {"id": 99}, "text": "/stop", "message_id": 2}},
            {"update_id": 7, "message": {"chat": {"id": 42}, "text": "hello", "message_id": 3}},
        ]}
        with mock.patch.object(config, "TELEGRAM_CHAT_ID", "42"), \
                mock.patch.object(notifier, "_update_offset", 0), \
                mock.patch("notifier._telegram_api", return_value=updates) as api:
            with self.assertLogs("notifier", level="WARNING"):
                commands = notifier.poll_commands()
            self.assertEqual(commands, [{"text": "/play", "message_id": 1}])
            self.assertEqual(notifier._update_offset, 7)
            notifier.poll_commands()
            self.assertEqual(api.call_args[0][1]["offset"], 8)


if __name__ == "__main__":
    unittest.main()
