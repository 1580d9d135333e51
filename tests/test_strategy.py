import json
import unittest
import urllib.error
from unittest import mock

import config
import strategy
from fakes import cards


class _FakeResponse:
    def __init__(self, body):
        self._body = json.dumps(body).encode("utf-8")

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def _chat(content):
    return _FakeResponse({"choices": [{"message": {"content": content}}]})


class ThresholdTests(unittest.TestCase):
    def test_hits_below_threshold_and_stands_at_it(self):
        decide = strategy.threshold_strategy(17)
        self.assertEqual(decide(16, 10), strategy.HIT)
        self.assertEqual(decide(17, 10), strategy.STAND)
        self.assertEqual(decide(19, 7), strategy.STAND)


class BasicStrategyTests(unittest.TestCase):
    def test_hard_totals(self):
        self.assertEqual(strategy.basic_strategy(11, 10, cards("6", "5")), strategy.HIT)
        self.assertEqual(strategy.basic_strategy(12, 4, cards("10", "2")), strategy.STAND)
        self.assertEqual(strategy.basic_strategy(12, 2, cards("10", "2")), strategy.HIT)
        self.assertEqual(strategy.basic_strategy(16, 6, cards("10", "6")), strategy.STAND)
        self.assertEqual(strategy.basic_strategy(16, 7, cards("10", "6")), strategy.HIT)
        self.assertEqual(strategy.basic_strategy(17, 11, cards("10", "7")), strategy.STAND)

    def test_soft_totals(self):
        self.assertEqual(strategy.basic_strategy(17, 6, cards("A", "6")), strategy.HIT)
        self.assertEqual(strategy.basic_strategy(18, 8, cards("A", "7")), strategy.STAND)
        self.assertEqual(strategy.basic_strategy(18, 10, cards("A", "7")), strategy.HIT)
        self.assertEqual(strategy.basic_strategy(19, 11, cards("A", "8")), strategy.STAND)


class LlmStrategyTests(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch.object(config, "AI_API_KEY", "test-key")
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_uses_model_answer(self):
        decide = strategy.llm_strategy(fallback=strategy.threshold_strategy(17))
        with mock.patch("urllib.request.urlopen", return_value=_chat("STAND")) as urlopen:
            self.assertEqual(decide(12, 6, cards("10", "2"), cards("6")), strategy.STAND)
        req = urlopen.call_args[0][0]
        self.assertEqual(req.get_header("Authorization"), "Bearer test-key")

    def test_ambiguous_answer_falls_back(self):
        decide = strategy.llm_strategy(fallback=strategy.threshold_strategy(17))
        with mock.patch("urllib.request.urlopen", return_value=_chat("Hit or stand, hard to say")):
            self.assertEqual(decide(12, 6), strategy.HIT)

    def test_http_error_falls_back(self):
        decide = strategy.llm_strategy(fallback=strategy.threshold_strategy(17))
        err = urllib.error.URLError("down")
        with mock.patch("urllib.request.urlopen", side_effect=err):
            self.assertEqual(decide(18, 10), strategy.STAND)

    def test_no_key_skips_the_call(self):
        decide = strategy.llm_strategy(fallback=strategy.threshold_strategy(17))
        with mock.patch.object(config, "AI_API_KEY", ""), \
                mock.patch("urllib.request.urlopen") as urlopen:
            self.assertEqual(decide(10, 10), strategy.HIT)
        urlopen.assert_not_called()


class FactoryTests(unittest.TestCase):
    def test_get_strategy_by_name(self):
        self.assertIs(strategy.get_strategy("basic"), strategy.basic_strategy)
        self.assertEqual(strategy.get_strategy("llm").__name__, "llm")
        with mock.patch.object(config, "STAND_THRESHOLD", 15):
            self.assertEqual(strategy.get_strategy("threshold").__name__, "threshold_15")
        with self.assertLogs("strategy", level="WARNING"):
            strategy.get_strategy("martingale")


if __name__ == "__main__":
    unittest.main()
