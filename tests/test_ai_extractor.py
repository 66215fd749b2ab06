"""Tests for quizparse.ai_extractor and quizparse.ai_config."""

from __future__ import annotations

import json
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock

import openai

from quizparse.ai_config import AIConfig, is_configured, validate_ai_config
from quizparse.ai_extractor import (
    AIExtractionAdapter,
    coerce_question,
    find_first_array,
    iter_array_candidates,
    parse_reply,
)
from quizparse.config import load_settings
from quizparse.schema import DraftQuestion
from quizparse.utils import MalformedModelResponseError, ResourceUnavailableError
from quizparse.validator import ResultValidator

GOOD_ELEMENT = {
    "title": "What is 2+2?",
    "options": ["3", "4", "5", "6"],
    "correct_answer": 1,
    "explanation": "Basic arithmetic.",
    "difficulty": "easy",
    "tags": ["math"],
}
GOOD_REPLY = "Here is the result:\n" + json.dumps([GOOD_ELEMENT]) + "\nHope this helps."


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _adapter(*replies: str, **config) -> tuple[AIExtractionAdapter, MagicMock]:
    client = MagicMock()
    client.chat.completions.create.side_effect = [_completion(r) for r in replies]
    settings = {"api_key": "test-key", **config}
    return AIExtractionAdapter(AIConfig(**settings), client_factory=lambda cfg: client), client


class TestArrayScanning(unittest.TestCase):
    def test_brackets_inside_strings_are_ignored(self) -> None:
        text = 'Intro [1, "]", 2] then [3] end'
        self.assertEqual(list(iter_array_candidates(text)), ['[1, "]", 2]', "[3]"])

    def test_escaped_quotes(self) -> None:
        self.assertEqual(find_first_array(r'x ["a\"]", "b"] y'), r'["a\"]", "b"]')

    def test_nested_and_unbalanced(self) -> None:
        self.assertEqual(find_first_array("[[1], [2]]"), "[[1], [2]]")
        self.assertIsNone(find_first_array("[1, 2"))
        self.assertIsNone(find_first_array("no array"))


class TestCoerceQuestion(unittest.TestCase):
    def test_good_element(self) -> None:
        q = coerce_question(GOOD_ELEMENT)
        self.assertEqual(q.correct_answer, 1)
        self.assertEqual(q.tags, ["math"])

    def test_letter_answer_and_option_objects(self) -> None:
        q = coerce_question({
            "question": "Pick",
            "options": [{"text": "a"}, {"content": "b"}],
            "answer": "B",
            "difficulty": "impossible",
        })
        self.assertEqual(q.options, ["a", "b"])
        self.assertEqual(q.correct_answer, 1)
        self.assertEqual(q.difficulty, "medium")

    def test_numeral_string_answer_matches_validator(self) -> None:
        element = {**GOOD_ELEMENT, "correct_answer": "2"}
        questions, _ = parse_reply(json.dumps([element]))
        self.assertEqual(questions[0].correct_answer, 1)

        outcome = ResultValidator().validate([DraftQuestion(**{**GOOD_ELEMENT, "correct_answer": "2"})])
        self.assertEqual(outcome.fixed_questions[0].correct_answer, questions[0].correct_answer)

    def test_integer_answer_stays_zero_based(self) -> None:
        self.assertEqual(coerce_question({**GOOD_ELEMENT, "correct_answer": 2}).correct_answer, 2)
        self.assertIsNone(coerce_question({**GOOD_ELEMENT, "correct_answer": "9"}))

    def test_unusable_elements(self) -> None:
        self.assertIsNone(coerce_question("text"))
        self.assertIsNone(coerce_question({"title": "", "options": ["a", "b"], "correct_answer": 0}))
        self.assertIsNone(coerce_question({"title": "t", "options": ["a"], "correct_answer": 0}))
        self.assertIsNone(coerce_question({"title": "t", "options": ["a", "b"], "correct_answer": 5}))
        self.assertIsNone(coerce_question({"title": "t", "options": ["a", "b"], "correct_answer": True}))


class TestParseReply(unittest.TestCase):
    def test_prose_around_array(self) -> None:
        questions, rejected = parse_reply(GOOD_REPLY)
        self.assertEqual(len(questions), 1)
        self.assertEqual(rejected, 0)

    def test_rejected_elements_counted(self) -> None:
        reply = json.dumps([GOOD_ELEMENT, {"title": "bad"}])
        questions, rejected = parse_reply(reply)
        self.assertEqual((len(questions), rejected), (1, 1))

    def test_skips_invalid_candidate(self) -> None:
        reply = "see [note] and " + json.dumps([GOOD_ELEMENT])
        questions, _ = parse_reply(reply)
        self.assertEqual(questions[0].title, "What is 2+2?")

    def test_no_array(self) -> None:
        with self.assertRaises(MalformedModelResponseError):
            parse_reply("I cannot help with that.")

    def test_no_usable_question(self) -> None:
        with self.assertRaises(MalformedModelResponseError):
            parse_reply("[1, 2, 3]")


class TestAIExtractionAdapter(unittest.TestCase):
    def test_first_reply_parsed(self) -> None:
        adapter, client = _adapter(GOOD_REPLY)
        result = adapter.extract("1. What is 2+2?\nA. 3\nB. 4")
        self.assertEqual(result.attempts, 1)
        self.assertFalse(result.recovered)
        self.assertEqual(result.questions[0].options, ["3", "4", "5", "6"])
        kwargs = client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "gpt-4o-mini")
        self.assertEqual(kwargs["messages"][0]["role"], "system")

    def test_recovery_retry(self) -> None:
        adapter, client = _adapter("Sorry, here it is: {oops}", GOOD_REPLY)
        result = adapter.extract("1. What is 2+2?\nA. 3\nB. 4")
        self.assertEqual(result.attempts, 2)
        self.assertTrue(result.recovered)
        self.assertEqual(len(result.warnings), 1)
        second = client.chat.completions.create.call_args_list[1].kwargs
        self.assertEqual(second["temperature"], 0.05)
        self.assertIn("Sorry, here it is", second["messages"][1]["content"])

    def test_two_bad_replies_fail(self) -> None:
        adapter, client = _adapter("nope", "still nope")
        with self.assertRaises(MalformedModelResponseError):
            adapter.extract("1. Q?\nA. x\nB. y")
        self.assertEqual(client.chat.completions.create.call_count, 2)

    def test_empty_content_triggers_retry(self) -> None:
        adapter, _ = _adapter(None, GOOD_REPLY)
        self.assertTrue(adapter.extract("1. Q?\nA. x\nB. y").recovered)

    def test_unconfigured_adapter_never_calls_client(self) -> None:
        factory = MagicMock()
        adapter = AIExtractionAdapter(AIConfig(api_key=""), client_factory=factory)
        self.assertFalse(adapter.is_available())
        self.assertIn("AI API key is missing.", adapter.problems())
        with self.assertRaises(ResourceUnavailableError):
            adapter.extract("1. Q?")
        factory.assert_not_called()

    def test_endpoint_error(self) -> None:
        client = MagicMock()
        client.chat.completions.create.side_effect = openai.OpenAIError("connection refused")
        adapter = AIExtractionAdapter(AIConfig(api_key="k"), client_factory=lambda cfg: client)
        with self.assertRaises(ResourceUnavailableError):
            adapter.extract("1. Q?\nA. x\nB. y")

    def test_max_tokens_capped_by_config(self) -> None:
        adapter, client = _adapter(GOOD_REPLY, max_tokens=500)
        adapter.extract("1. Q?\nA. x\nB. y")
        self.assertEqual(client.chat.completions.create.call_args.kwargs["max_tokens"], 500)

    def test_estimate_cost(self) -> None:
        adapter, _ = _adapter()
        self.assertGreater(adapter.estimate_cost("1. Q?\nA. x\nB. y"), 0)


class TestAIConfig(unittest.TestCase):
    def test_validation(self) -> None:
        self.assertEqual(validate_ai_config(None), ["AI service is not configured."])
        self.assertTrue(is_configured(AIConfig(api_key="k")))
        problems = validate_ai_config(AIConfig(api_key="k", enabled=False, provider="acme"))
        self.assertIn("AI service is disabled.", problems)
        self.assertTrue(any("acme" in p for p in problems))

    def test_provider_defaults(self) -> None:
        cfg = AIConfig(provider="siliconflow", api_key="k")
        self.assertEqual(cfg.resolved_base_url, "https://api.siliconflow.cn/v1")
        self.assertEqual(cfg.resolved_cost_per_1k, 0.0002)
        self.assertEqual(AIConfig(base_url="http://local/v1").resolved_base_url, "http://local/v1")

    def test_from_settings(self) -> None:
        cfg = AIConfig.from_settings(load_settings(ai_api_key="abc", ai_model="gpt-4o"))
        self.assertEqual(cfg.api_key, "abc")
        self.assertEqual(cfg.model, "gpt-4o")

    def test_key_not_in_repr(self) -> None:
        self.assertNotIn("secret", repr(AIConfig(api_key="secret")))


if __name__ == "__main__":
    unittest.main()
