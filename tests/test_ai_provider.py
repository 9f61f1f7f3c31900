import json
import os
import tempfile
import unittest
from unittest import mock

from pr_suggestion_applier.ai_provider import (
    LiteLLMProvider,
    get_ai_provider,
    parse_suggestion_response,
)
from pr_suggestion_applier.app_config import AppConfig
from pr_suggestion_applier.exceptions import ProviderError
from pr_suggestion_applier.models import SuggestionRequest

PATCH = "--- a/app.py\n+++ b/app.py\n@@ -2 +2 @@\n-    return 1\n+    return 2\n"


def make_config(**overrides):
    values = dict(
        ai_provider="litellm",
        ai_model="openai/gpt-4o-mini",
        ai_api_key="sk-test",
        ai_api_base=None,
        ai_template_path=None,
        ai_timeout=45.0,
        azure_api_version=None,
        github_token="ghp_test",
    )
    values.update(overrides)
    return AppConfig(**values)


def make_request():
    return SuggestionRequest(
        review_comment="Return 2 instead",
        suggested_code="    return 2",
        original_diff_hunk="@@ -1,2 +1,2 @@\n def f():\n+    return 1",
        comment_id=11,
        file_path="app.py",
        current_file_content="def f():\n    return 1\n",
        target_line_number=1,
        expected_lines=["    return 1"],
        file_language="python",
    )


def completion_response(content):
    message = mock.Mock()
    message.content = content
    choice = mock.Mock()
    choice.message = message
    response = mock.Mock()
    response.choices = [choice]
    return response


class TestParseSuggestionResponse(unittest.TestCase):
    def test_plain_json(self):
        response = parse_suggestion_response(json.dumps({
            "patch": PATCH, "explanation": "done", "confidence": 0.8, "warnings": ["check tests"],
        }))
        self.assertEqual(response.patch, PATCH)
        self.assertEqual(response.explanation, "done")
        self.assertAlmostEqual(response.confidence, 0.8)
        self.assertEqual(response.warnings, ["check tests"])

    def test_fenced_json_and_normalization(self):
        content = "```json\n" + json.dumps({"patch": PATCH.rstrip("\n"), "confidence": 7, "warnings": "one"}) + "\n```"
        response = parse_suggestion_response(content)
        self.assertTrue(response.patch.endswith("\n"))
        self.assertEqual(response.confidence, 1.0)
        self.assertEqual(response.warnings, ["one"])

    def test_bad_confidence_defaults_to_zero(self):
        response = parse_suggestion_response(json.dumps({"patch": PATCH, "confidence": "high"}))
        self.assertEqual(response.confidence, 0.0)

    def test_unusable_responses(self):
        for content in ["not json", "[1, 2]", json.dumps({"patch": "  "}), json.dumps({"explanation": "x"})]:
            with self.subTest(content=content):
                with self.assertRaises(ProviderError):
                    parse_suggestion_response(content)


class TestLiteLLMProvider(unittest.TestCase):
    def test_requires_model(self):
        with self.assertRaises(ProviderError):
            LiteLLMProvider(make_config(ai_model=None))

    @mock.patch("pr_suggestion_applier.ai_provider.litellm.completion")
    def test_apply_suggestion(self, mock_completion):
        mock_completion.return_value = completion_response(json.dumps({
            "patch": PATCH, "explanation": "Updated return", "confidence": 0.95, "warnings": [],
        }))
        provider = LiteLLMProvider(make_config())
        response = provider.apply_suggestion(make_request(), timeout=10)

        self.assertEqual(response.patch, PATCH)
        self.assertEqual(provider.name(), "litellm")
        self.assertEqual(provider.model(), "openai/gpt-4o-mini")

        kwargs = mock_completion.call_args.kwargs
        self.assertEqual(kwargs["model"], "openai/gpt-4o-mini")
        self.assertEqual(kwargs["timeout"], 10)
        self.assertEqual(kwargs["api_key"], "sk-test")
        self.assertNotIn("api_base", kwargs)
        prompt = kwargs["messages"][0]["content"]
        self.assertIn("app.py", prompt)
        self.assertIn("    return 2", prompt)
        self.assertIn("    2 |     return 1", prompt)

    @mock.patch("pr_suggestion_applier.ai_provider.litellm.completion")
    def test_timeout_defaults_to_config(self, mock_completion):
        mock_completion.return_value = completion_response(json.dumps({"patch": PATCH}))
        LiteLLMProvider(make_config()).apply_suggestion(make_request())
        self.assertEqual(mock_completion.call_args.kwargs["timeout"], 45.0)

    @mock.patch("pr_suggestion_applier.ai_provider.litellm.completion")
    def test_azure_api_version_is_passed(self, mock_completion):
        mock_completion.return_value = completion_response(json.dumps({"patch": PATCH}))
        config = make_config(ai_model="azure/my-deployment", azure_api_version="2024-02-01")
        LiteLLMProvider(config).apply_suggestion(make_request())
        self.assertEqual(mock_completion.call_args.kwargs["api_version"], "2024-02-01")

    @mock.patch("pr_suggestion_applier.ai_provider.litellm.completion")
    def test_call_failure(self, mock_completion):
        mock_completion.side_effect = RuntimeError("connection reset")
        with self.assertRaises(ProviderError) as ctx:
            LiteLLMProvider(make_config()).apply_suggestion(make_request())
        self.assertIn("connection reset", str(ctx.exception))

    @mock.patch("pr_suggestion_applier.ai_provider.litellm.completion")
    def test_empty_content(self, mock_completion):
        mock_completion.return_value = completion_response("   ")
        with self.assertRaises(ProviderError):
            LiteLLMProvider(make_config()).apply_suggestion(make_request())

    @mock.patch("pr_suggestion_applier.ai_provider.litellm.completion")
    def test_custom_template(self, mock_completion):
        mock_completion.return_value = completion_response(json.dumps({"patch": PATCH}))
        with tempfile.TemporaryDirectory() as tmp:
            template_path = os.path.join(tmp, "prompt.txt")
            with open(template_path, "w", encoding="utf-8") as f:
                f.write("Fix ${file_path} with ${suggested_code}")
            LiteLLMProvider(make_config(ai_template_path=template_path)).apply_suggestion(make_request())

        system_message = mock_completion.call_args.kwargs["messages"][0]
        self.assertEqual(system_message, {"role": "system", "content": "Fix app.py with     return 2"})

    def test_template_with_unknown_placeholder(self):
        with tempfile.TemporaryDirectory() as tmp:
            template_path = os.path.join(tmp, "prompt.txt")
            with open(template_path, "w", encoding="utf-8") as f:
                f.write("Fix ${file_path} for ${ticket}")
            provider = LiteLLMProvider(make_config(ai_template_path=template_path))
            with self.assertRaises(ProviderError):
                provider.apply_suggestion(make_request())

    def test_missing_template_file(self):
        with self.assertRaises(ProviderError):
            LiteLLMProvider(make_config(ai_template_path="/nonexistent/prompt.txt"))


class TestGetAIProvider(unittest.TestCase):
    def test_litellm(self):
        self.assertIsInstance(get_ai_provider(make_config()), LiteLLMProvider)

    def test_unsupported(self):
        with self.assertRaises(ProviderError):
            get_ai_provider(make_config(ai_provider="nope"))


if __name__ == '__main__':
    unittest.main()
