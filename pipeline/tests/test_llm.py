import os
from types import SimpleNamespace
from unittest import mock

from django.test import SimpleTestCase, override_settings

from pipeline.llm import (
    MalformedOutput,
    ModelClient,
    ModelServiceError,
    extract_json_object,
    merge_usage,
    strip_code_fences,
)


class ResponseParsingTests(SimpleTestCase):
    """Parsing untrusted model text."""

    def test_strip_code_fences(self) -> None:
        self.assertEqual(strip_code_fences('```json\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_code_fences("plain"), "plain")
        self.assertEqual(strip_code_fences(""), "")

    def test_leading_chatter_is_ignored(self) -> None:
        raw = 'Sure! Here is the analysis:\n```json\n{"overall_score": 80}\n```'
        self.assertEqual(extract_json_object(raw), {"overall_score": 80})

    def test_trailing_text_after_object(self) -> None:
        raw = '{"overall_score": 80} Let me know if you need more.'
        self.assertEqual(extract_json_object(raw), {"overall_score": 80})

    def test_trailing_commas_are_repaired(self) -> None:
        raw = '{"improvements": [{"title": "A"},],}'
        self.assertEqual(extract_json_object(raw), {"improvements": [{"title": "A"}]})

    def test_truncated_response_is_malformed(self) -> None:
        with self.assertRaises(MalformedOutput):
            extract_json_object('{"overall_score": 72, "sections": {"experience": {"qual')

    def test_non_object_payload_is_malformed(self) -> None:
        with self.assertRaises(MalformedOutput):
            extract_json_object("[1, 2, 3]")

    def test_empty_response_is_malformed(self) -> None:
        with self.assertRaises(MalformedOutput):
            extract_json_object("   ")

    def test_merge_usage(self) -> None:
        totals = {}
        merge_usage(totals, {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5})
        merge_usage(totals, {"total_tokens": 4})
        self.assertEqual(totals, {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 9})


@override_settings(LLM_API_KEY="", LLM_BASE_URL="", LLM_MODEL="test-model")
class ModelClientTests(SimpleTestCase):
    def _response(self, content="hello"):
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
            usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10),
        )

    @mock.patch.dict(os.environ, {"LLM_API_KEY": "", "OPENAI_API_KEY": ""})
    def test_missing_key_fails_at_call_time(self) -> None:
        client = ModelClient()
        with self.assertRaises(ModelServiceError):
            client.complete("hi")

    @mock.patch("pipeline.llm.OpenAI")
    def test_complete_returns_text_and_usage(self, openai_cls) -> None:
        create = openai_cls.return_value.chat.completions.create
        create.return_value = self._response("hello")

        client = ModelClient(api_key="key", base_url="https://openrouter.ai/api/v1", model="m")
        self.assertEqual(client.complete("hi", system="be brief", temperature=0.2), "hello")
        self.assertEqual(client.last_usage["total_tokens"], 10)

        openai_cls.assert_called_once_with(
            api_key="key", base_url="https://openrouter.ai/api/v1", timeout=client.timeout
        )
        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["model"], "m")
        self.assertEqual(kwargs["temperature"], 0.2)
        self.assertEqual(
            kwargs["messages"],
            [{"role": "system", "content": "be brief"}, {"role": "user", "content": "hi"}],
        )

    @mock.patch("pipeline.llm.OpenAI")
    def test_sdk_errors_are_wrapped(self, openai_cls) -> None:
        openai_cls.return_value.chat.completions.create.side_effect = RuntimeError("502 Bad Gateway")
        client = ModelClient(api_key="key")
        with self.assertRaises(ModelServiceError) as ctx:
            client.complete("hi")
        self.assertIn("502 Bad Gateway", str(ctx.exception))

    @mock.patch("pipeline.llm.OpenAI")
    def test_empty_choices_yield_empty_text(self, openai_cls) -> None:
        openai_cls.return_value.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
        client = ModelClient(api_key="key")
        self.assertEqual(client.complete("hi"), "")
        self.assertEqual(client.last_usage["total_tokens"], 0)
