"""
Model client and response parsing.

The model endpoint is treated as plain text in / text out. Everything that
comes back is untrusted: callers strip fences and parse it with
``extract_json_object``, which raises ``MalformedOutput`` instead of guessing.
"""
from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from django.conf import settings
from openai import OpenAI

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\n?")


class ModelServiceError(Exception):
    """
    The model endpoint is unreachable, misconfigured, or returned an error.
    """


class MalformedOutput(ValueError):
    """
    The model answered, but the answer does not fit the expected schema.
    """


def strip_code_fences(text: str) -> str:
    """
    Remove markdown code fence markers (```json, ```) wherever they appear.
    """
    if not text:
        return ""
    return _FENCE_RE.sub("", text).strip()


def repair_json_string(s: str) -> str:
    """
    Attempt to repair common JSON issues from model output: trailing content
    after the last balanced object, trailing commas, and unterminated strings.
    """
    brace_count = 0
    last_valid_close = -1
    in_string = False
    escape_next = False

    for i, char in enumerate(s):
        if escape_next:
            escape_next = False
            continue
        if char == '\\':
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == '{':
            brace_count += 1
        elif char == '}':
            brace_count -= 1
            if brace_count == 0:
                last_valid_close = i

    if 0 < last_valid_close < len(s) - 1:
        s = s[:last_valid_close + 1]

    s = re.sub(r',(\s*[\]\}])', r'\1', s)

    fixed_lines = []
    for line in s.split('\n'):
        quote_count = len(re.findall(r'(?<!\\)"', line))
        if quote_count % 2 == 1:
            line = re.sub(r'([^"\\])(\s*[,\]\}]?\s*)$', r'\1"\2', line)
        fixed_lines.append(line)
    return '\n'.join(fixed_lines)


def extract_json_object(raw_text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model response.

    Tries, in order: the fence-stripped text, the span between the first
    ``{`` and the last ``}``, and a repaired version of that span.

    Raises:
        MalformedOutput: If no JSON object can be recovered.
    """
    payload = strip_code_fences(raw_text or "")
    if not payload:
        raise MalformedOutput("Empty model response.")

    if not payload.startswith("{"):
        json_start = payload.find("{")
        if json_start > 0:
            logger.debug("Stripping non-JSON prefix: %s", payload[:json_start][:100])
            payload = payload[json_start:]

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning(
            "JSON decode error at line %s col %s: %s. Payload preview: %s",
            e.lineno, e.colno, e.msg, payload[:300],
        )
        start = payload.find("{")
        end = payload.rfind("}")
        if start == -1 or end == -1 or end < start:
            raise MalformedOutput(f"No JSON object in model response ({e.msg}).") from e

        candidate = payload[start:end + 1]
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            try:
                parsed = json.loads(repair_json_string(candidate))
            except json.JSONDecodeError as e2:
                raise MalformedOutput(
                    f"Failed to parse model JSON: {e.msg}; after repair: {e2.msg}"
                ) from e2

    if not isinstance(parsed, dict):
        raise MalformedOutput(f"Expected a JSON object, got {type(parsed).__name__}.")
    return parsed


class ModelClient:
    """
    Thin wrapper over an OpenAI-compatible chat completions endpoint.

    The SDK client is created on first use so a missing key surfaces as a
    ``ModelServiceError`` at call time, inside the stage that needed it.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = (
            api_key
            or os.environ.get("LLM_API_KEY")
            or os.environ.get("OPENAI_API_KEY")
            or getattr(settings, "LLM_API_KEY", "")
        )
        self.base_url = base_url or os.environ.get("LLM_BASE_URL") or getattr(settings, "LLM_BASE_URL", "")
        self.model = model or os.environ.get("LLM_MODEL") or getattr(settings, "LLM_MODEL", "gpt-4o-mini")
        self.temperature = (
            temperature if temperature is not None else getattr(settings, "LLM_TEMPERATURE", 0.7)
        )
        self.max_output_tokens = max_output_tokens or getattr(settings, "LLM_MAX_OUTPUT_TOKENS", 4000)
        self.timeout = timeout or getattr(settings, "LLM_TIMEOUT_SECONDS", 60)
        self.last_usage: Dict[str, int] = {}
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        if not self.api_key:
            raise ModelServiceError("LLM_API_KEY is not configured.")
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url or None,
                timeout=self.timeout,
            )
        return self._client

    def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        """
        Send one prompt and return the raw response text (possibly empty).

        Raises:
            ModelServiceError: On configuration, transport, or API errors.
        """
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature if temperature is None else temperature,
                max_tokens=max_output_tokens or self.max_output_tokens,
            )
        except ModelServiceError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ModelServiceError(f"Model request failed: {exc}") from exc

        self.last_usage = self._extract_usage(response)
        return self._extract_text(response)

    def _extract_text(self, response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", "") if message is not None else ""
        if isinstance(content, list):
            content = "".join(
                str(getattr(part, "text", part.get("text", "") if isinstance(part, dict) else ""))
                for part in content
            )
        return content or ""

    def _extract_usage(self, response: Any) -> Dict[str, int]:
        usage = getattr(response, "usage", None)
        if not usage:
            return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        prompt = getattr(usage, "prompt_tokens", 0)
        completion = getattr(usage, "completion_tokens", 0)
        total = getattr(usage, "total_tokens", 0) or ((prompt or 0) + (completion or 0))
        return {
            "prompt_tokens": int(prompt or 0),
            "completion_tokens": int(completion or 0),
            "total_tokens": int(total or 0),
        }


def merge_usage(accumulator: Dict[str, int], usage: Dict[str, int]) -> None:
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        accumulator[key] = accumulator.get(key, 0) + int(usage.get(key, 0) or 0)
