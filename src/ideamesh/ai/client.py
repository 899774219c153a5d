"""LLM client for OpenAI-compatible endpoints (Ollama, vLLM, hosted APIs).

Requests are plain ``requests`` calls run in a worker thread so the event
loop is never blocked.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import settings
from ..errors import AIServiceError
from ..types import ToolCall

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_THINK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)


@dataclass(slots=True)
class Completion:
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None


def parse_json_text(text: str) -> Any:
    """Pull the JSON value out of a model reply (code fences and think tags allowed)."""
    cleaned = _THINK_RE.sub("", text).strip()
    fenced = _FENCE_RE.search(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    # Fall back to the outermost object or array in the reply
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start = cleaned.find(open_ch)
        end = cleaned.rfind(close_ch)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start:end + 1])
            except json.JSONDecodeError:
                continue
    raise AIServiceError(f"Could not parse model reply as JSON: {text[:200]!r}")


class LLMClient:
    """Async-wrapped client for OpenAI-compatible chat completions."""

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        temperature: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.model = model or settings.llm_model
        self.api_key = api_key or settings.llm_api_key
        self.timeout = timeout or settings.llm_timeout
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self._session: requests.Session | None = None

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            })
            adapter = HTTPAdapter(
                max_retries=Retry(total=settings.llm_max_retries, backoff_factor=0.5),
            )
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def _sync_complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        temperature: float,
        json_mode: bool,
    ) -> Completion:
        """Synchronous chat request (runs in thread)."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if tools:
            payload["tools"] = tools
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        response = self._get_session().post(
            f"{self.base_url}/chat/completions",
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        choices = data.get("choices") or []
        if not choices:
            raise AIServiceError("Model returned no choices")
        message = choices[0].get("message") or {}
        text = message.get("content") or ""
        return Completion(
            text=_THINK_RE.sub("", text).strip(),
            tool_calls=[_parse_tool_call(raw) for raw in message.get("tool_calls") or []],
            finish_reason=choices[0].get("finish_reason"),
        )

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
    ) -> Completion:
        """Send chat messages; returns reply text plus any tool calls."""
        temp = self.temperature if temperature is None else temperature
        try:
            return await asyncio.to_thread(self._sync_complete, messages, tools, temp, False)
        except AIServiceError:
            raise
        except requests.HTTPError as e:
            logger.error("LLM API error: %s - %s", e.response.status_code, e.response.text)
            raise AIServiceError(f"LLM API error {e.response.status_code}") from e
        except (requests.RequestException, ValueError) as e:
            logger.error("LLM request failed: %s", e)
            raise AIServiceError(str(e)) from e

    async def complete_json(
        self,
        messages: list[dict[str, Any]],
        temperature: float | None = None,
    ) -> Any:
        """Send chat messages and parse the reply as JSON."""
        temp = 0.2 if temperature is None else temperature
        try:
            completion = await asyncio.to_thread(
                self._sync_complete, messages, None, temp, True
            )
        except AIServiceError:
            raise
        except requests.HTTPError as e:
            logger.error("LLM API error: %s - %s", e.response.status_code, e.response.text)
            raise AIServiceError(f"LLM API error {e.response.status_code}") from e
        except (requests.RequestException, ValueError) as e:
            logger.error("LLM request failed: %s", e)
            raise AIServiceError(str(e)) from e
        return parse_json_text(completion.text)


def _parse_tool_call(raw: dict[str, Any]) -> ToolCall:
    function = raw.get("function") or {}
    arguments = function.get("arguments") or {}
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as e:
            raise AIServiceError(f"Malformed arguments for {function.get('name')}") from e
    if not isinstance(arguments, dict):
        raise AIServiceError(f"Tool arguments must be an object, got {type(arguments).__name__}")
    return ToolCall(name=str(function.get("name", "")), args=arguments, id=raw.get("id"))
