from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from openai import OpenAI

from hirebit.config import Settings
from hirebit.types import ModelResponse

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProviderConfig:
    name: str
    base_url: str
    api_key: str
    timeout_sec: int


class LLMProvider:
    def __init__(self, config: ProviderConfig, client: Any | None = None):
        self.config = config
        self.client = client or OpenAI(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=float(config.timeout_sec),
            max_retries=1,
        )

    def complete_text(self, *, model: str, prompt: str, system: str | None = None) -> ModelResponse:
        try:
            return self._complete_via_responses(model=model, prompt=prompt, system=system)
        except Exception as exc:
            if not self._is_unsupported_responses_endpoint(exc):
                raise

            logger.warning(
                "Responses API unavailable for provider=%s base_url=%s; "
                "falling back to chat.completions (%s)",
                self.config.name,
                self.config.base_url,
                exc,
            )
            return self._complete_via_chat_completions(model=model, prompt=prompt, system=system)

    def complete_json(self, *, model: str, prompt: str, system: str | None = None) -> dict[str, Any]:
        text_response = self.complete_text(model=model, prompt=prompt, system=system)
        return parse_json(text_response.content)

    def _complete_via_responses(self, *, model: str, prompt: str, system: str | None) -> ModelResponse:
        kwargs: dict[str, Any] = {
            "model": model,
            "input": [
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": prompt}],
                }
            ],
        }
        if system:
            kwargs["instructions"] = system
        response = self.client.responses.create(**kwargs)
        text = getattr(response, "output_text", "") or ""
        return ModelResponse(content=text, raw=self._raw(response, "responses"))

    def _complete_via_chat_completions(self, *, model: str, prompt: str, system: str | None) -> ModelResponse:
        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})
        response = self.client.chat.completions.create(model=model, messages=messages, temperature=0.3)
        return ModelResponse(content=self._extract_chat_text(response), raw=self._raw(response, "chat_completions"))

    @staticmethod
    def _raw(response: Any, api_path: str) -> dict[str, Any]:
        raw = response.model_dump() if hasattr(response, "model_dump") else {}
        if not isinstance(raw, dict):
            raw = {"raw": raw}
        raw["api_path"] = api_path
        return raw

    @staticmethod
    def _extract_chat_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""

        message = getattr(choices[0], "message", None)
        if message is None:
            return ""

        content = getattr(message, "content", "")
        if isinstance(content, str):
            return content
        if content is None:
            return ""
        return str(content)

    @staticmethod
    def _is_unsupported_responses_endpoint(exc: Exception) -> bool:
        status_code = getattr(exc, "status_code", None)
        if status_code == 404:
            return True

        message = str(exc).strip().lower()
        if not message:
            return False

        return "not found" in message or "404" in message


def parse_json(content: str) -> dict[str, Any]:
    candidate = content.strip()
    if not candidate:
        return {}

    if "```" in candidate:
        for part in candidate.split("```"):
            part = part.strip()
            if part.lower().startswith("json"):
                part = part[4:].strip()
            if part.startswith("{") and part.endswith("}"):
                candidate = part
                break

    if not candidate.startswith("{"):
        start, end = candidate.find("{"), candidate.rfind("}")
        if start != -1 and end > start:
            candidate = candidate[start : end + 1]

    try:
        value = json.loads(candidate)
        return value if isinstance(value, dict) else {}
    except json.JSONDecodeError:
        logger.warning("Failed to parse JSON model output")
        return {}


class ProviderPool:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._openai: LLMProvider | None = None
        self._local: LLMProvider | None = None

    def openai(self) -> LLMProvider | None:
        if not self.settings.openai_api_key:
            return None
        if self._openai is None:
            self._openai = LLMProvider(
                ProviderConfig(
                    name="openai",
                    base_url=self.settings.openai_base_url,
                    api_key=self.settings.openai_api_key,
                    timeout_sec=self.settings.openai_timeout_sec,
                )
            )
        return self._openai

    def local(self) -> LLMProvider | None:
        if not self.settings.local_llm_enabled:
            return None
        if self._local is None:
            self._local = LLMProvider(
                ProviderConfig(
                    name="local",
                    base_url=self.settings.local_llm_base_url,
                    api_key=self.settings.local_llm_api_key,
                    timeout_sec=self.settings.local_llm_timeout_sec,
                )
            )
        return self._local

    def ordered(self) -> list[LLMProvider]:
        if self.settings.llm_scoring_provider == "local":
            candidates = [self.local(), self.openai()]
        else:
            candidates = [self.openai(), self.local()]
        return [provider for provider in candidates if provider is not None]
