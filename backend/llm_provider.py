"""
MainsGrader - Multi-Provider LLM Client
========================================
One provider per process, chosen by LLM_PROVIDER:
  1. openai  (default): gpt-4o-mini, JSON mode, vision via image_url parts
  2. claude           : Anthropic Messages API, base64 image sources
  3. gemini           : Gemini 1.5 Flash, JSON mime type, inline image bytes
  4. groq             : OpenAI-compatible chat completions, Llama 4 vision

Set in .env:
  LLM_PROVIDER=openai        (openai | claude | gemini | groq)
  OPENAI_API_KEY=...
  ANTHROPIC_API_KEY=...
  GEMINI_API_KEY=...
  GROQ_API_KEY=...

There is no fallback chain: the scorer is invoked exactly once per request
and a failure is reported to the caller.

Message parts are provider-neutral dicts:
  {"type": "text",  "text": "..."}
  {"type": "image", "mime": "image/jpeg", "data_url": "data:image/jpeg;base64,..."}
"""

import os
import base64
import logging
import time
from dataclasses import dataclass
from typing import Optional, List, Dict, Tuple

from backend.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

TEMPERATURE = 0.2
MAX_OUTPUT_TOKENS = 2048


@dataclass
class LLMResponse:
    text: str
    provider: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0


def split_data_url(data_url: str, default_mime: str = "image/jpeg") -> Tuple[str, str]:
    """Return (mime, base64 payload) for a ``data:<mime>;base64,<payload>`` URL."""
    if not data_url.startswith("data:") or "," not in data_url:
        return default_mime, data_url
    header, payload = data_url.split(",", 1)
    mime = header[len("data:"):].split(";", 1)[0] or default_mime
    return mime, payload


def _key_is_set(api_key: Optional[str], placeholder: str) -> bool:
    return bool(api_key) and api_key not in ("", placeholder)


def _openai_style_parts(parts: List[Dict]) -> List[Dict]:
    converted = []
    for part in parts:
        if part["type"] == "image":
            converted.append({"type": "image_url", "image_url": {"url": part["data_url"]}})
        else:
            converted.append({"type": "text", "text": part["text"]})
    return converted


# ─────────────────────────────────────────────────────────────────────────────
# OpenAI Provider (default)
# ─────────────────────────────────────────────────────────────────────────────

class OpenAIProvider:
    DEFAULT_MODEL = "gpt-4o-mini"
    KEY_ENV = "OPENAI_API_KEY"

    def __init__(self, api_key: str, model: Optional[str] = None):
        self.api_key = api_key
        self.model = model or os.getenv("OPENAI_MODEL", self.DEFAULT_MODEL)
        self._client = None

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key)
            logger.info("✅ OpenAI client ready: %s", self.model)
        return self._client

    def generate(self, system_prompt: str, parts: List[Dict]) -> LLMResponse:
        start = time.time()
        client = self._get_client()
        resp = client.chat.completions.create(
            model=self.model,
            temperature=TEMPERATURE,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": _openai_style_parts(parts)},
            ],
        )
        text = (resp.choices[0].message.content if resp.choices else None) or "{}"
        latency = (time.time() - start) * 1000
        return LLMResponse(
            text=text,
            provider="openai",
            model=self.model,
            prompt_tokens=resp.usage.prompt_tokens if resp.usage else 0,
            completion_tokens=resp.usage.completion_tokens if resp.usage else 0,
            latency_ms=round(latency, 2),
        )

    def is_available(self) -> bool:
        return _key_is_set(self.api_key, "your_openai_api_key_here")


# ─────────────────────────────────────────────────────────────────────────────
# Claude Provider (Anthropic)
# ─────────────────────────────────────────────────────────────────────────────

class ClaudeProvider:
    DEFAULT_MODEL = "claude-haiku-4-5-20251001"
    KEY_ENV = "ANTHROPIC_API_KEY"

    def __init__(self, api_key: str, model: Optional[str] = None):
        self.api_key = api_key
        self.model = model or os.getenv("CLAUDE_MODEL", self.DEFAULT_MODEL)
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(api_key=self.api_key)
            logger.info("✅ Claude client ready: %s", self.model)
        return self._client

    @staticmethod
    def _convert(parts: List[Dict]) -> List[Dict]:
        content = []
        for part in parts:
            if part["type"] == "image":
                mime, data = split_data_url(part["data_url"], part.get("mime") or "image/jpeg")
                content.append({
                    "type": "image",
                    "source": {"type": "base64", "media_type": mime, "data": data},
                })
            else:
                content.append({"type": "text", "text": part["text"]})
        return content

    def generate(self, system_prompt: str, parts: List[Dict]) -> LLMResponse:
        start = time.time()
        client = self._get_client()

        message = client.messages.create(
            model=self.model,
            max_tokens=MAX_OUTPUT_TOKENS,
            temperature=TEMPERATURE,
            system=system_prompt + "\nNo markdown fences, no extra text.",
            messages=[{"role": "user", "content": self._convert(parts)}],
        )

        text = message.content[0].text if message.content else "{}"
        latency = (time.time() - start) * 1000

        return LLMResponse(
            text=text,
            provider="claude",
            model=self.model,
            prompt_tokens=message.usage.input_tokens,
            completion_tokens=message.usage.output_tokens,
            latency_ms=round(latency, 2),
        )

    def is_available(self) -> bool:
        return _key_is_set(self.api_key, "your_anthropic_api_key_here")


# ─────────────────────────────────────────────────────────────────────────────
# Gemini Provider
# ─────────────────────────────────────────────────────────────────────────────

class GeminiProvider:
    DEFAULT_MODEL = "gemini-1.5-flash"
    KEY_ENV = "GEMINI_API_KEY"

    def __init__(self, api_key: str, model: Optional[str] = None):
        self.api_key = api_key
        self.model = model or os.getenv("GEMINI_MODEL", self.DEFAULT_MODEL)
        self._genai = None

    def _get_client(self):
        if self._genai is None:
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self._genai = genai
            logger.info("✅ Gemini client ready: %s", self.model)
        return self._genai

    @staticmethod
    def _convert(parts: List[Dict]) -> list:
        content = []
        for part in parts:
            if part["type"] == "image":
                mime, data = split_data_url(part["data_url"], part.get("mime") or "image/jpeg")
                content.append({"mime_type": mime, "data": base64.b64decode(data)})
            else:
                content.append(part["text"])
        return content

    def generate(self, system_prompt: str, parts: List[Dict]) -> LLMResponse:
        start = time.time()
        genai = self._get_client()
        model = genai.GenerativeModel(
            model_name=self.model,
            system_instruction=system_prompt,
            generation_config={
                "temperature": TEMPERATURE,
                "max_output_tokens": MAX_OUTPUT_TOKENS,
                "response_mime_type": "application/json",
            },
        )
        response = model.generate_content(self._convert(parts))
        text = response.text if hasattr(response, "text") else str(response)
        latency = (time.time() - start) * 1000
        return LLMResponse(text=text, provider="gemini", model=self.model, latency_ms=round(latency, 2))

    def is_available(self) -> bool:
        return _key_is_set(self.api_key, "your_gemini_api_key_here")


# ─────────────────────────────────────────────────────────────────────────────
# Groq Provider
# ─────────────────────────────────────────────────────────────────────────────

class GroqProvider:
    DEFAULT_MODEL = "meta-llama/llama-4-scout-17b-16e-instruct"
    KEY_ENV = "GROQ_API_KEY"

    def __init__(self, api_key: str, model: Optional[str] = None):
        self.api_key = api_key
        self.model = model or os.getenv("GROQ_MODEL", self.DEFAULT_MODEL)
        self._client = None

    def _get_client(self):
        if self._client is None:
            from groq import Groq
            self._client = Groq(api_key=self.api_key)
            logger.info("✅ Groq client ready: %s", self.model)
        return self._client

    def generate(self, system_prompt: str, parts: List[Dict]) -> LLMResponse:
        start = time.time()
        client = self._get_client()
        resp = client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": _openai_style_parts(parts)},
            ],
            temperature=TEMPERATURE,
            max_tokens=MAX_OUTPUT_TOKENS,
            response_format={"type": "json_object"},
        )
        text = resp.choices[0].message.content or "{}"
        latency = (time.time() - start) * 1000
        return LLMResponse(
            text=text,
            provider="groq",
            model=self.model,
            prompt_tokens=resp.usage.prompt_tokens if resp.usage else 0,
            completion_tokens=resp.usage.completion_tokens if resp.usage else 0,
            latency_ms=round(latency, 2),
        )

    def is_available(self) -> bool:
        return _key_is_set(self.api_key, "your_groq_api_key_here")


PROVIDERS = {
    "openai": OpenAIProvider,
    "claude": ClaudeProvider,
    "gemini": GeminiProvider,
    "groq":   GroqProvider,
}


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────

class LLMClient:
    """
    Thin wrapper around the single configured provider.
    Built once per process; holds no per-request state.
    """

    def __init__(self, provider):
        self._provider = provider

    @classmethod
    def from_env(cls) -> "LLMClient":
        name = os.getenv("LLM_PROVIDER", "openai").lower().strip()
        provider_cls = PROVIDERS.get(name)
        if provider_cls is None:
            raise ConfigurationError(
                f"Unknown LLM_PROVIDER '{name}'. Use one of: {', '.join(PROVIDERS)}"
            )

        provider = provider_cls(os.getenv(provider_cls.KEY_ENV, ""))
        if not provider.is_available():
            raise ConfigurationError(f"{provider_cls.KEY_ENV} is not set")

        logger.info("🚀 LLMClient ready: %s(%s)", provider_cls.__name__, provider.model)
        return cls(provider)

    def generate(self, system_prompt: str, parts: List[Dict]) -> LLMResponse:
        name = self._provider.__class__.__name__
        try:
            response = self._provider.generate(system_prompt, parts)
        except Exception as e:
            raise UpstreamError(f"{name} request failed: {e}", provider=name) from e
        logger.info(
            "✅ %s/%s responded in %.2fms (%d prompt / %d completion tokens)",
            response.provider, response.model, response.latency_ms,
            response.prompt_tokens, response.completion_tokens,
        )
        return response

    @property
    def active_provider(self) -> str:
        return f"{self._provider.__class__.__name__}({getattr(self._provider, 'model', 'N/A')})"
