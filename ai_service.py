# backend/ai_service.py
"""
Provider adapter: one provider-agnostic ``send_message`` call in front of four
chat-completion APIs.

Messages go in as ``[{"role": ..., "content": ...}]`` and every reply comes
back as::

    {"content": str, "metadata": {"model": str, "tokens": int, "provider": str}}

Nothing here retries. Transport and HTTP errors raised by ``requests``
propagate to the caller unchanged.
"""

import json
import logging
import re
from typing import Dict, List, Optional

import requests
from fastapi import Depends

from config import Settings, get_settings

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1"
ANTHROPIC_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta"

DEFAULT_MODELS = {
    "openai": "gpt-3.5-turbo",
    "claude": "claude-3-5-sonnet-20241022",
    "gemini": "gemini-2.0-flash",
    "lmstudio": "local-model",
}

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that creates concise summaries of conversations. "
    "Provide a brief, informative summary of the key points discussed."
)
ANALYSIS_SYSTEM_PROMPT = (
    "You are an AI that analyzes conversations. Provide a JSON response with: "
    "main_topics (array), sentiment (positive/neutral/negative), "
    "key_points (array), and suggested_tags (array)."
)
QUERY_SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions about past conversations. "
    "Use the provided conversation history to answer the user's question "
    "accurately and concisely."
)

QUERY_PREVIEW_MESSAGES = 5
QUERY_PREVIEW_CHARS = 100

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class AIServiceError(Exception):
    pass


class UnsupportedProviderError(AIServiceError):
    pass


class ConfigurationError(AIServiceError):
    pass


def conversation_text(messages: List[Dict]) -> str:
    return "\n\n".join(f"{m['role']}: {m['content']}" for m in messages)


class AIService:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        # requests module by default, so requests.post can be patched in tests
        self.http = session or requests

        logger.debug(
            "AI provider keys: openai=%s anthropic=%s google=%s lmstudio=%s",
            "configured" if settings.openai_api_key else "missing",
            "configured" if settings.anthropic_api_key else "missing",
            "configured" if settings.google_api_key else "missing",
            settings.lm_studio_url,
        )

    # ─── Dispatch ──────────────────────────────────────────────────────────────
    def send_message(self, provider: str, messages: List[Dict], model: Optional[str] = None) -> Dict:
        """Send ``messages`` to ``provider`` and return the normalized reply."""
        handlers = {
            "openai": self._send_openai,
            "claude": self._send_claude,
            "gemini": self._send_gemini,
            "lmstudio": self._send_lmstudio,
        }
        handler = handlers.get(provider)
        if handler is None:
            raise UnsupportedProviderError(f"Unsupported AI provider: {provider}")

        if provider == "gemini":
            # OpenAI-looking names leak in from conversations created with the default model
            if not model or "gpt" in model:
                model = DEFAULT_MODELS["gemini"]
        else:
            model = model or DEFAULT_MODELS[provider]

        try:
            return handler(messages, model)
        except Exception:
            logger.exception("AI service error (%s)", provider)
            raise

    # ─── Providers ─────────────────────────────────────────────────────────────
    def _send_openai(self, messages: List[Dict], model: str) -> Dict:
        if not self.settings.openai_api_key:
            raise ConfigurationError("OpenAI API key not configured")

        data = self._post_chat_completions(OPENAI_URL, self.settings.openai_api_key, messages, model)
        return {
            "content": data["choices"][0]["message"]["content"],
            "metadata": {
                "model": data.get("model", model),
                "tokens": data["usage"]["total_tokens"],
                "provider": "openai",
            },
        }

    def _send_claude(self, messages: List[Dict], model: str) -> Dict:
        if not self.settings.anthropic_api_key:
            raise ConfigurationError("Anthropic API key not configured")

        # Claude takes the system prompt as a top-level field, not a message
        system = next((m["content"] for m in messages if m["role"] == "system"), "")
        chat = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m["role"] != "system"
        ]
        payload = {
            "model": model,
            "max_tokens": 4096,
            "system": system,
            "messages": chat,
        }
        headers = {
            "x-api-key": self.settings.anthropic_api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        r = self.http.post(f"{ANTHROPIC_URL}/messages", headers=headers, json=payload)
        r.raise_for_status()
        data = r.json()
        usage = data.get("usage", {})
        return {
            "content": data["content"][0]["text"],
            "metadata": {
                "model": data.get("model", model),
                "tokens": usage.get("input_tokens", 0) + usage.get("output_tokens", 0),
                "provider": "claude",
            },
        }

    def _send_gemini(self, messages: List[Dict], model: str) -> Dict:
        if not self.settings.google_api_key:
            raise ConfigurationError("Google API key not configured")

        contents = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
        ]
        r = self.http.post(
            f"{GEMINI_URL}/models/{model}:generateContent",
            params={"key": self.settings.google_api_key},
            headers={"Content-Type": "application/json"},
            json={"contents": contents},
        )
        r.raise_for_status()
        data = r.json()
        parts = data["candidates"][0]["content"]["parts"]
        return {
            "content": "".join(p.get("text", "") for p in parts),
            "metadata": {
                "model": model,
                "tokens": 0,  # not reported
                "provider": "gemini",
            },
        }

    def _send_lmstudio(self, messages: List[Dict], model: str) -> Dict:
        # LM Studio speaks the OpenAI API and ignores the key
        data = self._post_chat_completions(self.settings.lm_studio_url, "lm-studio", messages, model)
        usage = data.get("usage") or {}
        return {
            "content": data["choices"][0]["message"]["content"],
            "metadata": {
                "model": data.get("model") or model,
                "tokens": usage.get("total_tokens") or 0,
                "provider": "lmstudio",
            },
        }

    def _post_chat_completions(self, base_url: str, key: str, messages: List[Dict], model: str) -> Dict:
        headers = {
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "temperature": 0.7,
        }
        r = self.http.post(f"{base_url.rstrip('/')}/chat/completions", headers=headers, json=payload)
        r.raise_for_status()
        return r.json()

    # ─── Prompt templates ──────────────────────────────────────────────────────
    def generate_summary(self, provider: str, messages: List[Dict]) -> str:
        prompt = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"Please summarize this conversation:\n\n{conversation_text(messages)}",
            },
        ]
        return self.send_message(provider, prompt)["content"]

    def analyze_conversation(self, provider: str, messages: List[Dict]) -> Dict:
        """Ask for topics, sentiment and tags; parse whatever JSON object comes back."""
        prompt = [
            {"role": "system", "content": ANALYSIS_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"Analyze this conversation and return JSON:\n\n{conversation_text(messages)}",
            },
        ]
        content = self.send_message(provider, prompt)["content"]
        return parse_analysis(content)

    def query_history(self, provider: str, query: str, conversations: List[Dict]) -> str:
        """
        ``conversations`` are dicts with ``title`` and ``messages``; only the
        first few messages of each, truncated, go into the prompt.
        """
        blocks = []
        for idx, conv in enumerate(conversations, start=1):
            preview = "\n".join(
                f"{m['role']}: {m['content'][:QUERY_PREVIEW_CHARS]}"
                for m in conv["messages"][:QUERY_PREVIEW_MESSAGES]
            )
            blocks.append(f"Conversation {idx} ({conv['title']}):\n{preview}\n---")
        context = "\n\n".join(blocks)

        prompt = [
            {"role": "system", "content": QUERY_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"Based on these past conversations:\n\n{context}\n\nQuestion: {query}",
            },
        ]
        return self.send_message(provider, prompt)["content"]


def parse_analysis(content: str) -> Dict:
    match = _JSON_OBJECT.search(content or "")
    if match:
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
    return {"raw_analysis": content}


def provider_error_hint(error: Exception) -> str:
    """Turn a provider failure into the message shown to the user."""
    text = str(error)
    if "API key not configured" in text:
        return f"{text}. Please configure your API keys in the backend environment variables."
    if "quota" in text or "limit" in text:
        return f"API quota or rate limit exceeded: {text}"
    if "401" in text or "authentication" in text:
        return f"Authentication failed: {text}. Please check your API key."
    if "model" in text:
        return f"Model error: {text}"
    return text or "Error processing chat message"


# ─── Dependency: get_ai_service ────────────────────────────────────────────────
def get_ai_service(settings: Settings = Depends(get_settings)) -> AIService:
    return AIService(settings)
