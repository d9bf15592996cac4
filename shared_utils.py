# shared_utils.py
"""Completion bridge to the model providers.

``complete(messages, model_id, credentials)`` is the only entry point the
engine uses. It resolves the provider for a model, checks credentials, trims
image parts for text-only models and returns ``{"content": ..., "provider":
...}``, raising a ``ProviderError`` subclass on any failure.
"""

import logging
import re

import anthropic
import openai
import requests
from anthropic import Anthropic
from openai import OpenAI

from config import (
    AI_MODELS,
    GEMINI_API_URL,
    MAX_TOKENS,
    PROVIDER_BASE_URLS,
    REQUEST_TIMEOUT,
    supports_vision,
)
from errors import (
    MissingCredentialError,
    TransportFailureError,
    UnknownModelError,
    UnknownProviderError,
)

logger = logging.getLogger(__name__)

_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.*)$", re.DOTALL)
_THINK_PATTERN = re.compile(r"<(think|thinking)>.*?</\1>", re.DOTALL | re.IGNORECASE)

# Providers that do not need a secret; their credential entry is an optional base URL
KEYLESS_PROVIDERS = {"ollama"}


def split_data_url(url):
    """Return ``(mime_type, base64_data)`` for a data URL, else ``(None, None)``."""
    match = _DATA_URL_PATTERN.match(url or "")
    if not match:
        return None, None
    return match.group("mime"), match.group("data")


def text_of(content):
    """Flatten message content to plain text."""
    if isinstance(content, list):
        return "\n".join(part.get("text", "") for part in content if part.get("type") == "text")
    return content or ""


def strip_images(messages):
    """Collapse structured content to text for models without vision support."""
    stripped = []
    for msg in messages:
        if isinstance(msg.get("content"), list):
            stripped.append({**msg, "content": text_of(msg["content"])})
        else:
            stripped.append(msg)
    return stripped


def normalize_response(text, provider):
    """Clean provider output and wrap it in the collaborator's result shape."""
    cleaned = _THINK_PATTERN.sub("", text or "").strip()
    if not cleaned:
        # Reasoning-only replies still count as an answer
        cleaned = (text or "").strip()
    if not cleaned:
        raise TransportFailureError(None, f"{provider} returned an empty response")
    return {"content": cleaned, "provider": provider}


def resolve_provider(model_id):
    entry = AI_MODELS.get(model_id)
    if isinstance(entry, dict):
        return entry["provider"]

    # Custom ids or ids from old canvases that are no longer listed
    if model_id.startswith("gpt"):
        return "openai"
    if model_id.startswith("claude"):
        return "anthropic"
    if model_id.startswith("gemini"):
        return "google"
    raise UnknownModelError(model_id)


def to_openai_messages(messages):
    converted = []
    for msg in messages:
        content = msg.get("content")
        if isinstance(content, list):
            parts = []
            for part in content:
                if part.get("type") == "text":
                    parts.append({"type": "text", "text": part.get("text", "")})
                elif part.get("type") == "image":
                    parts.append({"type": "image_url", "image_url": {"url": part.get("image", "")}})
            content = parts
        converted.append({"role": msg["role"], "content": content})
    return converted


def to_anthropic_messages(messages):
    """Split out the system prompt and convert image parts to base64 sources."""
    system_parts = []
    converted = []
    for msg in messages:
        content = msg.get("content")
        if msg.get("role") == "system":
            system_parts.append(text_of(content))
            continue
        if isinstance(content, list):
            blocks = []
            for part in content:
                if part.get("type") == "text":
                    blocks.append({"type": "text", "text": part.get("text", "")})
                elif part.get("type") == "image":
                    mime_type, data = split_data_url(part.get("image"))
                    if data is None:
                        blocks.append({"type": "image", "source": {"type": "url", "url": part.get("image", "")}})
                    else:
                        blocks.append({
                            "type": "image",
                            "source": {"type": "base64", "media_type": mime_type, "data": data}
                        })
            content = blocks
        converted.append({"role": msg["role"], "content": content})
    return "\n\n".join(part for part in system_parts if part), converted


def to_gemini_contents(messages):
    system_parts = []
    contents = []
    for msg in messages:
        content = msg.get("content")
        if msg.get("role") == "system":
            system_parts.append(text_of(content))
            continue
        parts = []
        if isinstance(content, list):
            for part in content:
                if part.get("type") == "text":
                    parts.append({"text": part.get("text", "")})
                elif part.get("type") == "image":
                    mime_type, data = split_data_url(part.get("image"))
                    if data is None:
                        logger.warning("Gemini only accepts inline images, dropping %.40s", part.get("image"))
                        continue
                    parts.append({"inline_data": {"mime_type": mime_type, "data": data}})
        else:
            parts.append({"text": content or ""})
        gemini_role = "user" if msg.get("role") == "user" else "model"
        contents.append({"role": gemini_role, "parts": parts})
    return "\n\n".join(part for part in system_parts if part), contents


def call_openai_compatible_api(messages, model_id, api_key, base_url=None):
    """Call any OpenAI-compatible chat completions endpoint."""
    client = OpenAI(api_key=api_key, base_url=base_url, timeout=REQUEST_TIMEOUT)
    try:
        response = client.chat.completions.create(
            model=model_id,
            messages=to_openai_messages(messages),
        )
    except openai.APIStatusError as exc:
        raise TransportFailureError(exc.status_code, exc.response.text) from exc
    except openai.APIError as exc:
        raise TransportFailureError(None, str(exc)) from exc

    if not response.choices:
        return ""
    return response.choices[0].message.content or ""


def call_claude_api(messages, model_id, api_key):
    """Call the Anthropic Messages API."""
    client = Anthropic(api_key=api_key, timeout=REQUEST_TIMEOUT)
    system_prompt, converted = to_anthropic_messages(messages)

    request = {
        "model": model_id,
        "max_tokens": MAX_TOKENS,
        "messages": converted,
    }
    if system_prompt:
        request["system"] = system_prompt

    try:
        response = client.messages.create(**request)
    except anthropic.APIStatusError as exc:
        raise TransportFailureError(exc.status_code, exc.response.text) from exc
    except anthropic.APIError as exc:
        raise TransportFailureError(None, str(exc)) from exc

    text_blocks = [block.text for block in response.content if getattr(block, "type", None) == "text"]
    return "\n".join(text_blocks)


def call_gemini_api(messages, model_id, api_key):
    """Call Gemini models via the REST API."""
    system_prompt, contents = to_gemini_contents(messages)
    body = {"contents": contents}
    if system_prompt:
        body["system_instruction"] = {"parts": [{"text": system_prompt}]}

    try:
        response = requests.post(
            GEMINI_API_URL.format(model=model_id),
            params={"key": api_key},
            headers={"Content-Type": "application/json"},
            json=body,
            timeout=REQUEST_TIMEOUT
        )
    except requests.exceptions.RequestException as exc:
        raise TransportFailureError(None, str(exc)) from exc

    if not response.ok:
        raise TransportFailureError(response.status_code, response.text)

    candidates = response.json().get("candidates", [])
    if not candidates:
        return ""
    parts = candidates[0].get("content", {}).get("parts", [])
    return "\n".join(part.get("text", "") for part in parts if part.get("text")).strip()


def _openai_compatible_provider(provider):
    def handler(messages, model_id, credential):
        if provider in KEYLESS_PROVIDERS:
            # The stored value is a base URL override; the key is a placeholder
            base_url = credential or PROVIDER_BASE_URLS.get(provider)
            return call_openai_compatible_api(messages, model_id, "ollama", base_url)
        return call_openai_compatible_api(messages, model_id, credential, PROVIDER_BASE_URLS.get(provider))
    return handler


def _anthropic_provider(messages, model_id, credential):
    return call_claude_api(messages, model_id, credential)


def _google_provider(messages, model_id, credential):
    return call_gemini_api(messages, model_id, credential)


PROVIDER_REGISTRY = {
    "openai": {"handler": _openai_compatible_provider("openai")},
    "anthropic": {"handler": _anthropic_provider},
    "google": {"handler": _google_provider},
    "groq": {"handler": _openai_compatible_provider("groq")},
    "mistral": {"handler": _openai_compatible_provider("mistral")},
    "cerebras": {"handler": _openai_compatible_provider("cerebras")},
    "openrouter": {"handler": _openai_compatible_provider("openrouter")},
    "ollama": {"handler": _openai_compatible_provider("ollama")},
}


def complete(messages, model_id, credentials):
    """Send ``messages`` to ``model_id`` and return ``{"content": ...}``."""
    provider = resolve_provider(model_id)
    handler_entry = PROVIDER_REGISTRY.get(provider)
    if handler_entry is None:
        raise UnknownProviderError(provider, model_id)

    credential = (credentials or {}).get(provider)
    if not credential and provider not in KEYLESS_PROVIDERS:
        raise MissingCredentialError(provider)

    if not supports_vision(model_id):
        messages = strip_images(messages)

    logger.info("Sending %d messages to %s via %s", len(messages), model_id, provider)
    raw_text = handler_entry["handler"](messages, model_id, credential)
    return normalize_response(raw_text, provider)
