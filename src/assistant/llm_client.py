"""
LLM client abstraction -- provider-agnostic wrapper.

Every call is a two-message exchange (system instruction + user content) at a
caller-chosen temperature.

Supported providers:
  mock      -- echo back the user message (for tests / offline dev)
  openai    -- OpenAI ChatCompletion (gpt-4o-mini default)
  anthropic -- Anthropic Messages (claude-3-haiku default)
  ollama    -- local Ollama /api/chat endpoint (qwen2.5 instruct default)

Configuration is read from Settings (env / .env).  No retries are performed;
a failed call raises and ends the request.
"""
from __future__ import annotations

from typing import Any, Callable

import httpx

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_MAX_TOKENS = 512


def _call_mock(system: str, user: str, temperature: float) -> str:
    logger.info("LLM mock mode -- returning echo")
    return f"[MOCK] {user[:200]}"


def _call_openai(system: str, user: str, temperature: float) -> str:
    """Call OpenAI ChatCompletion API."""
    settings = get_settings()
    api_key = settings.openai_api_key
    if not api_key:
        raise RuntimeError(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc

    client = openai.OpenAI(api_key=api_key, timeout=settings.llm_timeout_seconds)
    response = client.chat.completions.create(
        model=settings.openai_model,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        temperature=temperature,
        max_tokens=_MAX_TOKENS,
    )
    text = response.choices[0].message.content or ""
    logger.info("OpenAI response (%d chars)", len(text))
    return text


def _call_anthropic(system: str, user: str, temperature: float) -> str:
    """Call Anthropic Messages API."""
    settings = get_settings()
    api_key = settings.anthropic_api_key
    if not api_key:
        raise RuntimeError(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    client = anthropic.Anthropic(api_key=api_key, timeout=settings.llm_timeout_seconds)
    response = client.messages.create(
        model=settings.anthropic_model,
        max_tokens=_MAX_TOKENS,
        system=system,
        temperature=temperature,
        messages=[{"role": "user", "content": user}],
    )
    text = response.content[0].text if response.content else ""
    logger.info("Anthropic response (%d chars)", len(text))
    return text


def _call_ollama(system: str, user: str, temperature: float) -> str:
    """Call a local Ollama server's chat endpoint."""
    settings = get_settings()
    url = settings.ollama_base_url.rstrip("/") + "/api/chat"
    payload = {
        "model": settings.ollama_model,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ],
        "stream": False,
        "options": {"temperature": temperature},
    }
    try:
        response = httpx.post(url, json=payload, timeout=settings.llm_timeout_seconds)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise RuntimeError(f"Ollama call failed: {exc}") from exc

    data = response.json()
    text = (data.get("message") or {}).get("content") or data.get("response") or ""
    logger.info("Ollama response (%d chars)", len(text))
    return text


_PROVIDERS: dict[str, Callable[[str, str, float], str]] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
    "ollama": _call_ollama,
}


def call_llm(
    system: str,
    user: str,
    temperature: float = 0.0,
    provider: str | None = None,
) -> str:
    """Send a system + user exchange to the configured (or overridden) provider.

    Parameters
    ----------
    system : str
        The fixed instruction for this stage.
    user : str
        The per-request content.
    temperature : float
        Decoding temperature; near zero for extraction, higher for small talk.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic, ollama.
    """
    if provider is None:
        provider = get_settings().llm_provider.lower()

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    logger.info(
        "Calling LLM provider=%s  temperature=%.1f  system_len=%d  user_len=%d",
        provider, temperature, len(system), len(user),
    )
    return fn(system, user, temperature)


def available_providers() -> list[str]:
    return list(_PROVIDERS)


def describe_provider(provider: str | None = None) -> dict[str, Any]:
    """Return the provider name and model used for *provider* (for /health)."""
    settings = get_settings()
    provider = (provider or settings.llm_provider).lower()
    model = {
        "openai": settings.openai_model,
        "anthropic": settings.anthropic_model,
        "ollama": settings.ollama_model,
    }.get(provider, "")
    return {"provider": provider, "model": model}
