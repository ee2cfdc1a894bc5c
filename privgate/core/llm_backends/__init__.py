from __future__ import annotations

from privgate.core.llm_backends.base import ProviderAdapter, ProviderHealth
from privgate.core.llm_backends.ollama import OllamaAdapter
from privgate.core.llm_backends.openai_compat import OpenAICompatAdapter

__all__ = ["OllamaAdapter", "OpenAICompatAdapter", "ProviderAdapter", "ProviderHealth", "build_adapter"]


def build_adapter(kind: str, *, base_url: str, api_key: str = "") -> ProviderAdapter:
    if kind == "ollama":
        return OllamaAdapter(base_url=base_url)
    if kind == "openai_compat":
        return OpenAICompatAdapter(base_url=base_url, api_key=api_key)
    raise ValueError(f"Unknown provider kind: {kind}")
