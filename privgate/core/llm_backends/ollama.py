from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import requests

from privgate.core.llm_backends.base import ProviderAdapter, ProviderHealth


@dataclass
class OllamaAdapter(ProviderAdapter):
    base_url: str = "http://127.0.0.1:11434"
    name: str = "ollama"

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

    def health(self) -> ProviderHealth:
        try:
            r = requests.get(self._url("/api/tags"), timeout=2.0)
            if r.status_code == 200:
                return ProviderHealth(ok=True, detail="ok")
            return ProviderHealth(ok=False, detail=f"HTTP {r.status_code}")
        except requests.RequestException as e:
            return ProviderHealth(ok=False, detail=type(e).__name__)

    def chat(
        self,
        *,
        model: str,
        messages: list[dict],
        options: Dict[str, Any],
        timeout_seconds: float,
        trace_id: str = "",
    ) -> str:
        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": options.get("temperature", 0.2), "num_predict": options.get("max_tokens", 512)},
        }
        r = requests.post(self._url("/api/chat"), json=payload, timeout=timeout_seconds)
        r.raise_for_status()
        data = r.json()
        return str(((data.get("message") or {}).get("content")) or "")
