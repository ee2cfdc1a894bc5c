from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import requests

from privgate.core.llm_backends.base import ProviderAdapter, ProviderHealth


@dataclass
class OpenAICompatAdapter(ProviderAdapter):
    """
    Any server exposing an OpenAI-compatible /v1/chat/completions endpoint.
    """

    base_url: str = "http://127.0.0.1:8080"
    api_key: str = ""
    name: str = "openai_compat"

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

    def _headers(self) -> Dict[str, str]:
        h = {"Content-Type": "application/json"}
        if self.api_key:
            h["Authorization"] = f"Bearer {self.api_key}"
        return h

    def health(self) -> ProviderHealth:
        try:
            r = requests.get(self._url("/v1/models"), headers=self._headers(), timeout=2.0)
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
            "temperature": float(options.get("temperature", 0.2)),
            "max_tokens": int(options.get("max_tokens", 512)),
            "stream": False,
        }
        headers = self._headers()
        if trace_id:
            headers["X-Request-Id"] = trace_id
        r = requests.post(self._url("/v1/chat/completions"), json=payload, headers=headers, timeout=timeout_seconds)
        r.raise_for_status()
        data = r.json()
        choices = data.get("choices") or []
        if not choices:
            raise ValueError("no choices in provider response")
        return str(((choices[0] or {}).get("message") or {}).get("content") or "")
