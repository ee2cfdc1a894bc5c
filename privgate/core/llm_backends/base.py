from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class ProviderHealth:
    ok: bool
    detail: str = ""


class ProviderAdapter:
    """
    Provider interface. Adapters only ever see redacted text.

    - chat()   -> perform one completion request, return raw text
    - health() -> non-blocking reachability probe
    Transport errors propagate as-is (requests exceptions); the gateway maps
    them to ProviderError.
    """

    name: str = "base"

    def health(self) -> ProviderHealth:
        """Return reachability information."""
        return ProviderHealth(ok=True, detail="unknown")

    def chat(
        self,
        *,
        model: str,
        messages: list[dict],
        options: Dict[str, Any],
        timeout_seconds: float,
        trace_id: str = "",
    ) -> str:
        """Send a chat request and return the raw text response."""
        raise NotImplementedError
