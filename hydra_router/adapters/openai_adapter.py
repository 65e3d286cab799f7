"""
OpenAI-compatible chat completions adapter
"""

from typing import Any, Dict, Optional

from .base import (
    AdapterResponse, CanonicalRequest, ProviderAdapter, WireRequest,
    generation_option, message_fields,
)


class OpenAIAdapter(ProviderAdapter):
    """Also serves any backend exposing ``/chat/completions`` (e.g. OpenRouter, vLLM)"""

    kind = "openai"
    default_base_url = "https://api.openai.com/v1"

    def translate(self, request: CanonicalRequest) -> WireRequest:
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": [message_fields(m) for m in request.messages],
        }

        for name in ("max_tokens", "temperature", "top_p", "stop"):
            value = generation_option(request.options, name)
            if value is not None:
                payload[name] = value

        return WireRequest(url=f"{self.base_url}/chat/completions", payload=payload)

    def auth_headers(self, credential: Optional[str]) -> Dict[str, str]:
        if not credential:
            return {}
        return {"Authorization": f"Bearer {credential}"}

    def parse(self, wire_response: Dict[str, Any]) -> AdapterResponse:
        choice = wire_response["choices"][0]
        usage = wire_response.get("usage") or {}
        return AdapterResponse(
            content=choice["message"].get("content") or "",
            input_tokens=int(usage.get("prompt_tokens", 0)),
            output_tokens=int(usage.get("completion_tokens", 0)),
            finish_reason=choice.get("finish_reason"),
        )

    def health_url(self) -> str:
        return f"{self.base_url}/models"
