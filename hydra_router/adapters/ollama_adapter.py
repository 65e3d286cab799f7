"""
Ollama local server adapter
"""

from typing import Any, Dict, Optional

from .base import (
    AdapterResponse, CanonicalRequest, ProviderAdapter, WireRequest,
    generation_option, message_fields,
)


class OllamaAdapter(ProviderAdapter):
    """Keyless adapter for a local Ollama server"""

    kind = "ollama"
    default_base_url = "http://127.0.0.1:11434"

    def translate(self, request: CanonicalRequest) -> WireRequest:
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": [message_fields(m) for m in request.messages],
            "stream": False,
        }

        options = {}
        max_tokens = generation_option(request.options, "max_tokens")
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        for name in ("temperature", "top_p", "top_k", "stop"):
            value = generation_option(request.options, name)
            if value is not None:
                options[name] = value
        if options:
            payload["options"] = options

        return WireRequest(url=f"{self.base_url}/api/chat", payload=payload)

    def auth_headers(self, credential: Optional[str]) -> Dict[str, str]:
        if not credential:
            return {}
        return {"Authorization": f"Bearer {credential}"}

    def parse(self, wire_response: Dict[str, Any]) -> AdapterResponse:
        message = wire_response["message"]
        return AdapterResponse(
            content=message.get("content", ""),
            input_tokens=int(wire_response.get("prompt_eval_count", 0)),
            output_tokens=int(wire_response.get("eval_count", 0)),
            finish_reason=wire_response.get("done_reason"),
        )

    def health_url(self) -> str:
        return f"{self.base_url}/api/tags"
