"""
Anthropic Messages API adapter
"""

from typing import Any, Dict, Optional

from .base import (
    AdapterResponse, CanonicalRequest, ProviderAdapter, WireRequest,
    generation_option, message_fields,
)

DEFAULT_MAX_TOKENS = 1024
API_VERSION = "2023-06-01"


class AnthropicAdapter(ProviderAdapter):
    kind = "anthropic"
    default_base_url = "https://api.anthropic.com"

    def translate(self, request: CanonicalRequest) -> WireRequest:
        system_parts = []
        messages = []
        for message in request.messages:
            fields = message_fields(message)
            if fields["role"] == "system":
                system_parts.append(fields["content"])
            else:
                messages.append(fields)

        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "max_tokens": generation_option(request.options, "max_tokens") or DEFAULT_MAX_TOKENS,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)

        for name in ("temperature", "top_p", "top_k"):
            value = generation_option(request.options, name)
            if value is not None:
                payload[name] = value

        stop = generation_option(request.options, "stop")
        if stop:
            payload["stop_sequences"] = stop

        return WireRequest(
            url=f"{self.base_url}/v1/messages",
            payload=payload,
            headers={"anthropic-version": API_VERSION},
        )

    def auth_headers(self, credential: Optional[str]) -> Dict[str, str]:
        if not credential:
            return {}
        return {"x-api-key": credential, "anthropic-version": API_VERSION}

    def parse(self, wire_response: Dict[str, Any]) -> AdapterResponse:
        text_blocks = [
            block.get("text", "")
            for block in wire_response.get("content", [])
            if block.get("type") == "text"
        ]
        usage = wire_response.get("usage") or {}
        return AdapterResponse(
            content="".join(text_blocks),
            input_tokens=int(usage.get("input_tokens", 0)),
            output_tokens=int(usage.get("output_tokens", 0)),
            finish_reason=wire_response.get("stop_reason"),
        )

    def health_url(self) -> str:
        return f"{self.base_url}/v1/models"
