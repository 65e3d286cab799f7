"""
Google Gemini generateContent adapter
"""

from typing import Any, Dict, Optional

from .base import (
    AdapterResponse, CanonicalRequest, ProviderAdapter, WireRequest,
    generation_option, message_fields,
)


class GeminiAdapter(ProviderAdapter):
    kind = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def translate(self, request: CanonicalRequest) -> WireRequest:
        contents = []
        system_parts = []
        for message in request.messages:
            fields = message_fields(message)
            if fields["role"] == "system":
                system_parts.append({"text": fields["content"]})
            elif fields["role"] == "assistant":
                contents.append({"role": "model", "parts": [{"text": fields["content"]}]})
            else:
                contents.append({"role": "user", "parts": [{"text": fields["content"]}]})

        payload: Dict[str, Any] = {"contents": contents}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}

        generation_config = {}
        max_tokens = generation_option(request.options, "max_tokens")
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        for name, wire_name in (("temperature", "temperature"), ("top_p", "topP"),
                                ("top_k", "topK"), ("stop", "stopSequences")):
            value = generation_option(request.options, name)
            if value is not None:
                generation_config[wire_name] = value
        if generation_config:
            payload["generationConfig"] = generation_config

        return WireRequest(
            url=f"{self.base_url}/models/{request.model}:generateContent",
            payload=payload,
        )

    def auth_headers(self, credential: Optional[str]) -> Dict[str, str]:
        if not credential:
            return {}
        return {"x-goog-api-key": credential}

    def parse(self, wire_response: Dict[str, Any]) -> AdapterResponse:
        candidate = wire_response["candidates"][0]
        parts = (candidate.get("content") or {}).get("parts") or []
        usage = wire_response.get("usageMetadata") or {}
        return AdapterResponse(
            content="".join(part.get("text", "") for part in parts),
            input_tokens=int(usage.get("promptTokenCount", 0)),
            output_tokens=int(usage.get("candidatesTokenCount", 0)),
            finish_reason=candidate.get("finishReason"),
        )

    def health_url(self) -> str:
        return f"{self.base_url}/models"
