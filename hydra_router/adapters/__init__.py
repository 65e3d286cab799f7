"""
Adapters package - Provider wire-format translation
"""

from .base import AdapterResponse, CanonicalRequest, ProviderAdapter, WireRequest
from .anthropic_adapter import AnthropicAdapter
from .gemini_adapter import GeminiAdapter
from .ollama_adapter import OllamaAdapter
from .openai_adapter import OpenAIAdapter

ADAPTER_TYPES = {
    adapter_type.kind: adapter_type
    for adapter_type in (OpenAIAdapter, AnthropicAdapter, GeminiAdapter, OllamaAdapter)
}

from .client import LLMClient  # noqa: E402

__all__ = [
    'ADAPTER_TYPES',
    'AdapterResponse',
    'AnthropicAdapter',
    'CanonicalRequest',
    'GeminiAdapter',
    'LLMClient',
    'OllamaAdapter',
    'OpenAIAdapter',
    'ProviderAdapter',
    'WireRequest',
]
