"""
Provider adapter interface and shared HTTP plumbing
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from ..core.errors import ProviderError
from ..core.failure_classifier import FailureClassifier
from ..models.enums import ErrorKind
from ..utils.logging import setup_logging

logger = setup_logging()


@dataclass
class CanonicalRequest:
    """Backend-independent chat request"""
    model: str
    messages: List[Any]  # List[Message]
    options: Optional[Any] = None  # LLMOptions


@dataclass
class WireRequest:
    """A request already in a backend's wire format, minus credentials"""
    url: str
    payload: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class AdapterResponse:
    """Parsed backend response"""
    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: Optional[str] = None


def message_fields(message) -> Dict[str, str]:
    """Accept pydantic Message objects or plain dicts"""
    if isinstance(message, dict):
        return {"role": message["role"], "content": message["content"]}
    return {"role": message.role, "content": message.content}


def generation_option(options, name: str):
    if options is None:
        return None
    if isinstance(options, dict):
        return options.get(name)
    return getattr(options, name, None)


class ProviderAdapter(ABC):
    """Translates canonical requests to one backend's wire format and back.

    Every failure leaves this class as a ``ProviderError`` whose ``kind`` was
    decided here, from the HTTP status or the transport exception type.
    """

    kind = "base"
    default_base_url: Optional[str] = None

    def __init__(self, client, base_url: Optional[str] = None):
        self.client = client
        self.base_url = (base_url or self.default_base_url or "").rstrip("/")

    @abstractmethod
    def translate(self, request: CanonicalRequest) -> WireRequest:
        """Build the wire request for a canonical request"""

    @abstractmethod
    def auth_headers(self, credential: Optional[str]) -> Dict[str, str]:
        """Headers carrying the credential; never logged"""

    @abstractmethod
    def parse(self, wire_response: Dict[str, Any]) -> AdapterResponse:
        """Extract content and token usage from a wire response"""

    def health_url(self) -> str:
        return self.base_url

    async def invoke(self, wire_request: WireRequest, credential: Optional[str],
                     timeout: float) -> Dict[str, Any]:
        """
        Send a wire request

        Args:
            wire_request: Output of ``translate``
            credential: Resolved secret, or None for keyless backends
            timeout: Seconds before the call is abandoned

        Returns:
            Decoded JSON body

        Raises:
            ProviderError: classified failure
        """
        headers = {"Content-Type": "application/json", **wire_request.headers,
                   **self.auth_headers(credential)}

        try:
            async with self.client.session.post(
                wire_request.url,
                json=wire_request.payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    kind = FailureClassifier.classify_status(response.status)
                    raise ProviderError(
                        kind,
                        f"{self.kind} API error {response.status}: {error_text[:500]}",
                        status_code=response.status,
                    )
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderError(
                        ErrorKind.SERVER_ERROR,
                        f"{self.kind} returned a body that is not JSON: {e}",
                        status_code=response.status,
                    ) from e
                if not isinstance(body, dict):
                    raise ProviderError(
                        ErrorKind.SERVER_ERROR,
                        f"{self.kind} returned a JSON {type(body).__name__}, expected an object",
                        status_code=response.status,
                    )
                return body

        except ProviderError:
            raise
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            kind = FailureClassifier.classify_exception(e)
            raise ProviderError(kind, f"{self.kind} transport error: {type(e).__name__}: {e}") from e

    async def complete(self, request: CanonicalRequest, credential: Optional[str],
                       timeout: float) -> AdapterResponse:
        """translate -> invoke -> parse"""
        wire_request = self.translate(request)
        wire_response = await self.invoke(wire_request, credential, timeout)
        try:
            return self.parse(wire_response)
        except ProviderError:
            raise
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ProviderError(
                ErrorKind.SERVER_ERROR,
                f"{self.kind} returned an unexpected response shape: {e}",
            ) from e

    async def health_check(self, credential: Optional[str], timeout: float = 5.0) -> bool:
        """Cheap reachability probe"""
        try:
            async with self.client.session.get(
                self.health_url(),
                headers=self.auth_headers(credential),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                if response.status < 400:
                    return True
                logger.warning("Health check failed", adapter=self.kind, status=response.status)
                return False
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            logger.warning("Health check failed with exception", adapter=self.kind, error=str(e))
            return False
