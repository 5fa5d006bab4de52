import logging
from enum import Enum
from typing import Optional

import httpx

from .config import DEFAULT_BASE_URL

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    SERVER = "server"
    AUTH = "auth"
    TIMEOUT = "timeout"
    OTHER = "other"


class ProviderError(Exception):
    """Raised when the provider call fails; ``kind`` drives the retry policy."""

    def __init__(self, kind: ErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code


def classify_status(status_code: int) -> ErrorKind:
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code >= 500:
        return ErrorKind.SERVER
    return ErrorKind.OTHER


def _error_message(response: httpx.Response) -> str:
    try:
        detail = response.json()
        return detail.get("error", {}).get("message") or response.reason_phrase
    except Exception:
        return response.reason_phrase or f"HTTP {response.status_code}"


class ProviderClient:
    """Thin async client for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 60.0,
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.url = f"{base_url.rstrip('/')}/v1/messages"
        self._transport = transport

    async def complete(self, payload: dict) -> str:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(ErrorKind.TIMEOUT, f"Provider timed out: {exc!r}") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(ErrorKind.OTHER, f"Provider transport error: {exc!r}") from exc

        if response.is_error:
            kind = classify_status(response.status_code)
            raise ProviderError(
                kind,
                f"Provider API error ({response.status_code}): {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(ErrorKind.OTHER, "Provider returned a non-JSON envelope") from exc

        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            blocks = []
        text = "".join(
            block.get("text") or ""
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if not text.strip():
            logger.warning("Provider envelope has no text content")
            raise ProviderError(ErrorKind.OTHER, "Provider reply carried no text")
        return text
