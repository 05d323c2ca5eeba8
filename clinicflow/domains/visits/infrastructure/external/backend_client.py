# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Visits)
# Description: Shared async HTTP client for the clinic REST backend.
# ============================================================================
"""Clinic Backend HTTP Client.

Base class of the REST adapters. Responses are parsed into
``ApiEnvelope[T]`` here and nowhere else; transport and HTTP failures
become ``IntegrationException`` (404 becomes ``EntityNotFoundException``
when the caller names the entity).
"""

import logging
from typing import Any, Callable, TypeVar

import httpx
from pydantic import BaseModel

from clinicflow.core.domain.exceptions import EntityNotFoundException, IntegrationException

from ...application.ports.response import ApiEnvelope

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")


class BackendClient:
    """Async httpx client with lazy connection setup."""

    service_name = "clinic-backend"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize client.

        Args:
            base_url: Backend API root, e.g. ``http://host:8080/api``.
            timeout: Request timeout in seconds.
            token: Optional bearer token.
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        not_found: tuple[str, str] | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=json, params=params)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 404 and not_found is not None:
                raise EntityNotFoundException(*not_found) from e
            message = _error_message(e.response)
            logger.error(f"HTTP {status_code} calling {method} {path}: {message}")
            raise IntegrationException(self.service_name, message, e) from e
        except httpx.RequestError as e:
            logger.error(f"Request error calling {method} {path}: {e}")
            raise IntegrationException(self.service_name, f"Backend unreachable: {e}", e) from e

    def _envelope(self, response: httpx.Response, model: type[R]) -> ApiEnvelope[R]:
        try:
            return ApiEnvelope[model].model_validate(response.json())  # type: ignore[valid-type]
        except ValueError as e:
            logger.error(f"Unexpected response from {response.request.url}: {e}")
            raise IntegrationException(self.service_name, "Unexpected response shape", e) from e

    async def _call(self, method: str, path: str, model: type[R], **kwargs: Any) -> R:
        """Request ``path`` and return the envelope's ``data`` as ``model``."""
        response = await self._request(method, path, **kwargs)
        return self._envelope(response, model).unwrap(self.service_name)

    async def _call_optional(self, method: str, path: str, model: type[R], **kwargs: Any) -> R | None:
        """Like ``_call`` for endpoints that may answer with only a message."""
        response = await self._request(method, path, **kwargs)
        if not response.content:
            return None
        return self._envelope(response, model).data

    def _map(self, mapper: Callable[[Any], R], data: Any) -> R:
        """Apply a schema -> entity mapper; unknown codes are integration errors."""
        try:
            return mapper(data)
        except ValueError as e:
            raise IntegrationException(self.service_name, f"Backend sent an unmappable payload: {e}", e) from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase
