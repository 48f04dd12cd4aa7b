import asyncio
from typing import Any, Dict, Optional, Type

import httpx
from httpx import HTTPStatusError, TimeoutException

from app.core.exceptions import APIClientError, APITimeoutError, AppError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseAPIClient:
    """Base client for outbound REST calls.

    Handles retries with exponential backoff, timeout management and error
    logging. Subclasses provide authentication through ``auth_headers``.
    """

    error_class: Type[AppError] = APIClientError

    def __init__(
        self,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay: Base delay for exponential backoff
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.transport = transport
        self.logger = LOGGER

    async def auth_headers(self) -> Dict[str, str]:
        return {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def request(
        self,
        method: str,
        endpoint: str = "",
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Send a request with retry logic.

        Args:
            method: HTTP method
            endpoint: Path appended to base_url, or an absolute URL
            json: JSON body
            params: Query parameters
            data: Form-encoded body
            content: Raw body
            headers: Additional headers

        Returns:
            The successful response

        Raises:
            APIClientError: If the call fails after retries (or with a 4xx)
            APITimeoutError: If the call times out after retries
        """
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            url = endpoint
        else:
            url = f"{self.base_url}{endpoint}"

        self.logger.debug(
            f"Calling API: {url}",
            extra={"method": method, "timeout": self.timeout}
        )

        async with self._client() as client:
            for attempt in range(self.max_retries):
                try:
                    request_headers = {**(await self.auth_headers()), **(headers or {})}
                    response = await client.request(
                        method,
                        url,
                        json=json,
                        params=params,
                        data=data,
                        content=content,
                        headers=request_headers,
                    )
                    response.raise_for_status()
                    return response

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)

                except httpx.TransportError as e:
                    await self._handle_transport_error(e, attempt, url)

        raise self.error_class(f"Failed to call API {url} after {self.max_retries} attempts")

    async def call_api(self, endpoint: str = "", method: str = "GET", **kwargs) -> Dict[str, Any]:
        """Send a request and decode the JSON body (empty dict for 204)."""
        response = await self.request(method, endpoint, **kwargs)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        status_code = error.response.status_code
        error_body = error.response.text

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={
                "url": url,
                "status_code": status_code,
                "error_body": error_body[:500]
            }
        )

        # Client errors are final, except rate limiting
        if 400 <= status_code < 500 and status_code != 429:
            raise self.error_class(
                f"API Client Error {status_code}: {error_body[:500]}", original_error=error
            ) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise self.error_class(
                f"API HTTP Error {status_code} after retries", original_error=error
            ) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        self.logger.warning(
            f"API Timeout (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(
                f"API Timeout after {self.max_retries} attempts", original_error=error
            ) from error

    async def _handle_transport_error(self, error: httpx.TransportError, attempt: int, url: str):
        self.logger.warning(
            f"API transport error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise self.error_class(f"API Error: {str(error)}", original_error=error) from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        wait_time = self.retry_delay * (2 ** attempt)
        await asyncio.sleep(wait_time)
