"""Gemini access for structured document extraction."""

import asyncio
from typing import Optional

from google import genai
from google.genai import errors, types

from app.core.exceptions import APIClientError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _is_retryable(error: Exception) -> bool:
    """Rate limits, server errors and anything below the HTTP layer are retried."""
    if isinstance(error, errors.APIError):
        return error.code == 429 or error.code >= 500
    return True


class GeminiClient:
    """Gemini client that returns JSON text for a document and a prompt.

    Requests are retried with exponential backoff on rate limits and server
    errors; other API errors fail immediately.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        max_retries: int = 3,
        retry_delay: int = 1,
    ):
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client = genai.Client(api_key=api_key)
        LOGGER.info("Initialized Gemini client", extra={"model": model})

    @staticmethod
    def pdf_part(content: bytes) -> types.Part:
        """Inline PDF bytes as a content part."""
        return types.Part.from_bytes(data=content, mime_type="application/pdf")

    async def extract_json(
        self,
        document: bytes,
        prompt: str,
        temperature: float = 0.2,
        max_output_tokens: int = 8000,
        system_instruction: Optional[str] = None,
    ) -> str:
        """Ask the model for a JSON object describing a PDF.

        Args:
            document: PDF bytes sent inline
            prompt: Extraction instructions
            temperature: Sampling temperature
            max_output_tokens: Output cap
            system_instruction: Optional system instruction

        Returns:
            Raw response text, empty when the model returned nothing

        Raises:
            APIClientError: If the request fails or retries are exhausted
        """
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            response_mime_type="application/json",
            system_instruction=system_instruction,
        )
        contents = [self.pdf_part(document), prompt]

        for attempt in range(self.max_retries):
            try:
                response = await self._client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                )
                return response.text or ""
            except Exception as e:
                retryable = _is_retryable(e)
                LOGGER.warning(
                    f"Gemini request failed (Attempt {attempt + 1}/{self.max_retries}): {e}",
                    extra={"model": self.model, "retryable": retryable},
                )
                if not retryable or attempt == self.max_retries - 1:
                    raise APIClientError(f"Gemini request failed: {e}", original_error=e) from e
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

        raise APIClientError("Gemini request failed")
