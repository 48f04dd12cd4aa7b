"""Field extraction from solicitation and order PDFs."""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Protocol

from app.core.config import LLMSettings, settings
from app.core.exceptions import APIClientError, AppError, ConfigurationError
from app.core.llm_client import GeminiClient
from app.prompts.extraction_prompts import (
    ORDER_EXTRACTION_PROMPT,
    SOLICITATION_EXTRACTION_PROMPT,
)
from app.utils.logging import get_logger
from app.utils.reference_numbers import DocumentKind

LOGGER = get_logger(__name__)


@dataclass
class ExtractionResult:
    """Fields extracted from one document, or the reason extraction failed."""

    success: bool
    fields: Dict[str, Any] = field(default_factory=dict)
    text: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "ExtractionResult":
        return cls(success=False, error=error)

    def get_str(self, key: str) -> Optional[str]:
        value = self.fields.get(key)
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def get_date(self, key: str) -> Optional[datetime]:
        """Parse an ISO date field as a UTC timestamp; unparseable -> None."""
        value = self.get_str(key)
        if value is None:
            return None
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def get_decimal(self, key: str) -> Optional[Decimal]:
        value = self.get_str(key)
        if value is None:
            return None
        try:
            return Decimal(value.replace(",", "").replace("$", ""))
        except InvalidOperation:
            return None

    def get_int(self, key: str, default: int) -> int:
        value = self.fields.get(key)
        try:
            return int(value) if value is not None else default
        except (TypeError, ValueError):
            return default


class DocumentExtractor(Protocol):
    async def extract(self, content: bytes, kind: DocumentKind) -> ExtractionResult: ...


def parse_json_response(text: str) -> Dict[str, Any]:
    """Decode a model reply that should be a JSON object, tolerating code fences."""
    cleaned = re.sub(r"```(?:json)?", "", text, flags=re.IGNORECASE).strip()
    match = re.search(r"\{.*\}", cleaned, flags=re.DOTALL)
    if match:
        cleaned = match.group(0)
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Extraction response is not a JSON object")
    return data


class GeminiExtractor:
    """DocumentExtractor backed by Gemini with inline PDF input."""

    def __init__(self, client: Optional[GeminiClient] = None, config: Optional[LLMSettings] = None):
        self.config = config or settings.llm
        self._client = client

    @property
    def client(self) -> GeminiClient:
        """Gemini client, created on first use."""
        if self._client is None:
            if not self.config.gemini_api_key:
                raise ConfigurationError("GEMINI_API_KEY is not configured")
            self._client = GeminiClient(
                api_key=self.config.gemini_api_key,
                model=self.config.gemini_model,
                max_retries=self.config.max_retries,
            )
        return self._client

    async def extract(self, content: bytes, kind: DocumentKind) -> ExtractionResult:
        """Extract structured fields from a PDF.

        Failures are returned, not raised, so one bad document does not stop
        its siblings.

        Args:
            content: PDF bytes
            kind: Whether the PDF is a solicitation or an order

        Returns:
            ExtractionResult
        """
        prompt = (
            SOLICITATION_EXTRACTION_PROMPT if kind == DocumentKind.SOLICITATION
            else ORDER_EXTRACTION_PROMPT
        )
        try:
            reply = await self.client.extract_json(content, prompt)
        except APIClientError as e:
            return ExtractionResult.failed(f"Extraction request failed: {e}")
        except AppError as e:
            LOGGER.error(f"Extractor unavailable: {str(e)}", extra={"kind": kind.value})
            return ExtractionResult.failed(f"Extraction unavailable: {e}")

        if not reply:
            return ExtractionResult.failed("Empty extraction response")

        try:
            fields = parse_json_response(reply)
        except ValueError as e:
            LOGGER.warning(
                "Could not parse extraction response",
                extra={"kind": kind.value, "error": str(e)},
            )
            return ExtractionResult.failed(f"Invalid extraction response: {e}")

        text = fields.pop("text", None)
        return ExtractionResult(success=True, fields=fields, text=text)
