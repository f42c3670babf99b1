"""Parsefy API client for financial document data extraction."""

from __future__ import annotations

import logging
import os
from functools import partial
from pathlib import Path
from typing import Any, BinaryIO, TypeVar, Union

import httpx
from pydantic import BaseModel

from parsefy.errors import ValidationError
from parsefy.files import FileInput, normalize_file, normalize_file_async
from parsefy.response import map_response
from parsefy.schema import translate_schema
from parsefy.transport import DEFAULT_MAX_RETRIES, RequestExecutor, compose_payload
from parsefy.types import ExtractResult

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

FileLike = Union[str, Path, bytes, BinaryIO, FileInput]

BASE_URL = "https://api.parsefy.io"
DEFAULT_TIMEOUT = 60.0  # seconds
DEFAULT_CONFIDENCE_THRESHOLD = 0.85
API_KEY_ENV_VAR = "PARSEFY_API_KEY"


class Parsefy:
    """
    Parsefy API client for financial document data extraction.

    Parsefy turns financial PDFs (invoices, receipts, bills) into structured
    JSON with validation and confidence scores. We return validated output
    or fail loudly - no silent errors.

    Args:
        api_key: Your Parsefy API key. If not provided, reads from
                 PARSEFY_API_KEY environment variable.
        base_url: API base URL (default: https://api.parsefy.io)
        timeout: Request timeout in seconds, per attempt (default: 60)
        max_retries: Retries on rate limiting (HTTP 429) before giving up
                     (default: 3)

    Important - Required vs Optional Fields:
        By default, ALL fields in your Pydantic model are required. If a required
        field cannot be extracted with sufficient confidence, the fallback model
        is triggered (which costs more credits).

        To mark a field as optional, use: `field_name: str | None = None`

        Example:
            ```python
            class Invoice(BaseModel):
                # REQUIRED - will trigger fallback if not found confidently
                invoice_number: str = Field(description="The invoice number")
                total: float = Field(description="Total amount")

                # OPTIONAL - won't trigger fallback if missing
                po_number: str | None = Field(default=None, description="PO number if present")
            ```

    Example:
        ```python
        from parsefy import Parsefy
        from pydantic import BaseModel, Field

        client = Parsefy()

        class Invoice(BaseModel):
            invoice_number: str = Field(description="The invoice number")
            total: float = Field(description="Total amount")

        result = client.extract(file="invoice.pdf", schema=Invoice)

        if result.error is None:
            print(result.data.invoice_number)
            print(f"Confidence: {result.metadata.confidence_score}")
        ```
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str = BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self.api_key = api_key or os.environ.get(API_KEY_ENV_VAR)
        if not self.api_key:
            raise ValidationError(
                "API key is required. Pass it directly or set PARSEFY_API_KEY environment variable.",
                "MISSING_API_KEY",
            )
        if timeout <= 0:
            raise ValidationError("Timeout must be a positive number of seconds.", "INVALID_OPTION")
        if max_retries < 0:
            raise ValidationError("max_retries cannot be negative.", "INVALID_OPTION")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries

        self._executor = RequestExecutor(
            f"{self.base_url}/v1/extract",
            timeout=timeout,
            max_retries=max_retries,
        )
        self._client = httpx.Client(
            timeout=timeout,
            headers=self._headers(),
        )
        self._async_client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _get_async_client(self) -> httpx.AsyncClient:
        """Lazily create async client."""
        if self._async_client is None:
            self._async_client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self._headers(),
            )
        return self._async_client

    def _prepare_request(
        self,
        schema: type[BaseModel],
        confidence_threshold: float,
    ) -> dict[str, Any]:
        """Validate everything that does not depend on the file."""
        json_schema = translate_schema(schema)

        if not 0.0 <= confidence_threshold <= 1.0:
            raise ValidationError(
                f"confidence_threshold must be between 0 and 1, got {confidence_threshold}.",
                "INVALID_OPTION",
            )
        return json_schema

    def extract(
        self,
        *,
        file: FileLike,
        schema: type[T],
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        enable_verification: bool = False,
    ) -> ExtractResult[T]:
        """
        Extract structured data from a financial document (synchronous).

        Args:
            file: Document to extract from. Can be:
                  - str or Path: Path to the file
                  - bytes: Raw file contents (treated as a PDF named document.pdf)
                  - BinaryIO: File-like object; its `name` is used when present
                  - a `parsefy.files` input such as `BufferInput(data, "scan.docx")`
            schema: Pydantic model class defining the extraction schema.
                    Use Field(description="...") to guide the AI.
            confidence_threshold: Minimum confidence score (0-1) for extraction.
                    Default: 0.85. Lower = faster (accepts Tier 1 more often).
                    Higher = more accurate (triggers Tier 2 fallback more often).
            enable_verification: Run math verification (totals, subtotals,
                    line item sums) on the extracted data. Default: False.

        Returns:
            ExtractResult containing:
            - data: Extracted data as the schema type (or None on error)
            - metadata: Processing metadata (tokens, time, credits) and
              field-level confidence scores with evidence
            - verification: Verification results (None unless requested)
            - error: Error details if extraction failed (or None on success)

        Raises:
            ValidationError: If the schema, options or file are invalid
                (not found, wrong type, too large). Nothing is sent.
            APIError: If the API returns an HTTP error (4xx/5xx). Rate limit
                responses (429) are retried with backoff first.
            ParsefyError: On timeout (code TIMEOUT), connection failure
                (NETWORK_ERROR) or an unreadable response (PARSE_ERROR,
                TRANSFORM_ERROR).

        Important - Required Fields & Billing:
            ALL fields are required by default. If a required field's confidence
            is below the threshold, the fallback model is triggered (more credits).

            To avoid unexpected costs, mark rarely-present fields as optional:
            `field_name: str | None = None`

        Example:
            ```python
            result = client.extract(file="invoice.pdf", schema=Invoice)

            if result.error is None:
                print(result.data.invoice_number)

                # Check individual field confidence
                for field in result.metadata.field_confidence:
                    print(f"{field.field}: {field.score} - {field.reason}")
            else:
                print(f"Error: {result.error.message}")
            ```
        """
        json_schema = self._prepare_request(schema, confidence_threshold)
        payload = compose_payload(
            normalize_file(file),
            json_schema,
            confidence_threshold=confidence_threshold,
            enable_verification=enable_verification,
        )
        return self._executor.execute(
            self._client,
            payload,
            partial(self._to_result, schema=schema, enable_verification=enable_verification),
        )

    async def extract_async(
        self,
        *,
        file: FileLike,
        schema: type[T],
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        enable_verification: bool = False,
    ) -> ExtractResult[T]:
        """
        Extract structured data from a financial document (asynchronous).

        Same as extract() but async. See extract() for full documentation.

        Example:
            ```python
            result = await client.extract_async(
                file="invoice.pdf",
                schema=Invoice,
                confidence_threshold=0.9  # Higher accuracy
            )
            ```
        """
        json_schema = self._prepare_request(schema, confidence_threshold)
        payload = compose_payload(
            await normalize_file_async(file),
            json_schema,
            confidence_threshold=confidence_threshold,
            enable_verification=enable_verification,
        )
        return await self._executor.execute_async(
            self._get_async_client(),
            payload,
            partial(self._to_result, schema=schema, enable_verification=enable_verification),
        )

    @staticmethod
    def _to_result(
        body: dict[str, Any],
        *,
        schema: type[T],
        enable_verification: bool,
    ) -> ExtractResult[T]:
        result = map_response(body, schema)
        if enable_verification and result.verification is None:
            logger.warning("Verification was requested but the API returned no verification data")
        return result

    def close(self) -> None:
        """Close the HTTP client connections."""
        self._client.close()

    async def aclose(self) -> None:
        """Close the HTTP client connections (async)."""
        self._client.close()
        if self._async_client:
            await self._async_client.aclose()

    def __enter__(self) -> "Parsefy":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    async def __aenter__(self) -> "Parsefy":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
