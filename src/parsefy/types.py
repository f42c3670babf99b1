"""Type definitions for the Parsefy SDK."""

from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from parsefy.errors import ExtractionError

T = TypeVar("T", bound=BaseModel)

VerificationStatus = Literal["PASSED", "FAILED", "PARTIAL", "CANNOT_VERIFY", "NO_RULES"]


class FieldConfidence(BaseModel):
    """Confidence information for a single extracted field."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(description="JSON path to the field (e.g., '$.invoice_number')")
    score: float = Field(ge=0.0, le=1.0, description="Confidence score between 0 and 1")
    reason: str = Field(description="Explanation for the confidence score")
    page: int | None = Field(
        default=None,
        description="Page number where the field was found (1-based), or None if not found on a specific page",
    )
    text: str | None = Field(
        default=None, description="Source text that was extracted, or None if inferred"
    )


class ExtractionMetadata(BaseModel):
    """
    Metadata about the extraction process.

    Always present on a result, including failed extractions. Responses from
    older API versions carry no confidence block; those are reported with a
    neutral confidence of 1.0 and empty field/issue lists.
    """

    model_config = ConfigDict(frozen=True)

    processing_time_ms: int
    input_tokens: int = 0
    output_tokens: int = 0
    credits: int
    fallback_triggered: bool
    confidence_score: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Overall confidence score for the extraction (0-1)",
    )
    field_confidence: list[FieldConfidence] = Field(
        default_factory=list,
        description="Per-field confidence scores with evidence",
    )
    issues: list[str] = Field(
        default_factory=list,
        description="Any issues or warnings detected during extraction",
    )


class APIErrorDetail(BaseModel):
    """Error information when extraction fails."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class VerificationCheck(BaseModel):
    """Individual math verification check result."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(description="Type of verification check (e.g., 'HORIZONTAL_SUM', 'VERTICAL_SUM')")
    status: str = Field(description="Status of the check: 'PASSED', 'FAILED', or 'CANNOT_VERIFY'")
    fields: list[str] = Field(description="Fields involved in this verification check")
    passed: bool = Field(description="Whether the check passed")
    delta: float = Field(description="Difference between expected and actual values")
    expected: float = Field(description="Expected value from the verification rule")
    actual: float = Field(description="Actual value extracted from the document")


class Verification(BaseModel):
    """
    Math verification results for extracted numeric data.

    This provides deterministic verification of mathematical consistency
    (e.g., totals, subtotals, taxes, line item sums). A status of
    ``NO_RULES`` means verification ran but found nothing to check, which is
    not the same as verification being absent from the result.
    """

    model_config = ConfigDict(frozen=True)

    status: VerificationStatus = Field(
        description="Overall verification status: 'PASSED', 'FAILED', 'PARTIAL', 'CANNOT_VERIFY', or 'NO_RULES'"
    )
    checks_passed: int = Field(description="Number of verification checks that passed")
    checks_failed: int = Field(description="Number of verification checks that failed")
    cannot_verify_count: int = Field(description="Number of checks that could not be verified")
    checks_run: list[VerificationCheck] = Field(
        default_factory=list,
        description="Detailed results for each verification check performed"
    )


class ExtractResult(BaseModel, Generic[T]):
    """
    Result of an extraction operation.

    On success: `data` contains the extracted object, `error` is None.
    On failure: `data` is None, `error` contains error details.

    `metadata` is always present, so confidence scores and issues can be
    inspected even when extraction failed.

    The `verification` field contains math verification results when
    `enable_verification=True` is used in the extraction request.
    """

    model_config = ConfigDict(frozen=True)

    data: T | None = None
    metadata: ExtractionMetadata
    verification: Verification | None = Field(
        default=None,
        description="Math verification results (only present when enable_verification=True)"
    )
    error: APIErrorDetail | None = None

    @model_validator(mode="after")
    def _check_data_or_error(self) -> "ExtractResult[T]":
        if (self.data is None) == (self.error is None):
            raise ValueError("exactly one of 'data' and 'error' must be present")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> "ExtractResult[T]":
        """Raise ExtractionError if extraction failed, otherwise return self."""
        if self.error is not None:
            raise ExtractionError(self.error.message, self.error.code, self.metadata)
        return self
