"""Mapping of raw API responses onto `ExtractResult`."""

from __future__ import annotations

from typing import Any, Mapping, TypeVar

from pydantic import BaseModel

from parsefy.types import ExtractResult

T = TypeVar("T", bound=BaseModel)

# Older API versions omit `_meta`; report those as fully confident.
LEGACY_META: dict[str, Any] = {
    "confidence_score": 1.0,
    "field_confidence": [],
    "issues": [],
}


def map_response(raw: Mapping[str, Any], schema: type[T]) -> ExtractResult[T]:
    """
    Build an `ExtractResult` from a decoded API response.

    The wire payload keeps processing figures under ``metadata`` and
    confidence details under ``_meta``; both end up in
    `ExtractResult.metadata`. When ``_meta`` is missing, neutral defaults are
    used. ``verification`` is only mapped when present, so `None` always
    means the service sent no verification data.

    `raw` is not modified, and equal inputs give equal results.

    Raises:
        KeyError, TypeError, pydantic.ValidationError: If `raw` does not
            match the response contract.
    """
    wire_metadata = raw["metadata"]
    wire_meta = raw.get("_meta") or LEGACY_META

    metadata = {
        "processing_time_ms": wire_metadata["processing_time_ms"],
        "input_tokens": wire_metadata.get("input_tokens", 0),
        "output_tokens": wire_metadata.get("output_tokens", 0),
        "credits": wire_metadata["credits"],
        "fallback_triggered": wire_metadata["fallback_triggered"],
        "confidence_score": wire_meta["confidence_score"],
        "field_confidence": [
            {
                "field": fc["field"],
                "score": fc["score"],
                "reason": fc["reason"],
                "page": fc.get("page"),
                "text": fc.get("text"),
            }
            for fc in wire_meta.get("field_confidence") or []
        ],
        "issues": list(wire_meta.get("issues") or []),
    }

    return ExtractResult[schema].model_validate(
        {
            "data": raw.get("object"),
            "metadata": metadata,
            "verification": raw.get("verification"),
            "error": raw.get("error"),
        }
    )
