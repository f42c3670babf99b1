"""Utility functions for the Parsefy SDK."""

from __future__ import annotations

import os
from pathlib import Path

PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
FALLBACK_MIME_TYPE = "application/octet-stream"

# Supported file types
MIME_TYPES = {
    ".pdf": PDF_MIME_TYPE,
    ".docx": DOCX_MIME_TYPE,
}

SUPPORTED_EXTENSIONS = set(MIME_TYPES)

# DOCX is a zip container, so the zip signature is the best cheap guess.
_MAGIC_NUMBERS = (
    (b"%PDF-", ".pdf"),
    (b"PK\x03\x04", ".docx"),
)


def is_supported_file(path: str | os.PathLike[str]) -> bool:
    """Check if a file path has a supported extension."""
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


def get_file_extension(filename: str) -> str:
    """Get the lowercase file extension from a filename."""
    return Path(filename).suffix.lower()


def get_mime_type(filename: str) -> str | None:
    """Return the MIME type for a supported filename, or None."""
    if not is_supported_file(filename):
        return None
    return MIME_TYPES[get_file_extension(filename)]


def sniff_extension(content: bytes) -> str | None:
    """Guess a supported extension from the leading bytes of a document."""
    for magic, extension in _MAGIC_NUMBERS:
        if content.startswith(magic):
            return extension
    return None
