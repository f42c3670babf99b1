"""
Normalization of the supported document inputs into a single upload form.

Four input kinds are accepted, each modeled as its own dataclass:

- `PathInput`: a path on the local filesystem
- `BufferInput`: raw bytes held in memory
- `HandleInput`: an open binary file object that carries a name
- `BlobInput`: an anonymous binary stream (no name, so no extension check)

Plain values are mapped to one of these by `as_file_input`. Whatever the
input kind, the result is a `NormalizedFile` that passed the same size and
type checks, and all checks run before any request is sent.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, BinaryIO, Union

from parsefy.errors import ValidationError
from parsefy.utils import (
    FALLBACK_MIME_TYPE,
    MIME_TYPES,
    get_file_extension,
    get_mime_type,
    sniff_extension,
)

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
DEFAULT_FILENAME = "document.pdf"

# Runtimes without access to the host filesystem.
_SANDBOXED_PLATFORMS = frozenset({"emscripten", "wasi"})


@dataclass(frozen=True)
class PathInput:
    path: Path


@dataclass(frozen=True)
class BufferInput:
    data: bytes
    filename: str = DEFAULT_FILENAME


@dataclass(frozen=True)
class HandleInput:
    handle: BinaryIO


@dataclass(frozen=True)
class BlobInput:
    stream: BinaryIO


FileInput = Union[PathInput, BufferInput, HandleInput, BlobInput]


@dataclass(frozen=True)
class NormalizedFile:
    """A validated document ready for upload."""

    filename: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    def as_multipart(self) -> tuple[str, bytes, str]:
        """Return the (filename, content, content_type) tuple httpx expects."""
        return self.filename, self.content, self.content_type


class FileSystem(ABC):
    """Access to the host filesystem, used for path inputs only."""

    @abstractmethod
    def read_bytes(self, path: Path) -> bytes:
        """Read a file, after checking it exists and is within limits."""

    async def read_bytes_async(self, path: Path) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.read_bytes, path)


class LocalFileSystem(FileSystem):
    def read_bytes(self, path: Path) -> bytes:
        if not path.is_file():
            raise ValidationError(f"File not found: {path}", "FILE_NOT_FOUND")

        try:
            # Refuse oversized files before pulling them into memory.
            _check_size(path.stat().st_size)
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise ValidationError(f"File not found: {path}", "FILE_NOT_FOUND") from exc
        except OSError as exc:
            raise ValidationError(f"Cannot read file: {path} ({exc})", "FILE_UNREADABLE") from exc


class UnavailableFileSystem(FileSystem):
    def read_bytes(self, path: Path) -> bytes:
        raise ValidationError(
            "File paths are not supported in this environment. "
            "Pass the document as bytes or a file object instead.",
            "UNSUPPORTED_ENVIRONMENT",
        )


@lru_cache(maxsize=None)
def default_filesystem() -> FileSystem:
    """Return the filesystem capability for the current runtime."""
    if sys.platform in _SANDBOXED_PLATFORMS:
        logger.debug("No filesystem access on platform %s", sys.platform)
        return UnavailableFileSystem()
    return LocalFileSystem()


def as_file_input(file: Any) -> FileInput:
    """
    Classify a user-supplied document into one of the input kinds.

    Args:
        file: A `FileInput` instance, a path (str or os.PathLike), bytes-like
              data, or a binary file object. File objects with a string
              ``name`` are handles; those without are anonymous blobs.

    Raises:
        ValidationError: If the value is none of the supported kinds.
    """
    if isinstance(file, (PathInput, BufferInput, HandleInput, BlobInput)):
        return file
    if isinstance(file, (str, os.PathLike)):
        return PathInput(Path(file))
    if isinstance(file, (bytes, bytearray, memoryview)):
        return BufferInput(bytes(file))
    if callable(getattr(file, "read", None)):
        name = getattr(file, "name", None)
        if isinstance(name, (str, os.PathLike)) and os.fspath(name):
            return HandleInput(file)
        return BlobInput(file)

    raise ValidationError(
        f"Invalid file input of type {type(file).__name__}. "
        "Expected a file path, bytes, or a binary file object.",
        "INVALID_FILE_INPUT",
    )


def normalize_file(
    file: Any,
    *,
    filesystem: FileSystem | None = None,
) -> NormalizedFile:
    """
    Read and validate a document for upload.

    Args:
        file: Document to upload (see `as_file_input`).
        filesystem: Filesystem capability used for path inputs. Defaults to
                    `default_filesystem()`.

    Raises:
        ValidationError: With code ``FILE_NOT_FOUND``, ``FILE_UNREADABLE``,
            ``UNSUPPORTED_ENVIRONMENT``, ``UNSUPPORTED_FILE_TYPE``,
            ``EMPTY_FILE``, ``FILE_TOO_LARGE`` or ``INVALID_FILE_INPUT``.
    """
    source = as_file_input(file)
    if isinstance(source, PathInput):
        fs = filesystem or default_filesystem()
        return _from_path(source, fs.read_bytes(source.path))
    return _from_memory(source)


async def normalize_file_async(
    file: Any,
    *,
    filesystem: FileSystem | None = None,
) -> NormalizedFile:
    """Async version of `normalize_file`; path inputs are read off the event loop."""
    source = as_file_input(file)
    if isinstance(source, PathInput):
        fs = filesystem or default_filesystem()
        return _from_path(source, await fs.read_bytes_async(source.path))
    return _from_memory(source)


def _from_path(source: PathInput, content: bytes) -> NormalizedFile:
    return _validated(source.path.name, content)


def _from_memory(source: FileInput) -> NormalizedFile:
    if isinstance(source, BufferInput):
        return _validated(source.filename, source.data)

    if isinstance(source, HandleInput):
        content = _read_stream(source.handle)
        filename = os.path.basename(os.fspath(source.handle.name))
        # Upload wrappers (e.g. web framework file objects) carry a content type.
        content_type = getattr(source.handle, "content_type", None)
        if content_type not in MIME_TYPES.values():
            content_type = None
        return _validated(filename, content, content_type)

    if isinstance(source, BlobInput):
        content = _read_stream(source.stream)
        _check_size(len(content))
        extension = sniff_extension(content)
        if extension is None:
            return NormalizedFile("document", content, FALLBACK_MIME_TYPE)
        return NormalizedFile(f"document{extension}", content, MIME_TYPES[extension])

    raise ValidationError(
        f"Unsupported file input kind: {type(source).__name__}", "INVALID_FILE_INPUT"
    )


def _read_stream(stream: BinaryIO) -> bytes:
    # One byte past the limit is enough to reject an oversized stream.
    remaining = MAX_FILE_SIZE + 1
    chunks = []
    while remaining > 0:
        chunk = stream.read(remaining)
        if isinstance(chunk, str):
            raise ValidationError(
                "File object must be opened in binary mode ('rb').", "INVALID_FILE_INPUT"
            )
        if not chunk:
            break
        chunks.append(bytes(chunk))
        remaining -= len(chunk)
    return b"".join(chunks)


def _validated(
    filename: str,
    content: bytes,
    content_type: str | None = None,
) -> NormalizedFile:
    _check_size(len(content))
    mime_type = _check_extension(filename)
    return NormalizedFile(filename, content, content_type or mime_type)


def _check_extension(filename: str) -> str:
    mime_type = get_mime_type(filename)
    if mime_type is None:
        suffix = get_file_extension(filename) or "(none)"
        raise ValidationError(
            f"Unsupported file type: {suffix}. Only PDF and DOCX are supported.",
            "UNSUPPORTED_FILE_TYPE",
        )
    return mime_type


def _check_size(size: int) -> None:
    if size == 0:
        raise ValidationError("File is empty.", "EMPTY_FILE")

    if size > MAX_FILE_SIZE:
        raise ValidationError(
            f"File size ({size} bytes) exceeds maximum allowed size ({MAX_FILE_SIZE} bytes).",
            "FILE_TOO_LARGE",
        )
