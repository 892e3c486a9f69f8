# docrecon/utils/files.py
# ============================================================
# File Helpers
# ============================================================
# Turns files on disk into SubmittedFile payloads, encodes them
# for the base64 inference path, and writes the overlay images
# returned by the service back to disk. No image decoding happens
# here: payloads are treated as opaque bytes.
#
# Usage:
#   from docrecon.utils.files import load_submitted_file, encode_base64
#   submitted = load_submitted_file("scan.png")
#   payload = encode_base64(submitted.content)
# ============================================================

import base64
import binascii
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from docrecon.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class SubmittedFile:
    """
    A document accepted for processing.

    Attributes:
        content: Raw file bytes, sent as-is to the service.
        filename: Original file name (used in multipart uploads and exports).
        content_type: MIME type, e.g. "application/pdf" or "image/png".
    """
    content: bytes
    filename: str
    content_type: str = DEFAULT_CONTENT_TYPE

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @property
    def size_label(self) -> str:
        """Human-readable size in megabytes, e.g. "1.25 MB"."""
        return f"{self.size_bytes / (1024 * 1024):.2f} MB"

    @property
    def kind(self) -> str:
        """Short upper-case type badge, e.g. "PDF" or "PNG"."""
        subtype = self.content_type.split("/")[-1]
        return subtype.upper()


def guess_content_type(filename: str) -> str:
    """Guess a MIME type from the file name, defaulting to octet-stream."""
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE


def load_submitted_file(path: Union[str, Path]) -> SubmittedFile:
    """
    Read a file from disk into a SubmittedFile.

    Raises:
        FileNotFoundError: If the path does not exist or is not a file.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Input file not found: {path}")

    submitted = SubmittedFile(
        content=path.read_bytes(),
        filename=path.name,
        content_type=guess_content_type(path.name),
    )
    logger.debug(
        f"Loaded {submitted.filename} ({submitted.size_label}, {submitted.content_type})"
    )
    return submitted


def encode_base64(content: bytes, content_type: Optional[str] = None) -> str:
    """
    Encode raw bytes as base64 text.

    When `content_type` is given the result is a data URL
    ("data:image/png;base64,..."), matching what a browser FileReader
    produces; otherwise the bare base64 string is returned.
    """
    encoded = base64.b64encode(content).decode("ascii")
    if content_type:
        return f"data:{content_type};base64,{encoded}"
    return encoded


def decode_base64(payload: str) -> bytes:
    """
    Decode base64 text, accepting both bare strings and data URLs.

    Raises:
        ValueError: If the payload is not valid base64.
    """
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


def save_visualization(payload: str, output_path: Union[str, Path]) -> str:
    """
    Write a base64 overlay image returned by the service to disk.

    Args:
        payload: Base64 (or data URL) image from ProcessingResult.visualization.
        output_path: Destination file path. Parent directories are created.

    Returns:
        The absolute path to the saved file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(decode_base64(payload))
    logger.info(f"Saved visualization to [bold]{output_path}[/bold]")
    return str(output_path.resolve())
