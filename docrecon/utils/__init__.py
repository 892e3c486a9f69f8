# docrecon/utils/__init__.py
# ============================================================
# Shared Utilities Package
# ============================================================
# Provides reusable helpers used across the package:
#   - logger: Structured logging with Rich formatting
#   - files: SubmittedFile loading, base64 encoding, overlay saving
# ============================================================

from docrecon.utils.logger import get_logger
from docrecon.utils.files import (
    SubmittedFile,
    decode_base64,
    encode_base64,
    load_submitted_file,
    save_visualization,
)

__all__ = [
    "get_logger",
    "SubmittedFile",
    "decode_base64",
    "encode_base64",
    "load_submitted_file",
    "save_visualization",
]
