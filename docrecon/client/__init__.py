# docrecon/client/__init__.py
# ============================================================
# Inference Client Package
# ============================================================
# Talks to the remote Reconstruction Backend (layout detection,
# OCR and overlay visualization behind one HTTP API).
#
# Key classes:
#   - InferenceClient: async wrapper over /health, /models,
#     /infer-file and /infer
#   - ProcessingResult: normalized result for one file
# ============================================================

from docrecon.client.api import InferenceClient
from docrecon.client.schemas import (
    BoundingBox,
    HealthStatus,
    LayoutResult,
    ModelsResponse,
    OCRResult,
    OCRToken,
    ProcessingResult,
)

__all__ = [
    "InferenceClient",
    "BoundingBox",
    "HealthStatus",
    "LayoutResult",
    "ModelsResponse",
    "OCRResult",
    "OCRToken",
    "ProcessingResult",
]
