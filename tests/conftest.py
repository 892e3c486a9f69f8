# tests/conftest.py
# ============================================================
# Shared Fixtures — Fake Reconstruction Backend
# ============================================================
# The remote service is simulated with httpx.MockTransport, so no
# network or live backend is needed. FakeBackend records every
# request and answers from a small route table that each test can
# override.
#
# Run:
#   pytest tests/ -v
# ============================================================

import base64
import re
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from docrecon.client.api import InferenceClient
from docrecon.utils.files import SubmittedFile

BASE_URL = "http://testserver"

VISUALIZATION_B64 = base64.b64encode(b"\x89PNG fake overlay").decode("ascii")

# One page with 2 layout regions and 2 OCR tokens
SAMPLE_RESULT: dict[str, Any] = {
    "layout": {
        "boxes": [
            {"x1": 100, "y1": 100, "x2": 500, "y2": 150, "label": "Title", "confidence": 0.95},
            {"x1": 100, "y1": 200, "x2": 600, "y2": 400, "label": "Text", "confidence": 0.89},
        ]
    },
    "ocr": {
        "tokens": [
            {"x1": 100, "y1": 100, "x2": 500, "y2": 150, "text": "Sample Title", "confidence": 0.95},
            {"x1": 100, "y1": 200, "x2": 600, "y2": 400, "text": "This is text", "confidence": 0.89},
        ]
    },
    "visualization": VISUALIZATION_B64,
    "filename": "scan.png",
    "content_type": "image/png",
}

Route = Union[tuple[int, Any], Callable[[httpx.Request], Any]]


class FakeBackend:
    """Route table + request log behind an httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Route] = {
            ("GET", "/health"): (200, {"status": "ok"}),
            ("GET", "/models"): (200, {
                "layout_models": ["docling_layout_v1"],
                "ocr_models": ["tesseract_default", "easyocr_en"],
            }),
            ("POST", "/infer-file"): (200, {"results": [SAMPLE_RESULT]}),
            ("POST", "/infer"): (200, {"results": [SAMPLE_RESULT]}),
        }
        self.transport = httpx.MockTransport(self._handle)

    def set(self, method: str, path: str, status: int = 200, body: Any = None) -> None:
        self.routes[(method, path)] = (status, body)

    def on(self, method: str, path: str, handler: Callable[[httpx.Request], Any]) -> None:
        self.routes[(method, path)] = handler

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def client(self, base_url: Optional[str] = None) -> InferenceClient:
        return InferenceClient(base_url=base_url or BASE_URL, transport=self.transport)

    def _handle(self, request: httpx.Request):
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404)
        if callable(route):
            return route(request)
        status, body = route
        if isinstance(body, (bytes, str)):
            return httpx.Response(status, content=body)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


def form_field(request: httpx.Request, name: str) -> Optional[str]:
    """Extract a plain multipart form field from a recorded request."""
    match = re.search(
        rb'name="' + name.encode() + rb'"\r\n\r\n(.*?)\r\n',
        request.content,
        re.DOTALL,
    )
    return match.group(1).decode() if match else None


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def submitted() -> SubmittedFile:
    return SubmittedFile(
        content=b"\x89PNG\r\n\x1a\n fake image bytes",
        filename="scan.png",
        content_type="image/png",
    )


@pytest.fixture
def sample_result_body() -> dict[str, Any]:
    return SAMPLE_RESULT
