# docrecon/client/schemas.py
# ============================================================
# Wire Models for the Reconstruction Backend
# ============================================================
# Pydantic models mirroring the JSON exchanged with the service.
# Results are frozen once decoded: a ProcessingResult is created
# exactly once per completed file and never mutated afterwards.
# ============================================================

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BoundingBox(BaseModel):
    """
    A detected layout region.

    Attributes:
        x1, y1, x2, y2: Pixel coordinates of the region corners.
        label: Free-text region class ("Title", "Text", "Table", ...).
        confidence: Detector confidence, 0.0–1.0.
    """
    model_config = ConfigDict(frozen=True)

    x1: float
    y1: float
    x2: float
    y2: float
    label: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class OCRToken(BaseModel):
    """A recognized text span and its position. `text` may be empty."""
    model_config = ConfigDict(frozen=True)

    x1: float
    y1: float
    x2: float
    y2: float
    text: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class LayoutResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    boxes: list[BoundingBox] = Field(default_factory=list)


class OCRResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    tokens: list[OCRToken] = Field(default_factory=list)


class ProcessingResult(BaseModel):
    """
    Uniform result record for one processed file.

    Attributes:
        layout: Detected regions, in the order the service returned them.
        ocr: Recognized tokens, in reading order.
        visualization: Base64-encoded overlay PNG, if requested.
        filename: Name of the processed file, as echoed by the service.
        content_type: MIME type of the processed file.
    """
    model_config = ConfigDict(frozen=True)

    layout: LayoutResult = Field(default_factory=LayoutResult)
    ocr: OCRResult = Field(default_factory=OCRResult)
    visualization: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None


class APIResponse(BaseModel):
    """
    Raw body of /infer-file and /infer.

    The service answers either with a `results` collection or with the
    fields of a single ProcessingResult at the top level.
    """
    results: Optional[list[ProcessingResult]] = None
    layout: Optional[LayoutResult] = None
    ocr: Optional[OCRResult] = None
    visualization: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None

    def first_result(self) -> Optional[ProcessingResult]:
        if self.results:
            return self.results[0]
        return None

    def flat_result(self) -> ProcessingResult:
        """Build a result from the top-level fields, defaulting empty collections."""
        return ProcessingResult(
            layout=self.layout or LayoutResult(),
            ocr=self.ocr or OCRResult(),
            visualization=self.visualization,
            filename=self.filename,
            content_type=self.content_type,
        )


class ModelsResponse(BaseModel):
    layout_models: list[str] = Field(default_factory=list)
    ocr_models: list[str] = Field(default_factory=list)


class HealthStatus(BaseModel):
    """Body of GET /health. Extra fields reported by the service are kept."""
    model_config = ConfigDict(extra="allow")

    status: str

    @property
    def details(self) -> dict[str, Any]:
        return dict(self.model_extra or {})
