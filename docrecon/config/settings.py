# docrecon/config/settings.py
# ============================================================
# Centralized Configuration for the Document Reconstruction Client
# ============================================================
# All settings are loaded from environment variables (or .env file).
# Pydantic validates types and provides sensible defaults.
#
# Usage:
#   from docrecon.config.settings import settings
#   client = InferenceClient(base_url=settings.api_base_url)
# ============================================================

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings. Values are loaded from environment variables
    or a .env file. Every setting has a typed default so the client can talk
    to a local backend out-of-the-box with zero configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Reconstruction Backend ---
    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the layout/OCR inference service.",
    )
    api_timeout_s: float = Field(
        default=120.0,
        description="HTTP timeout (seconds) for every call to the service.",
    )

    # --- Models ---
    layout_model: str = Field(
        default="docling_layout_v1",
        description="Layout detection model requested when the layout task runs.",
    )
    ocr_model: str = Field(
        default="tesseract_default",
        description="OCR model requested when the OCR task runs.",
    )
    return_visualization: bool = Field(
        default=True,
        description="Request the overlay image for the base64 inference path.",
    )

    # --- Processing ---
    max_concurrent_files: int = Field(
        default=4,
        ge=1,
        description="Maximum number of files processed concurrently by process_all().",
    )

    # --- Logging ---
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG | INFO | WARNING | ERROR.",
    )


# ============================================================
# Singleton instance — import this everywhere:
#   from docrecon.config.settings import settings
# ============================================================
settings = Settings()
