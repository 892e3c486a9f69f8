# docrecon/config/__init__.py
# ============================================================
# Configuration package for the document reconstruction client.
# Provides centralized, validated settings loaded from .env file.
#
# Usage:
#   from docrecon.config import settings
#   print(settings.api_base_url)
# ============================================================

from docrecon.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
