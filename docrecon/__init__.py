# docrecon/__init__.py
# ============================================================
# Document Reconstruction — Client & Orchestrator
# ============================================================
# Submits document images/PDFs to a remote layout + OCR service
# and collects the structured results. Sub-packages:
#   - docrecon.client    → HTTP client for the inference service
#   - docrecon.pipeline  → per-file state machine, mode policy, result store
#   - docrecon.config    → settings loaded from environment / .env
#   - docrecon.utils     → logging and file helpers
#   - docrecon.cli       → command line front end
# ============================================================

__version__ = "0.1.0"
