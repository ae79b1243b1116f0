"""Orchestrator package - tracks concurrent uploads."""
from .core import UploadOrchestrator
from .models import UploadTask

__all__ = ["UploadOrchestrator", "UploadTask"]
