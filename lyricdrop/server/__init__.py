"""
Lyrics API server package.

This package provides a Flask API server that proxies the audio pipeline's
remote calls to Replicate, Fal AI and Google Gemini.
"""

from .app import app, run
from .providers import GeminiService, ProviderError, SeparationService, TranscriptionService

__all__ = ["app", "run", "GeminiService", "ProviderError", "SeparationService", "TranscriptionService"]
