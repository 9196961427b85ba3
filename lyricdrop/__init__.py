"""
lyricdrop: turn a song into lyrics with remote AI services.

Subpackages:
- pipeline: the asynchronous stage orchestration (separation, transcription, formatting)
- client: HTTP client for the lyrics API
- server: Flask proxy in front of Replicate, Fal AI and Google Gemini
"""

__version__ = "0.1.0"
