"""
Client package for communicating with the lyrics API server.
"""

from .api_client import APIClient, AsyncAPIClient, validate_audio_file

__all__ = ["APIClient", "AsyncAPIClient", "validate_audio_file"]
