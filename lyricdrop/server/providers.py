"""
Third-party AI services behind the lyrics API.

- SeparationService: vocal separation on Replicate (Spleeter or Demucs)
- TranscriptionService: speech-to-text with Fal AI's wizper model
- GeminiService: lyrics formatting and direct audio-to-lyrics with Google Gemini

Each client is created lazily on first use, so the server starts (and its
tests run) without credentials; a missing key surfaces as a ProviderError
on the request that needs it.
"""

import base64
import logging
from typing import Any, Dict, Optional

from ..config import ConfigManager

logger = logging.getLogger(__name__)

SPLEETER_VERSION = "cd128044253523c86abfd743dea680c88559ad975ccd72378c8433f067ab5d0a"
DEMUCS_VERSION = "5a7041cc9b82e5a558fea6b3d7b12dea89625e89da33f0447bd727c2d0ab9e77"

# Demucs input that yields every stem as a separate mp3
DEMUCS_INPUT = {
    "jobs": 0,
    "stem": "none",
    "model": "htdemucs",
    "split": True,
    "shifts": 1,
    "overlap": 0.25,
    "clip_mode": "rescale",
    "mp3_preset": 2,
    "wav_format": "int24",
    "mp3_bitrate": 320,
    "output_format": "mp3",
}

WIZPER_MODEL = "fal-ai/wizper"

GEMINI_GENERATION_CONFIG = {
    "temperature": 0.9,
    "top_p": 0.95,
    "top_k": 40,
    "max_output_tokens": 8192,
    "response_mime_type": "text/plain",
}

AUDIO_LYRICS_PROMPT = """Listen to this song and write down its lyrics in language "{language}".
Put a timestamp in the form [MM:SS.mmm] at the start of every line, marking when the line
starts being sung. Return only the timestamped lyrics, with no commentary."""


class ProviderError(Exception):
    """A provider call failed or could not be made."""

    def __init__(self, message: str, status_code: int = 500, details: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


def to_data_uri(data: bytes, mime_type: str) -> str:
    """Encode file bytes as a base64 data URI."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


class SeparationService:
    """Vocal separation on Replicate."""

    def __init__(self, api_token: Optional[str] = None):
        self.api_token = api_token
        self.client = None

    def _load_client(self):
        if self.client is not None:
            return self.client

        token = self.api_token or ConfigManager.get("REPLICATE_API_TOKEN")
        if not token:
            raise ProviderError("REPLICATE_API_TOKEN is not set")

        import replicate

        self.client = replicate.Client(api_token=token)
        logger.info("Replicate client initialized")
        return self.client

    def start(self, data: bytes, mime_type: str, service: str) -> Dict[str, Any]:
        """
        Start a separation prediction.

        Args:
            data: Audio file bytes
            mime_type: Audio MIME type
            service: "falai" (Spleeter) or "demucs"

        Returns:
            Prediction payload (id, status, output, error, logs, created_at)
        """
        if service not in ("falai", "demucs"):
            raise ProviderError(f"Invalid service specified: {service}. Must be 'falai' or 'demucs'.", 400)

        audio = to_data_uri(data, mime_type)
        if service == "falai":
            version, model_input = SPLEETER_VERSION, {"audio": audio}
        else:
            version, model_input = DEMUCS_VERSION, {**DEMUCS_INPUT, "audio": audio}

        client = self._load_client()
        logger.info(f"Creating {service} prediction (version {version[:12]})")
        try:
            prediction = client.predictions.create(version=version, input=model_input)
        except Exception as e:
            raise ProviderError(f"Failed to start audio processing with {service}", details=str(e))

        if not getattr(prediction, "id", None):
            raise ProviderError(f"Invalid response from Replicate ({service}): missing prediction ID")
        return self._payload(prediction)

    def status(self, prediction_id: str) -> Dict[str, Any]:
        """Fetch a prediction's current state."""
        client = self._load_client()
        try:
            prediction = client.predictions.get(prediction_id)
        except Exception as e:
            status_code = 404 if getattr(e, "status", None) == 404 else 500
            raise ProviderError(f"Failed to get prediction status for {prediction_id}", status_code, str(e))

        if not getattr(prediction, "status", None):
            raise ProviderError("Invalid prediction response from Replicate")
        return self._payload(prediction)

    @staticmethod
    def _payload(prediction) -> Dict[str, Any]:
        created_at = getattr(prediction, "created_at", None)
        return {
            "id": prediction.id,
            "status": prediction.status,
            "output": getattr(prediction, "output", None),
            "error": getattr(prediction, "error", None),
            "logs": getattr(prediction, "logs", None) or "",
            "created_at": created_at if created_at is None or isinstance(created_at, str) else str(created_at),
        }


class TranscriptionService:
    """Speech-to-text with Fal AI wizper."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key
        self.client = None

    def _load_client(self):
        if self.client is not None:
            return self.client

        key = self.api_key or ConfigManager.fal_credentials()
        if not key:
            raise ProviderError("FAL_KEY (or FAL_API_TOKEN) is not set")

        import fal_client

        self.client = fal_client.SyncClient(key=key)
        logger.info("Fal AI client initialized")
        return self.client

    def transcribe(self, audio_url: str, language: str = "en") -> Dict[str, Any]:
        """
        Transcribe the audio at a URL.

        Returns:
            {"text": str, "chunks": list | None}
        """
        client = self._load_client()
        arguments = {
            "audio_url": audio_url,
            "task": "transcribe",
            "language": language,
            "chunk_level": "segment",
            "version": "3",
        }

        def on_queue_update(update) -> None:
            logger.debug(f"[wizper] {type(update).__name__}")

        logger.info(f"Transcribing {audio_url} ({language})")
        try:
            result = client.subscribe(WIZPER_MODEL, arguments=arguments, with_logs=True, on_queue_update=on_queue_update)
        except Exception as e:
            raise ProviderError("Failed to process audio transcription", details=str(e))

        # wizper answers either flat or nested under "transcription"
        if isinstance(result.get("text"), str):
            return {"text": result["text"], "chunks": result.get("chunks")}
        nested = result.get("transcription") or {}
        if isinstance(nested.get("text"), str):
            return {"text": nested["text"], "chunks": nested.get("chunks")}

        raise ProviderError("Transcription completed but result format was unrecognized by the server.")


class GeminiService:
    """Text generation with Google Gemini."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key
        self.model = model or ConfigManager.get("GEMINI_MODEL")
        self.client = None

    def _load_client(self):
        if self.client is not None:
            return self.client

        key = self.api_key or ConfigManager.get("GEMINI_API_KEY")
        if not key:
            raise ProviderError("Gemini AI model not initialized. Check API Key.")

        from google import genai

        self.client = genai.Client(api_key=key)
        logger.info(f"Gemini client initialized (model: {self.model})")
        return self.client

    def _config(self):
        from google.genai import types

        return types.GenerateContentConfig(**GEMINI_GENERATION_CONFIG)

    def prompt(self, prompt: str) -> str:
        """Send one prompt in a fresh chat and return the answer text."""
        client = self._load_client()
        try:
            chat = client.chats.create(model=self.model, config=self._config())
            response = chat.send_message(prompt)
        except Exception as e:
            raise ProviderError("Failed to get response from Gemini API.", details=str(e))
        return response.text or ""

    def lyrics_from_audio(self, data: bytes, mime_type: str, language: str = "en") -> str:
        """Ask Gemini for timestamped lyrics straight from the audio."""
        from google.genai import types

        client = self._load_client()
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=[
                    AUDIO_LYRICS_PROMPT.format(language=language),
                    types.Part.from_bytes(data=data, mime_type=mime_type),
                ],
                config=self._config(),
            )
        except Exception as e:
            raise ProviderError("Failed to get lyrics from Gemini API.", details=str(e))
        return response.text or ""
