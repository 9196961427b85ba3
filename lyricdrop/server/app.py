"""
Flask API server for the lyrics pipeline.

This server provides endpoints for:
- Starting vocal separation on an uploaded audio file
- Checking separation job status
- Transcribing a separated vocals track
- Formatting lyrics (or transcribing audio directly) with Gemini

Every endpoint is a thin proxy over one provider call; sequencing the calls
is the client's job (see lyricdrop.pipeline).
"""

import logging
from datetime import datetime

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.utils import secure_filename

from ..config import ConfigManager
from .providers import GeminiService, ProviderError, SeparationService, TranscriptionService

MB = 1024 * 1024
MAX_SEPARATION_UPLOAD = 100 * MB
MAX_GEMINI_UPLOAD = 50 * MB

# Initialize Flask app
app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = MAX_SEPARATION_UPLOAD
CORS(app)

# Configure logging to reduce verbosity
log_level = ConfigManager.get("LOG_LEVEL").upper()
werkzeug_logger = logging.getLogger("werkzeug")
werkzeug_logger.setLevel(getattr(logging, log_level, logging.WARNING))
logger = logging.getLogger(__name__)

# Provider clients (credentials are read on first use)
separation = SeparationService()
transcription = TranscriptionService()
gemini = GeminiService()

ALLOWED_EXTENSIONS = {"wav", "mp3", "mp4", "m4a", "flac", "aac", "ogg", "wma", "webm"}


def allowed_file(filename: str) -> bool:
    """Check if the uploaded file has an allowed extension."""
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


class UploadRejected(Exception):
    """An uploaded file failed validation."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def read_upload(field: str, max_bytes: int):
    """
    Read an uploaded audio file from the request.

    Returns:
        (filename, data, mime_type)

    Raises:
        UploadRejected: If the file is missing, empty, too large or not audio
    """
    if field not in request.files:
        raise UploadRejected("No audio file uploaded.")

    file = request.files[field]
    filename = secure_filename(file.filename or "")
    if not filename:
        raise UploadRejected("No file selected")

    mime_type = file.mimetype or "application/octet-stream"
    if not allowed_file(filename) and not mime_type.startswith("audio/"):
        allowed_types = ", ".join(sorted(ALLOWED_EXTENSIONS))
        raise UploadRejected(f"File type not allowed. Allowed types: {allowed_types}")

    data = file.read()
    if not data:
        raise UploadRejected("Empty file not allowed")
    if len(data) > max_bytes:
        raise UploadRejected(f"File too large. Limit is {max_bytes // MB} MB", 413)

    logger.info(f"Received {filename}: {len(data)} bytes, {mime_type}")
    return filename, data, mime_type


def provider_error_response(error: ProviderError):
    body = {"error": str(error)}
    if error.details:
        body["details"] = error.details
    return jsonify(body), error.status_code


@app.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "OK", "timestamp": datetime.now().isoformat()})


@app.route("/api/audio-service", methods=["POST"])
def start_audio_service():
    """
    Start vocal separation.

    Query parameters:
    - service: "falai" (Spleeter) or "demucs"; anything else falls back to "falai"

    Expected form data:
    - audio: Audio file to separate

    Returns:
    - 202 {mode: "async", id, status, created_at} while the job runs
    - 200 {mode: "sync", output} if the provider finished immediately
    """
    service = request.args.get("service")
    if service not in ("falai", "demucs"):
        logger.warning(f'Invalid or missing service query parameter: "{service}". Defaulting to \'falai\'.')
        service = "falai"

    filename, data, mime_type = read_upload("audio", MAX_SEPARATION_UPLOAD)

    try:
        prediction = separation.start(data, mime_type, service)
    except ProviderError as e:
        logger.error(f"Error in /api/audio-service (service: {service}): {e} {e.details or ''}")
        return provider_error_response(e)

    if prediction["status"] == "succeeded" and prediction.get("output") is not None:
        return jsonify({"mode": "sync", "output": prediction["output"]}), 200

    return jsonify(
        {
            "mode": "async",
            "id": prediction["id"],
            "status": prediction["status"] or "starting",
            "created_at": prediction.get("created_at"),
        }
    ), 202


@app.route("/api/audio-service/status/<prediction_id>", methods=["GET"])
def get_audio_service_status(prediction_id: str):
    """
    Get the status of a separation job.

    Returns:
    - id, status, output (when finished), error (when failed), logs, created_at
    """
    try:
        return jsonify(separation.status(prediction_id))
    except ProviderError as e:
        logger.error(f"Error checking status for ID {prediction_id}: {e} {e.details or ''}")
        return provider_error_response(e)


@app.route("/api/audio-to-text", methods=["POST"])
def audio_to_text():
    """
    Transcribe an audio track.

    Expected JSON:
    - audio_url: URL of the (vocals) track
    - language: Language hint (default "en")

    Returns:
    - text: Transcribed text
    - chunks: Timestamped segments when the provider returns them
    """
    body = request.get_json(silent=True) or {}
    audio_url = body.get("audio_url")
    if not audio_url:
        return jsonify({"error": "Missing required field: audio_url"}), 400

    try:
        result = transcription.transcribe(audio_url, body.get("language") or "en")
    except ProviderError as e:
        logger.error(f"Error during transcription: {e} {e.details or ''}")
        return provider_error_response(e)
    return jsonify(result)


@app.route("/api/gemini", methods=["POST"])
def gemini_endpoint():
    """
    Run Gemini.

    Either JSON {prompt} -> {result}, or multipart audioFile + language -> {lyrics}.
    """
    if "audioFile" in request.files:
        filename, data, mime_type = read_upload("audioFile", MAX_GEMINI_UPLOAD)
        language = request.form.get("language") or "en"
        try:
            return jsonify({"lyrics": gemini.lyrics_from_audio(data, mime_type, language)})
        except ProviderError as e:
            logger.error(f"Error calling Gemini API with audio: {e} {e.details or ''}")
            return provider_error_response(e)

    body = request.get_json(silent=True) or {}
    prompt = body.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        return jsonify({"error": 'Missing or invalid "prompt" in request body.'}), 400

    try:
        return jsonify({"result": gemini.prompt(prompt)})
    except ProviderError as e:
        logger.error(f"Error calling Gemini API: {e} {e.details or ''}")
        return provider_error_response(e)


@app.errorhandler(UploadRejected)
def upload_rejected(error: UploadRejected):
    return jsonify({"error": str(error)}), error.status_code


@app.errorhandler(413)
def payload_too_large(_error):
    return jsonify({"error": f"File too large. Limit is {MAX_SEPARATION_UPLOAD // MB} MB"}), 413


def run(host: str = "0.0.0.0", port: int = None) -> None:
    """Run the development server."""
    port = port or ConfigManager.get_int("PORT")
    debug = ConfigManager.get("APP_ENV") != "production"
    logger.info(f"Server running on port {port}. APP_ENV={ConfigManager.get('APP_ENV')}")
    app.run(debug=debug, host=host, port=port, use_reloader=False)


if __name__ == "__main__":
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
    run()
