"""
Command line entry point.

    lyricdrop run song.mp3 --language en --service demucs
    lyricdrop run song.mp3 --mode gemini --at 42
    lyricdrop serve --port 8080
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .client import APIClient, AsyncAPIClient
from .config import ConfigManager
from .pipeline import (
    LyricsPipelineError,
    PipelineOrchestrator,
    PipelineStage,
    PipelineState,
    StatusPoller,
    UploadedFile,
    UploadStagingStore,
    parse_timed_lyrics,
    render_timed_lyrics,
)

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, ConfigManager.get("LOG_LEVEL").upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lyricdrop", description="Turn a song into lyrics.")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    run_parser = commands.add_parser("run", help="extract lyrics from an audio file")
    run_parser.add_argument("file", help="audio file to process")
    run_parser.add_argument("--language", help="language hint (default: LANGUAGE or en)")
    run_parser.add_argument("--service", choices=["falai", "demucs"], help="separation backend")
    run_parser.add_argument("--api-url", help="lyrics API base URL (default: API_BASE_URL)")
    run_parser.add_argument(
        "--mode",
        choices=["pipeline", "gemini"],
        default="pipeline",
        help="pipeline: separate, transcribe and format; gemini: timestamped lyrics straight from the audio",
    )
    run_parser.add_argument("--at", type=float, metavar="SECONDS", help="gemini mode: mark the line sung at SECONDS")

    serve_parser = commands.add_parser("serve", help="run the lyrics API server")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, help="port (default: PORT or 8080)")

    return parser


class StatusPrinter:
    """Prints stage and progress changes as they happen."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stderr
        self.last = None

    def __call__(self, state: PipelineState) -> None:
        line = f"[{state.stage.value}] {state.progress.percentage:3d}% {state.progress.message}"
        if line != self.last:
            print(line, file=self.stream)
            self.last = line


async def run_pipeline(path: str, api_url: str, language: str, service: str) -> PipelineState:
    client = AsyncAPIClient(APIClient(api_url, timeout=ConfigManager.get_float("REQUEST_TIMEOUT_SECONDS")))
    poller = StatusPoller(
        client.get_job_status,
        interval=ConfigManager.get_float("POLL_INTERVAL_SECONDS"),
        timeout=ConfigManager.get_float("POLL_TIMEOUT_SECONDS"),
    )
    orchestrator = PipelineOrchestrator(client, poller, separation_service=service, language=language)
    orchestrator.subscribe(StatusPrinter())

    store = UploadStagingStore(orchestrator)
    store.set_file(UploadedFile.from_path(path))
    try:
        return await store.process()
    finally:
        store.clear()


async def run_gemini(path: str, api_url: str, language: str) -> str:
    """Ask Gemini for timestamped lyrics of a file in a single call."""
    client = AsyncAPIClient(APIClient(api_url, timeout=ConfigManager.get_float("REQUEST_TIMEOUT_SECONDS")))
    print(f"[transcribing] Sending {path} to Gemini...", file=sys.stderr)
    return await client.transcribe_with_gemini(UploadedFile.from_path(path), language)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    if args.command == "serve":
        from .server import run

        run(host=args.host, port=ConfigManager.get_int("PORT", args.port))
        return 0

    api_url = ConfigManager.get("API_BASE_URL", args.api_url)
    language = ConfigManager.get("LANGUAGE", args.language)
    service = ConfigManager.get("SEPARATION_SERVICE", args.service)
    logger.info(f"Using API {api_url} (language {language}, separation {service})")

    if args.mode == "gemini":
        return gemini_main(args.file, api_url, language, args.at)

    try:
        state = asyncio.run(run_pipeline(args.file, api_url, language, service))
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if state.stage == PipelineStage.SUCCEEDED:
        print(state.final_text)
        return 0

    failed = state.failed_stage.value if state.failed_stage else state.stage.value
    print(f"Failed while {failed}: {state.error}", file=sys.stderr)
    return 1


def gemini_main(path: str, api_url: str, language: str, at: Optional[float] = None) -> int:
    try:
        text = asyncio.run(run_gemini(path, api_url, language))
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except LyricsPipelineError as e:
        print(f"Failed while transcribing: {e}", file=sys.stderr)
        return 1

    lines = parse_timed_lyrics(text)
    if not lines:
        logger.warning("Gemini answer has no timestamped lines; printing it as is")
        print(text.strip())
        return 0

    print(render_timed_lyrics(lines, at))
    return 0


if __name__ == "__main__":
    sys.exit(main())
