#!/usr/bin/env python3
"""
Command line entry point for Privote's transcription core.

This module sets up logging, parses command line arguments and dispatches
to the pipeline controller.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from privote.audio.normalizer import normalize_file
from privote.core.app import TranscriptionOptions, TranscriptionPipeline
from privote.core.config import load_config


def setup_logging(verbose: bool = False) -> None:
    """
    Configure the logging system for the application.

    Args:
        verbose: Whether to enable verbose logging (DEBUG level)
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    log_dir = Path.home() / ".privote" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "privote.log"

    # Log to stderr so stdout stays clean for transcripts and JSON
    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stderr)
        ]
    )

    # Reduce verbosity of third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Privote - local whisper.cpp transcription and model management"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to custom config file",
        default=None
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    transcribe = subparsers.add_parser("transcribe", help="Transcribe an audio file")
    transcribe.add_argument("audio", type=str, help="Path to the audio file")
    transcribe.add_argument("--model", type=str, help="Model id or file name to use")
    transcribe.add_argument("--language", type=str, help="Language code (ISO 639-1)")
    transcribe.add_argument("--threads", type=int, help="CPU threads for the engine")
    transcribe.add_argument("--timeout", type=float, help="Seconds before the engine is killed (0 disables)")
    transcribe.add_argument("--json", action="store_true", help="Print the full result as JSON")

    models = subparsers.add_parser("models", help="List or download whisper models")
    models_sub = models.add_subparsers(dest="models_command", required=True)
    models_sub.add_parser("list", help="List known models and whether they are installed")
    download = models_sub.add_parser("download", help="Download a model")
    download.add_argument("model_id", type=str, help="Model id, e.g. base.en")

    subparsers.add_parser("status", help="Show whether the engine and active model are installed")

    normalize = subparsers.add_parser("normalize", help="Convert a WAV file to 16 kHz mono 16-bit")
    normalize.add_argument("source", type=str, help="Input audio file")
    normalize.add_argument("destination", type=str, nargs="?", default=None, help="Output WAV file")

    return parser.parse_args(args)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for the command line.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parsed_args = parse_args(args)

    setup_logging(parsed_args.verbose)
    logger = logging.getLogger(__name__)

    pipeline = TranscriptionPipeline(config_loader=lambda: load_config(parsed_args.config))

    try:
        if parsed_args.command == "transcribe":
            options = TranscriptionOptions(
                model=parsed_args.model,
                language=parsed_args.language,
                threads=parsed_args.threads,
                timeout=parsed_args.timeout,
            )
            result = pipeline.transcribe_sync(parsed_args.audio, options)
            if parsed_args.json:
                _print_json(result.to_payload())
            elif result.success:
                print(result.text)
            else:
                print(f"Transcription failed: {result.error}", file=sys.stderr)
            return 0 if result.success else 1

        if parsed_args.command == "models":
            if parsed_args.models_command == "list":
                _print_json([state.to_payload() for state in pipeline.list_models()])
                return 0

            def report(progress: float, message: Optional[str]) -> None:
                print(f"\r{message or ''} ({progress:.0%})", end="", file=sys.stderr)

            install = asyncio.run(pipeline.download_model(parsed_args.model_id, report))
            print(file=sys.stderr)
            _print_json(install.to_payload())
            return 0 if install.success else 1

        if parsed_args.command == "status":
            status = pipeline.engine_status()
            status["current_model"] = pipeline.current_model()
            _print_json(status)
            return 0

        if parsed_args.command == "normalize":
            output = normalize_file(parsed_args.source, parsed_args.destination)
            print(output)
            return 0

        logger.error(f"Unknown command: {parsed_args.command}")
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user, shutting down...")
        return 130
    except Exception as e:
        logger.exception(f"Unhandled exception: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
