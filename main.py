#!/usr/bin/env python3
"""wordforge - word entry generation service."""

import argparse
import sys
from contextlib import nullcontext
from pathlib import Path

import uvicorn
from pydantic import ValidationError

import config
from config import Settings
from wordforge.api import create_app
from wordforge.engine_process import EngineLaunchError, build_server_command, launched_engine
from wordforge.generation import run_generation
from wordforge.logger import setup_logger

# CLI flag -> Settings field
SETTING_FLAGS = {
    "host": "bind_host",
    "port": "bind_port",
    "engine": "engine_backend",
    "engine_url": "engine_urls",
    "model_path": "model_path",
    "context_size": "context_size",
    "gpu_layers": "gpu_layers",
    "temperature": "temperature",
    "top_p": "top_p",
    "min_p": "min_p",
    "repeat_penalty": "repeat_penalty",
    "max_tokens": "max_tokens",
    "capacity": "admission_capacity",
    "max_attempts": "max_attempts",
    "max_batch_size": "max_batch_size",
    "request_timeout": "request_timeout",
}


def add_setting_arguments(parser: argparse.ArgumentParser) -> None:
    """Flags that override WORDFORGE_* environment settings."""
    group = parser.add_argument_group("settings (override WORDFORGE_* environment variables)")
    group.add_argument("--host", type=str, help="Bind address")
    group.add_argument("--port", type=int, help="Bind port")
    group.add_argument("--engine", choices=["llama-server", "mock"], help="Engine backend")
    group.add_argument("--engine-url", type=str, help="Comma-separated llama.cpp server URLs")
    group.add_argument("--model-path", type=Path, help="Model file for --launch-engine")
    group.add_argument("--context-size", type=int, help="Model context size")
    group.add_argument("--gpu-layers", type=int, help="Layers offloaded to the GPU")
    group.add_argument("--temperature", type=float, help="Sampling temperature")
    group.add_argument("--top-p", type=float, help="Nucleus sampling threshold")
    group.add_argument("--min-p", type=float, help="Minimum token probability")
    group.add_argument("--repeat-penalty", type=float, help="Repetition penalty")
    group.add_argument("--max-tokens", type=int, help="Token budget per generation")
    group.add_argument("--capacity", type=int, help="Concurrent engine calls allowed")
    group.add_argument("--max-attempts", type=int, help="Engine calls per word before giving up")
    group.add_argument("--max-batch-size", type=int, help="Largest accepted batch")
    group.add_argument("--request-timeout", type=float, help="Seconds per request")


def load_settings(args: argparse.Namespace) -> Settings:
    """Build Settings from the environment, then apply CLI overrides."""
    overrides = {
        field: getattr(args, flag)
        for flag, field in SETTING_FLAGS.items()
        if getattr(args, flag, None) is not None
    }
    return Settings(**overrides)


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    logger = setup_logger("serve", capture_uvicorn=True)
    logger.info("=" * 60)
    logger.info("wordforge service")
    logger.info("=" * 60)
    logger.info(f"Bind: {settings.bind_host}:{settings.bind_port}")
    logger.info(f"Engine: {settings.engine_backend} {settings.engine_urls}")
    logger.info(f"Admission capacity: {settings.admission_capacity}")
    logger.info("=" * 60)

    engine_ctx = launched_engine(settings) if args.launch_engine else nullcontext()
    try:
        with engine_ctx:
            uvicorn.run(
                create_app(settings),
                host=settings.bind_host,
                port=settings.bind_port,
                log_config=None,
            )
    except EngineLaunchError as e:
        logger.error(f"Engine launch failed: {e}")
        return 1
    return 0


def cmd_generate(args: argparse.Namespace, settings: Settings) -> int:
    logger = setup_logger("generate")
    output_path = args.output or config.get_output_path()

    logger.info("=" * 60)
    logger.info("wordforge offline generation")
    logger.info("=" * 60)
    logger.info(f"Input: {args.input}")
    logger.info(f"Output: {output_path}")
    if args.resume:
        logger.info("Mode: Resume from checkpoint")
    if args.dry_run:
        logger.info(f"Mode: Dry run ({config.DRY_RUN_LIMIT} words)")
    logger.info("=" * 60)

    try:
        run_generation(
            settings,
            input_path=args.input,
            output_path=output_path,
            resume=args.resume,
            dry_run=args.dry_run,
            chunk_size=args.chunk_size,
        )
    except KeyboardInterrupt:
        logger.warning("Generation interrupted by user.")
        logger.info("Progress has been saved. Use --resume to continue.")
        return 1
    except Exception as e:
        logger.error(f"Generation error: {e}", exc_info=True)
        logger.info("Progress has been saved. Use --resume to continue.")
        return 1

    logger.info("Generation completed.")
    return 0


def cmd_engine_command(args: argparse.Namespace, settings: Settings) -> int:
    try:
        print(" ".join(build_server_command(settings)))
    except EngineLaunchError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="wordforge - structured word entry generation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the HTTP API against a running llama.cpp server
  python main.py serve --engine-url http://127.0.0.1:8081

  # Start llama.cpp alongside the API
  python main.py serve --launch-engine --model-path models/model.gguf

  # Generate entries for a word list, resuming an interrupted run
  python main.py generate --input data/vocabulary.txt --resume
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument(
        "--launch-engine",
        action="store_true",
        help="Start a llama.cpp server for the lifetime of the API",
    )
    add_setting_arguments(serve)
    serve.set_defaults(handler=cmd_serve)

    generate = subparsers.add_parser("generate", help="Generate entries for a word list file")
    generate.add_argument("--input", type=Path, default=config.VOCABULARY_TXT, help="Word list file")
    generate.add_argument("--output", type=Path, help="Output JSON file")
    generate.add_argument("--resume", action="store_true", help="Resume from checkpoint")
    generate.add_argument(
        "--dry-run",
        action="store_true",
        help=f"Process only {config.DRY_RUN_LIMIT} words for testing",
    )
    generate.add_argument(
        "--chunk-size",
        type=int,
        default=config.DEFAULT_CHUNK_SIZE,
        help="Words scheduled together between checkpoint saves",
    )
    add_setting_arguments(generate)
    generate.set_defaults(handler=cmd_generate)

    engine_command = subparsers.add_parser(
        "engine-command", help="Print the llama.cpp server command for these settings"
    )
    add_setting_arguments(engine_command)
    engine_command.set_defaults(handler=cmd_engine_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args)
    except ValidationError as e:
        print(f"Invalid settings:\n{e}", file=sys.stderr)
        return 2

    return args.handler(args, settings)


if __name__ == "__main__":
    sys.exit(main())
