"""CLI command for running one blocking generation outside the HTTP API.

Credits are still checked and debited for the given user.

Usage:
    python -m portraitly.cli.generate --user-id USER --image-url URL [OPTIONS]

Examples:
    # Default style, no filters
    python -m portraitly.cli.generate --user-id 7c1e... --image-url https://.../me.png

    # Style with retouch filters
    python -m portraitly.cli.generate --user-id 7c1e... --image-url https://.../me.png \\
        --style classic_bw --filter smooth_skin --filter direct_gaze

    # Poll asynchronous providers without a time budget (local runs only)
    python -m portraitly.cli.generate --user-id 7c1e... --image-url https://.../me.png --unbounded
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

import httpx
import structlog

from portraitly.core import timezone  # noqa: F401
from portraitly.core.config import Settings, configure_logging
from portraitly.core.database import setup_db_session
from portraitly.services.exceptions import (
    AllProvidersExhaustedError,
    QuotaExceededError,
    ServiceError,
)
from portraitly.services.generation.engine import GenerationRequest
from portraitly.services.generation.factory import build_engine
from portraitly.services.prompting.catalog import STYLES, is_known_style
from portraitly.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Generate one portrait for a user",
        epilog="Styles: " + ", ".join(style.id for style in STYLES),
    )

    parser.add_argument(
        "--user-id", required=True, help="Owner of the generation (credits debited)"
    )
    parser.add_argument("--image-url", required=True, help="Public URL of the source photo")
    parser.add_argument("--style", default=None, help="Style id (default: first style)")
    parser.add_argument(
        "--filter",
        dest="filters",
        action="append",
        default=[],
        help="Retouch filter id or label (repeatable)",
    )
    parser.add_argument(
        "--unbounded",
        action="store_true",
        help="Poll asynchronous providers without a time budget",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 2 (quota exhausted)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    if args.unbounded:
        settings.poll_unbounded = True
    configure_logging(settings)

    if args.style and not is_known_style(args.style):
        logger.warning("cli.unknown_style", style=args.style)

    logger.info("cli.started", user_id=args.user_id, style=args.style, filters=args.filters)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    try:
        async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as http_client:
            engine = build_engine(settings, uow_factory, http_client)
            request = GenerationRequest.build(
                args.user_id, args.image_url, args.style, args.filters
            )
            result = await engine.generate(request)

    except QuotaExceededError as e:
        logger.warning("cli.quota_exceeded", user_id=args.user_id, remaining=e.remaining)
        print(f"Error: {e} (remaining credits: {e.remaining})", file=sys.stderr)
        return 2

    except AllProvidersExhaustedError as e:
        logger.error("cli.generation_failed", attempts=len(e.attempts), error=str(e))
        print(f"\nError: {e}", file=sys.stderr)
        for attempt in e.attempts:
            print(
                f"  - {attempt.provider_id} [{attempt.outcome.value}] {attempt.error_detail}",
                file=sys.stderr,
            )
        return 1

    except ServiceError as e:
        logger.error("cli.service_error", error=str(e), error_type=type(e).__name__)
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nGeneration interrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT

    finally:
        await session_factory.kw["bind"].dispose()

    print("\n" + "=" * 60)
    print("Generation Summary")
    print("=" * 60)
    print(f"Style: {result.style_id}")
    print(f"Provider: {result.provider_id}")
    print(f"Image URL: {result.image_url}")
    print(f"Remaining credits: {result.remaining_credits}")
    print("=" * 60 + "\n")

    logger.info("cli.success", provider_id=result.provider_id)
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
