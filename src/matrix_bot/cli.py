"""matrix-bot command line entry point."""

from __future__ import annotations

import argparse
import sys

import anyio

from . import __version__
from .bot import MatrixBot
from .config import HOME_CONFIG_PATH, MatrixBotSettings, load_settings
from .errors import ConfigError, LoginError
from .logging import get_logger, setup_logging
from .plugins import EchoHandler, UuidHandler

logger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="matrix-bot")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Log in and serve the bundled handlers")
    run.add_argument(
        "--config",
        default=str(HOME_CONFIG_PATH),
        help="Path to config.toml (default: %(default)s)",
    )
    run.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level (debug, info, warning, error).",
    )
    run.add_argument(
        "--log-format",
        choices=("console", "json"),
        default=None,
        help="Override the configured log format.",
    )
    return parser


def build_bot(settings: MatrixBotSettings) -> MatrixBot:
    bot = MatrixBot.from_settings(settings)
    bot.add_handler(UuidHandler())
    bot.add_handler(EchoHandler())
    return bot


async def _serve(bot: MatrixBot) -> None:
    try:
        await bot.run()
    finally:
        with anyio.CancelScope(shield=True):
            await bot.close()


def run_bot(
    config_path: str,
    *,
    log_level: str | None = None,
    log_format: str | None = None,
) -> int:
    try:
        settings, cfg_path = load_settings(config_path)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        log_level or settings.log_level,
        log_format or settings.log_format,  # type: ignore[arg-type]
    )
    logger.info("bot.config.loaded", path=str(cfg_path), homeserver=settings.homeserver)

    bot = build_bot(settings)
    try:
        anyio.run(_serve, bot)
    except LoginError as exc:
        logger.error("bot.login_failed", error=str(exc))
        return 1
    except KeyboardInterrupt:
        logger.info("bot.stopped")
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "run":
        rc = run_bot(
            args.config,
            log_level=args.log_level,
            log_format=args.log_format,
        )
        raise SystemExit(rc)

    parser.error(f"unknown command: {args.cmd}")


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])
