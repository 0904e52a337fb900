"""Command-line interface for the feedboard aggregator."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import pprint
from pathlib import Path
from typing import List, Optional

from .aggregator import Aggregator, AggregatorState
from .config import AppConfig, parse_app_config, parse_feeds_config
from .controller import RefreshController
from .query import ALL_TAGS, filter_items
from .renderers import render_json, render_text
from .transport import TransportResolver, build_default_strategies

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Aggregate configured RSS/Atom feeds into one sorted news list."
    )
    parser.add_argument(
        "--config",
        default="configs/config.xml",
        help="Path to the main configuration XML file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    parser.add_argument(
        "--tag",
        default=ALL_TAGS,
        help="Only show items with this tag (default: all).",
    )
    parser.add_argument(
        "--query",
        default="",
        help="Only show items whose title, description or source contains this text.",
    )
    parser.add_argument(
        "--format",
        choices=("json", "text"),
        default="json",
        help="Output format.",
    )
    parser.add_argument(
        "--add-feed",
        metavar="URL",
        action="append",
        default=[],
        help="Add a feed URL (tag 'custom') on top of the configured ones.",
    )
    parser.add_argument(
        "--retry-failed",
        action="store_true",
        help="Retry every failed feed once after the refresh.",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Keep refreshing on the configured interval until interrupted.",
    )
    parser.add_argument(
        "--output",
        metavar="PATH",
        help="Write the rendered result to PATH instead of stdout.",
    )
    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
        old.close()
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_controller(app_config: AppConfig) -> RefreshController:
    """Wire resolver, aggregator and controller from configuration."""
    feeds = parse_feeds_config(app_config.feeds_file)
    transport = app_config.transport
    resolver = TransportResolver(
        build_default_strategies(
            direct=transport.direct,
            relay_url=transport.relay_url,
            public_relay_url=transport.public_relay_url,
        ),
        timeout_ms=transport.timeout_ms,
        user_agent=transport.user_agent,
    )
    aggregator = Aggregator(
        resolver,
        max_items=app_config.max_items_per_feed,
        concurrency=app_config.concurrency,
    )
    return RefreshController(
        feeds, aggregator, refresh_interval_ms=app_config.refresh_interval_ms
    )


def render_state(state: AggregatorState, args: argparse.Namespace) -> str:
    items = filter_items(state.items, args.tag, args.query)
    if args.format == "text":
        return render_text(items, state.failures)
    return render_json(items, state.failures)


def _emit(text: str, output: Optional[str]) -> None:
    if not output:
        print(text)
        return
    location = Path(output)
    if location.parent and not location.parent.exists():
        location.parent.mkdir(parents=True, exist_ok=True)
    location.write_text(text + "\n", encoding="utf-8")
    logger.info("Wrote output to %s", location)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config)

        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file
        configure_logging(log_level, log_file)

        logger.info(
            "Active Configuration:\n%s", pprint.pformat(dataclasses.asdict(app_config))
        )

        controller = build_controller(app_config)
        for url in args.add_feed:
            controller.add_feed(url, fetch=False)

        if args.watch:
            controller.on_refresh = lambda state: _emit(render_state(state, args), args.output)
            controller.start()
            try:
                controller.wait()
            except KeyboardInterrupt:
                logger.info("Interrupted; stopping refresh timer.")
            finally:
                controller.stop()
            return 0

        controller.request_refresh()
        if args.retry_failed:
            for failure in controller.state.failures:
                controller.retry_feed(failure.feed_id)
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    _emit(render_state(controller.state, args), args.output)
    return 0
