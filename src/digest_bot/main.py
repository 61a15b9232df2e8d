from __future__ import annotations

import argparse
import asyncio
import logging

import httpx
from pydantic import ValidationError

from digest_bot.bot import DigestBot
from digest_bot.config import Settings, configure_langsmith_env, get_settings
from digest_bot.errors import SummarizerError
from digest_bot.graph.context import PipelineContext
from digest_bot.graph.workflow import run_pipeline
from digest_bot.logging import setup_logging
from digest_bot.services.channel import ConsoleChannel, MessageChannel
from digest_bot.services.connection import DisconnectReason
from digest_bot.services.rss_client import load_sources
from digest_bot.services.summarizer import build_summarizer, check_summarizer
from digest_bot.services.telegram_client import TelegramChannel

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tech Digest Bot")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the digest pipeline once")
    run_parser.add_argument("--dry-run", action="store_true", help="Log the digest instead of sending it")
    run_parser.add_argument("--to", default=None, help="Send only to this chat id, without greeting")
    run_parser.add_argument("--verbose", action="store_true", help="Enable debug logs")

    serve_parser = subparsers.add_parser("serve", help="Run the bot: daily schedule and chat commands")
    serve_parser.add_argument("--verbose", action="store_true", help="Enable debug logs")

    check_parser = subparsers.add_parser("check-summarizer", help="Summarize a sample article")
    check_parser.add_argument("--verbose", action="store_true", help="Enable debug logs")

    return parser


def load_settings(dry_run: bool = False, serve: bool = False) -> Settings | None:
    try:
        settings = get_settings()
    except ValidationError as exc:
        logger.error("Configuration error: %s", exc)
        print(f"Configuration error:\n{exc}")
        return None

    missing_fields = settings.missing_required_runtime_fields(dry_run=dry_run, serve=serve)
    if missing_fields:
        joined = ", ".join(missing_fields)
        logger.error("Configuration error: missing required .env values: %s", joined)
        print(f"Configuration error: missing required .env values: {joined}")
        return None
    return settings


def build_context(
    settings: Settings,
    client: httpx.AsyncClient,
    channel: MessageChannel,
    dry_run: bool,
) -> PipelineContext:
    return PipelineContext(
        settings=settings,
        http_client=client,
        channel=channel,
        summarizer=build_summarizer(settings, client, dry_run=dry_run),
        sources=load_sources(settings),
    )


async def run_once(args: argparse.Namespace) -> int:
    dry_run = bool(args.dry_run)
    settings = load_settings(dry_run=dry_run)
    if settings is None:
        return 2
    configure_langsmith_env(settings)

    timeout = httpx.Timeout(settings.request_timeout_seconds)
    async with httpx.AsyncClient(timeout=timeout) as client:
        channel: MessageChannel
        if dry_run:
            channel = ConsoleChannel()
        else:
            channel = TelegramChannel(client, settings.telegram_bot_token or "", settings.telegram_parse_mode)
        context = build_context(settings, client, channel, dry_run)
        final_state = await run_pipeline(context, dry_run=dry_run, reply_to=args.to)

    report = final_state.get("delivery_report") or {}
    summary_count = len(final_state.get("summaries", []))
    sent = int(report.get("sent", 0))
    failed = int(report.get("failed", 0))
    total = int(report.get("total", 0))

    logger.info(
        "Run complete | summaries=%s sent=%s failed=%s total=%s dry_run=%s",
        summary_count,
        sent,
        failed,
        total,
        dry_run,
    )
    if final_state.get("errors"):
        logger.warning("Non-fatal errors captured: %s", len(final_state["errors"]))

    print(f"Run complete. summaries={summary_count} sent={sent} failed={failed} total={total} dry_run={dry_run}")
    return 1 if total and sent == 0 else 0


async def serve() -> int:
    settings = load_settings(serve=True)
    if settings is None:
        return 2
    configure_langsmith_env(settings)

    timeout = httpx.Timeout(settings.request_timeout_seconds)
    async with httpx.AsyncClient(timeout=timeout) as client:
        channel = TelegramChannel(client, settings.telegram_bot_token or "", settings.telegram_parse_mode)
        bot = DigestBot(settings, build_context(settings, client, channel, dry_run=False), channel)
        await bot.serve()

    snapshot = bot.connection.snapshot()
    return 0 if snapshot.reason in (None, DisconnectReason.SHUTDOWN) else 1


async def check() -> int:
    try:
        settings = get_settings()
    except ValidationError as exc:
        print(f"Configuration error:\n{exc}")
        return 2

    print(f"Provider: {settings.ai_provider.upper()}")
    async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as client:
        try:
            summarizer = build_summarizer(settings, client)
            summary = await check_summarizer(summarizer)
        except SummarizerError as exc:
            print(f"TEST FAILED: {exc}")
            print("Check the API key for the configured AI_PROVIDER and its remaining quota.")
            return 1

    print("AI summary generated:")
    print(summary)
    return 0


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    setup_logging(verbose=bool(args.verbose))
    if args.command == "run":
        exit_code = asyncio.run(run_once(args))
    elif args.command == "serve":
        try:
            exit_code = asyncio.run(serve())
        except KeyboardInterrupt:
            logger.info("Shutting down")
            exit_code = 0
    else:
        exit_code = asyncio.run(check())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
