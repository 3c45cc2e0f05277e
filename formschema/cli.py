"""Command-line interface for form schema extraction."""

from __future__ import annotations

import argparse
import asyncio
from collections import Counter
import json
import logging
from typing import Any, Dict, List

from .browser import BrowserConfig, BrowserSession, PlaywrightHost
from .form_extractor import FormExtractor
from .io_utils import (
    RunPaths,
    generate_run_id,
    message_filename,
    prepare_run_directories,
    relative_artifact_path,
    write_json,
)
from .logging_utils import build_logger
from .models import ExtractionTrigger, ExtractorMessage
from .page_utils import safe_goto, wait_for_page_ready
from .session import FormSchemaSession

WAIT_STATES = ("commit", "domcontentloaded", "load", "networkidle")


async def save_page_artifacts(
    browser: BrowserSession, run_paths: RunPaths, logger: logging.Logger
) -> None:
    html_path = await browser.save_html(run_paths.artifact("page.html"))
    shot_path = await browser.screenshot(run_paths.artifact("page.png"))
    logger.info(
        "Saved page to %s and %s",
        relative_artifact_path(html_path),
        relative_artifact_path(shot_path),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract structured form field schemas from live pages"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--run-id", dest="run_id", help="Optional run identifier")
    common.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    common.add_argument("--url", required=True, help="Page to open")
    common.add_argument(
        "--headed", action="store_true", help="Show the browser window"
    )
    common.add_argument(
        "--wait-until",
        dest="wait_until",
        choices=WAIT_STATES,
        default="load",
        help="Navigation state to wait for before extracting",
    )
    common.add_argument(
        "--save-page",
        dest="save_page",
        action="store_true",
        help="Also save the page HTML and a screenshot next to the results",
    )

    subparsers.add_parser(
        "extract", help="Run one extraction pass and save the schema", parents=[common]
    )

    watch_parser = subparsers.add_parser(
        "watch",
        help="Keep the page open and record every schema the page produces",
        parents=[common],
    )
    watch_parser.add_argument(
        "--duration",
        type=float,
        default=30.0,
        help="Seconds to keep watching after the initial extraction",
    )
    return parser


async def run_extract(
    url: str,
    *,
    config: BrowserConfig,
    wait_until: str,
    run_paths: RunPaths,
    logger: logging.Logger,
    save_page: bool = False,
) -> Dict[str, Any]:
    async with BrowserSession(config) as browser:
        page = browser.page
        await safe_goto(page, url, wait_until=wait_until, logger=logger)
        await wait_for_page_ready(page, wait_until=wait_until, logger=logger)
        host = await PlaywrightHost.attach(page, logger=logger)
        extractor = FormExtractor(host, logger=logger)
        schema = await extractor.extract_form_schema(ExtractionTrigger.MANUAL)
        if save_page:
            await save_page_artifacts(browser, run_paths, logger)

    result = schema.to_dict()
    path = write_json(run_paths.artifact("schema.json"), result)
    logger.info(
        "Extracted %s fields from %s into %s",
        len(schema.fields),
        url,
        relative_artifact_path(path),
    )
    return result


async def run_watch(
    url: str,
    *,
    config: BrowserConfig,
    wait_until: str,
    duration: float,
    run_paths: RunPaths,
    logger: logging.Logger,
    save_page: bool = False,
) -> Dict[str, Any]:
    recorded: List[str] = []

    def record(message: ExtractorMessage) -> None:
        path = run_paths.artifact(message_filename(len(recorded) + 1, message.type))
        write_json(path, message.to_dict())
        recorded.append(message.type)
        logger.info("Recorded %s as %s", message.type, relative_artifact_path(path))

    async with BrowserSession(config) as browser:
        page = browser.page
        await safe_goto(page, url, wait_until=wait_until, logger=logger)
        await wait_for_page_ready(page, wait_until=wait_until, logger=logger)
        host = await PlaywrightHost.attach(page, logger=logger)
        session = FormSchemaSession(host, record, logger=logger)
        await session.start()
        await asyncio.sleep(duration)
        stats = session.get_stats()
        await session.close()
        await host.drain()
        if save_page:
            await save_page_artifacts(browser, run_paths, logger)

    return {
        "url": url,
        "messages": len(recorded),
        "by_type": dict(Counter(recorded)),
        "stats": stats,
        "artifacts": relative_artifact_path(run_paths.command_dir),
    }


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    run_id = args.run_id or generate_run_id()
    run_paths = prepare_run_directories(run_id, args.command)
    logger = build_logger(run_paths, verbose=args.verbose)
    config = BrowserConfig(headless=not args.headed)

    if args.command == "extract":
        result = asyncio.run(
            run_extract(
                args.url,
                config=config,
                wait_until=args.wait_until,
                run_paths=run_paths,
                logger=logger,
                save_page=args.save_page,
            )
        )
    elif args.command == "watch":
        result = asyncio.run(
            run_watch(
                args.url,
                config=config,
                wait_until=args.wait_until,
                duration=args.duration,
                run_paths=run_paths,
                logger=logger,
                save_page=args.save_page,
            )
        )
        write_json(run_paths.base_dir / "watch.json", result)
    else:
        parser.error(f"Unknown command: {args.command}")

    print(json.dumps(result, indent=2))


if __name__ == "__main__":  # pragma: no cover
    main()
