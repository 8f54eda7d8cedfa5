#!/usr/bin/env python3
"""
Gmail Label Counts - tally labels across inbox threads
"""

import asyncio
import logging
import os
import sys
from typing import Dict

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from label_counts.cache import ensure_cache_dir
from label_counts.errors import CredentialsError
from label_counts.gmail_service import GmailService
from label_counts.models import ScanConfig
from label_counts.report import render_report


logger = logging.getLogger(__name__)

console = Console()


def configure_logging() -> str:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    return log_level


def describe_progress(event: str, data: Dict) -> str:
    """One-line progress description for a scan event"""
    if event == "thread_ids_fetched":
        return f"Fetched {data['count']:,} inbox thread IDs..."
    if event == "working_set_loaded":
        source = "cache" if data['from_cache'] else "Gmail"
        return f"Loaded {data['count']:,} inbox thread IDs from {source}"
    if event == "cache_scanned":
        return (f"Scanned {data['scanned']:,} threads from cache "
                f"({data['valid']:,} valid, {data['to_fetch']:,} to fetch)...")
    if event == "thread_fetched":
        return f"Fetched {data['fetched']:,}/{data['total']:,} threads from API..."
    if event == "counting_queries":
        return "Counting unread and untagged threads..."
    if event == "scan_completed":
        return "Scan complete"
    return event


def main():
    """Main entry point"""
    load_dotenv()
    log_level = configure_logging()
    logger.debug(f"Starting Gmail Label Counts with log level: {log_level}")

    config = ScanConfig.from_env()

    if ensure_cache_dir(config.cache_dir):
        console.print(f"Created cache dir: [cyan]{escape(str(config.cache_dir.resolve()))}[/cyan]")
    else:
        console.print(f"Using cache dir: [cyan]{escape(str(config.cache_dir.resolve()))}[/cyan]")

    gmail_service = GmailService(config)
    try:
        gmail_service.authenticate()
    except CredentialsError as error:
        console.print(f"[red]Error: {escape(str(error))}[/red]")
        sys.exit(1)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console
    ) as progress:
        task = progress.add_task("Loading inbox threads...", total=None)

        async def progress_callback(event: str, data: Dict):
            progress.update(task, description=describe_progress(event, data))

        gmail_service.set_progress_callback(progress_callback)
        report = asyncio.run(gmail_service.scan())

    render_report(report, console)


if __name__ == "__main__":
    main()
