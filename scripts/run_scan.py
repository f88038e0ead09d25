#!/usr/bin/env python3
"""
Run one monitoring scan from the command line and print the session summary.
Optionally registers images first (useful with the in-memory store).
"""

import asyncio
import sys
from pathlib import Path

# Add the parent directory to Python path
sys.path.append(str(Path(__file__).parent.parent))

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

import structlog

from sentinel.core.repository import create_stores
from sentinel.core.utils import configure_logging
from sentinel.services.crawler import create_crawler
from sentinel.services.monitoring import ScanOrchestrator
from sentinel.services.registration import AssetRegistry

logger = structlog.get_logger()


def print_progress(session):
    print(f"\r[{session.progress:3d}%] {session.targets_scanned}/{session.total_targets} "
          f"{session.current_target or ''}".ljust(60), end="", flush=True)


async def main(image_paths, verbose: bool) -> int:
    configure_logging(verbose)
    stores = create_stores()

    if image_paths:
        registry = AssetRegistry(stores.vault, stores.alerts)
        for result in registry.register_batch([(path, Path(path).name) for path in image_paths]):
            if result.error:
                print(f"❌ {result.filename}: {result.error}")
            else:
                print(f"✅ {result.filename}: {result.asset.id}")

    orchestrator = ScanOrchestrator(stores.vault, stores.alerts, stores.history, create_crawler())
    session = await orchestrator.run(on_progress=print_progress)
    print()

    print(f"Session {session.id}: {session.status.value}")
    print(f"   Pairs scanned: {session.targets_scanned}/{session.total_targets}")
    print(f"   Matches found: {session.matches_found}")
    print(f"   Pairs failed:  {session.pairs_failed}")
    if session.error:
        print(f"   Error: {session.error}")

    for alert in stores.alerts.list(limit=max(1, session.matches_found + 1)):
        print(f"   [{alert.severity.value}] {alert.title}: {alert.description}")

    return 0 if session.status.value == "completed" else 1


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Run a Sentinel monitoring scan")
    parser.add_argument("images", nargs="*", help="Images to register before scanning")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.images, args.verbose)))
