#!/usr/bin/env python3
"""Store seeding script.

Provisions the generated sample catalog onto the configured store, or
tears down everything a previous run created. Store URL and credentials
come from ``STORESEED_*`` environment variables.

Usage:
    python scripts/seed_store.py provision --mode small
    python scripts/seed_store.py provision --mode full --seed 7
    python scripts/seed_store.py teardown
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from storeseed.application.progress import Producer, stream_events
from storeseed.application.provisioning_service import ProvisioningPipeline
from storeseed.application.teardown_service import TeardownPipeline
from storeseed.catalog import CatalogGenerator, GeneratorConfig
from storeseed.domain.events import (
    CompleteEvent,
    ErrorEvent,
    PipelineEvent,
    ProgressEvent,
)
from storeseed.infrastructure.config import settings
from storeseed.infrastructure.logging_config import configure_logging
from storeseed.infrastructure.manifest import OwnershipManifest
from storeseed.infrastructure.store_client import StoreClient


def build_parser() -> argparse.ArgumentParser:
    """Create the command-line parser."""
    parser = argparse.ArgumentParser(
        description="Provision or tear down a sample catalog on a store",
    )
    parser.add_argument(
        "command",
        choices=["provision", "teardown"],
        help="provision creates the catalog, teardown deletes generated data",
    )
    parser.add_argument(
        "--mode",
        choices=["small", "full"],
        default=settings.catalog_mode,
        help="Catalog size: small (~60 items) or full (~500 items)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=settings.catalog_seed,
        help="Random seed for catalog generation",
    )
    return parser


def print_event(event: PipelineEvent) -> None:
    """Print one pipeline event as a progress line."""
    if isinstance(event, ProgressEvent):
        if event.total:
            print(f"  [{event.phase}] {event.current}/{event.total} {event.message}")
        else:
            print(f"  [{event.phase}] {event.message}")
    elif isinstance(event, CompleteEvent):
        print()
        for key, value in event.summary.items():
            print(f"  ✓ {key}: {value}")
    elif isinstance(event, ErrorEvent):
        phase = f" during {event.phase}" if event.phase else ""
        print(f"  ✗ Error{phase}: [{event.code}] {event.message}")


async def run(
    command: str,
    mode: str,
    seed: int,
    client: StoreClient | None = None,
    manifest: OwnershipManifest | None = None,
) -> int:
    """Run one pipeline to its terminal event.

    Args:
        command: ``provision`` or ``teardown``.
        mode: Catalog size.
        seed: Catalog seed.
        client: Store client (built from settings if omitted).
        manifest: Ownership manifest (loaded from settings if omitted).

    Returns:
        Process exit status: 0 on completion, 1 on error.
    """
    client = client or StoreClient.from_settings(settings)
    manifest = manifest or OwnershipManifest(settings.manifest_path, settings.store_url)

    producer: Producer
    if command == "provision":
        catalog = CatalogGenerator(GeneratorConfig.for_mode(mode, seed)).generate()
        producer = ProvisioningPipeline.from_settings(client, catalog, manifest, settings).run
    else:
        producer = TeardownPipeline.from_settings(client, manifest, settings).run

    exit_code = 1
    try:
        async for event in stream_events(producer):
            print_event(event)
            if isinstance(event, CompleteEvent):
                exit_code = 0
    finally:
        await client.close()
    return exit_code


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level, "console")

    print("=" * 60)
    print("StoreSeed")
    print("=" * 60)
    print(f"Command: {args.command}")
    print(f"Store: {settings.store_url}")
    if args.command == "provision":
        print(f"Mode: {args.mode} (seed {args.seed})")
    print()

    exit_code = asyncio.run(run(args.command, args.mode, args.seed))

    print()
    print("=" * 60)
    print("Done!" if exit_code == 0 else "Failed.")
    print("=" * 60)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
