"""
MAAS bridge entry point.

Resolves ``maas://`` resource URIs against a MAAS server and prints the
response envelopes as JSON.

Usage:
    python main.py maas://machines/list?status=ready maas://zone/1/details
    python main.py --list
"""

import argparse
import asyncio
import json
import sys

from loguru import logger

from maasbridge.resources import ResourceRegistry, register_all
from maasbridge.services import AuditLogger, MaasApiClient, MaasApiError, get_resource_cache
from maasbridge.settings import global_settings
from maasbridge.utils import configure_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Read MAAS resources by URI")
    parser.add_argument("uris", nargs="*", help="maas:// resource URIs to resolve")
    parser.add_argument("--list", action="store_true", help="list registered resources")
    parser.add_argument("--log-level", default=global_settings.log_level)
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Main entry point; returns the process exit code."""
    args = parse_args(argv)
    configure_logging(args.log_level)

    registry = ResourceRegistry()

    if args.list:
        # Listing needs no credentials; handlers are never invoked
        async with MaasApiClient(global_settings.maas_api_url, "x:x:x") as client:
            register_all(registry, client, get_resource_cache(), AuditLogger.from_settings())
        print(json.dumps(registry.list_resources(), indent=2))
        return 0

    if not args.uris:
        logger.error("No resource URIs given")
        return 2

    try:
        client = MaasApiClient.from_settings()
    except ValueError as e:
        logger.error(f"Invalid MAAS configuration: {e}")
        return 2

    exit_code = 0
    async with client:
        register_all(registry, client, get_resource_cache(), AuditLogger.from_settings())
        for uri in args.uris:
            try:
                response = await registry.resolve(uri)
            except MaasApiError as e:
                logger.error(f"Failed to read {uri}: {e.message}")
                print(json.dumps({"uri": uri, "error": e.to_dict()}, indent=2))
                exit_code = 1
                continue
            print(json.dumps(response, indent=2))

    return exit_code


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
