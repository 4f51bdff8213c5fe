import argparse
import asyncio
import logging
import os
import sys

import httpx

from upload_client.api import UploadApiClient
from upload_client.config import UploadClientConfig
from upload_client.orchestrator import UploadOrchestrator
from upload_client.sources import UploadSource
from upload_client.transport import StorageTransport

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upload music files or a whole album")
    parser.add_argument("--api", default="http://localhost:8000", help="Upload service base URL")
    parser.add_argument("--token", default=os.getenv("UPLOAD_TOKEN"), help="Bearer token (default: $UPLOAD_TOKEN)")
    parser.add_argument("--direct", action="store_true", help="Send bytes through the API instead of storage")
    commands = parser.add_subparsers(dest="command", required=True)

    single = commands.add_parser("single", help="Upload one or more files")
    single.add_argument("files", nargs="+")

    album = commands.add_parser("album", help="Upload and publish an album")
    album.add_argument("--title", required=True)
    album.add_argument("--artist", required=True)
    album.add_argument("--cover", required=True)
    album.add_argument("tracks", nargs="+")
    return parser.parse_args(argv)


def print_progress(sent: int, total: int) -> None:
    percent = 100 * sent // total if total else 100
    print(f"\r{percent:3d}%", end="", file=sys.stderr, flush=True)


async def run(args: argparse.Namespace) -> int:
    config = UploadClientConfig(api_base_url=args.api, use_object_storage_upload=not args.direct)
    async with httpx.AsyncClient() as http:
        orchestrator = UploadOrchestrator(
            config,
            UploadApiClient(config, http),
            StorageTransport(config, http),
            credentials=lambda: args.token
        )
        if args.command == "album":
            result = await orchestrator.upload_album(
                UploadSource.from_path(args.cover),
                [UploadSource.from_path(path) for path in args.tracks],
                args.title,
                args.artist,
                progress=lambda done, total, fraction: print_progress(int((done + fraction) * 100), total * 100)
            )
            print(file=sys.stderr)
            if not result.succeeded:
                logger.error(f"Album failed at {result.failed_item}: {result.error.message}")
                return 1
            print(result.manifest.to_json_bytes().decode("utf-8"))
            return 0

        failures = 0
        for path in args.files:
            result = await orchestrator.upload_single(UploadSource.from_path(path), progress=print_progress)
            print(file=sys.stderr)
            if result.succeeded:
                print(f"{path}\t{result.record.url}")
            else:
                failures += 1
                logger.error(f"{path}: {result.reason} [{result.error.category.value}]")
        return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run(parse_args())))
