"""CLI entry point."""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from common.logging_config import setup_logging
from cli.config import DEFAULT_CONFIG_PATH, Config
from cli.vault_client import VaultClient


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="foldervault",
        description="Upload folders to an IPFS cluster and fetch them back by CID",
    )
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to config JSON")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    upload = sub.add_parser("upload", help="Upload a local directory")
    upload.add_argument("folder", help="Directory to upload")
    upload.add_argument("--name", help="Root folder name on the cluster")

    download = sub.add_parser("download", help="Download content by CID")
    download.add_argument("cid")
    download.add_argument("-o", "--output", help="Destination file or directory")
    download.add_argument("--format", choices=["tar", "car"], help="Export a directory as an archive")

    ls = sub.add_parser("ls", help="List recent uploads")
    ls.add_argument("--limit", type=int, help="Maximum number of uploads to show")

    rm = sub.add_parser("rm", help="Delete an upload and unpin it")
    rm.add_argument("cid")

    return parser


def run(args: argparse.Namespace, client: VaultClient) -> str:
    if args.command == "upload":
        return client.upload_folder(args.folder, args.name)
    if args.command == "download":
        return client.download(args.cid, args.output, args.format)
    if args.command == "ls":
        return client.list_files(args.limit)
    return client.delete(args.cid)


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for CLI."""
    args = build_parser().parse_args(argv)

    log_level = 'DEBUG' if args.debug else os.getenv('LOG_LEVEL', 'WARNING')
    logger = setup_logging('cli', log_level=log_level)

    client = VaultClient(Config(args.config))
    try:
        result = run(args, client)
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        client.close()

    print(result)
    if result.startswith("Error"):
        sys.exit(1)


if __name__ == "__main__":
    main()
