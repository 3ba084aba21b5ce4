"""
s3_archive/cli.py — command line trigger for archive runs.

    s3-archive archive --all
    s3-archive archive --collection 12 57 [--no-members] [--concurrency 8]
    s3-archive recover 42 43
    s3-archive set-url https://bucket.s3.amazonaws.com/
    s3-archive get-url

Ctrl-C during an archive run stops handing out new candidates; the ones
already running finish first. Exit status is 1 when anything failed.
"""
import argparse
import asyncio
import dataclasses
import logging
import signal
from typing import List, Optional

from dotenv import load_dotenv

from s3_archive import db as db_mod
from s3_archive.config import Settings, get_archive_base_url, set_archive_base_url
from s3_archive.errors import ArchiveError, RecoveryError
from s3_archive.models import ALL
from s3_archive.pipeline import archive_session, make_transport, run_archive
from s3_archive.recovery import RecoveryReconstructor
from s3_archive.utils import setup_logging

log = logging.getLogger("s3_archive.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3-archive",
        description="Move original files of repository nodes into S3 and link them back.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    archive = sub.add_parser("archive", help="archive original files")
    target = archive.add_mutually_exclusive_group(required=True)
    target.add_argument("--all", action="store_true", help="every node in the repository")
    target.add_argument("--collection", type=int, nargs="+", metavar="NODE_ID",
                        help="root collection node id(s)")
    archive.add_argument("--no-members", action="store_true",
                         help="only archive the containers themselves, not their members")
    archive.add_argument("--concurrency", type=int, default=None,
                         help="worker pool size (default: ARCHIVE_CONCURRENCY or 4)")

    recover = sub.add_parser("recover", help="restore a local original file from the archive")
    recover.add_argument("node_ids", type=int, nargs="+", metavar="NODE_ID")

    set_url = sub.add_parser("set-url", help="store the public base URL of the archive bucket")
    set_url.add_argument("url")

    sub.add_parser("get-url", help="print the stored archive base URL")
    return parser


# ─── Commands ─────────────────────────────────────────────────────────────────

async def _archive(pool, args: argparse.Namespace, settings: Settings) -> int:
    if args.concurrency:
        settings = dataclasses.replace(settings, concurrency=max(1, args.concurrency))
    scope = ALL if args.all else set(args.collection)

    async with archive_session(pool, settings) as migrator:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, migrator.request_stop)
            except (NotImplementedError, RuntimeError):
                pass
        report = await run_archive(pool, scope, migrator, include_members=not args.no_members)

    log.info(report.report())
    return 1 if report.failed else 0


async def _recover(pool, args: argparse.Namespace, settings: Settings) -> int:
    failures = 0
    async with make_transport(settings) as transport:
        reconstructor = RecoveryReconstructor(pool, transport)
        for node_id in args.node_ids:
            try:
                media_id = await reconstructor.recover(node_id)
                log.info("node %d recovered as media %d", node_id, media_id)
            except RecoveryError as exc:
                log.error("[%s] node %d: %s", exc.kind, node_id, exc)
                failures += 1
    return 1 if failures else 0


async def _main(args: argparse.Namespace) -> int:
    settings = Settings.from_env()
    pool = await db_mod.init_pool(max_size=max(10, settings.concurrency + 2))
    try:
        if args.command == "archive":
            return await _archive(pool, args, settings)
        if args.command == "recover":
            return await _recover(pool, args, settings)
        if args.command == "set-url":
            stored = await set_archive_base_url(pool, args.url)
            log.info("Archive base URL set to %s", stored)
            return 0
        print(await get_archive_base_url(pool))
        return 0
    finally:
        await pool.close()


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    try:
        return asyncio.run(_main(args))
    except ArchiveError as exc:
        log.error("%s", exc)
        return 2
