"""Command line entry point.

Usage:
  videoworker worker [--concurrency N] [--queue NAME]   # Run the worker pool
  videoworker enqueue VIDEO_ID [VIDEO_ID ...]            # Enqueue processing jobs
  videoworker init-db                                    # Create the videos table
  videoworker stuck [--older-than SECONDS] [--limit N]   # List stale processing claims
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv


def cmd_worker(args: argparse.Namespace) -> int:
    from videoworker.modules.job.worker import WorkerPool

    queues = args.queue or None
    pool = WorkerPool(concurrency=args.concurrency, queues=queues)
    return pool.start()


def cmd_enqueue(args: argparse.Namespace) -> int:
    from videoworker.core.config import settings
    from videoworker.core.logging import setup_logging
    from videoworker.modules.job.errors import EnqueueError, PayloadError
    from videoworker.modules.job.producer import get_producer

    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    producer = get_producer()

    failed = 0
    for video_id in args.video_ids:
        try:
            ref = producer.enqueue(video_id)
        except (EnqueueError, PayloadError) as e:
            print(f"{video_id}: {e}", file=sys.stderr)
            failed += 1
            continue
        print(f"{ref.video_id}\t{ref.job_id}")
    return 1 if failed else 0


async def _init_db() -> None:
    from videoworker.core.database import create_tables, engine

    try:
        await create_tables()
    finally:
        await engine.dispose()


def cmd_init_db(args: argparse.Namespace) -> int:
    asyncio.run(_init_db())
    print("videos table ready")
    return 0


async def _list_stuck(older_than: int, limit: int) -> list:
    from videoworker.core.database import async_session_maker, engine
    from videoworker.modules.video.models import VideoRecord
    from videoworker.modules.video.repository import VideoRepository

    try:
        async with async_session_maker() as session:
            videos = await VideoRepository(session).get_stale_processing(older_than, limit)
            return [VideoRecord.from_model(video) for video in videos]
    finally:
        await engine.dispose()


def cmd_stuck(args: argparse.Namespace) -> int:
    from videoworker.core.config import settings

    older_than = args.older_than or settings.PROCESSING_LEASE_SECONDS
    records = asyncio.run(_list_stuck(older_than, args.limit))
    if not records:
        print(f"No videos processing for longer than {older_than}s")
        return 0

    for record in records:
        started = record.processing_started_at.isoformat() if record.processing_started_at else "-"
        print(f"{record.id}\t{started}\t{record.original_path_ref}")
    return 0


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="videoworker",
        description="Background video processing worker",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    worker = subparsers.add_parser("worker", help="Run the worker pool")
    worker.add_argument("--concurrency", type=positive_int, default=None, help="Number of pool processes")
    worker.add_argument(
        "--queue",
        action="append",
        default=None,
        help="Queue to consume (repeatable, defaults to JOB_QUEUE_NAME)",
    )
    worker.set_defaults(func=cmd_worker)

    enqueue = subparsers.add_parser("enqueue", help="Enqueue processing jobs")
    enqueue.add_argument("video_ids", nargs="+", metavar="VIDEO_ID")
    enqueue.set_defaults(func=cmd_enqueue)

    init_db = subparsers.add_parser("init-db", help="Create the videos table")
    init_db.set_defaults(func=cmd_init_db)

    stuck = subparsers.add_parser("stuck", help="List videos stuck in processing")
    stuck.add_argument(
        "--older-than",
        type=int,
        default=None,
        help="Claim age in seconds (defaults to PROCESSING_LEASE_SECONDS)",
    )
    stuck.add_argument("--limit", type=int, default=100)
    stuck.set_defaults(func=cmd_stuck)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    # Export .env before settings and prometheus read the environment
    load_dotenv()
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
