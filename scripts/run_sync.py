#!/usr/bin/env python3
"""CLI script to run ASPOS sync stages and manage the work queue.

Usage:
    uv run python scripts/run_sync.py stage products --store-id 12
    uv run python scripts/run_sync.py all
    uv run python scripts/run_sync.py enqueue-everything
    uv run python scripts/run_sync.py process-queue
    uv run python scripts/run_sync.py check-credentials
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from aspos_sync.api.v1.health import check_aspos_credentials
from aspos_sync.config import get_settings
from aspos_sync.infrastructure.database.connection import create_all, get_async_engine
from aspos_sync.infrastructure.database.models import TaskKind
from aspos_sync.logging_setup import configure_logging
from aspos_sync.services.pipeline import open_pipeline
from aspos_sync.services.work_queue import build_work_queue

logger = structlog.get_logger()


async def run_stage(kind: str, store_id: str | None) -> bool:
    async with open_pipeline() as pipeline:
        result = await pipeline.run_stage(kind, store_id)
    logger.info("Stage completed", **result.to_dict())
    return result.success


async def run_all() -> bool:
    async with open_pipeline() as pipeline:
        results = await pipeline.run_all()
    for result in results:
        logger.info("Stage completed", **result.to_dict())
    return all(result.success for result in results)


async def enqueue_everything() -> bool:
    from sync_worker.main import schedule_queue_trigger

    async with open_pipeline() as pipeline:
        queue = build_work_queue(pipeline.session, get_settings(), scheduler=schedule_queue_trigger)
        task_ids = await queue.enqueue_everything()
    logger.info("Enqueued full sync", task_ids=task_ids)
    return True


async def process_queue() -> bool:
    from sync_worker.tasks.queue import process_queue_once

    result = await process_queue_once()
    logger.info("Queue tick completed", **result)
    return result.get("result", {}).get("success", True)


async def init_db() -> bool:
    engine = get_async_engine()
    await create_all(engine)
    await engine.dispose()
    logger.info("Tables created")
    return True


async def check_credentials() -> bool:
    valid = await check_aspos_credentials()
    logger.info("Credential check", valid=valid)
    return valid


def main() -> int:
    parser = argparse.ArgumentParser(description="ASPOS sync command line")
    commands = parser.add_subparsers(dest="command", required=True)

    stage = commands.add_parser("stage", help="Run one stage now")
    stage.add_argument("kind", choices=[k.value for k in TaskKind])
    stage.add_argument("--store-id", default=None)

    commands.add_parser("all", help="Run stores, products, inventory and prices now")
    commands.add_parser("enqueue-everything", help="Enqueue all four stages")
    commands.add_parser("process-queue", help="Process the head of the queue")
    commands.add_parser("check-credentials", help="Fetch a token with the configured credentials")
    commands.add_parser("init-db", help="Create tables from the models (development)")

    args = parser.parse_args()
    configure_logging()

    if args.command == "stage":
        job = run_stage(args.kind, args.store_id)
    else:
        job = {
            "all": run_all,
            "enqueue-everything": enqueue_everything,
            "process-queue": process_queue,
            "check-credentials": check_credentials,
            "init-db": init_db,
        }[args.command]()

    return 0 if asyncio.run(job) else 1


if __name__ == "__main__":
    sys.exit(main())
