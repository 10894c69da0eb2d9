"""Cron entry point that runs optimization and migration batches."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from src.offload.config import load_config
from src.offload.dependencies import Services, build_services
from src.offload.logging import configure_logging
from src.offload.queue.queue_models import QueueName

TASKS = ("optimization", "migration", "all")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Process media optimization and migration queues.")
    parser.add_argument("--task", choices=TASKS, default="all", help="Which queue to process.")
    parser.add_argument("--batches", type=int, default=1, help="Maximum batches per task.")
    parser.add_argument("--scan", action="store_true", help="Scan the library before processing.")
    parser.add_argument(
        "--reinitialize",
        action="store_true",
        help="Clear the selected queues and rebuild them from a scan, then exit.",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Report migration completeness for every migrated asset, then exit.",
    )
    return parser.parse_args(argv)


def _selected(task: str) -> list[QueueName]:
    if task == "all":
        return [QueueName.OPTIMIZATION, QueueName.MIGRATION]
    return [QueueName(task)]


async def run(args: argparse.Namespace, services: Services) -> dict[str, Any]:
    processing = services.processing
    summary: dict[str, Any] = {}

    if args.verify:
        reports = services.migrator.batch_verify_migration()
        summary["verify"] = [report.as_dict() for report in reports]
        return summary

    for name in _selected(args.task):
        if args.reinitialize:
            summary[name.value] = processing.reinitialize_queue(name)
            continue
        if args.scan:
            processing.scan(name)
        batches = []
        for _ in range(max(1, args.batches)):
            if name is QueueName.OPTIMIZATION:
                report = await processing.process_optimization_batch()
            else:
                report = await processing.process_migration_batch()
            batches.append(report.as_dict())
            if not report.continue_processing:
                break
        summary[name.value] = batches
    return summary


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    configure_logging()
    try:
        services = build_services(load_config())
        summary = asyncio.run(run(args, services))
    except Exception as exc:
        print(f"processing failed: {exc}", file=sys.stderr)
        return 2

    print(json.dumps(summary, indent=2, default=str), file=sys.stdout)
    failed = any(
        batch.get("error") == "not_configured"
        for batches in summary.values()
        if isinstance(batches, list)
        for batch in batches
        if isinstance(batch, dict)
    )
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
