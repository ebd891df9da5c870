"""offload CLI

사용법:
    offload run [worker] [scheduler] [ingress]
    offload stats [--queue QUEUE]
    offload jobs --queue QUEUE --state STATE [--limit N] [--offset N]
    offload show JOB_ID
    offload retry JOB_ID
    offload pause QUEUE
    offload resume QUEUE
    offload clean --queue QUEUE --state STATE [--grace SECONDS]
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime, timezone

from common.config import load_config
from common.logging import setup_logging
from database.registry import DatabaseRegistry
from ledger.exception import LedgerError
from ledger.main import Ledger
from ledger.model.job import Job, JobState, QueueName
from ledger.model.queue import load_queue_configs
from offload.runner import VALID_MODULES, run

__version__ = "0.1.0"

STATE_COLUMNS = [state.value for state in JobState]


def _format_time(epoch_ms: int | None) -> str:
    if not epoch_ms:
        return "-"
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


async def _open_ledger(config: dict) -> Ledger:
    database = config.get("worker", {}).get("database", "default")
    await DatabaseRegistry.init_from_config(config, [database])
    ledger = Ledger(DatabaseRegistry.get(database), load_queue_configs(config))
    await ledger.initialize()
    return ledger


async def cmd_stats(ledger: Ledger, args) -> None:
    queues = [args.queue] if args.queue else [q.value for q in QueueName]
    print(f"{'queue':<14}" + "".join(f"{c:>11}" for c in STATE_COLUMNS) + f"{'paused':>8}")
    for queue in queues:
        counts = await ledger.get_counts(queue)
        paused = "yes" if await ledger.is_paused(queue) else "no"
        print(f"{queue:<14}" + "".join(f"{counts[c]:>11}" for c in STATE_COLUMNS) + f"{paused:>8}")


async def cmd_jobs(ledger: Ledger, args) -> None:
    jobs = await ledger.list_jobs(args.queue, args.state, limit=args.limit, offset=args.offset)
    if not jobs:
        print("No jobs")
        return
    for job in jobs:
        print(
            f"{job.id:<40} {job.job_name:<38} attempts={job.attempts_made}/{job.max_attempts} "
            f"progress={job.progress:>3}% run_at={_format_time(job.run_at)}"
            + (f" reason={job.failed_reason}" if job.failed_reason else "")
        )


def _print_job(job: Job) -> None:
    print(json.dumps(job.model_dump(mode="json"), indent=2, ensure_ascii=False))


async def cmd_show(ledger: Ledger, args) -> None:
    job = await ledger.get_job(args.job_id)
    if job is None:
        print(f"Error: job '{args.job_id}' not found")
        sys.exit(1)
    _print_job(job)


async def cmd_retry(ledger: Ledger, args) -> None:
    job = await ledger.retry_job(args.job_id)
    print(f"Job '{job.id}' moved to {job.state.value}")


async def cmd_pause(ledger: Ledger, args) -> None:
    await ledger.pause(args.queue)
    print(f"Queue '{args.queue}' paused")


async def cmd_resume(ledger: Ledger, args) -> None:
    await ledger.resume(args.queue)
    print(f"Queue '{args.queue}' resumed")


async def cmd_clean(ledger: Ledger, args) -> None:
    removed = await ledger.clean(args.queue, args.state, grace_ms=int(args.grace * 1000))
    print(f"Removed {removed} {args.state} job(s) from '{args.queue}'")


COMMANDS = {
    "stats": cmd_stats,
    "jobs": cmd_jobs,
    "show": cmd_show,
    "retry": cmd_retry,
    "pause": cmd_pause,
    "resume": cmd_resume,
    "clean": cmd_clean,
}


async def _run_admin_command(config: dict, args) -> None:
    ledger = await _open_ledger(config)
    try:
        await COMMANDS[args.command](ledger, args)
    finally:
        await DatabaseRegistry.close_all()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="offload",
        description="offload - 백그라운드 잡 처리 (원장, 워커, 반복 스케줄)"
    )
    parser.add_argument("-c", "--config-dir", help="Config directory (default: ./config)")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    queue_choices = [q.value for q in QueueName]
    state_choices = [s.value for s in JobState]

    run_parser = subparsers.add_parser("run", help="Run worker / scheduler / ingress")
    run_parser.add_argument("modules", nargs="*", default=[],
                            help=f"Modules to run: {', '.join(VALID_MODULES)} (default: worker scheduler)")

    stats_parser = subparsers.add_parser("stats", help="Job counts per state")
    stats_parser.add_argument("--queue", choices=queue_choices)

    jobs_parser = subparsers.add_parser("jobs", help="List jobs")
    jobs_parser.add_argument("--queue", required=True, choices=queue_choices)
    jobs_parser.add_argument("--state", required=True, choices=state_choices)
    jobs_parser.add_argument("--limit", type=int, default=50)
    jobs_parser.add_argument("--offset", type=int, default=0)

    show_parser = subparsers.add_parser("show", help="Show a job")
    show_parser.add_argument("job_id")

    retry_parser = subparsers.add_parser("retry", help="Retry a failed job")
    retry_parser.add_argument("job_id")

    for name, help_text in (("pause", "Pause a queue"), ("resume", "Resume a queue")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("queue", choices=queue_choices)

    clean_parser = subparsers.add_parser("clean", help="Remove finished jobs")
    clean_parser.add_argument("--queue", required=True, choices=queue_choices)
    clean_parser.add_argument("--state", required=True, choices=[JobState.COMPLETED.value, JobState.FAILED.value])
    clean_parser.add_argument("--grace", type=float, default=0, help="Keep jobs finished within N seconds")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    if args.command == "run":
        unknown = [m for m in args.modules if m not in VALID_MODULES]
        if unknown:
            parser.error(f"unknown module(s): {', '.join(unknown)} (choose from {', '.join(VALID_MODULES)})")

    config = load_config(args.config_dir)
    setup_logging(**config.get("logging", {}))

    if args.command == "run":
        modules = args.modules or ["worker", "scheduler"]
        print(f"Starting offload: {', '.join(modules)}")
        try:
            asyncio.run(run(modules, config))
        except KeyboardInterrupt:
            print("\nShutdown requested by user")
        return

    try:
        asyncio.run(_run_admin_command(config, args))
    except LedgerError as e:
        print(f"Error: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
