"""CLI entry point for the receipt pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from .config import load_config
from .pipeline import ReceiptProcessor


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="budgetbook-receipts",
        description="Extract grocery line items from expense receipts",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the config file (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    # process
    process_parser = sub.add_parser("process", help="Process one expense's receipt")
    process_parser.add_argument("expense_id", type=str)
    process_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # sweep
    sweep_parser = sub.add_parser("sweep", help="Retry every pending receipt once")
    sweep_parser.add_argument("--limit", type=int, default=None, help="Maximum expenses to retry")

    # serve
    serve_parser = sub.add_parser("serve", help="Run the HTTP trigger endpoint")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    # schedule
    sub.add_parser("schedule", help="Run the retry sweep on its cron schedule")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    load_dotenv()
    config = load_config(args.config)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.logging.level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    match args.command:
        case "process":
            ok = asyncio.run(_cmd_process(config, args))
            if not ok:
                sys.exit(1)
        case "sweep":
            asyncio.run(_cmd_sweep(config, args))
        case "serve":
            _cmd_serve(config, args)
        case "schedule":
            asyncio.run(_cmd_schedule(config))


async def _cmd_process(config, args) -> bool:
    processor = ReceiptProcessor.from_config(config)
    try:
        result = await processor.process(args.expense_id)
    finally:
        processor.close()

    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(f"{result.expense_id}: {result.outcome.value} - {result.message}")
        if result.error:
            print(f"  error: {result.error}", file=sys.stderr)
    return result.success


async def _cmd_sweep(config, args) -> None:
    from .scheduler import ReceiptRetryScheduler

    scheduler = ReceiptRetryScheduler(config)
    results = await scheduler.run_once(limit=args.limit)
    if not results:
        print("No receipts to retry.")
        return
    for r in results:
        print(f"  {r.expense_id:<36} {r.outcome.value:<12} {r.message}")


def _cmd_serve(config, args) -> None:
    import uvicorn

    from .server import create_app

    uvicorn.run(
        create_app(config),
        host=args.host or config.server.host,
        port=args.port or config.server.port,
    )


async def _cmd_schedule(config) -> None:
    from .scheduler import ReceiptRetryScheduler

    scheduler = ReceiptRetryScheduler(config)
    scheduler.start()
    for job in scheduler.get_jobs():
        print(f"  {job['id']}: next run {job['next_run']}")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


if __name__ == "__main__":
    main()
