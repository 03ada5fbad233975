"""
CLI Module

Architectural Intent:
- Command-line interface for bandwatch
- Entry point for all user interactions
- Delegates to application use cases via composition root
- Supports --verbose/--debug flags for log level control
"""

import argparse
import sys
import asyncio
import logging
import signal
import traceback
from typing import Optional

from bandwatch.infrastructure.config import BandwatchConfig, load_config
from bandwatch.infrastructure.logging import configure_logging
from bandwatch.domain.errors import BandwatchError, NotFoundError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bandwatch",
        description="bandwatch: detect throttled bandwidth and file a support ticket",
    )
    parser.add_argument(
        "--config", "-c", default=None, help="Path to JSON config (default: bandwatch.json)"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit structured JSON log lines"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "serve", help="Check on the cron schedule and serve approval callbacks"
    )
    subparsers.add_parser(
        "now", help="Run one check immediately, then keep serving callbacks"
    )
    subparsers.add_parser("submit", help="File a ticket immediately, skipping the speed test")
    subparsers.add_parser("speedtest", help="Measure download speed only")
    subparsers.add_parser(
        "list", help="Show the resolved product and recommended ticket category"
    )
    return parser


def _log_level(args: argparse.Namespace, config: BandwatchConfig):
    if args.debug:
        return logging.DEBUG
    if args.verbose:
        return logging.INFO
    return config.log_level


def _print_report(report) -> None:
    speed = f"{report.speed_mbps:.2f} Mbps" if report.speed_mbps is not None else "n/a"
    print(f"[*] Check finished: {report.outcome.value} (speed: {speed})")
    if report.ticket_id:
        print(f"[+] Ticket id: {report.ticket_id}")
    if report.approve_url:
        print(f"[*] Approval link sent: {report.approve_url}")
    if report.error:
        print(f"[-] {report.error}")


async def _create_telemetry(config: BandwatchConfig):
    if not config.telemetry.endpoint:
        return None
    from bandwatch.infrastructure.telemetry import create_exporter

    return await create_exporter(
        endpoint=config.telemetry.endpoint,
        insecure=config.telemetry.insecure,
    )


def build_command_bot(container):
    """Telegram command bot over the container's services, or None when disabled."""
    if not container.config.notifications.telegram_commands_enabled:
        return None
    from bandwatch.presentation.telegram.bot import TelegramCommandBot

    return TelegramCommandBot(
        container.config,
        probe=container.probe,
        store=container.store,
        trigger=container.trigger,
        check_incident=container.check_incident,
        approve=container.approve_ticket,
    )


async def run_service(container, run_now: bool = False, stop_event: Optional[asyncio.Event] = None) -> None:
    """Serve callbacks, bot commands, the cron schedule and manual triggers until stopped.

    SIGINT/SIGTERM set stop_event; shutdown stops the scheduler first, then
    waits for Telegram commands, in-flight HTTP requests and a running manual
    check.
    """
    from bandwatch.infrastructure.scheduler import IncidentScheduler
    from bandwatch.presentation.web.app import BandwatchWebApp

    config = container.config
    # Parse the cron expression before anything is started
    scheduler = IncidentScheduler(config.monitor.cron_expression, container.check_incident.execute)
    web = BandwatchWebApp(
        approve=container.approve_ticket,
        store=container.store,
        trigger=container.trigger,
        policy=container.policy,
    )
    bot = build_command_bot(container)
    await web.start(config.callback.host, config.callback.port)
    print(f"[*] Callback server listening on {config.callback.host}:{web.port}")

    loop = asyncio.get_running_loop()
    stop_event = stop_event or asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not available off the main thread or on some platforms
            logger.debug("Signal handler for %s not installed", sig)

    try:
        scheduler.start()
        print(f"[*] Next scheduled check: {scheduler.next_run_time()}")
        container.trigger.start(container.check_incident.execute)
        if bot is not None:
            await bot.start()
            print("[*] Telegram command bot polling for commands")

        if run_now:
            print("[*] Running bandwidth check now...")
            _print_report(await container.check_incident.execute())
        print("[*] bandwatch running. Press Ctrl+C to stop.")
        await stop_event.wait()
    finally:
        print("\n[*] Shutting down...")
        scheduler.shutdown()
        if bot is not None:
            await bot.close()
        await web.stop()
        await container.trigger.close()
        if container.telemetry:
            await container.telemetry.export()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass


async def async_main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
    except (TypeError, ValueError) as e:
        print(f"[-] Invalid configuration: {e}")
        return 1
    configure_logging(level=_log_level(args, config), json_format=args.json_logs)

    verbose = args.verbose or args.debug

    if args.command == "speedtest":
        from bandwatch.infrastructure.adapters.speedtest_adapter import SpeedtestAdapter

        print("[*] Measuring download speed...")
        try:
            speed = await SpeedtestAdapter().measure()
        except BandwatchError as e:
            print(f"[-] Speed test failed: {e}")
            if verbose:
                traceback.print_exc()
            return 1
        threshold = config.monitor.speed_threshold
        marker = "[+]" if speed >= threshold else "[-]"
        print(f"{marker} Download speed: {speed:.2f} Mbps (threshold: {threshold:g} Mbps)")
        return 0

    if args.command == "list":
        from bandwatch.infrastructure.adapters.workorder_client import WorkorderClient

        print("[*] Resolving product and ticket categories...")
        try:
            report = await WorkorderClient(config).list_catalog()
        except NotFoundError as e:
            print(f"[-] {e}")
            return 1
        except BandwatchError as e:
            print(f"[-] Catalog lookup failed: {e}")
            if verbose:
                traceback.print_exc()
            return 1
        print(f"[+] Product id: {report.product_id}")
        for category in report.categories:
            mark = "*" if category.category_id == report.category_id else " "
            print(f"  {mark} {category.category_id}: {category.category_name}")
        print(f"[+] Recommended category id: {report.category_id}")
        return 0

    if args.command == "submit":
        from bandwatch.infrastructure.adapters.workorder_client import WorkorderClient

        print("[*] Submitting ticket...")
        try:
            ticket_id = await WorkorderClient(config).submit_ticket()
        except BandwatchError as e:
            print(f"[-] Ticket submission failed: {e}")
            if verbose:
                traceback.print_exc()
            return 1
        print(f"[+] Ticket submitted, ticket id: {ticket_id}")
        return 0

    if args.command in ("serve", "now"):
        from bandwatch.composition_root import create_container

        try:
            telemetry = await _create_telemetry(config)
            container = create_container(config, telemetry=telemetry)
            await run_service(container, run_now=args.command == "now")
        except ValueError as e:
            # Invalid cron expression or telemetry endpoint
            print(f"[-] Invalid configuration: {e}")
            return 1
        except OSError as e:
            print(f"[-] Could not start callback server: {e}")
            if verbose:
                traceback.print_exc()
            return 1
        print("[*] Stopped.")
        return 0

    parser.print_help()
    return 0


def main():
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
