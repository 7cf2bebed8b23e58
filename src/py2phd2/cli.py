"""
Command-Line Interface - Argument Parsing and Entry Point

This module provides the command-line interface for talking to a running
PHD2 instance. It handles:
- Command-line argument parsing
- Argument validation
- Settings loading and logging setup
- Running one guiding command and reporting the result

Usage:
    python -m py2phd2 status
    python -m py2phd2 --instance 2 guide --settle-pixels 1.5 --wait
    python -m py2phd2 call get_exposure
    python -m py2phd2 --help
"""

import sys
import json
import time
import argparse
import logging
from typing import Any, List, Optional

from py2phd2.client import PHD2Client
from py2phd2.config import LOG_LEVELS, load_settings
from py2phd2.core.errors import PHD2Error
from py2phd2.services.equipment_service import EquipmentService

# Seconds between settle progress reports with --wait
SETTLE_POLL_INTERVAL = 1.0
# Extra seconds beyond the settle timeout before --wait gives up
SETTLE_WAIT_MARGIN = 10.0


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: List of arguments to parse. If None, uses sys.argv[1:]

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="py2phd2",
        description="PHD2 guiding client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s status
  %(prog)s --host 192.168.1.20 guide --settle-pixels 1.5 --settle-time 10 --wait
  %(prog)s dither 3.0 --ra-only
  %(prog)s watch --seconds 30
  %(prog)s call set_exposure 2000
        """
    )

    parser.add_argument("--config", type=str, default=None,
                        help="YAML settings file")
    parser.add_argument("--host", type=str, default=None,
                        help="Host running PHD2 (default: localhost)")
    parser.add_argument("--instance", type=int, default=None,
                        help="PHD2 instance number (default: 1)")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=list(LOG_LEVELS),
        help="Set logging level (default: INFO)"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show PHD2 state and guide statistics")

    guide = sub.add_parser("guide", help="Start guiding")
    _add_settle_args(guide)
    guide.add_argument("--recalibrate", action="store_true",
                       help="Force calibration before guiding")

    dither = sub.add_parser("dither", help="Dither the lock position")
    dither.add_argument("pixels", type=float, help="Dither amount in pixels")
    dither.add_argument("--ra-only", action="store_true", help="Dither in RA only")
    _add_settle_args(dither)

    sub.add_parser("stop", help="Stop looping and guiding")
    sub.add_parser("loop", help="Start looping exposures")
    sub.add_parser("profiles", help="List equipment profiles")

    watch = sub.add_parser("watch", help="Print PHD2 events as they arrive")
    watch.add_argument("--seconds", type=float, default=10.0,
                       help="How long to watch (default: 10)")

    call = sub.add_parser("call", help="Issue a raw PHD2 method call")
    call.add_argument("method", help="PHD2 method name")
    call.add_argument("params", nargs="?", default=None,
                      help="Parameters as JSON, e.g. '[1.5, false]'")

    return parser.parse_args(args)


def _add_settle_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--settle-pixels", type=float, default=1.5,
                        help="Settled when within this many pixels (default: 1.5)")
    parser.add_argument("--settle-time", type=float, default=10.0,
                        help="Seconds to stay within tolerance (default: 10)")
    parser.add_argument("--settle-timeout", type=float, default=60.0,
                        help="Seconds before settling fails (default: 60)")
    parser.add_argument("--wait", action="store_true",
                        help="Wait for settling to finish")


def validate_args(args: argparse.Namespace) -> bool:
    """Validate parsed command-line arguments.

    Returns:
        True if arguments are valid, False otherwise
    """
    if args.instance is not None and args.instance < 1:
        print(f"Error: Instance must be 1 or greater, got {args.instance}")
        return False

    if args.host is not None and args.host.strip() == "":
        print("Error: Host cannot be empty if specified")
        return False

    if args.command in ("guide", "dither"):
        if args.settle_pixels <= 0 or args.settle_time < 0 or args.settle_timeout <= 0:
            print("Error: Settle pixels and timeout must be positive, settle time non-negative")
            return False

    if args.command == "watch" and args.seconds <= 0:
        print(f"Error: Watch duration must be positive, got {args.seconds}")
        return False

    if args.command == "call" and args.params is not None:
        try:
            args.params = json.loads(args.params)
        except ValueError as e:
            print(f"Error: Parameters are not valid JSON: {e}")
            return False

    return True


def setup_logging(level: str):
    """Configure application logging.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, level.upper(), None)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


def _wait_for_settle(client: PHD2Client, settle_timeout: float) -> int:
    """Poll settle progress until PHD2 reports SettleDone.

    The guide/dither response can arrive before the first settle event, so
    is_settling() is polled until a record exists. PHD2 enforces its own
    settle timeout; the local deadline only guards against a lost SettleDone.
    """
    deadline = time.monotonic() + settle_timeout + SETTLE_WAIT_MARGIN
    while True:
        if time.monotonic() > deadline:
            print(f"Gave up waiting for settling after {settle_timeout + SETTLE_WAIT_MARGIN:.0f} s")
            return 1

        if not client.is_settling():
            time.sleep(SETTLE_POLL_INTERVAL)
            continue

        progress = client.check_settling()
        if progress.done:
            if progress.status == 0:
                print("Settled")
                return 0
            print(f"Settle failed: {progress.error}")
            return 1

        if progress.distance < 0:
            # placeholder from get_settling, no Settling event yet
            print("Settling...")
        else:
            print(f"Settling: distance {progress.distance:.2f}/{progress.settle_px:.2f} px, "
                  f"{progress.time:.0f}/{progress.settle_time:.0f} s")
        time.sleep(SETTLE_POLL_INTERVAL)


def run_command(client: PHD2Client, args: argparse.Namespace) -> int:
    """Run one subcommand against a connected client."""
    command = args.command

    if command == "status":
        # Give the server a moment to send its initial Version/AppState events
        time.sleep(0.5)
        _print_json(client.get_status().to_dict())

    elif command == "guide":
        client.guide(args.settle_pixels, args.settle_time, args.settle_timeout,
                     recalibrate=args.recalibrate)
        if args.wait:
            return _wait_for_settle(client, args.settle_timeout)

    elif command == "dither":
        client.dither(args.pixels, args.settle_pixels, args.settle_time,
                      args.settle_timeout, ra_only=args.ra_only)
        if args.wait:
            return _wait_for_settle(client, args.settle_timeout)

    elif command == "stop":
        client.stop_capture()

    elif command == "loop":
        client.loop()

    elif command == "profiles":
        for name in EquipmentService(client).get_profiles():
            print(name)

    elif command == "watch":
        client.add_event_listener(lambda event: print(json.dumps(event)))
        time.sleep(args.seconds)

    elif command == "call":
        _print_json(client.call(args.method, args.params))

    return 0


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point.

    This function:
    1. Parses and validates command-line arguments
    2. Loads settings and sets up logging
    3. Connects to PHD2 and runs the subcommand
    4. Returns exit code

    Args:
        args: Command-line arguments. If None, uses sys.argv[1:]

    Returns:
        Exit code (0 = success, 1 = error)
    """
    parsed_args = parse_args(args)

    if not validate_args(parsed_args):
        return 1

    try:
        settings = load_settings(parsed_args.config)
    except PHD2Error as e:
        print(e.format_user_message())
        return 1

    if parsed_args.host is not None:
        settings.host = parsed_args.host
    if parsed_args.instance is not None:
        settings.instance = parsed_args.instance
    if parsed_args.log_level is not None:
        settings.log_level = parsed_args.log_level

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)
    logger.debug(f"Settings: {settings}")

    try:
        with PHD2Client(config=settings.to_connection_config()) as client:
            return run_command(client, parsed_args)

    except PHD2Error as e:
        logger.error(e.format_log_message())
        print(e.format_user_message())
        return 1

    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
