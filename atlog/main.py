"""
AT-Log Viewer - Command-line entry point

Streams the AT WebServer system log over its WebSocket interface into a
curses view (default) or to stdout (--no-tui).

Usage:
  at-log-viewer --host 192.168.8.1
  at-log-viewer --host 192.168.8.1 --port 8765 --auth-key s3cret
  python -m atlog --no-tui
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from .stream.client import LogStreamClient
from .stream.events import LogSource
from .utils.config import ViewerConfig
from .utils.event_bus import EventType, StreamEvent

logger = logging.getLogger(__name__)

# Poll interval for the stdout printer (seconds)
PRINT_INTERVAL = 0.2


def _get_log_path() -> Path:
    """Log file used while curses owns the terminal."""
    try:
        log_dir = Path.home() / ".cache" / "at-log-viewer"
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir / "viewer.log"
    except OSError:
        return Path("/tmp/at-log-viewer.log")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="at-log-viewer",
        description="Live system log viewer for the AT WebServer.",
    )
    parser.add_argument("--host", default=None,
                        help="AT WebServer host (default: from settings, 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None,
                        help="WebSocket port (default: from settings, 8765)")
    parser.add_argument("--auth-key", default=None,
                        help="WebSocket auth key (empty disables authentication)")
    parser.add_argument("--config", type=Path, default=None,
                        help="Settings file (default: ~/.config/at-log-viewer/settings.json)")
    parser.add_argument("--max-lines", type=int, default=None,
                        help="History capacity (default: 1000)")
    parser.add_argument("--no-tui", action="store_true",
                        help="Print log lines to stdout instead of the curses view")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def _build_config(args: argparse.Namespace) -> ViewerConfig:
    config = ViewerConfig(args.config)
    overrides = {
        "host": args.host,
        "websocket_port": args.port,
        "websocket_auth_key": args.auth_key,
        "max_lines": args.max_lines,
    }
    config.update({k: v for k, v in overrides.items() if v is not None})
    return config


def _setup_logging(args: argparse.Namespace) -> None:
    level = logging.DEBUG if args.debug else logging.INFO
    fmt = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
    if args.no_tui:
        logging.basicConfig(level=level, format=fmt, stream=sys.stderr)
    else:
        logging.basicConfig(level=level, format=fmt, filename=str(_get_log_path()))


def _print_status(event: StreamEvent) -> None:
    if event.event_type == EventType.STATE_CHANGED:
        return
    print(f"-- {event.message}", file=sys.stderr, flush=True)


def run_printer(client: LogStreamClient) -> None:
    """Follow the history and write new lines to stdout until Ctrl+C."""
    client.bus.subscribe(None, _print_status)
    client.start()
    seen = 0
    try:
        while True:
            seen, lines = client.history.since(seen)
            for event in lines:
                prefix = "" if event.source == LogSource.SYSTEM else "[raw] "
                print(f"{prefix}{event.text}", flush=True)
            time.sleep(PRINT_INTERVAL)
    finally:
        client.bus.unsubscribe(None, _print_status)
        client.shutdown()


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    _setup_logging(args)
    config = _build_config(args)
    client = LogStreamClient(config)

    exit_code = 0
    try:
        if args.no_tui:
            run_printer(client)
        else:
            from .tui.app import run_tui
            run_tui(client)
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
    except Exception as e:
        logger.exception("Fatal error")
        print(f"\nAT-Log Viewer encountered a fatal error:\n  {type(e).__name__}: {e}\n",
              file=sys.stderr)
        exit_code = 1
    finally:
        client.shutdown()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
