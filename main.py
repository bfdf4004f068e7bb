"""Entry point for the environmental query server."""

import argparse
import logging
import signal
import sys
import threading
from dataclasses import replace

from envserver.config import load_config, validate_config
from envserver.dashboard import create_dashboard_app, run_dashboard
from envserver.errors import ConfigError, ServerInitError
from envserver.providers import build_provider
from envserver.server import NetServer

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Environmental conditions query server")
    parser.add_argument("--port", type=int, default=None, help="TCP port on loopback")
    parser.add_argument("--config", type=str, default=None, help="path to a YAML config file")
    parser.add_argument("--log-level", type=str, default=None)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config)
        overrides = {}
        if args.port is not None:
            overrides["port"] = args.port
        if args.log_level is not None:
            overrides["log_level"] = args.log_level.upper()
        if overrides:
            config = replace(config, **overrides)
        validate_config(config)
        provider = build_provider(config.provider)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    logging.getLogger().setLevel(config.log_level)

    server = NetServer(config, provider)
    try:
        server.initialize()
    except ServerInitError as exc:
        logger.error("Failed to start server (code=%d): %s", exc.code, exc)
        return abs(exc.code)

    if config.dashboard_enabled:
        app = create_dashboard_app(server.stats)
        dash_thread = threading.Thread(
            target=run_dashboard, args=(app, config.host, config.dashboard_port), daemon=True,
        )
        dash_thread.start()

    shutdown_event = threading.Event()

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while not shutdown_event.is_set() and server.is_running:
            shutdown_event.wait(1.0)
    finally:
        server.stop()

    if not shutdown_event.is_set():
        logger.error("Server thread exited unexpectedly")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
