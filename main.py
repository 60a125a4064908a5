"""Entry point for running the monitoring service."""

from __future__ import annotations

import argparse
import logging
import sys

from netmon import bootstrap
from netmon.errors import ConfigError

LOGGER = logging.getLogger("netmon")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Network latency and throughput monitor")
    parser.add_argument("--config", help="Path to config.yaml", default="config.yaml")
    parser.add_argument("--host", default=None, help="Override web server host")
    parser.add_argument("--port", type=int, default=None, help="Override web server port")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        context = bootstrap(args.config, log_level="DEBUG" if args.debug else None)
    except (ConfigError, FileNotFoundError) as exc:
        logging.basicConfig(level=logging.INFO)
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    lifecycle = context.build_lifecycle(host=args.host, port=args.port)
    lifecycle.install_signal_handlers()
    LOGGER.info(
        "Serving on %s:%s",
        args.host or context.config.web.host,
        args.port or context.config.web.port,
    )
    drained = lifecycle.run()
    return 0 if drained else 1


if __name__ == "__main__":
    sys.exit(main())
