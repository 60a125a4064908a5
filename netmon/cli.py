"""Command line client that triggers on-demand rounds on a running monitor."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

import requests

LOGGER = logging.getLogger(__name__)

API_PREFIX = "/api/v1/"
ENV_SERVER_URL = "NETMON_SERVER_URL"
ENV_SERVER_IDS = "NETMON_SPEED_SERVER_IDS"
DEFAULT_URL = "http://localhost:8092"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Trigger netmon measurements over HTTP")
    parser.add_argument("--cmd", choices=("ping", "speed"), default="ping", help="Measurement to run")
    parser.add_argument("--servers", default="5188", help="Comma separated addresses or server ids")
    parser.add_argument("--url", default=DEFAULT_URL, help="Base URL of the netmon service")
    parser.add_argument("--timeout", type=float, default=120.0, help="HTTP timeout in seconds")
    args = parser.parse_args(argv)

    # Environment wins over flags
    args.url = os.environ.get(ENV_SERVER_URL, args.url)
    args.servers = os.environ.get(ENV_SERVER_IDS, args.servers)
    args.server_ids = [item.strip() for item in args.servers.split(",") if item.strip()]
    if not args.server_ids:
        parser.error("at least one server id or address is required")
    return args


def build_url(base_url: str, cmd: str, server_ids: List[str]) -> str:
    return base_url.rstrip("/") + API_PREFIX + cmd + "/" + ",".join(server_ids)


def execute_request(cmd: str, base_url: str, server_ids: List[str], timeout: float = 120.0) -> List[dict]:
    url = build_url(base_url, cmd, server_ids)
    LOGGER.debug("GET %s", url)
    response = requests.get(url, timeout=timeout)
    if response.status_code != 200:
        raise RuntimeError(f"unexpected status code: {response.status_code} for {cmd} request")
    try:
        payload = response.json()
    except ValueError as exc:
        raise RuntimeError(f"failed to decode {cmd} response: {exc}") from exc
    return payload.get("results", [])


def format_result(cmd: str, result: dict) -> str:
    if cmd == "ping":
        name = result.get("label") or result.get("address")
        if result.get("error"):
            return f"{name}: FAILED ({result['error']})"
        return f"{name}: avg {result.get('avg_rtt')}ms (min {result.get('min_rtt')} / max {result.get('max_rtt')})"

    name = result.get("server") or result.get("server_id")
    if result.get("error"):
        return f"{name}: FAILED ({result['error']})"
    return f"{name}: latency {_num(result.get('latency'))}ms, dl {_num(result.get('dl'))} Mbps, ul {_num(result.get('ul'))} Mbps"


def _num(value) -> str:
    return "n/a" if value is None else f"{value:.2f}"


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    args = parse_args(argv)
    try:
        results = execute_request(args.cmd, args.url, args.server_ids, timeout=args.timeout)
    except (requests.RequestException, RuntimeError) as exc:
        LOGGER.error("failed to execute %s request: %s", args.cmd, exc)
        return 1

    for result in results:
        print(format_result(args.cmd, result))
    LOGGER.info("%s request executed successfully, %d result(s)", args.cmd, len(results))
    return 0


if __name__ == "__main__":
    sys.exit(main())
