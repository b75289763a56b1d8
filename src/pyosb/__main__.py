"""Run the service broker HTTP server.

Configuration comes from ``OSB_*`` environment variables (see
:meth:`pyosb.config.BrokerConfig.from_env`); command line flags override
them.
"""

from __future__ import annotations

import argparse
import logging
import sys

from aiohttp import web

from pyosb.broker import ServiceBroker
from pyosb.config import BrokerConfig
from pyosb.exceptions import OsbConfigError
from pyosb.server import create_app


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pyosb", description="Open Service Broker API server")
    parser.add_argument("--host", help="Interface to bind (env: OSB_HOST)")
    parser.add_argument("--port", type=int, help="Port to listen on (env: OSB_PORT)")
    parser.add_argument("--storage-url", help="memory://, file:///dir or http(s):// base URL (env: OSB_STORAGE_URL)")
    parser.add_argument("--storage-key", help="Key the state blob is stored under (env: OSB_STORAGE_KEY)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {
        key: value
        for key, value in {
            "host": args.host,
            "port": args.port,
            "storage_url": args.storage_url,
            "storage_key": args.storage_key,
        }.items()
        if value is not None
    }
    try:
        config = BrokerConfig.from_env(**overrides)
        broker = ServiceBroker(config)
    except OsbConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    web.run_app(create_app(broker), host=config.host, port=config.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
