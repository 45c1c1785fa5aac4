#!/usr/bin/env python3
"""
Ephemeral Value Store server.

Usage:
    python -m evstore --persist-values-for 24h --store ./data --port 8080

    # In-memory, for local experiments
    python -m evstore --store :memory:

    # Or configured through the environment
    EVSTORE_BACKEND=redis EVSTORE_REDIS_HOST=redis.example.com python -m evstore

Command line flags override EVSTORE_* environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence

import uvicorn

from evstore.api import build_application, create_asgi_app
from evstore.core.config import EvStoreConfig, ObservabilityConfig, ServiceConfig
from evstore.core.types import Err, Ok, Result, parse_duration
from evstore.observability.logging import LogLevel, setup_logging
from evstore.storage import open_record_store
from evstore.storage.config import BackendType, StorageConfig

logger = logging.getLogger("evstore")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="evstore",
        description="Ephemeral key-value store with derived read-only credentials.",
    )
    parser.add_argument(
        "--persist-values-for",
        dest="persist_values_for",
        help="how long values are kept after their last write, e.g. 24h, 90m, 1h30m",
    )
    parser.add_argument("--store", help="data directory, or :memory:")
    parser.add_argument("--backend", choices=("sqlite", "memory", "redis"))
    parser.add_argument("--host", help="listen address (default 127.0.0.1)")
    parser.add_argument("--port", type=int, help="listen port (default 8080)")
    parser.add_argument("--log-level", dest="log_level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-json", dest="log_json", action="store_true", default=None,
                        help="emit one JSON object per log line")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Result[EvStoreConfig, str]:
    """Environment configuration with command line overrides applied."""
    loaded = EvStoreConfig.from_env()
    if loaded.is_err():
        return loaded
    config = loaded.unwrap()

    try:
        if args.host is not None or args.port is not None:
            config = replace(config, service=ServiceConfig(
                host=args.host if args.host is not None else config.service.host,
                port=args.port if args.port is not None else config.service.port,
            ))

        if args.persist_values_for or args.store or args.backend:
            retention = config.storage.retention_seconds
            if args.persist_values_for:
                parsed = parse_duration(args.persist_values_for)
                if parsed.is_err():
                    return Err(f"Invalid --persist-values-for: {parsed.error}")
                retention = parsed.unwrap()
            storage = StorageConfig.from_store_path(
                args.store or str(config.storage.sqlite.data_dir),
                retention,
                backend=BackendType.parse(args.backend) if args.backend else None,
                compression=config.storage.sqlite.compression,
            )
            config = replace(config, storage=storage)

        if args.log_level is not None or args.log_json is not None:
            config = replace(config, observability=ObservabilityConfig(
                log_level=(args.log_level or config.observability.log_level).upper(),
                log_json=bool(args.log_json) or config.observability.log_json,
            ))
    except ValueError as e:
        return Err(f"Configuration error: {e}")

    validated = config.validate()
    if validated.is_err():
        return validated
    return Ok(config)


async def serve(config: EvStoreConfig) -> int:
    """Open the store and serve until interrupted."""
    opened = await open_record_store(config.storage)
    if opened.is_err():
        logger.error("Could not open record store: %s", opened.error)
        return 1

    application = build_application(config, opened.unwrap())
    app = create_asgi_app(
        application.router,
        lifespan=application.lifespan,
        max_body_size=config.limits.max_request_size,
    )

    server = uvicorn.Server(uvicorn.Config(
        app,
        host=config.service.host,
        port=config.service.port,
        lifespan="on",
        log_config=None,
    ))
    logger.info(
        "Listening on http://%s:%d",
        config.service.host,
        config.service.port,
        extra={"store": str(config.storage.sqlite.data_dir), "backend": config.storage.backend.name},
    )
    await server.serve()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    config_result = build_config(args)
    if config_result.is_err():
        print(config_result.error, file=sys.stderr)
        return 2
    config = config_result.unwrap()

    setup_logging(
        LogLevel.from_name(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    try:
        return asyncio.run(serve(config))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
