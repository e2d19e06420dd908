"""Portfolio Manager - Entry point."""

import argparse
import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv
from psycopg import Connection
from psycopg.rows import TupleRow
from psycopg_pool import ConnectionPool

from portfolio_manager.api import create_app
from portfolio_manager.cli import parse_args, validate_args
from portfolio_manager.coinmarketcap_client import CoinMarketCapClient, PriceSource
from portfolio_manager.domain.errors import StorageError
from portfolio_manager.infrastructure.repositories import (
    InMemoryRepository,
    PostgresRepository,
    Repository,
)
from portfolio_manager.utils import create_logger, log_config


def open_repository(
    args: argparse.Namespace, logger: logging.Logger
) -> tuple[Repository, ConnectionPool[Connection[TupleRow]] | None]:
    """
    Open the configured storage backend.

    Returns the repository and, for postgres, the pool the caller must close.
    """
    if args.storage == "memory":
        logger.warning("Using in-memory storage - data is lost on exit")
        return InMemoryRepository(), None

    pool: ConnectionPool[Connection[TupleRow]] = ConnectionPool(
        args.database_url, open=False
    )
    try:
        pool.open(wait=True)
        repo = PostgresRepository(pool)
        repo.init_schema()
    except Exception:
        pool.close()
        raise
    logger.info("Database schema initialized")
    return repo, pool


def main() -> int:
    load_dotenv()
    args = parse_args()

    logger = create_logger("portfolio-manager", args.log_level)

    try:
        validate_args(args)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    api_key = os.environ.get("CMC_API_KEY")
    client = None
    if api_key:
        client = CoinMarketCapClient(
            api_key=api_key,
            base_url=args.cmc_base_url,
            timeout=args.price_timeout,
            logger=logger,
        )
    else:
        logger.warning("CMC_API_KEY not set - serving mock prices")

    price_source = PriceSource(client, logger)
    log_config(logger, args, live_prices=price_source.is_live)

    pool = None
    try:
        repo, pool = open_repository(args, logger)

        app = create_app(
            repository=repo,
            price_source=price_source,
            logger=logger,
            cors_origins=args.cors_origins,
        )

        logger.info(f"Server starting on port {args.port}")
        uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
        return 0

    except StorageError as e:
        logger.error(f"Database error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    finally:
        if pool is not None:
            pool.close()


if __name__ == "__main__":
    sys.exit(main())
