import argparse
import logging
from decimal import ROUND_HALF_UP, Decimal

from portfolio_manager.domain.models import AMOUNT_QUANTUM


def normalize_symbol(symbol: str) -> str:
    """
    Normalize an asset symbol.

    Examples:
        btc -> BTC
        " eth " -> ETH
        ONDO -> ONDO
    """
    return symbol.strip().upper()


def round_amount(value: Decimal) -> Decimal:
    """
    Round a value to the stored scale of 8 decimal places.

    Values already within that scale are returned as they are, so "380"
    stays "380" rather than becoming "380.00000000".

    Examples:
        33.333333333333 -> 33.33333333
        0.123456785 -> 0.12345679
        1000.50 -> 1000.50
    """
    if value.as_tuple().exponent >= AMOUNT_QUANTUM.as_tuple().exponent:
        return value
    return value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def create_logger(name: str, level: str) -> logging.Logger:
    """Create and configure a logger instance."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(getattr(logging, level))
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def log_config(logger: logging.Logger, args: argparse.Namespace, live_prices: bool) -> None:
    """Log configuration (safe subset only)."""
    logger.info("=" * 60)
    logger.info("Portfolio Manager Configuration")
    logger.info("=" * 60)
    logger.info(f"Listen: {args.host}:{args.port}")
    logger.info(f"Storage: {args.storage}")
    logger.info(f"Price provider: {args.cmc_base_url if live_prices else 'mock data'}")
    logger.info(f"Price timeout: {args.price_timeout}s")
    logger.info(f"CORS origins: {', '.join(args.cors_origins)}")
    logger.info("=" * 60)
