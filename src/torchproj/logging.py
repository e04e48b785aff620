"""
Logging utilities for torchproj.

All messages go to the ``"torchproj"`` logger. Per-point failures are never
logged individually; batch conversions report how many points were masked.
"""

import logging
import sys
import time
from functools import wraps

logger = logging.getLogger("torchproj")
logger.setLevel(logging.INFO)

if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logger.addHandler(handler)

LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def log_errors(func):
    """Log a projection failure raised by ``func`` before re-raising it."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__name__} raised {type(e).__name__}: {e}")
            raise

    return wrapper


def log_performance(func):
    """Report the wall time of a batch conversion at DEBUG level."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        logger.debug(f"{func.__name__} took {(time.perf_counter() - start) * 1000:.2f}ms")
        return result

    return wrapper


def set_log_level(level: str):
    """Set the torchproj log level by name; unknown names fall back to INFO."""
    logger.setLevel(LEVELS.get(level.upper(), logging.INFO))


def log_projection_setup(code: str, description: str, native_pole_deg):
    """Log the configuration of a freshly built projection."""
    logger.debug(
        f"{code} configured ({description}); native pole (alpha_p, delta_p) = "
        f"({native_pole_deg[0]:.9f}, {native_pole_deg[1]:.9f}) deg"
    )


def log_masked_points(operation: str, n_failed: int, n_total: int):
    """Log how many points of a batch had no image under the projection."""
    if n_failed:
        logger.debug(f"{operation}: {n_failed}/{n_total} points outside the projection domain")
