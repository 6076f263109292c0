"""Utility decorators for common functionality."""

import functools
import time
from typing import Any, Callable

from importance_engine.utils.logging import get_logger

logger = get_logger(__name__)


def timer(func: Callable) -> Callable:
    """Decorator to time function execution and log results."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Any:
        start = time.perf_counter()
        result = func(*args, **kwargs)
        end = time.perf_counter()
        logger.info("%s took %.4f seconds", func.__qualname__, end - start)
        return result
    return wrapper
