"""
Retry Helper - Exponential backoff for transient Last.FM failures
"""
import logging
import time
from functools import wraps
from typing import Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_multiplier: float = 2.0,
    max_delay: float = 30.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    should_retry: Optional[Callable[[Exception], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator that retries a function with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (total calls = max_retries + 1)
        initial_delay: Delay in seconds before the first retry
        backoff_multiplier: Multiplier for delay after each retry
        max_delay: Maximum delay between retries in seconds
        exceptions: Exception types that are candidates for a retry
        should_retry: Optional predicate; a caught exception is re-raised
            immediately when it returns False
        sleep: Sleep function (injectable for tests)

    Returns:
        Decorated function that retries on failure

    Example:
        @retry_with_backoff(max_retries=3, exceptions=(NetworkError,))
        def fetch_page():
            return client.request('user.getTopTracks', user='rj', page=2)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            delay = initial_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if should_retry is not None and not should_retry(e):
                        raise

                    if attempt == max_retries:
                        logger.error(f"{func.__name__} failed after {max_retries} retries: {e}")
                        raise

                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt + 1}/{max_retries + 1}), "
                        f"retrying in {delay:.1f}s: {e}"
                    )
                    sleep(delay)
                    delay = min(delay * backoff_multiplier, max_delay)

        return wrapper
    return decorator
