"""
Retry and error-message helpers for calls to the extraction service.

The collaborator translates transport failures into ConnectionError or
TimeoutError; retry_async retries only those, with exponential backoff.
Anything still failing is wrapped in a ServiceUnavailableError and turned
into a short message for the story author.
"""
import asyncio
import functools
import logging
from typing import Callable, TypeVar, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)

T = TypeVar('T')

# 5xx except 501, plus throttling and request timeouts
RETRYABLE_STATUS_CODES = {408, 429}


@dataclass
class RetryConfig:
    """Backoff settings for retry_async."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retryable_exceptions: tuple = (ConnectionError, TimeoutError)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)


COLLABORATOR_RETRY = RetryConfig(max_retries=2, base_delay=2.0, max_delay=15.0)


class ServiceUnavailableError(Exception):
    """An external service could not answer."""

    def __init__(self, service: str, message: str):
        self.service = service
        self.message = message
        super().__init__(f"{service}: {message}")


def retry_async(config: Optional[RetryConfig] = None):
    """
    Retry an async function on the configured transient exceptions.

    Other exceptions propagate on the first attempt. After max_retries the
    last transient exception is re-raised.
    """
    cfg = config or RetryConfig()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except cfg.retryable_exceptions as e:
                    if attempt >= cfg.max_retries:
                        logger.error(f"Giving up on {func.__name__} after {attempt + 1} attempts: {e}")
                        raise
                    delay = cfg.delay_for(attempt)
                    attempt += 1
                    logger.warning(
                        f"{func.__name__} failed ({e}), retry {attempt}/{cfg.max_retries} in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)

        return wrapper
    return decorator


def is_retryable_status(status_code: int) -> bool:
    """True for HTTP statuses worth retrying (overload, throttling, timeouts)."""
    if status_code in RETRYABLE_STATUS_CODES:
        return True
    return status_code >= 500 and status_code != 501


# (substrings, message) checked in order against the lowercased error text
_FRIENDLY_MESSAGES = [
    (("timeout", "timed out"), "The extraction request timed out. Please try again."),
    (("connection", "network"), "Unable to reach the extraction service. Check your connection."),
    (("unauthorized", "401", "api key"), "The extraction service rejected the API key."),
    (("rate limit", "429", "quota"), "Too many extraction requests. Please wait a moment and try again."),
    (("overloaded", "529", "502", "503", "504"), "The extraction service is busy. Please try again later."),
    (("500", "internal server error"), "The extraction service hit an error. Please try again later."),
]


def user_friendly_error(error: Exception) -> str:
    """Short message for the story author explaining why extraction failed."""
    if isinstance(error, ServiceUnavailableError):
        prefix = f"{error.service} is currently unavailable."
        detail = _match_message(error.message)
        return f"{prefix} {detail}" if detail else prefix

    return _match_message(str(error)) or f"Extraction failed ({type(error).__name__}). Please try again."


def _match_message(text: str) -> Optional[str]:
    text = text.lower()
    for needles, message in _FRIENDLY_MESSAGES:
        if any(n in text for n in needles):
            return message
    return None
