"""
Gateway Base Types.

Failure classes for the LLM provider behind the rule oracle, and the
async retry helper for its transient failures.
"""

import asyncio
from functools import wraps
from typing import Callable, Optional

from sut_compliance.utils.logging import get_logger

logger = get_logger(__name__)


class GatewayError(Exception):
    """A provider call failed; keeps the provider name and the underlying error."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.original_error = original_error


class ProviderUnavailableError(GatewayError):
    """Provider could not be reached."""


class ProviderTimeoutError(GatewayError):
    """Provider did not answer within LLM_TIMEOUT_SECONDS."""


class ProviderRateLimitError(GatewayError):
    """Provider throttled the request."""


class ProviderAuthenticationError(GatewayError):
    """Credential rejected. Never retried; the oracle treats it as fatal."""


class MalformedResponseError(GatewayError):
    """Reply arrived but could not be parsed."""


# Transient failures worth another attempt
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    ProviderUnavailableError,
    ProviderTimeoutError,
    ProviderRateLimitError,
)


def with_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = RETRYABLE_ERRORS,
):
    """
    Retry an async call on transient errors with exponential backoff.

    The wait before attempt ``n + 1`` is ``delay * backoff_factor ** (n - 1)``;
    the last error is re-raised once ``max_attempts`` calls have failed.
    """
    waits = [delay * backoff_factor**n for n in range(max_attempts - 1)]

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt, wait in enumerate(waits, start=1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    provider = getattr(e, "provider", None) or "provider"
                    logger.warning(
                        f"{func.__name__}: {provider} attempt {attempt}/{max_attempts} failed ({e}); "
                        f"retrying in {wait:.1f}s"
                    )
                    await asyncio.sleep(wait)
            try:
                return await func(*args, **kwargs)
            except exceptions as e:
                logger.error(f"{func.__name__}: giving up after {max_attempts} attempts: {e}")
                raise

        return wrapper

    return decorator
