import asyncio, logging
from typing import Awaitable, Callable, Optional, TypeVar
from .errors import VideoGenerationError
from .models import RetryConfig
from . import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_CONFIG = RetryConfig(max_retries=3, retry_delay_ms=1000, exponential_backoff=True)


def retry_config_from_settings() -> RetryConfig:
    return RetryConfig(
        max_retries=settings.RETRY_MAX_RETRIES,
        retry_delay_ms=settings.RETRY_DELAY_MS,
        exponential_backoff=settings.RETRY_EXPONENTIAL_BACKOFF,
    )


def backoff_delay_ms(config: RetryConfig, attempt: int) -> int:
    if config.exponential_backoff:
        return config.retry_delay_ms * (2 ** attempt)
    return config.retry_delay_ms


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: Optional[str] = None,
) -> T:
    """Run `operation` up to max_retries + 1 times.

    A VideoGenerationError marked non-retryable is re-raised at once; any
    other failure is retried after a backoff delay until the budget is spent,
    then the last error is re-raised.
    """
    label = label or getattr(operation, "__name__", "operation")
    attempts = config.max_retries + 1

    for attempt in range(attempts):
        try:
            return await operation()
        except VideoGenerationError as e:
            if not e.retryable:
                logger.info(f"{label} failed with non-retryable {e.kind.value}: {e.message}")
                raise
            if attempt == attempts - 1:
                logger.error(f"{label} failed after {attempts} attempts: {e.message}")
                raise
            last_message = e.message
        except Exception as e:
            if attempt == attempts - 1:
                logger.error(f"{label} failed after {attempts} attempts: {e}")
                raise
            last_message = str(e)

        delay_ms = backoff_delay_ms(config, attempt)
        logger.warning(f"{label} attempt {attempt + 1}/{attempts} failed ({last_message}). Retrying in {delay_ms}ms")
        await sleep(delay_ms / 1000.0)

    raise RuntimeError("unreachable")
