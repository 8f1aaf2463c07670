"""
Error handling for the tool marketplace.

This module provides the exception hierarchy shared by every component, an
explicit retry policy with a generic async retry loop, and a timing decorator.
"""

import asyncio
import functools
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar

# Type variable for return values
T = TypeVar('T')

logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Base exception class for all marketplace errors."""
    def __init__(self, message: str, component: str = "unknown", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.component = component
        self.details = details or {}
        self.timestamp = time.time()

    @property
    def error_type(self) -> str:
        return self.__class__.__name__


class ValidationFailed(MarketplaceError):
    """Caller input failed validation; carries one message per problem."""
    def __init__(self, errors: List[str], component: str = "tool_executor",
                 details: Optional[Dict[str, Any]] = None):
        self.errors = list(errors)
        super().__init__(
            f"Parameter validation failed: {', '.join(self.errors)}",
            component=component,
            details={**(details or {}), "errors": self.errors}
        )


class NotFound(MarketplaceError):
    """A tool or usage record id is unknown."""
    pass


class ToolInactive(MarketplaceError):
    """The requested tool has been deactivated."""
    pass


class EmptyQuery(MarketplaceError):
    """A search query was blank."""
    pass


class EmbeddingUnavailable(MarketplaceError):
    """The embedding service failed to produce a vector."""
    pass


class ExecutionFailed(MarketplaceError):
    """A tool call failed after the retry budget was exhausted."""
    def __init__(self, message: str, component: str = "tool_executor",
                 details: Optional[Dict[str, Any]] = None, status_code: Optional[int] = None,
                 attempts: int = 0):
        super().__init__(message, component=component, details=details)
        self.status_code = status_code
        self.attempts = attempts


class ExecutionCancelled(MarketplaceError):
    """The caller cancelled an in-flight execution."""
    pass


class RetryableError(MarketplaceError):
    """A single attempt failed in a way that may succeed on retry."""
    def __init__(self, message: str, component: str = "http", details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, component=component, details=details)
        self.status_code = status_code


class HttpStatusError(RetryableError):
    """The remote endpoint answered with a non-2xx status."""
    def __init__(self, status_code: int, reason: str = "", body: str = ""):
        super().__init__(
            f"HTTP {status_code}: {reason}" if reason else f"HTTP {status_code}",
            details={"body": body[:500]},
            status_code=status_code
        )


class DimensionMismatch(MarketplaceError, ValueError):
    """Two vectors of different lengths were combined."""
    def __init__(self, left: int, right: int):
        super().__init__(
            f"Vectors must have the same length ({left} != {right})",
            component="vector",
            details={"left": left, "right": right}
        )


class EmptyInput(MarketplaceError, ValueError):
    """An aggregate was requested over no vectors."""
    pass


class StorageError(MarketplaceError):
    """Error with storage operations."""
    pass


class DuplicateKeyError(StorageError):
    """A document with the same key already exists."""
    pass


class RetryPolicy:
    """
    How many times to attempt an operation, how long each attempt may run,
    and how long to wait between attempts.

    The delay before attempt ``n`` (n >= 2) is ``base_delay * backoff ** (n - 1)``,
    so the defaults give 2s before the second attempt and 4s before the third.
    """

    def __init__(self,
                 max_attempts: int = 3,
                 timeout_seconds: Optional[float] = 30.0,
                 base_delay: float = 1.0,
                 backoff: float = 2.0,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None):
        """
        Initialize the retry policy.

        Args:
            max_attempts: Total number of attempts (at least one is always made)
            timeout_seconds: Per-attempt timeout, or None for no timeout
            base_delay: Delay unit in seconds
            backoff: Multiplier applied per attempt
            sleep: Coroutine function used to wait; replace it to test with a fake clock
        """
        self.max_attempts = max(1, int(max_attempts))
        self.timeout_seconds = timeout_seconds
        self.base_delay = base_delay
        self.backoff = backoff
        self.sleep = sleep or asyncio.sleep

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before the given 1-based attempt."""
        if attempt <= 1:
            return 0.0
        return self.base_delay * (self.backoff ** (attempt - 1))

    def __repr__(self) -> str:
        return (f"RetryPolicy(max_attempts={self.max_attempts}, timeout_seconds={self.timeout_seconds}, "
                f"base_delay={self.base_delay}, backoff={self.backoff})")


async def _race_cancel(awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event]) -> T:
    """Await ``awaitable`` unless ``cancel_event`` is set first."""
    if cancel_event is None:
        return await awaitable

    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        waiter.cancel()
        raise

    if work in done:
        waiter.cancel()
        return work.result()

    work.cancel()
    try:
        await work
    except (asyncio.CancelledError, Exception):
        pass
    raise ExecutionCancelled("Execution cancelled by caller", component="retry")


async def call_with_retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (RetryableError, asyncio.TimeoutError),
    cancel_event: Optional[asyncio.Event] = None,
    logger_obj: Optional[logging.Logger] = None
) -> Tuple[T, int]:
    """
    Run ``operation`` until it succeeds or the policy's attempts are used up.

    Args:
        operation: Coroutine function called with the 1-based attempt number
        policy: Retry policy to follow
        retry_on: Exception types that count as a retryable failure
        cancel_event: Optional event; once set, the in-flight attempt or the
            pending backoff is abandoned and ExecutionCancelled is raised
        logger_obj: Optional logger object

    Returns:
        Tuple of the operation's result and the number of attempts made

    Raises:
        ExecutionFailed: After the last attempt fails; ``__cause__`` is the last error
        ExecutionCancelled: If ``cancel_event`` is set before completion
    """
    log = logger_obj or logger
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        if attempt > 1:
            delay = policy.delay_before(attempt)
            log.warning(f"Attempt {attempt - 1} failed: {last_error}. Retrying in {delay} seconds")
            try:
                await _race_cancel(policy.sleep(delay), cancel_event)
            except ExecutionCancelled as e:
                e.details.setdefault("attempts", attempt - 1)
                raise

        if cancel_event is not None and cancel_event.is_set():
            raise ExecutionCancelled("Execution cancelled by caller", component="retry",
                                     details={"attempts": attempt - 1})

        try:
            call = operation(attempt)
            if policy.timeout_seconds is not None:
                call = asyncio.wait_for(call, timeout=policy.timeout_seconds)
            result = await _race_cancel(call, cancel_event)
            return result, attempt
        except ExecutionCancelled as e:
            e.details.setdefault("attempts", attempt)
            raise
        except retry_on as e:
            if isinstance(e, asyncio.TimeoutError) and policy.timeout_seconds is not None:
                last_error = RetryableError(f"Request timed out after {int(policy.timeout_seconds * 1000)}ms")
            else:
                last_error = e

    log.error(f"Operation failed after {policy.max_attempts} attempts. Error: {last_error}")
    raise ExecutionFailed(
        str(last_error),
        status_code=getattr(last_error, "status_code", None),
        attempts=policy.max_attempts
    ) from last_error


def timer(component: str, method_name: Optional[str] = None) -> Callable:
    """
    Decorator to log function execution time at debug level.

    Args:
        component: Component name for the log line
        method_name: Optional method name override

    Returns:
        Decorated function
    """
    def decorator(func):
        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.debug(f"{component}.{method_name or func.__name__} executed in {duration_ms:.2f}ms")

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.debug(f"{component}.{method_name or func.__name__} executed in {duration_ms:.2f}ms")

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
