"""Timeout management for storage backend calls."""

import asyncio
from typing import Callable, Optional, TypeVar
from dataclasses import dataclass
import logging

from video_hub.exceptions import StorageTimeoutException

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class TimeoutConfig:
    """Configuration for timeout behavior."""
    total_timeout: float = 30.0    # Total operation timeout in seconds


class TimeoutManager:
    """Runs storage calls under a time budget."""

    def __init__(self, operation: str, config: Optional[TimeoutConfig] = None):
        self.operation = operation
        self.config = config or TimeoutConfig()

    async def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Execute a function with timeout protection.

        Coroutine functions are awaited directly; plain functions run in a
        worker thread so blocking disk or network I/O stays off the loop.

        Raises:
            StorageTimeoutException: If the operation times out
            Exception: Any exception raised by the function
        """
        logger.debug(
            f"Executing storage operation '{self.operation}' "
            f"with timeout {self.config.total_timeout}s"
        )

        try:
            if asyncio.iscoroutinefunction(func):
                return await asyncio.wait_for(
                    func(*args, **kwargs),
                    timeout=self.config.total_timeout
                )
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=self.config.total_timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Storage operation '{self.operation}' timed out after {self.config.total_timeout}s"
            )
            raise StorageTimeoutException(self.operation, self.config.total_timeout)


async def with_timeout(
    func: Callable[..., T],
    operation: str,
    config: Optional[TimeoutConfig] = None,
    *args,
    **kwargs
) -> T:
    """
    Convenience function to execute a function with timeout protection.

    Args:
        func: The function to execute
        operation: Name of the operation for logging
        config: Timeout configuration
        *args: Positional arguments for the function
        **kwargs: Keyword arguments for the function
    """
    timeout_manager = TimeoutManager(operation, config)
    return await timeout_manager.execute(func, *args, **kwargs)
