import asyncio
import math
from types import TracebackType
from typing import Awaitable, Callable, Optional, Type, TypeVar

from loguru import logger

T = TypeVar("T")


class TaskManager:
    """
    Context manager owning one long-running background task.

    The task is started on enter and cancelled on exit, so pollers and
    broker listeners never outlive the scope that created them.
    """

    def __init__(
        self,
        coro: Callable[[], Awaitable[T]],
        name: Optional[str] = None,
        timeout: float = 0.5,
    ):
        """
        Initialize with a coroutine factory and optional name.

        Args:
            coro: Factory function that returns the coroutine to run
            name: Name used in log messages
            timeout: Seconds to wait for the task to finish after cancelling
        """
        self.coro_factory = coro
        self.name = name or "Task"
        self.task: Optional[asyncio.Task] = None
        self.timeout = timeout
        self.result: Optional[T] = None

    async def __aenter__(self) -> "TaskManager":
        self.task = asyncio.create_task(self.coro_factory(), name=self.name)
        logger.debug(f"Started {self.name}")
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if not self.task:
            return

        if self.task.done() and not self.task.cancelled():
            error = self.task.exception()
            if error is None:
                self.result = self.task.result()
            else:
                logger.warning(f"{self.name} stopped with an error: {error}")

        if not self.task.done():
            self.task.cancel()
            # Shield prevents this cleanup from being cancelled
            await asyncio.shield(asyncio.wait([self.task], timeout=self.timeout))

        logger.debug(f"Stopped {self.name}")

    @property
    def done(self) -> bool:
        """Check if the task is done"""
        return self.task is not None and self.task.done()


async def run_with_errorhandling(
    coro: Awaitable[T], error_message: str = "Operation failed"
) -> Optional[T]:
    """
    Run a coroutine, turning any failure into a logged ``None`` result.

    Hub reads use ``None`` as their "unavailable" value, so callers must
    check for it explicitly.

    Args:
        coro: The coroutine to run
        error_message: Message to log if the operation fails

    Returns:
        The result of the coroutine or None if it failed
    """
    try:
        return await coro
    except asyncio.CancelledError:
        # Re-raise cancellation for proper cleanup
        raise
    except Exception as e:
        logger.error(f"{error_message}: {e}")
        return None


def round_half_up(value: float) -> int:
    """Round halves towards positive infinity."""
    return math.floor(value + 0.5)
