import asyncio
import functools
import time
from typing import Any, Callable, Tuple, TypeVar

from loguru import logger

C = TypeVar("C", bound=Callable[..., Any])


def log_execution(enabled: bool = True, level: str = "DEBUG") -> Callable[[C], C]:
    """
    Decorator factory that logs how long the decorated function or method ran.

    Args:
        enabled (bool): Flag to enable or disable logging.
        level (str): Loguru level the timing record is emitted at.

    Returns:
        Callable: A decorator that wraps the target function or method.
    """

    def decorator(func: C) -> C:
        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start_time = time.perf_counter()
                failed = True
                try:
                    result = await func(*args, **kwargs)
                    failed = False
                    return result
                finally:
                    if enabled:
                        _log_execution_details(
                            func, start_time, args, failed, level)

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = time.perf_counter()
            failed = True
            try:
                result = func(*args, **kwargs)
                failed = False
                return result
            finally:
                if enabled:
                    _log_execution_details(
                        func, start_time, args, failed, level)

        return sync_wrapper  # type: ignore

    return decorator


def _log_execution_details(
    f: Callable[..., Any],
    start: float,
    args: Tuple[Any, ...],
    failed: bool,
    level: str,
) -> None:
    """
    Logs execution details of the function or method.

    Args:
        f (Callable): The function or method whose details are to be logged.
        start (float): ``perf_counter`` reading taken before the call.
        args (Tuple[Any, ...]): Positional arguments; the chain id is read from the
            first one after ``self`` when it is a string.
        failed (bool): Whether the call raised.
        level (str): Loguru level name.
    """
    execution_time = time.perf_counter() - start
    chain_info = ""
    if len(args) > 1 and isinstance(args[1], str):
        chain_info = f" for chain {args[1]}"
    outcome = "failed" if failed else "completed"

    logger.log(
        level,
        f"{f.__qualname__}{chain_info} {outcome} in {execution_time:f} seconds",
    )
