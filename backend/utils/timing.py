import time
import asyncio
import functools
import logging

logger = logging.getLogger("timing")


def timeit(label: str = None):
    """
    Decorator that logs how long a function (sync or async) took.

    Usage:
        @timeit()
        async def handler():
            ...

        @timeit("register_user")
        async def register_user(...):
            await ...
    """

    def _decorate(func):
        name = label or getattr(func, "__qualname__", getattr(func, "__name__", "function"))

        def _report(start: float) -> None:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            logger.info(f"[timing] {name} took {elapsed_ms:.2f} ms")

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def _aw(*args, **kwargs):
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _report(start)

            return _aw

        @functools.wraps(func)
        def _w(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _report(start)

        return _w

    return _decorate
