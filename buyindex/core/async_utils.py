"""Bridging helpers between the async orchestrator and blocking providers."""

import asyncio
import inspect
from typing import Any, Callable


async def call_collaborator(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Invoke a collaborator method without blocking the event loop.

    Coroutine functions are awaited directly; plain callables (the
    ``requests``-based providers) run in a worker thread.
    """
    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    result = await asyncio.to_thread(func, *args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result
