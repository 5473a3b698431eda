"""Invoke helper — call sync or async callables uniformly.

Route handlers, access checks and not-found handlers can be ``def`` or
``async def``. Anything that calls user code goes through here so the
sync/async check lives in exactly one place::

    result = await invoke(handler, *args)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *handler* and await the result if it is awaitable."""
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
