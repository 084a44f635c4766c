"""All-succeed/any-fail join for concurrent work inside one dispatch."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, List


async def run_all(*aws: Awaitable[Any]) -> List[Any]:
    """
    Run awaitables concurrently and return their results in order.

    Every branch runs to completion even when one fails; the first error to
    finish is then re-raised. Cancelling the join cancels all branches.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []

    finished: List[asyncio.Future] = []
    for task in tasks:
        task.add_done_callback(finished.append)
    try:
        await asyncio.wait(tasks)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    errors = [t.exception() for t in finished if not t.cancelled() and t.exception() is not None]
    if errors:
        raise errors[0]
    return [task.result() for task in tasks]
