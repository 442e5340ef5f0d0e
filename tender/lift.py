"""
Lift — bounded async calls as kungfu results.

Re-exports catching_async from combinators.lift, plus a deadline variant.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Awaitable

from kungfu import LazyCoroResult

from combinators.lift import catching_async


# ═══════════════════════════════════════════════════════════════════════════════
# tender-specific helpers
# ═══════════════════════════════════════════════════════════════════════════════

def bounded[T, E](
    awaitable_fn: Callable[[], Awaitable[T]],
    *,
    seconds: float,
    on_error: Callable[[Exception], E],
) -> LazyCoroResult[T, E]:
    """
    catching_async with a hard deadline.

    A call that outlives `seconds` is cancelled and surfaces as
    `on_error(TimeoutError)`, same as any other raised exception.
    """
    async def _call() -> T:
        return await asyncio.wait_for(awaitable_fn(), timeout=seconds)

    return catching_async(_call, on_error=on_error)


__all__ = (
    "catching_async",
    "bounded",
)
