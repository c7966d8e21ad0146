import logging
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_isolated(
    items: Iterable[T],
    process: Callable[[T], Awaitable[R]],
    on_failure: Callable[[T, Exception], R],
    rollback: Optional[Callable[[T], Awaitable[None]]] = None,
) -> List[R]:
    """Run *process* over *items* one at a time with per-item isolation.

    An exception raised while processing one item is turned into a
    result by *on_failure* (after *rollback* has discarded that item's
    partial work) and the loop moves on.  Results are returned in input
    order once the whole batch has been processed.
    """
    results: List[R] = []
    for item in items:
        try:
            results.append(await process(item))
        except Exception as exc:
            logger.warning("Batch item %s failed: %s", item, exc)
            if rollback is not None:
                try:
                    await rollback(item)
                except Exception:
                    logger.error("Rollback failed for batch item %s", item, exc_info=True)
            results.append(on_failure(item, exc))
    return results
