"""
Batch Module - Per-item loop shared by every bulk operation.
===========================================================

One failing item never aborts the loop: its exception is logged and
counted, and the loop moves on. Cancellation is polled before each item.
"""

from typing import Callable, Iterable, Optional

from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import BatchResult
from ziyuanbao.shared.utils import polite_sleep

logger = get_logger(__name__)


def run_batch(
    item_ids: Iterable[int],
    process: Callable[[int], bool],
    should_cancel: Optional[Callable[[], bool]] = None,
    on_item: Optional[Callable[[bool], None]] = None,
    delay: float = 0.0,
    label: str = "batch",
) -> BatchResult:
    """
    Apply ``process`` to each item id.

    Args:
        item_ids: Ids to process, in order
        process: Handles one id; returns True if work was done, False if
            the item was skipped
        should_cancel: Polled before each item; True stops the loop
        on_item: Called after each item with its success flag
        delay: Seconds to sleep between items
        label: Name used in log lines

    Returns:
        BatchResult with counters and per-item failure messages
    """
    ids = list(item_ids)
    result = BatchResult(total=len(ids))
    logger.info(f"{label}: starting {len(ids)} item(s)")

    for position, item_id in enumerate(ids):
        if should_cancel is not None and should_cancel():
            logger.warning(f"{label}: cancelled after {position} of {len(ids)} item(s)")
            result.cancelled = True
            break

        try:
            if process(item_id):
                result.succeeded += 1
            else:
                result.skipped += 1
            success = True
        except Exception as e:
            logger.exception(f"{label}: item {item_id} failed: {e}")
            result.failed += 1
            result.failures[item_id] = str(e)
            success = False

        if on_item is not None:
            on_item(success)

        if position < len(ids) - 1:
            polite_sleep(delay, label)

    logger.info(
        f"{label}: {result.succeeded} ok, {result.skipped} skipped, {result.failed} failed"
    )
    return result
