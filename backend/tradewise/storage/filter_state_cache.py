"""Signal filter state snapshot in Redis.

Data structure:
- tradewise:filter_state -> JSON {day, counts: {tier: n}, last_accepted: {symbol: iso}}

The key expires after two days; a stale snapshot is useless anyway since
quota counts only apply to the day they were recorded.
"""

from __future__ import annotations

import logging

from signal_engine.signal_filter import SignalFilter
from tradewise.storage import cache

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 2 * 24 * 3600


async def save_filter_state(signal_filter: SignalFilter) -> bool:
    """Persist the filter's cooldowns and quota counters."""
    if not cache.is_cache_available():
        return False

    try:
        return await cache.set_json(cache.KEY_FILTER_STATE, signal_filter.export_state(), ttl=STATE_TTL_SECONDS)
    except Exception as e:
        logger.warning(f"Failed to save filter state to cache: {e}")
        return False


async def load_filter_state(signal_filter: SignalFilter) -> bool:
    """Restore a previously saved snapshot into ``signal_filter``.

    Returns:
        True if a snapshot was found and applied.
    """
    if not cache.is_cache_available():
        return False

    data = await cache.get_json(cache.KEY_FILTER_STATE)
    if not data:
        return False

    try:
        signal_filter.restore_state(data)
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Ignoring unreadable filter state snapshot: {e}")
        return False
    logger.info("Restored signal filter state from cache")
    return True


async def clear_filter_state() -> bool:
    return await cache.delete(cache.KEY_FILTER_STATE)
