"""
erp/sales/cache.py
------------------
Cached sales listing, stored in the app's Flask-Caching backend.

Production runs several gunicorn workers, so the backend is shared
(Redis); a completed sale deletes the key and every worker rebuilds
the listing on its next read.
"""
import logging
from typing import Callable, Optional

from flask import current_app

from erp import cache

logger = logging.getLogger(__name__)

SALES_LISTING_KEY = 'sales:listing'


def get_sales_listing(loader: Callable[[], list], timeout: Optional[int] = None) -> list:
    """Return the cached listing, calling `loader` on a miss."""
    listing = cache.get(SALES_LISTING_KEY)
    if listing is not None:
        return listing

    listing = loader()
    if timeout is None:
        timeout = current_app.config['SALES_CACHE_TTL']
    cache.set(SALES_LISTING_KEY, listing, timeout=timeout)
    return listing


def invalidate_sales_cache() -> None:
    logger.info("Invalidating sales listing cache")
    cache.delete(SALES_LISTING_KEY)
