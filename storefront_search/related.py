"""Related products for a product page, bounded by a timeout."""

import asyncio
from typing import List, Optional

from storefront_search.logger import new_request_id, request_logger
from storefront_search.models import RankedProduct
from storefront_search.search import ProductSearchEngine

DEFAULT_TIMEOUT = 5.0


async def get_related_products(
    engine: ProductSearchEngine,
    query: str,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    limit: int = 8,
    timeout: float = DEFAULT_TIMEOUT
) -> List[RankedProduct]:
    """
    Ranked search that gives up after timeout seconds.

    A slow or failing engine falls back to the legacy database search.
    An in-flight initialization keeps running after a timeout.

    Args:
        engine: Shared search engine
        query: Query text, usually the product name
        category: Exact category filter
        brand: Exact brand filter
        limit: Maximum number of results
        timeout: Seconds allowed for initialization plus search

    Returns:
        List of ranked products
    """
    request_id = new_request_id()
    log = request_logger(request_id)

    async def ranked_search() -> List[RankedProduct]:
        if not engine.is_ready:
            await engine.initialize()
        return await engine.search(query, category=category, brand=brand, limit=limit, request_id=request_id)

    try:
        return await asyncio.wait_for(ranked_search(), timeout=timeout)
    except asyncio.TimeoutError:
        log.warning(f"Related products search timed out after {timeout}s, using legacy search")
    except Exception as e:
        log.error(f"Related products search failed: {str(e)}", exc_info=True)

    return await engine.legacy_search(query, category=category, brand=brand, limit=limit)
