"""
LRU caches for projection transformers and sampling indices.
"""
from cachetools import LRUCache

from .constants import INDEX_CACHE_BYTES, TRANSFORMER_CACHE_SIZE


def _nbytes_index(index) -> int:
    """Calculate byte size of a cached SamplingIndex."""
    return int(index.range_bin.nbytes + index.azim_bin.nbytes)


# pyproj Transformers keyed by (source, target) CRS definitions
TRANSFORMER_CACHE = LRUCache(maxsize=TRANSFORMER_CACHE_SIZE)

# Bin indices keyed by (scan geometry, grid, project flag)
INDEX_CACHE = LRUCache(maxsize=INDEX_CACHE_BYTES, getsizeof=_nbytes_index)


def clear_caches() -> None:
    """Empty every cache."""
    TRANSFORMER_CACHE.clear()
    INDEX_CACHE.clear()
