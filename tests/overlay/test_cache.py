"""Tests for the shared LRU tile cache."""

import numpy as np
import pytest

from pixtrain.imaging.tiles import TileRequest
from pixtrain.overlay.cache import CacheKey, TileCache

pytestmark = pytest.mark.overlay


def _key(x=0, generation=1, owner="classification", operator="op"):
    return CacheKey(owner, TileRequest(0, x, 0), generation, operator)


class TestTileCache:

    def test_put_and_get(self):
        cache = TileCache()
        image = np.zeros((2, 2))
        cache.put(_key(), image)

        assert cache.get(_key()) is image
        assert _key() in cache
        assert len(cache) == 1

    def test_missing_key(self):
        assert TileCache().get(_key()) is None

    def test_operator_is_part_of_key(self):
        cache = TileCache()
        cache.put(_key(operator="a"), np.zeros(1))

        assert cache.get(_key(operator="b")) is None

    def test_lru_eviction(self):
        cache = TileCache(max_tiles=2)
        cache.put(_key(0), np.zeros(1))
        cache.put(_key(1), np.zeros(1))
        cache.get(_key(0))  # 0 is now most recent
        cache.put(_key(2), np.zeros(1))

        assert _key(0) in cache
        assert _key(1) not in cache
        assert _key(2) in cache

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            TileCache(max_tiles=0)

    def test_invalidate_generation(self):
        cache = TileCache()
        cache.put(_key(0, generation=1), np.zeros(1))
        cache.put(_key(1, generation=2), np.zeros(1))
        cache.put(_key(2, generation=1, owner="feature"), np.zeros(1))

        dropped = cache.invalidate_generation("classification", keep_generation=2)

        assert dropped == 1
        assert {k.generation for k in cache.keys() if k.owner == "classification"} == {2}
        # Other owners untouched
        assert _key(2, generation=1, owner="feature") in cache

    def test_invalidate_everything_for_owner(self):
        cache = TileCache()
        cache.put(_key(0, generation=3), np.zeros(1))

        assert cache.invalidate_generation("classification") == 1
        assert len(cache) == 0

    def test_images_by_owner_and_generation(self):
        cache = TileCache()
        a, b = np.zeros(1), np.ones(1)
        cache.put(_key(0, generation=1), a)
        cache.put(_key(1, generation=2), b)

        images = cache.images("classification", 2)
        assert len(images) == 1 and images[0] is b

    def test_clear(self):
        cache = TileCache()
        cache.put(_key(), np.zeros(1))
        cache.clear()

        assert len(cache) == 0
