"""Tests for tile sources, scaled reads and the overlay tile grid."""

import numpy as np
import pytest

from pixtrain.imaging.tiles import ArrayTileSource, TileGrid, TileRequest, read_scaled

pytestmark = pytest.mark.unit


def _gradient(h=128, w=128):
    xx = np.tile(np.arange(w, dtype=np.float32), (h, 1))
    return np.dstack([xx, xx, xx]).astype(np.uint8)


class TestArrayTileSource:

    def test_pyramid_levels(self):
        source = ArrayTileSource(_gradient(256, 256))

        assert source.downsamples == (1.0, 2.0, 4.0)
        assert source.width == 256 and source.height == 256

    def test_default_channel_names(self):
        assert ArrayTileSource(_gradient()).channel_names == ("Red", "Green", "Blue")
        gray = ArrayTileSource(np.zeros((32, 32), dtype=np.uint8))
        assert gray.channel_names == ("Channel 1",)
        assert gray.n_channels == 1

    def test_channel_name_count_checked(self):
        with pytest.raises(ValueError, match="channel names"):
            ArrayTileSource(_gradient(), channel_names=("A", "B"))

    def test_fetch_tile_is_a_copy(self):
        image = _gradient()
        source = ArrayTileSource(image)

        tile = source.fetch_tile(0, (10, 20, 5, 4))
        tile[:] = 0

        assert tile.shape == (4, 5, 3)
        assert source.fetch_tile(0, (10, 20, 5, 4))[0, 0, 0] == 10


class TestReadScaled:

    def test_full_resolution_block(self):
        source = ArrayTileSource(_gradient())
        block = read_scaled(source, 1.0, 10, 0, 8, 4)

        assert block.shape == (4, 8, 3)
        assert block.dtype == np.float32
        np.testing.assert_array_equal(block[0, :, 0], np.arange(10, 18))

    def test_outside_is_edge_padded(self):
        source = ArrayTileSource(_gradient())
        block = read_scaled(source, 1.0, -3, 0, 6, 2)

        assert block.shape == (2, 6, 3)
        np.testing.assert_array_equal(block[0, :, 0], [0, 0, 0, 0, 1, 2])

    def test_completely_outside_is_zero(self):
        source = ArrayTileSource(_gradient())
        block = read_scaled(source, 1.0, 500, 500, 4, 4)

        assert block.shape == (4, 4, 3)
        assert not block.any()

    def test_downsampled_block_shape(self):
        source = ArrayTileSource(_gradient())
        block = read_scaled(source, 4.0, 0, 0, 8, 8)

        assert block.shape == (8, 8, 3)
        # Left to right intensity still increases after shrinking
        assert block[0, -1, 0] > block[0, 0, 0]


class TestTileGrid:

    def test_levels_cover_image(self):
        grid = TileGrid(1000, 600, 256)

        assert grid.n_levels == 3
        assert grid.downsample(2) == 4.0

    def test_bounds_clipped(self):
        grid = TileGrid(100, 70, 64)

        assert grid.bounds(TileRequest(0, 1, 1)) == (64.0, 64.0, 100.0, 70.0)
        assert grid.shape(TileRequest(0, 1, 1)) == (6, 36)

    def test_base_downsample(self):
        grid = TileGrid(512, 512, 32, base_downsample=8)

        assert grid.bounds(TileRequest(0, 0, 0)) == (0.0, 0.0, 256.0, 256.0)
        assert grid.shape(TileRequest(0, 0, 0)) == (32, 32)

    def test_contains(self):
        grid = TileGrid(100, 100, 64)

        assert grid.contains(TileRequest(0, 1, 1))
        assert not grid.contains(TileRequest(0, 2, 0))
        assert not grid.contains(TileRequest(-1, 0, 0))
        assert not grid.contains(TileRequest(0, -1, 0))

    def test_tile_at(self):
        grid = TileGrid(100, 100, 64)

        assert grid.tile_at(0, 70, 10) == TileRequest(0, 1, 0)
        assert grid.tile_at(0, 100, 10) is None

    def test_tiles_for_region(self):
        grid = TileGrid(100, 100, 32)

        tiles = grid.tiles_for_region(0, 0, 0, 40, 20)

        assert tiles == [TileRequest(0, 0, 0), TileRequest(0, 1, 0)]
        assert grid.tiles_for_region(0, 200, 200, 300, 300) == []
