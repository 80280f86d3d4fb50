"""
Tests for the laspy reading/writing wrappers used by the engine.
"""

import laspy
import numpy as np
import pytest

from las_retile.errors import InternalInvariantViolation, InvalidInputError, RetileIOError
from las_retile.utils.las_io import (
    LasInputReader,
    TileWriter,
    batch_capacity,
    cleared_header,
    read_header,
)


def _xyz(n, x0=0.0):
    return np.column_stack([np.linspace(x0, x0 + 5, n), np.linspace(0, 5, n), np.linspace(1, 2, n)])


def test_read_header_only(tmp_path, make_cloud):
    path = make_cloud(tmp_path / "a.las", _xyz(12))

    header = read_header(path)

    assert header.point_count == 12
    assert header.point_format.id == 3


def test_read_header_of_garbage(tmp_path):
    path = tmp_path / "bad.las"
    path.write_bytes(b"LASX" + b"\x00" * 10)

    with pytest.raises(InvalidInputError, match="bad.las"):
        read_header(path)


def test_cleared_header_keeps_layout(tmp_path, make_cloud):
    path = make_cloud(tmp_path / "a.las", _xyz(12), scales=(0.01, 0.01, 0.01), offsets=(100, 200, 0))
    template = read_header(path)

    header = cleared_header(template)

    assert header.point_count == 0
    assert header.point_format == template.point_format
    np.testing.assert_allclose(header.scales, [0.01, 0.01, 0.01])
    np.testing.assert_allclose(header.offsets, [100, 200, 0])
    # The template itself is untouched
    assert template.point_count == 12


def test_batch_capacity():
    pf = laspy.PointFormat(3)
    assert batch_capacity(pf, pf.size * 1000) == 1000
    assert batch_capacity(pf, pf.size * 1000 + 1) == 1000
    assert batch_capacity(pf, 1) == 1


class TestLasInputReader:

    def test_batches_until_exhausted(self, tmp_path, make_cloud):
        path = make_cloud(tmp_path / "a.las", _xyz(10))

        sizes = []
        ids = []
        with LasInputReader(path) as reader:
            assert reader.header.point_count == 10
            while True:
                batch = reader.read_batch(4)
                if len(batch) == 0:
                    break
                sizes.append(len(batch))
                ids.extend(np.asarray(batch.gps_time).tolist())

        assert sizes == [4, 4, 2]
        assert ids == list(range(10))

    def test_missing_file(self, tmp_path):
        with pytest.raises(RetileIOError):
            with LasInputReader(tmp_path / "missing.las"):
                pass


class TestTileWriter:

    def test_appends_in_order(self, tmp_path, make_cloud):
        src = make_cloud(tmp_path / "src.las", _xyz(10), ids=np.arange(100, 110))
        out = tmp_path / "tile_0_0.las"

        with LasInputReader(src) as reader:
            points = reader.read_batch(10)
            writer = TileWriter(out, reader.header)
            writer.write(points[:3])
            writer.write(points[3:3])
            writer.write(points[3:])
            writer.close()

        assert writer.points_written == 10
        assert writer.closed
        las = laspy.read(str(out))
        assert las.header.point_count == 10
        np.testing.assert_array_equal(las.gps_time, np.arange(100, 110))
        np.testing.assert_array_equal(las.intensity, np.arange(10))

    def test_write_after_close_raises(self, tmp_path, make_cloud):
        src = make_cloud(tmp_path / "src.las", _xyz(3))
        with LasInputReader(src) as reader:
            points = reader.read_batch(3)
            writer = TileWriter(tmp_path / "t.las", reader.header)
            writer.close()

            with pytest.raises(RetileIOError):
                writer.write(points)

    def test_rejects_points_with_other_quantization(self, tmp_path, make_cloud):
        """Raw coordinates from a source with another scale/offset are never copied."""
        a = make_cloud(tmp_path / "a.las", _xyz(5), scales=(0.001,) * 3, offsets=(0, 0, 0))
        b = make_cloud(tmp_path / "b.las", _xyz(5, x0=6.0), scales=(0.01,) * 3, offsets=(5, -3, 1))
        out = tmp_path / "tile.las"

        with LasInputReader(a) as ra:
            writer = TileWriter(out, ra.header)
            writer.write(ra.read_batch(5))
        with LasInputReader(b) as rb:
            with pytest.raises(InternalInvariantViolation, match="cannot be copied"):
                writer.write(rb.read_batch(5))
        writer.close()

        assert writer.points_written == 5
        las = laspy.read(str(out))
        np.testing.assert_allclose(np.asarray(las.x), np.linspace(0, 5, 5), atol=1e-3)

    def test_laz_output(self, tmp_path, make_cloud):
        src = make_cloud(tmp_path / "src.las", _xyz(8))
        out = tmp_path / "tile_0_0.laz"

        with LasInputReader(src) as reader:
            writer = TileWriter(out, reader.header)
            writer.write(reader.read_batch(8))
            writer.close()

        las = laspy.read(str(out))
        assert len(las.points) == 8
