"""
Tests for PointLoader: plain and indexed .pts parsing and writing.
"""

import os
import tempfile

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.extra.numpy import arrays

from pdm_fitting.errors import MalformedFileError
from pdm_fitting.point_loader import PointLoader


def _write(path, text):
    with open(path, "w") as f:
        f.write(text)
    return str(path)


# Property 1: written point clouds load back with the same coordinates
@given(points=arrays(
    dtype=np.float64,
    shape=st.tuples(st.integers(min_value=1, max_value=40), st.just(3)),
    elements=st.floats(min_value=-1e3, max_value=1e3, allow_nan=False, allow_infinity=False),
))
@settings(max_examples=50, deadline=None)
def test_written_points_load_back(points):
    """
    For any finite point cloud, writing then loading SHALL reproduce the
    coordinates up to the 8 decimals of the text format.
    """
    with tempfile.NamedTemporaryFile(suffix='.pts', delete=False) as f:
        temp_path = f.name
    try:
        PointLoader.write_points(points, temp_path)
        loaded = PointLoader.load_points(temp_path)
        assert loaded.dtype == np.float64
        assert loaded.shape == points.shape
        np.testing.assert_allclose(loaded, points, atol=1e-8)
    finally:
        if os.path.exists(temp_path):
            os.unlink(temp_path)


def test_load_points_skips_blank_lines_and_extra_columns(tmp_path):
    path = _write(tmp_path / "a.pts", "1 2 3\n\n   \n4 5 6 7\n")
    points = PointLoader.load_points(path)
    np.testing.assert_array_equal(points, [[1, 2, 3], [4, 5, 6]])


def test_load_points_rejects_short_line_with_line_number(tmp_path):
    path = _write(tmp_path / "short.pts", "1 2 3\n\n4 5\n")
    with pytest.raises(MalformedFileError) as excinfo:
        PointLoader.load_points(path)
    assert excinfo.value.line_number == 3
    assert "short.pts" in str(excinfo.value)
    assert "line 3" in str(excinfo.value)


def test_load_points_rejects_non_numeric(tmp_path):
    path = _write(tmp_path / "bad.pts", "1 2 3\n1 x 3\n")
    with pytest.raises(MalformedFileError) as excinfo:
        PointLoader.load_points(path)
    assert excinfo.value.line_number == 2


def test_load_points_rejects_empty_file(tmp_path):
    path = _write(tmp_path / "empty.pts", "\n\n")
    with pytest.raises(MalformedFileError, match="No valid points"):
        PointLoader.load_points(path)


def test_missing_file_raises_file_not_found(tmp_path):
    with pytest.raises(FileNotFoundError):
        PointLoader.load_points(str(tmp_path / "missing.pts"))
    with pytest.raises(FileNotFoundError):
        PointLoader.load_indexed_points(str(tmp_path / "missing.pts"))


def test_load_indexed_points(tmp_path):
    path = _write(tmp_path / "partial.pts", "0.5 1.5 2.5 4\n\n-1 0 1 0\n")
    points, indices = PointLoader.load_indexed_points(path)
    np.testing.assert_array_equal(points, [[0.5, 1.5, 2.5], [-1, 0, 1]])
    np.testing.assert_array_equal(indices, [4, 0])
    assert indices.dtype == np.int64


def test_indexed_file_with_three_fields_names_the_line(tmp_path):
    path = _write(tmp_path / "partial.pts", "0 0 0 1\n1.0 2.0 3.0\n")
    with pytest.raises(MalformedFileError) as excinfo:
        PointLoader.load_indexed_points(path)
    assert excinfo.value.line_number == 2
    message = str(excinfo.value)
    assert "line 2" in message
    assert "expected 4" in message
    assert "partial.pts" in message


def test_indexed_file_rejects_five_fields(tmp_path):
    path = _write(tmp_path / "partial.pts", "0 0 0 1 9\n")
    with pytest.raises(MalformedFileError):
        PointLoader.load_indexed_points(path)


def test_indexed_file_rejects_non_integer_index(tmp_path):
    path = _write(tmp_path / "partial.pts", "0 0 0 1.5\n")
    with pytest.raises(MalformedFileError) as excinfo:
        PointLoader.load_indexed_points(path)
    assert excinfo.value.line_number == 1


def test_list_point_files(tmp_path):
    _write(tmp_path / "b.pts", "0 0 0\n")
    _write(tmp_path / "a.pts", "0 0 0\n")
    _write(tmp_path / "notes.txt", "ignored\n")
    (tmp_path / "sub.pts").mkdir()

    files = PointLoader.list_point_files(str(tmp_path))
    assert [f.name for f in files] == ["a.pts", "b.pts"]

    single = PointLoader.list_point_files(str(tmp_path / "notes.txt"))
    assert [f.name for f in single] == ["notes.txt"]


def test_write_points_format(tmp_path):
    path = str(tmp_path / "out.pts")
    PointLoader.write_points(np.array([[1.0, -2.0, 0.123456789]]), path)
    with open(path) as f:
        assert f.read().strip() == "1.00000000 -2.00000000 0.12345679"
