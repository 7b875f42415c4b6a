"""격자 기하 정합 테스트."""

import numpy as np
import pytest

from src.core.geometry import Point3d
from src.core.grid import VoxelGrid
from src.gamma.reconcile import blank_from, blank_from_union, subtract


@pytest.fixture
def grid_a():
    """x, y, z ∈ [0, 4], 1mm 간격, 값 = x."""
    values = np.zeros((5, 5, 5))
    for i in range(5):
        values[i] = float(i)
    return VoxelGrid.from_array(values)


@pytest.fixture
def grid_b():
    """x ∈ [-2, 1], y ∈ [1, 5], z ∈ [3, 5]."""
    return VoxelGrid.from_array(np.ones((4, 3, 2)), origin=(-2.0, 1.0, 3.0), spacing=(1.0, 2.0, 2.0))


class TestBlankFrom:
    """blank_from 테스트."""

    def test_axes_preserved_exactly(self):
        x = np.array([0.1, 0.35, 1.7])
        y = np.array([-3.3, 2.2])
        z = np.array([1e-3, 7.77, 9.1, 12.0])
        source = VoxelGrid(x, y, z, data=np.arange(24.0), scaling=2.5)
        blank = blank_from(source)

        for original, copied in ((x, blank.x_coords), (y, blank.y_coords), (z, blank.z_coords)):
            assert np.array_equal(original, copied)
            assert original.tobytes() == copied.tobytes()
        assert blank.x_coords is not source.x_coords

    def test_scaling_reset_and_zero_filled(self, grid_a):
        grid_a.scaling = 3.0
        blank = blank_from(grid_a)
        assert blank.scaling == 1.0
        assert blank.data.shape == (125,)
        assert np.all(blank.data == 0.0)
        assert blank.spacing == grid_a.spacing
        assert blank.constant_spacing == grid_a.constant_spacing
        assert blank.min_value == float("inf")
        assert blank.max_value == float("-inf")

    def test_source_untouched(self, grid_a):
        before = grid_a.data.copy()
        blank = blank_from(grid_a)
        blank.data[:] = 99.0
        np.testing.assert_array_equal(grid_a.data, before)


class TestBlankFromUnion:
    """blank_from_union 테스트."""

    def test_union_ranges(self, grid_a, grid_b):
        """각 축 최소/최대 = 두 격자의 min/max."""
        union = blank_from_union(grid_a, grid_b, Point3d(1.0, 1.0, 2.0))
        for axis in ("x_range", "y_range", "z_range"):
            a, b, u = getattr(grid_a, axis), getattr(grid_b, axis), getattr(union, axis)
            assert u.minimum == min(a.minimum, b.minimum)
            assert u.maximum == max(a.maximum, b.maximum)

    def test_axis_lengths(self, grid_a, grid_b):
        """좌표 개수 = round(길이 / 간격) + 1."""
        union = blank_from_union(grid_a, grid_b, Point3d(1.0, 1.0, 2.0))
        # x: [-2, 4], y: [0, 5], z: [0, 5] -> round(2.5) = 2
        assert union.shape == (7, 6, 3)
        np.testing.assert_allclose(union.x_coords, np.arange(-2.0, 5.0))
        np.testing.assert_allclose(union.z_coords, [0.0, 2.0, 5.0])
        assert union.constant_spacing is False
        assert union.spacing == Point3d(1.0, 1.0, 2.0)

    def test_constant_spacing_when_divisible(self, grid_a, grid_b):
        union = blank_from_union(grid_a, grid_b, Point3d(1.0, 1.0, 1.0))
        assert union.constant_spacing is True
        assert union.shape == (7, 6, 6)

    def test_short_range_keeps_maximum(self):
        """범위 길이가 간격의 절반보다 짧아도 최대 좌표를 유지."""
        a = VoxelGrid.from_array(np.ones((2, 2, 2)), spacing=(1.0, 1.0, 0.5))
        b = VoxelGrid.from_array(np.ones((2, 2, 2)), spacing=(1.0, 1.0, 0.5))
        union = blank_from_union(a, b, Point3d(1.0, 1.0, 2.0))
        np.testing.assert_array_equal(union.z_coords, [0.0, 0.5])
        assert union.z_range.maximum == 0.5
        assert union.constant_spacing is False

    def test_zero_length_axis(self):
        """단일 좌표 축은 좌표 1개."""
        a = VoxelGrid([0.0, 1.0], [0.0, 1.0], [3.0])
        union = blank_from_union(a, a, Point3d(1.0, 1.0, 2.0))
        np.testing.assert_array_equal(union.z_coords, [3.0])

    def test_blank(self, grid_a, grid_b):
        union = blank_from_union(grid_a, grid_b, Point3d(1.0, 1.0, 1.0))
        assert union.scaling == 1.0
        assert np.all(union.data == 0.0)

    def test_invalid_spacing(self, grid_a, grid_b):
        with pytest.raises(ValueError):
            blank_from_union(grid_a, grid_b, Point3d(1.0, 0.0, 1.0))


class TestSubtract:
    """subtract 테스트."""

    def test_uniform_difference(self):
        a = VoxelGrid.from_array(np.full((3, 3, 3), 200.0), scaling=0.5)
        b = VoxelGrid.from_array(np.full((4, 4, 2), 97.0), origin=(1.0, 1.0, 1.0))
        diff = subtract(a, b, Point3d(1.0, 1.0, 1.0))

        assert diff.shape == (5, 5, 3)
        np.testing.assert_allclose(diff.data, 3.0)
        assert diff.min_value == pytest.approx(3.0)
        assert diff.max_value == pytest.approx(3.0)

    def test_scaled_inputs_cancel(self):
        a = VoxelGrid.from_array(np.full((3, 3, 3), 100.0))
        b = VoxelGrid.from_array(np.full((3, 3, 3), 50.0), scaling=2.0)
        diff = subtract(a, b, Point3d(1.0, 1.0, 1.0))
        np.testing.assert_allclose(diff.data, 0.0)

    def test_gradient(self, grid_a):
        """A = x, B = 0 -> 100 * x / 4."""
        b = VoxelGrid.from_array(np.zeros((5, 5, 5)))
        diff = subtract(grid_a, b, Point3d(1.0, 1.0, 1.0))
        values = diff.as_array()
        for i in range(5):
            np.testing.assert_allclose(values[i], 25.0 * i)
        assert diff.min_value == pytest.approx(0.0)
        assert diff.max_value == pytest.approx(100.0)
