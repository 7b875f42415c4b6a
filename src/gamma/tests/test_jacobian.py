"""벡터장 / 야코비안 테스트."""

import numpy as np
import pytest

from src.core.grid import VoxelGrid
from src.gamma.jacobian import jacobian_determinant
from src.gamma.result import VectorField


def _linear_field(a=2.0, b=3.0, c=4.0, n=5):
    """f = (a*x, b*y, c*z), 1mm 간격 n^3 격자."""
    coords = np.arange(float(n))
    xx, yy, zz = np.meshgrid(coords, coords, coords, indexing="ij")
    return VectorField(
        x=VoxelGrid.from_array(a * xx),
        y=VoxelGrid.from_array(b * yy),
        z=VoxelGrid.from_array(c * zz),
    )


class TestJacobian:
    """jacobian_determinant 테스트."""

    def test_linear_field_interior(self):
        jac = jacobian_determinant(_linear_field())
        values = jac.as_array()
        np.testing.assert_allclose(values[1:4, 1:4, 1:4], 24.0)

    def test_boundary_clamped(self):
        """경계에서는 한쪽 샘플이 클램프되어 차분이 절반."""
        jac = jacobian_determinant(_linear_field())
        assert jac.value_at_index(0, 0, 0) == pytest.approx(1.0 * 1.5 * 2.0)

    def test_geometry_matches_field(self):
        field = _linear_field()
        jac = jacobian_determinant(field)
        assert jac.shape == field.x.shape
        np.testing.assert_array_equal(jac.x_coords, field.x.x_coords)
        assert jac.scaling == 1.0

    def test_zero_field(self):
        field = _linear_field(0.0, 0.0, 0.0)
        jac = jacobian_determinant(field)
        np.testing.assert_array_equal(jac.data, 0.0)
        assert jac.min_value == 0.0

    def test_rotation_preserves_volume(self):
        """xy 평면 90도 회전장 f = (-y, x, z) -> det 1."""
        coords = np.arange(5.0)
        xx, yy, zz = np.meshgrid(coords, coords, coords, indexing="ij")
        field = VectorField(
            x=VoxelGrid.from_array(-yy),
            y=VoxelGrid.from_array(xx.copy()),
            z=VoxelGrid.from_array(zz.copy()),
        )
        values = jacobian_determinant(field).as_array()
        np.testing.assert_allclose(values[1:4, 1:4, 1:4], 1.0)

    @pytest.mark.parametrize("step", [0.0, -1.0])
    def test_invalid_step(self, step):
        with pytest.raises(ValueError):
            jacobian_determinant(_linear_field(), step=step)


class TestVectorField:
    """VectorField 테스트."""

    def test_components_and_magnitude(self):
        field = VectorField(
            x=VoxelGrid.from_array(np.full((2, 2, 2), 3.0)),
            y=VoxelGrid.from_array(np.full((2, 2, 2), 4.0)),
            z=VoxelGrid.from_array(np.zeros((2, 2, 2))),
        )
        assert field.components().shape == (8, 3)
        magnitude = field.magnitude()
        np.testing.assert_allclose(magnitude.data, 5.0)
        assert magnitude.max_value == pytest.approx(5.0)
