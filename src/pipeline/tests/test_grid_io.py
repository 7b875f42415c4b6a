"""NPZ 격자 입출력 테스트."""

import numpy as np
import pytest

from src.core.grid import VoxelGrid
from src.gamma import GammaEvaluator
from src.pipeline.grid_io import load_grid, save_grid, save_result


class TestGridIO:
    """load_grid / save_grid 테스트."""

    def test_save_and_load(self, tmp_path):
        values = np.random.default_rng(0).random((3, 4, 2))
        grid = VoxelGrid.from_array(values, origin=(-1.0, 0.0, 5.0), spacing=(0.5, 1.0, 2.5), scaling=0.02)
        path = save_grid(tmp_path / "sub" / "dose.npz", grid)
        assert path.exists()

        loaded = load_grid(path)
        assert loaded.shape == (3, 4, 2)
        assert loaded.scaling == pytest.approx(0.02)
        np.testing.assert_array_equal(loaded.x_coords, grid.x_coords)
        np.testing.assert_array_equal(loaded.as_array(), values)

    def test_scaling_optional(self, tmp_path):
        path = tmp_path / "dose.npz"
        np.savez(path, x=np.arange(2.0), y=np.arange(2.0), z=np.arange(3.0), data=np.ones((2, 2, 3)))
        assert load_grid(path).scaling == 1.0

    def test_missing_key(self, tmp_path):
        path = tmp_path / "bad.npz"
        np.savez(path, x=np.arange(2.0), y=np.arange(2.0), data=np.ones(4))
        with pytest.raises(ValueError, match="z"):
            load_grid(path)

    def test_file_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_grid(tmp_path / "missing.npz")

    def test_inconsistent_shape(self, tmp_path):
        path = tmp_path / "bad.npz"
        np.savez(path, x=np.arange(2.0), y=np.arange(2.0), z=np.arange(2.0), data=np.ones(5))
        with pytest.raises(ValueError):
            load_grid(path)


class TestSaveResult:
    """save_result 테스트."""

    def test_arrays_written(self, tmp_path):
        grid = VoxelGrid.from_array(np.full((3, 3, 3), 100.0))
        result = GammaEvaluator(compute_jacobian=True).evaluate(grid, VoxelGrid.from_array(np.full((3, 3, 3), 100.0)))
        path = save_result(tmp_path / "gamma.npz", result)

        with np.load(path) as archive:
            assert set(archive.files) == {
                "x", "y", "z", "gamma", "vector_x", "vector_y", "vector_z", "jacobian",
            }
            assert archive["gamma"].shape == (3, 3, 3)
            np.testing.assert_array_equal(archive["gamma"], 0.0)

    def test_without_jacobian(self, tmp_path):
        grid = VoxelGrid.from_array(np.full((2, 2, 2), 50.0))
        result = GammaEvaluator().evaluate(grid, grid)
        with np.load(save_result(tmp_path / "gamma.npz", result)) as archive:
            assert "jacobian" not in archive.files
