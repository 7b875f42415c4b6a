"""NPZ 격자 입출력.

격자 파일 형식 (.npz):
    x, y, z: 좌표축 (mm)
    data: (nx, ny, nz) 또는 1차원 원시 값
    scaling: 스케일링 계수 (선택, 기본 1.0)
"""

from pathlib import Path
from typing import Union

import numpy as np

from src.core.grid import VoxelGrid
from src.gamma.result import GammaResult

REQUIRED_KEYS = ("x", "y", "z", "data")


def load_grid(filepath: Union[str, Path]) -> VoxelGrid:
    """NPZ 파일에서 VoxelGrid 로드."""
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"파일을 찾을 수 없습니다: {filepath}")

    with np.load(filepath) as archive:
        missing = [key for key in REQUIRED_KEYS if key not in archive]
        if missing:
            raise ValueError(f"{filepath.name}: 필수 배열 누락 {missing}")
        scaling = float(archive["scaling"]) if "scaling" in archive else 1.0
        return VoxelGrid(
            archive["x"], archive["y"], archive["z"],
            data=archive["data"].ravel(),
            scaling=scaling,
        )


def save_grid(filepath: Union[str, Path], grid: VoxelGrid) -> Path:
    """VoxelGrid를 NPZ로 저장."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        filepath,
        x=grid.x_coords, y=grid.y_coords, z=grid.z_coords,
        data=grid.as_array(), scaling=np.float64(grid.scaling),
    )
    return filepath


def save_result(filepath: Union[str, Path], result: GammaResult) -> Path:
    """감마 결과 (감마 + 변위 벡터장 [+ 야코비안])를 NPZ로 저장."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    arrays = {
        "x": result.gamma.x_coords,
        "y": result.gamma.y_coords,
        "z": result.gamma.z_coords,
        "gamma": result.gamma.as_array(),
        "vector_x": result.vectors.x.as_array(),
        "vector_y": result.vectors.y.as_array(),
        "vector_z": result.vectors.z.as_array(),
    }
    if result.jacobian is not None:
        arrays["jacobian"] = result.jacobian.as_array()
    np.savez_compressed(filepath, **arrays)
    return filepath
