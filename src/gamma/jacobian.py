"""변위 벡터장의 야코비안 행렬식.

복셀마다 중심 차분으로 3x3 편미분 행렬 J[i, j] = d f_i / d x_j 를 만들고
행렬식을 계산한다. 경계 복셀은 격자 샘플링의 경계 클램프를 따른다.
"""

import numpy as np

from src.core.grid import VoxelGrid

from .reconcile import blank_from
from .result import VectorField


def jacobian_determinant(field: VectorField, step: float = 1.0) -> VoxelGrid:
    """벡터장의 야코비안 행렬식 격자.

    Args:
        field: VectorField (x, y, z 성분 격자)
        step: 중심 차분 간격 (mm), 각 방향 +-step/2 에서 샘플링

    Returns:
        벡터장과 같은 기하의 VoxelGrid
    """
    if step <= 0:
        raise ValueError(f"step은 양수여야 합니다: {step}")

    result = blank_from(field.x)
    positions = result.positions()
    matrices = np.empty((len(positions), 3, 3))

    for row, component in enumerate((field.x, field.y, field.z)):
        for col in range(3):
            offset = np.zeros(3)
            offset[col] = step / 2.0
            forward = component.interpolate(positions + offset) * component.scaling
            backward = component.interpolate(positions - offset) * component.scaling
            matrices[:, row, col] = (forward - backward) / step

    if len(positions):
        result.data[:] = np.linalg.det(matrices)
        result.update_extrema(result.data)
    return result
