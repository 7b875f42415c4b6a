"""격자 기하 정합.

평가 결과를 담을 빈 격자를 만들거나, 샘플링이 다른 두 격자의
공간 범위를 모두 덮는 새 격자를 만든다.
"""

import logging

import numpy as np

from src.core.geometry import Point3d, Range
from src.core.grid import SPACING_TOLERANCE, DoseVolume, VoxelGrid

logger = logging.getLogger(__name__)


def blank_from(grid: DoseVolume) -> VoxelGrid:
    """grid와 같은 좌표축을 가진 빈 격자.

    좌표축과 간격을 그대로 복사하고, 스케일링은 1,
    데이터는 0, 최소/최대 추적값은 초기화한다.
    """
    constant = grid.constant_spacing if isinstance(grid, VoxelGrid) else None
    blank = VoxelGrid(
        np.array(grid.x_coords, copy=True),
        np.array(grid.y_coords, copy=True),
        np.array(grid.z_coords, copy=True),
        scaling=1.0,
        spacing=Point3d(grid.spacing.x, grid.spacing.y, grid.spacing.z),
        constant_spacing=constant,
    )
    blank.reset_extrema()
    return blank


def _axis_for_range(axis_range: Range, step: float) -> np.ndarray:
    """range.minimum부터 step 간격으로 range를 덮는 좌표축.

    좌표 개수는 round(길이 / step) + 1 이고,
    마지막 좌표는 range.maximum에 맞춘다.
    길이가 0보다 크면 좌표는 최소 2개다.
    """
    count = int(round(axis_range.length / step)) + 1
    if axis_range.length > 0:
        count = max(count, 2)
    axis = axis_range.minimum + np.arange(count, dtype=np.float64) * step
    if count > 1:
        axis[-1] = axis_range.maximum
    return axis


def blank_from_union(grid_a: DoseVolume, grid_b: DoseVolume, spacing: Point3d) -> VoxelGrid:
    """두 격자의 범위 합집합을 덮는 빈 격자.

    Args:
        grid_a, grid_b: 입력 격자
        spacing: 새 격자의 간격 (호출자 설정값)

    Returns:
        스케일링 1, 데이터 0인 VoxelGrid
    """
    steps = tuple(spacing)
    if any(s <= 0 for s in steps):
        raise ValueError(f"spacing은 양수여야 합니다: {steps}")

    ranges = (
        grid_a.x_range.combine(grid_b.x_range),
        grid_a.y_range.combine(grid_b.y_range),
        grid_a.z_range.combine(grid_b.z_range),
    )
    axes = [_axis_for_range(r, s) for r, s in zip(ranges, steps)]

    # 범위 길이가 간격의 정수배가 아니면 마지막 칸이 달라진다
    constant = all(
        axis.size < 2 or np.all(np.abs(np.diff(axis) - s) <= SPACING_TOLERANCE)
        for axis, s in zip(axes, steps)
    )

    blank = VoxelGrid(
        *axes,
        scaling=1.0,
        spacing=Point3d(*steps),
        constant_spacing=constant,
    )
    blank.reset_extrema()
    logger.debug("합집합 격자 생성: shape=%s, spacing=%s", blank.shape, steps)
    return blank


def subtract(grid_a: DoseVolume, grid_b: DoseVolume, spacing: Point3d) -> VoxelGrid:
    """두 선량 분포의 정규화된 차이 (%).

    합집합 격자의 모든 좌표에서
        100 * (A - B) / (A 최대 선량)
    를 계산한다. A, B는 각각 스케일링이 적용된 선량이다.
    """
    result = blank_from_union(grid_a, grid_b, spacing)
    positions = result.positions()

    dose_a = grid_a.interpolate(positions) * grid_a.scaling
    dose_b = grid_b.interpolate(positions) * grid_b.scaling
    normalisation = grid_a.max_value * grid_a.scaling

    # A 최대 선량이 0이면 inf/nan이 그대로 전파된다
    with np.errstate(divide="ignore", invalid="ignore"):
        result.data[:] = 100.0 * (dose_a - dose_b) / normalisation

    result.update_extrema(result.data)
    logger.info(
        "선량 차이 계산 완료: %d 복셀, 범위 [%.3f, %.3f] %%",
        result.number_of_voxels, result.min_value, result.max_value,
    )
    return result
