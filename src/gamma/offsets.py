"""감마 탐색용 오프셋 테이블.

후보 변위 벡터를 원점 거리 제곱 오름차순으로 정렬해 보관한다.
탐색의 조기 종료 규칙은 이 정렬 순서에 의존한다.
"""

import logging
from dataclasses import dataclass
from typing import Iterator

import numpy as np

from src.core.geometry import Point3d

logger = logging.getLogger(__name__)

# 정렬 격자 세트가 덮는 격자 칸 수 (각 축 ±)
ALIGNMENT_CELLS = 2


@dataclass(frozen=True)
class Offset:
    """변위 벡터와 원점 거리 제곱."""
    displacement: Point3d
    distance_squared: float


class OffsetTable:
    """거리 제곱 오름차순으로 정렬된 오프셋 모음.

    Attributes:
        displacements: (N, 3) 변위 배열 (mm)
        distance_squared: (N,) 거리 제곱 배열, 비감소
    """

    def __init__(self, displacements: np.ndarray):
        displacements = np.asarray(displacements, dtype=np.float64).reshape(-1, 3)
        distance_squared = np.einsum("ij,ij->i", displacements, displacements)
        # stable 정렬: 동일 거리는 생성 순서를 유지
        order = np.argsort(distance_squared, kind="stable")
        self.displacements = displacements[order]
        self.distance_squared = distance_squared[order]

    def __len__(self) -> int:
        return len(self.distance_squared)

    def __getitem__(self, index: int) -> Offset:
        return Offset(
            Point3d.from_array(self.displacements[index]),
            float(self.distance_squared[index]),
        )

    def __iter__(self) -> Iterator[Offset]:
        for i in range(len(self)):
            yield self[i]

    def search_entries(self) -> "OffsetTable":
        """영변위 항목을 제외한 테이블.

        영변위는 탐색 전에 따로 평가되므로 인덱스 위치가 아닌
        거리 값으로 식별해 제거한다.
        """
        return OffsetTable(self.displacements[self.distance_squared > 0.0])


def _alignment_offsets(spacing: Point3d) -> np.ndarray:
    """격자 간격의 정수배 변위 (각 축 ±2칸) + 영변위."""
    steps = np.arange(-ALIGNMENT_CELLS, ALIGNMENT_CELLS + 1, dtype=np.float64)
    gx, gy, gz = np.meshgrid(steps * spacing.x, steps * spacing.y, steps * spacing.z, indexing="ij")
    aligned = np.stack([gx.ravel(), gy.ravel(), gz.ravel()], axis=1)
    return np.vstack([aligned, np.zeros((1, 3))])


def _lattice_offsets(diameter: float, step: float) -> np.ndarray:
    """원점을 지나는 step 간격 정육면체 격자."""
    n = int(diameter / step)
    if n % 2 != 0:
        n += 1
    half = n // 2
    line = np.arange(-half, half + 1, dtype=np.float64) * step
    gx, gy, gz = np.meshgrid(line, line, line, indexing="ij")
    return np.stack([gx.ravel(), gy.ravel(), gz.ravel()], axis=1)


def create_offsets(diameter: float, step: float, spacing: Point3d) -> OffsetTable:
    """정렬된 오프셋 테이블 생성.

    Args:
        diameter: 탐색 직경 (mm)
        step: 균일 격자 간격 (mm)
        spacing: 평가 격자의 간격

    Returns:
        OffsetTable (거리 제곱 오름차순)
    """
    if diameter <= 0 or step <= 0:
        raise ValueError(f"diameter와 step은 양수여야 합니다: diameter={diameter}, step={step}")

    table = OffsetTable(np.vstack([
        _alignment_offsets(spacing),
        _lattice_offsets(diameter, step),
    ]))
    logger.debug("오프셋 테이블 생성: %d개 (직경 %.3f mm, 간격 %.3f mm)", len(table), diameter, step)
    return table


def offsets_for_tolerance(
    distance_tolerance: float,
    spacing: Point3d,
    search_factor: float = 3.0,
    step_divisor: float = 10.0,
) -> OffsetTable:
    """DTA 기준으로 오프셋 테이블 생성.

    직경 = search_factor * DTA, 간격 = DTA / step_divisor.
    """
    return create_offsets(
        distance_tolerance * search_factor,
        distance_tolerance / step_divisor,
        spacing,
    )
