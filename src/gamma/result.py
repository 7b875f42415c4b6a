"""감마 평가 결과 데이터 클래스."""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from src.core.grid import VoxelGrid

# 분석에서 제외된 복셀 표시값
EXCLUDED = -1.0


def _finite_or_none(value: float) -> Optional[float]:
    return float(value) if np.isfinite(value) else None


@dataclass
class VectorField:
    """복셀별 최소 감마를 만든 변위 (x, y, z 성분 격자).

    세 격자는 감마 격자와 같은 기하를 가진다.
    """
    x: VoxelGrid
    y: VoxelGrid
    z: VoxelGrid

    def components(self) -> np.ndarray:
        """(N, 3) 변위 배열."""
        return np.stack([self.x.data, self.y.data, self.z.data], axis=1)

    def magnitude(self) -> VoxelGrid:
        """변위 크기 격자 (mm)."""
        grid = VoxelGrid(
            self.x.x_coords, self.x.y_coords, self.x.z_coords,
            data=np.linalg.norm(self.components(), axis=1),
            spacing=self.x.spacing,
            constant_spacing=self.x.constant_spacing,
        )
        return grid


@dataclass
class GammaResult:
    """감마 분포 결과.

    Attributes:
        gamma: 감마 격자 (제외 복셀은 -1)
        vectors: 최소 감마 변위 벡터장
        jacobian: 벡터장의 야코비안 행렬식 격자 (선택)
        pass_threshold: 통과 기준 감마값
    """
    gamma: VoxelGrid
    vectors: VectorField
    jacobian: Optional[VoxelGrid] = None
    pass_threshold: float = 1.0
    criteria: dict = field(default_factory=dict)

    @property
    def evaluated_mask(self) -> np.ndarray:
        """분석 대상 복셀 마스크 (제외 표시값이 아닌 복셀)."""
        return self.gamma.data != EXCLUDED

    @property
    def n_evaluated(self) -> int:
        return int(np.count_nonzero(self.evaluated_mask))

    @property
    def n_excluded(self) -> int:
        return self.gamma.number_of_voxels - self.n_evaluated

    @property
    def n_passed(self) -> int:
        values = self.gamma.data[self.evaluated_mask]
        return int(np.count_nonzero(values <= self.pass_threshold))

    @property
    def n_non_finite(self) -> int:
        """inf/nan 감마 개수 (허용 오차가 잘못된 경우 발생)."""
        values = self.gamma.data[self.evaluated_mask]
        return int(np.count_nonzero(~np.isfinite(values)))

    @property
    def pass_rate(self) -> float:
        """통과율 (%). 평가 복셀이 없으면 0."""
        n = self.n_evaluated
        if n == 0:
            return 0.0
        return 100.0 * self.n_passed / n

    @property
    def mean_gamma(self) -> float:
        values = self.gamma.data[self.evaluated_mask]
        if values.size == 0:
            return float("nan")
        return float(np.mean(values))

    def summary(self) -> dict:
        """JSON 직렬화 가능한 통계 요약.

        평가 복셀이 없거나 값이 inf/nan 이면 통계값은 None.
        """
        return {
            "criteria": dict(self.criteria),
            "shape": list(self.gamma.shape),
            "n_voxels": self.gamma.number_of_voxels,
            "n_evaluated": self.n_evaluated,
            "n_excluded": self.n_excluded,
            "n_passed": self.n_passed,
            "n_non_finite": self.n_non_finite,
            "pass_rate": self.pass_rate,
            "mean_gamma": _finite_or_none(self.mean_gamma),
            "min_gamma": _finite_or_none(self.gamma.min_value) if self.n_evaluated else None,
            "max_gamma": _finite_or_none(self.gamma.max_value) if self.n_evaluated else None,
        }

    def __repr__(self) -> str:
        return (
            f"GammaResult(pass_rate={self.pass_rate:.1f}%, "
            f"n_eval={self.n_evaluated}, n_excluded={self.n_excluded})"
        )
