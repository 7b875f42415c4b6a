"""3D 감마 지수 평가 엔진.

기준(reference) 선량과 평가(evaluated) 선량을 선량 차이(DD)와
거리 일치(DTA) 기준으로 비교한다 (global gamma).

    gamma^2 = (dD / DD)^2 + (r / DTA)^2

복셀마다 거리 순으로 정렬된 오프셋 테이블을 탐색하며,
현재 최소 gamma^2 가 남은 오프셋의 거리 항보다 작아지면 탐색을 멈춘다.
"""

import logging
import threading
import time
from typing import Callable, Literal, Optional, Sequence, Tuple

import numpy as np

from src.core.geometry import Point3d
from src.core.grid import DoseVolume, VoxelGrid

from .jacobian import jacobian_determinant
from .offsets import OffsetTable, offsets_for_tolerance
from .reconcile import blank_from, blank_from_union
from .result import EXCLUDED, GammaResult, VectorField

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

# 진행률 보고 횟수 (약 5%마다)
PROGRESS_STEPS = 20

# 블록 탐색 크기 (오프셋 개수)
INITIAL_BLOCK = 64
MAX_BLOCK = 4096


class EvaluationCancelled(RuntimeError):
    """협조적 취소 요청으로 평가가 중단됨."""


def gamma_squared(dose_diff_squared, distance_squared, dose_criteria_squared, distance_criteria_squared):
    """gamma^2 = dD^2/DD^2 + r^2/DTA^2 (스칼라 또는 배열)."""
    return dose_diff_squared / dose_criteria_squared + distance_squared / distance_criteria_squared


def search_minimum(
    evaluated: DoseVolume,
    position: np.ndarray,
    ref_dose: float,
    eval_dose: float,
    table: OffsetTable,
    dose_tol_sq: float,
    dist_tol_sq: float,
) -> Tuple[float, np.ndarray]:
    """한 복셀의 최소 gamma^2 탐색.

    영변위(선량 차이만)로 초기화한 뒤 table을 거리 오름차순으로 훑는다.
    오프셋 블록 단위로 샘플링하고, 누적 최소값으로 순차 탐색과
    같은 위치에서 종료한다.

    Args:
        evaluated: 평가 선량 격자
        position: (3,) 복셀 위치
        ref_dose: 복셀 위치의 기준 선량 (스케일링 적용)
        eval_dose: 복셀 위치의 평가 선량 (스케일링 적용)
        table: 영변위가 제외된 정렬 오프셋 테이블
        dose_tol_sq: 절대 선량 기준의 제곱
        dist_tol_sq: DTA 제곱

    Returns:
        (최소 gamma^2, 그 값을 만든 변위 (3,))
    """
    dd = ref_dose - eval_dose
    best = gamma_squared(dd * dd, 0.0, dose_tol_sq, dist_tol_sq)
    best_displacement = np.zeros(3)
    if np.isnan(best):
        # NaN 은 어떤 후보와 비교해도 갱신되지 않는다
        return best, best_displacement

    displacements = table.displacements
    distance_squared = table.distance_squared
    n_offsets = len(distance_squared)

    last_distance = 0.0
    start = 0
    block = INITIAL_BLOCK
    while start < n_offsets:
        stop = min(start + block, n_offsets)
        block_d2 = distance_squared[start:stop]

        doses = evaluated.interpolate(position + displacements[start:stop]) * evaluated.scaling
        diff = ref_dose - doses
        block_g2 = gamma_squared(diff * diff, block_d2, dose_tol_sq, dist_tol_sq)
        # NaN 샘플은 최소값 후보가 아니다
        block_g2 = np.where(np.isnan(block_g2), np.inf, block_g2)

        # 각 오프셋 직전까지의 최소값
        running = np.minimum.accumulate(np.concatenate(([best], block_g2[:-1])))
        previous = np.concatenate(([last_distance], block_d2[:-1]))
        stops = np.flatnonzero((running < block_d2 / dist_tol_sq) & (block_d2 >= previous))
        count = int(stops[0]) if stops.size else len(block_g2)

        if count:
            i = int(np.argmin(block_g2[:count]))
            if block_g2[i] < best:
                best = float(block_g2[i])
                best_displacement = displacements[start + i].copy()

        if stops.size:
            break

        last_distance = float(block_d2[-1])
        start = stop
        block = min(block * 2, MAX_BLOCK)

    return best, best_displacement


class _ProgressReporter:
    """정수 백분율 진행률 보고 (비감소, 0~100)."""

    def __init__(self, total: int, callback: Optional[ProgressCallback]):
        self.total = total
        self.callback = callback
        self.interval = max(total // PROGRESS_STEPS, 1)
        self.last = -1

    def update(self, done: int):
        if self.callback is None or self.total <= 0:
            return
        percent = min(int(100 * done / self.total), 100)
        if percent > self.last:
            self.last = percent
            self.callback(percent)


class GammaEvaluator:
    """감마 분포 계산기.

    사용법:
        evaluator = GammaEvaluator(distance_tolerance=3.0, dose_tolerance=3.0, threshold=10.0)
        result = evaluator.evaluate(reference, evaluated, progress=print)
    """

    def __init__(
        self,
        distance_tolerance: float = 3.0,
        dose_tolerance: float = 3.0,
        threshold: float = 10.0,
        search_factor: float = 3.0,
        step_divisor: float = 10.0,
        output_grid: Literal["reference", "union"] = "reference",
        union_spacing: Sequence[float] = (1.0, 1.0, 2.0),
        compute_jacobian: bool = False,
        pass_threshold: float = 1.0,
    ):
        """
        Args:
            distance_tolerance: DTA (mm)
            dose_tolerance: 선량 기준 (기준 최대 선량 대비 %)
            threshold: 제외 문턱 (기준 최대 선량 대비 %)
            search_factor: 탐색 직경 = search_factor * DTA
            step_divisor: 오프셋 격자 간격 = DTA / step_divisor
            output_grid: 출력 격자 기하 ("reference" 또는 "union")
            union_spacing: output_grid="union"일 때 격자 간격 (mm)
            compute_jacobian: 벡터장 야코비안 계산 여부
            pass_threshold: 통과 판정 감마값
        """
        if distance_tolerance <= 0:
            raise ValueError(f"distance_tolerance는 양수여야 합니다: {distance_tolerance}")
        if dose_tolerance <= 0:
            raise ValueError(f"dose_tolerance는 양수여야 합니다: {dose_tolerance}")
        if threshold < 0:
            raise ValueError(f"threshold는 0 이상이어야 합니다: {threshold}")
        if search_factor <= 0 or step_divisor <= 0:
            raise ValueError("search_factor와 step_divisor는 양수여야 합니다")
        if output_grid not in ("reference", "union"):
            raise ValueError(f"알 수 없는 output_grid: {output_grid}")

        self.distance_tolerance = float(distance_tolerance)
        self.dose_tolerance = float(dose_tolerance)
        self.threshold = float(threshold)
        self.search_factor = float(search_factor)
        self.step_divisor = float(step_divisor)
        self.output_grid = output_grid
        self.union_spacing = Point3d.from_array(union_spacing)
        self.compute_jacobian = compute_jacobian
        self.pass_threshold = float(pass_threshold)

    @property
    def criteria(self) -> dict:
        return {
            "label": f"{self.dose_tolerance:g}%/{self.distance_tolerance:g}mm",
            "distance_tolerance": self.distance_tolerance,
            "dose_tolerance": self.dose_tolerance,
            "threshold": self.threshold,
            "output_grid": self.output_grid,
        }

    def _blank_output(self, reference: DoseVolume, evaluated: DoseVolume) -> VoxelGrid:
        if self.output_grid == "union":
            return blank_from_union(reference, evaluated, self.union_spacing)
        return blank_from(reference)

    def build_offsets(self, spacing: Point3d) -> OffsetTable:
        """평가 격자 간격에 맞춘 오프셋 테이블."""
        return offsets_for_tolerance(
            self.distance_tolerance, spacing, self.search_factor, self.step_divisor,
        )

    def evaluate(
        self,
        reference: DoseVolume,
        evaluated: DoseVolume,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> GammaResult:
        """감마 분포 계산.

        Args:
            reference: 기준 선량 격자
            evaluated: 평가 선량 격자
            progress: 진행률 콜백 (정수 %)
            cancel_event: set() 되면 다음 배치 전에 EvaluationCancelled 발생

        Returns:
            GammaResult
        """
        start_time = time.time()

        max_dose = reference.max_value * reference.scaling
        threshold_dose = (self.threshold / 100.0) * max_dose
        dose_tol = (self.dose_tolerance / 100.0) * max_dose
        dose_tol_sq = dose_tol * dose_tol
        dist_tol_sq = self.distance_tolerance * self.distance_tolerance

        gamma_grid = self._blank_output(reference, evaluated)
        table = self.build_offsets(gamma_grid.spacing).search_entries()

        positions = gamma_grid.positions()
        total = len(positions)
        logger.info(
            "감마 평가 시작: %s, 복셀 %d개, 오프셋 %d개",
            self.criteria["label"], total, len(table),
        )

        ref_doses = reference.interpolate(positions) * reference.scaling
        eval_doses = evaluated.interpolate(positions) * evaluated.scaling
        excluded = (ref_doses < threshold_dose) & (eval_doses < threshold_dose)

        gamma_values = gamma_grid.data
        gamma_values[excluded] = EXCLUDED
        displacements = np.zeros((total, 3))

        reporter = _ProgressReporter(total, progress)
        for batch_start in range(0, total, reporter.interval):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("감마 평가 취소됨 (%d/%d 복셀)", batch_start, total)
                raise EvaluationCancelled(f"{batch_start}/{total} 복셀에서 취소됨")

            batch_stop = min(batch_start + reporter.interval, total)
            for index in range(batch_start, batch_stop):
                if excluded[index]:
                    continue
                g2, displacement = search_minimum(
                    evaluated, positions[index], ref_doses[index], eval_doses[index],
                    table, dose_tol_sq, dist_tol_sq,
                )
                gamma_values[index] = np.sqrt(g2)
                displacements[index] = displacement

            reporter.update(batch_stop)

        # 최소/최대는 평가된 복셀에 대해 한 번에 리덕션
        gamma_grid.update_extrema(gamma_values[~excluded])

        vectors = VectorField(blank_from(gamma_grid), blank_from(gamma_grid), blank_from(gamma_grid))
        for axis, component in enumerate((vectors.x, vectors.y, vectors.z)):
            component.data[:] = displacements[:, axis]
            component.update_extrema(component.data)

        result = GammaResult(
            gamma=gamma_grid,
            vectors=vectors,
            pass_threshold=self.pass_threshold,
            criteria=self.criteria,
        )
        if self.compute_jacobian:
            result.jacobian = jacobian_determinant(vectors)

        if result.n_non_finite:
            logger.warning("유한하지 않은 감마값 %d개 (기준 최대 선량=%g)", result.n_non_finite, max_dose)

        logger.info(
            "감마 평가 완료: 통과율 %.2f%% (%d/%d), %.1f초",
            result.pass_rate, result.n_passed, result.n_evaluated, time.time() - start_time,
        )
        return result
